"""
Application Services.

역할:
- chat: 대화 + LLM 응답 (일반/스트리밍)
- documents: 업로드, 개인정보 추출
- forms: 문서 기반 폼 자동 채우기
- export: CSV/PDF 생성
- downloads: 1회용 다운로드 링크
- assistant_tools: 채팅 모델용 도구
"""

from .assistant_tools import AssistantToolbox
from .chat import ChatService
from .documents import DocumentService, IncomingFile
from .downloads import DownloadService
from .export import ExportService
from .forms import FormService

__all__ = [
    "AssistantToolbox",
    "ChatService",
    "DocumentService",
    "IncomingFile",
    "DownloadService",
    "ExportService",
    "FormService",
]
