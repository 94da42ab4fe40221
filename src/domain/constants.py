"""
Domain Constants: 서비스 전역 상수.

파일명 정책, 다운로드 링크 정책, 개인정보 필드 목록 등
시스템 전반에서 사용되는 값들.
"""

import os

# =============================================================================
# Service Identity
# =============================================================================

SERVICE_NAME = "ikated-api"
SERVICE_VERSION = "1.0.0"

# =============================================================================
# Directories (config paths.* 기본값)
# =============================================================================
# <project_root>/
# ├── exports/   # 생성된 CSV/PDF (다운로드 후 삭제)
# ├── uploads/   # 업로드 원본 문서
# └── prompts/   # LLM 프롬프트 템플릿

DEFAULT_EXPORTS_DIR = "exports"
DEFAULT_UPLOADS_DIR = "uploads"
PROMPTS_DIR = "prompts"

CHAT_SYSTEM_PROMPT_FILENAME = "chat_system.txt"
ANALYZE_DOCUMENT_PROMPT_FILENAME = "analyze_document.txt"

# =============================================================================
# Download Links (1회용 다운로드 링크)
# =============================================================================
# Redis: download:{key} → ArtifactInfo JSON (TTL 만료 시 자동 삭제)

DOWNLOAD_KEY_PREFIX = "download:"
DOWNLOAD_URL_PREFIX = "/api/download/"
DEFAULT_DOWNLOAD_TTL_SECONDS = 3600

ARTIFACT_TYPE_CSV = "csv"
ARTIFACT_TYPE_PDF = "pdf"

# =============================================================================
# Chat
# =============================================================================

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
ROLE_SYSTEM = "system"

DEFAULT_CONVERSATION_TITLE = "Nova Conversa"
CONVERSATION_TITLE_WORDS = 5

DEFAULT_LLM_MODEL = "claude-opus-4-5-20251101"

# =============================================================================
# AI Log request types / status (ai_logs 테이블)
# =============================================================================

REQUEST_TYPE_CHAT = "chat"
REQUEST_TYPE_CHAT_STREAM = "chat_stream"
REQUEST_TYPE_DOCUMENT_ANALYSIS = "document_analysis"
REQUEST_TYPE_FORM_FILL = "form_fill"

AI_LOG_SUCCESS = "success"
AI_LOG_ERROR = "error"
AI_LOG_PARTIAL = "partial"

# =============================================================================
# Documents / Forms
# =============================================================================

DEFAULT_MAX_FILES = 10
DEFAULT_MAX_FILE_SIZE_MB = 10

# 문서에서 추출 가능한 개인정보 필드 (프론트엔드 폼과 동일한 키)
PERSONAL_DATA_FIELDS = (
    "nomeCompleto",
    "cpf",
    "rg",
    "dataNascimento",
    "email",
    "telefone",
    "cep",
    "endereco",
    "numero",
    "bairro",
    "cidade",
    "estado",
)

# Address JSON 키 (users.address)
ADDRESS_FIELDS = ("cep", "endereco", "numero", "bairro", "cidade", "estado")

# 모델이 confidence를 주지 않았을 때 사용
DEFAULT_ANALYSIS_CONFIDENCE = 0.85

SMART_FORM_TYPE = "smart_form"
FORM_FILL_CONFIDENCE = 0.95

# =============================================================================
# MIME Types
# =============================================================================

MIME_TYPES = {
    ".csv": "text/csv",
    ".pdf": "application/pdf",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".txt": "text/plain",
    ".json": "application/json",
}

IMAGE_MIME_TYPES = frozenset({"image/jpeg", "image/png", "image/gif", "image/webp"})
PDF_MIME_TYPE = "application/pdf"
TEXT_MIME_TYPE = "text/plain"


def get_mime_type(filename: str) -> str:
    """
    파일명에서 MIME 타입 추출.

    Args:
        filename: 파일명 (확장자 포함)

    Returns:
        MIME 타입 문자열 (알 수 없으면 octet-stream)
    """
    ext = os.path.splitext(filename)[1].lower()
    return MIME_TYPES.get(ext, "application/octet-stream")
