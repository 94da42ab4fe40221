"""
FastAPI Routes (REST + SSE).

각 모듈은 api_router를 노출하고 main.py에서 /api/* 아래에 등록한다.
"""

from . import chat, documents, download, export, forms

__all__ = ["chat", "documents", "download", "export", "forms"]
