"""
FastAPI dependencies.

app.state에 올려둔 리소스(config, session_factory, redis, provider)를
라우트가 쓰는 서비스로 조립한다.
"""

import logging
from pathlib import Path
from typing import Any

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from src.app.providers.anthropic import ClaudeProvider
from src.app.providers.base import LLMProvider, ProviderError
from src.app.services.assistant_tools import AssistantToolbox
from src.app.services.chat import DEFAULT_CHAT_TIMEOUT, ChatService
from src.app.services.documents import DEFAULT_ANALYSIS_TIMEOUT, DocumentService
from src.app.services.downloads import DownloadService
from src.app.services.export import ExportService
from src.app.services.forms import FormService
from src.app.services.prompts import (
    DEFAULT_ANALYZE_DOCUMENT_PROMPT,
    DEFAULT_CHAT_SYSTEM_PROMPT,
    load_prompt,
)
from src.core.cache import RedisService
from src.core.database import get_db
from src.domain.constants import (
    ANALYZE_DOCUMENT_PROMPT_FILENAME,
    CHAT_SYSTEM_PROMPT_FILENAME,
    DEFAULT_LLM_MODEL,
    DEFAULT_MAX_FILE_SIZE_MB,
    DEFAULT_MAX_FILES,
)
from src.domain.errors import AppError, ErrorCodes

logger = logging.getLogger(__name__)


def get_config(request: Request) -> dict[str, Any]:
    config: dict[str, Any] = request.app.state.config
    return config


def get_redis_service(request: Request) -> RedisService:
    return request.app.state.redis


def get_download_service(request: Request) -> DownloadService:
    return DownloadService(request.app.state.redis, ttl_seconds=request.app.state.download_ttl)


def build_provider(config: dict[str, Any]) -> ClaudeProvider:
    """config(ai.*) 기반 ClaudeProvider 생성. 키가 없으면 ProviderError."""
    ai_config = config.get("ai", {})
    llm_config = ai_config.get("llm", {})
    return ClaudeProvider(
        model=llm_config.get("model", DEFAULT_LLM_MODEL),
        max_tokens=llm_config.get("max_tokens", 4096),
        temperature=llm_config.get("temperature"),
        max_tool_rounds=ai_config.get("max_tool_rounds", 5),
        max_retries=ai_config.get("max_retries", 3),
    )


def get_provider(request: Request) -> LLMProvider:
    """
    LLM Provider (첫 요청 시 생성, 이후 재사용).

    Raises:
        AppError: PROVIDER_UNAVAILABLE (API 키 없음)
    """
    provider: LLMProvider | None = getattr(request.app.state, "provider", None)
    if provider is None:
        try:
            provider = build_provider(request.app.state.config)
        except ProviderError as e:
            logger.error(f"LLM provider unavailable: {e}")
            raise AppError(ErrorCodes.PROVIDER_UNAVAILABLE, provider_code=e.code) from e
        request.app.state.provider = provider
    return provider


def _prompts_dir(request: Request) -> Path | None:
    return getattr(request.app.state, "prompts_dir", None)


def get_export_service(
    request: Request,
    db: Session = Depends(get_db),
) -> ExportService:
    return ExportService(
        db,
        exports_dir=request.app.state.exports_dir,
        downloads=get_download_service(request),
    )


def build_chat_service(request: Request, db: Session, provider: LLMProvider) -> ChatService:
    """스트리밍 라우트는 자체 세션을 쓰므로 Depends 없이도 조립 가능하게 분리."""
    export_service = ExportService(
        db,
        exports_dir=request.app.state.exports_dir,
        downloads=get_download_service(request),
    )
    config = request.app.state.config
    return ChatService(
        db,
        provider,
        toolbox=AssistantToolbox(db, export_service, cache=get_redis_service(request)),
        system_prompt=load_prompt(
            _prompts_dir(request), CHAT_SYSTEM_PROMPT_FILENAME, DEFAULT_CHAT_SYSTEM_PROMPT
        ),
        timeout=config.get("ai", {}).get("chat_timeout", DEFAULT_CHAT_TIMEOUT),
    )


def get_chat_service(
    request: Request,
    db: Session = Depends(get_db),
    provider: LLMProvider = Depends(get_provider),
) -> ChatService:
    return build_chat_service(request, db, provider)


def _document_service(
    request: Request,
    db: Session,
    provider: LLMProvider | None,
) -> DocumentService:
    config = request.app.state.config
    documents_config = config.get("documents", {})
    return DocumentService(
        db,
        provider,
        uploads_dir=request.app.state.uploads_dir,
        analysis_prompt=load_prompt(
            _prompts_dir(request), ANALYZE_DOCUMENT_PROMPT_FILENAME, DEFAULT_ANALYZE_DOCUMENT_PROMPT
        ),
        max_files=documents_config.get("max_files", DEFAULT_MAX_FILES),
        max_size_mb=documents_config.get("max_size_mb", DEFAULT_MAX_FILE_SIZE_MB),
        timeout=config.get("ai", {}).get("analysis_timeout", DEFAULT_ANALYSIS_TIMEOUT),
    )


def get_document_service(
    request: Request,
    db: Session = Depends(get_db),
) -> DocumentService:
    """업로드/조회용 (LLM 불필요)."""
    return _document_service(request, db, None)


def get_analysis_service(
    request: Request,
    db: Session = Depends(get_db),
    provider: LLMProvider = Depends(get_provider),
) -> DocumentService:
    """분석용 (LLM 필요)."""
    return _document_service(request, db, provider)


def get_form_service(db: Session = Depends(get_db)) -> FormService:
    return FormService(db)
