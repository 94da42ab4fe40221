"""
FastAPI 애플리케이션 진입점.

실행:
- 개발: uvicorn src.app.main:app --reload --port 3333
- 직접: python -m src.app.main
"""

import copy
import logging
import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.asyncio import Redis

from src.app.providers.base import LLMProvider, ProviderError
from src.app.routes import chat, documents, download, export, forms
from src.core.cache import RedisService, create_redis_client
from src.core.database import create_db_engine, create_session_factory, init_db
from src.core.logging import setup_logging
from src.domain.constants import (
    DEFAULT_DOWNLOAD_TTL_SECONDS,
    DEFAULT_EXPORTS_DIR,
    DEFAULT_UPLOADS_DIR,
    PROMPTS_DIR,
    SERVICE_NAME,
    SERVICE_VERSION,
)
from src.domain.errors import AppError
from src.domain.schemas import HealthResponse

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).parent.parent.parent

# =============================================================================
# Configuration
# =============================================================================

DEFAULT_CONFIG: dict[str, Any] = {
    "server": {"host": "0.0.0.0", "port": 3333},
    "cors": {"origins": ["http://localhost:3000", "*"]},
    "database": {"url": "sqlite:///./data/ikated.db"},
    "redis": {"url": "redis://localhost:6379/0"},
    "ai": {
        "llm": {"model": "claude-opus-4-5-20251101", "max_tokens": 4096, "temperature": 0.7},
        "chat_timeout": 60,
        "analysis_timeout": 60,
        "max_tool_rounds": 5,
        "max_retries": 3,
    },
    "paths": {"exports_dir": DEFAULT_EXPORTS_DIR, "uploads_dir": DEFAULT_UPLOADS_DIR},
    "downloads": {"ttl_seconds": DEFAULT_DOWNLOAD_TTL_SECONDS},
    "documents": {"max_files": 10, "max_size_mb": 10},
    "logging": {"level": "INFO"},
}

# 환경변수 → config 경로
ENV_OVERRIDES: dict[str, tuple[str, ...]] = {
    "DATABASE_URL": ("database", "url"),
    "REDIS_URL": ("redis", "url"),
    "PORT": ("server", "port"),
    "LOG_LEVEL": ("logging", "level"),
    "CORS_ORIGINS": ("cors", "origins"),
    "ANTHROPIC_MODEL": ("ai", "llm", "model"),
}


def _env_value(key: str, value: str) -> Any:
    if key == "port":
        return int(value)
    if key == "origins":
        return [origin.strip() for origin in value.split(",") if origin.strip()]
    return value


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: Path | None = None) -> dict:
    """
    설정 로드.

    우선순위: 환경변수 (.env 포함) > default.yaml > DEFAULT_CONFIG
    """
    load_dotenv()

    if config_path is None:
        # 프로젝트 루트의 default.yaml
        config_path = PROJECT_ROOT / "default.yaml"

    data: dict[str, Any] = {}
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

    config = _merge(DEFAULT_CONFIG, data)

    for env_name, path in ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if not value:
            continue
        *parents, key = path
        target = config
        for name in parents:
            target = target.setdefault(name, {})
        target[key] = _env_value(key, value)

    return config


def _resolve_dir(value: str) -> Path:
    path = Path(value)
    return path if path.is_absolute() else PROJECT_ROOT / path


# =============================================================================
# App Factory
# =============================================================================


def create_app(
    config: dict[str, Any] | None = None,
    *,
    redis_client: Redis | None = None,
    provider: LLMProvider | None = None,
) -> FastAPI:
    """
    FastAPI 앱 생성.

    Args:
        config: 설정 (None이면 load_config())
        redis_client: Redis 클라이언트 주입 (테스트용, None이면 redis.url로 생성)
        provider: LLM Provider 주입 (None이면 첫 요청 시 ClaudeProvider 생성)
    """
    app_config = _merge(DEFAULT_CONFIG, config) if config is not None else load_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """
        시작 시: 로깅, DB, Redis, 디렉터리 초기화
        종료 시: Redis 연결 종료
        """
        setup_logging(app_config["logging"]["level"])

        engine = create_db_engine(app_config["database"]["url"])
        init_db(engine)
        app.state.engine = engine
        app.state.session_factory = create_session_factory(engine)

        client = redis_client or create_redis_client(app_config["redis"]["url"])
        app.state.redis = RedisService(client)
        if not await app.state.redis.ping():
            logger.warning("Redis is not reachable; download links will fail until it is")

        paths = app_config["paths"]
        app.state.exports_dir = _resolve_dir(paths["exports_dir"])
        app.state.uploads_dir = _resolve_dir(paths["uploads_dir"])
        app.state.exports_dir.mkdir(parents=True, exist_ok=True)
        app.state.uploads_dir.mkdir(parents=True, exist_ok=True)
        app.state.prompts_dir = _resolve_dir(paths.get("prompts_dir", PROMPTS_DIR))
        app.state.download_ttl = int(app_config["downloads"]["ttl_seconds"])

        logger.info(f"{SERVICE_NAME} {SERVICE_VERSION} started")

        yield

        await app.state.redis.close()
        engine.dispose()
        logger.info(f"{SERVICE_NAME} stopped")

    app = FastAPI(
        title="Ikated API",
        description="문서 기반 개인정보 추출 + AI 어시스턴트 + 보고서 내보내기",
        version=SERVICE_VERSION,
        lifespan=lifespan,
    )
    app.state.config = app_config
    app.state.provider = provider

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_config["cors"]["origins"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition", "X-Generated-At", "X-Record-Count"],
    )

    _register_error_handlers(app)
    _register_routes(app)
    return app


# =============================================================================
# Error Handlers
# =============================================================================


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        else:
            logger.info(f"{request.method} {request.url.path} → {exc.status_code} {exc.code}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": {"code": exc.code, "message": exc.message}},
        )

    @app.exception_handler(ProviderError)
    async def provider_error_handler(request: Request, exc: ProviderError) -> JSONResponse:
        # 서비스에서 감싸지 못한 Provider 에러 (원문은 로그로만)
        logger.error(f"{request.method} {request.url.path} provider error: {exc}")
        return JSONResponse(
            status_code=502,
            content={"detail": {"code": exc.code, "message": "AI provider error"}},
        )


# =============================================================================
# Routes
# =============================================================================


def _register_routes(app: FastAPI) -> None:
    app.include_router(chat.api_router, prefix="/api/chat", tags=["Chat"])
    app.include_router(documents.api_router, prefix="/api/documents", tags=["Documents"])
    app.include_router(forms.api_router, prefix="/api/forms", tags=["Forms"])
    app.include_router(export.api_router, prefix="/api/export", tags=["Export"])
    app.include_router(download.api_router, prefix="/api/download", tags=["Download"])

    @app.get("/api/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        """헬스 체크."""
        return HealthResponse(
            status="ok",
            timestamp=datetime.now(UTC),
            service=SERVICE_NAME,
            version=SERVICE_VERSION,
        )

    @app.get("/")
    async def root() -> dict[str, Any]:
        return {
            "message": "Ikated API",
            "version": SERVICE_VERSION,
            "endpoints": {
                "health": "/api/health",
                "chat": "/api/chat",
                "chatStream": "/api/chat/stream",
                "documents": "/api/documents",
                "forms": "/api/forms",
                "export": "/api/export",
                "download": "/api/download/{key}",
            },
        }


# =============================================================================
# App Instance
# =============================================================================

app = create_app()


if __name__ == "__main__":
    import uvicorn

    server = app.state.config["server"]
    uvicorn.run(
        "src.app.main:app",
        host=server["host"],
        port=int(server["port"]),
    )
