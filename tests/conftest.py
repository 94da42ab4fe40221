"""
Pytest fixtures.

테스트 구성:
- DB: 서비스 테스트는 in-memory SQLite, 앱 테스트는 tmp SQLite 파일
- Redis: FakeRedis (redis.asyncio 클라이언트 중 사용하는 메서드만)
- LLM: FakeProvider (응답/스트림/분석 결과를 시나리오로 지정)
"""

import asyncio
import fnmatch
from collections.abc import AsyncIterator, Generator
from pathlib import Path
from typing import Any

import pytest
import yaml
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from src.app.providers.base import (
    ChatCompletionResult,
    DocumentAnalysisResult,
    LLMProvider,
    Toolbox,
)
from src.core.cache import RedisService
from src.core.database import create_db_engine, create_session_factory, init_db

# =============================================================================
# Test Doubles
# =============================================================================


class FakeRedis:
    """
    redis.asyncio.Redis(decode_responses=True) 대역.

    TTL은 ttls에 기록만 하고, expire()로 강제 만료시킨다.
    error를 지정하면 get/set/getdel이 그 예외를 발생 (연결 장애 흉내).
    """

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.closed = False
        self.error: Exception | None = None

    def _check(self) -> None:
        if self.error is not None:
            raise self.error

    async def get(self, key: str) -> str | None:
        self._check()
        return self.data.get(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> bool:
        self._check()
        self.data[key] = value
        if ex is not None:
            self.ttls[key] = ex
        return True

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    async def exists(self, *keys: str) -> int:
        return sum(1 for key in keys if key in self.data)

    async def getdel(self, key: str) -> str | None:
        self._check()
        self.ttls.pop(key, None)
        return self.data.pop(key, None)

    async def scan_iter(self, match: str | None = None) -> AsyncIterator[str]:
        for key in list(self.data):
            if match is None or fnmatch.fnmatch(key, match):
                yield key

    async def ping(self) -> bool:
        return True

    async def aclose(self) -> None:
        self.closed = True

    def expire(self, key: str) -> None:
        """TTL 만료 흉내."""
        self.data.pop(key, None)
        self.ttls.pop(key, None)


class FakeProvider(LLMProvider):
    """
    시나리오 기반 LLM Provider.

    - reply: generate_response 응답 텍스트
    - tool_calls: [(name, arguments)] → toolbox가 있으면 응답 전에 실행
    - stream_chunks: stream_response가 내보낼 델타
    - analysis: 순서대로 소비되는 DocumentAnalysisResult 또는 예외
    """

    def __init__(self, model: str = "fake-model") -> None:
        self.model = model
        self.reply = "Olá! Como posso ajudar?"
        self.tool_calls: list[tuple[str, dict[str, Any]]] = []
        self.tool_outputs: list[dict[str, Any]] = []
        self.stream_chunks: list[str] = ["Olá", ", ", "mundo"]
        self.stream_error: Exception | None = None
        self.error: Exception | None = None
        self.delay: float = 0.0
        self.analysis: list[DocumentAnalysisResult | Exception] = []
        self.calls: list[dict[str, Any]] = []

    async def generate_response(
        self,
        messages: list[dict[str, str]],
        system_prompt: str | None = None,
        toolbox: Toolbox | None = None,
    ) -> ChatCompletionResult:
        self.calls.append({"messages": messages, "system_prompt": system_prompt, "toolbox": toolbox})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error

        executed = []
        if toolbox is not None:
            for name, arguments in self.tool_calls:
                self.tool_outputs.append(await toolbox.execute(name, arguments))
                executed.append(name)

        return ChatCompletionResult(
            text=self.reply,
            model=self.model,
            stop_reason="end_turn",
            input_tokens=10,
            output_tokens=5,
            tool_calls=executed,
            rounds=len(executed) + 1,
        )

    async def stream_response(
        self,
        messages: list[dict[str, str]],
        system_prompt: str | None = None,
        toolbox: Toolbox | None = None,
    ) -> AsyncIterator[str]:
        self.calls.append({"messages": messages, "system_prompt": system_prompt, "toolbox": toolbox})
        for chunk in self.stream_chunks:
            yield chunk
        if self.stream_error is not None:
            raise self.stream_error

    async def analyze_document(
        self,
        file_bytes: bytes,
        mime_type: str,
        prompt: str,
    ) -> DocumentAnalysisResult:
        self.calls.append({"mime_type": mime_type, "size": len(file_bytes), "prompt": prompt})
        if not self.analysis:
            return DocumentAnalysisResult(
                extracted_data={"nomeCompleto": "Maria Silva"},
                confidence=0.9,
                model=self.model,
            )
        outcome = self.analysis.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


# =============================================================================
# Path / Config Fixtures
# =============================================================================

@pytest.fixture
def project_root() -> Path:
    """프로젝트 루트 경로."""
    return Path(__file__).parent.parent


@pytest.fixture
def default_config(project_root: Path) -> dict:
    """default.yaml 로드."""
    with open(project_root / "default.yaml", encoding="utf-8") as f:
        return yaml.safe_load(f)


@pytest.fixture
def test_config(tmp_path: Path) -> dict:
    """테스트용 설정 (tmp SQLite 파일, tmp 디렉터리)."""
    return {
        "database": {"url": f"sqlite:///{tmp_path / 'test.db'}"},
        "paths": {
            "exports_dir": str(tmp_path / "exports"),
            "uploads_dir": str(tmp_path / "uploads"),
            "prompts_dir": str(tmp_path / "prompts"),
        },
        "downloads": {"ttl_seconds": 3600},
        "documents": {"max_files": 3, "max_size_mb": 1},
        "ai": {"chat_timeout": 5, "analysis_timeout": 5},
        "logging": {"level": "WARNING"},
    }


# =============================================================================
# Resource Fixtures
# =============================================================================

@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def redis_service(fake_redis: FakeRedis) -> RedisService:
    return RedisService(fake_redis)


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def db_session() -> Generator[Session, None, None]:
    """in-memory SQLite 세션 (테이블 생성 완료)."""
    engine = create_db_engine("sqlite://")
    init_db(engine)
    session_factory = create_session_factory(engine)
    with session_factory() as session:
        yield session
    engine.dispose()


@pytest.fixture
def exports_dir(tmp_path: Path) -> Path:
    path = tmp_path / "exports"
    path.mkdir()
    return path


# =============================================================================
# App Fixtures
# =============================================================================

@pytest.fixture
def app(test_config: dict, fake_redis: FakeRedis, fake_provider: FakeProvider) -> FastAPI:
    from src.app.main import create_app

    return create_app(test_config, redis_client=fake_redis, provider=fake_provider)


@pytest.fixture
def client(app: FastAPI) -> Generator[TestClient, None, None]:
    """lifespan이 실행된 테스트 클라이언트."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def app_session(client: TestClient, app: FastAPI) -> Generator[Session, None, None]:
    """앱과 같은 DB를 보는 세션 (데이터 준비/검증용)."""
    session_factory = app.state.session_factory
    with session_factory() as session:
        yield session

