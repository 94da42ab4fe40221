"""
test_report_download_flow.py - 채팅 리포트 → 1회용 다운로드 통합 테스트

검증 포인트:
- 채팅 중 도구 호출 → CSV 생성 → download:{key} 포인터
- 링크로 1회 다운로드 → 파일 삭제 → 재요청 404
- 만료된 링크는 파일이 남고 purge 스크립트가 정리
"""

import asyncio
import sys
import time
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from src.app.services.downloads import pointer_key
from src.domain.models import User

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "scripts"))

from purge_exports import collect_referenced_paths, purge_exports  # noqa: E402

pytestmark = pytest.mark.integration


@pytest.fixture
def users(app_session) -> None:
    app_session.add_all([
        User(name="Ana Souza", email="ana@example.com", cpf="123.456.789-00"),
        User(name="Bruno Lima", email="bruno@example.com"),
    ])
    app_session.commit()


def request_report(client: TestClient, fake_provider) -> dict:
    """모델이 generate_users_report를 호출하는 채팅 1턴."""
    fake_provider.tool_calls = [("generate_users_report", {"include_address": False})]
    fake_provider.reply = "Relatório pronto."

    response = client.post(
        "/api/chat",
        json={"messages": [{"role": "user", "content": "Gere um relatório de usuários"}]},
    )
    assert response.status_code == 200
    return fake_provider.tool_outputs[-1]


class TestReportDownloadFlow:
    """리포트 생성 → 다운로드 전체 흐름."""

    def test_download_once(self, client: TestClient, app, fake_provider, fake_redis, users):
        tool_output = request_report(client, fake_provider)

        assert tool_output["success"] is True
        assert tool_output["recordCount"] == 2
        key = tool_output["downloadKey"]
        assert pointer_key(key) in fake_redis.data

        info = client.get(f"/api/download/info/{key}").json()
        assert info["recordCount"] == 2
        assert info["type"] == "csv"

        first = client.get(tool_output["downloadUrl"])
        assert first.status_code == 200
        assert "Ana Souza" in first.text
        assert "CEP" not in first.text.splitlines()[0]

        second = client.get(tool_output["downloadUrl"])
        assert second.status_code == 404
        assert list(app.state.exports_dir.iterdir()) == []

    def test_expired_link_left_for_purge(
        self, client: TestClient, app, fake_provider, fake_redis, users
    ):
        expired = request_report(client, fake_provider)
        alive = request_report(client, fake_provider)
        fake_redis.expire(pointer_key(expired["downloadKey"]))

        assert client.get(expired["downloadUrl"]).status_code == 404
        exports_dir: Path = app.state.exports_dir
        assert len(list(exports_dir.iterdir())) == 2

        referenced = asyncio.run(collect_referenced_paths(fake_redis))
        result = purge_exports(
            exports_dir, retention_seconds=0, referenced=referenced,
            execute=True, now=time.time() + 1,
        )

        assert result.purged_files == 1
        assert [p.name for p in exports_dir.iterdir()] == [alive["filename"]]
        assert client.get(alive["downloadUrl"]).status_code == 200

    def test_conversation_persisted_with_tool_turn(self, client: TestClient, fake_provider, users):
        request_report(client, fake_provider)
        fake_provider.tool_calls = []
        conversation_id = client.post(
            "/api/chat",
            json={"messages": [{"role": "user", "content": "Obrigado"}]},
        ).json()["conversationId"]

        history = client.get(f"/api/chat/conversation/{conversation_id}/history").json()

        assert [m["content"] for m in history] == ["Obrigado", "Relatório pronto."]
