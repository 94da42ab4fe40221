"""
test_download.py - Download Routes 유닛 테스트

핵심: 링크는 1회만 유효, /info는 소비하지 않음
"""

import json
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from src.app.services.downloads import pointer_key


@pytest.fixture
def published(app, fake_redis) -> dict:
    """exports/에 파일을 만들고 포인터를 직접 등록."""
    path: Path = app.state.exports_dir / "relatorio-usuarios-1-abcd1234.csv"
    path.write_text("Nome Completo,Email\nAna,ana@example.com\n", encoding="utf-8")
    fake_redis.data[pointer_key("k1")] = json.dumps({
        "filePath": str(path),
        "filename": path.name,
        "type": "csv",
        "generatedAt": "2026-03-01T12:00:00+00:00",
        "recordCount": 1,
    })
    return {"key": "k1", "path": path}


class TestDownload:
    """GET /api/download/{key} 테스트."""

    def test_download_once(self, client: TestClient, published, fake_redis):
        response = client.get("/api/download/k1")

        assert response.status_code == 200
        assert response.text.startswith("Nome Completo,Email")
        assert response.headers["content-type"].startswith("text/csv")
        assert 'filename="relatorio-usuarios-1-abcd1234.csv"' in response.headers["content-disposition"]
        assert response.headers["x-generated-at"] == "2026-03-01T12:00:00+00:00"
        assert response.headers["x-record-count"] == "1"

        # 포인터와 파일 모두 제거
        assert pointer_key("k1") not in fake_redis.data
        assert not published["path"].exists()

        again = client.get("/api/download/k1")
        assert again.status_code == 404
        assert again.json()["detail"] == {
            "code": "DOWNLOAD_NOT_FOUND",
            "message": "File not found or expired",
        }

    def test_unknown_key(self, client: TestClient):
        response = client.get("/api/download/nope")

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "DOWNLOAD_NOT_FOUND"

    def test_expired_key(self, client: TestClient, published, fake_redis):
        fake_redis.expire(pointer_key("k1"))

        assert client.get("/api/download/k1").status_code == 404

    def test_missing_file(self, client: TestClient, published, fake_redis):
        published["path"].unlink()

        response = client.get("/api/download/k1")

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "DOWNLOAD_FILE_MISSING"
        # 포인터는 이미 소비됨
        assert pointer_key("k1") not in fake_redis.data


class TestDownloadInfo:
    """GET /api/download/info/{key} 테스트."""

    def test_info_does_not_consume(self, client: TestClient, published):
        info = client.get("/api/download/info/k1")

        assert info.status_code == 200
        assert info.json() == {
            "filename": "relatorio-usuarios-1-abcd1234.csv",
            "type": "csv",
            "generatedAt": "2026-03-01T12:00:00+00:00",
            "recordCount": 1,
            "downloadUrl": "/api/download/k1",
        }

        assert client.get("/api/download/k1").status_code == 200

    def test_info_unknown(self, client: TestClient):
        response = client.get("/api/download/info/nope")

        assert response.status_code == 404


class TestRedisUnavailable:
    """Redis 장애 시 503 JSON (plain-text 500 아님)."""

    def test_download_redis_down(self, client: TestClient, fake_redis):
        fake_redis.error = ConnectionError("connection refused")

        response = client.get("/api/download/abc")

        assert response.status_code == 503
        assert response.json()["detail"] == {
            "code": "DOWNLOAD_UNAVAILABLE",
            "message": "Download service is temporarily unavailable",
        }

    def test_info_redis_down(self, client: TestClient, fake_redis):
        fake_redis.error = ConnectionError("connection refused")

        response = client.get("/api/download/info/abc")

        assert response.status_code == 503
        assert response.json()["detail"]["code"] == "DOWNLOAD_UNAVAILABLE"
