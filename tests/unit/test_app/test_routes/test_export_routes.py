"""
test_export_routes.py - Export Routes 유닛 테스트

- delivery=file (기본): 첨부 응답 후 파일 삭제
- delivery=link: 1회용 다운로드 링크 JSON
"""

import csv
import io

from fastapi.testclient import TestClient

from src.domain.models import Conversation, Form, Message


def seed(app_session) -> str:
    conversation = Conversation(title="Cadastro")
    app_session.add(conversation)
    app_session.flush()
    app_session.add_all([
        Message(conversation_id=conversation.id, role="user", content="Oi"),
        Form(form_type="smart_form", form_data={"nomeCompleto": "Ana"}, confidence=95),
    ])
    app_session.commit()
    return conversation.id


class TestFileDelivery:
    """첨부 응답 테스트."""

    def test_forms_csv(self, client: TestClient, app, app_session):
        seed(app_session)

        response = client.post("/api/export/forms/csv")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "attachment" in response.headers["content-disposition"]
        assert "forms-export-" in response.headers["content-disposition"]
        assert response.headers["x-record-count"] == "1"

        rows = list(csv.reader(io.StringIO(response.text)))
        assert rows[1][2] == "Ana"
        # 전송 후 삭제
        assert list(app.state.exports_dir.iterdir()) == []

    def test_conversations_pdf(self, client: TestClient, app_session):
        conversation_id = seed(app_session)

        response = client.post(
            "/api/export/conversations/pdf", params={"conversationId": conversation_id}
        )

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert response.content.startswith(b"%PDF")
        assert response.headers["x-record-count"] == "1"

    def test_conversations_pdf_unknown(self, client: TestClient):
        response = client.post(
            "/api/export/conversations/pdf", params={"conversationId": "missing"}
        )

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "CONVERSATION_NOT_FOUND"

    def test_documents_pdf_empty(self, client: TestClient):
        response = client.post("/api/export/documents/pdf")

        assert response.status_code == 200
        assert response.headers["x-record-count"] == "0"


class TestLinkDelivery:
    """delivery=link 테스트."""

    def test_link_then_download_once(self, client: TestClient, app_session):
        seed(app_session)

        link = client.post("/api/export/forms/csv", params={"delivery": "link"})

        assert link.status_code == 200
        data = link.json()
        assert data["downloadUrl"] == f"/api/download/{data['downloadKey']}"
        assert data["expiresIn"] == 3600
        assert data["recordCount"] == 1

        first = client.get(data["downloadUrl"])
        assert first.status_code == 200
        assert "Ana" in first.text

        second = client.get(data["downloadUrl"])
        assert second.status_code == 404

    def test_invalid_delivery(self, client: TestClient):
        response = client.post("/api/export/forms/csv", params={"delivery": "email"})

        assert response.status_code == 422

    def test_link_redis_down(self, client: TestClient, app, app_session, fake_redis):
        """링크 등록 실패 → EXPORT_FAILED JSON, exports/에 파일 남기지 않음."""
        seed(app_session)
        fake_redis.error = ConnectionError("connection refused")

        response = client.post("/api/export/forms/csv", params={"delivery": "link"})

        assert response.status_code == 500
        assert response.json()["detail"]["code"] == "EXPORT_FAILED"
        assert list(app.state.exports_dir.iterdir()) == []
