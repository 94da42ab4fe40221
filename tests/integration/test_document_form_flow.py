"""
test_document_form_flow.py - 문서 분석 → 폼 채우기 → 내보내기 통합 테스트

검증 포인트:
- 업로드 + 분석으로 documents.extracted_data 채움
- 분석된 문서 ID로 폼 자동 채우기 (사용자 입력 우선)
- 폼 CSV / 문서 PDF export
- 모든 AI 호출이 ai_logs에 남음
"""

import csv
import io

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select

from src.app.providers.base import DocumentAnalysisResult
from src.domain.models import AiLog

pytestmark = pytest.mark.integration


def upload_and_analyze(client: TestClient, fake_provider, name: str, extracted: dict) -> str:
    file_id = client.post(
        "/api/documents/upload",
        files={"file": (name, b"\x89PNG fake image", "image/png")},
    ).json()["fileId"]
    fake_provider.analysis = [
        DocumentAnalysisResult(extracted_data=extracted, confidence=0.9, model="fake-model")
    ]
    response = client.post(f"/api/documents/{file_id}/analyze")
    assert response.status_code == 200
    return file_id


class TestDocumentFormFlow:
    """문서 → 폼 → export 흐름."""

    def test_full_flow(self, client: TestClient, fake_provider, app_session):
        rg_id = upload_and_analyze(
            client, fake_provider, "rg.png",
            {"nomeCompleto": "Ana Souza", "rg": "12.345.678-9", "cpf": "123.456.789-00"},
        )
        conta_id = upload_and_analyze(
            client, fake_provider, "conta_luz.png",
            {"cep": "01001-000", "cidade": "São Paulo", "estado": "SP"},
        )

        filled = client.post(
            "/api/forms/fill-with-ai",
            json={
                "documentIds": [rg_id, conta_id],
                "formData": {"email": "ana@example.com", "telefone": ""},
            },
        ).json()

        assert filled["filledData"] == {
            "nomeCompleto": "Ana Souza",
            "rg": "12.345.678-9",
            "cpf": "123.456.789-00",
            "cep": "01001-000",
            "cidade": "São Paulo",
            "estado": "SP",
            "email": "ana@example.com",
        }
        assert filled["usedDocuments"] == ["rg.png", "conta_luz.png"]
        assert filled["confidence"] == 0.95

        # 폼 CSV
        export = client.post("/api/export/forms/csv")
        rows = list(csv.reader(io.StringIO(export.text)))
        assert rows[1][0] == filled["formId"]
        assert rows[1][2:5] == ["Ana Souza", "123.456.789-00", "ana@example.com"]
        assert rows[1][6] == "95"

        # 문서 PDF
        pdf = client.post("/api/export/documents/pdf")
        assert pdf.content.startswith(b"%PDF")
        assert pdf.headers["x-record-count"] == "2"

        logs = app_session.scalars(select(AiLog).order_by(AiLog.created_at)).all()
        assert [log.request_type for log in logs] == [
            "document_analysis", "document_analysis", "form_fill",
        ]
        assert all(log.status == "success" for log in logs)

    def test_batch_analysis_then_form(self, client: TestClient, fake_provider):
        fake_provider.analysis = [
            DocumentAnalysisResult(extracted_data={"nomeCompleto": "Bruno Lima"}, confidence=0.8),
        ]

        analysis = client.post(
            "/api/documents/analyze",
            files=[("documents", ("cnh.jpg", b"\xff\xd8 jpeg", "image/jpeg"))],
        ).json()
        assert analysis["extractedData"] == {"nomeCompleto": "Bruno Lima"}

        # 분석 결과를 사용자가 폼에 직접 넘기는 경우
        filled = client.post(
            "/api/forms/fill-with-ai",
            json={"documentIds": [], "formData": analysis["extractedData"]},
        ).json()

        assert filled["filledData"] == {"nomeCompleto": "Bruno Lima"}
        assert filled["confidence"] == 0.0
