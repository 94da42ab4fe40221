"""
test_pdf.py - PDF 렌더러 테스트

DoD:
- 실제 PDF 파일 생성 (reportlab)
- 사용자 텍스트는 escape 후 Paragraph에 들어감 (마크업 주입 불가)
- 제목 없는 대화 → "Sem título", 역할 라벨 Usuário/IA
- 빈 목록도 PDF 생성
"""

from datetime import datetime
from unittest.mock import patch

import pytest

from src.domain.errors import AppError, ErrorCodes
from src.render.pdf import (
    CONVERSATIONS_TITLE,
    UNTITLED_CONVERSATION,
    render_conversations_pdf,
    render_documents_pdf,
)

GENERATED_AT = datetime(2024, 6, 1, 14, 30, 0)


@pytest.fixture
def conversations():
    return [
        {
            "id": "conv-1",
            "title": "Dúvida sobre CPF",
            "created_at": datetime(2024, 5, 31, 9, 0, 0),
            "messages": [
                {"role": "user", "content": "Meu CPF é <b>123</b> & outro"},
                {"role": "assistant", "content": "Linha 1\nLinha 2"},
            ],
        },
        {"id": "conv-2", "title": None, "created_at": None, "messages": []},
    ]


class _RecordedParagraph:
    def __init__(self, text, style):
        self.text = text


def _capture_story(render, *args):
    """Paragraph/_build를 가로채 story에 들어간 마크업 텍스트를 돌려준다."""
    captured = {}

    def fake_build(output_path, story):
        captured["story"] = story

    with (
        patch("src.render.pdf.Paragraph", _RecordedParagraph),
        patch("src.render.pdf._build", side_effect=fake_build),
    ):
        render(*args)

    return [getattr(flowable, "text", "") for flowable in captured["story"]]


class TestRenderConversationsPdf:
    """render_conversations_pdf 테스트."""

    def test_writes_pdf(self, tmp_path, conversations):
        path = tmp_path / "conversas.pdf"

        result = render_conversations_pdf(conversations, path, GENERATED_AT)

        assert result == path
        assert path.read_bytes().startswith(b"%PDF")

    def test_content(self, tmp_path, conversations):
        texts = _capture_story(
            render_conversations_pdf, conversations, tmp_path / "c.pdf", GENERATED_AT
        )

        assert CONVERSATIONS_TITLE in texts
        assert "Gerado em: 01/06/2024 14:30:00" in texts
        assert "Dúvida sobre CPF" in texts
        assert UNTITLED_CONVERSATION in texts
        assert "Usuário:" in texts
        assert "IA:" in texts

    def test_escapes_user_text(self, tmp_path, conversations):
        texts = _capture_story(
            render_conversations_pdf, conversations, tmp_path / "c.pdf", GENERATED_AT
        )

        assert "Meu CPF é &lt;b&gt;123&lt;/b&gt; &amp; outro" in texts
        assert "Linha 1<br/>Linha 2" in texts

    def test_markup_in_content_still_renders(self, tmp_path):
        """깨진 마크업이 있어도 실패하지 않음."""
        path = tmp_path / "c.pdf"
        convs = [{"id": "x", "title": "<para>", "messages": [{"role": "user", "content": "<unclosed"}]}]

        render_conversations_pdf(convs, path, GENERATED_AT)

        assert path.exists()

    def test_empty_list(self, tmp_path):
        texts = _capture_story(render_conversations_pdf, [], tmp_path / "c.pdf", GENERATED_AT)

        assert "Nenhuma conversa encontrada." in texts

    def test_many_messages_break_pages(self, tmp_path):
        """긴 대화도 자동 페이지 나눔."""
        path = tmp_path / "long.pdf"
        convs = [{
            "id": "long",
            "title": "Longa",
            "messages": [{"role": "user", "content": "texto " * 200} for _ in range(30)],
        }]

        render_conversations_pdf(convs, path, GENERATED_AT)

        assert path.read_bytes().count(b"/Type /Page") > 2

    def test_build_failure_raises_export_failed(self, tmp_path):
        with patch("src.render.pdf.SimpleDocTemplate.build", side_effect=ValueError("boom")):
            with pytest.raises(AppError) as exc_info:
                render_conversations_pdf([], tmp_path / "c.pdf", GENERATED_AT)

        assert exc_info.value.code == ErrorCodes.EXPORT_FAILED


class TestRenderDocumentsPdf:
    """render_documents_pdf 테스트."""

    def test_writes_pdf(self, tmp_path):
        path = tmp_path / "docs.pdf"
        docs = [{
            "id": "doc-1",
            "original_name": "rg.jpg",
            "mime_type": "image/jpeg",
            "size": 2048,
            "created_at": datetime(2024, 5, 1, 8, 0, 0),
            "extracted_data": {"nomeCompleto": "Maria", "cpf": ""},
        }]

        render_documents_pdf(docs, path, GENERATED_AT)

        assert path.read_bytes().startswith(b"%PDF")

    def test_only_non_empty_extracted_values(self, tmp_path):
        docs = [{
            "id": "doc-1",
            "original_name": "rg.jpg",
            "mime_type": "image/jpeg",
            "size": 2048,
            "extracted_data": {"nomeCompleto": "Maria", "cpf": "", "rg": None},
        }]

        texts = _capture_story(render_documents_pdf, docs, tmp_path / "d.pdf", GENERATED_AT)

        assert "Dados extraídos:" in texts
        assert "nomeCompleto: Maria" in texts
        assert not any(t.startswith("cpf:") for t in texts)
        assert "Tamanho: 2048 bytes" in texts

    def test_no_extracted_data_section_when_empty(self, tmp_path):
        docs = [{"id": "doc-2", "original_name": "x.pdf", "extracted_data": None}]

        texts = _capture_story(render_documents_pdf, docs, tmp_path / "d.pdf", GENERATED_AT)

        assert "Dados extraídos:" not in texts

    def test_empty_list(self, tmp_path):
        texts = _capture_story(render_documents_pdf, [], tmp_path / "d.pdf", GENERATED_AT)

        assert "Nenhum documento encontrado." in texts
