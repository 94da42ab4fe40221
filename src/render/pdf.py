"""
PDF 렌더러: reportlab platypus 기반.

- 대화 리포트: 대화별 제목/ID/생성일 + 메시지 (Usuário / IA)
- 문서 리포트: 문서별 메타데이터 + 추출 데이터 (key: value)

사용자 텍스트는 Paragraph 마크업에 들어가기 전에 반드시 escape.
페이지 나눔은 platypus가 자동 처리.
"""

import logging
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path
from typing import Any
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Flowable, HRFlowable, Paragraph, SimpleDocTemplate, Spacer

from src.domain.constants import ROLE_USER
from src.domain.errors import AppError, ErrorCodes
from src.render.formatting import format_datetime_br

logger = logging.getLogger(__name__)

CONVERSATIONS_TITLE = "Relatório de Conversas - Ikated IA"
DOCUMENTS_TITLE = "Relatório de Documentos - Ikated IA"
UNTITLED_CONVERSATION = "Sem título"


def _esc(value: Any) -> str:
    """Paragraph 마크업용 escape + 줄바꿈 보존."""
    return escape("" if value is None else str(value)).replace("\n", "<br/>")


class _Styles:
    """리포트 공통 스타일."""

    def __init__(self) -> None:
        base = getSampleStyleSheet()
        self.title = ParagraphStyle("ReportTitle", parent=base["Title"], spaceAfter=6)
        self.subtitle = ParagraphStyle(
            "ReportSubtitle", parent=base["Normal"], textColor=colors.grey, spaceAfter=12
        )
        self.heading = ParagraphStyle(
            "ItemHeading", parent=base["Heading2"], spaceBefore=10, spaceAfter=4
        )
        self.meta = ParagraphStyle("ItemMeta", parent=base["Normal"], fontSize=9, leading=12)
        self.label = ParagraphStyle(
            "MessageLabel", parent=base["Normal"], fontName="Helvetica-Bold", spaceBefore=6
        )
        self.body = ParagraphStyle(
            "Body", parent=base["BodyText"], leading=14, leftIndent=12, spaceAfter=4
        )


def _build(output_path: Path, story: list[Flowable]) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    doc = SimpleDocTemplate(
        str(output_path),
        pagesize=A4,
        leftMargin=0.8 * inch,
        rightMargin=0.8 * inch,
        topMargin=0.8 * inch,
        bottomMargin=0.8 * inch,
    )
    try:
        doc.build(story)
    except Exception as e:
        logger.error(f"PDF render failed ({output_path.name}): {e}", exc_info=True)
        raise AppError(ErrorCodes.EXPORT_FAILED, filename=output_path.name) from e


def _header(styles: _Styles, title: str, generated_at: datetime) -> list[Flowable]:
    return [
        Paragraph(_esc(title), styles.title),
        Paragraph(_esc(f"Gerado em: {format_datetime_br(generated_at)}"), styles.subtitle),
    ]


def render_conversations_pdf(
    conversations: Sequence[dict[str, Any]],
    output_path: Path,
    generated_at: datetime,
) -> Path:
    """
    대화 리포트 PDF 생성.

    Args:
        conversations: [{id, title, created_at, messages: [{role, content}]}]
        output_path: 출력 파일 경로
        generated_at: 생성 시각

    Returns:
        저장된 파일 경로

    Raises:
        AppError: EXPORT_FAILED
    """
    styles = _Styles()
    story = _header(styles, CONVERSATIONS_TITLE, generated_at)

    if not conversations:
        story.append(Paragraph("Nenhuma conversa encontrada.", styles.meta))

    for conv in conversations:
        story.append(Paragraph(_esc(conv.get("title") or UNTITLED_CONVERSATION), styles.heading))
        story.append(Paragraph(_esc(f"ID: {conv.get('id', '')}"), styles.meta))
        story.append(
            Paragraph(
                _esc(f"Criado em: {format_datetime_br(conv.get('created_at'))}"),
                styles.meta,
            )
        )

        for message in conv.get("messages", []):
            label = "Usuário" if message.get("role") == ROLE_USER else "IA"
            story.append(Paragraph(f"{label}:", styles.label))
            story.append(Paragraph(_esc(message.get("content", "")), styles.body))

        story.append(Spacer(1, 0.15 * inch))
        story.append(HRFlowable(width="100%", color=colors.lightgrey))

    _build(output_path, story)
    logger.info(f"PDF written: {output_path.name} ({len(conversations)} conversations)")
    return output_path


def render_documents_pdf(
    documents: Sequence[dict[str, Any]],
    output_path: Path,
    generated_at: datetime,
) -> Path:
    """
    문서 리포트 PDF 생성.

    Args:
        documents: [{id, original_name, mime_type, size, created_at, extracted_data}]
        output_path: 출력 파일 경로
        generated_at: 생성 시각

    Returns:
        저장된 파일 경로
    """
    styles = _Styles()
    story = _header(styles, DOCUMENTS_TITLE, generated_at)

    if not documents:
        story.append(Paragraph("Nenhum documento encontrado.", styles.meta))

    for doc in documents:
        story.append(Paragraph(_esc(doc.get("original_name", "")), styles.heading))
        story.append(Paragraph(_esc(f"ID: {doc.get('id', '')}"), styles.meta))
        story.append(Paragraph(_esc(f"Tipo: {doc.get('mime_type') or ''}"), styles.meta))
        story.append(Paragraph(_esc(f"Tamanho: {doc.get('size') or 0} bytes"), styles.meta))
        story.append(
            Paragraph(
                _esc(f"Enviado em: {format_datetime_br(doc.get('created_at'))}"),
                styles.meta,
            )
        )

        extracted = {
            k: v for k, v in (doc.get("extracted_data") or {}).items() if v not in (None, "")
        }
        if extracted:
            story.append(Paragraph("Dados extraídos:", styles.label))
            for key, value in extracted.items():
                story.append(Paragraph(_esc(f"{key}: {value}"), styles.body))

        story.append(Spacer(1, 0.15 * inch))
        story.append(HRFlowable(width="100%", color=colors.lightgrey))

    _build(output_path, story)
    logger.info(f"PDF written: {output_path.name} ({len(documents)} documents)")
    return output_path
