"""
Export Service: DB 데이터 → CSV / PDF 파일.

- HTTP export: 폼 CSV, 대화 PDF, 문서 PDF
- 채팅 도구용 리포트: 사용자 / 대화 / 문서 CSV
- publish(): 생성된 파일을 1회용 다운로드 링크로 등록

모든 실패는 AppError(EXPORT_FAILED)로 통일 (대화 ID 없음만 404).
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.app.services.downloads import DownloadService
from src.core.ids import generate_export_filename
from src.domain.constants import ADDRESS_FIELDS, ARTIFACT_TYPE_CSV, ARTIFACT_TYPE_PDF
from src.domain.errors import AppError, ErrorCodes
from src.domain.models import Conversation, Document, Form, Message, User
from src.domain.schemas import DownloadLink, ExportResult
from src.render.csv_report import Column, render_csv
from src.render.pdf import UNTITLED_CONVERSATION, render_conversations_pdf, render_documents_pdf

logger = logging.getLogger(__name__)

# =============================================================================
# Column Definitions (CSV 헤더는 pt-BR)
# =============================================================================

FORMS_COLUMNS: list[Column] = [
    ("id", "ID"),
    ("form_type", "Tipo de Formulário"),
    ("nomeCompleto", "Nome Completo"),
    ("cpf", "CPF"),
    ("email", "Email"),
    ("telefone", "Telefone"),
    ("confidence", "Confiança (%)"),
    ("is_validated", "Validado"),
    ("created_at", "Data de Criação"),
]

USERS_COLUMNS: list[Column] = [
    ("name", "Nome Completo"),
    ("email", "Email"),
    ("cpf", "CPF"),
    ("rg", "RG"),
    ("phone", "Telefone"),
    ("birth_date", "Data de Nascimento"),
    ("created_at", "Data de Cadastro"),
]

ADDRESS_COLUMNS: list[Column] = [
    ("cep", "CEP"),
    ("endereco", "Endereço"),
    ("numero", "Número"),
    ("bairro", "Bairro"),
    ("cidade", "Cidade"),
    ("estado", "Estado"),
]

CONVERSATIONS_COLUMNS: list[Column] = [
    ("id", "ID da Conversa"),
    ("title", "Título"),
    ("user_id", "ID do Usuário"),
    ("created_at", "Data de Criação"),
]

MESSAGE_COUNT_COLUMN: Column = ("message_count", "Número de Mensagens")

DOCUMENTS_COLUMNS: list[Column] = [
    ("id", "ID"),
    ("original_name", "Nome Original"),
    ("mime_type", "Tipo de Arquivo"),
    ("size", "Tamanho (bytes)"),
    ("processed_at", "Data de Processamento"),
    ("created_at", "Data de Upload"),
]

EXTRACTED_COLUMNS: list[Column] = [
    ("nomeCompleto", "Nome Extraído"),
    ("cpf", "CPF Extraído"),
    ("email", "Email Extraído"),
    ("telefone", "Telefone Extraído"),
]


def _iso(value: datetime | None) -> str:
    return value.isoformat() if value is not None else ""


@contextmanager
def _export_errors(kind: str) -> Iterator[None]:
    """DB/파일 에러 → AppError(EXPORT_FAILED)."""
    try:
        yield
    except AppError:
        raise
    except (SQLAlchemyError, OSError, ValueError) as e:
        logger.error(f"Export failed ({kind}): {e}", exc_info=True)
        raise AppError(ErrorCodes.EXPORT_FAILED, export=kind) from e


class ExportService:
    """
    Export 서비스.

    Usage:
        service = ExportService(db, exports_dir, downloads)
        result = service.export_forms_csv()
        link = await service.publish(result)
    """

    def __init__(
        self,
        db: Session,
        exports_dir: Path,
        downloads: DownloadService | None = None,
    ):
        self.db = db
        self.exports_dir = exports_dir
        self.downloads = downloads

    def _output_path(self, prefix: str, ext: str) -> Path:
        self.exports_dir.mkdir(parents=True, exist_ok=True)
        return self.exports_dir / generate_export_filename(prefix, ext)

    @staticmethod
    def _result(path: Path, artifact_type: str, count: int, generated_at: datetime) -> ExportResult:
        return ExportResult(
            path=str(path),
            filename=path.name,
            type=artifact_type,
            record_count=count,
            generated_at=generated_at.isoformat(),
        )

    async def publish(self, result: ExportResult) -> DownloadLink:
        """
        생성된 파일을 1회용 다운로드 링크로 등록.

        등록에 실패하면 파일을 지우고 AppError(EXPORT_FAILED).
        """
        path = Path(result.path)
        if self.downloads is None:
            path.unlink(missing_ok=True)
            raise AppError(ErrorCodes.EXPORT_FAILED, message="Download links are not available")
        try:
            return await self.downloads.register(
                path,
                result.type,
                record_count=result.record_count,
                generated_at=result.generated_at,
            )
        except AppError as e:
            path.unlink(missing_ok=True)
            logger.error(f"Export publish failed, removed {result.filename}: {e}")
            raise AppError(ErrorCodes.EXPORT_FAILED, export=result.filename) from e

    # =========================================================================
    # HTTP Exports
    # =========================================================================

    def export_forms_csv(self) -> ExportResult:
        """모든 폼 → CSV."""
        with _export_errors("forms_csv"):
            forms = self.db.scalars(select(Form).order_by(Form.created_at)).all()
            records = []
            for form in forms:
                data = form.form_data or {}
                records.append({
                    "id": form.id,
                    "form_type": form.form_type,
                    "nomeCompleto": data.get("nomeCompleto", ""),
                    "cpf": data.get("cpf", ""),
                    "email": data.get("email", ""),
                    "telefone": data.get("telefone", ""),
                    "confidence": form.confidence or 0,
                    "is_validated": form.is_validated,
                    "created_at": _iso(form.created_at),
                })

            path = self._output_path("forms-export", "csv")
            count = render_csv(FORMS_COLUMNS, records, path)
            return self._result(path, ARTIFACT_TYPE_CSV, count, datetime.now(UTC))

    def export_conversations_pdf(self, conversation_id: str | None = None) -> ExportResult:
        """
        대화 → PDF.

        conversation_id가 있으면 해당 대화만 (없는 ID면 404), 없으면 전체.
        """
        with _export_errors("conversations_pdf"):
            stmt = select(Conversation).order_by(Conversation.created_at)
            if conversation_id:
                stmt = stmt.where(Conversation.id == conversation_id)
            conversations = self.db.scalars(stmt).all()

            if conversation_id and not conversations:
                raise AppError(ErrorCodes.CONVERSATION_NOT_FOUND, conversation_id=conversation_id)

            payload = []
            for conv in conversations:
                messages = self.db.scalars(
                    select(Message)
                    .where(Message.conversation_id == conv.id)
                    .order_by(Message.created_at)
                ).all()
                payload.append({
                    "id": conv.id,
                    "title": conv.title,
                    "created_at": conv.created_at,
                    "messages": [{"role": m.role, "content": m.content} for m in messages],
                })

            generated_at = datetime.now(UTC)
            path = self._output_path(f"conversations-{conversation_id or 'all'}", "pdf")
            render_conversations_pdf(payload, path, generated_at)
            return self._result(path, ARTIFACT_TYPE_PDF, len(payload), generated_at)

    def export_documents_pdf(self) -> ExportResult:
        """모든 문서 → PDF."""
        with _export_errors("documents_pdf"):
            documents = self.db.scalars(select(Document).order_by(Document.created_at)).all()
            payload = [
                {
                    "id": doc.id,
                    "original_name": doc.original_name,
                    "mime_type": doc.mime_type,
                    "size": doc.size,
                    "created_at": doc.created_at,
                    "extracted_data": doc.extracted_data,
                }
                for doc in documents
            ]

            generated_at = datetime.now(UTC)
            path = self._output_path("documents-report", "pdf")
            render_documents_pdf(payload, path, generated_at)
            return self._result(path, ARTIFACT_TYPE_PDF, len(payload), generated_at)

    # =========================================================================
    # Chat Tool Reports
    # =========================================================================

    def users_report(self, include_address: bool = True) -> ExportResult:
        """사용자 리포트 CSV."""
        with _export_errors("users_report"):
            users = self.db.scalars(select(User).order_by(User.created_at)).all()
            columns = USERS_COLUMNS + (ADDRESS_COLUMNS if include_address else [])

            records = []
            for user in users:
                record: dict[str, Any] = {
                    "name": user.name,
                    "email": user.email,
                    "cpf": user.cpf,
                    "rg": user.rg,
                    "phone": user.phone,
                    "birth_date": user.birth_date.date().isoformat() if user.birth_date else "",
                    "created_at": _iso(user.created_at),
                }
                if include_address:
                    address = user.address or {}
                    for name in ADDRESS_FIELDS:
                        record[name] = address.get(name, "")
                records.append(record)

            path = self._output_path("relatorio-usuarios", "csv")
            count = render_csv(columns, records, path)
            return self._result(path, ARTIFACT_TYPE_CSV, count, datetime.now(UTC))

    def conversations_report(self, include_messages: bool = False) -> ExportResult:
        """대화 리포트 CSV (최신순). include_messages면 메시지 수 포함."""
        with _export_errors("conversations_report"):
            conversations = self.db.scalars(
                select(Conversation).order_by(Conversation.created_at.desc())
            ).all()
            columns = CONVERSATIONS_COLUMNS + ([MESSAGE_COUNT_COLUMN] if include_messages else [])

            counts: dict[str, int] = {}
            if include_messages:
                rows = self.db.execute(
                    select(Message.conversation_id, func.count(Message.id))
                    .group_by(Message.conversation_id)
                ).all()
                counts = {conv_id: n for conv_id, n in rows if conv_id}

            records = []
            for conv in conversations:
                record: dict[str, Any] = {
                    "id": conv.id,
                    "title": conv.title or UNTITLED_CONVERSATION,
                    "user_id": conv.user_id or "N/A",
                    "created_at": _iso(conv.created_at),
                }
                if include_messages:
                    record["message_count"] = counts.get(conv.id, 0)
                records.append(record)

            path = self._output_path("relatorio-conversas", "csv")
            count = render_csv(columns, records, path)
            return self._result(path, ARTIFACT_TYPE_CSV, count, datetime.now(UTC))

    def documents_report(self, include_extracted_data: bool = True) -> ExportResult:
        """문서 리포트 CSV (최신순)."""
        with _export_errors("documents_report"):
            documents = self.db.scalars(
                select(Document).order_by(Document.created_at.desc())
            ).all()
            columns = DOCUMENTS_COLUMNS + (EXTRACTED_COLUMNS if include_extracted_data else [])

            records = []
            for doc in documents:
                record: dict[str, Any] = {
                    "id": doc.id,
                    "original_name": doc.original_name,
                    "mime_type": doc.mime_type,
                    "size": doc.size or 0,
                    "processed_at": _iso(doc.processed_at),
                    "created_at": _iso(doc.created_at),
                }
                if include_extracted_data:
                    extracted = doc.extracted_data or {}
                    for key, _ in EXTRACTED_COLUMNS:
                        record[key] = extracted.get(key, "")
                records.append(record)

            path = self._output_path("relatorio-documentos", "csv")
            count = render_csv(columns, records, path)
            return self._result(path, ARTIFACT_TYPE_CSV, count, datetime.now(UTC))
