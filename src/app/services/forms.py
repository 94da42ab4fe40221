"""
Forms Service: 분석된 문서로 폼 자동 채우기.

병합 순서:
1. 요청의 document_ids 순서대로 extracted_data 병합 (뒤 문서 우선)
2. formData 중 비어 있지 않은 값으로 덮어쓰기 (사용자 입력 우선)
"""

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from src.core.logging import complete_ai_log, create_ai_log, save_ai_log
from src.domain.constants import FORM_FILL_CONFIDENCE, REQUEST_TYPE_FORM_FILL, SMART_FORM_TYPE
from src.domain.errors import AppError, ErrorCodes
from src.domain.models import Document, Form
from src.domain.schemas import FormFillRequest, FormFillResponse

logger = logging.getLogger(__name__)


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


class FormService:
    """폼 서비스."""

    def __init__(self, db: Session):
        self.db = db

    def fill_with_documents(self, request: FormFillRequest) -> FormFillResponse:
        """
        문서 추출 데이터 + 사용자 입력으로 폼 채우기.

        confidence: 문서에서 데이터를 가져왔으면 0.95, 아니면 0.0
        (없는 문서 ID는 무시)
        """
        document_ids = [str(doc_id) for doc_id in request.document_ids]
        log = create_ai_log(
            REQUEST_TYPE_FORM_FILL,
            input_data={
                "documentIds": document_ids,
                "formFields": sorted((request.form_data or {}).keys()),
            },
        )

        documents: dict[str, Document] = {}
        if document_ids:
            rows = self.db.scalars(select(Document).where(Document.id.in_(document_ids))).all()
            documents = {doc.id: doc for doc in rows}

        filled: dict[str, Any] = {}
        used_documents: list[str] = []
        for doc_id in document_ids:
            doc = documents.get(doc_id)
            if doc is None or not doc.extracted_data:
                continue
            filled.update(doc.extracted_data)
            used_documents.append(doc.original_name)

        for key, value in (request.form_data or {}).items():
            if not _is_empty(value):
                filled[key] = value

        confidence = FORM_FILL_CONFIDENCE if used_documents else 0.0

        form = Form(
            form_type=SMART_FORM_TYPE,
            form_data=filled,
            document_ids=document_ids,
            confidence=round(confidence * 100),
            is_validated=False,
        )
        self.db.add(form)
        self.db.commit()

        missing = [doc_id for doc_id in document_ids if doc_id not in documents]
        if missing:
            logger.warning(f"Form {form.id}: unknown document ids ignored: {missing}")
        logger.info(f"Form filled: {form.id} ({len(filled)} fields, {len(used_documents)} documents)")

        complete_ai_log(
            log,
            success=True,
            output_data={"formId": form.id, "fields": sorted(filled), "usedDocuments": used_documents},
            partial=bool(missing),
        )
        save_ai_log(self.db, log)

        return FormFillResponse(
            filled_data=filled,
            confidence=confidence,
            used_documents=used_documents,
            form_id=form.id,
        )

    def get(self, form_id: str) -> Form:
        """
        Raises:
            AppError: FORM_NOT_FOUND
        """
        form = self.db.get(Form, form_id)
        if form is None:
            raise AppError(ErrorCodes.FORM_NOT_FOUND, form_id=form_id)
        return form

    def list_forms(self, user_id: str | None = None) -> list[Form]:
        stmt = select(Form).order_by(Form.created_at.desc())
        if user_id:
            stmt = stmt.where(Form.user_id == user_id)
        return list(self.db.scalars(stmt).all())
