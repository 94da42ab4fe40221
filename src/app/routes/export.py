"""
Export Routes: CSV/PDF 내보내기.

기본: 파일 자체를 첨부로 응답하고 전송 후 삭제.
?delivery=link: 1회용 다운로드 링크 등록 후 DownloadLink JSON 응답.
"""

import logging
from pathlib import Path
from typing import Literal

from fastapi import APIRouter, Depends, Query
from fastapi.responses import FileResponse
from starlette.background import BackgroundTask

from src.app.dependencies import get_export_service
from src.app.services.export import ExportService
from src.domain.constants import ARTIFACT_TYPE_CSV, ARTIFACT_TYPE_PDF
from src.domain.schemas import DownloadLinkResponse, ExportResult

logger = logging.getLogger(__name__)

api_router = APIRouter()

Delivery = Literal["file", "link"]

MEDIA_TYPES = {
    ARTIFACT_TYPE_CSV: "text/csv; charset=utf-8",
    ARTIFACT_TYPE_PDF: "application/pdf",
}


def remove_file(path: str) -> None:
    """응답 전송 후 실행되는 정리 작업."""
    try:
        Path(path).unlink(missing_ok=True)
    except OSError as e:
        logger.error(f"Failed to remove exported file {path}: {e}")


def artifact_response(
    path: str,
    filename: str,
    artifact_type: str,
    headers: dict[str, str] | None = None,
    cleanup: BackgroundTask | None = None,
) -> FileResponse:
    return FileResponse(
        path=path,
        filename=filename,
        media_type=MEDIA_TYPES.get(artifact_type, "application/octet-stream"),
        headers=headers,
        background=cleanup or BackgroundTask(remove_file, path),
    )


async def _deliver(
    service: ExportService,
    result: ExportResult,
    delivery: Delivery,
) -> FileResponse | DownloadLinkResponse:
    if delivery == "link":
        link = await service.publish(result)
        return DownloadLinkResponse(**link.to_dict())

    return artifact_response(
        result.path,
        result.filename,
        result.type,
        headers={"X-Record-Count": str(result.record_count)},
    )


@api_router.post("/forms/csv", response_model=None)
async def export_forms_csv(
    delivery: Delivery = "file",
    service: ExportService = Depends(get_export_service),
) -> FileResponse | DownloadLinkResponse:
    return await _deliver(service, service.export_forms_csv(), delivery)


@api_router.post("/conversations/pdf", response_model=None)
async def export_conversations_pdf(
    conversation_id: str | None = Query(default=None, alias="conversationId"),
    delivery: Delivery = "file",
    service: ExportService = Depends(get_export_service),
) -> FileResponse | DownloadLinkResponse:
    """conversationId가 있으면 해당 대화만, 없으면 전체."""
    return await _deliver(service, service.export_conversations_pdf(conversation_id), delivery)


@api_router.post("/documents/pdf", response_model=None)
async def export_documents_pdf(
    delivery: Delivery = "file",
    service: ExportService = Depends(get_export_service),
) -> FileResponse | DownloadLinkResponse:
    return await _deliver(service, service.export_documents_pdf(), delivery)
