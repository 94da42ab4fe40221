"""
Download Routes: 1회용 다운로드 링크.

- GET /api/download/info/{key} → 메타데이터 (링크 소비 안 함)
- GET /api/download/{key} → 파일 전송 (포인터 삭제 후 전송, 전송 후 파일 삭제)

/info/{key}는 /{key}보다 먼저 등록해야 함.
"""

import logging
from pathlib import Path

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse
from starlette.background import BackgroundTask

from src.app.dependencies import get_download_service
from src.app.routes.export import artifact_response
from src.app.services.downloads import DownloadService, download_url
from src.domain.errors import AppError, ErrorCodes
from src.domain.schemas import DownloadInfoResponse

logger = logging.getLogger(__name__)

api_router = APIRouter()


@api_router.get("/info/{key}", response_model=DownloadInfoResponse)
async def download_info(
    key: str,
    downloads: DownloadService = Depends(get_download_service),
) -> DownloadInfoResponse:
    info = await downloads.get_info(key)
    if info is None:
        raise AppError(ErrorCodes.DOWNLOAD_NOT_FOUND, key=key)

    return DownloadInfoResponse(
        filename=info.filename,
        type=info.type,
        generated_at=info.generated_at,
        record_count=info.record_count,
        download_url=download_url(key),
    )


@api_router.get("/{key}")
async def download_file(
    key: str,
    downloads: DownloadService = Depends(get_download_service),
) -> FileResponse:
    """
    파일 다운로드 (1회).

    포인터는 전송 전에 원자적으로 삭제되므로 같은 키로 동시에 요청해도
    성공하는 요청은 하나뿐.
    """
    info = await downloads.claim(key)
    if info is None:
        raise AppError(ErrorCodes.DOWNLOAD_NOT_FOUND, key=key)

    if not Path(info.file_path).is_file():
        logger.warning(f"Download '{key}' points to a missing file: {info.file_path}")
        raise AppError(ErrorCodes.DOWNLOAD_FILE_MISSING, key=key)

    return artifact_response(
        info.file_path,
        info.filename,
        info.type,
        headers={
            "X-Generated-At": info.generated_at,
            "X-Record-Count": str(info.record_count),
        },
        cleanup=BackgroundTask(downloads.discard, info),
    )
