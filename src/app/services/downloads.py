"""
Download Service: 1회용 다운로드 링크.

흐름:
1. register(): 생성된 파일 → download:{key} 포인터 저장 (TTL)
2. claim(): GETDEL로 포인터를 원자적으로 가져가면서 삭제 → 링크는 1회만 유효
3. discard(): 전송이 끝난 파일 삭제

포인터가 TTL로 만료되면 파일만 남는다 → scripts/purge_exports.py가 정리.
Redis 에러는 AppError(DOWNLOAD_UNAVAILABLE, 503)로 변환.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

from redis.exceptions import RedisError

from src.core.cache import RedisService
from src.core.ids import generate_download_key
from src.domain.constants import (
    DEFAULT_DOWNLOAD_TTL_SECONDS,
    DOWNLOAD_KEY_PREFIX,
    DOWNLOAD_URL_PREFIX,
)
from src.domain.errors import AppError, ErrorCodes
from src.domain.schemas import ArtifactInfo, DownloadLink

logger = logging.getLogger(__name__)


def pointer_key(key: str) -> str:
    """download key → Redis 키."""
    return f"{DOWNLOAD_KEY_PREFIX}{key}"


def download_url(key: str) -> str:
    return f"{DOWNLOAD_URL_PREFIX}{key}"


@contextmanager
def _redis_errors(operation: str, key: str) -> Iterator[None]:
    try:
        yield
    except (RedisError, OSError) as e:
        logger.error(f"Redis unavailable during download {operation} '{key}': {e}")
        raise AppError(ErrorCodes.DOWNLOAD_UNAVAILABLE, operation=operation) from e


class DownloadService:
    """
    다운로드 포인터 관리.

    Usage:
        downloads = DownloadService(redis_service, ttl_seconds=3600)
        link = await downloads.register(path, "csv", record_count=10)
        info = await downloads.claim(link.key)  # 두 번째 claim은 None
    """

    def __init__(self, cache: RedisService, ttl_seconds: int = DEFAULT_DOWNLOAD_TTL_SECONDS):
        self.cache = cache
        self.ttl_seconds = ttl_seconds

    async def register(
        self,
        file_path: Path,
        artifact_type: str,
        record_count: int = 0,
        generated_at: str | None = None,
    ) -> DownloadLink:
        """
        파일을 다운로드 링크로 등록.

        Args:
            file_path: 디스크에 존재하는 파일
            artifact_type: csv / pdf
            record_count: 레코드 수 (X-Record-Count 헤더)
            generated_at: 생성 시각 ISO 8601 (None이면 현재)

        Returns:
            DownloadLink

        Raises:
            AppError: DOWNLOAD_UNAVAILABLE (Redis 실패)
        """
        key = generate_download_key()
        info = ArtifactInfo(
            file_path=str(file_path),
            filename=file_path.name,
            type=artifact_type,
            generated_at=generated_at or datetime.now(UTC).isoformat(),
            record_count=record_count,
        )
        with _redis_errors("register", key):
            await self.cache.set_json(pointer_key(key), info.to_dict(), ttl=self.ttl_seconds)
        logger.info(
            f"Download registered: {info.filename} "
            f"({record_count} records, ttl={self.ttl_seconds}s)"
        )

        return DownloadLink(
            key=key,
            url=download_url(key),
            filename=info.filename,
            expires_in=self.ttl_seconds,
            record_count=record_count,
        )

    async def get_info(self, key: str) -> ArtifactInfo | None:
        """포인터 조회 (소비하지 않음)."""
        with _redis_errors("info", key):
            data = await self.cache.get_json(pointer_key(key))
        return self._to_info(key, data)

    async def claim(self, key: str) -> ArtifactInfo | None:
        """
        포인터를 원자적으로 가져가며 삭제.

        동시 요청이 와도 ArtifactInfo를 받는 쪽은 하나뿐.
        """
        with _redis_errors("claim", key):
            data = await self.cache.pop_json(pointer_key(key))
        info = self._to_info(key, data)
        if info is not None:
            logger.info(f"Download claimed: {info.filename}")
        return info

    def discard(self, info: ArtifactInfo) -> None:
        """전송이 끝난 파일 삭제. 이미 없으면 무시."""
        path = Path(info.file_path)
        try:
            path.unlink(missing_ok=True)
            logger.info(f"Download file removed: {info.filename}")
        except OSError as e:
            logger.error(f"Failed to remove download file {info.filename}: {e}")

    @staticmethod
    def _to_info(key: str, data: object) -> ArtifactInfo | None:
        if not isinstance(data, dict):
            return None
        try:
            return ArtifactInfo.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Malformed download pointer '{key}': {e}")
            return None
