"""
Redis key-value 저장소.

용도:
- 다운로드 포인터 (download:{key}, TTL 만료 시 자동 삭제)
- 리포트/쿼리 결과 캐시 (report:{type}[:filters])

클라이언트는 redis.asyncio (decode_responses=True) 기준.
테스트에서는 동일 인터페이스의 fake 클라이언트를 주입한다.
"""

import base64
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import redis.asyncio as redis

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_REDIS_URL = "redis://localhost:6379/0"
DEFAULT_CACHE_TTL_SECONDS = 300


def create_redis_client(url: str = DEFAULT_REDIS_URL) -> redis.Redis:
    """URL로 async Redis 클라이언트 생성 (연결은 첫 명령 시)."""
    return redis.Redis.from_url(url, decode_responses=True)


class RedisService:
    """
    Redis 래퍼.

    Usage:
        cache = RedisService(create_redis_client(url))
        await cache.set_json("download:abc", {...}, ttl=3600)
        info = await cache.pop_json("download:abc")
    """

    def __init__(self, client: Any):
        self.client = client

    # =========================================================================
    # Plain values
    # =========================================================================

    async def get(self, key: str) -> str | None:
        value = await self.client.get(key)
        return value if value is None else str(value)

    async def set(self, key: str, value: str, ttl: int | None = None) -> None:
        """값 저장. ttl(초)이 있으면 네이티브 만료 설정."""
        if ttl:
            await self.client.set(key, value, ex=ttl)
        else:
            await self.client.set(key, value)

    async def delete(self, key: str) -> bool:
        """키 삭제. 실제로 삭제됐으면 True."""
        removed = await self.client.delete(key)
        return bool(removed)

    async def exists(self, key: str) -> bool:
        return bool(await self.client.exists(key))

    # =========================================================================
    # JSON values
    # =========================================================================

    async def set_json(self, key: str, value: Any, ttl: int | None = None) -> None:
        await self.set(key, json.dumps(value, ensure_ascii=False), ttl=ttl)

    async def get_json(self, key: str) -> Any | None:
        """JSON 값 조회. 키 없음/파싱 실패 시 None."""
        raw = await self.get(key)
        return self._decode(key, raw)

    async def pop_json(self, key: str) -> Any | None:
        """
        원자적 조회 + 삭제 (GETDEL).

        동시에 같은 키를 pop해도 값을 받는 쪽은 하나뿐.
        """
        raw = await self.client.getdel(key)
        return self._decode(key, raw)

    def _decode(self, key: str, raw: str | None) -> Any | None:
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON stored under '{key}': {e}")
            return None

    # =========================================================================
    # Query cache
    # =========================================================================

    async def cache_query(
        self,
        key: str,
        fn: Callable[[], Awaitable[T]],
        ttl: int = DEFAULT_CACHE_TTL_SECONDS,
    ) -> T:
        """
        Read-through 캐시.

        캐시 hit → 저장된 값, miss → fn() 실행 후 저장.
        """
        cached = await self.get_json(key)
        if cached is not None:
            logger.debug(f"Cache hit: {key}")
            return cached  # type: ignore[no-any-return]

        logger.debug(f"Cache miss: {key}")
        result = await fn()
        await self.set_json(key, result, ttl=ttl)
        return result

    @staticmethod
    def generate_report_key(report_type: str, filters: dict[str, Any] | None = None) -> str:
        """
        리포트 캐시 키.

        포맷: report:{type} 또는 report:{type}:{base64(k:v|k:v)}
        필터는 키 순으로 정렬하므로 순서가 달라도 같은 키.
        """
        base = f"report:{report_type}"
        if not filters:
            return base

        pairs = "|".join(f"{k}:{filters[k]}" for k in sorted(filters))
        encoded = base64.b64encode(pairs.encode("utf-8")).decode("ascii")
        return f"{base}:{encoded}"

    # =========================================================================
    # Connection
    # =========================================================================

    async def ping(self) -> bool:
        """연결 확인. 실패 시 False (예외 전파 안 함)."""
        try:
            return bool(await self.client.ping())
        except (redis.RedisError, OSError) as e:
            logger.warning(f"Redis ping failed: {e}")
            return False

    async def close(self) -> None:
        await self.client.aclose()
