"""
test_cache.py - RedisService 테스트

DoD:
- JSON 저장/조회, TTL 전달
- pop_json은 한 번만 값을 돌려줌 (GETDEL)
- cache_query read-through
- 리포트 키는 필터 순서와 무관
"""

import asyncio
import base64
import json

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from src.core.cache import RedisService

# =============================================================================
# 기본 연산 테스트
# =============================================================================


class TestRedisServiceBasics:
    """get/set/delete/exists 테스트."""

    @pytest.mark.asyncio
    async def test_set_with_ttl(self, redis_service, fake_redis):
        await redis_service.set("k", "v", ttl=60)

        assert await redis_service.get("k") == "v"
        assert fake_redis.ttls["k"] == 60

    @pytest.mark.asyncio
    async def test_set_without_ttl(self, redis_service, fake_redis):
        await redis_service.set("k", "v")

        assert "k" not in fake_redis.ttls

    @pytest.mark.asyncio
    async def test_delete_reports_removal(self, redis_service):
        await redis_service.set("k", "v")

        assert await redis_service.delete("k") is True
        assert await redis_service.delete("k") is False
        assert await redis_service.exists("k") is False


# =============================================================================
# JSON 테스트
# =============================================================================


class TestRedisServiceJson:
    """set_json/get_json/pop_json 테스트."""

    @pytest.mark.asyncio
    async def test_roundtrip_keeps_unicode(self, redis_service, fake_redis):
        await redis_service.set_json("download:abc", {"filename": "relatório.csv"}, ttl=3600)

        assert "relatório" in fake_redis.data["download:abc"]
        assert await redis_service.get_json("download:abc") == {"filename": "relatório.csv"}

    @pytest.mark.asyncio
    async def test_missing_key(self, redis_service):
        assert await redis_service.get_json("nope") is None

    @pytest.mark.asyncio
    async def test_invalid_json_returns_none(self, redis_service, fake_redis):
        fake_redis.data["broken"] = "{not json"

        assert await redis_service.get_json("broken") is None

    @pytest.mark.asyncio
    async def test_pop_json_only_once(self, redis_service):
        """두 번째 pop은 None."""
        await redis_service.set_json("download:k1", {"a": 1})

        assert await redis_service.pop_json("download:k1") == {"a": 1}
        assert await redis_service.pop_json("download:k1") is None


# =============================================================================
# cache_query 테스트
# =============================================================================


class TestCacheQuery:
    """cache_query read-through 테스트."""

    @pytest.mark.asyncio
    async def test_miss_then_hit(self, redis_service, fake_redis):
        calls = []

        async def load():
            calls.append(1)
            return {"totalUsers": 3}

        first = await redis_service.cache_query("stats", load, ttl=300)
        second = await redis_service.cache_query("stats", load, ttl=300)

        assert first == second == {"totalUsers": 3}
        assert len(calls) == 1
        assert fake_redis.ttls["stats"] == 300


# =============================================================================
# generate_report_key 테스트
# =============================================================================


class TestGenerateReportKey:
    """generate_report_key 테스트."""

    def test_without_filters(self):
        assert RedisService.generate_report_key("users") == "report:users"

    def test_with_filters_is_order_independent(self):
        a = RedisService.generate_report_key("users", {"b": 2, "a": 1})
        b = RedisService.generate_report_key("users", {"a": 1, "b": 2})

        assert a == b
        encoded = a.split(":", 2)[2]
        assert base64.b64decode(encoded).decode("utf-8") == "a:1|b:2"


# =============================================================================
# ping/close 테스트
# =============================================================================


class TestConnection:
    """ping/close 테스트."""

    @pytest.mark.asyncio
    async def test_ping_ok(self, redis_service):
        assert await redis_service.ping() is True

    @pytest.mark.asyncio
    async def test_ping_failure_returns_false(self, fake_redis):
        async def broken_ping():
            raise RedisConnectionError("connection refused")

        fake_redis.ping = broken_ping

        assert await RedisService(fake_redis).ping() is False

    @pytest.mark.asyncio
    async def test_close(self, redis_service, fake_redis):
        await redis_service.close()

        assert fake_redis.closed is True


def test_stored_value_is_plain_json(fake_redis):
    """다른 프로세스(정리 스크립트)도 읽을 수 있는 평문 JSON."""
    asyncio.run(RedisService(fake_redis).set_json("download:x", {"filePath": "/tmp/a.csv"}))

    assert json.loads(fake_redis.data["download:x"]) == {"filePath": "/tmp/a.csv"}
