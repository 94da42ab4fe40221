#!/usr/bin/env python3
"""
purge_exports.py - 고아 export 파일 정리 스크립트

exports/ 디렉터리에서 다음 조건을 모두 만족하는 파일을 정리:
1. 보관 기간(retention) 초과 (기본: 다운로드 링크 TTL)
2. 살아 있는 download:* 포인터가 가리키지 않음

다운로드되지 않은 채 링크가 만료되면 파일만 남기 때문에 주기적으로 실행.

사용법:
    # 기본 실행 (dry-run)
    python scripts/purge_exports.py

    # 실제 삭제
    python scripts/purge_exports.py --execute

    # Redis 확인 없이 (보관 기간만 적용)
    python scripts/purge_exports.py --no-redis --execute

    # cron 예시 (매시 정각)
    0 * * * * cd /path/to/project && python scripts/purge_exports.py --execute >> /var/log/purge_exports.log 2>&1
"""

import argparse
import asyncio
import json
import logging
import os
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from redis.exceptions import RedisError

# 프로젝트 루트를 path에 추가
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.core.cache import create_redis_client  # noqa: E402
from src.domain.constants import (  # noqa: E402
    DEFAULT_DOWNLOAD_TTL_SECONDS,
    DEFAULT_EXPORTS_DIR,
    DOWNLOAD_KEY_PREFIX,
)

# 로깅 설정
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


@dataclass
class PurgeConfig:
    """정리 정책 설정."""
    exports_dir: Path
    retention_seconds: int = DEFAULT_DOWNLOAD_TTL_SECONDS
    redis_url: str = "redis://localhost:6379/0"


@dataclass
class PurgeResult:
    """Purge 결과."""
    scanned_files: int = 0
    referenced_files: int = 0
    recent_files: int = 0

    purged_files: int = 0
    purged_size_mb: float = 0.0

    errors: list[str] = field(default_factory=list)


def load_purge_config(config_path: Path, project_root: Path = PROJECT_ROOT) -> PurgeConfig:
    """
    default.yaml에서 정리 정책 로드 (파일이 없으면 기본값).

    REDIS_URL 환경변수가 있으면 설정 파일보다 우선 (앱 설정과 동일).
    """
    data: dict[str, Any] = {}
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

    exports_dir = Path(data.get("paths", {}).get("exports_dir", DEFAULT_EXPORTS_DIR))
    if not exports_dir.is_absolute():
        exports_dir = project_root / exports_dir

    return PurgeConfig(
        exports_dir=exports_dir,
        retention_seconds=int(
            data.get("downloads", {}).get("ttl_seconds", DEFAULT_DOWNLOAD_TTL_SECONDS)
        ),
        redis_url=(
            os.getenv("REDIS_URL")
            or data.get("redis", {}).get("url", "redis://localhost:6379/0")
        ),
    )


async def collect_referenced_paths(client: Any) -> set[Path]:
    """
    살아 있는 download:* 포인터가 가리키는 파일 경로 수집.

    Args:
        client: redis.asyncio 클라이언트 (decode_responses=True)
    """
    referenced: set[Path] = set()
    async for key in client.scan_iter(match=f"{DOWNLOAD_KEY_PREFIX}*"):
        raw = await client.get(key)
        if raw is None:
            continue  # 스캔 중 만료/소비됨
        try:
            file_path = json.loads(raw)["filePath"]
        except (json.JSONDecodeError, KeyError, TypeError):
            logger.warning(f"잘못된 포인터 무시: {key}")
            continue
        referenced.add(Path(file_path).resolve())
    return referenced


def purge_exports(
    exports_dir: Path,
    retention_seconds: int,
    referenced: set[Path],
    execute: bool,
    now: float | None = None,
) -> PurgeResult:
    """
    exports 디렉터리 정리.

    Args:
        exports_dir: 정리 대상 디렉터리
        retention_seconds: 이보다 오래된 파일만 대상
        referenced: 살아 있는 포인터가 가리키는 경로 (resolve된 값)
        execute: False면 dry-run
        now: 기준 시각 (epoch seconds, 테스트용)
    """
    result = PurgeResult()

    if not exports_dir.exists():
        logger.warning(f"exports 디렉터리 없음: {exports_dir}")
        return result

    cutoff = (now if now is not None else time.time()) - retention_seconds

    for path in sorted(exports_dir.iterdir()):
        if not path.is_file():
            continue
        result.scanned_files += 1

        if path.resolve() in referenced:
            result.referenced_files += 1
            continue

        stat = path.stat()
        if stat.st_mtime >= cutoff:
            result.recent_files += 1
            continue

        size_mb = stat.st_size / (1024 * 1024)
        if not execute:
            logger.info(f"[DRY-RUN] 삭제 예정: {path.name} ({stat.st_size / 1024:.1f} KB)")
            result.purged_files += 1
            result.purged_size_mb += size_mb
            continue

        try:
            path.unlink()
            result.purged_files += 1
            result.purged_size_mb += size_mb
            logger.info(f"삭제됨: {path.name} ({stat.st_size / 1024:.1f} KB)")
        except OSError as e:
            result.errors.append(f"삭제 실패 {path}: {e}")
            logger.error(f"삭제 실패 {path}: {e}")

    return result


async def _load_referenced(redis_url: str) -> set[Path]:
    client = create_redis_client(redis_url)
    try:
        return await collect_referenced_paths(client)
    finally:
        await client.aclose()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="고아 export 파일 정리 스크립트",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--execute",
        action="store_true",
        help="실제 삭제 실행 (기본: dry-run)",
    )
    parser.add_argument(
        "--no-redis",
        action="store_true",
        help="download:* 포인터 확인 생략",
    )
    parser.add_argument(
        "--config",
        type=str,
        default="default.yaml",
        help="설정 파일 경로 (기본: default.yaml)",
    )
    parser.add_argument(
        "--exports-dir",
        type=str,
        help="exports 디렉터리 (기본: 설정의 paths.exports_dir)",
    )
    parser.add_argument(
        "--retention-seconds",
        type=int,
        help="보관 기간(초) (기본: downloads.ttl_seconds)",
    )

    args = parser.parse_args(argv)
    load_dotenv()

    config_path = Path(args.config)
    if not config_path.is_absolute():
        config_path = PROJECT_ROOT / config_path
    config = load_purge_config(config_path)

    if args.exports_dir:
        config.exports_dir = Path(args.exports_dir)
    if args.retention_seconds is not None:
        config.retention_seconds = args.retention_seconds

    logger.info(f"보관 정책: {config.retention_seconds}초, 대상: {config.exports_dir}")

    if not args.execute:
        logger.info("=" * 50)
        logger.info("DRY-RUN 모드 (실제 삭제 없음)")
        logger.info("실제 실행: --execute 옵션 추가")
        logger.info("=" * 50)

    referenced: set[Path] = set()
    if not args.no_redis:
        try:
            referenced = asyncio.run(_load_referenced(config.redis_url))
        except (RedisError, OSError) as e:
            # 포인터를 확인할 수 없으면 살아 있는 링크의 파일을 지울 수 있음
            logger.error(f"Redis 연결 실패, 중단: {e} (포인터 확인 생략: --no-redis)")
            return 1
        logger.info(f"살아 있는 다운로드 링크: {len(referenced)}개")

    result = purge_exports(
        exports_dir=config.exports_dir,
        retention_seconds=config.retention_seconds,
        referenced=referenced,
        execute=args.execute,
    )

    # 결과 출력
    logger.info("=" * 50)
    logger.info("Purge 결과:")
    logger.info(
        f"  스캔: {result.scanned_files} files "
        f"(링크 있음 {result.referenced_files}, 보관 기간 내 {result.recent_files})"
    )
    logger.info(f"  정리: {result.purged_files} files ({result.purged_size_mb:.2f} MB)")
    if result.errors:
        logger.warning(f"  에러: {len(result.errors)}개")
        for err in result.errors[:5]:  # 최대 5개만 출력
            logger.warning(f"    - {err}")

    return 0 if not result.errors else 1


if __name__ == "__main__":
    sys.exit(main())
