"""
Core layer: 인프라 기반 모듈.

역할:
- database: SQLAlchemy 엔진/세션
- cache: Redis 래퍼 (다운로드 포인터, 쿼리 캐시)
- ids: 다운로드 키, 파일명 생성
- logging: 프로세스 로깅 + ai_logs 기록
"""

from .cache import RedisService, create_redis_client
from .database import create_db_engine, create_session_factory, get_db, init_db
from .ids import (
    generate_download_key,
    generate_export_filename,
    generate_stored_filename,
    sanitize_filename,
)
from .logging import complete_ai_log, create_ai_log, save_ai_log, setup_logging

__all__ = [
    # cache
    "RedisService",
    "create_redis_client",
    # database
    "create_db_engine",
    "create_session_factory",
    "get_db",
    "init_db",
    # ids
    "generate_download_key",
    "generate_export_filename",
    "generate_stored_filename",
    "sanitize_filename",
    # logging
    "setup_logging",
    "create_ai_log",
    "complete_ai_log",
    "save_ai_log",
]
