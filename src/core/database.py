"""
SQLAlchemy 2.x 엔진/세션 설정.

- 기본 URL: SQLite 파일 (운영은 PostgreSQL URL을 DATABASE_URL로 주입)
- 스키마: create_all만 사용 (마이그레이션 도구 없음)
"""

import logging
from collections.abc import Iterator
from pathlib import Path

from fastapi import Request
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from src.domain.models import Base

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///./data/ikated.db"


def create_db_engine(url: str = DEFAULT_DATABASE_URL, echo: bool = False) -> Engine:
    """
    URL에 맞는 엔진 생성.

    SQLite:
    - 요청 스레드가 달라도 같은 커넥션 사용 가능하도록 check_same_thread=False
    - :memory: 는 StaticPool로 단일 커넥션 공유 (테스트용)
    - 파일 DB의 상위 디렉터리는 자동 생성
    """
    if url.startswith("sqlite"):
        if ":memory:" in url or url in ("sqlite://", "sqlite:///"):
            return create_engine(
                url,
                echo=echo,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )

        db_path = url.split("///", 1)[-1]
        if db_path:
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        return create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False},
        )

    return create_engine(url, echo=echo, pool_pre_ping=True)


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Session factory (commit 후에도 속성 접근 가능)."""
    return sessionmaker(bind=engine, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """테이블 생성 (이미 있으면 무시)."""
    Base.metadata.create_all(engine)
    logger.info(f"Database initialized: {engine.url.render_as_string(hide_password=True)}")


def get_db(request: Request) -> Iterator[Session]:
    """
    FastAPI 요청 단위 세션 dependency.

    Usage:
        def endpoint(db: Session = Depends(get_db)):
            ...
    """
    session_factory: sessionmaker[Session] = request.app.state.session_factory
    with session_factory() as session:
        yield session
