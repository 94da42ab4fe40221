"""
test_database.py - 엔진/세션 설정 테스트
"""

from sqlalchemy import inspect, select
from sqlalchemy.pool import StaticPool

from src.core.database import create_db_engine, create_session_factory, init_db
from src.domain.models import Conversation, Message


class TestCreateDbEngine:
    """create_db_engine 함수 테스트."""

    def test_memory_uses_static_pool(self):
        engine = create_db_engine("sqlite://")

        assert isinstance(engine.pool, StaticPool)

    def test_file_db_creates_parent_dir(self, tmp_path):
        db_path = tmp_path / "nested" / "dir" / "ikated.db"

        engine = create_db_engine(f"sqlite:///{db_path}")
        init_db(engine)

        assert db_path.parent.is_dir()
        assert db_path.exists()
        engine.dispose()


class TestInitDb:
    """init_db 함수 테스트."""

    def test_creates_all_tables(self):
        engine = create_db_engine("sqlite://")

        init_db(engine)

        tables = set(inspect(engine).get_table_names())
        assert {"users", "conversations", "messages", "documents", "forms", "ai_logs"} <= tables

    def test_idempotent(self):
        engine = create_db_engine("sqlite://")

        init_db(engine)
        init_db(engine)


class TestSessionFactory:
    """create_session_factory 테스트."""

    def test_attributes_available_after_commit(self):
        """expire_on_commit=False: commit 후에도 재조회 없이 접근."""
        engine = create_db_engine("sqlite://")
        init_db(engine)
        session_factory = create_session_factory(engine)

        with session_factory() as session:
            conversation = Conversation(title="Teste", metadata_={"model": "m"})
            session.add(conversation)
            session.commit()

            assert conversation.id
            assert conversation.metadata_ == {"model": "m"}
            assert conversation.created_at is not None

    def test_messages_relationship_ordered(self, db_session):
        conversation = Conversation(title="Teste")
        db_session.add(conversation)
        db_session.commit()
        db_session.add(Message(conversation_id=conversation.id, role="user", content="oi"))
        db_session.commit()
        db_session.add(Message(conversation_id=conversation.id, role="assistant", content="olá"))
        db_session.commit()

        db_session.refresh(conversation)

        assert [m.role for m in conversation.messages] == ["user", "assistant"]
        assert len(db_session.scalars(select(Message)).all()) == 2
