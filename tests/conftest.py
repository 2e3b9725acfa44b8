import os

# Configure settings BEFORE importing the app so the module-level engine and
# services never reach for Postgres, OpenAI or Telegram
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["LOG_FILE"] = ""
os.environ["OPENAI_API_KEY"] = ""
os.environ["TELEGRAM_BOT_TOKEN"] = ""

from datetime import datetime, UTC
from decimal import Decimal
from typing import AsyncGenerator

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from main import app
from app.core.database import get_db, Base
from app.models.lead import Lead, LeadSource, LeadStatus
from app.models.sequence import Sequence, SequenceStep, TriggerType

# Use an in-memory SQLite database for testing
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
async def engine():
    """Fresh in-memory database per test."""
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite's own transaction handling breaks SAVEPOINT; let SQLAlchemy emit BEGIN
    @event.listens_for(test_engine.sync_engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(test_engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


# ──────────────────────────────────────────────
# Factories
# ──────────────────────────────────────────────

@pytest.fixture
def make_lead(db_session):
    async def _make(**overrides) -> Lead:
        values = {
            "name": "Ana Lopez",
            "email": "ana@example.com",
            "phone": "+525512345678",
            "source": LeadSource.WEBSITE,
            "status": LeadStatus.NEW,
            "score": 0,
            "budget_max": Decimal("300000"),
            "preferences": {},
            "tags": [],
            "last_interaction_at": datetime.now(UTC),
        }
        values.update(overrides)
        lead = Lead(**values)
        db_session.add(lead)
        await db_session.flush()
        return lead

    return _make


@pytest.fixture
def make_sequence(db_session):
    async def _make(steps=None, **overrides) -> tuple[Sequence, list[SequenceStep]]:
        """steps: list of dicts with action_type and optional order/config/delay/is_active."""
        values = {
            "name": "Nurture",
            "trigger_type": TriggerType.MANUAL,
            "trigger_conditions": None,
            "is_active": True,
            "priority": 0,
        }
        values.update(overrides)
        sequence = Sequence(**values)
        db_session.add(sequence)
        await db_session.flush()

        created = []
        for index, params in enumerate(steps or [{"action_type": "wait"}], start=1):
            step = SequenceStep(
                sequence_id=sequence.id,
                order=params.get("order", index),
                action_type=params["action_type"],
                action_config=params.get("action_config", {}),
                delay_hours=params.get("delay_hours", 0),
                is_active=params.get("is_active", True),
            )
            db_session.add(step)
            created.append(step)
        await db_session.flush()
        return sequence, created

    return _make
