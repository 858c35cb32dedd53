"""Shared pytest fixtures for Matcha tests."""
import itertools
import os
from datetime import date

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from matcha.database import Base
from matcha.models import User
from matcha.services.fame_service import FameService
from matcha.services.match_engine import MatchEngine
from matcha.services.message_service import MessageService
from matcha.services.notification_service import NotificationService
from matcha.services.profile_view_service import ProfileViewService
from matcha.services.relationship_service import RelationshipService
from matcha.services.user_service import UserService


class RecordingTransport:
    """Notification transport that remembers what it was asked to push."""

    def __init__(self):
        self.events = []

    async def emit(self, user_id, type, message):
        self.events.append((user_id, type, message))

    def for_user(self, user_id):
        return [(t, m) for uid, t, m in self.events if uid == user_id]


@pytest_asyncio.fixture
async def engine():
    """Fresh in-memory database per test, foreign keys on, SAVEPOINT capable."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Let SQLAlchemy emit BEGIN itself so nested SAVEPOINTs behave.
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_user(db):
    """Factory inserting a verified, active user; keyword overrides any column."""
    counter = itertools.count(1)

    async def _make(**overrides) -> User:
        n = next(counter)
        fields = {
            "username": f"user{n}",
            "email": f"user{n}@example.com",
            "first_name": "Test",
            "last_name": f"User{n}",
            "birth_date": date(1995, 6, 15),
            "gender": "female",
            "sexual_preference": "both",
            "is_email_verified": True,
        }
        fields.update(overrides)
        user = User(**fields)
        db.add(user)
        await db.commit()
        return user

    return _make


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def notifications(transport):
    return NotificationService(transport=transport)


@pytest.fixture
def match_engine():
    return MatchEngine()


@pytest.fixture
def fame():
    return FameService()


@pytest.fixture
def ledger(notifications, match_engine, fame):
    return RelationshipService(notifications=notifications, match_engine=match_engine, fame=fame)


@pytest.fixture
def messages(notifications, match_engine):
    return MessageService(notifications=notifications, match_engine=match_engine)


@pytest.fixture
def views(notifications, fame):
    return ProfileViewService(notifications=notifications, fame=fame, cooldown_hours=24)


@pytest.fixture
def users():
    return UserService()
