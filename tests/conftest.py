# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Generator, Iterator
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("CHAT_V2_ENABLED", "true")

from marketplace_chat.core.security import create_access_token
from marketplace_chat.db.session import Base
from marketplace_chat.db.session import get_db as app_get_session
from marketplace_chat.main import app as fastapi_app
from marketplace_chat.models import UserProfile
from marketplace_chat.services.notifier import Notifier, get_notifier
from marketplace_chat.services.rate_limit import (
    InMemoryTimestampStore,
    TypingRateLimiter,
    get_typing_limiter,
)
from tests.fakes import RecordingBroadcast

TEST_DB_URL = "sqlite://"


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def db_session(engine: Engine) -> Iterator[Session]:
    connection = engine.connect()
    transaction = connection.begin()
    SessionLocal = sessionmaker(
        bind=connection,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )
    session = SessionLocal()
    session.begin_nested()

    @event.listens_for(session, "after_transaction_end")
    def restart_savepoint(sess: Session, trans) -> None:  # pragma: no cover - SQLAlchemy internals
        if trans.nested and not getattr(trans._parent, "nested", False):
            session.begin_nested()

    try:
        yield session
    finally:
        event.remove(session, "after_transaction_end", restart_savepoint)
        session.close()

        if transaction.is_active:
            transaction.rollback()
        connection.close()

        # Ensure each test sees a clean database even if commits occurred.
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture(autouse=True)
def override_session_dependency(app: FastAPI, db_session: Session) -> Iterator[None]:
    def _get_session_override() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[app_get_session] = _get_session_override
    try:
        yield
    finally:
        app.dependency_overrides.pop(app_get_session, None)


@pytest.fixture()
def broadcast() -> RecordingBroadcast:
    return RecordingBroadcast()


@pytest.fixture(autouse=True)
def override_realtime_dependencies(app: FastAPI, broadcast: RecordingBroadcast) -> Iterator[None]:
    """Route notifications to the recording broadcast and give each test a fresh limiter."""
    notifier = Notifier(broadcast, push=None, timeout_seconds=1.0)  # type: ignore[arg-type]
    limiter = TypingRateLimiter(InMemoryTimestampStore())

    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_typing_limiter] = lambda: limiter
    try:
        yield
    finally:
        app.dependency_overrides.pop(get_notifier, None)
        app.dependency_overrides.pop(get_typing_limiter, None)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


def _make_profile(db: Session, **fields: Any) -> UserProfile:
    profile = UserProfile(**fields)
    db.add(profile)
    db.flush()
    db.refresh(profile)
    return profile


@pytest.fixture()
def seller(db_session: Session) -> UserProfile:
    """A seller on a plan that includes messaging."""
    return _make_profile(
        db_session,
        email="seller@example.com",
        company="Acme Tools",
        plan_code="plus_monthly",
    )


@pytest.fixture()
def buyer(db_session: Session) -> UserProfile:
    """A buyer with an account; buyers need no messaging plan."""
    return _make_profile(
        db_session,
        email="buyer@example.com",
        first_name="Bea",
        last_name="Buyer",
    )


@pytest.fixture()
def other_user(db_session: Session) -> UserProfile:
    """An unrelated user on the basic plan."""
    return _make_profile(db_session, email="other@example.com", full_name="Oscar Other")


def _headers(user: UserProfile) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture()
def seller_headers(seller: UserProfile) -> dict[str, str]:
    return _headers(seller)


@pytest.fixture()
def buyer_headers(buyer: UserProfile) -> dict[str, str]:
    return _headers(buyer)


@pytest.fixture()
def other_headers(other_user: UserProfile) -> dict[str, str]:
    return _headers(other_user)
