# tests/conftest.py

import os

# Settings are read at import time; configure before importing the app
os.environ.setdefault("SESSION_SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("RESEND_API_KEY", "")

from datetime import timedelta
from unittest.mock import MagicMock

import fakeredis
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from sessionhub.auth import RequestContext
from sessionhub.clock import utcnow
from sessionhub.database import create_db_engine, get_db, init_db
from sessionhub.dependencies import get_mailer, get_token_store
from sessionhub.directory import ActorDirectory
from sessionhub.email import EmailSender
from sessionhub.main import app
from sessionhub.models import Session as SessionModel
from sessionhub.tokens import ExpiringTokenStore

PASSWORD = "longenough1"


# --- Relational store: a fresh SQLite file per test ---
@pytest.fixture(scope="function")
def engine(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'test.db'}")
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


# --- Token store and email collaborators ---
@pytest.fixture(scope="function")
def redis_client():
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture(scope="function")
def token_store(redis_client):
    return ExpiringTokenStore(redis_client)


@pytest.fixture(scope="function")
def mailer():
    sender = MagicMock(spec=EmailSender)
    sender.send.return_value = True
    return sender


@pytest.fixture(scope="function")
def directory(db, token_store, mailer):
    return ActorDirectory(db, token_store, mailer)


# --- Factories ---
@pytest.fixture(scope="function")
def create_actor(directory, db):
    """Sign up an actor and return it."""

    def _create(name, email=None, password=PASSWORD):
        outcome = directory.signup(RequestContext(db), name, email or f"{name.lower()}@x.com", password)
        assert outcome, outcome.errors
        return outcome.value

    return _create


@pytest.fixture(scope="function")
def create_session(db):
    """
    Insert a session directly so tests can place it anywhere in time.
    """

    def _create(creator, *, limit=5, starts_in=timedelta(hours=1), lasts=timedelta(hours=1),
                cancelled=False, title="Standup", voice_channel_url=None):
        start = utcnow() + starts_in
        session = SessionModel(
            title=title,
            body="",
            start=start,
            end=start + lasts,
            attendee_limit=limit,
            creator_id=creator.id,
            is_cancelled=cancelled,
            voice_channel_url=voice_channel_url,
        )
        db.add(session)
        db.commit()
        db.refresh(session)
        return session

    return _create


# --- Test Client ---
@pytest.fixture(scope="function")
def client(session_factory, token_store, mailer):
    """
    TestClient wired to the per-test database, fake Redis and mock mailer.
    """

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_token_store] = lambda: token_store
    app.dependency_overrides[get_mailer] = lambda: mailer

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
