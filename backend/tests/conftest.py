"""Shared fixtures: an in-memory database per test and the app wired to it."""
import os
import shutil
import tempfile

# Settings are read at import time, so point them at throwaway locations first
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="zenyukti-uploads-"))
os.environ.setdefault("SECRET_KEY", "testing_secret")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from zenyukti.core.database import Base, get_db
from zenyukti.core.mail import mailer
from zenyukti.models.user import User  # noqa: F401  registers the users table
from zenyukti.main import app as fastapi_app
from zenyukti.storage.local_storage import storage

# 1x1 transparent PNG
PNG_BYTES = bytes.fromhex(
    "89504e470d0a1a0a0000000d4948445200000001000000010806000000"
    "1f15c4890000000d49444154789c6360000002000100e221bc330000000049454e44ae426082"
)


@pytest.fixture(autouse=True)
def clean_uploads():
    # User ids restart at 1 in every fresh database, so stored avatars must too
    yield
    shutil.rmtree(storage.upload_dir / "avatars", ignore_errors=True)


@pytest.fixture
def engine():
    # StaticPool keeps the single in-memory database alive across threads
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def app(session_factory):
    # See https://fastapi.tiangolo.com/advanced/testing-database
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    fastapi_app.dependency_overrides[get_db] = override_get_db
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def sent_resets(monkeypatch):
    """Capture password reset emails instead of sending them."""
    sent = []
    monkeypatch.setattr(mailer, "send_password_reset", lambda to, ticket: sent.append((to, ticket)))
    return sent


@pytest.fixture
def register(client):
    def _register(name="Ada", email="ada@x.com", password="Secret123"):
        resp = client.post(
            "/api/auth/register", json={"name": name, "email": email, "password": password}
        )
        assert resp.status_code == 201, resp.text
        return resp.json()["data"]

    return _register


def bearer(token):
    return {"Authorization": f"Bearer {token}"}
