"""
Shared fixtures: in-memory database, local storage under tmp_path and a
TestClient wired to both plus a mocked ASR service.
"""

from datetime import datetime
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from recitescore.db.base import Base
from recitescore.db.session import get_db
from recitescore.main import app
from recitescore.models.assignment import Assignment
from recitescore.services.asr_client import get_asr_client
from recitescore.services.storage import LocalStorage, get_storage
from tests.helpers import (
    BISMILLAH,
    BISMILLAH_PLAIN,
    REFERENCE_TZ,
    asr_text,
    make_asr_client,
)

TEST_DATABASE_URL = "sqlite:///:memory:"


@pytest.fixture(scope="function")
def db_session():
    """Create a test database session."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def storage(tmp_path):
    return LocalStorage(tmp_path / "storage", "http://testserver/media")


@pytest.fixture
def assignment(db_session):
    """Assignment with a reference text, due far in the future."""
    assignment = Assignment(
        title="Al-Fatiha 1",
        target_text=BISMILLAH,
        surah_name="Al-Fatiha",
        start_ayah=1,
        end_ayah=1,
        due_at=datetime(2099, 1, 1, 23, 59, tzinfo=REFERENCE_TZ),
    )
    db_session.add(assignment)
    db_session.commit()
    db_session.refresh(assignment)
    return assignment


@pytest.fixture
def asr():
    """ASR mock state; tests swap ``asr.handler`` and inspect ``asr.requests``."""
    return SimpleNamespace(handler=asr_text(BISMILLAH_PLAIN), requests=[])


@pytest.fixture
def client(db_session, storage, asr):
    """TestClient sharing the test session, storage and ASR mock."""

    def override_get_db():
        yield db_session

    def handle(request):
        asr.requests.append(request)
        return asr.handler(request)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_asr_client] = lambda: make_asr_client(handle)
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
