import os

# must be set before survey360 settings are imported
os.environ["DATABASE_URL"] = os.getenv("TEST_DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ["REMINDER_ENABLED"] = "false"
os.environ["FRONTEND_URL"] = "https://app.survey360.test"

import pytest

import survey360.models  # noqa: F401
from survey360.core.email import get_email_sender
from survey360.db.base import Base
from survey360.db.session import SessionLocal, engine, get_db
from survey360.main import app
from tests.helpers import RecordingSender


@pytest.fixture()
def db_session():
    """
    Fresh schema per test. The engine shares a single in-memory connection,
    so the app and the test see the same data.
    """
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def override_get_db(db_session):
    def _get_db_override():
        yield db_session

    app.dependency_overrides[get_db] = _get_db_override
    yield
    app.dependency_overrides.clear()


@pytest.fixture()
def outbox():
    sender = RecordingSender()
    app.dependency_overrides[get_email_sender] = lambda: sender
    return sender
