# tests/conftest.py

import os
import tempfile

# Settings are read at import time, so configure the environment first.
_TEST_DIR = tempfile.mkdtemp(prefix="checkin-tests-")
os.environ["ENV"] = "local"
os.environ["DATABASE_URL_LOCAL"] = f"sqlite:///{os.path.join(_TEST_DIR, 'checkin_test.db')}"
os.environ["QR_SIGNING_SECRET"] = "test-signing-secret"
os.environ["JWT_SECRET"] = "test-jwt-secret"
os.environ["RATE_LIMIT_ENABLED"] = "false"

import pytest  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy_utils import create_database, database_exists, drop_database  # noqa: E402
from starlette.testclient import TestClient  # noqa: E402

from checkin_service.api import deps  # noqa: E402
from checkin_service.core.config import settings  # noqa: E402
from checkin_service.db.base_class import Base  # noqa: E402
from checkin_service.db.session import make_engine  # noqa: E402
from checkin_service.main import app  # noqa: E402
from checkin_service.models.booking import Booking  # noqa: E402

engine = make_engine(settings.DATABASE_URL)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="session", autouse=True)
def setup_test_database():
    if database_exists(engine.url):
        drop_database(engine.url)
    create_database(engine.url)
    Base.metadata.create_all(bind=engine)
    yield
    engine.dispose()
    drop_database(engine.url)


@pytest.fixture(scope="function")
def session_factory():
    """Session factory on the test database; bookings are wiped afterwards."""
    yield TestingSessionLocal
    with TestingSessionLocal() as cleanup:
        cleanup.query(Booking).delete()
        cleanup.commit()


@pytest.fixture(scope="function")
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


# --- Mock Dependencies Setup ---
class MockTokenPayload:
    def __init__(self, sub="staff_123", org_id="org_abc"):
        self.sub = sub
        self.org_id = org_id


def override_get_current_user():
    return MockTokenPayload()


@pytest.fixture(scope="function")
def test_client(db_session):
    """TestClient on the live test database with staff auth mocked."""

    def override_get_db():
        yield db_session

    app.dependency_overrides[deps.get_db] = override_get_db
    app.dependency_overrides[deps.get_current_user] = override_get_current_user

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()
