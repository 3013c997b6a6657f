from pathlib import Path
import os
import pytest

# Point the app at a throw-away SQLite file before `protoshare` is imported.
TEST_DB = Path(__file__).resolve().parent / "test_app.db"
if TEST_DB.exists():
    TEST_DB.unlink()
os.environ["DATABASE_URL"] = f"sqlite:///{TEST_DB}"
os.environ["TRACK_VIEW_RATE_PER_MIN"] = "1000"
os.environ.setdefault("JWT_SECRET", "test-secret")

from sqlmodel import SQLModel, Session  # noqa: E402

from protoshare.database import engine, create_db_and_tables  # noqa: E402
from protoshare import models, services  # noqa: E402


@pytest.fixture(autouse=True)
def fresh_db():
    """Recreate every table so each test starts from an empty database."""
    SQLModel.metadata.drop_all(engine)
    create_db_and_tables()
    yield


@pytest.fixture
def session():
    with Session(engine) as s:
        yield s


@pytest.fixture
def user(session):
    u = models.User(email="designer@example.com", name="Designer")
    session.add(u)
    session.commit()
    session.refresh(u)
    return u


@pytest.fixture
def auth_headers(user):
    token = services.AuthService.create_session_token(user)
    return {"Authorization": f"Bearer {token}"}
