"""Database engine and helpers.

This module configures the SQLModel/SQLAlchemy engine from
`settings.DATABASE_URL` (a local SQLite file `app.db` next to the package
by default) and provides the session dependency used by the API, the
scripts and the tests.
"""

from sqlmodel import SQLModel, create_engine, Session

from .config import settings


def _connect_args(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


engine = create_engine(settings.DATABASE_URL, echo=False, connect_args=_connect_args(settings.DATABASE_URL))


def create_db_and_tables():
    """Create any missing tables for the registered models.

    Used at app startup, by the scripts and by the tests. Importing
    `models` here registers every table on the metadata.
    """
    from . import models  # noqa: F401

    SQLModel.metadata.create_all(engine)


def get_session():
    """Request-scoped `Session` dependency; closed when the request ends."""
    with Session(engine) as session:
        yield session
