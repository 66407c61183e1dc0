"""Database engine, sessions and table creation for run history and key storage."""
from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import URL, make_url
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent


class Base(DeclarativeBase):
    """Base declarative class for SQLAlchemy models."""


def _resolve_database_url(raw: str) -> tuple[URL, dict[str, Any]]:
    """Anchor relative SQLite paths at the project root and create their directory."""

    url = make_url(raw)
    connect_args: dict[str, Any] = {}
    if not url.drivername.startswith("sqlite"):
        return url, connect_args

    connect_args["check_same_thread"] = False
    database = url.database
    if not database or database == ":memory:":
        return url, connect_args

    if database.startswith("file:"):
        database = database.replace("file:", "", 1)
    path = Path(database).expanduser()
    if not path.is_absolute():
        path = PROJECT_ROOT / path
    path = path.resolve(strict=False)
    path.parent.mkdir(parents=True, exist_ok=True)
    return url.set(database=path.as_posix()), connect_args


DATABASE_URL, _connect_args = _resolve_database_url(
    os.getenv("DATABASE_URL", "sqlite:///./data/adgrouper.db")
)

engine = create_engine(DATABASE_URL, connect_args=_connect_args)

if DATABASE_URL.drivername.startswith("sqlite"):

    @event.listens_for(engine, "connect")
    def _enable_sqlite_foreign_keys(dbapi_connection, _record) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, class_=Session)


def init_db() -> None:
    """Create any missing tables."""
    # Import models within the function to avoid circular imports.
    from . import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info("Database ready at %s", DATABASE_URL.render_as_string(hide_password=True))


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """Provide a transactional scope around a series of operations."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_session() -> Generator[Session, None, None]:
    """FastAPI dependency that yields a DB session."""
    with session_scope() as session:
        yield session
