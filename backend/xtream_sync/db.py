"""Database helpers for the change history."""
from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, SQLModel, create_engine

from . import models  # noqa: F401  (registers tables on SQLModel.metadata)
from .errors import HistoryError
from .utils.paths import ensure_directory


def _ensure_sqlite_path(database_url: str) -> None:
    """Create parent directories when using a SQLite URL."""

    if database_url.startswith("sqlite:///"):
        path_part = database_url.removeprefix("sqlite:///").split("?")[0]
        if path_part:
            ensure_directory(Path(path_part).parent)


def create_history_engine(database_url: str, *, echo: bool = False) -> Engine:
    """Create a SQLModel engine and make sure the history tables exist."""

    _ensure_sqlite_path(database_url)
    connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    try:
        engine = create_engine(database_url, echo=echo, connect_args=connect_args)
        SQLModel.metadata.create_all(engine)
    except SQLAlchemyError as exc:
        raise HistoryError(f"Cannot open history database {database_url}: {exc}") from exc
    return engine


@contextmanager
def session_scope(engine: Engine) -> Iterator[Session]:
    """Yield a SQLModel session that commits on success and closes automatically."""

    session = Session(engine)
    try:
        yield session
        session.commit()
    except Exception:  # pragma: no cover - re-raise after rollback
        session.rollback()
        raise
    finally:
        session.close()
