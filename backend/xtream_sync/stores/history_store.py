"""Persistence helpers for entry change history."""
from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Iterator

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from ..db import session_scope
from ..errors import HistoryError
from ..models import CategoryRecord, ChannelHistoryRecord, ChannelRecord
from ..schemas import SnapshotDiff


ADDED = "added"
DELETED = "deleted"


@contextmanager
def _database_errors(action: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        raise HistoryError(f"Cannot {action}: {exc}") from exc


@dataclass(slots=True)
class HistoryEvent:
    """One recorded change for an entry."""

    kind: str
    category: str
    name: str
    change_type: str
    changed_at: datetime


class HistoryStore:
    """Record and query added/deleted events per entry name."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def record_group(self, kind: str, category: str, names: Iterable[str], diff: SnapshotDiff) -> int:
        """Record the changes of one group's diff and return the number of events written.

        Without a previous baseline every current name is recorded as added.
        """

        with _database_errors(f"record history for {kind}/{category}"), session_scope(self._engine) as session:
            category_record = _get_or_create_category(session, kind, category)
            written = 0
            if not diff.computed:
                for name in sorted(set(names)):
                    written += _mark(session, category_record, name, ADDED)
                return written
            for name in diff.added:
                written += _mark(session, category_record, name, ADDED)
            for name in diff.removed:
                written += _mark(session, category_record, name, DELETED)
            return written

    def last_change(self, kind: str, category: str, name: str) -> str:
        """Return the latest change type for an entry, or an empty string."""

        with _database_errors("read history"), Session(self._engine) as session:
            statement = (
                select(ChannelHistoryRecord.change_type)
                .join(ChannelRecord, ChannelRecord.id == ChannelHistoryRecord.channel_id)
                .join(CategoryRecord, CategoryRecord.id == ChannelRecord.category_id)
                .where(CategoryRecord.kind == kind)
                .where(CategoryRecord.name == category)
                .where(ChannelRecord.name == name)
                .order_by(ChannelHistoryRecord.changed_at.desc(), ChannelHistoryRecord.id.desc())
                .limit(1)
            )
            return session.exec(statement).first() or ""

    def history_for(self, name: str, *, limit: int = 100) -> list[HistoryEvent]:
        """Return the change timeline for every entry called ``name``."""

        statement = (
            select(ChannelHistoryRecord, ChannelRecord, CategoryRecord)
            .join(ChannelRecord, ChannelRecord.id == ChannelHistoryRecord.channel_id)
            .join(CategoryRecord, CategoryRecord.id == ChannelRecord.category_id)
            .where(ChannelRecord.name == name)
            .order_by(ChannelHistoryRecord.changed_at.asc(), ChannelHistoryRecord.id.asc())
            .limit(limit)
        )
        with _database_errors("read history"), Session(self._engine) as session:
            return [
                HistoryEvent(
                    kind=category.kind,
                    category=category.name,
                    name=channel.name,
                    change_type=event.change_type,
                    changed_at=event.changed_at,
                )
                for event, channel, category in session.exec(statement)
            ]

    def list_categories(self, kind: str | None = None) -> list[str]:
        """Return tracked category names ordered by name."""

        statement = select(CategoryRecord.name).order_by(CategoryRecord.name)
        if kind is not None:
            statement = statement.where(CategoryRecord.kind == kind)
        with _database_errors("read history categories"), Session(self._engine) as session:
            return list(session.exec(statement))


def _get_or_create_category(session: Session, kind: str, name: str) -> CategoryRecord:
    statement = select(CategoryRecord).where(CategoryRecord.kind == kind, CategoryRecord.name == name)
    record = session.exec(statement).first()
    if record is None:
        record = CategoryRecord(kind=kind, name=name)
        session.add(record)
        session.flush()
    return record


def _get_or_create_channel(session: Session, category: CategoryRecord, name: str) -> ChannelRecord:
    statement = select(ChannelRecord).where(
        ChannelRecord.category_id == category.id, ChannelRecord.name == name
    )
    record = session.exec(statement).first()
    if record is None:
        record = ChannelRecord(category_id=category.id, name=name)
        session.add(record)
        session.flush()
    return record


def _mark(session: Session, category: CategoryRecord, name: str, change_type: str) -> int:
    channel = _get_or_create_channel(session, category, name)
    statement = (
        select(ChannelHistoryRecord.change_type)
        .where(ChannelHistoryRecord.channel_id == channel.id)
        .order_by(ChannelHistoryRecord.changed_at.desc(), ChannelHistoryRecord.id.desc())
        .limit(1)
    )
    last = session.exec(statement).first() or ""
    if last == change_type or (change_type == DELETED and last != ADDED):
        return 0
    session.add(ChannelHistoryRecord(channel_id=channel.id, change_type=change_type))
    session.flush()
    return 1
