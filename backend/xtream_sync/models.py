"""Database models for the change history."""
from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CategoryRecord(SQLModel, table=True):
    """Category seen for a catalog class."""

    __tablename__ = "xtream_categories"
    __table_args__ = (UniqueConstraint("kind", "name"),)

    id: int | None = Field(default=None, primary_key=True)
    kind: str = Field(index=True)
    name: str = Field(index=True)
    added_at: datetime = Field(default_factory=_utcnow, nullable=False)


class ChannelRecord(SQLModel, table=True):
    """Entry name tracked inside a category."""

    __tablename__ = "xtream_channels"
    __table_args__ = (UniqueConstraint("category_id", "name"),)

    id: int | None = Field(default=None, primary_key=True)
    category_id: int = Field(foreign_key="xtream_categories.id", index=True)
    name: str = Field(index=True)


class ChannelHistoryRecord(SQLModel, table=True):
    """Added/deleted event for a tracked entry."""

    __tablename__ = "xtream_channel_history"

    id: int | None = Field(default=None, primary_key=True)
    channel_id: int = Field(foreign_key="xtream_channels.id", index=True)
    change_type: str = Field(index=True)
    changed_at: datetime = Field(default_factory=_utcnow, index=True)
