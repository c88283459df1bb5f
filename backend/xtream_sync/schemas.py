"""Typed models shared by the catalog sync pipeline."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, ClassVar, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


CatalogKind = Literal["live", "movie", "series"]
CATALOG_KINDS: tuple[CatalogKind, ...] = ("live", "movie", "series")

KIND_LABELS: dict[CatalogKind, str] = {
    "live": "Live",
    "movie": "VOD",
    "series": "Series",
}


def canonical_id(value: Any) -> str | None:
    """Return ``value`` as a canonical string id, accepting string or integer forms."""

    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return None


def canonical_int(value: Any) -> int | None:
    """Return ``value`` as an integer when it is an int or a numeric string."""

    identifier = canonical_id(value)
    if identifier is None:
        return None
    try:
        return int(identifier)
    except ValueError:
        return None


def canonical_timestamp(value: Any) -> datetime | None:
    """Convert epoch seconds given as string or integer into an aware datetime."""

    seconds = canonical_int(value)
    if seconds is None:
        return None
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


@dataclass(slots=True, frozen=True)
class Category:
    """Category advertised by one catalog class for the current run."""

    id: str
    name: str


@dataclass(slots=True, frozen=True)
class NormalizedEntry:
    """Canonical view of one catalog record."""

    id: str
    name: str
    category_id: str
    category_name: str
    playable_id: str
    extension: str = ""
    icon_url: str = ""
    epg_id: str | None = None


@dataclass(slots=True)
class SnapshotDiff:
    """Outcome of comparing a group's names against its previous snapshot."""

    added_count: int = 0
    removed_count: int = 0
    diff_lines: list[str] = field(default_factory=list)
    computed: bool = False
    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    report_path: Path | None = None

    @property
    def has_changes(self) -> bool:
        return bool(self.added_count or self.removed_count)


class UserInfo(BaseModel):
    """Account block returned by the content API, with canonicalized field types."""

    model_config = ConfigDict(extra="ignore")

    username: str = ""
    status: str = ""
    auth: int = 1
    message: str = ""
    created_at: datetime | None = None
    exp_date: datetime | None = None
    is_trial: bool = False
    active_cons: int = 0
    max_connections: int = 0

    @field_validator("created_at", "exp_date", mode="before")
    @classmethod
    def _timestamp(cls, value: Any) -> datetime | None:
        if isinstance(value, datetime):
            return value
        return canonical_timestamp(value)

    @field_validator("auth", "active_cons", "max_connections", mode="before")
    @classmethod
    def _count(cls, value: Any) -> int:
        if isinstance(value, bool):
            return int(value)
        return canonical_int(value) or 0

    @field_validator("is_trial", mode="before")
    @classmethod
    def _trial(cls, value: Any) -> bool:
        if isinstance(value, bool):
            return value
        return canonical_id(value) == "1"

    @field_validator("username", "status", "message", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:
        return value if isinstance(value, str) else ""


class AccountInfo(BaseModel):
    """Top-level account payload."""

    model_config = ConfigDict(extra="ignore")

    user_info: UserInfo = Field(default_factory=UserInfo)
    server_info: dict[str, Any] = Field(default_factory=dict)

    @field_validator("server_info", mode="before")
    @classmethod
    def _server_info(cls, value: Any) -> dict[str, Any]:
        return value if isinstance(value, dict) else {}

    def summary_lines(self) -> list[str]:
        """Render the account block shown to the operator."""

        info = self.user_info
        return [
            "Account Information:",
            f" Created: {_format_timestamp(info.created_at)}",
            f" Expires: {_format_timestamp(info.exp_date)}",
            f" Status: {info.status or 'unknown'}",
            f" Active Connections: {info.active_cons}",
            f" Max Connections: {info.max_connections}",
            f" Trial: {str(info.is_trial).lower()}",
        ]


def _format_timestamp(value: datetime | None) -> str:
    if value is None:
        return "unknown"
    return value.strftime("%Y-%m-%d %H:%M:%S UTC")


class SeriesDetailBase(BaseModel):
    """Fields common to every series detail shape."""

    model_config = ConfigDict(extra="ignore")

    shape: ClassVar[str] = "unknown"

    info: dict[str, Any] = Field(default_factory=dict)

    @field_validator("info", mode="before")
    @classmethod
    def _info(cls, value: Any) -> dict[str, Any]:
        return value if isinstance(value, dict) else {}

    @property
    def series_name(self) -> str:
        name = self.info.get("name")
        return name if isinstance(name, str) else ""


class NoEpisodesDetail(SeriesDetailBase):
    """Series detail without any episode payload."""

    shape: ClassVar[str] = "absent"

    episodes: None = None

    @field_validator("episodes", mode="before")
    @classmethod
    def _empty_container(cls, value: Any) -> Any:
        if value in ([], {}):
            return None
        return value


class SeasonMapDetail(SeriesDetailBase):
    """Episodes keyed by season identifier."""

    shape: ClassVar[str] = "season_map"

    episodes: dict[str, list[Any]]


class FlatArrayDetail(SeriesDetailBase):
    """Episodes delivered as an array of per-season arrays."""

    shape: ClassVar[str] = "flat_array"

    episodes: list[list[Any] | dict[str, Any]]


SeriesDetail = NoEpisodesDetail | SeasonMapDetail | FlatArrayDetail

# Probed in order; the first model that validates wins.
SERIES_DETAIL_SHAPES: tuple[type[SeriesDetailBase], ...] = (
    NoEpisodesDetail,
    SeasonMapDetail,
    FlatArrayDetail,
)
