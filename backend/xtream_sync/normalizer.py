"""Normalize raw catalog records into :class:`NormalizedEntry` values."""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Mapping

from .errors import MalformedRecord
from .schemas import NormalizedEntry, canonical_id


UNKNOWN_CATEGORY_ID = "-1"

_LINE_BREAK_RE = re.compile(r"[\r\n\v\f\x85\u2028\u2029]+")


@dataclass(slots=True, frozen=True)
class RecordShape:
    """Field names used by one kind of record."""

    id_field: str
    name_field: str = "name"
    icon_fields: tuple[str, ...] = ()
    epg_field: str | None = None


RECORD_SHAPES: dict[str, RecordShape] = {
    "live": RecordShape(id_field="stream_id", icon_fields=("stream_icon",), epg_field="epg_channel_id"),
    "movie": RecordShape(id_field="stream_id", icon_fields=("stream_icon", "cover")),
    "series": RecordShape(id_field="series_id", icon_fields=("cover", "stream_icon")),
    "episode": RecordShape(id_field="id", name_field="title", icon_fields=("movie_image", "cover_big")),
}


def clean_name(value: Any) -> str:
    """Return a single-line display name; absent values become an empty string."""

    if isinstance(value, bool) or value is None:
        return ""
    if isinstance(value, (int, float)):
        value = str(value)
    if not isinstance(value, str):
        return ""
    return _LINE_BREAK_RE.sub(" ", value)


def record_extension(record: Mapping[str, Any]) -> str:
    """Return the record's container extension as ``.ext`` or an empty string."""

    value = record.get("container_extension")
    if not isinstance(value, str):
        return ""
    value = value.strip().lstrip(".")
    return f".{value}" if value else ""


def category_id_of(record: Mapping[str, Any]) -> str:
    value = record.get("category_id")
    if isinstance(value, str) and value.strip():
        return value.strip()
    return UNKNOWN_CATEGORY_ID


def _first_text(sources: tuple[Mapping[str, Any], ...], fields: tuple[str, ...]) -> str:
    for source in sources:
        for field_name in fields:
            value = source.get(field_name)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return ""


def normalize_record(
    record: Any,
    kind: str,
    *,
    categories: Mapping[str, str] | None = None,
    require_id: bool = True,
) -> NormalizedEntry:
    """Extract canonical fields from ``record`` using the field layout for ``kind``.

    ``kind`` is one of ``live``, ``movie``, ``series`` or ``episode``. Missing
    names become empty strings and missing or non-string category ids fall back
    to ``UNKNOWN_CATEGORY_ID``. The id may be delivered as a string or integer;
    :class:`MalformedRecord` is raised only when it is absent and ``require_id``
    is set.
    """

    if not isinstance(record, Mapping):
        raise MalformedRecord(f"Expected an object for a {kind} record, got {type(record).__name__}")

    shape = RECORD_SHAPES[kind]
    playable_id = canonical_id(record.get(shape.id_field))
    if playable_id is None:
        if require_id:
            raise MalformedRecord(f"{kind} record has no usable {shape.id_field!r}")
        playable_id = ""

    category_id = category_id_of(record)
    category_name = (categories or {}).get(category_id, "")

    # Episode artwork lives in the nested info block.
    info = record.get("info")
    sources: tuple[Mapping[str, Any], ...] = (record, info) if isinstance(info, Mapping) else (record,)

    epg_id = None
    if shape.epg_field:
        epg_id = _first_text((record,), (shape.epg_field,)) or None

    return NormalizedEntry(
        id=playable_id,
        name=clean_name(record.get(shape.name_field)),
        category_id=category_id,
        category_name=category_name,
        playable_id=playable_id,
        extension=record_extension(record),
        icon_url=_first_text(sources, shape.icon_fields),
        epg_id=epg_id,
    )
