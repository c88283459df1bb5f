"""Flatten series detail payloads into ordered episode entries."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Iterator

from pydantic import ValidationError

from .errors import DecodeError, MalformedRecord
from .normalizer import normalize_record
from .schemas import (
    SERIES_DETAIL_SHAPES,
    FlatArrayDetail,
    NoEpisodesDetail,
    NormalizedEntry,
    SeasonMapDetail,
    SeriesDetail,
)
from .settings import EpisodeTitleFallback, SeasonOrder


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class EpisodeStats:
    """Run-scoped counters kept while resolving series."""

    series_without_episodes: int = 0
    unexpected_shapes: int = 0
    skipped_episodes: int = 0


@dataclass(slots=True)
class ResolvedSeries:
    """Episodes of one series together with parse annotations."""

    shape: str
    episodes: list[NormalizedEntry] = field(default_factory=list)
    unexpected_shape: bool = False
    skipped: int = 0


def parse_series_detail(payload: Any) -> SeriesDetail:
    """Resolve ``payload`` into exactly one series detail shape.

    Shapes are probed in ``SERIES_DETAIL_SHAPES`` order. A payload that matches
    none of them raises :class:`DecodeError`.
    """

    if not isinstance(payload, dict):
        raise DecodeError(f"Series detail must be an object, got {type(payload).__name__}")

    errors: list[str] = []
    for model in SERIES_DETAIL_SHAPES:
        try:
            return model.model_validate(payload)  # type: ignore[return-value]
        except ValidationError as exc:
            errors.append(f"{model.shape}: {exc.error_count()} error(s)")
    raise DecodeError("Series detail matches no known episode shape (" + "; ".join(errors) + ")")


def season_sort_key(order: SeasonOrder):
    """Return the sort key used for season identifiers."""

    if order == "numeric":
        def _numeric(key: str) -> tuple[int, int, str]:
            stripped = key.strip()
            if stripped.isdigit():
                return (0, int(stripped), key)
            return (1, 0, key)

        return _numeric
    return str


def iter_episode_records(detail: SeriesDetail, *, season_order: SeasonOrder = "lexicographic") -> Iterator[Any]:
    """Yield raw episode records in playback order."""

    if isinstance(detail, SeasonMapDetail):
        seasons = sorted(detail.episodes.items(), key=lambda item: season_sort_key(season_order)(item[0]))
        for _season, records in seasons:
            yield from records
    elif isinstance(detail, FlatArrayDetail):
        for season in detail.episodes:
            if isinstance(season, dict):
                yield season
            else:
                yield from season


class EpisodeResolver:
    """Turn series detail responses into episode entries under a parent series."""

    def __init__(
        self,
        *,
        title_fallback: EpisodeTitleFallback = "series",
        season_order: SeasonOrder = "lexicographic",
        stats: EpisodeStats | None = None,
    ) -> None:
        self.title_fallback = title_fallback
        self.season_order = season_order
        self.stats = stats or EpisodeStats()

    def resolve(self, payload: Any, series: NormalizedEntry) -> ResolvedSeries:
        """Parse ``payload`` and return the flattened episode list for ``series``.

        Raises :class:`DecodeError` when the payload matches no known shape;
        individual malformed episodes are skipped and counted instead.
        """

        detail = parse_series_detail(payload)
        resolved = ResolvedSeries(shape=detail.shape)

        if isinstance(detail, NoEpisodesDetail):
            self.stats.series_without_episodes += 1
            logger.info("Series %r (%s) has no episodes", series.name, series.id)
            return resolved

        if isinstance(detail, FlatArrayDetail):
            resolved.unexpected_shape = True
            self.stats.unexpected_shapes += 1
            logger.warning(
                "Series %r (%s) returned episodes as a flat array", series.name, series.id
            )

        series_name = series.name or detail.series_name
        for record in iter_episode_records(detail, season_order=self.season_order):
            try:
                episode = normalize_record(record, "episode")
            except MalformedRecord as exc:
                resolved.skipped += 1
                self.stats.skipped_episodes += 1
                logger.warning("Skipping episode of series %r: %s", series_name, exc)
                continue
            resolved.episodes.append(
                replace(
                    episode,
                    name=episode.name or self._fallback_title(series_name, series.category_name),
                    category_id=series.category_id,
                    category_name=series.category_name,
                    icon_url=episode.icon_url or series.icon_url,
                )
            )
        return resolved

    def _fallback_title(self, series_name: str, category_name: str) -> str:
        if self.title_fallback == "series":
            return series_name
        if self.title_fallback == "category":
            return category_name
        return ""
