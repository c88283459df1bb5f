"""Drive catalog classes through fetch, normalize, route, write and diff."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Iterable, Protocol

from .episodes import EpisodeResolver, EpisodeStats
from .errors import AccountError, DecodeError, FileSystemError, MalformedRecord, TransportError
from .normalizer import clean_name, normalize_record
from .playlist import PlaylistWriter, StreamUrlBuilder
from .routing import Group, GroupRouter
from .schemas import (
    CATALOG_KINDS,
    KIND_LABELS,
    AccountInfo,
    CatalogKind,
    Category,
    NormalizedEntry,
    canonical_id,
)
from .settings import SyncSettings
from .snapshots import SnapshotDiffEngine
from .stores.history_store import HistoryStore


logger = logging.getLogger(__name__)


class CatalogClient(Protocol):
    """Fetch collaborator consumed by the coordinator."""

    def fetch_account(self) -> dict[str, Any]: ...

    def fetch_categories(self, kind: CatalogKind) -> list[Any]: ...

    def fetch_entries(self, kind: CatalogKind, category_id: str) -> list[Any]: ...

    def fetch_series_detail(self, series_id: str) -> Any: ...


@dataclass(slots=True)
class ClassTotals:
    """Counters for one catalog class."""

    kind: CatalogKind
    entries: int = 0
    inserted: int = 0
    deleted: int = 0
    skipped: int = 0
    failed: int = 0
    groups: int = 0

    def summary(self) -> str:
        return (
            f"{KIND_LABELS[self.kind]}: {self.entries} entries, {self.inserted} added, "
            f"{self.deleted} removed, {self.groups} groups, {self.skipped} skipped, "
            f"{self.failed} failed"
        )


@dataclass(slots=True)
class RunTotals:
    """Aggregate counters for a whole run."""

    classes: list[ClassTotals] = field(default_factory=list)
    series_without_episodes: int = 0
    unexpected_episode_shapes: int = 0

    @property
    def entries(self) -> int:
        return sum(item.entries for item in self.classes)

    @property
    def inserted(self) -> int:
        return sum(item.inserted for item in self.classes)

    @property
    def deleted(self) -> int:
        return sum(item.deleted for item in self.classes)

    def summary_lines(self) -> list[str]:
        lines = [item.summary() for item in self.classes]
        if any(item.kind == "series" for item in self.classes):
            lines.append(
                f"Series without episodes: {self.series_without_episodes}, "
                f"unexpected episode shapes: {self.unexpected_episode_shapes}"
            )
        lines.append(f"Total: {self.entries} entries, {self.inserted} added, {self.deleted} removed")
        return lines


def parse_categories(records: list[Any]) -> list[Category]:
    """Build :class:`Category` values, skipping records without an id."""

    categories: list[Category] = []
    for record in records:
        if not isinstance(record, dict):
            logger.warning("Skipping category record of type %s", type(record).__name__)
            continue
        category_id = canonical_id(record.get("category_id"))
        if category_id is None:
            logger.warning("Skipping category without id: %r", record)
            continue
        categories.append(Category(id=category_id, name=clean_name(record.get("category_name"))))
    return categories


class RunCoordinator:
    """Sequentially sync the configured catalog classes.

    Per-item transport, decode and record errors are logged and counted. The
    account check and filesystem failures propagate and end the run; the
    totals gathered so far stay available on :attr:`totals`.
    """

    def __init__(
        self,
        settings: SyncSettings,
        client: CatalogClient,
        *,
        history: HistoryStore | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.settings = settings
        self.client = client
        self.history = history
        self.clock = clock
        self.totals = RunTotals()
        self.account: AccountInfo | None = None
        self.episode_stats = EpisodeStats()
        self.episode_resolver = EpisodeResolver(
            title_fallback=settings.episode_title_fallback,
            season_order=settings.season_order,
            stats=self.episode_stats,
        )
        self.url_builder = StreamUrlBuilder(
            server=settings.base_url,
            username=settings.username,
            password=settings.password,
            default_extension=settings.stream_extension,
            tvheadend_remux=settings.tvheadend_remux,
        )

    @property
    def output_root(self) -> Path:
        return Path(self.settings.output_dir).expanduser()

    def playlist_dir(self, kind: CatalogKind) -> Path:
        return self.output_root / f"{kind}_m3u"

    def diff_dir(self, kind: CatalogKind) -> Path:
        return self.output_root / f"{kind}_diff"

    def selected_kinds(self) -> list[CatalogKind]:
        flags = {"live": self.settings.live, "movie": self.settings.vod, "series": self.settings.series}
        return [kind for kind in CATALOG_KINDS if flags[kind]]

    def check_account(self) -> AccountInfo:
        """Fetch and validate the account; any failure is fatal."""

        account = AccountInfo.model_validate(self.client.fetch_account())
        if account.user_info.auth == 0:
            raise AccountError("Account is not authorized. Verify that your username and password are correct")
        self.account = account
        return account

    def run(self) -> RunTotals:
        """Process every selected class and return the run totals.

        The account is checked first unless :meth:`check_account` already succeeded.
        """

        if self.account is None:
            self.check_account()
        try:
            for kind in self.selected_kinds():
                self.sync_class(kind)
        finally:
            self.totals.series_without_episodes = self.episode_stats.series_without_episodes
            self.totals.unexpected_episode_shapes = self.episode_stats.unexpected_shapes
        return self.totals

    def sync_class(self, kind: CatalogKind) -> ClassTotals:
        """Fetch, route and write one catalog class, then diff its groups."""

        totals = ClassTotals(kind=kind)
        self.totals.classes.append(totals)
        label = KIND_LABELS[kind]

        logger.info("Getting %s categories", label)
        try:
            categories = parse_categories(self.client.fetch_categories(kind))
        except (TransportError, DecodeError) as exc:
            logger.error("Cannot fetch %s categories: %s", label, exc)
            totals.failed += 1
            return totals
        logger.info("Found %d %s categories", len(categories), label)

        writers: dict[str, PlaylistWriter] = {}

        def _attach_writer(group: Group) -> None:
            writers[group.slug] = PlaylistWriter(
                group,
                self.playlist_dir(kind) / f"{group.slug}.m3u",
                self.url_builder,
                enabled=self.settings.m3u,
                header=not self.settings.no_header,
            )

        router = GroupRouter(kind, categories, aggregate=self.settings.single_m3u, on_create=_attach_writer)
        category_names = {category.id: category.name for category in categories}

        try:
            if self.settings.always_create:
                for category in categories:
                    writers[router.ensure_category(category).slug].open()

            for category in categories:
                try:
                    records = self.client.fetch_entries(kind, category.id)
                except (TransportError, DecodeError) as exc:
                    logger.warning("Skipping %s category %r: %s", label, category.name, exc)
                    totals.failed += 1
                    continue
                logger.debug("Category %r returned %d records", category.name, len(records))
                for record in records:
                    if kind == "series":
                        entries = self._series_episodes(record, category_names, totals)
                    else:
                        entries = self._single_entry(record, kind, category_names, totals)
                    for entry in entries:
                        group = router.route(entry)
                        writers[group.slug].write(entry)
                        totals.entries += 1
        finally:
            _close_writers(writers.values())

        totals.groups = len(router.groups)
        if self.settings.diff:
            self._diff_groups(kind, router.groups, totals)
        logger.info("%s", totals.summary())
        return totals

    def _single_entry(
        self, record: Any, kind: CatalogKind, category_names: dict[str, str], totals: ClassTotals
    ) -> list[NormalizedEntry]:
        try:
            return [normalize_record(record, kind, categories=category_names)]
        except MalformedRecord as exc:
            logger.warning("Skipping %s record: %s", KIND_LABELS[kind], exc)
            totals.skipped += 1
            return []

    def _series_episodes(
        self, record: Any, category_names: dict[str, str], totals: ClassTotals
    ) -> list[NormalizedEntry]:
        try:
            series = normalize_record(record, "series", categories=category_names)
        except MalformedRecord as exc:
            logger.warning("Skipping series record: %s", exc)
            totals.skipped += 1
            return []

        try:
            resolved = self.episode_resolver.resolve(self.client.fetch_series_detail(series.id), series)
        except (TransportError, DecodeError) as exc:
            logger.warning("Skipping series %r (%s): %s", series.name, series.id, exc)
            totals.failed += 1
            return []
        totals.skipped += resolved.skipped
        return resolved.episodes

    def _diff_groups(self, kind: CatalogKind, groups: list[Group], totals: ClassTotals) -> None:
        engine = SnapshotDiffEngine(self.diff_dir(kind), clock=self.clock)
        for group in groups:
            diff = engine.update(group.slug, group.accumulated_names)
            totals.inserted += diff.added_count
            totals.deleted += diff.removed_count
            if self.history is not None:
                self.history.record_group(kind, group.key, group.accumulated_names, diff)



def _close_writers(writers: Iterable[PlaylistWriter]) -> None:
    """Close every writer, then re-raise the first close failure."""

    first_error: FileSystemError | None = None
    for writer in writers:
        try:
            writer.close()
        except FileSystemError as exc:
            logger.error("%s", exc)
            if first_error is None:
                first_error = exc
    if first_error is not None:
        raise first_error
