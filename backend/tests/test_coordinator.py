"""End-to-end tests for the run coordinator with a stub fetch collaborator."""
from __future__ import annotations

import sys
from datetime import datetime
from pathlib import Path
from typing import Any

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from backend.xtream_sync.coordinator import RunCoordinator  # noqa: E402
from backend.xtream_sync.db import create_history_engine  # noqa: E402
from backend.xtream_sync.errors import (  # noqa: E402
    AccountError,
    DecodeError,
    FileSystemError,
    TransportError,
)
from backend.xtream_sync.playlist import PlaylistWriter  # noqa: E402
from backend.xtream_sync.settings import SyncSettings  # noqa: E402
from backend.xtream_sync.stores.history_store import HistoryStore  # noqa: E402


class StubCatalogClient:
    """In-memory stand-in for the content API client."""

    def __init__(
        self,
        *,
        account: dict[str, Any] | Exception | None = None,
        categories: dict[str, list[Any] | Exception] | None = None,
        entries: dict[tuple[str, str], list[Any] | Exception] | None = None,
        series_details: dict[str, Any] | None = None,
    ) -> None:
        self.account = account if account is not None else {"user_info": {"auth": 1, "status": "Active"}}
        self.categories = categories or {}
        self.entries = entries or {}
        self.series_details = series_details or {}
        self.calls: list[tuple[str, ...]] = []

    @staticmethod
    def _answer(value: Any) -> Any:
        if isinstance(value, Exception):
            raise value
        return value

    def fetch_account(self) -> dict[str, Any]:
        self.calls.append(("account",))
        return self._answer(self.account)

    def fetch_categories(self, kind: str) -> list[Any]:
        self.calls.append(("categories", kind))
        return self._answer(self.categories.get(kind, []))

    def fetch_entries(self, kind: str, category_id: str) -> list[Any]:
        self.calls.append(("entries", kind, category_id))
        return self._answer(self.entries.get((kind, category_id), []))

    def fetch_series_detail(self, series_id: str) -> Any:
        self.calls.append(("series_detail", series_id))
        return self._answer(self.series_details.get(series_id, {}))


class FixedClock:
    def __init__(self) -> None:
        self.calls = 0

    def __call__(self) -> datetime:
        self.calls += 1
        return datetime(2026, 10, 19, 8, 0, self.calls)


def _settings(tmp_path: Path, **overrides: Any) -> SyncSettings:
    values: dict[str, Any] = {
        "server": "http://tv.example",
        "username": "user",
        "password": "pass",
        "output_dir": str(tmp_path),
        "history_database_url": f"sqlite:///{tmp_path / 'history.db'}",
    }
    values.update(overrides)
    return SyncSettings(**values)


def _news_client(entries: list[Any] | None = None) -> StubCatalogClient:
    return StubCatalogClient(
        categories={"live": [{"category_id": "1", "category_name": "News"}]},
        entries={("live", "1"): entries if entries is not None else [{"category_id": "1", "name": "CNN", "stream_id": 5}]},
    )


def test_live_end_to_end_writes_playlist_and_snapshot(tmp_path: Path) -> None:
    """One category with one channel produces News.m3u and News_all.txt."""

    settings = _settings(tmp_path, live=True, m3u=True, diff=True)
    coordinator = RunCoordinator(settings, _news_client(), clock=FixedClock())

    totals = coordinator.run()

    playlist = (tmp_path / "live_m3u" / "News.m3u").read_text(encoding="utf-8").splitlines()
    assert playlist[0] == "#EXTM3U"
    assert len(playlist) == 3
    assert playlist[1].endswith('group-title="News",CNN')
    assert playlist[2] == "http://tv.example/user/pass/5"
    assert (tmp_path / "live_diff" / "News_all.txt").read_text(encoding="utf-8") == "CNN\n"
    assert totals.entries == 1
    assert (totals.inserted, totals.deleted) == (0, 0)
    assert totals.classes[0].groups == 1


def test_second_run_reports_changes(tmp_path: Path) -> None:
    settings = _settings(tmp_path, live=True, diff=True)
    RunCoordinator(settings, _news_client(), clock=FixedClock()).run()

    updated = _news_client(
        [
            {"category_id": "1", "name": "BBC", "stream_id": "6"},
            {"category_id": "1", "name": "Al Jazeera", "stream_id": 7},
        ]
    )
    totals = RunCoordinator(settings, updated, clock=FixedClock()).run()

    assert (totals.inserted, totals.deleted) == (2, 1)
    reports = list((tmp_path / "live_diff").glob("News_*_diff.txt"))
    assert len(reports) == 1
    assert reports[0].read_text(encoding="utf-8").splitlines() == ["- CNN", "+ Al Jazeera", "+ BBC"]


def test_playlists_disabled_still_feeds_diff(tmp_path: Path) -> None:
    settings = _settings(tmp_path, live=True, m3u=False, diff=True)

    RunCoordinator(settings, _news_client(), clock=FixedClock()).run()

    assert not (tmp_path / "live_m3u").exists()
    assert (tmp_path / "live_diff" / "News_all.txt").read_text(encoding="utf-8") == "CNN\n"


def test_diff_disabled_writes_no_snapshot(tmp_path: Path) -> None:
    settings = _settings(tmp_path, live=True, m3u=True, diff=False)

    RunCoordinator(settings, _news_client(), clock=FixedClock()).run()

    assert (tmp_path / "live_m3u" / "News.m3u").exists()
    assert not (tmp_path / "live_diff").exists()


def test_unknown_category_and_malformed_records(tmp_path: Path) -> None:
    settings = _settings(tmp_path, live=True, m3u=True, diff=True)
    client = _news_client(
        [
            {"category_id": "1", "name": "CNN", "stream_id": 5},
            {"category_id": "42", "name": "Stray", "stream_id": 8},
            {"category_id": "1", "name": "Broken"},
        ]
    )

    totals = RunCoordinator(settings, client, clock=FixedClock()).run()

    assert totals.entries == 2
    assert totals.classes[0].skipped == 1
    assert (tmp_path / "live_m3u" / "No_Category.m3u").exists()
    assert (tmp_path / "live_diff" / "No_Category_all.txt").read_text(encoding="utf-8") == "Stray\n"


def test_single_m3u_routes_everything_to_one_group(tmp_path: Path) -> None:
    settings = _settings(tmp_path, vod=True, m3u=True, single_m3u=True, stream_extension=".ts")
    client = StubCatalogClient(
        categories={
            "movie": [
                {"category_id": "1", "category_name": "Action"},
                {"category_id": "2", "category_name": "Comedy"},
            ]
        },
        entries={
            ("movie", "1"): [{"category_id": "1", "name": "Heat", "stream_id": 1, "container_extension": "mkv"}],
            ("movie", "2"): [{"category_id": "2", "name": "Airplane", "stream_id": 2}],
        },
    )

    RunCoordinator(settings, client, clock=FixedClock()).run()

    files = sorted(path.name for path in (tmp_path / "movie_m3u").iterdir())
    assert files == ["All.m3u"]
    lines = (tmp_path / "movie_m3u" / "All.m3u").read_text(encoding="utf-8").splitlines()
    assert lines[2] == "http://tv.example/movie/user/pass/1.mkv"
    assert lines[4] == "http://tv.example/movie/user/pass/2.ts"
    assert 'group-title="Comedy"' in lines[3]


def test_always_create_makes_empty_playlists(tmp_path: Path) -> None:
    settings = _settings(tmp_path, live=True, m3u=True, always_create=True)
    client = StubCatalogClient(categories={"live": [{"category_id": "3", "category_name": "Quiet"}]})

    totals = RunCoordinator(settings, client, clock=FixedClock()).run()

    assert (tmp_path / "live_m3u" / "Quiet.m3u").read_text(encoding="utf-8") == "#EXTM3U\n"
    assert totals.entries == 0


def test_failed_category_fetch_is_skipped(tmp_path: Path) -> None:
    settings = _settings(tmp_path, live=True, m3u=True)
    client = StubCatalogClient(
        categories={
            "live": [
                {"category_id": "1", "category_name": "News"},
                {"category_id": "2", "category_name": "Sports"},
            ]
        },
        entries={
            ("live", "1"): TransportError("timeout"),
            ("live", "2"): [{"category_id": "2", "name": "ESPN", "stream_id": 9}],
        },
    )

    totals = RunCoordinator(settings, client, clock=FixedClock()).run()

    assert totals.classes[0].failed == 1
    assert totals.entries == 1
    assert (tmp_path / "live_m3u" / "Sports.m3u").exists()


def test_failed_category_list_reports_zero_totals(tmp_path: Path) -> None:
    settings = _settings(tmp_path, live=True, vod=True, m3u=True)
    client = StubCatalogClient(categories={"live": DecodeError("bad json"), "movie": TransportError("down")})

    totals = RunCoordinator(settings, client, clock=FixedClock()).run()

    assert [item.failed for item in totals.classes] == [1, 1]
    assert totals.entries == 0
    assert totals.summary_lines()[-1] == "Total: 0 entries, 0 added, 0 removed"


def test_series_resolves_episodes_per_series(tmp_path: Path) -> None:
    settings = _settings(tmp_path, series=True, m3u=True, diff=True)
    client = StubCatalogClient(
        categories={"series": [{"category_id": "5", "category_name": "Drama"}]},
        entries={
            ("series", "5"): [
                {"series_id": 100, "name": "Show A", "category_id": "5", "cover": "http://img/a.jpg"},
                {"series_id": "200", "name": "Show B", "category_id": "5"},
                {"series_id": 300, "name": "Show C", "category_id": "5"},
                {"series_id": 400, "name": "Show D", "category_id": "5"},
            ]
        },
        series_details={
            "100": {
                "info": {"name": "Show A"},
                "episodes": {
                    "2": [{"id": "1002", "title": "A S2E1", "container_extension": "mp4"}],
                    "1": [{"id": "1001", "title": "A S1E1", "container_extension": "mkv"}],
                },
            },
            "200": {"info": {"name": "Show B"}, "episodes": [[{"id": 2001, "container_extension": "avi"}]]},
            "300": {"info": {"name": "Show C"}},
            "400": TransportError("series detail failed"),
        },
    )

    totals = RunCoordinator(settings, client, clock=FixedClock()).run()

    lines = (tmp_path / "series_m3u" / "Drama.m3u").read_text(encoding="utf-8").splitlines()
    urls = [line for line in lines if line.startswith("http")]
    assert urls == [
        "http://tv.example/series/user/pass/1001.mkv",
        "http://tv.example/series/user/pass/1002.mp4",
        "http://tv.example/series/user/pass/2001.avi",
    ]
    assert lines[1].endswith(",A S1E1")
    assert lines[5].endswith(",Show B")
    assert (tmp_path / "series_diff" / "Drama_all.txt").read_text(encoding="utf-8") == "A S1E1\nA S2E1\nShow B\n"
    assert totals.series_without_episodes == 1
    assert totals.unexpected_episode_shapes == 1
    assert totals.classes[0].failed == 1
    assert totals.entries == 3
    assert ("series_detail", "400") in client.calls


def test_account_check_rejects_unauthorized(tmp_path: Path) -> None:
    settings = _settings(tmp_path, live=True, m3u=True)
    client = StubCatalogClient(account={"user_info": {"auth": 0}})

    with pytest.raises(AccountError):
        RunCoordinator(settings, client).check_account()


def test_run_checks_account_first(tmp_path: Path) -> None:
    settings = _settings(tmp_path, live=True, m3u=True)
    client = StubCatalogClient(account={"user_info": {"auth": 0}})

    with pytest.raises(AccountError):
        RunCoordinator(settings, client).run()
    assert client.calls == [("account",)]
    assert not (tmp_path / "live_m3u").exists()


def test_run_skips_account_check_already_done(tmp_path: Path) -> None:
    settings = _settings(tmp_path, live=True, m3u=True)
    client = _news_client()
    coordinator = RunCoordinator(settings, client, clock=FixedClock())

    coordinator.check_account()
    coordinator.run()

    assert client.calls.count(("account",)) == 1


def test_every_writer_is_closed_when_one_close_fails(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    settings = _settings(tmp_path, live=True, m3u=True)
    client = StubCatalogClient(
        categories={
            "live": [
                {"category_id": "1", "category_name": "News"},
                {"category_id": "2", "category_name": "Sport"},
            ]
        },
        entries={
            ("live", "1"): [{"category_id": "1", "name": "CNN", "stream_id": 5}],
            ("live", "2"): [{"category_id": "2", "name": "ESPN", "stream_id": 6}],
        },
    )
    closed: list[str] = []
    original_close = PlaylistWriter.close

    def failing_close(writer: PlaylistWriter) -> None:
        original_close(writer)
        closed.append(writer.group.slug)
        if writer.group.slug == "News":
            raise FileSystemError(writer.path, "disk full")

    monkeypatch.setattr(PlaylistWriter, "close", failing_close)

    with pytest.raises(FileSystemError, match="disk full"):
        RunCoordinator(settings, client, clock=FixedClock()).run()
    assert closed == ["News", "Sport"]


def test_filesystem_error_is_fatal(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("file", encoding="utf-8")
    settings = _settings(tmp_path, live=True, m3u=True, output_dir=str(blocker))
    coordinator = RunCoordinator(settings, _news_client(), clock=FixedClock())

    with pytest.raises(FileSystemError):
        coordinator.run()
    assert coordinator.totals.classes[0].entries == 0


def test_history_records_added_and_deleted(tmp_path: Path) -> None:
    settings = _settings(tmp_path, live=True, diff=True, history=True)
    store = HistoryStore(create_history_engine(settings.history_database_url))

    RunCoordinator(settings, _news_client(), history=store, clock=FixedClock()).run()
    RunCoordinator(
        settings,
        _news_client([{"category_id": "1", "name": "BBC", "stream_id": 6}]),
        history=store,
        clock=FixedClock(),
    ).run()

    assert [event.change_type for event in store.history_for("CNN")] == ["added", "deleted"]
    assert [event.change_type for event in store.history_for("BBC")] == ["added"]
    assert store.list_categories("live") == ["News"]
