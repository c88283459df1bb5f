"""Render routed groups as M3U playlists."""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TextIO

from .errors import FileSystemError
from .routing import Group
from .schemas import CatalogKind, NormalizedEntry
from .utils.paths import ensure_directory


logger = logging.getLogger(__name__)

M3U_HEADER = "#EXTM3U"

CLASS_PATHS: dict[CatalogKind, str] = {
    "live": "",
    "movie": "/movie",
    "series": "/series",
}


def resolve_extension(entry: NormalizedEntry, default_extension: str) -> str:
    """Pick the record extension, then the configured suffix, then nothing."""

    return entry.extension or default_extension or ""


def _attribute(value: str) -> str:
    return value.replace('"', "'")


def build_extinf(entry: NormalizedEntry, group_title: str) -> str:
    """Return the ``#EXTINF`` metadata line for ``entry``."""

    return (
        f'#EXTINF:-1 tvg-id="{_attribute(entry.epg_id or "")}" '
        f'tvg-name="{_attribute(entry.name)}" '
        f'tvg-logo="{_attribute(entry.icon_url)}" '
        f'group-title="{_attribute(group_title)}",{entry.name}'
    )


def tvheadend_pipe(url: str, name: str) -> str:
    """Wrap ``url`` in an ffmpeg remux pipe understood by TVHeadend."""

    escaped = name.replace(" ", "\\ ")
    return (
        f"pipe:///usr/bin/ffmpeg -loglevel fatal -i {url} -vcodec copy -acodec copy "
        f"-metadata service_provider={escaped} -metadata service_name={escaped} "
        "-f mpegts pipe:1"
    )


@dataclass(slots=True, frozen=True)
class StreamUrlBuilder:
    """Build playback URLs from server credentials."""

    server: str
    username: str
    password: str
    default_extension: str = ""
    tvheadend_remux: bool = False

    def __call__(self, kind: CatalogKind, entry: NormalizedEntry) -> str:
        url = (
            f"{self.server.rstrip('/')}{CLASS_PATHS[kind]}/{self.username}/{self.password}/"
            f"{entry.playable_id}{resolve_extension(entry, self.default_extension)}"
        )
        if self.tvheadend_remux:
            return tvheadend_pipe(url, entry.name)
        return url


class WriterState(enum.Enum):
    UNOPENED = "unopened"
    CREATED = "created"
    WRITTEN = "written"


class PlaylistWriter:
    """Write one group's stanzas to its playlist file.

    The file is opened on the first entry, or eagerly through :meth:`open`.
    When ``enabled`` is false no file is touched, but entry names are still
    accumulated on the group for the snapshot diff.
    """

    def __init__(
        self,
        group: Group,
        path: Path,
        url_builder: StreamUrlBuilder,
        *,
        enabled: bool = True,
        header: bool = True,
    ) -> None:
        self.group = group
        self.path = path
        self.url_builder = url_builder
        self.enabled = enabled
        self.header = header
        self.state = WriterState.UNOPENED
        self.stanzas = 0
        self._handle: TextIO | None = None

    def open(self) -> None:
        """Create the backing file and write the header when configured."""

        if not self.enabled or self.state is not WriterState.UNOPENED:
            return
        ensure_directory(self.path.parent)
        try:
            self._handle = self.path.open("w", encoding="utf-8", newline="\n")
            if self.header:
                self._handle.write(M3U_HEADER + "\n")
        except OSError as exc:
            raise FileSystemError(self.path, exc.strerror or str(exc)) from exc
        self.state = WriterState.CREATED
        logger.debug("Created playlist %s", self.path)

    def write(self, entry: NormalizedEntry) -> None:
        """Append the stanza for ``entry`` and record its name."""

        self.group.accumulated_names.append(entry.name)
        if not self.enabled:
            return
        self.open()
        assert self._handle is not None
        group_title = entry.category_name or self.group.key
        try:
            self._handle.write(build_extinf(entry, group_title) + "\n")
            self._handle.write(self.url_builder(self.group.kind, entry) + "\n")
        except OSError as exc:
            raise FileSystemError(self.path, exc.strerror or str(exc)) from exc
        self.stanzas += 1
        self.state = WriterState.WRITTEN

    def close(self) -> None:
        if self._handle is None:
            return
        try:
            self._handle.close()
        except OSError as exc:
            raise FileSystemError(self.path, exc.strerror or str(exc)) from exc
        finally:
            self._handle = None
