"""Rolling name snapshots and line diffs between runs."""
from __future__ import annotations

import difflib
import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable

from .errors import FileSystemError
from .schemas import SnapshotDiff
from .utils.paths import ensure_directory


logger = logging.getLogger(__name__)

SNAPSHOT_SUFFIX = "_all.txt"
REPORT_SUFFIX = "_diff.txt"
REPORT_TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"


def render_snapshot(names: Iterable[str]) -> str:
    """Return the snapshot text for ``names``: sorted, one per line."""

    ordered = sorted(names)
    if not ordered:
        return ""
    return "\n".join(ordered) + "\n"


def compute_line_diff(old_lines: list[str], new_lines: list[str]) -> tuple[list[str], list[str], list[str]]:
    """Return ``(added, removed, report_lines)`` between two line lists.

    Equal runs are omitted from the report; inserted lines are prefixed with
    ``"+ "`` and deleted lines with ``"- "``.
    """

    added: list[str] = []
    removed: list[str] = []
    report: list[str] = []
    matcher = difflib.SequenceMatcher(None, old_lines, new_lines, autojunk=False)
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            continue
        if tag in ("delete", "replace"):
            for line in old_lines[i1:i2]:
                removed.append(line)
                report.append(f"- {line}")
        if tag in ("insert", "replace"):
            for line in new_lines[j1:j2]:
                added.append(line)
                report.append(f"+ {line}")
    return added, removed, report


class SnapshotDiffEngine:
    """Persist one sorted snapshot per group and diff it against the previous run."""

    def __init__(self, directory: Path, *, clock: Callable[[], datetime] = datetime.now) -> None:
        self.directory = directory
        self._clock = clock

    def snapshot_path(self, slug: str) -> Path:
        return self.directory / f"{slug}{SNAPSHOT_SUFFIX}"

    def report_path(self, slug: str, when: datetime) -> Path:
        return self.directory / f"{slug}_{when.strftime(REPORT_TIMESTAMP_FORMAT)}{REPORT_SUFFIX}"

    def update(self, slug: str, names: Iterable[str]) -> SnapshotDiff:
        """Overwrite the snapshot for ``slug`` and report what changed.

        Returns ``computed=False`` when no previous snapshot existed. An
        existing empty snapshot is a valid zero-entry baseline.
        """

        ensure_directory(self.directory)
        path = self.snapshot_path(slug)
        new_text = render_snapshot(names)

        had_baseline = path.is_file()
        old_text = ""
        if had_baseline:
            try:
                old_text = path.read_text(encoding="utf-8")
            except OSError as exc:
                raise FileSystemError(path, exc.strerror or str(exc)) from exc

        self._write(path, new_text)

        if not had_baseline:
            logger.info("Created baseline snapshot %s", path)
            return SnapshotDiff(computed=False)

        if old_text == new_text:
            return SnapshotDiff(computed=True)

        added, removed, report = compute_line_diff(old_text.splitlines(), new_text.splitlines())
        diff = SnapshotDiff(
            added_count=len(added),
            removed_count=len(removed),
            diff_lines=report,
            computed=True,
            added=added,
            removed=removed,
        )
        if report:
            diff.report_path = self.report_path(slug, self._clock())
            self._write(diff.report_path, "\n".join(report) + "\n")
            logger.info(
                "%s: %d added, %d removed (%s)",
                slug,
                diff.added_count,
                diff.removed_count,
                diff.report_path.name,
            )
        return diff

    @staticmethod
    def _write(path: Path, text: str) -> None:
        try:
            path.write_text(text, encoding="utf-8", newline="\n")
        except OSError as exc:
            raise FileSystemError(path, exc.strerror or str(exc)) from exc
