"""Filesystem helpers for output and history locations."""
from __future__ import annotations

from pathlib import Path

from platformdirs import user_data_dir

from ..errors import FileSystemError


APP_NAME = "xtream-sync"
APP_AUTHOR = "xtream-sync"


def default_history_database_url() -> str:
    """Return the platform-appropriate SQLite URL for the change history."""

    base_dir = Path(user_data_dir(APP_NAME, APP_AUTHOR))
    return f"sqlite:///{base_dir / 'history.db'}"


def ensure_directory(path: Path) -> Path:
    """Expand and create ``path`` if it does not exist."""

    resolved = path.expanduser()
    try:
        resolved.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise FileSystemError(resolved, exc.strerror or str(exc)) from exc
    return resolved
