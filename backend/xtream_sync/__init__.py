"""Catalog sync core: normalize content API records, write playlists and diff snapshots."""

from .client import XtreamClient
from .coordinator import ClassTotals, RunCoordinator, RunTotals
from .errors import (
    AccountError,
    DecodeError,
    FileSystemError,
    HistoryError,
    MalformedRecord,
    TransportError,
    XtreamSyncError,
)
from .settings import SyncSettings

__all__ = [
    "AccountError",
    "ClassTotals",
    "DecodeError",
    "FileSystemError",
    "HistoryError",
    "MalformedRecord",
    "RunCoordinator",
    "RunTotals",
    "SyncSettings",
    "TransportError",
    "XtreamClient",
    "XtreamSyncError",
]
