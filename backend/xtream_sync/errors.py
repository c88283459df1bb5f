"""Error taxonomy shared by the catalog sync pipeline."""
from __future__ import annotations

from pathlib import Path


class XtreamSyncError(RuntimeError):
    """Base class for failures raised while syncing a catalog."""


class TransportError(XtreamSyncError):
    """Raised when the content API cannot be reached or answers with an HTTP error."""


class AccountError(TransportError):
    """Raised when the account check rejects the configured credentials."""


class DecodeError(XtreamSyncError):
    """Raised when a response body does not match any expected shape."""


class MalformedRecord(XtreamSyncError):
    """Raised when a record lacks a field required to render it."""


class FileSystemError(XtreamSyncError):
    """Raised when an output directory or file cannot be created or written."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"Cannot write {path}: {reason}")
        self.path = path


class HistoryError(XtreamSyncError):
    """Raised when the change history database cannot be opened or updated."""
