"""Exception hierarchy shared by the overlay engine, ingest and API layers."""
from __future__ import annotations


class BooyahError(Exception):
    """Base class for all overlay errors."""


class MatchValidationError(BooyahError):
    """Raised when a match cannot be saved to the ledger."""

    def __init__(self, reason: str, message: str) -> None:
        self.reason = reason
        super().__init__(message)


class FeedFetchError(BooyahError):
    """Raised when an explicit feed fetch fails."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class PayloadImportError(BooyahError):
    """Raised when a configuration or match-summary payload is malformed."""


class SnapshotWriteError(BooyahError):
    """Raised by a broadcast sink when the snapshot could not be written."""
