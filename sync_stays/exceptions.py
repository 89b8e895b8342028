"""Error taxonomy for feed sync, extraction and enrichment runs."""

from __future__ import annotations


class SyncStaysError(Exception):
    """Base class for errors raised by the reconciliation engine."""


class FetchError(SyncStaysError):
    """
    A single iCal feed could not be fetched or parsed.

    Isolated per feed: the run records it and continues with sibling feeds.
    """

    def __init__(self, message: str, url: str | None = None, http_status: int | None = None):
        super().__init__(message)
        self.url = url
        self.http_status = http_status


class LockDenied(SyncStaysError):
    """A run was declined because the same key is already being synced."""

    def __init__(self, key: str, age_seconds: float | None = None):
        super().__init__(f"Sync already in progress for {key}")
        self.key = key
        self.age_seconds = age_seconds


class ReconciliationConflict(SyncStaysError):
    """A candidate booking could not be placed in the ledger; it is skipped."""

    def __init__(self, message: str, external_uid: str | None = None):
        super().__init__(message)
        self.external_uid = external_uid


class NotFoundError(SyncStaysError):
    """A property, feed or booking referenced by a trigger does not exist."""
