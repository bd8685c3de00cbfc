"""Refresh pipeline error taxonomy.

Every error here is terminal for a run: nothing is retried internally and the
orchestrator rolls the transaction back before re-raising.
"""

from __future__ import annotations


class RefreshError(Exception):
    """Base class for refresh pipeline failures."""


class SourceUnavailable(RefreshError):
    """An external source could not be reached or returned a non-success status."""

    def __init__(self, source: str, message: str, status_code: int | None = None):
        self.source = source
        self.status_code = status_code
        super().__init__(f"{source}: {message}")


class SourceDataInvalid(RefreshError):
    """An external source answered, but the payload is empty or malformed."""

    def __init__(self, source: str, message: str):
        self.source = source
        super().__init__(f"{source}: {message}")


class IncompleteSourceData(RefreshError):
    """Too few locations matched the regional index rows to trust the pull."""

    def __init__(self, updated_count: int, threshold: int, unmatched: list[str] | None = None):
        self.updated_count = updated_count
        self.threshold = threshold
        self.unmatched = list(unmatched or [])
        super().__init__(
            f"Only {updated_count} states updated with RPP data "
            f"(minimum {threshold}); refusing to commit a partial index set"
        )


class PersistenceError(RefreshError):
    """A database statement issued by the pipeline failed."""
