"""Ledger failure types.

Expected absence is never an error: read operations return ``None`` or an
``exists=False`` view instead.
"""


class LedgerError(Exception):
    """Base class for ledger failures."""


class LedgerConflict(LedgerError):
    """A write would violate a ledger invariant.

    ``existing`` carries the conflicting stored value when there is one, so
    callers can reconcile by adopting it.
    """

    def __init__(self, message: str, existing: str | None = None) -> None:
        super().__init__(message)
        self.existing = existing


class LedgerNotFound(LedgerError):
    """A row the caller expected to exist is missing."""


class LedgerBackendError(LedgerError):
    """The storage backend is unavailable or unsupported. Safe to retry."""
