"""Custom exceptions for the revenue attribution engine."""


class RevshareError(Exception):
    """Base exception for all attribution engine errors."""


class OwnershipUnavailableError(RevshareError):
    """Raised when channel bindings or owner records cannot be fetched.

    Fatal for the batch: nothing is persisted.
    """


class SyncLockedError(RevshareError):
    """Raised when the persistence lock is held by another batch."""

    def __init__(self, lock_key: str):
        self.lock_key = lock_key
        super().__init__(f"Stats persistence lock already held, key={lock_key}")

