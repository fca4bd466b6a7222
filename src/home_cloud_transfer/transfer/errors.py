"""Exceptions raised by the transfer engine and orchestrator."""

from __future__ import annotations


class TransferError(RuntimeError):
    """Base class for transfer failures."""


class NotAuthenticatedError(TransferError):
    """A transfer was requested before authenticating with the cloud service."""


class NoResumableSessionError(TransferError):
    """Resume was requested but no InProgress session exists."""


class SessionRestoreError(TransferError):
    """The stored session credential was rejected by the cloud service."""


class TransferAlreadyRunningError(TransferError):
    """A background transfer is already running in this process."""


class RemoteUnavailableError(TransferError):
    """The cloud service is unreachable or refuses our credentials."""

    def __init__(self, message: str, *, status_code: int = 0) -> None:
        super().__init__(message)
        self.status_code = status_code


class RemoteListError(TransferError):
    """The remote duplicate-detection list could not be fetched."""

    def __init__(self, message: str, *, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class UnresolvedReferenceError(TransferError):
    """A required reference has no remote counterpart."""


class TransferCancelled(Exception):  # noqa: N818
    """Raised inside the background run when cancellation was requested."""
