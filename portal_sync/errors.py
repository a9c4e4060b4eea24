"""Exception types raised by the portal sync pipeline."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import ApiError


class PortalError(Exception):
    """Base exception for all portal sync errors."""


class TransportError(PortalError):
    """Network communication failed and the retry deadline has passed."""


class OperationCancelled(PortalError):
    """A cancellation signal was observed while waiting."""


class ApiRequestError(PortalError):
    """The portal answered with a structured error."""

    def __init__(self, error: ApiError) -> None:
        super().__init__(f"HTTP {error.http_status}, {error.error_code}, {error.error_message}")
        self.error = error


class CryptoError(PortalError):
    """The crypto collaborator could not process a file."""


class DirectoryCreationError(PortalError):
    """A destination directory could not be created."""


class UnsafeFilterError(PortalError):
    """An empty filter was passed to a destructive bulk operation."""


class TerminalStatusError(PortalError):
    """An outbound message ended in error or rejected status."""


class NothingReceivedError(PortalError):
    """No message state was observed within the polling budget."""


class TaskError(PortalError):
    """A single-message operation failed for a reason shown to the user."""
