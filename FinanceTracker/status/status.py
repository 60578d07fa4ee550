"""Status definitions and exceptions for FinanceTracker.

This module provides:
    - Status: enumeration of possible engine states
    - STATUS_MESSAGE: user-facing messages for each status
    - get_message: retrieve the message for a status
    - BaseStatusException: base exception carrying a Status
    - Specific exceptions (e.g., ValidationException) for error handling in services

The remote exceptions split into two families callers must tell apart:
:class:`TransientRemoteException` (retry later, queue the write) and
:class:`PermanentRemoteException` (the backend rejected the payload).
"""
import enum
import logging
from typing import Dict, Optional


class Status(enum.StrEnum):
    """Enumeration of engine status codes."""
    UnknownStatus = enum.auto()
    Okay = enum.auto()

    # Config status
    ConfigNotFound = enum.auto()
    ConfigInvalid = enum.auto()

    # Authentication status
    ClientSecretNotFound = enum.auto()
    ClientSecretInvalid = enum.auto()
    CredsNotFound = enum.auto()
    CredsInvalid = enum.auto()
    NotAuthenticated = enum.auto()

    # Remote backend status
    SpreadsheetIdNotConfigured = enum.auto()
    RemoteTransient = enum.auto()
    RemotePermanent = enum.auto()
    BackendUnavailable = enum.auto()

    # Local status
    ValidationFailed = enum.auto()
    RecordNotFound = enum.auto()
    LocalStoreFailed = enum.auto()


STATUS_MESSAGE: Dict[Status, str] = {
    Status.UnknownStatus: 'Unknown status. Please check the settings.',
    Status.Okay: 'Everything is okay.',

    Status.ConfigNotFound: 'Could not find the configuration file.',
    Status.ConfigInvalid: 'The configuration seems to be incomplete, or contains invalid values.',

    Status.ClientSecretNotFound: 'Could not find the google client secret. Have you set up a valid Google client secret?',
    Status.ClientSecretInvalid: 'Could not verify the client secret. Have you set up a valid Google client secret?',
    Status.CredsNotFound: 'Could not find the credentials. Please sign in to your Google account.',
    Status.CredsInvalid: 'Could not verify the credentials. Please sign in again to your Google account.',
    Status.NotAuthenticated: 'Authentication error. Try signing in again to your Google account.',

    Status.SpreadsheetIdNotConfigured: 'Could not find a valid spreadsheet id. Have you set up the remote spreadsheet id in the settings?',
    Status.RemoteTransient: 'The remote backend is temporarily unreachable. Changes are kept locally and will sync later.',
    Status.RemotePermanent: 'The remote backend rejected the change.',
    Status.BackendUnavailable: 'The remote backend is unavailable. Working in local-only mode.',

    Status.ValidationFailed: 'The record is incomplete or invalid.',
    Status.RecordNotFound: 'The record could not be found.',
    Status.LocalStoreFailed: 'Could not save the change to the local store.',
}


def get_message(status: Status) -> str:
    """
    Get the message for a given status.

    Args:
        status (Status): The status enum.

    Returns:
        str: The message associated with the status.
    """
    return STATUS_MESSAGE.get(status, 'Unknown status')


class BaseStatusException(Exception):
    """Base exception for status-based errors in FinanceTracker.

    Attributes:
        status (Status): Status code associated with this error.
        status_message (str): User-facing message for the status.
        level (int): Logging level used when the exception is created.

    Args:
        message (str): Optional additional context for the error.
    """
    status = Status.UnknownStatus
    level = logging.ERROR

    def __init__(self, message: Optional[str] = None):
        self.status_message = get_message(self.status)
        exception_message = f'{self.status_message} {message}' if message else self.status_message
        super().__init__(exception_message)

        logging.log(self.level, exception_message)

        from ..core.signals import signals
        signals.error.emit(message or self.status_message)


class UnknownException(BaseStatusException):
    """Exception for an unknown error during status processing."""
    pass


class ConfigNotFoundException(BaseStatusException):
    """Exception raised when the configuration file cannot be found."""
    status = Status.ConfigNotFound


class ConfigInvalidException(BaseStatusException):
    """Exception raised when the configuration is invalid or malformed."""
    status = Status.ConfigInvalid


class ClientSecretNotFoundException(BaseStatusException):
    """Exception raised when the Google OAuth client secret file cannot be found."""
    status = Status.ClientSecretNotFound


class ClientSecretInvalidException(BaseStatusException):
    """Exception raised when the Google OAuth client secret is invalid or malformed."""
    status = Status.ClientSecretInvalid


class CredsNotFoundException(BaseStatusException):
    """Exception raised when stored Google credentials cannot be found."""
    status = Status.CredsNotFound


class CredsInvalidException(BaseStatusException):
    """Exception raised when stored Google credentials are invalid or expired."""
    status = Status.CredsInvalid


class AuthenticationExceptionException(BaseStatusException):
    """Exception raised when user is not authenticated with Google services."""
    status = Status.NotAuthenticated


class RemoteException(BaseStatusException):
    """Base class of every remote backend failure."""
    status = Status.RemoteTransient


class TransientRemoteException(RemoteException):
    """Network unreachable, backend timeout or a temporary backend error. Safe to retry."""
    status = Status.RemoteTransient
    level = logging.WARNING


class PermanentRemoteException(RemoteException):
    """The backend refused the request (validation or constraint failure). Retrying will not help."""
    status = Status.RemotePermanent


class BackendUnavailableException(RemoteException):
    """The backend cannot be reached or configured at all."""
    status = Status.BackendUnavailable
    level = logging.WARNING


class SpreadsheetIdNotConfiguredException(BackendUnavailableException):
    """Exception raised when the remote spreadsheet ID is not configured in settings."""
    status = Status.SpreadsheetIdNotConfigured


class ValidationException(BaseStatusException):
    """Exception raised when input is malformed or incomplete."""
    status = Status.ValidationFailed
    level = logging.WARNING


class RecordNotFoundException(BaseStatusException):
    """Exception raised when a record id does not exist in the local store."""
    status = Status.RecordNotFound
    level = logging.WARNING


class LocalStoreException(BaseStatusException):
    """Exception raised when the local store could not persist a change."""
    status = Status.LocalStoreFailed
