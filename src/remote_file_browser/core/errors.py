"""
Error taxonomy for remote file operations.

Every failure that leaves the connection layer is one of these typed errors.
Raw transport exceptions are converted by
:func:`remote_file_browser.core.error_classifier.to_typed_error`.
"""
from enum import Enum
from typing import Optional


class ErrorCategory(str, Enum):
    """Classification of transport errors used for retry decisions."""
    CONNECTION_LOST = "connection-lost"
    TIMEOUT = "timeout"
    AUTH_FAILURE = "auth-failure"
    NOT_FOUND = "not-found"
    REFUSED = "refused"
    UNREACHABLE = "unreachable"
    ALREADY_EXISTS = "already-exists"
    UNKNOWN = "unknown"


class KeyConversionReason(str, Enum):
    """Why a private key could not be turned into usable key material."""
    BAD_PASSPHRASE = "bad-passphrase"
    PASSPHRASE_REQUIRED = "passphrase-required"
    CORRUPT_FORMAT = "corrupt-format"
    UNSUPPORTED_VERSION = "unsupported-version"


class RemoteFileError(Exception):
    """Base class for all errors raised by the connection layer."""

    category = ErrorCategory.UNKNOWN

    def __init__(
        self,
        message: str,
        *,
        suggestion: Optional[str] = None,
        path: Optional[str] = None,
        category: Optional[ErrorCategory] = None,
    ):
        super().__init__(message)
        self.message = message
        self.suggestion = suggestion
        self.path = path
        if category is not None:
            self.category = category

    def __str__(self) -> str:
        return self.message


class AuthenticationError(RemoteFileError):
    """Credentials were rejected after every configured method was tried."""
    category = ErrorCategory.AUTH_FAILURE


class KeyConversionError(AuthenticationError):
    """A private key could not be parsed or decrypted."""

    def __init__(self, message: str, reason: KeyConversionReason, **kwargs):
        super().__init__(message, **kwargs)
        self.reason = reason


class RemoteConnectionError(RemoteFileError):
    """Transport-level failure (lost, refused or unreachable server)."""
    category = ErrorCategory.CONNECTION_LOST


class OperationTimeoutError(RemoteFileError):
    """A connect or protocol call exceeded its configured timeout."""
    category = ErrorCategory.TIMEOUT


class NotFoundError(RemoteFileError):
    """The remote path does not exist."""
    category = ErrorCategory.NOT_FOUND


class OperationInProgressError(RemoteFileError):
    """The same operation on the same path is already running.

    Never retried automatically: the caller has to wait for the first
    request to finish.
    """


class ConflictError(RemoteFileError):
    """The target already exists; the caller must confirm an overwrite."""
    category = ErrorCategory.ALREADY_EXISTS


class UnsupportedOperationError(RemoteFileError):
    """The operation is not possible for this protocol or these arguments."""


class ConfigurationError(RemoteFileError):
    """Invalid connection configuration, or no configuration available."""
