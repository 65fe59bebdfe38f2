"""
Error Classifier - Map raw transport errors to an ErrorCategory

Translates paramiko / ftplib / socket failures into a small taxonomy used to
decide between retrying, reconnecting and failing fast, and builds
user-friendly messages with suggestions for resolution.
"""
import errno
import posixpath
import re
import socket
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Type, Union

import paramiko

from .errors import (
    AuthenticationError,
    ConflictError,
    ErrorCategory,
    NotFoundError,
    OperationTimeoutError,
    RemoteConnectionError,
    RemoteFileError,
)

import logging
logger = logging.getLogger(__name__)


@dataclass
class ErrorInfo:
    """Structured, user-facing description of a failure."""
    title: str
    message: str
    suggestion: str
    category: ErrorCategory
    original_error: str

    def format_full(self) -> str:
        """Format complete error message for display."""
        parts = [self.title, "", self.message]
        if self.suggestion:
            parts.extend(["", "Suggestion:", self.suggestion])
        return "\n".join(parts)

    def format_short(self) -> str:
        """Format short error message."""
        return f"{self.title}: {self.message}"


# Ordered: the first matching pattern wins. "Connection timed out" must hit
# TIMEOUT before CONNECTION_LOST, "host not found" UNREACHABLE before NOT_FOUND.
ERROR_PATTERNS: List[Tuple[str, ErrorCategory]] = [
    # Target already exists
    (r"file exists|\beexist\b|already exists", ErrorCategory.ALREADY_EXISTS),
    # Authentication / permissions
    (
        r"authentication (?:failed|methods failed)|all configured authentication"
        r"|permission denied|access denied|login incorrect|not logged in"
        r"|bad passphrase|^530\b|\beacces\b|\beperm\b",
        ErrorCategory.AUTH_FAILURE,
    ),
    # Host name resolution / routing
    (
        r"\benotfound\b|\behostunreach\b|\benetunreach\b|getaddrinfo"
        r"|name or service not known|nodename nor servname|host not found"
        r"|no route to host|network is unreachable|host is unreachable",
        ErrorCategory.UNREACHABLE,
    ),
    # Missing remote path
    (r"no such file|\benoent\b|does not exist|^550\b|^450\b", ErrorCategory.NOT_FOUND),
    # Refused
    (r"\beconnrefused\b|connection refused|actively refused", ErrorCategory.REFUSED),
    # Timeouts
    (r"\betimedout\b|timed out|timeout", ErrorCategory.TIMEOUT),
    # Dropped sessions
    (
        r"\beconnreset\b|\bepipe\b|\beconnaborted\b|broken pipe|connection reset"
        r"|connection (?:closed|lost|terminated|interrupted|aborted)"
        r"|socket (?:closed|hang up)|control socket closed|lost connection"
        r"|server closed connection|passive connection failed|handshake failed"
        r"|error reading ssh protocol banner|ssh session not active"
        r"|not connected|eof (?:during|received)|^42[156]\b",
        ErrorCategory.CONNECTION_LOST,
    ),
]

_COMPILED_PATTERNS = [
    (re.compile(pattern, re.IGNORECASE | re.MULTILINE), category)
    for pattern, category in ERROR_PATTERNS
]

_ERRNO_CATEGORIES: Dict[int, ErrorCategory] = {
    errno.ECONNRESET: ErrorCategory.CONNECTION_LOST,
    errno.EPIPE: ErrorCategory.CONNECTION_LOST,
    errno.ECONNABORTED: ErrorCategory.CONNECTION_LOST,
    errno.ETIMEDOUT: ErrorCategory.TIMEOUT,
    errno.ECONNREFUSED: ErrorCategory.REFUSED,
    errno.EHOSTUNREACH: ErrorCategory.UNREACHABLE,
    errno.ENETUNREACH: ErrorCategory.UNREACHABLE,
    errno.ENOENT: ErrorCategory.NOT_FOUND,
    errno.EEXIST: ErrorCategory.ALREADY_EXISTS,
    errno.EACCES: ErrorCategory.AUTH_FAILURE,
    errno.EPERM: ErrorCategory.AUTH_FAILURE,
}

# Checked in order, so subclasses must come before their bases.
_TYPE_CATEGORIES: List[Tuple[Tuple[Type[BaseException], ...], ErrorCategory]] = [
    ((socket.gaierror,), ErrorCategory.UNREACHABLE),
    ((ConnectionRefusedError,), ErrorCategory.REFUSED),
    (
        (ConnectionResetError, ConnectionAbortedError, BrokenPipeError, EOFError),
        ErrorCategory.CONNECTION_LOST,
    ),
    ((socket.timeout, TimeoutError, FutureTimeoutError), ErrorCategory.TIMEOUT),
    ((FileNotFoundError,), ErrorCategory.NOT_FOUND),
    ((FileExistsError,), ErrorCategory.ALREADY_EXISTS),
    ((PermissionError, paramiko.AuthenticationException), ErrorCategory.AUTH_FAILURE),
]

# Error categories that mean the session itself is gone.
CONNECTION_CATEGORIES = frozenset({ErrorCategory.CONNECTION_LOST, ErrorCategory.TIMEOUT})


def _error_text(error: Union[BaseException, str]) -> str:
    if isinstance(error, str):
        return error
    text = str(error)
    code = getattr(error, "code", None)
    if isinstance(code, str) and code not in text:
        text = f"{code} {text}"
    return text


def classify(error: Union[BaseException, str]) -> ErrorCategory:
    """
    Classify a raw transport error.

    Args:
        error: Exception raised by a protocol library, or a raw error string

    Returns:
        The matching ErrorCategory (UNKNOWN if nothing matched)
    """
    if isinstance(error, RemoteFileError):
        return error.category

    if isinstance(error, BaseException):
        for types, category in _TYPE_CATEGORIES:
            if isinstance(error, types):
                return category

        err_no = getattr(error, "errno", None)
        if isinstance(err_no, int) and err_no in _ERRNO_CATEGORIES:
            return _ERRNO_CATEGORIES[err_no]

    text = _error_text(error)
    for pattern, category in _COMPILED_PATTERNS:
        if pattern.search(text):
            return category

    return ErrorCategory.UNKNOWN


def is_connection_error(error: Union[BaseException, str]) -> bool:
    """True when the error means the session was lost or stopped responding."""
    return classify(error) in CONNECTION_CATEGORIES


_TITLES = {
    ErrorCategory.CONNECTION_LOST: "Connection lost",
    ErrorCategory.TIMEOUT: "Operation timed out",
    ErrorCategory.AUTH_FAILURE: "Access denied",
    ErrorCategory.NOT_FOUND: "Not found",
    ErrorCategory.REFUSED: "Connection refused",
    ErrorCategory.UNREACHABLE: "Server unreachable",
    ErrorCategory.ALREADY_EXISTS: "Already exists",
    ErrorCategory.UNKNOWN: "Remote operation failed",
}


def _suggestion(category: ErrorCategory, path: Optional[str]) -> str:
    target_dir = posixpath.dirname(path) if path else ""
    if category == ErrorCategory.NOT_FOUND:
        if target_dir:
            return (f'Check that "{path}" exists. If the parent directory "{target_dir}" '
                    f"is missing, create it first and try again.")
        return "Check that the remote path exists and try again."
    if category == ErrorCategory.AUTH_FAILURE:
        where = f' for "{target_dir or path}"' if path else ""
        return (f"Check the username, password or key, and that you have the required "
                f"permissions{where}. You may need to change permissions with chmod "
                f"or contact the server administrator.")
    if category == ErrorCategory.ALREADY_EXISTS:
        return ("A file or directory already exists at the target location. Choose a "
                "different name, delete the existing entry, or confirm the overwrite.")
    if category in CONNECTION_CATEGORIES:
        return ("This is usually a temporary network issue. If it keeps happening, "
                "disconnect and connect again manually.")
    if category == ErrorCategory.REFUSED:
        return "Check that the server is running and listening on the configured port."
    if category == ErrorCategory.UNREACHABLE:
        return ("Check the host name or IP address and your network connection. "
                "Is a VPN required for this server?")
    return "Check the connection settings and try again."


def describe(
    error: Union[BaseException, str],
    operation: str = "",
    path: Optional[str] = None,
) -> ErrorInfo:
    """
    Build a user-friendly description of an error.

    Args:
        error: The exception (or raw message) that occurred
        operation: Human readable operation name, e.g. "rename file"
        path: Remote path involved, used in suggestions

    Returns:
        ErrorInfo with title, message and suggestion
    """
    category = classify(error)
    original = _error_text(error)
    path = path or getattr(error, "path", None)

    if isinstance(error, RemoteFileError):
        message = error.message
        suggestion = error.suggestion or _suggestion(category, path)
    else:
        target = f' "{path}"' if path else ""
        prefix = f"Cannot {operation}{target}: " if operation else ""
        message = f"{prefix}{original}"
        suggestion = _suggestion(category, path)

    return ErrorInfo(
        title=_TITLES[category],
        message=message,
        suggestion=suggestion,
        category=category,
        original_error=original,
    )


_CATEGORY_ERRORS: Dict[ErrorCategory, Type[RemoteFileError]] = {
    ErrorCategory.CONNECTION_LOST: RemoteConnectionError,
    ErrorCategory.REFUSED: RemoteConnectionError,
    ErrorCategory.UNREACHABLE: RemoteConnectionError,
    ErrorCategory.TIMEOUT: OperationTimeoutError,
    ErrorCategory.AUTH_FAILURE: AuthenticationError,
    ErrorCategory.NOT_FOUND: NotFoundError,
    ErrorCategory.ALREADY_EXISTS: ConflictError,
    ErrorCategory.UNKNOWN: RemoteFileError,
}


def to_typed_error(
    error: BaseException,
    operation: str = "",
    path: Optional[str] = None,
) -> RemoteFileError:
    """
    Convert a raw transport error into the matching RemoteFileError subclass.

    Errors that are already typed are returned unchanged. The caller is
    expected to ``raise to_typed_error(exc, ...) from exc``.
    """
    if isinstance(error, RemoteFileError):
        return error

    info = describe(error, operation, path)
    error_class = _CATEGORY_ERRORS[info.category]
    return error_class(
        info.message,
        suggestion=info.suggestion,
        path=path,
        category=info.category,
    )
