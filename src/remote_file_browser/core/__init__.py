"""
Core module - Connection lifecycle, error taxonomy and operation bookkeeping.

- errors / error_classifier: typed errors and raw error classification
- retry_policy: exponential backoff
- operation_locks: per (verb, path) in-flight registry
- health_monitor: health counters and keep-alive
- events: session states and transition events

ConnectionManager and RemoteFileSync live in ``core.connection_manager`` and
``core.file_sync`` and are re-exported by the top-level package.
"""

from .errors import (
    AuthenticationError,
    ConfigurationError,
    ConflictError,
    ErrorCategory,
    KeyConversionError,
    KeyConversionReason,
    NotFoundError,
    OperationInProgressError,
    OperationTimeoutError,
    RemoteConnectionError,
    RemoteFileError,
    UnsupportedOperationError,
)
from .error_classifier import ErrorInfo, classify, describe, to_typed_error
from .events import SessionState, StateEventBus, StateTransition
from .health_monitor import HealthMonitor, HealthSnapshot, KeepAliveStatus
from .operation_locks import LockVerb, OperationLockRegistry
from .retry_policy import RetryPolicy

__all__ = [
    # Errors
    'AuthenticationError',
    'ConfigurationError',
    'ConflictError',
    'ErrorCategory',
    'KeyConversionError',
    'KeyConversionReason',
    'NotFoundError',
    'OperationInProgressError',
    'OperationTimeoutError',
    'RemoteConnectionError',
    'RemoteFileError',
    'UnsupportedOperationError',
    # Classification
    'ErrorInfo',
    'classify',
    'describe',
    'to_typed_error',
    # State / health
    'HealthMonitor',
    'HealthSnapshot',
    'KeepAliveStatus',
    'SessionState',
    'StateEventBus',
    'StateTransition',
    # Locks / retry
    'LockVerb',
    'OperationLockRegistry',
    'RetryPolicy',
]
