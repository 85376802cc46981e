from .sync import (
    Lock, LockHandle, LockResult, LockStatus,
    ConnectionString, ConnectionOptions, ExistingConnection, ConnectionSource,
)
from .errors import (
    RelockError, ConfigError, LockClosingError, CloseConflictError, LockNotAcquiredError
)

__all__ = [
    'Lock',
    'LockHandle',
    'LockResult',
    'LockStatus',
    'ConnectionString',
    'ConnectionOptions',
    'ExistingConnection',
    'ConnectionSource',
    'RelockError',
    'ConfigError',
    'LockClosingError',
    'CloseConflictError',
    'LockNotAcquiredError',
]
