from .connection import ConnectionString, ConnectionOptions, ExistingConnection, ConnectionSource
from .draining import OperationTracker
from .lock import Lock, MIN_RETRY_DELAY_MS
from .models import LockHandle, LockResult, LockStatus
from .notifier import ReleaseNotifier

__all__ = [
    'Lock',
    'MIN_RETRY_DELAY_MS',
    'LockHandle',
    'LockResult',
    'LockStatus',
    'ConnectionString',
    'ConnectionOptions',
    'ExistingConnection',
    'ConnectionSource',
    'OperationTracker',
    'ReleaseNotifier',
]
