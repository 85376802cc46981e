from .error import (
    RelockError, ConfigError, LockClosingError, CloseConflictError, LockNotAcquiredError
)
