class RelockError(Exception):
    """Base error for relock"""
    def __init__(self, message: str = None, source: Exception = None):
        self.message = message
        self.source = source
        super().__init__(self.__str__())

    def __str__(self):
        msg = self.message or self.__class__.__name__
        if self.source:
            return f"{msg}: {self.source}"
        return msg

class ConfigError(RelockError):
    pass

class LockClosingError(RelockError):
    """Raised for any lock operation started after close() began."""
    pass

class CloseConflictError(RelockError):
    """Raised when close() is repeated with a different close_primary choice."""
    pass

class LockNotAcquiredError(RelockError):
    def __init__(self, lock_id: str, ttl: int = None):
        self.lock_id = lock_id
        self.ttl = ttl
        super().__init__(f"Could not acquire lock {lock_id}")
