from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional, Tuple, Union


class LockStatus(str, Enum):
    RELEASED = "released"
    EXPIRED = "expired"
    CONFLICT = "conflict"
    RENEWED = "renewed"
    MISSING = "missing"


@dataclass
class LockHandle:
    """
    Outcome of an acquire attempt.

    ``index`` is the namespace-wide acquisition number (``-1`` when the lock
    was not obtained) and ``ttl`` is either the granted TTL or, on failure,
    the remaining TTL of the lock currently held by someone else.
    ``immediate`` is only set by wait-acquire.
    """
    id: str
    success: bool
    index: int
    ttl: int
    immediate: Optional[bool] = None


@dataclass
class LockResult:
    id: str
    success: bool
    result: LockStatus
    index: int


LockRef = Union[LockHandle, Mapping[str, Any], Any]


def lock_key(namespace: str, lock_id: str) -> str:
    return f"{namespace}:{lock_id}"


def counter_key(namespace: str) -> str:
    return f"{namespace}index"


def release_channel(namespace: str) -> str:
    return f"{namespace}-release"


def lock_ref_fields(lock: LockRef) -> Tuple[str, int]:
    """Extract (id, index) from a handle, mapping or any object carrying both."""
    if isinstance(lock, Mapping):
        return lock["id"], int(lock["index"])
    return lock.id, int(lock.index)
