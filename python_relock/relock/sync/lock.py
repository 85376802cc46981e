import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Union
from redis.asyncio import Redis, RedisError

from ..common.config.models import RelockConfig
from ..errors import LockClosingError, LockNotAcquiredError
from .connection import ConnectionOptions, ConnectionSource, open_command_connection
from .draining import OperationTracker
from .models import (
    LockHandle, LockRef, LockResult, LockStatus,
    counter_key, lock_key, lock_ref_fields, release_channel,
)
from .notifier import ReleaseNotifier
from .scripts import LockScripts
from ..utils.logger import LockLogAdapter

logger = logging.getLogger(__name__)

# Floor for the fallback poll so a nearly expired lock does not cause a tight retry loop
MIN_RETRY_DELAY_MS = 100


def _decode(value: Union[bytes, str]) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value


def _check_id(lock_id: str) -> None:
    if not isinstance(lock_id, str) or not lock_id:
        raise ValueError("lock id must be a non-empty string")


def _check_ttl(ttl: int, name: str = "ttl") -> None:
    if isinstance(ttl, bool) or not isinstance(ttl, int) or ttl <= 0:
        raise ValueError(f"{name} must be a positive integer (milliseconds), got {ttl!r}")


class Lock:
    """
    Redis backed mutual exclusion shared by any number of processes.

    Every lock lives at ``<namespace>:<id>`` and carries an ``index`` drawn
    from the namespace-wide counter ``<namespace>index``. Release and renew
    only act when the caller presents the index the lock was acquired with,
    so a holder whose lock already expired can never disturb the next holder.
    Releases are announced on ``<namespace>-release`` so waiters in any
    process retry right away instead of polling.

    Usage::

        async with Lock(ConnectionString("redis://localhost:6379/0")) as locks:
            lock = await locks.wait_acquire_lock("report", 30000, 5000)
            if lock.success:
                ...
                await locks.release_lock(lock)
    """

    def __init__(
        self,
        connection: Optional[ConnectionSource] = None,
        namespace: str = "lock",
        lock_ttl: int = 30000,
        wait_ttl: int = 0,
    ):
        command = open_command_connection(connection)
        self._redis: Redis = command.client
        self._owns_connection = command.owned
        self.namespace = namespace or "lock"
        self.lock_ttl = lock_ttl
        self.wait_ttl = wait_ttl

        self._scripts = LockScripts(self._redis)
        self._notifier = ReleaseNotifier(self._redis, release_channel(self.namespace))
        self._operations = OperationTracker(f"Lock[{self.namespace}]")
        self._log = LockLogAdapter(logger, self.namespace)

    @classmethod
    def from_config(cls, config: RelockConfig) -> "Lock":
        return cls(
            ConnectionOptions.from_config(config.redis),
            namespace=config.namespace,
            lock_ttl=config.lock_ttl,
            wait_ttl=config.wait_ttl,
        )

    @property
    def closing(self) -> bool:
        return self._operations.closing

    def _key(self, lock_id: str) -> str:
        return lock_key(self.namespace, lock_id)

    async def connect(self) -> None:
        """Subscribe to release notifications ahead of the first wait."""
        if self._operations.closing:
            raise LockClosingError(f"cannot connect: Lock[{self.namespace}] is closing")
        await self._notifier.start()

    async def __aenter__(self) -> "Lock":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    # Public operations, each tracked as one in-flight entry for draining

    async def acquire_lock(self, lock_id: str, ttl: int) -> LockHandle:
        """
        Try once to take the lock for ``lock_id`` for ``ttl`` milliseconds.

        When someone else holds it, ``success`` is False, ``index`` is -1 and
        ``ttl`` is the remaining lifetime of the current holder's lock.
        """
        async with self._operations.track("acquire lock"):
            return await self._acquire(lock_id, ttl)

    async def release_lock(self, lock: LockRef) -> LockResult:
        """
        Release a lock previously returned by acquire_lock / wait_acquire_lock.

        ``result`` is ``released`` on success, ``expired`` when the lock is
        already gone (still a success) and ``conflict`` when a newer holder
        owns it, in which case ``index`` is the holder's index.
        """
        async with self._operations.track("release lock"):
            return await self._release(lock)

    async def renew_lock(self, lock: LockRef, ttl: int) -> LockResult:
        """Reset the expiry of a held lock to ``ttl`` milliseconds."""
        async with self._operations.track("renew lock"):
            return await self._renew(lock, ttl)

    async def wait_acquire_lock(self, lock_id: str, lock_ttl: int, wait_ttl: int = 0) -> LockHandle:
        """
        Acquire ``lock_id``, waiting up to ``wait_ttl`` milliseconds for it to
        become free (0 waits indefinitely).

        Retries as soon as a release is announced, and otherwise once the
        current holder's lock is due to expire. After ``wait_ttl`` one last
        attempt is made and its result returned as is. ``immediate`` tells
        whether the very first attempt succeeded.
        """
        async with self._operations.track("wait for lock"):
            return await self._wait_acquire(lock_id, lock_ttl, wait_ttl)

    async def close(self, close_primary: Optional[bool] = None) -> None:
        """
        Stop accepting operations, wait for in-flight ones, then close the
        subscription and, if ``close_primary`` (default: this Lock created
        its own connection), the command connection.

        Repeated calls join the same shutdown; asking for a different
        ``close_primary`` raises CloseConflictError.
        """
        if close_primary is None:
            close_primary = self._owns_connection
        await self._operations.shutdown(close_primary, self._close_connections)

    @asynccontextmanager
    async def hold(
        self,
        lock_id: str,
        lock_ttl: Optional[int] = None,
        wait_ttl: Optional[int] = None,
        renew: bool = False,
    ) -> AsyncIterator[LockHandle]:
        """
        Hold ``lock_id`` for the body of an ``async with`` block.

        Waits like wait_acquire_lock and raises LockNotAcquiredError if the
        wait gives up. With ``renew`` the lock is renewed every third of its
        TTL while the block runs. The lock is released on exit. The whole
        block counts as one in-flight operation, so close() waits for it.
        """
        lock_ttl = self.lock_ttl if lock_ttl is None else lock_ttl
        wait_ttl = self.wait_ttl if wait_ttl is None else wait_ttl

        async with self._operations.track("hold lock"):
            handle = await self._wait_acquire(lock_id, lock_ttl, wait_ttl)
            if not handle.success:
                raise LockNotAcquiredError(lock_id, handle.ttl)

            keeper = asyncio.create_task(self._keep_alive(handle, lock_ttl)) if renew else None
            try:
                yield handle
            finally:
                if keeper is not None:
                    keeper.cancel()
                    # asyncio.wait only raises if this task itself is cancelled
                    await asyncio.wait({keeper})
                result = await self._release(handle)
                if not result.success:
                    self._log.warning(
                        f"Lock {handle.id} was taken over before release ({result.result.value}, index {result.index})",
                        extra={"lock_key": self._key(handle.id), "lock_index": handle.index, "lock_result": result.result.value},
                    )

    # Internal operations, not tracked individually

    async def _acquire(self, lock_id: str, ttl: int) -> LockHandle:
        _check_id(lock_id)
        _check_ttl(ttl)
        key = self._key(lock_id)
        success, index, remaining = await self._scripts.acquire(
            keys=[key, counter_key(self.namespace)], args=[ttl]
        )
        handle = LockHandle(id=lock_id, success=bool(success), index=int(index), ttl=int(remaining))
        if handle.success:
            self._log.debug(f"Acquired {key} with index {handle.index}", extra={"lock_key": key, "lock_index": handle.index})
        return handle

    async def _release(self, lock: LockRef) -> LockResult:
        lock_id, index = lock_ref_fields(lock)
        key = self._key(lock_id)
        success, status, current = await self._scripts.release(
            keys=[key], args=[index, release_channel(self.namespace)]
        )
        result = LockResult(id=lock_id, success=bool(success), result=LockStatus(_decode(status)), index=int(current))
        self._log.debug(
            f"Release of {key} index {index}: {result.result.value}",
            extra={"lock_key": key, "lock_index": index, "lock_result": result.result.value},
        )
        return result

    async def _renew(self, lock: LockRef, ttl: int) -> LockResult:
        _check_ttl(ttl)
        lock_id, index = lock_ref_fields(lock)
        key = self._key(lock_id)
        success, status, current = await self._scripts.renew(keys=[key], args=[index, ttl])
        return LockResult(id=lock_id, success=bool(success), result=LockStatus(_decode(status)), index=int(current))

    async def _wait_acquire(self, lock_id: str, lock_ttl: int, wait_ttl: int) -> LockHandle:
        _check_id(lock_id)
        _check_ttl(lock_ttl, "lock_ttl")
        if isinstance(wait_ttl, bool) or not isinstance(wait_ttl, int) or wait_ttl < 0:
            raise ValueError(f"wait_ttl must be a non-negative integer (milliseconds), got {wait_ttl!r}")

        await self._notifier.start()

        loop = asyncio.get_running_loop()
        deadline = loop.time() + wait_ttl / 1000.0 if wait_ttl > 0 else None
        key = self._key(lock_id)
        attempts = 0

        while True:
            lock = await self._acquire(lock_id, lock_ttl)
            attempts += 1
            expired = deadline is not None and loop.time() >= deadline
            if lock.success or expired:
                lock.immediate = lock.success and attempts == 1
                return lock

            # Wake on release or when the holder's lock should have expired,
            # never sleeping past the overall deadline
            delay = max(lock.ttl, MIN_RETRY_DELAY_MS) / 1000.0
            if deadline is not None:
                delay = min(delay, max(deadline - loop.time(), 0.0))
            notified = await self._notifier.wait(key, delay)
            self._log.debug(
                f"Retrying {key} after {'release' if notified else 'timeout'} (attempt {attempts + 1})",
                extra={"lock_key": key},
            )

    async def _keep_alive(self, handle: LockHandle, ttl: int) -> None:
        key = self._key(handle.id)
        interval = ttl / 3 / 1000.0
        while True:
            await asyncio.sleep(interval)
            try:
                result = await self._renew(handle, ttl)
            except RedisError as e:
                self._log.error(f"Renewing {key} failed: {e}", extra={"lock_key": key})
                continue
            if not result.success:
                self._log.warning(
                    f"Lost {key} during renewal ({result.result.value})",
                    extra={"lock_key": key, "lock_index": handle.index, "lock_result": result.result.value},
                )
                return

    async def _close_connections(self, close_primary: bool) -> None:
        await self._notifier.close()
        if close_primary:
            await self._redis.aclose()
