"""
Release notifications for local waiters.

One pub/sub subscription per Lock on ``<namespace>-release``. Every message
carries the key of a lock that was just released; all local waiters parked
on that key are woken together. Delivery is best-effort, callers always wait
with a timeout.
"""
import asyncio
import logging
from typing import Dict, Optional, Set, Union
from redis.asyncio import Redis, RedisError
from redis.asyncio.client import PubSub

logger = logging.getLogger(__name__)


def _decode(value: Union[bytes, str]) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value


class ReleaseNotifier:
    def __init__(self, redis: Redis, channel: str, reconnect_delay: float = 1.0):
        self._redis = redis
        self.channel = channel
        self.reconnect_delay = reconnect_delay
        self._pubsub: Optional[PubSub] = None
        self._listener: Optional[asyncio.Task] = None
        self._starting: Optional[asyncio.Future] = None
        self._waiters: Dict[str, Set[asyncio.Future]] = {}

    @property
    def subscribed(self) -> bool:
        return self._listener is not None

    def waiter_count(self, key: str) -> int:
        return len(self._waiters.get(key, ()))

    async def start(self) -> None:
        """Subscribe once; concurrent callers share the same attempt."""
        if self._listener is not None:
            return
        if self._starting is None:
            self._starting = asyncio.ensure_future(self._subscribe())
            self._starting.add_done_callback(self._on_start_done)
        await asyncio.shield(self._starting)

    def _on_start_done(self, future: asyncio.Future) -> None:
        # A failed subscribe may be retried by the next operation
        if future.cancelled() or future.exception() is not None:
            self._starting = None

    async def _subscribe(self) -> None:
        pubsub = self._redis.pubsub(ignore_subscribe_messages=True)
        try:
            await pubsub.subscribe(self.channel)
        except BaseException:
            await pubsub.aclose()
            raise
        self._pubsub = pubsub
        self._listener = asyncio.create_task(self._listen())
        logger.info(f"Subscribed to {self.channel}")

    async def _listen(self) -> None:
        while True:
            try:
                async for message in self._pubsub.listen():
                    if message.get("type") != "message":
                        continue
                    try:
                        channel = _decode(message["channel"])
                        key = _decode(message["data"])
                    except UnicodeDecodeError:
                        logger.warning(f"Ignoring undecodable message on {self.channel}: {message['data']!r}")
                        continue
                    if channel != self.channel:
                        continue
                    self.notify(key)
                return
            except asyncio.CancelledError:
                raise
            except RedisError as e:
                logger.warning(f"Release listener on {self.channel} failed: {e}; retrying in {self.reconnect_delay}s")
                await asyncio.sleep(self.reconnect_delay)
            except Exception as e:
                logger.error(f"Unexpected error in release listener on {self.channel}: {e}", exc_info=True)
                await asyncio.sleep(self.reconnect_delay)

    def notify(self, key: str) -> int:
        """Wake every waiter registered for ``key``. Returns how many were woken."""
        waiters = self._waiters.pop(key, None)
        if not waiters:
            return 0
        woken = 0
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(key)
                woken += 1
        logger.debug(f"Release of {key} woke {woken} waiter(s)", extra={"lock_key": key})
        return woken

    async def wait(self, key: str, timeout: Optional[float]) -> bool:
        """
        Park until ``key`` is released or ``timeout`` seconds pass.
        Returns True when woken by a notification.
        """
        waiter = asyncio.get_running_loop().create_future()
        self._waiters.setdefault(key, set()).add(waiter)
        try:
            done, _ = await asyncio.wait({waiter}, timeout=timeout)
            return bool(done)
        finally:
            self._discard(key, waiter)

    def _discard(self, key: str, waiter: asyncio.Future) -> None:
        waiters = self._waiters.get(key)
        if waiters is not None:
            waiters.discard(waiter)
            if not waiters:
                del self._waiters[key]
        if not waiter.done():
            waiter.cancel()

    async def close(self) -> None:
        if self._starting is not None and not self._starting.done():
            try:
                await self._starting
            except RedisError:
                # already raised to the operation that triggered the subscribe
                pass
        if self._listener is not None:
            self._listener.cancel()
            # asyncio.wait only raises if this task itself is cancelled
            await asyncio.wait({self._listener})
            self._listener = None
        if self._pubsub is not None:
            await self._pubsub.aclose()
            self._pubsub = None
        for waiters in self._waiters.values():
            for waiter in waiters:
                if not waiter.done():
                    waiter.cancel()
        self._waiters.clear()
        logger.info(f"Unsubscribed from {self.channel}")
