import os
import sys
import asyncio
import pytest

# ensure project root on path for imports
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from fakeredis import FakeServer
from fakeredis.aioredis import FakeRedis

from relock.sync import Lock, ExistingConnection
from relock.errors import LockNotAcquiredError


def make_lock(namespace: str = "testLock", server: FakeServer = None):
    client = FakeRedis(server=server or FakeServer())
    return Lock(ExistingConnection(client), namespace=namespace), client


@pytest.mark.asyncio
async def test_wait_acquire_immediately_when_free():
    lock, _ = make_lock()

    held = await lock.wait_acquire_lock("free", 60000, 1500)
    assert held.success is True
    assert held.immediate is True

    await lock.release_lock(held)
    await lock.close()


@pytest.mark.asyncio
async def test_wait_and_acquire_after_release():
    lock, _ = make_lock()
    loop = asyncio.get_running_loop()

    initial = await lock.acquire_lock("busy", 60000)
    assert initial.success is True

    async def release_later():
        await asyncio.sleep(0.3)
        await lock.release_lock(initial)

    releaser = asyncio.create_task(release_later())
    start = loop.time()
    held = await lock.wait_acquire_lock("busy", 6000, 3000)
    elapsed = loop.time() - start

    assert held.success is True
    assert held.immediate is False
    assert held.index == initial.index + 1
    assert elapsed >= 0.25
    # woken by the release notification rather than the 3s deadline
    assert elapsed < 2.0

    await releaser
    await lock.release_lock(held)
    await lock.close()


@pytest.mark.asyncio
async def test_wait_and_not_acquire():
    lock, _ = make_lock()
    loop = asyncio.get_running_loop()

    initial = await lock.acquire_lock("busy", 60000)

    start = loop.time()
    held = await lock.wait_acquire_lock("busy", 60000, 500)
    elapsed = loop.time() - start

    assert held.success is False
    assert held.immediate is False
    assert held.index == -1
    assert elapsed >= 0.5

    await lock.release_lock(initial)
    await lock.close()


@pytest.mark.asyncio
async def test_wait_falls_back_to_expiry_timer():
    lock, _ = make_lock()
    loop = asyncio.get_running_loop()

    # never released, only expires
    await lock.acquire_lock("expiring", 300)

    start = loop.time()
    held = await lock.wait_acquire_lock("expiring", 1000, 3000)
    elapsed = loop.time() - start

    assert held.success is True
    assert held.immediate is False
    assert 0.25 <= elapsed < 2.0

    await lock.close()


@pytest.mark.asyncio
async def test_release_from_another_instance_wakes_waiter():
    server = FakeServer()
    waiter_lock, _ = make_lock(server=server)
    holder_lock, _ = make_lock(server=server)
    loop = asyncio.get_running_loop()

    initial = await holder_lock.acquire_lock("shared", 60000)

    async def release_later():
        await asyncio.sleep(0.2)
        await holder_lock.release_lock(initial)

    releaser = asyncio.create_task(release_later())
    start = loop.time()
    held = await waiter_lock.wait_acquire_lock("shared", 60000, 5000)

    assert held.success is True
    assert loop.time() - start < 3.0

    await releaser
    await waiter_lock.release_lock(held)
    await waiter_lock.close()
    await holder_lock.close()


@pytest.mark.asyncio
async def test_concurrent_waiters_take_turns():
    lock, _ = make_lock()

    async def worker(order):
        held = await lock.wait_acquire_lock("turns", 60000, 5000)
        assert held.success is True
        order.append(held.index)
        await asyncio.sleep(0.05)
        await lock.release_lock(held)

    order = []
    await asyncio.gather(*[worker(order) for _ in range(3)])
    assert sorted(order) == order
    assert len(set(order)) == 3

    await lock.close()


@pytest.mark.asyncio
async def test_waiter_registration_is_cleared_after_wait():
    lock, _ = make_lock()

    await lock.acquire_lock("busy", 60000)
    await lock.wait_acquire_lock("busy", 1000, 200)

    assert lock._notifier.waiter_count("testLock:busy") == 0
    await lock.close()


@pytest.mark.asyncio
async def test_hold_acquires_and_releases():
    lock, client = make_lock()

    async with lock.hold("job", 60000, 1000) as held:
        assert held.success is True
        assert await client.exists("testLock:job") == 1

    assert await client.exists("testLock:job") == 0
    await lock.close()


@pytest.mark.asyncio
async def test_hold_raises_when_lock_not_available():
    lock, _ = make_lock()

    await lock.acquire_lock("job", 60000)
    with pytest.raises(LockNotAcquiredError) as exc_info:
        async with lock.hold("job", 1000, 200):
            pass
    assert exc_info.value.lock_id == "job"

    await lock.close()


@pytest.mark.asyncio
async def test_hold_renews_while_body_runs():
    lock, client = make_lock()

    async with lock.hold("long", 300, 1000, renew=True) as held:
        await asyncio.sleep(0.7)
        assert await client.exists("testLock:long") == 1
        stolen = await lock.acquire_lock("long", 1000)
        assert stolen.success is False

    assert await client.exists("testLock:long") == 0
    await lock.close()


@pytest.mark.asyncio
async def test_cancelled_hold_releases_and_propagates():
    lock, client = make_lock()
    entered = asyncio.Event()

    async def critical_section():
        async with lock.hold("cancelled", 300, 1000, renew=True):
            entered.set()
            await asyncio.sleep(10)

    worker = asyncio.create_task(critical_section())
    await entered.wait()
    worker.cancel()

    with pytest.raises(asyncio.CancelledError):
        await worker
    assert await client.exists("testLock:cancelled") == 0

    await lock.close()
