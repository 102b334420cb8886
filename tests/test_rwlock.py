# tests/test_rwlock.py
import asyncio
import pytest
from portsurgeon.core.rwlock import AsyncRWLock


async def test_readers_share_the_lock():
    lock = AsyncRWLock("test")
    async with lock.read_lock():
        async with lock.read_lock():
            assert lock.readers == 2
    assert lock.readers == 0


async def test_writer_waits_for_readers():
    lock = AsyncRWLock("test")
    await lock.acquire_read()
    writer = asyncio.create_task(lock.acquire_write())
    await asyncio.sleep(0.01)
    assert not lock.writer_active

    await lock.release_read()
    await asyncio.wait_for(writer, 1)
    assert lock.writer_active
    await lock.release_write()


async def test_waiting_writer_blocks_new_readers():
    lock = AsyncRWLock("test")
    await lock.acquire_read()
    writer = asyncio.create_task(lock.acquire_write())
    await asyncio.sleep(0.01)
    reader = asyncio.create_task(lock.acquire_read())
    await asyncio.sleep(0.01)
    assert lock.readers == 1

    await lock.release_read()
    await asyncio.wait_for(writer, 1)
    assert lock.writer_active and lock.readers == 0
    assert not reader.done()

    await lock.release_write()
    await asyncio.wait_for(reader, 1)
    assert lock.readers == 1


async def test_cancelled_writer_releases_queued_readers():
    lock = AsyncRWLock("test")
    await lock.acquire_read()
    writer = asyncio.create_task(lock.acquire_write())
    await asyncio.sleep(0.01)
    reader = asyncio.create_task(lock.acquire_read())
    await asyncio.sleep(0.01)

    writer.cancel()
    with pytest.raises(asyncio.CancelledError):
        await writer
    await asyncio.wait_for(reader, 1)
    assert lock.readers == 2


async def test_unbalanced_release_is_ignored():
    lock = AsyncRWLock("test")
    await lock.release_read()
    await lock.release_write()
    assert lock.readers == 0
    assert not lock.writer_active
