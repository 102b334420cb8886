"""
Async read-write lock.

Concurrent readers, exclusive writers, with writer preference: once a writer is
waiting, new readers queue behind it so a rebuild is never starved by a stream
of queries.

Usage:
    lock = AsyncRWLock(name="port-index")

    async with lock.read_lock():
        value = index.get(port)

    async with lock.write_lock():
        index.clear()
        index.update(rebuilt)
"""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from portsurgeon.utils.logger import Logger


class AsyncRWLock:
    """asyncio read-write lock built on a single Condition."""

    def __init__(self, name: str = "") -> None:
        self.name = name or f"AsyncRWLock-{id(self):x}"
        self.logger = Logger()
        self._readers = 0
        self._writer_active = False
        self._writers_waiting = 0
        self._cond: Optional[asyncio.Condition] = None

    def _get_cond(self) -> asyncio.Condition:
        # Created lazily so the lock can be built before an event loop exists.
        if self._cond is None:
            self._cond = asyncio.Condition()
        return self._cond

    @property
    def readers(self) -> int:
        return self._readers

    @property
    def writer_active(self) -> bool:
        return self._writer_active

    async def acquire_read(self) -> None:
        cond = self._get_cond()
        async with cond:
            await cond.wait_for(lambda: not self._writer_active and self._writers_waiting == 0)
            self._readers += 1

    async def release_read(self) -> None:
        cond = self._get_cond()
        async with cond:
            if self._readers <= 0:
                self.logger.error(f"[{self.name}] release_read called with no active readers")
                return
            self._readers -= 1
            if self._readers == 0:
                cond.notify_all()

    async def acquire_write(self) -> None:
        cond = self._get_cond()
        async with cond:
            self._writers_waiting += 1
            try:
                await cond.wait_for(lambda: not self._writer_active and self._readers == 0)
            except BaseException:
                # Cancelled while queued: let blocked readers re-check.
                self._writers_waiting -= 1
                cond.notify_all()
                raise
            self._writers_waiting -= 1
            self._writer_active = True

    async def release_write(self) -> None:
        cond = self._get_cond()
        async with cond:
            if not self._writer_active:
                self.logger.error(f"[{self.name}] release_write called with no active writer")
                return
            self._writer_active = False
            cond.notify_all()

    @asynccontextmanager
    async def read_lock(self) -> AsyncIterator[None]:
        await self.acquire_read()
        try:
            yield
        finally:
            await self.release_read()

    @asynccontextmanager
    async def write_lock(self) -> AsyncIterator[None]:
        await self.acquire_write()
        try:
            yield
        finally:
            await self.release_write()
