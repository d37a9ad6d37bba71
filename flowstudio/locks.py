from typing import AsyncIterator, Dict, Optional
from contextlib import asynccontextmanager
import asyncio
import logging

from flowstudio.errors import Conflict

logger = logging.getLogger(__name__)


class KeyedLocks:
    """
    One asyncio.Lock per key (a workflow id).

    Operations on the same key run one at a time; different keys never wait
    on each other. With a timeout, a caller that cannot get the lock in time
    fails with Conflict instead of queueing forever. A key's lock is dropped
    once nobody holds or waits for it, so unknown ids leave nothing behind.
    """

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout
        self._locks: Dict[str, asyncio.Lock] = {}
        # holders plus waiters per key
        self._users: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self.lock_for(key)
        self._users[key] = self._users.get(key, 0) + 1
        try:
            try:
                if self.timeout is None:
                    await lock.acquire()
                else:
                    await asyncio.wait_for(lock.acquire(), self.timeout)
            except asyncio.TimeoutError:
                logger.warning(f"[{key}] lock not acquired within {self.timeout}s")
                raise Conflict(f"{key} is busy with another request, retry later", {"key": key})
            try:
                yield
            finally:
                lock.release()
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]
