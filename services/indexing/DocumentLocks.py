import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator


class DocumentLocks:
    """One asyncio.Lock per document id.

    A lock lives only while at least one task holds it or waits for it, so the
    registry does not grow with the number of documents ever indexed.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, doc_id: str) -> AsyncIterator[None]:
        lock = self._locks.get(doc_id)
        if lock is None:
            lock = self._locks[doc_id] = asyncio.Lock()
        self._users[doc_id] = self._users.get(doc_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[doc_id] -= 1
            if self._users[doc_id] == 0:
                del self._users[doc_id]
                del self._locks[doc_id]

    def is_locked(self, doc_id: str) -> bool:
        lock = self._locks.get(doc_id)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)
