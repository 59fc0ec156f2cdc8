import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict


class JobLocks:
    """
    Взаимное исключение по имени джоба: create/update/delete/trigger одного
    джоба выполняются строго последовательно, разные джобы независимы.
    """

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}
        self._waiters: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, name: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(name, asyncio.Lock())
        self._waiters[name] = self._waiters.get(name, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[name] -= 1
            if self._waiters[name] == 0:
                del self._waiters[name]
                del self._locks[name]

    def locked(self, name: str) -> bool:
        lock = self._locks.get(name)
        return lock is not None and lock.locked()
