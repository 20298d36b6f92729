import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class UserLocks:
    """One exclusive critical section per user identity.

    Locks are created on demand and dropped once nobody holds or waits on them.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, user_sub: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(user_sub, asyncio.Lock())
        self._waiters[user_sub] = self._waiters.get(user_sub, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[user_sub] -= 1
            if self._waiters[user_sub] == 0:
                del self._waiters[user_sub]
                del self._locks[user_sub]

    def __len__(self) -> int:
        return len(self._locks)


_user_locks = UserLocks()


def get_user_locks() -> UserLocks:
    return _user_locks
