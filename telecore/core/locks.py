"""
Per-entity lock manager serializing mutations on one order, number,
invoice or wallet.

Two backends are available. ``local`` keeps one ``asyncio.Lock`` per key
inside the process; ``redis`` takes a distributed lock so several worker
processes sharing a database serialize on the same key. Acquisition is
bounded by ``lock_timeout_seconds`` and a timeout surfaces as
``ConflictError``.
"""

import asyncio
import weakref
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from redis.exceptions import LockError

from telecore.cache.redis_client import RedisClient, get_redis_client
from telecore.core.config import get_settings
from telecore.core.exceptions import ConflictError
from telecore.core.logging import get_logger

logger = get_logger(__name__)


def order_key(order_id) -> str:
    return f"order:{order_id}"


def number_key(number_id) -> str:
    return f"number:{number_id}"


def invoice_key(invoice_id) -> str:
    return f"invoice:{invoice_id}"


def wallet_key(user_id) -> str:
    return f"wallet:{user_id}"


class KeyLockManager:
    """
    Hands out exclusive per-key locks.

    Usage::

        async with locks.hold(order_key(order_id)):
            ...  # read, validate, mutate, commit
    """

    def __init__(
        self,
        backend: str = "local",
        timeout_seconds: float = 10.0,
        redis_client: Optional[RedisClient] = None,
    ):
        if backend not in ("local", "redis"):
            raise ValueError(f"Unknown lock backend: {backend}")
        self.backend = backend
        self.timeout_seconds = timeout_seconds
        self._redis_client = redis_client
        self._local_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    def _local_lock(self, key: str) -> asyncio.Lock:
        lock = self._local_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._local_locks[key] = lock
        return lock

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        """
        Hold the lock for ``key`` for the duration of the block.

        Raises:
            ConflictError: If the lock is not acquired within the timeout
        """
        if self.backend == "redis":
            async with self._hold_redis(key):
                yield
            return

        lock = self._local_lock(key)
        try:
            await asyncio.wait_for(lock.acquire(), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            logger.warning("Lock acquisition timed out", key=key)
            raise ConflictError(
                "Entity is busy, retry the operation", lock_key=key
            ) from e
        try:
            yield
        finally:
            lock.release()

    @asynccontextmanager
    async def _hold_redis(self, key: str) -> AsyncIterator[None]:
        if self._redis_client is None:
            self._redis_client = await get_redis_client()

        lock = self._redis_client.lock(
            self._redis_client.make_key("lock", key),
            timeout=self.timeout_seconds * 3,
            blocking_timeout=self.timeout_seconds,
        )
        acquired = await lock.acquire()
        if not acquired:
            logger.warning("Distributed lock acquisition timed out", key=key)
            raise ConflictError("Entity is busy, retry the operation", lock_key=key)
        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError as e:
                # The lock expired while held; the commit already happened.
                logger.warning("Distributed lock expired before release", key=key, error=str(e))


_lock_manager: Optional[KeyLockManager] = None


def get_lock_manager() -> KeyLockManager:
    """Get or create the process-wide lock manager from settings."""
    global _lock_manager

    if _lock_manager is None:
        settings = get_settings()
        _lock_manager = KeyLockManager(
            backend=settings.lock_backend,
            timeout_seconds=settings.lock_timeout_seconds,
        )
    return _lock_manager
