"""
Tests for the per-key lock manager.
"""

import asyncio
import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import LockError

from telecore.core.exceptions import ConflictError
from telecore.core.locks import (
    KeyLockManager,
    invoice_key,
    number_key,
    order_key,
    wallet_key,
)


class TestKeys:
    def test_keys_are_namespaced(self) -> None:
        entity_id = uuid.uuid4()

        assert order_key(entity_id) == f"order:{entity_id}"
        assert number_key(entity_id) == f"number:{entity_id}"
        assert invoice_key(entity_id) == f"invoice:{entity_id}"
        assert wallet_key(entity_id) == f"wallet:{entity_id}"


class TestLocalBackend:
    async def test_same_key_serializes(self) -> None:
        locks = KeyLockManager("local", timeout_seconds=5.0)
        events: list[str] = []

        async def worker(name: str) -> None:
            async with locks.hold("order:1"):
                events.append(f"{name}-start")
                await asyncio.sleep(0.01)
                events.append(f"{name}-end")

        await asyncio.gather(worker("a"), worker("b"))

        assert events in (
            ["a-start", "a-end", "b-start", "b-end"],
            ["b-start", "b-end", "a-start", "a-end"],
        )

    async def test_different_keys_do_not_block(self) -> None:
        locks = KeyLockManager("local", timeout_seconds=0.5)

        async with locks.hold("order:1"):
            async with locks.hold("order:2"):
                pass

    async def test_timeout_raises_conflict(self) -> None:
        locks = KeyLockManager("local", timeout_seconds=0.05)

        async with locks.hold("wallet:1"):
            with pytest.raises(ConflictError):
                async with locks.hold("wallet:1"):
                    pass

    async def test_released_after_error(self) -> None:
        locks = KeyLockManager("local", timeout_seconds=0.05)

        with pytest.raises(RuntimeError):
            async with locks.hold("invoice:1"):
                raise RuntimeError("boom")

        async with locks.hold("invoice:1"):
            pass


def test_unknown_backend_rejected() -> None:
    with pytest.raises(ValueError):
        KeyLockManager("memcached")


class TestRedisBackend:
    @staticmethod
    def make_client(acquired: bool) -> MagicMock:
        redis_lock = MagicMock()
        redis_lock.acquire = AsyncMock(return_value=acquired)
        redis_lock.release = AsyncMock()
        client = MagicMock()
        client.make_key.side_effect = lambda *parts: ":".join(("telecore",) + parts)
        client.lock.return_value = redis_lock
        return client

    async def test_acquires_and_releases(self) -> None:
        client = self.make_client(acquired=True)
        locks = KeyLockManager("redis", timeout_seconds=2.0, redis_client=client)

        async with locks.hold("order:1"):
            pass

        client.lock.assert_called_once_with(
            "telecore:lock:order:1", timeout=6.0, blocking_timeout=2.0
        )
        client.lock.return_value.release.assert_awaited_once()

    async def test_not_acquired_raises_conflict(self) -> None:
        client = self.make_client(acquired=False)
        locks = KeyLockManager("redis", timeout_seconds=2.0, redis_client=client)

        with pytest.raises(ConflictError):
            async with locks.hold("order:1"):
                pass

        client.lock.return_value.release.assert_not_awaited()

    async def test_expired_lock_is_tolerated(self) -> None:
        client = self.make_client(acquired=True)
        client.lock.return_value.release.side_effect = LockError("expired")
        locks = KeyLockManager("redis", timeout_seconds=2.0, redis_client=client)

        async with locks.hold("wallet:1"):
            pass
