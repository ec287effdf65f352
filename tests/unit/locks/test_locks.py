"""
Tests for lock providers.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from txmsg.exceptions import LockError
from txmsg.locks import LOCK_TX_MSG_DO_CLEAR, LOCK_TX_MSG_DO_RETRY
from txmsg.locks.memory import InMemoryLockProvider


def test_lock_names():
    assert LOCK_TX_MSG_DO_RETRY == "txMsg:doRetry"
    assert LOCK_TX_MSG_DO_CLEAR == "txMsg:doClear"


class TestInMemoryLockProvider:
    @pytest.fixture
    def provider(self):
        return InMemoryLockProvider()

    @pytest.mark.asyncio
    async def test_acquire_and_release(self, provider):
        assert await provider.acquire("a", timeout=1.0) is True
        assert provider.is_locked("a")

        await provider.release("a")
        assert not provider.is_locked("a")

    @pytest.mark.asyncio
    async def test_held_lock_times_out(self, provider):
        await provider.acquire("a")

        assert await provider.acquire("a", timeout=0.05) is False

    @pytest.mark.asyncio
    async def test_zero_timeout_does_not_wait(self, provider):
        await provider.acquire("a")

        assert await provider.acquire("a", timeout=0) is False
        assert await provider.acquire("b", timeout=0) is True

    @pytest.mark.asyncio
    async def test_waiter_gets_lock_after_release(self, provider):
        await provider.acquire("a")
        waiter = asyncio.create_task(provider.acquire("a", timeout=1.0))
        await asyncio.sleep(0)

        await provider.release("a")

        assert await waiter is True

    @pytest.mark.asyncio
    async def test_release_unheld_raises(self, provider):
        with pytest.raises(LockError, match="not held"):
            await provider.release("a")

    @pytest.mark.asyncio
    async def test_hold_releases_on_exit(self, provider):
        async with provider.hold("a", timeout=0.1) as acquired:
            assert acquired is True
            assert provider.is_locked("a")

        assert not provider.is_locked("a")

    @pytest.mark.asyncio
    async def test_hold_releases_on_error(self, provider):
        with pytest.raises(RuntimeError):
            async with provider.hold("a", timeout=0.1):
                raise RuntimeError("pass failed")

        assert not provider.is_locked("a")

    @pytest.mark.asyncio
    async def test_hold_not_acquired_does_not_release(self, provider):
        await provider.acquire("a")

        async with provider.hold("a", timeout=0) as acquired:
            assert acquired is False

        # still held by the first owner
        assert provider.is_locked("a")

    @pytest.mark.asyncio
    async def test_hold_keeps_body_error_when_release_fails(self, provider):
        with patch.object(provider, "release", AsyncMock(side_effect=LockError("gone"))):
            with pytest.raises(RuntimeError, match="pass failed"):
                async with provider.hold("a", timeout=0.1):
                    raise RuntimeError("pass failed")

    @pytest.mark.asyncio
    async def test_hold_release_error_on_clean_exit(self, provider):
        with patch.object(provider, "release", AsyncMock(side_effect=LockError("gone"))):
            with pytest.raises(LockError, match="gone"):
                async with provider.hold("a", timeout=0.1):
                    pass

    @pytest.mark.asyncio
    async def test_hold_renews_until_released(self, provider):
        provider.renew_interval = 0.01

        with patch.object(provider, "renew", AsyncMock()) as renew:
            async with provider.hold("a", timeout=0.1):
                await asyncio.sleep(0.05)

            renewals = renew.await_count
            await asyncio.sleep(0.03)

        assert renewals >= 2
        assert renew.await_count == renewals
        renew.assert_awaited_with("a")

    @pytest.mark.asyncio
    async def test_hold_without_renew_interval_never_renews(self, provider):
        with patch.object(provider, "renew", AsyncMock()) as renew:
            async with provider.hold("a", timeout=0.1):
                await asyncio.sleep(0.02)

        renew.assert_not_awaited()


class TestRedisLockProvider:
    """Unit tests for RedisLockProvider with mocked Redis."""

    @pytest.fixture(autouse=True)
    def _require_redis(self):
        pytest.importorskip("redis")

    @pytest.fixture
    def mock_lock(self):
        lock = MagicMock()
        lock.acquire = AsyncMock(return_value=True)
        lock.release = AsyncMock()
        lock.reacquire = AsyncMock(return_value=True)
        return lock

    @pytest.fixture
    def mock_redis(self, mock_lock):
        client = MagicMock()
        client.lock = MagicMock(return_value=mock_lock)
        client.aclose = AsyncMock()
        return client

    @pytest.fixture
    def provider(self, mock_redis):
        with patch("redis.asyncio.from_url", return_value=mock_redis):
            from txmsg.locks.redis import RedisLockProvider

            provider = RedisLockProvider("redis://localhost:6379", prefix="test:", expire_seconds=30)
            provider._client()
            yield provider

    @pytest.mark.asyncio
    async def test_acquire_uses_prefixed_key_and_expiry(self, provider, mock_redis, mock_lock):
        assert await provider.acquire(LOCK_TX_MSG_DO_RETRY, timeout=5.0) is True

        mock_redis.lock.assert_called_once_with(
            "test:txMsg:doRetry", timeout=30, blocking_timeout=5.0
        )
        mock_lock.acquire.assert_awaited_once_with(blocking=True)

    @pytest.mark.asyncio
    async def test_zero_timeout_is_non_blocking(self, provider, mock_lock):
        await provider.acquire("a", timeout=0)

        mock_lock.acquire.assert_awaited_once_with(blocking=False)

    @pytest.mark.asyncio
    async def test_not_acquired(self, provider, mock_lock):
        mock_lock.acquire.return_value = False

        assert await provider.acquire("a", timeout=0.1) is False
        with pytest.raises(LockError):
            await provider.release("a")

    @pytest.mark.asyncio
    async def test_release(self, provider, mock_lock):
        await provider.acquire("a", timeout=1.0)
        await provider.release("a")

        mock_lock.release.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_redis_error_becomes_lock_error(self, provider, mock_lock):
        import redis

        mock_lock.acquire.side_effect = redis.ConnectionError("down")

        with pytest.raises(LockError, match="Failed to acquire"):
            await provider.acquire("a", timeout=1.0)

    @pytest.mark.asyncio
    async def test_expired_lock_release_is_logged(self, provider, mock_lock):
        from redis.exceptions import LockNotOwnedError

        mock_lock.release.side_effect = LockNotOwnedError("expired")
        await provider.acquire("a", timeout=1.0)

        await provider.release("a")

    @pytest.mark.asyncio
    async def test_close(self, provider, mock_redis):
        await provider.close()

        mock_redis.aclose.assert_awaited_once()
        assert provider._redis is None

    def test_renew_interval_is_a_third_of_expiry(self, provider):
        assert provider.renew_interval == 10

    @pytest.mark.asyncio
    async def test_renew_restarts_expiry(self, provider, mock_lock):
        await provider.acquire("a", timeout=1.0)

        await provider.renew("a")

        mock_lock.reacquire.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_renew_unheld_raises(self, provider):
        with pytest.raises(LockError, match="not held"):
            await provider.renew("a")

    @pytest.mark.asyncio
    async def test_renew_not_owned_becomes_lock_error(self, provider, mock_lock):
        from redis.exceptions import LockNotOwnedError

        mock_lock.reacquire.side_effect = LockNotOwnedError("expired")
        await provider.acquire("a", timeout=1.0)

        with pytest.raises(LockError, match="Failed to renew"):
            await provider.renew("a")

    @pytest.mark.asyncio
    async def test_lock_kept_through_pass_longer_than_expiry(self, provider, mock_lock):
        provider.expire_seconds = 0.03
        provider.renew_interval = 0.01

        async with provider.hold(LOCK_TX_MSG_DO_RETRY, timeout=1.0) as acquired:
            assert acquired is True
            # slow broker confirms
            await asyncio.sleep(0.06)

        assert mock_lock.reacquire.await_count >= 2
        mock_lock.release.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_renewal_is_logged_and_stops(self, provider, mock_lock):
        from redis.exceptions import LockNotOwnedError

        provider.renew_interval = 0.01
        mock_lock.reacquire.side_effect = LockNotOwnedError("expired")

        async with provider.hold("a", timeout=1.0):
            await asyncio.sleep(0.05)

        mock_lock.reacquire.assert_awaited_once()
