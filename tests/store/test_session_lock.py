import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from intake.utils.lock import SessionBusyError, is_locked, session_lock


def _redis(acquired=True):
    r = MagicMock()
    r.set = AsyncMock(return_value=acquired)
    r.eval = AsyncMock(return_value=1)
    r.exists = AsyncMock(return_value=1)
    return r


@pytest.mark.asyncio
async def test_lock_acquired_and_released_with_owner_token():
    r = _redis()
    with patch("intake.utils.lock.get_redis", return_value=r):
        async with session_lock("app-1", ttl_ms=5000):
            pass

    key, token = r.set.call_args.args
    assert key == "lock:wizard:app-1"
    assert r.set.call_args.kwargs == {"px": 5000, "nx": True}
    assert r.eval.call_args.args[1:] == (1, key, token)


@pytest.mark.asyncio
async def test_held_lock_fails_fast():
    r = _redis(acquired=None)
    with patch("intake.utils.lock.get_redis", return_value=r):
        with pytest.raises(SessionBusyError):
            async with session_lock("app-1"):
                pytest.fail("body must not run")
    r.eval.assert_not_called()


@pytest.mark.asyncio
async def test_lock_released_when_body_raises():
    r = _redis()
    with patch("intake.utils.lock.get_redis", return_value=r):
        with pytest.raises(ValueError):
            async with session_lock("app-1"):
                raise ValueError("boom")
    r.eval.assert_awaited_once()


@pytest.mark.asyncio
async def test_is_locked():
    r = _redis()
    with patch("intake.utils.lock.get_redis", return_value=r):
        assert await is_locked("app-1") is True
    r.exists.assert_awaited_once_with("lock:wizard:app-1")
