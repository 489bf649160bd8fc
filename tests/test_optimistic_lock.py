"""
Optimistic locking retry: conflicts are retried with backoff, and the
conflict is re-raised once the retry budget is spent.
"""
import pytest

from stocksaga.core.optimistic_lock import StaleDataError, backoff_delay, with_optimistic_retry


@pytest.mark.asyncio
async def test_retries_until_the_write_wins():
    calls = []

    @with_optimistic_retry(max_retries=4)
    async def write():
        calls.append(1)
        if len(calls) < 3:
            raise StaleDataError("product", 1, 3)
        return "ok"

    assert await write() == "ok"
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_gives_up_after_max_retries(settings):
    calls = []

    @with_optimistic_retry()
    async def write():
        calls.append(1)
        raise StaleDataError("product", 1, 3)

    with pytest.raises(StaleDataError):
        await write()
    assert len(calls) == settings.OPT_LOCK_MAX_RETRIES


@pytest.mark.asyncio
async def test_other_errors_are_not_retried():
    calls = []

    @with_optimistic_retry(max_retries=5)
    async def write():
        calls.append(1)
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        await write()
    assert len(calls) == 1


def test_backoff_is_capped(settings):
    assert backoff_delay(30) <= (settings.OPT_LOCK_MAX_DELAY_MS + settings.OPT_LOCK_JITTER_MS) / 1000.0
    assert backoff_delay(1) > 0
