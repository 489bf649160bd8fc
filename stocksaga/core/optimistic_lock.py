"""
Stocksaga — Optimistic locking retry

Ledger writes are compare-and-set on products.version_id. When the row's
version moved between our read and our UPDATE, the write matches zero rows
and raises StaleDataError; the decorated call is then re-run from the read
with exponential backoff + jitter.
"""
import asyncio
import functools
import logging
import random

from stocksaga.core.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)


class StaleDataError(Exception):
    """The row's version_id no longer matches the version we read."""

    def __init__(self, entity: str, entity_id: int, expected_version: int):
        super().__init__(
            f"Optimistic lock conflict: {entity} {entity_id} is no longer at version {expected_version}."
        )
        self.entity = entity
        self.entity_id = entity_id
        self.expected_version = expected_version


def backoff_delay(attempt: int) -> float:
    """Seconds to wait after conflict number ``attempt``: base * 2^attempt, capped, plus jitter."""
    base = settings.OPT_LOCK_BASE_DELAY_MS / 1000.0
    cap = settings.OPT_LOCK_MAX_DELAY_MS / 1000.0
    return min(base * (2 ** attempt), cap) + random.uniform(0, settings.OPT_LOCK_JITTER_MS / 1000.0)


def with_optimistic_retry(max_retries: int | None = None):
    """Re-run the decorated coroutine on StaleDataError, at most ``max_retries`` times in total.

    The last conflict propagates once the budget is spent. Any other
    exception propagates immediately.
    """

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            attempts = max_retries or settings.OPT_LOCK_MAX_RETRIES
            attempt = 1
            while True:
                try:
                    return await func(*args, **kwargs)
                except StaleDataError as exc:
                    if attempt >= attempts:
                        logger.error("%s: conflict on %s %s unresolved after %d attempts",
                                     func.__qualname__, exc.entity, exc.entity_id, attempt)
                        raise
                    delay = backoff_delay(attempt)
                    logger.warning("%s: %s %s changed concurrently (attempt %d/%d), retrying in %.3fs",
                                   func.__qualname__, exc.entity, exc.entity_id, attempt, attempts, delay)
                    await asyncio.sleep(delay)
                    attempt += 1
        return wrapper
    return decorator
