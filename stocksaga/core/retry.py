"""
Stocksaga — Bounded retry policy for remote calls

Same shape as the optimistic-lock retry, but driven by an explicit
classifier: only failures the classifier marks retryable are attempted
again, everything else propagates on the first attempt.
"""
import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from stocksaga.core.config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _always(exc: BaseException) -> bool:
    return True


class RetryPolicy:
    def __init__(
        self,
        max_attempts: int,
        delay_ms: int,
        backoff_multiplier: float = 1.0,
        is_retryable: Callable[[BaseException], bool] = _always,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = max_attempts
        self.delay_ms = delay_ms
        self.backoff_multiplier = backoff_multiplier
        self.is_retryable = is_retryable
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings, is_retryable: Callable[[BaseException], bool] = _always):
        return cls(
            max_attempts=settings.RETRY_MAX_ATTEMPTS,
            delay_ms=settings.RETRY_DELAY_MS,
            backoff_multiplier=settings.RETRY_BACKOFF_MULTIPLIER,
            is_retryable=is_retryable,
        )

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after the given (1-based) failed attempt."""
        return (self.delay_ms / 1000.0) * (self.backoff_multiplier ** (attempt - 1))

    async def run(self, context: str, identifier: object, call: Callable[[], Awaitable[T]]) -> T:
        """Run ``call`` until it succeeds, fails non-retryably or runs out of attempts.

        The last exception is re-raised unchanged; callers wrap it.
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await call()
            except Exception as exc:
                if not self.is_retryable(exc):
                    logger.warning("[%s] for %s failed (not retryable): %s", context, identifier, exc)
                    raise
                if attempt == self.max_attempts:
                    logger.error(
                        "[%s] for %s failed after %d attempts: %s",
                        context, identifier, attempt, exc,
                    )
                    raise
                delay = self.delay_for(attempt)
                logger.warning(
                    "Retrying [%s] for %s in %.3fs (attempt %d/%d) due to error: %s",
                    context, identifier, delay, attempt, self.max_attempts, exc,
                )
                await self._sleep(delay)
        raise AssertionError("unreachable")
