"""Bounded exponential-backoff retry for embedding provider calls.

Shared by the ingestion and query paths so both see the same policy.
A batch call is retried as a whole: partial batch results are never
stitched together, which keeps the chunk/vector pairing positional.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

import structlog

from context_engine.utils.errors import EmbeddingProviderError

_T = TypeVar("_T")

logger = structlog.get_logger(logger_name=__name__)


async def retry_with_backoff(
    operation: Callable[[], Awaitable[_T]],
    description: str,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 8.0,
    retry_on: tuple[type[BaseException], ...] = (EmbeddingProviderError,),
) -> _T:
    """Await ``operation()`` up to *max_attempts* times.

    The delay before attempt ``n + 1`` is ``min(base_delay * 2 ** (n - 1), max_delay)``.

    Parameters
    ----------
    operation:
        Zero-argument callable returning a fresh awaitable on every call.
    description:
        Human-readable label used in log events, e.g. ``"embed 4 chunks"``.
    retry_on:
        Exception types considered transient.  Anything else propagates on
        the first occurrence.

    Raises
    ------
    EmbeddingProviderError
        When every attempt failed.  The last underlying error is chained.
    """
    attempts = max(1, max_attempts)
    last_exc: BaseException | None = None

    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except retry_on as exc:
            last_exc = exc
            if attempt == attempts:
                break
            delay = min(base_delay * (2 ** (attempt - 1)), max_delay)
            logger.warning(
                "embedding_retry",
                operation=description,
                attempt=attempt,
                max_attempts=attempts,
                backoff_s=delay,
                error=str(exc),
            )
            await asyncio.sleep(delay)

    provider_name = getattr(last_exc, "provider_name", None)
    raise EmbeddingProviderError(
        f"{description} failed after {attempts} attempts: {last_exc}",
        provider_name=provider_name,
    ) from last_exc


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff settings bundled so services share one policy object."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 8.0

    async def run(self, operation: Callable[[], Awaitable[_T]], description: str) -> _T:
        return await retry_with_backoff(
            operation,
            description,
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
        )
