"""Bounded retries with exponential backoff for store calls.

Only StoreUnavailableError is retried.  Everything else (conflicts,
validation errors, programming errors) propagates on the first attempt.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

from app.core.config import SETTINGS
from app.core.metrics import STORE_RETRIES

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Upper bound on the random jitter added to each backoff, in seconds.
_MAX_JITTER = 0.25


class StoreUnavailableError(Exception):
    """A backing store (Postgres, Redis) could not be reached or timed out."""


async def with_retries(
    operation: Callable[[], Awaitable[T]],
    *,
    name: str,
    max_attempts: int | None = None,
    base_delay: float | None = None,
) -> T:
    """Await `operation()`, retrying StoreUnavailableError with backoff.

    Delay before retry n (1-based) is base_delay * 2**(n-1) plus jitter.
    The last StoreUnavailableError is re-raised once attempts run out.
    """
    attempts = max_attempts if max_attempts is not None else SETTINGS.store_max_attempts
    delay = base_delay if base_delay is not None else SETTINGS.store_retry_base_delay_seconds

    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except StoreUnavailableError as exc:
            if attempt == attempts:
                logger.error(
                    "%s failed after %d attempts: %s", name, attempts, exc
                )
                raise
            wait = delay * (2 ** (attempt - 1))
            if wait > 0:
                wait += random.uniform(0, _MAX_JITTER)
            STORE_RETRIES.labels(operation=name).inc()
            logger.warning(
                "%s unavailable (attempt %d/%d): %s. Retrying in %.2fs",
                name,
                attempt,
                attempts,
                exc,
                wait,
            )
            await asyncio.sleep(wait)

    # attempts >= 1 always returns or raises inside the loop
    raise RuntimeError("unreachable")
