from __future__ import annotations

import asyncio
import random
from typing import Optional


def compute_backoff(
    attempt: int,
    interval: Optional[float] = None,
    base: float = 1.5,
    jitter: float = 0.5,
) -> float:
    """Fixed ``interval`` when given, otherwise exponential backoff with jitter."""
    if interval is not None:
        return interval
    delay = base ** attempt
    return delay + random.uniform(0, jitter)


async def schedule_retry(attempt: int, interval: Optional[float] = None) -> None:
    """Sleep for computed backoff delay before retrying."""
    delay = compute_backoff(attempt, interval)
    await asyncio.sleep(delay)
