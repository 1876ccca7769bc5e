from __future__ import annotations

import asyncio
import random


def compute_backoff(
    attempt: int, base: float = 1.5, jitter: float = 0.5, max_delay: float = 60.0
) -> float:
    """Compute capped exponential backoff with jitter."""
    delay = min(base**attempt, max_delay)
    return delay + random.uniform(0, jitter)


async def schedule_retry(attempt: int, max_delay: float = 60.0) -> float:
    """Sleep for the computed backoff delay before polling again."""
    delay = compute_backoff(attempt, max_delay=max_delay)
    await asyncio.sleep(delay)
    return delay
