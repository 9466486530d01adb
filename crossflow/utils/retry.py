from __future__ import annotations

import asyncio
import random


def compute_backoff(
    attempt: int, delay: float = 2.0, base: float = 1.0, jitter: float = 0.0
) -> float:
    """Delay before retry ``attempt`` (1-based): ``delay * base ** (attempt - 1)`` plus jitter."""
    if delay <= 0:
        return 0.0
    return delay * base ** (attempt - 1) + random.uniform(0, jitter)


async def schedule_retry(
    attempt: int, delay: float = 2.0, base: float = 1.0, jitter: float = 0.0
) -> None:
    """Sleep for computed backoff delay before retrying."""
    wait = compute_backoff(attempt, delay=delay, base=base, jitter=jitter)
    if wait:
        await asyncio.sleep(wait)
