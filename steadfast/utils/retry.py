from __future__ import annotations

import asyncio

from ..cancellation import CancellationToken

DEFAULT_BACKOFF_BASE_MS = 100.0


def compute_backoff(attempt: int, base_ms: float = DEFAULT_BACKOFF_BASE_MS) -> float:
    """Exponential backoff in seconds: ``base_ms * 2**attempt`` milliseconds.

    Uncapped and without jitter so retry timing stays deterministic.
    """
    return base_ms * (2**attempt) / 1000.0


async def sleep_unless_cancelled(delay: float, token: CancellationToken) -> bool:
    """Sleep for ``delay`` seconds, waking early if ``token`` fires.

    Returns ``True`` when the full delay elapsed and ``False`` when the token
    fired first.
    """
    if token.cancelled:
        return False
    try:
        await asyncio.wait_for(token.wait(), timeout=delay)
    except asyncio.TimeoutError:
        return True
    return False
