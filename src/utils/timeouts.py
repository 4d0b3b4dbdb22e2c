"""
Timeout Helpers

External calls (Lab engines, the GAP Plan engine) are raced against a
timeout. On timeout a fallback value is returned instead of raising, so a
slow collaborator degrades a run rather than aborting it.
"""

import asyncio
import logging
from typing import Awaitable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def run_with_timeout(
    awaitable: Awaitable[T],
    timeout: Optional[float],
    fallback: T,
    label: str = "operation",
) -> T:
    """
    Await `awaitable`, returning `fallback` if it does not finish in time.

    Args:
        awaitable: Coroutine or future to await
        timeout: Seconds to wait (None or <= 0 waits forever)
        fallback: Value returned on timeout
        label: Name used in the warning log

    Returns:
        The awaited result, or `fallback` on timeout
    """
    if not timeout or timeout <= 0:
        return await awaitable

    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"{label} timed out after {timeout:.0f}s, using fallback")
        return fallback
