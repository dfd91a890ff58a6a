"""Bounded polling for long-running provider jobs."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from storyreel_core_schemas import ProviderTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_MAX_ATTEMPTS = 60


async def poll_until(
    fetch: Callable[[], Awaitable[T]],
    is_done: Callable[[T], bool],
    *,
    provider: str,
    interval: float = DEFAULT_POLL_INTERVAL,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    initial: Optional[T] = None,
) -> T:
    """Poll ``fetch`` until ``is_done`` holds for its result.

    Args:
        fetch: Coroutine function returning the latest job state
        is_done: Predicate marking a terminal state (success or failure)
        provider: Provider name for log and error messages
        interval: Seconds to wait between polls
        max_attempts: Number of polls before giving up
        initial: State returned by the create call, checked before polling

    Returns:
        The first state for which ``is_done`` is true

    Raises:
        ProviderTimeoutError: If no terminal state is seen within max_attempts
    """
    if initial is not None and is_done(initial):
        return initial

    for attempt in range(1, max_attempts + 1):
        await asyncio.sleep(interval)
        state = await fetch()
        if is_done(state):
            logger.debug("%s job finished after %d polls", provider, attempt)
            return state
        logger.debug("%s job still running (poll %d/%d)", provider, attempt, max_attempts)

    raise ProviderTimeoutError(
        f"Job did not finish after {max_attempts} polls ({max_attempts * interval:.0f}s)",
        provider=provider,
        attempts=max_attempts,
    )
