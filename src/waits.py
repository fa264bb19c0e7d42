from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar

from errors import StaleReference, WaitTimeout

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _now_ms() -> float:
    return asyncio.get_running_loop().time() * 1000


async def wait_until(
    predicate: Callable[[], Awaitable[bool]],
    timeout_ms: int,
    poll_ms: int = 100,
    description: str = "condition",
) -> None:
    """Poll ``predicate`` until it returns True; raise WaitTimeout after ``timeout_ms``."""
    deadline = _now_ms() + timeout_ms
    while True:
        if await predicate():
            return
        if _now_ms() >= deadline:
            raise WaitTimeout(f"{description} not met within {timeout_ms}ms", target=description)
        await asyncio.sleep(poll_ms / 1000)


async def wait_for_quiescence(
    snapshot: Callable[[], Awaitable[Any]],
    quiet_ms: int,
    timeout_ms: int,
    poll_ms: int = 100,
    description: str = "widget",
) -> Any:
    """Wait until ``snapshot()`` returns the same value for ``quiet_ms``.

    Returns the settled snapshot. The quiet window restarts on every change, and
    the whole wait is bounded by ``timeout_ms``.
    """
    start = _now_ms()
    deadline = start + timeout_ms
    last = await snapshot()
    changed_at = start
    while True:
        now = _now_ms()
        if now - changed_at >= quiet_ms:
            return last
        if now >= deadline:
            raise WaitTimeout(f"{description} kept changing for {timeout_ms}ms", target=description)
        await asyncio.sleep(poll_ms / 1000)
        current = await snapshot()
        if current != last:
            logger.debug("%s changed while settling", description)
            last = current
            changed_at = _now_ms()


async def retry_stale(operation: Callable[[], Awaitable[T]], attempts: int = 3, description: str = "operation") -> T:
    """Run ``operation`` again when the element it resolved was re-rendered underneath it."""
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except StaleReference:
            if attempt == attempts:
                raise
            logger.info("%s hit a stale element, retrying (%d/%d)", description, attempt, attempts)
    raise StaleReference(f"{description} was never attempted", target=description)
