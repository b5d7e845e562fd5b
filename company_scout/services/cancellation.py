from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

from company_scout.errors import ScoutCancelledError


def is_cancelled(cancel_event: asyncio.Event | None) -> bool:
    return cancel_event is not None and cancel_event.is_set()


def raise_if_cancelled(cancel_event: asyncio.Event | None, stage: str = "") -> None:
    if is_cancelled(cancel_event):
        suffix = f" during {stage}" if stage else ""
        raise ScoutCancelledError(f"Scout run cancelled{suffix}")


async def sleep_unless_cancelled(
    delay: float,
    cancel_event: asyncio.Event | None,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> bool:
    """Sleep for `delay` seconds, waking early if the run is cancelled.

    Returns True when the cancel token fired before or during the wait.
    """
    if cancel_event is None:
        if delay > 0:
            await sleep(delay)
        return False
    if cancel_event.is_set():
        return True
    if delay <= 0:
        return False
    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=delay)
    except TimeoutError:
        return False
    return True
