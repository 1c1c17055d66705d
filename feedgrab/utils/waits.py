import asyncio
from typing import Optional


def is_cancelled(cancel: Optional[asyncio.Event]) -> bool:
    return cancel is not None and cancel.is_set()


async def pause(seconds: float, cancel: Optional[asyncio.Event] = None) -> bool:
    """
    Sleeps for `seconds`, waking early if `cancel` is set.
    Returns True when the wait ended because of cancellation.
    """
    if seconds <= 0:
        await asyncio.sleep(0)                    # Still hand control to the loop
        return is_cancelled(cancel)

    if cancel is None:
        await asyncio.sleep(seconds)
        return False

    if cancel.is_set():
        return True

    try:
        await asyncio.wait_for(cancel.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        return False
    return True
