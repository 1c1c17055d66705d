from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import Optional

from feedgrab.browser import BrowserSession, element_exists
from feedgrab.errors import SessionLost
from feedgrab.utils.waits import is_cancelled, pause

logger = logging.getLogger(__name__)


class CaptchaGate:
    """Watches the live page for a human-verification marker.

    A background task re-checks the marker every `interval` seconds and
    flips a single boolean. The gate never blocks anyone by itself: callers
    read `is_blocked()` and back off with `wait_until_clear()`.
    """

    def __init__(self, marker: str, interval: float = 1.0, wait_interval: float = 3.0) -> None:
        self._marker = marker
        self._interval = interval
        self._wait_interval = wait_interval
        self._blocked = False
        self._session: Optional[BrowserSession] = None
        self._task: Optional[asyncio.Task] = None
        self._lost: Optional[SessionLost] = None

    def is_blocked(self) -> bool:
        return self._blocked

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self, session: BrowserSession) -> "CaptchaGate":
        """Checks once right away, then keeps polling in the background."""
        if self._task is not None:
            raise RuntimeError("CaptchaGate already started")
        self._session = session
        await self._check()
        self._task = asyncio.create_task(self._poll(), name="captcha-gate")
        return self

    async def stop(self) -> None:
        """Cancels the poller and waits for it to finish. Safe to call repeatedly."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task

    async def wait_until_clear(self, cancel: Optional[asyncio.Event] = None) -> bool:
        """Sleeps in fixed steps while blocked. Returns True if cancelled instead.

        Raises the poller's SessionLost if the browser went away meanwhile.
        """
        while self._blocked:
            if self._lost is not None:
                raise self._lost
            if await pause(self._wait_interval, cancel):
                return True
        return is_cancelled(cancel)

    async def _poll(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self._check()
            except SessionLost as e:
                logger.warning("Captcha watcher stopped: %s", e)
                self._lost = e
                return
            except Exception:
                # Nobody would flip the flag back, so open the gate
                logger.error("Captcha watcher failed, downloads continue unguarded", exc_info=True)
                self._blocked = False
                return

    async def _check(self) -> None:
        present = await element_exists(self._session, self._marker)
        if present and not self._blocked:
            logger.warning("Captcha detected: solve it in the browser window, downloads are paused")
        elif not present and self._blocked:
            logger.info("Captcha cleared, resuming")
        self._blocked = present
