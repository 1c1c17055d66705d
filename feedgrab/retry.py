from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from feedgrab.utils.waits import is_cancelled, pause

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryOutcome(Generic[T]):
    value: Optional[T]
    attempts: int
    exhausted: bool = False
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return not (self.exhausted or self.cancelled)


@dataclass(frozen=True)
class RetryPolicy:
    """Fixed-delay retry: no backoff growth, no jitter.

    `action` receives the 1-based attempt number; `should_retry` inspects
    its return value. Cancellation is checked before every attempt and
    interrupts the delay between attempts.
    """

    max_attempts: int = 7
    delay: float = 3.0

    async def run(
        self,
        action: Callable[[int], Awaitable[T]],
        should_retry: Callable[[T], bool],
        cancel: Optional[asyncio.Event] = None,
    ) -> RetryOutcome[T]:
        value: Optional[T] = None

        for attempt in range(1, self.max_attempts + 1):
            if is_cancelled(cancel):
                return RetryOutcome(value, attempt - 1, cancelled=True)

            value = await action(attempt)
            if not should_retry(value):
                return RetryOutcome(value, attempt)

            if attempt < self.max_attempts:
                logger.debug("Attempt %d/%d did not succeed, retrying in %.1fs", attempt, self.max_attempts, self.delay)
                if await pause(self.delay, cancel):
                    return RetryOutcome(value, attempt, cancelled=True)

        return RetryOutcome(value, self.max_attempts, exhausted=True)
