import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, Optional, Set

from feedgrab.adapters.base import ItemDescriptor, Locators
from feedgrab.browser import BrowserSession
from feedgrab.utils.snapshot import extract_items
from feedgrab.utils.waits import is_cancelled, pause

logger = logging.getLogger(__name__)

# Receives the current stagnation count; True means "the feed is done", False means "resume"
OperatorDecision = Callable[[int], Awaitable[bool]]

SCROLL_HEIGHT = "() => document.body.scrollHeight"
SCROLL_TO_BOTTOM = "() => window.scrollTo(0, document.body.scrollHeight)"
SCROLL_ABOVE_BOTTOM = "(y) => window.scrollTo(0, document.body.scrollHeight - y)"


@dataclass
class ScrollState:
    last_height: int = 0
    stagnation_count: int = 0

    def record(self, height: int) -> bool:
        """Stores a new height reading. Returns True if the page grew (or shrank)."""
        if height == self.last_height:
            self.stagnation_count += 1
            return False
        self.last_height = height
        self.stagnation_count = 0
        return True


class FeedScanner:
    """
    Turns a live infinite-scroll page into a deduplicated stream of items.

    One instance = one run: the seen-set and scroll state live on the
    instance and are never reset, so `scan` may only be called once.

    Each round:
        1. snapshot the markup (no snapshot → try again),
        2. yield every card whose id has not been seen yet, in DOM order,
        3. scroll to the bottom and let the feed settle,
        4. compare page height; stagnate, nudge, or escalate to the operator.
    """

    def __init__(
        self,
        decide: OperatorDecision,
        *,
        base_url: str = "",
        settle_delay: float = 15.0,
        nudge_offset: int = 4000,
        nudge_delay: float = 2.0,
        resume_backoff: float = 60.0,
        stagnation_threshold: int = 2,
        snapshot_retry_delay: float = 1.0,
    ) -> None:
        self._decide = decide
        self._base_url = base_url
        self._settle_delay = settle_delay
        self._nudge_offset = nudge_offset
        self._nudge_delay = nudge_delay
        self._resume_backoff = resume_backoff
        self._threshold = stagnation_threshold
        self._snapshot_retry_delay = snapshot_retry_delay

        self.seen: Set[int] = set()
        self.state = ScrollState()
        self.rounds = 0
        self._started = False

    async def scan(
        self,
        session: BrowserSession,
        locators: Locators,
        cancel: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[ItemDescriptor]:
        if self._started:
            raise RuntimeError("FeedScanner is single-pass; create a new one for another run")
        self._started = True

        self.state.last_height = await self._height(session) or 0

        while not is_cancelled(cancel):
            self.rounds += 1

            # 1) Snapshot
            markup = await session.current_markup()
            if not markup:
                if await pause(self._snapshot_retry_delay, cancel):
                    break
                continue

            # 2) Dedupe and hand out new cards
            for item in extract_items(markup, locators, self._base_url):
                if item.item_id in self.seen:
                    logger.debug("[DUPE] Item %d already seen", item.item_id)
                    continue
                self.seen.add(item.item_id)
                logger.info("[NEW ] Item %d | Seen total: %d", item.item_id, len(self.seen))
                yield item

            # The consumer may have spent a long time on those items
            if is_cancelled(cancel):
                break

            # 3) Scroll and let the feed load
            await session.execute_script(SCROLL_TO_BOTTOM)
            if await pause(self._settle_delay, cancel):
                break

            # 4) Stagnation check
            height = await self._height(session)
            if height is None:
                # No reading this round; the next one decides
                logger.debug("[*] Page height unavailable, skipping stagnation check")
                continue
            if self.state.record(height):
                continue

            logger.info("[*] Page height stuck at %d. Stagnant: %d/%d",
                        height, self.state.stagnation_count, self._threshold)

            if self.state.stagnation_count > self._threshold:
                if await self._decide(self.state.stagnation_count):
                    logger.info("[DONE] Feed confirmed finished after %d items.", len(self.seen))
                    return

                self.state.stagnation_count = 0
                logger.info("[WAIT] Resuming in %.0fs", self._resume_backoff)
                if await pause(self._resume_backoff, cancel):
                    break
                continue

            # 5) Nudge: lazy loaders often only fire on a fresh scroll event
            if await self._nudge(session, cancel):
                break

        logger.info("[STOP] Scan cancelled after %d rounds, %d items seen.", self.rounds, len(self.seen))

    async def _nudge(self, session: BrowserSession, cancel: Optional[asyncio.Event]) -> bool:
        await session.execute_script(SCROLL_ABOVE_BOTTOM, self._nudge_offset)
        if await pause(self._nudge_delay, cancel):
            return True
        await session.execute_script(SCROLL_TO_BOTTOM)
        return await pause(self._nudge_delay, cancel)

    @staticmethod
    async def _height(session: BrowserSession) -> Optional[int]:
        value = await session.execute_script(SCROLL_HEIGHT)
        try:
            return int(value)
        except (TypeError, ValueError):
            return None
