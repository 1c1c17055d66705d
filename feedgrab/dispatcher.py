import asyncio
import logging
from contextlib import aclosing
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, List, Optional

from feedgrab.adapters.base import FeedAdapter, Locators
# FeedAdapter → base class for every feed kind
# Locators → (card, link) selector pair handed to the scanner

from feedgrab.adapters.tiktok import TikTokTagAdapter, TikTokUserAdapter
# Concrete feed kinds.

from feedgrab.browser import BrowserSession, element_exists
from feedgrab.captcha import CaptchaGate
from feedgrab.download import DownloadPipeline, ToolRunner, run_tool
from feedgrab.errors import ErrorKind, FeedError, SessionLost
from feedgrab.retry import RetryPolicy
from feedgrab.settings import Settings
from feedgrab.utils.stream import FeedScanner, OperatorDecision
from feedgrab.utils.waits import is_cancelled

logger = logging.getLogger(__name__)


# Every feed kind the CLI understands.
ADAPTERS: list[FeedAdapter] = [
    TikTokUserAdapter(),
    TikTokTagAdapter(),
]


def pick_adapter(kind: str) -> FeedAdapter:
    """
    Selects the adapter for a feed kind.
    Example:
        "user" → TikTokUserAdapter
    """
    for a in ADAPTERS:
        if a.name == kind:
            return a

    # If no adapter matches, raise a clear error.
    raise FeedError(f"No adapter registered for feed kind: {kind}")


class RunState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    GATED = "gated"
    DOWNLOADING = "downloading"
    DRAINING = "draining"
    DONE = "done"
    FATAL = "fatal"
    CANCELLED = "cancelled"


@dataclass
class RunReport:
    state: RunState = RunState.IDLE
    discovered: int = 0
    downloaded: int = 0
    failed: int = 0
    failed_ids: List[int] = field(default_factory=list)
    error: Optional[str] = None


class Orchestrator:
    """
    Sequences one run: gate → scan → (wait for captcha → download)* → cleanup.

    Items are handled strictly one at a time in discovery order. A failed
    download is counted and skipped; only SessionLost ends the run early.
    The captcha watcher and the cookie export file are torn down on every
    exit path, including cancellation.
    """

    def __init__(
        self,
        session: BrowserSession,
        scanner: FeedScanner,
        gate: CaptchaGate,
        pipeline: DownloadPipeline,
        *,
        locators: Locators,
        dest_dir: Path,
        cookie_file: Path,
        cancel: Optional[asyncio.Event] = None,
        feed_ready: Optional[Callable[[], Awaitable[bool]]] = None,
    ) -> None:
        self._session = session
        self._scanner = scanner
        self._gate = gate
        self._pipeline = pipeline
        self._locators = locators
        self._dest_dir = Path(dest_dir)
        self._cookie_file = Path(cookie_file)
        self._cancel = cancel
        self._feed_ready = feed_ready
        self.state = RunState.IDLE

    def _enter(self, state: RunState) -> None:
        if state is not self.state:
            logger.debug("Run state %s -> %s", self.state.value, state.value)
            self.state = state

    async def run(self) -> RunReport:
        report = RunReport()
        try:
            await self._gate.start(self._session)
            if not await self._wait_for_gate():
                await self._pump(report)
            self._enter(RunState.DRAINING)
            final = RunState.CANCELLED if is_cancelled(self._cancel) else RunState.DONE
        except SessionLost as e:
            logger.error("[FATAL] %s", e)
            report.error = str(e)
            final = RunState.FATAL
        except asyncio.CancelledError:
            self._enter(RunState.CANCELLED)
            raise
        finally:
            await self._cleanup()

        self._enter(final)
        report.state = final
        return report

    async def _pump(self, report: RunReport) -> None:
        if self._feed_ready is not None and not await self._feed_ready():
            if not is_cancelled(self._cancel):
                logger.warning("[SKIP] Feed container not found, nothing to download")
            return

        self._enter(RunState.SCANNING)
        async with aclosing(self._scanner.scan(self._session, self._locators, self._cancel)) as items:
            async for item in items:
                if is_cancelled(self._cancel):
                    return
                report.discovered += 1
                index = report.discovered

                if await self._wait_for_gate():
                    return

                self._enter(RunState.DOWNLOADING)
                await self._session.focus_and_scroll_to(item.dom_handle)
                result = await self._pipeline.fetch(item, self._dest_dir, self._cancel)

                if result.error is ErrorKind.CANCELLED:
                    logger.info("[STOP] #%d item %d interrupted", index, item.item_id)
                    return
                if result.ok:
                    report.downloaded += 1
                    logger.info("[OK  ] #%d item %d → %s (%d attempt(s))",
                                index, item.item_id, result.file_path, result.attempts)
                else:
                    report.failed += 1
                    report.failed_ids.append(item.item_id)
                    logger.error("[FAIL] #%d item %d: %s after %d attempts",
                                 index, item.item_id, result.error.value, result.attempts)
                self._enter(RunState.SCANNING)

    async def _wait_for_gate(self) -> bool:
        """Parks the run while a captcha is up. Returns True if cancelled meanwhile."""
        if not self._gate.is_blocked():
            return is_cancelled(self._cancel)
        previous = self.state
        self._enter(RunState.GATED)
        cancelled = await self._gate.wait_until_clear(self._cancel)
        self._enter(previous)
        return cancelled

    async def _cleanup(self) -> None:
        try:
            await self._gate.stop()
        finally:
            self._cookie_file.unlink(missing_ok=True)


async def run_feed(
    session: BrowserSession,
    kind: str,
    identifier: str,
    settings: Settings,
    decide: OperatorDecision,
    cancel: Optional[asyncio.Event] = None,
    runner: ToolRunner = run_tool,
) -> RunReport:
    """
    High-level feed download.
    Steps:
        1. Pick the adapter for the feed kind and build the feed URL.
        2. Navigate there and prepare <root>/<kind-plural>/<identifier>/.
        3. Wire scanner, captcha gate and download pipeline together.
        4. Run the orchestrator; it checks the feed container exists
           (after any captcha is solved) before scanning.
    """

    adapter = pick_adapter(kind)
    name = adapter.normalize(identifier)
    if not name:
        raise FeedError(f"A {kind} name is required")

    url = adapter.feed_url(name)
    if not adapter.is_valid_url(url):
        raise FeedError(f"Invalid URL: {url}")

    t = settings.timings

    try:
        await session.navigate(url)
    except SessionLost as e:
        logger.error("[FATAL] %s", e)
        return RunReport(state=RunState.FATAL, error=str(e))

    dest_dir = adapter.dest_dir(settings.output_root, name)
    dest_dir.mkdir(parents=True, exist_ok=True)

    async def feed_ready() -> bool:
        # The grid renders a moment after domcontentloaded
        outcome = await RetryPolicy(max_attempts=5, delay=t.container_check_delay).run(
            lambda _: element_exists(session, adapter.feed_root),
            lambda found: not found,
            cancel,
        )
        return outcome.ok

    scanner = FeedScanner(
        decide,
        base_url=adapter.site_url,
        settle_delay=t.settle_delay,
        nudge_delay=t.nudge_delay,
        resume_backoff=t.resume_backoff,
        snapshot_retry_delay=t.snapshot_retry_delay,
    )
    gate = CaptchaGate(adapter.captcha, interval=t.captcha_poll, wait_interval=t.captcha_wait)
    pipeline = DownloadPipeline(
        session,
        cookie_file=settings.cookie_file,
        cookie_domain=adapter.cookie_domain,
        tool=settings.tool,
        fragments=settings.fragments,
        metadata_dir=settings.metadata_dir,
        retry=RetryPolicy(max_attempts=settings.max_attempts, delay=t.retry_delay),
        runner=runner,
    )

    logger.info("Downloading %s feed %s → %s", kind, url, dest_dir)
    orchestrator = Orchestrator(
        session, scanner, gate, pipeline,
        locators=adapter.locators,
        dest_dir=dest_dir,
        cookie_file=settings.cookie_file,
        cancel=cancel,
        feed_ready=feed_ready,
    )
    report = await orchestrator.run()

    logger.info("[%s] %d found, %d downloaded, %d failed",
                report.state.value.upper(), report.discovered, report.downloaded, report.failed)
    return report
