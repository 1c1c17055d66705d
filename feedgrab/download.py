from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Sequence

from feedgrab.adapters.base import ItemDescriptor
from feedgrab.browser import BrowserSession
from feedgrab.errors import ErrorKind
from feedgrab.retry import RetryPolicy

logger = logging.getLogger(__name__)

# argv → exit code
ToolRunner = Callable[[Sequence[str]], Awaitable[int]]


@dataclass(frozen=True)
class DownloadJob:
    item: ItemDescriptor
    dest_dir: Path
    attempt: int = 1


@dataclass(frozen=True)
class DownloadResult:
    ok: bool
    file_path: Optional[Path] = None
    error: Optional[ErrorKind] = None
    attempts: int = 0


async def run_tool(argv: Sequence[str]) -> int:
    """Runs the extraction tool to completion and returns its exit code."""
    proc = await asyncio.create_subprocess_exec(
        *argv,
        stdout=asyncio.subprocess.DEVNULL,
        stderr=asyncio.subprocess.PIPE,
    )
    _, stderr = await proc.communicate()
    if stderr:
        tail = stderr.decode("utf-8", errors="replace").strip().splitlines()[-1:]
        if tail:
            logger.debug("%s: %s", Path(argv[0]).name, tail[0])
    return proc.returncode


def find_artifact(dest_dir: Path, item_id: int) -> Optional[Path]:
    """
    The downloaded file for `item_id`: a file in `dest_dir` whose stem is the id,
    whatever the extension. Partial files ("123.mp4.part") never match.
    If several containers ended up on disk, the newest one wins.
    """
    if not dest_dir.is_dir():
        return None
    stem = str(item_id)
    matches = [p for p in dest_dir.iterdir() if p.is_file() and p.stem == stem]
    if not matches:
        return None
    return max(matches, key=lambda p: p.stat().st_mtime)


class DownloadPipeline:
    """Materializes one item at a time through the external extraction tool.

    Success is decided by what lands on disk, never by the tool's exit
    code. Every attempt re-exports the browser cookies first, since the
    session may have rotated them (a solved captcha does exactly that).
    """

    def __init__(
        self,
        session: BrowserSession,
        *,
        cookie_file: Path,
        cookie_domain: str,
        tool: str = "yt-dlp",
        fragments: int = 4,
        metadata_dir: Optional[Path] = None,
        retry: RetryPolicy = RetryPolicy(),
        runner: ToolRunner = run_tool,
    ) -> None:
        self._session = session
        self._cookie_file = Path(cookie_file)
        self._cookie_domain = cookie_domain
        self._tool = tool
        self._fragments = fragments
        self._metadata_dir = Path(metadata_dir) if metadata_dir else None
        self._retry = retry
        self._runner = runner

    def build_command(self, job: DownloadJob) -> List[str]:
        argv = [
            self._tool,
            "--cookies", str(self._cookie_file),
            "-N", str(self._fragments),
            "-P", str(job.dest_dir),
        ]
        if self._metadata_dir is not None:
            argv += ["--write-info-json", "-P", f"infojson:{self._metadata_dir}"]
        argv += ["-o", f"{job.item.item_id}.%(ext)s", job.item.source_url]
        return argv

    async def fetch(
        self,
        item: ItemDescriptor,
        dest_dir: Path,
        cancel: Optional[asyncio.Event] = None,
    ) -> DownloadResult:
        job = DownloadJob(item=item, dest_dir=Path(dest_dir))
        job.dest_dir.mkdir(parents=True, exist_ok=True)
        if self._metadata_dir is not None:
            self._metadata_dir.mkdir(parents=True, exist_ok=True)

        async def attempt(n: int) -> Optional[Path]:
            return await self._attempt(replace(job, attempt=n))

        outcome = await self._retry.run(attempt, lambda found: found is None, cancel)

        if outcome.ok:
            return DownloadResult(ok=True, file_path=outcome.value, attempts=outcome.attempts)
        if outcome.cancelled:
            return DownloadResult(ok=False, error=ErrorKind.CANCELLED, attempts=outcome.attempts)
        return DownloadResult(ok=False, error=ErrorKind.EXTRACTION_EXHAUSTED, attempts=outcome.attempts)

    async def _attempt(self, job: DownloadJob) -> Optional[Path]:
        await self._session.export_cookies(self._cookie_file, self._cookie_domain)

        argv = self.build_command(job)
        try:
            code = await self._runner(argv)
        except OSError as e:
            logger.error("Could not start %s: %s", self._tool, e)
            return None

        found = find_artifact(job.dest_dir, job.item.item_id)
        if found is None:
            logger.warning("[RETRY] Item %d: no file after attempt %d/%d (exit code %s)",
                           job.item.item_id, job.attempt, self._retry.max_attempts, code)
        return found
