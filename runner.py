import argparse
import asyncio
import logging
import signal
import sys
import threading
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from feedgrab.browser import PlaywrightSession
from feedgrab.dispatcher import ADAPTERS, RunState, run_feed
from feedgrab.errors import FeedError
from feedgrab.settings import Settings
from save_session import save_session

logger = logging.getLogger("feedgrab")

LOG_FORMAT = "[%(asctime)s] [%(levelname).3s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(logs_dir: str = "logs", verbose: bool = False) -> None:
    """Console gets everything from INFO up; logs/ keeps a daily file of errors only."""
    formatter = logging.Formatter(LOG_FORMAT, DATE_FORMAT)

    console = logging.StreamHandler()
    console.setFormatter(formatter)

    Path(logs_dir).mkdir(parents=True, exist_ok=True)
    errors = TimedRotatingFileHandler(Path(logs_dir) / "feedgrab.log", when="midnight", encoding="utf-8")
    errors.setLevel(logging.ERROR)
    errors.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    root.handlers[:] = [console, errors]
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def parse_args(argv=None):
    p = argparse.ArgumentParser(prog="feedgrab", description="Download every video of a TikTok account or tag feed")
    p.add_argument("--storage-state", default="auth.json",
                   help="Playwright storage_state json written by `login`")
    p.add_argument("--verbose", action="store_true", help="Debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("login", help="Open a browser, log in by hand, save the session")

    for adapter in ADAPTERS:
        s = sub.add_parser(adapter.name, help=f"Download a {adapter.name} feed")
        s.add_argument("name", nargs="?", help=f"{adapter.name} name (prompted for when omitted)")
        s.add_argument("--out", default="videos", help="Output root directory")
        s.add_argument("--save-json", action="store_true",
                       help="Also keep each video's info json under <out>/jsons")
        s.add_argument("--headless", action="store_true", help="Run headless browser")
        s.add_argument("--tool", default="yt-dlp", help="Extraction tool executable")
        s.add_argument("--fragments", type=int, default=4, help="Concurrent fragment downloads per video")
        s.add_argument("--auto-finish", action="store_true",
                       help="Treat a stalled feed as finished instead of asking")
    return p.parse_args(argv)


def build_settings(args) -> Settings:
    return Settings(
        output_root=Path(args.out),
        save_json=args.save_json,
        tool=args.tool,
        fragments=max(1, args.fragments),
        storage_state=args.storage_state,
        headless=args.headless,
        auto_finish=args.auto_finish,
    )


def ask_name(kind: str, prompt=input) -> str:
    while True:
        name = prompt(f"Enter {kind} name: ").strip()
        if name:
            return name
        print("The name must not be empty")


def _read_choice(stagnant: int, prompt) -> str:
    while True:
        try:
            text = prompt(f"\nNo new content after {stagnant} scrolls. [d]one / [r]esume? ").strip().lower()
        except EOFError:
            return "d"
        if text in ("d", "done", "r", "resume"):
            return text[0]


async def ask_operator(stagnant: int, cancel: asyncio.Event | None = None, prompt=input) -> bool:
    """
    Console prompt for the stalled-feed decision. True = done, False = resume.
    Runs input() on a daemon thread so a Ctrl-C never waits on the keyboard.
    """
    loop = asyncio.get_running_loop()
    answer = loop.create_future()

    def deliver(choice: str) -> None:
        if not answer.done():
            answer.set_result(choice)

    def worker() -> None:
        choice = _read_choice(stagnant, prompt)
        try:
            loop.call_soon_threadsafe(deliver, choice)
        except RuntimeError:
            pass                                  # Loop already closed

    threading.Thread(target=worker, name="operator-prompt", daemon=True).start()

    waiters = {answer}
    stop = None
    if cancel is not None:
        stop = asyncio.ensure_future(cancel.wait())
        waiters.add(stop)

    done, _ = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
    if stop is not None and not stop.done():
        stop.cancel()
    if answer not in done:
        return True
    return answer.result() == "d"


def make_decision(settings: Settings, cancel: asyncio.Event):
    async def decide(stagnant: int) -> bool:
        if settings.auto_finish:
            logger.info("No new content after %d scrolls, finishing", stagnant)
            return True
        return await ask_operator(stagnant, cancel)
    return decide


def _install_stop_handler(cancel: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()

    def on_sigint() -> None:
        logger.warning("Stopping after the current step (Ctrl-C again to abort)")
        cancel.set()
        loop.remove_signal_handler(signal.SIGINT)

    try:
        loop.add_signal_handler(signal.SIGINT, on_sigint)
    except (NotImplementedError, RuntimeError):
        pass                                      # Windows: KeyboardInterrupt cancels the run instead


async def download(args) -> int:
    settings = build_settings(args)
    cancel = asyncio.Event()
    _install_stop_handler(cancel)

    session = await PlaywrightSession.open(headless=settings.headless, storage_state=settings.storage_state)
    try:
        report = await run_feed(session, args.command, args.name, settings, make_decision(settings, cancel), cancel)
    finally:
        await session.dispose()

    if report.failed_ids:
        logger.info("Failed items: %s", ", ".join(str(i) for i in report.failed_ids))
    return 1 if report.state is RunState.FATAL else 0


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging(verbose=args.verbose)

    try:
        if args.command == "login":
            asyncio.run(save_session(args.storage_state))
            return 0
        if not args.name:
            args.name = ask_name(args.command)
        return asyncio.run(download(args))
    except FeedError as e:
        logger.error("%s", e)
        return 2
    except KeyboardInterrupt:
        return 130
    except Exception:
        logger.critical("The application cannot be loaded", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
