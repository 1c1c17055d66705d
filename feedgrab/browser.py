import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol

# Import the asynchronous Playwright API.
# This allows us to launch and control the browser using async/await.
from playwright.async_api import async_playwright
from playwright._impl._errors import TargetClosedError, Error as PWError

from feedgrab.errors import SessionLost

logger = logging.getLogger(__name__)


CHROME_ARGS = [
    "--disable-blink-features=AutomationControlled",
    # Keeps navigator.webdriver from being set to True.

    "--no-sandbox",
    # Required inside Docker, CI/CD pipelines, or restricted environments.

    "--disable-dev-shm-usage",
    # /dev/shm is tiny inside containers; Chromium crashes without this.
]


UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/133.0.0.0 Safari/537.36"
)
# Real desktop Chrome UA; the default one advertises automation.


class BrowserSession(Protocol):
    """The only browser surface the scan/download engine is allowed to touch."""

    async def navigate(self, url: str) -> None: ...

    async def current_markup(self) -> Optional[str]: ...

    async def execute_script(self, script: str, arg: Any = None) -> Any: ...

    async def focus_and_scroll_to(self, locator: str) -> None: ...

    async def export_cookies(self, path: Path, domain: str) -> int: ...

    async def dispose(self) -> None: ...


async def element_exists(session: BrowserSession, selector: str) -> bool:
    """True when `selector` currently matches something on the page."""
    found = await session.execute_script("(s) => !!document.querySelector(s)", selector)
    return bool(found)


def _cookie_matches(cookie_domain: str, domain: str) -> bool:
    host = cookie_domain.lstrip(".").lower()
    domain = domain.lstrip(".").lower()
    return host == domain or host.endswith("." + domain)


def netscape_cookie_lines(cookies: Iterable[Dict[str, Any]], domain: str) -> List[str]:
    """
    Renders Playwright cookie dicts as a Netscape cookies.txt body.
    Only cookies belonging to `domain` (or its subdomains) are kept.

    Column order: domain, include-subdomains, path, secure, expiry, name, value.
    HttpOnly cookies carry the "#HttpOnly_" domain prefix curl and yt-dlp expect.
    """
    lines = ["# Netscape HTTP Cookie File", ""]
    for c in cookies:
        host = c.get("domain", "")
        if not host or not _cookie_matches(host, domain):
            continue

        expires = c.get("expires", -1)
        expires = int(expires) if expires and expires > 0 else 0   # -1 marks a session cookie

        prefix = "#HttpOnly_" if c.get("httpOnly") else ""
        lines.append("\t".join([
            prefix + host,
            "TRUE" if host.startswith(".") else "FALSE",
            c.get("path") or "/",
            "TRUE" if c.get("secure") else "FALSE",
            str(expires),
            c.get("name", ""),
            c.get("value", ""),
        ]))
    return lines


async def open_page(headless: bool = True, storage_state: str | None = None):
    """
    Launches Playwright, opens a Chromium browser, creates a browser context,
    and finally opens a new page. Returns all four objects for later cleanup.

    Returns:
        pw: Playwright instance
        browser: Chromium browser object
        context: Browser context (cookies, localStorage, session)
        page: Actual browser tab for navigation and scraping
    """

    pw = await async_playwright().start()
    # Start the Playwright engine.

    browser = await pw.chromium.launch(headless=headless, args=CHROME_ARGS)
    # headless=False is the normal mode here: the operator may have to solve a captcha.

    context = await browser.new_context(
        storage_state=storage_state if storage_state and Path(storage_state).exists() else None,
        # Saved cookies / localStorage from `runner.py login`.
        # A missing file just means an anonymous session.

        user_agent=UA,

        viewport={"width": 1366, "height": 900}
        # Below ~800px the site switches to its mobile layout and the selectors stop matching.
    )

    page = await context.new_page()

    return pw, browser, context, page


async def close_page(pw, browser, context):
    """
    Properly closes Playwright resources.
    This prevents memory leaks, zombie browser processes, and resource locks.
    """

    await context.close()
    # Closes all pages/tabs under this context.

    await browser.close()
    # Completely closes the Chromium process.

    await pw.stop()
    # Shuts down the Playwright engine itself (its Node.js driver process).


class PlaywrightSession:
    """BrowserSession over one Playwright page.

    Target-closed errors become SessionLost; anything else Playwright raises
    while reading the page is treated as a momentary failure.
    """

    def __init__(self, pw, browser, context, page) -> None:
        self._pw = pw
        self._browser = browser
        self._context = context
        self._page = page
        self._disposed = False

    @classmethod
    async def open(cls, headless: bool = True, storage_state: str | None = None) -> "PlaywrightSession":
        return cls(*await open_page(headless=headless, storage_state=storage_state))

    @property
    def page(self):
        return self._page

    @property
    def context(self):
        return self._context

    def _lost(self, exc: Exception) -> SessionLost:
        return SessionLost(f"browser session is gone: {exc}")

    async def navigate(self, url: str) -> None:
        try:
            await self._page.goto(url, wait_until="domcontentloaded")
        except TargetClosedError as e:
            raise self._lost(e) from e

    async def current_markup(self) -> Optional[str]:
        if self._page.is_closed():
            raise SessionLost("page was closed")
        try:
            return await self._page.content()
        except TargetClosedError as e:
            raise self._lost(e) from e
        except PWError as e:
            # "page is navigating" and friends: no snapshot this round
            logger.debug("Snapshot unavailable: %s", e)
            return None

    async def execute_script(self, script: str, arg: Any = None) -> Any:
        try:
            return await self._page.evaluate(script, arg)
        except TargetClosedError as e:
            raise self._lost(e) from e
        except PWError as e:
            logger.debug("Script failed: %s", e)
            return None

    async def focus_and_scroll_to(self, locator: str) -> None:
        try:
            await self._page.locator(locator).scroll_into_view_if_needed(timeout=5000)
        except TargetClosedError as e:
            raise self._lost(e) from e
        except PWError as e:
            # The card may have been virtualized away; scrolling to it is cosmetic
            logger.debug("Could not scroll to %s: %s", locator, e)

    async def export_cookies(self, path: Path, domain: str) -> int:
        try:
            cookies = await self._context.cookies()
        except TargetClosedError as e:
            raise self._lost(e) from e

        lines = netscape_cookie_lines(cookies, domain)
        Path(path).write_text("\n".join(lines) + "\n", encoding="utf-8")
        return len(lines) - 2

    async def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        try:
            await close_page(self._pw, self._browser, self._context)
        except PWError as e:
            logger.debug("Browser was already closed: %s", e)
