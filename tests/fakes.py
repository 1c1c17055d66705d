"""Stand-ins for the browser session and the extraction tool."""

import asyncio
from collections import defaultdict
from pathlib import Path

from feedgrab.errors import SessionLost
from feedgrab.utils.stream import SCROLL_HEIGHT


def feed_markup(*hrefs, root="user-post-item-list"):
    """A feed page with one card per href (None = a card without a link)."""
    cards = "".join(
        f'<div><a href="{h}"><img src="x.jpg"></a></div>' if h else "<div><span>ad</span></div>"
        for h in hrefs
    )
    return f"<html><body><div data-e2e='{root}'>{cards}</div></body></html>"


def video(item_id, user="bob"):
    return f"https://www.tiktok.com/@{user}/video/{item_id}"


class FakeSession:
    """Scripted BrowserSession.

    `pages` and `heights` are consumed one per call; the last entry repeats.
    """

    def __init__(self, pages=None, heights=None, captcha=False, feed_present=True):
        self.pages = list(pages or [])
        self.heights = list(heights or [1000])
        self.captcha = captcha
        self.feed_present = feed_present
        self.lost = False
        self.captcha_on_snapshot = False

        self.navigated = []
        self.scripts = []
        self.focused = []
        self.height_reads = 0
        self.cookie_exports = 0
        self.snapshots = 0
        self.disposed = False

    def _check(self):
        if self.lost:
            raise SessionLost("target page, context or browser has been closed")

    @staticmethod
    def _next(seq):
        return seq.pop(0) if len(seq) > 1 else seq[0]

    async def navigate(self, url):
        self._check()
        self.navigated.append(url)

    async def current_markup(self):
        self._check()
        self.snapshots += 1
        if self.captcha_on_snapshot:
            self.captcha_on_snapshot = False
            self.captcha = True
            await asyncio.sleep(0.05)             # Let the captcha poller notice
        if not self.pages:
            return ""
        return self._next(self.pages)

    async def execute_script(self, script, arg=None):
        self._check()
        self.scripts.append(script)
        if "querySelector" in script:
            if "captcha" in arg:
                return self.captcha
            return self.feed_present
        if script == SCROLL_HEIGHT:
            self.height_reads += 1
            return self._next(self.heights)
        return None

    async def focus_and_scroll_to(self, locator):
        self._check()
        self.focused.append(locator)

    async def export_cookies(self, path, domain):
        self._check()
        self.cookie_exports += 1
        Path(path).write_text("# Netscape HTTP Cookie File\n", encoding="utf-8")
        return 0

    async def dispose(self):
        self.disposed = True


class FakeTool:
    """Extraction tool double.

    `succeeds(item_id, call_no)` decides whether the n-th call for an item
    (1-based) leaves a file behind. `on_call` runs before that, with the argv.
    """

    def __init__(self, succeeds=lambda item_id, n: True, on_call=None):
        self._succeeds = succeeds
        self._on_call = on_call
        self.calls = []
        self.per_item = defaultdict(int)

    async def __call__(self, argv):
        argv = list(argv)
        self.calls.append(argv)
        item_id = int(argv[argv.index("-o") + 1].split(".")[0])
        self.per_item[item_id] += 1
        if self._on_call is not None:
            self._on_call(argv)
        if self._succeeds(item_id, self.per_item[item_id]):
            dest = Path(argv[argv.index("-P") + 1])
            (dest / f"{item_id}.mp4").write_bytes(b"\x00\x00\x00\x18ftypmp42")
        return 1                                  # Exit code is never looked at

    def ids(self):
        return [int(c[c.index("-o") + 1].split(".")[0]) for c in self.calls]


async def always_done(stagnant):
    return True


class BrokenCaptchaSession(FakeSession):
    """FakeSession whose `fail_on`-th captcha check raises an unexpected error."""

    def __init__(self, *args, fail_on=2, **kwargs):
        super().__init__(*args, **kwargs)
        self.fail_on = fail_on
        self.captcha_checks = 0

    async def execute_script(self, script, arg=None):
        if "querySelector" in script and "captcha" in arg:
            self.captcha_checks += 1
            if self.captcha_checks == self.fail_on:
                raise ValueError("unexpected evaluate result")
        return await super().execute_script(script, arg)


class SlowTool(FakeTool):
    """FakeTool that takes `delay` seconds per call."""

    def __init__(self, *args, delay=0.05, **kwargs):
        super().__init__(*args, **kwargs)
        self.delay = delay

    async def __call__(self, argv):
        await asyncio.sleep(self.delay)
        return await super().__call__(argv)
