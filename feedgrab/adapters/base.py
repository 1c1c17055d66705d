from dataclasses import dataclass                 # dataclass creates lightweight, readable data objects
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

MAX_ITEM_ID = 2**63 - 1                            # Ids are signed 64-bit on the site


@dataclass(frozen=True)
class ItemDescriptor:                              # One discovered feed item (immutable)
    source_url: str                               # Absolute link to the item's page
    item_id: int                                  # Numeric id from the URL, used as the dedup key
    dom_handle: str                               # Playwright locator string pointing back at the card


@dataclass(frozen=True)
class Locators:                                    # The (container, link) selector pair
    container: str                                # CSS selector matching every item card
    link: str                                     # CSS selector for the item link, relative to a card


def parse_item_id(url: str) -> Optional[int]:
    """
    Returns the trailing numeric path segment of `url`, or None.
    Example:
        "https://www.tiktok.com/@bob/video/7301?lang=en" → 7301
        "https://www.tiktok.com/@bob/video/abc"          → None
    """
    if not url:
        return None
    tail = urlparse(url).path.rstrip("/").rsplit("/", 1)[-1]
    if not tail.isascii() or not tail.isdigit():
        return None
    value = int(tail)
    if value > MAX_ITEM_ID:
        return None
    return value


class FeedAdapter:                                 # Base class for every feed kind (account, tag, ...)
    name: str = "base"                            # Feed kind as typed on the command line
    plural: str = "bases"                         # Directory name under the output root
    site_url: str = ""                            # Site root, also used to resolve relative links
    cookie_domain: str = ""                       # Domain whose cookies the extraction tool needs
    locators: Locators = Locators("", "")         # Item card + link selectors
    feed_root: str = ""                           # Selector that must exist for the feed to be scannable
    prefix: str = ""                              # Character users tend to paste in front of the name
    captcha: str = ""                             # Selector of the human-verification marker

    def normalize(self, identifier: str) -> str:
        return (identifier or "").strip().lstrip(self.prefix).strip()

    def feed_url(self, identifier: str) -> str:   # URL of the feed for one account/tag
        raise NotImplementedError

    def dest_dir(self, root: Path, identifier: str) -> Path:
        return Path(root) / self.plural / identifier

    @staticmethod
    def is_valid_url(url: str) -> bool:
        parts = urlparse(url)
        return parts.scheme in ("http", "https") and bool(parts.netloc)
