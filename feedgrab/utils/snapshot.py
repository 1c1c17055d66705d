from typing import List
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from feedgrab.adapters.base import ItemDescriptor, Locators, parse_item_id


def card_handle(locators: Locators, index: int) -> str:
    """Playwright locator for the index-th card (document order, 0-based)."""
    return f"{locators.container} >> nth={index}"


def extract_items(markup: str, locators: Locators, base_url: str = "") -> List[ItemDescriptor]:
    """
    Pure snapshot → descriptors step of the feed scan.

    Every element matching `locators.container` is a card; the first element
    inside it matching `locators.link` supplies the item URL. Cards without a
    link, or whose link has no trailing numeric id, are dropped silently.
    Result order is document order.
    """
    if not markup:
        return []

    soup = BeautifulSoup(markup, "lxml")
    items: List[ItemDescriptor] = []

    # The index counts every card, kept or not, so the handle stays aligned with the live DOM
    for index, card in enumerate(soup.select(locators.container)):
        link = card.select_one(locators.link)
        href = link.get("href") if link else None
        if not href:
            continue

        url = urljoin(base_url, href) if base_url else href
        item_id = parse_item_id(url)
        if item_id is None:
            continue

        items.append(ItemDescriptor(source_url=url, item_id=item_id, dom_handle=card_handle(locators, index)))

    return items
