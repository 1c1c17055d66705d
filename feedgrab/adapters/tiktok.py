from urllib.parse import quote

from feedgrab.adapters.base import FeedAdapter, Locators

SITE_URL = "https://www.tiktok.com"

# Human-verification dialog the site drops over the page
CAPTCHA = "div[role='dialog'][class*='captcha_verify']"

# Header button that opens the login modal
LOGIN_BUTTON = "div[class*='NavPlaceholder'] button#header-login-button"

VIDEO_LINK = "a[href*='/video/']"


class TikTokAdapter(FeedAdapter):
    site_url = SITE_URL
    cookie_domain = "tiktok.com"
    captcha = CAPTCHA


class TikTokUserAdapter(TikTokAdapter):
    name = "user"
    plural = "users"
    prefix = "@"

    feed_root = "div[data-e2e='user-post-item-list']"
    locators = Locators(
        container="div[data-e2e='user-post-item-list'] > div",
        link=VIDEO_LINK,
    )

    def feed_url(self, identifier: str) -> str:
        return f"{SITE_URL}/@{quote(identifier)}"


class TikTokTagAdapter(TikTokAdapter):
    name = "tag"
    plural = "tags"
    prefix = "#"

    feed_root = "div[data-e2e='challenge-item-list']"
    locators = Locators(
        container="div[data-e2e='challenge-item-list'] > div",
        link=VIDEO_LINK,
    )

    def feed_url(self, identifier: str) -> str:
        return f"{SITE_URL}/tag/{quote(identifier)}"
