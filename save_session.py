import asyncio
import logging

from playwright._impl._errors import Error as PWError

from feedgrab.adapters.tiktok import LOGIN_BUTTON, SITE_URL
from feedgrab.browser import PlaywrightSession

logger = logging.getLogger(__name__)


async def save_session(storage_state: str = "auth.json", prompt=input):
    """
    Opens a browser for manual login and saves the authentication state.
    Run this once; feed downloads then start already signed in.
    """
    # Headed on purpose: the operator types the credentials
    session = await PlaywrightSession.open(headless=False, storage_state=storage_state)
    try:
        logger.info("Navigating to %s ...", SITE_URL)
        await session.navigate(SITE_URL)

        try:
            await session.page.click(LOGIN_BUTTON, timeout=10000)
        except PWError as e:
            # The dialog can also be opened by hand
            logger.warning("Login button not found (%s); open the login dialog manually", e)

        print("\n[ACTION REQUIRED]: Please log in manually in the browser window.")
        await asyncio.to_thread(prompt, "\nPress Enter here AFTER you have successfully logged in...")

        # Save the storage state (cookies, localStorage, etc.)
        await session.context.storage_state(path=storage_state)
        logger.info("[SUCCESS]: Session saved to '%s'.", storage_state)
    finally:
        await session.dispose()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    asyncio.run(save_session())
