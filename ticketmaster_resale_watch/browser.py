"""
Browser session used to reach Ticketmaster with a realistic identity.
"""
import asyncio
import logging
from typing import Any, Optional

from playwright.async_api import (
    async_playwright,
    Browser,
    BrowserContext,
    Page,
    Playwright,
)

from .models import SessionConfig

logger = logging.getLogger(__name__)


class BrowserSession:
    """Owns one Chromium browser, context and page for a single watch."""

    def __init__(self, config: SessionConfig):
        """Initialize with session configuration."""
        self.config = config
        self.playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None
        self.page: Optional[Page] = None

    async def __aenter__(self):
        """Async context manager entry."""
        await self.setup()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def setup(self) -> None:
        """Launch the browser and open a page with a fixed locale and timezone."""
        self.playwright = await async_playwright().start()
        try:
            self.browser = await self.playwright.chromium.launch(
                headless=self.config.headless,
                args=[
                    '--disable-blink-features=AutomationControlled',
                    '--disable-infobars',
                    '--no-sandbox',
                    '--disable-setuid-sandbox',
                    '--disable-dev-shm-usage',
                ]
            )

            self.context = await self.browser.new_context(
                user_agent=self.config.user_agent,
                viewport={'width': self.config.viewport[0], 'height': self.config.viewport[1]},
                timezone_id=self.config.timezone,
                locale=self.config.locale,
                java_script_enabled=True,
            )

            # Hide the webdriver flag
            await self.context.add_init_script("""
            Object.defineProperty(navigator, 'webdriver', { get: () => false });
            """)

            self.page = await self.context.new_page()
            self.page.set_default_timeout(self.config.timeout * 1000)  # Convert to ms
        except Exception:
            await self._abort()
            raise

    async def navigate(self, url: str, wait_until: str = 'networkidle', timeout_ms: Optional[float] = None) -> None:
        """Navigate to a URL.

        Args:
            url: The URL to navigate to
            wait_until: When to consider navigation succeeded ('load', 'domcontentloaded', 'networkidle')
            timeout_ms: Navigation timeout in milliseconds (default: session timeout)
        """
        if not self.page:
            raise RuntimeError("Browser not initialized. Call setup() first.")

        logger.debug(f"🌐 Navigating to {url}")
        await self.page.goto(
            url,
            wait_until=wait_until,
            timeout=timeout_ms if timeout_ms is not None else self.config.timeout * 1000,
        )

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        """Run a JavaScript function inside the page and return its result."""
        if not self.page:
            raise RuntimeError("Browser not initialized. Call setup() first.")
        return await self.page.evaluate(expression, arg)

    def is_connected(self) -> bool:
        """Whether the underlying browser is still usable."""
        if not self.browser or not self.browser.is_connected():
            return False
        return self.page is not None and not self.page.is_closed()

    async def close(self, timeout: float = 5.0) -> None:
        """Close the browser, aborting if it does not shut down within ``timeout`` seconds."""
        try:
            await asyncio.wait_for(self._close_gracefully(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"⚠️ Browser close timed out after {timeout}s, forcing shutdown")
            await self._abort()
        except Exception as e:
            logger.warning(f"⚠️ Error closing browser: {e}")
            await self._abort()
        finally:
            self.page = None
            self.context = None
            self.browser = None
            self.playwright = None

    async def _close_gracefully(self) -> None:
        if self.page and not self.page.is_closed():
            await self.page.close()
        if self.context:
            await self.context.close()
        if self.browser:
            await self.browser.close()
        if self.playwright:
            await self.playwright.stop()

    async def _abort(self) -> None:
        """Best-effort teardown once a graceful close has failed."""
        if self.browser:
            try:
                await asyncio.wait_for(self.browser.close(), timeout=1.0)
            except Exception as e:
                logger.debug(f"Force close of browser failed: {e}")
        if self.playwright:
            try:
                await asyncio.wait_for(self.playwright.stop(), timeout=1.0)
            except Exception as e:
                logger.debug(f"Stopping playwright failed: {e}")


async def launch_session(config: SessionConfig) -> BrowserSession:
    """Start a browser session ready to navigate."""
    session = BrowserSession(config)
    await session.setup()
    return session
