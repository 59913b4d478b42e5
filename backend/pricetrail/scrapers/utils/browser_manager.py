"""Playwright browser lifecycle manager for JavaScript-heavy sources.

One Chromium instance is started lazily and shared by every adapter that
needs rendering. Each render opens its own context and page, so several
pages may be in flight against the same browser.
"""

import asyncio
from typing import Dict, Optional

import structlog
from playwright.async_api import (
    Browser,
    BrowserContext,
    Error as PlaywrightError,
    Playwright,
    async_playwright,
)

from pricetrail.config import settings
from pricetrail.core.exceptions import RenderError

logger = structlog.get_logger(__name__)


DEFAULT_EXTRA_HEADERS = {
    "accept": "*/*",
    "accept-language": "en-GB,en;q=0.9",
    "dnt": "1",
}


class BrowserManager:
    """Manages the shared Playwright browser.

    The browser is expensive to start, so it is launched on first use and
    reused until ``stop()``. Launch is serialized with a lock.
    """

    def __init__(
        self,
        headless: bool = True,
        user_agent: str = settings.BROWSER_USER_AGENT,
        timeout_ms: int = settings.RENDER_TIMEOUT_MS,
    ):
        self._headless = headless
        self._user_agent = user_agent
        self._timeout_ms = timeout_ms
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._lock = asyncio.Lock()

    @property
    def is_started(self) -> bool:
        return self._browser is not None

    async def start(self) -> None:
        """Launch the browser if it is not running yet."""
        async with self._lock:
            if self._browser:
                return
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self._headless,
                args=[
                    "--disable-blink-features=AutomationControlled",
                    "--disable-dev-shm-usage",
                    "--no-sandbox",
                ],
            )
            logger.info("browser_started", headless=self._headless)

    async def stop(self) -> None:
        """Close the browser and the Playwright driver."""
        async with self._lock:
            if self._browser:
                await self._browser.close()
                self._browser = None
            if self._playwright:
                await self._playwright.stop()
                self._playwright = None
            logger.info("browser_stopped")

    async def new_context(
        self,
        extra_headers: Optional[Dict[str, str]] = None,
    ) -> BrowserContext:
        """Open a fresh context carrying the bot identity and headers."""
        if not self._browser:
            await self.start()

        headers = dict(DEFAULT_EXTRA_HEADERS)
        if extra_headers:
            headers.update(extra_headers)

        return await self._browser.new_context(
            user_agent=self._user_agent,
            extra_http_headers=headers,
            java_script_enabled=True,
        )

    async def fetch_page_content(
        self,
        url: str,
        wait_until: str = "networkidle",
        extra_headers: Optional[Dict[str, str]] = None,
        settle_seconds: float = 2.0,
    ) -> str:
        """Navigate to ``url`` and return the rendered HTML.

        Args:
            url: Page to render
            wait_until: Playwright load state to wait for
            extra_headers: Headers added to the default set (origin, referer)
            settle_seconds: Extra wait for late dynamic content

        Raises:
            RenderError: If navigation or rendering fails
        """
        context = await self.new_context(extra_headers)
        try:
            page = await context.new_page()
            logger.info("rendering_page", url=url)
            await page.goto(url, wait_until=wait_until, timeout=self._timeout_ms)
            await page.wait_for_load_state("domcontentloaded")
            if settle_seconds:
                await asyncio.sleep(settle_seconds)

            content = await page.content()
            logger.info("page_rendered", url=url, bytes=len(content))
            return content
        except PlaywrightError as e:
            raise RenderError(url, str(e)) from e
        finally:
            await context.close()

    async def fetch_api_response(
        self,
        url: str,
        url_pattern: str,
        extra_headers: Optional[Dict[str, str]] = None,
    ) -> str:
        """Load ``url`` and capture the first 200 response matching ``url_pattern``.

        Useful for sites whose listings come from a JSON API called by the
        page rather than from the HTML itself.

        Raises:
            RenderError: If navigation fails or no matching response arrives
        """
        context = await self.new_context(extra_headers)
        try:
            page = await context.new_page()
            logger.info("capturing_api_response", url=url, pattern=url_pattern)
            async with page.expect_response(
                lambda response: url_pattern in response.url and response.status == 200,
                timeout=self._timeout_ms,
            ) as response_info:
                await page.goto(url, wait_until="networkidle", timeout=self._timeout_ms)

            response = await response_info.value
            body = await response.text()
            logger.info("api_response_captured", url=url, bytes=len(body))
            return body
        except PlaywrightError as e:
            raise RenderError(url, str(e)) from e
        finally:
            await context.close()


# Singleton instance
_browser_manager: Optional[BrowserManager] = None


def get_browser_manager() -> BrowserManager:
    """Get the global BrowserManager singleton."""
    global _browser_manager
    if _browser_manager is None:
        _browser_manager = BrowserManager()
    return _browser_manager
