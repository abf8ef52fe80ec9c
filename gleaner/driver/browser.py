"""Playwright adapter and browser lifecycle.

open_browser launches Chromium with the configured headless flag, user
agent and viewport, yields a PlaywrightPage, and tears the page, context,
browser and playwright instance down in reverse order on exit.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import (
    Browser,
    BrowserContext,
    ElementHandle,
    Page,
    async_playwright,
)
from playwright.async_api import (
    TimeoutError as PlaywrightTimeoutError,
)

from gleaner.common.exceptions import (
    BrowserLaunchException,
    RequestTimeoutException,
)
from gleaner.data_types import PageResponse

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from gleaner.common.config import ScraperConfig

logger = logging.getLogger(__name__)


class PlaywrightPage:
    """PageLike implementation over a Playwright page.

    Args:
        page: The live Playwright page. It is owned by open_browser.
    """

    def __init__(self, page: Page) -> None:
        self._page = page

    @property
    def url(self) -> str:
        return self._page.url

    def _timeout(self, e: PlaywrightTimeoutError, timeout_ms: int) -> RequestTimeoutException:
        logger.debug(f"Playwright timeout on {self._page.url}: {e}")
        return RequestTimeoutException(self._page.url, timeout_ms / 1000.0)

    async def goto(
        self,
        url: str,
        wait_until: str = "domcontentloaded",
        timeout_ms: int = 30000,
    ) -> PageResponse | None:
        try:
            response = await self._page.goto(
                url, wait_until=wait_until, timeout=timeout_ms  # type: ignore[arg-type]
            )
        except PlaywrightTimeoutError as e:
            raise RequestTimeoutException(url, timeout_ms / 1000.0) from e
        if response is None:
            return None
        return PageResponse(status=response.status, headers=response.headers)

    async def query_all(
        self, selector: str, root: ElementHandle | None = None
    ) -> list[ElementHandle]:
        scope = root if root is not None else self._page
        return await scope.query_selector_all(selector)

    async def query_one(
        self, selector: str, root: ElementHandle | None = None
    ) -> ElementHandle | None:
        scope = root if root is not None else self._page
        return await scope.query_selector(selector)

    async def attribute(self, element: ElementHandle, name: str) -> str | None:
        return await element.get_attribute(name)

    async def text(self, element: ElementHandle) -> str:
        return await element.text_content() or ""

    async def click(
        self, element: ElementHandle, timeout_ms: int | None = None
    ) -> None:
        try:
            await element.click(timeout=timeout_ms)
        except PlaywrightTimeoutError as e:
            raise self._timeout(e, timeout_ms or 0) from e

    async def is_visible(self, element: ElementHandle) -> bool:
        return await element.is_visible()

    async def evaluate(self, expression: str) -> Any:
        return await self._page.evaluate(expression)

    async def wait_for_selector(
        self, selector: str, timeout_ms: int, visible: bool = True
    ) -> None:
        try:
            await self._page.wait_for_selector(
                selector,
                timeout=timeout_ms,
                state="visible" if visible else "attached",
            )
        except PlaywrightTimeoutError as e:
            raise self._timeout(e, timeout_ms) from e

    async def wait_for_idle(self, timeout_ms: int) -> None:
        try:
            await self._page.wait_for_load_state("networkidle", timeout=timeout_ms)
        except PlaywrightTimeoutError as e:
            raise self._timeout(e, timeout_ms) from e

    async def wait_for_dom_ready(self, timeout_ms: int) -> None:
        try:
            await self._page.wait_for_load_state(
                "domcontentloaded", timeout=timeout_ms
            )
        except PlaywrightTimeoutError as e:
            raise self._timeout(e, timeout_ms) from e

    async def press(self, key: str) -> None:
        await self._page.keyboard.press(key)


@asynccontextmanager
async def open_browser(config: ScraperConfig) -> AsyncIterator[PlaywrightPage]:
    """Launch Chromium and yield a page configured for ``config``.

    Raises:
        BrowserLaunchException: If Playwright or Chromium cannot be started.

    Example:
        async with open_browser(config) as page:
            await page.goto(config.target_url)
    """
    logger.info(
        f"Launching Chromium (headless={config.headless}, "
        f"viewport={config.viewport.width}x{config.viewport.height})"
    )
    try:
        playwright = await async_playwright().start()
    except PlaywrightError as e:
        raise BrowserLaunchException(f"Failed to launch browser: {e}") from e

    try:
        try:
            browser: Browser = await playwright.chromium.launch(
                headless=config.headless, timeout=config.timeout_ms
            )
        except PlaywrightError as e:
            raise BrowserLaunchException(f"Failed to launch browser: {e}") from e

        try:
            context: BrowserContext = await browser.new_context(
                user_agent=config.user_agent,
                viewport={
                    "width": config.viewport.width,
                    "height": config.viewport.height,
                },
            )
            context.set_default_timeout(config.timeout_ms)

            try:
                page = await context.new_page()
                yield PlaywrightPage(page)
            finally:
                await context.close()
        finally:
            logger.info("Closing browser")
            await browser.close()
    finally:
        await playwright.stop()
