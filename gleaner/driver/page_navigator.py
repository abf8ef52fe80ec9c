"""Navigation, lazy-load settling and pagination.

PageNavigator owns every browser interaction that changes what the page
shows: loading a URL, scrolling to trigger lazy content, dismissing
overlays and clicking through to the next page. None of its methods raise;
failures are logged and reported through return values, with the cause of
the last failed navigation kept in ``last_failure``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

from gleaner.common.exceptions import (
    AntiBotDetectedException,
    HTMLResponseAssumptionException,
    NavigationFailedException,
    RateLimitedException,
)
from gleaner.common.selectors import TRUSTPILOT, ReviewSelectors
from gleaner.data_types import NavigationResult, PageResponse
from gleaner.driver.page import Element, PageLike

logger = logging.getLogger(__name__)

# Pauses, in milliseconds.
SCROLL_PAUSE_MS = 1000
GROWTH_PAUSE_MS = 500
SCROLL_BACK_PAUSE_MS = 500
OVERLAY_CLICK_PAUSE_MS = 500
ESCAPE_PAUSE_MS = 300
CLICK_RETRY_PAUSE_MS = 500
CLICK_FAILURE_PAUSE_MS = 1000

CLICK_ATTEMPTS = 3
HEIGHT_GROWTH_FACTOR = 1.1


def parse_retry_after(value: str | None) -> int | None:
    """Parse a Retry-After header into whole seconds.

    Accepts either delta-seconds or an HTTP-date. Returns None for a missing
    or unparseable header.
    """
    if not value:
        return None
    value = value.strip()
    if value.isdigit():
        return int(value)
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0, int((when - datetime.now(timezone.utc)).total_seconds()))


def failure_for_response(url: str, response: PageResponse | None) -> Exception:
    """Build the exception describing an unusable navigation response."""
    if response is None:
        return NavigationFailedException(url, "no response received")
    if response.status == 429:
        headers = {k.lower(): v for k, v in response.headers.items()}
        return RateLimitedException(
            url, parse_retry_after(headers.get("retry-after"))
        )
    if response.status >= 500:
        return HTMLResponseAssumptionException(response.status, [200], url)
    return NavigationFailedException(url, f"HTTP {response.status}")


class PageNavigator:
    """Drives a page through a paginated listing.

    Args:
        page: The page to drive.
        timeout_ms: Navigation, click and selector timeout.
        idle_timeout_ms: Network-idle wait timeout.
        selectors: Selector table supplying the "next page", overlay close
            and challenge-marker candidates (default: the Trustpilot layout).
        sleep: Async sleep taking seconds (default: asyncio.sleep).
    """

    def __init__(
        self,
        page: PageLike,
        timeout_ms: int = 30000,
        idle_timeout_ms: int = 10000,
        selectors: ReviewSelectors = TRUSTPILOT,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.page = page
        self.timeout_ms = timeout_ms
        self.idle_timeout_ms = idle_timeout_ms
        self.next_selectors = selectors.next_page
        self.close_selectors = selectors.overlay_close
        self.challenge_selectors = selectors.challenge
        self._sleep = sleep
        self.last_failure: Exception | None = None

    async def _pause(self, ms: int) -> None:
        await self._sleep(ms / 1000.0)

    async def navigate(self, url: str) -> bool:
        """Load ``url``.

        Returns True only for a response with status < 400 that is not a bot
        challenge page.
        """
        self.last_failure = None
        logger.info(f"GET {url}")
        try:
            response = await self.page.goto(
                url, wait_until="domcontentloaded", timeout_ms=self.timeout_ms
            )
        except Exception as e:
            logger.error(f"Navigation error for {url}: {e}")
            self.last_failure = e
            return False

        if response is None:
            logger.error(f"Navigation failed: no response received for {url}")
            self.last_failure = failure_for_response(url, None)
            return False

        logger.info(f"{url} -> {response.status}")
        if response.status >= 400:
            logger.error(
                f"Navigation failed with status {response.status} for {url}"
            )
            self.last_failure = failure_for_response(url, response)
            return False

        marker = await self.detect_challenge()
        if marker is not None:
            logger.error(f"Bot challenge served for {url} (matched {marker})")
            self.last_failure = AntiBotDetectedException(
                f"Bot challenge page served instead of the listing "
                f"(matched {marker})"
            )
            return False
        return True

    async def detect_challenge(self) -> str | None:
        """Return the first challenge marker present on the page, or None."""
        for selector in self.challenge_selectors:
            try:
                if await self.page.query_one(selector) is not None:
                    return selector
            except Exception as e:
                logger.debug(f"Challenge selector {selector!r} failed: {e}")
        return None

    async def wait_for_content(
        self, selector: str, timeout_ms: int | None = None
    ) -> bool:
        try:
            await self.page.wait_for_selector(
                selector, timeout_ms or self.timeout_ms, visible=True
            )
        except Exception:
            logger.warning(f"Timeout waiting for selector: {selector}")
            return False
        return True

    async def wait_for_idle(self) -> None:
        try:
            await self.page.wait_for_idle(self.idle_timeout_ms)
        except Exception:
            logger.warning("Network idle timeout - continuing anyway")

    async def settle(self) -> None:
        """Scroll once to the bottom and back to trigger lazy loading."""
        try:
            initial_height = await self.page.evaluate("document.body.scrollHeight")
            await self.page.evaluate(
                "window.scrollTo(0, document.body.scrollHeight)"
            )
            await self._pause(SCROLL_PAUSE_MS)

            new_height = await self.page.evaluate("document.body.scrollHeight")
            if new_height > initial_height * HEIGHT_GROWTH_FACTOR:
                await self._pause(GROWTH_PAUSE_MS)

            await self.page.evaluate("window.scrollTo(0, 0)")
            await self._pause(SCROLL_BACK_PAUSE_MS)
        except Exception as e:
            logger.warning(f"Error during lazy content loading: {e}")

    async def _is_disabled(self, element: Element) -> bool:
        if await self.page.attribute(element, "disabled") is not None:
            return True
        classes = (await self.page.attribute(element, "class") or "").split()
        if "disabled" in classes:
            return True
        return await self.page.attribute(element, "aria-disabled") == "true"

    async def find_next_control(self) -> Element | None:
        """Return the first visible, enabled "next page" control."""
        for selector in self.next_selectors:
            element = await self.page.query_one(selector)
            if element is None:
                continue
            if await self.page.is_visible(element) and not await self._is_disabled(
                element
            ):
                return element
        return None

    async def has_next_page(self) -> bool:
        try:
            return await self.find_next_control() is not None
        except Exception as e:
            logger.warning(f"Error detecting next page button: {e}")
            return False

    async def dismiss_overlays(self) -> None:
        """Close the first visible overlay, or press Escape if there is none."""
        try:
            for selector in self.close_selectors:
                try:
                    button = await self.page.query_one(selector)
                    if button is not None and await self.page.is_visible(button):
                        await self.page.click(button, self.timeout_ms)
                        await self._pause(OVERLAY_CLICK_PAUSE_MS)
                        logger.info("Dismissed modal dialog")
                        return
                except Exception as e:
                    logger.debug(f"Close selector {selector!r} failed: {e}")
                    continue

            await self.page.press("Escape")
            await self._pause(ESCAPE_PAUSE_MS)
        except Exception as e:
            logger.warning(f"Could not dismiss modal: {e}")

    async def advance(self) -> NavigationResult:
        """Click through to the next page.

        Returns:
            NavigationResult. On failure ``success`` and ``has_next_page``
            are both False and ``error`` describes what went wrong.
        """
        try:
            await self.dismiss_overlays()

            control = await self.find_next_control()
            if control is None:
                return NavigationResult(
                    success=False,
                    has_next_page=False,
                    error="Next page button not found",
                )

            for attempt in range(CLICK_ATTEMPTS):
                try:
                    if attempt > 0:
                        await self.dismiss_overlays()
                        await self._pause(CLICK_RETRY_PAUSE_MS)
                    await self.page.click(control, self.timeout_ms)
                    await self.page.wait_for_dom_ready(self.timeout_ms)
                    break
                except Exception as e:
                    if attempt == CLICK_ATTEMPTS - 1:
                        raise
                    logger.warning(
                        f"Click attempt {attempt + 1} failed, retrying: {e}"
                    )
                    await self._pause(CLICK_FAILURE_PAUSE_MS)

            await self.wait_for_idle()
            return NavigationResult(
                success=True, has_next_page=await self.has_next_page()
            )
        except Exception as e:
            logger.error(f"Error clicking next page: {e}")
            return NavigationResult(
                success=False, has_next_page=False, error=str(e)
            )
