"""Browser capability used by the extractor and navigator.

PageLike is the narrow surface the pipeline needs from a rendered page.
PlaywrightPage implements it over a live Playwright page; tests use an
in-memory double. Elements are opaque handles: collaborators only pass
them back into PageLike methods.

Timeouts surface as RequestTimeoutException so callers can treat them as
transient without importing the browser library.
"""

from __future__ import annotations

from typing import Any, Protocol

from gleaner.data_types import PageResponse

Element = Any


class PageLike(Protocol):
    """The operations the pipeline performs against a rendered page."""

    @property
    def url(self) -> str: ...

    async def goto(
        self,
        url: str,
        wait_until: str = "domcontentloaded",
        timeout_ms: int = 30000,
    ) -> PageResponse | None:
        """Navigate to ``url``; None when the browser reports no response."""
        ...

    async def query_all(
        self, selector: str, root: Element | None = None
    ) -> list[Element]: ...

    async def query_one(
        self, selector: str, root: Element | None = None
    ) -> Element | None: ...

    async def attribute(self, element: Element, name: str) -> str | None:
        """Attribute value, "" for a bare boolean attribute, None if absent."""
        ...

    async def text(self, element: Element) -> str:
        """The element's text content, or "" when it has none."""
        ...

    async def click(self, element: Element, timeout_ms: int | None = None) -> None: ...

    async def is_visible(self, element: Element) -> bool: ...

    async def evaluate(self, expression: str) -> Any: ...

    async def wait_for_selector(
        self, selector: str, timeout_ms: int, visible: bool = True
    ) -> None: ...

    async def wait_for_idle(self, timeout_ms: int) -> None: ...

    async def wait_for_dom_ready(self, timeout_ms: int) -> None: ...

    async def press(self, key: str) -> None: ...
