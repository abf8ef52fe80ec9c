"""Review extraction with selector fallback.

ContentExtractor reads RawRecords off a rendered listing page. Containers
and fields are located through the ordered candidate tables in
gleaner.common.selectors; the first candidate that yields a non-empty value
wins. Extraction only reads the page.
"""

from __future__ import annotations

import logging

from gleaner.common.exceptions import (
    FieldExtractionException,
    HTMLStructuralAssumptionException,
)
from gleaner.common.selectors import TRUSTPILOT, FieldStrategy, ReviewSelectors
from gleaner.data_types import RawRecord
from gleaner.driver.page import Element, PageLike

logger = logging.getLogger(__name__)

# Minimum length of a block the text fallback will accept as a review body.
MIN_FALLBACK_TEXT_LENGTH = 20


class ContentExtractor:
    """Extracts raw review records from a page.

    Args:
        selectors: Selector table to use (default: the Trustpilot layout).

    Example:
        extractor = ContentExtractor()
        records = await extractor.extract_all(page)
    """

    def __init__(self, selectors: ReviewSelectors = TRUSTPILOT) -> None:
        self.selectors = selectors

    async def extract_all(self, page: PageLike) -> list[RawRecord]:
        """Extract every review on the current page.

        Records whose required fields cannot be found are skipped with a
        warning. A page with no recognizable containers returns an empty
        list.

        Raises:
            HTMLStructuralAssumptionException: If containers matched but not
                one of them yielded a complete record.
        """
        selector, containers = await self.find_containers(page)
        if selector is None:
            logger.warning(f"No review elements found on {page.url}")
            return []

        logger.info(f"Found {len(containers)} review elements")

        records: list[RawRecord] = []
        for index, container in enumerate(containers, start=1):
            try:
                records.append(await self.extract_one(page, container))
            except FieldExtractionException as e:
                logger.warning(f"Skipping review {index}: {e.message}")

        if not records:
            raise HTMLStructuralAssumptionException(
                selector, "extractable review records", 1, 0, page.url
            )

        logger.info(f"Successfully extracted {len(records)} reviews")
        return records

    async def find_containers(
        self, page: PageLike
    ) -> tuple[str | None, list[Element]]:
        """Return the first container selector with matches, and its matches."""
        for selector in self.selectors.containers:
            try:
                elements = await page.query_all(selector)
            except Exception as e:
                logger.debug(f"Container selector {selector!r} failed: {e}")
                continue
            if elements:
                logger.info(f"Found reviews using selector: {selector}")
                return selector, elements
        return None, []

    async def extract_one(self, page: PageLike, container: Element) -> RawRecord:
        """Extract one review from its container.

        Fields are read in selector-table order. A missing optional field
        resolves to None.

        Raises:
            FieldExtractionException: If a required field has no value.
        """
        values: dict[str, str | None] = {}
        for attribute, strategy in self.selectors.fields.items():
            value = await self.extract_field(page, container, strategy)
            if value is None and strategy is self.selectors.text:
                value = await self.fallback_text(page, container)
            if value is None and strategy.required:
                raise FieldExtractionException(
                    strategy.name, strategy.selectors, page.url
                )
            values[attribute] = value
        return RawRecord(**values)

    async def extract_field(
        self, page: PageLike, container: Element, strategy: FieldStrategy
    ) -> str | None:
        """Return the first non-empty value the strategy produces, or None."""
        for selector in strategy.selectors:
            try:
                element = await page.query_one(selector, root=container)
                if element is None:
                    continue
                value = await self._read(page, element, strategy.attributes)
            except Exception as e:
                logger.debug(f"{strategy.name} selector {selector!r} failed: {e}")
                continue
            if value:
                return value
        return None

    async def _read(
        self, page: PageLike, element: Element, attributes: tuple[str, ...]
    ) -> str:
        for name in attributes:
            value = (await page.attribute(element, name) or "").strip()
            if value:
                return value
        return (await page.text(element)).strip()

    async def fallback_text(self, page: PageLike, container: Element) -> str | None:
        """Find the review body when no text selector matched.

        Prefers the longest paragraph inside the container, then the longest
        line of the container's full text. Either must exceed
        MIN_FALLBACK_TEXT_LENGTH characters.
        """
        try:
            paragraphs = await page.query_all("p", root=container)
            blocks = [(await page.text(p)).strip() for p in paragraphs]
            candidates = [b for b in blocks if len(b) > MIN_FALLBACK_TEXT_LENGTH]
            if candidates:
                return max(candidates, key=len)

            lines = [
                line.strip() for line in (await page.text(container)).split("\n")
            ]
            candidates = [ln for ln in lines if len(ln) > MIN_FALLBACK_TEXT_LENGTH]
            if candidates:
                return max(candidates, key=len)
        except Exception as e:
            logger.debug(f"Text fallback failed: {e}")
        return None
