"""Top-level scraping loop.

The Orchestrator runs one scrape as an explicit state machine::

    INIT -> NAVIGATING -> SETTLING -> EXTRACTING -> DEDUPING
         -> CHECKPOINTING -> ADVANCE_CHECK -> DELAYING -> NAVIGATING ...
                                           -> DONE

Any state may move to ABORTED. Both DONE and ABORTED export whatever has
been collected to the primary output; ABORTED then re-raises the error that
caused it.

The page handle, the accumulated records and the identity set belong to the
Orchestrator alone. Collaborators receive the page per call.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import datetime
from enum import Enum, auto
from typing import TYPE_CHECKING, Any

from typing_extensions import assert_never

from gleaner.common import normalizer
from gleaner.common.error_classifier import ErrorClassifier
from gleaner.common.exceptions import (
    AntiBotDetectedException,
    NavigationFailedException,
    ScraperAssumptionException,
)
from gleaner.common.rate_scheduler import RateScheduler
from gleaner.data_types import (
    ErrorCategory,
    ErrorContext,
    IdentitySet,
    PaginationState,
    RawRecord,
    ScrapeOutcome,
)
from gleaner.driver.browser import open_browser
from gleaner.driver.content_extractor import ContentExtractor
from gleaner.driver.export import CsvExporter, checkpoint_filename
from gleaner.driver.page_navigator import PageNavigator

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from gleaner.common.config import ScraperConfig
    from gleaner.driver.page import PageLike

logger = logging.getLogger(__name__)

LoginPrompt = Callable[[], Awaitable[Any]]


class RunState(Enum):
    INIT = auto()
    NAVIGATING = auto()
    SETTLING = auto()
    EXTRACTING = auto()
    DEDUPING = auto()
    CHECKPOINTING = auto()
    ADVANCE_CHECK = auto()
    DELAYING = auto()
    DONE = auto()
    ABORTED = auto()


TERMINAL_STATES = frozenset({RunState.DONE, RunState.ABORTED})


class Orchestrator:
    """Runs a scrape from the seed URL to the final CSV.

    Args:
        config: Validated run configuration.
        page: The page to scrape with.
        navigator: Page navigator (default: built from ``page``, ``config``
            and the extractor's selector table).
        extractor: Content extractor (default: Trustpilot selectors).
        scheduler: Rate scheduler (default: one using ``config.build_limiter()``).
        classifier: Error classifier.
        exporter: CSV sink (default: current working directory).
        login_prompt: Awaited after the seed page loads when
            ``config.wait_for_login`` is set.
        now: Clock for the outcome timestamps.

    Example:
        async with Orchestrator.open(config) as orchestrator:
            outcome = await orchestrator.run()
    """

    def __init__(
        self,
        config: ScraperConfig,
        page: PageLike,
        navigator: PageNavigator | None = None,
        extractor: ContentExtractor | None = None,
        scheduler: RateScheduler | None = None,
        classifier: ErrorClassifier | None = None,
        exporter: CsvExporter | None = None,
        login_prompt: LoginPrompt | None = None,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.config = config
        self.page = page
        self.extractor = extractor or ContentExtractor()
        self.navigator = navigator or PageNavigator(
            page,
            timeout_ms=config.timeout_ms,
            idle_timeout_ms=config.idle_timeout_ms,
            selectors=self.extractor.selectors,
        )
        self.scheduler = scheduler or RateScheduler(limiter=config.build_limiter())
        self.classifier = classifier or ErrorClassifier()
        self.exporter = exporter or CsvExporter()
        self.login_prompt = login_prompt
        self._now = now

    @classmethod
    @asynccontextmanager
    async def open(
        cls, config: ScraperConfig, **kwargs: Any
    ) -> AsyncIterator[Orchestrator]:
        """Launch a browser for ``config`` and yield a ready Orchestrator.

        The browser is closed when the context exits, whether or not the run
        succeeded.

        Args:
            config: Validated run configuration.
            **kwargs: Passed through to __init__.
        """
        async with open_browser(config) as page:
            yield cls(config, page, **kwargs)

    # ------------------------------------------------------------------
    # Retry predicates
    # ------------------------------------------------------------------

    def _transient_for(
        self, operation: str, page_number: int
    ) -> Callable[[BaseException], bool]:
        def should_retry(error: BaseException) -> bool:
            context = ErrorContext(
                operation=operation,
                url=self.page.url,
                page_number=page_number,
            )
            if self.classifier.classify(error, context) is ErrorCategory.TRANSIENT:
                self.classifier.handle(error, context)
                return True
            return False

        return should_retry

    def _is_structural(self, error: BaseException, context: ErrorContext) -> bool:
        if isinstance(error, ScraperAssumptionException):
            return True
        return self.classifier.classify(error, context) is ErrorCategory.FATAL

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _log_configuration(self) -> None:
        c = self.config
        logger.info("Scraper configuration:")
        logger.info(f"  Target URL: {c.target_url}")
        logger.info(f"  Output file: {c.output_filename}")
        logger.info(
            f"  Max pages: {c.max_pages if c.max_pages is not None else 'unlimited'}"
        )
        logger.info(f"  Delay: {c.delay_ms}ms")
        logger.info(f"  User agent: {c.user_agent}")

    async def _navigate_seed(self) -> None:
        url = self.config.target_url

        async def attempt() -> None:
            if not await self.navigator.navigate(url):
                raise self.navigator.last_failure or NavigationFailedException(
                    url, "unknown error"
                )

        await self.scheduler.delay(self.config.delay_ms)
        try:
            await self.scheduler.retry_with_backoff(
                attempt,
                self.config.retry_policy,
                should_retry=self._transient_for("navigate", 1),
            )
        except (NavigationFailedException, AntiBotDetectedException):
            raise
        except Exception as e:
            raise NavigationFailedException(url, str(e)) from e

        await self.navigator.wait_for_idle()

    async def _wait_for_login(self) -> None:
        if self.login_prompt is None:
            logger.warning("wait_for_login is set but no login prompt is available")
            return
        logger.info("Browser window is open for manual login.")
        logger.info("Log in if needed, then continue to start scraping.")
        await self.login_prompt()
        logger.info("Starting scrape...")

    async def _extract(self, page_number: int) -> list[RawRecord]:
        return await self.scheduler.retry_with_backoff(
            lambda: self.extractor.extract_all(self.page),
            self.config.retry_policy,
            should_retry=self._transient_for("extract", page_number),
        )

    def _checkpoint(self, outcome: ScrapeOutcome) -> None:
        filename = checkpoint_filename(
            self.config.output_filename, outcome.pages_processed
        )
        try:
            self.exporter.export(outcome.records, filename)
        except Exception as e:
            message = f"Failed to save checkpoint {filename}: {e}"
            self.classifier.handle(
                e,
                ErrorContext(
                    operation="checkpoint",
                    page_number=outcome.pages_processed,
                ),
            )
            outcome.errors.append(message)
            return
        logger.info(
            f"Checkpoint saved: {filename} ({outcome.total_records} reviews)"
        )

    def _log_summary(self, outcome: ScrapeOutcome) -> None:
        logger.info(
            f"Scrape complete: {outcome.total_records} reviews from "
            f"{outcome.pages_processed} pages in "
            f"{outcome.duration_seconds:.1f}s -> {outcome.output_path}"
        )
        if outcome.errors:
            logger.warning(
                f"Scraping completed with {len(outcome.errors)} error(s)"
            )

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    async def run(self) -> ScrapeOutcome:
        """Scrape the listing and export the result.

        Returns:
            The completed ScrapeOutcome, with ``output_path`` set.

        Raises:
            Exception: The error that aborted the run, after the collected
                records have been exported.
        """
        outcome = ScrapeOutcome(started_at=self._now())
        identities = IdentitySet()
        pagination = PaginationState()
        seeded = False
        raw: list[RawRecord] = []
        new_on_page = 0
        failure: Exception | None = None
        state = RunState.INIT

        while state not in TERMINAL_STATES:
            page_number = pagination.current_page
            try:
                match state:
                    case RunState.INIT:
                        self._log_configuration()
                        state = RunState.NAVIGATING

                    case RunState.NAVIGATING:
                        if not seeded:
                            logger.info("Navigating to target URL...")
                            await self._navigate_seed()
                            seeded = True
                            if self.config.wait_for_login:
                                await self._wait_for_login()
                            state = RunState.SETTLING
                        else:
                            logger.info("Navigating to next page...")
                            result = await self.navigator.advance()
                            if result.success:
                                pagination = pagination.advanced(
                                    result.has_next_page
                                )
                                state = RunState.SETTLING
                            else:
                                message = (
                                    f"Pagination failed on page {page_number}: "
                                    f"{result.error or 'unknown error'}"
                                )
                                logger.warning(message)
                                outcome.errors.append(message)
                                pagination = pagination.stopped()
                                state = RunState.DONE

                    case RunState.SETTLING:
                        await self.navigator.settle()
                        await self.navigator.wait_for_idle()
                        state = RunState.EXTRACTING

                    case RunState.EXTRACTING:
                        logger.info(f"Extracting reviews from page {page_number}...")
                        context = ErrorContext(
                            operation="extract",
                            url=self.page.url,
                            page_number=page_number,
                        )
                        try:
                            raw = await self._extract(page_number)
                        except Exception as e:
                            if not outcome.records and self._is_structural(
                                e, context
                            ):
                                raise
                            message = f"Error processing page {page_number}: {e}"
                            logger.warning(message)
                            outcome.errors.append(message)
                            pagination = pagination.stopped()
                            state = RunState.DONE
                            continue

                        if raw:
                            state = RunState.DEDUPING
                        else:
                            message = f"No reviews found on page {page_number}"
                            logger.warning(message)
                            outcome.errors.append(message)
                            pagination = pagination.stopped()
                            state = RunState.DONE

                    case RunState.DEDUPING:
                        new_on_page = 0
                        for record in raw:
                            canonical = normalizer.normalize(record)
                            if identities.add(canonical):
                                outcome.records.append(canonical)
                                new_on_page += 1
                        duplicates = len(raw) - new_on_page
                        if duplicates:
                            logger.warning(
                                f"Filtered out {duplicates} duplicate reviews "
                                f"on page {page_number}"
                            )
                        state = RunState.CHECKPOINTING

                    case RunState.CHECKPOINTING:
                        outcome.pages_processed += 1
                        logger.info(
                            f"Page {page_number}: {new_on_page} new reviews "
                            f"({outcome.total_records} total)"
                        )
                        if (
                            outcome.pages_processed
                            % self.config.checkpoint_interval
                            == 0
                        ):
                            self._checkpoint(outcome)
                        state = RunState.ADVANCE_CHECK

                    case RunState.ADVANCE_CHECK:
                        max_pages = self.config.max_pages
                        if max_pages is not None and page_number >= max_pages:
                            logger.info(
                                f"Reached maximum pages limit ({max_pages})"
                            )
                            state = RunState.DONE
                        elif not await self.navigator.has_next_page():
                            logger.info("No more pages to scrape")
                            pagination = pagination.stopped()
                            state = RunState.DONE
                        else:
                            state = RunState.DELAYING

                    case RunState.DELAYING:
                        logger.info(
                            f"Waiting {self.config.delay_ms}ms before next page..."
                        )
                        await self.scheduler.delay(self.config.delay_ms)
                        state = RunState.NAVIGATING

                    case RunState.DONE | RunState.ABORTED:
                        break

                    case _:
                        assert_never(state)
            except Exception as e:
                self.classifier.handle(
                    e,
                    ErrorContext(
                        operation=state.name.lower(),
                        url=self.config.target_url,
                        page_number=page_number,
                    ),
                )
                outcome.errors.append(str(e))
                failure = e
                state = RunState.ABORTED

        return self._finalize(outcome, state, failure)

    def _finalize(
        self,
        outcome: ScrapeOutcome,
        state: RunState,
        failure: Exception | None,
    ) -> ScrapeOutcome:
        outcome.finished_at = self._now()
        logger.info(f"Exporting {outcome.total_records} reviews to CSV...")

        if state is RunState.DONE:
            outcome.output_path = self.exporter.export(
                outcome.records, self.config.output_filename
            )
            self._log_summary(outcome)
            return outcome

        assert failure is not None
        try:
            outcome.output_path = self.exporter.export(
                outcome.records, self.config.output_filename
            )
            self._log_summary(outcome)
        except Exception as export_error:
            logger.error(f"Failed to export partial data: {export_error}")
            outcome.errors.append(f"Export failed: {export_error}")
        raise failure
