"""Data types for the review scraping pipeline.

These types are passed between the extractor, normalizer, navigator and
orchestrator. They are designed to be:

1. Immutable - frozen dataclasses; a record never changes once produced
2. Ordered - records keep the order in which they were discovered
3. Exportable - CanonicalRecord knows its own CSV row layout

RawRecord is what the extractor pulls off the page. CanonicalRecord is what
the normalizer produces from exactly one RawRecord. ScrapeOutcome is the
only thing handed to the CSV sink.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any

CSV_HEADER: tuple[str, ...] = (
    "rating",
    "text",
    "date",
    "reviewerName",
    "title",
    "verified",
)

IdentityKey = tuple[str, str, str]


# =============================================================================
# Records
# =============================================================================


@dataclass(frozen=True)
class RawRecord:
    """One scraped review before normalization.

    Attributes:
        rating: Raw rating signal (alt text, data attribute or visible text).
        text: Review body.
        date: Raw date (machine-readable attribute or visible text).
        reviewer_name: Display name of the reviewer.
        title: Optional review title.
        verified: Optional text of the "verified" badge.
    """

    rating: str
    text: str
    date: str
    reviewer_name: str
    title: str | None = None
    verified: str | None = None


def _format_rating(value: float) -> str:
    """Render a rating without trailing ".0" and without rounding."""
    value = float(value)
    return str(int(value)) if value.is_integer() else repr(value)


@dataclass(frozen=True)
class CanonicalRecord:
    """A normalized review, ready for export.

    Attributes:
        rating: Numeric rating in [1, 5], or 0 when the raw value was unparseable.
        text: Trimmed, newline-normalized review body.
        date: YYYY-MM-DD, or the original string when it could not be parsed.
        reviewer_name: Trimmed reviewer name.
        title: Review title, possibly empty.
        verified: Whether the verified badge was present.
    """

    rating: float
    text: str
    date: str
    reviewer_name: str
    title: str = ""
    verified: bool = False

    @property
    def identity_key(self) -> IdentityKey:
        return (self.text, self.reviewer_name, self.date)

    def as_row(self) -> list[str]:
        """Return the CSV row for this record in CSV_HEADER order."""
        return [
            _format_rating(self.rating),
            self.text,
            self.date,
            self.reviewer_name,
            self.title,
            "true" if self.verified else "false",
        ]


class IdentitySet:
    """Append-only set of IdentityKeys seen during a run.

    This is the sole deduplication authority. Keys are marked before the
    record is accumulated, so re-extracting the same page can never insert a
    record twice. Keys are never removed.
    """

    def __init__(self) -> None:
        self._seen: set[IdentityKey] = set()

    def add(self, record: CanonicalRecord) -> bool:
        """Mark the record's key as seen.

        Returns:
            True if the key was new (keep the record), False if it is a duplicate.
        """
        key = record.identity_key
        if key in self._seen:
            return False
        self._seen.add(key)
        return True

    def __contains__(self, record: object) -> bool:
        if isinstance(record, CanonicalRecord):
            return record.identity_key in self._seen
        return record in self._seen

    def __len__(self) -> int:
        return len(self._seen)


# =============================================================================
# Pagination and retries
# =============================================================================


@dataclass(frozen=True)
class PaginationState:
    """Where the run is in the listing.

    Attributes:
        current_page: 1-based index of the page being processed.
        has_more: Whether a next page was detected.
    """

    current_page: int = 1
    has_more: bool = True

    def __post_init__(self) -> None:
        if self.current_page < 1:
            raise ValueError(
                f"current_page must be >= 1, got {self.current_page}"
            )

    def advanced(self, has_more: bool) -> PaginationState:
        return replace(self, current_page=self.current_page + 1, has_more=has_more)

    def stopped(self) -> PaginationState:
        return replace(self, has_more=False)

    def is_terminal(self, max_pages: int | None) -> bool:
        if not self.has_more:
            return True
        return max_pages is not None and self.current_page > max_pages


@dataclass
class RetryContext:
    """State of a single retried operation.

    Created by RateScheduler.retry_with_backoff and discarded once the
    operation succeeds or the last failure is re-raised.
    """

    attempt: int = 0
    last_error: BaseException | None = None
    retry_after_seconds: int | None = None


@dataclass(frozen=True)
class NavigationResult:
    """Result of clicking through to the next page.

    Attributes:
        success: Whether the click landed on a new page.
        has_next_page: Whether the new page offers another next control.
        error: Description of the failure when success is False.
    """

    success: bool
    has_next_page: bool
    error: str | None = None


@dataclass(frozen=True)
class PageResponse:
    """The parts of a navigation response the pipeline looks at."""

    status: int
    headers: dict[str, str] = field(default_factory=dict)


# =============================================================================
# Errors and outcome
# =============================================================================


class ErrorCategory(Enum):
    """Severity assigned to a failure by the ErrorClassifier."""

    FATAL = "fatal"
    TRANSIENT = "transient"
    IGNORABLE = "ignorable"


class ErrorAction(Enum):
    """What the caller should do about a classified failure."""

    TERMINATE = "terminate"
    RETRY = "retry"
    CONTINUE = "continue"


@dataclass(frozen=True)
class ErrorContext:
    """Where a failure happened, for classification and logging.

    Attributes:
        operation: Short name of the failing operation ("navigate", "export", ...).
        url: URL being processed, if any.
        page_number: Listing page being processed, if any.
        attempt_number: Retry attempt, if the operation is being retried.
        additional_info: Free-form extra context rendered into log lines.
    """

    operation: str
    url: str | None = None
    page_number: int | None = None
    attempt_number: int | None = None
    additional_info: dict[str, Any] = field(default_factory=dict)


@dataclass
class ScrapeOutcome:
    """Aggregate result of a scraping run.

    Built incrementally by the Orchestrator. ``records`` keeps page order,
    then in-page order.
    """

    started_at: datetime
    records: list[CanonicalRecord] = field(default_factory=list)
    pages_processed: int = 0
    errors: list[str] = field(default_factory=list)
    finished_at: datetime | None = None
    output_path: str | None = None

    @property
    def total_records(self) -> int:
        return len(self.records)

    @property
    def duration_seconds(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()
