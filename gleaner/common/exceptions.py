"""Exception types for scraper errors.

This module defines the exception hierarchy used across the pipeline.
Assumption exceptions describe a page that no longer looks the way the
extractor expects. Transient exceptions describe failures that may resolve
on retry. The remaining exceptions are run-level failures that the
orchestrator treats as fatal.
"""

from typing import Any


class ScraperAssumptionException(Exception):
    """Base class for scraper assumption violations.

    The extractor makes assumptions about the structure of the listing
    pages. When these assumptions are violated it raises a clear, contextual
    exception that helps diagnose which part of the markup drifted.
    """

    def __init__(
        self,
        message: str,
        request_url: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable description of the assumption violation.
            request_url: The URL of the page that triggered this error.
            context: Optional dict of additional context (selector, counts, etc).
        """
        self.message = message
        self.request_url = request_url
        self.context = context or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        parts = [self.message]
        parts.append(f"URL: {self.request_url}")

        if self.context:
            parts.append("Context:")
            for key, value in self.context.items():
                parts.append(f"  {key}: {value}")

        return "\n".join(parts)


class HTMLStructuralAssumptionException(ScraperAssumptionException):
    """Raised when the page structure doesn't match expectations.

    Raised when a selector returns a different number of elements than
    expected, which usually means the site's markup has changed.

    Attributes:
        selector: The CSS selector that was used.
        description: What was being selected.
        expected_min: Minimum number of elements expected.
        actual_count: Actual number of elements found.
    """

    def __init__(
        self,
        selector: str,
        description: str,
        expected_min: int,
        actual_count: int,
        request_url: str,
    ) -> None:
        self.selector = selector
        self.description = description
        self.expected_min = expected_min
        self.actual_count = actual_count

        message = (
            f"HTML structure mismatch: Expected at least {expected_min} "
            f"elements for '{description}', but found {actual_count}"
        )
        context = {
            "selector": selector,
            "expected_min": expected_min,
            "actual_count": actual_count,
        }
        super().__init__(message, request_url, context)


class FieldExtractionException(ScraperAssumptionException):
    """Raised when a required field cannot be found inside a review container.

    Every candidate selector for the field was tried and none produced a
    non-empty value. Callers skip the single record and keep going.

    Attributes:
        field_name: Name of the missing field.
        selectors: The candidate selectors that were tried, in order.
    """

    def __init__(
        self,
        field_name: str,
        selectors: tuple[str, ...],
        request_url: str,
    ) -> None:
        self.field_name = field_name
        self.selectors = selectors
        super().__init__(
            f'Required field "{field_name}" not found',
            request_url,
            {"field": field_name, "selectors_tried": len(selectors)},
        )


# =============================================================================
# Transient exceptions
# =============================================================================


class TransientException(Exception):
    """Base class for transient errors that might resolve on retry.

    Transient exceptions represent temporary failures like network issues,
    server errors (5xx), rate limiting or timeouts. Retrying the same
    operation after a backoff may succeed.

    The rate scheduler is responsible for retry logic and strategy.
    """

    pass


class HTMLResponseAssumptionException(TransientException):
    """Raised when an HTTP response has an unexpected status code.

    Attributes:
        status_code: The actual HTTP status code received.
        expected_codes: List of status codes that were expected.
        url: The URL that returned the unexpected status.
        message: Human-readable error message.
    """

    def __init__(
        self,
        status_code: int,
        expected_codes: list[int],
        url: str,
    ) -> None:
        self.status_code = status_code
        self.expected_codes = expected_codes
        self.url = url

        expected_str = ", ".join(str(code) for code in expected_codes)
        self.message = (
            f"HTTP {status_code} from {url} (expected one of: {expected_str})"
        )
        super().__init__(self.message)


class RequestTimeoutException(TransientException):
    """Raised when a page operation times out.

    Attributes:
        url: The URL that timed out.
        timeout_seconds: The timeout duration in seconds.
        message: Human-readable error message.
    """

    def __init__(self, url: str, timeout_seconds: float) -> None:
        self.url = url
        self.timeout_seconds = timeout_seconds
        self.message = f"Request to {url} timed out after {timeout_seconds}s"
        super().__init__(self.message)


class RateLimitedException(TransientException):
    """Raised when the server answers 429 Too Many Requests.

    Attributes:
        url: The URL that was rate limited.
        retry_after_seconds: Server-supplied wait hint from the Retry-After
            header, or None when the server sent no usable hint.
    """

    def __init__(self, url: str, retry_after_seconds: int | None = None) -> None:
        self.url = url
        self.retry_after_seconds = retry_after_seconds
        hint = (
            f", retry after {retry_after_seconds}s"
            if retry_after_seconds is not None
            else ""
        )
        self.message = f"HTTP 429 rate limit from {url}{hint}"
        super().__init__(self.message)


# =============================================================================
# Run-level failures
# =============================================================================


class InvalidTargetURLException(ValueError):
    """Raised when the configured target URL is malformed or off-target."""

    def __init__(self, url: str, reason: str = "") -> None:
        self.url = url
        self.reason = reason
        suffix = f": {reason}" if reason else ""
        super().__init__(f"Invalid target URL '{url}'{suffix}")


class BrowserLaunchException(Exception):
    """Raised when the browser runtime cannot be launched or initialized."""

    pass


class NavigationFailedException(Exception):
    """Raised when navigating to the seed URL did not produce a usable page.

    Attributes:
        url: The URL that failed.
        reason: Why navigation failed (status line or underlying error).
    """

    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to navigate to {url}: {reason}")


class AntiBotDetectedException(Exception):
    """Raised when the target answers with a CAPTCHA or bot challenge."""

    pass
