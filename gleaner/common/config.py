"""Scraper configuration.

ScraperConfig is the single validated input to a run. It is built by the
CLI from command-line options, or directly by library callers, and is
immutable once constructed.
"""

from __future__ import annotations

import logging
import re
from urllib.parse import urlparse

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
    model_validator,
)
from pyrate_limiter import Duration, InMemoryBucket, Limiter, Rate

from gleaner.common.exceptions import InvalidTargetURLException
from gleaner.common.rate_scheduler import RetryPolicy

logger = logging.getLogger(__name__)

TRUSTPILOT_URL_PATTERN = r"^https://www\.trustpilot\.com/review/.+$"

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

# Upper bound on how long the limiter may block a single navigation.
LIMITER_MAX_DELAY_MS = Duration.MINUTE * 2


def validate_target_url(url: str, pattern: str = TRUSTPILOT_URL_PATTERN) -> str:
    """Check that ``url`` is a well-formed listing URL.

    Args:
        url: The candidate target URL.
        pattern: Regular expression the full URL must match.

    Returns:
        The URL, unchanged.

    Raises:
        InvalidTargetURLException: If the URL does not parse as http(s) with
            a host, or does not match ``pattern``.
    """
    if not url or not url.strip():
        raise InvalidTargetURLException(url, "URL is required")

    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise InvalidTargetURLException(url, "not an absolute http(s) URL")

    if re.match(pattern, url) is None:
        raise InvalidTargetURLException(url, f"must match pattern {pattern}")

    return url


def listing_id_from_url(url: str) -> str | None:
    """Return the path segment after ``/review/``, or None if absent."""
    parts = urlparse(url).path.split("/")
    try:
        index = parts.index("review")
    except ValueError:
        return None
    if index + 1 < len(parts) and parts[index + 1]:
        return parts[index + 1]
    return None


class Viewport(BaseModel):
    model_config = ConfigDict(frozen=True)

    width: int = Field(default=1920, ge=1)
    height: int = Field(default=1080, ge=1)


class ScraperConfig(BaseModel):
    """Validated configuration for one scraping run.

    Attributes:
        target_url: First listing page to scrape.
        url_pattern: Regular expression target_url must match.
        output_filename: Name of the CSV written in the working directory.
        max_pages: Page cap, or None for no cap.
        delay_ms: Minimum spacing between page loads.
        user_agent: Browser user agent string.
        timeout_ms: Navigation and selector wait timeout.
        idle_timeout_ms: Network-idle wait timeout.
        headless: Run the browser without a window.
        wait_for_login: Pause after the first page so an operator can log in.
        viewport: Browser viewport size.
        checkpoint_interval: Export a checkpoint every N pages.
        max_retries: Retries for transient failures.
        base_delay_ms: First retry backoff.
        max_delay_ms: Largest retry backoff.
        pages_per_minute: Optional hard cap on the page rate.
    """

    model_config = ConfigDict(frozen=True)

    # Declared before target_url so its validator can read it.
    url_pattern: str = TRUSTPILOT_URL_PATTERN
    target_url: str
    output_filename: str = "reviews.csv"
    max_pages: int | None = Field(default=None, ge=1)
    delay_ms: int = Field(default=2000, ge=0)
    user_agent: str = DEFAULT_USER_AGENT
    timeout_ms: int = Field(default=30000, ge=0)
    idle_timeout_ms: int = Field(default=10000, ge=0)
    headless: bool = True
    wait_for_login: bool = False
    viewport: Viewport = Field(default_factory=Viewport)
    checkpoint_interval: int = Field(default=50, ge=1)
    max_retries: int = Field(default=3, ge=0)
    base_delay_ms: int = Field(default=1000, ge=0)
    max_delay_ms: int = Field(default=8000, ge=0)
    pages_per_minute: int | None = Field(default=None, ge=1)

    @field_validator("target_url")
    @classmethod
    def _check_target_url(cls, value: str, info: ValidationInfo) -> str:
        pattern = info.data.get("url_pattern", TRUSTPILOT_URL_PATTERN)
        return validate_target_url(value, pattern)

    @field_validator("output_filename")
    @classmethod
    def _check_output_filename(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("output filename must not be empty")
        if "/" in value or "\\" in value or ".." in value:
            raise ValueError(
                f"output filename must be a plain file name, got {value!r}"
            )
        return value

    @field_validator("user_agent")
    @classmethod
    def _default_blank_user_agent(cls, value: str) -> str:
        return value or DEFAULT_USER_AGENT

    @model_validator(mode="after")
    def _check_delays(self) -> ScraperConfig:
        if self.max_delay_ms < self.base_delay_ms:
            raise ValueError(
                f"max_delay_ms ({self.max_delay_ms}) must be >= "
                f"base_delay_ms ({self.base_delay_ms})"
            )
        return self

    @property
    def listing_id(self) -> str | None:
        return listing_id_from_url(self.target_url)

    @property
    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.max_retries,
            base_delay_ms=self.base_delay_ms,
            max_delay_ms=self.max_delay_ms,
        )

    def build_limiter(self) -> Limiter | None:
        """Build a page-rate limiter, or None when no cap is configured."""
        if self.pages_per_minute is None:
            return None
        rates = [Rate(self.pages_per_minute, Duration.MINUTE)]
        logger.debug(f"Page rate capped at {self.pages_per_minute}/minute")
        return Limiter(
            InMemoryBucket(rates),
            raise_when_fail=False,
            max_delay=LIMITER_MAX_DELAY_MS,
        )
