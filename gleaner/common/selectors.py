"""Selector candidate tables for review listings.

Each field has an ordered tuple of CSS selector candidates. The extractor
tries them in order and keeps the first non-empty value, so a site variant
is supported by adding entries here rather than new branching code.

The defaults target Trustpilot company review pages: stable data-attribute
hooks first, then older class names, then loose substring matches.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class FieldStrategy:
    """How to read one field out of a review container.

    Attributes:
        name: Field name, used in logs and extraction errors.
        selectors: Candidate selectors, evaluated relative to the container.
        attributes: Attributes read, in order, before falling back to the
            element's visible text.
        required: Whether a missing value fails the whole record.
    """

    name: str
    selectors: tuple[str, ...]
    attributes: tuple[str, ...] = ()
    required: bool = True


@dataclass(frozen=True)
class ReviewSelectors:
    """The complete selector table for one listing layout."""

    containers: tuple[str, ...]
    rating: FieldStrategy
    text: FieldStrategy
    date: FieldStrategy
    reviewer_name: FieldStrategy
    title: FieldStrategy
    verified: FieldStrategy
    next_page: tuple[str, ...]
    overlay_close: tuple[str, ...]
    challenge: tuple[str, ...] = ()

    @property
    def fields(self) -> dict[str, FieldStrategy]:
        """Field strategies keyed by RawRecord attribute, in extraction order."""
        return {
            "rating": self.rating,
            "text": self.text,
            "date": self.date,
            "reviewer_name": self.reviewer_name,
            "title": self.title,
            "verified": self.verified,
        }


CONTAINER_SELECTORS: tuple[str, ...] = (
    "article[data-service-review-card-paper]",
    "div[data-service-review-card-paper]",
    "article.review",
    "div.review-card",
    '[class*="review"][class*="card"]',
    'article[class*="styles_reviewCard"]',
)

RATING = FieldStrategy(
    name="rating",
    selectors=(
        "div[data-service-review-rating] img[alt]",
        'div[class*="star-rating"] img[alt]',
        "[data-rating]",
        'img[alt*="star" i]',
        '[class*="rating"]',
    ),
    attributes=("alt", "data-rating"),
)

TEXT = FieldStrategy(
    name="text",
    selectors=(
        "p[data-service-review-text-typography]",
        "div[data-service-review-text]",
        "p.review-content__text",
        '[class*="reviewContent"]',
        'p[class*="typography_body"]',
        '[class*="review-text"]',
        '[class*="reviewText"]',
        'p[class*="content"]',
        'div[class*="text"]',
    ),
)

DATE = FieldStrategy(
    name="date",
    selectors=(
        "time[datetime]",
        "div[data-service-review-date-time-ago]",
        "span.review-date",
        '[class*="date"]',
    ),
    attributes=("datetime",),
)

REVIEWER_NAME = FieldStrategy(
    name="reviewerName",
    selectors=(
        "span[data-consumer-name-typography]",
        "div[data-consumer-name]",
        "span.consumer-information__name",
        '[class*="consumerName"]',
        'span[class*="typography_heading"]',
    ),
)

TITLE = FieldStrategy(
    name="title",
    selectors=(
        "h2[data-service-review-title-typography]",
        "div[data-service-review-title]",
        "h3.review-content__title",
        '[class*="reviewTitle"]',
        'h2[class*="typography_heading"]',
    ),
    required=False,
)

VERIFIED = FieldStrategy(
    name="verified",
    selectors=(
        "div[data-service-review-verified]",
        "span.review-content-header__verified",
        '[class*="verified"]',
        'svg[class*="verified"]',
    ),
    required=False,
)

NEXT_PAGE_SELECTORS: tuple[str, ...] = (
    'a[name="pagination-button-next"]',
    "a[data-pagination-button-next]",
    'button[name="pagination-button-next"]',
    "a.pagination-link--next",
    'a[aria-label*="next" i]',
    'button[aria-label*="next" i]',
    ".pagination a:last-child",
    'nav[role="navigation"] a:last-child',
)

OVERLAY_CLOSE_SELECTORS: tuple[str, ...] = (
    'button[aria-label*="close" i]',
    'button[aria-label*="dismiss" i]',
    "[data-close-modal-icon]",
    '.modal button[class*="close"]',
    '[role="dialog"] button[aria-label*="close" i]',
    '[data-authentication-modal] button[aria-label*="close" i]',
)

# Markers of an interstitial bot challenge served in place of the listing.
CHALLENGE_SELECTORS: tuple[str, ...] = (
    "#challenge-form",
    "#challenge-running",
    "#cf-challenge-running",
    'iframe[src*="challenges.cloudflare.com"]',
    'iframe[src*="recaptcha"]',
    'iframe[src*="hcaptcha"]',
    "div.g-recaptcha",
    "div.h-captcha",
)

TRUSTPILOT = ReviewSelectors(
    containers=CONTAINER_SELECTORS,
    rating=RATING,
    text=TEXT,
    date=DATE,
    reviewer_name=REVIEWER_NAME,
    title=TITLE,
    verified=VERIFIED,
    next_page=NEXT_PAGE_SELECTORS,
    overlay_close=OVERLAY_CLOSE_SELECTORS,
    challenge=CHALLENGE_SELECTORS,
)
