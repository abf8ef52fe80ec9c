"""Error classification for the scraping pipeline.

Every failure in the pipeline is routed through ErrorClassifier, which maps
it to one of three severities:

- FATAL: abort the run (after exporting whatever was collected)
- TRANSIENT: retry the operation with backoff
- IGNORABLE: log, skip the smallest unit of work, continue

Classification is an ordered table of (predicate, category) pairs evaluated
top to bottom; the first match wins. Predicates are pure functions of the
error and its ErrorContext so each rule can be tested on its own.

Typed transient failures are matched before any phrase rule. Phrase rules
read the error text with URLs removed, so a listing whose address contains
an indicator word is classified by its failure and not by its address.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable

from gleaner.common.exceptions import (
    AntiBotDetectedException,
    BrowserLaunchException,
    InvalidTargetURLException,
    TransientException,
)
from gleaner.data_types import ErrorAction, ErrorCategory, ErrorContext

logger = logging.getLogger(__name__)

ANTI_BOT_INDICATORS: tuple[str, ...] = (
    "captcha",
    "challenge",
    "cloudflare",
    "access denied",
    "blocked",
    "bot detection",
    "security check",
)

_HTTP_5XX = re.compile(r"\b5\d\d\b")
_URL = re.compile(r"\b[a-z][a-z0-9+.-]*://\S+", re.IGNORECASE)

Predicate = Callable[[BaseException, ErrorContext], bool]


def _message(error: BaseException) -> str:
    """Lowercased error text with any URLs removed."""
    return _URL.sub("", str(error)).lower()


# -----------------------------------------------------------------------------
# Fatal predicates
# -----------------------------------------------------------------------------


def is_invalid_target(error: BaseException, context: ErrorContext) -> bool:
    if isinstance(error, InvalidTargetURLException):
        return True
    msg = _message(error)
    return "invalid" in msg and "url" in msg


def is_browser_start_failure(
    error: BaseException, context: ErrorContext
) -> bool:
    if isinstance(error, BrowserLaunchException):
        return True
    msg = _message(error)
    return "browser" in msg and ("launch" in msg or "initialize" in msg)


def is_anti_bot(error: BaseException, context: ErrorContext | None = None) -> bool:
    """Return True if the error looks like a CAPTCHA or bot challenge."""
    if isinstance(error, AntiBotDetectedException):
        return True
    msg = _message(error)
    return any(indicator in msg for indicator in ANTI_BOT_INDICATORS)


def is_permission_denied(error: BaseException, context: ErrorContext) -> bool:
    if isinstance(error, PermissionError):
        return True
    msg = _message(error)
    return "eacces" in msg or "eperm" in msg or "permission denied" in msg


def is_missing_output_dir(error: BaseException, context: ErrorContext) -> bool:
    if context.operation != "export":
        return False
    if isinstance(error, FileNotFoundError):
        return True
    msg = _message(error)
    return "enoent" in msg or "no such file or directory" in msg


# -----------------------------------------------------------------------------
# Transient predicates
# -----------------------------------------------------------------------------


def is_timeout(error: BaseException, context: ErrorContext) -> bool:
    if isinstance(error, TimeoutError):
        return True
    msg = _message(error)
    return "timeout" in msg or "timed out" in msg


def is_server_error(error: BaseException, context: ErrorContext) -> bool:
    return _HTTP_5XX.search(_message(error)) is not None


def is_connection_failure(error: BaseException, context: ErrorContext) -> bool:
    if isinstance(error, ConnectionError):
        return True
    msg = _message(error)
    return (
        "econnrefused" in msg
        or "econnreset" in msg
        or "connection refused" in msg
        or "connection reset" in msg
    )


def is_rate_limited(error: BaseException, context: ErrorContext) -> bool:
    msg = _message(error)
    return "429" in msg or "rate limit" in msg or "too many requests" in msg


def is_network_failure(error: BaseException, context: ErrorContext) -> bool:
    msg = _message(error)
    return "network" in msg or "net::" in msg


def is_transient_type(error: BaseException, context: ErrorContext) -> bool:
    return isinstance(error, TransientException)


CLASSIFICATION_RULES: tuple[tuple[Predicate, ErrorCategory], ...] = (
    (is_transient_type, ErrorCategory.TRANSIENT),
    (is_invalid_target, ErrorCategory.FATAL),
    (is_browser_start_failure, ErrorCategory.FATAL),
    (is_anti_bot, ErrorCategory.FATAL),
    (is_permission_denied, ErrorCategory.FATAL),
    (is_missing_output_dir, ErrorCategory.FATAL),
    (is_timeout, ErrorCategory.TRANSIENT),
    (is_server_error, ErrorCategory.TRANSIENT),
    (is_connection_failure, ErrorCategory.TRANSIENT),
    (is_rate_limited, ErrorCategory.TRANSIENT),
    (is_network_failure, ErrorCategory.TRANSIENT),
)

_ACTIONS: dict[ErrorCategory, ErrorAction] = {
    ErrorCategory.FATAL: ErrorAction.TERMINATE,
    ErrorCategory.TRANSIENT: ErrorAction.RETRY,
    ErrorCategory.IGNORABLE: ErrorAction.CONTINUE,
}


class ErrorClassifier:
    """Classifies failures and decides what the caller should do.

    The classifier holds no state beyond its rule table.

    Example:
        classifier = ErrorClassifier()
        ctx = ErrorContext(operation="navigate", url=url)
        if classifier.act(error, ctx) is ErrorAction.RETRY:
            ...
    """

    def __init__(
        self,
        rules: tuple[tuple[Predicate, ErrorCategory], ...] = CLASSIFICATION_RULES,
    ) -> None:
        self.rules = rules

    def classify(
        self, error: BaseException, context: ErrorContext
    ) -> ErrorCategory:
        for predicate, category in self.rules:
            if predicate(error, context):
                return category
        return ErrorCategory.IGNORABLE

    def act(self, error: BaseException, context: ErrorContext) -> ErrorAction:
        return _ACTIONS[self.classify(error, context)]

    def is_anti_bot(self, error: BaseException) -> bool:
        return is_anti_bot(error)

    def is_transient(self, error: BaseException, context: ErrorContext) -> bool:
        return self.classify(error, context) is ErrorCategory.TRANSIENT

    def handle(
        self, error: BaseException, context: ErrorContext
    ) -> ErrorAction:
        """Classify, log at the matching level, and return the action."""
        category = self.classify(error, context)
        context_str = format_context(context)

        if category is ErrorCategory.FATAL:
            logger.error(
                f"CRITICAL ERROR [{context.operation}]: {error}{context_str}"
            )
        elif category is ErrorCategory.TRANSIENT:
            attempt = (
                f" (attempt {context.attempt_number})"
                if context.attempt_number
                else ""
            )
            logger.warning(
                f"Recoverable error [{context.operation}]{attempt}: "
                f"{error}{context_str}"
            )
        else:
            logger.warning(
                f"Non-critical error [{context.operation}]: {error}"
                f"{context_str} - continuing execution"
            )

        return _ACTIONS[category]


def format_context(context: ErrorContext) -> str:
    """Render the context as a bracketed suffix for log lines."""
    parts: list[str] = []

    if context.url:
        parts.append(f"URL: {context.url}")
    if context.page_number is not None:
        parts.append(f"Page: {context.page_number}")
    if context.additional_info:
        info = ", ".join(
            f"{key}: {value}" for key, value in context.additional_info.items()
        )
        if info:
            parts.append(info)

    return f" [{', '.join(parts)}]" if parts else ""
