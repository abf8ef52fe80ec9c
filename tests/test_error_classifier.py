"""Tests for error classification.

Each predicate is tested on its own, then the rule table order and the
logging done by handle().
"""

import logging

import pytest

from gleaner.common import error_classifier as ec
from gleaner.common.error_classifier import ErrorClassifier, format_context
from gleaner.common.exceptions import (
    AntiBotDetectedException,
    BrowserLaunchException,
    HTMLResponseAssumptionException,
    InvalidTargetURLException,
    NavigationFailedException,
    RateLimitedException,
    RequestTimeoutException,
    TransientException,
)
from gleaner.data_types import ErrorAction, ErrorCategory, ErrorContext

CTX = ErrorContext(operation="navigate", url="https://example.com", page_number=2)
EXPORT_CTX = ErrorContext(operation="export")
CLOUDFLARE_LISTING = "https://www.trustpilot.com/review/www.cloudflare.com"
URL_WITH_STATUS = "https://www.trustpilot.com/review/503-outlet.example?page=429"


class TestFatalPredicates:
    """Tests for the FATAL predicates."""

    def test_invalid_target(self):
        """is_invalid_target shall match the exception type and the message form."""
        assert ec.is_invalid_target(InvalidTargetURLException("x"), CTX)
        assert ec.is_invalid_target(Exception("Invalid URL supplied"), CTX)
        assert not ec.is_invalid_target(Exception("invalid token"), CTX)

    def test_browser_start_failure(self):
        """is_browser_start_failure shall match launch and initialize failures."""
        assert ec.is_browser_start_failure(BrowserLaunchException("boom"), CTX)
        assert ec.is_browser_start_failure(Exception("Browser failed to launch"), CTX)
        assert ec.is_browser_start_failure(
            Exception("could not initialize browser"), CTX
        )
        assert not ec.is_browser_start_failure(Exception("browser closed"), CTX)

    @pytest.mark.parametrize(
        "message",
        [
            "CAPTCHA required",
            "Cloudflare challenge page",
            "Access Denied",
            "Request blocked",
            "bot detection triggered",
            "Security check in progress",
        ],
    )
    def test_anti_bot_phrases(self, message):
        """is_anti_bot shall match each challenge phrase, ignoring case."""
        assert ec.is_anti_bot(Exception(message))

    def test_anti_bot_type(self):
        """is_anti_bot shall match AntiBotDetectedException regardless of message."""
        assert ec.is_anti_bot(AntiBotDetectedException(""))

    def test_permission_denied(self):
        """is_permission_denied shall match PermissionError and errno text."""
        assert ec.is_permission_denied(PermissionError("nope"), CTX)
        assert ec.is_permission_denied(Exception("EACCES: permission denied"), CTX)
        assert ec.is_permission_denied(Exception("EPERM"), CTX)

    def test_missing_output_dir_only_during_export(self):
        """is_missing_output_dir shall only match while exporting."""
        err = FileNotFoundError("No such file or directory: 'out/x.csv'")
        assert ec.is_missing_output_dir(err, EXPORT_CTX)
        assert not ec.is_missing_output_dir(err, CTX)


class TestTransientPredicates:
    """Tests for the TRANSIENT predicates."""

    def test_timeout(self):
        """is_timeout shall match TimeoutError and timeout phrasing."""
        assert ec.is_timeout(TimeoutError(), CTX)
        assert ec.is_timeout(Exception("Timeout 30000ms exceeded"), CTX)
        assert ec.is_timeout(Exception("request timed out"), CTX)

    @pytest.mark.parametrize("message", ["HTTP 500", "got 503 from upstream", "599"])
    def test_server_error(self, message):
        """is_server_error shall match any 5xx status token."""
        assert ec.is_server_error(Exception(message), CTX)

    @pytest.mark.parametrize("message", ["HTTP 404", "page 5000", "id 1500"])
    def test_server_error_needs_standalone_token(self, message):
        """is_server_error shall not match non-5xx numbers."""
        assert not ec.is_server_error(Exception(message), CTX)

    def test_connection_failure(self):
        """is_connection_failure shall match refused and reset connections."""
        assert ec.is_connection_failure(ConnectionResetError(), CTX)
        assert ec.is_connection_failure(Exception("ECONNREFUSED"), CTX)
        assert ec.is_connection_failure(Exception("Connection reset by peer"), CTX)

    def test_rate_limited(self):
        """is_rate_limited shall match 429 and rate-limit phrasing."""
        assert ec.is_rate_limited(Exception("HTTP 429"), CTX)
        assert ec.is_rate_limited(Exception("Too Many Requests"), CTX)
        assert ec.is_rate_limited(Exception("rate limit exceeded"), CTX)

    def test_network_failure(self):
        """is_network_failure shall match generic network errors."""
        assert ec.is_network_failure(Exception("net::ERR_NAME_NOT_RESOLVED"), CTX)
        assert ec.is_network_failure(Exception("Network changed"), CTX)

    def test_transient_type(self):
        """is_transient_type shall match any TransientException."""
        assert ec.is_transient_type(TransientException("x"), CTX)
        assert not ec.is_transient_type(Exception("x"), CTX)


class TestClassify:
    """Tests for rule-table evaluation."""

    @pytest.fixture
    def classifier(self) -> ErrorClassifier:
        return ErrorClassifier()

    @pytest.mark.parametrize(
        "error,expected",
        [
            (InvalidTargetURLException("x", "bad"), ErrorCategory.FATAL),
            (BrowserLaunchException("Failed to launch browser"), ErrorCategory.FATAL),
            (Exception("captcha"), ErrorCategory.FATAL),
            (PermissionError("denied"), ErrorCategory.FATAL),
            (RequestTimeoutException("https://x", 30), ErrorCategory.TRANSIENT),
            (
                HTMLResponseAssumptionException(503, [200], "https://x"),
                ErrorCategory.TRANSIENT,
            ),
            (RateLimitedException("https://x", 5), ErrorCategory.TRANSIENT),
            (ConnectionRefusedError(), ErrorCategory.TRANSIENT),
            (NavigationFailedException("https://x", "HTTP 404"), ErrorCategory.IGNORABLE),
            (ValueError("something odd"), ErrorCategory.IGNORABLE),
        ],
    )
    def test_classification(self, classifier, error, expected):
        """classify() shall map each error to its category."""
        assert classifier.classify(error, CTX) is expected

    @pytest.mark.parametrize(
        "error",
        [
            HTMLResponseAssumptionException(503, [200], CLOUDFLARE_LISTING),
            RequestTimeoutException(CLOUDFLARE_LISTING, 30),
            RateLimitedException(CLOUDFLARE_LISTING, 5),
        ],
    )
    def test_listing_url_does_not_trigger_anti_bot(self, classifier, error):
        """Typed transient failures shall stay TRANSIENT whatever their URL contains."""
        assert classifier.classify(error, CTX) is ErrorCategory.TRANSIENT
        assert not classifier.is_anti_bot(error)

    def test_phrases_ignore_urls_in_message(self, classifier):
        """Phrase rules shall read the failure reason, not the URL in the message."""
        err = NavigationFailedException(CLOUDFLARE_LISTING, "HTTP 404")
        assert not classifier.is_anti_bot(err)
        assert classifier.classify(err, CTX) is ErrorCategory.IGNORABLE

        challenge = NavigationFailedException(URL_WITH_STATUS, "captcha required")
        assert classifier.is_anti_bot(challenge)

    def test_status_like_numbers_in_url_are_ignored(self, classifier):
        """A 5xx-looking path segment shall not make an error TRANSIENT."""
        err = NavigationFailedException(URL_WITH_STATUS, "HTTP 404")
        assert classifier.classify(err, CTX) is ErrorCategory.IGNORABLE

    def test_first_match_wins(self, classifier):
        """classify() shall prefer FATAL rules over TRANSIENT ones."""
        err = Exception("Timeout while solving captcha challenge")
        assert classifier.classify(err, CTX) is ErrorCategory.FATAL

    def test_act_is_one_to_one(self, classifier):
        """act() shall map FATAL, TRANSIENT and IGNORABLE to their actions."""
        assert classifier.act(Exception("captcha"), CTX) is ErrorAction.TERMINATE
        assert classifier.act(TimeoutError(), CTX) is ErrorAction.RETRY
        assert classifier.act(Exception("meh"), CTX) is ErrorAction.CONTINUE

    def test_custom_rules(self):
        """ErrorClassifier shall evaluate a caller-supplied rule table."""
        classifier = ErrorClassifier(
            rules=((lambda e, c: isinstance(e, KeyError), ErrorCategory.FATAL),)
        )
        assert classifier.classify(KeyError("k"), CTX) is ErrorCategory.FATAL
        assert classifier.classify(TimeoutError(), CTX) is ErrorCategory.IGNORABLE


class TestHandle:
    """Tests for handle() logging."""

    def test_fatal_logged_as_error(self, caplog):
        """handle() shall log FATAL errors at ERROR with the operation."""
        with caplog.at_level(logging.WARNING):
            action = ErrorClassifier().handle(Exception("captcha"), CTX)

        assert action is ErrorAction.TERMINATE
        record = caplog.records[-1]
        assert record.levelno == logging.ERROR
        assert "CRITICAL ERROR [navigate]: captcha" in record.getMessage()
        assert "URL: https://example.com" in record.getMessage()
        assert "Page: 2" in record.getMessage()

    def test_transient_logged_with_attempt(self, caplog):
        """handle() shall log TRANSIENT errors at WARNING with the attempt number."""
        ctx = ErrorContext(operation="extract", attempt_number=2)
        with caplog.at_level(logging.WARNING):
            action = ErrorClassifier().handle(TimeoutError("slow"), ctx)

        assert action is ErrorAction.RETRY
        assert "Recoverable error [extract] (attempt 2): slow" in caplog.text

    def test_ignorable_logged_with_continue_suffix(self, caplog):
        """handle() shall log IGNORABLE errors with a continuing suffix."""
        with caplog.at_level(logging.WARNING):
            ErrorClassifier().handle(ValueError("odd"), ErrorContext(operation="x"))

        assert "Non-critical error [x]: odd - continuing execution" in caplog.text


class TestFormatContext:
    """Tests for log context rendering."""

    def test_empty_context(self):
        """format_context() shall render nothing for an empty context."""
        assert format_context(ErrorContext(operation="x")) == ""

    def test_additional_info(self):
        """format_context() shall append additional info as key: value pairs."""
        ctx = ErrorContext(operation="x", additional_info={"phase": "init"})
        assert format_context(ctx) == " [phase: init]"
