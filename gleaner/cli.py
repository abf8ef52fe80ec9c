"""Gleaner CLI: scrape review listings to CSV.

Usage:
    gleaner scrape --url https://www.trustpilot.com/review/example.com
    gleaner scrape -u URL -o out.csv -m 10 -d 3000
    gleaner scrape -u URL --headed --wait-for-login
    gleaner validate-url URL                # Print the listing id

Exit codes: 0 success (possibly with non-fatal errors), 1 fatal error,
2 usage error, 130 interrupted, 143 terminated.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
from types import FrameType
from typing import Any

import click
from pydantic import ValidationError

from gleaner.common.config import (
    DEFAULT_USER_AGENT,
    TRUSTPILOT_URL_PATTERN,
    ScraperConfig,
    listing_id_from_url,
    validate_target_url,
)
from gleaner.common.error_classifier import ErrorClassifier
from gleaner.common.exceptions import InvalidTargetURLException
from gleaner.data_types import ScrapeOutcome
from gleaner.driver.orchestrator import Orchestrator

logger = logging.getLogger(__name__)

EXIT_FATAL = 1
EXIT_SIGINT = 130
EXIT_SIGTERM = 143

RECOMMENDED_MIN_DELAY_MS = 1000

ANTI_BOT_MESSAGE = "CAPTCHA or anti-bot protection detected. Cannot continue."

# ScraperConfig field -> CLI option, for error reporting.
_OPTION_FOR_FIELD = {
    "target_url": "'--url'",
    "output_filename": "'--output'",
    "max_pages": "'--max-pages'",
    "delay_ms": "'--delay'",
    "user_agent": "'--user-agent'",
    "timeout_ms": "'--timeout'",
    "checkpoint_interval": "'--checkpoint-interval'",
    "pages_per_minute": "'--pages-per-minute'",
}


def build_config(**options: Any) -> ScraperConfig:
    """Build a ScraperConfig, turning validation errors into usage errors.

    Raises:
        click.BadParameter: If any option fails validation.
    """
    try:
        return ScraperConfig(**options)
    except ValidationError as e:
        first = e.errors()[0]
        field = str(first["loc"][0]) if first["loc"] else ""
        raise click.BadParameter(
            first["msg"].removeprefix("Value error, "),
            param_hint=_OPTION_FOR_FIELD.get(field),
        ) from e


async def _login_prompt() -> None:
    await asyncio.to_thread(
        click.pause, info="Press any key to start scraping..."
    )


def run_scrape(config: ScraperConfig) -> ScrapeOutcome:
    """Run one scrape to completion on a fresh event loop."""

    async def _go() -> ScrapeOutcome:
        async with Orchestrator.open(config, login_prompt=_login_prompt) as orchestrator:
            return await orchestrator.run()

    return asyncio.run(_go())


@click.group()
@click.version_option(package_name="gleaner")
def cli() -> None:
    """Gleaner: extract reviews from paginated listings to CSV."""


@cli.command()
@click.option(
    "-u",
    "--url",
    required=True,
    help="Listing URL, e.g. https://www.trustpilot.com/review/example.com",
)
@click.option(
    "-o",
    "--output",
    default="reviews.csv",
    show_default=True,
    help="Output CSV filename.",
)
@click.option(
    "-m",
    "--max-pages",
    type=click.IntRange(min=1),
    default=None,
    help="Maximum number of pages to scrape.",
)
@click.option(
    "-d",
    "--delay",
    type=click.IntRange(min=0),
    default=2000,
    show_default=True,
    help="Delay between pages in milliseconds (1000+ recommended).",
)
@click.option(
    "-a",
    "--user-agent",
    default=DEFAULT_USER_AGENT,
    help="Custom user agent string.",
)
@click.option(
    "--timeout",
    type=click.IntRange(min=0),
    default=30000,
    show_default=True,
    help="Navigation timeout in milliseconds.",
)
@click.option("--headed", is_flag=True, help="Show the browser window.")
@click.option(
    "--wait-for-login",
    is_flag=True,
    help="Pause after the first page to allow manual login (implies --headed).",
)
@click.option(
    "--checkpoint-interval",
    type=click.IntRange(min=1),
    default=50,
    show_default=True,
    help="Write a checkpoint CSV every N pages.",
)
@click.option(
    "--pages-per-minute",
    type=click.IntRange(min=1),
    default=None,
    help="Hard cap on the page rate.",
)
@click.option(
    "--url-pattern",
    default=TRUSTPILOT_URL_PATTERN,
    show_default=True,
    help="Regular expression the listing URL must match.",
)
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging.")
def scrape(
    url: str,
    output: str,
    max_pages: int | None,
    delay: int,
    user_agent: str,
    timeout: int,
    headed: bool,
    wait_for_login: bool,
    checkpoint_interval: int,
    pages_per_minute: int | None,
    url_pattern: str,
    verbose: bool,
) -> None:
    """Scrape every page of a review listing into a CSV file.

    \b
    Examples:
        gleaner scrape -u https://www.trustpilot.com/review/example.com
        gleaner scrape -u https://www.trustpilot.com/review/example.com -o out.csv
        gleaner scrape -u https://www.trustpilot.com/review/example.com -m 10 -d 3000
        gleaner scrape -u https://www.trustpilot.com/review/example.com --headed --wait-for-login
    """
    log_level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if delay < RECOMMENDED_MIN_DELAY_MS:
        click.echo(
            "Warning: Delay less than 1000ms (1 second) may result in rate "
            "limiting or blocking.",
            err=True,
        )
    if wait_for_login and not headed:
        click.echo("--wait-for-login needs a visible browser; enabling --headed.")
        headed = True

    config = build_config(
        target_url=url,
        url_pattern=url_pattern,
        output_filename=output,
        max_pages=max_pages,
        delay_ms=delay,
        user_agent=user_agent,
        timeout_ms=timeout,
        headless=not headed,
        wait_for_login=wait_for_login,
        checkpoint_interval=checkpoint_interval,
        pages_per_minute=pages_per_minute,
    )

    try:
        outcome = run_scrape(config)
    except KeyboardInterrupt:
        click.echo("\nReceived SIGINT. Shutting down...", err=True)
        sys.exit(EXIT_SIGINT)
    except Exception as e:
        if ErrorClassifier().is_anti_bot(e):
            click.echo(ANTI_BOT_MESSAGE, err=True)
            click.echo(
                "Please try again later or use a different approach.", err=True
            )
        else:
            click.echo(f"Scraping failed: {e}", err=True)
        sys.exit(EXIT_FATAL)

    if outcome.errors:
        click.echo(
            f"Warning: scraping completed with {len(outcome.errors)} error(s):",
            err=True,
        )
        for message in outcome.errors:
            click.echo(f"  - {message}", err=True)

    click.echo(
        f"Scraped {outcome.total_records} reviews from "
        f"{outcome.pages_processed} pages in {outcome.duration_seconds:.1f}s"
    )
    click.echo(f"Output: {outcome.output_path}")


@cli.command("validate-url")
@click.argument("url")
@click.option(
    "--url-pattern",
    default=TRUSTPILOT_URL_PATTERN,
    show_default=True,
    help="Regular expression the listing URL must match.",
)
def validate_url(url: str, url_pattern: str) -> None:
    """Check a listing URL and print its listing id."""
    try:
        validate_target_url(url, url_pattern)
    except InvalidTargetURLException as e:
        raise click.BadParameter(str(e), param_hint="'URL'") from e
    click.echo(listing_id_from_url(url) or "")


def _handle_sigterm(signum: int, frame: FrameType | None) -> None:
    click.echo("\nReceived SIGTERM. Shutting down...", err=True)
    logging.shutdown()
    os._exit(EXIT_SIGTERM)


def main() -> None:
    """Entry point for the ``gleaner`` console script."""
    signal.signal(signal.SIGTERM, _handle_sigterm)
    try:
        rv = cli.main(standalone_mode=False)
    except (KeyboardInterrupt, click.exceptions.Abort):
        click.echo("\nReceived SIGINT. Shutting down...", err=True)
        sys.exit(EXIT_SIGINT)
    except click.ClickException as e:
        e.show()
        sys.exit(e.exit_code)
    sys.exit(rv if isinstance(rv, int) else 0)
