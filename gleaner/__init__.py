"""
Review listing scraper.

Gleaner walks a paginated, JavaScript-rendered review listing in a real
browser, extracts each review with layered selector fallbacks, normalizes
and deduplicates the records, and writes them to CSV.

Entry points are the ``gleaner`` CLI (gleaner.cli) and
gleaner.driver.orchestrator.Orchestrator for library use.
"""
