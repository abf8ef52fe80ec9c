"""CSV output for scraped reviews.

Example::

    from gleaner.driver.export import CsvExporter

    path = CsvExporter().export(outcome.records, "reviews.csv")
"""

from __future__ import annotations

import csv
import logging
from collections.abc import Iterable
from pathlib import Path
from typing import TextIO

from gleaner.data_types import CSV_HEADER, CanonicalRecord

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION = ".csv"


def checkpoint_filename(filename: str, page: int) -> str:
    """Name of the checkpoint written after ``page`` pages.

    Example:
        >>> checkpoint_filename("reviews.csv", 50)
        'reviews_checkpoint_page50.csv'
        >>> checkpoint_filename("reviews", 50)
        'reviews_checkpoint_page50.csv'
    """
    path = Path(filename)
    suffix = path.suffix or DEFAULT_EXTENSION
    return str(path.with_name(f"{path.stem}_checkpoint_page{page}{suffix}"))


def write_csv(records: Iterable[CanonicalRecord], file_handle: TextIO) -> int:
    """Write the header and one row per record to an open text handle.

    The caller opens the handle with ``newline=""``.

    Returns:
        Number of data rows written.
    """
    writer = csv.writer(file_handle)
    writer.writerow(CSV_HEADER)
    count = 0
    for record in records:
        writer.writerow(record.as_row())
        count += 1
    return count


class CsvExporter:
    """Writes record sequences to UTF-8 CSV files.

    Args:
        directory: Directory output files are written to (default: the
            current working directory at export time).
    """

    def __init__(self, directory: Path | str | None = None) -> None:
        self.directory = Path(directory) if directory is not None else None

    def resolve(self, filename: str) -> Path:
        base = self.directory if self.directory is not None else Path.cwd()
        return (base / filename).resolve()

    def export(self, records: Iterable[CanonicalRecord], filename: str) -> str:
        """Write ``records`` to ``filename``, replacing any existing file.

        An empty sequence still produces the header row.

        Returns:
            Absolute path of the written file.
        """
        path = self.resolve(filename)
        with path.open("w", newline="", encoding="utf-8") as f:
            count = write_csv(records, f)
        logger.debug(f"Wrote {count} rows to {path}")
        return str(path)
