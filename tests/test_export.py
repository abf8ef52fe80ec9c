"""Tests for CSV export."""

import csv
import io
from pathlib import Path

from gleaner.data_types import CSV_HEADER, CanonicalRecord
from gleaner.driver.export import CsvExporter, checkpoint_filename, write_csv


def record(**overrides) -> CanonicalRecord:
    values = {
        "rating": 5.0,
        "text": "Great",
        "date": "2024-01-15",
        "reviewer_name": "Alice",
        "title": "",
        "verified": False,
    }
    values.update(overrides)
    return CanonicalRecord(**values)


def read_rows(path: str) -> list[list[str]]:
    with Path(path).open(newline="", encoding="utf-8") as f:
        return list(csv.reader(f))


class TestCheckpointFilename:
    """Tests for checkpoint naming."""

    def test_with_extension(self):
        """checkpoint_filename shall insert the page suffix before the extension."""
        assert checkpoint_filename("reviews.csv", 50) == "reviews_checkpoint_page50.csv"

    def test_without_extension(self):
        """checkpoint_filename shall default to .csv when there is no extension."""
        assert checkpoint_filename("reviews", 100) == "reviews_checkpoint_page100.csv"

    def test_other_extension_is_kept(self):
        """checkpoint_filename shall keep a non-csv extension."""
        assert checkpoint_filename("out.txt", 50) == "out_checkpoint_page50.txt"


class TestCsvExporter:
    """Tests for CsvExporter."""

    def test_empty_writes_header_only(self, tmp_path):
        """Exporting no records shall write exactly the header row."""
        path = CsvExporter(tmp_path).export([], "empty.csv")

        assert read_rows(path) == [list(CSV_HEADER)]
        assert Path(path).read_bytes() == (
            b"rating,text,date,reviewerName,title,verified\r\n"
        )

    def test_returns_absolute_path(self, tmp_path):
        """export() shall return the absolute path of the written file."""
        path = CsvExporter(tmp_path).export([record()], "out.csv")

        assert Path(path).is_absolute()
        assert Path(path) == (tmp_path / "out.csv").resolve()

    def test_row_formatting(self, tmp_path):
        """Whole ratings shall drop ".0" and verified shall be true/false."""
        path = CsvExporter(tmp_path).export(
            [record(rating=5.0, verified=True), record(rating=4.5, text="Ok")],
            "out.csv",
        )

        rows = read_rows(path)
        assert rows[1] == ["5", "Great", "2024-01-15", "Alice", "", "true"]
        assert rows[2] == ["4.5", "Ok", "2024-01-15", "Alice", "", "false"]

    def test_rating_keeps_every_digit(self, tmp_path):
        """A fractional rating shall be written without rounding."""
        path = CsvExporter(tmp_path).export(
            [record(rating=4.1234567), record(rating=0.0, text="Unrated")],
            "out.csv",
        )

        rows = read_rows(path)
        assert rows[1][0] == "4.1234567"
        assert rows[2][0] == "0"
        assert record(rating=4.1234567).as_row()[0] == "4.1234567"

    def test_escaping_round_trip(self, tmp_path):
        """Commas, quotes, newlines and emoji shall survive export."""
        text = 'Said "wow", then left.\nSecond line 🎉'
        path = CsvExporter(tmp_path).export([record(text=text)], "out.csv")

        assert read_rows(path)[1][1] == text
        assert '"Said ""wow"", then left.' in Path(path).read_text(encoding="utf-8")

    def test_overwrites_existing_file(self, tmp_path):
        """export() shall replace an existing file."""
        exporter = CsvExporter(tmp_path)
        exporter.export([record(), record(text="Two")], "out.csv")
        path = exporter.export([record()], "out.csv")

        assert len(read_rows(path)) == 2

    def test_defaults_to_working_directory(self, tmp_path, monkeypatch):
        """CsvExporter without a directory shall write to the working directory."""
        monkeypatch.chdir(tmp_path)
        path = CsvExporter().export([], "cwd.csv")

        assert Path(path) == (tmp_path / "cwd.csv").resolve()


class TestWriteCsv:
    """Tests for writing to an open handle."""

    def test_write_csv_counts_rows(self):
        """write_csv shall return the number of data rows written."""
        buffer = io.StringIO(newline="")
        count = write_csv([record(), record(text="b")], buffer)

        assert count == 2
        assert buffer.getvalue().splitlines()[0] == ",".join(CSV_HEADER)
