"""
Tests for tabular ingestion.

Validates row order, verbatim values, ragged-line handling, error paths
and the per-run dataset cache.
"""

import pytest

from chartpipe.errors import IngestionError
from chartpipe.ingest.tabular import DatasetCache, parse_number, read_rows


@pytest.fixture
def csv_file(tmp_path):
    """Write a CSV file and return its path."""
    def _write(text, name="data.csv", encoding="utf-8"):
        path = tmp_path / name
        path.write_text(text, encoding=encoding)
        return path
    return _write


class TestReadRows:
    """Tests for read_rows."""

    def test_rows_in_source_order_with_verbatim_values(self, csv_file):
        """Test that each line becomes one row, in order, values untouched."""
        path = csv_file("name,value\nalpha, 001 \nbeta,2.50\ngamma,$3\n")

        rows = read_rows(path)

        assert [r["name"] for r in rows] == ["alpha", "beta", "gamma"]
        assert rows[0]["value"] == " 001 "
        assert rows[1]["value"] == "2.50"
        assert rows[2]["value"] == "$3"

    def test_blank_lines_skipped(self, csv_file):
        path = csv_file("a,b\n1,2\n\n3,4\n")

        rows = read_rows(path)

        assert rows == [{"a": "1", "b": "2"}, {"a": "3", "b": "4"}]

    def test_line_of_empty_cells_is_a_row(self, csv_file):
        path = csv_file("a,b\n1,2\n,\n3,4")

        rows = read_rows(path)

        assert rows == [{"a": "1", "b": "2"}, {"a": "", "b": ""}, {"a": "3", "b": "4"}]

    def test_header_names_kept_verbatim(self, csv_file):
        path = csv_file("name , value\nx,1\n")

        assert list(read_rows(path)[0]) == ["name ", " value"]

    def test_duplicate_header_raises(self, csv_file):
        path = csv_file("a,b,a\n1,2,3\n")

        with pytest.raises(IngestionError, match="duplicate column"):
            read_rows(path)

    def test_short_rows_padded_and_extra_cells_dropped(self, csv_file):
        path = csv_file("a,b,c\n1\n1,2,3,4\n")

        rows = read_rows(path)

        assert rows[0] == {"a": "1", "b": "", "c": ""}
        assert rows[1] == {"a": "1", "b": "2", "c": "3"}

    def test_quoted_separator_kept_in_value(self, csv_file):
        path = csv_file('city,price\n"Washington, D.C.",100\n')

        rows = read_rows(path)

        assert rows[0]["city"] == "Washington, D.C."

    def test_custom_separator(self, csv_file):
        path = csv_file("a;b\n1;2\n", name="data.tsv")

        assert read_rows(path, separator=";") == [{"a": "1", "b": "2"}]

    def test_bom_stripped_from_header(self, tmp_path):
        path = tmp_path / "bom.csv"
        path.write_bytes(b"\xef\xbb\xbfname,value\nx,1\n")

        rows = read_rows(path)

        assert list(rows[0]) == ["name", "value"]

    def test_header_only_file_gives_no_rows(self, csv_file):
        assert read_rows(csv_file("a,b\n")) == []

    def test_empty_file_gives_no_rows(self, csv_file):
        assert read_rows(csv_file("")) == []

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(IngestionError, match="not found"):
            read_rows(tmp_path / "missing.csv")

    def test_directory_raises(self, tmp_path):
        with pytest.raises(IngestionError, match="not a file"):
            read_rows(tmp_path)

    def test_undecodable_file_raises(self, tmp_path):
        path = tmp_path / "bad.csv"
        path.write_bytes(b"a,b\n\xff\xfe\xfa,1\n")

        with pytest.raises(IngestionError):
            read_rows(path)


class TestParseNumber:
    """Tests for tolerant numeric parsing."""

    @pytest.mark.parametrize("raw,expected", [
        ("1,234", 1234.0),
        ("12.5%", 12.5),
        ("$300", 300.0),
        (" -4.5 ", -4.5),
        ("0", 0.0),
    ])
    def test_parses_formatted_numbers(self, raw, expected):
        assert parse_number(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "   ", "n/a", "abc", "nan", "inf", "-Infinity"])
    def test_non_numbers_give_none(self, raw):
        assert parse_number(raw) is None


class TestDatasetCache:
    """Tests for the driver-owned dataset cache."""

    def test_second_read_is_a_hit(self, csv_file):
        path = csv_file("a\n1\n")
        cache = DatasetCache()

        first = cache.get(path)
        second = cache.get(path)

        assert first is second
        assert cache.misses == 1
        assert cache.hits == 1
        assert len(cache) == 1

    def test_separator_is_part_of_the_key(self, csv_file):
        path = csv_file("a;b\n1;2\n")
        cache = DatasetCache()

        cache.get(path, ",")
        cache.get(path, ";")

        assert cache.misses == 2
        assert len(cache) == 2

    def test_clear_resets_entries_and_counters(self, csv_file):
        path = csv_file("a\n1\n")
        cache = DatasetCache()
        cache.get(path)
        cache.get(path)

        cache.clear()

        assert len(cache) == 0
        assert cache.hits == 0
        assert cache.misses == 0

    def test_errors_are_not_cached(self, tmp_path):
        cache = DatasetCache()

        with pytest.raises(IngestionError):
            cache.get(tmp_path / "missing.csv")

        assert len(cache) == 0
