"""Tests for the text and columnar input readers."""

import math

import pyarrow as pa
import pyarrow.parquet as pq
import pytest

from alphapeptnorm.exceptions import ResultFileIOError, SchemaError
from alphapeptnorm.readers import (
    cell_to_text,
    is_columnar,
    read_batches,
    read_parquet_batches,
    read_text_batches,
)


def collect(batches):
    """(column names, rows) of every batch, consumed in streaming order."""
    return [(batch.column_names, list(batch.rows)) for batch in batches]


class TestTextReader:
    """Test row-delimited text input."""

    def test_header_and_rows(self, tmp_path):
        path = tmp_path / "result.txt"
        path.write_text("A\tB\n1\t2\n3\t4\n")

        [(names, rows)] = collect(read_text_batches(path))

        assert names == ["A", "B"]
        assert rows == [(2, ["1", "2"]), (3, ["3", "4"])]

    def test_blank_lines_skipped(self, tmp_path):
        """The first non-blank line is the header; blank rows are skipped."""
        path = tmp_path / "result.txt"
        path.write_text("\n\n A \tB\r\n1\t2\r\n\n3\t4\n")

        [(names, rows)] = collect(read_text_batches(path))

        assert names == ["A", "B"]
        assert [number for number, _ in rows] == [4, 6]

    def test_no_header(self, tmp_path):
        path = tmp_path / "empty.txt"
        path.write_text("\n  \n")

        with pytest.raises(SchemaError):
            collect(read_text_batches(path))

    def test_missing_file(self, tmp_path):
        with pytest.raises(ResultFileIOError):
            collect(read_text_batches(tmp_path / "absent.txt"))

    def test_abort(self, tmp_path):
        """Reading stops when the abort callback fires."""
        path = tmp_path / "result.txt"
        path.write_text("A\n" + "".join(f"{i}\n" for i in range(10)))
        seen = []

        for batch in read_text_batches(path, should_abort=lambda: len(seen) >= 3):
            for _, row in batch.rows:
                seen.append(row)

        assert len(seen) == 3


class TestColumnarReader:
    """Test Parquet input and the shadow copy."""

    @pytest.fixture
    def parquet_file(self, tmp_path):
        table = pa.table({
            "Run": ["RunA", "RunA", "RunB"],
            "Precursor.Charge": [2, 3, 2],
            "RT": [1.5, None, 2.25],
        })
        path = tmp_path / "report.parquet"
        pq.write_table(table, path, row_group_size=2)
        return path

    def test_row_groups(self, parquet_file):
        """Each row group is one batch with typed cells converted to text."""
        batches = collect(read_parquet_batches(parquet_file))

        assert len(batches) == 2
        names, rows = batches[0]
        assert names == ["Run", "Precursor.Charge", "RT"]
        assert rows == [(1, ["RunA", "2", "1.5"]), (2, ["RunA", "3", ""])]
        assert batches[1][1] == [(3, ["RunB", "2", "2.25"])]

    def test_shadow_copy(self, parquet_file, tmp_path):
        """The translated rows are written as tab-delimited text."""
        shadow = tmp_path / "report_from_parquet.txt"

        collect(read_batches(parquet_file, shadow_copy_path=shadow))

        lines = shadow.read_text().splitlines()
        assert lines == [
            "Run\tPrecursor.Charge\tRT",
            "RunA\t2\t1.5",
            "RunA\t3\t",
            "RunB\t2\t2.25",
        ]

    def test_shadow_copy_removed_on_abort(self, parquet_file, tmp_path):
        """An interrupted translation leaves neither the copy nor its temporary file."""
        shadow = tmp_path / "report_from_parquet.txt"
        seen = []

        for batch in read_batches(parquet_file, shadow_copy_path=shadow, should_abort=lambda: len(seen) >= 1):
            for _, row in batch.rows:
                seen.append(row)

        assert len(seen) == 1
        assert not shadow.exists()
        assert not list(tmp_path.glob("*.tmp"))

    def test_shadow_copy_removed_on_error(self, parquet_file, tmp_path):
        """A reader closed early by its consumer discards the partial copy."""
        shadow = tmp_path / "report_from_parquet.txt"
        batches = read_batches(parquet_file, shadow_copy_path=shadow)

        batch = next(batches)
        next(batch.rows)
        batches.close()

        assert not shadow.exists()
        assert not list(tmp_path.glob("*.tmp"))

    def test_no_shadow_copy(self, parquet_file, tmp_path):
        collect(read_parquet_batches(parquet_file))

        assert not (tmp_path / "report_from_parquet.txt").exists()

    def test_invalid_file(self, tmp_path):
        path = tmp_path / "broken.parquet"
        path.write_text("not parquet")

        with pytest.raises(ResultFileIOError):
            collect(read_parquet_batches(path))

    def test_dispatch(self, tmp_path):
        assert is_columnar(tmp_path / "report.parquet")
        assert not is_columnar(tmp_path / "report.tsv")


class TestCellText:
    """Test conversion of columnar cells."""

    def test_values(self):
        assert cell_to_text(None) == ""
        assert cell_to_text(math.nan) == ""
        assert cell_to_text(0.1) == "0.1"
        assert cell_to_text(3) == "3"
        assert cell_to_text(b"PEPTIDE") == "PEPTIDE"
