"""Readers for the two physical encodings of search engine output.

- Row-delimited text: tab-separated fields, the first non-blank line is the
  header.
- Columnar batches (Parquet): each row group exposes its own column names
  and typed column arrays. Rows are translated to text cells so that both
  encodings feed the same record stream; a tab-delimited shadow copy of the
  translation can be written for inspection.

Both readers yield ``RowBatch`` objects; the text reader yields exactly one.
"""

import csv
import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Sequence, Tuple, Union

from .exceptions import ResultFileIOError, SchemaError

logger = logging.getLogger(__name__)

PARQUET_SUFFIXES = (".parquet", ".pq")
SHADOW_COPY_SUFFIX = "_from_parquet.txt"


@dataclass
class RowBatch:
    """Column names plus an iterator of (row number, cells)."""

    column_names: List[str]
    rows: Iterator[Tuple[int, List[str]]]


def is_columnar(path: Union[str, Path]) -> bool:
    return Path(path).suffix.lower() in PARQUET_SUFFIXES


def cell_to_text(value) -> str:
    """Text form of a columnar cell (None and NaN become empty)."""
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, float):
        if math.isnan(value):
            return ""
        return repr(value)
    return str(value)


def _never_abort() -> bool:
    return False


# =============================================================================
# Row-Delimited Text
# =============================================================================

def read_text_batches(
    path: Union[str, Path],
    should_abort: Callable[[], bool] = _never_abort,
) -> Iterator[RowBatch]:
    """Yield the single batch of a tab-delimited result file.

    Raises
    ------
    ResultFileIOError
        If the file cannot be opened
    SchemaError
        If the file has no non-blank header line
    """
    path = Path(path)
    try:
        handle = open(path, newline="")
    except OSError as e:
        raise ResultFileIOError(f"Cannot open input file {path}", str(e)) from e

    with handle:
        header: Optional[List[str]] = None
        line_number = 0
        for line in handle:
            line_number += 1
            if line.strip():
                header = [name.strip() for name in line.rstrip("\r\n").split("\t")]
                break

        if header is None:
            raise SchemaError("Input file has no header line", str(path))

        def rows() -> Iterator[Tuple[int, List[str]]]:
            number = line_number
            for line in handle:
                number += 1
                if should_abort():
                    logger.info(f"Abort requested; stopped reading {path.name} at line {number}")
                    return
                if not line.strip():
                    continue
                yield number, line.rstrip("\r\n").split("\t")

        yield RowBatch(header, rows())


# =============================================================================
# Columnar Batches
# =============================================================================

def _row_group_rows(table, start_row: int) -> Iterator[Tuple[int, List[str]]]:
    columns = [table.column(i).to_pylist() for i in range(table.num_columns)]
    for offset in range(table.num_rows):
        yield start_row + offset, [cell_to_text(column[offset]) for column in columns]


def read_parquet_batches(
    path: Union[str, Path],
    shadow_copy_path: Optional[Union[str, Path]] = None,
    should_abort: Callable[[], bool] = _never_abort,
) -> Iterator[RowBatch]:
    """Yield one ``RowBatch`` per Parquet row group.

    Parameters
    ----------
    path : str or Path
        Parquet file
    shadow_copy_path : str or Path, optional
        Where to write the tab-delimited translation; it is written under a
        temporary name and moved into place only after the last row group
    should_abort : callable
        Checked before every row group and every row

    Raises
    ------
    ResultFileIOError
        If the file cannot be opened or the shadow copy cannot be written
    """
    import pyarrow.parquet as pq

    path = Path(path)
    try:
        parquet_file = pq.ParquetFile(path)
    except (OSError, ValueError) as e:
        raise ResultFileIOError(f"Cannot open Parquet file {path}", str(e)) from e

    n_groups = parquet_file.num_row_groups
    logger.info(f"Reading {path.name}: {parquet_file.metadata.num_rows:,} rows in {n_groups} row groups")

    shadow = _ShadowCopy(shadow_copy_path)
    with shadow:
        start_row = 1
        for group_index in range(n_groups):
            if should_abort():
                logger.info(f"Abort requested; stopped before row group {group_index}")
                return

            table = parquet_file.read_row_group(group_index)
            column_names = [cell_to_text(name) for name in table.column_names]

            def rows(table=table, column_names=column_names, start_row=start_row):
                for number, cells in _row_group_rows(table, start_row):
                    if should_abort():
                        return
                    shadow.write(column_names, cells)
                    yield number, cells

            yield RowBatch(column_names, rows())
            start_row += table.num_rows

        # A row loop may have stopped on abort inside the last group
        if should_abort():
            return
        shadow.commit()


class _ShadowCopy:
    """Lazily opened tab-delimited copy of translated columnar rows.

    Rows go to ``<path>.tmp``; ``commit`` moves the file into place. A copy
    that was never committed is removed on exit.
    """

    def __init__(self, path: Optional[Union[str, Path]]):
        self.path = Path(path) if path is not None else None
        self.tmp_path = self.path.with_name(self.path.name + ".tmp") if self.path is not None else None
        self._handle = None
        self._writer = None
        self._header: Optional[Sequence[str]] = None
        self._committed = False
        self.rows_written = 0

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self._close_handle()
        if not self._committed and self.tmp_path is not None:
            self.tmp_path.unlink(missing_ok=True)
        return False

    def write(self, column_names: Sequence[str], cells: Sequence[str]) -> None:
        if self.path is None:
            return

        if self._writer is None:
            try:
                self._handle = open(self.tmp_path, "w", newline="")
            except OSError as e:
                raise ResultFileIOError(f"Cannot create shadow copy {self.path}", str(e)) from e
            self._writer = csv.writer(self._handle, delimiter="\t", lineterminator="\n")

        if list(column_names) != self._header:
            self._writer.writerow(column_names)
            self._header = list(column_names)

        self._writer.writerow(cells)
        self.rows_written += 1

    def commit(self) -> None:
        """Close the copy and move it to its final name."""
        if self._handle is None:
            return
        self._close_handle()
        self.tmp_path.replace(self.path)
        self._committed = True
        logger.info(f"Wrote {self.rows_written:,} rows to {self.path.name}")

    def _close_handle(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None
            self._writer = None


def read_batches(
    path: Union[str, Path],
    shadow_copy_path: Optional[Union[str, Path]] = None,
    should_abort: Callable[[], bool] = _never_abort,
) -> Iterator[RowBatch]:
    """Dispatch on the file suffix: Parquet or tab-delimited text."""
    if is_columnar(path):
        return read_parquet_batches(path, shadow_copy_path, should_abort)
    return read_text_batches(path, should_abort)
