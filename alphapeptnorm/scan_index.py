"""Resolve scan numbers from elution times.

Some engines (DIA-NN) report the retention time of an identification but no
scan number. A per-dataset scan-stats side table (scan number, elution time,
scan type) is turned into a sorted elution-time array and the nearest entry
is found by binary search.

Design principles:
1. One ScanIndex per dataset, built once and read-only afterwards
2. Binary search (O(log n)) in a Numba kernel
3. Missing datasets degrade to scan 0 with a single diagnostic
"""

import logging
from pathlib import Path
from typing import Dict, Iterable, Optional, Set, Tuple, Union

import numpy as np
from numba import njit

from .diagnostics import RunDiagnostics
from .exceptions import ResolutionWarning

logger = logging.getLogger(__name__)

SCAN_STATS_SUFFIX = "_ScanStats.txt"

# Header spellings accepted in scan-stats files (lower case)
_SCAN_STATS_COLUMNS = {
    "scannumber": "scan",
    "scan": "scan",
    "scan number": "scan",
    "scantime": "elution_time",
    "scan time": "elution_time",
    "elutiontime": "elution_time",
    "elution time": "elution_time",
    "scantype": "scan_type",
    "scan type": "scan_type",
}

# MS2 fragmentation spectra
MS2_SCAN_TYPE = 2


@njit(cache=True)
def find_nearest_index(sorted_values: np.ndarray, value: float) -> int:
    """Index of the entry closest to ``value``; ties resolve to the lower index.

    Returns -1 for an empty array.
    """
    n = len(sorted_values)
    if n == 0:
        return -1

    idx = np.searchsorted(sorted_values, value)
    if idx == 0:
        return 0
    if idx >= n:
        return n - 1

    if value - sorted_values[idx - 1] <= sorted_values[idx] - value:
        return idx - 1
    return idx


class ScanIndex:
    """Sorted (elution time, scan number) pairs of one dataset.

    Parameters
    ----------
    elution_times : np.ndarray
        Elution times, sorted ascending and unique
    scan_numbers : np.ndarray
        Scan number for each elution time
    """

    def __init__(self, elution_times: np.ndarray, scan_numbers: np.ndarray):
        self.elution_times = np.asarray(elution_times, dtype=np.float64)
        self.scan_numbers = np.asarray(scan_numbers, dtype=np.float64)

    @classmethod
    def from_arrays(
        cls,
        elution_times: Iterable[float],
        scan_numbers: Iterable[float],
    ) -> Tuple['ScanIndex', int]:
        """Sort by elution time and drop duplicate times.

        For duplicate elution times the first scan in input order is kept.

        Returns
        -------
        index : ScanIndex
        duplicate_count : int
            Number of dropped entries
        """
        times = np.asarray(list(elution_times), dtype=np.float64)
        scans = np.asarray(list(scan_numbers), dtype=np.float64)
        if len(times) != len(scans):
            raise ValueError(
                f"Elution times ({len(times)}) and scans ({len(scans)}) differ in length"
            )

        order = np.argsort(times, kind="stable")
        times = times[order]
        scans = scans[order]

        keep = np.ones(len(times), dtype=bool)
        if len(times) > 1:
            keep[1:] = times[1:] != times[:-1]

        duplicate_count = int(len(times) - keep.sum())
        return cls(times[keep], scans[keep]), duplicate_count

    def __len__(self):
        return len(self.elution_times)

    def nearest_scan(self, elution_time: float) -> int:
        """Scan number nearest to ``elution_time`` (0 for an empty index)."""
        idx = find_nearest_index(self.elution_times, float(elution_time))
        if idx < 0:
            return 0
        return int(round(self.scan_numbers[idx]))


def read_scan_stats(
    scan_stats_path: Union[str, Path],
    ms_level: Optional[int] = MS2_SCAN_TYPE,
):
    """Read a tab-delimited scan-stats file.

    Parameters
    ----------
    scan_stats_path : str or Path
        File with ScanNumber, ScanTime and (optionally) ScanType columns
    ms_level : int, optional
        Keep only this scan type when a ScanType column exists and contains
        it; None keeps every scan

    Returns
    -------
    pd.DataFrame
        Columns ``scan``, ``elution_time`` (and ``scan_type`` if present)

    Raises
    ------
    ValueError
        If scan number or elution time columns are missing
    """
    import pandas as pd

    df = pd.read_csv(scan_stats_path, sep='\t')
    df = df.rename(
        columns={
            name: _SCAN_STATS_COLUMNS[name.strip().lower()]
            for name in df.columns
            if name.strip().lower() in _SCAN_STATS_COLUMNS
        }
    )
    df = df.loc[:, ~df.columns.duplicated()]

    missing = {"scan", "elution_time"} - set(df.columns)
    if missing:
        raise ValueError(
            f"Scan stats file {Path(scan_stats_path).name} lacks columns: {sorted(missing)}"
        )

    if ms_level is not None and "scan_type" in df.columns:
        selected = df[df["scan_type"] == ms_level]
        if len(selected) > 0:
            df = selected

    df = df.dropna(subset=["scan", "elution_time"])
    return df.reset_index(drop=True)


class ElutionTimeScanResolver:
    """Per-dataset elution time -> scan number lookup.

    Parameters
    ----------
    diagnostics : RunDiagnostics, optional
        Run-scoped sink for missing-dataset and duplicate-time diagnostics

    Examples
    --------
    >>> resolver = ElutionTimeScanResolver()
    >>> resolver.add_dataset("D", [1.0, 2.0, 3.0], [100, 200, 300])
    >>> resolver.resolve("D", 2.4), resolver.resolve("D", 2.6)
    (200, 300)
    >>> resolver.resolve("Unknown", 2.0)
    0
    """

    def __init__(self, diagnostics: Optional[RunDiagnostics] = None):
        self.diagnostics = diagnostics if diagnostics is not None else RunDiagnostics()
        self._indices: Dict[str, ScanIndex] = {}
        self._missing: Set[str] = set()
        self.duplicate_count = 0
        self.out_of_range_count = 0

    @property
    def datasets(self):
        return sorted(self._indices)

    @property
    def missing_datasets(self) -> Set[str]:
        """Datasets looked up without scan info (each recorded once)."""
        return set(self._missing)

    def has_dataset(self, dataset: str) -> bool:
        return dataset in self._indices

    def add_dataset(
        self,
        dataset: str,
        elution_times: Iterable[float],
        scan_numbers: Iterable[float],
    ) -> None:
        index, duplicates = ScanIndex.from_arrays(elution_times, scan_numbers)
        self._indices[dataset] = index

        if duplicates > 0:
            self.duplicate_count += duplicates
            self.diagnostics.count("duplicate_elution_times", duplicates)
            self.diagnostics.warn_rate_limited(
                "duplicate_elution_time",
                ResolutionWarning(
                    f"Dataset {dataset}: dropped {duplicates} scans with duplicate elution times"
                ),
            )

        logger.info(f"Indexed {len(index):,} scans for dataset {dataset}")

    def load_scan_stats(self, dataset: str, scan_stats_path: Union[str, Path]) -> bool:
        """Build the index of ``dataset`` from a scan-stats file.

        An unreadable file is recorded as a ResolutionWarning and leaves the
        dataset unindexed.
        """
        try:
            df = read_scan_stats(scan_stats_path)
        except (OSError, ValueError) as e:
            self.diagnostics.warn_once(
                f"scan_stats:{dataset}",
                ResolutionWarning(f"Cannot use scan stats for dataset {dataset}: {e}"),
            )
            return False

        self.add_dataset(dataset, df["elution_time"].to_numpy(), df["scan"].to_numpy())
        return True

    def load_directory(self, directory: Union[str, Path], datasets: Iterable[str]) -> int:
        """Load ``<dataset>_ScanStats.txt`` for each dataset found in ``directory``.

        Returns the number of datasets indexed. Datasets without a file are
        reported when they are first looked up.
        """
        directory = Path(directory)
        loaded = 0
        for dataset in sorted(set(datasets)):
            if dataset in self._indices:
                continue
            path = directory / f"{dataset}{SCAN_STATS_SUFFIX}"
            if not path.exists():
                logger.info(f"No scan stats file for dataset {dataset} in {directory}")
                continue
            if self.load_scan_stats(dataset, path):
                loaded += 1
        return loaded

    def resolve(
        self,
        dataset: str,
        elution_time: float,
        rt_start: Optional[float] = None,
        rt_stop: Optional[float] = None,
    ) -> int:
        """Scan number nearest to ``elution_time`` in ``dataset``.

        Parameters
        ----------
        dataset : str
            Dataset name
        elution_time : float
            Elution time reported by the engine
        rt_start, rt_stop : float, optional
            The record's own elution window; a time outside it is counted as
            out of range (aggregate diagnostic, lookup still proceeds)

        Returns
        -------
        int
            Nearest scan number; 0 for a dataset without scan info
        """
        if rt_start is not None and rt_stop is not None:
            if elution_time < rt_start or elution_time > rt_stop:
                self.out_of_range_count += 1
                self.diagnostics.count("elution_time_out_of_range")

        index = self._indices.get(dataset)
        if index is None:
            if dataset not in self._missing:
                self._missing.add(dataset)
                self.diagnostics.warn_once(
                    f"missing_scan_info:{dataset}",
                    ResolutionWarning(
                        f"No scan info for dataset {dataset}; scan numbers will be 0"
                    ),
                )
            return 0

        return index.nearest_scan(elution_time)

    def report(self) -> None:
        """Log aggregate lookup diagnostics."""
        if self.out_of_range_count:
            logger.warning(
                f"{self.out_of_range_count:,} elution times were outside the "
                f"record's RT.Start/RT.Stop window"
            )
        if self._missing:
            logger.warning(
                f"Scan info missing for {len(self._missing)} dataset(s): "
                f"{', '.join(sorted(self._missing))}"
            )
