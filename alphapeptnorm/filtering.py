"""Group, rank, filter and order canonical records.

Records are first sorted by dataset, scan and ascending rank value (the
dialect's primary score, negated for higher-is-better scores, then its
tie-break score), with charge only ordering records of equal score. Each run
of contiguous records with the same dataset and scan is one spectrum group;
records inside a group get dense ranks from the primary score alone (equal
primary scores share a rank whatever their charge or tie-break score).
Records passing the dialect's thresholds are kept and re-sorted for output by
score, scan, charge, sequence and protein.

Examples
--------
>>> ranks = dense_rank_within_groups(
...     np.array([0, 0, 0]), np.array([0.01, 0.01, 0.05]), 1e-10
... )
>>> ranks.tolist()
[1, 1, 2]
"""

import logging
from typing import List, Sequence, Tuple

import numpy as np
import numba

from .constants import DEFAULT_SCORE_EPSILON
from .records import CanonicalRecord

logger = logging.getLogger(__name__)


# =============================================================================
# Numba Kernels
# =============================================================================

@numba.jit(nopython=True, cache=True)
def dense_rank_within_groups(
    group_ids: np.ndarray,
    primary: np.ndarray,
    epsilon: float,
) -> np.ndarray:
    """Dense ranks (1-based) within contiguous groups of pre-sorted values.

    Parameters
    ----------
    group_ids : np.ndarray
        Group identifier per record; records of a group are contiguous
    primary : np.ndarray
        Primary rank value, ascending within each group
    epsilon : float
        Values closer than ``epsilon`` are equal

    Returns
    -------
    ranks : np.ndarray (int32)
    """
    n = len(group_ids)
    ranks = np.zeros(n, dtype=np.int32)

    for i in range(n):
        if i == 0 or group_ids[i] != group_ids[i - 1]:
            ranks[i] = 1
            continue

        same_primary = (
            primary[i] == primary[i - 1]
            or abs(primary[i] - primary[i - 1]) <= epsilon
        )

        if same_primary:
            ranks[i] = ranks[i - 1]
        else:
            ranks[i] = ranks[i - 1] + 1

    return ranks


# =============================================================================
# Sort Keys
# =============================================================================

def grouping_sort_key(record: CanonicalRecord, dialect) -> Tuple:
    """Dataset, scan, ascending score, charge, sequence, protein."""
    primary, secondary = dialect.rank_values(record)
    return (
        record.dataset,
        record.scan,
        primary,
        secondary,
        record.charge,
        record.clean_sequence,
        record.protein,
    )


def output_sort_key(record: CanonicalRecord, dialect) -> Tuple:
    """Ascending score, then scan, charge, sequence, protein."""
    primary, secondary = dialect.rank_values(record)
    return (
        primary,
        secondary,
        record.scan,
        record.charge,
        record.clean_sequence,
        record.protein,
        record.dataset,
    )


# =============================================================================
# Pipeline Steps
# =============================================================================

def find_scan_groups(records: Sequence[CanonicalRecord]) -> np.ndarray:
    """Group id per record; a new group starts whenever dataset or scan changes."""
    group_ids = np.zeros(len(records), dtype=np.int64)
    current = 0
    for i in range(1, len(records)):
        previous, record = records[i - 1], records[i]
        if record.scan != previous.scan or record.dataset != previous.dataset:
            current += 1
        group_ids[i] = current
    return group_ids


def assign_ranks(
    records: List[CanonicalRecord],
    dialect,
    epsilon: float = DEFAULT_SCORE_EPSILON,
) -> None:
    """Set ``record.rank`` for records already in grouping order."""
    if not records:
        return

    group_ids = find_scan_groups(records)
    primary = np.array([dialect.rank_values(r)[0] for r in records], dtype=np.float64)
    ranks = dense_rank_within_groups(group_ids, primary, epsilon)

    for record, rank in zip(records, ranks):
        record.rank = int(rank)


def filter_records(records: Sequence[CanonicalRecord], dialect) -> List[CanonicalRecord]:
    """Records passing the dialect's thresholds, order preserved."""
    return [record for record in records if dialect.passes_filter(record)]


def filter_rank_sort(
    records: List[CanonicalRecord],
    dialect,
    epsilon: float = DEFAULT_SCORE_EPSILON,
) -> List[CanonicalRecord]:
    """Full ranking chain: grouping sort, dense ranks, filter, output sort.

    Parameters
    ----------
    records : List[CanonicalRecord]
        Parsed records of one input file (any order)
    dialect : SearchEngineDialect
        Supplies rank values and the filter predicate
    epsilon : float
        Tie tolerance for ranks

    Returns
    -------
    List[CanonicalRecord]
        Retained records in output order with ``rank`` set
    """
    ordered = sorted(records, key=lambda r: grouping_sort_key(r, dialect))
    assign_ranks(ordered, dialect, epsilon)

    retained = filter_records(ordered, dialect)
    retained.sort(key=lambda r: output_sort_key(r, dialect))

    n_spectra = len({(r.dataset, r.scan) for r in retained})
    logger.info(
        f"Retained {len(retained):,} of {len(records):,} records ({n_spectra:,} spectra)"
    )
    return retained
