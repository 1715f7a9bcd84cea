"""Tests for ranking, filtering and output ordering."""

import random

import numpy as np
import pytest

from alphapeptnorm.config import NormalizationConfig
from alphapeptnorm.dialects import DiannDialect, MSAlignDialect, MSFraggerDialect, TopPICDialect
from alphapeptnorm.filtering import (
    dense_rank_within_groups,
    filter_rank_sort,
    find_scan_groups,
)
from alphapeptnorm.records import CanonicalRecord


def make_record(scan, scores, sequence="PEPTIDEK", dataset="D", charge=2, protein="P1"):
    return CanonicalRecord(
        dataset=dataset,
        scan=scan,
        charge=charge,
        peptide=sequence,
        clean_sequence=sequence,
        modifications=[],
        mass=1000.0,
        mz=501.0,
        mh=1001.0,
        protein=protein,
        scores={column: str(value) for column, value in scores.items()},
    )


class TestDenseRankKernel:
    """Test the Numba ranking kernel."""

    def test_ties_share_rank(self):
        """Scores [0.01, 0.01, 0.05] rank [1, 1, 2]."""
        ranks = dense_rank_within_groups(
            np.zeros(3, dtype=np.int64),
            np.array([0.01, 0.01, 0.05]),
            1e-10,
        )

        assert list(ranks) == [1, 1, 2]

    def test_epsilon(self):
        """Values closer than epsilon are ties."""
        ranks = dense_rank_within_groups(
            np.zeros(3, dtype=np.int64),
            np.array([0.01, 0.01 + 1e-12, 0.02]),
            1e-10,
        )

        assert list(ranks) == [1, 1, 2]

    def test_groups_restart(self):
        """Each group starts at rank 1."""
        ranks = dense_rank_within_groups(
            np.array([0, 0, 1, 1], dtype=np.int64),
            np.array([0.1, 0.2, 0.3, 0.4]),
            1e-10,
        )

        assert list(ranks) == [1, 2, 1, 2]

    def test_infinite_scores_tie(self):
        """Missing scores (sorted as +inf) share a rank."""
        ranks = dense_rank_within_groups(
            np.zeros(3, dtype=np.int64),
            np.array([0.1, np.inf, np.inf]),
            1e-10,
        )

        assert list(ranks) == [1, 2, 2]


class TestRanking:
    """Test ranks assigned through the full chain."""

    def test_rank_grouping(self):
        """Three records of one scan rank [1, 1, 2] regardless of input order."""
        dialect = DiannDialect()
        records = [
            make_record(10, {"QValue": 0.05, "CScore": 0.9}, "CCCK"),
            make_record(10, {"QValue": 0.01, "CScore": 0.9}, "AAAK"),
            make_record(10, {"QValue": 0.01, "CScore": 0.9}, "BBBK"),
        ]

        for seed in range(5):
            shuffled = list(records)
            random.Random(seed).shuffle(shuffled)
            result = filter_rank_sort(shuffled, dialect)

            assert {r.clean_sequence: r.rank for r in result} == {"AAAK": 1, "BBBK": 1, "CCCK": 2}

    def test_tie_break_score(self):
        """Equal Q-values share a rank; the higher CScore is listed first."""
        dialect = DiannDialect()
        records = [
            make_record(10, {"QValue": 0.01, "CScore": 0.5}, "AAAK"),
            make_record(10, {"QValue": 0.01, "CScore": 0.9}, "BBBK"),
        ]

        result = filter_rank_sort(records, dialect)

        assert [(r.clean_sequence, r.rank) for r in result] == [("BBBK", 1), ("AAAK", 1)]

    def test_groups_by_dataset_and_scan(self):
        """The same scan number in two datasets forms two groups."""
        records = [
            make_record(10, {"QValue": 0.02}, dataset="A"),
            make_record(10, {"QValue": 0.03}, dataset="B"),
        ]

        result = filter_rank_sort(records, DiannDialect())

        assert [r.rank for r in result] == [1, 1]

    def test_charge_shares_group(self):
        """Different charges of one scan are ranked together."""
        records = [
            make_record(10, {"QValue": 0.02}, charge=2),
            make_record(10, {"QValue": 0.03}, charge=3),
        ]

        result = filter_rank_sort(records, DiannDialect())

        assert sorted(r.rank for r in result) == [1, 2]

    def test_better_score_at_higher_charge(self):
        """Ranks follow the score, not the charge."""
        records = [
            make_record(10, {"QValue": 0.05}, "BBBK", charge=2),
            make_record(10, {"QValue": 0.01}, "AAAK", charge=3),
        ]

        result = filter_rank_sort(records, DiannDialect())

        assert {r.clean_sequence: r.rank for r in result} == {"AAAK": 1, "BBBK": 2}

    def test_equal_scores_across_charges(self):
        """Equal scores share a rank even at different charges."""
        records = [
            make_record(10, {"QValue": 0.01}, "AAAK", charge=2),
            make_record(10, {"QValue": 0.05}, "BBBK", charge=2),
            make_record(10, {"QValue": 0.01}, "CCCK", charge=3),
        ]

        result = filter_rank_sort(records, DiannDialect())

        assert {r.clean_sequence: r.rank for r in result} == {"AAAK": 1, "BBBK": 2, "CCCK": 1}

    def test_scan_groups(self):
        records = [make_record(1, {}), make_record(1, {}), make_record(2, {}), make_record(2, {}, dataset="E")]

        assert list(find_scan_groups(records)) == [0, 0, 1, 2]


class TestThresholdBoundaries:
    """Test filter predicates at the exact cutoff values."""

    def test_diann_strict(self):
        """Q.Value == 0.10 and CScore == 0.25 are both excluded."""
        dialect = DiannDialect(NormalizationConfig())

        assert not dialect.passes_filter(make_record(1, {"QValue": 0.10, "CScore": 0.25}))
        assert dialect.passes_filter(make_record(1, {"QValue": 0.0999, "CScore": 0.0}))
        assert dialect.passes_filter(make_record(1, {"QValue": 0.5, "CScore": 0.2501}))

    def test_toppic_inclusive(self):
        """P-value == 0.95 is included."""
        dialect = TopPICDialect()

        assert dialect.passes_filter(make_record(1, {"PValue": 0.95}))
        assert not dialect.passes_filter(make_record(1, {"PValue": 0.9500001}))

    def test_msalign_inclusive(self):
        """MSAlign uses the same inclusive P-value rule."""
        dialect = MSAlignDialect()

        assert dialect.passes_filter(make_record(1, {"PValue": 0.95}))
        assert not dialect.passes_filter(make_record(1, {"PValue": 0.96}))

    def test_msfragger_strict(self):
        """Expectation == 0.75 and Hyperscore == 20 are excluded."""
        dialect = MSFraggerDialect()

        assert not dialect.passes_filter(make_record(1, {"EValue": 0.75, "Hyperscore": 20.0}))
        assert dialect.passes_filter(make_record(1, {"EValue": 0.74, "Hyperscore": 0.0}))
        assert dialect.passes_filter(make_record(1, {"EValue": 5.0, "Hyperscore": 20.5}))

    def test_configured_thresholds(self):
        """Thresholds come from the configuration."""
        dialect = DiannDialect(NormalizationConfig(q_value_threshold=0.01, confidence_score_threshold=1.0))

        assert not dialect.passes_filter(make_record(1, {"QValue": 0.05, "CScore": 0.9}))

    def test_missing_score_fails(self):
        """A record without any threshold score is excluded."""
        assert not TopPICDialect().passes_filter(make_record(1, {"PValue": ""}))


class TestOutputOrder:
    """Test the retained-record output sort."""

    def test_sorted_by_score_then_scan(self):
        """Output is ordered by score, independent of the grouping order."""
        records = [
            make_record(1, {"QValue": 0.05}),
            make_record(2, {"QValue": 0.01}),
            make_record(3, {"QValue": 0.05}),
            make_record(4, {"QValue": 0.5}),
        ]

        result = filter_rank_sort(records, DiannDialect())

        assert [r.scan for r in result] == [2, 1, 3]
        assert all(r.rank == 1 for r in result)

    def test_ranks_assigned_before_filtering(self):
        """A filtered-out better match still occupies rank 1."""
        dialect = MSFraggerDialect()
        records = [
            make_record(7, {"EValue": 1.0, "Hyperscore": 10.0}, "AAAK"),
            make_record(7, {"EValue": 2.0, "Hyperscore": 25.0}, "BBBK"),
        ]

        result = filter_rank_sort(records, dialect)

        assert [(r.clean_sequence, r.rank) for r in result] == [("BBBK", 2)]

    def test_empty(self):
        assert filter_rank_sort([], TopPICDialect()) == []
