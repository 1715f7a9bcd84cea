"""Search engine dialect interface.

A dialect describes everything that differs between engines: the column-name
table, the annotation delimiters, which score ranks and filters records, and
how a row is turned into a ``RawRecord``. The pipeline body is shared.
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import ClassVar, Dict, List, Optional, Sequence, Tuple

from ..cleavage import split_prefix_and_suffix
from ..columns import ColumnMapping, Field, resolve_columns
from ..config import NormalizationConfig
from ..exceptions import RecordError
from ..mass import mz_to_mass
from ..modifications import (
    DecodedPeptide,
    ModificationAnnotationDecoder,
    TokenDelimiters,
    add_static_modifications,
    encode_modifications,
)
from ..records import CanonicalRecord, RawRecord
from ..registry import ModificationMassRegistry

logger = logging.getLogger(__name__)


class ScoreDirection(Enum):
    LOWER_IS_BETTER = "lower"
    HIGHER_IS_BETTER = "higher"


@dataclass(frozen=True)
class ScoreThreshold:
    """Keep a record when its score is below (or above) ``cutoff``.

    ``inclusive`` decides whether a score exactly equal to ``cutoff`` passes.
    A missing (NaN) score never passes.

    Examples
    --------
    >>> ScoreThreshold("QValue", 0.1, ScoreDirection.LOWER_IS_BETTER).passes(0.1)
    False
    >>> ScoreThreshold("PValue", 0.95, ScoreDirection.LOWER_IS_BETTER, inclusive=True).passes(0.95)
    True
    """

    score_column: str
    cutoff: float
    direction: ScoreDirection
    inclusive: bool = False

    def passes(self, value: float) -> bool:
        if math.isnan(value):
            return False
        if self.direction == ScoreDirection.LOWER_IS_BETTER:
            return value <= self.cutoff if self.inclusive else value < self.cutoff
        return value >= self.cutoff if self.inclusive else value > self.cutoff


def sort_value(value: float, direction: ScoreDirection) -> float:
    """Ascending sort value: best score first, missing scores last."""
    if math.isnan(value):
        return math.inf
    return value if direction == ScoreDirection.LOWER_IS_BETTER else -value


class SearchEngineDialect:
    """Base class of the per-engine dialects.

    Subclasses set the class attributes and override the row-parsing hooks
    where the engine deviates from the common layout.

    Parameters
    ----------
    config : NormalizationConfig, optional
        Supplies the engine's thresholds
    """

    name: ClassVar[str] = ""
    file_tag: ClassVar[str] = ""
    column_table: ClassVar[Dict[str, Field]] = {}
    mandatory_fields: ClassVar[Tuple[Field, ...]] = (Field.CLEAN_SEQUENCE,)
    delimiters: ClassVar[TokenDelimiters] = TokenDelimiters()

    # (field, synopsis column name) of every carried score, in output order
    score_fields: ClassVar[Tuple[Tuple[Field, str], ...]] = ()
    primary_score_column: ClassVar[str] = ""
    primary_direction: ClassVar[ScoreDirection] = ScoreDirection.LOWER_IS_BETTER

    has_flanking_residues: ClassVar[bool] = True
    applies_static_modifications: ClassVar[bool] = False
    min_field_count: ClassVar[int] = 0
    protein_separator: ClassVar[str] = ";"

    def __init__(self, config: Optional[NormalizationConfig] = None):
        self.config = config if config is not None else NormalizationConfig()

    def __repr__(self):
        return f"{type(self).__name__}()"

    # -------------------------------------------------------------------------
    # Interface
    # -------------------------------------------------------------------------

    @property
    def score_columns(self) -> List[str]:
        return [column for _, column in self.score_fields]

    def resolve_columns(self, column_names: Sequence[str]) -> ColumnMapping:
        return resolve_columns(column_names, self.column_table, self.mandatory_fields)

    def create_decoder(
        self, registry: Optional[ModificationMassRegistry] = None
    ) -> ModificationAnnotationDecoder:
        return ModificationAnnotationDecoder(self.delimiters, registry)

    def decode_modifications(
        self,
        record: RawRecord,
        decoder: ModificationAnnotationDecoder,
    ) -> DecodedPeptide:
        """Clean sequence and modifications of ``record``.

        Raises
        ------
        RecordError
            If no residues remain after decoding
        """
        decoded = decoder.decode(record.peptide)
        if not decoded.clean_sequence:
            raise RecordError("Peptide has no residues", repr(record.peptide))

        if self.applies_static_modifications and decoder.registry is not None:
            decoded.modifications = add_static_modifications(
                decoded.clean_sequence, decoded.modifications, decoder.registry
            )
        return decoded

    def primary_score(self, record) -> float:
        return record.score_value(self.primary_score_column)

    def rank_values(self, record: CanonicalRecord) -> Tuple[float, float]:
        """(primary, tie-break) values, ascending means better.

        Only the primary value decides whether two records share a rank; the
        tie-break value orders records of equal rank.
        """
        return sort_value(self.primary_score(record), self.primary_direction), 0.0

    def thresholds(self) -> List[ScoreThreshold]:
        """Threshold rules; a record passes if any rule passes."""
        raise NotImplementedError

    def passes_filter(self, record: CanonicalRecord) -> bool:
        return any(
            rule.passes(record.score_value(rule.score_column))
            for rule in self.thresholds()
        )

    def annotated_peptide(self, record: RawRecord, decoded: DecodedPeptide) -> str:
        """Peptide text written to the synopsis ``Peptide`` column."""
        return record.peptide

    def synopsis_name(self, input_path: Path) -> str:
        """Base name of the output files for ``input_path``."""
        return f"{input_path.stem}_{self.file_tag}"

    # -------------------------------------------------------------------------
    # Row parsing
    # -------------------------------------------------------------------------

    def extract_record(
        self,
        row: Sequence[str],
        mapping: ColumnMapping,
        line_number: int,
        default_dataset: str = "",
    ) -> RawRecord:
        """Turn one row into a ``RawRecord``.

        Raises
        ------
        RecordError
            If a required value is missing or invalid
        """
        if self.min_field_count and len(row) < self.min_field_count:
            raise RecordError(
                f"Row has {len(row)} fields, expected at least {self.min_field_count}",
                f"line {line_number}",
            )

        record = RawRecord(line_number=line_number)
        record.dataset = self.parse_dataset(row, mapping) or default_dataset
        record.charge = mapping.int_value(row, Field.CHARGE, required=True)
        record.elution_time = mapping.float_value(row, Field.ELUTION_TIME)
        record.rt_start = mapping.float_value(row, Field.RT_START)
        record.rt_stop = mapping.float_value(row, Field.RT_STOP)
        record.scan = self.parse_scan(row, mapping)

        self.parse_peptide(row, mapping, record)
        self.parse_proteins(row, mapping, record)
        self.parse_precursor(row, mapping, record)

        for score_field, column in self.score_fields:
            record.scores[column] = mapping.value(row, score_field)

        return record

    def parse_dataset(self, row: Sequence[str], mapping: ColumnMapping) -> str:
        dataset = mapping.value(row, Field.DATASET)
        if dataset:
            return dataset
        spectrum_file = mapping.value(row, Field.SPECTRUM_FILE)
        if spectrum_file:
            return Path(spectrum_file.replace("\\", "/")).stem
        return ""

    def parse_scan(self, row: Sequence[str], mapping: ColumnMapping) -> Optional[int]:
        return mapping.int_value(row, Field.SCAN)

    def parse_peptide(self, row: Sequence[str], mapping: ColumnMapping, record: RawRecord) -> None:
        peptide = mapping.value(row, Field.PEPTIDE) or mapping.value(row, Field.CLEAN_SEQUENCE)
        if not peptide:
            raise RecordError("Peptide column is empty", f"line {record.line_number}")

        if self.has_flanking_residues:
            peptide = self.normalize_peptide(peptide)
            record.prefix, peptide, record.suffix = split_prefix_and_suffix(peptide)

        record.peptide = peptide
        record.clean_sequence = mapping.value(row, Field.CLEAN_SEQUENCE)
        record.modification_list = mapping.value(row, Field.MODIFICATION_LIST)

        prefix = mapping.value(row, Field.PREFIX_RESIDUE)
        suffix = mapping.value(row, Field.SUFFIX_RESIDUE)
        if prefix:
            record.prefix = prefix
        if suffix:
            record.suffix = suffix

    def normalize_peptide(self, peptide: str) -> str:
        """Hook to rewrite engine-specific terminus notation before splitting."""
        return peptide

    def parse_proteins(self, row: Sequence[str], mapping: ColumnMapping, record: RawRecord) -> None:
        proteins = [
            protein.strip()
            for protein in mapping.value(row, Field.PROTEIN).split(self.protein_separator)
            if protein.strip()
        ]
        if proteins:
            record.protein = proteins[0]
            record.additional_proteins = proteins[1:]

    def parse_precursor(self, row: Sequence[str], mapping: ColumnMapping, record: RawRecord) -> None:
        record.precursor_mass = mapping.float_value(row, Field.PRECURSOR_MASS)
        record.precursor_mz = mapping.float_value(row, Field.PRECURSOR_MZ)
        if record.precursor_mass is None and record.precursor_mz and record.charge > 0:
            record.precursor_mass = mz_to_mass(record.precursor_mz, record.charge)

    def needs_scan_resolution(self, record: RawRecord) -> bool:
        """True if the scan must be looked up from the elution time."""
        return (record.scan is None or record.scan <= 0) and record.elution_time is not None


def encode_bracketed(clean_sequence: str, decoded: DecodedPeptide) -> str:
    """Bracketed-numeric annotation for engines that report modifications separately."""
    return encode_modifications(clean_sequence, decoded.modifications)
