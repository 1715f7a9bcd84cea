"""Record types passed between pipeline stages and the synopsis column layout."""

import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .cleavage import CleavageState
from .modifications import ModificationOccurrence, format_modification_list

# Synopsis columns in output order; dialect score columns follow
SYNOPSIS_COLUMNS = (
    "ResultID",
    "Dataset",
    "Scan",
    "Charge",
    "PrecursorMZ",
    "DelM",
    "DelM_PPM",
    "MH",
    "Mass",
    "Peptide",
    "Prefix",
    "Suffix",
    "Modifications",
    "Protein",
    "AdditionalProteins",
    "NTT",
    "MissedCleavages",
    "ElutionTime",
    "Rank",
)

# Extra columns of the final (protein-mapped) file
FINAL_COLUMNS = ("ProteinCount", "ModDescription")


def parse_score(text: str) -> float:
    """Numeric value of a score cell; NaN when blank or not numeric."""
    try:
        return float(text)
    except (TypeError, ValueError):
        return math.nan


def format_float(value: Optional[float], digits: int = 5) -> str:
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return ""
    return f"{value:.{digits}f}"


@dataclass
class RawRecord:
    """One row of a search engine's native output.

    Filled column by column by the dialect; ``scores`` keeps the raw text of
    every score column keyed by its synopsis column name.
    """

    line_number: int
    dataset: str = ""
    scan: Optional[int] = None
    elution_time: Optional[float] = None
    rt_start: Optional[float] = None
    rt_stop: Optional[float] = None
    charge: int = 0
    peptide: str = ""
    clean_sequence: str = ""
    prefix: str = ""
    suffix: str = ""
    modification_list: str = ""
    precursor_mass: Optional[float] = None
    precursor_mz: Optional[float] = None
    protein: str = ""
    additional_proteins: List[str] = field(default_factory=list)
    scores: Dict[str, str] = field(default_factory=dict)

    def score_value(self, column: str) -> float:
        return parse_score(self.scores.get(column, ""))


@dataclass
class CanonicalRecord:
    """Engine-agnostic identification written to the synopsis file."""

    dataset: str
    scan: int
    charge: int
    peptide: str
    clean_sequence: str
    modifications: List[ModificationOccurrence]
    mass: float
    mz: Optional[float]
    mh: float
    delta_mass: Optional[float] = None
    delta_ppm: Optional[float] = None
    prefix: str = ""
    suffix: str = ""
    cleavage_state: CleavageState = CleavageState.UNKNOWN
    ntt: int = 0
    missed_cleavages: int = 0
    protein: str = ""
    additional_proteins: List[str] = field(default_factory=list)
    elution_time: Optional[float] = None
    scores: Dict[str, str] = field(default_factory=dict)
    rank: int = 0
    result_id: int = 0

    def score_value(self, column: str) -> float:
        return parse_score(self.scores.get(column, ""))

    def synopsis_row(self, score_columns: Sequence[str]) -> List[str]:
        """Cells in ``SYNOPSIS_COLUMNS`` order followed by ``score_columns``."""
        row = [
            str(self.result_id),
            self.dataset,
            str(self.scan),
            str(self.charge),
            format_float(self.mz),
            format_float(self.delta_mass),
            format_float(self.delta_ppm, 4),
            format_float(self.mh),
            format_float(self.mass),
            self.peptide,
            self.prefix,
            self.suffix,
            format_modification_list(self.modifications),
            self.protein,
            ";".join(self.additional_proteins),
            str(self.ntt),
            str(self.missed_cleavages),
            format_float(self.elution_time, 4),
            str(self.rank),
        ]
        row.extend(self.scores.get(column, "") for column in score_columns)
        return row
