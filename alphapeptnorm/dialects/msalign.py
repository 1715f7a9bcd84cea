"""MSAlign result table dialect.

Peptides look like ``.PEP(TI)[79.97]DE.`` or ``K.PEPTIDE.A``: bracketed
numeric mass shifts, parenthesised ambiguous residue groups and a bare
``.`` where the peptide touches a protein terminus.
"""

from typing import List, Optional, Sequence

from ..columns import ColumnMapping, Field
from ..modifications import MSALIGN_DELIMITERS
from .base import ScoreDirection, ScoreThreshold, SearchEngineDialect
from .toppic import dots_to_terminus, first_scan_number

MSALIGN_COLUMNS = {
    "Data_file_name": Field.SPECTRUM_FILE,
    "Scan(s)": Field.SCAN,
    "Charge": Field.CHARGE,
    "Precursor_mass": Field.PRECURSOR_MASS,
    "Protein_name": Field.PROTEIN,
    "Peptide": Field.PEPTIDE,
    "#matched_peaks": Field.MATCHED_PEAKS,
    "#matched_fragment_ions": Field.MATCHED_IONS,
    "P-value": Field.P_VALUE,
    "E-value": Field.E_VALUE,
    "FDR": Field.SPECTRAL_Q_VALUE,
}


class MSAlignDialect(SearchEngineDialect):
    """MSAlign ``_MSAlign_ResultTable.txt`` files."""

    name = "msalign"
    file_tag = "msalign"
    column_table = MSALIGN_COLUMNS
    mandatory_fields = (Field.PEPTIDE,)
    delimiters = MSALIGN_DELIMITERS

    score_fields = (
        (Field.P_VALUE, "PValue"),
        (Field.E_VALUE, "EValue"),
        (Field.SPECTRAL_Q_VALUE, "FDR"),
        (Field.MATCHED_PEAKS, "MatchedPeaks"),
        (Field.MATCHED_IONS, "MatchedFragmentIons"),
    )
    primary_score_column = "PValue"
    primary_direction = ScoreDirection.LOWER_IS_BETTER

    has_flanking_residues = True
    applies_static_modifications = True

    def thresholds(self) -> List[ScoreThreshold]:
        return [
            ScoreThreshold(
                "PValue",
                self.config.p_value_threshold,
                ScoreDirection.LOWER_IS_BETTER,
                inclusive=True,
            )
        ]

    def parse_scan(self, row: Sequence[str], mapping: ColumnMapping) -> Optional[int]:
        return first_scan_number(mapping.value(row, Field.SCAN))

    def normalize_peptide(self, peptide: str) -> str:
        return dots_to_terminus(peptide)
