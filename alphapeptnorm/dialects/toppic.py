"""TopPIC PrSM result dialect.

Proteoforms carry flanking residues and in-line annotations, for example
``K.MS(ST)[Phospho]PEP[Acetyl]TIDE[15.99]K.A``: bracketed tokens are
numeric masses or modification names, parenthesised groups mark residues
that may carry the following modification (the first residue of the group
is used). Static modifications are not written by TopPIC and are added
from the parameter file.
"""

import re
from typing import List, Optional, Sequence

from ..columns import ColumnMapping, Field
from ..modifications import TOPPIC_DELIMITERS
from .base import ScoreDirection, ScoreThreshold, SearchEngineDialect

_FIRST_INTEGER = re.compile(r"\d+")

TOPPIC_COLUMNS = {
    "Data file name": Field.SPECTRUM_FILE,
    "Scan(s)": Field.SCAN,
    "Retention time": Field.ELUTION_TIME,
    "Charge": Field.CHARGE,
    "Precursor mass": Field.PRECURSOR_MASS,
    "Protein accession": Field.PROTEIN,
    "Protein name": Field.PROTEIN,
    "Proteoform": Field.PEPTIDE,
    "#matched peaks": Field.MATCHED_PEAKS,
    "#matched fragment ions": Field.MATCHED_IONS,
    "P-value": Field.P_VALUE,
    "E-value": Field.E_VALUE,
    "Q-value (spectral FDR)": Field.SPECTRAL_Q_VALUE,
    "Spectrum-level Q-value": Field.SPECTRAL_Q_VALUE,
    "Proteoform FDR": Field.PROTEOFORM_Q_VALUE,
    "Proteoform-level Q-value": Field.PROTEOFORM_Q_VALUE,
}


def first_scan_number(text: str) -> Optional[int]:
    """First integer of a scan list such as ``"1234 1236"``."""
    match = _FIRST_INTEGER.search(text)
    return int(match.group()) if match else None


def dots_to_terminus(peptide: str) -> str:
    """Replace a bare leading/trailing ``.`` with the ``-`` terminus symbol.

    Examples
    --------
    >>> dots_to_terminus(".MSTNPK.A")
    '-.MSTNPK.A'
    """
    if peptide.startswith("."):
        peptide = "-" + peptide
    if peptide.endswith("."):
        peptide = peptide + "-"
    return peptide


class TopPICDialect(SearchEngineDialect):
    """TopPIC ``_TopPIC_PrSMs.txt`` files."""

    name = "toppic"
    file_tag = "toppic"
    column_table = TOPPIC_COLUMNS
    mandatory_fields = (Field.PEPTIDE,)
    delimiters = TOPPIC_DELIMITERS

    score_fields = (
        (Field.P_VALUE, "PValue"),
        (Field.E_VALUE, "EValue"),
        (Field.SPECTRAL_Q_VALUE, "QValue"),
        (Field.PROTEOFORM_Q_VALUE, "ProteoformQValue"),
        (Field.MATCHED_PEAKS, "MatchedPeaks"),
        (Field.MATCHED_IONS, "MatchedFragmentIons"),
    )
    primary_score_column = "PValue"
    primary_direction = ScoreDirection.LOWER_IS_BETTER

    has_flanking_residues = True
    applies_static_modifications = True

    def resolve_columns(self, column_names: Sequence[str]) -> ColumnMapping:
        mapping = super().resolve_columns(column_names)
        # Newer TopPIC versions dropped the P-value column
        if not mapping.has(Field.P_VALUE):
            self.primary_score_column = "EValue"
        return mapping

    def thresholds(self) -> List[ScoreThreshold]:
        return [
            ScoreThreshold(
                self.primary_score_column,
                self.config.p_value_threshold,
                ScoreDirection.LOWER_IS_BETTER,
                inclusive=True,
            )
        ]

    def parse_scan(self, row: Sequence[str], mapping: ColumnMapping) -> Optional[int]:
        return first_scan_number(mapping.value(row, Field.SCAN))

    def normalize_peptide(self, peptide: str) -> str:
        return dots_to_terminus(peptide)
