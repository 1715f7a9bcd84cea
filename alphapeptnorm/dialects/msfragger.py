"""MSFragger / Philosopher ``psm.tsv`` dialect.

The peptide column holds the clean sequence; modifications are listed
separately (``Assigned Modifications``: ``5M(15.9949), N-term(42.0106)``).
Dataset and scan come from the ``Spectrum`` column
(``Dataset.01234.01234.2``).
"""

from typing import List, Optional, Sequence

from ..columns import ColumnMapping, Field
from ..exceptions import RecordError
from ..modifications import (
    BRACKET_DELIMITERS,
    DecodedPeptide,
    ModificationAnnotationDecoder,
    parse_modification_list,
)
from ..records import RawRecord
from .base import (
    ScoreDirection,
    ScoreThreshold,
    SearchEngineDialect,
    encode_bracketed,
)

MSFRAGGER_COLUMNS = {
    "Spectrum": Field.SPECTRUM,
    "Spectrum File": Field.SPECTRUM_FILE,
    "Peptide": Field.CLEAN_SEQUENCE,
    "Prev AA": Field.PREFIX_RESIDUE,
    "Next AA": Field.SUFFIX_RESIDUE,
    "Charge": Field.CHARGE,
    "Retention": Field.ELUTION_TIME,
    "Observed Mass": Field.PRECURSOR_MASS,
    "Observed M/Z": Field.PRECURSOR_MZ,
    "Expectation": Field.E_VALUE,
    "Hyperscore": Field.HYPERSCORE,
    "Nextscore": Field.NEXTSCORE,
    "PeptideProphet Probability": Field.PEPTIDE_PROPHET_PROBABILITY,
    "Assigned Modifications": Field.MODIFICATION_LIST,
    "Protein": Field.PROTEIN,
}


def parse_spectrum_name(spectrum: str):
    """Split ``Dataset.01234.01234.2`` into ``("Dataset", 1234, 2)``.

    Raises
    ------
    RecordError
        If the name does not end in start scan, end scan and charge
    """
    parts = spectrum.split(".")
    if len(parts) < 4:
        raise RecordError("Spectrum name must be Dataset.StartScan.EndScan.Charge", spectrum)
    try:
        scan = int(parts[-3])
        charge = int(parts[-1])
    except ValueError:
        raise RecordError("Spectrum name has non-numeric scan or charge", spectrum) from None
    return ".".join(parts[:-3]), scan, charge


class MSFraggerDialect(SearchEngineDialect):
    """MSFragger ``psm.tsv`` files."""

    name = "msfragger"
    file_tag = "msfragger"
    column_table = MSFRAGGER_COLUMNS
    mandatory_fields = (Field.CLEAN_SEQUENCE,)
    delimiters = BRACKET_DELIMITERS

    score_fields = (
        (Field.E_VALUE, "EValue"),
        (Field.HYPERSCORE, "Hyperscore"),
        (Field.NEXTSCORE, "Nextscore"),
        (Field.PEPTIDE_PROPHET_PROBABILITY, "PeptideProphetProbability"),
    )
    primary_score_column = "EValue"
    primary_direction = ScoreDirection.LOWER_IS_BETTER

    has_flanking_residues = False
    protein_separator = ","

    def thresholds(self) -> List[ScoreThreshold]:
        return [
            ScoreThreshold("EValue", self.config.e_value_threshold, ScoreDirection.LOWER_IS_BETTER),
            ScoreThreshold(
                "Hyperscore",
                self.config.hyperscore_threshold,
                ScoreDirection.HIGHER_IS_BETTER,
            ),
        ]

    def parse_dataset(self, row: Sequence[str], mapping: ColumnMapping) -> str:
        spectrum = mapping.value(row, Field.SPECTRUM)
        if spectrum:
            return parse_spectrum_name(spectrum)[0]
        return super().parse_dataset(row, mapping)

    def parse_scan(self, row: Sequence[str], mapping: ColumnMapping) -> Optional[int]:
        spectrum = mapping.value(row, Field.SPECTRUM)
        if spectrum:
            return parse_spectrum_name(spectrum)[1]
        return None

    def decode_modifications(
        self,
        record: RawRecord,
        decoder: ModificationAnnotationDecoder,
    ) -> DecodedPeptide:
        decoded = parse_modification_list(record.modification_list, record.peptide)
        if not decoded.clean_sequence:
            raise RecordError("Peptide has no residues", repr(record.peptide))

        for entry in decoded.unresolved:
            if decoder.registry is not None:
                decoder.registry.report_unresolved(entry)
        return decoded

    def annotated_peptide(self, record: RawRecord, decoded: DecodedPeptide) -> str:
        return encode_bracketed(decoded.clean_sequence, decoded)
