"""DIA-NN ``report.tsv`` / ``report.parquet`` dialect.

DIA-NN reports modifications as parenthesised UniMod accessions
(``AAALEAM(UniMod:35)K``), the elution time of each precursor but usually no
scan number, and no flanking residues. Records are kept when
``Q.Value < q_value_threshold`` or ``CScore > confidence_score_threshold``.
"""

from typing import List, Tuple

from ..columns import Field
from ..exceptions import RecordError
from ..modifications import DIANN_DELIMITERS, DecodedPeptide, ModificationAnnotationDecoder
from ..records import CanonicalRecord, RawRecord
from .base import ScoreDirection, ScoreThreshold, SearchEngineDialect, sort_value

DIANN_COLUMNS = {
    "File.Name": Field.SPECTRUM_FILE,
    "Run": Field.DATASET,
    "Protein.Ids": Field.PROTEIN,
    "Protein.Names": Field.PROTEIN_NAMES,
    "Genes": Field.GENES,
    "Modified.Sequence": Field.PEPTIDE,
    "Stripped.Sequence": Field.CLEAN_SEQUENCE,
    "Precursor.Id": Field.PRECURSOR_ID,
    "Precursor.Charge": Field.CHARGE,
    "Precursor.Mz": Field.PRECURSOR_MZ,
    "Q.Value": Field.Q_VALUE,
    "PEP": Field.PEP,
    "Global.Q.Value": Field.GLOBAL_Q_VALUE,
    "Protein.Q.Value": Field.PROTEIN_Q_VALUE,
    "Precursor.Quantity": Field.PRECURSOR_QUANTITY,
    "RT": Field.ELUTION_TIME,
    "RT.Start": Field.RT_START,
    "RT.Stop": Field.RT_STOP,
    "CScore": Field.CONFIDENCE_SCORE,
    "MS2.Scan": Field.SCAN,
}


class DiannDialect(SearchEngineDialect):
    """DIA-NN precursor reports."""

    name = "diann"
    file_tag = "diann"
    column_table = DIANN_COLUMNS
    mandatory_fields = (Field.CLEAN_SEQUENCE, Field.CHARGE)
    delimiters = DIANN_DELIMITERS

    score_fields = (
        (Field.Q_VALUE, "QValue"),
        (Field.CONFIDENCE_SCORE, "CScore"),
        (Field.PEP, "PEP"),
        (Field.GLOBAL_Q_VALUE, "GlobalQValue"),
        (Field.PROTEIN_Q_VALUE, "ProteinQValue"),
        (Field.PRECURSOR_QUANTITY, "PrecursorQuantity"),
    )
    primary_score_column = "QValue"
    primary_direction = ScoreDirection.LOWER_IS_BETTER

    has_flanking_residues = False
    min_field_count = 15

    def rank_values(self, record: CanonicalRecord) -> Tuple[float, float]:
        """Q-value ascending; CScore descending orders Q-value ties."""
        return (
            sort_value(record.score_value("QValue"), ScoreDirection.LOWER_IS_BETTER),
            sort_value(record.score_value("CScore"), ScoreDirection.HIGHER_IS_BETTER),
        )

    def thresholds(self) -> List[ScoreThreshold]:
        return [
            ScoreThreshold("QValue", self.config.q_value_threshold, ScoreDirection.LOWER_IS_BETTER),
            ScoreThreshold(
                "CScore",
                self.config.confidence_score_threshold,
                ScoreDirection.HIGHER_IS_BETTER,
            ),
        ]

    def decode_modifications(
        self,
        record: RawRecord,
        decoder: ModificationAnnotationDecoder,
    ) -> DecodedPeptide:
        decoded = super().decode_modifications(record, decoder)
        if record.clean_sequence and decoded.clean_sequence != record.clean_sequence:
            raise RecordError(
                "Modified.Sequence does not match Stripped.Sequence",
                f"{record.peptide} vs {record.clean_sequence}",
            )
        return decoded
