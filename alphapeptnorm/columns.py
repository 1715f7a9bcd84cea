"""Header-driven column resolution.

Maps the column names of a search engine's result file (tab-delimited header
line or the column names of a columnar row group) onto the canonical ``Field``
enumeration. Every field starts out ``ABSENT``; unknown column names are
ignored because engines add columns from version to version.

Examples
--------
>>> table = {"Stripped.Sequence": Field.CLEAN_SEQUENCE, "Q.Value": Field.Q_VALUE}
>>> mapping = resolve_columns(["stripped.sequence", "Extra", "Q.Value"], table)
>>> mapping.index(Field.Q_VALUE)
2
>>> mapping.has(Field.CHARGE)
False
"""

import logging
import math
from enum import IntEnum
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from .exceptions import RecordError, SchemaError

logger = logging.getLogger(__name__)

# Column index of a field that the file does not provide
ABSENT = -1


class Field(IntEnum):
    """Canonical fields a result row can carry."""

    DATASET = 0
    SPECTRUM_FILE = 1
    SPECTRUM = 2
    SCAN = 3
    ELUTION_TIME = 4
    RT_START = 5
    RT_STOP = 6
    CHARGE = 7
    PEPTIDE = 8
    CLEAN_SEQUENCE = 9
    PREFIX_RESIDUE = 10
    SUFFIX_RESIDUE = 11
    MODIFICATION_LIST = 12
    PRECURSOR_MASS = 13
    PRECURSOR_MZ = 14
    PROTEIN = 15
    PROTEIN_NAMES = 16
    GENES = 17
    Q_VALUE = 18
    PEP = 19
    CONFIDENCE_SCORE = 20
    GLOBAL_Q_VALUE = 21
    PROTEIN_Q_VALUE = 22
    P_VALUE = 23
    E_VALUE = 24
    SPECTRAL_Q_VALUE = 25
    PROTEOFORM_Q_VALUE = 26
    HYPERSCORE = 27
    NEXTSCORE = 28
    PEPTIDE_PROPHET_PROBABILITY = 29
    MATCHED_IONS = 30
    MATCHED_PEAKS = 31
    PRECURSOR_QUANTITY = 32
    PRECURSOR_ID = 33


class ColumnMapping:
    """Canonical field -> zero-based column index for one input file.

    Parameters
    ----------
    column_names : Sequence[str]
        Physical column names in file order
    """

    def __init__(self, column_names: Sequence[str] = ()):
        self.column_names: List[str] = list(column_names)
        self._indices: Dict[Field, int] = {field: ABSENT for field in Field}

    def set(self, field: Field, index: int) -> None:
        self._indices[field] = index

    def index(self, field: Field) -> int:
        return self._indices[field]

    def has(self, field: Field) -> bool:
        return self._indices[field] != ABSENT

    def resolved_fields(self) -> List[Field]:
        return [field for field, index in self._indices.items() if index != ABSENT]

    def __len__(self):
        return len(self.resolved_fields())

    def __repr__(self):
        fields = ", ".join(f"{f.name}={self._indices[f]}" for f in self.resolved_fields())
        return f"ColumnMapping({fields})"

    # -------------------------------------------------------------------------
    # Row access
    # -------------------------------------------------------------------------

    def value(self, row: Sequence[str], field: Field, default: str = "") -> str:
        """Text of ``field`` in ``row``; ``default`` when absent or out of range."""
        index = self._indices[field]
        if index == ABSENT or index >= len(row):
            return default
        return row[index].strip()

    def float_value(
        self,
        row: Sequence[str],
        field: Field,
        default: Optional[float] = None,
        required: bool = False,
    ) -> Optional[float]:
        """Parse ``field`` as float.

        Raises
        ------
        RecordError
            If ``required`` and the value is missing, not numeric or not finite
        """
        text = self.value(row, field)
        if text == "":
            if required:
                raise RecordError(f"{field.name} column is missing or empty")
            return default
        try:
            number = float(text)
        except ValueError:
            if required:
                raise RecordError(f"{field.name} is not numeric", repr(text)) from None
            return default
        if not math.isfinite(number):
            if required:
                raise RecordError(f"{field.name} is not finite", repr(text))
            return default
        return number

    def int_value(
        self,
        row: Sequence[str],
        field: Field,
        default: Optional[int] = None,
        required: bool = False,
    ) -> Optional[int]:
        """Parse ``field`` as int (accepts integral floats such as ``"3.0"``)."""
        number = self.float_value(row, field, required=required)
        if number is None:
            return default
        if number != int(number):
            if required:
                raise RecordError(f"{field.name} is not an integer", repr(number))
            return default
        return int(number)


def split_header_line(line: str, delimiter: str = "\t") -> List[str]:
    """Tokenize a header line on ``delimiter``."""
    return [name.strip() for name in line.rstrip("\r\n").split(delimiter)]


def resolve_columns(
    column_names: Iterable[str],
    column_table: Mapping[str, Field],
    mandatory: Iterable[Field] = (Field.CLEAN_SEQUENCE,),
) -> ColumnMapping:
    """Build a ``ColumnMapping`` from physical column names.

    Parameters
    ----------
    column_names : Iterable[str]
        Header tokens (or columnar column names) in file order
    column_table : Mapping[str, Field]
        Accepted spellings -> canonical field; several spellings may map to
        the same field (synonyms across engine versions)
    mandatory : Iterable[Field]
        Fields that must be present

    Returns
    -------
    ColumnMapping

    Raises
    ------
    SchemaError
        If the header is empty or a mandatory field is absent

    Notes
    -----
    - Matching is case-insensitive and ignores surrounding whitespace
    - If two columns map to the same field, the first one wins
    """
    names = [str(name).strip() for name in column_names]
    if not any(names):
        raise SchemaError("Header line is empty")

    lookup = {spelling.lower(): field for spelling, field in column_table.items()}
    mapping = ColumnMapping(names)

    for index, name in enumerate(names):
        field = lookup.get(name.lower())
        if field is None:
            continue
        if mapping.has(field):
            logger.debug(f"Ignoring duplicate column '{name}' for {field.name}")
            continue
        mapping.set(field, index)

    missing = [field.name for field in mandatory if not mapping.has(field)]
    if missing:
        raise SchemaError(
            "Mandatory column(s) absent from header",
            f"missing: {', '.join(missing)}; found: {', '.join(names)}",
        )

    logger.debug(f"Resolved {len(mapping)} of {len(names)} columns")
    return mapping
