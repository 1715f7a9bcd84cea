"""Tryptic cleavage state and missed cleavages of identified peptides.

Trypsin cleaves after K and R, except when followed by P (proline blocking).
A peptide end is tryptic when the residue pair spanning it is a cleavage site
or when the end coincides with a protein terminus (``-``).

The number of tryptic termini (NTT) is derived from the cleavage state:

=============  ===
state          NTT
=============  ===
FULL           2
PARTIAL        1
NON_SPECIFIC   0
UNKNOWN        0
=============  ===

Formats without flanking residues are classified against the assumed
context ``K.<sequence>.A`` and re-classified once protein mapping has
supplied the real prefix and suffix.
"""

import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import Tuple

from .constants import ASSUMED_PREFIX_RESIDUE, ASSUMED_SUFFIX_RESIDUE, TERMINUS_SYMBOLS

logger = logging.getLogger(__name__)


class CleavageState(IntEnum):
    UNKNOWN = -1
    NON_SPECIFIC = 0
    PARTIAL = 1
    FULL = 2


_NTT_BY_STATE = {
    CleavageState.FULL: 2,
    CleavageState.PARTIAL: 1,
    CleavageState.NON_SPECIFIC: 0,
    CleavageState.UNKNOWN: 0,
}


@dataclass(frozen=True)
class CleavageInfo:
    """Cleavage classification of one peptide in its flanking context."""

    state: CleavageState
    missed_cleavages: int

    @property
    def ntt(self) -> int:
        return ntt_from_state(self.state)


def ntt_from_state(state: CleavageState) -> int:
    """Number of tryptic termini for a cleavage state."""
    return _NTT_BY_STATE[state]


def is_cleavage_site(left: str, right: str) -> bool:
    """True if trypsin cleaves between ``left`` and ``right``."""
    return left in 'KR' and right != 'P'


def is_terminus_symbol(residue: str) -> bool:
    return residue in TERMINUS_SYMBOLS


def count_missed_cleavages(sequence: str) -> int:
    """Count internal K/R not followed by P.

    The C-terminal residue is never a missed cleavage.

    Examples
    --------
    >>> count_missed_cleavages("PEPTIDEK")
    0
    >>> count_missed_cleavages("PEPKTIDERK")
    2
    >>> count_missed_cleavages("PEPKPTIDEK")
    0
    """
    missed = 0
    for i in range(len(sequence) - 1):
        if is_cleavage_site(sequence[i], sequence[i + 1]):
            missed += 1
    return missed


def classify_cleavage_state(prefix: str, sequence: str, suffix: str) -> CleavageState:
    """Cleavage state of ``sequence`` between ``prefix`` and ``suffix``.

    Parameters
    ----------
    prefix : str
        Residue before the peptide; ``-`` for the protein N-terminus
    sequence : str
        Clean peptide sequence
    suffix : str
        Residue after the peptide; ``-`` for the protein C-terminus

    Returns
    -------
    CleavageState

    Examples
    --------
    >>> classify_cleavage_state("K", "PEPTIDER", "A")
    <CleavageState.FULL: 2>
    >>> classify_cleavage_state("A", "PEPTIDER", "A")
    <CleavageState.PARTIAL: 1>
    >>> classify_cleavage_state("-", "MPEPTIDE", "A")
    <CleavageState.NON_SPECIFIC: 0>
    """
    if not sequence:
        return CleavageState.NON_SPECIFIC

    protein_n = is_terminus_symbol(prefix)
    protein_c = is_terminus_symbol(suffix)

    start_tryptic = bool(prefix) and is_cleavage_site(prefix, sequence[0])
    end_tryptic = bool(suffix) and is_cleavage_site(sequence[-1], suffix)

    if protein_n and protein_c:
        return CleavageState.FULL

    if protein_n:
        return CleavageState.FULL if end_tryptic else CleavageState.NON_SPECIFIC

    if protein_c:
        return CleavageState.FULL if start_tryptic else CleavageState.NON_SPECIFIC

    if start_tryptic and end_tryptic:
        return CleavageState.FULL
    if start_tryptic or end_tryptic:
        return CleavageState.PARTIAL
    return CleavageState.NON_SPECIFIC


def classify(prefix: str, sequence: str, suffix: str) -> CleavageInfo:
    """Cleavage state and missed cleavages in one call."""
    return CleavageInfo(
        state=classify_cleavage_state(prefix, sequence, suffix),
        missed_cleavages=count_missed_cleavages(sequence),
    )


def classify_assumed_tryptic(sequence: str) -> CleavageInfo:
    """Classify against the synthesized ``K.<sequence>.A`` context."""
    return classify(ASSUMED_PREFIX_RESIDUE, sequence, ASSUMED_SUFFIX_RESIDUE)


def split_prefix_and_suffix(peptide: str) -> Tuple[str, str, str]:
    """Split ``R.PEPTIDEK.L`` into ``('R', 'PEPTIDEK', 'L')``.

    Peptides without flanking residues are returned with empty prefix and
    suffix; a single flank (``R.PEPTIDEK`` or ``PEPTIDEK.L``) is accepted.

    Examples
    --------
    >>> split_prefix_and_suffix("R.PEPTIDEK.L")
    ('R', 'PEPTIDEK', 'L')
    >>> split_prefix_and_suffix("-.PEPTIDEK.-")
    ('-', 'PEPTIDEK', '-')
    >>> split_prefix_and_suffix("PEPTIDEK")
    ('', 'PEPTIDEK', '')
    """
    peptide = peptide.strip()
    prefix = suffix = ''
    primary = peptide

    if len(primary) >= 3 and primary[1] == '.':
        prefix = primary[0]
        primary = primary[2:]

    if len(primary) >= 3 and primary[-2] == '.':
        suffix = primary[-1]
        primary = primary[:-2]

    return prefix, primary, suffix
