"""Peptide-to-protein mapping between the two pipeline passes.

Engines without flanking residues (DIA-NN, MSFragger without Prev/Next AA)
need the protein context of each peptide to classify cleavage properly.
The pipeline only depends on the ``ProteinMapper`` protocol; the
FASTA-backed implementation here is a straightforward substring search.

Design principles:
1. Streaming FASTA parser (no dependencies except pathlib)
2. I and L are treated as identical when matching
3. Results are cached per peptide
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Protocol, Tuple, Union

from .exceptions import ResultFileIOError

logger = logging.getLogger(__name__)

# Flanking symbol for a protein terminus
PROTEIN_TERMINUS = '-'


@dataclass(frozen=True)
class ProteinMatch:
    """One occurrence of a peptide in a protein."""

    protein: str
    prefix: str
    suffix: str
    start: int = 0


class ProteinMapper(Protocol):
    def map_peptide(self, sequence: str) -> List[ProteinMatch]:
        ...


# =============================================================================
# FASTA Reading
# =============================================================================

def parse_protein_id(header: str) -> Tuple[str, str]:
    """Extract protein ID and description from FASTA header.

    Supports multiple formats:
    - UniProt: >sp|P12345|NAME_HUMAN Description...
    - Generic: >PROTEIN_ID Description...

    Examples
    --------
    >>> parse_protein_id("sp|P12345|NAME_HUMAN Some protein")
    ('P12345', 'sp|P12345|NAME_HUMAN Some protein')

    >>> parse_protein_id("PROT123 Description here")
    ('PROT123', 'PROT123 Description here')
    """
    description = header.strip()

    if '|' in header:
        parts = header.split('|')
        protein_id = parts[1] if len(parts) >= 2 and parts[1] else header.split()[0]
    else:
        protein_id = header.split()[0] if header.split() else ''

    return protein_id, description


def read_fasta(fasta_path: Union[str, Path]) -> List[Tuple[str, str, str]]:
    """Read FASTA file and return list of (protein_id, sequence, description).

    Raises
    ------
    ResultFileIOError
        If the file cannot be read
    """
    fasta_path = Path(fasta_path)

    logger.info(f"Reading FASTA file: {fasta_path.name}")

    proteins = []
    current_id = None
    current_description = None
    current_seq = []

    try:
        with open(fasta_path) as f:
            for line in f:
                if line.startswith('>'):
                    if current_id and current_seq:
                        proteins.append((current_id, ''.join(current_seq), current_description))

                    current_id, current_description = parse_protein_id(line[1:].strip())
                    current_seq = []
                else:
                    current_seq.append(line.strip().upper())
    except OSError as e:
        raise ResultFileIOError(f"Cannot read FASTA file {fasta_path}", str(e)) from e

    if current_id and current_seq:
        proteins.append((current_id, ''.join(current_seq), current_description))

    logger.info(f"Read {len(proteins):,} proteins from {fasta_path.name}")

    return proteins


# =============================================================================
# Mapper
# =============================================================================

def _equate_il(sequence: str) -> str:
    return sequence.replace('I', 'L')


class FastaProteinMapper:
    """Map peptides to proteins by exact (I=L) substring search.

    Parameters
    ----------
    proteins : List[Tuple[str, str]]
        (protein_id, sequence) pairs

    Examples
    --------
    >>> mapper = FastaProteinMapper([("P1", "MKPEPTIDERAA")])
    >>> mapper.map_peptide("PEPTLDER")
    [ProteinMatch(protein='P1', prefix='K', suffix='A', start=2)]
    """

    def __init__(self, proteins):
        self.proteins = [(protein_id, sequence) for protein_id, sequence in proteins]
        self._searchable = [_equate_il(sequence) for _, sequence in self.proteins]
        self._cache: Dict[str, List[ProteinMatch]] = {}

    @classmethod
    def from_fasta(cls, fasta_path: Union[str, Path]) -> 'FastaProteinMapper':
        return cls((protein_id, sequence) for protein_id, sequence, _ in read_fasta(fasta_path))

    def __len__(self):
        return len(self.proteins)

    def map_peptide(self, sequence: str) -> List[ProteinMatch]:
        """Every occurrence of ``sequence`` with its flanking residues.

        Returns an empty list when the peptide is not found.
        """
        if sequence in self._cache:
            return self._cache[sequence]

        query = _equate_il(sequence)
        matches = []
        for (protein_id, protein_sequence), searchable in zip(self.proteins, self._searchable):
            start = searchable.find(query)
            while start >= 0:
                end = start + len(query)
                prefix = protein_sequence[start - 1] if start > 0 else PROTEIN_TERMINUS
                suffix = protein_sequence[end] if end < len(protein_sequence) else PROTEIN_TERMINUS
                matches.append(ProteinMatch(protein_id, prefix, suffix, start))
                start = searchable.find(query, start + 1)

        self._cache[sequence] = matches
        return matches
