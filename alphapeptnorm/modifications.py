"""Decode in-line modification annotations embedded in peptide strings.

Search engines annotate modified peptides in different ways:

- TopPIC: ``MS(ST)[Phospho]PEP[Acetyl]TIDE[15.99]K`` (bracketed numeric or
  named tokens, parenthesised ambiguous residue groups)
- MSAlign: ``PEP(TI)[79.97]DE`` (bracketed numeric tokens, ambiguous groups)
- DIA-NN: ``(UniMod:1)AAALEAM(UniMod:35)K`` (parenthesised named tokens)

``ModificationAnnotationDecoder`` scans the string once, left to right, as a
small state machine and emits ``ModificationOccurrence`` objects in scan
order. Positions are 1-based and always clamped into the clean sequence.

Examples
--------
>>> decoder = ModificationAnnotationDecoder(TOPPIC_DELIMITERS)
>>> peptide = decoder.decode("[42.01]ACDK")
>>> peptide.clean_sequence
'ACDK'
>>> peptide.modifications[0]
ModificationOccurrence(residue='A', position=1, mass=42.01, terminus=<ResidueTerminusState.PEPTIDE_N_TERMINUS: 1>, name='')
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from .registry import ModificationMassRegistry, ModificationPosition

logger = logging.getLogger(__name__)

_NUMERIC_TOKEN = re.compile(r"[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")


class ResidueTerminusState(Enum):
    NONE = 0
    PEPTIDE_N_TERMINUS = 1
    PEPTIDE_C_TERMINUS = 2
    PROTEIN_N_TERMINUS = 3
    PROTEIN_C_TERMINUS = 4


@dataclass(frozen=True)
class ModificationOccurrence:
    """One modification placed on one residue.

    Attributes
    ----------
    residue : str
        Modified residue (one-letter code)
    position : int
        1-based position within the clean sequence
    mass : float
        Mass shift in Da
    terminus : ResidueTerminusState
        Terminus classification of ``position``
    name : str
        Modification name when the annotation used one
    """

    residue: str
    position: int
    mass: float
    terminus: ResidueTerminusState = ResidueTerminusState.NONE
    name: str = ""


@dataclass
class DecodedPeptide:
    """Result of decoding one annotated peptide."""

    clean_sequence: str
    modifications: List[ModificationOccurrence] = field(default_factory=list)
    unresolved: List[str] = field(default_factory=list)

    @property
    def total_modification_mass(self) -> float:
        return sum(mod.mass for mod in self.modifications)


@dataclass(frozen=True)
class TokenDelimiters:
    """Delimiter set of one annotation dialect.

    ``ambiguous_open``/``ambiguous_close`` are empty when the dialect has no
    ambiguous residue groups.
    """

    token_open: str = "["
    token_close: str = "]"
    ambiguous_open: str = "("
    ambiguous_close: str = ")"

    @property
    def has_ambiguous_groups(self) -> bool:
        return bool(self.ambiguous_open)


TOPPIC_DELIMITERS = TokenDelimiters()
MSALIGN_DELIMITERS = TokenDelimiters()
DIANN_DELIMITERS = TokenDelimiters(
    token_open="(", token_close=")", ambiguous_open="", ambiguous_close=""
)
BRACKET_DELIMITERS = TokenDelimiters(ambiguous_open="", ambiguous_close="")


class ScanState(Enum):
    """Lexer state while scanning an annotated peptide."""

    PLAIN_RESIDUE = 0
    INSIDE_AMBIGUOUS_GROUP = 1
    INSIDE_MODIFICATION_TOKEN = 2


class AnchorState(Enum):
    """Lifecycle of the ambiguous-group anchor residue.

    ARMED: ``(`` was read, the next residue becomes the anchor.
    HELD: the anchor is set and modifications attach to it.
    RELEASING: ``)`` was read; the anchor still applies to tokens that follow
    the group and is dropped when the next residue is read.
    """

    NONE = 0
    ARMED = 1
    HELD = 2
    RELEASING = 3


# =============================================================================
# Terminus Classification
# =============================================================================

def terminus_state_for_position(
    position: int,
    sequence_length: int,
) -> Tuple[int, ResidueTerminusState]:
    """Clamp ``position`` into [1, sequence_length] and classify it.

    Position <= 1 is the peptide N-terminus, position >= length the peptide
    C-terminus (a single-residue peptide counts as N-terminal).

    Examples
    --------
    >>> terminus_state_for_position(0, 4)
    (1, <ResidueTerminusState.PEPTIDE_N_TERMINUS: 1>)
    >>> terminus_state_for_position(9, 4)
    (4, <ResidueTerminusState.PEPTIDE_C_TERMINUS: 2>)
    """
    if sequence_length < 1:
        return 1, ResidueTerminusState.PEPTIDE_N_TERMINUS

    position = min(max(position, 1), sequence_length)
    if position <= 1:
        return position, ResidueTerminusState.PEPTIDE_N_TERMINUS
    if position >= sequence_length:
        return position, ResidueTerminusState.PEPTIDE_C_TERMINUS
    return position, ResidueTerminusState.NONE


def with_protein_termini(
    modifications: Sequence[ModificationOccurrence],
    prefix: str,
    suffix: str,
    terminus_symbols: Sequence[str] = ("-", "[", "]"),
) -> List[ModificationOccurrence]:
    """Upgrade peptide-terminus states to protein-terminus states.

    Used once the flanking residues are known: a ``-`` prefix means the
    peptide starts the protein, a ``-`` suffix that it ends it.
    """
    protein_n = prefix in terminus_symbols
    protein_c = suffix in terminus_symbols
    result = []
    for mod in modifications:
        if protein_n and mod.terminus == ResidueTerminusState.PEPTIDE_N_TERMINUS:
            mod = replace(mod, terminus=ResidueTerminusState.PROTEIN_N_TERMINUS)
        elif protein_c and mod.terminus == ResidueTerminusState.PEPTIDE_C_TERMINUS:
            mod = replace(mod, terminus=ResidueTerminusState.PROTEIN_C_TERMINUS)
        result.append(mod)
    return result


# =============================================================================
# Decoder
# =============================================================================

def parse_mass_token(token: str) -> Optional[float]:
    """Signed float value of ``token``, or None if it is not numeric."""
    token = token.strip()
    if not _NUMERIC_TOKEN.fullmatch(token):
        return None
    return float(token)


class ModificationAnnotationDecoder:
    """Per-dialect state machine that decodes modification annotations.

    Parameters
    ----------
    delimiters : TokenDelimiters
        Token and ambiguous-group delimiters of the dialect
    registry : ModificationMassRegistry, optional
        Resolves named tokens; without a registry named tokens are unresolved

    Notes
    -----
    - Letters (A-Z) outside a token are residues; other characters outside a
      token are ignored
    - A token read before any residue is an N-terminal modification on
      position 1
    - Unresolved names are reported once per name by the registry and the
      modification is dropped
    """

    def __init__(
        self,
        delimiters: TokenDelimiters = TOPPIC_DELIMITERS,
        registry: Optional[ModificationMassRegistry] = None,
    ):
        self.delimiters = delimiters
        self.registry = registry

    def _resolve_token(self, token: str) -> Tuple[Optional[float], str]:
        mass = parse_mass_token(token)
        if mass is not None:
            return mass, ""

        name = token.strip()
        definition = self.registry.find(name) if self.registry is not None else None
        if definition is None:
            if self.registry is not None:
                self.registry.report_unresolved(name)
            else:
                logger.debug(f"No registry to resolve modification '{name}'")
            return None, name
        return definition.mass, definition.name

    def decode(self, annotated: str) -> DecodedPeptide:
        """Decode ``annotated`` into a clean sequence and modifications.

        Parameters
        ----------
        annotated : str
            Peptide with in-line annotations and without flanking residues

        Returns
        -------
        DecodedPeptide
            Clean sequence, occurrences in scan order, unresolved names
        """
        delimiters = self.delimiters
        residues: List[str] = []
        pending: List[Tuple[str, int, float, str]] = []
        unresolved: List[str] = []

        state = ScanState.PLAIN_RESIDUE
        state_before_token = ScanState.PLAIN_RESIDUE
        anchor_state = AnchorState.NONE
        anchor: Tuple[str, int] = ("", 0)
        token_chars: List[str] = []

        for character in annotated:
            if state == ScanState.INSIDE_MODIFICATION_TOKEN:
                if character != delimiters.token_close:
                    token_chars.append(character)
                    continue

                state = state_before_token
                token = "".join(token_chars)
                mass, name = self._resolve_token(token)
                if mass is None:
                    unresolved.append(name)
                    continue

                if anchor_state in (AnchorState.HELD, AnchorState.RELEASING):
                    residue, position = anchor
                elif residues:
                    residue, position = residues[-1], len(residues)
                else:
                    residue, position = "", 0
                pending.append((residue, position, mass, name))
                continue

            if character == delimiters.token_open:
                state_before_token = state
                state = ScanState.INSIDE_MODIFICATION_TOKEN
                token_chars = []
            elif delimiters.has_ambiguous_groups and character == delimiters.ambiguous_open:
                state = ScanState.INSIDE_AMBIGUOUS_GROUP
                anchor_state = AnchorState.ARMED
            elif delimiters.has_ambiguous_groups and character == delimiters.ambiguous_close:
                state = ScanState.PLAIN_RESIDUE
                if anchor_state == AnchorState.HELD:
                    anchor_state = AnchorState.RELEASING
                else:
                    anchor_state = AnchorState.NONE
            elif "A" <= character <= "Z":
                residues.append(character)
                if anchor_state == AnchorState.ARMED:
                    anchor = (character, len(residues))
                    anchor_state = AnchorState.HELD
                elif anchor_state == AnchorState.RELEASING:
                    anchor_state = AnchorState.NONE

        if state == ScanState.INSIDE_MODIFICATION_TOKEN:
            logger.debug(f"Unterminated modification token in {annotated}")

        clean_sequence = "".join(residues)
        modifications = []
        for residue, position, mass, name in pending:
            position, terminus = terminus_state_for_position(position, len(clean_sequence))
            if not residue and clean_sequence:
                residue = clean_sequence[position - 1]
            modifications.append(
                ModificationOccurrence(
                    residue=residue,
                    position=position,
                    mass=mass,
                    terminus=terminus,
                    name=name,
                )
            )

        return DecodedPeptide(clean_sequence, modifications, unresolved)


# =============================================================================
# Encoding and Static Modifications
# =============================================================================

def format_modification_mass(mass: float, digits: int = 4) -> str:
    """Signed mass text, e.g. ``+15.9949`` or ``-17.0265``."""
    return f"{mass:+.{digits}f}"


def encode_modifications(
    clean_sequence: str,
    modifications: Sequence[ModificationOccurrence],
    delimiters: TokenDelimiters = BRACKET_DELIMITERS,
    use_names: bool = False,
    digits: int = 4,
) -> str:
    """Write ``modifications`` back into the annotation notation.

    Each token follows its residue; N-terminal tokens on position 1 are written
    after the first residue, which decodes to the same occurrence.

    Examples
    --------
    >>> mods = [ModificationOccurrence("M", 2, 15.9949)]
    >>> encode_modifications("AMK", mods)
    'AM[+15.9949]K'
    """
    tokens_by_position = {}
    for mod in modifications:
        if use_names and mod.name:
            token = mod.name
        else:
            token = format_modification_mass(mod.mass, digits)
        tokens_by_position.setdefault(mod.position, []).append(token)

    parts = []
    for position, residue in enumerate(clean_sequence, start=1):
        parts.append(residue)
        for token in tokens_by_position.get(position, ()):
            parts.append(f"{delimiters.token_open}{token}{delimiters.token_close}")
    return "".join(parts)


def add_static_modifications(
    clean_sequence: str,
    modifications: Sequence[ModificationOccurrence],
    registry: ModificationMassRegistry,
) -> List[ModificationOccurrence]:
    """Append static (fixed) modifications for every matching residue.

    Terminal static definitions apply only to the first or last residue.
    """
    result = list(modifications)
    length = len(clean_sequence)
    for definition in registry.static_definitions:
        for position, residue in enumerate(clean_sequence, start=1):
            if not definition.targets(residue):
                continue
            if definition.position in (
                ModificationPosition.N_TERM, ModificationPosition.PROT_N_TERM
            ) and position != 1:
                continue
            if definition.position in (
                ModificationPosition.C_TERM, ModificationPosition.PROT_C_TERM
            ) and position != length:
                continue
            position, terminus = terminus_state_for_position(position, length)
            result.append(
                ModificationOccurrence(
                    residue=residue,
                    position=position,
                    mass=definition.mass,
                    terminus=terminus,
                    name=definition.name,
                )
            )
    return result


# =============================================================================
# Modification Lists (``5M(15.9949), N-term(42.0106)``)
# =============================================================================

_LIST_RESIDUE_ENTRY = re.compile(r"^(\d+)([A-Za-z])\(([^)]+)\)$")
_LIST_TERMINAL_ENTRY = re.compile(r"^([NC]-term)\(([^)]+)\)$", re.IGNORECASE)


def format_modification_list(
    modifications: Sequence[ModificationOccurrence],
    digits: int = 6,
) -> str:
    """Serialize occurrences as ``<position><residue>(<mass>)`` entries.

    Examples
    --------
    >>> format_modification_list([ModificationOccurrence("M", 5, 15.994915)])
    '5M(15.994915)'
    """
    return ", ".join(
        f"{mod.position}{mod.residue}({mod.mass:.{digits}f})" for mod in modifications
    )


def parse_modification_list(text: str, clean_sequence: str) -> DecodedPeptide:
    """Parse a comma-separated modification list against ``clean_sequence``.

    Accepted entries are ``15M(15.9949)`` (position, residue, mass) and
    ``N-term(42.0106)`` / ``C-term(...)``. Invalid entries are returned in
    ``unresolved`` and skipped.
    """
    length = len(clean_sequence)
    modifications = []
    unresolved = []

    for entry in text.split(","):
        entry = entry.strip()
        if not entry:
            continue

        residue_match = _LIST_RESIDUE_ENTRY.match(entry)
        terminal_match = _LIST_TERMINAL_ENTRY.match(entry) if residue_match is None else None

        if residue_match is not None:
            position = int(residue_match.group(1))
            residue = residue_match.group(2).upper()
            mass = parse_mass_token(residue_match.group(3))
        elif terminal_match is not None and length > 0:
            n_terminal = terminal_match.group(1).lower() == "n-term"
            position = 1 if n_terminal else length
            residue = clean_sequence[position - 1]
            mass = parse_mass_token(terminal_match.group(2))
        else:
            unresolved.append(entry)
            continue

        if mass is None:
            unresolved.append(entry)
            continue

        position, terminus = terminus_state_for_position(position, length)
        modifications.append(
            ModificationOccurrence(
                residue=residue,
                position=position,
                mass=mass,
                terminus=terminus,
            )
        )

    return DecodedPeptide(clean_sequence, modifications, unresolved)


def describe_modification(
    mod: ModificationOccurrence,
    registry: Optional[ModificationMassRegistry] = None,
) -> str:
    """``<name>:<position>`` when a definition matches the mass, else ``<mass>:<position>``.

    Examples
    --------
    >>> describe_modification(ModificationOccurrence("M", 5, 15.9949))
    '+15.9949:5'
    """
    definition = registry.find_by_mass(mod.mass, mod.residue) if registry is not None else None
    label = definition.name if definition is not None else format_modification_mass(mod.mass)
    return f"{label}:{mod.position}"


def describe_modifications(
    modifications: Sequence[ModificationOccurrence],
    registry: Optional[ModificationMassRegistry] = None,
) -> str:
    """Comma-joined descriptions in position order."""
    ordered = sorted(modifications, key=lambda mod: mod.position)
    return ",".join(describe_modification(mod, registry) for mod in ordered)
