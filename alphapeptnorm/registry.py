"""Modification definitions and name -> mass resolution.

Definitions come from a search-engine parameter file written in the MS-GF+
modification syntax::

    StaticMod=C2H3NO, C, fix, any, Carbamidomethyl
    DynamicMod=O1, M, opt, any, Oxidation
    DynamicMod=42.010565, *, opt, Prot-N-term, Acetyl

The mass field is either a number or an empirical formula (``H-1``,
``HO3P``). A small built-in table (UniMod accessions and names of the most
common modifications) is always available so that DIA-NN style
``(UniMod:35)`` tokens resolve without a parameter file.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from .constants import (
    BUILTIN_MODIFICATIONS,
    ELEMENT_MASSES,
    MODIFICATION_MASS_MATCH_TOLERANCE,
    MODIFICATION_NAME_CONFLICT_TOLERANCE,
)
from .diagnostics import RunDiagnostics
from .exceptions import ResolutionWarning, ResultFileIOError

logger = logging.getLogger(__name__)

# Mass returned for a name that cannot be resolved
UNRESOLVED_MASS = 0.0

_FORMULA_TOKEN = re.compile(r"([A-Z][a-z]?)(-?\d*)")
_MOD_LINE_TAGS = ("staticmod", "dynamicmod", "mod")


class ModificationKind(Enum):
    STATIC = "fix"
    DYNAMIC = "opt"
    CUSTOM = "custom"


class ModificationPosition(Enum):
    ANYWHERE = "any"
    N_TERM = "nterm"
    C_TERM = "cterm"
    PROT_N_TERM = "protnterm"
    PROT_C_TERM = "protcterm"


@dataclass(frozen=True)
class ModificationDefinition:
    """One modification as declared in a parameter file.

    Attributes
    ----------
    name : str
        Modification name (e.g. ``Oxidation``)
    mass : float
        Monoisotopic mass shift in Da
    residues : str
        Target residues; ``*`` means any residue
    kind : ModificationKind
        Static (fixed), dynamic (variable) or custom amino acid
    position : ModificationPosition
        Where in the peptide the modification may occur
    accession : str
        Optional alternative name such as ``UniMod:35``
    """

    name: str
    mass: float
    residues: str = "*"
    kind: ModificationKind = ModificationKind.DYNAMIC
    position: ModificationPosition = ModificationPosition.ANYWHERE
    accession: str = ""

    def targets(self, residue: str) -> bool:
        return "*" in self.residues or residue in self.residues

    @property
    def is_static(self) -> bool:
        return self.kind == ModificationKind.STATIC


# =============================================================================
# Parameter File Parsing
# =============================================================================

def parse_empirical_formula(formula: str) -> float:
    """Monoisotopic mass of an empirical formula such as ``C2H3NO`` or ``H-1``.

    Raises
    ------
    ValueError
        If the formula contains an unknown element or unparsable text
    """
    formula = formula.strip()
    if not formula:
        raise ValueError("Empty empirical formula")

    mass = 0.0
    consumed = 0
    for match in _FORMULA_TOKEN.finditer(formula):
        if match.start() != consumed:
            break
        element, count_text = match.groups()
        if element not in ELEMENT_MASSES:
            raise ValueError(f"Unknown element '{element}' in formula {formula}")
        if count_text in ("", "-"):
            count = -1 if count_text == "-" else 1
        else:
            count = int(count_text)
        mass += ELEMENT_MASSES[element] * count
        consumed = match.end()

    if consumed != len(formula):
        raise ValueError(f"Invalid empirical formula: {formula}")

    return mass


def _parse_mass_field(text: str) -> float:
    try:
        return float(text)
    except ValueError:
        return parse_empirical_formula(text)


def parse_modification_line(line: str) -> Optional[ModificationDefinition]:
    """Parse one parameter-file line; None for comments and unrelated keys.

    Raises
    ------
    ValueError
        If the line looks like a modification but a field is invalid
    """
    text = line.split("#", 1)[0].strip()
    if not text:
        return None

    if "=" in text:
        key, value = (part.strip() for part in text.split("=", 1))
        if key.lower() not in _MOD_LINE_TAGS:
            return None
        text = value
        if text.lower() == "none":
            return None

    fields = [field.strip() for field in text.split(",")]
    if len(fields) < 5:
        raise ValueError(f"Modification definition needs 5 fields: {line.strip()}")

    mass_text, residues, kind_text, position_text, name = fields[:5]

    try:
        kind = ModificationKind(kind_text.lower())
    except ValueError:
        raise ValueError(f"Unknown modification type '{kind_text}'") from None

    position_key = position_text.lower().replace("-", "").replace("_", "")
    try:
        position = ModificationPosition(position_key)
    except ValueError:
        raise ValueError(f"Unknown modification position '{position_text}'") from None

    return ModificationDefinition(
        name=name,
        mass=_parse_mass_field(mass_text),
        residues=residues or "*",
        kind=kind,
        position=position,
    )


def read_modification_parameters(
    param_path: Union[str, Path],
) -> List[ModificationDefinition]:
    """Read all modification definitions from a parameter file.

    Parameters
    ----------
    param_path : str or Path
        Parameter file path

    Returns
    -------
    definitions : List[ModificationDefinition]
        Definitions in file order

    Raises
    ------
    ResultFileIOError
        If the file cannot be opened
    ValueError
        If a modification line is malformed
    """
    param_path = Path(param_path)
    try:
        with open(param_path) as f:
            lines = f.readlines()
    except OSError as e:
        raise ResultFileIOError(
            f"Cannot read parameter file {param_path}", str(e)
        ) from e

    definitions = []
    for line_number, line in enumerate(lines, start=1):
        try:
            definition = parse_modification_line(line)
        except ValueError as e:
            raise ValueError(f"{param_path.name} line {line_number}: {e}") from None
        if definition is not None:
            definitions.append(definition)

    logger.info(f"Read {len(definitions)} modification definitions from {param_path.name}")
    return definitions


def builtin_definitions() -> List[ModificationDefinition]:
    """Common modifications, addressable by name or UniMod accession."""
    return [
        ModificationDefinition(
            name=name,
            mass=mass,
            residues=residues,
            position=ModificationPosition(position.replace("_", "")),
            accession=accession,
        )
        for name, accession, mass, residues, position in BUILTIN_MODIFICATIONS
    ]


# =============================================================================
# Registry
# =============================================================================

class ModificationMassRegistry:
    """Resolve modification names (or accessions) to masses.

    Parameters
    ----------
    definitions : Iterable[ModificationDefinition]
        Definitions, typically from ``read_modification_parameters``
    case_sensitive : bool
        Whether name lookups are case-sensitive (default: False)
    include_builtin : bool
        Add the built-in UniMod table (default: True); explicit definitions
        with the same name take precedence
    diagnostics : RunDiagnostics, optional
        Receives one ResolutionWarning per unresolved name

    Examples
    --------
    >>> registry = ModificationMassRegistry()
    >>> registry.lookup("UniMod:35")
    15.994915
    >>> registry.lookup("NotAMod")
    0.0
    """

    def __init__(
        self,
        definitions: Iterable[ModificationDefinition] = (),
        case_sensitive: bool = False,
        include_builtin: bool = True,
        diagnostics: Optional[RunDiagnostics] = None,
    ):
        self.case_sensitive = case_sensitive
        self.diagnostics = diagnostics
        self.definitions: List[ModificationDefinition] = []
        self._by_name: Dict[str, ModificationDefinition] = {}
        self._unresolved: set = set()

        for definition in definitions:
            self.add(definition)

        if include_builtin:
            for definition in builtin_definitions():
                if self._key(definition.name) in self._by_name:
                    continue
                self.add(definition)

    @classmethod
    def from_parameter_file(
        cls,
        param_path: Union[str, Path],
        **kwargs,
    ) -> 'ModificationMassRegistry':
        return cls(read_modification_parameters(param_path), **kwargs)

    def _key(self, name: str) -> str:
        name = name.strip()
        return name if self.case_sensitive else name.lower()

    def add(self, definition: ModificationDefinition) -> None:
        """Register a definition under its name and accession.

        Raises
        ------
        ValueError
            If the name is already registered with a different mass
        """
        for name in (definition.name, definition.accession):
            if not name:
                continue
            existing = self._by_name.get(self._key(name))
            if existing is not None:
                if abs(existing.mass - definition.mass) > MODIFICATION_NAME_CONFLICT_TOLERANCE:
                    raise ValueError(
                        f"Modification '{name}' defined with conflicting masses: "
                        f"{existing.mass} and {definition.mass}"
                    )
                continue
            self._by_name[self._key(name)] = definition

        self.definitions.append(definition)

    def __len__(self):
        return len(self.definitions)

    def __contains__(self, name: str) -> bool:
        return self._key(name) in self._by_name

    def find(self, name: str) -> Optional[ModificationDefinition]:
        return self._by_name.get(self._key(name))

    def report_unresolved(self, name: str) -> None:
        """Record a lookup failure once per distinct name."""
        key = self._key(name)
        if key in self._unresolved:
            return
        self._unresolved.add(key)

        warning = ResolutionWarning(f"Unrecognized modification name: {name}")
        if self.diagnostics is not None:
            self.diagnostics.warn_once(f"modification:{key}", warning)
        else:
            logger.warning(str(warning))

    @property
    def unresolved_names(self) -> List[str]:
        return sorted(self._unresolved)

    def lookup(self, name: str) -> float:
        """Mass of ``name``; ``UNRESOLVED_MASS`` (0.0) if unknown."""
        definition = self.find(name)
        if definition is None:
            self.report_unresolved(name)
            return UNRESOLVED_MASS
        return definition.mass

    def find_by_mass(
        self,
        mass: float,
        residue: Optional[str] = None,
        tolerance: float = MODIFICATION_MASS_MATCH_TOLERANCE,
    ) -> Optional[ModificationDefinition]:
        """Closest definition within ``tolerance``; prefers ones targeting ``residue``."""
        best = None
        best_key = None
        for definition in self.definitions:
            difference = abs(definition.mass - mass)
            if difference > tolerance:
                continue
            targets = residue is not None and definition.targets(residue)
            key = (not targets, difference)
            if best_key is None or key < best_key:
                best, best_key = definition, key
        return best

    @property
    def static_definitions(self) -> List[ModificationDefinition]:
        return [d for d in self.definitions if d.is_static]
