"""Monoisotopic mass reconstruction and mass error calculation.

Search engines report precursor masses in different conventions (neutral
mass, m/z, (M+H)+) and with their own residue tables. The pipeline therefore
recomputes every peptide mass from the clean sequence and the decoded
modification list and compares it with the engine's value.

Formulas
--------
- M = sum(residue masses) + sum(modification masses) + H2O
- m/z at charge z = (M + z * proton) / z
- (M+H)+ = M + proton
- delta mass = reported M - reconstructed M
- delta ppm = delta mass / reconstructed m/z * 1e6
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
import numba

from .constants import (
    DEFAULT_MASS_TOLERANCE_DA,
    H2O_MASS,
    PPM_FALLBACK_MZ,
    PROTON_MASS,
    RESIDUE_MASSES,
)
from .diagnostics import RunDiagnostics
from .exceptions import ConsistencyWarning, RecordError
from .modifications import ModificationOccurrence

logger = logging.getLogger(__name__)


def encode_peptide_to_ord(peptide: str) -> np.ndarray:
    """Encode peptide string to ord() array for Numba processing.

    Examples
    --------
    >>> encode_peptide_to_ord("PEK")
    array([80, 69, 75], dtype=uint8)
    """
    return np.array([ord(c) for c in peptide], dtype=np.uint8)


# =============================================================================
# Numba Kernels
# =============================================================================

@numba.jit(nopython=True, cache=True)
def find_unknown_residue(peptide_ord: np.ndarray) -> int:
    """Index of the first character without a residue mass, or -1."""
    for i in range(len(peptide_ord)):
        if RESIDUE_MASSES[peptide_ord[i]] == 0.0:
            return i
    return -1


@numba.jit(nopython=True, cache=True)
def calculate_peptide_mass(peptide_ord: np.ndarray, modification_masses: np.ndarray) -> float:
    """Neutral monoisotopic mass from ord() residues and modification masses.

    Residues and modifications are summed in array order so that repeated
    calls return bit-identical values.
    """
    total = 0.0
    for i in range(len(peptide_ord)):
        total += RESIDUE_MASSES[peptide_ord[i]]

    total += H2O_MASS

    for i in range(len(modification_masses)):
        total += modification_masses[i]

    return total


# =============================================================================
# Charge Conversion
# =============================================================================

def convolute_mass(
    value: float,
    current_charge: int,
    desired_charge: int = 1,
    charge_carrier_mass: float = PROTON_MASS,
) -> float:
    """Convert a mass between charge states.

    Parameters
    ----------
    value : float
        Neutral mass (``current_charge=0``), (M+H)+ (``1``) or m/z (``>1``)
    current_charge : int
        Charge state of ``value``; 0 means neutral mass
    desired_charge : int
        Charge state to convert to; 0 returns the neutral mass

    Returns
    -------
    float

    Examples
    --------
    >>> round(convolute_mass(1000.0, 0, 2), 6)
    501.007276
    >>> round(convolute_mass(501.007276466622, 2, 1), 6)
    1001.007276
    """
    if current_charge < 0 or desired_charge < 0:
        raise ValueError(
            f"Charge states must be non-negative: {current_charge} -> {desired_charge}"
        )

    if current_charge == desired_charge:
        return value

    if current_charge == 0:
        mh = value + charge_carrier_mass
    elif current_charge == 1:
        mh = value
    else:
        mh = value * current_charge - charge_carrier_mass * (current_charge - 1)

    if desired_charge == 0:
        return mh - charge_carrier_mass
    if desired_charge == 1:
        return mh
    return (mh + charge_carrier_mass * (desired_charge - 1)) / desired_charge


def mass_to_mz(mass: float, charge: int) -> float:
    """m/z of a neutral mass at ``charge`` (charge must be positive)."""
    if charge < 1:
        raise ValueError(f"Charge must be positive, got {charge}")
    return convolute_mass(mass, 0, charge)


def mz_to_mass(mz: float, charge: int) -> float:
    """Neutral mass of an ion observed at ``mz`` with ``charge``."""
    if charge < 1:
        raise ValueError(f"Charge must be positive, got {charge}")
    return convolute_mass(mz, charge, 0)


def delta_mass_to_ppm(delta_mass: float, mz: Optional[float]) -> float:
    """Mass error in ppm relative to ``mz``.

    Uses ``PPM_FALLBACK_MZ`` (1000) as denominator when no usable m/z exists.
    """
    if mz is None or not np.isfinite(mz) or mz <= 0:
        mz = PPM_FALLBACK_MZ
    return delta_mass / mz * 1e6


def compute_monoisotopic_mass(
    clean_sequence: str,
    modifications: Sequence[ModificationOccurrence] = (),
) -> float:
    """Neutral monoisotopic mass of a clean sequence with modifications.

    Raises
    ------
    RecordError
        If the sequence is empty or contains a character that is not a residue

    Examples
    --------
    >>> round(compute_monoisotopic_mass("PEPTIDE"), 6)
    799.359965
    """
    if not clean_sequence:
        raise RecordError("Cannot compute mass of an empty sequence")

    if not clean_sequence.isascii():
        raise RecordError("Sequence contains non-ASCII characters", clean_sequence)

    peptide_ord = encode_peptide_to_ord(clean_sequence)

    bad_index = find_unknown_residue(peptide_ord)
    if bad_index >= 0:
        raise RecordError(
            f"Unknown residue '{clean_sequence[bad_index]}' in sequence", clean_sequence
        )

    modification_masses = np.array([mod.mass for mod in modifications], dtype=np.float64)
    return float(calculate_peptide_mass(peptide_ord, modification_masses))


# =============================================================================
# Reconstruction with Cross-Validation
# =============================================================================

@dataclass
class MassReconstruction:
    """Reconstructed masses of one identification.

    ``delta_mass`` and ``delta_ppm`` are None when the engine reported no
    precursor mass (the reconstructed mass is then taken as ground truth).
    """

    mass: float
    mz: Optional[float]
    mh: float
    delta_mass: Optional[float] = None
    delta_ppm: Optional[float] = None


class MassReconstructionEngine:
    """Recompute peptide masses and check them against engine values.

    Parameters
    ----------
    tolerance_da : float
        |delta mass| above this value raises a ConsistencyWarning diagnostic
    diagnostics : RunDiagnostics, optional
        Run-scoped sink for rate-limited consistency warnings

    Examples
    --------
    >>> engine = MassReconstructionEngine()
    >>> result = engine.reconstruct("PEPTIDE", [], charge=2, reported_mass=799.36)
    >>> round(result.delta_mass, 4)
    0.0
    """

    CATEGORY = "mass_mismatch"

    def __init__(
        self,
        tolerance_da: float = DEFAULT_MASS_TOLERANCE_DA,
        diagnostics: Optional[RunDiagnostics] = None,
    ):
        self.tolerance_da = tolerance_da
        self.diagnostics = diagnostics if diagnostics is not None else RunDiagnostics()
        self.mismatch_count = 0

    def reconstruct(
        self,
        clean_sequence: str,
        modifications: Sequence[ModificationOccurrence],
        charge: int,
        reported_mass: Optional[float] = None,
        context: str = "",
    ) -> MassReconstruction:
        """Reconstruct mass, m/z, (M+H)+ and mass error for one record.

        Parameters
        ----------
        clean_sequence : str
            Unmodified peptide sequence
        modifications : Sequence[ModificationOccurrence]
            Decoded modifications (static ones included)
        charge : int
            Precursor charge; m/z is unavailable for charge < 1
        reported_mass : float, optional
            Engine-reported neutral precursor mass
        context : str
            Record identifier used in diagnostics

        Raises
        ------
        RecordError
            If the sequence cannot be converted to a mass
        """
        mass = compute_monoisotopic_mass(clean_sequence, modifications)
        mz = mass_to_mz(mass, charge) if charge and charge > 0 else None
        mh = convolute_mass(mass, 0, 1)

        result = MassReconstruction(mass=mass, mz=mz, mh=mh)
        if reported_mass is None or not np.isfinite(reported_mass):
            return result

        result.delta_mass = reported_mass - mass
        result.delta_ppm = delta_mass_to_ppm(result.delta_mass, mz)

        if abs(result.delta_mass) > self.tolerance_da:
            self.mismatch_count += 1
            self.diagnostics.warn_rate_limited(
                self.CATEGORY,
                ConsistencyWarning(
                    f"Reconstructed mass {mass:.4f} differs from reported mass "
                    f"{reported_mass:.4f} by {result.delta_mass:.4f} Da"
                    + (f" ({context})" if context else "")
                ),
            )

        return result
