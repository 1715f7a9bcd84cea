"""Physical constants, residue masses and defaults for result normalization.

All masses are monoisotopic. Values are sourced from NIST or Unimod and are
provided both as dictionaries and as ord()-indexed arrays so that Numba
kernels can sum residue masses without dictionary lookups.

Key Features
------------
- Correct PROTON_MASS (1.007276466622 Da, not hydrogen atom mass!)
- ord()-indexed RESIDUE_MASSES array for Numba code
- Element masses for empirical-formula modification definitions
- Built-in modification table (UniMod accessions and names)
- Default filter thresholds and diagnostic caps

Sources
-------
- NIST physical constants: https://physics.nist.gov/cgi-bin/cuu/Value
- IUPAC amino acid masses: https://www.unimod.org/masses.html
- Unimod modification masses: https://www.unimod.org/modifications_list.php
"""

import numpy as np

# =============================================================================
# Fundamental Physical Constants (NIST values)
# =============================================================================

# Proton mass (NOT hydrogen atom mass!)
# Source: NIST 2018 CODATA
PROTON_MASS = 1.007276466622  # Da

# Water mass (H2O), added once per peptide
H2O_MASS = 18.010564684  # Da

# =============================================================================
# Element Masses (for empirical formulas in parameter files)
# =============================================================================

ELEMENT_MASSES = {
    'H': 1.00782503207,
    'C': 12.0,
    'N': 14.0030740048,
    'O': 15.99491461956,
    'S': 31.972071,
    'P': 30.97376163,
    'Na': 22.9897692809,
    'K': 38.96370668,
    'Se': 79.9165213,
    'Br': 78.9183371,
    'Cl': 34.96885268,
    'I': 126.904473,
    'F': 18.99840322,
    'Fe': 55.9349375,
    'Cu': 62.9295975,
    'Zn': 63.9291422,
    'Ca': 39.96259098,
    'Mg': 23.9850417,
    'Li': 7.01600455,
}

# =============================================================================
# Amino Acid Residue Monoisotopic Masses (Da)
# =============================================================================

# Residue masses (not including N/C terminal H and OH)
# Source: IUPAC/Unimod mass tables
AA_MASSES_DICT = {
    'A': 71.037114,   # Alanine
    'R': 156.101111,  # Arginine
    'N': 114.042927,  # Asparagine
    'D': 115.026943,  # Aspartic acid
    'C': 103.009185,  # Cysteine (unmodified)
    'E': 129.042593,  # Glutamic acid
    'Q': 128.058578,  # Glutamine
    'G': 57.021464,   # Glycine
    'H': 137.058912,  # Histidine
    'I': 113.084064,  # Isoleucine
    'L': 113.084064,  # Leucine
    'K': 128.094963,  # Lysine
    'M': 131.040485,  # Methionine
    'F': 147.068414,  # Phenylalanine
    'P': 97.052764,   # Proline
    'S': 87.032028,   # Serine
    'T': 101.047679,  # Threonine
    'W': 186.079313,  # Tryptophan
    'Y': 163.063329,  # Tyrosine
    'V': 99.068414,   # Valine
}

# Ambiguous and rare residue codes that search engines emit
AA_MASSES_NONSTANDARD = {
    'X': 113.084064,  # Unknown -> Leu/Ile
    'Z': 128.058578,  # Glu/Gln -> Gln
    'B': 114.042927,  # Asp/Asn -> Asn
    'J': 113.084064,  # Leu/Ile
    'U': 150.953636,  # Selenocysteine
    'O': 237.147727,  # Pyrrolysine
}

# =============================================================================
# ord()-Indexed Array for Numba
# =============================================================================

# Access via: RESIDUE_MASSES[ord('A')] -> 71.037114
# A zero entry marks a character that is not a residue
RESIDUE_MASSES = np.zeros(256, dtype=np.float64)

for aa, mass in AA_MASSES_DICT.items():
    RESIDUE_MASSES[ord(aa)] = mass

for aa, mass in AA_MASSES_NONSTANDARD.items():
    RESIDUE_MASSES[ord(aa)] = mass

# =============================================================================
# Common Modification Masses
# =============================================================================

# Carbamidomethylation of Cysteine (Unimod:4), C2H3NO
CARBAMIDOMETHYL_MASS = 57.021464

# Oxidation of Methionine (Unimod:35), O
OXIDATION_MASS = 15.994915

# Acetylation (Protein N-term, Unimod:1), C2H2O
ACETYL_MASS = 42.010565

# Phosphorylation (Unimod:21), HPO3
PHOSPHO_MASS = 79.966331

# Deamidation (Unimod:7), NH -> O
DEAMIDATION_MASS = 0.984016

# Built-in definitions: (name, accession, mass, target residues, position)
# Residues '*' means any residue
BUILTIN_MODIFICATIONS = (
    ('Acetyl', 'UniMod:1', ACETYL_MASS, '*', 'prot_n_term'),
    ('Carbamidomethyl', 'UniMod:4', CARBAMIDOMETHYL_MASS, 'C', 'any'),
    ('Deamidated', 'UniMod:7', DEAMIDATION_MASS, 'NQ', 'any'),
    ('Phospho', 'UniMod:21', PHOSPHO_MASS, 'STY', 'any'),
    ('Oxidation', 'UniMod:35', OXIDATION_MASS, 'M', 'any'),
)

# =============================================================================
# Mass Reconstruction Settings
# =============================================================================

# Denominator used for ppm values when no m/z is available
PPM_FALLBACK_MZ = 1000.0

# Reconstructed vs. reported mass disagreement that triggers a diagnostic
DEFAULT_MASS_TOLERANCE_DA = 0.1

# Tolerance when matching an observed modification mass to a definition
MODIFICATION_MASS_MATCH_TOLERANCE = 0.005

# Two definitions with the same name must agree to within this mass
MODIFICATION_NAME_CONFLICT_TOLERANCE = 0.01

# =============================================================================
# Default Filter Thresholds
# =============================================================================

DEFAULT_Q_VALUE_THRESHOLD = 0.10
DEFAULT_CONFIDENCE_SCORE_THRESHOLD = 0.25
DEFAULT_P_VALUE_THRESHOLD = 0.95
DEFAULT_E_VALUE_THRESHOLD = 0.75
DEFAULT_HYPERSCORE_THRESHOLD = 20.0

# Scores closer than this share a rank
DEFAULT_SCORE_EPSILON = 1e-10

# =============================================================================
# Diagnostics
# =============================================================================

# Maximum number of stored diagnostic messages per run
MAX_ERROR_MESSAGE_COUNT = 255

# Occurrences of a rate-limited warning that are logged before suppression
MAX_REPEATED_WARNINGS = 10

# =============================================================================
# Sequence Notation
# =============================================================================

# Symbols that mark a protein terminus in prefix/suffix position
TERMINUS_SYMBOLS = ('-', '[', ']')

# Placeholder flanking residues for formats without prefix/suffix
ASSUMED_PREFIX_RESIDUE = 'K'
ASSUMED_SUFFIX_RESIDUE = 'A'
