"""AlphaPeptNorm - Normalization of peptide search engine results.

Turns the native output of DIA-NN, TopPIC, MSAlign and MSFragger into one
canonical, ranked and filtered synopsis format, then enriches it with
protein context and modification descriptions.

Hot loops (residue mass sums, dense ranking, nearest-scan search) are
Numba-compiled kernels over NumPy arrays.
"""

__version__ = "0.1.0"

from alphapeptnorm import dialects
from alphapeptnorm.config import NormalizationConfig
from alphapeptnorm.diagnostics import RunDiagnostics
from alphapeptnorm.exceptions import (
    ConsistencyWarning,
    ErrorCode,
    NormalizationError,
    NormalizationWarning,
    RecordError,
    ResolutionWarning,
    ResultFileIOError,
    SchemaError,
)
from alphapeptnorm.modifications import (
    ModificationAnnotationDecoder,
    ModificationOccurrence,
    ResidueTerminusState,
)
from alphapeptnorm.registry import ModificationMassRegistry
from alphapeptnorm.mass import MassReconstructionEngine, convolute_mass
from alphapeptnorm.cleavage import CleavageState, classify, classify_assumed_tryptic
from alphapeptnorm.scan_index import ElutionTimeScanResolver, ScanIndex
from alphapeptnorm.filtering import filter_rank_sort
from alphapeptnorm.protein_mapping import FastaProteinMapper, ProteinMatch
from alphapeptnorm.pipeline import NormalizationPipeline, PipelineResult

__all__ = [
    "dialects",

    # Pipeline
    "NormalizationPipeline",
    "PipelineResult",
    "NormalizationConfig",
    "RunDiagnostics",

    # Components
    "ModificationAnnotationDecoder",
    "ModificationOccurrence",
    "ResidueTerminusState",
    "ModificationMassRegistry",
    "MassReconstructionEngine",
    "convolute_mass",
    "CleavageState",
    "classify",
    "classify_assumed_tryptic",
    "ElutionTimeScanResolver",
    "ScanIndex",
    "filter_rank_sort",
    "FastaProteinMapper",
    "ProteinMatch",

    # Errors
    "ErrorCode",
    "NormalizationError",
    "SchemaError",
    "RecordError",
    "ResultFileIOError",
    "NormalizationWarning",
    "ResolutionWarning",
    "ConsistencyWarning",
]
