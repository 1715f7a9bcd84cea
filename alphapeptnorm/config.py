"""Configuration of a normalization run."""

import math
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping, Optional, Union

from .constants import (
    DEFAULT_CONFIDENCE_SCORE_THRESHOLD,
    DEFAULT_E_VALUE_THRESHOLD,
    DEFAULT_HYPERSCORE_THRESHOLD,
    DEFAULT_MASS_TOLERANCE_DA,
    DEFAULT_P_VALUE_THRESHOLD,
    DEFAULT_Q_VALUE_THRESHOLD,
    DEFAULT_SCORE_EPSILON,
    MAX_ERROR_MESSAGE_COUNT,
    MAX_REPEATED_WARNINGS,
)

PathLike = Union[str, Path]


@dataclass
class NormalizationConfig:
    """Thresholds, tolerances and side inputs of a normalization run.

    Thresholds are per engine; each dialect reads only its own.
    """

    # DIA-NN: keep if Q.Value < q_value_threshold or CScore > confidence_score_threshold
    q_value_threshold: float = DEFAULT_Q_VALUE_THRESHOLD
    confidence_score_threshold: float = DEFAULT_CONFIDENCE_SCORE_THRESHOLD

    # TopPIC / MSAlign: keep if P-value (or E-value) <= p_value_threshold
    p_value_threshold: float = DEFAULT_P_VALUE_THRESHOLD

    # MSFragger: keep if Expectation < e_value_threshold or Hyperscore > hyperscore_threshold
    e_value_threshold: float = DEFAULT_E_VALUE_THRESHOLD
    hyperscore_threshold: float = DEFAULT_HYPERSCORE_THRESHOLD

    # Mass cross-validation
    mass_tolerance_da: float = DEFAULT_MASS_TOLERANCE_DA

    # Diagnostics
    max_consistency_warnings: int = MAX_REPEATED_WARNINGS
    max_error_messages: int = MAX_ERROR_MESSAGE_COUNT

    score_epsilon: float = DEFAULT_SCORE_EPSILON
    case_sensitive_mod_names: bool = False

    # Side inputs
    modification_parameter_file: Optional[PathLike] = None
    scan_stats_directory: Optional[PathLike] = None
    fasta_file: Optional[PathLike] = None

    # Output
    write_shadow_copy: bool = True
    output_directory: Optional[PathLike] = None

    @classmethod
    def from_dict(cls, values: Mapping[str, Any]) -> 'NormalizationConfig':
        """Create a config from a mapping; unknown keys raise ValueError."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(unknown)}")
        config = cls(**dict(values))
        config.validate()
        return config

    @classmethod
    def for_dialect(cls, dialect_name: str, **overrides) -> 'NormalizationConfig':
        """Defaults for one engine, with keyword overrides.

        Raises
        ------
        ValueError
            If the dialect is unknown
        """
        from .dialects import get_dialect_class

        get_dialect_class(dialect_name)
        config = replace(cls(), **overrides)
        config.validate()
        return config

    def validate(self) -> None:
        """Raise ValueError for negative or non-finite thresholds and bad caps."""
        for name in (
            "q_value_threshold",
            "confidence_score_threshold",
            "p_value_threshold",
            "e_value_threshold",
            "hyperscore_threshold",
            "mass_tolerance_da",
            "score_epsilon",
        ):
            value = getattr(self, name)
            if not math.isfinite(value) or value < 0:
                raise ValueError(f"{name} must be a finite, non-negative number, got {value}")

        for name in ("max_consistency_warnings", "max_error_messages"):
            value = getattr(self, name)
            if value < 1:
                raise ValueError(f"{name} must be positive, got {value}")
