"""Search engine dialects.

One dialect per supported engine. Each supplies the column-name table,
modification delimiters, primary score and filter rules used by the shared
normalization pipeline.
"""

from typing import Dict, Type

from .base import (
    ScoreDirection,
    ScoreThreshold,
    SearchEngineDialect,
    sort_value,
)
from .diann import DiannDialect
from .msalign import MSAlignDialect
from .msfragger import MSFraggerDialect, parse_spectrum_name
from .toppic import TopPICDialect, dots_to_terminus, first_scan_number

DIALECTS: Dict[str, Type[SearchEngineDialect]] = {
    DiannDialect.name: DiannDialect,
    TopPICDialect.name: TopPICDialect,
    MSAlignDialect.name: MSAlignDialect,
    MSFraggerDialect.name: MSFraggerDialect,
}


def get_dialect_class(name: str) -> Type[SearchEngineDialect]:
    """Dialect class by (case-insensitive) name.

    Raises
    ------
    ValueError
        If no dialect has this name
    """
    try:
        return DIALECTS[name.lower().replace("-", "")]
    except KeyError:
        raise ValueError(
            f"Unknown search engine dialect '{name}'; choose from {', '.join(sorted(DIALECTS))}"
        ) from None


def create_dialect(name: str, config=None) -> SearchEngineDialect:
    return get_dialect_class(name)(config)


__all__ = [
    # Interface
    'SearchEngineDialect',
    'ScoreDirection',
    'ScoreThreshold',
    'sort_value',

    # Engines
    'DiannDialect',
    'TopPICDialect',
    'MSAlignDialect',
    'MSFraggerDialect',

    # Lookup
    'DIALECTS',
    'get_dialect_class',
    'create_dialect',

    # Helpers
    'parse_spectrum_name',
    'dots_to_terminus',
    'first_scan_number',
]
