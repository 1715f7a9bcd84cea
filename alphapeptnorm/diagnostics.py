"""Run-scoped diagnostics: capped message list, deduplication and rate limiting.

One ``RunDiagnostics`` instance is created per pipeline run. It holds every
piece of mutable warning state (seen keys, per-category counters) so that two
runs never share deduplication sets.
"""

import logging
from collections import Counter
from typing import Dict, List, Optional, Set

from .constants import MAX_ERROR_MESSAGE_COUNT, MAX_REPEATED_WARNINGS
from .exceptions import ErrorCode, NormalizationError, NormalizationWarning

logger = logging.getLogger(__name__)


class RunDiagnostics:
    """Collect recovered problems for one normalization run.

    Parameters
    ----------
    max_messages : int
        Maximum number of messages kept in ``messages``; later messages are
        only counted in ``suppressed_count``
    max_repeats : int
        Number of occurrences of a rate-limited category that are logged

    Examples
    --------
    >>> diagnostics = RunDiagnostics(max_messages=2)
    >>> for i in range(5):
    ...     diagnostics.record_error(f"bad row {i}")
    >>> len(diagnostics.messages), diagnostics.suppressed_count
    (2, 3)
    """

    def __init__(
        self,
        max_messages: int = MAX_ERROR_MESSAGE_COUNT,
        max_repeats: int = MAX_REPEATED_WARNINGS,
    ):
        if max_messages < 1:
            raise ValueError(f"max_messages must be positive, got {max_messages}")

        self.max_messages = max_messages
        self.max_repeats = max_repeats
        self.messages: List[str] = []
        self.suppressed_count = 0
        self.counts: Counter = Counter()
        self._seen_keys: Set[str] = set()
        self._category_counts: Counter = Counter()

    def _store(self, message: str) -> None:
        if len(self.messages) < self.max_messages:
            self.messages.append(message)
        else:
            self.suppressed_count += 1

    def record_error(
        self,
        message: str,
        error_code: str = ErrorCode.RECORD_ERROR,
    ) -> None:
        """Store a recovered per-record error in the capped list."""
        self.counts[error_code] += 1
        self._store(message)
        if self.counts[error_code] <= self.max_repeats:
            logger.warning(message)

    def record_exception(self, error: NormalizationError, context: str = "") -> None:
        """Store a caught ``NormalizationError`` (usually a ``RecordError``)."""
        message = error.msg if not context else f"{error.msg} ({context})"
        if error.detail_msg:
            message = f"{message}: {error.detail_msg}"
        self.record_error(message, error.error_code)

    def warn_once(self, key: str, warning: NormalizationWarning) -> bool:
        """Record ``warning`` only the first time ``key`` is seen.

        Returns
        -------
        bool
            True if this call recorded the warning
        """
        self.counts[warning.error_code] += 1
        if key in self._seen_keys:
            return False

        self._seen_keys.add(key)
        self._store(str(warning))
        logger.warning(str(warning))
        return True

    def warn_rate_limited(self, category: str, warning: NormalizationWarning) -> bool:
        """Count every occurrence of ``category``; store and log the first few."""
        self.counts[warning.error_code] += 1
        self._category_counts[category] += 1

        if self._category_counts[category] > self.max_repeats:
            return False

        self._store(str(warning))
        logger.warning(str(warning))
        if self._category_counts[category] == self.max_repeats:
            logger.warning(
                f"Further '{category}' warnings will be counted but not reported"
            )
        return True

    def count(self, name: str, increment: int = 1) -> None:
        """Increment a named aggregate counter (reported in ``summary``)."""
        self.counts[name] += increment

    def category_count(self, category: str) -> int:
        return self._category_counts[category]

    def has_seen(self, key: str) -> bool:
        return key in self._seen_keys

    def summary(self) -> Dict[str, int]:
        """Aggregate counts for the run."""
        result = dict(self.counts)
        result["stored_messages"] = len(self.messages)
        result["suppressed_messages"] = self.suppressed_count
        return result

    def log_summary(self, label: Optional[str] = None) -> None:
        prefix = f"{label}: " if label else ""
        counts = ", ".join(
            f"{name}={value}" for name, value in sorted(self.counts.items())
        )
        logger.info(
            f"{prefix}{len(self.messages)} diagnostic messages stored, "
            f"{self.suppressed_count} suppressed ({counts or 'no issues'})"
        )
