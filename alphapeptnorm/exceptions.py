"""Module containing custom exceptions and warnings."""


class ErrorCode:
    """String constants for the error code taxonomy."""

    NONE = "NO_ERROR"
    SCHEMA_ERROR = "SCHEMA_ERROR"
    RECORD_ERROR = "RECORD_ERROR"
    RESOLUTION_WARNING = "RESOLUTION_WARNING"
    CONSISTENCY_WARNING = "CONSISTENCY_WARNING"
    IO_ERROR = "IO_ERROR"
    ABORTED = "ABORTED"


class NormalizationError(Exception):
    """Custom AlphaPeptNorm error class."""

    _error_code = ""
    _msg = ""
    _detail_msg = ""

    @property
    def error_code(self):
        return self._error_code

    @property
    def msg(self):
        return self._msg

    @property
    def detail_msg(self):
        return self._detail_msg

    def __init__(self, msg: str = "", detail_msg: str = ""):
        if msg:
            self._msg = msg
        if detail_msg:
            self._detail_msg = detail_msg

        super().__init__(self._msg)

    def __str__(self):
        if self._detail_msg:
            return f"{self._error_code}: {self._msg}\n{self._detail_msg}"
        return f"{self._error_code}: {self._msg}"


class SchemaError(NormalizationError):
    """Raise when a header cannot be parsed or a mandatory column is absent.

    Fatal for the file being processed.
    """

    _error_code = ErrorCode.SCHEMA_ERROR

    _msg = "Input file header could not be resolved."


class RecordError(NormalizationError):
    """Raise when a single row cannot be parsed or reconstructed.

    The row is skipped and the message stored in the capped diagnostic list.
    """

    _error_code = ErrorCode.RECORD_ERROR

    _msg = "Invalid result row."


class ResultFileIOError(NormalizationError, OSError):
    """Raise when a required input or output file cannot be opened or written."""

    _error_code = ErrorCode.IO_ERROR

    _msg = "Unable to read or write a result file."


class NormalizationWarning(UserWarning):
    """Base class for recovered, informational conditions."""

    _error_code = ""

    @property
    def error_code(self):
        return self._error_code

    @property
    def msg(self):
        return str(self)


class ResolutionWarning(NormalizationWarning):
    """A modification name or dataset scan lookup failed; a fallback was used."""

    _error_code = ErrorCode.RESOLUTION_WARNING


class ConsistencyWarning(NormalizationWarning):
    """Reconstructed and engine-reported masses disagree beyond tolerance."""

    _error_code = ErrorCode.CONSISTENCY_WARNING
