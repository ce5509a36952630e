"""
Exception types for the sales report tool
Every failure a run can surface is one of these
"""


class ReportError(Exception):
    """Base class for all report pipeline errors"""


class ConfigurationError(ReportError):
    """Missing or invalid settings, reported before any work begins"""


class RecordSourceError(ReportError):
    """Input file could not be read or is malformed"""


class EmptyInputError(RecordSourceError):
    """Input produced no records"""


class IncompleteAggregateError(ReportError):
    """Aggregate view lacks one or more derived fields the report needs"""

    def __init__(self, missing):
        self.missing = list(missing)
        super().__init__(f"Aggregate view is missing required fields: {', '.join(self.missing)}")


class ValidationError(ReportError):
    """Destination path rejected by the output guard"""

    rule = "validation"

    def __init__(self, message: str, path=None):
        self.path = path
        super().__init__(message)


class PathOutsideAllowedDirError(ValidationError):
    rule = "containment"


class InvalidFilenameError(ValidationError):
    rule = "filename"


class NotWritableError(ValidationError):
    rule = "writable"


class LockTimeoutError(ReportError):
    """Another process kept the destination lock for the whole retry window"""

    def __init__(self, path, attempts: int):
        self.path = path
        self.attempts = attempts
        super().__init__(f"Could not lock {path} after {attempts} attempts")


class ArenaCreateError(ReportError):
    """Scoped temp directory could not be created or is not writable"""


class ArenaClosedError(ReportError):
    """Temp path requested from an arena that is not open"""
