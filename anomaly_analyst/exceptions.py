from typing import Optional


class AnalysisError(Exception):
    """Base class for exceptions in this package."""
    pass

class ParseError(AnalysisError):
    """Exception raised when the CSV text cannot be tokenized."""

    def __init__(self, message: str, line_number: Optional[int] = None):
        if line_number is not None:
            message = f"Line {line_number}: {message}"
        super().__init__(message)
        self.line_number = line_number

class InsufficientDataError(AnalysisError):
    """Exception raised when there is not enough data to compute a statistic."""
    pass

class ScoringError(AnalysisError):
    """Exception raised when a scoring backend fails to produce scores."""
    pass

class ScoringTimeoutError(ScoringError):
    """Exception raised when a scoring backend exceeds its time budget."""
    pass

class UnknownBackendError(AnalysisError):
    """Exception raised when the configured scoring backend is not registered."""
    pass

class PipelineStageError(AnalysisError):
    """Exception raised when a pipeline stage fails; names the failing stage."""

    def __init__(self, stage: str, cause: Exception):
        super().__init__(f"Stage '{stage}' failed: {cause}")
        self.stage = stage
        self.cause = cause
