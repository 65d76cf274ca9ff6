"""
Orchestrator error taxonomy
"""


class PipelineError(Exception):
    """Base class for orchestrator errors"""


class ConflictError(PipelineError):
    """A start was requested while a non-stale run holds the run lock."""


class ValidationError(PipelineError):
    """A schedule expression or schedule request is malformed."""


class StageError(PipelineError):
    """Wraps any exception raised by the external stage sequence."""

    def __init__(self, cause: BaseException):
        self.cause = cause
        message = str(cause) or type(cause).__name__
        super().__init__(message)
