class PipelineError(Exception):
    """Base exception for all pipeline-related errors."""


class RecordNotFoundError(PipelineError):
    """Raised when a pipeline record cannot be found in the store."""


class StageInputError(PipelineError):
    """Raised when a stage's required input artifact is missing or empty."""


class ExecutorError(PipelineError):
    """Raised by a stage executor when its transformation fails.

    The message is human-readable and is persisted (truncated) on the record.
    """


class UnknownStageError(PipelineError):
    """Raised when no executor is registered for a stage."""


class InvalidRequestError(PipelineError):
    """Raised when an external retry/cancel/delete request is not allowed."""


class StageCancelled(PipelineError):
    """Raised at a checkpoint when the record has been cancelled."""


class StageSuperseded(PipelineError):
    """Raised at a checkpoint when the record changed under this invocation."""


class IllegalTransitionError(PipelineError):
    """Raised when the state machine would write a stage it may not move to."""
