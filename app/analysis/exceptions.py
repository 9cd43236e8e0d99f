from app.pipeline.exceptions import ExecutorError


class AnalysisError(ExecutorError):
    """Raised when an AI analysis call fails."""


class AnalysisValidationError(AnalysisError):
    """Raised when the AI result fails domain validation."""


class AnalysisNetworkError(AnalysisError):
    """Raised when the AI provider call fails due to network/infrastructure issues."""
