"""Base exception for pipeline failures.

Every stage raises a subclass of PipelineError. The orchestrator turns
these into failed StageResults and stops the run.
"""

from wlanpi_kernel_builder.types import ErrorCategory


class PipelineError(Exception):
    """Raised when a pipeline stage cannot complete."""

    def __init__(
        self,
        message: str,
        code: str = "pipeline_error",
        category: ErrorCategory = ErrorCategory.TOOL,
    ) -> None:
        """Initialize PipelineError.

        Args:
            message: Error description.
            code: Error code for structured error handling.
            category: Whether the failure came from the environment, an
                external tool, or post-build verification.
        """
        super().__init__(message)
        self.code = code
        self.category = category


__all__ = ["PipelineError"]
