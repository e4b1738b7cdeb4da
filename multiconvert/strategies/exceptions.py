"""Strategy-specific exceptions."""

from typing import Optional

from multiconvert.models.conversion import FailureCategory


class ConversionError(Exception):
    """Base exception for strategy failures.

    Raised inside a strategy and turned into a failed ConversionResult
    by the ``@strategy`` decorator.
    """

    category = FailureCategory.CONVERSION_FAILED

    def __init__(
        self,
        message: str,
        category: Optional[FailureCategory] = None,
        title: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.title = title
        if category is not None:
            self.category = category


class ToolNotFoundError(ConversionError):
    """Raised when an external executable is not installed."""

    category = FailureCategory.TOOL_MISSING


class ProcessFailedError(ConversionError):
    """Raised when an external process exits with a non-zero status."""

    def __init__(self, message: str, returncode: int, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class FetchError(ConversionError):
    """Raised when a remote video cannot be resolved or downloaded."""

    category = FailureCategory.UNKNOWN


class UnsupportedKindError(ValueError):
    """Raised when no strategy is registered for a kind."""

    def __init__(self, kind: str):
        super().__init__(f"Unsupported conversion kind: {kind}")
        self.kind = kind
