# Centralized error handling utilities
"""
Provides consistent error handling patterns across the pixel pipeline.

This module defines:
- Custom exception classes for the pipeline's failure taxonomy
- Utility functions for error logging and user messaging
"""

from typing import Optional, Tuple, Union
from enum import Enum

from .logger import get_logger

logger = get_logger(__name__)


class ErrorCategory(Enum):
    """Categories of errors for consistent handling."""
    RECOVERABLE = "recoverable"      # Can continue with fallback
    USER_INPUT = "user_input"        # Invalid edit parameters / geometry
    FILE_IO = "file_io"              # Load/export errors
    PROCESSING = "processing"        # Pixel pipeline errors
    MODEL = "model"                  # Inpainting model errors
    MEMORY = "memory"                # Buffer allocation failures
    CONFIGURATION = "configuration"  # Settings/config errors
    FATAL = "fatal"                  # Unrecoverable errors


class AppError(Exception):
    """Base exception for application-specific errors."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.RECOVERABLE,
        original_error: Optional[Exception] = None,
        user_message: Optional[str] = None,
    ):
        super().__init__(message)
        self.category = category
        self.original_error = original_error
        self.user_message = user_message or message

    def __str__(self) -> str:
        if self.original_error:
            return f"{self.args[0]} (caused by: {type(self.original_error).__name__})"
        return self.args[0]


class InvalidGeometryError(AppError):
    """Rejected adjustment op (inverted or zero-area crop, bad rotation, bad token)."""

    def __init__(self, message: str, op: Optional[str] = None, **kwargs):
        super().__init__(message, category=ErrorCategory.USER_INPUT, **kwargs)
        self.op = op


class InvalidBufferError(AppError):
    """A stage received a released or zero-area pixel buffer."""

    def __init__(self, message: str, step: Optional[str] = None, **kwargs):
        super().__init__(message, category=ErrorCategory.PROCESSING, **kwargs)
        self.step = step


class BufferMismatchError(InvalidBufferError):
    """Source and destination buffers disagree on dimensions."""

    def __init__(
        self,
        message: str,
        expected: Optional[Tuple[int, int]] = None,
        actual: Optional[Tuple[int, int]] = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.expected = expected
        self.actual = actual


class RenderError(AppError):
    """A render request was aborted; surfaced to callers as a generic failure."""

    def __init__(self, message: str, step: Optional[str] = None, **kwargs):
        kwargs.setdefault("user_message", "Processing failed")
        super().__init__(message, category=ErrorCategory.PROCESSING, **kwargs)
        self.step = step


class ModelUnavailableError(AppError):
    """The inpainting model could not be loaded or run."""

    def __init__(self, message: str, model_path: Optional[str] = None, **kwargs):
        super().__init__(message, category=ErrorCategory.MODEL, **kwargs)
        self.model_path = model_path


class BufferAllocationError(AppError):
    """Allocating a pixel buffer ran out of memory."""

    def __init__(self, message: str, shape: Optional[Tuple[int, ...]] = None, **kwargs):
        kwargs.setdefault(
            "user_message",
            "Not enough memory to complete this operation. Try with a smaller image.",
        )
        super().__init__(message, category=ErrorCategory.MEMORY, **kwargs)
        self.shape = shape


class ExportError(AppError):
    """Saving/exporting a result failed; no partial file is left behind."""

    def __init__(self, message: str, file_path: Optional[str] = None, **kwargs):
        kwargs.setdefault("user_message", "Export failed")
        super().__init__(message, category=ErrorCategory.FILE_IO, **kwargs)
        self.file_path = file_path


class UnknownFilterError(AppError):
    """Filter name not present in the preset table (strict resolution only)."""

    def __init__(self, message: str, name: Optional[str] = None, **kwargs):
        super().__init__(message, category=ErrorCategory.USER_INPUT, **kwargs)
        self.name = name


def log_and_continue(
    message: str,
    category: ErrorCategory = ErrorCategory.RECOVERABLE,
    level: str = "warning",
) -> None:
    """
    Log an error and continue execution.

    Use this for degradations that still produce a result (model fallback, retries).
    """
    log_func = getattr(logger, level, logger.warning)
    log_func("[%s] %s", category.value, message)


def format_user_error(error: Union[Exception, str], context: Optional[str] = None) -> str:
    """
    Format an error message for user display.

    Args:
        error: The error or error message.
        context: Optional context about what operation failed.

    Returns:
        User-friendly error message.
    """
    if isinstance(error, AppError):
        return error.user_message

    if isinstance(error, MemoryError):
        return "Not enough memory to complete this operation. Try with a smaller image."

    error_str = str(error)

    if "No such file or directory" in error_str:
        return f"File not found{f' while {context}' if context else ''}"
    if "Permission denied" in error_str:
        return f"Permission denied{f' while {context}' if context else ''}"
    if "out of memory" in error_str.lower() or "insufficient memory" in error_str.lower():
        return "Not enough memory to complete this operation. Try with a smaller image."

    if context:
        return f"Error {context}: {error_str}"
    return f"An error occurred: {error_str}"
