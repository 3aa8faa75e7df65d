"""
Custom Error Types for the Plan Parsing Pipeline

Provides categorized exceptions to distinguish between critical errors
that end a parse job and non-critical errors that are recorded as
warnings while the pipeline keeps going.
"""

import logging
from typing import Optional, Dict, Any

from celery.exceptions import SoftTimeLimitExceeded

logger = logging.getLogger(__name__)


class PlanParseError(Exception):
    """Base exception for all plan parsing errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class CriticalError(PlanParseError):
    """
    Critical errors that end the parse job in the `failed` state.

    Examples:
    - Storage cannot be reached
    - Inference backend is not configured
    - Time budget exceeded
    """
    error_code = "PARSE_ERROR"
    status_code = 500


class NonCriticalError(PlanParseError):
    """
    Stage-local errors: the failing unit is skipped and a warning is recorded.

    Examples:
    - One file could not be downloaded
    - One sheet's extraction failed
    - Page rendering failed
    """
    pass


class ConfigurationError(CriticalError):
    """Missing API keys or invalid configuration values."""
    error_code = "BACKEND_UNAVAILABLE"
    status_code = 503


class StorageError(CriticalError):
    """The upload bucket or job store is unreachable."""
    error_code = "STORAGE_ERROR"
    status_code = 503


class ParseTimeoutError(CriticalError):
    """The job exceeded its wall-clock budget at a stage boundary."""
    error_code = "TIMEOUT"
    status_code = 504


class InvalidParseRequest(CriticalError):
    """Request rejected before the pipeline starts."""
    error_code = "INVALID_REQUEST"
    status_code = 400


class InvalidJobTransition(CriticalError):
    """A job status change that the state machine does not allow."""
    error_code = "INVALID_TRANSITION"
    status_code = 409


class DocumentAcquisitionError(NonCriticalError):
    """A single file reference could not be resolved to bytes."""
    pass


class UnsupportedFileError(NonCriticalError):
    """File extension / content type is neither an image nor a PDF."""
    pass


class InferenceError(NonCriticalError):
    """
    The inference backend failed or returned something unusable.

    Examples:
    - HTTP error or timeout from the model API
    - Response was not valid JSON
    """
    pass


class RenderError(NonCriticalError):
    """PDF pages could not be rendered to images."""
    pass


def categorize_exception(e: Exception) -> PlanParseError:
    """
    Categorize a generic exception into appropriate error type.

    Args:
        e: Exception to categorize

    Returns:
        Categorized PlanParseError
    """
    if isinstance(e, PlanParseError):
        return e

    if isinstance(e, SoftTimeLimitExceeded):
        return ParseTimeoutError("Worker soft time limit exceeded")

    error_message = str(e)
    error_type = type(e).__name__

    if error_type in ['OperationalError', 'DatabaseError', 'DisconnectionError']:
        return StorageError(f"Job storage error: {error_message}")

    if error_type in ['FileNotFoundError', 'PermissionError', 'ClientError']:
        return StorageError(f"File access error: {error_message}")

    if 'timeout' in error_message.lower() or error_type in ['TimeoutError', 'APITimeoutError']:
        return ParseTimeoutError(f"Operation timed out: {error_message}")

    if 'api' in error_message.lower() and 'key' in error_message.lower():
        return ConfigurationError(f"API configuration error: {error_message}")

    return CriticalError(f"Unexpected error: {error_message}", {'original_type': error_type})


def log_error_with_context(error: PlanParseError, context: Dict[str, Any]):
    """
    Log error with additional context information.

    Args:
        error: Error to log
        context: Additional context (job_id, stage, etc.)
    """
    log_data = {
        'error_type': type(error).__name__,
        'error_message': error.message,
        'details': error.details,
        'context': context
    }

    if isinstance(error, CriticalError):
        logger.error(f"CRITICAL ERROR: {error.message}", extra=log_data)
    else:
        logger.warning(f"Non-critical error: {error.message}", extra=log_data)
