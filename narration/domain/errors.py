"""
Error Handling Module

Defines domain exceptions, error codes and severity levels for the pipeline.
Domain exceptions are pure and have no external dependencies.
Application exceptions carry user-facing messages for dashboards and APIs.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Error code enumeration for structured error handling."""

    RATE_LIMIT = "RATE_LIMIT"
    AUTH_ERROR = "AUTH_ERROR"
    TIMEOUT = "TIMEOUT"
    NETWORK_ERROR = "NETWORK_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    NOT_FOUND = "NOT_FOUND"
    MERGE_ERROR = "MERGE_ERROR"
    UPLOAD_ERROR = "UPLOAD_ERROR"
    CANCELLED = "CANCELLED"
    UNKNOWN = "UNKNOWN"


class ErrorSeverity(Enum):
    """Derived severity of a failure, used to decide retry eligibility."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorScope(Enum):
    """Which unit of work a failure belongs to."""

    JOB = "job"
    ITEM = "item"
    CHUNK = "chunk"
    SYSTEM = "system"


# User-friendly error messages with actionable guidance
ERROR_MESSAGES: Dict[ErrorCode, Dict[str, str]] = {
    ErrorCode.RATE_LIMIT: {
        "title": "Provider Rate Limit Reached",
        "message": "The text or speech provider is limiting requests for this account.",
        "action": "Wait for the quota window to reset, then retry the failed items.",
    },
    ErrorCode.AUTH_ERROR: {
        "title": "Provider Authentication Failed",
        "message": "The credentials configured for the text or speech provider were rejected.",
        "action": "Check the API keys in the settings and retry the failed items.",
    },
    ErrorCode.TIMEOUT: {
        "title": "Provider Timeout",
        "message": "The provider took too long to answer.",
        "action": "The item is retried automatically. No action is needed.",
    },
    ErrorCode.NETWORK_ERROR: {
        "title": "Network Error",
        "message": "The provider could not be reached.",
        "action": "The item is retried automatically. Check connectivity if it keeps failing.",
    },
    ErrorCode.VALIDATION_ERROR: {
        "title": "Invalid Input",
        "message": "The row or configuration contains invalid data.",
        "action": "Fix the source row or job configuration and submit it again.",
    },
    ErrorCode.INVALID_TRANSITION: {
        "title": "Invalid Operation",
        "message": "The requested operation is not allowed in the current state.",
        "action": "Refresh the job to see its current status.",
    },
    ErrorCode.NOT_FOUND: {
        "title": "Not Found",
        "message": "The requested job, item or chunk does not exist.",
        "action": "Check the identifier and try again.",
    },
    ErrorCode.MERGE_ERROR: {
        "title": "Audio Merge Failed",
        "message": "The generated audio chunks could not be merged into one file.",
        "action": "Retry the item. If it keeps failing, regenerate its audio.",
    },
    ErrorCode.UPLOAD_ERROR: {
        "title": "Upload Failed",
        "message": "The final audio file could not be stored.",
        "action": "Check the storage configuration and retry the item.",
    },
    ErrorCode.CANCELLED: {
        "title": "Cancelled",
        "message": "The job was cancelled before this item finished.",
        "action": "Start a new job to process the item again.",
    },
    ErrorCode.UNKNOWN: {
        "title": "System Error",
        "message": "An unexpected error occurred while processing the item.",
        "action": "Please try again later. If the problem persists, contact support.",
    },
}


# ============================================================================
# Domain Exceptions (Pure - No External Dependencies)
# ============================================================================

class DomainError(Exception):
    """
    Base exception for all domain errors.

    Domain exceptions are pure and have no external dependencies.
    They can optionally wrap original errors for context.
    """

    error_code = ErrorCode.UNKNOWN
    retryable = False

    def __init__(self, message: str, original_error: Exception = None):
        """
        Initialize domain error.

        Args:
            message: Error message
            original_error: Optional original exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class ValidationError(DomainError):
    """
    Raised when input or entity invariants are violated.

    Never retried; surfaced immediately to the caller.
    """

    error_code = ErrorCode.VALIDATION_ERROR


class InvalidTransitionError(DomainError):
    """
    Raised when an entity is asked to move to a status its table forbids.

    Indicates a bug or a race; never retried.
    """

    error_code = ErrorCode.INVALID_TRANSITION

    def __init__(self, entity: str, from_status: Enum, to_status: Enum):
        super().__init__(
            f"Invalid {entity} transition: {from_status.value} -> {to_status.value}"
        )
        self.entity = entity
        self.from_status = from_status
        self.to_status = to_status


class EntityNotFoundError(DomainError):
    """Raised when a job, item or chunk cannot be found."""

    error_code = ErrorCode.NOT_FOUND

    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class ExternalServiceError(DomainError):
    """
    Raised by text/speech/merge/upload adapters when a call fails.

    Adapters translate their library-specific exceptions into this type so
    the recovery policy can classify them without knowing the provider.
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.UNKNOWN,
        retryable: bool = False,
        original_error: Exception = None,
    ):
        super().__init__(message, original_error)
        self.error_code = error_code
        self.retryable = retryable


class ProcessingCancelledError(DomainError):
    """Raised when a worker finds its item or job cancelled mid-flight."""

    error_code = ErrorCode.CANCELLED


# ============================================================================
# Application Layer Exceptions
# ============================================================================

class ApplicationError(Exception):
    """
    Base application error with a code and user-friendly messaging.

    Bridges domain errors with user-facing messages shown next to a
    FAILED job or item.
    """

    def __init__(
        self,
        error_code: ErrorCode,
        technical_message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize application error.

        Args:
            error_code: Error code
            technical_message: Technical error details for logging
            context: Additional context information
        """
        self.error_code = error_code
        self.technical_message = technical_message or ""
        self.context = context or {}

        error_info = ERROR_MESSAGES.get(error_code, ERROR_MESSAGES[ErrorCode.UNKNOWN])
        self.title = error_info["title"]
        self.message = error_info["message"]
        self.action = error_info["action"]

        super().__init__(self.message)

    @classmethod
    def from_domain_error(cls, error: Exception) -> "ApplicationError":
        """Wrap any exception, keeping its code when it has one."""
        code = getattr(error, "error_code", ErrorCode.UNKNOWN)
        if not isinstance(code, ErrorCode):
            code = ErrorCode.UNKNOWN
        return cls(code, technical_message=str(error))

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert error to dictionary for API response.

        Returns:
            Dictionary with error information
        """
        return {
            "error": self.error_code.value,
            "title": self.title,
            "message": self.message,
            "action": self.action,
        }
