"""
Consolidated exception system with error codes, context, and correlation support.

Every error raised by the integration core derives from BaseError so callers
can turn any failure into a structured ``{error_kind, message}`` payload and
an HTTP-style status code.
"""

import threading
import traceback
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

_thread_local = threading.local()


class ErrorCode(str, Enum):
    """Standardized error codes for API responses."""

    # System errors (1xxx)
    INTERNAL_ERROR = "1000"
    DATABASE_ERROR = "1001"
    CONFIGURATION_ERROR = "1003"

    # Validation errors (2xxx)
    VALIDATION_FAILED = "2000"
    MISSING_REQUIRED = "2002"

    # Resource errors (3xxx)
    NOT_FOUND = "3000"

    # External service errors (5xxx)
    EXTERNAL_API_ERROR = "5002"
    DOWNSTREAM_ERROR = "5004"
    OAUTH_FAILED = "5010"
    HOST_RESOLUTION_FAILED = "5011"
    REQUEST_REJECTED = "5012"
    RATE_LIMITED = "5013"
    EXPORT_ABORTED = "5014"


class BaseError(Exception):
    """Base exception with context, error codes, logging, and error chaining."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        cause: Optional[Exception] = None,
        **context: Any,
    ):
        """
        Initialize base error with rich context.

        Args:
            message: Human-readable error message
            error_code: Standardized error code from ErrorCode enum
            status_code: HTTP status code for API responses
            cause: Original exception that caused this error
            **context: Additional context information
        """
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc).isoformat()
        self.error_id = str(uuid.uuid4())
        self.context = context

        correlation_id = get_correlation_id()
        if correlation_id:
            self.context["correlation_id"] = correlation_id

        self.context["error_id"] = self.error_id

        if cause:
            self.context["cause"] = {
                "type": type(cause).__name__,
                "message": str(cause),
                "traceback": traceback.format_exception(type(cause), cause, cause.__traceback__),
            }

        self._log_error()

        super().__init__(message)

    @property
    def error_kind(self) -> str:
        """Stable name of the error family exposed to callers."""
        return type(self).__name__

    def _log_error(self) -> None:
        """Log error with appropriate level based on status code."""
        # Imported lazily: the logger reads config, which must not import us back
        from .utils.logger import get_logger

        logger = get_logger()

        log_data = {
            "error_id": self.error_id,
            "error_kind": self.error_kind,
            "error_code": self.error_code.value,
            "status_code": self.status_code,
            "error_message": self.message,
        }
        if "correlation_id" in self.context:
            log_data["correlation_id"] = self.context["correlation_id"]

        if self.status_code >= 500:
            logger.error(f"Error {self.error_code.value}: {self.message}", extra=log_data)
        elif self.status_code >= 400:
            logger.warning(f"Client error {self.error_code.value}: {self.message}", extra=log_data)
        else:
            logger.info(f"Error {self.error_code.value}: {self.message}", extra=log_data)

    def to_dict(
        self, include_cause: bool = False, include_traceback: bool = False
    ) -> Dict[str, Any]:
        """
        Convert to dict for API responses.

        Args:
            include_cause: Include cause information (useful for debugging)
            include_traceback: Include full traceback (only in debug mode)

        Returns:
            Dictionary representation suitable for JSON serialization
        """
        result: Dict[str, Any] = {
            "error": {
                "id": self.error_id,
                "kind": self.error_kind,
                "code": self.error_code.value,
                "message": self.message,
                "timestamp": self.timestamp,
                "context": {
                    k: v
                    for k, v in self.context.items()
                    if k not in ["cause", "error_id", "correlation_id"]
                },
            }
        }

        if "correlation_id" in self.context:
            result["error"]["correlation_id"] = self.context["correlation_id"]

        if include_cause and "cause" in self.context:
            result["error"]["cause"] = {
                "type": self.context["cause"]["type"],
                "message": self.context["cause"]["message"],
            }
            if include_traceback:
                result["error"]["cause"]["traceback"] = self.context["cause"]["traceback"]

        return result

    def add_context(self, **kwargs: Any) -> "BaseError":
        """
        Add additional context to the error (fluent interface).

        Returns:
            Self for method chaining
        """
        self.context.update(kwargs)
        return self

    @property
    def error_chain(self) -> List[Exception]:
        """Get the full chain of errors."""
        chain: List[Exception] = [self]
        current = self.cause
        while current:
            chain.append(current)
            current = getattr(current, "cause", None)
        return chain


class ServiceError(BaseError):
    """Service layer errors."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        operation: Optional[str] = None,
        cause: Optional[Exception] = None,
        **context,
    ):
        """Initialize service error with operation context."""
        if operation:
            context["operation"] = operation
        super().__init__(message, error_code, 500, cause, **context)


class ValidationError(BaseError):
    """Rejected input: a caller argument or an import row that fails pre-dispatch checks."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        row_index: Optional[int] = None,
        reason: Optional[str] = None,
        error_code: ErrorCode = ErrorCode.VALIDATION_FAILED,
        cause: Optional[Exception] = None,
        **context,
    ):
        self.field = field
        self.row_index = row_index
        self.reason = reason or message
        if field:
            context["field"] = field
        if row_index is not None:
            context["row_index"] = row_index
        super().__init__(message, error_code, 400, cause, **context)


class NotFoundError(BaseError):
    """Raised when a credential or job lookup misses (or belongs to another owner)."""

    def __init__(self, message: str = "Resource not found", **kwargs):
        super().__init__(message=message, error_code=ErrorCode.NOT_FOUND, status_code=404, **kwargs)


class ConfigurationError(BaseError):
    """Raised when required OAuth client or application settings are missing."""

    def __init__(self, message: str = "Configuration missing", **kwargs):
        super().__init__(
            message=message, error_code=ErrorCode.CONFIGURATION_ERROR, status_code=500, **kwargs
        )


# ==================== PROVIDER EXCEPTIONS ====================


class OAuthError(BaseError):
    """The provider rejected an authorization code or refresh token."""

    def __init__(self, message: str, body: Optional[str] = None, status: Optional[int] = None, **kwargs):
        self.body = body
        self.status = status
        super().__init__(
            message=message,
            error_code=ErrorCode.OAUTH_FAILED,
            status_code=502,
            provider_status=status,
            provider_body=body,
            **kwargs,
        )


class HostResolutionError(BaseError):
    """The token is invalid/expired or database discovery returned nothing usable."""

    def __init__(self, message: str, body: Optional[str] = None, **kwargs):
        self.body = body
        super().__init__(
            message=message,
            error_code=ErrorCode.HOST_RESOLUTION_FAILED,
            status_code=401,
            provider_body=body,
            **kwargs,
        )


class RequestError(BaseError):
    """Non-retryable client error reported by the provider."""

    def __init__(self, status: int, body: Optional[str] = None, message: Optional[str] = None, **kwargs):
        self.status = status
        self.body = body
        super().__init__(
            message=message or f"Accurate API request failed ({status}): {body or ''}".strip(),
            error_code=kwargs.pop("error_code", ErrorCode.EXTERNAL_API_ERROR),
            status_code=status if 400 <= status < 500 else 400,
            provider_status=status,
            provider_body=body,
            **kwargs,
        )


class RecordRejectedError(RequestError):
    """The provider answered ``s: false`` for a record-level call."""

    def __init__(self, messages: List[str], status: int = 422, **kwargs):
        self.messages = messages or ["Record rejected by Accurate"]
        super().__init__(
            status=status,
            body="; ".join(self.messages),
            message=self.messages[0],
            error_code=ErrorCode.REQUEST_REJECTED,
            **kwargs,
        )


class RateLimitExceededError(BaseError):
    """HTTP 429 persisted after all backoff retries."""

    def __init__(self, message: str = "Accurate rate limit exceeded", attempts: int = 0, **kwargs):
        self.attempts = attempts
        super().__init__(
            message=message,
            error_code=ErrorCode.RATE_LIMITED,
            status_code=429,
            attempts=attempts,
            **kwargs,
        )


class ProviderError(BaseError):
    """5xx, timeout, or connection failure persisted after retries."""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        body: Optional[str] = None,
        attempts: int = 0,
        **kwargs,
    ):
        self.status = status
        self.body = body
        self.attempts = attempts
        super().__init__(
            message=message,
            error_code=ErrorCode.DOWNSTREAM_ERROR,
            status_code=502,
            provider_status=status,
            attempts=attempts,
            **kwargs,
        )


class ExportAbortedError(BaseError):
    """An export stopped mid-pagination; ``rows_exported`` rows were produced first."""

    def __init__(self, message: str, rows_exported: int, cause: Optional[Exception] = None, **kwargs):
        self.rows_exported = rows_exported
        status_code = getattr(cause, "status_code", 502) if cause is not None else 502
        super().__init__(
            message=message,
            error_code=ErrorCode.EXPORT_ABORTED,
            status_code=status_code,
            cause=cause,
            rows_exported=rows_exported,
            **kwargs,
        )


# Factory functions for common error patterns
def not_found(resource_type: str, cause: Optional[Exception] = None, **identifiers) -> NotFoundError:
    """
    Factory for not found errors.

    Args:
        resource_type: Type of resource (e.g., 'Credential', 'ImportJob')
        cause: Original exception if any
        **identifiers: Resource identifiers (e.g., credential_id='123')

    Returns:
        Configured NotFoundError instance
    """
    id_parts = [f"{k}={v}" for k, v in identifiers.items()]
    message = f"{resource_type} not found"
    if id_parts:
        message += f": {', '.join(id_parts)}"

    return NotFoundError(message, cause=cause, resource_type=resource_type, **identifiers)


def validation_failed(
    field: str, value: Any, reason: str, cause: Optional[Exception] = None
) -> ValidationError:
    """
    Factory for caller input validation errors.

    Args:
        field: Field that failed validation
        value: The invalid value
        reason: Why validation failed
        cause: Original exception if any
    """
    return ValidationError(
        f"Validation failed for {field}: {reason}",
        field=field,
        reason=reason,
        cause=cause,
        value=str(value),
    )


def row_invalid(row_index: int, field: str, reason: str) -> ValidationError:
    """Factory for a pre-dispatch import row rejection."""
    return ValidationError(
        f"Row {row_index}: {field}: {reason}",
        field=field,
        row_index=row_index,
        reason=reason,
    )


# Correlation ID management
def set_correlation_id(correlation_id: str) -> None:
    """Set the correlation ID for the current thread."""
    _thread_local.correlation_id = correlation_id


def get_correlation_id() -> Optional[str]:
    """Get the current thread's correlation ID."""
    return getattr(_thread_local, "correlation_id", None)


def clear_correlation_id() -> None:
    """Clear the current thread's correlation ID."""
    if hasattr(_thread_local, "correlation_id"):
        delattr(_thread_local, "correlation_id")
