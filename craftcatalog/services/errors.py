"""Error handling module for the catalog pipeline.

This module provides:
- Custom exception classes for the failure classes the pipeline distinguishes
  (transient upstream errors, fatal per-item errors, fatal batch errors,
  persistence errors)
- Error classification for the retry policy
- Centralized error handling service with bounded history
"""

import json
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx
import structlog

log = structlog.stdlib.get_logger()


class ErrorCategory(Enum):
    """Categories of errors for classification and handling."""
    NETWORK = "network"
    UPSTREAM = "upstream"
    PAYLOAD = "payload"
    VALIDATION = "validation"
    CONFIGURATION = "configuration"
    PERSISTENCE = "persistence"
    FILE_SYSTEM = "file_system"
    COLLECTION = "collection"
    UNEXPECTED = "unexpected"


class ErrorSeverity(Enum):
    """Severity levels for errors."""
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


@dataclass(frozen=True)
class ErrorContext:
    """Context information for an error."""
    operation: str
    component: str
    details: dict[str, Any]


@dataclass(frozen=True)
class ErrorReport:
    """Structured error representation returned to entrypoints."""
    message: str
    category: ErrorCategory
    severity: ErrorSeverity
    suggested_actions: list[str]
    technical_details: str | None = None
    recoverable: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "category": self.category.value,
            "severity": self.severity.value,
            "recoverable": self.recoverable,
        }


class AppError(Exception):
    """Base exception class for application errors."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNEXPECTED,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        suggested_actions: list[str] | None = None,
        technical_details: str | None = None,
        recoverable: bool = True,
        context: ErrorContext | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.suggested_actions = suggested_actions or []
        self.technical_details = technical_details
        self.recoverable = recoverable
        self.context = context

    def to_report(self) -> ErrorReport:
        """Convert to a structured error report."""
        return ErrorReport(
            message=self.message,
            category=self.category,
            severity=self.severity,
            suggested_actions=self.suggested_actions,
            technical_details=self.technical_details,
            recoverable=self.recoverable,
        )


class NetworkError(AppError):
    """Connectivity failure talking to an upstream source. Transient."""

    def __init__(
        self,
        message: str,
        original_error: Exception | None = None,
        url: str | None = None,
        status_code: int | None = None,
        category: ErrorCategory = ErrorCategory.NETWORK,
        suggested_actions: list[str] | None = None,
    ) -> None:
        technical_details = None
        if original_error:
            technical_details = f"{type(original_error).__name__}: {str(original_error)}"
        if url:
            technical_details = f"URL: {url}" + (f"\n{technical_details}" if technical_details else "")
        if status_code:
            technical_details = f"Status: {status_code}" + (f"\n{technical_details}" if technical_details else "")

        super().__init__(
            message=message,
            category=category,
            severity=ErrorSeverity.ERROR,
            suggested_actions=suggested_actions or [
                "Check network connectivity to the upstream source",
                "Try again in a few moments",
            ],
            technical_details=technical_details,
            recoverable=True,
        )
        self.original_error = original_error
        self.url = url
        self.status_code = status_code


class RateLimitedError(NetworkError):
    """Upstream answered 429 Too Many Requests. Transient."""

    def __init__(self, url: str | None = None, retry_after: float | None = None) -> None:
        super().__init__(
            message="Rate limited by upstream source",
            url=url,
            status_code=429,
            category=ErrorCategory.UPSTREAM,
            suggested_actions=[
                "Wait a few minutes before retrying",
                "Lower the request concurrency or raise the request delay",
            ],
        )
        self.retry_after = retry_after


class UpstreamServerError(NetworkError):
    """Upstream answered with a 5xx status. Transient."""

    def __init__(self, status_code: int, url: str | None = None) -> None:
        super().__init__(
            message=f"Upstream server error: {status_code}",
            url=url,
            status_code=status_code,
            category=ErrorCategory.UPSTREAM,
            suggested_actions=["The upstream source is experiencing issues", "Try again later"],
        )


class UpstreamClientError(NetworkError):
    """Upstream rejected the request with a 4xx status. Fatal for the item."""

    def __init__(self, status_code: int, url: str | None = None) -> None:
        super().__init__(
            message=f"Upstream rejected request: {status_code}",
            url=url,
            status_code=status_code,
            category=ErrorCategory.UPSTREAM,
            suggested_actions=["Check the request parameters", "The item may no longer exist"],
        )
        self.recoverable = False


class PayloadError(AppError):
    """Upstream returned a body that cannot be interpreted. Fatal for the item."""

    def __init__(self, message: str, url: str | None = None, original_error: Exception | None = None) -> None:
        technical_details = f"URL: {url}" if url else None
        if original_error:
            technical_details = (technical_details or "") + f"\nError: {type(original_error).__name__}: {str(original_error)}"
        super().__init__(
            message=message,
            category=ErrorCategory.PAYLOAD,
            severity=ErrorSeverity.WARNING,
            suggested_actions=["The upstream response format may have changed"],
            technical_details=technical_details,
            recoverable=False,
        )
        self.url = url
        self.original_error = original_error


class ValidationError(AppError):
    """Exception for validation-related errors."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        value: Any = None,
        constraints: list[str] | None = None,
    ) -> None:
        suggested_actions = ["Review the input requirements"]
        if constraints:
            suggested_actions.extend([f"Ensure: {c}" for c in constraints])

        technical_details = None
        if field:
            technical_details = f"Field: {field}"
        if value is not None:
            value_str = str(value)[:100]
            technical_details = (technical_details or "") + f"\nValue: {value_str}"

        super().__init__(
            message=message,
            category=ErrorCategory.VALIDATION,
            severity=ErrorSeverity.WARNING,
            suggested_actions=suggested_actions,
            technical_details=technical_details,
            recoverable=True,
        )
        self.field = field
        self.value = value
        self.constraints = constraints or []


class ConfigurationError(AppError):
    """Missing credentials or configuration. Aborts the operation before any network call."""

    def __init__(
        self,
        message: str,
        setting: str | None = None,
        expected: str | None = None,
    ) -> None:
        suggested_actions = ["Check the configuration and environment variables"]
        if expected:
            suggested_actions.append(f"Expected: {expected}")

        super().__init__(
            message=message,
            category=ErrorCategory.CONFIGURATION,
            severity=ErrorSeverity.CRITICAL,
            suggested_actions=suggested_actions,
            technical_details=f"Setting: {setting}" if setting else None,
            recoverable=False,
        )
        self.setting = setting
        self.expected = expected


class PersistenceError(AppError):
    """A persisted-store operation failed."""

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        status_code: int | None = None,
        original_error: Exception | None = None,
    ) -> None:
        technical_details = f"Operation: {operation}" if operation else None
        if status_code:
            technical_details = (technical_details or "") + f"\nStatus: {status_code}"
        if original_error:
            technical_details = (technical_details or "") + f"\nError: {type(original_error).__name__}: {str(original_error)}"
        super().__init__(
            message=message,
            category=ErrorCategory.PERSISTENCE,
            severity=ErrorSeverity.ERROR,
            suggested_actions=["Check the store URL and keys", "Check the store service status"],
            technical_details=technical_details,
            recoverable=True,
        )
        self.operation = operation
        self.status_code = status_code
        self.original_error = original_error


class CollectionError(AppError):
    """A whole pipeline stage produced nothing usable."""

    def __init__(self, message: str, stage: str | None = None) -> None:
        super().__init__(
            message=message,
            category=ErrorCategory.COLLECTION,
            severity=ErrorSeverity.ERROR,
            suggested_actions=["Check upstream availability", "Retry on the next scheduled run"],
            technical_details=f"Stage: {stage}" if stage else None,
            recoverable=True,
        )
        self.stage = stage


RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (
    RateLimitedError,
    UpstreamServerError,
    httpx.TransportError,
    ConnectionError,
)


def is_retryable(error: BaseException) -> bool:
    """Classify an error as transient (worth retrying) or fatal.

    Rate limits, 5xx responses and connectivity failures are transient.
    4xx responses, malformed payloads and everything else are fatal.
    """
    if isinstance(error, UpstreamClientError):
        return False
    if isinstance(error, RETRYABLE_ERRORS):
        return True
    # Plain NetworkError wraps connectivity failures
    return type(error) is NetworkError


class ErrorHandlingService:
    """Centralized error handling service.

    Converts arbitrary exceptions to ``AppError``, logs them with full
    technical details, and keeps a bounded history for reporting.
    """

    def __init__(self, max_history_size: int = 100) -> None:
        self._error_history: list[tuple[float, AppError]] = []
        self._max_history_size = max_history_size

    def handle_error(
        self,
        error: Exception,
        operation: str,
        component: str,
        context: dict[str, Any] | None = None,
    ) -> ErrorReport:
        """Handle an error and return a structured report.

        Args:
            error: The exception that occurred
            operation: The operation being performed
            component: The component where the error occurred
            context: Additional context information

        Returns:
            Structured error report
        """
        app_error = self._convert_to_app_error(error, operation, component, context)

        self._log_error(app_error, operation, component, context)

        self._error_history.append((time.time(), app_error))
        if len(self._error_history) > self._max_history_size:
            self._error_history.pop(0)

        return app_error.to_report()

    def _convert_to_app_error(
        self,
        error: Exception,
        operation: str,
        component: str,
        context: dict[str, Any] | None,
    ) -> AppError:
        """Convert a standard exception to an AppError."""
        if isinstance(error, AppError):
            return error

        url = context.get("url") if context else None

        if isinstance(error, httpx.TimeoutException):
            return NetworkError(
                message="The request timed out. The upstream source may be slow or unavailable.",
                original_error=error,
                url=url,
            )
        elif isinstance(error, httpx.RequestError):
            return NetworkError(
                message="A network error occurred talking to the upstream source.",
                original_error=error,
                url=url,
            )
        elif isinstance(error, json.JSONDecodeError):
            return PayloadError("Invalid JSON format. The data could not be parsed.", url=url, original_error=error)
        elif isinstance(error, OSError):
            return AppError(
                message=f"A file system error occurred: {str(error)}",
                category=ErrorCategory.FILE_SYSTEM,
                technical_details=f"Path: {context.get('path')}" if context and context.get("path") else None,
            )
        elif isinstance(error, (ValueError, TypeError)):
            return ValidationError(
                message=str(error),
                field=context.get("field") if context else None,
                value=context.get("value") if context else None,
            )

        return AppError(
            message="An unexpected error occurred.",
            category=ErrorCategory.UNEXPECTED,
            severity=ErrorSeverity.ERROR,
            technical_details=f"{type(error).__name__}: {str(error)}",
            recoverable=True,
            context=ErrorContext(
                operation=operation,
                component=component,
                details=context or {},
            ),
        )

    def _log_error(
        self,
        error: AppError,
        operation: str,
        component: str,
        context: dict[str, Any] | None,
    ) -> None:
        """Log error with full technical details."""
        log_method = log.warning if error.severity == ErrorSeverity.WARNING else log.error

        log_method(
            "Error occurred",
            error_message=error.message,
            category=error.category.value,
            severity=error.severity.value,
            operation=operation,
            component=component,
            technical_details=error.technical_details,
            recoverable=error.recoverable,
            context=context,
        )

    def get_recent_errors(self, count: int = 10) -> list[AppError]:
        """Get the most recent errors from history."""
        recent = self._error_history[-count:] if self._error_history else []
        return [error for _, error in recent]

    def get_error_count_by_category(self) -> dict[ErrorCategory, int]:
        """Get count of errors by category."""
        counts: dict[ErrorCategory, int] = {}
        for _, error in self._error_history:
            counts[error.category] = counts.get(error.category, 0) + 1
        return counts


_error_service: ErrorHandlingService | None = None


def get_error_service() -> ErrorHandlingService:
    """Get the global error handling service instance."""
    global _error_service
    if _error_service is None:
        _error_service = ErrorHandlingService()
    return _error_service


def handle_error(
    error: Exception,
    operation: str,
    component: str,
    context: dict[str, Any] | None = None,
) -> ErrorReport:
    """Convenience function to handle errors using the global service."""
    return get_error_service().handle_error(error, operation, component, context)
