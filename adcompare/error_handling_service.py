"""
Error Handling Service
Error taxonomy for date resolution and period execution, plus centralized
error processing and user-friendly error messages.
"""

import traceback
from datetime import datetime
from typing import Any, Optional

import structlog

from .config_service import ConfigService

logger = structlog.get_logger(__name__)

LOG_LEVELS = ("debug", "info", "warning", "error", "critical")


class ErrorCategory:
    """Error categories for classification."""
    SYSTEM = "SYSTEM"
    DATA = "DATA"
    VALIDATION = "VALIDATION"
    API = "API"
    AI_EXTRACTION = "AI_EXTRACTION"
    EXECUTION = "EXECUTION"


class AdCompareError(Exception):
    """Base class for errors raised by the comparison core."""

    category: str = ErrorCategory.SYSTEM


class UnresolvableDateRange(AdCompareError):
    """No strategy produced the number of date ranges the request needs."""

    category = ErrorCategory.VALIDATION

    def __init__(self, query: str, required: int = 1, found: int = 0):
        self.query = query
        self.required = required
        self.found = found
        self.accepted_formats = list(ConfigService.ACCEPTED_DATE_FORMATS)
        if required >= 2:
            message = (
                "Could not extract two date ranges for comparison. "
                "Please specify clear date ranges."
            )
        else:
            message = "Could not determine a date range from your query."
        super().__init__(message)

    @property
    def remediation(self) -> str:
        formats = ", ".join(f'"{f}"' for f in self.accepted_formats)
        return f"Try one of these formats: {formats}."

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": str(self),
            "remediation": self.remediation,
            "accepted_formats": self.accepted_formats,
            "example": ConfigService.COMPARISON_EXAMPLE if self.required >= 2 else "last 7 days",
        }


class HallucinatedDateRejected(AdCompareError):
    """An AI-extracted date has no evidence in the source query."""

    category = ErrorCategory.AI_EXTRACTION

    def __init__(self, candidate: str, reason: str):
        self.candidate = candidate
        self.reason = reason
        super().__init__(f"Rejected AI date '{candidate}': {reason}")


class MalformedAIResponse(AdCompareError):
    """The LLM answer could not be parsed into the expected shape."""

    category = ErrorCategory.AI_EXTRACTION

    def __init__(self, message: str, raw: Optional[str] = None):
        self.raw = raw
        super().__init__(message)


class PeriodExecutionFailure(AdCompareError):
    """Downstream execution failed for one period."""

    category = ErrorCategory.EXECUTION

    def __init__(self, label: str, cause: BaseException):
        self.label = label
        self.cause = cause
        super().__init__(str(cause) or type(cause).__name__)


class ErrorHandlingService:
    """Service for centralized error handling and processing."""

    @staticmethod
    def process_error(
        error: Exception,
        context: str = "",
        category: Optional[str] = None,
        user_message: Optional[str] = None,
        details: Optional[dict[str, Any]] = None
    ) -> dict[str, Any]:
        """
        Process and structure an error for logging and user display.

        Args:
            error: The exception that occurred
            context: Context where error occurred (e.g., "execute_period")
            category: Error category (defaults to the error's own category)
            user_message: Optional user-friendly message override
            details: Additional error details

        Returns:
            Dictionary with error information
        """
        error_type = type(error).__name__
        if category is None:
            category = getattr(error, "category", ErrorCategory.SYSTEM)

        if not user_message:
            user_message = ErrorHandlingService._generate_user_message(error, error_type, context)

        return {
            "message": str(error),
            "user_message": user_message,
            "type": error_type,
            "context": context,
            "category": category,
            "timestamp": datetime.now().isoformat(),
            "details": details or {},
            "stack_trace": "".join(
                traceback.format_exception(type(error), error, error.__traceback__)
            ) if error.__traceback__ else "",
        }

    @staticmethod
    def _generate_user_message(error: Exception, error_type: str, context: str) -> str:
        """
        Generate user-friendly error message based on error type.

        Args:
            error: The exception
            error_type: Type name of the exception
            context: Context where error occurred

        Returns:
            User-friendly error message
        """
        if isinstance(error, UnresolvableDateRange):
            return f"{error} {error.remediation}"

        if isinstance(error, (MalformedAIResponse, HallucinatedDateRejected)):
            return "The AI date extraction could not be trusted for this query."

        error_msg = str(error).lower()

        if any(keyword in error_msg for keyword in [
            'timeout', 'connection', 'network', 'reset by peer', 'unavailable'
        ]):
            return "The data service could not be reached. Please try again."

        if any(keyword in error_msg for keyword in [
            'token', 'unauthorized', 'permission', 'credential'
        ]):
            return "The data service rejected the request credentials."

        type_messages = {
            'KeyError': "A required data field is missing.",
            'ValueError': "Invalid data value detected. Please check your input.",
            'TypeError': "Data type mismatch in the returned rows.",
        }

        return type_messages.get(
            error_type,
            f"An error occurred while {context or 'processing the request'}."
        )

    @staticmethod
    def log_error(
        error_info: dict[str, Any] | str | Exception,
        category: str = ErrorCategory.SYSTEM,
        log_level: str = "ERROR"
    ) -> None:
        """
        Log error information.

        Args:
            error_info: Error dictionary from process_error, or error message string, or Exception
            category: Error category (if error_info is string/Exception)
            log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        """
        if isinstance(error_info, Exception):
            error_info = ErrorHandlingService.process_error(
                error_info,
                context="unknown",
                category=category
            )
        elif isinstance(error_info, str):
            error_info = {
                "message": error_info,
                "type": "Error",
                "context": "unknown",
                "category": category,
                "timestamp": datetime.now().isoformat(),
                "details": {},
                "stack_trace": ""
            }

        level = log_level.lower()
        if level not in LOG_LEVELS:
            level = "error"

        log = getattr(logger, level)
        log(
            f"[{error_info['category']}] {error_info['context']}: {error_info['message']}",
            error_type=error_info['type'],
            details=error_info.get('details', {}),
        )
        if error_info.get('stack_trace') and level in ("error", "critical"):
            logger.debug("Stack trace", stack_trace=error_info['stack_trace'])

    @staticmethod
    def display_error(error_info: dict[str, Any], show_details: bool = False) -> str:
        """
        Generate error message for user display.

        Args:
            error_info: Error dictionary from process_error
            show_details: Whether to include technical details (for debugging)

        Returns:
            Formatted error message for display
        """
        message = error_info.get('user_message') or error_info['message']

        if show_details and error_info.get('details'):
            details_str = ", ".join([
                f"{k}: {v}" for k, v in error_info['details'].items()
            ])
            return f"{message} ({details_str})"

        return message


# Singleton instance
_error_handling_service = ErrorHandlingService()

def get_error_handler() -> ErrorHandlingService:
    """Get the error handling service instance."""
    return _error_handling_service
