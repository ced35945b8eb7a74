"""
Error Taxonomy for the Export/Analysis Pipeline

Classifies failures by the stage they come from:
- Configuration: missing credentials, detected at connector construction
- Transport: HTTP/database failures while fetching, wrapped with the source name
- Data: empty datasets, unsupported options, unknown analysis/export kinds
- Output: file system failures while writing exports

Every external call is attempted exactly once; nothing here retries.
"""
from enum import Enum, auto
from dataclasses import dataclass, field
from typing import Optional, Dict, Any
import logging
import traceback

import requests

logger = logging.getLogger(__name__)


class ErrorCategory(Enum):
    """Classification of failure modes."""
    # Configuration
    CONFIGURATION_ERROR = auto()

    # Data retrieval
    AUTHENTICATION_FAILED = auto()
    RATE_LIMITED = auto()
    DATA_SOURCE_UNAVAILABLE = auto()
    DATA_RETRIEVAL_TIMEOUT = auto()

    # Data
    NO_MATCHING_DATA = auto()
    UNSUPPORTED_OPTION = auto()
    INVALID_DATA_TYPE = auto()

    # Output
    FILE_SYSTEM_ERROR = auto()

    UNKNOWN_ERROR = auto()


class ErrorSeverity(Enum):
    """Severity levels for errors."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass
class ClassifiedError:
    """A classified error with context for reporting."""
    category: ErrorCategory
    severity: ErrorSeverity
    message: str

    original_exception: Optional[Exception] = None
    context: Dict[str, Any] = field(default_factory=dict)
    stack_trace: Optional[str] = None
    user_message: Optional[str] = None

    def __post_init__(self):
        if self.original_exception and not self.stack_trace:
            self.stack_trace = ''.join(traceback.format_exception(
                type(self.original_exception),
                self.original_exception,
                self.original_exception.__traceback__
            ))

        if not self.user_message:
            self.user_message = self._generate_user_message()

    def _generate_user_message(self) -> str:
        """Generate a user-facing error line."""
        messages = {
            ErrorCategory.CONFIGURATION_ERROR: f"Configuration problem: {self.message}",
            ErrorCategory.AUTHENTICATION_FAILED: "Unable to authenticate with the data source.",
            ErrorCategory.RATE_LIMITED: "The data source is rate limiting requests. Try again later.",
            ErrorCategory.DATA_RETRIEVAL_TIMEOUT: "The data source did not respond in time.",
            ErrorCategory.NO_MATCHING_DATA: "No data to process.",
        }
        return messages.get(self.category, self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category.name,
            "severity": self.severity.value,
            "message": self.message,
            "user_message": self.user_message,
            "context": self.context,
        }


class ExportAnalysisError(Exception):
    """Base exception for pipeline errors with classification."""

    category = ErrorCategory.UNKNOWN_ERROR
    severity = ErrorSeverity.HIGH

    def __init__(self, message: str, context: Dict[str, Any] = None):
        super().__init__(message)
        self.context = context or {}

    def classify(self) -> ClassifiedError:
        return ClassifiedError(
            category=self.category,
            severity=self.severity,
            message=str(self),
            original_exception=self,
            context=dict(self.context),
        )


class ConfigurationError(ExportAnalysisError):
    """Required credential or setting is missing."""
    category = ErrorCategory.CONFIGURATION_ERROR
    severity = ErrorSeverity.CRITICAL


class SourceExportError(ExportAnalysisError):
    """Fetching from an external source failed."""
    category = ErrorCategory.DATA_SOURCE_UNAVAILABLE


class DataError(ExportAnalysisError):
    """The dataset cannot be processed as requested."""
    category = ErrorCategory.NO_MATCHING_DATA
    severity = ErrorSeverity.MEDIUM


class UnsupportedOptionError(DataError, ValueError):
    """An option value (strategy, format, join type, ...) is not recognized."""
    category = ErrorCategory.UNSUPPORTED_OPTION

    def __init__(self, option: str, value: Any, supported=None):
        supported_text = f" (supported: {', '.join(map(str, supported))})" if supported else ""
        super().__init__(
            f"Unsupported {option}: {value!r}{supported_text}",
            context={"option": option, "value": value},
        )
        self.option = option
        self.value = value


class ExportError(ExportAnalysisError):
    """Writing an output file failed."""
    category = ErrorCategory.FILE_SYSTEM_ERROR


def unsupported(option: str, value: Any, enum_cls) -> UnsupportedOptionError:
    """Build an UnsupportedOptionError listing an Enum's values."""
    return UnsupportedOptionError(option, value, [member.value for member in enum_cls])


def classify_error(
    exception: Exception,
    context: Dict[str, Any] = None,
) -> ClassifiedError:
    """Classify an exception into a structured error."""
    context = context or {}

    if isinstance(exception, ExportAnalysisError):
        classified = exception.classify()
        classified.context.update(context)
        # Transport errors keep their cause; refine the category from it
        cause = exception.__cause__
        if isinstance(exception, SourceExportError) and isinstance(cause, requests.RequestException):
            refined = classify_error(cause, context)
            classified.category = refined.category
            if refined.category != ErrorCategory.DATA_SOURCE_UNAVAILABLE:
                classified.user_message = f"{exception} ({refined.user_message})"
        return classified

    if isinstance(exception, requests.Timeout):
        category, severity = ErrorCategory.DATA_RETRIEVAL_TIMEOUT, ErrorSeverity.MEDIUM
    elif isinstance(exception, requests.HTTPError) and exception.response is not None:
        status = exception.response.status_code
        if status in (401, 403):
            category, severity = ErrorCategory.AUTHENTICATION_FAILED, ErrorSeverity.HIGH
        elif status == 429:
            category, severity = ErrorCategory.RATE_LIMITED, ErrorSeverity.MEDIUM
        else:
            category, severity = ErrorCategory.DATA_SOURCE_UNAVAILABLE, ErrorSeverity.HIGH
    elif isinstance(exception, requests.RequestException):
        category, severity = ErrorCategory.DATA_SOURCE_UNAVAILABLE, ErrorSeverity.HIGH
    elif isinstance(exception, OSError):
        category, severity = ErrorCategory.FILE_SYSTEM_ERROR, ErrorSeverity.HIGH
    elif isinstance(exception, (TypeError, ValueError)):
        category, severity = ErrorCategory.INVALID_DATA_TYPE, ErrorSeverity.MEDIUM
    else:
        category, severity = ErrorCategory.UNKNOWN_ERROR, ErrorSeverity.HIGH

    return ClassifiedError(
        category=category,
        severity=severity,
        message=str(exception),
        original_exception=exception,
        context=context,
    )
