"""
FraudLens Error Handling Module

Structured error codes and the exception hierarchy for the scoring engine.

Only two situations raise: an invalid parameter set or settings file
(ConfigurationError, rejected before any calculator runs) and an internal
failure that must be surfaced (AnalysisError). Missing or unusual input data
is never an exception; it becomes an InsufficientData result or a data
quality flag on the report.
"""

import logging
import traceback
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum, auto
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

# =============================================================================
# Error Code Taxonomy
# =============================================================================


class ErrorCategory(Enum):
    """Top-level error categories."""

    CONFIGURATION = "CONFIGURATION"
    ANALYSIS = "ANALYSIS"


class ErrorSeverity(Enum):
    """Error severity levels for logging."""

    DEBUG = auto()
    INFO = auto()
    WARNING = auto()
    ERROR = auto()
    CRITICAL = auto()


@dataclass(frozen=True)
class ErrorCode:
    """Structured error code with metadata."""

    code: str
    category: ErrorCategory
    severity: ErrorSeverity
    message: str
    user_message: str
    recovery_hint: str = ""

    def __str__(self) -> str:
        return f"{self.category.value}_{self.code}"


class ErrorCodes:
    """Central registry of FraudLens error codes."""

    # Configuration Errors (4xxx)
    CONFIG_INVALID_PARAMETER = ErrorCode(
        code="4004",
        category=ErrorCategory.CONFIGURATION,
        severity=ErrorSeverity.INFO,
        message="Analysis parameter is invalid",
        user_message="One of the analysis parameters is not valid.",
        recovery_hint="window_years must be between 1 and 10 and at least one filing type must be included.",
    )

    CONFIG_INVALID_SETTINGS = ErrorCode(
        code="4010",
        category=ErrorCategory.CONFIGURATION,
        severity=ErrorSeverity.ERROR,
        message="Engine settings are invalid",
        user_message="The scoring engine configuration could not be loaded.",
        recovery_hint="Check thresholds and weights in the settings file.",
    )

    # Analysis Errors (7xxx)
    ANALYSIS_FAILED = ErrorCode(
        code="7001",
        category=ErrorCategory.ANALYSIS,
        severity=ErrorSeverity.ERROR,
        message="Analysis failed unexpectedly",
        user_message="The analysis could not be completed.",
        recovery_hint="Report the issue together with the analysis id.",
    )


# =============================================================================
# Exception Hierarchy
# =============================================================================


class FraudLensError(Exception):
    """
    Base exception for all FraudLens errors.

    Provides structured error information including error codes,
    user-friendly messages, and recovery suggestions.
    """

    def __init__(
        self,
        error_code: ErrorCode,
        detail: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.error_code = error_code
        self.detail = detail
        self.original_error = original_error
        self.context = context or {}
        self.debug_info: Dict[str, Any] = {}
        self.timestamp = datetime.now(timezone.utc)

        if original_error:
            self.debug_info["original_traceback"] = traceback.format_exception(
                type(original_error), original_error, original_error.__traceback__
            )

        super().__init__(self.technical_message)

    @property
    def code(self) -> str:
        """Full error code string."""
        return str(self.error_code)

    @property
    def category(self) -> ErrorCategory:
        return self.error_code.category

    @property
    def severity(self) -> ErrorSeverity:
        return self.error_code.severity

    @property
    def user_message(self) -> str:
        """User-friendly error message."""
        msg = self.error_code.user_message
        if self.detail:
            msg = f"{msg} ({self.detail})"
        return msg

    @property
    def technical_message(self) -> str:
        """Technical error message for logging."""
        msg = f"[{self.code}] {self.error_code.message}"
        if self.detail:
            msg = f"{msg}: {self.detail}"
        return msg

    @property
    def recovery_hint(self) -> str:
        return self.error_code.recovery_hint

    def to_dict(self, include_debug: bool = False) -> Dict[str, Any]:
        """
        Convert error to a dictionary for the reporting layer.

        Args:
            include_debug: Include debug information (for dev mode only)
        """
        result = {
            "code": self.code,
            "category": self.category.value,
            "message": self.user_message,
            "recovery_hint": self.recovery_hint,
            "timestamp": self.timestamp.isoformat(),
        }

        if include_debug:
            result["debug"] = {
                "technical_message": self.technical_message,
                "context": self.context,
                "debug_info": self.debug_info,
            }

        return result

    def log(self) -> None:
        """Log the error with appropriate severity."""
        log_method = getattr(logger, self.severity.name.lower(), logger.error)
        log_method(
            self.technical_message,
            extra={"ctx_error_code": self.code, "ctx_context": self.context},
        )


class ConfigurationError(FraudLensError):
    """Invalid analysis parameters or engine settings."""

    def __init__(
        self,
        detail: str,
        field: Optional[str] = None,
        value: Any = None,
        error_code: ErrorCode = ErrorCodes.CONFIG_INVALID_PARAMETER,
        original_error: Optional[Exception] = None,
    ):
        self.field = field
        self.value = value
        context = {"field": field, "value": _safe_value_repr(value)}
        super().__init__(
            error_code,
            detail=detail,
            original_error=original_error,
            context=context,
        )


class AnalysisError(FraudLensError):
    """Unexpected internal failure while assembling a report."""

    def __init__(
        self,
        detail: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            ErrorCodes.ANALYSIS_FAILED,
            detail=detail,
            original_error=original_error,
            context=context,
        )


def _safe_value_repr(value: Any) -> Optional[str]:
    """Represent an offending value without dumping large objects."""
    if value is None:
        return None
    if isinstance(value, (str, int, float, bool)):
        value_str = str(value)
        if len(value_str) > 100:
            return value_str[:100] + "..."
        return value_str
    return f"<{type(value).__name__}>"


def configuration_error_from_validation(
    exc: Exception,
    error_code: ErrorCode = ErrorCodes.CONFIG_INVALID_PARAMETER,
) -> ConfigurationError:
    """
    Translate a pydantic ValidationError into a ConfigurationError.

    The first reported problem names the field; every problem is kept in
    the detail string.
    """
    errors = exc.errors() if hasattr(exc, "errors") else []
    if not errors:
        return ConfigurationError(str(exc), error_code=error_code, original_error=exc)

    first = errors[0]
    field = ".".join(str(part) for part in first.get("loc", ())) or None
    detail = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ())) or 'value'}: {err.get('msg')}"
        for err in errors
    )
    return ConfigurationError(
        detail,
        field=field,
        value=first.get("input"),
        error_code=error_code,
        original_error=exc,
    )
