"""
FraudLens Core Module

Error taxonomy and exception hierarchy shared by every engine component.
"""

from .errors import (
    AnalysisError,
    ConfigurationError,
    ErrorCategory,
    ErrorCode,
    ErrorCodes,
    ErrorSeverity,
    FraudLensError,
)

__all__ = [
    "AnalysisError",
    "ConfigurationError",
    "ErrorCategory",
    "ErrorCode",
    "ErrorCodes",
    "ErrorSeverity",
    "FraudLensError",
]
