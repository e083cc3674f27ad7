"""
FraudLens Logging Configuration

Structured logging with JSON output, analysis correlation ids and
performance tracking for the scoring engine.
"""

import inspect
import json
import logging
import os
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Callable, Dict, Optional, TypeVar

# Correlates every log line emitted while one analysis runs
analysis_id_var: ContextVar[Optional[str]] = ContextVar("analysis_id", default=None)
company_var: ContextVar[Optional[str]] = ContextVar("company", default=None)


# =============================================================================
# Log Level Strategy
# =============================================================================
#
# DEBUG   - Per-model intermediate values
#           - Ratio and proxy breakdowns
#           - Period selection details
#
# INFO    - Analysis start/completion with composite level
#           - Settings loaded
#           - Component initialization
#
# WARNING - Data problems that degrade a result
#           - Model reported insufficient data
#           - Malformed input flagged
#           - Slow analyses
#
# ERROR   - Unexpected calculator failures (converted to insufficient data)
#           - Invalid settings file
# =============================================================================


class StructuredFormatter(logging.Formatter):
    """
    JSON structured log formatter.

    Emits one JSON object per record so analysis logs can be shipped to an
    aggregation system without parsing.
    """

    def __init__(self, service_name: str = "fraudlens", environment: str = "development"):
        super().__init__()
        self.service_name = service_name
        self.environment = environment
        self.hostname = os.uname().nodename

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "level_num": record.levelno,
            "service": self.service_name,
            "environment": self.environment,
            "hostname": self.hostname,
            "logger": record.name,
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
            "analysis_id": analysis_id_var.get(),
            "company": company_var.get(),
            "process_id": record.process,
            "thread_id": record.thread,
        }

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info),
            }

        # Context fields prefixed with ctx_ are included
        for key, value in record.__dict__.items():
            if key.startswith("ctx_"):
                log_data[key[4:]] = value

        log_data = {k: v for k, v in log_data.items() if v is not None}

        return json.dumps(log_data, default=str)


class ConsoleFormatter(logging.Formatter):
    """Human-readable colored formatter for local runs."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.RESET)
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
        analysis_id = analysis_id_var.get()
        id_str = f"[{analysis_id[:8]}]" if analysis_id else ""

        formatted = (
            f"{timestamp} {color}{record.levelname:8}{self.RESET} "
            f"{id_str} {record.name} - {record.getMessage()}"
        )

        extras = [
            f"{key[4:]}={value}"
            for key, value in record.__dict__.items()
            if key.startswith("ctx_")
        ]
        if extras:
            formatted += f" | {', '.join(extras)}"

        if record.exc_info:
            formatted += f"\n{self.formatException(record.exc_info)}"

        return formatted


def configure_logging(
    level: str = "INFO",
    json_format: bool = False,
    service_name: str = "fraudlens",
    environment: str = "development",
    log_file: Optional[str] = None,
) -> None:
    """
    Configure logging for applications embedding the engine.

    The library itself never calls this; it only emits records through
    module loggers.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON structured logging
        service_name: Service name for structured logs
        environment: Environment name (development, staging, production)
        log_file: Optional file path for log output
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()

    if json_format:
        formatter = StructuredFormatter(service_name, environment)
    else:
        formatter = ConsoleFormatter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(StructuredFormatter(service_name, environment))
        root_logger.addHandler(file_handler)

    # numpy/pandas warnings routed through logging are noise here
    logging.getLogger("py.warnings").setLevel(logging.ERROR)


# =============================================================================
# Context Management
# =============================================================================


def set_analysis_context(analysis_id: Optional[str] = None, company: Optional[str] = None) -> str:
    """
    Set analysis context for log correlation.

    Args:
        analysis_id: Analysis ID (generated if not provided)
        company: Optional company label (ticker or name)

    Returns:
        The analysis ID being used
    """
    current_id = analysis_id or str(uuid.uuid4())
    analysis_id_var.set(current_id)
    if company:
        company_var.set(company)
    return current_id


def clear_analysis_context() -> None:
    """Clear analysis context after the report is built."""
    analysis_id_var.set(None)
    company_var.set(None)


def get_analysis_id() -> Optional[str]:
    """Get current analysis ID."""
    return analysis_id_var.get()


# =============================================================================
# Performance Logging Decorator
# =============================================================================

T = TypeVar("T")


def log_performance(
    threshold_ms: float = 1000.0,
    log_args: bool = False,
    log_result: bool = False,
) -> Callable:
    """
    Decorator to log function performance.

    Args:
        threshold_ms: Log warning if execution exceeds this threshold
        log_args: Include function arguments in log
        log_result: Include function result in log

    Example:
        @log_performance(threshold_ms=500)
        def analyze(self, company, periods):
            ...
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        logger = logging.getLogger(func.__module__)

        def _start_extra(args, kwargs) -> Dict[str, Any]:
            extra: Dict[str, Any] = {
                "ctx_function": func.__name__,
                "ctx_operation": "function_call",
            }
            if log_args:
                extra["ctx_args"] = str(args)[:200]
                extra["ctx_kwargs"] = str(kwargs)[:200]
            return extra

        def _log_success(extra: Dict[str, Any], start_time: float, result: Any) -> None:
            duration_ms = (time.perf_counter() - start_time) * 1000
            extra["ctx_duration_ms"] = round(duration_ms, 2)
            extra["ctx_status"] = "success"
            if log_result:
                extra["ctx_result_type"] = type(result).__name__

            if duration_ms > threshold_ms:
                logger.warning(
                    f"Slow operation: {func.__name__} took {duration_ms:.2f}ms",
                    extra=extra,
                )
            else:
                logger.debug(
                    f"Operation completed: {func.__name__} in {duration_ms:.2f}ms",
                    extra=extra,
                )

        def _log_failure(extra: Dict[str, Any], start_time: float, e: BaseException) -> None:
            duration_ms = (time.perf_counter() - start_time) * 1000
            extra["ctx_duration_ms"] = round(duration_ms, 2)
            extra["ctx_status"] = "error"
            extra["ctx_error_type"] = type(e).__name__
            logger.error(
                f"Operation failed: {func.__name__} - {str(e)}",
                extra=extra,
                exc_info=True,
            )

        @wraps(func)
        async def async_wrapper(*args, **kwargs) -> T:
            start_time = time.perf_counter()
            extra = _start_extra(args, kwargs)
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                _log_failure(extra, start_time, e)
                raise
            _log_success(extra, start_time, result)
            return result

        @wraps(func)
        def sync_wrapper(*args, **kwargs) -> T:
            start_time = time.perf_counter()
            extra = _start_extra(args, kwargs)
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                _log_failure(extra, start_time, e)
                raise
            _log_success(extra, start_time, result)
            return result

        if inspect.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator


# =============================================================================
# Structured Log Helpers
# =============================================================================


def log_with_context(logger: logging.Logger, level: int, message: str, **context: Any) -> None:
    """
    Log a message with additional context fields.

    Args:
        logger: Logger instance
        level: Log level (logging.INFO, etc.)
        message: Log message
        **context: Additional context fields
    """
    extra = {f"ctx_{k}": v for k, v in context.items()}
    logger.log(level, message, extra=extra)


# =============================================================================
# Analysis Event Logging
# =============================================================================


class AnalysisLogger:
    """
    Logger for analysis-level events with structured context.

    Keeps the wording and fields of start/finish/model events consistent
    across the sync and async entry points.
    """

    def __init__(self, logger_name: str = "fraudlens.analysis"):
        self.logger = logging.getLogger(logger_name)

    def log_analysis_started(self, company: str, periods: int) -> None:
        """Log the start of an analysis."""
        self.logger.info(
            f"Analysis started for {company} ({periods} periods selected)",
            extra={
                "ctx_event": "analysis_started",
                "ctx_company": company,
                "ctx_periods": periods,
            },
        )

    def log_model_result(
        self,
        model: str,
        scored: bool,
        value: Optional[float] = None,
        risk_level: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> None:
        """Log one model outcome."""
        extra: Dict[str, Any] = {
            "ctx_event": "model_result",
            "ctx_model": model,
            "ctx_scored": scored,
        }
        if scored:
            extra["ctx_value"] = value
            extra["ctx_risk_level"] = risk_level
            self.logger.debug(f"{model}: {value} ({risk_level})", extra=extra)
        else:
            extra["ctx_reason"] = reason
            self.logger.warning(f"{model}: insufficient data - {reason}", extra=extra)

    def log_analysis_complete(
        self,
        company: str,
        level: str,
        score: int,
        duration_ms: float,
        flag_count: int,
        low_confidence: bool = False,
    ) -> None:
        """Log analysis completion."""
        self.logger.info(
            f"Analysis complete for {company}: {level} ({score}/100)",
            extra={
                "ctx_event": "analysis_complete",
                "ctx_company": company,
                "ctx_level": level,
                "ctx_score": score,
                "ctx_flag_count": flag_count,
                "ctx_low_confidence": low_confidence,
                "ctx_duration_ms": round(duration_ms, 2),
            },
        )


analysis_logger = AnalysisLogger()
