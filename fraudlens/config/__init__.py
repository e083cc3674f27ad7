"""
FraudLens Configuration Module

Engine settings, structured logging and in-process metrics.
"""

from .logging import (
    analysis_logger,
    clear_analysis_context,
    configure_logging,
    get_analysis_id,
    log_performance,
    set_analysis_context,
)
from .metrics import MetricNames, engine_metrics, get_metrics
from .settings import (
    AltmanSettings,
    BeneishSettings,
    BenfordSettings,
    CompositeSettings,
    EngineSettings,
    FraudTriangleSettings,
    ModelWeights,
    PiotroskiSettings,
    load_settings,
    settings_from_dict,
)

__all__ = [
    # Logging
    "analysis_logger",
    "clear_analysis_context",
    "configure_logging",
    "get_analysis_id",
    "log_performance",
    "set_analysis_context",
    # Metrics
    "MetricNames",
    "engine_metrics",
    "get_metrics",
    # Settings
    "AltmanSettings",
    "BeneishSettings",
    "BenfordSettings",
    "CompositeSettings",
    "EngineSettings",
    "FraudTriangleSettings",
    "ModelWeights",
    "PiotroskiSettings",
    "load_settings",
    "settings_from_dict",
]
