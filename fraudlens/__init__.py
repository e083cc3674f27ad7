"""
FraudLens - Financial statement fraud risk scoring.

Scores a company's reported financials with the Beneish M-Score, Altman
Z-Score, Piotroski F-Score, Benford's Law and fraud triangle proxies, and
combines them into one risk level with red flags and a recommendation.
"""

__version__ = "0.1.0"

from .accounting import (
    AnalysisReport,
    FactsHistory,
    FilingType,
    FinancialFacts,
    FiscalPeriod,
    FraudRiskAnalyzer,
    ModelId,
    RiskLevel,
)
from .config import EngineSettings, configure_logging, load_settings
from .core import AnalysisError, ConfigurationError, FraudLensError
from .validation import AnalysisParameters, CompanyIdentity

__all__ = [
    "__version__",
    "AnalysisReport",
    "AnalysisParameters",
    "CompanyIdentity",
    "FactsHistory",
    "FilingType",
    "FinancialFacts",
    "FiscalPeriod",
    "FraudRiskAnalyzer",
    "ModelId",
    "RiskLevel",
    "EngineSettings",
    "configure_logging",
    "load_settings",
    "AnalysisError",
    "ConfigurationError",
    "FraudLensError",
]
