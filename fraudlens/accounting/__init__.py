"""
Accounting Module

Fraud and distress scoring over normalized financial statement facts:
Beneish, Altman, Piotroski, Benford and fraud triangle models, red flags,
composite risk and trends.
"""

from .accounting_analyzer import AnalysisReport, FilingSummary, FraudRiskAnalyzer
from .anomaly_detection import BenfordAnalyzer
from .composite_risk import (
    CompositeRisk,
    CompositeRiskAggregator,
    ModelContribution,
    RiskNormalizer,
    level_for_percent,
)
from .earnings_quality import AltmanZScore, BeneishMScore, PiotroskiFScore
from .financial_facts import (
    Concept,
    DataQualityIssue,
    FactsHistory,
    FilingType,
    FinancialFacts,
    FiscalPeriod,
    IssueCode,
    validate_facts,
)
from .fraud_triangle import FraudTriangleAnalyzer
from .red_flags import RedFlag, RedFlagGenerator, RedFlagKind, RedFlagSeverity
from .results import (
    InsufficientData,
    ModelId,
    ModelResult,
    ModelScore,
    RiskLevel,
    ScoreScale,
    is_scored,
)
from .trends import TrendAnalyzer, TrendDirection, TrendSummary

__all__ = [
    # Core
    "FraudRiskAnalyzer",
    "AnalysisReport",
    "FilingSummary",
    # Facts
    "Concept",
    "DataQualityIssue",
    "FactsHistory",
    "FilingType",
    "FinancialFacts",
    "FiscalPeriod",
    "IssueCode",
    "validate_facts",
    # Results
    "InsufficientData",
    "ModelId",
    "ModelResult",
    "ModelScore",
    "RiskLevel",
    "ScoreScale",
    "is_scored",
    # Models
    "AltmanZScore",
    "BeneishMScore",
    "PiotroskiFScore",
    "BenfordAnalyzer",
    "FraudTriangleAnalyzer",
    # Red Flags
    "RedFlag",
    "RedFlagGenerator",
    "RedFlagKind",
    "RedFlagSeverity",
    # Composite
    "CompositeRisk",
    "CompositeRiskAggregator",
    "ModelContribution",
    "RiskNormalizer",
    "level_for_percent",
    # Trends
    "TrendAnalyzer",
    "TrendDirection",
    "TrendSummary",
]
