"""
Red Flag Module

Turns model results into human-readable warnings:
- One templated flag per model classified HIGH or MODERATE
- A critical corroboration flag when several models agree
- Data-quality and limited-data notices

Rules are fixed and deterministic; flags are regenerated for every report
and never persisted on their own.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from ..config.settings import EngineSettings
from .financial_facts import DataQualityIssue, IssueCode
from .results import ModelId, ModelResult, ModelScore, RiskLevel, is_scored

logger = logging.getLogger(__name__)

CORROBORATION_MIN_MODELS = 3
FULL_PIOTROSKI_TESTS = 9


class RedFlagSeverity(Enum):
    """Severity levels for red flags."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)


_SEVERITY_ORDER = [
    RedFlagSeverity.LOW,
    RedFlagSeverity.MEDIUM,
    RedFlagSeverity.HIGH,
    RedFlagSeverity.CRITICAL,
]


class RedFlagKind(Enum):
    """Kinds of red flags; values are the report's `type` strings."""

    EARNINGS_MANIPULATION = "EARNINGS_MANIPULATION"
    BANKRUPTCY_RISK = "BANKRUPTCY_RISK"
    WEAK_FUNDAMENTALS = "WEAK_FUNDAMENTALS"
    FRAUD_TRIANGLE = "FRAUD_TRIANGLE"
    BENFORD_ANOMALY = "BENFORD_ANOMALY"
    MULTI_MODEL_CORROBORATION = "MULTI_MODEL_CORROBORATION"
    DATA_QUALITY = "DATA_QUALITY"
    LIMITED_DATA = "LIMITED_DATA"


@dataclass(frozen=True)
class RedFlag:
    """Individual red flag."""

    kind: RedFlagKind
    title: str
    description: str
    severity: RedFlagSeverity
    models: Tuple[ModelId, ...] = ()
    metric_value: Optional[float] = None
    threshold: Optional[float] = None

    @property
    def is_serious(self) -> bool:
        """HIGH or CRITICAL; these count toward the composite adjustment."""
        return self.severity in (RedFlagSeverity.HIGH, RedFlagSeverity.CRITICAL)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind.value,
            "title": self.title,
            "description": self.description,
            "severity": self.severity.value,
            "models": [model.value for model in self.models],
        }


class RedFlagGenerator:
    """
    Derive red flags from the five model results.

    Ordering is severity descending, then rule order (model rules in model
    order, corroboration, limited data, data quality).
    """

    MODEL_ORDER = (
        ModelId.BENEISH,
        ModelId.ALTMAN,
        ModelId.PIOTROSKI,
        ModelId.FRAUD_TRIANGLE,
        ModelId.BENFORD,
    )

    def __init__(self, settings: Optional[EngineSettings] = None):
        self.settings = settings or EngineSettings()

    def generate(self, results: Mapping[ModelId, ModelResult]) -> List[RedFlag]:
        flags: List[RedFlag] = []

        for model in self.MODEL_ORDER:
            result = results.get(model)
            if result is None or not is_scored(result):
                continue
            flag = self._model_flag(result)
            if flag is not None:
                flags.append(flag)

        corroboration = self._corroboration_flag(results)
        if corroboration is not None:
            flags.append(corroboration)

        limited = self._limited_data_flag(results.get(ModelId.PIOTROSKI))
        if limited is not None:
            flags.append(limited)

        flags.extend(self._data_quality_flags(results))

        # sorted() is stable, so rule order breaks severity ties
        ordered = sorted(flags, key=lambda f: f.severity.rank, reverse=True)
        logger.debug(f"Generated {len(ordered)} red flags")
        return ordered

    # -------------------------------------------------------------------------
    # Model rules
    # -------------------------------------------------------------------------

    def _model_flag(self, result: ModelScore) -> Optional[RedFlag]:
        if result.risk_level.at_least(RiskLevel.HIGH):
            severity = RedFlagSeverity.HIGH
        elif result.risk_level is RiskLevel.MODERATE:
            severity = RedFlagSeverity.MEDIUM
        else:
            return None

        builder = {
            ModelId.BENEISH: self._beneish_flag,
            ModelId.ALTMAN: self._altman_flag,
            ModelId.PIOTROSKI: self._piotroski_flag,
            ModelId.FRAUD_TRIANGLE: self._fraud_triangle_flag,
            ModelId.BENFORD: self._benford_flag,
        }[result.model]
        return builder(result, severity)

    def _beneish_flag(self, result: ModelScore, severity: RedFlagSeverity) -> RedFlag:
        m_score = result.value
        if severity is RedFlagSeverity.HIGH:
            threshold = self.settings.beneish.likely_threshold
            title = "Beneish M-Score Above Threshold"
            description = (
                f"M-Score of {m_score:.2f} exceeds the {threshold:.2f} threshold, "
                "indicating likely earnings manipulation."
            )
        else:
            threshold = self.settings.beneish.unlikely_threshold
            title = "Beneish M-Score in Grey Zone"
            description = (
                f"M-Score of {m_score:.2f} is at or above the {threshold:.2f} threshold; "
                "earnings manipulation cannot be ruled out."
            )
        return RedFlag(
            kind=RedFlagKind.EARNINGS_MANIPULATION,
            title=title,
            description=description,
            severity=severity,
            models=(ModelId.BENEISH,),
            metric_value=m_score,
            threshold=threshold,
        )

    def _altman_flag(self, result: ModelScore, severity: RedFlagSeverity) -> RedFlag:
        z_score = result.value
        if severity is RedFlagSeverity.HIGH:
            threshold = self.settings.altman.distress_threshold
            title = "Altman Z-Score in Distress Zone"
            description = (
                f"Z-Score of {z_score:.2f} is below {threshold:.2f}, indicating high "
                "probability of bankruptcy within 2 years."
            )
        else:
            threshold = self.settings.altman.safe_threshold
            title = "Altman Z-Score in Grey Zone"
            description = (
                f"Z-Score of {z_score:.2f} is not above {threshold:.2f}; "
                "financial distress risk is elevated."
            )
        return RedFlag(
            kind=RedFlagKind.BANKRUPTCY_RISK,
            title=title,
            description=description,
            severity=severity,
            models=(ModelId.ALTMAN,),
            metric_value=z_score,
            threshold=threshold,
        )

    def _piotroski_flag(self, result: ModelScore, severity: RedFlagSeverity) -> RedFlag:
        f_score = int(result.value)
        if severity is RedFlagSeverity.HIGH:
            threshold = self.settings.piotroski.weak_max
            title = "Low Piotroski F-Score"
            description = (
                f"F-Score of {f_score} is at or below {threshold}, indicating weak "
                "financial fundamentals."
            )
        else:
            threshold = self.settings.piotroski.moderate_max
            title = "Moderate Piotroski F-Score"
            description = (
                f"F-Score of {f_score} is at or below {threshold}, indicating only "
                "moderate financial strength."
            )
        return RedFlag(
            kind=RedFlagKind.WEAK_FUNDAMENTALS,
            title=title,
            description=description,
            severity=severity,
            models=(ModelId.PIOTROSKI,),
            metric_value=float(f_score),
            threshold=float(threshold),
        )

    def _fraud_triangle_flag(self, result: ModelScore, severity: RedFlagSeverity) -> RedFlag:
        sides = ", ".join(
            f"{side} {score:.2f}"
            for side, score in result.components.items()
            if score is not None
        )
        if severity is RedFlagSeverity.HIGH:
            threshold = self.settings.fraud_triangle.high_threshold
            title = "High Fraud Triangle Risk"
            description = (
                f"Risk score of {result.value:.2f} exceeds the {threshold:.2f} threshold; "
                f"multiple fraud risk factors detected ({sides})."
            )
        else:
            threshold = self.settings.fraud_triangle.moderate_threshold
            title = "Moderate Fraud Triangle Risk"
            description = (
                f"Risk score of {result.value:.2f} exceeds the {threshold:.2f} threshold; "
                f"some fraud risk factors present ({sides})."
            )
        return RedFlag(
            kind=RedFlagKind.FRAUD_TRIANGLE,
            title=title,
            description=description,
            severity=severity,
            models=(ModelId.FRAUD_TRIANGLE,),
            metric_value=result.value,
            threshold=threshold,
        )

    def _benford_flag(self, result: ModelScore, severity: RedFlagSeverity) -> RedFlag:
        if severity is RedFlagSeverity.HIGH:
            threshold = self.settings.benford.high_threshold
            title = "Benford's Law Deviation"
            description = (
                f"Significant deviation ({result.value:.1f}%) from expected digit "
                f"distribution in financial figures (threshold {threshold:.1f}%)."
            )
        else:
            threshold = self.settings.benford.low_threshold
            title = "Borderline Benford's Law Conformity"
            description = (
                f"Deviation of {result.value:.1f}% from expected digit distribution "
                f"is at or above the {threshold:.1f}% threshold and borderline."
            )
        return RedFlag(
            kind=RedFlagKind.BENFORD_ANOMALY,
            title=title,
            description=description,
            severity=severity,
            models=(ModelId.BENFORD,),
            metric_value=result.value,
            threshold=threshold,
        )

    # -------------------------------------------------------------------------
    # Cross-model and data rules
    # -------------------------------------------------------------------------

    def _corroboration_flag(self, results: Mapping[ModelId, ModelResult]) -> Optional[RedFlag]:
        agreeing = tuple(
            model
            for model in self.MODEL_ORDER
            if model in results
            and is_scored(results[model])
            and results[model].risk_level.at_least(RiskLevel.HIGH)
        )
        if len(agreeing) < CORROBORATION_MIN_MODELS:
            return None

        names = ", ".join(model.display_name for model in agreeing)
        return RedFlag(
            kind=RedFlagKind.MULTI_MODEL_CORROBORATION,
            title="Multiple Models Indicate High Risk",
            description=f"{len(agreeing)} of 5 models report high risk: {names}.",
            severity=RedFlagSeverity.CRITICAL,
            models=agreeing,
            metric_value=float(len(agreeing)),
            threshold=float(CORROBORATION_MIN_MODELS),
        )

    def _limited_data_flag(self, result: Optional[ModelResult]) -> Optional[RedFlag]:
        if result is None or not is_scored(result):
            return None
        evaluable = result.details.get("evaluable_tests", FULL_PIOTROSKI_TESTS)
        if evaluable >= FULL_PIOTROSKI_TESTS:
            return None
        return RedFlag(
            kind=RedFlagKind.LIMITED_DATA,
            title="Piotroski F-Score Based on Partial Data",
            description=(
                f"Only {evaluable} of 9 Piotroski tests could be evaluated; "
                "unevaluable tests count as failed."
            ),
            severity=RedFlagSeverity.LOW,
            models=(ModelId.PIOTROSKI,),
            metric_value=float(evaluable),
            threshold=float(FULL_PIOTROSKI_TESTS),
        )

    def _data_quality_flags(self, results: Mapping[ModelId, ModelResult]) -> List[RedFlag]:
        seen: Dict[Tuple[IssueCode, Optional[str], Optional[int]], List[ModelId]] = {}
        issues: Dict[Tuple[IssueCode, Optional[str], Optional[int]], DataQualityIssue] = {}

        for model in self.MODEL_ORDER:
            result = results.get(model)
            if result is None:
                continue
            for issue in result.anomalies:
                key = (issue.code, issue.concept, issue.fiscal_year)
                issues.setdefault(key, issue)
                models = seen.setdefault(key, [])
                if model not in models:
                    models.append(model)

        return [
            RedFlag(
                kind=RedFlagKind.DATA_QUALITY,
                title="Unusual Reported Figures",
                description=issue.message,
                severity=self._issue_severity(issue),
                models=tuple(seen[key]),
            )
            for key, issue in issues.items()
        ]

    @staticmethod
    def _issue_severity(issue: DataQualityIssue) -> RedFlagSeverity:
        if issue.code in (IssueCode.NEGATIVE_VALUE, IssueCode.INCONSISTENT_TOTALS):
            return RedFlagSeverity.MEDIUM
        return RedFlagSeverity.LOW


def summarize_flags(flags: Sequence[RedFlag]) -> str:
    """Short severity breakdown, e.g. '1 critical, 4 high'."""
    if not flags:
        return "no red flags"
    counts: Dict[RedFlagSeverity, int] = {}
    for flag in flags:
        counts[flag.severity] = counts.get(flag.severity, 0) + 1
    return ", ".join(
        f"{counts[severity]} {severity.value}"
        for severity in reversed(_SEVERITY_ORDER)
        if severity in counts
    )
