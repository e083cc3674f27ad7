"""
Composite Risk Module

Combines the five model results into one score and level.

Each scored model is first normalized to [0, 1] on a common "higher is
riskier" scale, then averaged with configurable weights renormalized over
the models that actually scored. Models with insufficient data are left out
of the mean entirely. Serious red flags add a capped adjustment.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from ..config.settings import EngineSettings
from .red_flags import RedFlag, RedFlagKind, summarize_flags
from .results import ModelId, ModelResult, ModelScore, RiskLevel, is_scored

logger = logging.getLogger(__name__)

MODEL_ORDER = (
    ModelId.BENEISH,
    ModelId.ALTMAN,
    ModelId.PIOTROSKI,
    ModelId.FRAUD_TRIANGLE,
    ModelId.BENFORD,
)

# Composite bands on the integer percent score (upper bounds, inclusive)
RISK_BANDS = (
    (25, RiskLevel.LOW),
    (50, RiskLevel.MODERATE),
    (75, RiskLevel.HIGH),
    (100, RiskLevel.CRITICAL),
)

ORDINAL_SCALE = {
    RiskLevel.LOW: 0.0,
    RiskLevel.MODERATE: 0.33,
    RiskLevel.ELEVATED: 0.5,
    RiskLevel.HIGH: 0.67,
    RiskLevel.CRITICAL: 1.0,
}


def level_for_percent(percent: int) -> RiskLevel:
    """Map a 0-100 score to its band: LOW 0-25, MODERATE 26-50, HIGH 51-75, CRITICAL 76-100."""
    for upper, level in RISK_BANDS:
        if percent <= upper:
            return level
    return RiskLevel.CRITICAL


def to_percent(score: float) -> int:
    """Integer percent with half-up rounding."""
    return int(math.floor(score * 100 + 0.5))


class RiskNormalizer:
    """
    Map a model's native score to [0, 1], higher meaning riskier.

    scaled: piecewise-linear anchor tables on each model's own scale, with
    anchors placed at the model's classification thresholds so that the
    thresholds land on 0.25 / 0.5 boundaries.
    ordinal: the classification alone (LOW 0, MODERATE 0.33, ELEVATED 0.5,
    HIGH 0.67, CRITICAL 1.0).
    """

    def __init__(self, settings: Optional[EngineSettings] = None, mode: Optional[str] = None):
        self.settings = settings or EngineSettings()
        self.mode = mode or self.settings.composite.normalization
        if self.mode not in ("scaled", "ordinal"):
            raise ValueError(f"Unknown normalization mode: {self.mode}")

    def anchors(self, model: ModelId) -> Tuple[List[float], List[float]]:
        """(x, y) anchor points for a continuous model."""
        if model is ModelId.BENEISH:
            unlikely = self.settings.beneish.unlikely_threshold
            likely = self.settings.beneish.likely_threshold
            return (
                [unlikely - 0.78, unlikely, likely, likely + 0.28, likely + 0.78],
                [0.0, 0.25, 0.5, 0.75, 1.0],
            )
        if model is ModelId.ALTMAN:
            distress = self.settings.altman.distress_threshold
            safe = self.settings.altman.safe_threshold
            return [distress - 0.81, distress, safe, safe + 1.01], [1.0, 0.5, 0.25, 0.0]
        if model is ModelId.BENFORD:
            low = self.settings.benford.low_threshold
            high = self.settings.benford.high_threshold
            return [0.0, low, high, 2 * high], [0.0, 0.25, 0.5, 1.0]
        raise ValueError(f"{model.value} has no anchor table")

    def normalize(self, result: ModelScore) -> float:
        if self.mode == "ordinal":
            return ORDINAL_SCALE[result.risk_level]

        if result.model is ModelId.PIOTROSKI:
            return (9.0 - result.value) / 9.0
        if result.model is ModelId.FRAUD_TRIANGLE:
            return float(np.clip(result.value, 0.0, 1.0))

        xp, fp = self.anchors(result.model)
        return float(np.interp(result.value, xp, fp))


@dataclass(frozen=True)
class ModelContribution:
    """How one model entered the composite."""

    model: ModelId
    normalized: float
    weight: float

    @property
    def contribution(self) -> float:
        return self.normalized * self.weight

    def to_dict(self) -> Dict[str, float]:
        return {
            "normalized": round(self.normalized, 4),
            "weight": round(self.weight, 4),
            "contribution": round(self.contribution, 4),
        }


@dataclass(frozen=True)
class CompositeRisk:
    """Aggregated risk for one analysis."""

    score: float
    level: RiskLevel
    model_score: float
    flag_adjustment: float
    contributions: Tuple[ModelContribution, ...] = ()
    models_used: Tuple[ModelId, ...] = ()
    models_excluded: Tuple[ModelId, ...] = ()
    low_confidence: bool = False
    summary: str = ""

    @property
    def percent(self) -> int:
        return to_percent(self.score)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level.value,
            "score": round(self.score, 4),
            "percent": self.percent,
            "summary": self.summary,
            "low_confidence": self.low_confidence,
            "model_score": round(self.model_score, 4),
            "flag_adjustment": round(self.flag_adjustment, 4),
            "contributions": {c.model.value: c.to_dict() for c in self.contributions},
            "models_used": [m.value for m in self.models_used],
            "models_excluded": [m.value for m in self.models_excluded],
        }


class CompositeRiskAggregator:
    """
    Weighted composite of model scores plus a red flag adjustment.

    score = min(1, model_score + min(cap, per_flag * serious_flags))

    A pure function of its inputs: the same results and flags always give
    the same composite.
    """

    def __init__(self, settings: Optional[EngineSettings] = None):
        self.settings = settings or EngineSettings()
        self.normalizer = RiskNormalizer(self.settings)

    def aggregate(
        self,
        results: Mapping[ModelId, ModelResult],
        flags: Sequence[RedFlag] = (),
    ) -> CompositeRisk:
        scored = [m for m in MODEL_ORDER if m in results and is_scored(results[m])]
        excluded = tuple(m for m in MODEL_ORDER if m not in scored)

        if not scored:
            logger.warning("No model produced a score; composite is not meaningful")
            return CompositeRisk(
                score=0.0,
                level=RiskLevel.LOW,
                model_score=0.0,
                flag_adjustment=0.0,
                models_excluded=excluded,
                low_confidence=True,
                summary=(
                    "No model could be scored with the available data; "
                    "the composite risk is not meaningful."
                ),
            )

        weights = self._renormalized_weights(scored)
        contributions = tuple(
            ModelContribution(
                model=model,
                normalized=self.normalizer.normalize(results[model]),
                weight=weights[model],
            )
            for model in scored
        )
        model_score = sum(c.contribution for c in contributions)

        composite = self.settings.composite
        serious = sum(1 for flag in flags if flag.is_serious)
        flag_adjustment = min(composite.flag_cap, composite.flag_weight * serious)
        score = min(1.0, model_score + flag_adjustment)

        level = level_for_percent(to_percent(score))
        corroborated = any(f.kind is RedFlagKind.MULTI_MODEL_CORROBORATION for f in flags)
        if corroborated:
            level = RiskLevel.max(level, RiskLevel.HIGH)

        low_confidence = len(scored) < 2
        summary = self._summary(level, score, scored, flags, low_confidence)

        return CompositeRisk(
            score=score,
            level=level,
            model_score=model_score,
            flag_adjustment=flag_adjustment,
            contributions=contributions,
            models_used=tuple(scored),
            models_excluded=excluded,
            low_confidence=low_confidence,
            summary=summary,
        )

    def _renormalized_weights(self, scored: Sequence[ModelId]) -> Dict[ModelId, float]:
        configured = self.settings.composite.weights.as_dict()
        raw = {model: configured[model.value] for model in scored}
        total = sum(raw.values())
        if total <= 0:
            # Every scored model carries zero weight; fall back to equal weights
            return {model: 1.0 / len(scored) for model in scored}
        return {model: weight / total for model, weight in raw.items()}

    def _summary(
        self,
        level: RiskLevel,
        score: float,
        scored: Sequence[ModelId],
        flags: Sequence[RedFlag],
        low_confidence: bool,
    ) -> str:
        parts = [
            f"{level.value} risk ({to_percent(score)}/100) based on "
            f"{len(scored)} of {len(MODEL_ORDER)} models; {summarize_flags(flags)}."
        ]
        if low_confidence:
            parts.append("Low confidence: fewer than two models could be scored.")
        return " ".join(parts)
