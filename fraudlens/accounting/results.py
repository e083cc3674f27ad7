"""
Model Results

Every model returns either a ModelScore or an InsufficientData value.
Insufficient data is never encoded as a sentinel number, so it cannot leak
into the composite mean.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Tuple, Union

import numpy as np

from .financial_facts import DataQualityIssue


class RiskLevel(Enum):
    """Discrete risk levels, ordered from least to most severe."""

    LOW = "LOW"
    MODERATE = "MODERATE"
    ELEVATED = "ELEVATED"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _RISK_ORDER.index(self)

    def at_least(self, other: "RiskLevel") -> bool:
        return self.rank >= other.rank

    @classmethod
    def max(cls, *levels: "RiskLevel") -> "RiskLevel":
        return max(levels, key=lambda level: level.rank)


_RISK_ORDER = [
    RiskLevel.LOW,
    RiskLevel.MODERATE,
    RiskLevel.ELEVATED,
    RiskLevel.HIGH,
    RiskLevel.CRITICAL,
]


class ModelId(Enum):
    """The five scoring models; values are the report's JSON keys."""

    BENEISH = "beneish"
    ALTMAN = "altman"
    PIOTROSKI = "piotroski"
    FRAUD_TRIANGLE = "fraud_triangle"
    BENFORD = "benford"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @property
    def value_key(self) -> str:
        """JSON key holding the model's headline number."""
        return _VALUE_KEYS[self]


_DISPLAY_NAMES = {
    ModelId.BENEISH: "Beneish M-Score",
    ModelId.ALTMAN: "Altman Z-Score",
    ModelId.PIOTROSKI: "Piotroski F-Score",
    ModelId.FRAUD_TRIANGLE: "Fraud Triangle",
    ModelId.BENFORD: "Benford's Law",
}

_VALUE_KEYS = {
    ModelId.BENEISH: "m_score",
    ModelId.ALTMAN: "z_score",
    ModelId.PIOTROSKI: "f_score",
    ModelId.FRAUD_TRIANGLE: "risk_score",
    ModelId.BENFORD: "deviation",
}


class ScoreScale(Enum):
    """Native scale of a model's headline number."""

    CONTINUOUS = "continuous"
    ORDINAL_0_9 = "ordinal_0_9"
    UNIT_INTERVAL = "unit_interval"
    PERCENT = "percent"


def _jsonable(value: Any) -> Any:
    """Plain JSON-friendly copy of a result payload."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    if isinstance(value, (int, np.integer)):
        return int(value)
    if isinstance(value, (float, np.floating)):
        return round(float(value), 4)
    if isinstance(value, Mapping):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


@dataclass(frozen=True)
class ModelScore:
    """A computed model score with its classification."""

    model: ModelId
    value: float
    scale: ScoreScale
    risk_level: RiskLevel
    label: str
    components: Mapping[str, Any] = field(default_factory=dict)
    details: Mapping[str, Any] = field(default_factory=dict)
    anomalies: Tuple[DataQualityIssue, ...] = ()

    @property
    def scored(self) -> bool:
        return True

    def to_dict(self) -> Dict[str, Any]:
        value = int(self.value) if self.scale is ScoreScale.ORDINAL_0_9 else self.value
        result: Dict[str, Any] = {
            "status": "scored",
            self.model.value_key: _jsonable(value),
            "risk_level": self.risk_level.value,
            "label": self.label,
        }
        result.update(_jsonable(self.components))
        result.update(_jsonable(self.details))
        if self.anomalies:
            result["anomalies"] = [issue.to_dict() for issue in self.anomalies]
        return result


@dataclass(frozen=True)
class InsufficientData:
    """A model could not be computed; `missing` names what was lacking."""

    model: ModelId
    missing: Tuple[str, ...] = ()
    reason: str = "insufficient data"
    anomalies: Tuple[DataQualityIssue, ...] = ()

    @property
    def scored(self) -> bool:
        return False

    @property
    def risk_level(self) -> None:
        return None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "status": "insufficient_data",
            self.model.value_key: None,
            "risk_level": None,
            "reason": self.reason,
            "missing": list(self.missing),
        }
        if self.anomalies:
            result["anomalies"] = [issue.to_dict() for issue in self.anomalies]
        return result


ModelResult = Union[ModelScore, InsufficientData]


def is_scored(result: ModelResult) -> bool:
    """True when the result carries a computed score."""
    return isinstance(result, ModelScore)
