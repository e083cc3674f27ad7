"""
Fraud Triangle Module

Numeric proxies for Cressey's fraud triangle:
- Pressure: deteriorating margins, high or rising leverage, cash burn
- Opportunity: rapid asset growth, hard-to-verify assets, receivables build-up
- Rationalization: aggressive accruals, earnings not backed by cash

Each proxy is scaled to [0, 1] against a saturation point. A side of the
triangle is the mean of its available proxies; the risk score is the
weighted mean of the available sides.
"""

import logging
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np

from ..config.settings import FraudTriangleSettings
from .financial_facts import Concept, FactsHistory, FinancialFacts
from .results import InsufficientData, ModelId, ModelResult, ModelScore, RiskLevel, ScoreScale

logger = logging.getLogger(__name__)

# Saturation points: a proxy reaches 1.0 at these levels
MARGIN_DECLINE_SATURATION = 0.20
LEVERAGE_FLOOR = 0.40
LEVERAGE_SPAN = 0.40
LEVERAGE_INCREASE_SATURATION = 0.10
CASH_BURN_SATURATION = 0.05
ASSET_GROWTH_SATURATION = 0.50
SOFT_ASSET_FLOOR = 0.10
SOFT_ASSET_SPAN = 0.40
RECEIVABLES_SATURATION = 0.50
ACCRUAL_SATURATION = 0.10


def _clip(value: Optional[float]) -> Optional[float]:
    if value is None:
        return None
    return float(np.clip(value, 0.0, 1.0))


def _div(numerator: Optional[float], denominator: Optional[float]) -> Optional[float]:
    if numerator is None or denominator is None or denominator == 0:
        return None
    return numerator / denominator


def _leverage(facts: Optional[FinancialFacts]) -> Optional[float]:
    if facts is None:
        return None
    return _div(facts.get(Concept.TOTAL_LIABILITIES), facts.get(Concept.TOTAL_ASSETS))


def _gross_margin(facts: Optional[FinancialFacts]) -> Optional[float]:
    if facts is None:
        return None
    revenue = facts.get(Concept.REVENUE)
    cogs = facts.get(Concept.COST_OF_GOODS_SOLD)
    if revenue is None or cogs is None:
        return None
    return _div(revenue - cogs, revenue)


def _accruals(facts: FinancialFacts) -> Optional[float]:
    net_income = facts.get(Concept.NET_INCOME)
    cfo = facts.get(Concept.CASH_FLOW_FROM_OPERATIONS)
    if net_income is None or cfo is None:
        return None
    return net_income - cfo


# -----------------------------------------------------------------------------
# Pressure proxies
# -----------------------------------------------------------------------------


def margin_decline(prior: Optional[FinancialFacts], current: FinancialFacts) -> Optional[float]:
    before, now = _gross_margin(prior), _gross_margin(current)
    if before is None or now is None or before <= 0:
        return None
    return _clip((before - now) / before / MARGIN_DECLINE_SATURATION)


def leverage_level(prior: Optional[FinancialFacts], current: FinancialFacts) -> Optional[float]:
    lev = _leverage(current)
    if lev is None:
        return None
    return _clip((lev - LEVERAGE_FLOOR) / LEVERAGE_SPAN)


def leverage_increase(prior: Optional[FinancialFacts], current: FinancialFacts) -> Optional[float]:
    before, now = _leverage(prior), _leverage(current)
    if before is None or now is None:
        return None
    return _clip((now - before) / LEVERAGE_INCREASE_SATURATION)


def cash_burn(prior: Optional[FinancialFacts], current: FinancialFacts) -> Optional[float]:
    cfo = current.get(Concept.CASH_FLOW_FROM_OPERATIONS)
    burn = _div(cfo, current.get(Concept.TOTAL_ASSETS))
    if burn is None:
        return None
    if cfo >= 0:
        return 0.0
    return _clip(-burn / CASH_BURN_SATURATION)


# -----------------------------------------------------------------------------
# Opportunity proxies
# -----------------------------------------------------------------------------


def asset_growth(prior: Optional[FinancialFacts], current: FinancialFacts) -> Optional[float]:
    if prior is None:
        return None
    growth = _div(current.get(Concept.TOTAL_ASSETS), prior.get(Concept.TOTAL_ASSETS))
    if growth is None:
        return None
    return _clip((growth - 1) / ASSET_GROWTH_SATURATION)


def soft_assets(prior: Optional[FinancialFacts], current: FinancialFacts) -> Optional[float]:
    total_assets = current.get(Concept.TOTAL_ASSETS)
    current_assets = current.get(Concept.CURRENT_ASSETS)
    ppe = current.get(Concept.PPE)
    if total_assets is None or current_assets is None or ppe is None:
        return None
    share = _div(total_assets - current_assets - ppe, total_assets)
    if share is None:
        return None
    return _clip((share - SOFT_ASSET_FLOOR) / SOFT_ASSET_SPAN)


def receivables_buildup(prior: Optional[FinancialFacts], current: FinancialFacts) -> Optional[float]:
    if prior is None:
        return None
    dsri = _div(
        _div(current.get(Concept.RECEIVABLES), current.get(Concept.REVENUE)),
        _div(prior.get(Concept.RECEIVABLES), prior.get(Concept.REVENUE)),
    )
    if dsri is None:
        return None
    return _clip((dsri - 1) / RECEIVABLES_SATURATION)


# -----------------------------------------------------------------------------
# Rationalization proxies
# -----------------------------------------------------------------------------


def accrual_ratio(prior: Optional[FinancialFacts], current: FinancialFacts) -> Optional[float]:
    ratio = _div(_accruals(current), current.get(Concept.TOTAL_ASSETS))
    if ratio is None:
        return None
    return _clip(ratio / ACCRUAL_SATURATION)


def earnings_cash_gap(prior: Optional[FinancialFacts], current: FinancialFacts) -> Optional[float]:
    accruals = _accruals(current)
    if accruals is None:
        return None
    net_income = current.get(Concept.NET_INCOME)
    if net_income <= 0:
        return 0.0
    return _clip(accruals / net_income)


Proxy = Callable[[Optional[FinancialFacts], FinancialFacts], Optional[float]]

PROXIES: Dict[str, Dict[str, Proxy]] = {
    "pressure": {
        "margin_decline": margin_decline,
        "leverage_level": leverage_level,
        "leverage_increase": leverage_increase,
        "cash_burn": cash_burn,
    },
    "opportunity": {
        "asset_growth": asset_growth,
        "soft_assets": soft_assets,
        "receivables_buildup": receivables_buildup,
    },
    "rationalization": {
        "accrual_ratio": accrual_ratio,
        "earnings_cash_gap": earnings_cash_gap,
    },
}

PROXY_CONCEPTS = (
    Concept.REVENUE,
    Concept.COST_OF_GOODS_SOLD,
    Concept.TOTAL_LIABILITIES,
    Concept.TOTAL_ASSETS,
    Concept.CASH_FLOW_FROM_OPERATIONS,
    Concept.CURRENT_ASSETS,
    Concept.PPE,
    Concept.RECEIVABLES,
    Concept.NET_INCOME,
)


class FraudTriangleAnalyzer:
    """
    Score pressure, opportunity and rationalization from numeric proxies.

    Pair-based proxies (margin decline, leverage increase, asset growth,
    receivables build-up) need two contiguous periods; the rest use the
    latest period alone, so a single-period company can still be scored.
    """

    def __init__(self, settings: Optional[FraudTriangleSettings] = None):
        self.settings = settings or FraudTriangleSettings()

    @property
    def weights(self) -> Dict[str, float]:
        return {
            "pressure": self.settings.pressure_weight,
            "opportunity": self.settings.opportunity_weight,
            "rationalization": self.settings.rationalization_weight,
        }

    def calculate(self, history: FactsHistory) -> ModelResult:
        current = history.latest()
        if current is None:
            return InsufficientData(model=ModelId.FRAUD_TRIANGLE, reason="no periods selected")

        pair = history.latest_pair()
        prior = pair[0] if pair else None

        proxies: Dict[str, Dict[str, Optional[float]]] = {
            side: {name: proxy(prior, current) for name, proxy in side_proxies.items()}
            for side, side_proxies in PROXIES.items()
        }
        sub_scores = {side: self._mean(values.values()) for side, values in proxies.items()}
        available = {side: score for side, score in sub_scores.items() if score is not None}

        anomalies = tuple(current.anomalies_for(PROXY_CONCEPTS))
        if prior is not None:
            anomalies = tuple(prior.anomalies_for(PROXY_CONCEPTS)) + anomalies

        if not available:
            missing = [c.value for c in current.missing(PROXY_CONCEPTS)]
            return InsufficientData(
                model=ModelId.FRAUD_TRIANGLE,
                missing=tuple(missing),
                reason="no fraud triangle proxy could be computed",
                anomalies=anomalies,
            )

        weights = self.weights
        total_weight = sum(weights[side] for side in available)
        risk_score = sum(weights[side] * score for side, score in available.items()) / total_weight
        risk_level, label = self.classify(risk_score)
        logger.debug(f"Fraud triangle {risk_score:.3f} ({label}) from {sub_scores}")

        return ModelScore(
            model=ModelId.FRAUD_TRIANGLE,
            value=risk_score,
            scale=ScoreScale.UNIT_INTERVAL,
            risk_level=risk_level,
            label=label,
            components=sub_scores,
            details={
                "sub_scores_available": len(available),
                "proxies": proxies,
                "pair_available": prior is not None,
            },
            anomalies=anomalies,
        )

    def classify(self, risk_score: float) -> Tuple[RiskLevel, str]:
        if risk_score > self.settings.high_threshold:
            return RiskLevel.HIGH, "High Risk"
        if risk_score > self.settings.moderate_threshold:
            return RiskLevel.MODERATE, "Moderate Risk"
        return RiskLevel.LOW, "Low Risk"

    @staticmethod
    def _mean(values) -> Optional[float]:
        present: List[float] = [v for v in values if v is not None]
        if not present:
            return None
        return float(np.mean(present))
