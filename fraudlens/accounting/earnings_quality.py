"""
Earnings Quality Module

Earnings quality and financial distress models:
- Beneish M-Score for earnings manipulation detection
- Altman Z-Score for bankruptcy prediction
- Piotroski F-Score for financial strength

Each calculator is a pure function of a FactsHistory and returns either a
ModelScore or InsufficientData. A ratio that cannot be computed is never
replaced by a neutral value.
"""

import logging
from typing import Dict, List, Optional, Tuple

from ..config.settings import AltmanSettings, BeneishSettings, PiotroskiSettings
from .financial_facts import Concept, FactsHistory, FinancialFacts
from .results import InsufficientData, ModelId, ModelResult, ModelScore, RiskLevel, ScoreScale

logger = logging.getLogger(__name__)

PAIR_REQUIRED = "requires two contiguous fiscal periods"


def _ratio(numerator: Optional[float], denominator: Optional[float]) -> Optional[float]:
    """numerator / denominator, or None when either is absent or the denominator is zero."""
    if numerator is None or denominator is None or denominator == 0:
        return None
    return numerator / denominator


def _gross_margin(facts: FinancialFacts) -> Optional[float]:
    revenue = facts.get(Concept.REVENUE)
    cogs = facts.get(Concept.COST_OF_GOODS_SOLD)
    if revenue is None or cogs is None:
        return None
    return _ratio(revenue - cogs, revenue)


def _missing_concepts(
    concepts: Tuple[Concept, ...], *periods: FinancialFacts
) -> List[Tuple[Concept, int]]:
    return [
        (concept, facts.period.fiscal_year)
        for facts in periods
        for concept in facts.missing(concepts)
    ]


def _describe_missing(missing: List[Tuple[Concept, int]]) -> Tuple[Tuple[str, ...], str]:
    names = tuple(dict.fromkeys(concept.value for concept, _ in missing))
    where = ", ".join(f"{concept.value} (FY{year})" for concept, year in missing)
    return names, f"missing {where}"


class BeneishMScore:
    """
    Calculate Beneish M-Score for earnings manipulation detection.

    M-Score > -1.78 suggests likely earnings manipulation.

    Formula:
    M = -4.84 + 0.920*DSRI + 0.528*GMI + 0.404*AQI + 0.892*SGI +
        0.115*DEPI - 0.172*SGAI + 4.679*TATA - 0.327*LVGI

    Components (t = current period, t-1 = prior period):
    - DSRI: Days Sales in Receivables Index  (Rec_t/Rev_t) / (Rec_t-1/Rev_t-1)
    - GMI: Gross Margin Index                GM_t-1 / GM_t
    - AQI: Asset Quality Index               [1 - (CA+PPE)/TA]_t / [1 - (CA+PPE)/TA]_t-1
    - SGI: Sales Growth Index                Rev_t / Rev_t-1
    - DEPI: Depreciation Index               [Dep/(Dep+PPE)]_t-1 / [Dep/(Dep+PPE)]_t
    - SGAI: SG&A Expense Index               (SGA_t/Rev_t) / (SGA_t-1/Rev_t-1)
    - LVGI: Leverage Index                   (TL_t/TA_t) / (TL_t-1/TA_t-1)
    - TATA: Total Accruals to Total Assets   (NI_t - CFO_t) / TA_t

    With every index at 1.0 and TATA at 0 the score is -2.48.
    """

    INTERCEPT = -4.84
    COEFFICIENTS = {
        "dsri": 0.920,
        "gmi": 0.528,
        "aqi": 0.404,
        "sgi": 0.892,
        "depi": 0.115,
        "sgai": -0.172,
        "lvgi": -0.327,
        "tata": 4.679,
    }

    # Concepts each index reads from both periods
    PAIR_CONCEPTS: Dict[str, Tuple[Concept, ...]] = {
        "dsri": (Concept.RECEIVABLES, Concept.REVENUE),
        "gmi": (Concept.REVENUE, Concept.COST_OF_GOODS_SOLD),
        "aqi": (Concept.CURRENT_ASSETS, Concept.PPE, Concept.TOTAL_ASSETS),
        "sgi": (Concept.REVENUE,),
        "depi": (Concept.DEPRECIATION, Concept.PPE),
        "sgai": (Concept.SGA, Concept.REVENUE),
        "lvgi": (Concept.TOTAL_LIABILITIES, Concept.TOTAL_ASSETS),
    }
    TATA_CONCEPTS = (
        Concept.NET_INCOME,
        Concept.CASH_FLOW_FROM_OPERATIONS,
        Concept.TOTAL_ASSETS,
    )

    def __init__(self, settings: Optional[BeneishSettings] = None):
        self.settings = settings or BeneishSettings()

    @property
    def required_concepts(self) -> Tuple[Concept, ...]:
        concepts = [c for group in self.PAIR_CONCEPTS.values() for c in group]
        return tuple(dict.fromkeys(concepts + list(self.TATA_CONCEPTS)))

    def calculate(self, history: FactsHistory) -> ModelResult:
        """
        Calculate the M-Score from the latest contiguous pair of periods.

        Returns:
            ModelScore, or InsufficientData naming missing concepts or
            undefined ratios
        """
        pair = history.latest_pair()
        if pair is None:
            return InsufficientData(model=ModelId.BENEISH, reason=PAIR_REQUIRED)
        prior, current = pair

        anomalies = tuple(
            prior.anomalies_for(self.required_concepts)
            + current.anomalies_for(self.required_concepts)
        )

        missing: List[Tuple[Concept, int]] = []
        for concepts in self.PAIR_CONCEPTS.values():
            missing.extend(_missing_concepts(concepts, prior, current))
        missing.extend(_missing_concepts(self.TATA_CONCEPTS, current))
        missing = list(dict.fromkeys(missing))
        if missing:
            names, reason = _describe_missing(missing)
            return InsufficientData(
                model=ModelId.BENEISH, missing=names, reason=reason, anomalies=anomalies
            )

        components = {
            "dsri": self._calculate_dsri(prior, current),
            "gmi": self._calculate_gmi(prior, current),
            "aqi": self._calculate_aqi(prior, current),
            "sgi": self._calculate_sgi(prior, current),
            "depi": self._calculate_depi(prior, current),
            "sgai": self._calculate_sgai(prior, current),
            "lvgi": self._calculate_lvgi(prior, current),
            "tata": self._calculate_tata(current),
        }
        undefined = tuple(name.upper() for name, value in components.items() if value is None)
        if undefined:
            return InsufficientData(
                model=ModelId.BENEISH,
                missing=undefined,
                reason=f"undefined ratio (zero denominator): {', '.join(undefined)}",
                anomalies=anomalies,
            )

        m_score = self.score(components)
        risk_level, label = self.classify(m_score)
        logger.debug(f"M-Score {m_score:.3f} ({label}) from {components}")

        return ModelScore(
            model=ModelId.BENEISH,
            value=m_score,
            scale=ScoreScale.CONTINUOUS,
            risk_level=risk_level,
            label=label,
            components=components,
            details={
                "is_likely_manipulator": risk_level is RiskLevel.HIGH,
                "periods": [prior.period.label, current.period.label],
            },
            anomalies=anomalies,
        )

    def score(self, components: Dict[str, float]) -> float:
        """Apply the published coefficients to a full set of components."""
        return self.INTERCEPT + sum(
            coefficient * components[name] for name, coefficient in self.COEFFICIENTS.items()
        )

    def classify(self, m_score: float) -> Tuple[RiskLevel, str]:
        if m_score < self.settings.unlikely_threshold:
            return RiskLevel.LOW, "Unlikely Manipulator"
        if m_score <= self.settings.likely_threshold:
            return RiskLevel.MODERATE, "Grey Zone"
        return RiskLevel.HIGH, "Likely Manipulator"

    def _calculate_dsri(self, prior: FinancialFacts, current: FinancialFacts) -> Optional[float]:
        """Days Sales in Receivables Index."""
        return _ratio(
            _ratio(current.get(Concept.RECEIVABLES), current.get(Concept.REVENUE)),
            _ratio(prior.get(Concept.RECEIVABLES), prior.get(Concept.REVENUE)),
        )

    def _calculate_gmi(self, prior: FinancialFacts, current: FinancialFacts) -> Optional[float]:
        """Gross Margin Index."""
        return _ratio(_gross_margin(prior), _gross_margin(current))

    def _calculate_aqi(self, prior: FinancialFacts, current: FinancialFacts) -> Optional[float]:
        """Asset Quality Index."""

        def soft_asset_share(facts: FinancialFacts) -> Optional[float]:
            hard = facts.get(Concept.CURRENT_ASSETS) + facts.get(Concept.PPE)
            share = _ratio(hard, facts.get(Concept.TOTAL_ASSETS))
            return None if share is None else 1 - share

        return _ratio(soft_asset_share(current), soft_asset_share(prior))

    def _calculate_sgi(self, prior: FinancialFacts, current: FinancialFacts) -> Optional[float]:
        """Sales Growth Index."""
        return _ratio(current.get(Concept.REVENUE), prior.get(Concept.REVENUE))

    def _calculate_depi(self, prior: FinancialFacts, current: FinancialFacts) -> Optional[float]:
        """Depreciation Index."""

        def depreciation_rate(facts: FinancialFacts) -> Optional[float]:
            dep = facts.get(Concept.DEPRECIATION)
            return _ratio(dep, dep + facts.get(Concept.PPE))

        return _ratio(depreciation_rate(prior), depreciation_rate(current))

    def _calculate_sgai(self, prior: FinancialFacts, current: FinancialFacts) -> Optional[float]:
        """SG&A Expense Index."""
        return _ratio(
            _ratio(current.get(Concept.SGA), current.get(Concept.REVENUE)),
            _ratio(prior.get(Concept.SGA), prior.get(Concept.REVENUE)),
        )

    def _calculate_lvgi(self, prior: FinancialFacts, current: FinancialFacts) -> Optional[float]:
        """Leverage Index."""
        return _ratio(
            _ratio(current.get(Concept.TOTAL_LIABILITIES), current.get(Concept.TOTAL_ASSETS)),
            _ratio(prior.get(Concept.TOTAL_LIABILITIES), prior.get(Concept.TOTAL_ASSETS)),
        )

    def _calculate_tata(self, current: FinancialFacts) -> Optional[float]:
        """Total Accruals to Total Assets."""
        accruals = current.get(Concept.NET_INCOME) - current.get(Concept.CASH_FLOW_FROM_OPERATIONS)
        return _ratio(accruals, current.get(Concept.TOTAL_ASSETS))


class AltmanZScore:
    """
    Calculate Altman Z-Score for bankruptcy prediction.

    Original public-company model:
    Z = 1.2*A + 1.4*B + 3.3*C + 0.6*D + 1.0*E

    Where:
    A = Working Capital / Total Assets
    B = Retained Earnings / Total Assets
    C = EBIT / Total Assets
    D = Market Value of Equity / Total Liabilities
    E = Sales / Total Assets

    Zones (both grey boundaries are inclusive):
    - Safe Zone: Z > 2.99
    - Grey Zone: 1.81 <= Z <= 2.99
    - Distress Zone: Z < 1.81
    """

    COEFFICIENTS = {
        "working_capital_to_assets": 1.2,
        "retained_earnings_to_assets": 1.4,
        "ebit_to_assets": 3.3,
        "equity_to_liabilities": 0.6,
        "sales_to_assets": 1.0,
    }

    REQUIRED_CONCEPTS = (
        Concept.CURRENT_ASSETS,
        Concept.CURRENT_LIABILITIES,
        Concept.TOTAL_ASSETS,
        Concept.RETAINED_EARNINGS,
        Concept.EBIT,
        Concept.MARKET_VALUE_OF_EQUITY,
        Concept.TOTAL_LIABILITIES,
        Concept.REVENUE,
    )

    def __init__(self, settings: Optional[AltmanSettings] = None):
        self.settings = settings or AltmanSettings()

    def calculate(self, history: FactsHistory) -> ModelResult:
        """Calculate the Z-Score on the most recent period only."""
        latest = history.latest()
        if latest is None:
            return InsufficientData(model=ModelId.ALTMAN, reason="no periods selected")
        return self.calculate_period(latest)

    def calculate_period(self, facts: FinancialFacts) -> ModelResult:
        """Z-Score for a single period's facts."""
        anomalies = tuple(facts.anomalies_for(self.REQUIRED_CONCEPTS))
        missing = _missing_concepts(self.REQUIRED_CONCEPTS, facts)
        if missing:
            names, reason = _describe_missing(missing)
            return InsufficientData(
                model=ModelId.ALTMAN, missing=names, reason=reason, anomalies=anomalies
            )

        total_assets = facts.get(Concept.TOTAL_ASSETS)
        working_capital = facts.get(Concept.CURRENT_ASSETS) - facts.get(Concept.CURRENT_LIABILITIES)
        components = {
            "working_capital_to_assets": _ratio(working_capital, total_assets),
            "retained_earnings_to_assets": _ratio(facts.get(Concept.RETAINED_EARNINGS), total_assets),
            "ebit_to_assets": _ratio(facts.get(Concept.EBIT), total_assets),
            "equity_to_liabilities": _ratio(
                facts.get(Concept.MARKET_VALUE_OF_EQUITY), facts.get(Concept.TOTAL_LIABILITIES)
            ),
            "sales_to_assets": _ratio(facts.get(Concept.REVENUE), total_assets),
        }
        undefined = tuple(name for name, value in components.items() if value is None)
        if undefined:
            return InsufficientData(
                model=ModelId.ALTMAN,
                missing=undefined,
                reason=f"undefined ratio (zero denominator): {', '.join(undefined)}",
                anomalies=anomalies,
            )

        z_score = sum(
            coefficient * components[name] for name, coefficient in self.COEFFICIENTS.items()
        )
        risk_level, zone = self.classify(z_score)
        logger.debug(f"Z-Score {z_score:.3f} ({zone}) for {facts.period.label}")

        return ModelScore(
            model=ModelId.ALTMAN,
            value=z_score,
            scale=ScoreScale.CONTINUOUS,
            risk_level=risk_level,
            label=zone,
            components=components,
            details={"zone": zone, "period": facts.period.label},
            anomalies=anomalies,
        )

    def classify(self, z_score: float) -> Tuple[RiskLevel, str]:
        if z_score > self.settings.safe_threshold:
            return RiskLevel.LOW, "Safe"
        if z_score >= self.settings.distress_threshold:
            return RiskLevel.MODERATE, "Grey"
        return RiskLevel.HIGH, "Distress"


class PiotroskiFScore:
    """
    Calculate Piotroski F-Score for financial strength.

    9 binary signals (1 point each), current period against prior:

    Profitability:
    1. ROA > 0
    2. Operating Cash Flow > 0
    3. Change in ROA > 0
    4. Accruals (CFO > Net Income)

    Leverage/Liquidity:
    5. Change in Leverage (TL/TA) < 0
    6. Change in Current Ratio > 0
    7. No share dilution

    Operating Efficiency:
    8. Change in Gross Margin > 0
    9. Change in Asset Turnover > 0

    A signal that cannot be evaluated counts as failed; the number of
    evaluable signals is reported alongside the score.

    Score interpretation:
    - 7-9: Strong
    - 4-6: Moderate
    - 0-3: Weak
    """

    TESTS = (
        "roa_positive",
        "cfo_positive",
        "roa_improving",
        "cfo_exceeds_net_income",
        "leverage_declining",
        "current_ratio_improving",
        "no_dilution",
        "gross_margin_improving",
        "asset_turnover_improving",
    )

    REQUIRED_CONCEPTS = (
        Concept.NET_INCOME,
        Concept.TOTAL_ASSETS,
        Concept.CASH_FLOW_FROM_OPERATIONS,
        Concept.TOTAL_LIABILITIES,
        Concept.CURRENT_ASSETS,
        Concept.CURRENT_LIABILITIES,
        Concept.SHARES_OUTSTANDING,
        Concept.REVENUE,
        Concept.COST_OF_GOODS_SOLD,
    )

    def __init__(self, settings: Optional[PiotroskiSettings] = None):
        self.settings = settings or PiotroskiSettings()

    def calculate(self, history: FactsHistory) -> ModelResult:
        pair = history.latest_pair()
        if pair is None:
            return InsufficientData(model=ModelId.PIOTROSKI, reason=PAIR_REQUIRED)
        prior, current = pair

        anomalies = tuple(
            prior.anomalies_for(self.REQUIRED_CONCEPTS)
            + current.anomalies_for(self.REQUIRED_CONCEPTS)
        )

        signals: Dict[str, Optional[bool]] = {
            "roa_positive": self._roa_positive(current),
            "cfo_positive": self._cfo_positive(current),
            "roa_improving": self._roa_improving(prior, current),
            "cfo_exceeds_net_income": self._cfo_exceeds_net_income(current),
            "leverage_declining": self._leverage_declining(prior, current),
            "current_ratio_improving": self._current_ratio_improving(prior, current),
            "no_dilution": self._no_dilution(prior, current),
            "gross_margin_improving": self._gross_margin_improving(prior, current),
            "asset_turnover_improving": self._asset_turnover_improving(prior, current),
        }

        unevaluable = [name for name, signal in signals.items() if signal is None]
        evaluable = len(self.TESTS) - len(unevaluable)
        if evaluable == 0:
            missing = _missing_concepts(self.REQUIRED_CONCEPTS, prior, current)
            names, reason = _describe_missing(missing) if missing else ((), "no signal could be evaluated")
            return InsufficientData(
                model=ModelId.PIOTROSKI, missing=names, reason=reason, anomalies=anomalies
            )

        f_score = sum(1 for signal in signals.values() if signal)
        risk_level, label = self.classify(f_score)
        logger.debug(f"F-Score {f_score}/9 ({label}), {evaluable} signals evaluable")

        return ModelScore(
            model=ModelId.PIOTROSKI,
            value=float(f_score),
            scale=ScoreScale.ORDINAL_0_9,
            risk_level=risk_level,
            label=label,
            details={
                "tests": {name: bool(signal) for name, signal in signals.items()},
                "evaluable_tests": evaluable,
                "unevaluable": unevaluable,
            },
            anomalies=anomalies,
        )

    def classify(self, f_score: int) -> Tuple[RiskLevel, str]:
        if f_score <= self.settings.weak_max:
            return RiskLevel.HIGH, "Weak"
        if f_score <= self.settings.moderate_max:
            return RiskLevel.MODERATE, "Moderate"
        return RiskLevel.LOW, "Strong"

    @staticmethod
    def _greater(left: Optional[float], right: Optional[float]) -> Optional[bool]:
        if left is None or right is None:
            return None
        return left > right

    def _roa(self, facts: FinancialFacts) -> Optional[float]:
        return _ratio(facts.get(Concept.NET_INCOME), facts.get(Concept.TOTAL_ASSETS))

    def _roa_positive(self, current: FinancialFacts) -> Optional[bool]:
        """ROA > 0."""
        return self._greater(self._roa(current), 0.0)

    def _cfo_positive(self, current: FinancialFacts) -> Optional[bool]:
        """Operating Cash Flow > 0."""
        return self._greater(current.get(Concept.CASH_FLOW_FROM_OPERATIONS), 0.0)

    def _roa_improving(self, prior: FinancialFacts, current: FinancialFacts) -> Optional[bool]:
        """Change in ROA > 0."""
        return self._greater(self._roa(current), self._roa(prior))

    def _cfo_exceeds_net_income(self, current: FinancialFacts) -> Optional[bool]:
        """Accruals quality: CFO > Net Income."""
        return self._greater(
            current.get(Concept.CASH_FLOW_FROM_OPERATIONS), current.get(Concept.NET_INCOME)
        )

    def _leverage_declining(self, prior: FinancialFacts, current: FinancialFacts) -> Optional[bool]:
        """Change in TL/TA < 0."""
        return self._greater(
            _ratio(prior.get(Concept.TOTAL_LIABILITIES), prior.get(Concept.TOTAL_ASSETS)),
            _ratio(current.get(Concept.TOTAL_LIABILITIES), current.get(Concept.TOTAL_ASSETS)),
        )

    def _current_ratio_improving(
        self, prior: FinancialFacts, current: FinancialFacts
    ) -> Optional[bool]:
        """Change in Current Ratio > 0."""
        return self._greater(
            _ratio(current.get(Concept.CURRENT_ASSETS), current.get(Concept.CURRENT_LIABILITIES)),
            _ratio(prior.get(Concept.CURRENT_ASSETS), prior.get(Concept.CURRENT_LIABILITIES)),
        )

    def _no_dilution(self, prior: FinancialFacts, current: FinancialFacts) -> Optional[bool]:
        """Shares outstanding did not increase."""
        shares_now = current.get(Concept.SHARES_OUTSTANDING)
        shares_before = prior.get(Concept.SHARES_OUTSTANDING)
        if shares_now is None or shares_before is None:
            return None
        return shares_now <= shares_before

    def _gross_margin_improving(
        self, prior: FinancialFacts, current: FinancialFacts
    ) -> Optional[bool]:
        """Change in Gross Margin > 0."""
        return self._greater(_gross_margin(current), _gross_margin(prior))

    def _asset_turnover_improving(
        self, prior: FinancialFacts, current: FinancialFacts
    ) -> Optional[bool]:
        """Change in Asset Turnover > 0."""
        return self._greater(
            _ratio(current.get(Concept.REVENUE), current.get(Concept.TOTAL_ASSETS)),
            _ratio(prior.get(Concept.REVENUE), prior.get(Concept.TOTAL_ASSETS)),
        )
