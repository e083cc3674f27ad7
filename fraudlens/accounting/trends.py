"""
Trend Analysis Module

Period-over-period direction of revenue, income, operating cash flow and
leverage across the selected window.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

import numpy as np
import pandas as pd

from .financial_facts import Concept, FactsHistory

logger = logging.getLogger(__name__)

# Mean relative change beyond +/- 5% is a trend
TREND_THRESHOLD = 0.05


class TrendDirection(Enum):
    """Direction of a metric over the window."""

    IMPROVING = "IMPROVING"
    STABLE = "STABLE"
    DECLINING = "DECLINING"
    INSUFFICIENT_DATA = "N/A"


@dataclass(frozen=True)
class TrendSummary:
    """Trend directions for the report."""

    revenue_trend: TrendDirection
    income_trend: TrendDirection
    cash_flow_trend: TrendDirection
    debt_trend: TrendDirection
    changes: Dict[str, Optional[float]]

    def to_dict(self) -> Dict[str, str]:
        return {
            "revenue_trend": self.revenue_trend.value,
            "income_trend": self.income_trend.value,
            "cash_flow_trend": self.cash_flow_trend.value,
            "debt_trend": self.debt_trend.value,
        }


class TrendAnalyzer:
    """
    Classify trends from the mean relative period-over-period change.

    change_t = (x_t - x_t-1) / |x_t-1|, averaged over contiguous periods
    where both values are present and the prior value is non-zero. A pair
    separated by a reporting gap contributes no change.
    Leverage (TL/TA) is inverted: rising leverage is DECLINING.
    """

    def __init__(self, threshold: float = TREND_THRESHOLD):
        self.threshold = threshold

    def summarize(self, history: FactsHistory) -> TrendSummary:
        latest = history.latest()
        if latest is not None:
            # Annual and quarterly figures are not comparable period to period
            history = history.of_kind(latest.period.filing_type.base)
        frame = history.to_frame()
        periods = history.periods
        contiguous = pd.Series(
            [i > 0 and period.follows(periods[i - 1]) for i, period in enumerate(periods)],
            index=frame.index,
            dtype=bool,
        )

        revenue = self._mean_change(frame[Concept.REVENUE.value], contiguous)
        income = self._mean_change(frame[Concept.NET_INCOME.value], contiguous)
        cash_flow = self._mean_change(frame[Concept.CASH_FLOW_FROM_OPERATIONS.value], contiguous)

        total_assets = frame[Concept.TOTAL_ASSETS.value].replace(0, np.nan)
        leverage = self._mean_change(
            frame[Concept.TOTAL_LIABILITIES.value] / total_assets, contiguous
        )

        changes = {
            "revenue": revenue,
            "income": income,
            "cash_flow": cash_flow,
            "leverage": leverage,
        }
        logger.debug(f"Trend changes: {changes}")

        return TrendSummary(
            revenue_trend=self._direction(revenue),
            income_trend=self._direction(income),
            cash_flow_trend=self._direction(cash_flow),
            debt_trend=self._direction(None if leverage is None else -leverage),
            changes=changes,
        )

    def _mean_change(self, series: pd.Series, contiguous: pd.Series) -> Optional[float]:
        prior = series.shift(1)
        valid = contiguous & series.notna() & prior.notna() & (prior != 0)
        if not valid.any():
            return None
        relative = (series[valid] - prior[valid]) / prior[valid].abs()
        return float(relative.mean())

    def _direction(self, change: Optional[float]) -> TrendDirection:
        if change is None:
            return TrendDirection.INSUFFICIENT_DATA
        if change > self.threshold:
            return TrendDirection.IMPROVING
        if change < -self.threshold:
            return TrendDirection.DECLINING
        return TrendDirection.STABLE
