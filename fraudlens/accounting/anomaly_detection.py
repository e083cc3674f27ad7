"""
Anomaly Detection Module

Benford's Law analysis of reported figures.

Leading digits of naturally occurring financial figures follow
P(d) = log10(1 + 1/d). Large departures from that distribution across a
company's pooled filings are a classic (weak) signal of fabricated numbers.
"""

import logging
import math
from collections import Counter
from typing import Dict, Iterable, Optional, Tuple

import numpy as np
from scipy import stats

from ..config.settings import BenfordSettings
from .financial_facts import FactsHistory
from .results import InsufficientData, ModelId, ModelResult, ModelScore, RiskLevel, ScoreScale

logger = logging.getLogger(__name__)

DIGITS = range(1, 10)


class BenfordAnalyzer:
    """Analyze financial data against Benford's Law."""

    # Benford's Law expected first-digit distribution
    BENFORD_DISTRIBUTION: Dict[int, float] = {d: math.log10(1 + 1 / d) for d in DIGITS}

    def __init__(self, settings: Optional[BenfordSettings] = None):
        self.settings = settings or BenfordSettings()

    def calculate(self, history: FactsHistory) -> ModelResult:
        """Pool every non-zero fact value across the selected periods."""
        return self.analyze_values(history.all_values())

    def analyze_values(self, values: Iterable[float]) -> ModelResult:
        """
        Compare the leading-digit distribution of `values` with Benford's Law.

        Returns:
            ModelScore whose value is the total absolute deviation in
            percentage points, or InsufficientData below the minimum sample
        """
        first_digits = [self._get_first_digit(v) for v in values]
        first_digits = [d for d in first_digits if d is not None]
        total = len(first_digits)

        if total < self.settings.min_sample:
            return InsufficientData(
                model=ModelId.BENFORD,
                missing=("leading digits",),
                reason=f"sample of {total} values is below the minimum of {self.settings.min_sample}",
            )

        observed_counts = Counter(first_digits)
        observed = np.array([observed_counts.get(d, 0) for d in DIGITS], dtype=float)
        expected_share = np.array([self.BENFORD_DISTRIBUTION[d] for d in DIGITS])
        observed_share = observed / total

        deviation = float(np.abs(observed_share - expected_share).sum() * 100)

        # Chi-square is informational only; classification uses the deviation
        chi_square, p_value = stats.chisquare(observed, f_exp=expected_share * total)

        risk_level, label = self.classify(deviation)
        logger.debug(f"Benford deviation {deviation:.2f}pp over {total} values ({label})")

        return ModelScore(
            model=ModelId.BENFORD,
            value=deviation,
            scale=ScoreScale.PERCENT,
            risk_level=risk_level,
            label=label,
            details={
                "suspicious": risk_level is RiskLevel.HIGH,
                "sample_size": total,
                "chi_square": float(chi_square),
                "p_value": float(p_value),
                "observed_distribution": {d: float(s) for d, s in zip(DIGITS, observed_share)},
                "expected_distribution": dict(self.BENFORD_DISTRIBUTION),
            },
        )

    def classify(self, deviation: float) -> Tuple[RiskLevel, str]:
        if deviation < self.settings.low_threshold:
            return RiskLevel.LOW, "Normal"
        if deviation > self.settings.high_threshold:
            return RiskLevel.HIGH, "Anomaly Detected"
        return RiskLevel.MODERATE, "Borderline"

    def _get_first_digit(self, number: float) -> Optional[int]:
        """First significant digit, or None for zero and non-finite values."""
        if number is None or not math.isfinite(number) or number == 0:
            return None
        return int(f"{abs(number):.14e}"[0])
