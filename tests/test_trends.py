"""Tests for trend analysis."""
import pytest

from fraudlens.accounting.financial_facts import FactsHistory, FilingType
from fraudlens.accounting.trends import TrendAnalyzer, TrendDirection


class TestTrendAnalyzer:
    """Test trend direction classification."""

    def test_enron_trends(self, enron_history):
        summary = TrendAnalyzer().summarize(enron_history)

        assert summary.revenue_trend is TrendDirection.IMPROVING
        assert summary.income_trend is TrendDirection.IMPROVING
        assert summary.cash_flow_trend is TrendDirection.DECLINING
        # Leverage rose from 0.667 to 0.733
        assert summary.debt_trend is TrendDirection.DECLINING
        assert summary.changes["revenue"] == pytest.approx(0.5)

    def test_stable_within_threshold(self, facts_factory):
        history = FactsHistory(
            [
                facts_factory(2021, {"revenue": 100}),
                facts_factory(2022, {"revenue": 103}),
                facts_factory(2023, {"revenue": 104}),
            ]
        )
        summary = TrendAnalyzer().summarize(history)
        assert summary.revenue_trend is TrendDirection.STABLE

    def test_mean_of_relative_changes(self, facts_factory):
        history = FactsHistory(
            [
                facts_factory(2021, {"net_income": -100}),
                facts_factory(2022, {"net_income": -50}),
                facts_factory(2023, {"net_income": -40}),
            ]
        )
        summary = TrendAnalyzer().summarize(history)
        # (+0.5 + 0.2) / 2, using the absolute prior value as the base
        assert summary.changes["income"] == pytest.approx(0.35)
        assert summary.income_trend is TrendDirection.IMPROVING

    def test_falling_leverage_is_improving(self, facts_factory):
        history = FactsHistory(
            [
                facts_factory(2022, {"total_liabilities": 60, "total_assets": 100}),
                facts_factory(2023, {"total_liabilities": 40, "total_assets": 100}),
            ]
        )
        assert TrendAnalyzer().summarize(history).debt_trend is TrendDirection.IMPROVING

    def test_gap_between_years_is_not_a_change(self, facts_factory):
        history = FactsHistory(
            [
                facts_factory(1997, {"revenue": 100, "total_liabilities": 40, "total_assets": 100}),
                facts_factory(2000, {"revenue": 200, "total_liabilities": 70, "total_assets": 100}),
            ]
        )
        summary = TrendAnalyzer().summarize(history)

        assert summary.revenue_trend is TrendDirection.INSUFFICIENT_DATA
        assert summary.debt_trend is TrendDirection.INSUFFICIENT_DATA
        assert summary.changes["revenue"] is None

    def test_only_contiguous_pairs_count(self, facts_factory):
        history = FactsHistory(
            [
                facts_factory(1997, {"revenue": 10}),
                facts_factory(2000, {"revenue": 100}),
                facts_factory(2001, {"revenue": 90}),
            ]
        )
        summary = TrendAnalyzer().summarize(history)
        assert summary.changes["revenue"] == pytest.approx(-0.1)
        assert summary.revenue_trend is TrendDirection.DECLINING

    def test_single_period(self, single_period_history):
        summary = TrendAnalyzer().summarize(single_period_history)
        assert summary.revenue_trend is TrendDirection.INSUFFICIENT_DATA
        assert summary.to_dict()["revenue_trend"] == "N/A"

    def test_missing_values_skipped(self, facts_factory):
        history = FactsHistory(
            [
                facts_factory(2022, {"revenue": 100}),
                facts_factory(2023, {"revenue": 120}),
            ]
        )
        summary = TrendAnalyzer().summarize(history)
        assert summary.revenue_trend is TrendDirection.IMPROVING
        assert summary.cash_flow_trend is TrendDirection.INSUFFICIENT_DATA
        assert summary.changes["cash_flow"] is None

    def test_zero_prior_value_skipped(self, facts_factory):
        history = FactsHistory(
            [
                facts_factory(2022, {"revenue": 0}),
                facts_factory(2023, {"revenue": 120}),
            ]
        )
        assert TrendAnalyzer().summarize(history).revenue_trend is TrendDirection.INSUFFICIENT_DATA

    def test_quarterly_latest_uses_quarterly_periods(self, facts_factory):
        history = FactsHistory(
            [
                facts_factory(2022, {"revenue": 400}),
                facts_factory(2023, {"revenue": 100}, filing_type=FilingType.QUARTERLY, quarter=1),
                facts_factory(2023, {"revenue": 90}, filing_type=FilingType.QUARTERLY, quarter=2),
            ]
        )
        summary = TrendAnalyzer().summarize(history)
        assert summary.changes["revenue"] == pytest.approx(-0.1)
        assert summary.revenue_trend is TrendDirection.DECLINING

    def test_custom_threshold(self, facts_factory):
        history = FactsHistory(
            [facts_factory(2022, {"revenue": 100}), facts_factory(2023, {"revenue": 103})]
        )
        assert TrendAnalyzer(threshold=0.02).summarize(history).revenue_trend is TrendDirection.IMPROVING

    def test_empty_history(self):
        summary = TrendAnalyzer().summarize(FactsHistory())
        assert summary.debt_trend is TrendDirection.INSUFFICIENT_DATA
