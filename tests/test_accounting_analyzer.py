"""Integration tests for the fraud risk analyzer."""
import asyncio
import logging
import time
from datetime import date

import pytest

from fraudlens.accounting.accounting_analyzer import AnalysisReport, FraudRiskAnalyzer
from fraudlens.accounting.financial_facts import (
    Concept,
    FactsHistory,
    FilingType,
    FiscalPeriod,
    IssueCode,
)
from fraudlens.accounting.red_flags import RedFlagKind, RedFlagSeverity
from fraudlens.accounting.results import InsufficientData, ModelId, ModelScore, RiskLevel
from fraudlens.accounting.trends import TrendDirection
from fraudlens.config.logging import get_analysis_id
from fraudlens.config.metrics import MetricNames, engine_metrics, get_metrics
from fraudlens.config.settings import EngineSettings
from fraudlens.core.errors import ConfigurationError
from fraudlens.validation.models import AnalysisParameters, CompanyIdentity

from .conftest import ENRON_FY1999, ENRON_FY2000, HEALTHY_FY2022, HEALTHY_FY2023

COMPANY_PERIODS = {
    "ENRNQ": ((1999, ENRON_FY1999), (2000, ENRON_FY2000)),
    "STDY": ((2022, HEALTHY_FY2022), (2023, HEALTHY_FY2023)),
}

# One case per (company, period, reported concept)
MISSING_CONCEPT_CASES = [
    pytest.param(ticker, index, key, id=f"{ticker}-{year}-{key}")
    for ticker, periods in COMPANY_PERIODS.items()
    for index, (year, values) in enumerate(periods)
    for key in values
]


def comparable(report: AnalysisReport):
    """Report dict without the per-run id and timestamp."""
    data = report.to_dict()
    data.pop("analysis_id")
    data.pop("generated_at")
    return data


@pytest.fixture
def analyzer():
    return FraudRiskAnalyzer()


class TestFraudRiskAnalyzer:
    """End-to-end analysis of known company profiles."""

    def test_enron_is_critical(self, analyzer, enron_history):
        report = analyzer.analyze("ENRNQ", enron_history)

        assert report.risk_level is RiskLevel.CRITICAL
        assert report.composite.percent == 97
        assert report.filings_analyzed == 2
        assert report.recommendation.startswith("CRITICAL RISK: Multiple fraud indicators detected")

    def test_enron_model_results(self, analyzer, enron_history):
        report = analyzer.analyze("ENRNQ", enron_history)

        assert report.result(ModelId.BENEISH).value == pytest.approx(-1.418148, abs=1e-5)
        assert report.result(ModelId.ALTMAN).value == pytest.approx(1.250333, abs=1e-5)
        assert report.result(ModelId.PIOTROSKI).value == 2
        assert report.result(ModelId.FRAUD_TRIANGLE).value == pytest.approx(0.749613, abs=1e-5)
        assert report.result(ModelId.BENFORD).risk_level is RiskLevel.HIGH

    def test_enron_red_flags(self, analyzer, enron_history):
        flags = analyzer.analyze("ENRNQ", enron_history).red_flags

        assert flags[0].kind is RedFlagKind.MULTI_MODEL_CORROBORATION
        assert [f.severity for f in flags].count(RedFlagSeverity.HIGH) == 5
        assert len(flags[0].models) == 5
        titles = {f.title for f in flags}
        assert "Beneish M-Score Above Threshold" in titles
        assert "Altman Z-Score in Distress Zone" in titles
        assert "Low Piotroski F-Score" in titles
        assert "High Fraud Triangle Risk" in titles
        assert "Benford's Law Deviation" in titles

    def test_enron_trends(self, analyzer, enron_history):
        trends = analyzer.analyze("ENRNQ", enron_history).trends
        assert trends.revenue_trend is TrendDirection.IMPROVING
        assert trends.cash_flow_trend is TrendDirection.DECLINING
        assert trends.debt_trend is TrendDirection.DECLINING

    def test_filing_summaries(self, analyzer, enron_history):
        filings = analyzer.analyze("ENRNQ", enron_history).filings

        assert [f.fiscal_year for f in filings] == [2000, 1999]
        assert filings[0].form_type == "10-K"
        assert filings[0].accession == "0001024401-01-500010"
        assert filings[0].revenue == 60000
        assert filings[0].risk_level is RiskLevel.HIGH
        # FY1999 Z-Score is about 2.31, in the grey zone
        assert filings[1].risk_level is RiskLevel.MODERATE

    def test_healthy_company_is_low(self, analyzer, healthy_history):
        report = analyzer.analyze({"name": "Steady Manufacturing", "ticker": "STDY"}, healthy_history)

        assert report.risk_level is RiskLevel.LOW
        assert report.result(ModelId.BENEISH).risk_level is RiskLevel.LOW
        assert report.result(ModelId.ALTMAN).risk_level is RiskLevel.LOW
        assert report.result(ModelId.PIOTROSKI).value == 8
        assert report.recommendation.startswith("LOW RISK")
        kinds = {f.kind for f in report.red_flags}
        assert RedFlagKind.MULTI_MODEL_CORROBORATION not in kinds
        assert RedFlagKind.EARNINGS_MANIPULATION not in kinds

    def test_single_period(self, analyzer, single_period_history):
        report = analyzer.analyze("ENRNQ", single_period_history)

        assert isinstance(report.result(ModelId.BENEISH), InsufficientData)
        assert isinstance(report.result(ModelId.PIOTROSKI), InsufficientData)
        assert isinstance(report.result(ModelId.BENFORD), InsufficientData)
        assert isinstance(report.result(ModelId.ALTMAN), ModelScore)
        assert isinstance(report.result(ModelId.FRAUD_TRIANGLE), ModelScore)
        assert report.composite.models_used == (ModelId.ALTMAN, ModelId.FRAUD_TRIANGLE)
        assert report.composite.low_confidence is False

    def test_no_periods(self, analyzer):
        report = analyzer.analyze("ENRNQ", [])

        assert report.filings_analyzed == 0
        assert all(not r.scored for r in report.results.values())
        assert report.risk_level is RiskLevel.LOW
        assert report.composite.low_confidence is True
        assert "Confidence is low" in report.recommendation

    def test_accepts_period_pairs(self, analyzer):
        periods = [
            (FiscalPeriod(fiscal_year=1999), ENRON_FY1999),
            (FiscalPeriod(fiscal_year=2000), ENRON_FY2000),
        ]
        report = analyzer.analyze(CompanyIdentity(name="Enron Corp"), periods)
        assert report.risk_level is RiskLevel.CRITICAL

    def test_accepts_period_mapping(self, analyzer):
        periods = {
            FiscalPeriod(fiscal_year=2000): ENRON_FY2000,
            FiscalPeriod(fiscal_year=1999): ENRON_FY1999,
        }
        assert analyzer.analyze("ENRNQ", periods).filings_analyzed == 2

    def test_rejects_malformed_periods(self, analyzer):
        with pytest.raises(ConfigurationError):
            analyzer.analyze("ENRNQ", [("FY2000", ENRON_FY2000)])

    def test_window_limits_periods(self, analyzer, facts_factory):
        history = FactsHistory(
            [facts_factory(year, ENRON_FY1999) for year in range(1995, 2000)]
            + [facts_factory(2000, ENRON_FY2000)]
        )
        report = analyzer.analyze("ENRNQ", history, {"window_years": 2})
        assert [p.fiscal_year for p in report.periods] == [1999, 2000]

    def test_amendment_replaces_original(self, analyzer, facts_factory):
        restated = dict(ENRON_FY2000, net_income=-591)
        history = FactsHistory(
            [
                facts_factory(1999, ENRON_FY1999),
                facts_factory(2000, ENRON_FY2000),
                facts_factory(2000, restated, filing_type=FilingType.AMENDMENT),
            ]
        )
        original = analyzer.analyze("ENRNQ", history)
        amended = analyzer.analyze("ENRNQ", history, AnalysisParameters(include_amendments=True))

        assert original.filings[0].net_income == 979
        assert amended.filings[0].net_income == -591
        assert amended.filings[0].form_type == "10-K/A"
        assert amended.result(ModelId.BENEISH).value != original.result(ModelId.BENEISH).value

    def test_data_quality_surfaced(self, analyzer, facts_factory):
        current = dict(ENRON_FY2000, current_assets=50000)
        history = FactsHistory([facts_factory(1999, ENRON_FY1999), facts_factory(2000, current)])

        report = analyzer.analyze("ENRNQ", history)

        assert any(i.code is IssueCode.INCONSISTENT_TOTALS for i in report.data_quality)
        dq_flags = [f for f in report.red_flags if f.kind is RedFlagKind.DATA_QUALITY]
        assert len(dq_flags) == 1
        assert dq_flags[0].severity is RedFlagSeverity.MEDIUM

    def test_calculator_failure_becomes_insufficient_data(self, analyzer, enron_history):
        def broken(history):
            raise RuntimeError("digit table corrupted")

        analyzer.calculators[ModelId.BENFORD] = broken
        report = analyzer.analyze("ENRNQ", enron_history)

        result = report.result(ModelId.BENFORD)
        assert isinstance(result, InsufficientData)
        assert "digit table corrupted" in result.reason
        assert report.result(ModelId.BENEISH).scored


class TestMissingData:
    """Removing a reported figure narrows the scored models and never fails."""

    @staticmethod
    def scored_models(report):
        return {model for model, result in report.results.items() if result.scored}

    @pytest.mark.parametrize("ticker,index,key", MISSING_CONCEPT_CASES)
    def test_removing_one_concept(self, analyzer, facts_factory, ticker, index, key):
        periods = COMPANY_PERIODS[ticker]
        complete = FactsHistory([facts_factory(year, values) for year, values in periods])
        reduced = FactsHistory(
            [
                facts_factory(
                    year,
                    {k: v for k, v in values.items() if not (i == index and k == key)},
                )
                for i, (year, values) in enumerate(periods)
            ]
        )

        full_report = analyzer.analyze(ticker, complete)
        report = analyzer.analyze(ticker, reduced)

        for result in report.results.values():
            if not result.scored:
                assert "calculation failed" not in result.reason
        assert self.scored_models(report) <= self.scored_models(full_report)


class TestValidation:
    """Invalid parameters are rejected before any calculation."""

    @pytest.mark.parametrize(
        "parameters",
        [
            {"window_years": 0},
            {"window_years": 11},
            {"include_annual": False, "include_quarterly": False},
        ],
    )
    def test_invalid_parameters(self, analyzer, enron_history, parameters):
        with pytest.raises(ConfigurationError):
            analyzer.analyze("ENRNQ", enron_history, parameters)

        runs = get_metrics().get_counter(
            MetricNames.MODEL_RUNS_TOTAL, {"model": "beneish", "outcome": "scored"}
        )
        assert runs == 0

    def test_invalid_company(self, analyzer, enron_history):
        with pytest.raises(ConfigurationError):
            analyzer.analyze({}, enron_history)


class TestReportSerialization:
    """Test the report's JSON shape."""

    def test_to_dict_shape(self, analyzer, enron_history):
        data = analyzer.analyze("ENRNQ", enron_history).to_dict()

        assert data["company"]["ticker"] == "ENRNQ"
        assert data["filings_analyzed"] == 2
        assert data["overall_risk"]["level"] == "CRITICAL"
        assert data["overall_risk"]["percent"] == 97
        assert set(data["models"]) == {"beneish", "altman", "piotroski", "fraud_triangle", "benford"}
        assert data["models"]["beneish"]["m_score"] == pytest.approx(-1.4181, abs=1e-4)
        assert data["models"]["piotroski"]["f_score"] == 2
        assert data["red_flags"][0]["severity"] == "critical"
        assert data["trends"]["revenue_trend"] == "IMPROVING"
        assert data["filings"][0]["filed_date"] == "2001-04-02"
        assert data["recommendation"].startswith("CRITICAL RISK")

    def test_insufficient_model_serialized_as_null(self, analyzer, single_period_history):
        data = analyzer.analyze("ENRNQ", single_period_history).to_dict()
        beneish = data["models"]["beneish"]
        assert beneish["status"] == "insufficient_data"
        assert beneish["m_score"] is None
        assert beneish["risk_level"] is None

    def test_deterministic(self, analyzer, enron_history):
        first = analyzer.analyze("ENRNQ", enron_history)
        second = analyzer.analyze("ENRNQ", enron_history)
        assert comparable(first) == comparable(second)
        assert first.analysis_id != second.analysis_id


class TestExecutionModes:
    """Sequential, threaded and async execution give the same report."""

    def test_threaded_matches_sequential(self, enron_history):
        sequential = FraudRiskAnalyzer().analyze("ENRNQ", enron_history)
        threaded = FraudRiskAnalyzer(EngineSettings(parallel=True)).analyze("ENRNQ", enron_history)
        assert comparable(threaded) == comparable(sequential)

    @pytest.mark.asyncio
    async def test_async_matches_sequential(self, analyzer, enron_history):
        sequential = analyzer.analyze("ENRNQ", enron_history)
        concurrent = await analyzer.analyze_async("ENRNQ", enron_history)
        assert comparable(concurrent) == comparable(sequential)

    @pytest.mark.asyncio
    async def test_async_rejects_invalid_parameters(self, analyzer, enron_history):
        with pytest.raises(ConfigurationError):
            await analyzer.analyze_async("ENRNQ", enron_history, {"window_years": 0})

    @pytest.mark.asyncio
    async def test_concurrent_analyses(self, analyzer, enron_history, healthy_history):
        enron, healthy = await asyncio.gather(
            analyzer.analyze_async("ENRNQ", enron_history),
            analyzer.analyze_async("STDY", healthy_history),
        )
        assert enron.risk_level is RiskLevel.CRITICAL
        assert healthy.risk_level is RiskLevel.LOW
        assert enron.analysis_id != healthy.analysis_id

    @pytest.mark.asyncio
    async def test_cancellation_produces_no_report(self, analyzer, enron_history):
        def slow(history):
            time.sleep(0.2)
            return analyzer.benford.calculate(history)

        analyzer.calculators[ModelId.BENFORD] = slow
        task = asyncio.create_task(analyzer.analyze_async("ENRNQ", enron_history))
        await asyncio.sleep(0.02)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        # Let the abandoned worker thread finish before metrics are reset
        await asyncio.sleep(0.3)


class TestObservability:
    """Metrics and log context around an analysis."""

    def test_metrics_recorded(self, analyzer, enron_history):
        assert analyzer.metrics is engine_metrics
        analyzer.analyze("ENRNQ", enron_history)
        metrics = get_metrics()

        assert metrics.get_counter(MetricNames.ANALYSES_TOTAL) == 1
        assert metrics.get_counter(MetricNames.RISK_LEVEL_TOTAL, {"level": "CRITICAL"}) == 1
        assert metrics.get_counter(
            MetricNames.MODEL_RUNS_TOTAL, {"model": "benford", "outcome": "scored"}
        ) == 1
        assert metrics.get_counter(MetricNames.RED_FLAGS_TOTAL) == 6

    def test_slow_analysis_warning_carries_context(self, enron_history, caplog):
        analyzer = FraudRiskAnalyzer(EngineSettings(slow_analysis_ms=1e-6))
        with caplog.at_level(logging.WARNING, logger="fraudlens"):
            analyzer.analyze("ENRNQ", enron_history)

        slow = [r for r in caplog.records if r.getMessage().startswith("Slow analysis for ENRNQ")]
        assert len(slow) == 1
        assert slow[0].ctx_periods == 2

    def test_context_cleared_after_analysis(self, analyzer, enron_history):
        analyzer.analyze("ENRNQ", enron_history)
        assert get_analysis_id() is None

    def test_report_is_immutable(self, analyzer, enron_history):
        report = analyzer.analyze("ENRNQ", enron_history)
        with pytest.raises(Exception):
            report.recommendation = "edited"
        with pytest.raises(TypeError):
            report.results[ModelId.BENEISH] = None

    def test_period_end_serialized(self, analyzer, enron_history):
        filings = analyzer.analyze("ENRNQ", enron_history).filings
        assert filings[0].period_end == date(2000, 12, 31)
        assert filings[0].to_dict()["period_end"] == "2000-12-31"
