"""
Accounting Analyzer Module

High-level interface for fraud risk analysis.

Runs the five model calculators over the selected window of periods, joins
their results, derives red flags, aggregates the composite risk and
assembles an immutable AnalysisReport.
"""

import asyncio
import contextvars
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import date, datetime, timezone
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from ..config.logging import (
    analysis_logger,
    clear_analysis_context,
    log_performance,
    log_with_context,
    set_analysis_context,
)
from ..config.metrics import engine_metrics
from ..config.settings import EngineSettings
from ..core.errors import AnalysisError, ConfigurationError, FraudLensError
from ..validation.models import (
    AnalysisParameters,
    CompanyIdentity,
    coerce_company,
    coerce_parameters,
)
from .anomaly_detection import BenfordAnalyzer
from .composite_risk import MODEL_ORDER, CompositeRisk, CompositeRiskAggregator
from .earnings_quality import AltmanZScore, BeneishMScore, PiotroskiFScore
from .financial_facts import (
    Concept,
    DataQualityIssue,
    FactsHistory,
    FinancialFacts,
    FiscalPeriod,
)
from .fraud_triangle import FraudTriangleAnalyzer
from .red_flags import RedFlag, RedFlagGenerator
from .results import InsufficientData, ModelId, ModelResult, RiskLevel, is_scored
from .trends import TrendAnalyzer, TrendSummary

logger = logging.getLogger(__name__)

PeriodsInput = Union[
    FactsHistory,
    Iterable[FinancialFacts],
    Iterable[Tuple[FiscalPeriod, Mapping[str, Any]]],
    Mapping[FiscalPeriod, Mapping[str, Any]],
]

RECOMMENDATIONS = {
    RiskLevel.LOW: (
        "LOW RISK: No significant fraud indicators detected. Financial statements "
        "appear consistent with expected patterns."
    ),
    RiskLevel.MODERATE: (
        "MODERATE RISK: Some indicators warrant attention. Review the flagged "
        "models and the underlying filings before relying on reported figures."
    ),
    RiskLevel.ELEVATED: (
        "ELEVATED RISK: Several indicators warrant attention. Review the flagged "
        "models and the underlying filings before relying on reported figures."
    ),
    RiskLevel.HIGH: (
        "HIGH RISK: Significant fraud or distress indicators detected. Perform "
        "enhanced due diligence on revenue recognition, accruals and leverage."
    ),
    RiskLevel.CRITICAL: (
        "CRITICAL RISK: Multiple fraud indicators detected. Reported financial "
        "statements should not be relied upon without independent verification."
    ),
}

LOW_CONFIDENCE_NOTE = (
    " Confidence is low because fewer than two models could be scored with the "
    "available data."
)


@dataclass(frozen=True)
class FilingSummary:
    """One analyzed filing, as listed in the report."""

    fiscal_year: int
    form_type: str
    fiscal_quarter: Optional[int] = None
    accession: Optional[str] = None
    filed_date: Optional[date] = None
    period_end: Optional[date] = None
    revenue: Optional[float] = None
    net_income: Optional[float] = None
    risk_level: Optional[RiskLevel] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "accession": self.accession,
            "filed_date": self.filed_date.isoformat() if self.filed_date else None,
            "period_end": self.period_end.isoformat() if self.period_end else None,
            "form_type": self.form_type,
            "fiscal_year": self.fiscal_year,
            "fiscal_quarter": self.fiscal_quarter,
            "revenue": self.revenue,
            "net_income": self.net_income,
            "risk_level": self.risk_level.value if self.risk_level else None,
        }


@dataclass(frozen=True)
class AnalysisReport:
    """Immutable result of one analysis."""

    analysis_id: str
    company: CompanyIdentity
    parameters: AnalysisParameters
    periods: Tuple[FiscalPeriod, ...]
    results: Mapping[ModelId, ModelResult]
    red_flags: Tuple[RedFlag, ...]
    composite: CompositeRisk
    trends: TrendSummary
    filings: Tuple[FilingSummary, ...]
    data_quality: Tuple[DataQualityIssue, ...]
    recommendation: str
    generated_at: datetime

    @property
    def filings_analyzed(self) -> int:
        return len(self.periods)

    @property
    def risk_level(self) -> RiskLevel:
        return self.composite.level

    def result(self, model: ModelId) -> ModelResult:
        return self.results[model]

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the client-facing JSON shape."""
        return {
            "analysis_id": self.analysis_id,
            "generated_at": self.generated_at.isoformat(),
            "company": self.company.to_dict(),
            "parameters": self.parameters.to_dict(),
            "filings_analyzed": self.filings_analyzed,
            "overall_risk": self.composite.to_dict(),
            "models": {model.value: self.results[model].to_dict() for model in MODEL_ORDER},
            "red_flags": [flag.to_dict() for flag in self.red_flags],
            "trends": self.trends.to_dict(),
            "filings": [filing.to_dict() for filing in self.filings],
            "data_quality": [issue.to_dict() for issue in self.data_quality],
            "recommendation": self.recommendation,
        }


class FraudRiskAnalyzer:
    """
    Fraud risk scoring engine.

    Provides:
    - Beneish, Altman, Piotroski, Benford and fraud triangle scores
    - Red flags with cross-model corroboration
    - Composite risk level and recommendation
    - Revenue, income, cash flow and leverage trends

    Calculators are pure and independent, so they may run sequentially, in
    a thread pool (settings.parallel) or as asyncio tasks with identical
    output.
    """

    def __init__(self, settings: Optional[EngineSettings] = None):
        """
        Initialize FraudRiskAnalyzer.

        Args:
            settings: Engine settings (defaults when omitted)
        """
        self.settings = settings or EngineSettings()

        self.beneish = BeneishMScore(self.settings.beneish)
        self.altman = AltmanZScore(self.settings.altman)
        self.piotroski = PiotroskiFScore(self.settings.piotroski)
        self.fraud_triangle = FraudTriangleAnalyzer(self.settings.fraud_triangle)
        self.benford = BenfordAnalyzer(self.settings.benford)

        self.calculators: Dict[ModelId, Callable[[FactsHistory], ModelResult]] = {
            ModelId.BENEISH: self.beneish.calculate,
            ModelId.ALTMAN: self.altman.calculate,
            ModelId.PIOTROSKI: self.piotroski.calculate,
            ModelId.FRAUD_TRIANGLE: self.fraud_triangle.calculate,
            ModelId.BENFORD: self.benford.calculate,
        }

        self.flag_generator = RedFlagGenerator(self.settings)
        self.aggregator = CompositeRiskAggregator(self.settings)
        self.trend_analyzer = TrendAnalyzer()
        self.metrics = engine_metrics

        logger.info("FraudRiskAnalyzer initialized")

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def analyze(
        self,
        company: Union[CompanyIdentity, Mapping[str, Any], str],
        periods: PeriodsInput,
        parameters: Union[AnalysisParameters, Mapping[str, Any], None] = None,
    ) -> AnalysisReport:
        """
        Analyze a company's financial history.

        Args:
            company: Company identity (model, mapping, or ticker/name)
            periods: FactsHistory, FinancialFacts, or (FiscalPeriod, raw facts) pairs
            parameters: Window and filing selection

        Returns:
            AnalysisReport

        Raises:
            ConfigurationError: invalid parameters, rejected before any calculation
        """
        identity, params, history = self._prepare(company, periods, parameters)
        analysis_id = set_analysis_context(company=identity.label)
        start = time.perf_counter()
        try:
            analysis_logger.log_analysis_started(identity.label, len(history))
            if self.settings.parallel:
                results = self._run_models_threaded(history)
            else:
                results = {model: self._run_model(model, history) for model in MODEL_ORDER}
            return self._finish(analysis_id, identity, params, history, results, start)
        except FraudLensError:
            raise
        except Exception as e:
            raise self._failure(e, identity, start) from e
        finally:
            clear_analysis_context()

    async def analyze_async(
        self,
        company: Union[CompanyIdentity, Mapping[str, Any], str],
        periods: PeriodsInput,
        parameters: Union[AnalysisParameters, Mapping[str, Any], None] = None,
    ) -> AnalysisReport:
        """
        Analyze with the five calculators running as concurrent tasks.

        Cancelling the coroutine discards every partial result; no report
        is produced.
        """
        identity, params, history = self._prepare(company, periods, parameters)
        analysis_id = set_analysis_context(company=identity.label)
        start = time.perf_counter()
        try:
            analysis_logger.log_analysis_started(identity.label, len(history))
            outcomes = await asyncio.gather(
                *(asyncio.to_thread(self._run_model, model, history) for model in MODEL_ORDER)
            )
            results = dict(zip(MODEL_ORDER, outcomes))
            return self._finish(analysis_id, identity, params, history, results, start)
        except FraudLensError:
            raise
        except Exception as e:
            raise self._failure(e, identity, start) from e
        finally:
            clear_analysis_context()

    # -------------------------------------------------------------------------
    # Preparation
    # -------------------------------------------------------------------------

    def _prepare(
        self,
        company: Union[CompanyIdentity, Mapping[str, Any], str],
        periods: PeriodsInput,
        parameters: Union[AnalysisParameters, Mapping[str, Any], None],
    ) -> Tuple[CompanyIdentity, AnalysisParameters, FactsHistory]:
        """Validate inputs and select the window; raises ConfigurationError."""
        params = coerce_parameters(parameters)
        identity = coerce_company(company)
        history = self._coerce_history(periods).select(
            window_years=params.window_years,
            include_amendments=params.include_amendments,
            include_annual=params.include_annual,
            include_quarterly=params.include_quarterly,
        )
        return identity, params, history

    @staticmethod
    def _coerce_history(periods: PeriodsInput) -> FactsHistory:
        if isinstance(periods, FactsHistory):
            return periods
        items = periods.items() if isinstance(periods, Mapping) else periods

        facts: List[FinancialFacts] = []
        for item in items:
            if isinstance(item, FinancialFacts):
                facts.append(item)
                continue
            if isinstance(item, tuple) and len(item) == 2 and isinstance(item[0], FiscalPeriod):
                period, raw = item
                if isinstance(raw, FinancialFacts):
                    facts.append(raw)
                elif isinstance(raw, Mapping):
                    facts.append(FinancialFacts.from_raw(period, raw))
                else:
                    raise ConfigurationError(
                        "facts for a period must be a mapping of tag to value",
                        field="periods",
                        value=raw,
                    )
                continue
            raise ConfigurationError(
                "periods must contain FinancialFacts or (FiscalPeriod, facts) pairs",
                field="periods",
                value=item,
            )
        return FactsHistory(facts)

    # -------------------------------------------------------------------------
    # Model execution
    # -------------------------------------------------------------------------

    def _run_model(self, model: ModelId, history: FactsHistory) -> ModelResult:
        """Run one calculator; an unexpected failure becomes InsufficientData."""
        start = time.perf_counter()
        try:
            result = self.calculators[model](history)
        except Exception as e:
            logger.error(f"{model.display_name} calculation failed: {e}", exc_info=True)
            result = InsufficientData(model=model, reason=f"calculation failed: {e}")

        duration_ms = (time.perf_counter() - start) * 1000
        self.metrics.record_model(model.value, is_scored(result), duration_ms)
        if is_scored(result):
            analysis_logger.log_model_result(
                model.value, True, value=result.value, risk_level=result.risk_level.value
            )
        else:
            analysis_logger.log_model_result(model.value, False, reason=result.reason)
        return result

    def _run_models_threaded(self, history: FactsHistory) -> Dict[ModelId, ModelResult]:
        with ThreadPoolExecutor(
            max_workers=self.settings.max_workers, thread_name_prefix="fraudlens"
        ) as executor:
            # Each task gets its own context copy so log lines keep the analysis id
            futures = {
                model: executor.submit(
                    contextvars.copy_context().run, self._run_model, model, history
                )
                for model in MODEL_ORDER
            }
            return {model: future.result() for model, future in futures.items()}

    # -------------------------------------------------------------------------
    # Assembly
    # -------------------------------------------------------------------------

    @log_performance(threshold_ms=500)
    def _finish(
        self,
        analysis_id: str,
        identity: CompanyIdentity,
        params: AnalysisParameters,
        history: FactsHistory,
        results: Dict[ModelId, ModelResult],
        start: float,
    ) -> AnalysisReport:
        frozen_results = MappingProxyType({model: results[model] for model in MODEL_ORDER})
        flags = self.flag_generator.generate(frozen_results)
        composite = self.aggregator.aggregate(frozen_results, flags)

        recommendation = RECOMMENDATIONS[composite.level]
        if composite.low_confidence:
            recommendation += LOW_CONFIDENCE_NOTE

        report = AnalysisReport(
            analysis_id=analysis_id,
            company=identity,
            parameters=params,
            periods=tuple(history.periods),
            results=frozen_results,
            red_flags=tuple(flags),
            composite=composite,
            trends=self.trend_analyzer.summarize(history),
            filings=tuple(self._filing_summaries(history)),
            data_quality=tuple(history.issues),
            recommendation=recommendation,
            generated_at=datetime.now(timezone.utc),
        )

        duration_ms = (time.perf_counter() - start) * 1000
        if duration_ms > self.settings.slow_analysis_ms:
            log_with_context(
                logger,
                logging.WARNING,
                f"Slow analysis for {identity.label}: {duration_ms:.0f}ms",
                duration_ms=round(duration_ms, 2),
                periods=len(history),
            )
        self.metrics.record_analysis(composite.level.value, len(flags), duration_ms)
        analysis_logger.log_analysis_complete(
            identity.label,
            composite.level.value,
            composite.percent,
            duration_ms,
            len(flags),
            low_confidence=composite.low_confidence,
        )
        return report

    def _filing_summaries(self, history: FactsHistory) -> List[FilingSummary]:
        """Most recent filing first, each with its own Altman classification."""
        summaries = []
        for facts in reversed(list(history)):
            period = facts.period
            zone = self.altman.calculate_period(facts)
            summaries.append(
                FilingSummary(
                    fiscal_year=period.fiscal_year,
                    fiscal_quarter=period.fiscal_quarter,
                    form_type=period.filing_type.value,
                    accession=period.accession,
                    filed_date=period.filed_date,
                    period_end=period.period_end,
                    revenue=facts.get(Concept.REVENUE),
                    net_income=facts.get(Concept.NET_INCOME),
                    risk_level=zone.risk_level if is_scored(zone) else None,
                )
            )
        return summaries

    def _failure(self, error: Exception, identity: CompanyIdentity, start: float) -> AnalysisError:
        duration_ms = (time.perf_counter() - start) * 1000
        self.metrics.record_analysis("", 0, duration_ms, success=False)
        failure = AnalysisError(
            detail=f"analysis of {identity.label} failed: {error}",
            original_error=error,
            context={"company": identity.label},
        )
        failure.log()
        return failure
