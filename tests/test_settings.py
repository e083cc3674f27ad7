"""Tests for settings, errors, input validation and observability helpers."""
import inspect
import json
import logging

import pytest

from fraudlens.config import settings as settings_module
from fraudlens.config.logging import (
    StructuredFormatter,
    clear_analysis_context,
    get_analysis_id,
    log_performance,
    set_analysis_context,
)
from fraudlens.config.metrics import EngineMetrics, MetricNames, MetricsCollector
from fraudlens.config.settings import EngineSettings, load_settings, settings_from_dict
from fraudlens.core.errors import (
    AnalysisError,
    ConfigurationError,
    ErrorCategory,
    ErrorCodes,
)
from fraudlens.validation.models import (
    AnalysisParameters,
    CompanyIdentity,
    coerce_company,
    coerce_parameters,
)


class TestEngineSettings:
    """Test settings defaults, validation and loading."""

    def test_defaults(self):
        settings = EngineSettings()
        assert settings.beneish.likely_threshold == -1.78
        assert settings.altman.safe_threshold == 2.99
        assert settings.benford.min_sample == 30
        assert settings.composite.weights.as_dict()["beneish"] == 0.25
        assert settings.parallel is False

    def test_frozen(self):
        settings = EngineSettings()
        with pytest.raises(Exception):
            settings.parallel = True

    def test_from_dict(self):
        settings = settings_from_dict({"parallel": True, "altman": {"distress_threshold": 1.5}})
        assert settings.parallel is True
        assert settings.altman.distress_threshold == 1.5
        assert settings.altman.safe_threshold == 2.99

    def test_none_gives_defaults(self):
        assert settings_from_dict(None) == EngineSettings()

    def test_unknown_key_rejected(self):
        with pytest.raises(ConfigurationError) as exc_info:
            settings_from_dict({"beneish": {"cutoff": 1}})
        assert exc_info.value.code == "CONFIGURATION_4010"
        assert exc_info.value.field == "beneish.cutoff"

    def test_threshold_order_enforced(self):
        with pytest.raises(ConfigurationError, match="unlikely_threshold"):
            settings_from_dict({"beneish": {"unlikely_threshold": -1.0, "likely_threshold": -2.0}})

    def test_bad_normalization(self):
        with pytest.raises(ConfigurationError):
            settings_from_dict({"composite": {"normalization": "zscore"}})

    def test_non_mapping_document(self):
        with pytest.raises(ConfigurationError, match="mapping"):
            settings_from_dict(["parallel"])

    def test_load_from_yaml(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text("parallel: true\nmax_workers: 3\nbenford:\n  min_sample: 50\n")

        settings = load_settings(path)

        assert settings.parallel is True
        assert settings.max_workers == 3
        assert settings.benford.min_sample == 50

    def test_load_from_env(self, tmp_path, monkeypatch):
        path = tmp_path / "env.yaml"
        path.write_text("max_workers: 2\n")
        monkeypatch.setenv(settings_module.CONFIG_ENV_VAR, str(path))
        assert load_settings().max_workers == 2

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="cannot read settings file"):
            load_settings(tmp_path / "absent.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("parallel: [unclosed\n")
        with pytest.raises(ConfigurationError):
            load_settings(path)

    def test_defaults_without_any_file(self, monkeypatch, tmp_path):
        monkeypatch.delenv(settings_module.CONFIG_ENV_VAR, raising=False)
        monkeypatch.setattr(settings_module, "CONFIG_FILE", tmp_path / "none.yaml")
        assert load_settings() == EngineSettings()

    def test_bundled_file_matches_defaults(self, monkeypatch):
        monkeypatch.delenv(settings_module.CONFIG_ENV_VAR, raising=False)
        if not settings_module.CONFIG_FILE.exists():
            pytest.skip("bundled settings file not available")
        assert load_settings() == EngineSettings()


class TestErrors:
    """Test the error taxonomy."""

    def test_configuration_error(self):
        error = ConfigurationError("window_years out of range", field="window_years", value=42)

        assert error.code == "CONFIGURATION_4004"
        assert error.category is ErrorCategory.CONFIGURATION
        assert error.field == "window_years"
        data = error.to_dict()
        assert data["code"] == "CONFIGURATION_4004"
        assert data["message"].startswith("One of the analysis parameters is not valid.")
        assert "debug" not in data

    def test_debug_dict_includes_detail(self):
        error = ConfigurationError("window_years out of range", field="window_years", value=42)
        data = error.to_dict(include_debug=True)
        assert "window_years out of range" in str(data)

    def test_analysis_error_wraps_original(self):
        cause = RuntimeError("boom")
        error = AnalysisError("assembly failed", original_error=cause)
        assert error.code == str(ErrorCodes.ANALYSIS_FAILED)
        assert error.original_error is cause
        assert "assembly failed" in error.technical_message


class TestAnalysisParameters:
    """Test analysis parameter validation."""

    def test_defaults(self):
        params = AnalysisParameters()
        assert params.window_years == 5
        assert params.include_amendments is False
        assert params.include_annual is True
        assert params.include_quarterly is False

    @pytest.mark.parametrize("window", [0, 11, -1])
    def test_window_out_of_range(self, window):
        with pytest.raises(ConfigurationError) as exc_info:
            coerce_parameters({"window_years": window})
        assert exc_info.value.field == "window_years"

    @pytest.mark.parametrize("window", [True, 2.5])
    def test_window_must_be_whole_years(self, window):
        with pytest.raises(ConfigurationError):
            coerce_parameters({"window_years": window})

    def test_requires_a_filing_kind(self):
        with pytest.raises(ConfigurationError, match="include_annual"):
            coerce_parameters({"include_annual": False, "include_quarterly": False})

    def test_unknown_parameter(self):
        with pytest.raises(ConfigurationError):
            coerce_parameters({"window": 3})

    def test_none_gives_defaults(self):
        assert coerce_parameters(None) == AnalysisParameters()


class TestCompanyIdentity:
    """Test company identity validation."""

    def test_ticker_string(self):
        company = coerce_company("enrnq")
        assert company.ticker == "ENRNQ"
        assert company.label == "ENRNQ"

    def test_name_string(self):
        company = coerce_company("Enron Corp")
        assert company.name == "Enron Corp"
        assert company.ticker is None

    def test_cik_zero_filled(self):
        company = CompanyIdentity(cik="1024401")
        assert company.cik == "0001024401"

    def test_requires_identifier(self):
        with pytest.raises(ConfigurationError):
            coerce_company({})

    def test_invalid_ticker(self):
        with pytest.raises(ConfigurationError):
            coerce_company({"ticker": "NOT A TICKER"})

    def test_to_dict(self):
        company = coerce_company({"name": "Enron Corp", "ticker": "ENRNQ"})
        assert company.to_dict()["ticker"] == "ENRNQ"


class TestLogging:
    """Test structured logging helpers."""

    def test_analysis_context(self):
        analysis_id = set_analysis_context(company="ENRNQ")
        assert get_analysis_id() == analysis_id
        clear_analysis_context()
        assert get_analysis_id() is None

    def test_structured_formatter_includes_context(self):
        set_analysis_context(analysis_id="abc-123", company="ENRNQ")
        try:
            record = logging.LogRecord(
                name="fraudlens.test",
                level=logging.INFO,
                pathname=__file__,
                lineno=1,
                msg="scored",
                args=(),
                exc_info=None,
            )
            record.ctx_model = "beneish"
            payload = json.loads(StructuredFormatter().format(record))
        finally:
            clear_analysis_context()

        assert payload["message"] == "scored"
        assert payload["analysis_id"] == "abc-123"
        assert payload["model"] == "beneish"

    def test_log_performance_warns_when_slow(self, caplog):
        @log_performance(threshold_ms=-1)
        def work():
            return 42

        with caplog.at_level(logging.WARNING):
            assert work() == 42
        assert any("Slow operation: work" in r.getMessage() for r in caplog.records)

    @pytest.mark.asyncio
    async def test_log_performance_async(self):
        @log_performance()
        async def work():
            return "done"

        assert inspect.iscoroutinefunction(work)
        assert not inspect.iscoroutinefunction(log_performance()(lambda: None))
        assert await work() == "done"


class TestMetrics:
    """Test in-process engine metrics."""

    def test_record_model(self):
        collector = MetricsCollector()
        metrics = EngineMetrics(collector)

        metrics.record_model("beneish", True, 1.5)
        metrics.record_model("beneish", False, 0.5)

        assert collector.get_counter(
            MetricNames.MODEL_RUNS_TOTAL, {"model": "beneish", "outcome": "scored"}
        ) == 1
        assert collector.get_counter(
            MetricNames.MODEL_RUNS_TOTAL, {"model": "beneish", "outcome": "insufficient"}
        ) == 1
        stats = collector.get_timing_stats(MetricNames.MODEL_DURATION_MS, {"model": "beneish"})
        assert stats["count"] == 2

    def test_failed_analysis(self):
        collector = MetricsCollector()
        EngineMetrics(collector).record_analysis("", 0, 3.0, success=False)
        assert collector.get_counter(MetricNames.ANALYSIS_ERRORS_TOTAL) == 1
        assert collector.get_counter(MetricNames.ANALYSES_TOTAL) == 1
