"""
FraudLens Engine Settings

Thresholds, weights and execution options for the scoring engine, held in a
pydantic settings tree and optionally loaded from YAML.

Lookup order for load_settings():
    1. explicit path argument
    2. FRAUDLENS_CONFIG environment variable
    3. bundled config/fraudlens.yaml (when running from a checkout)
    4. built-in defaults
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from ..core.errors import (
    ConfigurationError,
    ErrorCodes,
    configuration_error_from_validation,
)

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "FRAUDLENS_CONFIG"
CONFIG_FILE = Path(__file__).parent.parent.parent / "config" / "fraudlens.yaml"


class _SettingsModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


# =============================================================================
# Per-Model Settings
# =============================================================================


class BeneishSettings(_SettingsModel):
    """Beneish M-Score classification cut-offs."""

    unlikely_threshold: float = Field(
        default=-2.22, description="M below this is an unlikely manipulator"
    )
    likely_threshold: float = Field(
        default=-1.78, description="M above this is a likely manipulator"
    )

    @model_validator(mode="after")
    def check_order(self) -> "BeneishSettings":
        if self.unlikely_threshold >= self.likely_threshold:
            raise ValueError("unlikely_threshold must be below likely_threshold")
        return self


class AltmanSettings(_SettingsModel):
    """Altman Z-Score zone cut-offs (public manufacturer model)."""

    distress_threshold: float = Field(default=1.81, description="Z below this is distress")
    safe_threshold: float = Field(default=2.99, description="Z above this is safe")

    @model_validator(mode="after")
    def check_order(self) -> "AltmanSettings":
        if self.distress_threshold >= self.safe_threshold:
            raise ValueError("distress_threshold must be below safe_threshold")
        return self


class PiotroskiSettings(_SettingsModel):
    """Piotroski F-Score bands."""

    weak_max: int = Field(default=3, ge=0, le=9, description="Highest score still Weak")
    moderate_max: int = Field(default=6, ge=0, le=9, description="Highest score still Moderate")

    @model_validator(mode="after")
    def check_order(self) -> "PiotroskiSettings":
        if self.weak_max >= self.moderate_max:
            raise ValueError("weak_max must be below moderate_max")
        return self


class BenfordSettings(_SettingsModel):
    """Benford's Law sample size and deviation thresholds (percentage points)."""

    min_sample: int = Field(default=30, ge=1, description="Minimum leading-digit sample")
    low_threshold: float = Field(default=5.0, ge=0, description="Deviation below this is normal")
    high_threshold: float = Field(default=8.0, ge=0, description="Deviation above this is an anomaly")

    @model_validator(mode="after")
    def check_order(self) -> "BenfordSettings":
        if self.low_threshold >= self.high_threshold:
            raise ValueError("low_threshold must be below high_threshold")
        return self


class FraudTriangleSettings(_SettingsModel):
    """Fraud triangle sub-score weights and risk cut-offs."""

    pressure_weight: float = Field(default=1.0, gt=0)
    opportunity_weight: float = Field(default=1.0, gt=0)
    rationalization_weight: float = Field(default=1.0, gt=0)
    moderate_threshold: float = Field(default=0.3, ge=0, le=1)
    high_threshold: float = Field(default=0.6, ge=0, le=1)

    @model_validator(mode="after")
    def check_order(self) -> "FraudTriangleSettings":
        if self.moderate_threshold >= self.high_threshold:
            raise ValueError("moderate_threshold must be below high_threshold")
        return self


class ModelWeights(_SettingsModel):
    """Composite weights per model; renormalized over the models that scored."""

    beneish: float = Field(default=0.25, ge=0)
    altman: float = Field(default=0.20, ge=0)
    piotroski: float = Field(default=0.20, ge=0)
    fraud_triangle: float = Field(default=0.20, ge=0)
    benford: float = Field(default=0.15, ge=0)

    @model_validator(mode="after")
    def check_total(self) -> "ModelWeights":
        if sum(self.as_dict().values()) <= 0:
            raise ValueError("at least one model weight must be positive")
        return self

    def as_dict(self) -> Dict[str, float]:
        return {
            "beneish": self.beneish,
            "altman": self.altman,
            "piotroski": self.piotroski,
            "fraud_triangle": self.fraud_triangle,
            "benford": self.benford,
        }


class CompositeSettings(_SettingsModel):
    """Composite risk aggregation options."""

    normalization: str = Field(
        default="scaled",
        pattern="^(scaled|ordinal)$",
        description="scaled uses native model scores, ordinal uses classifications",
    )
    weights: ModelWeights = Field(default_factory=ModelWeights)
    flag_weight: float = Field(default=0.025, ge=0, le=1, description="Added per HIGH/CRITICAL flag")
    flag_cap: float = Field(default=0.15, ge=0, le=1, description="Maximum total flag adjustment")


class EngineSettings(_SettingsModel):
    """Complete engine settings."""

    version: str = Field(default="1.0.0", description="Settings schema version")
    parallel: bool = Field(default=False, description="Run calculators in a thread pool")
    max_workers: int = Field(default=5, ge=1, le=32)
    slow_analysis_ms: float = Field(default=1000.0, gt=0, description="Warn above this duration")
    beneish: BeneishSettings = Field(default_factory=BeneishSettings)
    altman: AltmanSettings = Field(default_factory=AltmanSettings)
    piotroski: PiotroskiSettings = Field(default_factory=PiotroskiSettings)
    benford: BenfordSettings = Field(default_factory=BenfordSettings)
    fraud_triangle: FraudTriangleSettings = Field(default_factory=FraudTriangleSettings)
    composite: CompositeSettings = Field(default_factory=CompositeSettings)


# =============================================================================
# Loading
# =============================================================================


def settings_from_dict(data: Optional[Dict[str, Any]]) -> EngineSettings:
    """Build settings from a plain mapping, raising ConfigurationError on bad values."""
    if data is None:
        return EngineSettings()
    if not isinstance(data, dict):
        raise ConfigurationError(
            "settings document must be a mapping",
            value=data,
            error_code=ErrorCodes.CONFIG_INVALID_SETTINGS,
        )
    try:
        return EngineSettings(**data)
    except ValidationError as e:
        raise configuration_error_from_validation(e, ErrorCodes.CONFIG_INVALID_SETTINGS) from e


def _resolve_path(path: Optional[Union[str, Path]]) -> Optional[Path]:
    if path is not None:
        return Path(path)
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)
    if CONFIG_FILE.exists():
        return CONFIG_FILE
    return None


def load_settings(path: Optional[Union[str, Path]] = None) -> EngineSettings:
    """
    Load engine settings.

    An explicitly requested file (argument or environment variable) that
    cannot be read is a configuration error; the bundled file is optional.
    """
    config_path = _resolve_path(path)
    if config_path is None:
        logger.debug("No settings file found, using defaults")
        return EngineSettings()

    try:
        with open(config_path, "r") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(
            f"cannot read settings file {config_path}: {e}",
            field="path",
            value=str(config_path),
            error_code=ErrorCodes.CONFIG_INVALID_SETTINGS,
            original_error=e,
        ) from e

    settings = settings_from_dict(data)
    logger.info("Loaded engine settings from %s", config_path)
    return settings
