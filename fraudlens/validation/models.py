"""
Pydantic Validation Models

Validated inputs for an analysis: the company identity and the analysis
parameter set. Invalid values are rejected with ConfigurationError before
any calculator runs.
"""

import re
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from ..core.errors import configuration_error_from_validation

TICKER_PATTERN = re.compile(r"^[A-Z][A-Z0-9.\-]{0,9}$")
CIK_PATTERN = re.compile(r"^\d{1,10}$")


class FraudLensBaseModel(BaseModel):
    """Base Pydantic model for engine inputs."""

    model_config = ConfigDict(
        str_strip_whitespace=True,
        extra="forbid",
        populate_by_name=True,
        frozen=True,
    )


class CompanyIdentity(FraudLensBaseModel):
    """Company under analysis; informational only."""

    name: Optional[str] = Field(default=None, max_length=200)
    ticker: Optional[str] = Field(default=None, description="Exchange ticker")
    cik: Optional[str] = Field(default=None, description="SEC Central Index Key")
    sic: Optional[str] = Field(default=None, description="Standard Industrial Classification")

    @field_validator("ticker")
    @classmethod
    def validate_ticker(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.upper()
        if not TICKER_PATTERN.match(v):
            raise ValueError("Ticker must be 1-10 letters, digits, '.' or '-'")
        return v

    @field_validator("cik", mode="before")
    @classmethod
    def normalize_cik(cls, v: Any) -> Optional[str]:
        """CIKs are stored zero-padded to ten digits."""
        if v is None:
            return v
        v = str(v).strip()
        if not CIK_PATTERN.match(v):
            raise ValueError("CIK must be up to 10 digits")
        return v.zfill(10)

    @model_validator(mode="after")
    def require_identifier(self) -> "CompanyIdentity":
        if not (self.name or self.ticker or self.cik):
            raise ValueError("At least one of name, ticker or cik is required")
        return self

    @property
    def label(self) -> str:
        """Short label for logs."""
        return self.ticker or self.name or self.cik or "unknown"

    def to_dict(self) -> Dict[str, Optional[str]]:
        return self.model_dump()


class AnalysisParameters(FraudLensBaseModel):
    """Which filings to analyze."""

    window_years: int = Field(
        default=5,
        ge=1,
        le=10,
        description="Trailing window of fiscal years (1-10)",
    )
    include_amendments: bool = Field(
        default=False,
        description="Amended filings replace the originals for their period",
    )
    include_annual: bool = Field(default=True, description="Include 10-K periods")
    include_quarterly: bool = Field(default=False, description="Include 10-Q periods")

    @field_validator("window_years", mode="before")
    @classmethod
    def reject_non_integer_window(cls, v: Any) -> Any:
        if isinstance(v, bool) or (isinstance(v, float) and not v.is_integer()):
            raise ValueError("window_years must be a whole number of years")
        return v

    @model_validator(mode="after")
    def require_filing_kind(self) -> "AnalysisParameters":
        if not (self.include_annual or self.include_quarterly):
            raise ValueError("At least one of include_annual or include_quarterly must be set")
        return self

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump()


def coerce_parameters(
    value: Union[AnalysisParameters, Mapping[str, Any], None],
) -> AnalysisParameters:
    """Validate caller-supplied parameters, raising ConfigurationError."""
    if isinstance(value, AnalysisParameters):
        return value
    try:
        return AnalysisParameters(**dict(value or {}))
    except ValidationError as e:
        raise configuration_error_from_validation(e) from e


def coerce_company(value: Union[CompanyIdentity, Mapping[str, Any], str]) -> CompanyIdentity:
    """Accept a CompanyIdentity, a mapping, or a bare ticker/name string."""
    if isinstance(value, CompanyIdentity):
        return value
    try:
        if isinstance(value, str):
            candidate = value.strip().upper()
            if TICKER_PATTERN.match(candidate):
                return CompanyIdentity(ticker=candidate)
            return CompanyIdentity(name=value)
        return CompanyIdentity(**dict(value))
    except ValidationError as e:
        raise configuration_error_from_validation(e) from e
