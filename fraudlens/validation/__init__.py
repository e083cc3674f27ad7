"""
FraudLens Validation Module

Validated analysis inputs.
"""

from .models import (
    AnalysisParameters,
    CompanyIdentity,
    FraudLensBaseModel,
    coerce_company,
    coerce_parameters,
)

__all__ = [
    "AnalysisParameters",
    "CompanyIdentity",
    "FraudLensBaseModel",
    "coerce_company",
    "coerce_parameters",
]
