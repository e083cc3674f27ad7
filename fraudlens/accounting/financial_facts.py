"""
Financial Facts Module

Standardized per-period accounting figures for one company.

Upstream extractors report the same concept under different tags (XBRL
concept names, snake_case extractor names). This module resolves those
variants to one canonical Concept, keeps absent values distinct from zero,
and records data-quality issues instead of raising on unusual input.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from functools import cached_property
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)


class Concept(str, Enum):
    """Canonical financial concepts consumed by the models."""

    REVENUE = "Revenue"
    COST_OF_GOODS_SOLD = "CostOfGoodsSold"
    NET_INCOME = "NetIncome"
    TOTAL_ASSETS = "TotalAssets"
    CURRENT_ASSETS = "CurrentAssets"
    CURRENT_LIABILITIES = "CurrentLiabilities"
    RECEIVABLES = "Receivables"
    PPE = "PPE"
    DEPRECIATION = "Depreciation"
    SGA = "SGA"
    TOTAL_LIABILITIES = "TotalLiabilities"
    CASH_FLOW_FROM_OPERATIONS = "CashFlowFromOperations"
    MARKET_VALUE_OF_EQUITY = "MarketValueOfEquity"
    RETAINED_EARNINGS = "RetainedEarnings"
    EBIT = "EBIT"
    SHARES_OUTSTANDING = "SharesOutstanding"


# Tag variants in priority order; the canonical name is always tried first.
CONCEPT_ALIASES: Dict[Concept, Tuple[str, ...]] = {
    Concept.REVENUE: (
        "revenue",
        "Revenues",
        "RevenueFromContractWithCustomerExcludingAssessedTax",
        "SalesRevenueNet",
        "total_revenue",
        "sales",
    ),
    Concept.COST_OF_GOODS_SOLD: (
        "cost_of_goods_sold",
        "cost_of_revenue",
        "CostOfRevenue",
        "CostOfGoodsAndServicesSold",
        "cogs",
    ),
    Concept.NET_INCOME: ("net_income", "NetIncomeLoss", "ProfitLoss"),
    Concept.TOTAL_ASSETS: ("total_assets", "Assets"),
    Concept.CURRENT_ASSETS: ("current_assets", "AssetsCurrent"),
    Concept.CURRENT_LIABILITIES: ("current_liabilities", "LiabilitiesCurrent"),
    Concept.RECEIVABLES: (
        "receivables",
        "accounts_receivable",
        "AccountsReceivableNetCurrent",
        "ReceivablesNetCurrent",
    ),
    Concept.PPE: ("ppe", "ppe_net", "PropertyPlantAndEquipmentNet"),
    Concept.DEPRECIATION: (
        "depreciation",
        "DepreciationDepletionAndAmortization",
        "DepreciationAndAmortization",
    ),
    Concept.SGA: ("sga", "sga_expense", "SellingGeneralAndAdministrativeExpense"),
    Concept.TOTAL_LIABILITIES: ("total_liabilities", "Liabilities"),
    Concept.CASH_FLOW_FROM_OPERATIONS: (
        "cfo",
        "operating_cash_flow",
        "NetCashProvidedByUsedInOperatingActivities",
    ),
    Concept.MARKET_VALUE_OF_EQUITY: ("market_value_of_equity", "market_cap"),
    Concept.RETAINED_EARNINGS: (
        "retained_earnings",
        "RetainedEarningsAccumulatedDeficit",
    ),
    Concept.EBIT: ("ebit", "OperatingIncomeLoss", "operating_income"),
    Concept.SHARES_OUTSTANDING: (
        "shares_outstanding",
        "CommonStockSharesOutstanding",
        "shares_basic",
        "WeightedAverageNumberOfSharesOutstandingBasic",
    ),
}


def _build_tag_lookup() -> Dict[str, Tuple[Concept, int]]:
    lookup: Dict[str, Tuple[Concept, int]] = {}
    for concept, aliases in CONCEPT_ALIASES.items():
        for priority, tag in enumerate((concept.value,) + aliases):
            lookup.setdefault(tag, (concept, priority))
    return lookup


_TAG_LOOKUP = _build_tag_lookup()

# Concepts that can never legitimately be negative
NON_NEGATIVE_CONCEPTS = (
    Concept.TOTAL_ASSETS,
    Concept.REVENUE,
    Concept.RECEIVABLES,
    Concept.CURRENT_ASSETS,
    Concept.PPE,
    Concept.SHARES_OUTSTANDING,
    Concept.TOTAL_LIABILITIES,
)


class FilingType(Enum):
    """SEC form types the engine understands."""

    ANNUAL = "10-K"
    QUARTERLY = "10-Q"
    AMENDMENT = "10-K/A"
    QUARTERLY_AMENDMENT = "10-Q/A"

    @classmethod
    def from_form(cls, form: str) -> "FilingType":
        """Parse a form string such as '10-K', '10-K405' or '10-q/a'."""
        normalized = form.strip().upper().replace(" ", "")
        amended = normalized.endswith("/A")
        if amended:
            normalized = normalized[:-2]
        if normalized.startswith("10-K"):
            return cls.AMENDMENT if amended else cls.ANNUAL
        if normalized.startswith("10-Q"):
            return cls.QUARTERLY_AMENDMENT if amended else cls.QUARTERLY
        raise ValueError(f"Unsupported form type: {form}")

    @property
    def is_amendment(self) -> bool:
        return self in (FilingType.AMENDMENT, FilingType.QUARTERLY_AMENDMENT)

    @property
    def is_annual(self) -> bool:
        return self in (FilingType.ANNUAL, FilingType.AMENDMENT)

    @property
    def base(self) -> "FilingType":
        """The original (non-amended) filing kind."""
        return FilingType.ANNUAL if self.is_annual else FilingType.QUARTERLY


@dataclass(frozen=True)
class FiscalPeriod:
    """One reporting period for a company."""

    fiscal_year: int
    period_end: Optional[date] = None
    filing_type: FilingType = FilingType.ANNUAL
    fiscal_quarter: Optional[int] = None
    accession: Optional[str] = None
    filed_date: Optional[date] = None

    def __post_init__(self):
        if self.filing_type.is_annual:
            if self.fiscal_quarter is not None:
                raise ValueError("Annual periods do not carry a fiscal quarter")
        elif self.fiscal_quarter not in (1, 2, 3, 4):
            raise ValueError("Quarterly periods need fiscal_quarter between 1 and 4")

    @property
    def key(self) -> Tuple[int, Optional[int], str]:
        """Identity of the period; an amendment shares the key of its original."""
        return (self.fiscal_year, self.fiscal_quarter, self.filing_type.base.value)

    @property
    def sort_key(self) -> Tuple[int, int, int, int, date]:
        quarter = self.fiscal_quarter if self.fiscal_quarter is not None else 4
        return (
            self.fiscal_year,
            quarter,
            1 if self.filing_type.is_annual else 0,
            1 if self.filing_type.is_amendment else 0,
            self.period_end or date.min,
        )

    @property
    def label(self) -> str:
        text = f"FY{self.fiscal_year}"
        if self.fiscal_quarter is not None:
            text += f" Q{self.fiscal_quarter}"
        if self.filing_type.is_amendment:
            text += " (amended)"
        return text

    def follows(self, other: "FiscalPeriod") -> bool:
        """True when this period immediately follows `other` with no gap."""
        if self.filing_type.base is not other.filing_type.base:
            return False
        if self.filing_type.is_annual:
            return self.fiscal_year == other.fiscal_year + 1
        if self.fiscal_quarter == 1:
            return other.fiscal_quarter == 4 and self.fiscal_year == other.fiscal_year + 1
        return (
            self.fiscal_year == other.fiscal_year
            and other.fiscal_quarter == self.fiscal_quarter - 1
        )


class IssueCode(str, Enum):
    """Kinds of data-quality problems."""

    NEGATIVE_VALUE = "NEGATIVE_VALUE"
    INCONSISTENT_TOTALS = "INCONSISTENT_TOTALS"
    NON_FINITE = "NON_FINITE"
    CONFLICTING_TAGS = "CONFLICTING_TAGS"
    DUPLICATE_PERIOD = "DUPLICATE_PERIOD"
    UNKNOWN_TAG = "UNKNOWN_TAG"


# Issues that describe the values themselves, as opposed to bookkeeping
VALUE_ISSUE_CODES = frozenset(
    {
        IssueCode.NEGATIVE_VALUE,
        IssueCode.INCONSISTENT_TOTALS,
        IssueCode.NON_FINITE,
        IssueCode.CONFLICTING_TAGS,
    }
)


@dataclass(frozen=True)
class DataQualityIssue:
    """A problem found in the input facts."""

    code: IssueCode
    message: str
    concept: Optional[str] = None
    fiscal_year: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "concept": self.concept,
            "fiscal_year": self.fiscal_year,
            "message": self.message,
        }


def _coerce_number(value: Any) -> Tuple[Optional[float], bool]:
    """Return (number, ok). None means absent; ok=False means unusable input."""
    if value is None:
        return None, True
    if isinstance(value, bool):
        return None, False
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None, False
    if not math.isfinite(number):
        return None, False
    return number, True


@dataclass(frozen=True)
class FinancialFacts:
    """
    Standardized figures for one fiscal period.

    `values` maps every Concept to a float or None. None means the concept
    was not reported; 0.0 is a reported zero.
    """

    period: FiscalPeriod
    values: Mapping[Concept, Optional[float]] = field(default_factory=dict)
    ingest_issues: Tuple[DataQualityIssue, ...] = ()

    def __post_init__(self):
        cleaned: Dict[Concept, Optional[float]] = {concept: None for concept in Concept}
        issues = list(self.ingest_issues)
        for key, raw in self.values.items():
            concept = Concept(key)
            number, ok = _coerce_number(raw)
            if not ok:
                issues.append(
                    DataQualityIssue(
                        code=IssueCode.NON_FINITE,
                        concept=concept.value,
                        fiscal_year=self.period.fiscal_year,
                        message=f"{concept.value} value {raw!r} is not a finite number; treated as absent",
                    )
                )
            cleaned[concept] = number
        object.__setattr__(self, "values", MappingProxyType(cleaned))
        object.__setattr__(self, "ingest_issues", tuple(issues))

    @classmethod
    def from_raw(cls, period: FiscalPeriod, raw: Mapping[str, Any]) -> "FinancialFacts":
        """
        Build facts from an extractor's tag -> value mapping.

        When several variants of one concept carry a value the highest
        priority variant wins; unknown tags are dropped and recorded.
        """
        candidates: Dict[Concept, List[Tuple[int, str, Any]]] = {}
        issues: List[DataQualityIssue] = []

        for tag, value in raw.items():
            tag_name = tag.value if isinstance(tag, Concept) else str(tag)
            match = _TAG_LOOKUP.get(tag_name)
            if match is None:
                issues.append(
                    DataQualityIssue(
                        code=IssueCode.UNKNOWN_TAG,
                        concept=tag_name,
                        fiscal_year=period.fiscal_year,
                        message=f"Unrecognized tag '{tag_name}' ignored",
                    )
                )
                continue
            concept, priority = match
            candidates.setdefault(concept, []).append((priority, tag_name, value))

        resolved: Dict[Concept, Any] = {}
        for concept, variants in candidates.items():
            variants.sort(key=lambda item: item[0])
            present = [v for v in variants if v[2] is not None]
            if not present:
                resolved[concept] = None
                continue
            _, winner_tag, winner_value = present[0]
            resolved[concept] = winner_value

            others = {
                tag: value
                for _, tag, value in present[1:]
                if _coerce_number(value)[0] != _coerce_number(winner_value)[0]
            }
            if others:
                issues.append(
                    DataQualityIssue(
                        code=IssueCode.CONFLICTING_TAGS,
                        concept=concept.value,
                        fiscal_year=period.fiscal_year,
                        message=(
                            f"{concept.value} reported under several tags; using "
                            f"'{winner_tag}' over {sorted(others)}"
                        ),
                    )
                )

        return cls(period=period, values=resolved, ingest_issues=tuple(issues))

    def get(self, concept: Concept) -> Optional[float]:
        return self.values[concept]

    def has(self, concept: Concept) -> bool:
        return self.values[concept] is not None

    def missing(self, concepts: Iterable[Concept]) -> List[Concept]:
        return [c for c in concepts if self.values[c] is None]

    def reported_values(self) -> List[float]:
        """All reported values, in concept order."""
        return [v for v in self.values.values() if v is not None]

    @cached_property
    def issues(self) -> Tuple[DataQualityIssue, ...]:
        """Ingestion issues plus invariant violations."""
        return self.ingest_issues + tuple(validate_facts(self))

    def anomalies_for(self, concepts: Iterable[Concept]) -> List[DataQualityIssue]:
        """Value problems touching any of `concepts`."""
        names = {c.value for c in concepts}
        return [
            issue
            for issue in self.issues
            if issue.code in VALUE_ISSUE_CODES and issue.concept in names
        ]


def validate_facts(facts: FinancialFacts) -> List[DataQualityIssue]:
    """
    Check accounting invariants on one period. Never raises.

    Violations are reported, not corrected: sourcing data can be legitimately
    unusual and the calculators still produce a result.
    """
    issues: List[DataQualityIssue] = []
    year = facts.period.fiscal_year

    for concept in NON_NEGATIVE_CONCEPTS:
        value = facts.get(concept)
        if value is not None and value < 0:
            issues.append(
                DataQualityIssue(
                    code=IssueCode.NEGATIVE_VALUE,
                    concept=concept.value,
                    fiscal_year=year,
                    message=f"{concept.value} is negative ({value:,.0f})",
                )
            )

    current_assets = facts.get(Concept.CURRENT_ASSETS)
    total_assets = facts.get(Concept.TOTAL_ASSETS)
    if current_assets is not None and total_assets is not None and current_assets > total_assets:
        issues.append(
            DataQualityIssue(
                code=IssueCode.INCONSISTENT_TOTALS,
                concept=Concept.CURRENT_ASSETS.value,
                fiscal_year=year,
                message=(
                    f"Current assets ({current_assets:,.0f}) exceed total assets "
                    f"({total_assets:,.0f})"
                ),
            )
        )

    return issues


class FactsHistory:
    """
    Ordered financial facts for one company, most recent last.

    An original filing and its amendment may both be held; select() decides
    which one represents the period.
    """

    def __init__(
        self,
        facts: Iterable[FinancialFacts] = (),
        issues: Sequence[DataQualityIssue] = (),
    ):
        by_slot: Dict[Tuple[Tuple[int, Optional[int], str], bool], FinancialFacts] = {}
        history_issues = list(issues)

        for item in facts:
            slot = (item.period.key, item.period.filing_type.is_amendment)
            if slot in by_slot:
                history_issues.append(
                    DataQualityIssue(
                        code=IssueCode.DUPLICATE_PERIOD,
                        fiscal_year=item.period.fiscal_year,
                        message=f"Duplicate submission for {item.period.label}; latest kept",
                    )
                )
            by_slot[slot] = item

        self._facts: Tuple[FinancialFacts, ...] = tuple(
            sorted(by_slot.values(), key=lambda f: f.period.sort_key)
        )
        self._issues: Tuple[DataQualityIssue, ...] = tuple(history_issues)

    @classmethod
    def from_pairs(
        cls, pairs: Iterable[Tuple[FiscalPeriod, Mapping[str, Any]]]
    ) -> "FactsHistory":
        """Build a history from (period, raw tag mapping) pairs."""
        return cls(
            facts if isinstance(facts, FinancialFacts) else FinancialFacts.from_raw(period, facts)
            for period, facts in pairs
        )

    def __len__(self) -> int:
        return len(self._facts)

    def __iter__(self) -> Iterator[FinancialFacts]:
        return iter(self._facts)

    def __getitem__(self, index: int) -> FinancialFacts:
        return self._facts[index]

    @property
    def periods(self) -> List[FiscalPeriod]:
        return [f.period for f in self._facts]

    @property
    def issues(self) -> List[DataQualityIssue]:
        """All data-quality issues across the history."""
        result = list(self._issues)
        for item in self._facts:
            result.extend(item.issues)
        return result

    def select(
        self,
        window_years: int = 5,
        include_amendments: bool = False,
        include_annual: bool = True,
        include_quarterly: bool = False,
    ) -> "FactsHistory":
        """Trailing window of the requested filing kinds."""
        chosen: Dict[Tuple[int, Optional[int], str], FinancialFacts] = {}
        for item in self._facts:
            filing_type = item.period.filing_type
            if filing_type.is_annual and not include_annual:
                continue
            if not filing_type.is_annual and not include_quarterly:
                continue
            if filing_type.is_amendment:
                if include_amendments:
                    chosen[item.period.key] = item
                continue
            # Originals never displace an amendment already chosen
            existing = chosen.get(item.period.key)
            if existing is None or not existing.period.filing_type.is_amendment:
                chosen[item.period.key] = item

        if not chosen:
            return FactsHistory(issues=self._issues)

        latest_year = max(key[0] for key in chosen)
        cutoff = latest_year - window_years
        selected = [item for key, item in chosen.items() if key[0] > cutoff]
        logger.debug(
            f"Selected {len(selected)} of {len(self._facts)} periods "
            f"(FY{cutoff + 1}-FY{latest_year})"
        )
        return FactsHistory(selected, issues=self._issues)

    def of_kind(self, kind: FilingType) -> "FactsHistory":
        """Only the periods whose base filing kind is `kind`."""
        return FactsHistory(
            (item for item in self._facts if item.period.filing_type.base is kind.base),
            issues=self._issues,
        )

    def latest(self) -> Optional[FinancialFacts]:
        return self._facts[-1] if self._facts else None

    def latest_pair(self) -> Optional[Tuple[FinancialFacts, FinancialFacts]]:
        """
        (prior, current) for the most recent period and the one before it of
        the same kind, or None when there is no such contiguous pair.
        """
        current = self.latest()
        if current is None:
            return None
        kind = current.period.filing_type.base
        for prior in reversed(self._facts[:-1]):
            if prior.period.filing_type.base is kind:
                return (prior, current) if current.period.follows(prior.period) else None
        return None

    def all_values(self) -> List[float]:
        """Every reported non-zero value across all periods."""
        return [v for item in self._facts for v in item.reported_values() if v != 0]

    def to_frame(self) -> pd.DataFrame:
        """Rows are periods (oldest first), columns are concept names, NaN for absent."""
        records = [
            {concept.value: (np.nan if value is None else value) for concept, value in item.values.items()}
            for item in self._facts
        ]
        index = pd.Index([item.period.label for item in self._facts], name="period")
        columns = [concept.value for concept in Concept]
        return pd.DataFrame(records, index=index, columns=columns, dtype=float)
