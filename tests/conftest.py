"""
Shared test fixtures for FraudLens test suite.
"""

from datetime import date

import pytest

from fraudlens.accounting.financial_facts import (
    FactsHistory,
    FilingType,
    FinancialFacts,
    FiscalPeriod,
)
from fraudlens.config.metrics import get_metrics
from fraudlens.config.settings import EngineSettings


# Fiscal 1999 -> 2000 figures shaped like Enron's last clean filings:
# revenue up 50%, receivables up 80%, operating cash flow turning negative.
ENRON_FY1999 = {
    "revenue": 40000,
    "cost_of_goods_sold": 35600,
    "receivables": 4000,
    "current_assets": 12000,
    "ppe": 10000,
    "total_assets": 33000,
    "depreciation": 1000,
    "sga": 2000,
    "total_liabilities": 22000,
    "net_income": 893,
    "cfo": 1228,
    "current_liabilities": 11000,
    "retained_earnings": 2200,
    "ebit": 1500,
    "market_value_of_equity": 30000,
    "shares_outstanding": 720,
}

ENRON_FY2000 = {
    "revenue": 60000,
    "cost_of_goods_sold": 54000,
    "receivables": 7200,
    "current_assets": 18000,
    "ppe": 12000,
    "total_assets": 45000,
    "depreciation": 1200,
    "sga": 3000,
    "total_liabilities": 33000,
    "net_income": 979,
    "cfo": -2981,
    "current_liabilities": 27000,
    "retained_earnings": 900,
    "ebit": 450,
    "market_value_of_equity": 5280,
    "shares_outstanding": 752,
}

HEALTHY_FY2022 = {
    "revenue": 50000,
    "cost_of_goods_sold": 30000,
    "receivables": 5000,
    "current_assets": 20000,
    "ppe": 15000,
    "total_assets": 50000,
    "depreciation": 1500,
    "sga": 8000,
    "total_liabilities": 20000,
    "net_income": 5000,
    "cfo": 6000,
    "current_liabilities": 10000,
    "retained_earnings": 25000,
    "ebit": 7000,
    "market_value_of_equity": 90000,
    "shares_outstanding": 1000,
}

HEALTHY_FY2023 = {
    "revenue": 54000,
    "cost_of_goods_sold": 31860,
    "receivables": 5400,
    "current_assets": 22000,
    "ppe": 16000,
    "total_assets": 54000,
    "depreciation": 1600,
    "sga": 8640,
    "total_liabilities": 20520,
    "net_income": 5600,
    "cfo": 6800,
    "current_liabilities": 10800,
    "retained_earnings": 30000,
    "ebit": 7800,
    "market_value_of_equity": 95000,
    "shares_outstanding": 990,
}

POOR_FY2022 = {
    "revenue": 10000,
    "cost_of_goods_sold": 6000,
    "total_assets": 10000,
    "total_liabilities": 4000,
    "current_assets": 5000,
    "current_liabilities": 2500,
    "net_income": 1000,
    "cfo": 500,
    "shares_outstanding": 100,
}

POOR_FY2023 = {
    "revenue": 9000,
    "cost_of_goods_sold": 6300,
    "total_assets": 11000,
    "total_liabilities": 5500,
    "current_assets": 4000,
    "current_liabilities": 4000,
    "net_income": -500,
    "cfo": -800,
    "shares_outstanding": 120,
}


def make_facts(
    year: int,
    values,
    filing_type: FilingType = FilingType.ANNUAL,
    quarter=None,
    **period_fields,
) -> FinancialFacts:
    """Facts for one period from a tag -> value mapping."""
    period = FiscalPeriod(
        fiscal_year=year,
        filing_type=filing_type,
        fiscal_quarter=quarter,
        **period_fields,
    )
    return FinancialFacts.from_raw(period, values)


@pytest.fixture
def facts_factory():
    """Build FinancialFacts inline: facts_factory(2023, {...})."""
    return make_facts


@pytest.fixture
def enron_history():
    """Two contiguous annual periods with manipulation and distress patterns."""
    return FactsHistory(
        [
            make_facts(
                1999,
                ENRON_FY1999,
                accession="0001024401-00-000002",
                filed_date=date(2000, 3, 30),
                period_end=date(1999, 12, 31),
            ),
            make_facts(
                2000,
                ENRON_FY2000,
                accession="0001024401-01-500010",
                filed_date=date(2001, 4, 2),
                period_end=date(2000, 12, 31),
            ),
        ]
    )


@pytest.fixture
def healthy_history():
    """Two contiguous annual periods of a steadily growing, conservative company."""
    return FactsHistory([make_facts(2022, HEALTHY_FY2022), make_facts(2023, HEALTHY_FY2023)])


@pytest.fixture
def excellent_history():
    """Healthy company with improving asset turnover; passes all nine Piotroski tests."""
    current = dict(HEALTHY_FY2023, revenue=55000, cost_of_goods_sold=32450)
    return FactsHistory([make_facts(2022, HEALTHY_FY2022), make_facts(2023, current)])


@pytest.fixture
def poor_history():
    """Deteriorating company that fails all nine Piotroski tests."""
    return FactsHistory([make_facts(2022, POOR_FY2022), make_facts(2023, POOR_FY2023)])


@pytest.fixture
def single_period_history():
    """Only the latest Enron-like period."""
    return FactsHistory([make_facts(2000, ENRON_FY2000)])


@pytest.fixture
def default_settings():
    return EngineSettings()


@pytest.fixture(autouse=True)
def reset_metrics():
    """Clear the process-wide metrics collector between tests."""
    get_metrics().reset()
    yield
    get_metrics().reset()
