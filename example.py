# FraudLens - Example Usage
import json

from fraudlens import FiscalPeriod, FraudRiskAnalyzer, configure_logging

configure_logging(level="WARNING")

# Two annual filings shaped like Enron's FY1999 and FY2000 10-Ks
fy1999 = {
    "Revenues": 40000,
    "CostOfRevenue": 35600,
    "AccountsReceivableNetCurrent": 4000,
    "AssetsCurrent": 12000,
    "ppe": 10000,
    "Assets": 33000,
    "depreciation": 1000,
    "sga": 2000,
    "Liabilities": 22000,
    "NetIncomeLoss": 893,
    "cfo": 1228,
    "LiabilitiesCurrent": 11000,
    "retained_earnings": 2200,
    "ebit": 1500,
    "market_value_of_equity": 30000,
    "shares_outstanding": 720,
}
fy2000 = {
    "Revenues": 60000,
    "CostOfRevenue": 54000,
    "AccountsReceivableNetCurrent": 7200,
    "AssetsCurrent": 18000,
    "ppe": 12000,
    "Assets": 45000,
    "depreciation": 1200,
    "sga": 3000,
    "Liabilities": 33000,
    "NetIncomeLoss": 979,
    "cfo": -2981,
    "LiabilitiesCurrent": 27000,
    "retained_earnings": 900,
    "ebit": 450,
    "market_value_of_equity": 5280,
    "shares_outstanding": 752,
}

print("FraudLens - Accounting Fraud Risk Analysis")
print("=" * 50)

analyzer = FraudRiskAnalyzer()
report = analyzer.analyze(
    {"name": "Enron Corp", "ticker": "ENRNQ"},
    [
        (FiscalPeriod(fiscal_year=1999, accession="0001024401-00-000002"), fy1999),
        (FiscalPeriod(fiscal_year=2000, accession="0001024401-01-500010"), fy2000),
    ],
)

print(f"Overall risk: {report.risk_level.value} ({report.composite.percent}/100)")
for flag in report.red_flags:
    print(f"  [{flag.severity.value.upper()}] {flag.title}")
print(f"\n{report.recommendation}")

print("\nFull report:")
print(json.dumps(report.to_dict(), indent=2))
