"""
SmartBudget Canada - Net Worth
==============================
Aggregates assets and liabilities into a net worth summary with simple
health indicators.
"""

from typing import Dict, List, Optional

from models import (
    Asset,
    AssetInput,
    AssetType,
    HealthStatus,
    Liability,
    NetWorthSummary,
)

LIQUID_ASSET_TYPES = {AssetType.SAVINGS, AssetType.CHECKING}

DEBT_TO_INCOME_CONCERN = 0.4
LIQUIDITY_TARGET_MONTHS = 3


def _totals_by_type(rows, amount_field: str) -> Dict[str, float]:
    totals: Dict[str, float] = {}
    for row in rows:
        key = row.type.value
        totals[key] = round(totals.get(key, 0.0) + getattr(row, amount_field), 2)
    return totals


def liquid_assets(assets: List[AssetInput]) -> float:
    return round(sum(a.value for a in assets if a.type in LIQUID_ASSET_TYPES), 2)


def summarize_net_worth(
    assets: List[Asset],
    liabilities: List[Liability],
    monthly_income: Optional[float] = None,
    monthly_expenses: Optional[float] = None
) -> NetWorthSummary:
    """
    Net worth with debt-to-income and liquidity ratios.

    - debt_to_income_ratio: monthly minimum payments / monthly gross income
    - liquidity_ratio: savings + checking, in months of expenses

    Either ratio is None when its denominator is unknown.
    """
    total_assets = round(sum(a.value for a in assets), 2)
    total_liabilities = round(sum(l.balance for l in liabilities), 2)
    net_worth = round(total_assets - total_liabilities, 2)

    debt_to_income = None
    if monthly_income and monthly_income > 0:
        monthly_payments = sum((l.minimum_payment or 0.0) for l in liabilities)
        debt_to_income = round(monthly_payments / monthly_income, 4)

    liquidity = None
    if monthly_expenses and monthly_expenses > 0:
        liquidity = round(liquid_assets(assets) / monthly_expenses, 2)

    return NetWorthSummary(
        total_assets=total_assets,
        total_liabilities=total_liabilities,
        net_worth=net_worth,
        assets_by_type=_totals_by_type(assets, "value"),
        liabilities_by_type=_totals_by_type(liabilities, "balance"),
        debt_to_income_ratio=debt_to_income,
        liquidity_ratio=liquidity,
        health_status=assess_health(net_worth, debt_to_income, liquidity),
        asset_count=len(assets),
        liability_count=len(liabilities),
    )


def assess_health(
    net_worth: float,
    debt_to_income: Optional[float],
    liquidity: Optional[float]
) -> HealthStatus:
    if net_worth < 0:
        return HealthStatus.CRITICAL
    if debt_to_income is not None and debt_to_income > DEBT_TO_INCOME_CONCERN:
        return HealthStatus.CONCERNING
    if liquidity is not None and liquidity < LIQUIDITY_TARGET_MONTHS:
        return HealthStatus.IMPROVING
    return HealthStatus.HEALTHY
