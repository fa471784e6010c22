"""
SmartBudget Canada - Recommendation Engine
==========================================
Rule-based financial health scoring and budget recommendations.

The numbers here are computed locally. The AI coach receives the
score and snapshot and only adds commentary on top of them.
"""

import logging
from typing import Any, Dict, List, Optional

from tax_constants import HIGH_INTEREST_APR_THRESHOLD, REGISTERED_ACCOUNT_LIMITS_2025
from models import (
    Asset,
    AuditSeverity,
    BudgetSummary,
    FinancialRecommendation,
    FinancialSnapshot,
    HealthScore,
    Liability,
    LiabilityType,
    RecommendationCategory,
    RecommendationPriority,
    RecommendationReport,
)
from net_worth import liquid_assets
from tax_calculator import calculate_tax

logger = logging.getLogger(__name__)

HOUSING_CATEGORIES = {"housing", "rent", "mortgage"}
DEBT_CATEGORIES = {"debt", "debt_payments", "loans"}

PRIORITY_ORDER = {
    RecommendationPriority.CRITICAL: 0,
    RecommendationPriority.HIGH: 1,
    RecommendationPriority.MEDIUM: 2,
    RecommendationPriority.LOW: 3,
    RecommendationPriority.INFO: 4,
}


# =============================================================================
# FINANCIAL SNAPSHOT
# =============================================================================

def build_financial_snapshot(
    budget: Optional[Dict[str, Any]],
    assets: List[Asset],
    liabilities: List[Liability]
) -> FinancialSnapshot:
    """
    Collect what the coach needs from the latest budget and the user's
    net worth records. No name or email is included.
    """
    total_assets = sum(a.value for a in assets)
    total_liabilities = sum(l.balance for l in liabilities)

    credit_cards = [l for l in liabilities if l.type == LiabilityType.CREDIT_CARD]
    high_interest = [
        l for l in liabilities
        if (l.interest_rate or 0) > HIGH_INTEREST_APR_THRESHOLD
    ]

    snapshot = FinancialSnapshot(
        total_assets=round(total_assets, 2),
        total_liabilities=round(total_liabilities, 2),
        net_worth=round(total_assets - total_liabilities, 2),
        liquid_assets=liquid_assets(assets),
        credit_card_debt=round(sum(c.balance for c in credit_cards), 2),
        credit_card_limit=round(sum(c.credit_limit or 0 for c in credit_cards), 2),
        high_interest_debt=round(sum(l.balance for l in high_interest), 2),
        assets=[
            {"type": a.type.value, "name": a.name, "value": a.value}
            for a in assets
        ],
        liabilities=[
            {
                "type": l.type.value,
                "name": l.name,
                "balance": l.balance,
                "interest_rate": l.interest_rate,
                "minimum_payment": l.minimum_payment,
            }
            for l in liabilities
        ],
        high_interest_debts=[
            {"name": l.name, "type": l.type.value, "balance": l.balance, "interest_rate": l.interest_rate}
            for l in high_interest
        ],
    )

    if budget:
        snapshot.has_budget = True
        snapshot.budget_name = budget.get("name")
        snapshot.province = budget.get("province")
        snapshot.monthly_income = float(budget.get("net_income") or 0)
        snapshot.monthly_expenses = float(budget.get("total_expenses") or 0)
        snapshot.monthly_surplus = float(budget.get("disposable_income") or 0)

    return snapshot


# =============================================================================
# HEALTH SCORE
# =============================================================================

class FinancialHealthScorer:
    """
    Scores a snapshot from 0 to 10, starting at a neutral 5.
    """

    BASE_SCORE = 5

    def score(self, snapshot: FinancialSnapshot) -> HealthScore:
        score = self.BASE_SCORE
        factors: List[str] = []
        income = snapshot.monthly_income
        expenses = snapshot.monthly_expenses
        emergency_target = expenses * 3

        # === DEDUCTIONS ===
        if snapshot.credit_card_debt > 0:
            score -= 2
            factors.append(f"-2: carrying ${snapshot.credit_card_debt:,.0f} of credit card debt")

        if snapshot.high_interest_debt > income * 3:
            score -= 2
            factors.append("-2: high-interest debt exceeds three months of income")

        if snapshot.monthly_surplus < 0:
            score -= 3
            factors.append("-3: spending more than you earn")

        if snapshot.liquid_assets < emergency_target:
            score -= 1
            factors.append("-1: emergency fund below three months of expenses")

        if snapshot.net_worth < 0:
            score -= 2
            factors.append("-2: negative net worth")

        # === ADDITIONS ===
        if snapshot.net_worth > income * 12:
            score += 1
            factors.append("+1: net worth above a year of income")

        if snapshot.monthly_surplus > income * 0.2:
            score += 1
            factors.append("+1: saving more than 20% of income")

        if snapshot.credit_card_debt == 0:
            score += 1
            factors.append("+1: no credit card debt")

        if snapshot.liquid_assets >= emergency_target:
            score += 1
            factors.append("+1: emergency fund covers three months")

        score = max(0, min(10, score))
        return HealthScore(score=score, severity=self.severity_for(score), factors=factors)

    @staticmethod
    def severity_for(score: int) -> AuditSeverity:
        if score >= 8:
            return AuditSeverity.EXCELLENT
        if score >= 6:
            return AuditSeverity.GOOD
        if score >= 4:
            return AuditSeverity.CONCERNING
        if score >= 2:
            return AuditSeverity.CRITICAL
        return AuditSeverity.DISASTER


# =============================================================================
# RECOMMENDATION ENGINE
# =============================================================================

class RecommendationEngine:
    """
    Generate budget recommendations from a summary and net worth records.
    """

    def generate(
        self,
        summary: BudgetSummary,
        primary_goal: Optional[str] = None,
        assets: Optional[List[Asset]] = None,
        liabilities: Optional[List[Liability]] = None,
        budget_id: Optional[str] = None
    ) -> RecommendationReport:
        assets = assets or []
        liabilities = liabilities or []
        recs: List[FinancialRecommendation] = []

        net = summary.net_income
        surplus = summary.disposable_income
        expenses = summary.total_expenses

        # 1. Shortfall
        if surplus < 0:
            recs.append(FinancialRecommendation(
                priority=RecommendationPriority.CRITICAL,
                category=RecommendationCategory.CASH_FLOW,
                title="Close your monthly shortfall",
                description=f"You spend ${-surplus:,.0f} more than you take home each month. "
                            f"Every month this continues adds to debt.",
                action_required="Cut discretionary categories first, then renegotiate fixed bills.",
                monthly_impact=round(-surplus, 2),
            ))

        # 2. High-interest debt
        expensive = [l for l in liabilities if (l.interest_rate or 0) > HIGH_INTEREST_APR_THRESHOLD]
        if expensive:
            balance = sum(l.balance for l in expensive)
            interest = sum(l.balance * (l.interest_rate or 0) / 100 / 12 for l in expensive)
            recs.append(FinancialRecommendation(
                priority=RecommendationPriority.HIGH,
                category=RecommendationCategory.DEBT,
                title="Pay off high-interest debt first",
                description=f"${balance:,.0f} of your debt charges over {HIGH_INTEREST_APR_THRESHOLD:.0f}% "
                            f"and costs about ${interest:,.0f} a month in interest. "
                            f"No investment reliably beats that return.",
                action_required="Put every spare dollar on the highest-rate balance (avalanche method).",
                monthly_impact=round(interest, 2),
                warnings=["Avoid new charges on cards you are paying down"],
            ))

        # 3. Emergency fund
        liquid = liquid_assets(assets)
        target = expenses * 3
        if expenses > 0 and liquid < target:
            recs.append(FinancialRecommendation(
                priority=RecommendationPriority.HIGH if liquid < expenses else RecommendationPriority.MEDIUM,
                category=RecommendationCategory.EMERGENCY_FUND,
                title="Build a three-month emergency fund",
                description=f"You have ${liquid:,.0f} in savings and chequing. Three months of "
                            f"expenses is ${target:,.0f}.",
                action_required="Automate a transfer to a high-interest savings account on payday.",
            ))

        # 4. Housing ratio
        housing = sum(v for k, v in summary.expenses_by_category.items() if k.lower() in HOUSING_CATEGORIES)
        if net > 0 and housing / net > 0.35:
            recs.append(FinancialRecommendation(
                priority=RecommendationPriority.MEDIUM,
                category=RecommendationCategory.HOUSING,
                title="Housing costs are above 35% of take-home pay",
                description=f"Housing takes {housing / net * 100:.0f}% of your net income.",
                action_required="Consider a roommate, a cheaper unit at renewal, or a longer amortization.",
                monthly_impact=round(housing - net * 0.35, 2),
            ))

        # 5. Debt payment ratio
        debt_budgeted = sum(v for k, v in summary.expenses_by_category.items() if k.lower() in DEBT_CATEGORIES)
        debt_payments = max(debt_budgeted, sum(l.minimum_payment or 0 for l in liabilities))
        if net > 0 and debt_payments / net > 0.20:
            recs.append(FinancialRecommendation(
                priority=RecommendationPriority.MEDIUM,
                category=RecommendationCategory.DEBT,
                title="Debt payments are above 20% of take-home pay",
                description=f"${debt_payments:,.0f} a month goes to debt payments.",
                action_required="Ask your bank about consolidating into a lower-rate line of credit.",
            ))

        # 6. Savings rate
        if net > 0 and 0 <= surplus < net * 0.10:
            recs.append(FinancialRecommendation(
                priority=RecommendationPriority.MEDIUM,
                category=RecommendationCategory.SAVINGS,
                title="Aim to save at least 10% of take-home pay",
                description=f"Your savings rate is {summary.savings_rate:.1f}%.",
                action_required="Trim two discretionary categories to free up the difference.",
                monthly_impact=round(net * 0.10 - surplus, 2),
            ))

        # 7. Registered accounts
        if surplus > 0 and summary.gross_income_annual > 0:
            recs.append(self._registered_account_rec(summary, surplus))

        # 8. Goal specific
        goal_rec = self._goal_rec(primary_goal)
        if goal_rec:
            recs.append(goal_rec)

        recs.sort(key=lambda r: PRIORITY_ORDER[r.priority])
        immediate = [r for r in recs if r.priority in (RecommendationPriority.CRITICAL, RecommendationPriority.HIGH)]
        long_term = [r for r in recs if PRIORITY_ORDER[r.priority] > PRIORITY_ORDER[RecommendationPriority.HIGH]]

        logger.info(f"Generated {len(recs)} recommendations ({len(immediate)} immediate)")

        return RecommendationReport(
            budget_id=budget_id,
            monthly_surplus=surplus,
            savings_rate=summary.savings_rate,
            potential_monthly_improvement=round(sum(r.monthly_impact for r in recs if r.monthly_impact > 0), 2),
            recommendations=recs,
            immediate_actions=immediate,
            long_term_actions=long_term,
        )

    def _registered_account_rec(self, summary: BudgetSummary, surplus: float) -> FinancialRecommendation:
        limits = REGISTERED_ACCOUNT_LIMITS_2025
        if summary.partners:
            top_income = max(p.gross_income for p in summary.partners)
        else:
            top_income = summary.gross_income_annual
        marginal = calculate_tax(top_income, summary.province).marginal_rate

        if marginal >= 30:
            rrsp_room = min(top_income * limits["rrsp_rate"], limits["rrsp_dollar_limit"])
            return FinancialRecommendation(
                priority=RecommendationPriority.MEDIUM,
                category=RecommendationCategory.RETIREMENT,
                title="Use your RRSP room",
                description=f"At a {marginal:.1f}% marginal rate, each $1,000 in an RRSP returns "
                            f"about ${marginal * 10:,.0f} at tax time. New room this year is up to "
                            f"${rrsp_room:,.0f}.",
                action_required="Set up a monthly RRSP contribution and reinvest the refund.",
                monthly_impact=round(min(surplus, rrsp_room / 12) * marginal / 100, 2),
            )

        return FinancialRecommendation(
            priority=RecommendationPriority.LOW,
            category=RecommendationCategory.SAVINGS,
            title="Put savings in a TFSA",
            description=f"At a {marginal:.1f}% marginal rate the RRSP deduction is small. "
                        f"A TFSA grows tax-free and you can add ${limits['tfsa_annual_limit']:,} this year.",
            action_required="Open a TFSA and automate a monthly contribution.",
        )

    @staticmethod
    def _goal_rec(primary_goal: Optional[str]) -> Optional[FinancialRecommendation]:
        goal = (primary_goal or "").strip().lower().replace("_", "-")
        limits = REGISTERED_ACCOUNT_LIMITS_2025
        goals = {
            "buy-home": (
                RecommendationCategory.HOUSING,
                "Open a First Home Savings Account",
                f"An FHSA gives you a deduction like an RRSP and a tax-free withdrawal like a TFSA "
                f"for a first home: ${limits['fhsa_annual_limit']:,} a year, "
                f"${limits['fhsa_lifetime_limit']:,} lifetime.",
                "Open an FHSA this year so the room starts accumulating.",
            ),
            "pay-debt": (
                RecommendationCategory.DEBT,
                "Choose a payoff strategy and stick to it",
                "Avalanche (highest rate first) costs the least interest. Snowball (smallest balance "
                "first) gives faster wins.",
                "Build a payoff plan from your debts and add a fixed extra payment.",
            ),
            "retire-early": (
                RecommendationCategory.RETIREMENT,
                "Max out registered accounts",
                "Early retirement needs both RRSP and TFSA room used every year.",
                "Compare RRSP and TFSA for your tax rates with the RRSP vs TFSA calculator.",
            ),
            "invest": (
                RecommendationCategory.INVESTMENT,
                "Invest through a TFSA first",
                "Growth in a TFSA is never taxed, including capital gains and dividends.",
                "Use low-cost index ETFs inside your TFSA.",
            ),
            "save-money": (
                RecommendationCategory.SAVINGS,
                "Pay yourself first",
                "Savings that leave your account on payday are savings you never miss.",
                "Schedule an automatic transfer for the day your pay arrives.",
            ),
        }
        if goal not in goals:
            return None
        category, title, description, action = goals[goal]
        return FinancialRecommendation(
            priority=RecommendationPriority.INFO,
            category=category,
            title=title,
            description=description,
            action_required=action,
        )
