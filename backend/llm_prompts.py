"""
SmartBudget Canada - LLM Prompts
================================
System prompts and context builders for the AI financial coach.

CRITICAL RULES FOR LLM USAGE:
1. LLM NEVER calculates taxes, payments or scores - that's done in Python
2. LLM receives REDACTED user text and a snapshot with no name or email
3. Canadian reference values are PROVIDED to the LLM - it must not rely on memory
4. The audit prompt demands a JSON object so the reply can be parsed
"""

import json
from typing import Optional

from tax_constants import HIGH_INTEREST_APR_THRESHOLD, get_all_constants_for_llm, parse_province
from models import FinancialSnapshot, HealthScore


# =============================================================================
# COACH PERSONA
# =============================================================================

COACH_SYSTEM_PROMPT = """You are the SmartBudget Coach, a direct, no-nonsense Canadian financial coach.

## STYLE:
1. Blunt and honest. If spending is out of control, say so plainly
2. Number-driven. Quote the user's actual figures back to them
3. Action-first. Every answer ends with concrete next steps
4. Tough love, never cruel. The goal is to get them out of the hole

## CANADIAN CONTEXT:
- Use RRSP, TFSA and FHSA, never 401(k) or IRA
- Mention provincial differences when the province matters
- Refer to CMHC rules and the mortgage stress test for home buying questions

## RULES:
1. Base answers on the PROVIDED financial data - don't make up numbers
2. Use the reference data below for limits and rates
3. Tokens like [SIN_1] or [EMAIL_1] are redacted personal details - ignore them
4. This is coaching, not professional financial, legal or tax advice
5. Keep responses under 400 words unless the user asks for detail

{reference}"""


AUDIT_SYSTEM_PROMPT = """You are the SmartBudget Coach conducting a full financial audit.
Be brutally honest but genuinely helpful. The score has ALREADY been computed -
explain it, do not recalculate it.

RESPOND ONLY WITH A VALID JSON OBJECT - NO MARKDOWN, NO CODE BLOCKS."""


# =============================================================================
# CONTEXT BUILDERS
# =============================================================================

def build_financial_context(snapshot: FinancialSnapshot) -> str:
    """Human-readable summary of the user's finances for the chat prompt."""
    lines = ["=== BUDGET ==="]

    if snapshot.has_budget:
        lines.extend([
            f"Budget: {snapshot.budget_name or 'Unnamed'} ({snapshot.province or 'province unknown'})",
            f"Monthly Take-Home Income: ${snapshot.monthly_income:,.2f}",
            f"Monthly Expenses: ${snapshot.monthly_expenses:,.2f}",
            f"Monthly Surplus/Deficit: ${snapshot.monthly_surplus:,.2f}",
        ])
    else:
        lines.append("No budget created yet.")

    lines.extend(["", "=== ASSETS ==="])
    if snapshot.assets:
        for asset in snapshot.assets:
            lines.append(f"- {asset['name']} ({asset['type']}): ${asset['value']:,.2f}")
    else:
        lines.append("None recorded.")

    lines.extend(["", "=== LIABILITIES ==="])
    if snapshot.liabilities:
        for liability in snapshot.liabilities:
            rate = liability.get("interest_rate")
            rate_text = f" at {rate:.2f}%" if rate is not None else ""
            lines.append(f"- {liability['name']} ({liability['type']}): ${liability['balance']:,.2f}{rate_text}")
    else:
        lines.append("None recorded.")

    lines.extend([
        "",
        "=== NET WORTH ===",
        f"Total Assets: ${snapshot.total_assets:,.2f}",
        f"Total Liabilities: ${snapshot.total_liabilities:,.2f}",
        f"Net Worth: ${snapshot.net_worth:,.2f}",
        f"Emergency Fund (savings + chequing): ${snapshot.liquid_assets:,.2f}",
    ])

    if snapshot.high_interest_debts:
        lines.extend(["", f"=== HIGH-INTEREST DEBT (>{HIGH_INTEREST_APR_THRESHOLD:.0f}% APR) ==="])
        for debt in snapshot.high_interest_debts:
            lines.append(f"- {debt['name']}: ${debt['balance']:,.2f} at {debt['interest_rate']:.2f}%")

    if snapshot.credit_card_utilization is not None:
        lines.append(f"\nCredit Card Utilization: {snapshot.credit_card_utilization:.1f}%")

    return "\n".join(lines)


def get_coach_system_prompt(province: Optional[str] = None) -> str:
    """Coach persona with the reference tables for the user's province."""
    prov = None
    if province:
        try:
            prov = parse_province(province)
        except ValueError:
            prov = None
    return COACH_SYSTEM_PROMPT.format(reference=get_all_constants_for_llm(prov))


def get_chat_user_prompt(message: str, context: Optional[str]) -> str:
    if not context:
        return message
    return f"""## MY FINANCIAL SITUATION:
{context}

## MY QUESTION:
{message}"""


def build_audit_prompt(snapshot: FinancialSnapshot, health: HealthScore) -> str:
    """Prompt asking for the audit write-up as a JSON object."""
    snapshot_json = json.dumps(snapshot.model_dump(), indent=2, default=str)
    factors = "\n".join(f"- {f}" for f in health.factors) or "- none"

    return f"""FINANCIAL SNAPSHOT:
{snapshot_json}

COMPUTED HEALTH SCORE: {health.score}/10 ({health.severity.value})
SCORE FACTORS:
{factors}

Return a JSON object with exactly these keys:
{{
  "overall_assessment": "2-3 sentence verdict on this financial picture",
  "immediate_reaction": "Your gut reaction on seeing these numbers",
  "debt_analysis": "What the debt situation means and what to attack first",
  "action_plan": ["Step 1 ...", "Step 2 ...", "Step 3 ..."],
  "coach_quotes": ["A short memorable line", "Another one"]
}}"""


def validate_audit_response(response: dict) -> tuple:
    """
    Check that a parsed audit reply has the fields we store.

    Returns:
        Tuple of (is_valid, list of issues)
    """
    if not isinstance(response, dict):
        return False, [f"Expected a JSON object, got {type(response).__name__}"]

    issues = []
    for key in ("overall_assessment", "immediate_reaction", "debt_analysis"):
        if not isinstance(response.get(key), str) or not response.get(key).strip():
            issues.append(f"Missing or empty '{key}'")

    plan = response.get("action_plan")
    if not isinstance(plan, list) or not plan:
        issues.append("'action_plan' must be a non-empty list")

    quotes = response.get("coach_quotes", [])
    if not isinstance(quotes, list):
        issues.append("'coach_quotes' must be a list")

    return len(issues) == 0, issues
