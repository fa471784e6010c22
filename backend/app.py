"""
SmartBudget Canada - Streamlit Frontend
=======================================
A Canadian budgeting and planning app with clean, minimal UX.

Flow:
1. Budget Builder (single or couple, per-partner tax)
2. Net Worth & Debts (assets, liabilities, payoff plans)
3. Calculators (mortgage, loans, affordability, buy vs rent, RRSP vs TFSA)
4. AI Coach (health score, audit and chat)

Everything lives in st.session_state; nothing is saved server-side.
"""

import sys
import os

# Path setup for Streamlit Cloud
_current_file = os.path.abspath(__file__)
_backend_dir = os.path.dirname(_current_file)
if _backend_dir not in sys.path:
    sys.path.insert(0, _backend_dir)

import streamlit as st
import pandas as pd
from datetime import date
from typing import List, Dict, Any

from tax_constants import Province, PROVINCE_NAMES, REGISTERED_ACCOUNT_LIMITS_2025
from models import (
    Asset, AssetType, BudgetInput, BudgetItemInput, BudgetItemType, BuyVsRentInputs,
    CalculatorInputError, CalculatorType, ChatMessage, DebtForm, DebtKind, Frequency,
    FormValidationError, HomeAffordabilityInputs, Liability, LiabilityType, LifeSituation,
    LoanInputs, LoanPayoffInputs, LoanPaymentFrequency, LoanType, MortgageInputs,
    MortgagePaymentFrequency, PayoffStrategy, RRSPvsTFSAInputs,
)
from tax_calculator import BudgetCalculator, calculate_tax, validate_budget
from debt_calculator import (
    build_payoff_plan, debt_to_liability, get_debt_kind_display_name,
    liability_to_debt, summarize_debts, validate_debt,
)
from calculators import (
    calculate_buy_vs_rent, calculate_home_affordability, calculate_loan_payment,
    calculate_loan_payoff, calculate_mortgage, calculate_rrsp_vs_tfsa, export_calculation_csv,
)
from net_worth import summarize_net_worth
from recommendation_engine import FinancialHealthScorer, RecommendationEngine, build_financial_snapshot
from llm_prompts import build_financial_context
from openai_client import CoachAIClient


# =============================================================================
# PAGE CONFIGURATION
# =============================================================================

st.set_page_config(
    page_title="SmartBudget Canada",
    page_icon="🍁",
    layout="wide",
    initial_sidebar_state="collapsed"
)

st.markdown("""
<style>
    .main .block-container {
        padding-top: 2rem;
        padding-bottom: 2rem;
        max-width: 1200px;
    }

    .main-header {
        text-align: center;
        padding: 2rem 0;
        background: linear-gradient(135deg, #7f1d1d 0%, #b91c1c 100%);
        border-radius: 16px;
        color: white;
        margin-bottom: 2rem;
    }

    .main-header h1 {
        font-size: 2.5rem;
        margin-bottom: 0.5rem;
    }

    .privacy-notice {
        display: flex;
        gap: 0.75rem;
        background: #f8fafc;
        border: 1px solid #e2e8f0;
        border-radius: 12px;
        padding: 1rem 1.25rem;
        margin-bottom: 1.5rem;
    }

    #MainMenu {visibility: hidden;}
    footer {visibility: hidden;}
</style>
""", unsafe_allow_html=True)


# =============================================================================
# SESSION STATE INITIALIZATION
# =============================================================================

DEFAULT_ITEMS = pd.DataFrame([
    {"type": "income", "category": "employment", "name": "Salary", "amount": 2500.0, "frequency": "bi_weekly", "owner": ""},
    {"type": "expense", "category": "housing", "name": "Rent", "amount": 1800.0, "frequency": "monthly", "owner": ""},
    {"type": "expense", "category": "food", "name": "Groceries", "amount": 600.0, "frequency": "monthly", "owner": ""},
    {"type": "expense", "category": "transportation", "name": "Transit pass", "amount": 156.0, "frequency": "monthly", "owner": ""},
])


def init_session_state():
    """Initialize all session state variables."""
    if 'budget_items' not in st.session_state:
        st.session_state.budget_items = DEFAULT_ITEMS.copy()

    if 'budget_summary' not in st.session_state:
        st.session_state.budget_summary = None

    if 'budget_meta' not in st.session_state:
        st.session_state.budget_meta = None

    if 'assets' not in st.session_state:
        st.session_state.assets = []

    if 'liabilities' not in st.session_state:
        st.session_state.liabilities = []

    if 'chat_history' not in st.session_state:
        st.session_state.chat_history = []

    if 'audit' not in st.session_state:
        st.session_state.audit = None

init_session_state()


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def fmt_currency(amount: float) -> str:
    """Format number as currency."""
    if amount < 0:
        return f"-${abs(amount):,.2f}"
    return f"${amount:,.2f}"


def get_ai_client() -> CoachAIClient:
    if 'ai_client' not in st.session_state:
        st.session_state.ai_client = CoachAIClient()
    return st.session_state.ai_client


def items_from_editor(df: pd.DataFrame) -> List[BudgetItemInput]:
    """Turn the data editor rows into budget items, skipping blank rows."""
    items = []
    for row in df.to_dict("records"):
        name = row.get("name")
        amount = row.get("amount")
        if (name is None or pd.isna(name) or not str(name).strip()) and (amount is None or pd.isna(amount)):
            continue
        owner = row.get("owner")
        items.append(BudgetItemInput(
            type=row.get("type") or "expense",
            category=row.get("category") or "other",
            name="" if name is None or pd.isna(name) else str(name),
            amount=0.0 if amount is None or pd.isna(amount) else float(amount),
            frequency=row.get("frequency") or "monthly",
            owner=None if owner is None or pd.isna(owner) or not str(owner).strip() else str(owner),
        ))
    return items


def show_form_errors(exc: FormValidationError):
    for error in exc.errors:
        st.error(f"**{error.field}**: {error.message}")


def csv_download(calculator_type: CalculatorType, title: str, inputs, result, key: str):
    st.download_button(
        "⬇️ Download CSV",
        data=export_calculation_csv(
            calculator_type, title, inputs.model_dump(mode="json"), result.model_dump(mode="json")
        ),
        file_name=f"{calculator_type.value}-{date.today().isoformat()}.csv",
        mime="text/csv",
        key=key,
    )


def current_snapshot():
    budget = None
    if st.session_state.budget_summary is not None:
        summary = st.session_state.budget_summary
        budget = {
            "name": st.session_state.budget_meta["name"],
            "province": summary.province,
            "net_income": summary.net_income,
            "total_expenses": summary.total_expenses,
            "disposable_income": summary.disposable_income,
        }
    return build_financial_snapshot(budget, st.session_state.assets, st.session_state.liabilities)


def province_select(label: str, key: str) -> str:
    codes = [p.value for p in Province]
    return st.selectbox(
        label, codes, index=codes.index("ON"),
        format_func=lambda c: f"{PROVINCE_NAMES[Province(c)]} ({c})", key=key,
    )


# =============================================================================
# MAIN APP HEADER
# =============================================================================

st.markdown("""
<div class="main-header">
    <h1>🍁 SmartBudget Canada</h1>
    <p>Budget, plan and get honest coaching with Canadian numbers</p>
</div>
""", unsafe_allow_html=True)

st.markdown("""
<div class="privacy-notice">
    <span class="icon">🔒</span>
    <div>
        <strong>Privacy Protected</strong> • SINs, emails, phone numbers and account numbers are removed from anything you type before it reaches the AI coach.
    </div>
</div>
""", unsafe_allow_html=True)

tab1, tab2, tab3, tab4 = st.tabs([
    "📋 Budget Builder",
    "💼 Net Worth & Debts",
    "🧮 Calculators",
    "🤖 AI Coach"
])


# =============================================================================
# TAB 1: BUDGET BUILDER
# =============================================================================

with tab1:
    st.markdown("### Build Your Budget")

    col1, col2, col3 = st.columns(3)
    with col1:
        budget_name = st.text_input("Budget name", value="My Budget")
        province = province_select("Province", key="budget_province")
    with col2:
        life_situation = st.radio(
            "Life situation", [s.value for s in LifeSituation],
            format_func=lambda s: "Single" if s == "single" else "Couple",
            horizontal=True,
        )
        primary_goal = st.selectbox(
            "Primary goal",
            ["save-money", "pay-debt", "buy-home", "retire-early", "invest"],
            format_func=lambda g: g.replace("-", " ").title(),
        )
    with col3:
        if life_situation == LifeSituation.COUPLE.value:
            st.info("Couples are taxed per partner. Enter who earns each income line in **owner**.")
        else:
            st.caption("Income tax, CPP and EI are calculated from your gross income.")

    edited = st.data_editor(
        st.session_state.budget_items,
        num_rows="dynamic",
        use_container_width=True,
        column_config={
            "type": st.column_config.SelectboxColumn("Type", options=[t.value for t in BudgetItemType], required=True),
            "category": st.column_config.TextColumn("Category"),
            "name": st.column_config.TextColumn("Name"),
            "amount": st.column_config.NumberColumn("Amount ($)", min_value=0.0, format="%.2f"),
            "frequency": st.column_config.SelectboxColumn("Frequency", options=[f.value for f in Frequency]),
            "owner": st.column_config.TextColumn("Owner (couples)"),
        },
        key="budget_editor",
    )

    if st.button("📊 Calculate Budget", type="primary", use_container_width=True):
        budget = BudgetInput(
            name=budget_name,
            province=province,
            life_situation=life_situation,
            primary_goal=primary_goal,
            items=items_from_editor(edited),
        )
        try:
            validate_budget(budget)
            st.session_state.budget_summary = BudgetCalculator().summarize(
                budget.items, budget.province, budget.life_situation
            )
            st.session_state.budget_items = edited
            st.session_state.budget_meta = {"name": budget.name, "primary_goal": primary_goal}
        except FormValidationError as e:
            show_form_errors(e)

    summary = st.session_state.budget_summary
    if summary is not None:
        st.markdown("---")
        col1, col2, col3, col4 = st.columns(4)
        col1.metric("Gross Income / mo", fmt_currency(summary.gross_income))
        col2.metric("Income Tax / mo", fmt_currency(summary.total_tax))
        col3.metric("CPP / EI / QPIP / mo", fmt_currency(summary.payroll_deductions))
        col4.metric("Take-Home / mo", fmt_currency(summary.net_income))

        col1, col2, col3 = st.columns(3)
        col1.metric("Expenses / mo", fmt_currency(summary.total_expenses))
        col2.metric(
            "Left Over / mo", fmt_currency(summary.disposable_income),
            "Surplus" if summary.disposable_income >= 0 else "Shortfall",
            delta_color="normal" if summary.disposable_income >= 0 else "inverse",
        )
        col3.metric("Savings Rate", f"{summary.savings_rate:.1f}%")

        if summary.expenses_by_category:
            st.markdown("**Expenses by category (monthly)**")
            st.bar_chart(pd.Series(summary.expenses_by_category, name="Monthly"))

        if summary.partners:
            st.markdown("**Tax by partner (annual)**")
            st.dataframe(pd.DataFrame([p.model_dump() for p in summary.partners]), use_container_width=True)
            if summary.tax_savings_from_split:
                st.success(f"Filing separately saves {fmt_currency(summary.tax_savings_from_split)} a year "
                           "compared with taxing the combined income once.")

        report = RecommendationEngine().generate(
            summary,
            primary_goal=st.session_state.budget_meta["primary_goal"],
            assets=st.session_state.assets,
            liabilities=st.session_state.liabilities,
        )
        st.markdown("### 💡 Recommendations")
        for rec in report.recommendations:
            with st.expander(f"[{rec.priority.value.upper()}] {rec.title}"):
                st.markdown(rec.description)
                st.markdown(f"**Action:** {rec.action_required}")
                if rec.monthly_impact:
                    st.caption(f"Impact: {fmt_currency(rec.monthly_impact)}/month")
                for warning in rec.warnings:
                    st.warning(warning)


# =============================================================================
# TAB 2: NET WORTH & DEBTS
# =============================================================================

with tab2:
    col1, col2 = st.columns(2)

    with col1:
        st.markdown("### Add an Asset")
        with st.form("asset_form", clear_on_submit=True):
            asset_type = st.selectbox("Type", [t.value for t in AssetType])
            asset_name = st.text_input("Name")
            asset_value = st.number_input("Value ($)", min_value=0.0, step=1000.0)
            if st.form_submit_button("Add Asset"):
                if not asset_name.strip():
                    st.error("Asset name is required")
                else:
                    st.session_state.assets.append(Asset(type=asset_type, name=asset_name.strip(), value=asset_value))
                    st.rerun()

    with col2:
        st.markdown("### Add a Debt")
        with st.form("debt_form", clear_on_submit=True):
            debt_kind = st.selectbox(
                "Debt type", [k.value for k in DebtKind],
                format_func=lambda k: get_debt_kind_display_name(DebtKind(k)),
            )
            debt_name = st.text_input("Name", key="debt_name")
            debt_balance = st.number_input("Balance ($)", min_value=0.0, step=100.0)
            debt_rate = st.number_input("Interest rate (%)", min_value=0.0, max_value=60.0, value=19.99)
            debt_limit = st.number_input("Credit limit ($, cards and lines of credit)", min_value=0.0, step=500.0)
            debt_term = st.number_input("Term (months, loans)", min_value=0, step=12)
            debt_payment = st.number_input("Your monthly payment ($, optional)", min_value=0.0, step=25.0)
            if st.form_submit_button("Add Debt"):
                form = DebtForm(
                    kind=debt_kind,
                    name=debt_name,
                    balance=debt_balance,
                    interest_rate=debt_rate,
                    limit=debt_limit or None,
                    term=int(debt_term) or None,
                    user_payment=debt_payment or None,
                )
                try:
                    min_payment = validate_debt(form)
                    st.session_state.liabilities.append(
                        Liability(**debt_to_liability(form, min_payment).model_dump())
                    )
                    st.rerun()
                except FormValidationError as e:
                    show_form_errors(e)

        with st.expander("Add a mortgage or other liability"):
            with st.form("liability_form", clear_on_submit=True):
                liability_type = st.selectbox("Type", [LiabilityType.MORTGAGE.value, LiabilityType.OTHER.value])
                liability_name = st.text_input("Name", key="liability_name")
                liability_balance = st.number_input("Balance ($)", min_value=0.0, step=1000.0, key="liability_balance")
                liability_rate = st.number_input("Interest rate (%)", min_value=0.0, max_value=60.0, key="liability_rate")
                liability_payment = st.number_input("Monthly payment ($)", min_value=0.0, key="liability_payment")
                if st.form_submit_button("Add Liability") and liability_name.strip():
                    st.session_state.liabilities.append(Liability(
                        type=liability_type,
                        name=liability_name.strip(),
                        balance=liability_balance,
                        interest_rate=liability_rate,
                        minimum_payment=liability_payment,
                    ))
                    st.rerun()

    st.markdown("---")
    summary = st.session_state.budget_summary
    net_worth = summarize_net_worth(
        st.session_state.assets,
        st.session_state.liabilities,
        monthly_income=summary.gross_income if summary else None,
        monthly_expenses=summary.total_expenses if summary else None,
    )

    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Total Assets", fmt_currency(net_worth.total_assets))
    col2.metric("Total Liabilities", fmt_currency(net_worth.total_liabilities))
    col3.metric("Net Worth", fmt_currency(net_worth.net_worth))
    col4.metric("Health", net_worth.health_status.value.title())

    if net_worth.debt_to_income_ratio is not None:
        st.caption(f"Debt payments take {net_worth.debt_to_income_ratio * 100:.1f}% of gross monthly income.")
    if net_worth.liquidity_ratio is not None:
        st.caption(f"Savings and chequing cover {net_worth.liquidity_ratio:.1f} months of expenses.")

    if st.session_state.assets:
        st.markdown("**Assets**")
        st.dataframe(
            pd.DataFrame([a.model_dump(include={"type", "name", "value"}) for a in st.session_state.assets]),
            use_container_width=True,
        )

    debts = [d for d in (liability_to_debt(l) for l in st.session_state.liabilities) if d is not None]
    if debts:
        st.markdown("### Debts")
        st.dataframe(
            pd.DataFrame([
                {
                    "name": d.name,
                    "type": get_debt_kind_display_name(d.kind),
                    "balance": d.balance,
                    "rate (%)": d.interest_rate,
                    "minimum": d.min_payment,
                    "paying": d.actual_payment,
                    "utilization (%)": d.utilization,
                }
                for d in debts
            ]),
            use_container_width=True,
        )
        debt_summary = summarize_debts(debts)
        col1, col2, col3 = st.columns(3)
        col1.metric("Total Debt", fmt_currency(debt_summary.total_balance))
        col2.metric("Monthly Payments", fmt_currency(debt_summary.total_actual_payments))
        col3.metric("Monthly Interest", fmt_currency(debt_summary.monthly_interest))

        st.markdown("**Payoff plan**")
        col1, col2 = st.columns(2)
        with col1:
            strategy = st.radio(
                "Strategy", [s.value for s in PayoffStrategy], horizontal=True,
                format_func=lambda s: "Avalanche (highest rate first)" if s == "avalanche" else "Snowball (smallest balance first)",
            )
        with col2:
            extra = st.number_input("Extra monthly payment ($)", min_value=0.0, step=50.0)
        plan = build_payoff_plan(debts, PayoffStrategy(strategy), extra)
        if plan.feasible:
            st.success(f"Debt-free in {plan.months_to_debt_free} months, "
                       f"paying {fmt_currency(plan.total_interest)} in interest.")
        else:
            st.error("These payments never clear the debt. Increase your monthly payment.")
        st.dataframe(pd.DataFrame([e.model_dump() for e in plan.debts]), use_container_width=True)

    if st.session_state.assets or st.session_state.liabilities:
        if st.button("🗑️ Clear net worth records"):
            st.session_state.assets = []
            st.session_state.liabilities = []
            st.rerun()


# =============================================================================
# TAB 3: CALCULATORS
# =============================================================================

with tab3:
    calc_tabs = st.tabs(["Income Tax", "Mortgage", "Loan Payment", "Loan Payoff",
                         "Home Affordability", "Buy vs Rent", "RRSP vs TFSA"])

    with calc_tabs[0]:
        col1, col2 = st.columns(2)
        with col1:
            income = st.number_input("Annual employment income ($)", min_value=0.0, value=75000.0, step=1000.0)
            rrsp = st.number_input("RRSP deduction ($)", min_value=0.0, step=500.0)
        with col2:
            tax_province = province_select("Province", key="tax_province")
        tax = calculate_tax(income, tax_province, rrsp)
        col1, col2, col3, col4 = st.columns(4)
        col1.metric("Income Tax", fmt_currency(tax.total_tax))
        col2.metric("CPP/QPP + EI", fmt_currency(tax.total_deductions - tax.total_tax))
        col3.metric("Take-Home", fmt_currency(tax.net_income))
        col4.metric("Marginal Rate", f"{tax.marginal_rate:.2f}%")
        st.dataframe(pd.DataFrame([tax.model_dump()]).T.rename(columns={0: "value"}).astype(str), use_container_width=True)

    with calc_tabs[1]:
        col1, col2, col3 = st.columns(3)
        with col1:
            price = st.number_input("Home price ($)", min_value=0.0, value=650000.0, step=10000.0)
            down = st.number_input("Down payment ($)", min_value=0.0, value=65000.0, step=5000.0)
        with col2:
            rate = st.number_input("Interest rate (%)", min_value=0.0, max_value=50.0, value=4.79, key="mortgage_rate")
            amortization = st.slider("Amortization (years)", 1, 35, 25)
        with col3:
            frequency = st.selectbox("Payment frequency", [f.value for f in MortgagePaymentFrequency])
            term = st.slider("Term (years)", 1, 10, 5)
        inputs = MortgageInputs(home_price=price, down_payment=down, interest_rate=rate,
                                amortization_years=amortization, payment_frequency=frequency, term_years=term)
        try:
            result = calculate_mortgage(inputs)
            col1, col2, col3, col4 = st.columns(4)
            col1.metric("Payment", fmt_currency(result.payment))
            col2.metric("CMHC Premium", fmt_currency(result.cmhc_premium))
            col3.metric("Total Interest", fmt_currency(result.total_interest))
            col4.metric("Balance at Term End", fmt_currency(result.balance_at_term_end))
            schedule = pd.DataFrame([s.model_dump() for s in result.schedule]).set_index("year")
            st.line_chart(schedule["ending_balance"])
            st.dataframe(schedule, use_container_width=True)
            csv_download(CalculatorType.MORTGAGE, "Mortgage", inputs, result, key="mortgage_csv")
        except CalculatorInputError as e:
            st.error(str(e))

    with calc_tabs[2]:
        col1, col2 = st.columns(2)
        with col1:
            principal = st.number_input("Loan amount ($)", min_value=0.0, value=30000.0, step=1000.0)
            loan_rate = st.number_input("Interest rate (%)", min_value=0.0, max_value=50.0, value=7.5, key="loan_rate")
        with col2:
            loan_years = st.number_input("Term (years)", min_value=1.0, max_value=50.0, value=5.0)
            loan_frequency = st.selectbox("Payment frequency", [f.value for f in LoanPaymentFrequency], key="loan_freq")
            loan_type = st.selectbox("Loan type", [t.value for t in LoanType])
        inputs = LoanInputs(principal=principal, interest_rate=loan_rate, term_years=loan_years,
                            payment_frequency=loan_frequency, loan_type=loan_type)
        try:
            result = calculate_loan_payment(inputs)
            col1, col2, col3 = st.columns(3)
            col1.metric("Payment", fmt_currency(result.payment))
            col2.metric("Total Interest", fmt_currency(result.total_interest))
            col3.metric("Total Cost", fmt_currency(result.total_cost))
            st.dataframe(pd.DataFrame([p.model_dump() for p in result.payment_schedule]), use_container_width=True)
            csv_download(CalculatorType.LOAN_PAYMENT, "Loan Payment", inputs, result, key="loan_csv")
        except CalculatorInputError as e:
            st.error(str(e))

    with calc_tabs[3]:
        col1, col2 = st.columns(2)
        with col1:
            payoff_balance = st.number_input("Balance ($)", min_value=0.0, value=8000.0, step=500.0)
            payoff_rate = st.number_input("Interest rate (%)", min_value=0.0, max_value=50.0, value=19.99, key="payoff_rate")
        with col2:
            payoff_payment = st.number_input("Monthly payment ($)", min_value=0.0, value=250.0, step=25.0)
            payoff_extra = st.number_input("Extra monthly payment ($)", min_value=0.0, value=100.0, step=25.0)
        inputs = LoanPayoffInputs(balance=payoff_balance, interest_rate=payoff_rate,
                                  monthly_payment=payoff_payment, extra_payment=payoff_extra)
        try:
            result = calculate_loan_payoff(inputs)
            col1, col2, col3 = st.columns(3)
            col1.metric("Months to Payoff", result.months_to_payoff)
            col2.metric("With Extra", result.months_with_extra, f"-{result.months_saved} months")
            col3.metric("Interest Saved", fmt_currency(result.interest_saved))
            csv_download(CalculatorType.LOAN_PAYOFF, "Loan Payoff", inputs, result, key="payoff_csv")
        except CalculatorInputError as e:
            st.error(str(e))

    with calc_tabs[4]:
        col1, col2, col3 = st.columns(3)
        with col1:
            household_income = st.number_input("Household income ($/yr)", min_value=0.0, value=120000.0, step=5000.0)
            monthly_debts = st.number_input("Other debt payments ($/mo)", min_value=0.0, step=50.0)
        with col2:
            afford_down = st.number_input("Down payment ($)", min_value=0.0, value=80000.0, step=5000.0, key="afford_down")
            afford_rate = st.number_input("Interest rate (%)", min_value=0.0, max_value=50.0, value=4.79, key="afford_rate")
        with col3:
            afford_province = province_select("Province", key="afford_province")
            condo_fees = st.number_input("Condo fees ($/mo)", min_value=0.0, step=50.0)
        inputs = HomeAffordabilityInputs(gross_income=household_income, monthly_debts=monthly_debts,
                                         down_payment=afford_down, interest_rate=afford_rate,
                                         province=afford_province, condo_fees=condo_fees)
        try:
            result = calculate_home_affordability(inputs)
            col1, col2, col3, col4 = st.columns(4)
            col1.metric("Max Home Price", fmt_currency(result.max_home_price))
            col2.metric("Qualifying Rate", f"{result.qualifying_rate:.2f}%")
            col3.metric("GDS", f"{result.gdsr * 100:.1f}%")
            col4.metric("TDS", f"{result.tdsr * 100:.1f}%")
            st.caption(f"Limited by: {result.limiting_factor.upper()}")
            st.dataframe(pd.DataFrame([result.breakdown.model_dump()]), use_container_width=True)
            for rec in result.recommendations:
                st.markdown(f"- {rec}")
            csv_download(CalculatorType.HOME_AFFORDABILITY, "Home Affordability", inputs, result, key="afford_csv")
        except CalculatorInputError as e:
            st.error(str(e))

    with calc_tabs[5]:
        col1, col2, col3 = st.columns(3)
        with col1:
            bvr_price = st.number_input("Home price ($)", min_value=0.0, value=600000.0, step=10000.0, key="bvr_price")
            bvr_down = st.number_input("Down payment ($)", min_value=0.0, value=120000.0, step=5000.0, key="bvr_down")
            bvr_rate = st.number_input("Mortgage rate (%)", min_value=0.1, max_value=50.0, value=4.79, key="bvr_rate")
        with col2:
            bvr_rent = st.number_input("Monthly rent ($)", min_value=0.0, value=2400.0, step=100.0)
            bvr_rent_increase = st.number_input("Rent increase (%/yr)", min_value=0.0, value=2.5)
            bvr_return = st.number_input("Investment return (%/yr)", min_value=0.0, value=6.0)
        with col3:
            bvr_years = st.slider("Years", 1, 50, 10)
            bvr_province = province_select("Province", key="bvr_province")
            first_time = st.checkbox("First-time buyer")
        inputs = BuyVsRentInputs(home_price=bvr_price, down_payment=bvr_down, mortgage_rate=bvr_rate,
                                 monthly_rent=bvr_rent, rent_increase=bvr_rent_increase,
                                 investment_return=bvr_return, years_analyzed=bvr_years,
                                 province=bvr_province, first_time_buyer=first_time)
        try:
            result = calculate_buy_vs_rent(inputs)
            col1, col2, col3 = st.columns(3)
            col1.metric("Buying Net Position", fmt_currency(result.buying_costs.net_position))
            col2.metric("Renting Net Position", fmt_currency(result.renting_costs.net_position))
            col3.metric("Better Choice", result.recommendation.upper(), fmt_currency(result.net_difference))
            if result.break_even_point:
                st.caption(f"Buying pulls ahead in year {result.break_even_point}.")
            yearly = pd.DataFrame([y.model_dump() for y in result.year_by_year_analysis]).set_index("year")
            st.line_chart(yearly[["buying_net", "renting_net"]])
            csv_download(CalculatorType.BUY_VS_RENT, "Buy vs Rent", inputs, result, key="bvr_csv")
        except CalculatorInputError as e:
            st.error(str(e))

    with calc_tabs[6]:
        col1, col2 = st.columns(2)
        with col1:
            age = st.number_input("Age", min_value=1, max_value=100, value=35)
            current_income = st.number_input("Current income ($/yr)", min_value=0.0, value=90000.0, step=5000.0)
            contribution = st.number_input(
                "Annual contribution ($)", min_value=0.0,
                value=float(REGISTERED_ACCOUNT_LIMITS_2025["tfsa_annual_limit"]), step=500.0,
            )
        with col2:
            retirement_income = st.number_input("Expected retirement income ($/yr)", min_value=0.0, value=60000.0, step=5000.0)
            rrsp_return = st.number_input("Investment return (%/yr)", min_value=0.0, max_value=20.0, value=6.0, key="rrsp_return")
            rrsp_province = province_select("Province", key="rrsp_province")
        inputs = RRSPvsTFSAInputs(age=age, current_income=current_income, contribution_amount=contribution,
                                  expected_retirement_income=retirement_income, investment_return=rrsp_return,
                                  province=rrsp_province)
        try:
            result = calculate_rrsp_vs_tfsa(inputs)
            col1, col2, col3 = st.columns(3)
            col1.metric("RRSP After Tax", fmt_currency(result.rrsp_contribution.after_tax_value))
            col2.metric("TFSA Value", fmt_currency(result.tfsa_contribution.future_value))
            col3.metric("Recommendation", result.recommendation)
            st.info(result.reasoning)
            split = result.split_recommendation
            st.caption(f"Suggested split: {fmt_currency(split.rrsp_amount)} RRSP / "
                       f"{fmt_currency(split.tfsa_amount)} TFSA. {split.reasoning}")
            for warning in result.warnings:
                st.warning(warning)
            csv_download(CalculatorType.RRSP_VS_TFSA, "RRSP vs TFSA", inputs, result, key="rrsp_csv")
        except CalculatorInputError as e:
            st.error(str(e))


# =============================================================================
# TAB 4: AI COACH
# =============================================================================

with tab4:
    ai_client = get_ai_client()
    if ai_client.is_connected:
        st.success(f"🟢 **AI Coach Connected** ({ai_client.model})")
    else:
        st.warning("🔴 **AI Offline** - Add `OPENAI_API_KEY` in Streamlit secrets for personalized coaching")

    snapshot = current_snapshot()
    health = FinancialHealthScorer().score(snapshot)

    col1, col2 = st.columns([1, 2])
    with col1:
        st.metric("Financial Health Score", f"{health.score}/10", health.severity.value.title())
        for factor in health.factors:
            st.caption(factor)
        if st.button("🔍 Run Financial Audit", type="primary", use_container_width=True):
            with st.spinner("The coach is reviewing your numbers..."):
                response = ai_client.generate_audit(snapshot, health)
            if response.success and response.data:
                st.session_state.audit = response.data
            else:
                st.error(response.error or "Audit failed")

    with col2:
        audit: Dict[str, Any] = st.session_state.audit
        if audit:
            st.markdown(f"**{audit['immediate_reaction']}**")
            st.markdown(audit["overall_assessment"])
            st.markdown(f"**Debt:** {audit['debt_analysis']}")
            st.markdown("**Action plan**")
            for step in audit["action_plan"]:
                st.markdown(f"- {step}")
            for quote in audit.get("coach_quotes", []):
                st.markdown(f"> {quote}")

    st.markdown("---")
    include_data = st.checkbox("Share my budget and net worth with the coach", value=True)

    for turn in st.session_state.chat_history:
        with st.chat_message(turn.role):
            st.markdown(turn.content)

    question = st.chat_input("Ask the coach anything about your money")
    if question:
        with st.chat_message("user"):
            st.markdown(question)
        with st.spinner("Thinking..."):
            response = ai_client.chat(
                question,
                context=build_financial_context(snapshot) if include_data else None,
                history=st.session_state.chat_history,
                province=snapshot.province,
            )
        answer = response.content if response.success else f"Sorry, the coach is unavailable: {response.error}"
        with st.chat_message("assistant"):
            st.markdown(answer)
        st.session_state.chat_history.append(ChatMessage(role="user", content=question))
        st.session_state.chat_history.append(ChatMessage(role="assistant", content=answer))


# =============================================================================
# SIDEBAR - MINIMAL
# =============================================================================

with st.sidebar:
    st.markdown("### 🍁 SmartBudget Canada")
    st.markdown("---")

    ai_client = get_ai_client()
    if ai_client.is_connected:
        st.success("🟢 AI Coach Connected")
    else:
        st.error("🔴 AI Offline")
        st.caption("Add OPENAI_API_KEY in Settings")

    st.markdown("---")

    if st.session_state.budget_summary is not None:
        st.metric("Take-Home / mo", fmt_currency(st.session_state.budget_summary.net_income))
        st.metric("Left Over / mo", fmt_currency(st.session_state.budget_summary.disposable_income))

    if st.session_state.assets or st.session_state.liabilities:
        total = sum(a.value for a in st.session_state.assets) - sum(l.balance for l in st.session_state.liabilities)
        st.metric("Net Worth", fmt_currency(total))

    st.markdown("---")

    if st.button("🔄 Start Over", use_container_width=True):
        for key in list(st.session_state.keys()):
            del st.session_state[key]
        st.rerun()

    st.markdown("---")
    st.caption("© 2025 SmartBudget Canada")
    st.caption("Not professional financial advice")
