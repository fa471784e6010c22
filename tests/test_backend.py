"""
SmartBudget Canada - Test Suite
===============================
Tests for the calculation engines, privacy layer and coach client.
"""

import os
import sys
import json
import logging
from types import SimpleNamespace

import pytest

# Import modules to test
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'backend'))

from tax_constants import (
    Province,
    FEDERAL_TAX_BRACKETS_2025,
    PROVINCIAL_TAX_BRACKETS_2025,
    calculate_bracket_tax,
    get_federal_basic_personal_amount,
    get_marginal_rate,
    parse_province,
)
from models import (
    Asset,
    AssetType,
    BudgetInput,
    BudgetItemInput,
    BuyVsRentInputs,
    CalculatorInputError,
    CalculatorType,
    Debt,
    DebtForm,
    DebtKind,
    FinancialSnapshot,
    FormValidationError,
    Frequency,
    HomeAffordabilityInputs,
    Liability,
    LiabilityType,
    LifeSituation,
    LoanInputs,
    LoanPayoffInputs,
    MortgageInputs,
    MortgagePaymentFrequency,
    AuditSeverity,
    HealthStatus,
    PayoffStrategy,
    RecommendationCategory,
    RecommendationPriority,
    RRSPvsTFSAInputs,
)
from tax_calculator import (
    BudgetCalculator,
    TaxCalculator,
    calculate_tax,
    convert_frequency_to_monthly,
    convert_frequency_to_yearly,
    validate_budget,
)
from debt_calculator import (
    build_payoff_plan,
    calculate_minimum_payment,
    debt_to_liability,
    liability_to_debt,
    summarize_debts,
    validate_debt,
)
from calculators import (
    calculate_buy_vs_rent,
    calculate_cmhc_premium,
    calculate_home_affordability,
    calculate_land_transfer_tax,
    calculate_loan_payment,
    calculate_loan_payoff,
    calculate_mortgage,
    calculate_rrsp_vs_tfsa,
    export_calculation_csv,
    minimum_down_payment,
)
from net_worth import summarize_net_worth
from recommendation_engine import FinancialHealthScorer, RecommendationEngine, build_financial_snapshot
from pii_redaction import PIIRedactor, RedactionResult, redact_sensitive_data
from llm_prompts import build_financial_context, get_coach_system_prompt, validate_audit_response
from openai_client import AIProvider, CoachAIClient


# =============================================================================
# TAX CONSTANTS TESTS
# =============================================================================

class TestTaxConstants:
    """Test reference tables and bracket helpers."""

    def test_brackets_exist_for_every_province(self):
        for province in Province:
            assert province in PROVINCIAL_TAX_BRACKETS_2025
            assert PROVINCIAL_TAX_BRACKETS_2025[province][-1][0] == float('inf')

    def test_brackets_ascending(self):
        for brackets in [FEDERAL_TAX_BRACKETS_2025, *PROVINCIAL_TAX_BRACKETS_2025.values()]:
            prev_limit = 0
            prev_rate = 0
            for limit, rate in brackets:
                assert limit > prev_limit
                assert rate >= prev_rate
                prev_limit, prev_rate = limit, rate

    def test_bracket_tax(self):
        # 15% of 57,375 + 20.5% of 42,625
        assert calculate_bracket_tax(100000, FEDERAL_TAX_BRACKETS_2025) == pytest.approx(17344.38, abs=0.01)
        assert calculate_bracket_tax(0, FEDERAL_TAX_BRACKETS_2025) == 0.0

    def test_marginal_rate_lookup(self):
        assert get_marginal_rate(50000, FEDERAL_TAX_BRACKETS_2025) == 0.15
        assert get_marginal_rate(1000000, FEDERAL_TAX_BRACKETS_2025) == 0.33

    def test_federal_bpa_clawback(self):
        assert get_federal_basic_personal_amount(100000) == 16129
        assert get_federal_basic_personal_amount(300000) == 14538
        assert 14538 < get_federal_basic_personal_amount(215000) < 16129

    def test_parse_province(self):
        assert parse_province("on") == Province.ON
        assert parse_province("British Columbia") == Province.BC
        with pytest.raises(ValueError):
            parse_province("Ohio")


# =============================================================================
# TAX CALCULATOR TESTS
# =============================================================================

class TestTaxCalculator:
    """Test federal + provincial tax and payroll deductions."""

    @pytest.fixture
    def calculator(self):
        return TaxCalculator()

    def test_ontario_50k(self, calculator):
        result = calculator.calculate_tax(50000, "ON")

        assert result.federal_tax == pytest.approx(5080.65, abs=0.02)
        assert result.provincial_tax == pytest.approx(1881.28, abs=0.02)
        assert result.provincial_surtax == 0
        assert result.cpp_contribution == pytest.approx(2766.75, abs=0.01)
        assert result.ei_premium == pytest.approx(820.00, abs=0.01)
        assert result.total_tax == pytest.approx(6961.93, abs=0.05)
        assert result.net_income == pytest.approx(39451.32, abs=0.05)
        assert result.marginal_rate == pytest.approx(20.05, abs=0.02)

    def test_total_tax_excludes_payroll(self, calculator):
        result = calculator.calculate_tax(80000, "AB")
        payroll = result.cpp_contribution + result.ei_premium
        assert result.total_tax == pytest.approx(result.federal_tax + result.provincial_tax, abs=0.01)
        assert result.total_deductions == pytest.approx(result.total_tax + payroll, abs=0.01)
        assert result.net_income == pytest.approx(80000 - result.total_deductions, abs=0.01)

    def test_zero_income(self, calculator):
        result = calculator.calculate_tax(0, "BC")
        assert result.total_tax == 0
        assert result.total_deductions == 0
        assert result.net_income == 0

    def test_payroll_maximums(self, calculator):
        result = calculator.calculate_tax(200000, "ON")
        # (71,300 - 3,500) x 5.95% + (81,200 - 71,300) x 4%
        assert result.cpp_contribution == pytest.approx(4430.10, abs=0.01)
        assert result.ei_premium == pytest.approx(1077.48, abs=0.01)

    def test_ontario_surtax_applies_at_high_income(self, calculator):
        assert calculator.calculate_tax(150000, "ON").provincial_surtax > 0
        assert calculator.calculate_tax(40000, "ON").provincial_surtax == 0

    def test_quebec_abatement_and_qpip(self, calculator):
        result = calculator.calculate_tax(70000, "QC")
        assert result.quebec_abatement > 0
        assert result.qpip_premium > 0
        ontario = calculator.calculate_tax(70000, "ON")
        assert result.ei_premium < ontario.ei_premium

    def test_rrsp_deduction_lowers_tax_not_cpp(self, calculator):
        base = calculator.calculate_tax(90000, "ON")
        with_rrsp = calculator.calculate_tax(90000, "ON", rrsp_deduction=10000)
        assert with_rrsp.total_tax < base.total_tax
        assert with_rrsp.taxable_income == 80000
        assert with_rrsp.cpp_contribution == base.cpp_contribution

    def test_invalid_province(self):
        with pytest.raises(ValueError):
            calculate_tax(50000, "XX")


# =============================================================================
# BUDGET TESTS
# =============================================================================

class TestBudget:
    """Test budget items, validation and monthly totals."""

    def test_item_frequency_conversion(self):
        item = BudgetItemInput(type="income", name="Pay", amount=2000, frequency="Bi-Weekly")
        assert item.frequency == Frequency.BI_WEEKLY
        assert item.yearly_amount == 52000
        assert item.monthly_amount == pytest.approx(4333.33, abs=0.01)

    def test_frequency_helpers(self):
        assert convert_frequency_to_yearly(100, "weekly") == 5200
        assert convert_frequency_to_yearly(1000, Frequency.QUARTERLY) == 4000
        assert convert_frequency_to_monthly(600, "semi-monthly") == 1200
        with pytest.raises(ValueError):
            convert_frequency_to_yearly(100, "fortnightly")

    def test_validation_collects_all_errors(self):
        budget = BudgetInput(
            name="",
            province="ZZ",
            items=[BudgetItemInput(type="expense", name="", amount=0)],
        )
        with pytest.raises(FormValidationError) as exc_info:
            validate_budget(budget)

        messages = [e.message for e in exc_info.value.errors]
        assert "Budget name is required" in messages
        assert "Please select a valid province" in messages
        assert "Item name is required" in messages
        assert "Amount must be greater than 0" in messages

    def test_couple_income_needs_owner(self):
        budget = BudgetInput(
            name="Household",
            life_situation=LifeSituation.COUPLE,
            items=[BudgetItemInput(type="income", name="Salary", amount=5000)],
        )
        with pytest.raises(FormValidationError) as exc_info:
            validate_budget(budget)
        assert exc_info.value.errors[0].message == "Please select who earns this income"

    def test_single_summary(self):
        items = [
            BudgetItemInput(type="income", category="employment", name="Salary", amount=50000, frequency="yearly"),
            BudgetItemInput(type="expense", category="housing", name="Rent", amount=1500),
        ]
        summary = BudgetCalculator().summarize(items, "ON")

        assert summary.gross_income == pytest.approx(4166.67, abs=0.01)
        assert summary.net_income == pytest.approx(3287.61, abs=0.02)
        assert summary.total_expenses == 1500
        assert summary.disposable_income == pytest.approx(1787.61, abs=0.02)
        assert summary.expenses_by_category == {"housing": 1500}
        assert summary.partners == []

    def test_couple_taxed_per_partner(self):
        items = [
            BudgetItemInput(type="income", name="Salary A", amount=60000, frequency="yearly", owner="Alex"),
            BudgetItemInput(type="income", name="Salary B", amount=60000, frequency="yearly", owner="Sam"),
        ]
        summary = BudgetCalculator().summarize(items, "ON", LifeSituation.COUPLE)

        assert {p.owner for p in summary.partners} == {"Alex", "Sam"}
        assert summary.tax_savings_from_split > 0
        single_tax = calculate_tax(60000, "ON").total_tax
        assert summary.total_tax == pytest.approx(single_tax * 2 / 12, abs=0.02)


# =============================================================================
# DEBT TESTS
# =============================================================================

def make_debt(debt_id, balance, rate, payment, kind=DebtKind.PERSONAL_LOAN):
    return Debt(id=debt_id, kind=kind, name=debt_id, balance=balance, interest_rate=rate, min_payment=payment)


class TestDebts:
    """Test minimum payments, validation and payoff plans."""

    def test_minimum_payment_rules(self):
        assert calculate_minimum_payment(DebtKind.LOC, 10000, 12) == 100.0
        assert calculate_minimum_payment(DebtKind.CREDIT_CARD, 5000, 19.99) == 150.0
        assert calculate_minimum_payment(DebtKind.PERSONAL_LOAN, 12000, 0, term=12) == 1000.0
        assert calculate_minimum_payment(DebtKind.STUDENT_LOAN, 10000, 5) == 200.0
        assert calculate_minimum_payment(DebtKind.CREDIT_CARD, 0, 19.99) == 0.0

    def test_credit_card_needs_limit(self):
        form = DebtForm(kind=DebtKind.CREDIT_CARD, name="Visa", balance=1000, interest_rate=19.99)
        with pytest.raises(FormValidationError) as exc_info:
            validate_debt(form)
        assert "Credit limit is required for this debt type" in [e.message for e in exc_info.value.errors]

    def test_balance_over_limit(self):
        form = DebtForm(kind=DebtKind.LOC, name="LOC", balance=6000, interest_rate=8, limit=5000)
        with pytest.raises(FormValidationError) as exc_info:
            validate_debt(form)
        assert exc_info.value.errors[0].message == "Balance cannot exceed credit limit"

    def test_custom_payment_below_minimum(self):
        form = DebtForm(kind=DebtKind.CREDIT_CARD, name="Visa", balance=1000, interest_rate=19.99,
                        limit=5000, user_payment=10)
        with pytest.raises(FormValidationError):
            validate_debt(form)

    def test_debt_stored_as_liability(self):
        form = DebtForm(kind=DebtKind.CREDIT_CARD, name="Visa", balance=2000, interest_rate=19.99, limit=5000)
        min_payment = validate_debt(form)
        liability_input = debt_to_liability(form, min_payment)

        assert liability_input.type == LiabilityType.CREDIT_CARD
        assert liability_input.details["debt_kind"] == "CreditCard"

        debt = liability_to_debt(Liability(**liability_input.model_dump()))
        assert debt.kind == DebtKind.CREDIT_CARD
        assert debt.min_payment == 60.0
        assert debt.utilization == 40.0

    def test_mortgage_is_not_a_debt(self):
        mortgage = Liability(type=LiabilityType.MORTGAGE, name="Home", balance=300000, interest_rate=4.5)
        assert liability_to_debt(mortgage) is None

    def test_summary(self):
        summary = summarize_debts([make_debt("a", 1000, 12, 100), make_debt("b", 3000, 4, 100)])
        assert summary.debt_count == 2
        assert summary.total_balance == 4000
        assert summary.weighted_interest_rate == pytest.approx(6.0)

    def test_payoff_order(self):
        debts = [make_debt("big_rate", 1000, 20, 100), make_debt("small_balance", 500, 5, 50)]

        avalanche = build_payoff_plan(debts, PayoffStrategy.AVALANCHE)
        snowball = build_payoff_plan(debts, PayoffStrategy.SNOWBALL)

        assert avalanche.debts[0].debt_id == "big_rate"
        assert snowball.debts[0].debt_id == "small_balance"

    def test_zero_interest_payoff(self):
        plan = build_payoff_plan([make_debt("a", 1000, 0, 100)])
        assert plan.feasible
        assert plan.months_to_debt_free == 10
        assert plan.total_interest == 0
        assert plan.total_paid == pytest.approx(1000)

    def test_extra_payment_shortens_plan(self):
        debts = [make_debt("a", 5000, 18, 150)]
        base = build_payoff_plan(debts)
        faster = build_payoff_plan(debts, extra_payment=200)
        assert faster.months_to_debt_free < base.months_to_debt_free
        assert faster.total_interest < base.total_interest

    def test_infeasible_plan(self):
        # Interest of $200/month exceeds the $100 payment
        plan = build_payoff_plan([make_debt("a", 10000, 24, 100)])
        assert not plan.feasible
        assert plan.months_to_debt_free is None


# =============================================================================
# CALCULATOR TESTS
# =============================================================================

class TestHousingRules:
    """Test down payment, CMHC and land transfer tax rules."""

    def test_minimum_down_payment(self):
        assert minimum_down_payment(400000) == 20000
        assert minimum_down_payment(600000) == 35000
        assert minimum_down_payment(1500000) == 300000

    def test_cmhc_premium(self):
        assert calculate_cmhc_premium(500000, 25000) == pytest.approx(19000)
        assert calculate_cmhc_premium(500000, 100000) == 0
        assert calculate_cmhc_premium(1600000, 320000) == 0

    def test_land_transfer_tax(self):
        assert calculate_land_transfer_tax(500000, "ON") == pytest.approx(6475)
        assert calculate_land_transfer_tax(500000, "ON", first_time_buyer=True) == pytest.approx(2475)
        assert calculate_land_transfer_tax(500000, "BC") == pytest.approx(8000)
        assert calculate_land_transfer_tax(500000, "BC", first_time_buyer=True) == 0
        assert calculate_land_transfer_tax(500000, "AB") == pytest.approx(500)

    def test_invalid_province_is_input_error(self):
        with pytest.raises(CalculatorInputError):
            calculate_land_transfer_tax(500000, "Narnia")


class TestCalculators:
    """Test the financial calculators."""

    def test_mortgage_zero_rate(self):
        result = calculate_mortgage(MortgageInputs(
            home_price=100000, down_payment=20000, interest_rate=0, amortization_years=10
        ))
        assert result.payment == pytest.approx(666.67)
        assert result.total_interest == pytest.approx(0)
        assert result.cmhc_premium == 0
        assert len(result.schedule) == 10

    def test_mortgage_adds_cmhc_premium(self):
        result = calculate_mortgage(MortgageInputs(home_price=500000, down_payment=25000, interest_rate=5))
        assert result.cmhc_premium == pytest.approx(19000)
        assert result.total_mortgage == pytest.approx(494000)
        assert 0 < result.balance_at_term_end < result.total_mortgage

    def test_accelerated_biweekly(self):
        base = dict(home_price=500000, down_payment=100000, interest_rate=5, amortization_years=25)
        monthly = calculate_mortgage(MortgageInputs(**base))
        accelerated = calculate_mortgage(MortgageInputs(
            **base, payment_frequency=MortgagePaymentFrequency.ACCELERATED_BI_WEEKLY
        ))
        assert accelerated.payment == pytest.approx(monthly.payment / 2, abs=0.01)
        assert accelerated.payoff_years < 25
        assert accelerated.total_interest < monthly.total_interest

    def test_mortgage_minimum_down_payment(self):
        with pytest.raises(CalculatorInputError):
            calculate_mortgage(MortgageInputs(home_price=600000, down_payment=30000, interest_rate=5))

    def test_loan_payment_schedule(self):
        result = calculate_loan_payment(LoanInputs(principal=12000, interest_rate=0, term_years=1))
        assert result.payment == 1000
        assert result.number_of_payments == 12
        assert result.total_interest == 0
        assert result.payment_schedule[-1].balance == 0

    def test_loan_payment_interest(self):
        result = calculate_loan_payment(LoanInputs(principal=20000, interest_rate=7, term_years=5))
        assert result.total_interest > 0
        assert result.total_cost == pytest.approx(20000 + result.total_interest)

    def test_loan_rate_out_of_range(self):
        with pytest.raises(CalculatorInputError, match="Interest rate must be between 0 and 50"):
            calculate_loan_payment(LoanInputs(principal=1000, interest_rate=60, term_years=1))

    def test_loan_payoff(self):
        result = calculate_loan_payoff(LoanPayoffInputs(
            balance=1000, interest_rate=0, monthly_payment=100, extra_payment=100
        ))
        assert result.months_to_payoff == 10
        assert result.months_with_extra == 5
        assert result.months_saved == 5

    def test_loan_payoff_never_amortizes(self):
        with pytest.raises(CalculatorInputError):
            calculate_loan_payoff(LoanPayoffInputs(balance=10000, interest_rate=24, monthly_payment=150))

    def test_loan_payoff_beyond_month_cap(self):
        # Covers the interest by a hair, so the balance barely moves
        with pytest.raises(CalculatorInputError, match="too small to repay"):
            calculate_loan_payoff(LoanPayoffInputs(
                balance=100000, interest_rate=12, monthly_payment=1000.0001
            ))

    def test_affordability_stress_test(self):
        result = calculate_home_affordability(HomeAffordabilityInputs(
            gross_income=100000, down_payment=100000, interest_rate=3
        ))
        assert result.qualifying_rate == 5.25
        assert result.gdsr <= 0.39 + 1e-6
        assert result.tdsr <= 0.44 + 1e-6
        assert result.max_home_price > result.max_loan_amount - result.cmhc_premium

    def test_affordability_capped_by_down_payment(self):
        result = calculate_home_affordability(HomeAffordabilityInputs(
            gross_income=500000, down_payment=10000, interest_rate=4
        ))
        assert result.max_home_price == pytest.approx(200000)
        assert result.limiting_factor == "down_payment"
        assert result.qualifying_rate == 6.0

    def test_buy_vs_rent(self):
        inputs = BuyVsRentInputs(
            home_price=600000, down_payment=120000, mortgage_rate=5,
            monthly_rent=2500, years_analyzed=10,
        )
        result = calculate_buy_vs_rent(inputs)

        assert result.recommendation in ("buy", "rent")
        assert len(result.year_by_year_analysis) == 10
        assert result.buying_costs.land_transfer_tax == calculate_land_transfer_tax(600000, "ON")
        assert result.buying_costs.cmhc_insurance == 0
        assert result.net_difference == result.year_by_year_analysis[-1].difference

    def test_buy_vs_rent_requires_rent(self):
        with pytest.raises(CalculatorInputError):
            calculate_buy_vs_rent(BuyVsRentInputs(
                home_price=600000, down_payment=120000, mortgage_rate=5, monthly_rent=0
            ))

    def test_rrsp_vs_tfsa_recommendations(self):
        base = dict(age=35, current_income=90000, contribution_amount=5000)
        rrsp = calculate_rrsp_vs_tfsa(RRSPvsTFSAInputs(
            **base, current_marginal_tax_rate=45, expected_retirement_tax_rate=20))
        tfsa = calculate_rrsp_vs_tfsa(RRSPvsTFSAInputs(
            **base, current_marginal_tax_rate=20, expected_retirement_tax_rate=45))
        split = calculate_rrsp_vs_tfsa(RRSPvsTFSAInputs(
            **base, current_marginal_tax_rate=30, expected_retirement_tax_rate=30))

        assert rrsp.recommendation == "RRSP"
        assert rrsp.rrsp_contribution.after_tax_value > rrsp.tfsa_contribution.future_value
        assert tfsa.recommendation == "TFSA"
        assert split.recommendation == "Split"
        assert split.split_recommendation.rrsp_amount == 2500

    def test_rrsp_vs_tfsa_defaults(self):
        inputs = RRSPvsTFSAInputs(age=35, current_income=90000, contribution_amount=10000)
        assert inputs.years_to_retirement == 30

        result = calculate_rrsp_vs_tfsa(inputs)
        assert result.current_marginal_tax_rate == calculate_tax(90000, "ON").marginal_rate
        assert any("TFSA limit" in w for w in result.warnings)


class TestCsvExport:
    """Test calculator CSV export."""

    def test_export_layout(self):
        content = export_calculation_csv(
            CalculatorType.MORTGAGE,
            "My condo",
            {"home_price": 500000},
            {"monthly_payment": 2900.5, "schedule": [{"year": 1}]},
            notes="Check with broker",
        )
        lines = content.split("\n")

        assert lines[0] == "SmartBudget Canada - Calculator Export"
        assert "Calculator Type,Mortgage" in lines
        assert "Title,My condo" in lines
        assert "Home Price,500000" in lines
        assert "Monthly Payment,2900.5" in lines
        assert "NOTES" in lines
        assert "Check with broker" in lines
        assert lines.index("INPUTS") < lines.index("RESULTS")

    def test_nested_values_json_encoded(self):
        content = export_calculation_csv("tax", "Tax", {}, {"brackets": {"a": 1}})
        assert '"{""a"": 1}"' in content
        assert "NOTES" not in content


# =============================================================================
# NET WORTH & HEALTH SCORE TESTS
# =============================================================================

class TestNetWorth:
    """Test net worth totals and ratios."""

    def test_summary_and_ratios(self):
        assets = [
            Asset(type=AssetType.SAVINGS, name="HISA", value=6000),
            Asset(type=AssetType.HOME, name="House", value=400000),
        ]
        liabilities = [Liability(type=LiabilityType.MORTGAGE, name="Mortgage", balance=300000, minimum_payment=2000)]

        summary = summarize_net_worth(assets, liabilities, monthly_income=5000, monthly_expenses=3000)

        assert summary.net_worth == 106000
        assert summary.debt_to_income_ratio == pytest.approx(0.4)
        assert summary.liquidity_ratio == pytest.approx(2.0)
        assert summary.health_status == HealthStatus.IMPROVING
        assert summary.assets_by_type == {"savings": 6000, "home": 400000}

    def test_negative_net_worth_is_critical(self):
        liabilities = [Liability(type=LiabilityType.STUDENT_LOAN, name="OSAP", balance=25000)]
        summary = summarize_net_worth([], liabilities)
        assert summary.health_status == HealthStatus.CRITICAL
        assert summary.debt_to_income_ratio is None
        assert summary.liquidity_ratio is None


class TestHealthScore:
    """Test the 0-10 financial health score."""

    @pytest.fixture
    def scorer(self):
        return FinancialHealthScorer()

    def test_healthy_snapshot(self, scorer):
        snapshot = FinancialSnapshot(
            monthly_income=5000, monthly_expenses=3000, monthly_surplus=1500,
            liquid_assets=10000, total_assets=10000, net_worth=10000,
        )
        health = scorer.score(snapshot)
        assert health.score == 8
        assert health.severity == AuditSeverity.EXCELLENT

    def test_disaster_snapshot_clamped(self, scorer):
        snapshot = FinancialSnapshot(
            monthly_income=2000, monthly_expenses=2500, monthly_surplus=-500,
            credit_card_debt=5000, credit_card_limit=6000, high_interest_debt=20000,
            total_liabilities=20000, net_worth=-20000,
        )
        health = scorer.score(snapshot)
        assert health.score == 0
        assert health.severity == AuditSeverity.DISASTER
        assert snapshot.credit_card_utilization == pytest.approx(83.3)

    def test_no_budget_positive_net_worth(self, scorer):
        snapshot = FinancialSnapshot(total_assets=5000, net_worth=5000, liquid_assets=5000)
        health = scorer.score(snapshot)
        assert health.score == 8
        assert "+1: net worth above a year of income" in health.factors
        assert "+1: saving more than 20% of income" not in health.factors

    def test_snapshot_from_records(self):
        assets = [Asset(type=AssetType.CHECKING, name="Chequing", value=2000)]
        liabilities = [
            Liability(type=LiabilityType.CREDIT_CARD, name="Visa", balance=3000, interest_rate=19.99, credit_limit=6000),
            Liability(type=LiabilityType.AUTO_LOAN, name="Car", balance=15000, interest_rate=6.9),
        ]
        budget = {"name": "Main", "province": "ON", "net_income": 4000, "total_expenses": 3500, "disposable_income": 500}

        snapshot = build_financial_snapshot(budget, assets, liabilities)

        assert snapshot.has_budget
        assert snapshot.net_worth == -16000
        assert snapshot.high_interest_debt == 3000
        assert snapshot.credit_card_utilization == 50.0
        assert len(snapshot.high_interest_debts) == 1


# =============================================================================
# RECOMMENDATION ENGINE TESTS
# =============================================================================

class TestRecommendationEngine:
    """Test budget recommendations."""

    @pytest.fixture
    def engine(self):
        return RecommendationEngine()

    @pytest.fixture
    def shortfall_summary(self):
        items = [
            BudgetItemInput(type="income", name="Salary", amount=40000, frequency="yearly"),
            BudgetItemInput(type="expense", category="housing", name="Rent", amount=2200),
            BudgetItemInput(type="expense", category="food", name="Food", amount=800),
        ]
        return BudgetCalculator().summarize(items, "ON")

    def test_shortfall_is_critical(self, engine, shortfall_summary):
        report = engine.generate(shortfall_summary)
        assert shortfall_summary.disposable_income < 0
        first = report.recommendations[0]
        assert first.priority == RecommendationPriority.CRITICAL
        assert first.category == RecommendationCategory.CASH_FLOW
        assert first in report.immediate_actions

    def test_housing_ratio_flagged(self, engine, shortfall_summary):
        report = engine.generate(shortfall_summary)
        assert any(r.category == RecommendationCategory.HOUSING for r in report.recommendations)

    def test_high_interest_debt(self, engine, shortfall_summary):
        card = Liability(type=LiabilityType.CREDIT_CARD, name="Visa", balance=4000, interest_rate=21.99)
        report = engine.generate(shortfall_summary, liabilities=[card])
        assert any(r.title == "Pay off high-interest debt first" for r in report.immediate_actions)

    def test_goal_recommendation(self, engine):
        items = [
            BudgetItemInput(type="income", name="Salary", amount=120000, frequency="yearly"),
            BudgetItemInput(type="expense", category="housing", name="Rent", amount=2000),
        ]
        summary = BudgetCalculator().summarize(items, "ON")
        report = engine.generate(summary, primary_goal="buy-home", budget_id="b1")

        titles = [r.title for r in report.recommendations]
        assert "Open a First Home Savings Account" in titles
        assert "Use your RRSP room" in titles
        assert report.budget_id == "b1"
        assert report.recommendations[-1].priority == RecommendationPriority.INFO
        assert all(r not in report.immediate_actions for r in report.long_term_actions)


# =============================================================================
# PII REDACTION TESTS
# =============================================================================

class TestPIIRedaction:
    """Test PII detection and redaction."""

    @pytest.fixture
    def redactor(self):
        return PIIRedactor()

    def test_sin_redaction(self, redactor):
        result = redactor.redact("My SIN is 123-456-789, can I open a TFSA?")
        assert "123-456-789" not in result.redacted_text
        assert "[SIN_1]" in result.redacted_text
        assert "SIN" in result.pii_types_found

    def test_email_and_phone(self, redactor):
        result = redactor.redact("Email jane.doe@example.com or call (416) 555-1234")
        assert "jane.doe@example.com" not in result.redacted_text
        assert "555-1234" not in result.redacted_text
        assert {"EMAIL", "PHONE"} <= result.pii_types_found

    def test_postal_code_and_card(self, redactor):
        result = redactor.redact("I live at M5V 2T6 and my card is 4111 1111 1111 1111")
        assert "M5V 2T6" not in result.redacted_text
        assert "4111" not in result.redacted_text
        assert {"POSTAL_CODE", "CARD_NUMBER"} <= result.pii_types_found

    def test_money_preserved(self, redactor):
        text = "I earn $85,000 a year and pay $1,500 in rent at 5.5% interest"
        result = redactor.redact(text)
        assert result.redacted_text == text
        assert not result.was_modified

    def test_token_map_never_stores_values(self, redactor):
        result = redactor.redact("SIN 123 456 789")
        assert all(v in ("SIN", "PHONE") for v in result.token_map.values())
        assert "123 456 789" not in json.dumps(result.token_map)

    def test_empty_text(self, redactor):
        result = redactor.redact("")
        assert isinstance(result, RedactionResult)
        assert result.redaction_count == 0

    def test_leakage_check(self, redactor):
        assert redactor.validate_no_pii_leakage("Should I pay off my card?")[0]
        assert not redactor.validate_no_pii_leakage("reach me at a@b.ca")[0]

    def test_convenience_wrapper(self):
        assert "[EMAIL_1]" in redact_sensitive_data("mail me: someone@mail.ca")


# =============================================================================
# COACH TESTS
# =============================================================================

class TestCoach:
    """Test prompts and the coach client in mock mode."""

    @pytest.fixture
    def snapshot(self):
        return FinancialSnapshot(
            has_budget=True, budget_name="Main", province="ON",
            monthly_income=4000, monthly_expenses=3500, monthly_surplus=500,
            total_assets=2000, total_liabilities=3000, net_worth=-1000, liquid_assets=2000,
            credit_card_debt=3000, credit_card_limit=6000, high_interest_debt=3000,
            liabilities=[{"type": "credit_card", "name": "Visa", "balance": 3000, "interest_rate": 19.99}],
            high_interest_debts=[{"name": "Visa", "type": "credit_card", "balance": 3000, "interest_rate": 19.99}],
        )

    @pytest.fixture
    def coach(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        return CoachAIClient()

    def test_financial_context(self, snapshot):
        context = build_financial_context(snapshot)
        assert "Monthly Surplus/Deficit: $500.00" in context
        assert "Net Worth: $-1,000.00" in context
        assert "Visa" in context
        assert "Credit Card Utilization: 50.0%" in context

    def test_system_prompt_has_provincial_reference(self):
        prompt = get_coach_system_prompt("ON")
        assert "Ontario" in prompt
        assert "TFSA" in prompt

    def test_validate_audit_response(self):
        good = {
            "overall_assessment": "Fine",
            "immediate_reaction": "Okay",
            "debt_analysis": "Low",
            "action_plan": ["Save"],
            "coach_quotes": [],
        }
        assert validate_audit_response(good) == (True, [])
        is_valid, issues = validate_audit_response({"overall_assessment": "x"})
        assert not is_valid
        assert len(issues) >= 3

    def test_mock_mode(self, coach, snapshot):
        assert not coach.is_connected
        response = coach.chat("Should I use my TFSA?", context=build_financial_context(snapshot))
        assert response.success
        assert response.provider == "mock"

    def test_mock_audit(self, coach, snapshot):
        health = FinancialHealthScorer().score(snapshot)
        response = coach.generate_audit(snapshot, health)
        assert response.success
        assert validate_audit_response(response.data)[0]
        assert str(health.score) in response.data["overall_assessment"]

    def test_invalid_json_from_provider(self, coach, snapshot):
        reply = SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content="not json"))],
            usage=None,
        )
        coach.client = SimpleNamespace(
            chat=SimpleNamespace(completions=SimpleNamespace(create=lambda **kwargs: reply))
        )
        coach.provider = AIProvider.OPENAI

        response = coach.generate_audit(snapshot, FinancialHealthScorer().score(snapshot))
        assert not response.success
        assert response.error == "Invalid JSON response from AI service"

    def test_chat_redacts_before_sending(self, coach):
        sent = {}

        def create(**kwargs):
            sent.update(kwargs)
            return SimpleNamespace(
                choices=[SimpleNamespace(message=SimpleNamespace(content="Pay the card."))],
                usage=SimpleNamespace(total_tokens=42),
            )

        coach.client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
        coach.provider = AIProvider.OPENAI

        response = coach.chat("My SIN is 123-456-789. What now?")
        assert response.content == "Pay the card."
        assert response.tokens_used == 42
        assert "123-456-789" not in sent["messages"][-1]["content"]

    def test_chat_warns_when_digits_survive_redaction(self, coach, caplog):
        reply = SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content="Noted."))],
            usage=None,
        )
        coach.client = SimpleNamespace(
            chat=SimpleNamespace(completions=SimpleNamespace(create=lambda **kwargs: reply))
        )
        coach.provider = AIProvider.OPENAI

        with caplog.at_level(logging.WARNING, logger="openai_client"):
            response = coach.chat("My member number is 12345678901")

        assert response.success
        assert "Long digit run left in text" in caplog.text
        assert "12345678901" not in caplog.text

    def test_clean_chat_logs_no_warning(self, coach, caplog):
        with caplog.at_level(logging.WARNING, logger="openai_client"):
            coach.chat("Should I pay down my Visa first?")
        assert "personal data" not in caplog.text

    def test_audit_response_must_be_object(self):
        is_valid, issues = validate_audit_response(["overall_assessment"])
        assert not is_valid
        assert issues == ["Expected a JSON object, got list"]
        assert not validate_audit_response("fine")[0]

    def test_audit_array_from_provider(self, coach, snapshot):
        reply = SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content='["not", "an", "object"]'))],
            usage=None,
        )
        coach.client = SimpleNamespace(
            chat=SimpleNamespace(completions=SimpleNamespace(create=lambda **kwargs: reply))
        )
        coach.provider = AIProvider.OPENAI

        response = coach.generate_audit(snapshot, FinancialHealthScorer().score(snapshot))
        assert not response.success
        assert response.error == "Incomplete audit response from AI service"
