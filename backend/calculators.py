"""
SmartBudget Canada - Financial Calculators
==========================================
Mortgage, loan, home affordability, buy vs rent and RRSP vs TFSA
calculators, plus CSV export of a saved calculation.

Out-of-range inputs raise CalculatorInputError. Most are caught before any
math runs; a loan payment too small to finish within the payoff horizon is
caught by the simulation.

Canadian conventions:
- Fixed-rate mortgages compound semi-annually (Interest Act), other
  consumer loans compound at the payment frequency
- Default insurance (CMHC) is required below 20% down
- Lenders qualify borrowers at the stress-test rate
"""

import csv
import io
import json
import logging
import re
from datetime import date
from typing import Any, Dict, List, Optional, Union

from tax_constants import (
    Province,
    CMHC_PREMIUM_RATES,
    FIRST_TIME_BUYER_LTT_REBATE,
    LAND_TRANSFER_FLAT_RATES,
    LAND_TRANSFER_TAX_BRACKETS,
    MORTGAGE_RULES,
    REGISTERED_ACCOUNT_LIMITS_2025,
    calculate_bracket_tax,
    parse_province,
)
from models import (
    BuyingCosts,
    BuyVsRentInputs,
    BuyVsRentResult,
    CalculatorInputError,
    CalculatorType,
    ContributionLimits,
    HomeAffordabilityInputs,
    HomeAffordabilityResult,
    HousingCostBreakdown,
    LoanInputs,
    LoanPayoffInputs,
    LoanPayoffResult,
    LoanResult,
    MortgageInputs,
    MortgagePaymentFrequency,
    MortgageResult,
    MortgageYearSummary,
    PaymentScheduleEntry,
    RentingCosts,
    RRSPOutcome,
    RRSPvsTFSAInputs,
    RRSPvsTFSAResult,
    SplitRecommendation,
    TFSAOutcome,
    YearAnalysis,
)
from tax_calculator import calculate_tax

logger = logging.getLogger(__name__)

MAX_LOAN_PAYOFF_MONTHS = 1200

LOAN_PERIODS_PER_YEAR = {
    "monthly": 12,
    "bi_weekly": 26,
    "weekly": 52,
}

MORTGAGE_PERIODS_PER_YEAR = {
    MortgagePaymentFrequency.MONTHLY: 12,
    MortgagePaymentFrequency.SEMI_MONTHLY: 24,
    MortgagePaymentFrequency.BI_WEEKLY: 26,
    MortgagePaymentFrequency.WEEKLY: 52,
    MortgagePaymentFrequency.ACCELERATED_BI_WEEKLY: 26,
    MortgagePaymentFrequency.ACCELERATED_WEEKLY: 52,
}


# =============================================================================
# SHARED MATH
# =============================================================================

def mortgage_periodic_rate(annual_rate: float, periods_per_year: int) -> float:
    """Periodic rate for a rate compounded semi-annually, not in advance."""
    return (1 + annual_rate / 200) ** (2 / periods_per_year) - 1


def level_payment(principal: float, periodic_rate: float, periods: int) -> float:
    if periods <= 0:
        raise CalculatorInputError("Number of payments must be positive")
    if periodic_rate == 0:
        return principal / periods
    return principal * periodic_rate / (1 - (1 + periodic_rate) ** -periods)


def annuity_factor(periodic_rate: float, periods: int) -> float:
    """Present value of $1 paid each period."""
    if periodic_rate == 0:
        return float(periods)
    return (1 - (1 + periodic_rate) ** -periods) / periodic_rate


def future_value_of_contributions(annual_amount: float, annual_return: float, years: int) -> float:
    """Value of equal contributions made at the start of each year."""
    if annual_return == 0:
        return annual_amount * years
    growth = 1 + annual_return
    return annual_amount * ((growth ** years - 1) / annual_return) * growth


# =============================================================================
# DOWN PAYMENT, CMHC AND LAND TRANSFER TAX
# =============================================================================

def minimum_down_payment(home_price: float) -> float:
    """Smallest down payment a lender can accept for a price."""
    rules = MORTGAGE_RULES
    tier_limit = rules["down_payment_tier_limit"]

    if home_price >= rules["insured_price_cap"]:
        return round(home_price * rules["down_payment_uninsured_rate"], 2)
    if home_price <= tier_limit:
        return round(home_price * rules["down_payment_first_tier_rate"], 2)

    first_tier = tier_limit * rules["down_payment_first_tier_rate"]
    second_tier = (home_price - tier_limit) * rules["down_payment_second_tier_rate"]
    return round(first_tier + second_tier, 2)


def max_price_for_down_payment(down_payment: float) -> float:
    """Highest price the minimum down payment rules allow for a given down payment."""
    rules = MORTGAGE_RULES
    tier_limit = rules["down_payment_tier_limit"]
    cap = rules["insured_price_cap"]
    first_tier_max = tier_limit * rules["down_payment_first_tier_rate"]
    insured_max = minimum_down_payment(cap - 0.01)

    if down_payment <= first_tier_max:
        return down_payment / rules["down_payment_first_tier_rate"]
    if down_payment < insured_max:
        return tier_limit + (down_payment - first_tier_max) / rules["down_payment_second_tier_rate"]

    uninsured_max = down_payment / rules["down_payment_uninsured_rate"]
    return max(uninsured_max, cap - 1)


def cmhc_premium_rate(loan_to_value: float) -> float:
    """Premium rate for an insured loan. Zero at 80% LTV or below."""
    if loan_to_value <= 0.80:
        return 0.0
    for ceiling, rate in CMHC_PREMIUM_RATES:
        if loan_to_value <= ceiling + 1e-9:
            return rate
    raise CalculatorInputError("Loan-to-value above 95% cannot be insured")


def calculate_cmhc_premium(home_price: float, down_payment: float) -> float:
    if home_price <= 0:
        return 0.0
    loan = home_price - down_payment
    if loan <= 0 or home_price >= MORTGAGE_RULES["insured_price_cap"]:
        return 0.0
    return round(loan * cmhc_premium_rate(loan / home_price), 2)


def _province(value: Union[Province, str]) -> Province:
    try:
        return parse_province(value)
    except ValueError as exc:
        raise CalculatorInputError("Please select a valid province") from exc


def calculate_land_transfer_tax(
    home_price: float,
    province: Union[Province, str],
    first_time_buyer: bool = False
) -> float:
    """Provincial land transfer tax, net of the first-time buyer rebate."""
    prov = _province(province)
    if home_price <= 0:
        return 0.0

    if prov in LAND_TRANSFER_TAX_BRACKETS:
        tax = calculate_bracket_tax(home_price, LAND_TRANSFER_TAX_BRACKETS[prov])
    else:
        tax = home_price * LAND_TRANSFER_FLAT_RATES.get(prov, 0.0)

    if first_time_buyer and prov in FIRST_TIME_BUYER_LTT_REBATE:
        tax -= min(tax, FIRST_TIME_BUYER_LTT_REBATE[prov])

    return round(tax, 2)


# =============================================================================
# MORTGAGE CALCULATOR
# =============================================================================

def _validate_mortgage(inputs: MortgageInputs) -> None:
    if inputs.home_price <= 0:
        raise CalculatorInputError("Home price must be greater than 0")
    if inputs.down_payment < 0 or inputs.down_payment >= inputs.home_price:
        raise CalculatorInputError("Down payment must be at least 0 and less than the home price")
    if not 0 <= inputs.interest_rate <= 50:
        raise CalculatorInputError("Interest rate must be between 0 and 50")
    if not 1 <= inputs.amortization_years <= MORTGAGE_RULES["max_amortization_years"]:
        raise CalculatorInputError("Amortization must be between 1 and 35 years")
    if not 1 <= inputs.term_years <= inputs.amortization_years:
        raise CalculatorInputError("Term must be at least 1 year and no longer than the amortization")

    required = minimum_down_payment(inputs.home_price)
    if inputs.down_payment + 0.005 < required:
        raise CalculatorInputError(f"Minimum down payment for this price is ${required:,.2f}")


def calculate_mortgage(inputs: MortgageInputs) -> MortgageResult:
    """
    Payment and amortization for a Canadian fixed-rate mortgage.

    Accelerated frequencies pay half (bi-weekly) or a quarter (weekly) of
    the monthly payment, which adds the equivalent of one extra monthly
    payment a year and shortens the amortization.
    """
    _validate_mortgage(inputs)

    loan = inputs.home_price - inputs.down_payment
    premium = calculate_cmhc_premium(inputs.home_price, inputs.down_payment)
    principal = loan + premium

    frequency = inputs.payment_frequency
    periods_per_year = MORTGAGE_PERIODS_PER_YEAR[frequency]
    rate = mortgage_periodic_rate(inputs.interest_rate, periods_per_year)

    if frequency in (MortgagePaymentFrequency.ACCELERATED_BI_WEEKLY,
                     MortgagePaymentFrequency.ACCELERATED_WEEKLY):
        monthly_rate = mortgage_periodic_rate(inputs.interest_rate, 12)
        monthly = level_payment(principal, monthly_rate, inputs.amortization_years * 12)
        payment = monthly / (2 if frequency == MortgagePaymentFrequency.ACCELERATED_BI_WEEKLY else 4)
    else:
        payment = level_payment(principal, rate, inputs.amortization_years * periods_per_year)

    payment = round(payment, 2)

    balance = principal
    schedule: List[MortgageYearSummary] = []
    total_interest = 0.0
    total_paid = 0.0
    interest_over_term = 0.0
    balance_at_term_end = 0.0
    term_periods = inputs.term_years * periods_per_year
    max_periods = inputs.amortization_years * periods_per_year + periods_per_year
    period = 0
    year_principal = year_interest = 0.0

    while balance > 0.005 and period < max_periods:
        period += 1
        interest = balance * rate
        principal_paid = min(payment - interest, balance)
        balance -= principal_paid

        total_interest += interest
        total_paid += interest + principal_paid
        year_interest += interest
        year_principal += principal_paid
        if period <= term_periods:
            interest_over_term += interest
        if period == term_periods:
            balance_at_term_end = max(balance, 0.0)

        if period % periods_per_year == 0 or balance <= 0.005:
            schedule.append(MortgageYearSummary(
                year=(period - 1) // periods_per_year + 1,
                principal_paid=round(year_principal, 2),
                interest_paid=round(year_interest, 2),
                ending_balance=round(max(balance, 0.0), 2),
            ))
            year_principal = year_interest = 0.0

    return MortgageResult(
        loan_amount=round(loan, 2),
        cmhc_premium=premium,
        total_mortgage=round(principal, 2),
        down_payment_percent=round(inputs.down_payment / inputs.home_price * 100, 2),
        minimum_down_payment=minimum_down_payment(inputs.home_price),
        payment=payment,
        payment_frequency=frequency,
        payments_per_year=periods_per_year,
        total_interest=round(total_interest, 2),
        total_paid=round(total_paid, 2),
        payoff_years=round(period / periods_per_year, 2),
        balance_at_term_end=round(balance_at_term_end, 2),
        interest_over_term=round(interest_over_term, 2),
        schedule=schedule,
    )


# =============================================================================
# LOAN PAYMENT & PAYOFF CALCULATORS
# =============================================================================

def calculate_loan_payment(inputs: LoanInputs) -> LoanResult:
    """Level payment and full schedule for an auto, personal, student or business loan."""
    if inputs.principal <= 0:
        raise CalculatorInputError("Principal must be greater than 0")
    if not 0 <= inputs.interest_rate <= 50:
        raise CalculatorInputError("Interest rate must be between 0 and 50")
    if not 1 <= inputs.term_years <= 50:
        raise CalculatorInputError("Term must be between 1 and 50 years")

    periods_per_year = LOAN_PERIODS_PER_YEAR[inputs.payment_frequency.value]
    rate = inputs.interest_rate / 100 / periods_per_year
    periods = int(round(inputs.term_years * periods_per_year))
    payment = round(level_payment(inputs.principal, rate, periods), 2)

    schedule: List[PaymentScheduleEntry] = []
    balance = inputs.principal
    total_interest = 0.0

    for number in range(1, periods + 1):
        interest = round(balance * rate, 2)
        this_payment = payment
        principal_paid = this_payment - interest
        # Final payment absorbs rounding
        if number == periods or principal_paid > balance:
            principal_paid = balance
            this_payment = round(balance + interest, 2)
        balance = round(balance - principal_paid, 2)
        total_interest += interest
        schedule.append(PaymentScheduleEntry(
            payment_number=number,
            payment=this_payment,
            principal=round(principal_paid, 2),
            interest=interest,
            balance=max(balance, 0.0),
        ))
        if balance <= 0:
            break

    total_interest = round(total_interest, 2)
    return LoanResult(
        loan_type=inputs.loan_type,
        payment=payment,
        payment_frequency=inputs.payment_frequency,
        number_of_payments=len(schedule),
        total_interest=total_interest,
        total_cost=round(inputs.principal + total_interest, 2),
        payment_schedule=schedule,
    )


def _months_to_payoff(balance: float, monthly_rate: float, payment: float):
    months = 0
    interest_total = 0.0
    while balance > 0.005 and months < MAX_LOAN_PAYOFF_MONTHS:
        months += 1
        interest = balance * monthly_rate
        interest_total += interest
        balance = balance + interest - min(payment, balance + interest)
    if balance > 0.005:
        raise CalculatorInputError(
            f"Monthly payment is too small to repay the balance within {MAX_LOAN_PAYOFF_MONTHS // 12} years"
        )
    return months, interest_total


def calculate_loan_payoff(inputs: LoanPayoffInputs) -> LoanPayoffResult:
    """How much sooner an extra monthly payment retires a balance."""
    if inputs.balance <= 0:
        raise CalculatorInputError("Balance must be greater than 0")
    if not 0 <= inputs.interest_rate <= 50:
        raise CalculatorInputError("Interest rate must be between 0 and 50")
    if inputs.extra_payment < 0:
        raise CalculatorInputError("Extra payment cannot be negative")

    monthly_rate = inputs.interest_rate / 100 / 12
    if inputs.monthly_payment <= inputs.balance * monthly_rate:
        raise CalculatorInputError("Monthly payment must exceed the monthly interest charge")

    months, interest = _months_to_payoff(inputs.balance, monthly_rate, inputs.monthly_payment)
    months_extra, interest_extra = _months_to_payoff(
        inputs.balance, monthly_rate, inputs.monthly_payment + inputs.extra_payment
    )

    return LoanPayoffResult(
        months_to_payoff=months,
        total_interest=round(interest, 2),
        months_with_extra=months_extra,
        interest_with_extra=round(interest_extra, 2),
        months_saved=months - months_extra,
        interest_saved=round(interest - interest_extra, 2),
    )


# =============================================================================
# HOME AFFORDABILITY
# =============================================================================

def calculate_home_affordability(inputs: HomeAffordabilityInputs) -> HomeAffordabilityResult:
    """
    Largest purchase price that passes the GDS/TDS limits at the stress-test rate.

    Heating counts in full and condo fees at 50%. When no property tax
    is given it is estimated as a share of the (unknown) price, so the
    loan is solved for directly.
    """
    if inputs.gross_income <= 0:
        raise CalculatorInputError("Gross income must be greater than 0")
    if inputs.down_payment < 0:
        raise CalculatorInputError("Down payment cannot be negative")
    if inputs.monthly_debts < 0:
        raise CalculatorInputError("Monthly debts cannot be negative")
    if not 0 <= inputs.interest_rate <= 50:
        raise CalculatorInputError("Interest rate must be between 0 and 50")
    if not 1 <= inputs.amortization_period <= MORTGAGE_RULES["max_amortization_years"]:
        raise CalculatorInputError("Amortization must be between 1 and 35 years")
    _province(inputs.province)

    rules = MORTGAGE_RULES
    monthly_income = inputs.gross_income / 12
    heating = inputs.heating_costs if inputs.heating_costs is not None else rules["default_heating_monthly"]
    condo_share = inputs.condo_fees * rules["condo_fee_qualifying_share"]

    qualifying_rate = max(inputs.interest_rate + rules["stress_test_buffer"], rules["stress_test_floor"])
    periods = inputs.amortization_period * 12
    factor = annuity_factor(mortgage_periodic_rate(qualifying_rate, 12), periods)

    gds_room = rules["gds_limit"] * monthly_income - heating - condo_share
    tds_room = rules["tds_limit"] * monthly_income - inputs.monthly_debts - heating - condo_share
    available = min(gds_room, tds_room)
    limiting_factor = "gds" if gds_room <= tds_room else "tds"

    if inputs.property_tax is not None:
        fixed_tax = inputs.property_tax / 12
        tax_per_dollar = 0.0
    else:
        fixed_tax = 0.0
        tax_per_dollar = rules["property_tax_estimate_rate"] / 12

    base_loan = 0.0
    premium_rate = 0.0
    for _ in range(10):
        numerator = available - fixed_tax - inputs.down_payment * tax_per_dollar
        base_loan = max(0.0, numerator / ((1 + premium_rate) / factor + tax_per_dollar))
        price = base_loan + inputs.down_payment
        if price <= 0:
            break
        next_rate = 0.0
        if inputs.down_payment / price < 0.20 and price < rules["insured_price_cap"]:
            ltv = base_loan / price
            next_rate = cmhc_premium_rate(min(ltv, 0.95))
        if next_rate == premium_rate:
            break
        premium_rate = next_rate

    max_price = base_loan + inputs.down_payment
    price_cap = max_price_for_down_payment(inputs.down_payment)
    if max_price > price_cap:
        max_price = price_cap
        base_loan = max(0.0, price_cap - inputs.down_payment)
        limiting_factor = "down_payment"

    premium = calculate_cmhc_premium(max_price, inputs.down_payment) if base_loan > 0 else 0.0
    total_loan = base_loan + premium

    contract_rate = mortgage_periodic_rate(inputs.interest_rate, 12)
    monthly_payment = level_payment(total_loan, contract_rate, periods) if total_loan > 0 else 0.0
    property_tax = fixed_tax if inputs.property_tax is not None else max_price * tax_per_dollar

    housing = monthly_payment + property_tax + heating + inputs.condo_fees
    qualifying_housing = monthly_payment + property_tax + heating + condo_share
    gdsr = qualifying_housing / monthly_income
    tdsr = (qualifying_housing + inputs.monthly_debts) / monthly_income

    recommendations = _affordability_recommendations(
        inputs, max_price, premium, qualifying_rate, limiting_factor, factor
    )

    logger.info(f"Affordability: max price ${max_price:,.0f}, limited by {limiting_factor}")

    return HomeAffordabilityResult(
        max_home_price=round(max_price, 2),
        max_loan_amount=round(total_loan, 2),
        cmhc_premium=round(premium, 2),
        qualifying_rate=round(qualifying_rate, 2),
        monthly_payment=round(monthly_payment, 2),
        monthly_housing_costs=round(housing, 2),
        gdsr=round(gdsr, 4),
        tdsr=round(tdsr, 4),
        limiting_factor=limiting_factor,
        breakdown=HousingCostBreakdown(
            mortgage=round(monthly_payment, 2),
            property_tax=round(property_tax, 2),
            heating=round(heating, 2),
            condo_fees=round(inputs.condo_fees, 2),
        ),
        recommendations=recommendations,
    )


def _affordability_recommendations(
    inputs: HomeAffordabilityInputs,
    max_price: float,
    premium: float,
    qualifying_rate: float,
    limiting_factor: str,
    factor: float
) -> List[str]:
    tips = []

    if max_price <= inputs.down_payment:
        tips.append(
            "Your current income and debts do not support a mortgage. "
            "Reduce monthly debt payments or increase income before shopping."
        )
        return tips

    tips.append(
        f"Lenders will qualify you at {qualifying_rate:.2f}% (the mortgage stress test), "
        f"not your contract rate of {inputs.interest_rate:.2f}%."
    )

    if limiting_factor == "tds" and inputs.monthly_debts > 0:
        extra_loan = inputs.monthly_debts * factor
        tips.append(
            f"Your ${inputs.monthly_debts:,.0f}/month of other debt payments is the binding limit. "
            f"Clearing it could raise your borrowing power by about ${extra_loan:,.0f}."
        )

    if limiting_factor == "down_payment":
        tips.append(
            "Your down payment, not your income, caps the price. "
            "Minimum down payment is 5% up to $500,000 and 10% on the portion above."
        )

    if premium > 0:
        twenty_percent = max_price * 0.20
        tips.append(
            f"With less than 20% down you pay a CMHC premium of ${premium:,.0f}. "
            f"A ${twenty_percent:,.0f} down payment would avoid it."
        )

    tips.append("Budget 1.5% of the price for closing costs plus land transfer tax.")
    tips.append("Keep 3 to 6 months of expenses in an emergency fund after closing.")
    return tips


# =============================================================================
# BUY VS RENT
# =============================================================================

def _validate_buy_vs_rent(inputs: BuyVsRentInputs) -> None:
    if inputs.home_price <= 0:
        raise CalculatorInputError("Home price must be greater than 0")
    if inputs.down_payment < 0 or inputs.down_payment >= inputs.home_price:
        raise CalculatorInputError("Down payment must be at least 0 and less than the home price")
    if inputs.monthly_rent <= 0:
        raise CalculatorInputError("Monthly rent must be greater than 0")
    if not 0.1 <= inputs.mortgage_rate <= 50:
        raise CalculatorInputError("Mortgage rate must be between 0.1 and 50")
    if not 1 <= inputs.years_analyzed <= 50:
        raise CalculatorInputError("Years analyzed must be between 1 and 50")
    if not 1 <= inputs.amortization_period <= MORTGAGE_RULES["max_amortization_years"]:
        raise CalculatorInputError("Amortization must be between 1 and 35 years")
    if inputs.down_payment + 0.005 < minimum_down_payment(inputs.home_price):
        raise CalculatorInputError(
            f"Minimum down payment for this price is ${minimum_down_payment(inputs.home_price):,.2f}"
        )


def calculate_buy_vs_rent(inputs: BuyVsRentInputs) -> BuyVsRentResult:
    """
    Compare the wealth of a buyer and a renter over the same horizon.

    Both households spend the same each month: whichever side has the
    cheaper month invests the difference. The renter starts by investing
    the buyer's up-front cash. Investment growth is taxed as capital gains
    (half included at the marginal rate).
    """
    _validate_buy_vs_rent(inputs)
    rules = MORTGAGE_RULES
    price = inputs.home_price

    premium = calculate_cmhc_premium(price, inputs.down_payment)
    mortgage_balance = price - inputs.down_payment + premium
    mortgage_rate = mortgage_periodic_rate(inputs.mortgage_rate, 12)
    mortgage_payment = level_payment(mortgage_balance, mortgage_rate, inputs.amortization_period * 12)

    land_transfer_tax = calculate_land_transfer_tax(price, inputs.province, inputs.first_time_buyer)
    closing_costs = price * rules["closing_cost_rate"]
    upfront = inputs.down_payment + closing_costs + land_transfer_tax

    property_tax = inputs.property_tax if inputs.property_tax is not None else price * rules["property_tax_estimate_rate"]
    maintenance = inputs.maintenance if inputs.maintenance is not None else price * 0.01

    inflation = inputs.inflation_rate / 100
    after_tax_return = inputs.investment_return / 100 * (1 - inputs.marginal_tax_rate / 100 * 0.5)
    monthly_return = (1 + after_tax_return) ** (1 / 12) - 1
    monthly_appreciation = (1 + inflation) ** (1 / 12) - 1

    home_value = price
    buyer_portfolio = 0.0
    renter_portfolio = upfront
    renter_contributions = upfront
    total_mortgage_payments = 0.0
    ownership_costs = 0.0
    total_rent = 0.0
    other_costs = 0.0
    rent = inputs.monthly_rent
    first_month_savings = None
    yearly: List[YearAnalysis] = []

    for year in range(1, inputs.years_analyzed + 1):
        growth = (1 + inflation) ** (year - 1)
        monthly_owner_costs = (
            (property_tax + inputs.home_insurance + maintenance) / 12
            + inputs.utilities + inputs.condo_fees
        ) * growth
        monthly_renter_costs = inputs.renters_insurance / 12 * growth
        if year > 1:
            rent *= 1 + inputs.rent_increase / 100

        for _ in range(12):
            buyer_portfolio *= 1 + monthly_return
            renter_portfolio *= 1 + monthly_return
            home_value *= 1 + monthly_appreciation

            payment = 0.0
            if mortgage_balance > 0.005:
                interest = mortgage_balance * mortgage_rate
                payment = min(mortgage_payment, mortgage_balance + interest)
                mortgage_balance = mortgage_balance + interest - payment
            total_mortgage_payments += payment
            ownership_costs += monthly_owner_costs
            total_rent += rent
            other_costs += monthly_renter_costs

            buy_outlay = payment + monthly_owner_costs
            rent_outlay = rent + monthly_renter_costs
            difference = buy_outlay - rent_outlay
            if first_month_savings is None:
                first_month_savings = max(0.0, difference)
            if difference > 0:
                renter_portfolio += difference
                renter_contributions += difference
            else:
                buyer_portfolio -= difference

        buying_net = home_value * (1 - rules["selling_cost_rate"]) - mortgage_balance + buyer_portfolio
        renting_net = renter_portfolio
        yearly.append(YearAnalysis(
            year=year,
            buying_net=round(buying_net, 2),
            renting_net=round(renting_net, 2),
            difference=round(buying_net - renting_net, 2),
            home_value=round(home_value, 2),
            mortgage_balance=round(max(mortgage_balance, 0.0), 2),
        ))

    final = yearly[-1]
    break_even = next((y.year for y in yearly if y.difference >= 0), None)
    buying_total_cost = upfront + total_mortgage_payments + ownership_costs
    renting_total_cost = total_rent + other_costs

    buying = BuyingCosts(
        monthly_mortgage=round(mortgage_payment, 2),
        annual_mortgage=round(mortgage_payment * 12, 2),
        upfront_costs=round(upfront, 2),
        closing_costs=round(closing_costs, 2),
        land_transfer_tax=land_transfer_tax,
        cmhc_insurance=premium,
        total_payments=round(total_mortgage_payments, 2),
        ownership_costs=round(ownership_costs, 2),
        remaining_mortgage=final.mortgage_balance,
        final_home_value=final.home_value,
        investment_value=round(buyer_portfolio, 2),
        total_cost=round(buying_total_cost, 2),
        net_position=final.buying_net,
    )
    renting = RentingCosts(
        total_rent=round(total_rent, 2),
        final_rent=round(rent, 2),
        other_costs=round(other_costs, 2),
        monthly_savings=round(first_month_savings or 0.0, 2),
        total_contributions=round(renter_contributions, 2),
        investment_growth=round(renter_portfolio - renter_contributions, 2),
        investment_value=round(renter_portfolio, 2),
        total_cost=round(renting_total_cost, 2),
        net_position=final.renting_net,
    )

    return BuyVsRentResult(
        buying_costs=buying,
        renting_costs=renting,
        net_difference=final.difference,
        recommendation="buy" if final.difference > 0 else "rent",
        break_even_point=break_even,
        year_by_year_analysis=yearly,
    )


# =============================================================================
# RRSP VS TFSA
# =============================================================================

def calculate_rrsp_vs_tfsa(inputs: RRSPvsTFSAInputs) -> RRSPvsTFSAResult:
    """
    Compare the same annual contribution in an RRSP and a TFSA.

    The RRSP refund is assumed to be reinvested tax-free, so the RRSP
    wins exactly when today's marginal rate beats the rate at withdrawal.
    """
    if not 1 <= inputs.age <= 100:
        raise CalculatorInputError("Age must be between 1 and 100")
    if inputs.current_income <= 0:
        raise CalculatorInputError("Current income must be greater than 0")
    if inputs.contribution_amount <= 0:
        raise CalculatorInputError("Contribution amount must be greater than 0")
    if not 0 <= inputs.investment_return <= 20:
        raise CalculatorInputError("Investment return must be between 0 and 20")
    if inputs.years_to_retirement is None or inputs.years_to_retirement < 1:
        raise CalculatorInputError("Years to retirement must be at least 1")
    for rate in (inputs.current_marginal_tax_rate, inputs.expected_retirement_tax_rate):
        if rate is not None and not 0 <= rate <= 60:
            raise CalculatorInputError("Tax rates must be between 0 and 60")
    _province(inputs.province)

    current_rate = inputs.current_marginal_tax_rate
    if current_rate is None:
        current_rate = calculate_tax(inputs.current_income, inputs.province).marginal_rate

    retirement_rate = inputs.expected_retirement_tax_rate
    if retirement_rate is None:
        retirement_income = inputs.expected_retirement_income
        if retirement_income is None:
            retirement_income = inputs.current_income * 0.7
        retirement_rate = calculate_tax(retirement_income, inputs.province).marginal_rate

    contribution = inputs.contribution_amount
    years = inputs.years_to_retirement
    growth = inputs.investment_return / 100
    invested = contribution * years

    refund = contribution * current_rate / 100
    rrsp_future = future_value_of_contributions(contribution, growth, years)
    refund_future = future_value_of_contributions(refund, growth, years)
    rrsp_after_tax = rrsp_future * (1 - retirement_rate / 100) + refund_future

    tfsa_future = future_value_of_contributions(contribution, growth, years)

    limits = REGISTERED_ACCOUNT_LIMITS_2025
    rrsp_room = min(inputs.current_income * limits["rrsp_rate"], limits["rrsp_dollar_limit"])
    tfsa_room = limits["tfsa_annual_limit"]

    warnings = []
    if contribution > rrsp_room:
        warnings.append(
            f"${contribution:,.0f} exceeds this year's new RRSP room of ${rrsp_room:,.0f}. "
            "Check your notice of assessment for carried-forward room."
        )
    if contribution > tfsa_room:
        warnings.append(
            f"${contribution:,.0f} exceeds the ${tfsa_room:,.0f} annual TFSA limit. "
            "Unused room from prior years may cover the difference."
        )

    spread = current_rate - retirement_rate
    if spread > 2:
        recommendation = "RRSP"
        reasoning = (
            f"Your marginal rate today ({current_rate:.1f}%) is higher than your expected "
            f"rate in retirement ({retirement_rate:.1f}%), so the RRSP deduction is worth more "
            "than the tax you will pay on withdrawal."
        )
        rrsp_amount = min(contribution, rrsp_room)
    elif spread < -2:
        recommendation = "TFSA"
        reasoning = (
            f"You expect a higher rate in retirement ({retirement_rate:.1f}%) than today "
            f"({current_rate:.1f}%). Paying tax now and withdrawing tax-free wins."
        )
        rrsp_amount = max(0.0, contribution - tfsa_room)
    else:
        recommendation = "Split"
        reasoning = (
            "Your tax rates now and in retirement are close, so the accounts come out nearly even. "
            "Splitting keeps flexibility: the TFSA for access, the RRSP for the refund."
        )
        rrsp_amount = min(contribution / 2, rrsp_room)

    tfsa_amount = contribution - rrsp_amount
    split = SplitRecommendation(
        rrsp_amount=round(rrsp_amount, 2),
        tfsa_amount=round(tfsa_amount, 2),
        reasoning=reasoning,
    )

    return RRSPvsTFSAResult(
        current_marginal_tax_rate=round(current_rate, 2),
        expected_retirement_tax_rate=round(retirement_rate, 2),
        rrsp_contribution=RRSPOutcome(
            tax_savings_now=round(refund, 2),
            future_value=round(rrsp_future, 2),
            refund_future_value=round(refund_future, 2),
            after_tax_value=round(rrsp_after_tax, 2),
            total_return=round(rrsp_after_tax - invested, 2),
        ),
        tfsa_contribution=TFSAOutcome(
            future_value=round(tfsa_future, 2),
            tax_free_withdrawal=round(tfsa_future, 2),
            total_return=round(tfsa_future - invested, 2),
        ),
        contribution_limits=ContributionLimits(
            rrsp_room=round(rrsp_room, 2),
            tfsa_room=float(tfsa_room),
        ),
        recommendation=recommendation,
        reasoning=reasoning,
        split_recommendation=split,
        warnings=warnings,
    )


# =============================================================================
# CSV EXPORT
# =============================================================================

CALCULATOR_TITLES = {
    CalculatorType.TAX: "Income Tax",
    CalculatorType.MORTGAGE: "Mortgage",
    CalculatorType.LOAN_PAYMENT: "Loan Payment",
    CalculatorType.LOAN_PAYOFF: "Loan Payoff",
    CalculatorType.HOME_AFFORDABILITY: "Home Affordability",
    CalculatorType.BUY_VS_RENT: "Buy vs Rent",
    CalculatorType.RRSP_VS_TFSA: "RRSP vs TFSA",
}


def humanize_key(key: str) -> str:
    """'monthly_payment' or 'monthlyPayment' -> 'Monthly Payment'."""
    spaced = re.sub(r"(?<=[a-z0-9])(?=[A-Z])", " ", key).replace("_", " ")
    return " ".join(word.capitalize() for word in spaced.split())


def _csv_value(value: Any) -> Any:
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    if value is None:
        return ""
    return value


def export_calculation_csv(
    calculator_type: Union[CalculatorType, str],
    title: str,
    inputs: Dict[str, Any],
    results: Dict[str, Any],
    notes: Optional[str] = None,
    created: Optional[date] = None
) -> str:
    """Render a calculation as CSV text for download."""
    calc_type = CalculatorType(calculator_type)
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")

    writer.writerow(["SmartBudget Canada - Calculator Export"])
    writer.writerow([])
    writer.writerow(["Calculator Type", CALCULATOR_TITLES[calc_type]])
    writer.writerow(["Title", title])
    writer.writerow(["Date", (created or date.today()).isoformat()])
    writer.writerow([])

    for section, values in (("INPUTS", inputs), ("RESULTS", results)):
        writer.writerow([section])
        writer.writerow(["Field", "Value"])
        for key, value in values.items():
            writer.writerow([humanize_key(key), _csv_value(value)])
        writer.writerow([])

    if notes:
        writer.writerow(["NOTES"])
        writer.writerow([notes])

    return buffer.getvalue()
