"""
SmartBudget Canada - Debt Calculator
====================================
Minimum payment rules, debt form validation, conversion between debts
and net-worth liabilities, and payoff planning.

Debts are stored as liabilities so they count toward net worth. The debt
specific fields (kind, term, user payment) travel in the liability's
details.
"""

import logging
from typing import Dict, List, Optional

from models import (
    Debt,
    DebtForm,
    DebtKind,
    DebtPayoffEntry,
    DebtSummary,
    FieldError,
    FormValidationError,
    Liability,
    LiabilityInput,
    LiabilityType,
    PayoffPlan,
    PayoffStrategy,
)

logger = logging.getLogger(__name__)

MAX_PAYOFF_MONTHS = 600

CREDIT_CARD_MIN_RATE = 0.03
LOAN_FALLBACK_MIN_RATE = 0.02

REVOLVING_KINDS = {DebtKind.LOC, DebtKind.CREDIT_CARD}
INSTALLMENT_KINDS = {DebtKind.PERSONAL_LOAN, DebtKind.STUDENT_LOAN, DebtKind.OTHER_LOAN}

DEBT_KIND_DISPLAY_NAMES: Dict[DebtKind, str] = {
    DebtKind.LOC: "Line of Credit",
    DebtKind.CREDIT_CARD: "Credit Card",
    DebtKind.PERSONAL_LOAN: "Personal Loan",
    DebtKind.STUDENT_LOAN: "Student Loan",
    DebtKind.OTHER_LOAN: "Other Loan",
}

DEBT_KIND_TO_LIABILITY: Dict[DebtKind, LiabilityType] = {
    DebtKind.LOC: LiabilityType.LINE_OF_CREDIT,
    DebtKind.CREDIT_CARD: LiabilityType.CREDIT_CARD,
    DebtKind.PERSONAL_LOAN: LiabilityType.PERSONAL_LOAN,
    DebtKind.STUDENT_LOAN: LiabilityType.STUDENT_LOAN,
    DebtKind.OTHER_LOAN: LiabilityType.OTHER,
}

LIABILITY_TO_DEBT_KIND: Dict[LiabilityType, DebtKind] = {
    LiabilityType.LINE_OF_CREDIT: DebtKind.LOC,
    LiabilityType.CREDIT_CARD: DebtKind.CREDIT_CARD,
    LiabilityType.PERSONAL_LOAN: DebtKind.PERSONAL_LOAN,
    LiabilityType.STUDENT_LOAN: DebtKind.STUDENT_LOAN,
    LiabilityType.AUTO_LOAN: DebtKind.OTHER_LOAN,
    LiabilityType.OTHER: DebtKind.OTHER_LOAN,
}


# =============================================================================
# MINIMUM PAYMENT RULES
# =============================================================================

def amortized_payment(principal: float, annual_rate: float, months: int) -> float:
    """Level monthly payment that retires `principal` in `months`."""
    if months <= 0:
        raise ValueError("Term must be at least one month")
    monthly_rate = annual_rate / 100 / 12
    if monthly_rate == 0:
        return principal / months
    return principal * monthly_rate / (1 - (1 + monthly_rate) ** -months)


def calculate_minimum_payment(
    kind: DebtKind,
    balance: float,
    interest_rate: float,
    term: Optional[int] = None,
    limit: Optional[float] = None
) -> float:
    """
    Minimum monthly payment for a debt.

    - Line of credit: interest only
    - Credit card: 3% of the balance
    - Loans: amortized over the term, or 2% of the balance without one
    """
    if balance <= 0:
        return 0.0

    if kind == DebtKind.LOC:
        payment = balance * interest_rate / 100 / 12
    elif kind == DebtKind.CREDIT_CARD:
        payment = balance * CREDIT_CARD_MIN_RATE
    elif term and term > 0:
        payment = amortized_payment(balance, interest_rate, term)
    else:
        payment = balance * LOAN_FALLBACK_MIN_RATE

    return round(payment, 2)


def requires_credit_limit(kind: Optional[DebtKind]) -> bool:
    return kind in REVOLVING_KINDS


def requires_loan_term(kind: Optional[DebtKind]) -> bool:
    return kind in INSTALLMENT_KINDS


def get_debt_kind_display_name(kind: DebtKind) -> str:
    return DEBT_KIND_DISPLAY_NAMES.get(kind, str(kind))


# =============================================================================
# VALIDATION
# =============================================================================

def validate_debt(form: DebtForm) -> float:
    """
    Validate a debt form and return its calculated minimum payment.

    Raises FormValidationError listing every problem.
    """
    errors: List[FieldError] = []

    if form.kind is None:
        errors.append(FieldError(field="kind", message="Debt type is required"))
    if not form.name or not form.name.strip():
        errors.append(FieldError(field="name", message="Debt name is required"))
    if form.balance <= 0:
        errors.append(FieldError(field="balance", message="Balance must be greater than 0"))
    if form.interest_rate < 0:
        errors.append(FieldError(field="interest_rate", message="Interest rate cannot be negative"))

    if requires_credit_limit(form.kind):
        if not form.limit or form.limit <= 0:
            errors.append(FieldError(field="limit", message="Credit limit is required for this debt type"))
        elif form.balance > form.limit:
            errors.append(FieldError(field="balance", message="Balance cannot exceed credit limit"))

    if requires_loan_term(form.kind) and (not form.term or form.term <= 0):
        errors.append(FieldError(field="term", message="Loan term is required for this debt type"))

    if errors:
        raise FormValidationError(errors)

    min_payment = calculate_minimum_payment(
        form.kind, form.balance, form.interest_rate, form.term, form.limit
    )

    if form.user_payment is not None and form.user_payment < min_payment:
        raise FormValidationError([FieldError(
            field="user_payment",
            message="Custom payment cannot be less than minimum payment"
        )])

    return min_payment


# =============================================================================
# DEBT <-> LIABILITY CONVERSION
# =============================================================================

def debt_to_liability(form: DebtForm, min_payment: float) -> LiabilityInput:
    """Express a validated debt as a net-worth liability."""
    return LiabilityInput(
        type=DEBT_KIND_TO_LIABILITY[form.kind],
        name=form.name.strip(),
        balance=form.balance,
        interest_rate=form.interest_rate,
        minimum_payment=form.user_payment or min_payment,
        credit_limit=form.limit if requires_credit_limit(form.kind) else None,
        description=get_debt_kind_display_name(form.kind),
        details={
            "debt_kind": form.kind.value,
            "calculated_min_payment": min_payment,
            "user_payment": form.user_payment,
            "term": form.term,
        },
    )


def liability_to_debt(liability: Liability) -> Optional[Debt]:
    """
    Read a liability back as a debt.

    Returns None for liabilities that are not tracked as debts (mortgages).
    """
    details = liability.details or {}
    kind: Optional[DebtKind] = None

    if details.get("debt_kind"):
        try:
            kind = DebtKind(details["debt_kind"])
        except ValueError:
            kind = None
    if kind is None:
        kind = LIABILITY_TO_DEBT_KIND.get(liability.type)
    if kind is None:
        return None

    term = details.get("term")
    rate = liability.interest_rate or 0.0
    min_payment = details.get("calculated_min_payment")
    if min_payment is None:
        min_payment = calculate_minimum_payment(kind, liability.balance, rate, term, liability.credit_limit)

    return Debt(
        id=liability.id,
        kind=kind,
        name=liability.name,
        balance=liability.balance,
        interest_rate=rate,
        limit=liability.credit_limit,
        term=term,
        min_payment=min_payment,
        user_payment=details.get("user_payment"),
        created_at=liability.created_at,
        updated_at=liability.updated_at,
    )


# =============================================================================
# TOTALS & PAYOFF PLANNING
# =============================================================================

def summarize_debts(debts: List[Debt]) -> DebtSummary:
    total_balance = sum(d.balance for d in debts)
    monthly_interest = sum(d.balance * d.interest_rate / 100 / 12 for d in debts)
    weighted_rate = 0.0
    if total_balance > 0:
        weighted_rate = sum(d.balance * d.interest_rate for d in debts) / total_balance

    return DebtSummary(
        debt_count=len(debts),
        total_balance=round(total_balance, 2),
        total_minimum_payments=round(sum(d.min_payment for d in debts), 2),
        total_actual_payments=round(sum(d.actual_payment for d in debts), 2),
        monthly_interest=round(monthly_interest, 2),
        weighted_interest_rate=round(weighted_rate, 2),
    )


def _payoff_order(debts: List[Debt], strategy: PayoffStrategy) -> List[Debt]:
    if strategy == PayoffStrategy.SNOWBALL:
        return sorted(debts, key=lambda d: (d.balance, -d.interest_rate))
    return sorted(debts, key=lambda d: (-d.interest_rate, d.balance))


def build_payoff_plan(
    debts: List[Debt],
    strategy: PayoffStrategy = PayoffStrategy.AVALANCHE,
    extra_payment: float = 0.0
) -> PayoffPlan:
    """
    Simulate paying every debt down month by month.

    The monthly budget is the sum of current payments plus the extra
    amount. It stays fixed, so each payment freed by a paid-off debt rolls
    onto the next target.
    """
    ordered = _payoff_order(debts, strategy)
    budget = sum(d.actual_payment for d in ordered) + max(0.0, extra_payment)

    balances = {d.id: d.balance for d in ordered}
    interest_paid = {d.id: 0.0 for d in ordered}
    payoff_month: Dict[str, Optional[int]] = {d.id: None for d in ordered}
    total_paid = 0.0
    month = 0

    while any(b > 0.005 for b in balances.values()) and month < MAX_PAYOFF_MONTHS:
        month += 1
        available = budget

        for debt in ordered:
            if balances[debt.id] <= 0.005:
                continue
            interest = balances[debt.id] * debt.interest_rate / 100 / 12
            balances[debt.id] += interest
            interest_paid[debt.id] += interest

        for debt in ordered:
            if balances[debt.id] <= 0.005:
                continue
            payment = min(debt.actual_payment, balances[debt.id], available)
            balances[debt.id] -= payment
            available -= payment
            total_paid += payment

        for debt in ordered:
            if available <= 0:
                break
            if balances[debt.id] <= 0.005:
                continue
            payment = min(available, balances[debt.id])
            balances[debt.id] -= payment
            available -= payment
            total_paid += payment

        for debt in ordered:
            if balances[debt.id] <= 0.005 and payoff_month[debt.id] is None:
                balances[debt.id] = 0.0
                payoff_month[debt.id] = month

    feasible = all(b <= 0.005 for b in balances.values())
    if not feasible:
        logger.warning(f"Payoff plan not feasible within {MAX_PAYOFF_MONTHS} months")

    entries = [
        DebtPayoffEntry(
            debt_id=d.id,
            name=d.name,
            order=index + 1,
            payoff_month=payoff_month[d.id],
            interest_paid=round(interest_paid[d.id], 2),
        )
        for index, d in enumerate(ordered)
    ]

    return PayoffPlan(
        strategy=strategy,
        monthly_payment=round(budget, 2),
        feasible=feasible,
        months_to_debt_free=month if feasible else None,
        total_interest=round(sum(interest_paid.values()), 2),
        total_paid=round(total_paid, 2),
        debts=entries,
    )
