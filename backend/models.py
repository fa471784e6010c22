"""
SmartBudget Canada - Data Models
================================
Pydantic models shared by the calculators, the persistence layer,
the HTTP API and the Streamlit UI.

These models serve as the contract between:
- Budget, debt and net worth forms
- The financial calculators
- The AI coach prompts
- Frontend display
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator, computed_field
import uuid

from tax_constants import PERIODS_PER_YEAR


# =============================================================================
# ERRORS
# =============================================================================

class FieldError(BaseModel):
    """A single form field problem, shown next to the input."""
    field: str
    message: str


class FormValidationError(Exception):
    """Raised when a submitted form fails business validation."""

    def __init__(self, errors: List[FieldError]):
        self.errors = errors
        super().__init__("; ".join(e.message for e in errors))


class CalculatorInputError(ValueError):
    """Raised when calculator inputs are out of range."""


# =============================================================================
# ENUMS
# =============================================================================

class Frequency(str, Enum):
    WEEKLY = "weekly"
    BI_WEEKLY = "bi_weekly"
    SEMI_MONTHLY = "semi_monthly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    SEMI_ANNUALLY = "semi_annually"
    YEARLY = "yearly"


class BudgetItemType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


class LifeSituation(str, Enum):
    SINGLE = "single"
    COUPLE = "couple"


class AssetType(str, Enum):
    HOME = "home"
    VEHICLE = "vehicle"
    INVESTMENT = "investment"
    SAVINGS = "savings"
    CHECKING = "checking"
    RETIREMENT = "retirement"
    OTHER = "other"


class LiabilityType(str, Enum):
    MORTGAGE = "mortgage"
    AUTO_LOAN = "auto_loan"
    CREDIT_CARD = "credit_card"
    LINE_OF_CREDIT = "line_of_credit"
    STUDENT_LOAN = "student_loan"
    PERSONAL_LOAN = "personal_loan"
    OTHER = "other"


class DebtKind(str, Enum):
    LOC = "LOC"
    CREDIT_CARD = "CreditCard"
    PERSONAL_LOAN = "PersonalLoan"
    STUDENT_LOAN = "StudentLoan"
    OTHER_LOAN = "OtherLoan"


class PayoffStrategy(str, Enum):
    AVALANCHE = "avalanche"
    SNOWBALL = "snowball"


class HealthStatus(str, Enum):
    CRITICAL = "critical"
    CONCERNING = "concerning"
    IMPROVING = "improving"
    HEALTHY = "healthy"


class AuditSeverity(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    CONCERNING = "concerning"
    CRITICAL = "critical"
    DISASTER = "disaster"


class MortgagePaymentFrequency(str, Enum):
    MONTHLY = "monthly"
    SEMI_MONTHLY = "semi_monthly"
    BI_WEEKLY = "bi_weekly"
    WEEKLY = "weekly"
    ACCELERATED_BI_WEEKLY = "accelerated_bi_weekly"
    ACCELERATED_WEEKLY = "accelerated_weekly"


class LoanPaymentFrequency(str, Enum):
    MONTHLY = "monthly"
    BI_WEEKLY = "bi_weekly"
    WEEKLY = "weekly"


class LoanType(str, Enum):
    AUTO = "auto"
    PERSONAL = "personal"
    STUDENT = "student"
    BUSINESS = "business"


class CalculatorType(str, Enum):
    TAX = "tax"
    MORTGAGE = "mortgage"
    LOAN_PAYMENT = "loan_payment"
    LOAN_PAYOFF = "loan_payoff"
    HOME_AFFORDABILITY = "home_affordability"
    BUY_VS_RENT = "buy_vs_rent"
    RRSP_VS_TFSA = "rrsp_vs_tfsa"


class RecommendationPriority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


class RecommendationCategory(str, Enum):
    CASH_FLOW = "cash_flow"
    DEBT = "debt"
    EMERGENCY_FUND = "emergency_fund"
    HOUSING = "housing"
    SAVINGS = "savings"
    RETIREMENT = "retirement"
    INVESTMENT = "investment"
    GENERAL = "general"


def normalize_frequency(value: Any) -> Any:
    """Accept loose spellings such as 'Bi-Weekly' or 'ANNUALLY'."""
    if value is None or isinstance(value, Frequency):
        return value
    key = str(value).strip().lower().replace("-", "_").replace(" ", "_")
    mapping = {
        "biweekly": Frequency.BI_WEEKLY,
        "semimonthly": Frequency.SEMI_MONTHLY,
        "semiannually": Frequency.SEMI_ANNUALLY,
        "annually": Frequency.YEARLY,
        "annual": Frequency.YEARLY,
    }
    if key in mapping:
        return mapping[key]
    return key


# =============================================================================
# TAX MODELS
# =============================================================================

class TaxCalculation(BaseModel):
    """Annual income tax and payroll deductions for one earner."""

    province: str
    gross_income: float
    taxable_income: float

    federal_tax: float
    provincial_tax: float
    provincial_surtax: float = 0.0
    quebec_abatement: float = 0.0

    cpp_contribution: float
    ei_premium: float
    qpip_premium: float = 0.0

    # Income tax only (federal + provincial)
    total_tax: float
    total_deductions: float
    net_income: float

    # Percentages
    average_rate: float
    marginal_rate: float

    tax_year: int = 2025


class TaxCalculatorInputs(BaseModel):
    income: float = Field(ge=0)
    province: str = "ON"
    rrsp_deduction: float = Field(default=0.0, ge=0)


# =============================================================================
# BUDGET MODELS
# =============================================================================

class BudgetItemInput(BaseModel):
    """One income or expense line on a budget."""

    type: BudgetItemType
    category: str = "other"
    subcategory: Optional[str] = None
    name: str = ""
    amount: float = 0.0
    frequency: Frequency = Frequency.MONTHLY
    owner: Optional[str] = Field(default=None, description="Partner who earns this income")

    @field_validator('frequency', mode='before')
    @classmethod
    def normalize_item_frequency(cls, v):
        return normalize_frequency(v) or Frequency.MONTHLY

    @computed_field
    @property
    def yearly_amount(self) -> float:
        return round(self.amount * PERIODS_PER_YEAR[self.frequency.value], 2)

    @computed_field
    @property
    def monthly_amount(self) -> float:
        return round(self.amount * PERIODS_PER_YEAR[self.frequency.value] / 12, 2)


class BudgetInput(BaseModel):
    """Budget builder form submission."""

    name: str = ""
    province: str = "ON"
    life_situation: LifeSituation = LifeSituation.SINGLE
    age_range: Optional[str] = None
    work_status: Optional[str] = None
    housing_situation: Optional[str] = None
    primary_goal: Optional[str] = None
    items: List[BudgetItemInput] = Field(default_factory=list)


class PartnerTaxInfo(BaseModel):
    """Per-partner tax for couples taxed separately."""
    owner: str
    gross_income: float
    total_tax: float
    payroll_deductions: float
    net_income: float
    effective_rate: float


class BudgetSummary(BaseModel):
    """Monthly totals derived from a budget's items."""

    province: str
    life_situation: LifeSituation

    gross_income_annual: float
    gross_income: float          # monthly
    total_tax: float             # monthly income tax
    payroll_deductions: float    # monthly CPP/EI/QPIP
    net_income: float            # monthly take-home
    total_expenses: float        # monthly
    disposable_income: float     # monthly

    expenses_by_category: Dict[str, float] = Field(default_factory=dict)
    partners: List[PartnerTaxInfo] = Field(default_factory=list)

    # Couples only: annual tax saved versus taxing combined income once
    tax_savings_from_split: Optional[float] = None

    @computed_field
    @property
    def savings_rate(self) -> float:
        """Disposable income as a percent of take-home pay."""
        if self.net_income <= 0:
            return 0.0
        return round(self.disposable_income / self.net_income * 100, 2)


# =============================================================================
# NET WORTH MODELS
# =============================================================================

class AssetInput(BaseModel):
    type: AssetType
    name: str = Field(min_length=1)
    value: float = Field(ge=0)
    description: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class Asset(AssetInput):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class LiabilityInput(BaseModel):
    type: LiabilityType
    name: str = Field(min_length=1)
    balance: float = Field(ge=0)
    interest_rate: Optional[float] = Field(default=None, ge=0)
    minimum_payment: Optional[float] = Field(default=None, ge=0)
    credit_limit: Optional[float] = Field(default=None, ge=0)
    description: Optional[str] = None
    details: Optional[Dict[str, Any]] = None

    # Mortgage specific
    amortization_years: Optional[int] = Field(default=None, ge=1, le=40)
    renewal_date: Optional[date] = None
    maturity_date: Optional[date] = None


class Liability(LiabilityInput):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class NetWorthSummary(BaseModel):
    total_assets: float
    total_liabilities: float
    net_worth: float
    assets_by_type: Dict[str, float]
    liabilities_by_type: Dict[str, float]
    debt_to_income_ratio: Optional[float] = None
    liquidity_ratio: Optional[float] = Field(default=None, description="Months of expenses covered")
    health_status: HealthStatus
    asset_count: int = 0
    liability_count: int = 0


# =============================================================================
# DEBT MODELS
# =============================================================================

class DebtForm(BaseModel):
    """Debt entry form. Validation happens in debt_calculator.validate_debt."""

    kind: Optional[DebtKind] = None
    name: str = ""
    balance: float = 0.0
    interest_rate: float = 0.0
    limit: Optional[float] = None
    term: Optional[int] = Field(default=None, description="Loan term in months")
    user_payment: Optional[float] = None


class Debt(BaseModel):
    id: str
    kind: DebtKind
    name: str
    balance: float
    interest_rate: float
    limit: Optional[float] = None
    term: Optional[int] = None
    min_payment: float
    user_payment: Optional[float] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @computed_field
    @property
    def actual_payment(self) -> float:
        return self.user_payment if self.user_payment else self.min_payment

    @computed_field
    @property
    def utilization(self) -> Optional[float]:
        """Percent of the credit limit in use for revolving debts."""
        if self.limit:
            return round(self.balance / self.limit * 100, 2)
        return None


class DebtSummary(BaseModel):
    debt_count: int
    total_balance: float
    total_minimum_payments: float
    total_actual_payments: float
    monthly_interest: float
    weighted_interest_rate: float = 0.0


class PayoffPlanRequest(BaseModel):
    strategy: PayoffStrategy = PayoffStrategy.AVALANCHE
    extra_payment: float = Field(default=0.0, ge=0)


class DebtPayoffEntry(BaseModel):
    debt_id: str
    name: str
    order: int
    payoff_month: Optional[int]
    interest_paid: float


class PayoffPlan(BaseModel):
    strategy: PayoffStrategy
    monthly_payment: float
    feasible: bool
    months_to_debt_free: Optional[int]
    total_interest: float
    total_paid: float
    debts: List[DebtPayoffEntry]


# =============================================================================
# CALCULATOR MODELS
# =============================================================================

class MortgageInputs(BaseModel):
    home_price: float
    down_payment: float = 0.0
    interest_rate: float
    amortization_years: int = 25
    payment_frequency: MortgagePaymentFrequency = MortgagePaymentFrequency.MONTHLY
    term_years: int = 5
    province: Optional[str] = None


class MortgageYearSummary(BaseModel):
    year: int
    principal_paid: float
    interest_paid: float
    ending_balance: float


class MortgageResult(BaseModel):
    loan_amount: float
    cmhc_premium: float
    total_mortgage: float
    down_payment_percent: float
    minimum_down_payment: float

    payment: float
    payment_frequency: MortgagePaymentFrequency
    payments_per_year: int

    total_interest: float
    total_paid: float
    payoff_years: float
    balance_at_term_end: float
    interest_over_term: float
    schedule: List[MortgageYearSummary]


class LoanInputs(BaseModel):
    principal: float
    interest_rate: float
    term_years: float
    payment_frequency: LoanPaymentFrequency = LoanPaymentFrequency.MONTHLY
    loan_type: LoanType = LoanType.PERSONAL


class PaymentScheduleEntry(BaseModel):
    payment_number: int
    payment: float
    principal: float
    interest: float
    balance: float


class LoanResult(BaseModel):
    loan_type: LoanType
    payment: float
    payment_frequency: LoanPaymentFrequency
    number_of_payments: int
    total_interest: float
    total_cost: float
    payment_schedule: List[PaymentScheduleEntry]

    @computed_field
    @property
    def monthly_equivalent(self) -> float:
        periods = {"monthly": 12, "bi_weekly": 26, "weekly": 52}[self.payment_frequency.value]
        return round(self.payment * periods / 12, 2)


class LoanPayoffInputs(BaseModel):
    balance: float
    interest_rate: float
    monthly_payment: float
    extra_payment: float = 0.0


class LoanPayoffResult(BaseModel):
    months_to_payoff: int
    total_interest: float
    months_with_extra: int
    interest_with_extra: float
    months_saved: int
    interest_saved: float


class HomeAffordabilityInputs(BaseModel):
    gross_income: float = Field(description="Annual household income")
    monthly_debts: float = 0.0
    down_payment: float
    interest_rate: float
    amortization_period: int = 25
    province: str = "ON"
    heating_costs: Optional[float] = Field(default=None, description="Monthly")
    property_tax: Optional[float] = Field(default=None, description="Annual")
    condo_fees: float = Field(default=0.0, description="Monthly")


class HousingCostBreakdown(BaseModel):
    mortgage: float
    property_tax: float
    heating: float
    condo_fees: float


class HomeAffordabilityResult(BaseModel):
    max_home_price: float
    max_loan_amount: float
    cmhc_premium: float
    qualifying_rate: float
    monthly_payment: float
    monthly_housing_costs: float
    gdsr: float
    tdsr: float
    limiting_factor: str
    breakdown: HousingCostBreakdown
    recommendations: List[str]


class BuyVsRentInputs(BaseModel):
    home_price: float
    down_payment: float
    mortgage_rate: float
    amortization_period: int = 25
    monthly_rent: float
    rent_increase: float = 2.5
    property_tax: Optional[float] = Field(default=None, description="Annual")
    home_insurance: float = Field(default=1200.0, description="Annual")
    maintenance: Optional[float] = Field(default=None, description="Annual, defaults to 1% of price")
    utilities: float = Field(default=0.0, description="Monthly, owner only")
    condo_fees: float = Field(default=0.0, description="Monthly")
    renters_insurance: float = Field(default=300.0, description="Annual")
    investment_return: float = 6.0
    inflation_rate: float = 2.0
    marginal_tax_rate: float = 30.0
    years_analyzed: int = 10
    province: str = "ON"
    first_time_buyer: bool = False


class BuyingCosts(BaseModel):
    monthly_mortgage: float
    annual_mortgage: float
    upfront_costs: float
    closing_costs: float
    land_transfer_tax: float
    cmhc_insurance: float
    total_payments: float
    ownership_costs: float
    remaining_mortgage: float
    final_home_value: float
    investment_value: float
    total_cost: float
    net_position: float


class RentingCosts(BaseModel):
    total_rent: float
    final_rent: float
    other_costs: float
    monthly_savings: float
    total_contributions: float
    investment_growth: float
    investment_value: float
    total_cost: float
    net_position: float


class YearAnalysis(BaseModel):
    year: int
    buying_net: float
    renting_net: float
    difference: float
    home_value: float
    mortgage_balance: float


class BuyVsRentResult(BaseModel):
    buying_costs: BuyingCosts
    renting_costs: RentingCosts
    net_difference: float
    recommendation: str = Field(pattern="^(buy|rent)$")
    break_even_point: Optional[int] = None
    year_by_year_analysis: List[YearAnalysis]


class RRSPvsTFSAInputs(BaseModel):
    age: int
    current_income: float
    expected_retirement_income: Optional[float] = None
    contribution_amount: float = Field(description="Annual contribution")
    investment_return: float = 6.0
    years_to_retirement: Optional[int] = None
    current_marginal_tax_rate: Optional[float] = None
    expected_retirement_tax_rate: Optional[float] = None
    province: str = "ON"

    @model_validator(mode='after')
    def default_years_to_retirement(self):
        """Assume retirement at 65 when no horizon is given."""
        if self.years_to_retirement is None:
            self.years_to_retirement = max(1, 65 - self.age)
        return self


class RRSPOutcome(BaseModel):
    tax_savings_now: float
    future_value: float
    refund_future_value: float
    after_tax_value: float
    total_return: float


class TFSAOutcome(BaseModel):
    future_value: float
    tax_free_withdrawal: float
    total_return: float


class ContributionLimits(BaseModel):
    rrsp_room: float
    tfsa_room: float


class SplitRecommendation(BaseModel):
    rrsp_amount: float
    tfsa_amount: float
    reasoning: str


class RRSPvsTFSAResult(BaseModel):
    current_marginal_tax_rate: float
    expected_retirement_tax_rate: float
    rrsp_contribution: RRSPOutcome
    tfsa_contribution: TFSAOutcome
    contribution_limits: ContributionLimits
    recommendation: str = Field(pattern="^(RRSP|TFSA|Split)$")
    reasoning: str
    split_recommendation: SplitRecommendation
    warnings: List[str] = Field(default_factory=list)


class CalculatorResultCreate(BaseModel):
    """A calculator run the user wants to keep."""
    calculator_type: CalculatorType
    title: str = Field(min_length=1)
    inputs: Dict[str, Any]
    results: Dict[str, Any]
    notes: Optional[str] = None

    @field_validator('title')
    @classmethod
    def title_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Title is required")
        return v.strip()


# =============================================================================
# RECOMMENDATION MODELS
# =============================================================================

class FinancialRecommendation(BaseModel):
    """A single budgeting or debt recommendation."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    priority: RecommendationPriority
    category: RecommendationCategory

    title: str
    description: str
    action_required: str

    # Estimated monthly cash flow improvement
    monthly_impact: float = Field(default=0.0)

    warnings: List[str] = Field(default_factory=list)

    @computed_field
    @property
    def annual_impact(self) -> float:
        return round(self.monthly_impact * 12, 2)


class RecommendationReport(BaseModel):
    """Recommendations for one budget."""

    budget_id: Optional[str] = None
    generated_at: datetime = Field(default_factory=datetime.utcnow)

    monthly_surplus: float
    savings_rate: float
    potential_monthly_improvement: float

    recommendations: List[FinancialRecommendation]
    immediate_actions: List[FinancialRecommendation]
    long_term_actions: List[FinancialRecommendation]


# =============================================================================
# AI COACH MODELS
# =============================================================================

class FinancialSnapshot(BaseModel):
    """Everything the coach knows about a user, minus identity."""

    has_budget: bool = False
    budget_name: Optional[str] = None
    province: Optional[str] = None
    monthly_income: float = 0.0
    monthly_expenses: float = 0.0
    monthly_surplus: float = 0.0

    total_assets: float = 0.0
    total_liabilities: float = 0.0
    net_worth: float = 0.0
    liquid_assets: float = 0.0

    credit_card_debt: float = 0.0
    credit_card_limit: float = 0.0
    high_interest_debt: float = 0.0

    assets: List[Dict[str, Any]] = Field(default_factory=list)
    liabilities: List[Dict[str, Any]] = Field(default_factory=list)
    high_interest_debts: List[Dict[str, Any]] = Field(default_factory=list)

    @computed_field
    @property
    def credit_card_utilization(self) -> Optional[float]:
        if self.credit_card_limit > 0:
            return round(self.credit_card_debt / self.credit_card_limit * 100, 1)
        return None


class HealthScore(BaseModel):
    score: int = Field(ge=0, le=10)
    severity: AuditSeverity
    factors: List[str] = Field(default_factory=list)


class ChatMessage(BaseModel):
    role: str = Field(pattern="^(user|assistant)$")
    content: str


class ChatRequest(BaseModel):
    message: str = ""
    include_financial_data: bool = True
    history: List[ChatMessage] = Field(default_factory=list)


class AuditReport(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    score: int
    severity: AuditSeverity
    factors: List[str] = Field(default_factory=list)
    overall_assessment: str
    immediate_reaction: str
    debt_analysis: str
    action_plan: List[str]
    coach_quotes: List[str] = Field(default_factory=list)
    follow_up_date: date
    created_at: datetime = Field(default_factory=datetime.utcnow)


# =============================================================================
# API REQUEST MODELS
# =============================================================================

class SignUpRequest(BaseModel):
    email: str = Field(min_length=3)
    password: str = Field(min_length=8)
    name: Optional[str] = None

    @field_validator('email')
    @classmethod
    def normalize_email(cls, v: str) -> str:
        v = v.strip().lower()
        if "@" not in v or v.startswith("@") or v.endswith("@"):
            raise ValueError("A valid email is required")
        return v


class SignInRequest(BaseModel):
    email: str
    password: str

    @field_validator('email')
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class CalculatorExportRequest(BaseModel):
    calculator_type: CalculatorType
    title: str = "Calculation"
    inputs: Dict[str, Any]
    results: Dict[str, Any]
    notes: Optional[str] = None
