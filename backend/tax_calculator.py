"""
SmartBudget Canada - Tax Calculator
===================================
Canadian income tax, payroll deductions and budget totals.

All bracket lookups and tax math happen here with hardcoded 2025 values.
The AI coach never computes tax. It is handed the numbers from this module.
"""

import logging
from typing import Dict, List, Optional, Tuple, Union

from tax_constants import (
    Province,
    FEDERAL_TAX_BRACKETS_2025,
    PROVINCIAL_TAX_BRACKETS_2025,
    PROVINCIAL_BASIC_PERSONAL_AMOUNT_2025,
    ONTARIO_SURTAX_2025,
    QUEBEC_FEDERAL_ABATEMENT,
    PAYROLL_CONTRIBUTIONS_2025,
    PERIODS_PER_YEAR,
    calculate_bracket_tax,
    get_federal_basic_personal_amount,
    parse_province,
)
from models import (
    BudgetInput,
    BudgetItemInput,
    BudgetItemType,
    BudgetSummary,
    FieldError,
    FormValidationError,
    Frequency,
    LifeSituation,
    PartnerTaxInfo,
    TaxCalculation,
    normalize_frequency,
)

logger = logging.getLogger(__name__)


# =============================================================================
# FREQUENCY CONVERSION
# =============================================================================

def convert_frequency_to_yearly(amount: float, frequency: Union[Frequency, str]) -> float:
    """Annualise an amount paid at the given frequency."""
    freq = normalize_frequency(frequency)
    key = freq.value if isinstance(freq, Frequency) else freq
    if key not in PERIODS_PER_YEAR:
        raise ValueError(f"Unknown frequency: {frequency}")
    return round(amount * PERIODS_PER_YEAR[key], 2)


def convert_frequency_to_monthly(amount: float, frequency: Union[Frequency, str]) -> float:
    """Express an amount paid at the given frequency as a monthly figure."""
    return round(convert_frequency_to_yearly(amount, frequency) / 12, 2)


# =============================================================================
# TAX CALCULATION ENGINE
# =============================================================================

class TaxCalculator:
    """
    Federal + provincial income tax and payroll deductions for one earner.
    Credits are limited to the basic personal amounts.
    """

    def __init__(self, tax_year: int = 2025):
        self.tax_year = tax_year

    def calculate_tax(
        self,
        annual_income: float,
        province: Union[Province, str],
        rrsp_deduction: float = 0.0
    ) -> TaxCalculation:
        """
        Calculate a full year of tax for one person.

        RRSP deductions reduce taxable income but not CPP/EI, which are
        based on employment earnings.
        """
        prov = parse_province(province)
        gross = max(0.0, float(annual_income))
        taxable = max(0.0, gross - max(0.0, rrsp_deduction))

        if gross <= 0:
            return TaxCalculation(
                province=prov.value,
                gross_income=0.0,
                taxable_income=0.0,
                federal_tax=0.0,
                provincial_tax=0.0,
                cpp_contribution=0.0,
                ei_premium=0.0,
                total_tax=0.0,
                total_deductions=0.0,
                net_income=0.0,
                average_rate=0.0,
                marginal_rate=0.0,
                tax_year=self.tax_year,
            )

        federal, abatement, provincial, surtax = self._calculate_income_tax(taxable, prov)
        cpp = self._calculate_cpp(gross, prov)
        ei, qpip = self._calculate_ei(gross, prov)

        total_tax = round(federal + provincial, 2)
        total_deductions = round(total_tax + cpp + ei + qpip, 2)

        return TaxCalculation(
            province=prov.value,
            gross_income=round(gross, 2),
            taxable_income=round(taxable, 2),
            federal_tax=federal,
            provincial_tax=provincial,
            provincial_surtax=surtax,
            quebec_abatement=abatement,
            cpp_contribution=cpp,
            ei_premium=ei,
            qpip_premium=qpip,
            total_tax=total_tax,
            total_deductions=total_deductions,
            net_income=round(gross - total_deductions, 2),
            average_rate=round(total_tax / gross * 100, 2),
            marginal_rate=self._calculate_marginal_rate(taxable, prov),
            tax_year=self.tax_year,
        )

    def _calculate_income_tax(
        self,
        taxable: float,
        province: Province
    ) -> Tuple[float, float, float, float]:
        """Return (federal, quebec_abatement, provincial incl. surtax, surtax)."""
        federal_lowest_rate = FEDERAL_TAX_BRACKETS_2025[0][1]
        federal_basic = calculate_bracket_tax(taxable, FEDERAL_TAX_BRACKETS_2025)
        federal_credit = get_federal_basic_personal_amount(taxable) * federal_lowest_rate
        federal = max(0.0, federal_basic - federal_credit)

        abatement = 0.0
        if province == Province.QC:
            abatement = federal * QUEBEC_FEDERAL_ABATEMENT
            federal -= abatement

        brackets = PROVINCIAL_TAX_BRACKETS_2025[province]
        provincial_basic = calculate_bracket_tax(taxable, brackets)
        provincial_credit = PROVINCIAL_BASIC_PERSONAL_AMOUNT_2025[province] * brackets[0][1]
        provincial = max(0.0, provincial_basic - provincial_credit)

        surtax = 0.0
        if province == Province.ON:
            for threshold, rate in ONTARIO_SURTAX_2025:
                if provincial > threshold:
                    surtax += (provincial - threshold) * rate

        return (
            round(federal, 2),
            round(abatement, 2),
            round(provincial + surtax, 2),
            round(surtax, 2),
        )

    def _calculate_marginal_rate(self, taxable: float, province: Province) -> float:
        """Combined marginal rate in percent, measured on the next $100."""
        step = 100.0
        federal, _, provincial, _ = self._calculate_income_tax(taxable, province)
        federal_next, _, provincial_next, _ = self._calculate_income_tax(taxable + step, province)
        delta = (federal_next + provincial_next) - (federal + provincial)
        return round(delta / step * 100, 2)

    def _calculate_cpp(self, gross: float, province: Province) -> float:
        payroll = PAYROLL_CONTRIBUTIONS_2025
        if province == Province.QC:
            base_rate, second_rate = payroll["qpp_rate"], payroll["qpp2_rate"]
        else:
            base_rate, second_rate = payroll["cpp_rate"], payroll["cpp2_rate"]

        pensionable = min(gross, payroll["cpp_ympe"]) - payroll["cpp_basic_exemption"]
        base = max(0.0, pensionable) * base_rate

        second_tier = max(0.0, min(gross, payroll["cpp2_yampe"]) - payroll["cpp_ympe"])
        return round(base + second_tier * second_rate, 2)

    def _calculate_ei(self, gross: float, province: Province) -> Tuple[float, float]:
        payroll = PAYROLL_CONTRIBUTIONS_2025
        insurable = min(gross, payroll["ei_max_insurable"])

        if province == Province.QC:
            ei = insurable * payroll["ei_rate_quebec"]
            qpip = min(gross, payroll["qpip_max_insurable"]) * payroll["qpip_rate"]
            return round(ei, 2), round(qpip, 2)

        return round(insurable * payroll["ei_rate"], 2), 0.0


_default_calculator = TaxCalculator()


def calculate_tax(
    annual_income: float,
    province: Union[Province, str],
    rrsp_deduction: float = 0.0
) -> TaxCalculation:
    """Shortcut for TaxCalculator().calculate_tax."""
    return _default_calculator.calculate_tax(annual_income, province, rrsp_deduction)


# =============================================================================
# BUDGET VALIDATION
# =============================================================================

def validate_budget(budget: BudgetInput) -> None:
    """
    Check a budget form before it is summarized or saved.

    Raises FormValidationError with every problem found.
    """
    errors: List[FieldError] = []

    if not budget.name or not budget.name.strip():
        errors.append(FieldError(field="name", message="Budget name is required"))

    try:
        parse_province(budget.province)
    except ValueError:
        errors.append(FieldError(field="province", message="Please select a valid province"))

    is_couple = budget.life_situation == LifeSituation.COUPLE

    for index, item in enumerate(budget.items):
        prefix = f"items[{index}]"
        if not item.name or not item.name.strip():
            errors.append(FieldError(field=f"{prefix}.name", message="Item name is required"))
        if item.amount <= 0:
            errors.append(FieldError(field=f"{prefix}.amount", message="Amount must be greater than 0"))
        if is_couple and item.type == BudgetItemType.INCOME:
            if not item.owner or not item.owner.strip():
                errors.append(FieldError(
                    field=f"{prefix}.owner",
                    message="Please select who earns this income"
                ))

    if errors:
        raise FormValidationError(errors)


# =============================================================================
# BUDGET CALCULATOR
# =============================================================================

class BudgetCalculator:
    """
    Turns budget items into monthly totals.

    Couples are taxed per partner, since Canada taxes individuals and
    splitting income across two sets of brackets always costs less than
    taxing the same total once.
    """

    def __init__(self, tax_calculator: Optional[TaxCalculator] = None):
        self.tax_calculator = tax_calculator or _default_calculator

    def summarize(
        self,
        items: List[BudgetItemInput],
        province: Union[Province, str],
        life_situation: LifeSituation = LifeSituation.SINGLE
    ) -> BudgetSummary:
        prov = parse_province(province)
        income_items = [i for i in items if i.type == BudgetItemType.INCOME]
        expense_items = [i for i in items if i.type == BudgetItemType.EXPENSE]

        gross_annual = sum(i.yearly_amount for i in income_items)

        partners: List[PartnerTaxInfo] = []
        tax_savings_from_split = None

        if life_situation == LifeSituation.COUPLE:
            by_owner = self._income_by_owner(income_items)
            for owner, income in by_owner.items():
                calc = self.tax_calculator.calculate_tax(income, prov)
                partners.append(PartnerTaxInfo(
                    owner=owner,
                    gross_income=round(income, 2),
                    total_tax=calc.total_tax,
                    payroll_deductions=round(calc.total_deductions - calc.total_tax, 2),
                    net_income=calc.net_income,
                    effective_rate=calc.average_rate,
                ))
            annual_tax = sum(p.total_tax for p in partners)
            annual_payroll = sum(p.payroll_deductions for p in partners)

            combined = self.tax_calculator.calculate_tax(gross_annual, prov)
            tax_savings_from_split = round(combined.total_tax - annual_tax, 2)
        else:
            calc = self.tax_calculator.calculate_tax(gross_annual, prov)
            annual_tax = calc.total_tax
            annual_payroll = calc.total_deductions - calc.total_tax

        net_annual = gross_annual - annual_tax - annual_payroll

        expenses_by_category: Dict[str, float] = {}
        for item in expense_items:
            category = item.category or "other"
            expenses_by_category[category] = round(
                expenses_by_category.get(category, 0.0) + item.monthly_amount, 2
            )
        total_expenses = round(sum(i.monthly_amount for i in expense_items), 2)
        net_monthly = round(net_annual / 12, 2)

        summary = BudgetSummary(
            province=prov.value,
            life_situation=life_situation,
            gross_income_annual=round(gross_annual, 2),
            gross_income=round(gross_annual / 12, 2),
            total_tax=round(annual_tax / 12, 2),
            payroll_deductions=round(annual_payroll / 12, 2),
            net_income=net_monthly,
            total_expenses=total_expenses,
            disposable_income=round(net_monthly - total_expenses, 2),
            expenses_by_category=expenses_by_category,
            partners=partners,
            tax_savings_from_split=tax_savings_from_split,
        )
        logger.info(
            f"Budget summarized: {len(items)} items, {prov.value}, "
            f"disposable ${summary.disposable_income:,.2f}/mo"
        )
        return summary

    @staticmethod
    def _income_by_owner(income_items: List[BudgetItemInput]) -> Dict[str, float]:
        by_owner: Dict[str, float] = {}
        for item in income_items:
            owner = (item.owner or "").strip() or "unassigned"
            by_owner[owner] = by_owner.get(owner, 0.0) + item.yearly_amount
        return by_owner
