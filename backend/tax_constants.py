"""
SmartBudget Canada - Tax and Financial Constants
================================================
Hardcoded 2025 Canadian federal and provincial tax brackets, payroll
contribution rates, registered account limits and mortgage rules.

These tables are the single source of truth for every calculation in the
app. The AI coach is handed a rendered copy of them so it never has to
guess a bracket or a contribution limit.

Last Updated: 2025 Tax Year (CRA indexation announcements)
"""

from enum import Enum
from typing import Dict, List, Optional, Tuple

# =============================================================================
# PROVINCE ENUM
# =============================================================================

class Province(str, Enum):
    AB = "AB"
    BC = "BC"
    MB = "MB"
    NB = "NB"
    NL = "NL"
    NS = "NS"
    NT = "NT"
    NU = "NU"
    ON = "ON"
    PE = "PE"
    QC = "QC"
    SK = "SK"
    YT = "YT"


PROVINCE_NAMES: Dict[Province, str] = {
    Province.AB: "Alberta",
    Province.BC: "British Columbia",
    Province.MB: "Manitoba",
    Province.NB: "New Brunswick",
    Province.NL: "Newfoundland and Labrador",
    Province.NS: "Nova Scotia",
    Province.NT: "Northwest Territories",
    Province.NU: "Nunavut",
    Province.ON: "Ontario",
    Province.PE: "Prince Edward Island",
    Province.QC: "Quebec",
    Province.SK: "Saskatchewan",
    Province.YT: "Yukon",
}


# =============================================================================
# 2025 FEDERAL TAX BRACKETS
# Format: List of (upper_limit, marginal_rate) tuples
# The last tuple uses float('inf') for unlimited income
# =============================================================================

FEDERAL_TAX_BRACKETS_2025: List[Tuple[float, float]] = [
    (57375, 0.15),        # 15% on first $57,375
    (114750, 0.205),      # 20.5% on $57,375 to $114,750
    (177882, 0.26),       # 26% on $114,750 to $177,882
    (253414, 0.29),       # 29% on $177,882 to $253,414
    (float('inf'), 0.33)  # 33% over $253,414
]

# The federal basic personal amount is clawed back between the 4th and 5th
# bracket thresholds, down to the minimum amount.
FEDERAL_BASIC_PERSONAL_AMOUNT_2025 = {
    "maximum": 16129,
    "minimum": 14538,
    "phase_out_start": 177882,
    "phase_out_end": 253414,
}

# Quebec residents receive a refundable abatement of basic federal tax
QUEBEC_FEDERAL_ABATEMENT = 0.165


# =============================================================================
# 2025 PROVINCIAL / TERRITORIAL TAX BRACKETS
# =============================================================================

PROVINCIAL_TAX_BRACKETS_2025: Dict[Province, List[Tuple[float, float]]] = {
    Province.AB: [
        (60000, 0.08),
        (151234, 0.10),
        (181481, 0.12),
        (241974, 0.13),
        (362961, 0.14),
        (float('inf'), 0.15)
    ],
    Province.BC: [
        (49279, 0.0506),
        (98560, 0.077),
        (113158, 0.105),
        (137407, 0.1229),
        (186306, 0.147),
        (259829, 0.168),
        (float('inf'), 0.205)
    ],
    Province.MB: [
        (47000, 0.108),
        (100000, 0.1275),
        (float('inf'), 0.174)
    ],
    Province.NB: [
        (51306, 0.094),
        (102614, 0.14),
        (190060, 0.16),
        (float('inf'), 0.195)
    ],
    Province.NL: [
        (44192, 0.087),
        (88382, 0.145),
        (157792, 0.158),
        (220910, 0.178),
        (282214, 0.198),
        (564429, 0.208),
        (1128858, 0.213),
        (float('inf'), 0.218)
    ],
    Province.NS: [
        (30507, 0.0879),
        (61015, 0.1495),
        (95883, 0.1667),
        (154650, 0.175),
        (float('inf'), 0.21)
    ],
    Province.NT: [
        (51964, 0.059),
        (103930, 0.086),
        (168967, 0.122),
        (float('inf'), 0.1405)
    ],
    Province.NU: [
        (54707, 0.04),
        (109413, 0.07),
        (177881, 0.09),
        (float('inf'), 0.115)
    ],
    Province.ON: [
        (52886, 0.0505),
        (105775, 0.0915),
        (150000, 0.1116),
        (220000, 0.1216),
        (float('inf'), 0.1316)
    ],
    Province.PE: [
        (33328, 0.095),
        (64656, 0.1347),
        (105000, 0.166),
        (140000, 0.1762),
        (float('inf'), 0.19)
    ],
    Province.QC: [
        (53255, 0.14),
        (106495, 0.19),
        (129590, 0.24),
        (float('inf'), 0.2575)
    ],
    Province.SK: [
        (53463, 0.105),
        (152750, 0.125),
        (float('inf'), 0.145)
    ],
    Province.YT: [
        (57375, 0.064),
        (114750, 0.09),
        (177882, 0.109),
        (500000, 0.128),
        (float('inf'), 0.15)
    ],
}

PROVINCIAL_BASIC_PERSONAL_AMOUNT_2025: Dict[Province, float] = {
    Province.AB: 22323,
    Province.BC: 12932,
    Province.MB: 15780,
    Province.NB: 13396,
    Province.NL: 11067,
    Province.NS: 11744,
    Province.NT: 17842,
    Province.NU: 19274,
    Province.ON: 12747,
    Province.PE: 14250,
    Province.QC: 18571,
    Province.SK: 19491,
    Province.YT: 16129,
}

# Ontario surtax is charged on basic Ontario tax above each threshold
ONTARIO_SURTAX_2025 = [
    (5710, 0.20),
    (7307, 0.36),
]


# =============================================================================
# 2025 PAYROLL CONTRIBUTIONS (CPP / QPP / EI / QPIP)
# =============================================================================

PAYROLL_CONTRIBUTIONS_2025 = {
    # Canada Pension Plan
    "cpp_basic_exemption": 3500,
    "cpp_ympe": 71300,            # Year's Maximum Pensionable Earnings
    "cpp_rate": 0.0595,
    "cpp2_yampe": 81200,          # Year's Additional Maximum Pensionable Earnings
    "cpp2_rate": 0.04,

    # Quebec Pension Plan replaces CPP in Quebec
    "qpp_rate": 0.064,
    "qpp2_rate": 0.04,

    # Employment Insurance
    "ei_max_insurable": 65700,
    "ei_rate": 0.0164,
    "ei_rate_quebec": 0.0131,

    # Quebec Parental Insurance Plan
    "qpip_max_insurable": 98000,
    "qpip_rate": 0.00494,
}


# =============================================================================
# 2025 REGISTERED ACCOUNT LIMITS
# =============================================================================

REGISTERED_ACCOUNT_LIMITS_2025 = {
    "rrsp_rate": 0.18,               # 18% of previous year's earned income
    "rrsp_dollar_limit": 32490,
    "tfsa_annual_limit": 7000,
    "tfsa_cumulative_limit": 102000,  # Eligible since 2009
    "fhsa_annual_limit": 8000,
    "fhsa_lifetime_limit": 40000,
}

# Threshold above which a debt counts as high-interest
HIGH_INTEREST_APR_THRESHOLD = 15.0


# =============================================================================
# MORTGAGE RULES (CMHC / OSFI)
# =============================================================================

MORTGAGE_RULES = {
    "gds_limit": 0.39,                 # Gross Debt Service ratio
    "tds_limit": 0.44,                 # Total Debt Service ratio
    "stress_test_floor": 5.25,         # Minimum qualifying rate (percent)
    "stress_test_buffer": 2.0,         # Contract rate + 2%
    "insured_price_cap": 1500000,      # No default insurance at or above
    "down_payment_tier_limit": 500000,
    "down_payment_first_tier_rate": 0.05,
    "down_payment_second_tier_rate": 0.10,
    "down_payment_uninsured_rate": 0.20,
    "max_amortization_years": 35,
    "condo_fee_qualifying_share": 0.5,
    "property_tax_estimate_rate": 0.01,  # Annual share of home value
    "default_heating_monthly": 150,
    "closing_cost_rate": 0.015,          # Legal, inspection, adjustments
    "selling_cost_rate": 0.05,           # Realtor commission on sale
}

# CMHC premium as a share of the loan, by loan-to-value ceiling
CMHC_PREMIUM_RATES: List[Tuple[float, float]] = [
    (0.65, 0.0060),
    (0.75, 0.0170),
    (0.80, 0.0240),
    (0.85, 0.0280),
    (0.90, 0.0310),
    (0.95, 0.0400),
]


# =============================================================================
# LAND TRANSFER TAX
# Progressive provinces use (upper_limit, marginal_rate) tables. Other
# provinces charge a flat registration rate on the purchase price.
# =============================================================================

LAND_TRANSFER_TAX_BRACKETS: Dict[Province, List[Tuple[float, float]]] = {
    Province.ON: [
        (55000, 0.005),
        (250000, 0.01),
        (400000, 0.015),
        (2000000, 0.02),
        (float('inf'), 0.025)
    ],
    Province.BC: [
        (200000, 0.01),
        (2000000, 0.02),
        (3000000, 0.03),
        (float('inf'), 0.05)
    ],
    Province.QC: [
        (62900, 0.005),
        (315000, 0.01),
        (float('inf'), 0.015)
    ],
    Province.MB: [
        (30000, 0.0),
        (90000, 0.005),
        (150000, 0.01),
        (200000, 0.015),
        (float('inf'), 0.02)
    ],
}

LAND_TRANSFER_FLAT_RATES: Dict[Province, float] = {
    Province.AB: 0.001,
    Province.SK: 0.003,
    Province.NB: 0.01,
    Province.NS: 0.015,
    Province.PE: 0.01,
    Province.NL: 0.004,
    Province.NT: 0.0,
    Province.NU: 0.0,
    Province.YT: 0.0,
}

# Maximum first-time buyer rebate
FIRST_TIME_BUYER_LTT_REBATE: Dict[Province, float] = {
    Province.ON: 4000,
    Province.BC: 8000,
    Province.PE: float('inf'),
}


# =============================================================================
# BUDGET FREQUENCY CONSTANTS
# =============================================================================

PERIODS_PER_YEAR = {
    "weekly": 52,
    "bi_weekly": 26,
    "biweekly": 26,
    "bi-weekly": 26,
    "semi_monthly": 24,
    "semi-monthly": 24,
    "monthly": 12,
    "quarterly": 4,
    "semi_annually": 2,
    "yearly": 1,
    "annually": 1,
}


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def calculate_bracket_tax(income: float, brackets: List[Tuple[float, float]]) -> float:
    """
    Apply a progressive (upper_limit, rate) table to an amount.

    Used for federal and provincial income tax and for land transfer tax.
    """
    if income <= 0:
        return 0.0

    total = 0.0
    prev_limit = 0.0

    for limit, rate in brackets:
        if income <= prev_limit:
            break
        taxable_in_bracket = min(income, limit) - prev_limit
        total += taxable_in_bracket * rate
        prev_limit = limit

    return round(total, 2)


def get_marginal_rate(income: float, brackets: List[Tuple[float, float]]) -> float:
    """Get the bracket rate that applies to the next dollar of income."""
    for limit, rate in brackets:
        if income < limit:
            return rate

    return brackets[-1][1]


def get_federal_basic_personal_amount(net_income: float) -> float:
    """Federal BPA after the high-income claw back."""
    bpa = FEDERAL_BASIC_PERSONAL_AMOUNT_2025
    if net_income <= bpa["phase_out_start"]:
        return bpa["maximum"]
    if net_income >= bpa["phase_out_end"]:
        return bpa["minimum"]

    span = bpa["phase_out_end"] - bpa["phase_out_start"]
    reduction = (bpa["maximum"] - bpa["minimum"]) * (net_income - bpa["phase_out_start"]) / span
    return round(bpa["maximum"] - reduction, 2)


def parse_province(value: Optional[str]) -> Province:
    """
    Resolve a province code or full name to a Province.

    Raises ValueError for anything that is not a Canadian province or territory.
    """
    if isinstance(value, Province):
        return value
    if not value:
        raise ValueError("Province is required")

    cleaned = value.strip()
    try:
        return Province(cleaned.upper())
    except ValueError:
        pass

    for province, name in PROVINCE_NAMES.items():
        if name.lower() == cleaned.lower():
            return province

    raise ValueError(f"Unknown province: {value}")


def get_tax_bracket_info(province: Optional[Province] = None) -> str:
    """
    Return a formatted string of tax brackets for the federal government,
    or for a province when one is given. Used in LLM prompts.
    """
    if province is None:
        title = "2025 Federal Tax Brackets:"
        brackets = FEDERAL_TAX_BRACKETS_2025
    else:
        title = f"2025 {PROVINCE_NAMES[province]} Tax Brackets:"
        brackets = PROVINCIAL_TAX_BRACKETS_2025[province]

    lines = [title]
    prev_limit = 0

    for limit, rate in brackets:
        if limit == float('inf'):
            lines.append(f"  Over ${prev_limit:,}: {rate*100:.2f}%")
        else:
            lines.append(f"  ${prev_limit:,} to ${limit:,}: {rate*100:.2f}%")
            prev_limit = limit

    return "\n".join(lines)


# =============================================================================
# EXPORT CONSTANTS FOR LLM PROMPTS
# =============================================================================

def get_all_constants_for_llm(province: Optional[Province] = None) -> str:
    """
    Generate a string of the reference values for inclusion in the coach's
    system prompt, so it quotes real limits instead of inventing them.
    """
    output = []
    output.append("=" * 60)
    output.append("AUTHORITATIVE 2025 CANADIAN REFERENCE DATA")
    output.append("Use ONLY these values - do not estimate or guess.")
    output.append("=" * 60)

    output.append("\n--- REGISTERED ACCOUNT LIMITS ---")
    for key, value in REGISTERED_ACCOUNT_LIMITS_2025.items():
        if key == "rrsp_rate":
            output.append(f"{key}: {value*100:.0f}% of earned income")
        else:
            output.append(f"{key}: ${value:,}")

    output.append("\n--- PAYROLL ---")
    payroll = PAYROLL_CONTRIBUTIONS_2025
    output.append(f"CPP: {payroll['cpp_rate']*100:.2f}% up to ${payroll['cpp_ympe']:,}")
    output.append(f"EI: {payroll['ei_rate']*100:.2f}% up to ${payroll['ei_max_insurable']:,}")

    output.append("\n--- MORTGAGE RULES ---")
    output.append(f"GDS limit: {MORTGAGE_RULES['gds_limit']*100:.0f}%")
    output.append(f"TDS limit: {MORTGAGE_RULES['tds_limit']*100:.0f}%")
    output.append(
        f"Stress test: greater of contract rate + {MORTGAGE_RULES['stress_test_buffer']}% "
        f"or {MORTGAGE_RULES['stress_test_floor']}%"
    )

    output.append(f"\n{get_tax_bracket_info()}")
    if province is not None:
        output.append(f"\n{get_tax_bracket_info(province)}")

    return "\n".join(output)
