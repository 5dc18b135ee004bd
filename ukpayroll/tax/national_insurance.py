"""
Class 1 National Insurance for employees and employers.

Annual thresholds from the rate table are prorated to the pay frequency and
each band's contribution is rounded to the penny before summing.
"""
from dataclasses import dataclass, field, asdict
from typing import Any, Dict

from ukpayroll.core.utils import apply_rate, prorate
from ukpayroll.tax.paye import periods_per_year
from ukpayroll.tax.rates import get_rate_table

NI_CATEGORIES = {
    "A": {"name": "Standard", "description": "Standard rate for most employees"},
    "B": {"name": "Married women/widows", "description": "Reduced rate for married women and widows with certificate"},
    "C": {"name": "Over state pension age", "description": "No employee NI due"},
    "H": {"name": "Apprentice under 25", "description": "No employer NI up to UEL"},
    "J": {"name": "Deferment", "description": "Deferred rate"},
    "M": {"name": "Under 21", "description": "No employer NI up to UEL"},
    "Z": {"name": "Under 21 deferment", "description": "Deferred rate for under 21"},
}

NO_EMPLOYEE_NI_CATEGORIES = frozenset({"C"})
# Under-21 and apprentice reliefs: employer pays nothing between ST and UEL
EMPLOYER_RELIEF_CATEGORIES = frozenset({"H", "M", "Z"})


@dataclass
class EmployeeNIBreakdown:
    below_pt: int = 0
    main_rate: int = 0
    reduced_rate: int = 0


@dataclass
class EmployerNIBreakdown:
    below_st: int = 0
    main_rate: int = 0


@dataclass
class EmployeeNIResult:
    employee_ni: int
    breakdown: EmployeeNIBreakdown = field(default_factory=EmployeeNIBreakdown)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class EmployerNIResult:
    employer_ni: int
    breakdown: EmployerNIBreakdown = field(default_factory=EmployerNIBreakdown)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _period_threshold(annual_pounds: int, periods: int) -> int:
    return prorate(annual_pounds * 100, 1, periods)


def calculate_employee_ni(gross_pay_pence: int, pay_frequency: str, tax_year: str, ni_category: str = "A") -> EmployeeNIResult:
    """Employee primary Class 1 contributions for one period."""
    if ni_category in NO_EMPLOYEE_NI_CATEGORIES:
        return EmployeeNIResult(employee_ni=0)

    config = get_rate_table(tax_year).employee_ni
    periods = periods_per_year(pay_frequency)
    period_pt = _period_threshold(config.primary_threshold.annual, periods)
    period_uel = _period_threshold(config.upper_earnings_limit.annual, periods)

    breakdown = EmployeeNIBreakdown()
    if gross_pay_pence <= period_pt:
        breakdown.below_pt = gross_pay_pence
        return EmployeeNIResult(employee_ni=0, breakdown=breakdown)

    breakdown.below_pt = period_pt
    employee_ni = 0

    between_pt_and_uel = min(gross_pay_pence, period_uel) - period_pt
    if between_pt_and_uel > 0:
        employee_ni += apply_rate(between_pt_and_uel, config.main_rate)
        breakdown.main_rate = between_pt_and_uel

    if gross_pay_pence > period_uel:
        above_uel = gross_pay_pence - period_uel
        employee_ni += apply_rate(above_uel, config.reduced_rate)
        breakdown.reduced_rate = above_uel

    return EmployeeNIResult(employee_ni=employee_ni, breakdown=breakdown)


def calculate_employer_ni(gross_pay_pence: int, pay_frequency: str, tax_year: str, ni_category: str = "A") -> EmployerNIResult:
    """Employer secondary Class 1 contributions for one period. Uncapped above the ST."""
    rate_table = get_rate_table(tax_year)
    config = rate_table.employer_ni
    periods = periods_per_year(pay_frequency)
    period_st = _period_threshold(config.secondary_threshold.annual, periods)
    period_uel = _period_threshold(rate_table.employee_ni.upper_earnings_limit.annual, periods)

    breakdown = EmployerNIBreakdown()
    if gross_pay_pence <= period_st:
        breakdown.below_st = gross_pay_pence
        return EmployerNIResult(employer_ni=0, breakdown=breakdown)

    breakdown.below_st = period_st
    if ni_category in EMPLOYER_RELIEF_CATEGORIES:
        chargeable = max(0, gross_pay_pence - period_uel)
    else:
        chargeable = gross_pay_pence - period_st

    breakdown.main_rate = chargeable
    return EmployerNIResult(employer_ni=apply_rate(chargeable, config.main_rate), breakdown=breakdown)
