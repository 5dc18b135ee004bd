import re
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping

from ukpayroll.tax.national_insurance import NI_CATEGORIES
from ukpayroll.tax.paye import PAY_FREQUENCIES
from ukpayroll.tax.student_loan import STUDENT_LOAN_PLANS

TAX_YEAR_PATTERN = re.compile(r"^\d{4}-\d{2}$")
NON_NEGATIVE_AMOUNTS = ("bonus", "commission", "other_deductions")
# Optional columns of a bulk row; blank means "use the default"
OPTIONAL_AMOUNTS = (
    "ytd_taxable_income", "ytd_tax_paid", "pension_employee_rate", "pension_employer_rate",
    "qualifying_earnings_lower", "qualifying_earnings_upper",
)


@dataclass
class ValidationResult:
    is_valid: bool
    errors: Dict[str, str] = field(default_factory=dict)


def is_pence(value: Any) -> bool:
    """Whole number of pence; bools and fractional amounts are rejected."""
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, float) and value.is_integer()


def validate_payroll_inputs(options: Mapping[str, Any]) -> ValidationResult:
    """
    Check one period's inputs before calculation.

    Problems are reported per field rather than raised, so a caller running a
    batch can skip one employee and carry on.
    """
    errors = {}

    gross = options.get("gross_pay_pence")
    if not is_pence(gross) or gross < 0:
        errors["gross_pay_pence"] = "Gross pay must be a non-negative whole number of pence"

    tax_code = options.get("tax_code")
    if not isinstance(tax_code, str) or not tax_code.strip():
        errors["tax_code"] = "Tax code is required"

    pay_frequency = options.get("pay_frequency")
    if pay_frequency not in PAY_FREQUENCIES:
        errors["pay_frequency"] = f"Invalid pay frequency. Must be one of: {', '.join(PAY_FREQUENCIES)}"

    ni_category = options.get("ni_category")
    if ni_category and ni_category not in NI_CATEGORIES:
        errors["ni_category"] = f"Invalid NI category. Must be one of: {', '.join(NI_CATEGORIES)}"

    plan = options.get("student_loan_plan")
    if plan and plan not in STUDENT_LOAN_PLANS:
        errors["student_loan_plan"] = f"Invalid student loan plan. Must be one of: {', '.join(STUDENT_LOAN_PLANS)}"

    period_number = options.get("period_number", 1)
    if not is_pence(period_number) or period_number < 1:
        errors["period_number"] = "Period number must be a positive whole number"
    elif pay_frequency in PAY_FREQUENCIES and period_number > PAY_FREQUENCIES[pay_frequency]["periods"]:
        errors["period_number"] = (
            f"Period number must not exceed {PAY_FREQUENCIES[pay_frequency]['periods']} for {pay_frequency} pay"
        )

    for name in NON_NEGATIVE_AMOUNTS + OPTIONAL_AMOUNTS:
        value = options.get(name, 0)
        if value is None:
            continue
        if not is_pence(value) or value < 0:
            errors[name] = f"{name.replace('_', ' ').capitalize()} must be a non-negative whole number"

    tax_year = options.get("tax_year")
    if not isinstance(tax_year, str) or not TAX_YEAR_PATTERN.match(tax_year):
        errors["tax_year"] = "Tax year is required in the form YYYY-YY"

    return ValidationResult(is_valid=not errors, errors=errors)
