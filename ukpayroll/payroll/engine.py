"""
Payroll orchestration: one employee, one pay period.

gross -> pension -> PAYE -> employee NI -> employer NI -> student loan -> net pay.
The caller owns the cumulative PAYE state and must feed each period's
``new_cumulative_state`` into the next period.
"""
import logging
from dataclasses import dataclass, field, asdict, replace
from typing import Any, Dict, Iterable, List, Mapping, Optional

from ukpayroll.core.config import settings
from ukpayroll.core.errors import FatalConfigError
from ukpayroll.payroll.pension import PensionRates, calculate_pension_contributions
from ukpayroll.payroll.validation import validate_payroll_inputs
from ukpayroll.tax.national_insurance import calculate_employee_ni, calculate_employer_ni
from ukpayroll.tax.paye import CumulativeState, calculate_paye
from ukpayroll.tax.student_loan import calculate_student_loan_deduction

logger = logging.getLogger(__name__)


def _pence(value: Any, default: int = 0) -> int:
    if value is None:
        return default
    return int(value)


def _flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "y")
    return bool(value)


@dataclass(frozen=True)
class PeriodInput:
    gross_pay_pence: int
    tax_code: str
    pay_frequency: str
    tax_year: str
    ni_category: str = "A"
    period_number: int = 1
    cumulative_state: CumulativeState = field(default_factory=CumulativeState)
    pension_opt_in: bool = False
    pension_rates: PensionRates = field(default_factory=PensionRates)
    student_loan_plan: Optional[str] = None
    bonus: int = 0
    commission: int = 0
    other_deductions: int = 0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PeriodInput":
        """Build an input from a flat mapping, e.g. one row of a bulk upload."""
        return cls(
            gross_pay_pence=_pence(data.get("gross_pay_pence")),
            tax_code=data["tax_code"],
            pay_frequency=data["pay_frequency"],
            tax_year=data["tax_year"],
            ni_category=data.get("ni_category") or "A",
            period_number=_pence(data.get("period_number"), 1),
            cumulative_state=CumulativeState(
                ytd_taxable_income=_pence(data.get("ytd_taxable_income")),
                ytd_tax_paid=_pence(data.get("ytd_tax_paid")),
            ),
            pension_opt_in=_flag(data.get("pension_opt_in")),
            pension_rates=PensionRates(
                employee_rate_bp=_pence(data.get("pension_employee_rate")),
                employer_rate_bp=_pence(data.get("pension_employer_rate"), settings.DEFAULT_EMPLOYER_PENSION_RATE),
                qualifying_lower=_pence(data.get("qualifying_earnings_lower")),
                qualifying_upper=_pence(data.get("qualifying_earnings_upper")),
                relief_at_source=_flag(True if data.get("relief_at_source") is None else data["relief_at_source"]),
            ),
            student_loan_plan=data.get("student_loan_plan") or None,
            bonus=_pence(data.get("bonus")),
            commission=_pence(data.get("commission")),
            other_deductions=_pence(data.get("other_deductions")),
        )


@dataclass
class PayrollResult:
    gross_pay: int
    taxable_income: int
    income_tax: int
    employee_ni: int
    employer_ni: int
    pension_employee_contribution: int
    pension_employer_contribution: int
    pension_tax_relief: int
    student_loan_deduction: int
    other_deductions: int
    net_pay: int
    # Net pay before the zero floor; differs from net_pay only when is_clamped
    unclamped_net_pay: int
    is_clamped: bool
    new_cumulative_state: CumulativeState
    breakdown: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def calculate_payroll(period: PeriodInput) -> PayrollResult:
    """
    Complete payroll for one employee and one period. Inputs are assumed valid;
    run validate_payroll_inputs first.

    Raises:
        FatalConfigError: no rate table for period.tax_year
    """
    total_gross = period.gross_pay_pence + period.bonus + period.commission

    pension = calculate_pension_contributions(total_gross, period.pension_opt_in, period.pension_rates)

    # Relief at source: the pension comes out of net pay, so PAYE sees full gross
    paye = calculate_paye(
        total_gross,
        period.tax_code,
        period.pay_frequency,
        period.tax_year,
        period_number=period.period_number,
        cumulative_state=period.cumulative_state,
    )
    employee_ni = calculate_employee_ni(total_gross, period.pay_frequency, period.tax_year, period.ni_category)
    employer_ni = calculate_employer_ni(total_gross, period.pay_frequency, period.tax_year, period.ni_category)
    student_loan = calculate_student_loan_deduction(total_gross, period.pay_frequency, period.student_loan_plan)

    pension_deduction = pension.employee_net_deduction if period.pension_opt_in else 0
    net_pay = (
        total_gross
        - paye.income_tax
        - employee_ni.employee_ni
        - pension_deduction
        - student_loan
        - period.other_deductions
    )
    is_clamped = net_pay < 0
    if is_clamped:
        logger.warning(
            "Net pay %s for period %s is negative; reported as 0 (deductions exceed gross pay)",
            net_pay, period.period_number,
        )

    return PayrollResult(
        gross_pay=total_gross,
        taxable_income=paye.taxable_income,
        income_tax=paye.income_tax,
        employee_ni=employee_ni.employee_ni,
        employer_ni=employer_ni.employer_ni,
        pension_employee_contribution=pension.pension_employee_contribution,
        pension_employer_contribution=pension.pension_employer_contribution,
        pension_tax_relief=pension.pension_tax_relief,
        student_loan_deduction=student_loan,
        other_deductions=period.other_deductions,
        net_pay=max(0, net_pay),
        unclamped_net_pay=net_pay,
        is_clamped=is_clamped,
        new_cumulative_state=paye.new_cumulative_state,
        breakdown={
            "tax": [asdict(b) for b in paye.breakdown],
            "personal_allowance": paye.personal_allowance,
            "regime": paye.regime,
            "employee_ni": asdict(employee_ni.breakdown),
            "employer_ni": asdict(employer_ni.breakdown),
            "pension": pension.to_dict(),
        },
    )


def run_periods(periods: Iterable[PeriodInput]) -> List[PayrollResult]:
    """
    Run consecutive periods for one employee, feeding each period's cumulative
    state into the next. The first input's state is used as the opening position.
    """
    results = []
    previous: Optional[PeriodInput] = None
    for period in periods:
        if previous is not None:
            if period.tax_year != previous.tax_year:
                raise ValueError(
                    f"Cumulative state cannot carry from {previous.tax_year} into {period.tax_year}"
                )
            if period.period_number <= previous.period_number:
                raise ValueError(
                    f"Period {period.period_number} follows period {previous.period_number}; "
                    "periods must be strictly increasing"
                )
            period = replace(period, cumulative_state=results[-1].new_cumulative_state)
        results.append(calculate_payroll(period))
        previous = period
    return results


@dataclass
class EmployeeOutcome:
    """Result or field-keyed errors for one employee-period in a run."""
    employee_id: Optional[str]
    period_number: Optional[int]
    result: Optional[PayrollResult] = None
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.result is not None and not self.errors

    def to_row(self) -> Dict[str, Any]:
        row = {"employee_id": self.employee_id, "period_number": self.period_number, "ok": self.ok}
        if self.result is not None:
            data = self.result.to_dict()
            state = data.pop("new_cumulative_state")
            data.pop("breakdown")
            row.update(data)
            row["ytd_taxable_income"] = state["ytd_taxable_income"]
            row["ytd_tax_paid"] = state["ytd_tax_paid"]
        row["errors"] = "; ".join(f"{k}: {v}" for k, v in self.errors.items())
        return row


class PayrollEngine:
    def __init__(self, tax_year: str):
        self.tax_year = tax_year

    def compute(self, row: Mapping[str, Any], cumulative_state: Optional[CumulativeState] = None) -> EmployeeOutcome:
        """Validate and calculate one row. Never raises for bad input or a missing rate table."""
        data = dict(row)
        if not data.get("tax_year"):
            data["tax_year"] = self.tax_year
        outcome = EmployeeOutcome(employee_id=data.get("employee_id"), period_number=data.get("period_number"))

        validation = validate_payroll_inputs(data)
        if not validation.is_valid:
            outcome.errors = validation.errors
            return outcome

        period = PeriodInput.from_dict(data)
        if cumulative_state is not None:
            period = replace(period, cumulative_state=cumulative_state)
        outcome.period_number = period.period_number
        try:
            outcome.result = calculate_payroll(period)
        except FatalConfigError as e:
            logger.error("Payroll for %s skipped: %s", outcome.employee_id, e)
            outcome.errors = {"tax_year": str(e)}
        return outcome

    def run_payroll(self, rows: Iterable[Mapping[str, Any]]) -> List[EmployeeOutcome]:
        return [self.compute(row) for row in rows]
