"""
Workplace pension contributions (relief at source).

Under relief at source the quoted employee contribution is gross: the employee
pays 80% of it from net pay and the scheme reclaims basic-rate relief (25% of
the net payment, i.e. 20% of the gross) from HMRC. PAYE is therefore worked
out on full gross pay. Salary sacrifice is not modelled.
"""
from dataclasses import dataclass, field, asdict
from decimal import Decimal
from typing import Any, Dict

from ukpayroll.core.config import settings
from ukpayroll.core.utils import apply_rate

BASIS_POINTS = Decimal("10000")
# Share of the gross contribution reclaimed from HMRC (25% uplift on the net payment)
RELIEF_AT_SOURCE_RATE = Decimal("0.20")


@dataclass(frozen=True)
class PensionRates:
    employee_rate_bp: int = 0
    employer_rate_bp: int = field(default_factory=lambda: settings.DEFAULT_EMPLOYER_PENSION_RATE)
    # Qualifying earnings band for the period, pence; 0 means not configured
    qualifying_lower: int = 0
    qualifying_upper: int = 0
    relief_at_source: bool = True


@dataclass
class PensionResult:
    pension_employee_contribution: int = 0
    pension_employer_contribution: int = 0
    pension_tax_relief: int = 0
    qualifying_earnings: int = 0

    @property
    def employee_net_deduction(self) -> int:
        """What actually comes out of the employee's net pay."""
        return self.pension_employee_contribution - self.pension_tax_relief

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["employee_net_deduction"] = self.employee_net_deduction
        return data


def qualifying_earnings(gross_pay_pence: int, lower: int = 0, upper: int = 0) -> int:
    if lower <= 0 and upper <= 0:
        return gross_pay_pence
    earnings = max(0, gross_pay_pence - lower)
    if upper > 0:
        earnings = min(earnings, max(0, upper - lower))
    return earnings


def calculate_pension_contributions(gross_pay_pence: int, pension_opt_in: bool, rates: PensionRates) -> PensionResult:
    if not pension_opt_in or rates.employee_rate_bp <= 0:
        return PensionResult()

    earnings = qualifying_earnings(gross_pay_pence, rates.qualifying_lower, rates.qualifying_upper)
    employee = apply_rate(earnings, Decimal(rates.employee_rate_bp) / BASIS_POINTS)
    employer = apply_rate(earnings, Decimal(rates.employer_rate_bp) / BASIS_POINTS)
    relief = apply_rate(employee, RELIEF_AT_SOURCE_RATE) if rates.relief_at_source else 0

    return PensionResult(
        pension_employee_contribution=employee,
        pension_employer_contribution=employer,
        pension_tax_relief=relief,
        qualifying_earnings=earnings,
    )
