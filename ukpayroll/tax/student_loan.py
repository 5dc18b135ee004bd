from decimal import Decimal
from typing import Optional

from ukpayroll.core.utils import apply_rate, prorate
from ukpayroll.tax.paye import periods_per_year

# Annual thresholds in pence
STUDENT_LOAN_PLANS = {
    "plan1": {"threshold": 2499000, "rate": Decimal("0.09"), "name": "Plan 1"},
    "plan2": {"threshold": 2729500, "rate": Decimal("0.09"), "name": "Plan 2"},
    "plan4": {"threshold": 3139500, "rate": Decimal("0.09"), "name": "Plan 4"},
    "plan5": {"threshold": 2500000, "rate": Decimal("0.09"), "name": "Plan 5"},
    "postgrad": {"threshold": 2100000, "rate": Decimal("0.06"), "name": "Postgraduate"},
}


def calculate_student_loan_deduction(gross_pay_pence: int, pay_frequency: str, student_loan_plan: Optional[str]) -> int:
    """Flat-rate deduction on pay above the plan's period threshold; 0 without a known plan."""
    plan = STUDENT_LOAN_PLANS.get(student_loan_plan) if student_loan_plan else None
    if plan is None:
        return 0
    period_threshold = prorate(plan["threshold"], 1, periods_per_year(pay_frequency))
    if gross_pay_pence <= period_threshold:
        return 0
    return apply_rate(gross_pay_pence - period_threshold, plan["rate"])
