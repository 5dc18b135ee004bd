"""
PAYE income tax for a single pay period.

Two accrual bases are supported:
- cumulative: tax is worked out on pay to date against bands prorated to the
  elapsed part of the year, less tax already paid. Over- or under-deduction in
  one period is corrected in the next.
- week1/month1: each period stands alone using one period's share of the
  allowance and of each band.

All amounts are integer pence.
"""
import logging
from dataclasses import dataclass, field, asdict
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple, Union

from ukpayroll.core.utils import apply_rate, prorate, round_half_up
from ukpayroll.tax.rates import IncomeTaxRegime, RateTable, get_rate_table
from ukpayroll.tax.tax_code import (
    AllowanceCode,
    FlatRateCode,
    KCode,
    NoAllowanceCode,
    NoTaxCode,
    ParsedTaxCode,
    SpecialCode,
    parse_tax_code,
)

logger = logging.getLogger(__name__)

PAY_FREQUENCIES = {
    "weekly": {"periods": 52, "label": "Weekly"},
    "biweekly": {"periods": 26, "label": "Bi-weekly"},
    "monthly": {"periods": 12, "label": "Monthly"},
}

FLAT_RATES = {
    SpecialCode.BR: Decimal("0.20"),
    SpecialCode.D0: Decimal("0.40"),
    SpecialCode.D1: Decimal("0.45"),
}

INFINITY = float("inf")


def periods_per_year(pay_frequency: str) -> int:
    try:
        return PAY_FREQUENCIES[pay_frequency]["periods"]
    except KeyError:
        raise ValueError(
            f"Invalid pay frequency {pay_frequency!r}. Must be one of: {', '.join(PAY_FREQUENCIES)}"
        ) from None


def annualize_amount(period_amount: int, pay_frequency: str) -> int:
    return period_amount * periods_per_year(pay_frequency)


def periodize_amount(annual_amount: int, pay_frequency: str) -> int:
    return prorate(annual_amount, 1, periods_per_year(pay_frequency))


@dataclass(frozen=True)
class CumulativeState:
    """Pay and tax to date for one employee in one tax year. Owned by the caller."""
    ytd_taxable_income: int = 0
    ytd_tax_paid: int = 0

    def advance(self, gross_pay: int, tax: int) -> "CumulativeState":
        return CumulativeState(self.ytd_taxable_income + gross_pay, self.ytd_tax_paid + tax)


@dataclass
class BandTax:
    band: str
    taxable_amount: int
    rate: Decimal
    tax: int


@dataclass
class PAYEResult:
    income_tax: int
    taxable_income: int
    personal_allowance: int
    new_cumulative_state: CumulativeState
    regime: str
    breakdown: List[BandTax] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def calculate_personal_allowance(annual_income_pence: int, base_allowance_pence: int, rate_table: RateTable) -> int:
    """Taper the allowance by £1 for every whole £2 of income over the limit, never below zero."""
    pa = rate_table.income_tax.personal_allowance
    income_limit = pa.income_limit * 100
    if annual_income_pence <= income_limit:
        return base_allowance_pence
    excess_pounds = Decimal(annual_income_pence - income_limit) / 100
    reduction = int(excess_pounds * pa.taper_rate) * 100
    return max(0, base_allowance_pence - reduction)


def _band_tax(remaining: int, width: Union[int, float], rate: Decimal) -> Tuple[int, int]:
    taxable = min(remaining, width)
    if taxable <= 0:
        return 0, 0
    taxable = int(taxable)
    return taxable, apply_rate(taxable, rate)


def tax_on_cumulative_income(ytd_taxable_income: int, regime: IncomeTaxRegime, periods: int, period_number: int) -> int:
    """Tax due on taxable pay to date, using annual bands prorated to period_number / periods."""
    total = 0
    remaining = ytd_taxable_income
    prorated_allowance = prorate(regime.allowance_ceiling * 100, period_number, periods)
    taxable_bands = [b for b in regime.bands if b.rate != 0]
    for i, band in enumerate(taxable_bands):
        if remaining <= 0:
            break
        open_ended = band.max is None or i == len(taxable_bands) - 1
        start = max(0, prorate(band.min * 100, period_number, periods) - prorated_allowance)
        end = INFINITY if open_ended else max(0, prorate(band.max * 100, period_number, periods) - prorated_allowance)
        taxable, tax = _band_tax(remaining, end - start, band.rate)
        total += tax
        remaining -= taxable
    return round_half_up(total)


def tax_on_period_income(period_taxable_income: int, regime: IncomeTaxRegime, periods: int) -> Tuple[int, List[BandTax]]:
    """Tax on one period's taxable pay using each band's per-period width."""
    total = 0
    breakdown = []
    remaining = period_taxable_income
    ceiling = regime.allowance_ceiling
    taxable_bands = [b for b in regime.bands if b.rate != 0]
    for i, band in enumerate(taxable_bands):
        if remaining <= 0:
            break
        open_ended = band.max is None or i == len(taxable_bands) - 1
        start = prorate(max(0, (band.min - ceiling) * 100), 1, periods)
        end = INFINITY if open_ended else prorate((band.max - ceiling) * 100, 1, periods)
        taxable, tax = _band_tax(remaining, max(0, end - start), band.rate)
        if taxable > 0:
            breakdown.append(BandTax(band=band.name, taxable_amount=taxable, rate=band.rate, tax=tax))
            total += tax
            remaining -= taxable
    return round_half_up(total), breakdown


def _taxable_after_allowance(gross: int, allowance: int, is_k_code: bool) -> int:
    if is_k_code:
        return gross + abs(allowance)
    return max(0, gross - allowance)


def calculate_paye(
    gross_pay_pence: int,
    tax_code: Union[str, ParsedTaxCode],
    pay_frequency: str,
    tax_year: str,
    period_number: int = 1,
    cumulative_state: Optional[CumulativeState] = None,
) -> PAYEResult:
    """
    Calculate PAYE income tax for one pay period.

    Args:
        gross_pay_pence: Gross pay subject to PAYE for the period
        tax_code: HMRC tax code, raw or already parsed
        pay_frequency: 'weekly', 'biweekly' or 'monthly'
        tax_year: Rate table key, e.g. '2025-26'
        period_number: Period within the tax year (1-based)
        cumulative_state: Pay and tax to date before this period
    """
    parsed = parse_tax_code(tax_code) if isinstance(tax_code, str) else tax_code
    state = cumulative_state or CumulativeState()
    periods = periods_per_year(pay_frequency)
    rate_table = get_rate_table(tax_year)

    if isinstance(parsed, NoTaxCode):
        return PAYEResult(
            income_tax=0,
            taxable_income=gross_pay_pence,
            personal_allowance=0,
            new_cumulative_state=state.advance(gross_pay_pence, 0),
            regime=parsed.regime.value,
        )

    if isinstance(parsed, FlatRateCode):
        rate = FLAT_RATES[parsed.code]
        tax = apply_rate(gross_pay_pence, rate)
        return PAYEResult(
            income_tax=tax,
            taxable_income=gross_pay_pence,
            personal_allowance=0,
            new_cumulative_state=state.advance(gross_pay_pence, tax),
            regime=parsed.regime.value,
            breakdown=[BandTax(band=parsed.code.value, taxable_amount=gross_pay_pence, rate=rate, tax=tax)],
        )

    if isinstance(parsed, NoAllowanceCode):
        annual_allowance = 0
    elif isinstance(parsed, (KCode, AllowanceCode)):
        annual_allowance = parsed.allowance_pence
    else:
        raise TypeError(f"Unhandled tax code variant: {type(parsed).__name__}")

    regime = rate_table.income_tax_for(parsed.regime)
    period_allowance = prorate(annual_allowance, 1, periods)
    taxable_income = _taxable_after_allowance(gross_pay_pence, period_allowance, parsed.is_k_code)
    period_tax, breakdown = tax_on_period_income(taxable_income, regime, periods)

    if parsed.is_cumulative:
        ytd_gross = state.ytd_taxable_income + gross_pay_pence
        ytd_allowance = prorate(annual_allowance, period_number, periods)
        ytd_taxable = _taxable_after_allowance(ytd_gross, ytd_allowance, parsed.is_k_code)
        ytd_tax = tax_on_cumulative_income(ytd_taxable, regime, periods, period_number)
        tax_due = max(0, ytd_tax - state.ytd_tax_paid)
        logger.debug(
            "PAYE %s period %s: ytd taxable %s, ytd tax %s, paid %s",
            parsed.raw_code, period_number, ytd_taxable, ytd_tax, state.ytd_tax_paid,
        )
    else:
        tax_due = period_tax

    income_tax = round_half_up(tax_due)
    return PAYEResult(
        income_tax=income_tax,
        taxable_income=taxable_income,
        personal_allowance=period_allowance,
        new_cumulative_state=state.advance(gross_pay_pence, income_tax),
        regime=parsed.regime.value,
        breakdown=breakdown,
    )
