import json
from decimal import Decimal

import pytest

from ukpayroll.core.errors import FatalConfigError
from ukpayroll.tax.paye import (
    CumulativeState, annualize_amount, calculate_paye, calculate_personal_allowance, periodize_amount,
    tax_on_cumulative_income, tax_on_period_income,
)
from ukpayroll.tax.rates import BUILTIN_RATE_TABLES, RateTableRegistry, get_rate_table

YEAR = "2025-26"

def test_below_allowance_pays_nothing():
    r = calculate_paye(100000, "1257L", "monthly", YEAR)
    assert r.income_tax == 0
    assert r.taxable_income == 0
    assert r.breakdown == []

def test_monthly_1257l_period_one():
    r = calculate_paye(300000, "1257L", "monthly", YEAR)
    assert r.personal_allowance == 104750
    assert r.taxable_income == 195250
    assert r.income_tax == 39050
    assert r.new_cumulative_state == CumulativeState(300000, 39050)
    assert [b.band for b in r.breakdown] == ["basic"]
    assert r.breakdown[0].tax == 39050

def test_weekly_allowance():
    r = calculate_paye(50000, "1257L", "weekly", YEAR)
    assert r.personal_allowance == 24173
    assert r.taxable_income == 25827
    assert r.income_tax == 5165

def test_cumulative_second_period():
    r = calculate_paye(300000, "1257L", "monthly", YEAR, period_number=2,
                       cumulative_state=CumulativeState(300000, 39050))
    assert r.income_tax == 39050
    assert r.new_cumulative_state == CumulativeState(600000, 78100)

def test_cumulative_corrects_overpayment():
    r = calculate_paye(300000, "1257L", "monthly", YEAR, period_number=2,
                       cumulative_state=CumulativeState(300000, 50000))
    assert r.income_tax == 28100

def test_cumulative_never_refunds():
    r = calculate_paye(300000, "1257L", "monthly", YEAR, period_number=2,
                       cumulative_state=CumulativeState(300000, 90000))
    assert r.income_tax == 0
    assert r.new_cumulative_state.ytd_tax_paid == 90000

def test_month1_ignores_previous_periods():
    r = calculate_paye(300000, "1257L M1", "monthly", YEAR, period_number=2,
                       cumulative_state=CumulativeState(300000, 90000))
    assert r.income_tax == 39050

def test_constant_pay_cumulative_matches_month1():
    state = CumulativeState()
    total = 0
    for n in range(1, 13):
        r = calculate_paye(300000, "1257L", "monthly", YEAR, period_number=n, cumulative_state=state)
        state = r.new_cumulative_state
        total += r.income_tax
    month1 = calculate_paye(300000, "1257L M1", "monthly", YEAR).income_tax
    assert abs(total - 12 * month1) <= 12
    assert state.ytd_tax_paid == total

def test_k_code_adds_to_taxable_income():
    r = calculate_paye(200000, "K475", "monthly", YEAR)
    assert r.taxable_income == 239583
    assert r.taxable_income >= 200000
    assert r.income_tax == 47917

@pytest.mark.parametrize("gross", [0, 50000, 300000, 1000000])
def test_k_code_taxable_never_below_gross(gross):
    r = calculate_paye(gross, "K100", "monthly", YEAR)
    assert r.taxable_income >= gross

def test_br_flat_rate():
    r = calculate_paye(200000, "BR", "monthly", YEAR)
    assert r.income_tax == 40000
    assert r.taxable_income == 200000
    assert len(r.breakdown) == 1
    assert r.breakdown[0].band == "BR"
    assert r.breakdown[0].rate == Decimal("0.20")

def test_d0_d1_flat_rates():
    assert calculate_paye(200000, "D0", "monthly", YEAR).income_tax == 80000
    assert calculate_paye(200000, "D1", "monthly", YEAR).income_tax == 90000

def test_flat_rate_advances_state():
    r = calculate_paye(200000, "BR", "monthly", YEAR, cumulative_state=CumulativeState(100, 20))
    assert r.new_cumulative_state == CumulativeState(200100, 40020)

def test_nt_no_tax():
    r = calculate_paye(987654, "NT", "monthly", YEAR)
    assert r.income_tax == 0
    assert r.taxable_income == 987654
    assert r.breakdown == []

def test_0t_taxes_all_pay():
    r = calculate_paye(300000, "0T", "monthly", YEAR)
    assert r.personal_allowance == 0
    assert r.taxable_income == 300000
    assert r.income_tax == 60000

def test_scottish_bands():
    r = calculate_paye(300000, "S1257L", "monthly", YEAR)
    assert r.regime == "scottish"
    assert r.income_tax == 39524

def test_welsh_uses_ruk_bands():
    assert calculate_paye(300000, "C1257L", "monthly", YEAR).income_tax == 39050

def test_higher_rate_breakdown():
    r = calculate_paye(600000, "1257L M1", "monthly", YEAR)
    assert [b.band for b in r.breakdown] == ["basic", "higher"]
    assert sum(b.tax for b in r.breakdown) == r.income_tax

def test_unknown_tax_year():
    with pytest.raises(FatalConfigError):
        calculate_paye(300000, "1257L", "monthly", "1999-00")

def test_invalid_frequency():
    with pytest.raises(ValueError):
        calculate_paye(300000, "1257L", "fortnightly", YEAR)

def test_personal_allowance_taper():
    table = get_rate_table(YEAR)
    assert calculate_personal_allowance(10000000, 1257000, table) == 1257000
    assert calculate_personal_allowance(10000100, 1257000, table) == 1257000
    assert calculate_personal_allowance(10000300, 1257000, table) == 1256900
    assert calculate_personal_allowance(11000000, 1257000, table) == 757000
    assert calculate_personal_allowance(12514000, 1257000, table) == 0
    assert calculate_personal_allowance(20000000, 1257000, table) == 0

def test_annualize_and_periodize():
    assert annualize_amount(100000, "monthly") == 1200000
    assert annualize_amount(10000, "weekly") == 520000
    assert annualize_amount(20000, "biweekly") == 520000
    assert periodize_amount(1200000, "monthly") == 100000
    assert periodize_amount(520000, "weekly") == 10000

def registry_with_band_inside_allowance():
    data = json.loads(json.dumps(BUILTIN_RATE_TABLES[YEAR]))
    data["income_tax"]["bands"] = [
        {"name": "low", "rate": "0.10", "min": 5000, "max": 10000},
        {"name": "basic", "rate": "0.20", "min": 10001, "max": 50270},
        {"name": "higher", "rate": "0.40", "min": 50271, "max": None},
    ]
    return RateTableRegistry(tables={YEAR: data})

def test_bands_below_allowance_clamp_to_zero_width():
    regime = registry_with_band_inside_allowance().get(YEAR).income_tax
    # band entirely under the allowance contributes nothing on either basis
    assert tax_on_cumulative_income(195250, regime, 12, 1) == 39050
    tax, breakdown = tax_on_period_income(195250, regime, 12)
    assert tax == 39050
    assert [b.band for b in breakdown] == ["basic"]
    assert all(b.taxable_amount > 0 and b.tax >= 0 for b in breakdown)

def test_bands_below_allowance_small_income():
    regime = registry_with_band_inside_allowance().get(YEAR).income_tax
    assert tax_on_cumulative_income(0, regime, 12, 6) == 0
    tax, breakdown = tax_on_period_income(100, regime, 12)
    assert tax == 20
    assert [b.band for b in breakdown] == ["basic"]
