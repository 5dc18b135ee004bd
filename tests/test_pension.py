from ukpayroll.core.config import settings
from ukpayroll.payroll.pension import PensionRates, calculate_pension_contributions, qualifying_earnings

def test_not_opted_in():
    r = calculate_pension_contributions(300000, False, PensionRates(employee_rate_bp=500))
    assert r.pension_employee_contribution == 0
    assert r.pension_employer_contribution == 0
    assert r.qualifying_earnings == 0

def test_zero_employee_rate_is_noop():
    r = calculate_pension_contributions(300000, True, PensionRates(employee_rate_bp=0, employer_rate_bp=300))
    assert r.pension_employer_contribution == 0

def test_relief_at_source_contributions():
    r = calculate_pension_contributions(300000, True, PensionRates(employee_rate_bp=500, employer_rate_bp=300))
    assert r.qualifying_earnings == 300000
    assert r.pension_employee_contribution == 15000
    assert r.pension_employer_contribution == 9000
    assert r.pension_tax_relief == 3000
    # employee pays 80% of the gross contribution
    assert r.employee_net_deduction == 12000

def test_without_relief_at_source():
    rates = PensionRates(employee_rate_bp=500, relief_at_source=False)
    r = calculate_pension_contributions(300000, True, rates)
    assert r.pension_tax_relief == 0
    assert r.employee_net_deduction == 15000

def test_qualifying_earnings_band():
    rates = PensionRates(employee_rate_bp=500, qualifying_lower=52000, qualifying_upper=418900)
    r = calculate_pension_contributions(300000, True, rates)
    assert r.qualifying_earnings == 248000
    assert r.pension_employee_contribution == 12400

def test_qualifying_earnings_limits():
    assert qualifying_earnings(300000) == 300000
    assert qualifying_earnings(40000, lower=52000, upper=418900) == 0
    assert qualifying_earnings(600000, lower=52000, upper=418900) == 366900
    assert qualifying_earnings(600000, lower=52000) == 548000

def test_to_dict_includes_net_deduction():
    d = calculate_pension_contributions(300000, True, PensionRates(employee_rate_bp=500)).to_dict()
    assert d["employee_net_deduction"] == 12000

def test_employer_rate_default_follows_settings(monkeypatch):
    monkeypatch.setattr(settings, "DEFAULT_EMPLOYER_PENSION_RATE", 800)
    assert PensionRates().employer_rate_bp == 800
