import json

import pytest

from ukpayroll.core.errors import FatalConfigError
from ukpayroll.tax.rates import BUILTIN_RATE_TABLES, RateTableRegistry, Regime, available_tax_years, get_rate_table

def test_builtin_years():
    assert {"2025-26", "2024-25"} <= set(available_tax_years())

def test_allowance_band_is_explicit():
    table = get_rate_table("2025-26")
    assert table.income_tax.allowance_band.max == 12570
    assert table.income_tax.allowance_ceiling == 12570
    assert [b.name for b in table.income_tax.bands] == ["basic", "higher", "additional"]
    assert table.income_tax.bands[-1].max is None

def test_regime_lookup():
    table = get_rate_table("2025-26")
    assert table.income_tax_for(Regime.SCOTTISH).bands[0].name == "starter"
    assert table.income_tax_for(Regime.WELSH) is table.income_tax

def test_missing_year_has_no_fallback():
    with pytest.raises(FatalConfigError) as exc:
        get_rate_table("2019-20")
    assert exc.value.tax_year == "2019-20"

def test_bands_sorted_on_load():
    data = json.loads(json.dumps(BUILTIN_RATE_TABLES["2025-26"]))
    data["income_tax"]["bands"] = list(reversed(data["income_tax"]["bands"]))
    registry = RateTableRegistry(tables={"2025-26": data})
    assert [b.name for b in registry.get("2025-26").income_tax.bands] == ["basic", "higher", "additional"]

def test_extra_years_from_file(tmp_path):
    data = json.loads(json.dumps(BUILTIN_RATE_TABLES["2025-26"]))
    data["tax_year"] = "2026-27"
    path = tmp_path / "rates.json"
    path.write_text(json.dumps([data]))
    registry = RateTableRegistry(extra_path=path)
    assert "2026-27" in registry
    assert "2025-26" in registry

def test_invalid_table_is_config_error():
    data = json.loads(json.dumps(BUILTIN_RATE_TABLES["2025-26"]))
    data["income_tax"]["allowance_band"]["rate"] = "0.10"
    with pytest.raises(FatalConfigError):
        RateTableRegistry(tables={"2025-26": data})

def test_missing_file_is_config_error(tmp_path):
    with pytest.raises(FatalConfigError):
        RateTableRegistry(extra_path=tmp_path / "nope.json")
