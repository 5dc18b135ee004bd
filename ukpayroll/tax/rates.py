"""
UK rate tables keyed by tax year ("YYYY-YY").

Income tax bands are authored in whole pounds with inclusive boundaries; the
tax-free band is held separately as ``allowance_band`` instead of being the
first entry of ``bands``. NI thresholds carry weekly, monthly and annual views
as published by HMRC. Lookups never fall back to another year: a missing year
raises ``FatalConfigError``.
"""
import json
import logging
from datetime import date
from decimal import Decimal
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ValidationError, field_validator, model_validator

from ukpayroll.core.config import settings
from ukpayroll.core.errors import FatalConfigError

logger = logging.getLogger(__name__)


class Regime(str, Enum):
    STANDARD = "standard"
    SCOTTISH = "scottish"
    WELSH = "welsh"


class TaxBand(BaseModel):
    name: str
    rate: Decimal
    min: int
    max: Optional[int] = None


class PersonalAllowance(BaseModel):
    amount: int
    income_limit: int
    taper_rate: Decimal


class IncomeTaxRegime(BaseModel):
    personal_allowance: PersonalAllowance
    allowance_band: TaxBand
    bands: List[TaxBand]

    @field_validator("bands")
    @classmethod
    def _ascending(cls, bands: List[TaxBand]) -> List[TaxBand]:
        if not bands:
            raise ValueError("at least one taxable band is required")
        return sorted(bands, key=lambda b: b.min)

    @model_validator(mode="after")
    def _allowance_band_is_tax_free(self):
        if self.allowance_band.rate != 0:
            raise ValueError("allowance band must have a zero rate")
        return self

    @property
    def allowance_ceiling(self) -> int:
        """Top of the tax-free band, in pounds."""
        return self.allowance_band.max or 0


class Threshold(BaseModel):
    weekly: int
    monthly: int
    annual: int


class EmployeeNIConfig(BaseModel):
    lower_earnings_limit: Threshold
    primary_threshold: Threshold
    upper_earnings_limit: Threshold
    main_rate: Decimal
    reduced_rate: Decimal


class EmployerNIConfig(BaseModel):
    secondary_threshold: Threshold
    main_rate: Decimal


class RateTable(BaseModel):
    tax_year: str
    start_date: date
    end_date: date
    income_tax: IncomeTaxRegime
    scottish_income_tax: IncomeTaxRegime
    employee_ni: EmployeeNIConfig
    employer_ni: EmployerNIConfig

    def income_tax_for(self, regime: Regime) -> IncomeTaxRegime:
        # Welsh rates currently mirror the rest of the UK
        if regime == Regime.SCOTTISH:
            return self.scottish_income_tax
        return self.income_tax


_RUK_BANDS = [
    {"name": "basic", "rate": "0.20", "min": 12571, "max": 50270},
    {"name": "higher", "rate": "0.40", "min": 50271, "max": 125140},
    {"name": "additional", "rate": "0.45", "min": 125141, "max": None},
]

_PERSONAL_ALLOWANCE = {"amount": 12570, "income_limit": 100000, "taper_rate": "0.5"}
_ALLOWANCE_BAND = {"name": "personal_allowance", "rate": "0", "min": 0, "max": 12570}

BUILTIN_RATE_TABLES: Dict[str, dict] = {
    "2025-26": {
        "tax_year": "2025-26",
        "start_date": "2025-04-06",
        "end_date": "2026-04-05",
        "income_tax": {
            "personal_allowance": _PERSONAL_ALLOWANCE,
            "allowance_band": _ALLOWANCE_BAND,
            "bands": _RUK_BANDS,
        },
        "scottish_income_tax": {
            "personal_allowance": _PERSONAL_ALLOWANCE,
            "allowance_band": _ALLOWANCE_BAND,
            "bands": [
                {"name": "starter", "rate": "0.19", "min": 12571, "max": 15397},
                {"name": "basic", "rate": "0.20", "min": 15398, "max": 27491},
                {"name": "intermediate", "rate": "0.21", "min": 27492, "max": 43662},
                {"name": "higher", "rate": "0.42", "min": 43663, "max": 75000},
                {"name": "advanced", "rate": "0.45", "min": 75001, "max": 125140},
                {"name": "top", "rate": "0.48", "min": 125141, "max": None},
            ],
        },
        "employee_ni": {
            "lower_earnings_limit": {"weekly": 125, "monthly": 542, "annual": 6500},
            "primary_threshold": {"weekly": 242, "monthly": 1048, "annual": 12570},
            "upper_earnings_limit": {"weekly": 967, "monthly": 4189, "annual": 50270},
            "main_rate": "0.08",
            "reduced_rate": "0.02",
        },
        "employer_ni": {
            "secondary_threshold": {"weekly": 96, "monthly": 417, "annual": 5000},
            "main_rate": "0.15",
        },
    },
    "2024-25": {
        "tax_year": "2024-25",
        "start_date": "2024-04-06",
        "end_date": "2025-04-05",
        "income_tax": {
            "personal_allowance": _PERSONAL_ALLOWANCE,
            "allowance_band": _ALLOWANCE_BAND,
            "bands": _RUK_BANDS,
        },
        "scottish_income_tax": {
            "personal_allowance": _PERSONAL_ALLOWANCE,
            "allowance_band": _ALLOWANCE_BAND,
            "bands": [
                {"name": "starter", "rate": "0.19", "min": 12571, "max": 14876},
                {"name": "basic", "rate": "0.20", "min": 14877, "max": 26561},
                {"name": "intermediate", "rate": "0.21", "min": 26562, "max": 43662},
                {"name": "higher", "rate": "0.42", "min": 43663, "max": 75000},
                {"name": "advanced", "rate": "0.45", "min": 75001, "max": 125140},
                {"name": "top", "rate": "0.48", "min": 125141, "max": None},
            ],
        },
        "employee_ni": {
            "lower_earnings_limit": {"weekly": 123, "monthly": 533, "annual": 6396},
            "primary_threshold": {"weekly": 242, "monthly": 1048, "annual": 12570},
            "upper_earnings_limit": {"weekly": 967, "monthly": 4189, "annual": 50270},
            "main_rate": "0.08",
            "reduced_rate": "0.02",
        },
        "employer_ni": {
            "secondary_threshold": {"weekly": 175, "monthly": 758, "annual": 9100},
            "main_rate": "0.138",
        },
    },
}


class RateTableRegistry:
    """Immutable lookup of rate tables by tax year."""

    def __init__(self, tables: Optional[Dict[str, dict]] = None, extra_path: Union[str, Path, None] = None):
        raw = dict(BUILTIN_RATE_TABLES if tables is None else tables)
        if extra_path:
            raw.update(self._load_file(extra_path))
        self._tables: Dict[str, RateTable] = {}
        for year, data in raw.items():
            try:
                self._tables[year] = RateTable.model_validate(data)
            except ValidationError as e:
                raise FatalConfigError(f"Invalid rate table for {year}: {e}", tax_year=year) from e

    @staticmethod
    def _load_file(path: Union[str, Path]) -> Dict[str, dict]:
        path = Path(path)
        if not path.exists():
            raise FatalConfigError(f"Rate table file not found: {path}")
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise FatalConfigError(f"Rate table file is not valid JSON: {path}") from e
        # Either {"2026-27": {...}} or a list of tables carrying their own tax_year
        if isinstance(data, list):
            return {t["tax_year"]: t for t in data}
        return data

    def get(self, tax_year: str) -> RateTable:
        table = self._tables.get(tax_year)
        if table is None:
            logger.error("No rate table for tax year %s", tax_year)
            raise FatalConfigError(
                f"No rate table for tax year {tax_year!r}; available: {', '.join(self.available_years())}",
                tax_year=tax_year,
            )
        return table

    def available_years(self) -> List[str]:
        return sorted(self._tables)

    def __contains__(self, tax_year: str) -> bool:
        return tax_year in self._tables


@lru_cache(maxsize=1)
def default_registry() -> RateTableRegistry:
    return RateTableRegistry(extra_path=settings.RATE_TABLE_PATH)


def get_rate_table(tax_year: str) -> RateTable:
    return default_registry().get(tax_year)


def available_tax_years() -> List[str]:
    return default_registry().available_years()
