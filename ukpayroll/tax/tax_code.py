"""
HMRC tax code parsing.

Formats handled:
- Standard: 1257L (1257 = allowance / 10)
- K codes: K475 (negative allowance, extra taxable income)
- Scottish / Welsh prefixes: S1257L, C1257L
- Emergency (non-cumulative) suffixes: 1257L W1, 1257L M1, 1257L X
- Special: BR, D0, D1 (flat rate on all pay), NT (no tax), 0T (no allowance)

A parsed code is one of the variants below; the PAYE calculator matches on the
variant type rather than on flags.
"""
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Dict, Optional, Union

from ukpayroll.tax.rates import Regime


class AccrualBasis(str, Enum):
    CUMULATIVE = "cumulative"
    WEEK1_MONTH1 = "week1month1"


class SpecialCode(str, Enum):
    BR = "BR"
    D0 = "D0"
    D1 = "D1"
    NT = "NT"
    ZERO_T = "0T"


EMERGENCY_SUFFIXES = ("W1", "M1", "X")
REGIME_PREFIXES = {"S": Regime.SCOTTISH, "C": Regime.WELSH}


@dataclass(frozen=True)
class TaxCode:
    raw_code: str
    regime: Regime
    basis: AccrualBasis

    special_code: ClassVar[Optional[SpecialCode]] = None
    is_k_code: ClassVar[bool] = False

    @property
    def is_cumulative(self) -> bool:
        return self.basis == AccrualBasis.CUMULATIVE

    @property
    def is_emergency(self) -> bool:
        return self.basis == AccrualBasis.WEEK1_MONTH1

    @property
    def allowance_pence(self) -> int:
        return 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "raw_code": self.raw_code,
            "allowance_in_pence": self.allowance_pence,
            "is_k_code": self.is_k_code,
            "regime": self.regime.value,
            "accrual_basis": self.basis.value,
            "special_code": self.special_code.value if self.special_code else None,
        }


@dataclass(frozen=True)
class AllowanceCode(TaxCode):
    allowance: int

    @property
    def allowance_pence(self) -> int:
        return self.allowance


@dataclass(frozen=True)
class KCode(TaxCode):
    # Stored negative: the amount is added to taxable pay
    allowance: int

    is_k_code: ClassVar[bool] = True

    @property
    def allowance_pence(self) -> int:
        return self.allowance


@dataclass(frozen=True)
class FlatRateCode(TaxCode):
    code: SpecialCode

    @property
    def special_code(self) -> SpecialCode:
        return self.code


@dataclass(frozen=True)
class NoTaxCode(TaxCode):
    special_code: ClassVar[SpecialCode] = SpecialCode.NT


@dataclass(frozen=True)
class NoAllowanceCode(TaxCode):
    special_code: ClassVar[SpecialCode] = SpecialCode.ZERO_T


ParsedTaxCode = Union[AllowanceCode, KCode, FlatRateCode, NoTaxCode, NoAllowanceCode]


def _allowance_from_digits(code: str) -> int:
    # The number in the code is the allowance in pounds divided by ten
    digits = re.sub(r"[^0-9]", "", code)
    if not digits:
        return 0
    return int(digits) * 10 * 100


def parse_tax_code(tax_code: str) -> ParsedTaxCode:
    """Parse an HMRC tax code (case and whitespace insensitive).

    Codes without any digits parse to a zero allowance.
    """
    if not isinstance(tax_code, str) or not tax_code.strip():
        raise ValueError("Tax code is required")

    clean = re.sub(r"\s", "", tax_code).upper()
    basis = AccrualBasis.CUMULATIVE
    code = clean
    for suffix in EMERGENCY_SUFFIXES:
        if code.endswith(suffix) and len(code) > len(suffix):
            basis = AccrualBasis.WEEK1_MONTH1
            code = code[:-len(suffix)]
            break

    regime = Regime.STANDARD
    for special in SpecialCode:
        if code == special.value:
            break
        prefix = code[:1]
        if prefix in REGIME_PREFIXES and code[1:] == special.value:
            regime = REGIME_PREFIXES[prefix]
            break
    else:
        special = None

    if special is not None:
        if special == SpecialCode.NT:
            return NoTaxCode(raw_code=clean, regime=regime, basis=basis)
        if special == SpecialCode.ZERO_T:
            return NoAllowanceCode(raw_code=clean, regime=regime, basis=basis)
        return FlatRateCode(raw_code=clean, regime=regime, basis=basis, code=special)

    if code[:1] in REGIME_PREFIXES:
        regime = REGIME_PREFIXES[code[:1]]
        code = code[1:]

    if code.startswith("K"):
        return KCode(raw_code=clean, regime=regime, basis=basis, allowance=-_allowance_from_digits(code))

    return AllowanceCode(raw_code=clean, regime=regime, basis=basis, allowance=_allowance_from_digits(code))
