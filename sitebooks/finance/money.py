"""
Exact-precision money helpers.

Every amount in the settlement core is a ``Decimal``. Proportional math is
carried at full context precision and rounded once, with ``round2``, right
before a value is persisted or shown.
"""
from decimal import Decimal, ROUND_HALF_UP, localcontext
from typing import Iterable, Optional, Union

MoneyInput = Union[Decimal, int, str]

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")

# Precision for intermediate ratio math (default context is 28 digits)
PRECISION = 34


def to_decimal(value: Optional[MoneyInput]) -> Decimal:
    """Coerce a decimal-safe value to ``Decimal``; ``None`` becomes zero.

    Floats are rejected: the boundary (pydantic schemas) is responsible for
    turning user input into decimals, the core never sees binary floats.
    """
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(f"Money values must be Decimal, int or str, got {type(value).__name__}")
    if isinstance(value, (int, str)):
        return Decimal(value)
    raise TypeError(f"Unsupported money type: {type(value).__name__}")


def add(a: MoneyInput, b: MoneyInput) -> Decimal:
    return to_decimal(a) + to_decimal(b)


def sub(a: MoneyInput, b: MoneyInput) -> Decimal:
    return to_decimal(a) - to_decimal(b)


def mul(a: MoneyInput, b: MoneyInput) -> Decimal:
    with localcontext() as ctx:
        ctx.prec = PRECISION
        return to_decimal(a) * to_decimal(b)


def div(a: MoneyInput, b: MoneyInput, fallback: Optional[MoneyInput] = None) -> Decimal:
    """Divide ``a`` by ``b``.

    A zero divisor returns ``fallback`` (or ``a`` itself when no fallback is
    given), so a zero-total document degrades to "no ratio scaling" instead of
    raising.
    """
    divisor = to_decimal(b)
    if divisor == ZERO:
        return to_decimal(a if fallback is None else fallback)
    with localcontext() as ctx:
        ctx.prec = PRECISION
        return to_decimal(a) / divisor


def dmin(a: MoneyInput, b: MoneyInput) -> Decimal:
    return min(to_decimal(a), to_decimal(b))


def sum_money(values: Iterable[Optional[MoneyInput]]) -> Decimal:
    total = ZERO
    for value in values:
        total += to_decimal(value)
    return total


def round2(value: MoneyInput) -> Decimal:
    """Round half-up to two decimal places."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def percent_of(amount: MoneyInput, rate_pct: MoneyInput) -> Decimal:
    """``amount * rate / 100`` at full precision (not rounded)."""
    return div(mul(amount, rate_pct), HUNDRED)


def taxable_ratio(taxable_value: MoneyInput, total: MoneyInput) -> Decimal:
    """Taxable fraction of a document; 1 when the total is not positive."""
    total = to_decimal(total)
    if total <= ZERO:
        return ONE
    return div(taxable_value, total)


def is_positive(value: Optional[MoneyInput]) -> bool:
    return to_decimal(value) > ZERO
