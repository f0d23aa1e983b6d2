from decimal import Decimal

import pytest

from sitebooks.finance.money import (
    ONE, ZERO, div, dmin, is_positive, percent_of, round2, sum_money, taxable_ratio, to_decimal
)


def test_to_decimal_accepts_strings_ints_and_none():
    assert to_decimal("118000.50") == Decimal("118000.50")
    assert to_decimal(7) == Decimal("7")
    assert to_decimal(None) == ZERO


@pytest.mark.parametrize("value", [0.1, True])
def test_to_decimal_rejects_floats_and_bools(value):
    with pytest.raises(TypeError):
        to_decimal(value)


def test_round2_is_half_up():
    assert round2(Decimal("2.345")) == Decimal("2.35")
    assert round2(Decimal("2.344")) == Decimal("2.34")
    assert round2(Decimal("-2.345")) == Decimal("-2.35")


def test_sum_money_is_exact():
    # ten cents ten times; binary floats would drift
    assert sum_money([Decimal("0.10")] * 10) == Decimal("1.00")
    assert sum_money([]) == ZERO
    assert sum_money(["1.5", None, 2]) == Decimal("3.5")


def test_div_by_zero_uses_fallback():
    assert div(Decimal("10"), ZERO, fallback=ONE) == ONE
    assert div(Decimal("10"), ZERO) == Decimal("10")
    assert div(Decimal("10"), Decimal("4")) == Decimal("2.5")


def test_taxable_ratio():
    ratio = taxable_ratio(Decimal("100000"), Decimal("118000"))
    assert ratio.quantize(Decimal("0.000001")) == Decimal("0.847458")
    assert taxable_ratio(Decimal("500"), ZERO) == ONE
    assert taxable_ratio(Decimal("500"), Decimal("-1")) == ONE


def test_percent_of_is_not_rounded():
    assert percent_of(Decimal("333.33"), Decimal("1")) == Decimal("3.3333")


def test_helpers():
    assert dmin(Decimal("3"), Decimal("2")) == Decimal("2")
    assert is_positive(Decimal("0.01"))
    assert not is_positive(ZERO)
    assert not is_positive(None)
