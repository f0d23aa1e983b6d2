from decimal import Decimal

import pytest

from sitebooks.finance.distribution import (
    BillLine, CashLine, GrossLine, candidate_bases, choose_tds_result, distribute_tds,
    split_on_cash, split_proportional, split_sequential, taxable_base
)
from sitebooks.finance.money import round2, sum_money
from sitebooks.finance.tds import ThresholdBreached, TdsResult


def result(applicable, amount="0"):
    return TdsResult(
        applicable=applicable,
        rate_pct=Decimal("2"),
        tds_amount=Decimal(amount),
        threshold_breached=ThresholdBreached.SINGLE if applicable else ThresholdBreached.NONE,
        reason="",
    )


class TestSequential:
    def test_tds_consumed_in_order(self):
        rows = split_sequential(Decimal("3000"), [
            GrossLine(1, Decimal("2000")),
            GrossLine(2, Decimal("5000")),
            GrossLine(3, Decimal("4000")),
        ])
        assert [(r.cash_amount, r.tds_amount) for r in rows] == [
            (Decimal("0"), Decimal("2000")),
            (Decimal("4000"), Decimal("1000")),
            (Decimal("4000"), Decimal("0")),
        ]
        assert all(r.cash_amount + r.tds_amount == r.gross_amount for r in rows)

    def test_order_matters(self):
        forward = split_sequential(Decimal("100"), [GrossLine(1, Decimal("500")), GrossLine(2, Decimal("500"))])
        reverse = split_sequential(Decimal("100"), [GrossLine(2, Decimal("500")), GrossLine(1, Decimal("500"))])
        assert forward[0].document_id == 1 and forward[0].tds_amount == Decimal("100")
        assert reverse[0].document_id == 2 and reverse[0].tds_amount == Decimal("100")

    def test_no_lines(self):
        assert split_sequential(Decimal("100"), []) == []


class TestProportional:
    def test_rounding_closure_puts_difference_on_last_row(self):
        lines = [BillLine(i, Decimal("333.33"), Decimal("333.33"), Decimal("333.33")) for i in (1, 2, 3)]
        rows = split_proportional(lines, Decimal("1"), Decimal("10.00"))

        # 3.3333 rounds to 3.33 per row; the missing cent lands on the last one
        assert [r.tds_amount for r in rows] == [Decimal("3.33"), Decimal("3.33"), Decimal("3.34")]
        assert sum_money(r.tds_amount for r in rows) == Decimal("10.00")
        assert all(r.cash_amount == r.gross_amount - r.tds_amount for r in rows)

    def test_split_by_taxable_share(self):
        lines = [
            BillLine(1, Decimal("59000"), Decimal("50000"), Decimal("59000")),
            BillLine(2, Decimal("11800"), Decimal("10000"), Decimal("11800")),
        ]
        base = taxable_base(lines)
        assert round2(base) == Decimal("60000.00")

        rows = split_proportional(lines, Decimal("2"), Decimal("1200.00"))
        assert [r.tds_amount for r in rows] == [Decimal("1000.00"), Decimal("200.00")]
        assert [r.cash_amount for r in rows] == [Decimal("58000.00"), Decimal("11600.00")]

    def test_zero_total_uses_full_ratio(self):
        line = BillLine(1, Decimal("1000"), Decimal("0"), Decimal("0"))
        assert line.ratio == Decimal("1")
        assert taxable_base([line]) == Decimal("1000")

    def test_not_applicable_gives_zero_rows(self):
        lines = [BillLine(1, Decimal("100"), Decimal("100"), Decimal("100"))]
        rows = split_proportional(lines, Decimal("2"), Decimal("0"))
        assert rows[0].tds_amount == Decimal("0.00")
        assert rows[0].cash_amount == Decimal("100.00")

    def test_distribute_empty(self):
        assert distribute_tds([], Decimal("2"), Decimal("5")) == []

    def test_last_row_absorbs_difference_even_below_zero(self):
        lines = [
            BillLine(1, Decimal("0.50"), Decimal("0.50"), Decimal("0.50")),
            BillLine(2, Decimal("0.50"), Decimal("0.50"), Decimal("0.50")),
            BillLine(3, Decimal("100.00"), Decimal("0"), Decimal("100.00")),
        ]
        rows = split_proportional(lines, Decimal("2"), Decimal("0.01"))
        assert [(r.cash_amount, r.tds_amount, r.gross_amount) for r in rows] == [
            (Decimal("0.49"), Decimal("0.01"), Decimal("0.50")),
            (Decimal("0.49"), Decimal("0.01"), Decimal("0.50")),
            (Decimal("100.01"), Decimal("-0.01"), Decimal("100.00")),
        ]
        assert sum_money(r.tds_amount for r in rows) == Decimal("0.01")


class TestGrossUp:
    def test_candidate_bases(self):
        lines = [CashLine(1, Decimal("29400"), Decimal("50000"), Decimal("50000"))]
        bases = candidate_bases(lines, Decimal("2"))
        assert bases.plain == Decimal("29400")
        assert round2(bases.grossed_up) == Decimal("30000.00")
        assert len(bases.plain_rows) == len(bases.grossed_up_rows) == 1

    def test_denominator_guard_falls_back_to_plain(self):
        lines = [CashLine(1, Decimal("100"), Decimal("100"), Decimal("100"))]
        bases = candidate_bases(lines, Decimal("100"))
        assert bases.grossed_up == bases.plain == Decimal("100")

    def test_first_applicable_candidate_wins(self):
        calls = []

        def calculate(base):
            calls.append(base)
            return result(base > Decimal("30000"), "612.24")

        index, base, chosen = choose_tds_result(calculate, [Decimal("30000"), Decimal("30612.24")])
        assert (index, base) == (1, Decimal("30612.24"))
        assert chosen.applicable
        assert calls == [Decimal("30000"), Decimal("30612.24")]

    def test_first_candidate_applicable_stops_early(self):
        calls = []

        def calculate(base):
            calls.append(base)
            return result(True, "1")

        index, _, _ = choose_tds_result(calculate, [Decimal("40000"), Decimal("41000")])
        assert index == 0
        assert calls == [Decimal("40000")]

    def test_none_applicable_returns_first(self):
        index, base, chosen = choose_tds_result(lambda b: result(False), [Decimal("10"), Decimal("11")])
        assert (index, base) == (0, Decimal("10"))
        assert not chosen.applicable

    def test_requires_a_candidate(self):
        with pytest.raises(ValueError):
            choose_tds_result(lambda b: result(False), [])

    def test_split_on_cash_adds_tds_on_top(self):
        lines = [
            CashLine(1, Decimal("20000"), Decimal("20000"), Decimal("20000")),
            CashLine(2, Decimal("15000"), Decimal("15000"), Decimal("15000")),
        ]
        bases = candidate_bases(lines, Decimal("2"))
        rows = split_on_cash(lines, bases.plain_rows, Decimal("2"), Decimal("700.00"))
        assert [r.cash_amount for r in rows] == [Decimal("20000.00"), Decimal("15000.00")]
        assert [r.tds_amount for r in rows] == [Decimal("400.00"), Decimal("300.00")]
        assert [r.gross_amount for r in rows] == [Decimal("20400.00"), Decimal("15300.00")]
