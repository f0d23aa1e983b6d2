"""
Splitting one payment across several documents.

* ``split_sequential`` - receipts against client invoices. The TDS the client
  withheld is consumed in the order the allocations were given, so the first
  invoices absorb it. This order sensitivity is relied on by existing data.
* ``split_proportional`` - vendor payments against bills. TDS is spread by
  each bill's taxable share, each row rounded on its own, and the difference
  to the authoritative total (computed once on the aggregate base) is put on
  the last row so the rows always add up exactly.
* ``candidate_bases`` / ``choose_tds_result`` - the "try without tax, then
  try grossed-up" policy used when paying expenses, where whether a threshold
  is crossed depends on whether tax is withheld from the same payment.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Iterable, List, Optional, Sequence, Tuple

from sitebooks.finance.money import (
    ONE, ZERO, HUNDRED, MoneyInput, div, dmin, mul, percent_of, round2, sum_money,
    taxable_ratio, to_decimal,
)
from sitebooks.finance.tds import TdsResult


@dataclass(frozen=True)
class SplitRow:
    document_id: Any
    cash_amount: Decimal
    tds_amount: Decimal
    gross_amount: Decimal


@dataclass(frozen=True)
class GrossLine:
    """A requested settlement: ``gross_amount`` against one document."""
    document_id: Any
    gross_amount: Decimal


@dataclass(frozen=True)
class BillLine:
    """Gross amount applied to a bill, with the bill's taxable value and total."""
    document_id: Any
    gross_amount: Decimal
    taxable_value: Decimal
    total: Decimal

    @property
    def ratio(self) -> Decimal:
        return taxable_ratio(self.taxable_value, self.total)


@dataclass(frozen=True)
class CashLine:
    """Cash applied to a document, with the document's taxable value and total."""
    document_id: Any
    cash_amount: Decimal
    taxable_value: Decimal
    total: Decimal

    @property
    def ratio(self) -> Decimal:
        return taxable_ratio(self.taxable_value, self.total)


@dataclass(frozen=True)
class CandidateBases:
    plain: Decimal
    grossed_up: Decimal
    plain_rows: Tuple[Decimal, ...]
    grossed_up_rows: Tuple[Decimal, ...]


# ----------------------------
# Receipts: sequential TDS
# ----------------------------

def split_sequential(tds_total: MoneyInput, lines: Sequence[GrossLine]) -> List[SplitRow]:
    remaining_tds = to_decimal(tds_total)
    rows = []
    for line in lines:
        gross = to_decimal(line.gross_amount)
        tds_part = dmin(remaining_tds, gross)
        cash_part = gross - tds_part
        remaining_tds -= tds_part
        rows.append(SplitRow(line.document_id, cash_part, tds_part, gross))
    return rows


# ----------------------------
# Vendor payments: proportional TDS
# ----------------------------

def taxable_base(lines: Iterable[BillLine]) -> Decimal:
    """Aggregate taxable base of a payment, unrounded."""
    return sum_money(mul(to_decimal(line.gross_amount), line.ratio) for line in lines)


def distribute_tds(row_bases: Sequence[Decimal], rate_pct: MoneyInput, total_tds: MoneyInput) -> List[Decimal]:
    """Spread ``total_tds`` over rows by their taxable base.

    Each row is ``round2(base * rate / 100)``; the rounding difference against
    ``total_tds`` goes to the last row. The last row is not clamped, so it can
    go negative when earlier rows round up past the total.
    """
    total_tds = round2(total_tds)
    if not row_bases:
        return []
    if total_tds == ZERO:
        return [round2(ZERO) for _ in row_bases]

    rounded = [round2(percent_of(base, rate_pct)) for base in row_bases]
    diff = total_tds - sum_money(rounded)
    if diff != ZERO:
        rounded[-1] = round2(rounded[-1] + diff)
    return rounded


def split_proportional(lines: Sequence[BillLine], rate_pct: MoneyInput, total_tds: MoneyInput) -> List[SplitRow]:
    row_bases = [mul(to_decimal(line.gross_amount), line.ratio) for line in lines]
    tds_rows = distribute_tds(row_bases, rate_pct, total_tds)
    rows = []
    for line, tds_amount in zip(lines, tds_rows):
        gross = round2(line.gross_amount)
        rows.append(SplitRow(line.document_id, round2(gross - tds_amount), tds_amount, gross))
    return rows


# ----------------------------
# Expense payments: gross-up retry
# ----------------------------

def _grossed_up(cash: Decimal, ratio: Decimal, rate_pct: Decimal) -> Decimal:
    plain = mul(cash, ratio)
    denominator = ONE - div(mul(ratio, rate_pct), HUNDRED)
    if denominator <= ZERO:
        return plain
    return div(plain, denominator)


def candidate_bases(lines: Sequence[CashLine], rate_pct: MoneyInput) -> CandidateBases:
    """Taxable base assuming no TDS (a) and assuming TDS was withheld (b)."""
    rate = to_decimal(rate_pct)
    plain_rows = tuple(mul(to_decimal(line.cash_amount), line.ratio) for line in lines)
    grossed_rows = tuple(_grossed_up(to_decimal(line.cash_amount), line.ratio, rate) for line in lines)
    return CandidateBases(
        plain=sum_money(plain_rows),
        grossed_up=sum_money(grossed_rows),
        plain_rows=plain_rows,
        grossed_up_rows=grossed_rows,
    )


def choose_tds_result(
    calculate: Callable[[Decimal], TdsResult],
    bases: Sequence[Decimal],
) -> Tuple[int, Decimal, TdsResult]:
    """Run ``calculate`` on each candidate base in order; first applicable wins.

    Returns ``(index, base, result)``. When no candidate is applicable the
    first candidate's result is returned.
    """
    first: Optional[Tuple[int, Decimal, TdsResult]] = None
    for index, base in enumerate(bases):
        result = calculate(base)
        if result.applicable:
            return index, base, result
        if first is None:
            first = (index, base, result)
    if first is None:
        raise ValueError("At least one candidate base is required")
    return first


def split_on_cash(
    lines: Sequence[CashLine],
    row_bases: Sequence[Decimal],
    rate_pct: MoneyInput,
    total_tds: MoneyInput,
) -> List[SplitRow]:
    """Cash stays as applied; TDS is added on top so gross = cash + tds."""
    tds_rows = distribute_tds(list(row_bases), rate_pct, total_tds)
    rows = []
    for line, tds_amount in zip(lines, tds_rows):
        cash = round2(line.cash_amount)
        rows.append(SplitRow(line.document_id, cash, tds_amount, round2(cash + tds_amount)))
    return rows
