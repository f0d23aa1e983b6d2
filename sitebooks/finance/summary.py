"""
Project roll-up of receivables, payables, cash flow and TDS.
"""
from collections import defaultdict
from dataclasses import dataclass, asdict
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, List, Sequence, Tuple

from sitebooks.finance.money import ZERO, sum_money, to_decimal
from sitebooks.finance.settlement import paid_amount

CLIENT_INVOICE = "CLIENT_INVOICE"
EXPENSE = "EXPENSE"
PURCHASE_INVOICE = "PURCHASE_INVOICE"

_INFLOW = {"INCOME", "IN"}
_OUTFLOW = {"EXPENSE", "OUT"}


@dataclass(frozen=True)
class ProjectSummary:
    invoices_subtotal: Decimal
    invoices_total: Decimal
    invoices_paid: Decimal
    invoices_balance: Decimal

    expenses_subtotal: Decimal
    expenses_total: Decimal
    expenses_paid: Decimal
    expenses_balance: Decimal

    cash_in: Decimal
    cash_out: Decimal
    net_cash: Decimal

    tds_in: Decimal
    tds_out: Decimal
    net_tds: Decimal

    def as_dict(self) -> Dict[str, Decimal]:
        return asdict(self)


def _value(member: Any) -> str:
    return member.value if isinstance(member, Enum) else str(member)


def _group_allocations(allocations: Iterable[Any]) -> Dict[Tuple[str, Any], List[Any]]:
    grouped = defaultdict(list)
    for allocation in allocations:
        grouped[(_value(allocation.document_type), allocation.document_id)].append(allocation)
    return grouped


def _roll_up(documents: Sequence[Any], document_type: str, grouped) -> Tuple[Decimal, Decimal, Decimal]:
    subtotal = sum_money(getattr(doc, "subtotal", None) for doc in documents)
    total = sum_money(doc.total for doc in documents)
    paid = sum_money(paid_amount(doc, grouped.get((document_type, doc.id), [])) for doc in documents)
    return subtotal, total, paid


def project_summary(
    project_id: Any,
    invoices: Sequence[Any],
    expenses: Sequence[Any],
    transactions: Iterable[Any],
    allocations: Iterable[Any],
    bills: Sequence[Any] = (),
) -> ProjectSummary:
    """Sum a project's documents and cash movements.

    Purchase bills, when given, count on the expense side. Transactions are
    filtered by ``project_id``; transfers are ignored.
    """
    grouped = _group_allocations(allocations)

    inv_subtotal, inv_total, inv_paid = _roll_up(invoices, CLIENT_INVOICE, grouped)
    exp_subtotal, exp_total, exp_paid = _roll_up(expenses, EXPENSE, grouped)
    bill_subtotal, bill_total, bill_paid = _roll_up(bills, PURCHASE_INVOICE, grouped)

    exp_subtotal += bill_subtotal
    exp_total += bill_total
    exp_paid += bill_paid

    cash_in = cash_out = tds_in = tds_out = ZERO
    for txn in transactions:
        if getattr(txn, "project_id", None) != project_id:
            continue
        direction = _value(txn.type).upper()
        if direction in _INFLOW:
            cash_in += to_decimal(txn.amount)
            tds_in += to_decimal(txn.tds_amount)
        elif direction in _OUTFLOW:
            cash_out += to_decimal(txn.amount)
            tds_out += to_decimal(txn.tds_amount)

    return ProjectSummary(
        invoices_subtotal=inv_subtotal,
        invoices_total=inv_total,
        invoices_paid=inv_paid,
        invoices_balance=inv_total - inv_paid,
        expenses_subtotal=exp_subtotal,
        expenses_total=exp_total,
        expenses_paid=exp_paid,
        expenses_balance=exp_total - exp_paid,
        cash_in=cash_in,
        cash_out=cash_out,
        net_cash=cash_in - cash_out,
        tds_in=tds_in,
        tds_out=tds_out,
        net_tds=tds_in - tds_out,
    )
