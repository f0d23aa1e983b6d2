"""
Settlement calculator: paid amount, balance and payment status of a document.

Documents and allocations are read by attribute, so ORM rows and plain
objects work the same way. A document needs ``total`` and optionally
``due_date`` / ``status``; an allocation needs ``cash_amount`` and optionally
``tds_amount``. Callers pass only the allocations of the one document.
"""
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, Optional

from sitebooks.finance.money import ZERO, to_decimal


class PaymentStatus(str, Enum):
    DRAFT = "Draft"
    SENT = "Sent"
    UNPAID = "Unpaid"
    PARTIALLY_PAID = "PartiallyPaid"
    PAID = "Paid"
    OVERDUE = "Overdue"


@dataclass(frozen=True)
class Settlement:
    paid_amount: Decimal
    balance: Decimal
    status: PaymentStatus


def allocation_gross(allocation: Any) -> Decimal:
    return to_decimal(allocation.cash_amount) + to_decimal(getattr(allocation, "tds_amount", None))


def paid_amount(document: Any, allocations: Iterable[Any]) -> Decimal:
    """Cash plus TDS over every allocation given; the document is not consulted."""
    total = ZERO
    for allocation in allocations:
        total += allocation_gross(allocation)
    return total


def balance(document: Any, allocations: Iterable[Any]) -> Decimal:
    """Document total minus paid amount. Negative when over-allocated upstream."""
    return to_decimal(document.total) - paid_amount(document, allocations)


def _as_date(value: Optional[Any]) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    return value


def _is_overdue(document: Any, today: date) -> bool:
    due = _as_date(getattr(document, "due_date", None))
    return due is not None and _as_date(today) > due


def invoice_status(document: Any, allocations: Iterable[Any], today: date) -> PaymentStatus:
    stored = (getattr(document, "status", None) or "").strip().upper()
    if stored == "DRAFT":
        return PaymentStatus.DRAFT

    allocations = list(allocations)
    paid = paid_amount(document, allocations)
    if to_decimal(document.total) - paid <= ZERO:
        return PaymentStatus.PAID
    if paid > ZERO:
        return PaymentStatus.PARTIALLY_PAID
    if _is_overdue(document, today):
        return PaymentStatus.OVERDUE
    return PaymentStatus.SENT


def expense_status(document: Any, allocations: Iterable[Any], today: date) -> PaymentStatus:
    """Same ladder as invoices, without the Draft override and with Unpaid for Sent.

    Also used for purchase bills.
    """
    allocations = list(allocations)
    paid = paid_amount(document, allocations)
    if to_decimal(document.total) - paid <= ZERO:
        return PaymentStatus.PAID
    if paid > ZERO:
        return PaymentStatus.PARTIALLY_PAID
    if _is_overdue(document, today):
        return PaymentStatus.OVERDUE
    return PaymentStatus.UNPAID


def settle_invoice(document: Any, allocations: Iterable[Any], today: date) -> Settlement:
    allocations = list(allocations)
    return Settlement(
        paid_amount=paid_amount(document, allocations),
        balance=balance(document, allocations),
        status=invoice_status(document, allocations, today),
    )


def settle_expense(document: Any, allocations: Iterable[Any], today: date) -> Settlement:
    allocations = list(allocations)
    return Settlement(
        paid_amount=paid_amount(document, allocations),
        balance=balance(document, allocations),
        status=expense_status(document, allocations, today),
    )
