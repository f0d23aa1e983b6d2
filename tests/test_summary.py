from datetime import date
from decimal import Decimal
from types import SimpleNamespace

from sitebooks.finance.fiscal_year import fy_end, fy_label, fy_start
from sitebooks.finance.summary import project_summary


def allocation(document_type, document_id, cash, tds):
    return SimpleNamespace(
        document_type=document_type, document_id=document_id,
        cash_amount=Decimal(cash), tds_amount=Decimal(tds),
    )


def transaction(type, amount, tds, project_id=1):
    return SimpleNamespace(type=type, amount=Decimal(amount), tds_amount=Decimal(tds), project_id=project_id)


def test_project_summary_scenario():
    invoices = [SimpleNamespace(id=10, total=Decimal("118000"), subtotal=Decimal("100000"))]
    expenses = [SimpleNamespace(id=10, total=Decimal("59000"), subtotal=Decimal("50000"))]
    allocations = [
        allocation("CLIENT_INVOICE", 10, "47000", "3000"),
        allocation("EXPENSE", 10, "20000", "500"),
    ]
    transactions = [
        transaction("INCOME", "47000", "3000"),
        transaction("EXPENSE", "20000", "500"),
        transaction("TRANSFER", "99999", "0"),
        transaction("INCOME", "12345", "0", project_id=2),
    ]

    summary = project_summary(1, invoices, expenses, transactions, allocations)

    assert summary.invoices_paid == Decimal("50000")
    assert summary.invoices_balance == Decimal("68000")
    assert summary.invoices_subtotal == Decimal("100000")
    assert summary.expenses_paid == Decimal("20500")
    assert summary.expenses_balance == Decimal("38500")
    assert summary.cash_in == Decimal("47000")
    assert summary.cash_out == Decimal("20000")
    assert summary.net_cash == Decimal("27000")
    assert summary.net_tds == Decimal("2500")


def test_bills_count_as_payables():
    bills = [SimpleNamespace(id=3, total=Decimal("11800"), subtotal=Decimal("10000"))]
    allocations = [allocation("PURCHASE_INVOICE", 3, "5800", "200")]

    summary = project_summary(1, [], [], [], allocations, bills=bills)

    assert summary.expenses_total == Decimal("11800")
    assert summary.expenses_subtotal == Decimal("10000")
    assert summary.expenses_paid == Decimal("6000")
    assert summary.invoices_total == Decimal("0")


def test_empty_project_as_dict():
    data = project_summary(1, [], [], [], []).as_dict()
    assert set(data) >= {"invoices_paid", "expenses_paid", "net_cash", "net_tds"}
    assert all(value == Decimal("0") for value in data.values())


def test_fiscal_year_window():
    assert fy_start(date(2026, 2, 28)) == date(2025, 4, 1)
    assert fy_start(date(2025, 4, 1)) == date(2025, 4, 1)
    assert fy_end(date(2025, 4, 1)) == date(2026, 3, 31)
    assert fy_label(date(2026, 3, 31)) == "2025-26"
    assert fy_label(date(2026, 4, 1)) == "2026-27"
    assert fy_label(date(2026, 7, 1), start_month=1) == "2026"
