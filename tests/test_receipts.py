from datetime import date
from decimal import Decimal

import pytest

from sitebooks.core.exceptions import NotFoundError, ValidationFailure
from sitebooks.finance.settlement import PaymentStatus
from sitebooks.models import AuditLog, Transaction
from sitebooks.schemas import ReceiptCreate
from sitebooks.services import InvoiceService, ReceiptService


def receipt(client_row, project, allocations, amount="47000", tds="3000"):
    return ReceiptCreate(
        client_id=client_row.id,
        project_id=project.id,
        date=date(2026, 2, 20),
        amount=Decimal(amount),
        tds_amount=Decimal(tds),
        mode="BANK_TRANSFER",
        allocations=[{"invoice_id": inv_id, "amount_applied": Decimal(applied)} for inv_id, applied in allocations],
    )


def test_receipt_settles_invoice(db, tenant, user, client_row, project, make_invoice):
    invoice = make_invoice()
    assert invoice.total == Decimal("118000.00")

    transaction = ReceiptService(db).create(receipt(client_row, project, [(invoice.id, "50000")]), tenant.id, user=user)
    db.commit()

    assert transaction.type == "INCOME"
    assert transaction.amount == Decimal("47000.00")
    assert transaction.tds_amount == Decimal("3000.00")
    [allocation] = transaction.allocations
    assert allocation.cash_amount == Decimal("47000.00")
    assert allocation.tds_amount == Decimal("3000.00")
    assert allocation.project_id == project.id

    row = InvoiceService(db).get_with_settlement(invoice.id, tenant.id, today=date(2026, 2, 28))
    assert row["paid_amount"] == Decimal("50000.00")
    assert row["balance"] == Decimal("68000.00")
    assert row["computed_status"] == PaymentStatus.PARTIALLY_PAID

    audit = db.query(AuditLog).filter(AuditLog.resource_id == transaction.id).one()
    assert audit.action == "PAYMENT_RECEIVED"
    assert audit.username == user.username


def test_tds_goes_to_first_invoices(db, tenant, client_row, project, make_invoice):
    first = make_invoice("INV-001", basic=Decimal("1000"), gst=Decimal("0"))
    second = make_invoice("INV-002", basic=Decimal("5000"), gst=Decimal("0"))

    transaction = ReceiptService(db).create(
        receipt(client_row, project, [(first.id, "1000"), (second.id, "5000")], amount="4500", tds="1500"),
        tenant.id,
    )

    by_invoice = {a.document_id: a for a in transaction.allocations}
    assert (by_invoice[first.id].cash_amount, by_invoice[first.id].tds_amount) == (Decimal("0.00"), Decimal("1000.00"))
    assert (by_invoice[second.id].cash_amount, by_invoice[second.id].tds_amount) == (Decimal("4500.00"), Decimal("500.00"))


def test_applied_over_cash_plus_tds_rejected(db, tenant, client_row, project, make_invoice):
    invoice = make_invoice()
    with pytest.raises(ValidationFailure) as exc:
        ReceiptService(db).create(receipt(client_row, project, [(invoice.id, "50001")]), tenant.id)
    assert exc.value.details["constraint"] == "receipt_total"
    assert db.query(Transaction).count() == 0


def test_invoice_cannot_be_overpaid(db, tenant, client_row, project, make_invoice):
    invoice = make_invoice(basic=Decimal("1000"), gst=Decimal("0"))
    ReceiptService(db).create(receipt(client_row, project, [(invoice.id, "800")], amount="800", tds="0"), tenant.id)
    db.commit()

    with pytest.raises(ValidationFailure) as exc:
        ReceiptService(db).create(receipt(client_row, project, [(invoice.id, "300")], amount="300", tds="0"), tenant.id)
    assert exc.value.details["constraint"] == "document_total"


def test_unknown_invoice_rejected(db, tenant, client_row, project):
    with pytest.raises(ValidationFailure) as exc:
        ReceiptService(db).create(receipt(client_row, project, [(999, "100")]), tenant.id)
    assert exc.value.message == "One or more invoices were not found."


def test_invoice_of_another_project_rejected(db, tenant, client_row, project, make_invoice):
    from sitebooks.schemas import ProjectCreate
    from sitebooks.services import ProjectService

    other = ProjectService(db).create(ProjectCreate(name="Villa 7", client_id=client_row.id), tenant.id)
    invoice = make_invoice(project_id=other.id)

    with pytest.raises(ValidationFailure) as exc:
        ReceiptService(db).create(receipt(client_row, project, [(invoice.id, "100")]), tenant.id)
    assert exc.value.details["constraint"] == "same_project"


def test_unknown_client(db, tenant, client_row, project):
    data = receipt(client_row, project, [])
    data.client_id = 999
    with pytest.raises(NotFoundError):
        ReceiptService(db).create(data, tenant.id)


def test_unallocated_receipt(db, tenant, client_row, project):
    transaction = ReceiptService(db).create(receipt(client_row, project, [], amount="2500", tds="0"), tenant.id)
    assert transaction.amount == Decimal("2500.00")
    assert transaction.allocations == []
