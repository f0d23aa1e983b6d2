from datetime import date
from decimal import Decimal

import pytest

from sitebooks.core.exceptions import NotFoundError, ValidationFailure
from sitebooks.models import AuditLog
from sitebooks.schemas import (
    AllocationItem, AllocationUpdate, ClientCreate, TransactionCreate, TransactionUpdate, VendorCreate
)
from sitebooks.services import AllocationService, ClientService, TransactionService, VendorService


def new_transaction(db, tenant, type="INCOME", amount="10000", project_id=None, allocations=(), **parties):
    transaction = TransactionService(db).create(
        TransactionCreate(
            type=type, date=date(2026, 1, 20), amount=Decimal(amount), project_id=project_id,
            allocations=list(allocations), **parties,
        ),
        tenant.id,
    )
    db.commit()
    return transaction


def test_create_with_allocations(db, tenant, make_invoice):
    invoice = make_invoice()
    transaction = new_transaction(
        db, tenant, allocations=[AllocationItem(invoice_id=invoice.id, cash_amount=Decimal("9000"), tds_amount=Decimal("1000"))]
    )
    [allocation] = TransactionService(db).get_by_id(transaction.id, tenant.id).allocations
    assert allocation.document_type == "CLIENT_INVOICE"
    assert allocation.gross_amount == Decimal("10000.00")
    # no project on the transaction: the invoice's project is used
    assert allocation.project_id == invoice.project_id


def test_transfer_cannot_allocate(db, tenant, make_invoice):
    invoice = make_invoice()
    transaction = new_transaction(db, tenant, type="TRANSFER")
    with pytest.raises(ValidationFailure) as exc:
        AllocationService(db).create(transaction.id, [AllocationItem(invoice_id=invoice.id, cash_amount=Decimal("1"))], tenant.id)
    assert exc.value.message == "TRANSFER transactions cannot have allocations."


def test_income_only_settles_invoices(db, tenant, vendor, make_expense):
    expense = make_expense(vendor)
    transaction = new_transaction(db, tenant)
    with pytest.raises(ValidationFailure) as exc:
        AllocationService(db).create(transaction.id, [AllocationItem(expense_id=expense.id, cash_amount=Decimal("1"))], tenant.id)
    assert exc.value.message == "INCOME transactions can only allocate to invoices."


def test_expense_only_settles_expenses_and_bills(db, tenant, make_invoice):
    invoice = make_invoice()
    transaction = new_transaction(db, tenant, type="EXPENSE")
    with pytest.raises(ValidationFailure) as exc:
        AllocationService(db).create(transaction.id, [AllocationItem(invoice_id=invoice.id, cash_amount=Decimal("1"))], tenant.id)
    assert exc.value.message == "EXPENSE transactions can only allocate to expenses or bills."


def test_exactly_one_reference(db, tenant, make_invoice, vendor, make_expense):
    invoice = make_invoice()
    expense = make_expense(vendor)
    transaction = new_transaction(db, tenant)
    for item in (
        AllocationItem(cash_amount=Decimal("1")),
        AllocationItem(invoice_id=invoice.id, expense_id=expense.id, cash_amount=Decimal("1")),
    ):
        with pytest.raises(ValidationFailure) as exc:
            AllocationService(db).create(transaction.id, [item], tenant.id)
        assert exc.value.details["constraint"] == "document_reference"


def test_zero_amount_rejected(db, tenant, make_invoice):
    invoice = make_invoice()
    transaction = new_transaction(db, tenant)
    with pytest.raises(ValidationFailure) as exc:
        AllocationService(db).create(transaction.id, [AllocationItem(invoice_id=invoice.id, cash_amount=Decimal("0"))], tenant.id)
    assert exc.value.message == "Allocation amount must be greater than 0."


def test_cash_total_bounded_by_transaction(db, tenant, make_invoice):
    invoice = make_invoice()
    transaction = new_transaction(db, tenant, amount="1000")
    service = AllocationService(db)
    service.create(transaction.id, [AllocationItem(invoice_id=invoice.id, cash_amount=Decimal("600"))], tenant.id)
    db.commit()

    with pytest.raises(ValidationFailure) as exc:
        service.create(transaction.id, [AllocationItem(invoice_id=invoice.id, cash_amount=Decimal("401"))], tenant.id)
    assert exc.value.message == "Allocations cash total exceeds transaction amount."

    with pytest.raises(ValidationFailure):
        TransactionService(db).update(transaction.id, tenant.id, TransactionUpdate(amount=Decimal("500")))


def test_document_total_bounded(db, tenant, make_invoice):
    invoice = make_invoice(basic=Decimal("1000"), gst=Decimal("0"))
    transaction = new_transaction(db, tenant, amount="5000")
    with pytest.raises(ValidationFailure) as exc:
        AllocationService(db).create(
            transaction.id,
            [
                AllocationItem(invoice_id=invoice.id, cash_amount=Decimal("600")),
                AllocationItem(invoice_id=invoice.id, cash_amount=Decimal("300"), tds_amount=Decimal("101")),
            ],
            tenant.id,
        )
    assert exc.value.details["constraint"] == "document_total"


def test_unknown_document(db, tenant):
    transaction = new_transaction(db, tenant)
    with pytest.raises(ValidationFailure) as exc:
        AllocationService(db).create(transaction.id, [AllocationItem(invoice_id=404, cash_amount=Decimal("1"))], tenant.id)
    assert exc.value.message == "One or more invoices were not found."


def test_unknown_transaction(db, tenant, make_invoice):
    invoice = make_invoice()
    with pytest.raises(NotFoundError):
        AllocationService(db).create(999, [AllocationItem(invoice_id=invoice.id, cash_amount=Decimal("1"))], tenant.id)


def test_replace_excludes_own_allocations_from_capacity(db, tenant, user, make_invoice):
    invoice = make_invoice(basic=Decimal("1000"), gst=Decimal("0"))
    transaction = new_transaction(
        db, tenant, amount="1000", allocations=[AllocationItem(invoice_id=invoice.id, cash_amount=Decimal("1000"))]
    )

    created = AllocationService(db).replace(
        transaction.id,
        [AllocationItem(invoice_id=invoice.id, cash_amount=Decimal("900"), tds_amount=Decimal("100"))],
        tenant.id,
        user=user,
    )
    db.commit()

    assert len(created) == 1
    [allocation] = AllocationService(db).get_by_transaction(transaction.id, tenant.id)
    assert (allocation.cash_amount, allocation.tds_amount) == (Decimal("900.00"), Decimal("100.00"))
    assert db.query(AuditLog).one().action == "ALLOCATIONS_REPLACED"


def test_update_and_delete_allocation(db, tenant, make_invoice):
    invoice = make_invoice(basic=Decimal("1000"), gst=Decimal("0"))
    transaction = new_transaction(
        db, tenant, amount="1000", allocations=[AllocationItem(invoice_id=invoice.id, cash_amount=Decimal("400"))]
    )
    [allocation] = AllocationService(db).get_by_transaction(transaction.id, tenant.id)

    updated = AllocationService(db).update(
        allocation.id, AllocationUpdate(cash_amount=Decimal("950"), tds_amount=Decimal("50")), tenant.id
    )
    assert updated.gross_amount == Decimal("1000.00")

    with pytest.raises(ValidationFailure):
        AllocationService(db).update(allocation.id, AllocationUpdate(cash_amount=Decimal("1001")), tenant.id)

    assert AllocationService(db).delete(allocation.id, tenant.id)
    assert not AllocationService(db).delete(allocation.id, tenant.id)


def test_transaction_update_syncs_allocation_project(db, tenant, client_row, project, make_invoice):
    from sitebooks.schemas import ProjectCreate
    from sitebooks.services import ProjectService

    invoice = make_invoice()
    transaction = new_transaction(
        db, tenant, allocations=[AllocationItem(invoice_id=invoice.id, cash_amount=Decimal("100"))]
    )
    other = ProjectService(db).create(ProjectCreate(name="Annex", client_id=client_row.id), tenant.id)

    updated = TransactionService(db).update(transaction.id, tenant.id, TransactionUpdate(project_id=other.id))
    assert updated.project_id == other.id
    assert [a.project_id for a in updated.allocations] == [other.id]

    with pytest.raises(ValidationFailure):
        TransactionService(db).update(transaction.id, tenant.id, TransactionUpdate(project_id=999))


def test_transaction_listing_and_delete(db, tenant):
    income = new_transaction(db, tenant)
    new_transaction(db, tenant, type="EXPENSE")

    service = TransactionService(db)
    assert [t.id for t in service.get_by_tenant(tenant.id, type="INCOME")] == [income.id]
    assert len(service.get_by_tenant(tenant.id, date_from=date(2026, 1, 21))) == 0
    assert service.delete(income.id, tenant.id)
    assert service.get_by_id(income.id, tenant.id) is None


def test_counterparties_must_belong_to_tenant(db, tenant, other_tenant_user, vendor, client_row):
    foreign_vendor = VendorService(db).create(VendorCreate(name="Elsewhere Works"), other_tenant_user.tenant_id)
    foreign_client = ClientService(db).create(ClientCreate(name="Elsewhere Estates"), other_tenant_user.tenant_id)
    db.commit()

    with pytest.raises(ValidationFailure) as exc:
        new_transaction(db, tenant, type="EXPENSE", vendor_id=foreign_vendor.id)
    assert exc.value.details["constraint"] == "vendor_exists"
    db.rollback()

    with pytest.raises(ValidationFailure) as exc:
        new_transaction(db, tenant, client_id=foreign_client.id)
    assert exc.value.details["constraint"] == "client_exists"
    db.rollback()

    transaction = new_transaction(db, tenant, type="EXPENSE", vendor_id=vendor.id)
    service = TransactionService(db)
    with pytest.raises(ValidationFailure) as exc:
        service.update(transaction.id, tenant.id, TransactionUpdate(vendor_id=foreign_vendor.id))
    assert exc.value.details["constraint"] == "vendor_exists"
    db.rollback()

    updated = service.update(transaction.id, tenant.id, TransactionUpdate(client_id=client_row.id))
    assert updated.client_id == client_row.id
    assert service.get_by_id(transaction.id, tenant.id).vendor_id == vendor.id
