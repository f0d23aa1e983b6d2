from datetime import date
from decimal import Decimal

import pytest

from sitebooks.core.exceptions import ValidationFailure
from sitebooks.models import AuditLog, LabourSheetLine, Transaction
from sitebooks.schemas import LabourSheetCreate
from sitebooks.services import LabourService, ProjectService, TdsService


def sheet(project, lines, **extra):
    return LabourSheetCreate(
        project_id=project.id,
        date=date(2026, 1, 12),
        mode="CASH",
        lines=[{"role": role, "headcount": headcount, "rate": Decimal(rate)} for role, headcount, rate in lines],
        **extra,
    )


def test_sheet_posts_expense_transaction(db, tenant, user, project):
    created = LabourService(db).create(
        sheet(project, [("Mason", 4, "850"), ("Helper", 6, "550.505")], reference="  Muster 12  "),
        tenant.id,
        user=user,
    )
    db.commit()

    assert [line.amount for line in created.lines] == [Decimal("3400.00"), Decimal("3303.06")]
    assert created.total == Decimal("6703.06")
    assert created.reference == "Muster 12"

    transaction = db.get(Transaction, created.transaction_id)
    assert transaction.type == "EXPENSE"
    assert transaction.amount == Decimal("6703.06")
    assert transaction.tds_amount == Decimal("0.00")
    assert transaction.vendor_id is None
    assert transaction.project_id == project.id
    assert db.query(AuditLog).one().action == "LABOUR_PAID"


def test_wages_reduce_project_cash(db, tenant, project):
    LabourService(db).create(sheet(project, [("Carpenter", 2, "1000")]), tenant.id)
    db.commit()

    summary = ProjectService(db).get_summary(project.id, tenant.id)
    assert summary["cash_out"] == Decimal("2000.00")
    assert summary["net_cash"] == Decimal("-2000.00")
    assert summary["expenses_paid"] == Decimal("0")


def test_wages_stay_out_of_vendor_threshold(db, tenant, project, vendor):
    LabourService(db).create(sheet(project, [("Mason", 50, "1000")]), tenant.id)
    db.commit()
    assert TdsService(db).ytd_base(vendor.id, tenant.id, date(2026, 3, 1)) == Decimal("0")


def test_zero_total_rejected(db, tenant, project):
    with pytest.raises(ValidationFailure) as exc:
        LabourService(db).create(sheet(project, [("Volunteer", 3, "0")]), tenant.id)
    assert exc.value.details["constraint"] == "labour_total"
    assert db.query(Transaction).count() == 0


def test_project_of_other_tenant_rejected(db, tenant, other_tenant_user, project):
    with pytest.raises(ValidationFailure) as exc:
        LabourService(db).create(sheet(project, [("Mason", 1, "900")]), other_tenant_user.tenant_id)
    assert exc.value.details["constraint"] == "project_exists"


def test_sheet_needs_lines(project):
    with pytest.raises(ValueError):
        sheet(project, [])


def test_delete_removes_payment(db, tenant, project):
    service = LabourService(db)
    created = service.create(sheet(project, [("Mason", 1, "900")]), tenant.id)
    db.commit()

    assert [s.id for s in service.get_by_tenant(tenant.id, project_id=project.id)] == [created.id]
    assert service.delete(created.id, tenant.id)
    db.commit()

    assert service.get_by_id(created.id, tenant.id) is None
    assert db.query(Transaction).count() == 0
    assert db.query(LabourSheetLine).count() == 0
    assert not service.delete(created.id, tenant.id)
