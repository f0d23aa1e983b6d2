"""
Shared fixtures: in-memory database, seeded tenant, API client
"""
from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from sitebooks.core.database import get_db, init_db
from sitebooks.core.security import create_access_token
from sitebooks.main import app
from sitebooks.schemas import (
    ClientCreate, ClientInvoiceCreate, ExpenseCreate, ProjectCreate, PurchaseInvoiceCreate, VendorCreate
)
from sitebooks.services import (
    ClientService, ExpenseService, InvoiceService, ProjectService, PurchaseInvoiceService,
    TenantService, UserService, VendorService
)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    yield session
    session.close()


@pytest.fixture
def tenant(db):
    tenant = TenantService(db).create("Acme Builders")
    db.commit()
    return tenant


@pytest.fixture
def user(db, tenant):
    user = UserService(db).create("site.admin", "admin@acme.example.com", tenant.id, full_name="Site Admin")
    db.commit()
    return user


@pytest.fixture
def other_tenant_user(db):
    tenant = TenantService(db).create("Other Constructions")
    user = UserService(db).create("other.admin", "admin@other.example.com", tenant.id)
    db.commit()
    return user


@pytest.fixture
def api(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth_header(user):
    return {"Authorization": f"Bearer {create_access_token({'sub': user.username})}"}


@pytest.fixture
def headers(user):
    return auth_header(user)


@pytest.fixture
def other_headers(other_tenant_user):
    return auth_header(other_tenant_user)


# ----- seeded documents -----

@pytest.fixture
def client_row(db, tenant):
    client = ClientService(db).create(ClientCreate(name="Horizon Developers", pan="AAACH1234K"), tenant.id)
    db.commit()
    return client


@pytest.fixture
def project(db, tenant, client_row):
    project = ProjectService(db).create(
        ProjectCreate(name="Tower B", client_id=client_row.id, location="Pune"), tenant.id
    )
    db.commit()
    return project


@pytest.fixture
def make_vendor(db, tenant):
    def _make(**overrides):
        fields = {"name": "Shree Civil Works", "pan": "ABCPS1234F", "legal_type": "FIRM", "is_subcontractor": True}
        fields.update(overrides)
        vendor = VendorService(db).create(VendorCreate(**fields), tenant.id)
        db.commit()
        return vendor
    return _make


@pytest.fixture
def vendor(make_vendor):
    return make_vendor()


@pytest.fixture
def make_invoice(db, tenant, client_row, project):
    def _make(number="INV-001", basic=Decimal("100000"), gst=Decimal("9000"), **overrides):
        fields = {
            "invoice_number": number,
            "invoice_date": date(2026, 1, 15),
            "due_date": date(2026, 2, 15),
            "project_id": project.id,
            "client_id": client_row.id,
            "basic_value": basic,
            "cgst": gst,
            "sgst": gst,
        }
        fields.update(overrides)
        invoice = InvoiceService(db).create(ClientInvoiceCreate(**fields), tenant.id)
        db.commit()
        return invoice
    return _make


@pytest.fixture
def make_bill(db, tenant, project):
    def _make(vendor, number="BILL-001", taxable=Decimal("50000"), gst=Decimal("4500"), **overrides):
        fields = {
            "invoice_number": number,
            "invoice_date": date(2025, 12, 1),
            "vendor_id": vendor.id,
            "project_id": project.id,
            "taxable_value": taxable,
            "cgst": gst,
            "sgst": gst,
        }
        fields.update(overrides)
        bill = PurchaseInvoiceService(db).create(PurchaseInvoiceCreate(**fields), tenant.id)
        db.commit()
        return bill
    return _make


@pytest.fixture
def make_expense(db, tenant, project):
    def _make(vendor=None, before_tax=Decimal("50000"), gst=Decimal("4500"), **overrides):
        fields = {
            "project_id": project.id,
            "vendor_id": vendor.id if vendor else None,
            "date": date(2025, 12, 10),
            "expense_type": "SUBCONTRACTOR",
            "amount_before_tax": before_tax,
            "cgst": gst,
            "sgst": gst,
        }
        fields.update(overrides)
        expense = ExpenseService(db).create(ExpenseCreate(**fields), tenant.id)
        db.commit()
        return expense
    return _make
