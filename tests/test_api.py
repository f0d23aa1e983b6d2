from decimal import Decimal


def create_project(api, headers):
    client = api.post("/api/v1/clients", json={"name": "Horizon Developers"}, headers=headers).json()
    project = api.post(
        "/api/v1/projects", json={"name": "Tower B", "client_id": client["id"]}, headers=headers
    ).json()
    return client, project


def test_health(api):
    response = api.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_requires_token(api):
    assert api.get("/api/v1/clients").status_code == 401
    response = api.get("/api/v1/clients", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401


def test_vendor_crud(api, headers):
    response = api.post("/api/v1/vendors", json={
        "name": "Shree Civil Works",
        "pan": "ABCPS1234F",
        "legal_type": "INDIVIDUAL",
        "is_subcontractor": True,
    }, headers=headers)
    assert response.status_code == 201
    vendor = response.json()
    assert Decimal(vendor["tds_threshold_single"]) == Decimal("30000")
    assert Decimal(vendor["tds_threshold_annual"]) == Decimal("100000")

    response = api.put(f"/api/v1/vendors/{vendor['id']}", json={"tds_override_rate": "5"}, headers=headers)
    assert response.status_code == 200
    assert Decimal(response.json()["tds_override_rate"]) == Decimal("5")

    bad = api.put(f"/api/v1/vendors/{vendor['id']}", json={"tds_override_rate": "101"}, headers=headers)
    assert bad.status_code == 422

    assert api.delete(f"/api/v1/vendors/{vendor['id']}", headers=headers).status_code == 200
    assert api.get(f"/api/v1/vendors/{vendor['id']}", headers=headers).status_code == 404


def test_invoice_receipt_and_summary_flow(api, headers):
    client, project = create_project(api, headers)

    response = api.post("/api/v1/sales/invoices", json={
        "invoice_number": "INV-001",
        "invoice_date": "2026-01-15",
        "due_date": "2026-02-15",
        "project_id": project["id"],
        "client_id": client["id"],
        "basic_value": "100000",
        "cgst": "9000",
        "sgst": "9000",
    }, headers=headers)
    assert response.status_code == 201
    invoice = response.json()
    assert Decimal(invoice["total"]) == Decimal("118000")
    assert invoice["computed_status"] in ("Sent", "Overdue")

    response = api.post("/api/v1/sales/receipts", json={
        "client_id": client["id"],
        "project_id": project["id"],
        "date": "2026-02-20",
        "amount": "47000",
        "tds_amount": "3000",
        "allocations": [{"invoice_id": invoice["id"], "amount_applied": "50000"}],
    }, headers=headers)
    assert response.status_code == 201
    receipt = response.json()
    assert receipt["type"] == "INCOME"
    assert len(receipt["allocations"]) == 1

    invoice = api.get(f"/api/v1/sales/invoices/{invoice['id']}", headers=headers).json()
    assert Decimal(invoice["paid_amount"]) == Decimal("50000")
    assert Decimal(invoice["balance"]) == Decimal("68000")
    assert invoice["computed_status"] == "PartiallyPaid"

    vendor = api.post("/api/v1/vendors", json={
        "name": "Shree Civil Works", "pan": "ABCPS1234F", "legal_type": "FIRM", "is_subcontractor": True,
    }, headers=headers).json()
    expense = api.post("/api/v1/expenses", json={
        "project_id": project["id"],
        "vendor_id": vendor["id"],
        "date": "2026-01-10",
        "expense_type": "SUBCONTRACTOR",
        "amount_before_tax": "50000",
        "cgst": "4500",
        "sgst": "4500",
    }, headers=headers).json()
    assert Decimal(expense["total"]) == Decimal("59000")

    response = api.post("/api/v1/transactions", json={
        "type": "EXPENSE",
        "date": "2026-02-21",
        "amount": "20000",
        "project_id": project["id"],
        "vendor_id": vendor["id"],
        "allocations": [{"expense_id": expense["id"], "cash_amount": "20000", "tds_amount": "500"}],
    }, headers=headers)
    assert response.status_code == 201

    summary = api.get(f"/api/v1/projects/{project['id']}/summary", headers=headers).json()
    assert Decimal(summary["invoices_paid"]) == Decimal("50000")
    assert Decimal(summary["expenses_paid"]) == Decimal("20500")
    assert Decimal(summary["net_cash"]) == Decimal("27000")
    assert Decimal(summary["tds_in"]) == Decimal("3000")


def test_vendor_payment_endpoint(api, headers):
    _, project = create_project(api, headers)
    vendor = api.post("/api/v1/vendors", json={
        "name": "Shree Civil Works", "pan": "ABCPS1234F", "legal_type": "FIRM", "is_subcontractor": True,
    }, headers=headers).json()
    bill = api.post("/api/v1/purchases/bills", json={
        "invoice_number": "B-1",
        "invoice_date": "2025-12-01",
        "vendor_id": vendor["id"],
        "project_id": project["id"],
        "taxable_value": "50000",
        "cgst": "4500",
        "sgst": "4500",
    }, headers=headers).json()

    preview = api.post("/api/v1/purchases/tds-preview", json={
        "vendor_id": vendor["id"], "amount": "50000", "date": "2026-01-10",
    }, headers=headers).json()
    assert Decimal(preview["tds_amount"]) == Decimal("1000")
    assert preview["threshold_breached"] == "SINGLE"

    response = api.post("/api/v1/purchases/payments", json={
        "vendor_id": vendor["id"],
        "date": "2026-01-10",
        "allocations": [{"purchase_invoice_id": bill["id"], "amount_applied": "59000"}],
    }, headers=headers)
    assert response.status_code == 201
    payment = response.json()
    assert Decimal(payment["tds_amount"]) == Decimal("1000")
    assert Decimal(payment["cash_paid"]) == Decimal("58000")

    open_bills = api.get(f"/api/v1/purchases/open-bills?vendor_id={vendor['id']}", headers=headers).json()
    assert open_bills == []

    response = api.post("/api/v1/purchases/payments", json={
        "vendor_id": vendor["id"],
        "date": "2026-01-11",
        "allocations": [{"purchase_invoice_id": bill["id"], "amount_applied": "1"}],
    }, headers=headers)
    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail["code"] == "VALIDATION"
    assert detail["details"]["constraint"] == "document_total"

    assert api.delete(f"/api/v1/purchases/payments/{payment['transaction_id']}", headers=headers).status_code == 200
    bill = api.get(f"/api/v1/purchases/bills/{bill['id']}", headers=headers).json()
    assert Decimal(bill["paid_amount"]) == Decimal("0")
    assert bill["computed_status"] == "Unpaid"


def test_not_found_body(api, headers):
    response = api.get("/api/v1/projects/999/summary", headers=headers)
    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "NOT_FOUND"


def test_tenant_isolation(api, headers, other_headers):
    client, project = create_project(api, headers)

    assert api.get(f"/api/v1/projects/{project['id']}", headers=other_headers).status_code == 404
    assert api.get("/api/v1/clients", headers=other_headers).json() == []

    response = api.post("/api/v1/projects", json={"name": "Hijack", "client_id": client["id"]}, headers=other_headers)
    assert response.status_code == 400
    assert response.json()["detail"]["details"]["constraint"] == "client_exists"


def test_labour_sheet_endpoint(api, headers):
    _, project = create_project(api, headers)
    response = api.post("/api/v1/labour-sheets", json={
        "project_id": project["id"],
        "date": "2026-01-12",
        "mode": "UPI",
        "lines": [{"role": "Mason", "headcount": 3, "rate": "900"}],
    }, headers=headers)
    assert response.status_code == 201
    sheet = response.json()
    assert Decimal(sheet["total"]) == Decimal("2700")
    assert len(sheet["lines"]) == 1

    listed = api.get(f"/api/v1/labour-sheets?project_id={project['id']}", headers=headers).json()
    assert [s["id"] for s in listed] == [sheet["id"]]

    summary = api.get(f"/api/v1/projects/{project['id']}/summary", headers=headers).json()
    assert Decimal(summary["cash_out"]) == Decimal("2700")

    empty = api.post("/api/v1/labour-sheets", json={
        "project_id": project["id"], "date": "2026-01-12", "mode": "CASH", "lines": [],
    }, headers=headers)
    assert empty.status_code == 422

    assert api.delete(f"/api/v1/labour-sheets/{sheet['id']}", headers=headers).status_code == 200
    assert api.get(f"/api/v1/labour-sheets/{sheet['id']}", headers=headers).status_code == 404
