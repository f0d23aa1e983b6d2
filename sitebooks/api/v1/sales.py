"""
Sales API Routes - Client invoices and receipts
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List, Optional

from sitebooks.core.database import get_db
from sitebooks.core.exceptions import SettlementError
from sitebooks.core.security import get_current_active_user
from sitebooks.schemas import (
    ClientInvoiceCreate, ClientInvoiceUpdate, ClientInvoiceResponse,
    ReceiptCreate, TransactionResponse, MessageResponse
)
from sitebooks.services.sales_service import InvoiceService, ReceiptService
from sitebooks.services.transaction_service import TransactionService

router = APIRouter(prefix="/sales", tags=["Sales"])


# ==================== INVOICES ====================

@router.get("/invoices", response_model=List[ClientInvoiceResponse])
async def list_invoices(
    project_id: Optional[int] = None,
    client_id: Optional[int] = None,
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    """List invoices with paid amount, balance and payment status"""
    return InvoiceService(db).list_with_settlement(
        current_user.tenant_id,
        project_id=project_id,
        client_id=client_id,
        skip=skip,
        limit=limit
    )


@router.post("/invoices", response_model=ClientInvoiceResponse, status_code=201)
async def create_invoice(
    invoice_data: ClientInvoiceCreate,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    service = InvoiceService(db)
    try:
        invoice = service.create(invoice_data, current_user.tenant_id)
        db.commit()
        return service.get_with_settlement(invoice.id, current_user.tenant_id)
    except SettlementError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())


@router.get("/invoices/{invoice_id}", response_model=ClientInvoiceResponse)
async def get_invoice(
    invoice_id: int,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    invoice = InvoiceService(db).get_with_settlement(invoice_id, current_user.tenant_id)
    if not invoice:
        raise HTTPException(status_code=404, detail="Invoice not found")
    return invoice


@router.put("/invoices/{invoice_id}", response_model=ClientInvoiceResponse)
async def update_invoice(
    invoice_id: int,
    invoice_data: ClientInvoiceUpdate,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    service = InvoiceService(db)
    try:
        invoice = service.update(invoice_id, current_user.tenant_id, invoice_data)
    except SettlementError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())
    if not invoice:
        raise HTTPException(status_code=404, detail="Invoice not found")
    db.commit()
    return service.get_with_settlement(invoice.id, current_user.tenant_id)


@router.delete("/invoices/{invoice_id}", response_model=MessageResponse)
async def delete_invoice(
    invoice_id: int,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    try:
        deleted = InvoiceService(db).delete(invoice_id, current_user.tenant_id)
    except SettlementError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())
    if not deleted:
        raise HTTPException(status_code=404, detail="Invoice not found")
    db.commit()
    return {"message": "Invoice deleted successfully"}


# ==================== RECEIPTS ====================

@router.get("/receipts", response_model=List[TransactionResponse])
async def list_receipts(
    project_id: Optional[int] = None,
    skip: int = 0,
    limit: int = 50,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    return TransactionService(db).get_by_tenant(
        current_user.tenant_id,
        type="INCOME",
        project_id=project_id,
        skip=skip,
        limit=limit
    )


@router.post("/receipts", response_model=TransactionResponse, status_code=201)
async def create_receipt(
    receipt_data: ReceiptCreate,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    """Record money received from a client and apply it to invoices"""
    try:
        transaction = ReceiptService(db).create(receipt_data, current_user.tenant_id, user=current_user)
        db.commit()
        return TransactionService(db).get_by_id(transaction.id, current_user.tenant_id)
    except SettlementError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())
