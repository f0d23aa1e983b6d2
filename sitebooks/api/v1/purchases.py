"""
Purchases API Routes - Vendor bills, TDS preview and vendor payments
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List, Optional

from sitebooks.core.database import get_db
from sitebooks.core.exceptions import SettlementError
from sitebooks.core.security import get_current_active_user
from sitebooks.schemas import (
    PurchaseInvoiceCreate, PurchaseInvoiceUpdate, PurchaseInvoiceResponse, OpenBillResponse,
    TdsPreviewRequest, TdsPreviewResponse, VendorPaymentCreate, VendorPaymentMetaUpdate,
    PaymentResult, TransactionResponse, MessageResponse
)
from sitebooks.services.purchase_service import PurchaseInvoiceService, VendorPaymentService, TdsService

router = APIRouter(prefix="/purchases", tags=["Purchases"])


# ==================== BILLS ====================

@router.get("/bills", response_model=List[PurchaseInvoiceResponse])
async def list_bills(
    vendor_id: Optional[int] = None,
    project_id: Optional[int] = None,
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    """List bills with paid amount, balance and payment status"""
    return PurchaseInvoiceService(db).list_with_settlement(
        current_user.tenant_id,
        vendor_id=vendor_id,
        project_id=project_id,
        skip=skip,
        limit=limit
    )


@router.post("/bills", response_model=PurchaseInvoiceResponse, status_code=201)
async def create_bill(
    bill_data: PurchaseInvoiceCreate,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    service = PurchaseInvoiceService(db)
    try:
        bill = service.create(bill_data, current_user.tenant_id)
        db.commit()
        return service.get_with_settlement(bill.id, current_user.tenant_id)
    except SettlementError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())


@router.get("/bills/{bill_id}", response_model=PurchaseInvoiceResponse)
async def get_bill(
    bill_id: int,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    bill = PurchaseInvoiceService(db).get_with_settlement(bill_id, current_user.tenant_id)
    if not bill:
        raise HTTPException(status_code=404, detail="Bill not found")
    return bill


@router.put("/bills/{bill_id}", response_model=PurchaseInvoiceResponse)
async def update_bill(
    bill_id: int,
    bill_data: PurchaseInvoiceUpdate,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    service = PurchaseInvoiceService(db)
    try:
        bill = service.update(bill_id, current_user.tenant_id, bill_data)
    except SettlementError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())
    if not bill:
        raise HTTPException(status_code=404, detail="Bill not found")
    db.commit()
    return service.get_with_settlement(bill.id, current_user.tenant_id)


@router.delete("/bills/{bill_id}", response_model=MessageResponse)
async def delete_bill(
    bill_id: int,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    try:
        deleted = PurchaseInvoiceService(db).delete(bill_id, current_user.tenant_id)
    except SettlementError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())
    if not deleted:
        raise HTTPException(status_code=404, detail="Bill not found")
    db.commit()
    return {"message": "Bill deleted successfully"}


@router.get("/open-bills", response_model=List[OpenBillResponse])
async def list_open_bills(
    vendor_id: int,
    project_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    """Bills of a vendor that still have a balance to pay"""
    return PurchaseInvoiceService(db).open_bills(vendor_id, current_user.tenant_id, project_id=project_id)


# ==================== TDS ====================

@router.post("/tds-preview", response_model=TdsPreviewResponse)
async def preview_tds(
    request: TdsPreviewRequest,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    """TDS that a payment of the given taxable amount would carry; nothing is saved"""
    try:
        return TdsService(db).preview(request, current_user.tenant_id)
    except SettlementError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())


# ==================== PAYMENTS ====================

@router.get("/payments", response_model=List[TransactionResponse])
async def list_payments(
    vendor_id: Optional[int] = None,
    skip: int = 0,
    limit: int = 50,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    return VendorPaymentService(db).get_by_tenant(current_user.tenant_id, vendor_id=vendor_id, skip=skip, limit=limit)


@router.post("/payments", response_model=PaymentResult, status_code=201)
async def create_payment(
    payment_data: VendorPaymentCreate,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    """Pay a vendor against bills (or as a lump sum), withholding TDS under 194C"""
    try:
        result = VendorPaymentService(db).create(payment_data, current_user.tenant_id, user=current_user)
        db.commit()
        return result
    except SettlementError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())


@router.put("/payments/{transaction_id}", response_model=TransactionResponse)
async def update_payment(
    transaction_id: int,
    meta: VendorPaymentMetaUpdate,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    try:
        transaction = VendorPaymentService(db).update_meta(transaction_id, current_user.tenant_id, meta)
    except SettlementError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())
    if not transaction:
        raise HTTPException(status_code=404, detail="Payment not found")
    db.commit()
    return transaction


@router.delete("/payments/{transaction_id}", response_model=MessageResponse)
async def delete_payment(
    transaction_id: int,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    if not VendorPaymentService(db).delete(transaction_id, current_user.tenant_id):
        raise HTTPException(status_code=404, detail="Payment not found")
    db.commit()
    return {"message": "Payment deleted successfully"}
