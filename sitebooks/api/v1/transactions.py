"""
Transactions API Routes - Transactions and allocations
"""
from datetime import date
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List, Optional

from sitebooks.core.database import get_db
from sitebooks.core.exceptions import SettlementError
from sitebooks.core.security import get_current_active_user
from sitebooks.schemas import (
    TransactionCreate, TransactionUpdate, TransactionResponse, TransactionTypeEnum,
    AllocationBatch, AllocationUpdate, AllocationResponse, AllocationCount, MessageResponse
)
from sitebooks.services.transaction_service import TransactionService, AllocationService

router = APIRouter(tags=["Transactions"])


# ==================== TRANSACTIONS ====================

@router.get("/transactions", response_model=List[TransactionResponse])
async def list_transactions(
    type: Optional[TransactionTypeEnum] = None,
    project_id: Optional[int] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    skip: int = 0,
    limit: int = 50,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    return TransactionService(db).get_by_tenant(
        current_user.tenant_id,
        type=type.value if type else None,
        project_id=project_id,
        date_from=date_from,
        date_to=date_to,
        skip=skip,
        limit=min(limit, 500)
    )


@router.post("/transactions", response_model=TransactionResponse, status_code=201)
async def create_transaction(
    transaction_data: TransactionCreate,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    service = TransactionService(db)
    try:
        transaction = service.create(transaction_data, current_user.tenant_id)
        db.commit()
        return service.get_by_id(transaction.id, current_user.tenant_id)
    except SettlementError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())


@router.get("/transactions/{transaction_id}", response_model=TransactionResponse)
async def get_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    transaction = TransactionService(db).get_by_id(transaction_id, current_user.tenant_id)
    if not transaction:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return transaction


@router.put("/transactions/{transaction_id}", response_model=TransactionResponse)
async def update_transaction(
    transaction_id: int,
    transaction_data: TransactionUpdate,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    service = TransactionService(db)
    try:
        transaction = service.update(transaction_id, current_user.tenant_id, transaction_data)
    except SettlementError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())
    if not transaction:
        raise HTTPException(status_code=404, detail="Transaction not found")
    db.commit()
    return service.get_by_id(transaction_id, current_user.tenant_id)


@router.delete("/transactions/{transaction_id}", response_model=MessageResponse)
async def delete_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    if not TransactionService(db).delete(transaction_id, current_user.tenant_id):
        raise HTTPException(status_code=404, detail="Transaction not found")
    db.commit()
    return {"message": "Transaction deleted successfully"}


# ==================== ALLOCATIONS ====================

@router.post("/transactions/{transaction_id}/allocations", response_model=AllocationCount, status_code=201)
async def create_allocations(
    transaction_id: int,
    batch: AllocationBatch,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    """Add allocations to a transaction"""
    try:
        created = AllocationService(db).create(transaction_id, batch.items, current_user.tenant_id)
        db.commit()
        return {"transaction_id": transaction_id, "created": len(created)}
    except SettlementError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())


@router.put("/transactions/{transaction_id}/allocations", response_model=AllocationCount)
async def replace_allocations(
    transaction_id: int,
    batch: AllocationBatch,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    """Replace every allocation of a transaction"""
    try:
        created = AllocationService(db).replace(transaction_id, batch.items, current_user.tenant_id, user=current_user)
        db.commit()
        return {"transaction_id": transaction_id, "created": len(created)}
    except SettlementError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())


@router.put("/allocations/{allocation_id}", response_model=AllocationResponse)
async def update_allocation(
    allocation_id: int,
    data: AllocationUpdate,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    try:
        allocation = AllocationService(db).update(allocation_id, data, current_user.tenant_id)
        db.commit()
        return allocation
    except SettlementError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())


@router.delete("/allocations/{allocation_id}", response_model=MessageResponse)
async def delete_allocation(
    allocation_id: int,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    if not AllocationService(db).delete(allocation_id, current_user.tenant_id):
        raise HTTPException(status_code=404, detail="Allocation not found")
    db.commit()
    return {"message": "Allocation deleted successfully"}
