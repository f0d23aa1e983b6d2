"""
Expenses API Routes
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List, Optional

from sitebooks.core.database import get_db
from sitebooks.core.exceptions import SettlementError
from sitebooks.core.security import get_current_active_user
from sitebooks.schemas import (
    ExpenseCreate, ExpenseUpdate, ExpenseResponse, ExpenseTypeEnum,
    ExpensePaymentCreate, PaymentResult, MessageResponse
)
from sitebooks.services.expense_service import ExpenseService

router = APIRouter(prefix="/expenses", tags=["Expenses"])


@router.get("", response_model=List[ExpenseResponse])
async def list_expenses(
    project_id: Optional[int] = None,
    vendor_id: Optional[int] = None,
    expense_type: Optional[ExpenseTypeEnum] = None,
    skip: int = 0,
    limit: int = 50,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    """List expenses with paid amount, balance and payment status"""
    return ExpenseService(db).list_with_settlement(
        current_user.tenant_id,
        project_id=project_id,
        vendor_id=vendor_id,
        expense_type=expense_type.value if expense_type else None,
        skip=skip,
        limit=limit
    )


@router.post("", response_model=ExpenseResponse, status_code=201)
async def create_expense(
    expense_data: ExpenseCreate,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    service = ExpenseService(db)
    try:
        expense = service.create(expense_data, current_user.tenant_id)
        db.commit()
        return service.get_with_settlement(expense.id, current_user.tenant_id)
    except SettlementError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())


@router.post("/pay", response_model=PaymentResult, status_code=201)
async def pay_expenses(
    payment_data: ExpensePaymentCreate,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    """Pay one vendor's expenses; subcontractor payments carry TDS on top of the cash"""
    try:
        result = ExpenseService(db).pay(payment_data, current_user.tenant_id, user=current_user)
        db.commit()
        return result
    except SettlementError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())


@router.get("/{expense_id}", response_model=ExpenseResponse)
async def get_expense(
    expense_id: int,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    expense = ExpenseService(db).get_with_settlement(expense_id, current_user.tenant_id)
    if not expense:
        raise HTTPException(status_code=404, detail="Expense not found")
    return expense


@router.put("/{expense_id}", response_model=ExpenseResponse)
async def update_expense(
    expense_id: int,
    expense_data: ExpenseUpdate,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    service = ExpenseService(db)
    try:
        expense = service.update(expense_id, current_user.tenant_id, expense_data)
    except SettlementError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())
    if not expense:
        raise HTTPException(status_code=404, detail="Expense not found")
    db.commit()
    return service.get_with_settlement(expense.id, current_user.tenant_id)


@router.delete("/{expense_id}", response_model=MessageResponse)
async def delete_expense(
    expense_id: int,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    try:
        deleted = ExpenseService(db).delete(expense_id, current_user.tenant_id)
    except SettlementError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())
    if not deleted:
        raise HTTPException(status_code=404, detail="Expense not found")
    db.commit()
    return {"message": "Expense deleted successfully"}
