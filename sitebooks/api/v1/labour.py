"""
Labour Sheet API Routes
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List, Optional

from sitebooks.core.database import get_db
from sitebooks.core.exceptions import SettlementError
from sitebooks.core.security import get_current_active_user
from sitebooks.schemas import LabourSheetCreate, LabourSheetResponse, MessageResponse
from sitebooks.services.labour_service import LabourService

router = APIRouter(prefix="/labour-sheets", tags=["Labour"])


@router.get("", response_model=List[LabourSheetResponse])
async def list_labour_sheets(
    project_id: Optional[int] = None,
    skip: int = 0,
    limit: int = 50,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    return LabourService(db).get_by_tenant(current_user.tenant_id, project_id=project_id, skip=skip, limit=limit)


@router.post("", response_model=LabourSheetResponse, status_code=201)
async def create_labour_sheet(
    sheet_data: LabourSheetCreate,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    """Record a day's wages; the total is posted as an EXPENSE on the project"""
    service = LabourService(db)
    try:
        sheet = service.create(sheet_data, current_user.tenant_id, user=current_user)
        db.commit()
        return service.get_by_id(sheet.id, current_user.tenant_id)
    except SettlementError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())


@router.get("/{sheet_id}", response_model=LabourSheetResponse)
async def get_labour_sheet(
    sheet_id: int,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    sheet = LabourService(db).get_by_id(sheet_id, current_user.tenant_id)
    if not sheet:
        raise HTTPException(status_code=404, detail="Labour sheet not found")
    return sheet


@router.delete("/{sheet_id}", response_model=MessageResponse)
async def delete_labour_sheet(
    sheet_id: int,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    if not LabourService(db).delete(sheet_id, current_user.tenant_id):
        raise HTTPException(status_code=404, detail="Labour sheet not found")
    db.commit()
    return {"message": "Labour sheet deleted successfully"}
