"""
Project API Routes
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List, Optional

from sitebooks.core.database import get_db
from sitebooks.core.exceptions import SettlementError
from sitebooks.core.security import get_current_active_user
from sitebooks.schemas import (
    ProjectCreate, ProjectUpdate, ProjectResponse, ProjectSummaryResponse, ProjectStatusEnum, MessageResponse
)
from sitebooks.services.project_service import ProjectService

router = APIRouter(prefix="/projects", tags=["Projects"])


@router.get("", response_model=List[ProjectResponse])
async def list_projects(
    q: Optional[str] = None,
    client_id: Optional[int] = None,
    status: Optional[ProjectStatusEnum] = None,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    return ProjectService(db).get_by_tenant(
        current_user.tenant_id,
        q=q,
        client_id=client_id,
        status=status.value if status else None
    )


@router.post("", response_model=ProjectResponse, status_code=201)
async def create_project(
    project_data: ProjectCreate,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    try:
        project = ProjectService(db).create(project_data, current_user.tenant_id)
        db.commit()
        return project
    except SettlementError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())


@router.get("/{project_id}", response_model=ProjectResponse)
async def get_project(
    project_id: int,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    project = ProjectService(db).get_by_id(project_id, current_user.tenant_id)
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


@router.get("/{project_id}/summary", response_model=ProjectSummaryResponse)
async def get_project_summary(
    project_id: int,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    """Receivables, payables, cash flow and TDS of one project"""
    try:
        return ProjectService(db).get_summary(project_id, current_user.tenant_id)
    except SettlementError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())


@router.put("/{project_id}", response_model=ProjectResponse)
async def update_project(
    project_id: int,
    project_data: ProjectUpdate,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    try:
        project = ProjectService(db).update(project_id, current_user.tenant_id, project_data)
    except SettlementError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    db.commit()
    return project


@router.delete("/{project_id}", response_model=MessageResponse)
async def delete_project(
    project_id: int,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    try:
        deleted = ProjectService(db).delete(project_id, current_user.tenant_id)
    except SettlementError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())
    if not deleted:
        raise HTTPException(status_code=404, detail="Project not found")
    db.commit()
    return {"message": "Project deleted successfully"}
