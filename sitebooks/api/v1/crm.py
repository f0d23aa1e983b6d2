"""
CRM API Routes - Clients and Vendors
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List, Optional

from sitebooks.core.database import get_db
from sitebooks.core.exceptions import SettlementError
from sitebooks.core.security import get_current_active_user
from sitebooks.schemas import (
    ClientCreate, ClientUpdate, ClientResponse,
    VendorCreate, VendorUpdate, VendorResponse, MessageResponse
)
from sitebooks.services.crm_service import ClientService, VendorService

router = APIRouter(tags=["CRM"])


# ==================== CLIENTS ====================

@router.get("/clients", response_model=List[ClientResponse])
async def list_clients(
    q: Optional[str] = None,
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    """List clients of the current tenant"""
    return ClientService(db).get_by_tenant(current_user.tenant_id, q=q, include_inactive=include_inactive)


@router.post("/clients", response_model=ClientResponse, status_code=201)
async def create_client(
    client_data: ClientCreate,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    client = ClientService(db).create(client_data, current_user.tenant_id)
    db.commit()
    return client


@router.get("/clients/{client_id}", response_model=ClientResponse)
async def get_client(
    client_id: int,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    client = ClientService(db).get_by_id(client_id, current_user.tenant_id)
    if not client:
        raise HTTPException(status_code=404, detail="Client not found")
    return client


@router.put("/clients/{client_id}", response_model=ClientResponse)
async def update_client(
    client_id: int,
    client_data: ClientUpdate,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    client = ClientService(db).update(client_id, current_user.tenant_id, client_data)
    if not client:
        raise HTTPException(status_code=404, detail="Client not found")
    db.commit()
    return client


@router.delete("/clients/{client_id}", response_model=MessageResponse)
async def delete_client(
    client_id: int,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    """Delete a client; clients with projects or invoices are deactivated instead"""
    if not ClientService(db).delete(client_id, current_user.tenant_id):
        raise HTTPException(status_code=404, detail="Client not found")
    db.commit()
    return {"message": "Client deleted successfully"}


# ==================== VENDORS ====================

@router.get("/vendors", response_model=List[VendorResponse])
async def list_vendors(
    q: Optional[str] = None,
    subcontractors_only: bool = False,
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    return VendorService(db).get_by_tenant(
        current_user.tenant_id,
        q=q,
        subcontractors_only=subcontractors_only,
        include_inactive=include_inactive
    )


@router.post("/vendors", response_model=VendorResponse, status_code=201)
async def create_vendor(
    vendor_data: VendorCreate,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    vendor = VendorService(db).create(vendor_data, current_user.tenant_id)
    db.commit()
    return vendor


@router.get("/vendors/{vendor_id}", response_model=VendorResponse)
async def get_vendor(
    vendor_id: int,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    vendor = VendorService(db).get_by_id(vendor_id, current_user.tenant_id)
    if not vendor:
        raise HTTPException(status_code=404, detail="Vendor not found")
    return vendor


@router.put("/vendors/{vendor_id}", response_model=VendorResponse)
async def update_vendor(
    vendor_id: int,
    vendor_data: VendorUpdate,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    try:
        vendor = VendorService(db).update(vendor_id, current_user.tenant_id, vendor_data)
    except SettlementError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())
    if not vendor:
        raise HTTPException(status_code=404, detail="Vendor not found")
    db.commit()
    return vendor


@router.delete("/vendors/{vendor_id}", response_model=MessageResponse)
async def delete_vendor(
    vendor_id: int,
    db: Session = Depends(get_db),
    current_user = Depends(get_current_active_user)
):
    """Delete a vendor; vendors with bills, expenses or payments are deactivated instead"""
    if not VendorService(db).delete(vendor_id, current_user.tenant_id):
        raise HTTPException(status_code=404, detail="Vendor not found")
    db.commit()
    return {"message": "Vendor deleted successfully"}
