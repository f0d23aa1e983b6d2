"""
CRM Service - Business Logic for Clients and Vendors
"""
from typing import Optional, List
from sqlalchemy.orm import Session
from sqlalchemy import or_
from sitebooks.models import Client, Vendor, Project, ClientInvoice, PurchaseInvoice, Expense, Transaction
from sitebooks.schemas import ClientCreate, ClientUpdate, VendorCreate, VendorUpdate


class ClientService:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, client_id: int, tenant_id: int) -> Optional[Client]:
        return self.db.query(Client).filter(
            Client.id == client_id,
            Client.tenant_id == tenant_id
        ).first()

    def get_by_tenant(self, tenant_id: int, q: Optional[str] = None, include_inactive: bool = False) -> List[Client]:
        query = self.db.query(Client).filter(Client.tenant_id == tenant_id)
        if not include_inactive:
            query = query.filter(Client.is_active == True)
        if q:
            pattern = f"%{q.strip()}%"
            query = query.filter(or_(Client.name.ilike(pattern), Client.gstin.ilike(pattern)))
        return query.order_by(Client.name).all()

    def create(self, client_data: ClientCreate, tenant_id: int) -> Client:
        client = Client(**client_data.model_dump(), tenant_id=tenant_id)
        self.db.add(client)
        self.db.flush()
        return client

    def update(self, client_id: int, tenant_id: int, client_data: ClientUpdate) -> Optional[Client]:
        client = self.get_by_id(client_id, tenant_id)
        if not client:
            return None

        update_data = client_data.model_dump(exclude_unset=True)
        for key, value in update_data.items():
            setattr(client, key, value)

        self.db.flush()
        return client

    def delete(self, client_id: int, tenant_id: int) -> bool:
        client = self.get_by_id(client_id, tenant_id)
        if not client:
            return False

        in_use = self.db.query(Project.id).filter(Project.client_id == client_id).first() \
            or self.db.query(ClientInvoice.id).filter(ClientInvoice.client_id == client_id).first()

        if in_use:
            # Soft delete instead
            client.is_active = False
        else:
            self.db.delete(client)

        self.db.flush()
        return True


class VendorService:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, vendor_id: int, tenant_id: int) -> Optional[Vendor]:
        return self.db.query(Vendor).filter(
            Vendor.id == vendor_id,
            Vendor.tenant_id == tenant_id
        ).first()

    def get_for_update(self, vendor_id: int, tenant_id: int) -> Optional[Vendor]:
        """Load the vendor with a row lock so concurrent payments read YTD in turn."""
        return self.db.query(Vendor).filter(
            Vendor.id == vendor_id,
            Vendor.tenant_id == tenant_id
        ).with_for_update().first()

    def get_by_tenant(
        self,
        tenant_id: int,
        q: Optional[str] = None,
        subcontractors_only: bool = False,
        include_inactive: bool = False
    ) -> List[Vendor]:
        query = self.db.query(Vendor).filter(Vendor.tenant_id == tenant_id)
        if not include_inactive:
            query = query.filter(Vendor.is_active == True)
        if subcontractors_only:
            query = query.filter(Vendor.is_subcontractor == True)
        if q:
            pattern = f"%{q.strip()}%"
            query = query.filter(or_(
                Vendor.name.ilike(pattern),
                Vendor.trade.ilike(pattern),
                Vendor.pan.ilike(pattern)
            ))
        return query.order_by(Vendor.name).all()

    def create(self, vendor_data: VendorCreate, tenant_id: int) -> Vendor:
        data = vendor_data.model_dump()
        data["legal_type"] = vendor_data.legal_type.value
        vendor = Vendor(**data, tenant_id=tenant_id)
        self.db.add(vendor)
        self.db.flush()
        return vendor

    def update(self, vendor_id: int, tenant_id: int, vendor_data: VendorUpdate) -> Optional[Vendor]:
        vendor = self.get_by_id(vendor_id, tenant_id)
        if not vendor:
            return None

        update_data = vendor_data.model_dump(exclude_unset=True)
        if update_data.get("legal_type") is not None:
            update_data["legal_type"] = update_data["legal_type"].value
        for key, value in update_data.items():
            setattr(vendor, key, value)

        self.db.flush()
        return vendor

    def delete(self, vendor_id: int, tenant_id: int) -> bool:
        vendor = self.get_by_id(vendor_id, tenant_id)
        if not vendor:
            return False

        in_use = self.db.query(PurchaseInvoice.id).filter(PurchaseInvoice.vendor_id == vendor_id).first() \
            or self.db.query(Expense.id).filter(Expense.vendor_id == vendor_id).first() \
            or self.db.query(Transaction.id).filter(Transaction.vendor_id == vendor_id).first()

        if in_use:
            vendor.is_active = False
        else:
            self.db.delete(vendor)

        self.db.flush()
        return True
