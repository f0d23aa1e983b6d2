"""
Project Service - projects and their financial roll-up
"""
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session
from sqlalchemy import or_

from sitebooks.core.exceptions import NotFoundError, ValidationFailure
from sitebooks.finance.summary import project_summary
from sitebooks.models import (
    Client, ClientInvoice, DocumentType, Expense, Project, PurchaseInvoice, Transaction, TransactionAllocation
)
from sitebooks.schemas import ProjectCreate, ProjectUpdate


class ProjectService:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, project_id: int, tenant_id: int) -> Optional[Project]:
        return self.db.query(Project).filter(
            Project.id == project_id,
            Project.tenant_id == tenant_id
        ).first()

    def get_by_tenant(
        self,
        tenant_id: int,
        q: Optional[str] = None,
        client_id: Optional[int] = None,
        status: Optional[str] = None
    ) -> List[Project]:
        query = self.db.query(Project).filter(Project.tenant_id == tenant_id)
        if client_id:
            query = query.filter(Project.client_id == client_id)
        if status:
            query = query.filter(Project.status == status)
        if q:
            pattern = f"%{q.strip()}%"
            query = query.filter(or_(Project.name.ilike(pattern), Project.location.ilike(pattern)))
        return query.order_by(Project.created_at.desc(), Project.id.desc()).all()

    def _check_client(self, client_id: int, tenant_id: int) -> None:
        client = self.db.query(Client).filter(Client.id == client_id, Client.tenant_id == tenant_id).first()
        if not client:
            raise ValidationFailure("Client not found.", {"constraint": "client_exists", "client_id": client_id})

    def create(self, project_data: ProjectCreate, tenant_id: int) -> Project:
        self._check_client(project_data.client_id, tenant_id)
        data = project_data.model_dump()
        data["status"] = project_data.status.value
        project = Project(**data, tenant_id=tenant_id)
        self.db.add(project)
        self.db.flush()
        return project

    def update(self, project_id: int, tenant_id: int, project_data: ProjectUpdate) -> Optional[Project]:
        project = self.get_by_id(project_id, tenant_id)
        if not project:
            return None

        update_data = project_data.model_dump(exclude_unset=True)
        if update_data.get("client_id") is not None:
            self._check_client(update_data["client_id"], tenant_id)
        if update_data.get("status") is not None:
            update_data["status"] = update_data["status"].value
        for key, value in update_data.items():
            setattr(project, key, value)

        self.db.flush()
        return project

    def delete(self, project_id: int, tenant_id: int) -> bool:
        project = self.get_by_id(project_id, tenant_id)
        if not project:
            return False
        in_use = self.db.query(ClientInvoice.id).filter(ClientInvoice.project_id == project_id).first() \
            or self.db.query(Expense.id).filter(Expense.project_id == project_id).first() \
            or self.db.query(PurchaseInvoice.id).filter(PurchaseInvoice.project_id == project_id).first() \
            or self.db.query(Transaction.id).filter(Transaction.project_id == project_id).first()
        if in_use:
            raise ValidationFailure(
                "Cannot delete a project that has invoices, expenses, bills or transactions.",
                {"constraint": "has_documents", "project_id": project_id}
            )
        self.db.delete(project)
        self.db.flush()
        return True

    def get_summary(self, project_id: int, tenant_id: int) -> Dict[str, Any]:
        project = self.get_by_id(project_id, tenant_id)
        if not project:
            raise NotFoundError("Project not found.", {"project_id": project_id})

        invoices = self.db.query(ClientInvoice).filter(
            ClientInvoice.tenant_id == tenant_id, ClientInvoice.project_id == project_id
        ).all()
        expenses = self.db.query(Expense).filter(
            Expense.tenant_id == tenant_id, Expense.project_id == project_id
        ).all()
        bills = self.db.query(PurchaseInvoice).filter(
            PurchaseInvoice.tenant_id == tenant_id, PurchaseInvoice.project_id == project_id
        ).all()
        transactions = self.db.query(Transaction).filter(
            Transaction.tenant_id == tenant_id, Transaction.project_id == project_id
        ).all()

        # Allocations are matched to the project's documents, wherever the paying transaction sits
        document_filters = [
            (DocumentType.CLIENT_INVOICE.value, [doc.id for doc in invoices]),
            (DocumentType.EXPENSE.value, [doc.id for doc in expenses]),
            (DocumentType.PURCHASE_INVOICE.value, [doc.id for doc in bills]),
        ]
        allocations = []
        for document_type, ids in document_filters:
            if not ids:
                continue
            allocations.extend(self.db.query(TransactionAllocation).filter(
                TransactionAllocation.tenant_id == tenant_id,
                TransactionAllocation.document_type == document_type,
                TransactionAllocation.document_id.in_(ids)
            ).all())

        summary = project_summary(project.id, invoices, expenses, transactions, allocations, bills=bills)
        return {"project_id": project.id, **summary.as_dict()}
