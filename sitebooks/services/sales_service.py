"""
Sales Service - client invoices and the receipts that settle them
"""
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy.orm import Session

from sitebooks.core.exceptions import NotFoundError, ValidationFailure
from sitebooks.finance.distribution import GrossLine, split_sequential
from sitebooks.finance.money import ZERO, round2, sum_money, to_decimal
from sitebooks.finance.settlement import settle_invoice
from sitebooks.models import (
    Client, ClientInvoice, DocumentType, Project, Transaction, TransactionAllocation, TransactionType
)
from sitebooks.schemas import ClientInvoiceCreate, ClientInvoiceUpdate, ReceiptCreate
from sitebooks.services.audit_service import AuditAction, AuditService
from sitebooks.services.transaction_service import AllocationService, allocations_by_document

logger = logging.getLogger(__name__)

INVOICE = DocumentType.CLIENT_INVOICE.value


def _invoice_total(data) -> Decimal:
    if data.total is not None:
        return round2(data.total)
    return round2(sum_money([data.basic_value, data.cgst, data.sgst, data.igst]))


class InvoiceService:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, invoice_id: int, tenant_id: int) -> Optional[ClientInvoice]:
        return self.db.query(ClientInvoice).filter(
            ClientInvoice.id == invoice_id,
            ClientInvoice.tenant_id == tenant_id
        ).first()

    def get_by_tenant(
        self,
        tenant_id: int,
        project_id: Optional[int] = None,
        client_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 100
    ) -> List[ClientInvoice]:
        query = self.db.query(ClientInvoice).filter(ClientInvoice.tenant_id == tenant_id)
        if project_id:
            query = query.filter(ClientInvoice.project_id == project_id)
        if client_id:
            query = query.filter(ClientInvoice.client_id == client_id)
        return query.order_by(ClientInvoice.invoice_date.desc(), ClientInvoice.id.desc())\
            .offset(skip).limit(limit).all()

    def list_with_settlement(self, tenant_id: int, today: Optional[date] = None, **filters) -> List[Dict[str, Any]]:
        """Invoices annotated with paid amount, balance and computed status."""
        today = today or date.today()
        invoices = self.get_by_tenant(tenant_id, **filters)
        grouped = allocations_by_document(self.db, tenant_id, INVOICE, [inv.id for inv in invoices])
        return [self.annotate(inv, grouped.get(inv.id, []), today) for inv in invoices]

    def get_with_settlement(self, invoice_id: int, tenant_id: int, today: Optional[date] = None) -> Optional[Dict[str, Any]]:
        invoice = self.get_by_id(invoice_id, tenant_id)
        if not invoice:
            return None
        grouped = allocations_by_document(self.db, tenant_id, INVOICE, [invoice.id])
        return self.annotate(invoice, grouped.get(invoice.id, []), today or date.today())

    @staticmethod
    def annotate(invoice: ClientInvoice, allocations: List[TransactionAllocation], today: date) -> Dict[str, Any]:
        settlement = settle_invoice(invoice, allocations, today)
        row = {column.name: getattr(invoice, column.name) for column in ClientInvoice.__table__.columns}
        row.update(
            paid_amount=settlement.paid_amount,
            balance=settlement.balance,
            computed_status=settlement.status,
        )
        return row

    def _check_refs(self, tenant_id: int, client_id: int, project_id: int) -> None:
        client = self.db.query(Client).filter(Client.id == client_id, Client.tenant_id == tenant_id).first()
        if not client:
            raise ValidationFailure("Client not found.", {"constraint": "client_exists", "client_id": client_id})
        project = self.db.query(Project).filter(Project.id == project_id, Project.tenant_id == tenant_id).first()
        if not project:
            raise ValidationFailure("Project not found.", {"constraint": "project_exists", "project_id": project_id})

    def _check_number(self, tenant_id: int, invoice_number: str, exclude_id: Optional[int] = None) -> None:
        query = self.db.query(ClientInvoice.id).filter(
            ClientInvoice.tenant_id == tenant_id,
            ClientInvoice.invoice_number == invoice_number
        )
        if exclude_id:
            query = query.filter(ClientInvoice.id != exclude_id)
        if query.first():
            raise ValidationFailure(
                f"Invoice number {invoice_number} already exists.",
                {"constraint": "invoice_number_unique", "invoice_number": invoice_number}
            )

    def create(self, invoice_data: ClientInvoiceCreate, tenant_id: int) -> ClientInvoice:
        self._check_refs(tenant_id, invoice_data.client_id, invoice_data.project_id)
        self._check_number(tenant_id, invoice_data.invoice_number)

        data = invoice_data.model_dump(exclude={"total"})
        data["gst_type"] = invoice_data.gst_type.value
        invoice = ClientInvoice(**data, total=_invoice_total(invoice_data), tenant_id=tenant_id)
        self.db.add(invoice)
        self.db.flush()
        return invoice

    def update(self, invoice_id: int, tenant_id: int, invoice_data: ClientInvoiceUpdate) -> Optional[ClientInvoice]:
        invoice = self.get_by_id(invoice_id, tenant_id)
        if not invoice:
            return None

        update_data = invoice_data.model_dump(exclude_unset=True)
        if update_data.get("invoice_number"):
            self._check_number(tenant_id, update_data["invoice_number"], exclude_id=invoice.id)
        if update_data.get("gst_type") is not None:
            update_data["gst_type"] = update_data["gst_type"].value

        explicit_total = update_data.pop("total", None)
        for key, value in update_data.items():
            setattr(invoice, key, value)

        if explicit_total is not None:
            invoice.total = round2(explicit_total)
        elif {"basic_value", "cgst", "sgst", "igst"} & set(update_data):
            invoice.total = round2(sum_money([invoice.basic_value, invoice.cgst, invoice.sgst, invoice.igst]))

        settled = sum_money(
            a.gross_amount for a in allocations_by_document(self.db, tenant_id, INVOICE, [invoice.id]).get(invoice.id, [])
        )
        if settled > to_decimal(invoice.total):
            raise ValidationFailure(
                "Invoice total cannot be less than the amount already received.",
                {"constraint": "document_total", "invoice_id": invoice.id, "settled": str(settled)}
            )

        self.db.flush()
        return invoice

    def delete(self, invoice_id: int, tenant_id: int) -> bool:
        invoice = self.get_by_id(invoice_id, tenant_id)
        if not invoice:
            return False
        if allocations_by_document(self.db, tenant_id, INVOICE, [invoice.id]).get(invoice.id):
            raise ValidationFailure(
                "Cannot delete an invoice that has receipts allocated to it.",
                {"constraint": "has_allocations", "invoice_id": invoice.id}
            )
        self.db.delete(invoice)
        self.db.flush()
        return True


class ReceiptService:
    """Money received from a client, applied to its invoices.

    The TDS the client withheld is consumed by the allocations in the order
    they are given; each invoice is settled by ``amount_applied`` gross.
    """

    def __init__(self, db: Session):
        self.db = db

    def create(self, data: ReceiptCreate, tenant_id: int, user: Any = None) -> Transaction:
        cash = round2(data.amount)
        tds = round2(data.tds_amount)
        applied = sum_money(a.amount_applied for a in data.allocations)
        if applied > cash + tds:
            raise ValidationFailure(
                "Allocated total exceeds cash received plus TDS.",
                {"constraint": "receipt_total", "applied": str(applied), "available": str(cash + tds)}
            )

        client = self.db.query(Client).filter(Client.id == data.client_id, Client.tenant_id == tenant_id).first()
        if not client:
            raise NotFoundError("Client not found.", {"client_id": data.client_id})
        if data.project_id is not None:
            project = self.db.query(Project).filter(
                Project.id == data.project_id, Project.tenant_id == tenant_id
            ).first()
            if not project:
                raise NotFoundError("Project not found.", {"project_id": data.project_id})

        allocations = AllocationService(self.db)
        keys = [(INVOICE, a.invoice_id) for a in data.allocations]
        documents = allocations.load_documents(tenant_id, keys) if keys else {}
        for key in keys:
            invoice = documents[key]
            if invoice.client_id != client.id:
                raise ValidationFailure(
                    "Invoice belongs to a different client.",
                    {"constraint": "same_client", "invoice_id": invoice.id}
                )
            if data.project_id is not None and invoice.project_id != data.project_id:
                raise ValidationFailure(
                    "Invoice belongs to a different project.",
                    {"constraint": "same_project", "invoice_id": invoice.id}
                )

        rows = split_sequential(tds, [GrossLine(a.invoice_id, round2(a.amount_applied)) for a in data.allocations])
        if cash - sum_money(row.cash_amount for row in rows) < ZERO:
            raise ValidationFailure(
                "Allocated cash exceeds cash received.",
                {"constraint": "receipt_cash", "cash": str(cash)}
            )

        incoming: Dict = {}
        for key, row in zip(keys, rows):
            incoming[key] = incoming.get(key, ZERO) + row.gross_amount
        if incoming:
            allocations.check_document_capacity(tenant_id, documents, incoming)

        transaction = Transaction(
            type=TransactionType.INCOME.value,
            date=data.date,
            amount=cash,
            tds_amount=tds,
            tds_base_amount=Decimal("0.00"),
            mode=data.mode.value if data.mode else None,
            reference=data.reference,
            note=data.note,
            client_id=client.id,
            project_id=data.project_id,
            tenant_id=tenant_id,
        )
        self.db.add(transaction)
        self.db.flush()

        for key, row in zip(keys, rows):
            allocations.build(transaction, INVOICE, documents[key], row.cash_amount, row.tds_amount)
        self.db.flush()

        AuditService(self.db).log(
            action=AuditAction.PAYMENT_RECEIVED,
            resource_type="Transaction",
            resource_id=transaction.id,
            tenant_id=tenant_id,
            user_id=getattr(user, "id", None),
            username=getattr(user, "username", None),
            description=f"Receipt from client {client.name}",
            new_values={
                "cash": cash,
                "tds": tds,
                "allocations": [
                    {"invoice_id": row.document_id, "cash": row.cash_amount, "tds": row.tds_amount}
                    for row in rows
                ],
            },
        )
        logger.info(
            f"Receipt created tenant={tenant_id} transaction={transaction.id} client={client.id} "
            f"cash={cash} tds={tds} invoices={[row.document_id for row in rows]}"
        )
        return transaction
