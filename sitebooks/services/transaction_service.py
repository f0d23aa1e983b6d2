"""
Transaction Service - money movements and the allocations that settle documents
"""
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple
import logging

from sqlalchemy.orm import Session, joinedload

from sitebooks.core.exceptions import NotFoundError, ValidationFailure
from sitebooks.finance.money import ZERO, is_positive, round2, sum_money, to_decimal
from sitebooks.models import (
    Client, ClientInvoice, DocumentType, Expense, Project, PurchaseInvoice, Transaction,
    TransactionAllocation, TransactionType, Vendor
)
from sitebooks.schemas import AllocationItem, AllocationUpdate, TransactionCreate, TransactionUpdate
from sitebooks.services.audit_service import AuditAction, AuditService

logger = logging.getLogger(__name__)

DOCUMENT_MODELS = {
    DocumentType.CLIENT_INVOICE.value: ClientInvoice,
    DocumentType.EXPENSE.value: Expense,
    DocumentType.PURCHASE_INVOICE.value: PurchaseInvoice,
}

DOCUMENT_LABELS = {
    DocumentType.CLIENT_INVOICE.value: "invoices",
    DocumentType.EXPENSE.value: "expenses",
    DocumentType.PURCHASE_INVOICE.value: "bills",
}

# Transaction type -> document types it may settle
ALLOWED_DOCUMENTS = {
    TransactionType.INCOME.value: {DocumentType.CLIENT_INVOICE.value},
    TransactionType.EXPENSE.value: {DocumentType.EXPENSE.value, DocumentType.PURCHASE_INVOICE.value},
    TransactionType.TRANSFER.value: set(),
}

DocumentKey = Tuple[str, int]


def allocations_by_document(
    db: Session,
    tenant_id: int,
    document_type: str,
    document_ids: Iterable[int],
) -> Dict[int, List[TransactionAllocation]]:
    """Allocations of the given documents, grouped by document id."""
    ids = list(set(document_ids))
    grouped: Dict[int, List[TransactionAllocation]] = defaultdict(list)
    if not ids:
        return grouped
    rows = db.query(TransactionAllocation).filter(
        TransactionAllocation.tenant_id == tenant_id,
        TransactionAllocation.document_type == document_type,
        TransactionAllocation.document_id.in_(ids)
    ).all()
    for row in rows:
        grouped[row.document_id].append(row)
    return grouped


class AllocationService:
    """Create, replace, update and delete allocations under the settlement bounds.

    Two bounds hold after every write: the cash of a transaction's allocations
    never exceeds the transaction amount, and the gross (cash + TDS) settled on
    a document never exceeds the document total.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, allocation_id: int, tenant_id: int) -> Optional[TransactionAllocation]:
        return self.db.query(TransactionAllocation).filter(
            TransactionAllocation.id == allocation_id,
            TransactionAllocation.tenant_id == tenant_id
        ).first()

    def get_by_transaction(self, transaction_id: int, tenant_id: int) -> List[TransactionAllocation]:
        return self.db.query(TransactionAllocation).filter(
            TransactionAllocation.transaction_id == transaction_id,
            TransactionAllocation.tenant_id == tenant_id
        ).order_by(TransactionAllocation.id).all()

    # ----- validation helpers -----

    @staticmethod
    def document_ref(item: AllocationItem) -> DocumentKey:
        refs = [
            (DocumentType.CLIENT_INVOICE.value, item.invoice_id),
            (DocumentType.EXPENSE.value, item.expense_id),
            (DocumentType.PURCHASE_INVOICE.value, item.purchase_invoice_id),
        ]
        given = [(doc_type, doc_id) for doc_type, doc_id in refs if doc_id is not None]
        if len(given) != 1:
            raise ValidationFailure(
                "Exactly one of invoice_id, expense_id or purchase_invoice_id is required.",
                {"constraint": "document_reference"}
            )
        return given[0]

    @staticmethod
    def _check_amount(cash_amount: Decimal, tds_amount: Decimal) -> None:
        if not (is_positive(cash_amount) or is_positive(tds_amount)):
            raise ValidationFailure("Allocation amount must be greater than 0.", {"constraint": "amount_positive"})

    @staticmethod
    def _check_type(transaction: Transaction, document_types: Iterable[str]) -> None:
        allowed = ALLOWED_DOCUMENTS.get(transaction.type, set())
        for doc_type in document_types:
            if doc_type in allowed:
                continue
            if transaction.type == TransactionType.TRANSFER.value:
                message = "TRANSFER transactions cannot have allocations."
            elif transaction.type == TransactionType.INCOME.value:
                message = "INCOME transactions can only allocate to invoices."
            else:
                message = "EXPENSE transactions can only allocate to expenses or bills."
            raise ValidationFailure(message, {
                "constraint": "document_type",
                "transaction_id": transaction.id,
                "document_type": doc_type,
            })

    def load_documents(self, tenant_id: int, keys: Iterable[DocumentKey]) -> Dict[DocumentKey, Any]:
        """Fetch every referenced document; all must exist in the tenant."""
        wanted: Dict[str, set] = defaultdict(set)
        for doc_type, doc_id in keys:
            wanted[doc_type].add(doc_id)

        found: Dict[DocumentKey, Any] = {}
        for doc_type, ids in wanted.items():
            model = DOCUMENT_MODELS[doc_type]
            rows = self.db.query(model).filter(model.tenant_id == tenant_id, model.id.in_(ids)).all()
            if len(rows) != len(ids):
                missing = sorted(ids - {row.id for row in rows})
                raise ValidationFailure(
                    f"One or more {DOCUMENT_LABELS[doc_type]} were not found.",
                    {"constraint": "document_exists", "document_type": doc_type, "document_ids": missing}
                )
            for row in rows:
                found[(doc_type, row.id)] = row
        return found

    def settled_gross(
        self,
        tenant_id: int,
        keys: Iterable[DocumentKey],
        exclude_transaction_id: Optional[int] = None,
        exclude_allocation_id: Optional[int] = None,
    ) -> Dict[DocumentKey, Decimal]:
        """Gross already settled on each document by stored allocations."""
        totals: Dict[DocumentKey, Decimal] = defaultdict(lambda: ZERO)
        by_type: Dict[str, set] = defaultdict(set)
        for doc_type, doc_id in keys:
            by_type[doc_type].add(doc_id)

        for doc_type, ids in by_type.items():
            for doc_id, rows in allocations_by_document(self.db, tenant_id, doc_type, ids).items():
                for row in rows:
                    if exclude_transaction_id is not None and row.transaction_id == exclude_transaction_id:
                        continue
                    if exclude_allocation_id is not None and row.id == exclude_allocation_id:
                        continue
                    totals[(doc_type, doc_id)] += to_decimal(row.cash_amount) + to_decimal(row.tds_amount)
        return totals

    def check_document_capacity(
        self,
        tenant_id: int,
        documents: Dict[DocumentKey, Any],
        incoming: Dict[DocumentKey, Decimal],
        exclude_transaction_id: Optional[int] = None,
        exclude_allocation_id: Optional[int] = None,
    ) -> None:
        """Reject when stored plus incoming gross would exceed a document total."""
        settled = self.settled_gross(
            tenant_id, incoming.keys(),
            exclude_transaction_id=exclude_transaction_id,
            exclude_allocation_id=exclude_allocation_id,
        )
        for key, gross in incoming.items():
            document = documents[key]
            total = to_decimal(document.total)
            already = settled[key]
            if already + gross > total:
                logger.warning(
                    f"Rejected over-allocation tenant={tenant_id} {key[0]}(id={key[1]}) "
                    f"total={total} settled={already} incoming={gross}"
                )
                raise ValidationFailure(
                    "Allocation exceeds the outstanding balance of the document.",
                    {
                        "constraint": "document_total",
                        "document_type": key[0],
                        "document_id": key[1],
                        "total": str(total),
                        "settled": str(already),
                        "requested": str(gross),
                    }
                )

    @staticmethod
    def _check_cash_total(transaction: Transaction, cash_total: Decimal) -> None:
        if cash_total > to_decimal(transaction.amount):
            raise ValidationFailure(
                "Allocations cash total exceeds transaction amount.",
                {
                    "constraint": "transaction_amount",
                    "transaction_id": transaction.id,
                    "amount": str(transaction.amount),
                    "allocated": str(cash_total),
                }
            )

    # ----- writes -----

    def build(
        self,
        transaction: Transaction,
        document_type: str,
        document: Any,
        cash_amount: Decimal,
        tds_amount: Decimal,
    ) -> TransactionAllocation:
        cash = round2(cash_amount)
        tds = round2(tds_amount)
        allocation = TransactionAllocation(
            transaction_id=transaction.id,
            document_type=document_type,
            document_id=document.id,
            project_id=transaction.project_id or document.project_id,
            cash_amount=cash,
            tds_amount=tds,
            gross_amount=cash + tds,
            tenant_id=transaction.tenant_id,
        )
        self.db.add(allocation)
        return allocation

    def _get_transaction(self, transaction_id: int, tenant_id: int) -> Transaction:
        transaction = self.db.query(Transaction).filter(
            Transaction.id == transaction_id,
            Transaction.tenant_id == tenant_id
        ).first()
        if not transaction:
            raise NotFoundError("Transaction not found.", {"transaction_id": transaction_id})
        return transaction

    def _prepare(self, transaction: Transaction, items: List[AllocationItem], tenant_id: int):
        refs = []
        for item in items:
            self._check_amount(item.cash_amount, item.tds_amount)
            refs.append(self.document_ref(item))
        self._check_type(transaction, {doc_type for doc_type, _ in refs})
        documents = self.load_documents(tenant_id, refs)

        incoming: Dict[DocumentKey, Decimal] = defaultdict(lambda: ZERO)
        for key, item in zip(refs, items):
            incoming[key] += to_decimal(item.cash_amount) + to_decimal(item.tds_amount)
        return refs, documents, incoming

    def create(self, transaction_id: int, items: List[AllocationItem], tenant_id: int) -> List[TransactionAllocation]:
        transaction = self._get_transaction(transaction_id, tenant_id)
        refs, documents, incoming = self._prepare(transaction, items, tenant_id)

        existing_cash = sum_money(a.cash_amount for a in self.get_by_transaction(transaction.id, tenant_id))
        self._check_cash_total(transaction, existing_cash + sum_money(item.cash_amount for item in items))
        self.check_document_capacity(tenant_id, documents, incoming)

        created = [
            self.build(transaction, key[0], documents[key], item.cash_amount, item.tds_amount)
            for key, item in zip(refs, items)
        ]
        self.db.flush()
        return created

    def replace(
        self,
        transaction_id: int,
        items: List[AllocationItem],
        tenant_id: int,
        user: Any = None,
    ) -> List[TransactionAllocation]:
        """Delete every allocation of the transaction, then create ``items``."""
        transaction = self._get_transaction(transaction_id, tenant_id)
        refs, documents, incoming = self._prepare(transaction, items, tenant_id)

        self._check_cash_total(transaction, sum_money(item.cash_amount for item in items))
        self.check_document_capacity(tenant_id, documents, incoming, exclude_transaction_id=transaction.id)

        self.db.query(TransactionAllocation).filter(
            TransactionAllocation.tenant_id == tenant_id,
            TransactionAllocation.transaction_id == transaction.id
        ).delete(synchronize_session="fetch")
        self.db.expire(transaction, ["allocations"])

        created = [
            self.build(transaction, key[0], documents[key], item.cash_amount, item.tds_amount)
            for key, item in zip(refs, items)
        ]
        self.db.flush()

        AuditService(self.db).log(
            action=AuditAction.ALLOCATIONS_REPLACED,
            resource_type="Transaction",
            resource_id=transaction.id,
            tenant_id=tenant_id,
            user_id=getattr(user, "id", None),
            username=getattr(user, "username", None),
            new_values={"allocations": [
                {
                    "document_type": a.document_type,
                    "document_id": a.document_id,
                    "cash_amount": a.cash_amount,
                    "tds_amount": a.tds_amount,
                }
                for a in created
            ]},
        )
        return created

    def update(self, allocation_id: int, data: AllocationUpdate, tenant_id: int) -> TransactionAllocation:
        allocation = self.get_by_id(allocation_id, tenant_id)
        if not allocation:
            raise NotFoundError("Allocation not found.", {"allocation_id": allocation_id})
        self._check_amount(data.cash_amount, data.tds_amount)

        transaction = allocation.transaction
        others = sum_money(
            a.cash_amount for a in self.get_by_transaction(transaction.id, tenant_id) if a.id != allocation.id
        )
        self._check_cash_total(transaction, others + to_decimal(data.cash_amount))

        key = (allocation.document_type, allocation.document_id)
        documents = self.load_documents(tenant_id, [key])
        self.check_document_capacity(
            tenant_id, documents,
            {key: to_decimal(data.cash_amount) + to_decimal(data.tds_amount)},
            exclude_allocation_id=allocation.id,
        )

        allocation.cash_amount = round2(data.cash_amount)
        allocation.tds_amount = round2(data.tds_amount)
        allocation.gross_amount = allocation.cash_amount + allocation.tds_amount
        self.db.flush()
        return allocation

    def delete(self, allocation_id: int, tenant_id: int) -> bool:
        allocation = self.get_by_id(allocation_id, tenant_id)
        if not allocation:
            return False
        self.db.delete(allocation)
        self.db.flush()
        return True


class TransactionService:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, transaction_id: int, tenant_id: int) -> Optional[Transaction]:
        return self.db.query(Transaction)\
            .options(joinedload(Transaction.allocations))\
            .filter(Transaction.id == transaction_id, Transaction.tenant_id == tenant_id)\
            .first()

    def get_by_tenant(
        self,
        tenant_id: int,
        type: Optional[str] = None,
        project_id: Optional[int] = None,
        vendor_id: Optional[int] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        skip: int = 0,
        limit: int = 50
    ) -> List[Transaction]:
        query = self.db.query(Transaction).filter(Transaction.tenant_id == tenant_id)
        if type:
            query = query.filter(Transaction.type == type)
        if project_id:
            query = query.filter(Transaction.project_id == project_id)
        if vendor_id:
            query = query.filter(Transaction.vendor_id == vendor_id)
        if date_from:
            query = query.filter(Transaction.date >= date_from)
        if date_to:
            query = query.filter(Transaction.date <= date_to)
        return query.order_by(Transaction.date.desc(), Transaction.id.desc()).offset(skip).limit(limit).all()

    def _check_project(self, project_id: Optional[int], tenant_id: int) -> None:
        if project_id is None:
            return
        exists = self.db.query(Project.id).filter(
            Project.id == project_id, Project.tenant_id == tenant_id
        ).first()
        if not exists:
            raise ValidationFailure("Project not found.", {"constraint": "project_exists", "project_id": project_id})

    def _check_parties(self, tenant_id: int, vendor_id: Optional[int] = None, client_id: Optional[int] = None) -> None:
        if vendor_id is not None:
            vendor = self.db.query(Vendor.id).filter(Vendor.id == vendor_id, Vendor.tenant_id == tenant_id).first()
            if not vendor:
                raise ValidationFailure("Vendor not found.", {"constraint": "vendor_exists", "vendor_id": vendor_id})
        if client_id is not None:
            client = self.db.query(Client.id).filter(Client.id == client_id, Client.tenant_id == tenant_id).first()
            if not client:
                raise ValidationFailure("Client not found.", {"constraint": "client_exists", "client_id": client_id})

    def create(self, data: TransactionCreate, tenant_id: int) -> Transaction:
        self._check_project(data.project_id, tenant_id)
        self._check_parties(tenant_id, vendor_id=data.vendor_id, client_id=data.client_id)

        transaction = Transaction(
            type=data.type.value,
            date=data.date,
            amount=round2(data.amount),
            tds_amount=Decimal("0.00"),
            tds_base_amount=Decimal("0.00"),
            mode=data.mode.value if data.mode else None,
            reference=data.reference,
            project_id=data.project_id,
            vendor_id=data.vendor_id,
            client_id=data.client_id,
            note=data.note,
            description=data.description,
            tenant_id=tenant_id,
        )
        self.db.add(transaction)
        self.db.flush()

        if data.allocations:
            AllocationService(self.db).create(transaction.id, data.allocations, tenant_id)

        logger.info(f"Transaction created tenant={tenant_id} id={transaction.id} type={transaction.type} amount={transaction.amount}")
        return transaction

    def update(self, transaction_id: int, tenant_id: int, data: TransactionUpdate) -> Optional[Transaction]:
        transaction = self.get_by_id(transaction_id, tenant_id)
        if not transaction:
            return None

        update_data = data.model_dump(exclude_unset=True)
        if "project_id" in update_data:
            self._check_project(update_data["project_id"], tenant_id)
        self._check_parties(tenant_id, vendor_id=update_data.get("vendor_id"), client_id=update_data.get("client_id"))
        if update_data.get("amount") is not None:
            allocated = sum_money(a.cash_amount for a in transaction.allocations)
            if allocated > to_decimal(update_data["amount"]):
                raise ValidationFailure(
                    "Allocations cash total exceeds transaction amount.",
                    {"constraint": "transaction_amount", "transaction_id": transaction.id}
                )
            update_data["amount"] = round2(update_data["amount"])
        if update_data.get("mode") is not None:
            update_data["mode"] = update_data["mode"].value

        for key, value in update_data.items():
            setattr(transaction, key, value)
        if "project_id" in update_data:
            for allocation in transaction.allocations:
                allocation.project_id = transaction.project_id

        self.db.flush()
        return transaction

    def delete(self, transaction_id: int, tenant_id: int) -> bool:
        transaction = self.get_by_id(transaction_id, tenant_id)
        if not transaction:
            return False
        self.db.query(TransactionAllocation).filter(
            TransactionAllocation.tenant_id == tenant_id,
            TransactionAllocation.transaction_id == transaction.id
        ).delete(synchronize_session="fetch")
        self.db.expire(transaction, ["allocations"])
        self.db.delete(transaction)
        self.db.flush()
        return True
