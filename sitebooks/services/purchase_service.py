"""
Purchase Service - vendor bills, TDS lookups and payments to vendors
"""
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy.orm import Session

from sitebooks.core.config import settings
from sitebooks.core.exceptions import NotFoundError, ValidationFailure
from sitebooks.finance import tds as tds_engine
from sitebooks.finance.distribution import BillLine, split_proportional, taxable_base
from sitebooks.finance.fiscal_year import fy_label, fy_start
from sitebooks.finance.money import ZERO, round2, sum_money, to_decimal
from sitebooks.finance.settlement import settle_expense
from sitebooks.models import (
    DocumentType, Project, PurchaseInvoice, Transaction, TransactionAllocation, TransactionType, Vendor
)
from sitebooks.schemas import (
    PurchaseInvoiceCreate, PurchaseInvoiceUpdate, TdsPreviewRequest, VendorPaymentCreate, VendorPaymentMetaUpdate
)
from sitebooks.services.audit_service import AuditAction, AuditService
from sitebooks.services.crm_service import VendorService
from sitebooks.services.transaction_service import AllocationService, allocations_by_document

logger = logging.getLogger(__name__)

BILL = DocumentType.PURCHASE_INVOICE.value

# Bills with less than this left to pay are treated as settled
OPEN_BALANCE_EPSILON = Decimal("0.005")


def _bill_total(data) -> Decimal:
    if data.total is not None:
        return round2(data.total)
    return round2(sum_money([data.taxable_value, data.cgst, data.sgst, data.igst]))


def payment_result(transaction: Transaction, allocations: List[TransactionAllocation], gross: Decimal) -> Dict[str, Any]:
    return {
        "transaction_id": transaction.id,
        "date": transaction.date,
        "vendor_id": transaction.vendor_id,
        "project_id": transaction.project_id,
        "gross_amount": round2(gross),
        "cash_paid": transaction.amount,
        "tds_amount": transaction.tds_amount,
        "tds_base_amount": transaction.tds_base_amount,
        "tds_rate_pct": transaction.tds_rate,
        "tds_reason": transaction.tds_reason,
        "allocations": [
            {
                "document_type": a.document_type,
                "document_id": a.document_id,
                "cash_amount": a.cash_amount,
                "tds_amount": a.tds_amount,
                "gross_amount": a.gross_amount,
            }
            for a in allocations
        ],
    }


class TdsService:
    """Fiscal-year-to-date base and the live TDS preview for a vendor."""

    def __init__(self, db: Session):
        self.db = db

    def ytd_base(self, vendor_id: int, tenant_id: int, on: date) -> Decimal:
        """Taxable base already paid to the vendor this fiscal year, before ``on``."""
        start = fy_start(on, settings.FISCAL_YEAR_START_MONTH)
        rows = self.db.query(Transaction.tds_base_amount).filter(
            Transaction.tenant_id == tenant_id,
            Transaction.vendor_id == vendor_id,
            Transaction.type == TransactionType.EXPENSE.value,
            Transaction.date >= start,
            Transaction.date < on
        ).all()
        return sum_money(row[0] for row in rows)

    def preview(self, request: TdsPreviewRequest, tenant_id: int) -> Dict[str, Any]:
        vendor = VendorService(self.db).get_by_id(request.vendor_id, tenant_id)
        if not vendor:
            raise NotFoundError("Vendor not found.", {"vendor_id": request.vendor_id})

        ytd = self.ytd_base(vendor.id, tenant_id, request.date)
        result = tds_engine.calculate(
            vendor, request.amount, ytd, request.has_transporter_declaration, settings.TDS_TRANSPORTER_MAX_VEHICLES
        )
        return {
            "vendor_id": vendor.id,
            "fiscal_year": fy_label(request.date, settings.FISCAL_YEAR_START_MONTH),
            "ytd_base": ytd,
            "applicable": result.applicable,
            "rate_pct": result.rate_pct,
            "tds_amount": result.tds_amount,
            "threshold_breached": result.threshold_breached,
            "reason": result.reason,
        }


class PurchaseInvoiceService:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, bill_id: int, tenant_id: int) -> Optional[PurchaseInvoice]:
        return self.db.query(PurchaseInvoice).filter(
            PurchaseInvoice.id == bill_id,
            PurchaseInvoice.tenant_id == tenant_id
        ).first()

    def get_by_tenant(
        self,
        tenant_id: int,
        vendor_id: Optional[int] = None,
        project_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 100
    ) -> List[PurchaseInvoice]:
        query = self.db.query(PurchaseInvoice).filter(PurchaseInvoice.tenant_id == tenant_id)
        if vendor_id:
            query = query.filter(PurchaseInvoice.vendor_id == vendor_id)
        if project_id:
            query = query.filter(PurchaseInvoice.project_id == project_id)
        return query.order_by(PurchaseInvoice.invoice_date.desc(), PurchaseInvoice.id.desc())\
            .offset(skip).limit(limit).all()

    def list_with_settlement(self, tenant_id: int, today: Optional[date] = None, **filters) -> List[Dict[str, Any]]:
        today = today or date.today()
        bills = self.get_by_tenant(tenant_id, **filters)
        grouped = allocations_by_document(self.db, tenant_id, BILL, [bill.id for bill in bills])
        return [self.annotate(bill, grouped.get(bill.id, []), today) for bill in bills]

    def get_with_settlement(self, bill_id: int, tenant_id: int, today: Optional[date] = None) -> Optional[Dict[str, Any]]:
        bill = self.get_by_id(bill_id, tenant_id)
        if not bill:
            return None
        grouped = allocations_by_document(self.db, tenant_id, BILL, [bill.id])
        return self.annotate(bill, grouped.get(bill.id, []), today or date.today())

    @staticmethod
    def annotate(bill: PurchaseInvoice, allocations: List[TransactionAllocation], today: date) -> Dict[str, Any]:
        settlement = settle_expense(bill, allocations, today)
        row = {column.name: getattr(bill, column.name) for column in PurchaseInvoice.__table__.columns}
        row.update(
            paid_amount=settlement.paid_amount,
            balance=settlement.balance,
            computed_status=settlement.status,
        )
        return row

    def open_bills(self, vendor_id: int, tenant_id: int, project_id: Optional[int] = None) -> List[Dict[str, Any]]:
        """Bills of the vendor that still have something left to pay, oldest first."""
        query = self.db.query(PurchaseInvoice).filter(
            PurchaseInvoice.tenant_id == tenant_id,
            PurchaseInvoice.vendor_id == vendor_id
        )
        if project_id:
            query = query.filter(PurchaseInvoice.project_id == project_id)
        bills = query.order_by(PurchaseInvoice.invoice_date, PurchaseInvoice.id).all()
        grouped = allocations_by_document(self.db, tenant_id, BILL, [bill.id for bill in bills])

        open_rows = []
        for bill in bills:
            paid = sum_money(a.gross_amount for a in grouped.get(bill.id, []))
            balance = to_decimal(bill.total) - paid
            if balance > OPEN_BALANCE_EPSILON:
                open_rows.append({
                    "id": bill.id,
                    "invoice_number": bill.invoice_number,
                    "invoice_date": bill.invoice_date,
                    "project_id": bill.project_id,
                    "taxable_value": bill.taxable_value,
                    "total": bill.total,
                    "paid_amount": paid,
                    "balance": balance,
                })
        return open_rows

    def _check_refs(self, tenant_id: int, vendor_id: int, project_id: int) -> None:
        if not VendorService(self.db).get_by_id(vendor_id, tenant_id):
            raise ValidationFailure("Vendor not found.", {"constraint": "vendor_exists", "vendor_id": vendor_id})
        project = self.db.query(Project).filter(Project.id == project_id, Project.tenant_id == tenant_id).first()
        if not project:
            raise ValidationFailure("Project not found.", {"constraint": "project_exists", "project_id": project_id})

    def create(self, bill_data: PurchaseInvoiceCreate, tenant_id: int) -> PurchaseInvoice:
        self._check_refs(tenant_id, bill_data.vendor_id, bill_data.project_id)
        duplicate = self.db.query(PurchaseInvoice.id).filter(
            PurchaseInvoice.tenant_id == tenant_id,
            PurchaseInvoice.vendor_id == bill_data.vendor_id,
            PurchaseInvoice.invoice_number == bill_data.invoice_number
        ).first()
        if duplicate:
            raise ValidationFailure(
                f"Bill {bill_data.invoice_number} already exists for this vendor.",
                {"constraint": "bill_number_unique", "invoice_number": bill_data.invoice_number}
            )

        data = bill_data.model_dump(exclude={"total"})
        data["gst_type"] = bill_data.gst_type.value
        bill = PurchaseInvoice(**data, total=_bill_total(bill_data), tenant_id=tenant_id)
        self.db.add(bill)
        self.db.flush()
        return bill

    def update(self, bill_id: int, tenant_id: int, bill_data: PurchaseInvoiceUpdate) -> Optional[PurchaseInvoice]:
        bill = self.get_by_id(bill_id, tenant_id)
        if not bill:
            return None

        update_data = bill_data.model_dump(exclude_unset=True)
        if update_data.get("gst_type") is not None:
            update_data["gst_type"] = update_data["gst_type"].value
        explicit_total = update_data.pop("total", None)
        for key, value in update_data.items():
            setattr(bill, key, value)

        if explicit_total is not None:
            bill.total = round2(explicit_total)
        elif {"taxable_value", "cgst", "sgst", "igst"} & set(update_data):
            bill.total = round2(sum_money([bill.taxable_value, bill.cgst, bill.sgst, bill.igst]))

        settled = sum_money(a.gross_amount for a in allocations_by_document(self.db, tenant_id, BILL, [bill.id]).get(bill.id, []))
        if settled > to_decimal(bill.total):
            raise ValidationFailure(
                "Bill total cannot be less than the amount already paid.",
                {"constraint": "document_total", "bill_id": bill.id, "settled": str(settled)}
            )

        self.db.flush()
        return bill

    def delete(self, bill_id: int, tenant_id: int) -> bool:
        bill = self.get_by_id(bill_id, tenant_id)
        if not bill:
            return False
        if allocations_by_document(self.db, tenant_id, BILL, [bill.id]).get(bill.id):
            raise ValidationFailure(
                "Cannot delete a bill that has payments allocated to it.",
                {"constraint": "has_allocations", "bill_id": bill.id}
            )
        self.db.delete(bill)
        self.db.flush()
        return True


class VendorPaymentService:
    """Payments to vendors against their bills, with 194C withholding.

    The engine runs once on the aggregate taxable base of the payment; the
    resulting TDS is then spread over the bills by taxable share.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, transaction_id: int, tenant_id: int) -> Optional[Transaction]:
        return self.db.query(Transaction).filter(
            Transaction.id == transaction_id,
            Transaction.tenant_id == tenant_id,
            Transaction.type == TransactionType.EXPENSE.value,
            Transaction.vendor_id.isnot(None)
        ).first()

    def get_by_tenant(self, tenant_id: int, vendor_id: Optional[int] = None, skip: int = 0, limit: int = 50) -> List[Transaction]:
        query = self.db.query(Transaction).filter(
            Transaction.tenant_id == tenant_id,
            Transaction.type == TransactionType.EXPENSE.value,
            Transaction.vendor_id.isnot(None)
        )
        if vendor_id:
            query = query.filter(Transaction.vendor_id == vendor_id)
        return query.order_by(Transaction.date.desc(), Transaction.id.desc()).offset(skip).limit(limit).all()

    def _validate_bills(self, data: VendorPaymentCreate, vendor: Vendor, tenant_id: int) -> Dict:
        allocations = AllocationService(self.db)
        keys = [(BILL, a.purchase_invoice_id) for a in data.allocations]
        if not keys:
            return {}
        bills = allocations.load_documents(tenant_id, keys)
        for bill in bills.values():
            if bill.vendor_id != vendor.id:
                raise ValidationFailure(
                    "One or more bills do not belong to this vendor.",
                    {"constraint": "same_vendor", "bill_id": bill.id, "vendor_id": vendor.id}
                )
            if data.project_id is not None and bill.project_id != data.project_id:
                raise ValidationFailure(
                    "One or more bills do not belong to this project.",
                    {"constraint": "same_project", "bill_id": bill.id, "project_id": data.project_id}
                )

        incoming: Dict = {}
        for key, item in zip(keys, data.allocations):
            incoming[key] = incoming.get(key, ZERO) + round2(item.amount_applied)
        allocations.check_document_capacity(tenant_id, bills, incoming)
        return bills

    def create(self, data: VendorPaymentCreate, tenant_id: int, user: Any = None) -> Dict[str, Any]:
        if data.allocations and data.gross_amount is not None:
            applied = sum_money(round2(a.amount_applied) for a in data.allocations)
            declared = round2(data.gross_amount)
            if applied > declared:
                raise ValidationFailure(
                    "Bill settlements exceed the payment gross amount.",
                    {"constraint": "payment_gross", "applied": str(applied), "gross_amount": str(declared)}
                )

        vendor = VendorService(self.db).get_for_update(data.vendor_id, tenant_id)
        if not vendor:
            raise NotFoundError("Vendor not found.", {"vendor_id": data.vendor_id})
        if data.project_id is not None:
            project = self.db.query(Project).filter(
                Project.id == data.project_id, Project.tenant_id == tenant_id
            ).first()
            if not project:
                raise NotFoundError("Project not found.", {"project_id": data.project_id})

        bills = self._validate_bills(data, vendor, tenant_id)
        lines = [
            BillLine(
                document_id=a.purchase_invoice_id,
                gross_amount=round2(a.amount_applied),
                taxable_value=to_decimal(bills[(BILL, a.purchase_invoice_id)].taxable_value),
                total=to_decimal(bills[(BILL, a.purchase_invoice_id)].total),
            )
            for a in data.allocations
        ]

        if lines:
            gross_total = sum_money(line.gross_amount for line in lines)
            base = taxable_base(lines)
        else:
            gross_total = round2(data.gross_amount)
            base = gross_total

        ytd = TdsService(self.db).ytd_base(vendor.id, tenant_id, data.date)
        result = tds_engine.calculate(
            vendor, base, ytd, data.has_transporter_declaration, settings.TDS_TRANSPORTER_MAX_VEHICLES
        )
        total_tds = result.tds_amount if result.applicable else round2(ZERO)
        rows = split_proportional(lines, result.rate_pct, total_tds)

        transaction = Transaction(
            type=TransactionType.EXPENSE.value,
            date=data.date,
            amount=round2(gross_total - total_tds),
            tds_amount=total_tds,
            tds_base_amount=round2(base),
            tds_rate=result.rate_pct,
            tds_reason=result.reason,
            vendor_id=vendor.id,
            project_id=data.project_id,
            mode=data.mode.value if data.mode else None,
            reference=(data.reference or "").strip() or None,
            note=(data.note or "").strip() or None,
            description=(data.description or "").strip() or None,
            tenant_id=tenant_id,
        )
        self.db.add(transaction)
        self.db.flush()

        allocations = AllocationService(self.db)
        created = [
            allocations.build(transaction, BILL, bills[(BILL, row.document_id)], row.cash_amount, row.tds_amount)
            for row in rows
        ]
        self.db.flush()

        AuditService(self.db).log(
            action=AuditAction.PAYMENT_MADE,
            resource_type="Transaction",
            resource_id=transaction.id,
            tenant_id=tenant_id,
            user_id=getattr(user, "id", None),
            username=getattr(user, "username", None),
            description=result.reason,
            new_values={
                "vendor_id": vendor.id,
                "gross": gross_total,
                "cash": transaction.amount,
                "tds": total_tds,
                "tds_base": transaction.tds_base_amount,
                "ytd_base": ytd,
                "rate_pct": result.rate_pct,
                "threshold_breached": result.threshold_breached.value,
                "allocations": [
                    {"bill_id": row.document_id, "cash": row.cash_amount, "tds": row.tds_amount}
                    for row in rows
                ],
            },
        )
        logger.info(
            f"Vendor payment created tenant={tenant_id} transaction={transaction.id} vendor={vendor.id} "
            f"gross={gross_total} cash={transaction.amount} tds={total_tds} reason={result.reason!r}"
        )
        return payment_result(transaction, created, gross_total)

    def update_meta(self, transaction_id: int, tenant_id: int, data: VendorPaymentMetaUpdate) -> Optional[Transaction]:
        """Edit descriptive fields only; amounts and allocations stay as computed."""
        transaction = self.get_by_id(transaction_id, tenant_id)
        if not transaction:
            return None

        update_data = data.model_dump(exclude_unset=True)
        if update_data.get("project_id") is not None:
            project = self.db.query(Project).filter(
                Project.id == update_data["project_id"], Project.tenant_id == tenant_id
            ).first()
            if not project:
                raise ValidationFailure("Project not found.", {"constraint": "project_exists"})
            bill_ids = [a.document_id for a in transaction.allocations if a.document_type == BILL]
            if bill_ids:
                stray = self.db.query(PurchaseInvoice.id).filter(
                    PurchaseInvoice.tenant_id == tenant_id,
                    PurchaseInvoice.id.in_(bill_ids),
                    PurchaseInvoice.project_id != project.id
                ).first()
                if stray:
                    raise ValidationFailure(
                        "One or more bills do not belong to this project.",
                        {"constraint": "same_project", "bill_id": stray[0], "project_id": project.id}
                    )
        if update_data.get("mode") is not None:
            update_data["mode"] = update_data["mode"].value
        for key in ("reference", "note", "description"):
            if key in update_data:
                update_data[key] = (update_data[key] or "").strip() or None

        for key, value in update_data.items():
            setattr(transaction, key, value)

        if "project_id" in update_data:
            for allocation in transaction.allocations:
                allocation.project_id = transaction.project_id

        self.db.flush()
        AuditService(self.db).log(
            action=AuditAction.PAYMENT_UPDATED,
            resource_type="Transaction",
            resource_id=transaction.id,
            tenant_id=tenant_id,
            new_values=update_data,
        )
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
        AuditService(self.db).log(
            action=AuditAction.PAYMENT_DELETED,
            resource_type="Transaction",
            resource_id=transaction_id,
            tenant_id=tenant_id,
        )
        logger.info(f"Vendor payment deleted tenant={tenant_id} transaction={transaction_id}")
        return True
