"""
Expense Service - project expenses and paying them, with TDS for subcontractors
"""
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy.orm import Session

from sitebooks.core.config import settings
from sitebooks.core.exceptions import NotFoundError, ValidationFailure
from sitebooks.finance import tds as tds_engine
from sitebooks.finance.distribution import CashLine, candidate_bases, choose_tds_result, split_on_cash
from sitebooks.finance.money import ZERO, round2, sum_money, to_decimal
from sitebooks.finance.settlement import settle_expense
from sitebooks.models import DocumentType, Expense, Project, Transaction, TransactionAllocation, TransactionType
from sitebooks.schemas import ExpenseCreate, ExpensePaymentCreate, ExpenseUpdate
from sitebooks.services.audit_service import AuditAction, AuditService
from sitebooks.services.crm_service import VendorService
from sitebooks.services.purchase_service import TdsService, payment_result
from sitebooks.services.transaction_service import AllocationService, allocations_by_document

logger = logging.getLogger(__name__)

EXPENSE = DocumentType.EXPENSE.value

NOT_SUBCONTRACTOR_REASON = "No TDS (vendor is not a subcontractor)."


def expense_total(amount_before_tax, cgst, sgst, igst) -> Decimal:
    return round2(sum_money([amount_before_tax, cgst, sgst, igst]))


class ExpenseService:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, expense_id: int, tenant_id: int) -> Optional[Expense]:
        return self.db.query(Expense).filter(
            Expense.id == expense_id,
            Expense.tenant_id == tenant_id
        ).first()

    def get_by_tenant(
        self,
        tenant_id: int,
        project_id: Optional[int] = None,
        vendor_id: Optional[int] = None,
        expense_type: Optional[str] = None,
        skip: int = 0,
        limit: int = 50
    ) -> List[Expense]:
        query = self.db.query(Expense).filter(Expense.tenant_id == tenant_id)
        if project_id:
            query = query.filter(Expense.project_id == project_id)
        if vendor_id:
            query = query.filter(Expense.vendor_id == vendor_id)
        if expense_type:
            query = query.filter(Expense.expense_type == expense_type)
        return query.order_by(Expense.date.desc(), Expense.id.desc()).offset(skip).limit(limit).all()

    def list_with_settlement(self, tenant_id: int, today: Optional[date] = None, **filters) -> List[Dict[str, Any]]:
        today = today or date.today()
        expenses = self.get_by_tenant(tenant_id, **filters)
        grouped = allocations_by_document(self.db, tenant_id, EXPENSE, [e.id for e in expenses])
        return [self.annotate(e, grouped.get(e.id, []), today) for e in expenses]

    def get_with_settlement(self, expense_id: int, tenant_id: int, today: Optional[date] = None) -> Optional[Dict[str, Any]]:
        expense = self.get_by_id(expense_id, tenant_id)
        if not expense:
            return None
        grouped = allocations_by_document(self.db, tenant_id, EXPENSE, [expense.id])
        return self.annotate(expense, grouped.get(expense.id, []), today or date.today())

    @staticmethod
    def annotate(expense: Expense, allocations: List[TransactionAllocation], today: date) -> Dict[str, Any]:
        settlement = settle_expense(expense, allocations, today)
        row = {column.name: getattr(expense, column.name) for column in Expense.__table__.columns}
        row.update(
            paid_amount=settlement.paid_amount,
            balance=settlement.balance,
            computed_status=settlement.status,
        )
        return row

    def _check_refs(self, tenant_id: int, project_id: Optional[int], vendor_id: Optional[int]) -> None:
        if project_id is not None:
            project = self.db.query(Project).filter(Project.id == project_id, Project.tenant_id == tenant_id).first()
            if not project:
                raise ValidationFailure("Project not found.", {"constraint": "project_exists", "project_id": project_id})
        if vendor_id is not None and not VendorService(self.db).get_by_id(vendor_id, tenant_id):
            raise ValidationFailure("Vendor not found.", {"constraint": "vendor_exists", "vendor_id": vendor_id})

    def create(self, expense_data: ExpenseCreate, tenant_id: int) -> Expense:
        self._check_refs(tenant_id, expense_data.project_id, expense_data.vendor_id)

        data = expense_data.model_dump()
        data["expense_type"] = expense_data.expense_type.value
        expense = Expense(
            **data,
            total=expense_total(
                expense_data.amount_before_tax, expense_data.cgst, expense_data.sgst, expense_data.igst
            ),
            tenant_id=tenant_id
        )
        self.db.add(expense)
        self.db.flush()
        return expense

    def update(self, expense_id: int, tenant_id: int, expense_data: ExpenseUpdate) -> Optional[Expense]:
        expense = self.get_by_id(expense_id, tenant_id)
        if not expense:
            return None

        update_data = expense_data.model_dump(exclude_unset=True)
        self._check_refs(tenant_id, update_data.get("project_id"), update_data.get("vendor_id"))
        if update_data.get("expense_type") is not None:
            update_data["expense_type"] = update_data["expense_type"].value
        for key, value in update_data.items():
            setattr(expense, key, value)

        expense.total = expense_total(expense.amount_before_tax, expense.cgst, expense.sgst, expense.igst)
        settled = sum_money(
            a.gross_amount for a in allocations_by_document(self.db, tenant_id, EXPENSE, [expense.id]).get(expense.id, [])
        )
        if settled > to_decimal(expense.total):
            raise ValidationFailure(
                "Expense total cannot be less than the amount already paid.",
                {"constraint": "document_total", "expense_id": expense.id, "settled": str(settled)}
            )

        self.db.flush()
        return expense

    def delete(self, expense_id: int, tenant_id: int) -> bool:
        expense = self.get_by_id(expense_id, tenant_id)
        if not expense:
            return False
        if allocations_by_document(self.db, tenant_id, EXPENSE, [expense.id]).get(expense.id):
            raise ValidationFailure(
                "Cannot delete an expense that has payments allocated to it.",
                {"constraint": "has_allocations", "expense_id": expense.id}
            )
        self.db.delete(expense)
        self.db.flush()
        return True

    def pay(self, data: ExpensePaymentCreate, tenant_id: int, user: Any = None) -> Dict[str, Any]:
        """Pay expenses of one vendor; cash is as entered and any TDS is added on top.

        For subcontractors the withholding threshold is tested twice: on the
        taxable share of the cash, then on that share grossed up for the tax
        itself. The first applicable candidate decides the TDS and the base
        each expense carries.
        """
        vendor = VendorService(self.db).get_for_update(data.vendor_id, tenant_id)
        if not vendor:
            raise NotFoundError("Vendor not found.", {"vendor_id": data.vendor_id})

        cash_total = round2(data.amount)
        applied = sum_money(round2(a.amount_applied) for a in data.allocations)
        if applied > cash_total:
            raise ValidationFailure(
                "Allocated total exceeds payment amount.",
                {"constraint": "payment_amount", "applied": str(applied), "amount": str(cash_total)}
            )

        allocations = AllocationService(self.db)
        keys = [(EXPENSE, a.expense_id) for a in data.allocations]
        expenses = allocations.load_documents(tenant_id, keys)
        for expense in expenses.values():
            if expense.vendor_id != vendor.id:
                raise ValidationFailure(
                    "One or more expenses do not belong to this vendor.",
                    {"constraint": "same_vendor", "expense_id": expense.id, "vendor_id": vendor.id}
                )
            if data.project_id is not None and expense.project_id != data.project_id:
                raise ValidationFailure(
                    "One or more expenses do not belong to this project.",
                    {"constraint": "same_project", "expense_id": expense.id, "project_id": data.project_id}
                )

        lines = [
            CashLine(
                document_id=a.expense_id,
                cash_amount=round2(a.amount_applied),
                taxable_value=to_decimal(expenses[(EXPENSE, a.expense_id)].amount_before_tax),
                total=to_decimal(expenses[(EXPENSE, a.expense_id)].total),
            )
            for a in data.allocations
        ]

        ytd = ZERO
        if vendor.is_subcontractor:
            rate = tds_engine.determine_rate_percent(
                vendor, data.has_transporter_declaration, settings.TDS_TRANSPORTER_MAX_VEHICLES
            )
            bases = candidate_bases(lines, rate)
            ytd = TdsService(self.db).ytd_base(vendor.id, tenant_id, data.date)
            index, base, result = choose_tds_result(
                lambda candidate: tds_engine.calculate(
                    vendor, candidate, ytd, data.has_transporter_declaration, settings.TDS_TRANSPORTER_MAX_VEHICLES
                ),
                [bases.plain, bases.grossed_up],
            )
            row_bases = bases.plain_rows if index == 0 else bases.grossed_up_rows
            total_tds = result.tds_amount if result.applicable else round2(ZERO)
            rate_pct, reason = result.rate_pct, result.reason
        else:
            bases = candidate_bases(lines, ZERO)
            base, row_bases = bases.plain, bases.plain_rows
            total_tds, rate_pct, reason = round2(ZERO), ZERO, NOT_SUBCONTRACTOR_REASON

        rows = split_on_cash(lines, row_bases, rate_pct, total_tds)

        incoming: Dict = {}
        for key, row in zip(keys, rows):
            incoming[key] = incoming.get(key, ZERO) + row.gross_amount
        allocations.check_document_capacity(tenant_id, expenses, incoming)

        transaction = Transaction(
            type=TransactionType.EXPENSE.value,
            date=data.date,
            amount=cash_total,
            tds_amount=total_tds,
            tds_base_amount=round2(base) if vendor.is_subcontractor else Decimal("0.00"),
            tds_rate=rate_pct,
            tds_reason=reason,
            vendor_id=vendor.id,
            project_id=data.project_id,
            mode=data.mode.value if data.mode else None,
            reference=(data.reference or "").strip() or None,
            note=(data.note or "").strip() or None,
            tenant_id=tenant_id,
        )
        self.db.add(transaction)
        self.db.flush()

        created = [
            allocations.build(transaction, EXPENSE, expenses[(EXPENSE, row.document_id)], row.cash_amount, row.tds_amount)
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
            description=reason,
            new_values={
                "vendor_id": vendor.id,
                "cash": cash_total,
                "tds": total_tds,
                "tds_base": transaction.tds_base_amount,
                "ytd_base": ytd,
                "rate_pct": rate_pct,
                "allocations": [
                    {"expense_id": row.document_id, "cash": row.cash_amount, "tds": row.tds_amount}
                    for row in rows
                ],
            },
        )
        logger.info(
            f"Expense payment created tenant={tenant_id} transaction={transaction.id} vendor={vendor.id} "
            f"cash={cash_total} tds={total_tds} reason={reason!r}"
        )
        return payment_result(transaction, created, cash_total + total_tds)
