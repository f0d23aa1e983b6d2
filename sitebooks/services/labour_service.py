"""
Labour Service - daily site labour sheets, each paid through one EXPENSE transaction
"""
from decimal import Decimal
from typing import Any, List, Optional
import logging

from sqlalchemy.orm import Session, joinedload

from sitebooks.core.exceptions import ValidationFailure
from sitebooks.finance.money import ZERO, round2, sum_money, to_decimal
from sitebooks.models import LabourSheet, LabourSheetLine, Project, Transaction, TransactionType
from sitebooks.schemas import LabourSheetCreate
from sitebooks.services.audit_service import AuditAction, AuditService

logger = logging.getLogger(__name__)

LABOUR_DESCRIPTION = "Labour payment"


class LabourService:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, sheet_id: int, tenant_id: int) -> Optional[LabourSheet]:
        return self.db.query(LabourSheet).options(joinedload(LabourSheet.lines)).filter(
            LabourSheet.id == sheet_id,
            LabourSheet.tenant_id == tenant_id
        ).first()

    def get_by_tenant(
        self,
        tenant_id: int,
        project_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 50
    ) -> List[LabourSheet]:
        query = self.db.query(LabourSheet).filter(LabourSheet.tenant_id == tenant_id)
        if project_id:
            query = query.filter(LabourSheet.project_id == project_id)
        return query.order_by(LabourSheet.date.desc(), LabourSheet.id.desc()).offset(skip).limit(limit).all()

    def create(self, data: LabourSheetCreate, tenant_id: int, user: Any = None) -> LabourSheet:
        project = self.db.query(Project.id).filter(
            Project.id == data.project_id, Project.tenant_id == tenant_id
        ).first()
        if not project:
            raise ValidationFailure("Project not found.", {"constraint": "project_exists", "project_id": data.project_id})

        lines = []
        for line in data.lines:
            rate = round2(line.rate)
            lines.append(LabourSheetLine(
                role=line.role.strip(),
                headcount=line.headcount,
                rate=rate,
                amount=round2(to_decimal(rate) * line.headcount),
                tenant_id=tenant_id,
            ))
        total = round2(sum_money(line.amount for line in lines))
        if total <= ZERO:
            raise ValidationFailure("Labour sheet total must be greater than 0.", {"constraint": "labour_total"})

        reference = (data.reference or "").strip() or None
        note = (data.note or "").strip() or None

        # Wages carry no TDS and no vendor, so they never count towards a vendor's threshold
        transaction = Transaction(
            type=TransactionType.EXPENSE.value,
            date=data.date,
            amount=total,
            tds_amount=Decimal("0.00"),
            tds_base_amount=Decimal("0.00"),
            mode=data.mode.value,
            reference=reference,
            note=note,
            description=LABOUR_DESCRIPTION,
            project_id=data.project_id,
            tenant_id=tenant_id,
        )
        self.db.add(transaction)
        self.db.flush()

        sheet = LabourSheet(
            date=data.date,
            mode=data.mode.value,
            reference=reference,
            note=note,
            total=total,
            project_id=data.project_id,
            transaction_id=transaction.id,
            tenant_id=tenant_id,
            lines=lines,
        )
        self.db.add(sheet)
        self.db.flush()

        AuditService(self.db).log(
            action=AuditAction.LABOUR_PAID,
            resource_type="LabourSheet",
            resource_id=sheet.id,
            tenant_id=tenant_id,
            user_id=getattr(user, "id", None),
            username=getattr(user, "username", None),
            new_values={
                "project_id": sheet.project_id,
                "transaction_id": transaction.id,
                "total": total,
                "lines": [{"role": line.role, "headcount": line.headcount, "rate": line.rate} for line in lines],
            },
        )
        logger.info(
            f"Labour sheet created tenant={tenant_id} sheet={sheet.id} project={sheet.project_id} "
            f"transaction={transaction.id} total={total}"
        )
        return sheet

    def delete(self, sheet_id: int, tenant_id: int) -> bool:
        """Remove the sheet together with the payment it posted."""
        sheet = self.get_by_id(sheet_id, tenant_id)
        if not sheet:
            return False
        transaction = sheet.transaction
        self.db.delete(sheet)
        if transaction is not None:
            self.db.delete(transaction)
        self.db.flush()
        return True
