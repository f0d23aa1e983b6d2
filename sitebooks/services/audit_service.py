"""
Audit Logging Service
Records an audit trail for payments and reallocations
"""
from sqlalchemy.orm import Session
from typing import Optional, Dict, Any
import json
import logging

from sitebooks.models import AuditLog

logger = logging.getLogger(__name__)


class AuditAction:
    """Constants for audit actions"""
    PAYMENT_RECEIVED = "PAYMENT_RECEIVED"
    PAYMENT_MADE = "PAYMENT_MADE"
    PAYMENT_UPDATED = "PAYMENT_UPDATED"
    PAYMENT_DELETED = "PAYMENT_DELETED"
    ALLOCATIONS_REPLACED = "ALLOCATIONS_REPLACED"
    LABOUR_PAID = "LABOUR_PAID"


class AuditService:
    """Service for recording and retrieving audit logs"""

    def __init__(self, db: Session):
        self.db = db

    def log(
        self,
        action: str,
        resource_type: str,
        tenant_id: int,
        resource_id: Optional[int] = None,
        description: Optional[str] = None,
        new_values: Optional[Dict[str, Any]] = None,
        user_id: Optional[int] = None,
        username: Optional[str] = None,
    ) -> AuditLog:
        """
        Create an audit log entry in the caller's transaction.

        Args:
            action: One of the AuditAction constants
            resource_type: Type of resource being affected (e.g., 'Transaction')
            tenant_id: Tenant the resource belongs to
            resource_id: ID of the affected resource
            description: Human-readable description, e.g. the TDS reason
            new_values: Computed split; Decimals are stored as strings
        """
        audit_log = AuditLog(
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            tenant_id=tenant_id,
            description=description,
            new_values=json.dumps(new_values, default=str) if new_values else None,
            user_id=user_id,
            username=username,
        )
        self.db.add(audit_log)
        self.db.flush()

        logger.info(
            f"Audit: {action} {resource_type}(id={resource_id}) tenant={tenant_id} user={username}"
        )
        return audit_log
