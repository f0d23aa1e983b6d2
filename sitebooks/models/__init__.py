"""
SQLAlchemy Models for the settlement service
"""
from datetime import datetime
from decimal import Decimal
from sqlalchemy import (
    Column, Integer, String, Text, Boolean, DateTime, Date, Numeric,
    ForeignKey, Index, UniqueConstraint
)
from sqlalchemy.orm import relationship
import enum

from sitebooks.core.config import settings
from sitebooks.core.database import Base
from sitebooks.finance.tds import VendorLegalType


# ==================== ENUMS ====================

class TransactionType(str, enum.Enum):
    INCOME = "INCOME"      # money in
    EXPENSE = "EXPENSE"    # money out
    TRANSFER = "TRANSFER"


class DocumentType(str, enum.Enum):
    CLIENT_INVOICE = "CLIENT_INVOICE"
    EXPENSE = "EXPENSE"
    PURCHASE_INVOICE = "PURCHASE_INVOICE"


class PaymentMode(str, enum.Enum):
    CASH = "CASH"
    BANK_TRANSFER = "BANK_TRANSFER"
    CHEQUE = "CHEQUE"
    UPI = "UPI"
    CARD = "CARD"
    OTHER = "OTHER"


class InvoiceStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    ISSUED = "ISSUED"
    CANCELLED = "CANCELLED"


class ProjectStatus(str, enum.Enum):
    PLANNED = "PLANNED"
    ACTIVE = "ACTIVE"
    ON_HOLD = "ON_HOLD"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class GstType(str, enum.Enum):
    INTRA = "INTRA"
    INTER = "INTER"


class ExpenseType(str, enum.Enum):
    MATERIAL = "MATERIAL"
    LABOUR = "LABOUR"
    SUBCONTRACTOR = "SUBCONTRACTOR"
    OVERHEAD = "OVERHEAD"


# ==================== CORE MODELS ====================

class Tenant(Base):
    """Business using the system; every other row belongs to one"""
    __tablename__ = 'tenants'

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    users = relationship("User", back_populates="tenant", cascade="all, delete-orphan")


class User(Base):
    """User account (resolves the tenant of a request)"""
    __tablename__ = 'users'

    id = Column(Integer, primary_key=True)
    username = Column(String(100), nullable=False, unique=True)
    email = Column(String(255), nullable=False, unique=True)
    full_name = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True)
    tenant_id = Column(Integer, ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    tenant = relationship("Tenant", back_populates="users")


# ==================== CRM MODELS ====================

class Client(Base):
    """Client (customer) of the construction business"""
    __tablename__ = 'clients'

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    gstin = Column(String(20), nullable=True)
    pan = Column(String(20), nullable=True)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    address = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True)
    tenant_id = Column(Integer, ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    projects = relationship("Project", back_populates="client")
    invoices = relationship("ClientInvoice", back_populates="client")

    __table_args__ = (
        Index('ix_clients_tenant_id', 'tenant_id'),
    )


class Vendor(Base):
    """Vendor / subcontractor, including the TDS profile used for 194C"""
    __tablename__ = 'vendors'

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    trade = Column(String(100), nullable=True)
    gstin = Column(String(20), nullable=True)
    pan = Column(String(20), nullable=True)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    address = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True)

    # TDS profile
    legal_type = Column(String(20), default=VendorLegalType.OTHER.value, nullable=False)
    is_subcontractor = Column(Boolean, default=False)
    is_transporter = Column(Boolean, default=False)
    transporter_vehicle_count = Column(Integer, nullable=True)
    tds_section = Column(String(20), default="194C")
    tds_override_rate = Column(Numeric(5, 2), nullable=True)
    tds_threshold_single = Column(Numeric(15, 2), default=settings.TDS_DEFAULT_THRESHOLD_SINGLE, nullable=False)
    tds_threshold_annual = Column(Numeric(15, 2), default=settings.TDS_DEFAULT_THRESHOLD_ANNUAL, nullable=False)

    tenant_id = Column(Integer, ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    purchase_invoices = relationship("PurchaseInvoice", back_populates="vendor")
    expenses = relationship("Expense", back_populates="vendor")

    __table_args__ = (
        Index('ix_vendors_tenant_id', 'tenant_id'),
    )


# ==================== PROJECTS ====================

class Project(Base):
    """Construction project; invoices, bills, expenses and cash are bucketed by it"""
    __tablename__ = 'projects'

    id = Column(Integer, primary_key=True)
    name = Column(String(200), nullable=False)
    location = Column(String(500), nullable=True)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    status = Column(String(20), default=ProjectStatus.ACTIVE.value)
    remarks = Column(Text, nullable=True)
    client_id = Column(Integer, ForeignKey('clients.id', ondelete='RESTRICT'), nullable=False)
    tenant_id = Column(Integer, ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    client = relationship("Client", back_populates="projects")

    __table_args__ = (
        Index('ix_projects_tenant_id', 'tenant_id'),
    )


# ==================== SALES ====================

class ClientInvoice(Base):
    """Invoice raised on a client"""
    __tablename__ = 'client_invoices'

    id = Column(Integer, primary_key=True)
    invoice_number = Column(String(50), nullable=False)
    invoice_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=True)
    status = Column(String(50), default=InvoiceStatus.SENT.value)  # stored hint; DRAFT forces Draft
    service_description = Column(Text, nullable=True)
    sac_code = Column(String(20), nullable=True)
    gst_type = Column(String(10), default=GstType.INTRA.value)
    gst_rate = Column(Numeric(5, 2), nullable=True)
    basic_value = Column(Numeric(15, 2), default=Decimal("0.00"))
    cgst = Column(Numeric(15, 2), default=Decimal("0.00"))
    sgst = Column(Numeric(15, 2), default=Decimal("0.00"))
    igst = Column(Numeric(15, 2), default=Decimal("0.00"))
    total = Column(Numeric(15, 2), default=Decimal("0.00"))
    tds_rate = Column(Numeric(5, 2), nullable=True)
    tds_amount_expected = Column(Numeric(15, 2), nullable=True)
    project_id = Column(Integer, ForeignKey('projects.id', ondelete='RESTRICT'), nullable=False)
    client_id = Column(Integer, ForeignKey('clients.id', ondelete='RESTRICT'), nullable=False)
    tenant_id = Column(Integer, ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    client = relationship("Client", back_populates="invoices")
    project = relationship("Project")

    __table_args__ = (
        UniqueConstraint('invoice_number', 'tenant_id', name='uq_client_invoice_number'),
        Index('ix_client_invoices_tenant_id', 'tenant_id'),
    )

    @property
    def subtotal(self):
        return self.basic_value


# ==================== PURCHASES ====================

class PurchaseInvoice(Base):
    """Vendor bill"""
    __tablename__ = 'purchase_invoices'

    id = Column(Integer, primary_key=True)
    invoice_number = Column(String(50), nullable=False)
    invoice_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=True)
    gst_type = Column(String(10), default=GstType.INTRA.value)
    taxable_value = Column(Numeric(15, 2), default=Decimal("0.00"))
    cgst = Column(Numeric(15, 2), default=Decimal("0.00"))
    sgst = Column(Numeric(15, 2), default=Decimal("0.00"))
    igst = Column(Numeric(15, 2), default=Decimal("0.00"))
    total = Column(Numeric(15, 2), default=Decimal("0.00"))
    note = Column(Text, nullable=True)
    vendor_id = Column(Integer, ForeignKey('vendors.id', ondelete='RESTRICT'), nullable=False)
    project_id = Column(Integer, ForeignKey('projects.id', ondelete='RESTRICT'), nullable=False)
    tenant_id = Column(Integer, ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    vendor = relationship("Vendor", back_populates="purchase_invoices")
    project = relationship("Project")

    __table_args__ = (
        UniqueConstraint('vendor_id', 'invoice_number', 'tenant_id', name='uq_purchase_invoice_number'),
        Index('ix_purchase_invoices_tenant_id', 'tenant_id'),
    )

    @property
    def subtotal(self):
        return self.taxable_value


# ==================== EXPENSES ====================

class Expense(Base):
    """Expense recorded against a project"""
    __tablename__ = 'expenses'

    id = Column(Integer, primary_key=True)
    date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=True)
    expense_type = Column(String(20), default=ExpenseType.MATERIAL.value)
    amount_before_tax = Column(Numeric(15, 2), default=Decimal("0.00"))
    cgst = Column(Numeric(15, 2), default=Decimal("0.00"))
    sgst = Column(Numeric(15, 2), default=Decimal("0.00"))
    igst = Column(Numeric(15, 2), default=Decimal("0.00"))
    total = Column(Numeric(15, 2), default=Decimal("0.00"))
    narration = Column(Text, nullable=True)
    vendor_id = Column(Integer, ForeignKey('vendors.id', ondelete='SET NULL'), nullable=True)
    project_id = Column(Integer, ForeignKey('projects.id', ondelete='RESTRICT'), nullable=False)
    tenant_id = Column(Integer, ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    vendor = relationship("Vendor", back_populates="expenses")
    project = relationship("Project")

    __table_args__ = (
        Index('ix_expenses_tenant_id', 'tenant_id'),
    )

    @property
    def subtotal(self):
        return self.amount_before_tax

    @property
    def taxable_value(self):
        return self.amount_before_tax


# ==================== CASH ====================

class Transaction(Base):
    """Money movement; may settle documents through allocations"""
    __tablename__ = 'transactions'

    id = Column(Integer, primary_key=True)
    type = Column(String(20), nullable=False)
    date = Column(Date, nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)  # cash actually moved
    tds_amount = Column(Numeric(15, 2), default=Decimal("0.00"))
    tds_base_amount = Column(Numeric(15, 2), default=Decimal("0.00"))  # taxable base counted towards YTD
    tds_rate = Column(Numeric(5, 2), nullable=True)
    tds_reason = Column(String(255), nullable=True)
    mode = Column(String(20), nullable=True)
    reference = Column(String(200), nullable=True)
    note = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    vendor_id = Column(Integer, ForeignKey('vendors.id', ondelete='SET NULL'), nullable=True)
    client_id = Column(Integer, ForeignKey('clients.id', ondelete='SET NULL'), nullable=True)
    project_id = Column(Integer, ForeignKey('projects.id', ondelete='SET NULL'), nullable=True)
    tenant_id = Column(Integer, ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    vendor = relationship("Vendor")
    client = relationship("Client")
    project = relationship("Project")
    allocations = relationship(
        "TransactionAllocation", back_populates="transaction",
        cascade="all, delete-orphan", order_by="TransactionAllocation.id"
    )

    __table_args__ = (
        Index('ix_transactions_tenant_id', 'tenant_id'),
        Index('ix_transactions_vendor_date', 'tenant_id', 'vendor_id', 'date'),
    )


class TransactionAllocation(Base):
    """Part of a transaction applied to one invoice, bill or expense"""
    __tablename__ = 'transaction_allocations'

    id = Column(Integer, primary_key=True)
    transaction_id = Column(Integer, ForeignKey('transactions.id', ondelete='CASCADE'), nullable=False)
    document_type = Column(String(20), nullable=False)
    document_id = Column(Integer, nullable=False)
    project_id = Column(Integer, ForeignKey('projects.id', ondelete='SET NULL'), nullable=True)
    cash_amount = Column(Numeric(15, 2), default=Decimal("0.00"))
    tds_amount = Column(Numeric(15, 2), default=Decimal("0.00"))
    gross_amount = Column(Numeric(15, 2), default=Decimal("0.00"))  # cash + tds
    tenant_id = Column(Integer, ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    transaction = relationship("Transaction", back_populates="allocations")

    __table_args__ = (
        Index('ix_allocations_document', 'tenant_id', 'document_type', 'document_id'),
        Index('ix_allocations_transaction', 'tenant_id', 'transaction_id'),
    )


# ==================== LABOUR ====================

class LabourSheet(Base):
    """Site labour paid for a day; backed by one EXPENSE transaction"""
    __tablename__ = 'labour_sheets'

    id = Column(Integer, primary_key=True)
    date = Column(Date, nullable=False)
    mode = Column(String(20), nullable=False)
    reference = Column(String(200), nullable=True)
    note = Column(Text, nullable=True)
    total = Column(Numeric(15, 2), default=Decimal("0.00"))
    project_id = Column(Integer, ForeignKey('projects.id', ondelete='RESTRICT'), nullable=False)
    transaction_id = Column(Integer, ForeignKey('transactions.id', ondelete='SET NULL'), nullable=True)
    tenant_id = Column(Integer, ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    project = relationship("Project")
    transaction = relationship("Transaction")
    lines = relationship(
        "LabourSheetLine", back_populates="sheet",
        cascade="all, delete-orphan", order_by="LabourSheetLine.id"
    )

    __table_args__ = (
        Index('ix_labour_sheets_tenant_project', 'tenant_id', 'project_id', 'date'),
    )


class LabourSheetLine(Base):
    """Headcount of one trade on a labour sheet"""
    __tablename__ = 'labour_sheet_lines'

    id = Column(Integer, primary_key=True)
    sheet_id = Column(Integer, ForeignKey('labour_sheets.id', ondelete='CASCADE'), nullable=False)
    role = Column(String(100), nullable=False)
    headcount = Column(Integer, nullable=False)
    rate = Column(Numeric(15, 2), nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)  # headcount * rate
    tenant_id = Column(Integer, ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)

    sheet = relationship("LabourSheet", back_populates="lines")


# ==================== AUDIT ====================

class AuditLog(Base):
    """Audit trail for settlement operations"""
    __tablename__ = 'audit_logs'

    id = Column(Integer, primary_key=True)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    username = Column(String(100), nullable=True)
    action = Column(String(50), nullable=False)
    resource_type = Column(String(100), nullable=False)
    resource_id = Column(Integer, nullable=True)
    tenant_id = Column(Integer, ForeignKey('tenants.id', ondelete='SET NULL'), nullable=True)
    description = Column(Text, nullable=True)
    new_values = Column(Text, nullable=True)  # JSON string

    __table_args__ = (
        Index('ix_audit_logs_tenant_id', 'tenant_id'),
    )
