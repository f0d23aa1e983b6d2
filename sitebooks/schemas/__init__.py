"""
Pydantic Schemas for API Validation
"""
from pydantic import BaseModel, EmailStr, Field, ConfigDict, model_validator
from typing import List, Optional
from datetime import datetime, date
from datetime import date as DateValue
from decimal import Decimal
from enum import Enum

from sitebooks.core.config import settings
from sitebooks.finance.tds import VendorLegalType, ThresholdBreached
from sitebooks.finance.settlement import PaymentStatus


# ==================== ENUMS ====================

class TransactionTypeEnum(str, Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"
    TRANSFER = "TRANSFER"


class PaymentModeEnum(str, Enum):
    CASH = "CASH"
    BANK_TRANSFER = "BANK_TRANSFER"
    CHEQUE = "CHEQUE"
    UPI = "UPI"
    CARD = "CARD"
    OTHER = "OTHER"


class ProjectStatusEnum(str, Enum):
    PLANNED = "PLANNED"
    ACTIVE = "ACTIVE"
    ON_HOLD = "ON_HOLD"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class GstTypeEnum(str, Enum):
    INTRA = "INTRA"
    INTER = "INTER"


class ExpenseTypeEnum(str, Enum):
    MATERIAL = "MATERIAL"
    LABOUR = "LABOUR"
    SUBCONTRACTOR = "SUBCONTRACTOR"
    OVERHEAD = "OVERHEAD"


# ==================== USER SCHEMAS ====================

class UserResponse(BaseModel):
    id: int
    username: str
    email: EmailStr
    full_name: Optional[str] = None
    is_active: bool
    tenant_id: int

    model_config = ConfigDict(from_attributes=True)


# ==================== CLIENT SCHEMAS ====================

class ClientBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    gstin: Optional[str] = Field(None, max_length=20)
    pan: Optional[str] = Field(None, max_length=20)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None


class ClientCreate(ClientBase):
    pass


class ClientUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    gstin: Optional[str] = None
    pan: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    is_active: Optional[bool] = None


class ClientResponse(ClientBase):
    id: int
    is_active: bool
    tenant_id: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ==================== VENDOR SCHEMAS ====================

class VendorBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    trade: Optional[str] = None
    gstin: Optional[str] = Field(None, max_length=20)
    pan: Optional[str] = Field(None, max_length=20)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    legal_type: VendorLegalType = VendorLegalType.OTHER
    is_subcontractor: bool = False
    is_transporter: bool = False
    transporter_vehicle_count: Optional[int] = Field(None, ge=0)
    tds_section: str = "194C"
    tds_override_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    tds_threshold_single: Decimal = Field(default=settings.TDS_DEFAULT_THRESHOLD_SINGLE, ge=0)
    tds_threshold_annual: Decimal = Field(default=settings.TDS_DEFAULT_THRESHOLD_ANNUAL, ge=0)


class VendorCreate(VendorBase):
    pass


class VendorUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    trade: Optional[str] = None
    gstin: Optional[str] = None
    pan: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    legal_type: Optional[VendorLegalType] = None
    is_subcontractor: Optional[bool] = None
    is_transporter: Optional[bool] = None
    transporter_vehicle_count: Optional[int] = Field(None, ge=0)
    tds_section: Optional[str] = None
    tds_override_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    tds_threshold_single: Optional[Decimal] = Field(None, ge=0)
    tds_threshold_annual: Optional[Decimal] = Field(None, ge=0)
    is_active: Optional[bool] = None


class VendorResponse(VendorBase):
    id: int
    is_active: bool
    tenant_id: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ==================== PROJECT SCHEMAS ====================

class ProjectBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    client_id: int
    location: Optional[str] = Field(None, max_length=500)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: ProjectStatusEnum = ProjectStatusEnum.ACTIVE
    remarks: Optional[str] = None


class ProjectCreate(ProjectBase):
    pass


class ProjectUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    client_id: Optional[int] = None
    location: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: Optional[ProjectStatusEnum] = None
    remarks: Optional[str] = None


class ProjectResponse(ProjectBase):
    id: int
    tenant_id: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProjectSummaryResponse(BaseModel):
    project_id: int
    invoices_subtotal: Decimal
    invoices_total: Decimal
    invoices_paid: Decimal
    invoices_balance: Decimal
    expenses_subtotal: Decimal
    expenses_total: Decimal
    expenses_paid: Decimal
    expenses_balance: Decimal
    cash_in: Decimal
    cash_out: Decimal
    net_cash: Decimal
    tds_in: Decimal
    tds_out: Decimal
    net_tds: Decimal


# ==================== SETTLEMENT FIELDS ====================

class SettlementFields(BaseModel):
    """Computed on read; never stored"""
    paid_amount: Decimal = Decimal("0")
    balance: Decimal = Decimal("0")
    computed_status: Optional[PaymentStatus] = None


# ==================== CLIENT INVOICE SCHEMAS ====================

class ClientInvoiceBase(BaseModel):
    invoice_number: str = Field(..., min_length=1, max_length=50)
    invoice_date: date
    due_date: Optional[date] = None
    project_id: int
    client_id: int
    service_description: Optional[str] = None
    sac_code: Optional[str] = None
    gst_type: GstTypeEnum = GstTypeEnum.INTRA
    gst_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    basic_value: Decimal = Field(default=Decimal("0"), ge=0)
    cgst: Decimal = Field(default=Decimal("0"), ge=0)
    sgst: Decimal = Field(default=Decimal("0"), ge=0)
    igst: Decimal = Field(default=Decimal("0"), ge=0)
    tds_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    tds_amount_expected: Optional[Decimal] = Field(None, ge=0)


class ClientInvoiceCreate(ClientInvoiceBase):
    status: str = "SENT"
    total: Optional[Decimal] = Field(None, ge=0)


class ClientInvoiceUpdate(BaseModel):
    invoice_number: Optional[str] = Field(None, min_length=1, max_length=50)
    invoice_date: Optional[date] = None
    due_date: Optional[date] = None
    status: Optional[str] = None
    service_description: Optional[str] = None
    sac_code: Optional[str] = None
    gst_type: Optional[GstTypeEnum] = None
    gst_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    basic_value: Optional[Decimal] = Field(None, ge=0)
    cgst: Optional[Decimal] = Field(None, ge=0)
    sgst: Optional[Decimal] = Field(None, ge=0)
    igst: Optional[Decimal] = Field(None, ge=0)
    total: Optional[Decimal] = Field(None, ge=0)
    tds_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    tds_amount_expected: Optional[Decimal] = Field(None, ge=0)


class ClientInvoiceResponse(ClientInvoiceBase, SettlementFields):
    id: int
    status: Optional[str] = None
    total: Decimal
    tenant_id: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ==================== RECEIPT SCHEMAS ====================

class ReceiptAllocationCreate(BaseModel):
    invoice_id: int
    amount_applied: Decimal = Field(..., gt=0)


class ReceiptCreate(BaseModel):
    client_id: int
    project_id: Optional[int] = None
    date: date
    amount: Decimal = Field(..., ge=0, description="Cash received")
    tds_amount: Decimal = Field(default=Decimal("0"), ge=0, description="TDS withheld by the client")
    mode: Optional[PaymentModeEnum] = None
    reference: Optional[str] = Field(None, max_length=200)
    note: Optional[str] = None
    allocations: List[ReceiptAllocationCreate] = Field(default_factory=list)


# ==================== PURCHASE INVOICE SCHEMAS ====================

class PurchaseInvoiceBase(BaseModel):
    invoice_number: str = Field(..., min_length=1, max_length=50)
    invoice_date: date
    due_date: Optional[date] = None
    vendor_id: int
    project_id: int
    gst_type: GstTypeEnum = GstTypeEnum.INTRA
    taxable_value: Decimal = Field(default=Decimal("0"), ge=0)
    cgst: Decimal = Field(default=Decimal("0"), ge=0)
    sgst: Decimal = Field(default=Decimal("0"), ge=0)
    igst: Decimal = Field(default=Decimal("0"), ge=0)
    note: Optional[str] = None


class PurchaseInvoiceCreate(PurchaseInvoiceBase):
    total: Optional[Decimal] = Field(None, ge=0)


class PurchaseInvoiceUpdate(BaseModel):
    invoice_number: Optional[str] = Field(None, min_length=1, max_length=50)
    invoice_date: Optional[date] = None
    due_date: Optional[date] = None
    project_id: Optional[int] = None
    gst_type: Optional[GstTypeEnum] = None
    taxable_value: Optional[Decimal] = Field(None, ge=0)
    cgst: Optional[Decimal] = Field(None, ge=0)
    sgst: Optional[Decimal] = Field(None, ge=0)
    igst: Optional[Decimal] = Field(None, ge=0)
    total: Optional[Decimal] = Field(None, ge=0)
    note: Optional[str] = None


class PurchaseInvoiceResponse(PurchaseInvoiceBase, SettlementFields):
    id: int
    total: Decimal
    tenant_id: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OpenBillResponse(BaseModel):
    id: int
    invoice_number: str
    invoice_date: date
    project_id: int
    taxable_value: Decimal
    total: Decimal
    paid_amount: Decimal
    balance: Decimal


# ==================== VENDOR PAYMENT SCHEMAS ====================

class VendorPaymentAllocationCreate(BaseModel):
    purchase_invoice_id: int
    amount_applied: Decimal = Field(..., gt=0, description="Gross amount settled on the bill")


class VendorPaymentCreate(BaseModel):
    vendor_id: int
    project_id: Optional[int] = None
    date: date
    gross_amount: Optional[Decimal] = Field(None, gt=0, description="Lump sum when no bills are selected")
    has_transporter_declaration: bool = False
    mode: Optional[PaymentModeEnum] = None
    reference: Optional[str] = Field(None, max_length=200)
    note: Optional[str] = None
    description: Optional[str] = None
    allocations: List[VendorPaymentAllocationCreate] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_amount_source(self):
        if not self.allocations and self.gross_amount is None:
            raise ValueError("Either allocations or gross_amount is required")
        return self


class VendorPaymentMetaUpdate(BaseModel):
    date: Optional[DateValue] = None
    mode: Optional[PaymentModeEnum] = None
    reference: Optional[str] = Field(None, max_length=200)
    project_id: Optional[int] = None
    note: Optional[str] = None
    description: Optional[str] = None


class PaymentAllocationResult(BaseModel):
    document_type: str
    document_id: int
    cash_amount: Decimal
    tds_amount: Decimal
    gross_amount: Decimal


class PaymentResult(BaseModel):
    """Outcome of a vendor or expense payment"""
    transaction_id: int
    date: date
    vendor_id: int
    project_id: Optional[int] = None
    gross_amount: Decimal
    cash_paid: Decimal
    tds_amount: Decimal
    tds_base_amount: Decimal
    tds_rate_pct: Decimal
    tds_reason: str
    allocations: List[PaymentAllocationResult] = []


class TdsPreviewRequest(BaseModel):
    vendor_id: int
    amount: Decimal = Field(..., ge=0, description="Taxable base of the payment")
    date: date
    has_transporter_declaration: bool = False


class TdsPreviewResponse(BaseModel):
    vendor_id: int
    fiscal_year: str
    ytd_base: Decimal
    applicable: bool
    rate_pct: Decimal
    tds_amount: Decimal
    threshold_breached: ThresholdBreached
    reason: str


# ==================== EXPENSE SCHEMAS ====================

class ExpenseBase(BaseModel):
    project_id: int
    vendor_id: Optional[int] = None
    date: date
    due_date: Optional[DateValue] = None
    expense_type: ExpenseTypeEnum = ExpenseTypeEnum.MATERIAL
    amount_before_tax: Decimal = Field(..., ge=0)
    cgst: Decimal = Field(default=Decimal("0"), ge=0)
    sgst: Decimal = Field(default=Decimal("0"), ge=0)
    igst: Decimal = Field(default=Decimal("0"), ge=0)
    narration: Optional[str] = None


class ExpenseCreate(ExpenseBase):
    pass


class ExpenseUpdate(BaseModel):
    project_id: Optional[int] = None
    vendor_id: Optional[int] = None
    date: Optional[DateValue] = None
    due_date: Optional[DateValue] = None
    expense_type: Optional[ExpenseTypeEnum] = None
    amount_before_tax: Optional[Decimal] = Field(None, ge=0)
    cgst: Optional[Decimal] = Field(None, ge=0)
    sgst: Optional[Decimal] = Field(None, ge=0)
    igst: Optional[Decimal] = Field(None, ge=0)
    narration: Optional[str] = None


class ExpenseResponse(ExpenseBase, SettlementFields):
    id: int
    total: Decimal
    tenant_id: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ExpensePaymentAllocationCreate(BaseModel):
    expense_id: int
    amount_applied: Decimal = Field(..., gt=0, description="Cash applied to the expense")


class ExpensePaymentCreate(BaseModel):
    vendor_id: int
    project_id: Optional[int] = None
    date: date
    amount: Decimal = Field(..., gt=0, description="Cash paid")
    has_transporter_declaration: bool = False
    mode: Optional[PaymentModeEnum] = None
    reference: Optional[str] = Field(None, max_length=200)
    note: Optional[str] = None
    allocations: List[ExpensePaymentAllocationCreate] = Field(..., min_length=1)


# ==================== TRANSACTION SCHEMAS ====================

class AllocationItem(BaseModel):
    """One document reference plus the cash and TDS applied to it"""
    invoice_id: Optional[int] = None
    expense_id: Optional[int] = None
    purchase_invoice_id: Optional[int] = None
    cash_amount: Decimal = Field(..., ge=0)
    tds_amount: Decimal = Field(default=Decimal("0"), ge=0)


class AllocationUpdate(BaseModel):
    cash_amount: Decimal = Field(..., ge=0)
    tds_amount: Decimal = Field(default=Decimal("0"), ge=0)


class AllocationBatch(BaseModel):
    items: List[AllocationItem] = Field(..., min_length=1)


class AllocationResponse(BaseModel):
    id: int
    transaction_id: int
    document_type: str
    document_id: int
    project_id: Optional[int] = None
    cash_amount: Decimal
    tds_amount: Decimal
    gross_amount: Decimal

    model_config = ConfigDict(from_attributes=True)


class TransactionBase(BaseModel):
    type: TransactionTypeEnum
    date: date
    amount: Decimal = Field(..., gt=0)
    mode: Optional[PaymentModeEnum] = None
    reference: Optional[str] = Field(None, max_length=200)
    project_id: Optional[int] = None
    vendor_id: Optional[int] = None
    client_id: Optional[int] = None
    note: Optional[str] = Field(None, max_length=2000)
    description: Optional[str] = Field(None, max_length=5000)


class TransactionCreate(TransactionBase):
    allocations: List[AllocationItem] = Field(default_factory=list)


class TransactionUpdate(BaseModel):
    date: Optional[DateValue] = None
    amount: Optional[Decimal] = Field(None, gt=0)
    mode: Optional[PaymentModeEnum] = None
    reference: Optional[str] = Field(None, max_length=200)
    project_id: Optional[int] = None
    vendor_id: Optional[int] = None
    client_id: Optional[int] = None
    note: Optional[str] = Field(None, max_length=2000)
    description: Optional[str] = Field(None, max_length=5000)


class TransactionResponse(BaseModel):
    id: int
    type: str
    date: date
    amount: Decimal
    tds_amount: Decimal
    tds_base_amount: Decimal
    tds_rate: Optional[Decimal] = None
    tds_reason: Optional[str] = None
    mode: Optional[str] = None
    reference: Optional[str] = None
    project_id: Optional[int] = None
    vendor_id: Optional[int] = None
    client_id: Optional[int] = None
    note: Optional[str] = None
    description: Optional[str] = None
    tenant_id: int
    created_at: datetime
    allocations: List[AllocationResponse] = []

    model_config = ConfigDict(from_attributes=True)


class AllocationCount(BaseModel):
    transaction_id: int
    created: int


# ==================== LABOUR SCHEMAS ====================

class LabourLineCreate(BaseModel):
    role: str = Field(..., min_length=1, max_length=100)
    headcount: int = Field(..., ge=1, le=500)
    rate: Decimal = Field(..., ge=0, description="Wage per head")


class LabourSheetCreate(BaseModel):
    project_id: int
    date: DateValue
    mode: PaymentModeEnum
    reference: Optional[str] = Field(None, max_length=200)
    note: Optional[str] = Field(None, max_length=2000)
    lines: List[LabourLineCreate] = Field(..., min_length=1)


class LabourLineResponse(BaseModel):
    id: int
    role: str
    headcount: int
    rate: Decimal
    amount: Decimal

    model_config = ConfigDict(from_attributes=True)


class LabourSheetResponse(BaseModel):
    id: int
    project_id: int
    date: DateValue
    mode: str
    reference: Optional[str] = None
    note: Optional[str] = None
    total: Decimal
    transaction_id: Optional[int] = None
    created_at: datetime
    lines: List[LabourLineResponse] = []

    model_config = ConfigDict(from_attributes=True)


# ==================== GENERIC ====================

class MessageResponse(BaseModel):
    message: str
    success: bool = True
