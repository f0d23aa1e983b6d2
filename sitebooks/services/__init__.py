# Services Package
from sitebooks.services.user_service import UserService, TenantService
from sitebooks.services.audit_service import AuditService, AuditAction
from sitebooks.services.crm_service import ClientService, VendorService
from sitebooks.services.project_service import ProjectService
from sitebooks.services.transaction_service import TransactionService, AllocationService
from sitebooks.services.sales_service import InvoiceService, ReceiptService
from sitebooks.services.purchase_service import PurchaseInvoiceService, VendorPaymentService, TdsService
from sitebooks.services.expense_service import ExpenseService
from sitebooks.services.labour_service import LabourService

__all__ = [
    'UserService',
    'TenantService',
    'AuditService',
    'AuditAction',
    'ClientService',
    'VendorService',
    'ProjectService',
    'TransactionService',
    'AllocationService',
    'InvoiceService',
    'ReceiptService',
    'PurchaseInvoiceService',
    'VendorPaymentService',
    'TdsService',
    'ExpenseService',
    'LabourService',
]
