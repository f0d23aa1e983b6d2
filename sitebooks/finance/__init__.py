# Settlement core: pure functions, no I/O
from sitebooks.finance.money import round2, sum_money, taxable_ratio, to_decimal
from sitebooks.finance.tds import (
    TdsProfile, TdsResult, ThresholdBreached, VendorLegalType, calculate, determine_rate_percent
)
from sitebooks.finance.settlement import (
    PaymentStatus, Settlement, balance, expense_status, invoice_status, paid_amount,
    settle_expense, settle_invoice
)
from sitebooks.finance.distribution import (
    BillLine, CashLine, GrossLine, SplitRow, candidate_bases, choose_tds_result,
    split_on_cash, split_proportional, split_sequential, taxable_base
)
from sitebooks.finance.summary import ProjectSummary, project_summary
from sitebooks.finance.fiscal_year import fy_end, fy_label, fy_start

__all__ = [
    'round2',
    'sum_money',
    'taxable_ratio',
    'to_decimal',
    'TdsProfile',
    'TdsResult',
    'ThresholdBreached',
    'VendorLegalType',
    'calculate',
    'determine_rate_percent',
    'PaymentStatus',
    'Settlement',
    'balance',
    'expense_status',
    'invoice_status',
    'paid_amount',
    'settle_expense',
    'settle_invoice',
    'BillLine',
    'CashLine',
    'GrossLine',
    'SplitRow',
    'candidate_bases',
    'choose_tds_result',
    'split_on_cash',
    'split_proportional',
    'split_sequential',
    'taxable_base',
    'ProjectSummary',
    'project_summary',
    'fy_end',
    'fy_label',
    'fy_start',
]
