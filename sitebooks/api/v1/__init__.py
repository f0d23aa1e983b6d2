# API v1 Package
from sitebooks.api.v1 import crm, projects, sales, purchases, expenses, transactions, labour

__all__ = [
    'crm',
    'projects',
    'sales',
    'purchases',
    'expenses',
    'transactions',
    'labour',
]
