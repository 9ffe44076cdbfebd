from .tenancy import Business
from .customers import Customer, CustomerPurchasePattern
from .inventory import Product, InventoryMovement
from .bills import Bill, BillItem
from .payments import Payment, PaymentAllocation
from .documents import DocumentSequence, AuditLog

__all__ = [
    'Business',
    'Customer', 'CustomerPurchasePattern',
    'Product', 'InventoryMovement',
    'Bill', 'BillItem',
    'Payment', 'PaymentAllocation',
    'DocumentSequence', 'AuditLog',
]
