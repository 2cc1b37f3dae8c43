from .branches import Branch, User, USER_ROLES
from .catalog import ProductCategory, Product, ProductVariant, Addon
from .inventory import Stock, StockMovement, MOVEMENT_TYPES
from .customers import Customer, MEMBERSHIP_TYPES
from .transactions import (
    Transaction,
    TransactionItem,
    TransactionItemAddon,
    TransactionPayment,
    TRANSACTION_STATUSES,
    PAYMENT_METHODS,
)
from .shifts import Shift

__all__ = [
    'Branch', 'User', 'USER_ROLES',
    'ProductCategory', 'Product', 'ProductVariant', 'Addon',
    'Stock', 'StockMovement', 'MOVEMENT_TYPES',
    'Customer', 'MEMBERSHIP_TYPES',
    'Transaction', 'TransactionItem', 'TransactionItemAddon', 'TransactionPayment',
    'TRANSACTION_STATUSES', 'PAYMENT_METHODS',
    'Shift',
]
