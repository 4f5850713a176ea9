from .accounts import Account, ShopSalesmanAssignment
from .inventory import Product
from .ledger import Distribution, Recovery, RecoveryItem, LedgerEvent
from .receipts import Receipt
from .sales import Sale

__all__ = [
    'Account', 'ShopSalesmanAssignment',
    'Product',
    'Distribution', 'Recovery', 'RecoveryItem', 'LedgerEvent',
    'Receipt',
    'Sale',
]
