from .auth import User, SessionToken, ROLES
from .inventory import InventoryItem, ItemStatus, CATEGORIES
from .customers import Customer, LoyaltyTransaction, LoyaltyTier, LoyaltyTransactionType
from .sales import Sale, SaleLine, SaleStatus, PAYMENT_METHODS, PAYMENT_STATUSES

__all__ = [
    'User', 'SessionToken', 'ROLES',
    'InventoryItem', 'ItemStatus', 'CATEGORIES',
    'Customer', 'LoyaltyTransaction', 'LoyaltyTier', 'LoyaltyTransactionType',
    'Sale', 'SaleLine', 'SaleStatus', 'PAYMENT_METHODS', 'PAYMENT_STATUSES',
]
