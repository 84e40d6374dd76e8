from .catalog import Unit, Category, Product, ProductHistory
from .inventory import InventoryChangeReason, InventoryBatch, InventoryHistory
from .sales import Sale, SaleItem
from .settings import Setting, SETTING_VALUE_TYPES

__all__ = [
    'Unit', 'Category', 'Product', 'ProductHistory',
    'InventoryChangeReason', 'InventoryBatch', 'InventoryHistory',
    'Sale', 'SaleItem',
    'Setting', 'SETTING_VALUE_TYPES',
]
