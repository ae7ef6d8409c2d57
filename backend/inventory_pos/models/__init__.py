from .catalog import Category, Product
from .auth import User
from .sales import Receipt, Sale
from .stock import StockAdjustment

__all__ = [
    'Category', 'Product',
    'User',
    'Receipt', 'Sale',
    'StockAdjustment',
]
