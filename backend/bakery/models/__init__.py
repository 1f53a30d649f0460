from .auth import User, SessionToken
from .catalog import Unit, Product, Recipe, SalePrice
from .stock import StockEntry, Movement, ProductionRun
from .sales import Sale, SaleLine, SaleCancellation

__all__ = [
    'User', 'SessionToken',
    'Unit', 'Product', 'Recipe', 'SalePrice',
    'StockEntry', 'Movement', 'ProductionRun',
    'Sale', 'SaleLine', 'SaleCancellation',
]
