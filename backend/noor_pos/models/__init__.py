from .catalog import Category, Product, StockHistory
from .customers import Customer, Salesman
from .orders import Order, OrderItem, Invoice, DocumentSequence
from .purchasing import Supplier, Purchase, PurchaseItem
from .imports import ProductImport
from .notifications import Notification

__all__ = [
    'Category', 'Product', 'StockHistory',
    'Customer', 'Salesman',
    'Order', 'OrderItem', 'Invoice', 'DocumentSequence',
    'Supplier', 'Purchase', 'PurchaseItem',
    'ProductImport',
    'Notification',
]
