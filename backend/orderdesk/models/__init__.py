from .parties import Employee, Client, Supplier, Packer
from .catalog import Category, Product, Addition
from .inventory import InventoryItem, InventoryEntry, InventoryOutput, InventoryStock
from .orders import (
    Quotation, QuotationItem, Order, OrderItem, OrderStatusHistory,
    OrderItemStatusHistory, OrderPayment, Prefactura,
)

__all__ = [
    'Employee', 'Client', 'Supplier', 'Packer',
    'Category', 'Product', 'Addition',
    'InventoryItem', 'InventoryEntry', 'InventoryOutput', 'InventoryStock',
    'Quotation', 'QuotationItem', 'Order', 'OrderItem',
    'OrderStatusHistory', 'OrderItemStatusHistory', 'OrderPayment', 'Prefactura',
]
