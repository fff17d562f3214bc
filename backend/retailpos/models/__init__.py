from .tenancy import Tenant, Store
from .inventory import StockItem, StockMove, MoveReason
from .purchasing import Supplier, PurchaseOrder, PurchaseOrderItem, PurchaseOrderStatus
from .sales import Sale, SaleItem, Payment, SaleStatus, PaymentMethod
from .registers import RegisterSession
from .returns import Return

__all__ = [
    'Tenant', 'Store',
    'StockItem', 'StockMove', 'MoveReason',
    'Supplier', 'PurchaseOrder', 'PurchaseOrderItem', 'PurchaseOrderStatus',
    'Sale', 'SaleItem', 'Payment', 'SaleStatus', 'PaymentMethod',
    'RegisterSession',
    'Return',
]
