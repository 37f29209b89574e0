from .inventory import (
    InventoryItem,
    StockTransaction,
    EntrySequence,
    ItemStatus,
    TransactionType,
    POST_RESERVATION_STATUSES,
    LOCATION_CODES,
    WARRANTY_PERIODS,
    DEFAULT_CLIENT,
    normalize_serial,
)
from .orders import Order, InvoiceStatus, DeliveryStatus

__all__ = [
    'InventoryItem', 'StockTransaction', 'EntrySequence',
    'ItemStatus', 'TransactionType', 'POST_RESERVATION_STATUSES',
    'LOCATION_CODES', 'WARRANTY_PERIODS', 'DEFAULT_CLIENT', 'normalize_serial',
    'Order', 'InvoiceStatus', 'DeliveryStatus',
]
