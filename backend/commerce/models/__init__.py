from .tenancy import Tenant
from .auth import User, SessionToken
from .customers import CustomerAddress, WishlistEntry
from .catalog import Product, Variant
from .cart import Cart, CartLine
from .orders import Order, OrderLine, OrderStatusEvent, TrackingEvent
from .payments import Payment
from .inventory import InventoryLedgerEntry
from .notifications import NotificationJob, CustomerNotification

__all__ = [
    'Tenant',
    'User', 'SessionToken',
    'CustomerAddress', 'WishlistEntry',
    'Product', 'Variant',
    'Cart', 'CartLine',
    'Order', 'OrderLine', 'OrderStatusEvent', 'TrackingEvent',
    'Payment',
    'InventoryLedgerEntry',
    'NotificationJob', 'CustomerNotification',
]
