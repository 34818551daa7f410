from .catalog import Product, Sku
from .inventory import StockHistory
from .orders import Order, OrderLine, ORDER_STATUSES
from .auth import User, SessionToken, ROLES, DEFAULT_ROLE
from .settings import AppSettings, GLOBAL_SETTINGS_ID

__all__ = [
    'Product', 'Sku',
    'StockHistory',
    'Order', 'OrderLine', 'ORDER_STATUSES',
    'User', 'SessionToken', 'ROLES', 'DEFAULT_ROLE',
    'AppSettings', 'GLOBAL_SETTINGS_ID',
]
