from .inventory import Product
from .sales import Sale
from .purchases import Purchase
from .dashboard import DashboardStat
from .auth import User, SessionToken
from .settings import ShopSetting

__all__ = [
    'Product',
    'Sale', 'Purchase',
    'DashboardStat',
    'User', 'SessionToken',
    'ShopSetting',
]
