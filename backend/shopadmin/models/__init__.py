from .auth import AdminUser, SessionToken
from .catalog import Category, Product
from .customers import Customer, CustomerPhone
from .orders import Order, OrderItem

__all__ = [
    'AdminUser', 'SessionToken',
    'Category', 'Product',
    'Customer', 'CustomerPhone',
    'Order', 'OrderItem',
]
