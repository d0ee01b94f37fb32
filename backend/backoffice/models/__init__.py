from .inventory import Product, StockMovement
from .carts import Cart, CartLine
from .orders import Order, OrderLine
from .events import Event, EventBooking, EventStock

__all__ = [
    'Product', 'StockMovement',
    'Cart', 'CartLine',
    'Order', 'OrderLine',
    'Event', 'EventBooking', 'EventStock',
]
