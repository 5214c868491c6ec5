"""
Top-level models import shim for the Orders app.

Lets callers write `from apps.orders.models import Order` while the
models themselves live in separate modules.
"""

from .order import *          # Order
from .item import *           # OrderItem
from .cart import *           # CartItem
