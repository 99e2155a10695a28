# ------ storefront/model/__init__.py ------

from .user import User, ROLES
from .product import Product
from .category import Category
from .coupon import Coupon, CouponUsage
from .order import Order, OrderStatusHistory, ArchivedOrder
from .types import GUID, to_uuid

__all__ = [
    "User",
    "ROLES",
    "Product",
    "Category",
    "Coupon",
    "CouponUsage",
    "Order",
    "OrderStatusHistory",
    "ArchivedOrder",
    "GUID",
    "to_uuid",
]
