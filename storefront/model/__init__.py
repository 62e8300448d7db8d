# ------ storefront/model/__init__.py ------

from .user import User
from .category import Category
from .product import Product, ProductVariation
from .offer import Offer
from .coupon import Coupon, CouponUsage
from .cart import CartItem
from .address import Address
from .order import (
    Order, OrderItem, LineStatus, OrderStatus, PaymentMethod, PaymentStatus, RefundStatus,
    ReturnStatus, derive_order_status,
)
from .wallet import WalletTransaction

__all__ = [
    "User",
    "Category",
    "Product",
    "ProductVariation",
    "Offer",
    "Coupon",
    "CouponUsage",
    "CartItem",
    "Address",
    "Order",
    "OrderItem",
    "LineStatus",
    "OrderStatus",
    "PaymentMethod",
    "PaymentStatus",
    "RefundStatus",
    "ReturnStatus",
    "derive_order_status",
    "WalletTransaction",
]
