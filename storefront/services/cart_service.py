# storefront/services/cart_service.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from ..extensions import db
from ..model import CartItem, ProductVariation
from ..utils.errors import (
    ValidationError, BusinessRuleViolation, NotFound, ServiceResult, service_operation,
)
from ..utils.money import D, ZERO, round_unit, to_float
from .offer_service import load_active_offers, resolve_best_offer

logger = logging.getLogger(__name__)

# Business constants
FREE_SHIPPING_THRESHOLD = Decimal("1000")   # strictly above -> free
SHIPPING_CHARGE = Decimal("50")
MAX_QTY_PER_LINE = 5


def shipping_for(subtotal) -> Decimal:
    return ZERO if D(subtotal) > FREE_SHIPPING_THRESHOLD else SHIPPING_CHARGE


@dataclass
class PricedLine:
    cart_item_id: int
    variation_id: int
    product_id: int
    name: str
    size: str | None
    color: str | None
    images: list
    quantity: int
    price: Decimal               # post-offer unit price, unrounded
    original_price: Decimal
    discount_percentage: int
    applied_offer: str | None

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity

    def as_api(self):
        return {
            "cart_item_id": self.cart_item_id,
            "variation_id": self.variation_id,
            "product_id": self.product_id,
            "name": self.name,
            "size": self.size,
            "color": self.color,
            "image_url": self.images[0] if self.images else None,
            "quantity": self.quantity,
            "price": to_float(self.price),
            "original_price": to_float(self.original_price),
            "discount_percentage": self.discount_percentage,
            "applied_offer": self.applied_offer,
            "line_total": to_float(self.line_total),
        }


@dataclass
class CartSummary:
    subtotal: Decimal
    shipping: Decimal
    coupon_discount: Decimal
    total: Decimal
    lines: list = field(default_factory=list)
    applied_coupon_code: str | None = None
    coupon_message: str | None = None

    def as_api(self):
        return {
            "items": [ln.as_api() for ln in self.lines],
            "totals": {
                "subtotal": to_float(self.subtotal),
                "shipping": to_float(self.shipping),
                "coupon_discount": to_float(self.coupon_discount),
                "total": to_float(self.total),
            },
            "applied_coupon_code": self.applied_coupon_code,
            "coupon_message": self.coupon_message,
        }


def _load_cart(user_id):
    return (
        CartItem.query
        .filter(CartItem.user_id == user_id)
        .order_by(CartItem.id.asc())
        .all()
    )


def priced_lines(user_id, offers) -> list[PricedLine]:
    lines = []
    for item in _load_cart(user_id):
        variation = item.variation
        product = variation.product if variation else None
        # unavailable lines are left out of pricing; availability is shown elsewhere
        if not product or not product.is_active or variation.stock_quantity < item.quantity:
            continue
        best = resolve_best_offer(product, offers)
        lines.append(PricedLine(
            cart_item_id=item.id,
            variation_id=variation.id,
            product_id=product.id,
            name=product.name,
            size=variation.size,
            color=variation.color,
            images=list(variation.images or []),
            quantity=item.quantity,
            price=best.final_price,
            original_price=best.original_price,
            discount_percentage=best.discount_percentage,
            applied_offer=best.applied_offer,
        ))
    return lines


def summarize(lines, coupon_discount=ZERO, coupon_code=None) -> CartSummary:
    subtotal = round_unit(sum((ln.line_total for ln in lines), ZERO))
    shipping = shipping_for(subtotal)
    # never let a coupon push the total below zero
    discount = min(D(coupon_discount), subtotal + shipping)
    return CartSummary(
        subtotal=subtotal,
        shipping=shipping,
        coupon_discount=discount,
        total=subtotal + shipping - discount,
        lines=lines,
        applied_coupon_code=coupon_code if discount > 0 else None,
    )


def price_cart(user_id, pending_coupon=None, offers=None) -> ServiceResult:
    """Price the user's cart.

    ``pending_coupon`` is the coupon selection held in the session (already
    validated by the coupon engine); its discount is only clamped here.
    ``offers`` is the active-offer snapshot of the current request.
    """
    if offers is None:
        offers = load_active_offers()
    lines = priced_lines(user_id, offers)
    if not lines:
        return ServiceResult.failure(NotFound("Cart is empty", code="CART_EMPTY"))
    if pending_coupon:
        summary = summarize(lines, pending_coupon.discount, pending_coupon.code)
    else:
        summary = summarize(lines)
    return ServiceResult.success(summary, "cart")


# ---- cart maintenance -------------------------------------------------------

def _variation_for_sale(variation_id) -> ProductVariation:
    variation = db.session.get(ProductVariation, variation_id)
    if not variation:
        raise NotFound("Variation not found", code="VARIATION_NOT_FOUND")
    if not variation.product:
        raise NotFound("Product not found", code="PRODUCT_NOT_FOUND")
    if variation.product.is_active is False:
        raise BusinessRuleViolation("Product is not available", code="PRODUCT_UNAVAILABLE")
    return variation


@service_operation("add_to_cart")
def add_to_cart(user_id, variation_id, quantity) -> ServiceResult:
    try:
        quantity = int(quantity)
    except (TypeError, ValueError):
        raise ValidationError("Invalid request")
    if quantity < 1:
        raise ValidationError("Invalid request")

    variation = _variation_for_sale(variation_id)
    if quantity > variation.stock_quantity:
        raise BusinessRuleViolation("Quantity exceeds available stock", code="INSUFFICIENT_STOCK")

    item = CartItem.query.filter_by(user_id=user_id, variation_id=variation.id).first()
    new_qty = quantity + (item.quantity if item else 0)
    if new_qty > MAX_QTY_PER_LINE:
        raise BusinessRuleViolation(
            f"You cannot add more than {MAX_QTY_PER_LINE} of this product to your cart.",
            code="MAX_QUANTITY_EXCEEDED",
        )
    if new_qty > variation.stock_quantity:
        raise BusinessRuleViolation("Quantity exceeds available stock", code="INSUFFICIENT_STOCK")

    if item:
        item.quantity = new_qty
    else:
        item = CartItem(user_id=user_id, variation_id=variation.id, quantity=new_qty)
        db.session.add(item)
    db.session.flush()
    return ServiceResult.success({"cart_item_id": item.id, "quantity": item.quantity}, "Added to cart")


@service_operation("update_cart_quantity")
def update_quantity(user_id, cart_item_id, action) -> ServiceResult:
    item = CartItem.query.filter_by(id=cart_item_id, user_id=user_id).first()
    if not item:
        raise NotFound("Cart item not found", code="CART_ITEM_NOT_FOUND")
    variation = _variation_for_sale(item.variation_id)

    if action == "increment":
        if item.quantity + 1 > MAX_QTY_PER_LINE:
            raise BusinessRuleViolation(
                f"You cannot add more than {MAX_QTY_PER_LINE} of this product to your cart.",
                code="MAX_QUANTITY_EXCEEDED",
            )
        if item.quantity + 1 > variation.stock_quantity:
            raise BusinessRuleViolation("Quantity exceeds available stock", code="INSUFFICIENT_STOCK")
        item.quantity += 1
    elif action == "decrement":
        if item.quantity <= 1:
            raise BusinessRuleViolation("Minimum quantity is 1", code="MIN_QUANTITY")
        item.quantity -= 1
    else:
        raise ValidationError("Invalid action")
    return ServiceResult.success({"cart_item_id": item.id, "quantity": item.quantity}, "Quantity updated")


@service_operation("remove_from_cart")
def remove_from_cart(user_id, cart_item_id) -> ServiceResult:
    item = CartItem.query.filter_by(id=cart_item_id, user_id=user_id).first()
    if not item:
        raise NotFound("Cart item not found", code="CART_ITEM_NOT_FOUND")
    db.session.delete(item)
    return ServiceResult.success({"cart_item_id": cart_item_id}, "Removed from cart")


def clear_cart(user_id):
    """Delete every cart line of the user. Caller owns the transaction."""
    CartItem.query.filter(CartItem.user_id == user_id).delete(synchronize_session=False)
