# storefront/services/payment_service.py
from __future__ import annotations

import logging

from ..model import LineStatus, PaymentStatus
from ..utils.errors import (
    ValidationError, StateConflict, IntegrityFailure, ServiceResult, service_operation,
)
from ..utils.money import D
from .cart_service import clear_cart
from .coupon_service import release_coupon_usage
from .gateway import PaymentGateway, RazorpayGateway, get_gateway, verify_signature
from .order_service import load_order, cancel_lines, take_stock

logger = logging.getLogger(__name__)

__all__ = [
    "PaymentGateway",
    "RazorpayGateway",
    "get_gateway",
    "verify_signature",
    "verify_order_payment",
]


def _reject_payment(order):
    """Signature or order binding failed: the order is dead and its coupon use goes back."""
    order.payment_status = PaymentStatus.FAILED
    for line in order.items:
        line.status = LineStatus.CANCELLED
    if order.applied_coupon_id:
        release_coupon_usage(order.applied_coupon_id, order.user_id)
    order.refresh_status()
    order.touch()


@service_operation("verify_order_payment")
def verify_order_payment(order_id, provider_order_id, provider_payment_id, signature,
                         user_id=None) -> ServiceResult:
    """Confirm an online payment for an order.

    A mismatch marks the payment FAILED and cancels every line, with no
    stock or cart change, and still commits. A match completes the payment
    and is the only place stock is taken for online orders; re-verifying a
    completed order changes nothing.
    """
    if not (provider_order_id and provider_payment_id and signature):
        raise ValidationError("Missing payment verification details")
    order = load_order(order_id, user_id)
    if not order.is_online_payment:
        raise StateConflict("Order is not paid online", code="NOT_ONLINE_PAYMENT")
    if order.payment_status == PaymentStatus.COMPLETED:
        return ServiceResult.success(order, "Payment already verified")
    if order.payment_status == PaymentStatus.FAILED:
        raise StateConflict("Payment for this order has failed", code="PAYMENT_FAILED")

    secret = get_gateway().key_secret
    if provider_order_id != order.razorpay_order_id or \
            not verify_signature(provider_order_id, provider_payment_id, signature, secret):
        logger.warning("payment signature mismatch for order %s (provider order %s, payment %s)",
                       order.order_number, provider_order_id, provider_payment_id)
        _reject_payment(order)
        return ServiceResult.failure(
            IntegrityFailure("Payment signature verification failed", code="SIGNATURE_INVALID"))

    order.payment_status = PaymentStatus.COMPLETED
    order.razorpay_payment_id = provider_payment_id
    paid = D(order.total)
    active = order.active_items
    short = [line for line in active if not take_stock(line.variation_id, line.quantity)]
    order.stock_reserved = True
    if short:
        # paid for but gone: cancel and send the money to the wallet,
        # shipping included when nothing is left to ship
        refund = cancel_lines(order, short, "Out of stock at payment confirmation", restore=False,
                              refund=paid if len(short) == len(active) else None)
        logger.warning("order %s: %d line(s) out of stock after payment, refunded %s",
                       order.order_number, len(short), refund)
    else:
        order.refresh_status()
        order.touch()

    clear_cart(order.user_id)
    logger.info("order %s payment %s verified", order.order_number, provider_payment_id)
    return ServiceResult.success(order, "Payment verified successfully")
