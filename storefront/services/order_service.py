# storefront/services/order_service.py
from __future__ import annotations

import logging
import secrets
from datetime import timedelta
from decimal import Decimal

from sqlalchemy import update

from ..extensions import db
from ..model import (
    Address, Coupon, Order, OrderItem, ProductVariation, LineStatus, OrderStatus,
    PaymentMethod, PaymentStatus, RefundStatus, ReturnStatus,
)
from ..utils.dates import utcnow
from ..utils.errors import (
    ValidationError, BusinessRuleViolation, NotFound, StateConflict,
    ServiceResult, service_operation,
)
from ..utils.money import D, ZERO, round_money, round_unit, to_minor_units, to_float
from .cart_service import priced_lines, summarize, shipping_for, clear_cart
from .coupon_service import revalidate_pending_coupon, allocate_coupon_discount, record_coupon_usage
from .gateway import get_gateway
from .offer_service import load_active_offers
from .wallet_service import post_credit, post_debit

logger = logging.getLogger(__name__)

COD_LIMIT = Decimal("1000")
DELIVERY_DAYS = 3
ORDERS_PAGE_SIZE = 10


def generate_order_number(now=None) -> str:
    now = now or utcnow()
    return f"ORD-{now:%Y%m%d}-{secrets.token_hex(3).upper()}"


def normalize_payment_method(method) -> str:
    method = (method or "").strip().upper()
    if method == "RAZOR_PAY":
        method = PaymentMethod.RAZORPAY
    if method not in PaymentMethod.ALL:
        raise ValidationError("Invalid payment method", code="INVALID_PAYMENT_METHOD")
    return method


# ---- stock ------------------------------------------------------------------

def take_stock(variation_id, quantity) -> bool:
    """Conditional decrement; False when the variation cannot cover ``quantity``."""
    res = db.session.execute(
        update(ProductVariation)
        .where(ProductVariation.id == variation_id, ProductVariation.stock_quantity >= quantity)
        .values(stock_quantity=ProductVariation.stock_quantity - quantity)
        .execution_options(synchronize_session=False)
    )
    return res.rowcount == 1


def restore_stock(variation_id, quantity):
    db.session.execute(
        update(ProductVariation)
        .where(ProductVariation.id == variation_id)
        .values(stock_quantity=ProductVariation.stock_quantity + quantity)
        .execution_options(synchronize_session=False)
    )
    logger.info("stock +%s on variation %s", quantity, variation_id)


def _reserve_all(order: Order):
    for line in order.items:
        if not take_stock(line.variation_id, line.quantity):
            raise BusinessRuleViolation(f"{line.name} is out of stock", code="INSUFFICIENT_STOCK")
    order.stock_reserved = True


# ---- money ------------------------------------------------------------------

def recompute_totals(order: Order):
    """Money fields from the lines that are not cancelled; all zero when none remain."""
    active = order.active_items
    if not active:
        order.subtotal = ZERO
        order.shipping_charge = ZERO
        order.coupon_discount = ZERO
        order.total = ZERO
        return
    subtotal = round_unit(sum((D(it.price) * it.quantity for it in active), ZERO))
    discount = round_money(sum((D(it.coupon_discount_allocated) for it in active), ZERO))
    shipping = shipping_for(subtotal)
    order.subtotal = subtotal
    order.shipping_charge = shipping
    order.coupon_discount = discount
    order.total = subtotal + shipping + D(order.tax) - discount


def _post_refund(order: Order, amount, description) -> Decimal:
    """Wallet credit for money actually taken; refund fields move with the ledger row."""
    amount = round_money(amount)
    if amount <= 0 or order.payment_method not in PaymentMethod.REFUNDABLE:
        return ZERO
    post_credit(order.user_id, amount, description)
    order.refund_amount = D(order.refund_amount) + amount
    order.refund_status = (
        RefundStatus.FULL_REFUND
        if order.status in (OrderStatus.CANCELLED, OrderStatus.RETURNED)
        else RefundStatus.PARTIAL_REFUND
    )
    return amount


def cancel_lines(order: Order, lines, reason="", restore=True, refund=None) -> Decimal:
    """Cancel ``lines`` (none of them already cancelled) and refund their net price.

    Stock goes back only when ``restore`` is set, i.e. when it was taken.
    An explicit ``refund`` replaces the per-line amount. Caller owns the
    transaction.
    """
    net = ZERO
    for line in lines:
        line.status = LineStatus.CANCELLED
        if restore:
            restore_stock(line.variation_id, line.quantity)
        net += D(line.price) * line.quantity - D(line.coupon_discount_allocated)
    refund = net if refund is None else D(refund)
    if reason:
        order.cancellation_reason = reason[:255]
    order.refresh_status()
    refunded = _post_refund(
        order, max(refund, ZERO), f"Refund for cancelled item(s) in order {order.order_number}")
    recompute_totals(order)
    order.touch()
    return refunded


# ---- lookup -----------------------------------------------------------------

def load_order(order_id, user_id=None) -> Order:
    order = db.session.get(Order, order_id)
    if not order or (user_id is not None and order.user_id != user_id):
        raise NotFound("Order not found", code="ORDER_NOT_FOUND")
    return order


def _load_line(order: Order, item_id) -> OrderItem:
    try:
        item_id = int(item_id)
    except (TypeError, ValueError):
        raise ValidationError("Invalid item id")
    line = order.item(item_id)
    if not line:
        raise NotFound("Product not found in order", code="ORDER_ITEM_NOT_FOUND")
    return line


# ---- placement --------------------------------------------------------------

@service_operation("place_order")
def place_order(user_id, address_id, payment_method, pending_coupon=None) -> ServiceResult:
    """Checkout: snapshot the priced cart into an order and take payment.

    One offer snapshot prices every line and the coupon use is reserved
    against its per-user limit for every method. COD and WALLET orders take
    stock and clear the cart here; online orders only create the provider
    order and wait for payment verification, which hands the coupon use
    back if the payment is rejected.
    """
    method = normalize_payment_method(payment_method)
    if not address_id:
        raise ValidationError("Missing required fields: address_id or payment_method")
    address = Address.query.filter_by(id=address_id, user_id=user_id).first()
    if not address:
        raise NotFound("Shipping address not found", code="ADDRESS_NOT_FOUND")

    now = utcnow()
    offers = load_active_offers(now)
    lines = priced_lines(user_id, offers)
    if not lines:
        raise NotFound("No available products to order", code="CART_EMPTY")

    coupon = None
    if pending_coupon:
        pending, message = revalidate_pending_coupon(user_id, pending_coupon, summarize(lines).subtotal, now)
        if not pending:
            raise BusinessRuleViolation(message, code="COUPON_NO_LONGER_VALID")
        summary = summarize(lines, pending.discount, pending.code)
        coupon = db.session.get(Coupon, pending.coupon_id)
    else:
        summary = summarize(lines)

    if method == PaymentMethod.COD and summary.total > COD_LIMIT:
        raise BusinessRuleViolation(
            f"Cash on Delivery is not available for orders above Rs {COD_LIMIT}. "
            "Please choose another payment method.",
            code="COD_LIMIT_EXCEEDED",
        )
    if method in PaymentMethod.ONLINE_METHODS and summary.total <= 0:
        raise BusinessRuleViolation("Nothing to pay online for this order", code="ZERO_TOTAL")

    coupon_discount = round_money(summary.coupon_discount)
    allocations = allocate_coupon_discount([ln.line_total for ln in lines], coupon_discount)

    order = Order(
        order_number=generate_order_number(now),
        user_id=user_id,
        subtotal=summary.subtotal,
        tax=ZERO,
        shipping_charge=summary.shipping,
        coupon_discount=coupon_discount,
        applied_coupon_code=coupon.code if coupon and coupon_discount > 0 else None,
        applied_coupon_id=coupon.id if coupon and coupon_discount > 0 else None,
        total=summary.total,
        shipping_address=address.snapshot(),
        payment_method=method,
        payment_status=PaymentStatus.PENDING,
        ordered_at=now,
        estimated_delivery_date=now + timedelta(days=DELIVERY_DAYS),
        updated_at=now,
    )
    for ln, allocated in zip(lines, allocations):
        order.items.append(OrderItem(
            variation_id=ln.variation_id,
            product_id=ln.product_id,
            name=ln.name,
            size=ln.size,
            color=ln.color,
            images=ln.images,
            quantity=ln.quantity,
            price=ln.price,
            original_price=ln.original_price,
            discount_percentage=ln.discount_percentage,
            applied_offer=ln.applied_offer,
            coupon_discount_allocated=allocated,
            status=LineStatus.ORDERED,
        ))
    order.refresh_status()
    db.session.add(order)
    db.session.flush()
    if order.applied_coupon_id:
        record_coupon_usage(order.applied_coupon_id, user_id, coupon.usage_limit_per_user)

    data = {
        "order_id": order.id,
        "order_number": order.order_number,
        "payment_method": method,
        "total": to_float(order.total),
    }

    if method in PaymentMethod.ONLINE_METHODS:
        gateway = get_gateway()
        provider_order = gateway.create_order(to_minor_units(order.total), receipt=order.order_number)
        order.razorpay_order_id = provider_order["id"]
        order.payment_amount_minor = int(provider_order.get("amount", to_minor_units(order.total)))
        order.payment_currency = provider_order.get("currency", gateway.currency)
        logger.info("order %s awaiting online payment (%s)", order.order_number, order.razorpay_order_id)
        data.update({
            "key_id": gateway.key_id,
            "provider_order_id": order.razorpay_order_id,
            "amount": order.payment_amount_minor,
            "currency": order.payment_currency,
        })
        return ServiceResult.success(data, "Proceed to payment", http_status=201)

    if method == PaymentMethod.WALLET:
        post_debit(user_id, order.total, f"Order payment for Order #{order.order_number}")
        order.payment_status = PaymentStatus.COMPLETED
    _reserve_all(order)
    clear_cart(user_id)
    logger.info("order %s placed (%s, total %s)", order.order_number, method, order.total)
    message = "Order placed successfully using Wallet" if method == PaymentMethod.WALLET \
        else "Order placed successfully (COD)"
    return ServiceResult.success(data, message, http_status=201)


# ---- cancellation -----------------------------------------------------------

@service_operation("cancel_order")
def cancel_order(order_id, target, reason="", user_id=None) -> ServiceResult:
    """Cancel the whole order (``target == "full"``) or one line by id.

    ``user_id`` scopes the lookup to the customer's own orders; admins
    pass None.
    """
    order = load_order(order_id, user_id)
    if order.status in OrderStatus.CLOSED:
        raise StateConflict("Order cannot be cancelled now.", code="ORDER_NOT_CANCELLABLE")
    if order.is_online_payment and order.payment_status != PaymentStatus.COMPLETED:
        raise StateConflict("Payment for this order is not completed", code="PAYMENT_NOT_COMPLETED")

    if target == "full":
        lines = [it for it in order.items if it.status in LineStatus.CANCELLABLE]
        if not lines:
            raise StateConflict("No items in this order can be cancelled", code="NOTHING_TO_CANCEL")
        message = "Order cancelled successfully"
    else:
        line = _load_line(order, target)
        if line.status == LineStatus.CANCELLED:
            return ServiceResult.success(
                {"order": order.as_api(), "refund": 0.0}, "Product already cancelled")
        if line.status not in LineStatus.CANCELLABLE:
            raise StateConflict("This product cannot be cancelled", code="ITEM_NOT_CANCELLABLE")
        lines = [line]
        message = "Product cancelled successfully"

    refund = cancel_lines(order, lines, reason, restore=order.stock_reserved)
    logger.info("order %s: %d line(s) cancelled, refund %s", order.order_number, len(lines), refund)
    return ServiceResult.success({"order": order.as_api(), "refund": to_float(refund)}, message)


# ---- returns ----------------------------------------------------------------

@service_operation("request_return")
def request_return(order_id, item_id, reason, user_id, comments="") -> ServiceResult:
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("Missing required fields")
    order = load_order(order_id, user_id)
    line = _load_line(order, item_id)
    if line.return_status:
        raise StateConflict("Return already requested for this product", code="RETURN_ALREADY_REQUESTED")
    if line.status != LineStatus.DELIVERED:
        raise StateConflict("Only delivered products can be returned", code="ITEM_NOT_DELIVERED")

    line.status = LineStatus.RETURN_REQUESTED
    line.return_reason = reason[:255]
    line.return_comments = (comments or "")[:500]
    line.return_requested_at = utcnow()
    line.return_status = ReturnStatus.PENDING
    line.return_refund_amount = round_money(D(line.price) * line.quantity)
    order.refresh_status()
    order.touch()
    return ServiceResult.success(order, "Return request submitted successfully")


@service_operation("verify_return")
def verify_return(order_id, item_id, action) -> ServiceResult:
    if action not in ("approve", "reject"):
        raise ValidationError("action must be 'approve' or 'reject'")
    order = load_order(order_id)
    line = _load_line(order, item_id)
    if line.status != LineStatus.RETURN_REQUESTED or line.return_status != ReturnStatus.PENDING:
        raise StateConflict("Return request already processed", code="RETURN_ALREADY_RESOLVED")

    if action == "reject":
        line.status = LineStatus.DELIVERED
        line.return_status = ReturnStatus.REJECTED
        order.refresh_status()
        order.touch()
        return ServiceResult.success(order, "Return request rejected successfully")

    line.status = LineStatus.RETURNED
    line.return_status = ReturnStatus.APPROVED
    order.refresh_status()
    refund = round_money(line.return_refund_amount)
    if refund > 0:
        post_credit(order.user_id, refund,
                    f"Refund for returned product: {line.name} (Order #{order.order_number})")
        order.refund_amount = D(order.refund_amount) + refund
        order.refund_status = (
            RefundStatus.FULL_REFUND if order.status == OrderStatus.RETURNED else RefundStatus.PARTIAL_REFUND)
    restore_stock(line.variation_id, line.quantity)
    order.touch()
    logger.info("order %s: return of item %s approved, refund %s", order.order_number, line.id, refund)
    return ServiceResult.success(order, "Return request approved successfully")


# ---- fulfilment -------------------------------------------------------------

def _stage(status) -> int:
    return LineStatus.FULFILMENT.index(status)


@service_operation("update_order_status")
def update_status(order_id, status, item_id=None) -> ServiceResult:
    """Admin move along ORDERED -> SHIPPED -> OUT_FOR_DELIVERY -> DELIVERED.

    Without ``item_id`` every line still behind ``status`` moves; lines
    already at or past it, or out of the fulfilment path, are left alone.
    """
    status = (status or "").strip().upper()
    if status not in LineStatus.FULFILMENT[1:]:
        raise ValidationError("Invalid status", code="INVALID_STATUS")
    order = load_order(order_id)

    if order.is_online_payment and order.payment_status != PaymentStatus.COMPLETED:
        raise StateConflict("Online payment for this order is not completed", code="PAYMENT_NOT_COMPLETED")

    if item_id is not None:
        line = _load_line(order, item_id)
        if line.status not in LineStatus.FULFILMENT or _stage(line.status) >= _stage(status):
            raise StateConflict(f"Cannot move a {line.status} item to {status}", code="INVALID_TRANSITION")
        lines = [line]
    else:
        lines = [it for it in order.items
                 if it.status in LineStatus.FULFILMENT and _stage(it.status) < _stage(status)]
        if not lines:
            raise StateConflict(f"No items can be moved to {status}", code="INVALID_TRANSITION")

    for line in lines:
        line.status = status
    if status == LineStatus.DELIVERED:
        if order.payment_method != PaymentMethod.COD:
            order.payment_status = PaymentStatus.COMPLETED
        if not order.delivered_at:
            order.delivered_at = utcnow()
    order.refresh_status()
    order.touch()
    logger.info("order %s: %d line(s) -> %s", order.order_number, len(lines), status)
    return ServiceResult.success(order, "Order status updated")


@service_operation("mark_cod_collected")
def mark_cod_collected(order_id) -> ServiceResult:
    order = load_order(order_id)
    if order.payment_method != PaymentMethod.COD:
        raise StateConflict("Only cash on delivery orders are collected", code="NOT_COD")
    if order.payment_status == PaymentStatus.COMPLETED:
        return ServiceResult.success(order, "Payment already collected")
    delivered = (LineStatus.DELIVERED, LineStatus.RETURN_REQUESTED, LineStatus.RETURNED)
    if not any(it.status in delivered for it in order.items):
        raise StateConflict("Nothing has been delivered yet", code="NOT_DELIVERED")
    order.payment_status = PaymentStatus.COMPLETED
    order.touch()
    logger.info("order %s: cash collected (%s)", order.order_number, order.total)
    return ServiceResult.success(order, "Payment marked as collected")


# ---- read side --------------------------------------------------------------

def get_order(order_id, user_id=None) -> ServiceResult:
    try:
        return ServiceResult.success(load_order(order_id, user_id), "order")
    except NotFound as e:
        return ServiceResult.failure(e)


def _page(q, page, per_page):
    page = max(int(page or 1), 1)
    per_page = min(max(int(per_page or ORDERS_PAGE_SIZE), 1), 100)
    paged = q.paginate(page=page, per_page=per_page, error_out=False)
    return {
        "page": page,
        "per_page": per_page,
        "total": paged.total,
        "total_pages": paged.pages,
        "items": [o.as_api() for o in paged.items],
    }


def list_user_orders(user_id, page=1, per_page=ORDERS_PAGE_SIZE) -> dict:
    q = Order.query.filter(Order.user_id == user_id).order_by(Order.ordered_at.desc(), Order.id.desc())
    return _page(q, page, per_page)


def list_orders(page=1, per_page=ORDERS_PAGE_SIZE, search="", status="", sort="desc") -> dict:
    q = Order.query
    if search:
        q = q.filter(Order.order_number.ilike(f"%{search.strip()}%"))
    if status:
        q = q.filter(Order.status == status.strip().upper())
    if sort == "asc":
        q = q.order_by(Order.ordered_at.asc(), Order.id.asc())
    else:
        q = q.order_by(Order.ordered_at.desc(), Order.id.desc())
    return _page(q, page, per_page)
