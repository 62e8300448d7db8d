# storefront/services/coupon_service.py
from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..model import Coupon, CouponUsage
from ..utils.checkout_session import PendingCoupon
from ..utils.dates import utcnow, parse_iso8601
from ..utils.errors import (
    ServiceError, ValidationError, BusinessRuleViolation, NotFound, StateConflict,
    ServiceResult, service_operation,
)
from ..utils.money import D, ZERO, round_money, round_unit, to_minor_units, from_minor_units
from .cart_service import price_cart, summarize
from .offer_service import load_active_offers

logger = logging.getLogger(__name__)

PERCENTAGE = "PERCENTAGE"
FLAT = "FLAT"
COUPON_TYPES = (PERCENTAGE, FLAT)
MIN_CODE_LENGTH = 3


def normalize_code(code) -> str:
    return (code or "").strip().upper()


def find_coupon(code) -> Coupon | None:
    code = normalize_code(code)
    if not code:
        return None
    return Coupon.query.filter(Coupon.code == code).first()


def check_coupon_usable(coupon: Coupon, user_id, now=None):
    """Availability checks that do not depend on the cart."""
    now = now or utcnow()
    if not coupon.is_active:
        raise BusinessRuleViolation("Coupon is not active", code="COUPON_INACTIVE")
    if now < coupon.valid_from or now > coupon.valid_to:
        raise BusinessRuleViolation("Coupon expired", code="COUPON_EXPIRED")
    if coupon.usage_for(user_id) >= coupon.usage_limit_per_user:
        raise BusinessRuleViolation("You already used this coupon", code="COUPON_USAGE_EXCEEDED")


def compute_coupon_discount(coupon: Coupon, cart_total) -> Decimal:
    """Discount a coupon grants on ``cart_total`` (offers applied, no coupon).

    The minimum-purchase check runs before the FLAT configuration check, so
    a low cart always reports the minimum.
    """
    cart_total = D(cart_total)
    minimum = D(coupon.minimum_purchase)
    if cart_total < minimum:
        raise BusinessRuleViolation(
            f"Minimum purchase of ₹{round_money(minimum)} required",
            code="COUPON_BELOW_MINIMUM",
            minimum_purchase=float(minimum),
        )

    value = D(coupon.discount_value)
    if coupon.discount_type == PERCENTAGE:
        discount = round_unit(cart_total * value / Decimal(100))
        cap = D(coupon.max_discount)
        if cap > 0 and discount > cap:
            discount = cap
        return discount

    if coupon.discount_type == FLAT:
        # a flat coupon worth its own minimum would pay for the whole purchase
        if not minimum > value:
            raise BusinessRuleViolation(
                "Coupon has an invalid configuration", code="COUPON_MISCONFIGURED")
        return min(value, cart_total)

    raise BusinessRuleViolation("Coupon has an invalid configuration", code="COUPON_MISCONFIGURED")


@service_operation("apply_coupon")
def apply_coupon(user_id, code, offers=None) -> ServiceResult:
    coupon = find_coupon(code)
    if not coupon:
        raise NotFound("Invalid coupon", code="COUPON_NOT_FOUND")
    check_coupon_usable(coupon, user_id)

    if offers is None:
        offers = load_active_offers()
    priced = price_cart(user_id, offers=offers)
    if not priced.ok:
        raise NotFound(priced.message, code=priced.code)
    cart = priced.data

    discount = compute_coupon_discount(coupon, cart.subtotal)
    pending = PendingCoupon(code=coupon.code, discount=discount, coupon_id=coupon.id)
    final = summarize(cart.lines, discount, coupon.code)
    logger.info("user %s applied coupon %s (discount %s)", user_id, coupon.code, discount)
    return ServiceResult.success({
        "code": coupon.code,
        "discount": discount,
        "grand_total": final.total,
        "pending": pending,
    }, "Coupon applied successfully")


def remove_coupon(pending: PendingCoupon | None) -> ServiceResult:
    """Dropping a pending selection never touches the usage counters."""
    return ServiceResult.success({"removed": pending.code if pending else None}, "Coupon removed")


def revalidate_pending_coupon(user_id, pending: PendingCoupon | None, subtotal, now=None):
    """Re-run the coupon checks against the current cart.

    Returns ``(pending, message)``: the refreshed selection (discount
    recomputed for ``subtotal``) or ``None`` plus the reason it was dropped.
    """
    if pending is None:
        return None, None
    coupon = db.session.get(Coupon, pending.coupon_id)
    if not coupon or coupon.code != pending.code:
        return None, "Applied coupon no longer exists and has been removed."
    try:
        check_coupon_usable(coupon, user_id, now)
        discount = compute_coupon_discount(coupon, subtotal)
    except ServiceError as e:
        return None, f"{e.message}. Coupon has been removed."
    return pending.with_discount(discount), None


def allocate_coupon_discount(line_subtotals, discount) -> list[Decimal]:
    """Split an order-level discount across lines in proportion to their subtotals.

    Works in minor units; the rounding residual goes to the lines with the
    largest fractional share (later lines win ties), so the allocations
    always add up to ``discount`` exactly.
    """
    subtotals = [D(s) for s in line_subtotals]
    n = len(subtotals)
    total = sum(subtotals, ZERO)
    if n == 0:
        return []
    if D(discount) <= 0 or total <= 0:
        return [round_money(ZERO)] * n

    cents = to_minor_units(discount)
    exact = [s * cents / total for s in subtotals]
    shares = [int(e) for e in exact]
    residual = cents - sum(shares)
    by_fraction = sorted(range(n), key=lambda i: (exact[i] - shares[i], i), reverse=True)
    for i in by_fraction[:residual]:
        shares[i] += 1
    return [from_minor_units(c) for c in shares]


def record_coupon_usage(coupon_id, user_id, limit=None):
    """Atomically bump the per-user counter.

    With ``limit`` the increment refuses to pass it; ``None`` records the
    use unconditionally. Caller owns the transaction.
    """
    conditions = [CouponUsage.coupon_id == coupon_id, CouponUsage.user_id == user_id]
    if limit is not None:
        conditions.append(CouponUsage.count < limit)
    increment = (
        update(CouponUsage)
        .where(*conditions)
        .values(count=CouponUsage.count + 1)
        .execution_options(synchronize_session=False)
    )
    if db.session.execute(increment).rowcount == 1:
        return
    existing = CouponUsage.query.filter_by(coupon_id=coupon_id, user_id=user_id).first()
    if limit is not None and (existing or limit < 1):
        raise BusinessRuleViolation("You already used this coupon", code="COUPON_USAGE_EXCEEDED")
    db.session.add(CouponUsage(coupon_id=coupon_id, user_id=user_id, count=1))
    try:
        db.session.flush()
    except IntegrityError:
        raise StateConflict("Coupon usage changed concurrently, please retry", code="CONCURRENT_MODIFICATION")


def release_coupon_usage(coupon_id, user_id):
    """Hand back one reserved use (online payment that never went through)."""
    db.session.execute(
        update(CouponUsage)
        .where(CouponUsage.coupon_id == coupon_id, CouponUsage.user_id == user_id,
               CouponUsage.count > 0)
        .values(count=CouponUsage.count - 1)
        .execution_options(synchronize_session=False)
    )


# ---- admin ------------------------------------------------------------------

def _money_field(data, key, default=None):
    raw = data.get(key, default)
    if raw is None or raw == "":
        return D(default or 0)
    try:
        return D(raw)
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{key} must be numeric")


def _coupon_fields(data: dict) -> dict:
    code = normalize_code(data.get("code"))
    if not code:
        raise ValidationError("Coupon code is required")
    if len(code) < MIN_CODE_LENGTH:
        raise ValidationError(f"Coupon code must be at least {MIN_CODE_LENGTH} characters long")

    dtype = (data.get("discount_type") or "").strip().upper()
    if dtype not in COUPON_TYPES:
        raise ValidationError("discount_type must be 'PERCENTAGE' or 'FLAT'")

    value = _money_field(data, "discount_value")
    if value <= 0:
        raise ValidationError("Discount value must be greater than 0")
    if dtype == PERCENTAGE and value > 100:
        raise ValidationError("Percentage discount cannot exceed 100%")

    minimum = _money_field(data, "minimum_purchase", 0)
    max_discount = _money_field(data, "max_discount", 0)
    if minimum < 0 or max_discount < 0:
        raise ValidationError("minimum_purchase and max_discount cannot be negative")
    if dtype == FLAT and not minimum > value:
        raise BusinessRuleViolation(
            "Minimum purchase must be greater than the flat discount value", code="COUPON_MISCONFIGURED")

    valid_from = parse_iso8601(data.get("valid_from"))
    valid_to = parse_iso8601(data.get("valid_to"))
    if not valid_from or not valid_to:
        raise ValidationError("Valid from and valid to dates are required")
    if valid_to <= valid_from:
        raise ValidationError("Valid to date must be after valid from date")

    try:
        limit = int(data.get("usage_limit_per_user", 1))
    except (TypeError, ValueError):
        raise ValidationError("usage_limit_per_user must be an integer")
    if limit < 1:
        raise ValidationError("usage_limit_per_user must be at least 1")

    return {
        "code": code,
        "description": (data.get("description") or "").strip(),
        "discount_type": dtype,
        "discount_value": value,
        "minimum_purchase": minimum,
        "max_discount": max_discount if dtype == PERCENTAGE else ZERO,
        "valid_from": valid_from,
        "valid_to": valid_to,
        "usage_limit_per_user": limit,
        "is_active": bool(data.get("is_active", True)),
    }


def _check_code_unique(code, exclude_id=None):
    q = Coupon.query.filter(Coupon.code == code)
    if exclude_id is not None:
        q = q.filter(Coupon.id != exclude_id)
    if q.first():
        raise ValidationError("Coupon code already exists. Please choose a different code.",
                              code="COUPON_CODE_TAKEN")


@service_operation("create_coupon")
def create_coupon(data: dict) -> ServiceResult:
    fields = _coupon_fields(data)
    _check_code_unique(fields["code"])
    coupon = Coupon(**fields)
    db.session.add(coupon)
    db.session.flush()
    logger.info("coupon %s created", coupon.code)
    return ServiceResult.success(coupon, "Coupon created successfully", http_status=201)


@service_operation("update_coupon")
def update_coupon(coupon_id, data: dict) -> ServiceResult:
    coupon = db.session.get(Coupon, coupon_id)
    if not coupon:
        raise NotFound("Coupon not found", code="COUPON_NOT_FOUND")
    fields = _coupon_fields(data)
    _check_code_unique(fields["code"], exclude_id=coupon.id)
    for k, v in fields.items():
        setattr(coupon, k, v)
    return ServiceResult.success(coupon, "Coupon updated successfully")


@service_operation("delete_coupon")
def delete_coupon(coupon_id) -> ServiceResult:
    coupon = db.session.get(Coupon, coupon_id)
    if not coupon:
        raise NotFound("Coupon not found", code="COUPON_NOT_FOUND")
    db.session.delete(coupon)
    return ServiceResult.success({"id": coupon_id}, "Coupon deleted successfully")


def list_coupons(active=None):
    q = Coupon.query
    if active is not None:
        q = q.filter(Coupon.is_active.is_(active))
    return q.order_by(Coupon.id.desc()).all()
