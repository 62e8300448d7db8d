# storefront/cart/routes.py
from __future__ import annotations
from flask import request, jsonify

from ..utils.api import api_ok, api_error
from ..utils.checkout_session import get_pending_coupon, set_pending_coupon, clear_pending_coupon
from ..utils.decorators import login_required, current_user_id
from ..utils.errors import result_response
from ..utils.money import to_float
from ..services.cart_service import price_cart, summarize, add_to_cart, update_quantity, remove_from_cart
from ..services.coupon_service import apply_coupon, remove_coupon, revalidate_pending_coupon
from ..services.offer_service import load_active_offers
from . import bp

# ---- standard API response format ------------------------------------------
def ok(msg, data=None, status=200):
    r = jsonify(api_ok(msg, data)); r.status_code = status; return r
def err(msg, status=400, data=None):
    r = jsonify(api_error(msg, data)); r.status_code = status; return r


@bp.get("")
@login_required
def get_cart():
    """Priced cart; a pending coupon that no longer qualifies is dropped here."""
    uid = current_user_id()
    offers = load_active_offers()
    base = price_cart(uid, offers=offers)
    if not base.ok:
        clear_pending_coupon()
        return ok("cart", {
            "items": [],
            "totals": {"subtotal": 0.0, "shipping": 0.0, "coupon_discount": 0.0, "total": 0.0},
            "applied_coupon_code": None,
            "coupon_message": None,
        })

    pending, note = revalidate_pending_coupon(uid, get_pending_coupon(), base.data.subtotal)
    set_pending_coupon(pending)
    if pending:
        summary = summarize(base.data.lines, pending.discount, pending.code)
    else:
        summary = base.data
    summary.coupon_message = note
    return ok("cart", summary.as_api())


@bp.post("/items")
@login_required
def add_item():
    data = request.get_json(silent=True) or {}
    variation_id = data.get("variation_id")
    if not variation_id:
        return err("variation_id is required")
    return result_response(add_to_cart(current_user_id(), variation_id, data.get("quantity", 1)))


@bp.patch("/items/<int:item_id>")
@login_required
def change_quantity(item_id: int):
    data = request.get_json(silent=True) or {}
    return result_response(update_quantity(current_user_id(), item_id, data.get("action")))


@bp.delete("/items/<int:item_id>")
@login_required
def delete_item(item_id: int):
    return result_response(remove_from_cart(current_user_id(), item_id))


# ---- coupon selection -------------------------------------------------------

@bp.post("/coupon")
@login_required
def apply():
    data = request.get_json(silent=True) or {}
    code = (data.get("code") or "").strip()
    if not code:
        return err("Coupon code is required")
    res = apply_coupon(current_user_id(), code)
    if not res.ok:
        return result_response(res)
    set_pending_coupon(res.data["pending"])
    return ok(res.message, {
        "code": res.data["code"],
        "discount": to_float(res.data["discount"]),
        "grand_total": to_float(res.data["grand_total"]),
    })


@bp.delete("/coupon")
@login_required
def remove():
    res = remove_coupon(get_pending_coupon())
    clear_pending_coupon()
    return result_response(res)
