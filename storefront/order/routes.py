# storefront/order/routes.py
from __future__ import annotations
from flask import request, jsonify

from ..utils.api import api_ok, api_error
from ..utils.checkout_session import get_pending_coupon, clear_pending_coupon
from ..utils.decorators import login_required, role_required, current_user_id
from ..utils.errors import result_response
from ..services import order_service
from ..services.payment_service import verify_order_payment
from . import bp

def ok(msg, data=None, status=200):
    r = jsonify(api_ok(msg, data)); r.status_code = status; return r
def err(msg, status=400, data=None):
    r = jsonify(api_error(msg, data)); r.status_code = status; return r


def _int_arg(name, default):
    try:
        return int(request.args.get(name, default))
    except (TypeError, ValueError):
        return default


# ---- customer ---------------------------------------------------------------

@bp.post("")
@login_required
def place():
    data = request.get_json(silent=True) or {}
    address_id = data.get("address_id")
    payment_method = data.get("payment_method") or "COD"
    if not address_id:
        return err("Missing required fields: address_id or payment_method")

    res = order_service.place_order(current_user_id(), address_id, payment_method, get_pending_coupon())
    # online orders keep the selection until the payment is verified
    if res.ok and "provider_order_id" not in res.data:
        clear_pending_coupon()
    return result_response(res)


@bp.get("")
@login_required
def my_orders():
    page = _int_arg("page", 1)
    return ok("orders", order_service.list_user_orders(current_user_id(), page=page))


@bp.get("/<int:order_id>")
@login_required
def my_order(order_id: int):
    return result_response(order_service.get_order(order_id, user_id=current_user_id()))


@bp.post("/<int:order_id>/cancel")
@login_required
def cancel(order_id: int):
    """Body: {"target": "full" | <item id>, "reason": "..."}"""
    data = request.get_json(silent=True) or {}
    target = data.get("target") or data.get("item_id") or "full"
    res = order_service.cancel_order(order_id, target, data.get("reason") or "", user_id=current_user_id())
    return result_response(res)


@bp.post("/<int:order_id>/items/<int:item_id>/return")
@login_required
def request_return(order_id: int, item_id: int):
    data = request.get_json(silent=True) or {}
    res = order_service.request_return(
        order_id, item_id, data.get("reason"), current_user_id(), comments=data.get("comments") or "")
    return result_response(res)


@bp.post("/<int:order_id>/verify-payment")
@login_required
def verify_payment(order_id: int):
    data = request.get_json(silent=True) or {}
    res = verify_order_payment(
        order_id,
        data.get("razorpay_order_id"),
        data.get("razorpay_payment_id"),
        data.get("razorpay_signature"),
        user_id=current_user_id(),
    )
    if res.ok:
        clear_pending_coupon()
    return result_response(res)


# ---- admin ------------------------------------------------------------------

@bp.get("/admin")
@role_required("admin")
def admin_list():
    """
    Query params:
      - page
      - search=ORD-... (order number, partial)
      - status=PENDING|IN_PROGRESS|...
      - sort=asc|desc (by ordered_at)
    """
    return ok("orders", order_service.list_orders(
        page=_int_arg("page", 1),
        search=request.args.get("search", ""),
        status=request.args.get("status", ""),
        sort=request.args.get("sort", "desc"),
    ))


@bp.get("/admin/<int:order_id>")
@role_required("admin")
def admin_detail(order_id: int):
    return result_response(order_service.get_order(order_id))


@bp.patch("/admin/<int:order_id>/status")
@role_required("admin")
def admin_update_status(order_id: int):
    data = request.get_json(silent=True) or {}
    return result_response(order_service.update_status(order_id, data.get("status"), data.get("item_id")))


@bp.post("/admin/<int:order_id>/cancel")
@role_required("admin")
def admin_cancel(order_id: int):
    data = request.get_json(silent=True) or {}
    target = data.get("target") or data.get("item_id") or "full"
    return result_response(order_service.cancel_order(order_id, target, data.get("reason") or ""))


@bp.post("/admin/<int:order_id>/items/<int:item_id>/verify-return")
@role_required("admin")
def admin_verify_return(order_id: int, item_id: int):
    data = request.get_json(silent=True) or {}
    return result_response(order_service.verify_return(order_id, item_id, data.get("action")))


@bp.post("/admin/<int:order_id>/cod-collected")
@role_required("admin")
def admin_cod_collected(order_id: int):
    return result_response(order_service.mark_cod_collected(order_id))
