# storefront/wallet/routes.py
from __future__ import annotations
from flask import request, jsonify

from ..utils.api import api_ok, api_error
from ..utils.decorators import login_required, current_user_id
from ..utils.errors import result_response
from ..services import wallet_service
from . import bp


@bp.get("")
@login_required
def history():
    try:
        page = int(request.args.get("page", 1))
    except (TypeError, ValueError):
        page = 1
    return jsonify(api_ok("wallet", wallet_service.wallet_history(current_user_id(), page=page)))


@bp.post("/topup")
@login_required
def create_topup():
    data = request.get_json(silent=True) or {}
    if data.get("amount") in (None, ""):
        r = jsonify(api_error("amount is required")); r.status_code = 400; return r
    return result_response(wallet_service.create_topup(current_user_id(), data.get("amount")))


@bp.post("/topup/verify")
@login_required
def verify_topup():
    data = request.get_json(silent=True) or {}
    res = wallet_service.verify_topup(
        current_user_id(),
        data.get("razorpay_order_id"),
        data.get("razorpay_payment_id"),
        data.get("razorpay_signature"),
    )
    return result_response(res)
