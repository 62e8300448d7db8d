# storefront/coupon/routes.py
from __future__ import annotations
from flask import request, jsonify

from ..utils.decorators import role_required
from ..utils.errors import result_response
from ..utils.api import api_ok
from ..services import coupon_service
from . import bp


@bp.get("")
@role_required("admin")
def list_coupons():
    active = request.args.get("active")
    flag = None if active is None else active.lower() in ("1", "true", "yes")
    return jsonify(api_ok("coupons", [c.as_api() for c in coupon_service.list_coupons(flag)]))


@bp.post("")
@role_required("admin")
def create_coupon():
    data = request.get_json(silent=True) or {}
    return result_response(coupon_service.create_coupon(data))


@bp.put("/<int:coupon_id>")
@role_required("admin")
def update_coupon(coupon_id: int):
    data = request.get_json(silent=True) or {}
    return result_response(coupon_service.update_coupon(coupon_id, data))


@bp.delete("/<int:coupon_id>")
@role_required("admin")
def delete_coupon(coupon_id: int):
    return result_response(coupon_service.delete_coupon(coupon_id))
