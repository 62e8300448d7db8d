# storefront/offer/routes.py
from __future__ import annotations
from flask import request, jsonify

from ..utils.api import api_ok
from ..utils.decorators import role_required
from ..utils.errors import result_response
from ..services import offer_service
from . import bp


@bp.get("")
@role_required("admin")
def list_offers():
    return jsonify(api_ok("offers", [o.as_api() for o in offer_service.list_offers()]))


@bp.post("")
@role_required("admin")
def create_offer():
    data = request.get_json(silent=True) or {}
    return result_response(offer_service.create_offer(data))


@bp.patch("/<int:offer_id>")
@role_required("admin")
def update_offer(offer_id: int):
    data = request.get_json(silent=True) or {}
    return result_response(offer_service.update_offer(offer_id, data))


@bp.patch("/<int:offer_id>/toggle")
@role_required("admin")
def toggle_offer(offer_id: int):
    return result_response(offer_service.toggle_offer(offer_id))


@bp.delete("/<int:offer_id>")
@role_required("admin")
def delete_offer(offer_id: int):
    return result_response(offer_service.delete_offer(offer_id))
