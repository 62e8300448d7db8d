# storefront/services/offer_service.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import func

from ..extensions import db
from ..model import Offer, Product, Category
from ..utils.dates import utcnow, parse_iso8601
from ..utils.errors import ValidationError, NotFound, service_operation, ServiceResult
from ..utils.money import D

logger = logging.getLogger(__name__)

PRODUCT_OFFER = "Product Offer"
CATEGORY_OFFER = "Category Offer"
GENERAL_OFFER = "General Offer"


@dataclass(frozen=True)
class OfferResolution:
    discount_percentage: int
    final_price: Decimal
    original_price: Decimal
    offer_type: str | None = None
    offer_name: str | None = None

    @property
    def applied_offer(self) -> str | None:
        if not self.offer_type:
            return None
        return f"{self.offer_type}: {self.offer_name}"


def _candidates(product, offers):
    """(offer_type, offer) pairs applicable to the product."""
    for offer in offers:
        pids = offer.product_ids
        cids = offer.category_ids
        if pids and product.id in pids:
            yield PRODUCT_OFFER, offer
        if cids and product.category_id in cids:
            yield CATEGORY_OFFER, offer
        if not pids and not cids:
            yield GENERAL_OFFER, offer


def resolve_best_offer(product, active_offers) -> OfferResolution:
    """Single best offer for a product.

    ``active_offers`` must already be filtered to active, in-window offers.
    The largest percentage across product, category and general candidates
    wins; on a tie the first tier found (product, then category, then
    general) is reported. The final price is not rounded.
    """
    price = D(product.price)
    best_pct, best_type, best_name = 0, None, None
    for offer_type, offer in _candidates(product, active_offers or ()):
        pct = int(offer.discount_percentage or 0)
        if pct > best_pct:
            best_pct, best_type, best_name = pct, offer_type, offer.name or str(offer.id)

    final_price = price * (Decimal(100) - Decimal(best_pct)) / Decimal(100) if best_pct else price
    return OfferResolution(
        discount_percentage=best_pct,
        final_price=final_price,
        original_price=price,
        offer_type=best_type,
        offer_name=best_name,
    )


def load_active_offers(now=None) -> list[Offer]:
    """Snapshot of the offers live at ``now``; reuse it for the whole request."""
    now = now or utcnow()
    return (
        Offer.query
        .filter(Offer.is_active.is_(True), Offer.valid_from <= now, Offer.valid_to >= now)
        .all()
    )


# ---- admin ------------------------------------------------------------------

def _offer_fields(data: dict, partial: bool = False) -> dict:
    out = {}
    if "name" in data or not partial:
        name = (data.get("name") or "").strip()
        if not name:
            raise ValidationError("Offer name is required")
        out["name"] = name

    if "discount_percentage" in data or not partial:
        try:
            pct = int(data.get("discount_percentage"))
        except (TypeError, ValueError):
            raise ValidationError("discount_percentage must be an integer")
        if pct < 1 or pct > 100:
            raise ValidationError("discount_percentage must be between 1 and 100")
        out["discount_percentage"] = pct

    for key in ("valid_from", "valid_to"):
        if key in data or not partial:
            dt = parse_iso8601(data.get(key))
            if not dt:
                raise ValidationError(f"Invalid datetime format for {key}")
            out[key] = dt

    if "product_ids" in data:
        ids = {int(x) for x in (data.get("product_ids") or [])}
        products = Product.query.filter(Product.id.in_(ids)).all() if ids else []
        if len(products) != len(ids):
            raise NotFound("One or more products do not exist", code="PRODUCT_NOT_FOUND")
        out["products"] = products

    if "category_ids" in data:
        ids = {int(x) for x in (data.get("category_ids") or [])}
        categories = Category.query.filter(Category.id.in_(ids)).all() if ids else []
        if len(categories) != len(ids):
            raise NotFound("One or more categories do not exist", code="CATEGORY_NOT_FOUND")
        out["categories"] = categories

    if "is_active" in data:
        out["is_active"] = bool(data.get("is_active"))
    return out


def _check_window(offer: Offer):
    if offer.valid_to <= offer.valid_from:
        raise ValidationError("valid_to must be after valid_from")


def _check_name_unique(name: str, exclude_id=None):
    q = Offer.query.filter(func.lower(Offer.name) == name.lower())
    if exclude_id is not None:
        q = q.filter(Offer.id != exclude_id)
    if q.first():
        raise ValidationError(f'Offer name "{name}" already exists', code="OFFER_NAME_TAKEN")


@service_operation("create_offer")
def create_offer(data: dict) -> ServiceResult:
    fields = _offer_fields(data)
    _check_name_unique(fields["name"])
    offer = Offer(**fields)
    _check_window(offer)
    db.session.add(offer)
    db.session.flush()
    logger.info("offer %s created (%s%%)", offer.name, offer.discount_percentage)
    return ServiceResult.success(offer, "Offer created", http_status=201)


@service_operation("update_offer")
def update_offer(offer_id: int, data: dict) -> ServiceResult:
    offer = db.session.get(Offer, offer_id)
    if not offer:
        raise NotFound("Offer not found", code="OFFER_NOT_FOUND")
    fields = _offer_fields(data, partial=True)
    if "name" in fields:
        _check_name_unique(fields["name"], exclude_id=offer.id)
    for k, v in fields.items():
        setattr(offer, k, v)
    _check_window(offer)
    return ServiceResult.success(offer, "Offer updated")


@service_operation("toggle_offer")
def toggle_offer(offer_id: int) -> ServiceResult:
    offer = db.session.get(Offer, offer_id)
    if not offer:
        raise NotFound("Offer not found", code="OFFER_NOT_FOUND")
    offer.is_active = not offer.is_active
    return ServiceResult.success({"id": offer.id, "is_active": offer.is_active}, "Offer status updated")


@service_operation("delete_offer")
def delete_offer(offer_id: int) -> ServiceResult:
    offer = db.session.get(Offer, offer_id)
    if not offer:
        raise NotFound("Offer not found", code="OFFER_NOT_FOUND")
    db.session.delete(offer)
    return ServiceResult.success({"id": offer_id}, "Offer deleted successfully")


def list_offers():
    return Offer.query.order_by(Offer.id.desc()).all()
