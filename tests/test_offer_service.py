# tests/test_offer_service.py
from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace

from storefront.services.offer_service import (
    resolve_best_offer, load_active_offers, create_offer, toggle_offer,
    PRODUCT_OFFER, CATEGORY_OFFER, GENERAL_OFFER,
)
from storefront.extensions import db
from storefront.utils.dates import utcnow

from factories import make_category, make_product, make_offer


def _offer(pct, name, product_ids=(), category_ids=()):
    return SimpleNamespace(discount_percentage=pct, name=name, id=name,
                           product_ids=set(product_ids), category_ids=set(category_ids))


def _product(pid=1, price="1000", category_id=7):
    return SimpleNamespace(id=pid, price=Decimal(price), category_id=category_id)


class TestResolveBestOffer:
    """Pure offer resolution over an offer snapshot."""

    def test_no_offers_keeps_base_price(self):
        best = resolve_best_offer(_product(), [])
        assert best.discount_percentage == 0
        assert best.final_price == Decimal("1000")
        assert best.applied_offer is None

    def test_largest_percentage_wins_across_tiers(self):
        offers = [
            _offer(10, "Shoe week", product_ids=[1]),
            _offer(25, "Running", category_ids=[7]),
            _offer(5, "Sitewide"),
        ]
        best = resolve_best_offer(_product(), offers)
        assert best.discount_percentage == 25
        assert best.final_price == Decimal("750")
        assert best.applied_offer == f"{CATEGORY_OFFER}: Running"

    def test_tie_keeps_first_offer_seen(self):
        offers = [_offer(20, "Cat", category_ids=[7]), _offer(20, "Prod", product_ids=[1])]
        best = resolve_best_offer(_product(), offers)
        assert best.offer_type == CATEGORY_OFFER

        best = resolve_best_offer(_product(), list(reversed(offers)))
        assert best.offer_type == PRODUCT_OFFER

    def test_general_offer_applies_to_everything(self):
        best = resolve_best_offer(_product(category_id=None), [_offer(15, "Sale")])
        assert best.offer_type == GENERAL_OFFER
        assert best.final_price == Decimal("850")

    def test_unrelated_offer_ignored(self):
        best = resolve_best_offer(_product(), [_offer(50, "Other", product_ids=[99])])
        assert best.discount_percentage == 0

    def test_final_price_not_rounded(self):
        best = resolve_best_offer(_product(price="999"), [_offer(15, "Sale")])
        assert best.final_price == Decimal("849.15")


class TestActiveOffers:

    def test_snapshot_excludes_inactive_and_expired(self, app):
        v = make_product(500)
        live = make_offer(10, products=[v])
        make_offer(30, products=[v], is_active=False)
        expired = make_offer(40, products=[v])
        expired.valid_to = utcnow() - timedelta(hours=1)
        db.session.commit()

        assert [o.id for o in load_active_offers()] == [live.id]

    def test_create_offer_validates_window(self, app):
        now = utcnow()
        res = create_offer({
            "name": "Backwards",
            "discount_percentage": 10,
            "valid_from": (now + timedelta(days=2)).isoformat(),
            "valid_to": now.isoformat(),
        })
        assert not res.ok
        assert res.kind == "validation"

    def test_create_and_toggle_offer(self, app):
        cat = make_category("Sneakers")
        now = utcnow()
        res = create_offer({
            "name": "Sneaker fest",
            "discount_percentage": 20,
            "category_ids": [cat.id],
            "valid_from": now.isoformat(),
            "valid_to": (now + timedelta(days=5)).isoformat(),
        })
        assert res.ok and res.http_status == 201
        assert res.data.category_ids == {cat.id}

        res = toggle_offer(res.data.id)
        assert res.ok and res.data["is_active"] is False

    def test_duplicate_offer_name_rejected(self, app):
        make_offer(10, name="Monsoon")
        now = utcnow()
        res = create_offer({
            "name": "monsoon",
            "discount_percentage": 10,
            "valid_from": now.isoformat(),
            "valid_to": (now + timedelta(days=1)).isoformat(),
        })
        assert not res.ok and res.code == "OFFER_NAME_TAKEN"
