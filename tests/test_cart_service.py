# tests/test_cart_service.py
from decimal import Decimal

from storefront.model import CartItem
from storefront.services.cart_service import (
    price_cart, add_to_cart, update_quantity, remove_from_cart, shipping_for,
)

from factories import make_product, make_offer, add_to_cart as put_in_cart


class TestShipping:

    def test_threshold_is_strict(self):
        assert shipping_for(Decimal("1000")) == Decimal("50")
        assert shipping_for(Decimal("1001")) == Decimal("0")


class TestPriceCart:
    """Cart totals with offers, shipping and a pending coupon."""

    def test_free_shipping_above_threshold(self, app, user):
        v = make_product(600)
        put_in_cart(user, v, 2)
        res = price_cart(user.id)
        assert res.ok
        assert res.data.subtotal == Decimal("1200")
        assert res.data.shipping == 0
        assert res.data.total == Decimal("1200")

    def test_shipping_charged_at_or_below_threshold(self, app, user):
        v = make_product(400)
        put_in_cart(user, v, 2)
        res = price_cart(user.id)
        assert res.data.subtotal == Decimal("800")
        assert res.data.shipping == Decimal("50")
        assert res.data.total == Decimal("850")

    def test_offer_applied_and_subtotal_rounded(self, app, user):
        v = make_product(999)
        make_offer(15, products=[v])
        put_in_cart(user, v, 1)
        res = price_cart(user.id)
        line = res.data.lines[0]
        assert line.price == Decimal("849.15")
        assert line.discount_percentage == 15
        assert res.data.subtotal == Decimal("849")

    def test_unavailable_lines_excluded(self, app, user):
        available = make_product(300)
        inactive = make_product(500, is_active=False)
        short = make_product(200, stock=1)
        put_in_cart(user, available, 1)
        put_in_cart(user, inactive, 1)
        put_in_cart(user, short, 2)
        res = price_cart(user.id)
        assert [ln.variation_id for ln in res.data.lines] == [available.id]

    def test_empty_cart(self, app, user):
        res = price_cart(user.id)
        assert not res.ok and res.code == "CART_EMPTY"


class TestCartMaintenance:

    def test_add_merges_lines_up_to_limit(self, app, user):
        v = make_product(100, stock=10)
        assert add_to_cart(user.id, v.id, 3).ok
        res = add_to_cart(user.id, v.id, 2)
        assert res.ok and res.data["quantity"] == 5

        res = add_to_cart(user.id, v.id, 1)
        assert not res.ok and res.code == "MAX_QUANTITY_EXCEEDED"
        assert CartItem.query.filter_by(user_id=user.id).count() == 1

    def test_add_beyond_stock_rejected(self, app, user):
        v = make_product(100, stock=2)
        res = add_to_cart(user.id, v.id, 3)
        assert not res.ok and res.code == "INSUFFICIENT_STOCK"

    def test_increment_and_decrement(self, app, user):
        v = make_product(100)
        item = put_in_cart(user, v, 1)
        assert update_quantity(user.id, item.id, "increment").data["quantity"] == 2
        assert update_quantity(user.id, item.id, "decrement").data["quantity"] == 1
        res = update_quantity(user.id, item.id, "decrement")
        assert not res.ok and res.code == "MIN_QUANTITY"

    def test_remove_only_own_line(self, app, user, admin):
        v = make_product(100)
        item = put_in_cart(user, v, 1)
        assert not remove_from_cart(admin.id, item.id).ok
        assert remove_from_cart(user.id, item.id).ok
        assert CartItem.query.count() == 0
