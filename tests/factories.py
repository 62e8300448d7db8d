# tests/factories.py
import hashlib
import hmac
from datetime import timedelta
from decimal import Decimal
from itertools import count

from storefront.extensions import db
from storefront.model import (
    User, Category, Product, ProductVariation, Offer, Coupon, CouponUsage, CartItem, Address,
)
from storefront.utils.dates import utcnow
from storefront.utils.errors import ExternalServiceFailure

_seq = count(1)

TEST_SECRET = "rzp_test_secret"


def sign(provider_order_id, provider_payment_id, secret=TEST_SECRET):
    body = f"{provider_order_id}|{provider_payment_id}".encode()
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


class FakeGateway:
    """In-memory stand-in for the payment provider."""

    key_id = "rzp_test_key"
    key_secret = TEST_SECRET
    currency = "INR"

    def __init__(self):
        self.orders = []
        self.payments = {}
        self.fail = False

    def create_order(self, amount_minor, receipt, notes=None):
        if self.fail:
            raise ExternalServiceFailure("provider unavailable", code="PAYMENT_PROVIDER_ERROR")
        order = {"id": f"order_test_{len(self.orders) + 1}", "amount": amount_minor,
                 "currency": self.currency, "receipt": receipt}
        self.orders.append(order)
        return order

    def pay(self, provider_order_id, amount_minor=None):
        """Simulate a captured payment; returns (payment_id, signature)."""
        order = next(o for o in self.orders if o["id"] == provider_order_id)
        payment_id = f"pay_test_{len(self.payments) + 1}"
        self.payments[payment_id] = {
            "id": payment_id,
            "order_id": provider_order_id,
            "amount": amount_minor if amount_minor is not None else order["amount"],
        }
        return payment_id, sign(provider_order_id, payment_id)

    def fetch_payment(self, payment_id):
        return self.payments[payment_id]


def make_user(role="user", wallet=0, **kw):
    n = next(_seq)
    u = User(email=kw.pop("email", f"user{n}@example.com"), name=kw.pop("name", f"User {n}"),
             role=role, wallet=Decimal(str(wallet)), **kw)
    db.session.add(u)
    db.session.commit()
    return u


def make_category(name=None):
    c = Category(name=name or f"Category {next(_seq)}")
    db.session.add(c)
    db.session.commit()
    return c


def make_product(price, category=None, stock=10, is_active=True, name=None, size="9", color="Black"):
    """Product with one variation; returns the variation."""
    p = Product(name=name or f"Shoe {next(_seq)}", price=Decimal(str(price)),
                category_id=category.id if category else None, is_active=is_active)
    v = ProductVariation(size=size, color=color, images=["img/front.jpg"], stock_quantity=stock)
    p.variations.append(v)
    db.session.add(p)
    db.session.commit()
    return v


def add_to_cart(user, variation, quantity=1):
    item = CartItem(user_id=user.id, variation_id=variation.id, quantity=quantity)
    db.session.add(item)
    db.session.commit()
    return item


def make_address(user):
    a = Address(user_id=user.id, name=user.name, label="Home", house_number="12B", street="MG Road",
                locality="Indiranagar", city="Bengaluru", state="Karnataka", pincode="560038",
                phone_number="9876543210")
    db.session.add(a)
    db.session.commit()
    return a


def make_offer(pct, products=(), categories=(), is_active=True, days=1, name=None):
    now = utcnow()
    o = Offer(name=name or f"Offer {next(_seq)}", discount_percentage=pct, is_active=is_active,
              valid_from=now - timedelta(days=days), valid_to=now + timedelta(days=days))
    o.products = [v.product if isinstance(v, ProductVariation) else v for v in products]
    o.categories = list(categories)
    db.session.add(o)
    db.session.commit()
    return o


def make_coupon(code, discount_type="PERCENTAGE", value=10, minimum=0, max_discount=0,
                limit=1, is_active=True, starts=None, ends=None):
    now = utcnow()
    c = Coupon(code=code.upper(), discount_type=discount_type, discount_value=Decimal(str(value)),
               minimum_purchase=Decimal(str(minimum)), max_discount=Decimal(str(max_discount)),
               usage_limit_per_user=limit, is_active=is_active,
               valid_from=starts or now - timedelta(days=1), valid_to=ends or now + timedelta(days=1))
    db.session.add(c)
    db.session.commit()
    return c


def use_coupon(coupon, user, times=1):
    db.session.add(CouponUsage(coupon_id=coupon.id, user_id=user.id, count=times))
    db.session.commit()
