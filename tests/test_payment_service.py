# tests/test_payment_service.py
from decimal import Decimal

from storefront.extensions import db
from storefront.model import (
    Order, CartItem, CouponUsage, ProductVariation, User,
    LineStatus, OrderStatus, PaymentStatus, RefundStatus,
)
from storefront.services.coupon_service import apply_coupon
from storefront.services.order_service import place_order
from storefront.services.payment_service import verify_order_payment, verify_signature

from factories import make_product, make_address, make_coupon, add_to_cart, sign


def _online_order(user, *lines, code=None):
    for variation, qty in lines:
        add_to_cart(user, variation, qty)
    pending = apply_coupon(user.id, code).data["pending"] if code else None
    res = place_order(user.id, make_address(user).id, "RAZORPAY", pending)
    assert res.ok, res.message
    return db.session.get(Order, res.data["order_id"])


def _stock(variation) -> int:
    return db.session.get(ProductVariation, variation.id).stock_quantity


class TestSignature:

    def test_round_trip(self):
        assert verify_signature("order_1", "pay_1", sign("order_1", "pay_1"), "rzp_test_secret")

    def test_rejects_tampering_and_missing_parts(self):
        good = sign("order_1", "pay_1")
        assert not verify_signature("order_1", "pay_2", good, "rzp_test_secret")
        assert not verify_signature("order_1", "pay_1", good, "other_secret")
        assert not verify_signature("order_1", "pay_1", "", "rzp_test_secret")
        assert not verify_signature("order_1", None, good, "rzp_test_secret")


class TestVerifyOrderPayment:
    """Online payment confirmation is the only place online orders take stock."""

    def test_valid_payment_completes_order(self, app, user, gateway):
        v = make_product(700, stock=3)
        order = _online_order(user, (v, 2))
        pid, sig = gateway.pay(order.razorpay_order_id)

        res = verify_order_payment(order.id, order.razorpay_order_id, pid, sig, user_id=user.id)
        assert res.ok, res.message
        assert res.message == "Payment verified successfully"

        order = db.session.get(Order, order.id)
        assert order.payment_status == PaymentStatus.COMPLETED
        assert order.razorpay_payment_id == pid
        assert order.status == OrderStatus.PENDING
        assert order.stock_reserved is True
        assert _stock(v) == 1
        assert CartItem.query.filter_by(user_id=user.id).count() == 0

    def test_verification_is_idempotent(self, app, user, gateway):
        v = make_product(700, stock=3)
        order = _online_order(user, (v, 2))
        pid, sig = gateway.pay(order.razorpay_order_id)
        assert verify_order_payment(order.id, order.razorpay_order_id, pid, sig).ok

        res = verify_order_payment(order.id, order.razorpay_order_id, pid, sig)
        assert res.ok and res.message == "Payment already verified"
        assert _stock(v) == 1

    def test_bad_signature_fails_the_order(self, app, user, gateway):
        v = make_product(700, stock=3)
        order = _online_order(user, (v, 2))
        total_before = order.total
        pid, _ = gateway.pay(order.razorpay_order_id)

        res = verify_order_payment(order.id, order.razorpay_order_id, pid, "forged", user_id=user.id)
        assert not res.ok
        assert res.code == "SIGNATURE_INVALID"
        assert res.kind == "integrity"

        order = db.session.get(Order, order.id)
        assert order.payment_status == PaymentStatus.FAILED
        assert order.status == OrderStatus.CANCELLED
        assert all(it.status == LineStatus.CANCELLED for it in order.items)
        assert order.total == total_before
        assert _stock(v) == 3
        assert CartItem.query.filter_by(user_id=user.id).count() == 1

        # a later valid attempt cannot revive it
        pid, sig = gateway.pay(order.razorpay_order_id)
        res = verify_order_payment(order.id, order.razorpay_order_id, pid, sig)
        assert not res.ok and res.code == "PAYMENT_FAILED"
        assert _stock(v) == 3

    def test_signature_for_another_provider_order(self, app, user, gateway):
        order = _online_order(user, (make_product(700), 1))
        sig = sign("order_someone_else", "pay_x")
        res = verify_order_payment(order.id, "order_someone_else", "pay_x", sig)
        assert not res.ok and res.code == "SIGNATURE_INVALID"
        assert db.session.get(Order, order.id).payment_status == PaymentStatus.FAILED

    def test_coupon_use_reserved_at_placement(self, app, user, gateway):
        make_coupon("ONLINE", discount_type="FLAT", value=100, minimum=500)
        order = _online_order(user, (make_product(700), 1), code="ONLINE")
        assert CouponUsage.query.one().count == 1

        pid, sig = gateway.pay(order.razorpay_order_id)
        assert verify_order_payment(order.id, order.razorpay_order_id, pid, sig).ok
        assert CouponUsage.query.one().count == 1

    def test_single_use_coupon_covers_one_online_order(self, app, user, gateway):
        coupon = make_coupon("ONCE", discount_type="FLAT", value=100, minimum=500, limit=1)
        add_to_cart(user, make_product(700), 1)
        pending = apply_coupon(user.id, "ONCE").data["pending"]
        address = make_address(user)

        first = place_order(user.id, address.id, "RAZORPAY", pending)
        assert first.ok, first.message
        second = place_order(user.id, address.id, "RAZORPAY", pending)
        assert not second.ok and second.code == "COUPON_NO_LONGER_VALID"
        assert Order.query.count() == 1

        order = db.session.get(Order, first.data["order_id"])
        pid, sig = gateway.pay(order.razorpay_order_id)
        assert verify_order_payment(order.id, order.razorpay_order_id, pid, sig).ok
        assert CouponUsage.query.filter_by(coupon_id=coupon.id, user_id=user.id).one().count == 1

    def test_rejected_payment_hands_coupon_back(self, app, user, gateway):
        make_coupon("ONCE", discount_type="FLAT", value=100, minimum=500, limit=1)
        order = _online_order(user, (make_product(700), 1), code="ONCE")
        pid, _ = gateway.pay(order.razorpay_order_id)

        res = verify_order_payment(order.id, order.razorpay_order_id, pid, "forged")
        assert res.code == "SIGNATURE_INVALID"
        assert CouponUsage.query.one().count == 0
        assert apply_coupon(user.id, "ONCE").ok

    def test_stock_gone_at_confirmation_refunds_line(self, app, user, gateway):
        gone, kept = make_product(500, stock=1), make_product(700, stock=2)
        order = _online_order(user, (gone, 1), (kept, 1))
        variation = db.session.get(ProductVariation, gone.id)
        variation.stock_quantity = 0
        db.session.commit()

        pid, sig = gateway.pay(order.razorpay_order_id)
        res = verify_order_payment(order.id, order.razorpay_order_id, pid, sig)
        assert res.ok, res.message

        order = db.session.get(Order, order.id)
        assert [it.status for it in order.items] == [LineStatus.CANCELLED, LineStatus.ORDERED]
        assert order.refund_amount == Decimal("500")
        assert order.refund_status == RefundStatus.PARTIAL_REFUND
        assert db.session.get(User, user.id).wallet == Decimal("500")
        assert _stock(gone) == 0
        assert _stock(kept) == 1

    def test_nothing_left_to_ship_refunds_everything_paid(self, app, user, gateway):
        gone = make_product(500, stock=1)
        order = _online_order(user, (gone, 1))
        assert order.total == Decimal("550")
        variation = db.session.get(ProductVariation, gone.id)
        variation.stock_quantity = 0
        db.session.commit()

        pid, sig = gateway.pay(order.razorpay_order_id)
        assert verify_order_payment(order.id, order.razorpay_order_id, pid, sig).ok

        order = db.session.get(Order, order.id)
        assert order.status == OrderStatus.CANCELLED
        assert order.refund_status == RefundStatus.FULL_REFUND
        assert order.refund_amount == Decimal("550")
        assert order.total == 0
        assert db.session.get(User, user.id).wallet == Decimal("550")

    def test_missing_details(self, app, user, gateway):
        order = _online_order(user, (make_product(700), 1))
        res = verify_order_payment(order.id, order.razorpay_order_id, "", "sig")
        assert not res.ok and res.kind == "validation"
        assert db.session.get(Order, order.id).payment_status == PaymentStatus.PENDING

    def test_cod_order_is_not_verified_online(self, app, user):
        add_to_cart(user, make_product(300), 1)
        res = place_order(user.id, make_address(user).id, "COD")
        order_id = res.data["order_id"]
        res = verify_order_payment(order_id, "order_x", "pay_x", sign("order_x", "pay_x"))
        assert not res.ok and res.code == "NOT_ONLINE_PAYMENT"
