from collections import Counter

from ..extensions import db
from ..utils.dates import utcnow, isoformat
from ..utils.money import to_float


class LineStatus:
    ORDERED = "ORDERED"
    SHIPPED = "SHIPPED"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    RETURN_REQUESTED = "RETURN_REQUESTED"
    RETURNED = "RETURNED"

    ALL = (ORDERED, SHIPPED, OUT_FOR_DELIVERY, DELIVERED, CANCELLED, RETURN_REQUESTED, RETURNED)
    # fulfilment path, in order; admins may only move a line forward along it
    FULFILMENT = (ORDERED, SHIPPED, OUT_FOR_DELIVERY, DELIVERED)
    SHIPPING_STAGE = (SHIPPED, OUT_FOR_DELIVERY)
    CANCELLABLE = (ORDERED, SHIPPED, OUT_FOR_DELIVERY)
    TERMINAL = (CANCELLED, RETURNED)


class OrderStatus:
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    PARTIALLY_SHIPPED = "PARTIALLY_SHIPPED"
    PARTIALLY_DELIVERED = "PARTIALLY_DELIVERED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    RETURNED = "RETURNED"

    CLOSED = (DELIVERED, CANCELLED, RETURNED)


class PaymentMethod:
    COD = "COD"
    WALLET = "WALLET"
    RAZORPAY = "RAZORPAY"
    ONLINE = "ONLINE"
    UPI = "UPI"

    ALL = (COD, WALLET, RAZORPAY, ONLINE, UPI)
    ONLINE_METHODS = (RAZORPAY, ONLINE, UPI)
    # money was taken up front, so cancellations refund to the wallet
    REFUNDABLE = (WALLET, RAZORPAY, ONLINE, UPI)


class PaymentStatus:
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class RefundStatus:
    NONE = "NONE"
    PARTIAL_REFUND = "PARTIAL_REFUND"
    FULL_REFUND = "FULL_REFUND"


class ReturnStatus:
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


def derive_order_status(line_statuses) -> str:
    """Order status as a pure function of the multiset of line statuses."""
    counts = Counter(line_statuses)
    present = set(counts)
    if not present or present == {LineStatus.ORDERED}:
        return OrderStatus.PENDING
    if present == {LineStatus.DELIVERED}:
        return OrderStatus.DELIVERED
    if present == {LineStatus.CANCELLED}:
        return OrderStatus.CANCELLED
    if present == {LineStatus.RETURNED}:
        return OrderStatus.RETURNED
    if LineStatus.CANCELLED in present and present <= {LineStatus.CANCELLED, *LineStatus.SHIPPING_STAGE}:
        return OrderStatus.PARTIALLY_SHIPPED
    if present & set(LineStatus.SHIPPING_STAGE):
        return OrderStatus.IN_PROGRESS
    if present == {LineStatus.DELIVERED, LineStatus.CANCELLED}:
        return OrderStatus.PARTIALLY_DELIVERED
    return OrderStatus.IN_PROGRESS


class Order(db.Model):
    __tablename__ = "orders"

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(32), unique=True, index=True, nullable=False)  # e.g. "ORD-20251022-9F3A1C"
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)

    # derived from the line statuses; written only by refresh_status()
    status = db.Column(db.String(24), default=OrderStatus.PENDING, index=True)

    # Money snapshot (recomputed only when lines are cancelled)
    subtotal = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    tax = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    shipping_charge = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    coupon_discount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    applied_coupon_code = db.Column(db.String(64))
    applied_coupon_id = db.Column(db.Integer, db.ForeignKey("coupon.id", ondelete="SET NULL"), nullable=True)
    total = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    shipping_address = db.Column(db.JSON, nullable=False)

    payment_method = db.Column(db.String(16), nullable=False)
    payment_status = db.Column(db.String(16), nullable=False, default=PaymentStatus.PENDING)
    refund_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    refund_status = db.Column(db.String(16), nullable=False, default=RefundStatus.NONE)

    # Razorpay
    razorpay_order_id = db.Column(db.String(64), index=True)
    razorpay_payment_id = db.Column(db.String(64))
    payment_amount_minor = db.Column(db.Integer)
    payment_currency = db.Column(db.String(8))
    # set once the stock for an online order has been taken
    stock_reserved = db.Column(db.Boolean, nullable=False, default=False)

    cancellation_reason = db.Column(db.String(255))

    ordered_at = db.Column(db.DateTime, default=utcnow, index=True)
    estimated_delivery_date = db.Column(db.DateTime)
    delivered_at = db.Column(db.DateTime)
    updated_at = db.Column(db.DateTime, default=utcnow)

    version_id = db.Column(db.Integer, nullable=False)
    __mapper_args__ = {"version_id_col": version_id}

    items = db.relationship(
        "OrderItem",
        backref="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderItem.id.asc()",
    )

    def item(self, item_id):
        for it in self.items:
            if it.id == item_id:
                return it
        return None

    @property
    def active_items(self):
        return [it for it in self.items if it.status != LineStatus.CANCELLED]

    @property
    def is_online_payment(self) -> bool:
        return self.payment_method in PaymentMethod.ONLINE_METHODS

    def refresh_status(self):
        self.status = derive_order_status(it.status for it in self.items)
        if self.status == OrderStatus.DELIVERED and not self.delivered_at:
            self.delivered_at = utcnow()
        return self.status

    def touch(self):
        # every state-machine write goes through here so the version always bumps
        self.updated_at = utcnow()

    def as_api(self):
        return {
            "id": self.id,
            "order_number": self.order_number,
            "status": self.status,
            "shipping_address": self.shipping_address,
            "money": {
                "subtotal": to_float(self.subtotal),
                "tax": to_float(self.tax),
                "shipping": to_float(self.shipping_charge),
                "coupon_discount": to_float(self.coupon_discount),
                "total": to_float(self.total),
                "refund_amount": to_float(self.refund_amount),
            },
            "applied_coupon_code": self.applied_coupon_code,
            "payment": {
                "method": self.payment_method,
                "status": self.payment_status,
                "razorpay_order_id": self.razorpay_order_id,
                "amount_minor": self.payment_amount_minor,
                "currency": self.payment_currency,
            },
            "refund_status": self.refund_status,
            "items": [i.as_api() for i in self.items],
            "ordered_at": isoformat(self.ordered_at),
            "estimated_delivery_date": isoformat(self.estimated_delivery_date),
            "delivered_at": isoformat(self.delivered_at),
        }


class OrderItem(db.Model):
    __tablename__ = "order_items"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    # Snapshot, decoupled from the live catalog
    variation_id = db.Column(db.Integer, db.ForeignKey("product_variation.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, index=True)
    name = db.Column(db.String(255))
    size = db.Column(db.String(16))
    color = db.Column(db.String(64))
    images = db.Column(db.JSON, default=list)

    quantity = db.Column(db.Integer, nullable=False)
    price = db.Column(db.Numeric(14, 4), nullable=False)            # post-offer unit price actually charged
    original_price = db.Column(db.Numeric(12, 2), nullable=False)   # pre-offer unit price
    discount_percentage = db.Column(db.Integer, nullable=False, default=0)
    applied_offer = db.Column(db.String(160))
    coupon_discount_allocated = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    status = db.Column(db.String(24), nullable=False, default=LineStatus.ORDERED, index=True)

    # Return details
    return_reason = db.Column(db.String(255))
    return_comments = db.Column(db.String(500))
    return_requested_at = db.Column(db.DateTime)
    return_status = db.Column(db.String(16))
    return_refund_amount = db.Column(db.Numeric(12, 2))

    def as_api(self):
        return {
            "id": self.id,
            "variation_id": self.variation_id,
            "name": self.name,
            "size": self.size,
            "color": self.color,
            "images": list(self.images or []),
            "quantity": self.quantity,
            "price": to_float(self.price),
            "original_price": to_float(self.original_price),
            "discount_percentage": self.discount_percentage,
            "applied_offer": self.applied_offer,
            "coupon_discount_allocated": to_float(self.coupon_discount_allocated),
            "status": self.status,
            "return_details": None if not self.return_status else {
                "reason": self.return_reason,
                "comments": self.return_comments,
                "requested_at": isoformat(self.return_requested_at),
                "status": self.return_status,
                "refund_amount": to_float(self.return_refund_amount),
            },
        }
