# --- storefront/model/coupon.py ---

from ..extensions import db
from sqlalchemy.sql import func
from ..utils.dates import isoformat

class Coupon(db.Model):
    __tablename__ = "coupon"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), unique=True, nullable=False, index=True)   # stored uppercase
    description = db.Column(db.String(255), default="")

    # "PERCENTAGE" or "FLAT"
    discount_type = db.Column(db.String(16), nullable=False, default="PERCENTAGE")
    discount_value = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    minimum_purchase = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    max_discount = db.Column(db.Numeric(12, 2), nullable=False, default=0)   # percentage only; 0 = no cap

    valid_from = db.Column(db.DateTime, nullable=False)
    valid_to = db.Column(db.DateTime, nullable=False)
    is_active = db.Column(db.Boolean, default=True, index=True)

    usage_limit_per_user = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime, server_default=func.now())
    updated_at = db.Column(db.DateTime, onupdate=func.now(), server_default=func.now())

    usages = db.relationship("CouponUsage", back_populates="coupon", cascade="all, delete-orphan", lazy="selectin")

    def usage_for(self, user_id) -> int:
        for u in self.usages:
            if u.user_id == user_id:
                return u.count
        return 0

    def as_api(self):
        return {
            "id": self.id,
            "code": self.code,
            "description": self.description,
            "discount_type": self.discount_type,
            "discount_value": float(self.discount_value or 0),
            "minimum_purchase": float(self.minimum_purchase or 0),
            "max_discount": float(self.max_discount or 0),
            "valid_from": isoformat(self.valid_from),
            "valid_to": isoformat(self.valid_to),
            "is_active": self.is_active,
            "usage_limit_per_user": self.usage_limit_per_user,
        }

class CouponUsage(db.Model):
    """Per-user redemption counter; only incremented when an order is placed."""
    __tablename__ = "coupon_usage"
    id = db.Column(db.Integer, primary_key=True)
    coupon_id = db.Column(db.Integer, db.ForeignKey("coupon.id", ondelete="CASCADE"), index=True, nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="CASCADE"), index=True, nullable=False)
    count = db.Column(db.Integer, nullable=False, default=0)
    coupon = db.relationship("Coupon", back_populates="usages")

    __table_args__ = (db.UniqueConstraint("coupon_id", "user_id", name="uq_coupon_usage_user"),)
