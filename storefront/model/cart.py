# storefront/model/cart.py
from sqlalchemy.sql import func
from ..extensions import db

class CartItem(db.Model):
    __tablename__ = "cart_item"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    variation_id = db.Column(db.Integer, db.ForeignKey("product_variation.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime, server_default=func.now())
    updated_at = db.Column(db.DateTime, onupdate=func.now(), server_default=func.now())

    variation = db.relationship("ProductVariation", lazy="joined")

    __table_args__ = (
        db.UniqueConstraint("user_id", "variation_id", name="uq_cart_user_variation"),
        db.CheckConstraint("quantity >= 1 AND quantity <= 5", name="ck_cart_quantity_range"),
    )
