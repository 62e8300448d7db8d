# storefront/model/offer.py
from sqlalchemy.sql import func
from ..extensions import db
from ..utils.dates import isoformat

offer_products = db.Table(
    "offer_product",
    db.Column("offer_id", db.Integer, db.ForeignKey("offer.id", ondelete="CASCADE"), primary_key=True),
    db.Column("product_id", db.Integer, db.ForeignKey("product.id", ondelete="CASCADE"), primary_key=True),
)

offer_categories = db.Table(
    "offer_category",
    db.Column("offer_id", db.Integer, db.ForeignKey("offer.id", ondelete="CASCADE"), primary_key=True),
    db.Column("category_id", db.Integer, db.ForeignKey("category.id", ondelete="CASCADE"), primary_key=True),
)

class Offer(db.Model):
    __tablename__ = "offer"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), unique=True, nullable=False)
    discount_percentage = db.Column(db.Integer, nullable=False)   # 1..100

    # Empty products and categories -> general offer (applies to everything)
    products = db.relationship("Product", secondary=offer_products, lazy="selectin")
    categories = db.relationship("Category", secondary=offer_categories, lazy="selectin")

    is_active = db.Column(db.Boolean, default=True, index=True)
    valid_from = db.Column(db.DateTime, nullable=False)
    valid_to = db.Column(db.DateTime, nullable=False)

    created_at = db.Column(db.DateTime, server_default=func.now())
    updated_at = db.Column(db.DateTime, onupdate=func.now(), server_default=func.now())

    @property
    def product_ids(self):
        return {p.id for p in self.products}

    @property
    def category_ids(self):
        return {c.id for c in self.categories}

    def as_api(self):
        return {
            "id": self.id,
            "name": self.name,
            "discount_percentage": self.discount_percentage,
            "product_ids": sorted(self.product_ids),
            "category_ids": sorted(self.category_ids),
            "is_active": self.is_active,
            "valid_from": isoformat(self.valid_from),
            "valid_to": isoformat(self.valid_to),
        }
