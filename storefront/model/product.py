# storefront/model/product.py
from ..extensions import db
from sqlalchemy.sql import func

class Product(db.Model):
    __tablename__ = "product"
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, index=True)
    description = db.Column(db.Text)

    # base price; offers never touch it
    price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    product_type = db.Column(db.String(64))          # e.g. "sneakers", "boots"
    is_active = db.Column(db.Boolean, default=True, index=True)

    category_id = db.Column(db.Integer, db.ForeignKey("category.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime, server_default=func.now())
    updated_at = db.Column(db.DateTime, onupdate=func.now(), server_default=func.now())

    variations = db.relationship(
        "ProductVariation",
        backref="product",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ProductVariation.id.asc()",
    )

    def as_api(self):
        return {
            "id": self.id,
            "name": self.name,
            "price": float(self.price or 0),
            "product_type": self.product_type,
            "is_active": self.is_active,
            "category": self.category.as_dict() if self.category else None,
            "variations": [v.as_api() for v in self.variations],
        }

class ProductVariation(db.Model):
    """One size/colour SKU of a product; owns the stock count."""
    __tablename__ = "product_variation"

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("product.id"), nullable=False, index=True)
    size = db.Column(db.String(16))
    color = db.Column(db.String(64))
    images = db.Column(db.JSON, default=list)
    stock_quantity = db.Column(db.Integer, nullable=False, default=0)

    __table_args__ = (
        db.CheckConstraint("stock_quantity >= 0", name="ck_variation_stock_non_negative"),
    )

    def as_api(self):
        return {
            "id": self.id,
            "size": self.size,
            "color": self.color,
            "images": list(self.images or []),
            "stock_quantity": self.stock_quantity,
        }
