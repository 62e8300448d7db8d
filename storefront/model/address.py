# storefront/model/address.py
from ..extensions import db

class Address(db.Model):
    __tablename__ = "address"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    label = db.Column(db.String(64))
    type = db.Column(db.String(16), default="HOME")   # HOME | WORK | OTHER
    house_number = db.Column(db.String(64))
    street = db.Column(db.String(255))
    locality = db.Column(db.String(255))
    city = db.Column(db.String(120), nullable=False)
    state = db.Column(db.String(120), nullable=False)
    pincode = db.Column(db.String(16), nullable=False)
    phone_number = db.Column(db.String(32), nullable=False)

    def snapshot(self):
        """Copy stored on the order; later edits to the address never reach it."""
        return {
            "name": self.name,
            "label": self.label,
            "type": self.type or "HOME",
            "house_number": self.house_number,
            "street": self.street or "",
            "locality": self.locality,
            "city": self.city,
            "state": self.state,
            "pincode": str(self.pincode),
            "phone_number": self.phone_number,
        }
