# --- storefront/model/user.py ---

from sqlalchemy.sql import func
from ..extensions import db

class User(db.Model):
    __tablename__ = "user"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(180), nullable=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    role = db.Column(db.String(50), nullable=False, default="user", index=True)  # roles: user, admin
    is_blocked = db.Column(db.Boolean, nullable=False, default=False)

    # Cached running balance; always equal to the ledger sum (see wallet_service)
    wallet = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    created_at = db.Column(db.DateTime, server_default=func.now())

    def as_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "wallet": float(self.wallet or 0),
            }
