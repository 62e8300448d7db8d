# storefront/model/wallet.py
from ..extensions import db
from ..utils.dates import utcnow, isoformat

class WalletTransaction(db.Model):
    """Append-only ledger row. Never updated or deleted."""
    __tablename__ = "wallet_transaction"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    type = db.Column(db.String(8), nullable=False)          # "credit" | "debit"
    description = db.Column(db.String(255))
    # provider payment id for top-ups; unique so a payment is credited once
    reference = db.Column(db.String(128), unique=True, nullable=True)
    date = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    __table_args__ = (
        db.CheckConstraint("amount >= 0", name="ck_wallet_amount_non_negative"),
        db.CheckConstraint("type IN ('credit', 'debit')", name="ck_wallet_type"),
    )

    def as_api(self):
        return {
            "id": self.id,
            "amount": float(self.amount or 0),
            "type": self.type,
            "description": self.description,
            "date": isoformat(self.date),
        }
