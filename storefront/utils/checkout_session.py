# storefront/utils/checkout_session.py
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from flask import session

from .money import D, round_money

SESSION_KEY = "applied_coupon"


@dataclass(frozen=True)
class PendingCoupon:
    """Coupon picked at checkout; lives in the session until the order is placed."""
    code: str
    discount: Decimal
    coupon_id: int

    def to_dict(self) -> dict:
        return {"code": self.code, "discount": str(round_money(self.discount)), "coupon_id": self.coupon_id}

    @classmethod
    def from_dict(cls, data: dict | None) -> PendingCoupon | None:
        if not data:
            return None
        try:
            return cls(code=str(data["code"]), discount=D(data["discount"]), coupon_id=int(data["coupon_id"]))
        except (KeyError, TypeError, ValueError, ArithmeticError):
            return None

    def with_discount(self, discount) -> PendingCoupon:
        return PendingCoupon(code=self.code, discount=D(discount), coupon_id=self.coupon_id)


def get_pending_coupon() -> PendingCoupon | None:
    return PendingCoupon.from_dict(session.get(SESSION_KEY))

def set_pending_coupon(pending: PendingCoupon | None):
    if pending is None:
        clear_pending_coupon()
    else:
        session[SESSION_KEY] = pending.to_dict()

def clear_pending_coupon():
    session.pop(SESSION_KEY, None)
