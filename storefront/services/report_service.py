# storefront/services/report_service.py
from __future__ import annotations

import json
import logging
from calendar import monthrange
from dataclasses import dataclass
from datetime import datetime, time, timedelta

import pandas as pd

from ..model import Order, OrderItem, LineStatus
from ..utils.dates import utcnow, parse_iso8601, isoformat
from ..utils.errors import ValidationError, ServiceResult
from ..utils.money import D, ZERO

logger = logging.getLogger(__name__)

FILTERS = ("daily", "weekly", "monthly", "yearly", "custom")

LINE_COLUMNS = [
    "order_id", "order_number", "ordered_at", "day", "item_id", "name", "quantity",
    "gross", "offer_discount", "coupon_deduction", "shipping_share",
]


def _day_bounds(first, last):
    return datetime.combine(first, time.min), datetime.combine(last, time.max)


def report_window(filter_type="daily", start=None, end=None, now=None):
    """[from, to] for a report filter, both inclusive."""
    today = (now or utcnow()).date()
    if filter_type == "daily":
        return _day_bounds(today, today)
    if filter_type == "weekly":
        return _day_bounds(today - timedelta(days=7), today)
    if filter_type == "monthly":
        return _day_bounds(today.replace(day=1), today.replace(day=monthrange(today.year, today.month)[1]))
    if filter_type == "yearly":
        return _day_bounds(today.replace(month=1, day=1), today.replace(month=12, day=31))
    if filter_type == "custom":
        first, last = parse_iso8601(start), parse_iso8601(end)
        if not first or not last:
            raise ValidationError("start and end dates are required for a custom report")
        if last < first:
            raise ValidationError("end date must not be before start date")
        return _day_bounds(first.date(), last.date())
    raise ValidationError(f"filter_type must be one of {', '.join(FILTERS)}")


def delivered_orders(frm, to):
    return (
        Order.query
        .filter(Order.ordered_at >= frm, Order.ordered_at <= to)
        .filter(Order.items.any(OrderItem.status == LineStatus.DELIVERED))
        .order_by(Order.ordered_at.desc())
        .all()
    )


def line_frame(orders) -> pd.DataFrame:
    """One row per delivered line. Coupon deduction is the stored allocation, never re-derived."""
    rows = []
    for order in orders:
        share = D(order.shipping_charge) / len(order.items) if order.items else ZERO
        for it in order.items:
            if it.status != LineStatus.DELIVERED:
                continue
            price, original = D(it.price), D(it.original_price or it.price)
            rows.append({
                "order_id": order.id,
                "order_number": order.order_number,
                "ordered_at": order.ordered_at,
                "day": order.ordered_at.date().isoformat(),
                "item_id": it.id,
                "name": it.name,
                "quantity": it.quantity,
                "gross": float(price * it.quantity),
                "offer_discount": float(max(original - price, ZERO) * it.quantity),
                "coupon_deduction": float(D(it.coupon_discount_allocated)),
                "shipping_share": float(share),
            })
    return pd.DataFrame(rows, columns=LINE_COLUMNS)


@dataclass
class SalesReport:
    filter_type: str
    start: datetime
    end: datetime
    lines: pd.DataFrame

    @property
    def daily(self) -> pd.DataFrame:
        if self.lines.empty:
            return pd.DataFrame(columns=["day", "orders", "items", "gross", "coupon_deduction", "net"])
        df = self.lines.assign(net=self.lines.gross + self.lines.shipping_share - self.lines.coupon_deduction)
        out = (
            df.groupby("day", sort=True)
            .agg(
                orders=("order_id", "nunique"),
                items=("item_id", "count"),
                gross=("gross", "sum"),
                coupon_deduction=("coupon_deduction", "sum"),
                net=("net", "sum"),
            )
            .reset_index()
        )
        return out.round(2)

    def summary(self) -> dict:
        df = self.lines
        gross = float(df.gross.sum())
        shipping = float(df.shipping_share.sum())
        coupon = float(df.coupon_deduction.sum())
        return {
            "delivered_orders": int(df.order_id.nunique()),
            "sales_count": int(len(df)),
            "gross": round(gross, 2),
            "offer_discount": round(float(df.offer_discount.sum()), 2),
            "coupon_deduction": round(coupon, 2),
            "shipping": round(shipping, 2),
            "net": round(gross + shipping - coupon, 2),
        }

    def to_csv(self) -> str:
        out = self.lines.drop(columns=["order_id", "item_id"]).copy()
        out["ordered_at"] = out["ordered_at"].map(isoformat)
        return out.round(2).to_csv(index=False)

    def as_api(self):
        return {
            "filter_type": self.filter_type,
            "start": isoformat(self.start),
            "end": isoformat(self.end),
            "summary": self.summary(),
            "daily": json.loads(self.daily.to_json(orient="records")),
        }


def sales_report(filter_type="daily", start=None, end=None, now=None) -> ServiceResult:
    try:
        frm, to = report_window(filter_type, start, end, now)
    except ValidationError as e:
        return ServiceResult.failure(e)
    report = SalesReport(filter_type, frm, to, line_frame(delivered_orders(frm, to)))
    logger.info("sales report %s %s..%s: %d delivered line(s)", filter_type, frm, to, len(report.lines))
    return ServiceResult.success(report, "Sales report")
