"""
Dashboard analytics: totals for the selected period, change versus the period
before it, and a per-day order series.

Revenue counts confirmed payments only.
"""
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.time_utils import utcnow
from app.models.order import Order, OrderStatus
from app.models.payment import Payment, PaymentStatus
from app.models.product import Product
from app.models.store import Store

PERIOD_DAYS = {"7d": 7, "30d": 30, "90d": 90}
DEFAULT_PERIOD = "30d"


def clamp_period(period: Optional[str]) -> str:
    p = (period or "").strip().lower()
    return p if p in PERIOD_DAYS else DEFAULT_PERIOD


def pct_change(current, previous) -> float:
    """Percent change; 0 when both are zero, 100 when growing from zero."""
    current = float(current or 0)
    previous = float(previous or 0)
    if previous == 0 and current == 0:
        return 0.0
    if previous == 0:
        return 100.0
    return (current - previous) / previous * 100


def _window_totals(db: Session, store: Store, start: datetime, end: Optional[datetime]) -> dict:
    def bounded(query, column):
        query = query.filter(column >= start)
        return query.filter(column < end) if end is not None else query

    orders_total = bounded(
        db.query(func.count(Order.id)).filter(Order.store_id == store.id), Order.created_at
    ).scalar() or 0

    pending_total = bounded(
        db.query(func.count(Order.id)).filter(Order.store_id == store.id, Order.status == OrderStatus.PENDING),
        Order.created_at,
    ).scalar() or 0

    revenue_total = bounded(
        db.query(func.sum(Payment.amount)).filter(
            Payment.store_id == store.id, Payment.status == PaymentStatus.CONFIRMED
        ),
        Payment.created_at,
    ).scalar() or Decimal("0")

    products_total = bounded(
        db.query(func.count(Product.id)).filter(Product.store_id == store.id), Product.created_at
    ).scalar() or 0

    return {
        "orders_total": int(orders_total),
        "revenue_total": float(revenue_total),
        "pending_total": int(pending_total),
        "products_total": int(products_total),
    }


def store_analytics(db: Session, store: Store, period: Optional[str] = None, now: Optional[datetime] = None) -> dict:
    period = clamp_period(period)
    days = PERIOD_DAYS[period]
    now = now or utcnow()
    current_start = now - timedelta(days=days)
    previous_start = now - timedelta(days=days * 2)

    current = _window_totals(db, store, current_start, None)
    previous = _window_totals(db, store, previous_start, current_start)

    # Orders per UTC day, zero-filled over the period
    rows = db.query(
        func.date(Order.created_at).label("day"),
        func.count(Order.id).label("count"),
    ).filter(
        Order.store_id == store.id,
        Order.created_at >= current_start,
    ).group_by(
        func.date(Order.created_at)
    ).all()
    counts = {str(r.day): int(r.count) for r in rows}

    first_day = now.date() - timedelta(days=days - 1)
    labels = [str(first_day + timedelta(days=i)) for i in range(days)]
    values = [counts.get(label, 0) for label in labels]

    result = {"period": period, "days": days}
    for key in ("orders_total", "revenue_total", "pending_total", "products_total"):
        result[key] = current[key]
        result[key.replace("_total", "_change_pct")] = pct_change(current[key], previous[key])
    result["series"] = {"labels": labels, "values": values}
    return result
