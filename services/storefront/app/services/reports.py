"""Read-only aggregates over committed orders, payments and POS sales."""
from datetime import datetime
from typing import Optional
from sqlalchemy import func, select
from sqlalchemy.orm import Session
from app.db.models import Order, Payment, PaymentStatus, PosTransaction, Product, User, utcnow

def dashboard_stats(db: Session) -> dict:
    revenue = db.scalar(select(func.coalesce(func.sum(Payment.amount), 0)).where(Payment.status == PaymentStatus.SUCCESS))
    return {
        "total_orders": db.scalar(select(func.count(Order.id))),
        "total_revenue": int(revenue or 0),
        "total_products": db.scalar(select(func.count(Product.id))),
        "total_users": db.scalar(select(func.count(User.id))),
    }

def sales_report(db: Session, start: datetime, end: datetime) -> dict:
    """Orders with a successful payment and POS sales in [start, end)."""
    orders = db.execute(
        select(Order)
        .join(Payment, Payment.order_id == Order.id)
        .where(Payment.status == PaymentStatus.SUCCESS, Order.created_at >= start, Order.created_at < end)
        .order_by(Order.created_at)
    ).scalars().all()
    pos = db.execute(
        select(PosTransaction)
        .where(PosTransaction.date >= start, PosTransaction.date < end)
        .order_by(PosTransaction.date)
    ).scalars().all()
    online_revenue = sum(o.total for o in orders)
    pos_revenue = sum(t.total for t in pos)
    return {
        "period": {"start": start, "end": end},
        "total_orders": len(orders),
        "online_revenue": online_revenue,
        "total_pos_transactions": len(pos),
        "pos_revenue": pos_revenue,
        "total_revenue": online_revenue + pos_revenue,
        "orders": orders,
    }

def month_bounds(now: Optional[datetime] = None) -> tuple[datetime, datetime]:
    """[first day of this month, first day of next month)"""
    now = now or utcnow()
    start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if start.month == 12:
        return start, start.replace(year=start.year + 1, month=1)
    return start, start.replace(month=start.month + 1)
