from datetime import date, datetime, time, timedelta
from fastapi import APIRouter, Depends
from typing import List, Optional
from sqlalchemy import select
from sqlalchemy.orm import Session
from app.api.deps import get_db, get_notifier
from app.core.auth import require_admin
from app.core.config import Settings, get_settings
from app.core.errors import ValidationError
from app.db.models import Order, OrderStatus, User
from app.schemas import OrderRead, RestockReq, StatusUpdate, StockRead
from app.services import reports
from app.services.notifier import Notifier
from app.services.order_status import OrderStatusMachine
from app.services.reconciler import PaymentReconciler
from app.services.stock_ledger import StockLedger

router = APIRouter()

@router.put("/orders/{order_id}/status", response_model=OrderRead)
def update_order_status(order_id: int, payload: StatusUpdate, db: Session = Depends(get_db),
                        notifier: Notifier = Depends(get_notifier), _: User = Depends(require_admin)):
    return OrderStatusMachine(db, notifier).transition(order_id, payload.status, payload.tracking_number).order

@router.get("/orders", response_model=List[OrderRead])
def list_orders(status: Optional[OrderStatus] = None, limit: int = 20, offset: int = 0,
                db: Session = Depends(get_db), _: User = Depends(require_admin)):
    stmt = select(Order)
    if status is not None:
        stmt = stmt.where(Order.status == status)
    stmt = stmt.order_by(Order.created_at.desc(), Order.id.desc()).offset(offset).limit(min(limit, 100))
    return db.execute(stmt).scalars().all()

@router.get("/dashboard/stats")
def dashboard_stats(db: Session = Depends(get_db), _: User = Depends(require_admin)):
    return reports.dashboard_stats(db)

@router.get("/reports/sales")
def sales_report(start_date: Optional[date] = None, end_date: Optional[date] = None,
                 db: Session = Depends(get_db), _: User = Depends(require_admin)):
    start, end = reports.month_bounds()
    if start_date is not None:
        start = datetime.combine(start_date, time.min)
    if end_date is not None:
        end = datetime.combine(end_date + timedelta(days=1), time.min)
    if end <= start:
        raise ValidationError("end_date must not be before start_date")
    report = reports.sales_report(db, start, end)
    report["orders"] = [OrderRead.model_validate(o) for o in report["orders"]]
    return report

@router.post("/inventory/restock")
def restock(req: RestockReq, db: Session = Depends(get_db), _: User = Depends(require_admin)):
    ledger = StockLedger(db)
    try:
        for it in req.items:
            ledger.credit(it.variant_id, it.qty)
        db.commit()
    except Exception:
        db.rollback()
        raise
    return {"status": "restocked"}

@router.get("/inventory/{variant_id}", response_model=StockRead)
def get_stock(variant_id: int, db: Session = Depends(get_db), _: User = Depends(require_admin)):
    return StockRead(variant_id=variant_id, quantity=StockLedger(db).available(variant_id))

@router.post("/payments/expire")
def expire_overdue_payments(db: Session = Depends(get_db), notifier: Notifier = Depends(get_notifier),
                            settings: Settings = Depends(get_settings), _: User = Depends(require_admin)):
    """Cancel orders whose QRIS payment window closed without a webhook."""
    results = PaymentReconciler(db, settings, notifier).expire_overdue()
    return {"expired": [r.order_id for r in results]}
