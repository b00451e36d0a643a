from fastapi import APIRouter, Depends
from typing import List
from sqlalchemy import select
from sqlalchemy.orm import Session
from app.api.deps import get_db, get_gateway, get_notifier, get_settings
from app.core.auth import get_current_user
from app.core.config import Settings
from app.core.errors import NotFound
from app.db.models import Order, OrderStatus, User
from app.schemas import OrderCreate, OrderRead, PaymentStatusRead
from app.services.gateway import MidtransGateway
from app.services.notifier import Notifier
from app.services.order_assembly import OrderAssembly
from app.services.order_status import OrderStatusMachine
from app.services.reconciler import PaymentReconciler

router = APIRouter()

def _own_order(db: Session, order_id: int, user: User) -> Order:
    order = db.get(Order, order_id)
    if not order or (order.user_id != user.id and user.role != "admin"):
        raise NotFound("Order not found")
    return order

@router.post("", response_model=OrderRead, status_code=201)
def create_order(payload: OrderCreate, user: User = Depends(get_current_user), db: Session = Depends(get_db),
                 settings: Settings = Depends(get_settings), notifier: Notifier = Depends(get_notifier)):
    order = OrderAssembly(db, settings).assemble(user.id, payload.cart_ids, payload.shipping_address, payload.payment_method)
    if not user.phone or not user.address_line:
        notifier.remind_profile(user.id)
    return order

@router.get("", response_model=List[OrderRead])
def list_my_orders(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    stmt = select(Order).where(Order.user_id == user.id).order_by(Order.created_at.desc(), Order.id.desc())
    return db.execute(stmt).scalars().all()

@router.get("/{order_id}", response_model=OrderRead)
def get_order(order_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return _own_order(db, order_id, user)

@router.get("/{order_id}/payment-status", response_model=PaymentStatusRead)
def payment_status(order_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db),
                   settings: Settings = Depends(get_settings), notifier: Notifier = Depends(get_notifier),
                   gateway: MidtransGateway = Depends(get_gateway)):
    reconciler = PaymentReconciler(db, settings, notifier=notifier, gateway=gateway)
    return reconciler.poll(order_id, user_id=None if user.role == "admin" else user.id)

@router.post("/{order_id}/cancel", response_model=OrderRead)
def cancel_order(order_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db),
                 notifier: Notifier = Depends(get_notifier)):
    _own_order(db, order_id, user)
    return OrderStatusMachine(db, notifier).transition(order_id, OrderStatus.CANCEL).order
