import json
import logging
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool
from app.api.deps import get_db, get_gateway, get_notifier, get_settings
from app.core.auth import get_current_user
from app.core.config import Settings
from app.core.errors import NotFound, ValidationError
from app.db.models import User
from app.schemas import QrisCreate, QrisResponse
from app.services.gateway import MidtransGateway
from app.services.notifier import Notifier
from app.services.payment_initiator import PaymentInitiator
from app.services.reconciler import PaymentReconciler

logger = logging.getLogger(__name__)

router = APIRouter()

@router.post("/qris", response_model=QrisResponse)
def create_qris_payment(payload: QrisCreate, user: User = Depends(get_current_user), db: Session = Depends(get_db),
                        settings: Settings = Depends(get_settings), gateway: MidtransGateway = Depends(get_gateway)):
    return PaymentInitiator(db, settings, gateway).initiate(payload.order_id, user_id=user.id)

def _process_notification(payload: dict, db: Session, settings: Settings, notifier: Notifier) -> dict:
    reconciler = PaymentReconciler(db, settings, notifier=notifier)
    try:
        result = reconciler.handle_notification(payload)
    except (NotFound, ValidationError) as e:
        # answered 200 all the same, a retry would never resolve it
        logger.warning("Webhook for %r not applied: %s", payload.get("order_id"), e.message)
        return {"message": e.message}
    return {
        "message": "Webhook processed",
        "applied": result.applied,
        "payment_status": result.payment_status.value,
        "order_status": result.order_status.value,
    }

@router.post("/webhook")
async def webhook(request: Request, db: Session = Depends(get_db), settings: Settings = Depends(get_settings),
                  notifier: Notifier = Depends(get_notifier)):
    """Gateway-facing notification endpoint. Always 200."""
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.warning("Webhook with unreadable body ignored")
        return {"message": "Invalid payload"}
    if not isinstance(payload, dict):
        logger.warning("Webhook with non-object body ignored")
        return {"message": "Invalid payload"}
    logger.info("Webhook received: order_id=%s transaction_status=%s",
                payload.get("order_id"), payload.get("transaction_status"))
    try:
        return await run_in_threadpool(_process_notification, payload, db, settings, notifier)
    except Exception:
        # still 200; the poll fallback re-reads the gateway for payments left pending
        logger.exception("Webhook processing failed for %r", payload.get("order_id"))
        return {"message": "Webhook received"}
