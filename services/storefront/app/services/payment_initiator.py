import logging
from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from app.core.config import Settings
from app.core.errors import NotFound, ValidationError
from app.db.models import Order, OrderStatus, Payment, PaymentMethod, PaymentStatus, utcnow
from app.services.gateway import MidtransGateway, build_reference

logger = logging.getLogger(__name__)

class PaymentInitiator:
    """Requests a QRIS payment intent for an order and records it as Pending.

    Never called inside the order-assembly transaction: the gateway call holds
    no database locks. Retrying is safe, a retry only replaces the gateway
    reference of a still-pending payment and never touches stock.
    """

    def __init__(self, db: Session, settings: Settings, gateway: MidtransGateway):
        self.db = db
        self.settings = settings
        self.gateway = gateway

    def build_request(self, order: Order, reference: str, now: Optional[datetime] = None) -> dict:
        items = [
            {
                "id": str(line.variant_id),
                "price": int(line.unit_price),
                "quantity": int(line.quantity),
                "name": line.title_snapshot[:50],
            }
            for line in order.lines
        ]
        if order.tax:
            items.append({
                "id": "TAX",
                "price": int(order.tax),
                "quantity": 1,
                "name": f"Tax {order.tax_rate * 100:.0f}%",
            })
        user = order.user
        return {
            "transaction_details": {
                "order_id": reference,
                "gross_amount": int(order.total),
            },
            "item_details": items,
            "customer_details": {
                "first_name": user.name if user else "",
                "email": user.email if user else "",
                "phone": (user.phone or "") if user else "",
            },
            "enabled_payments": ["other_qris"],
            "custom_expiry": {
                "order_time": (now or utcnow()).strftime("%Y-%m-%d %H:%M:%S +0000"),
                "expiry_duration": self.settings.QRIS_EXPIRY_MINUTES,
                "unit": "minute",
            },
        }

    def initiate(self, order_id: int, user_id: Optional[int] = None) -> dict:
        order = self.db.get(Order, order_id)
        if order is None or (user_id is not None and order.user_id != user_id):
            raise NotFound("Order not found")
        if order.payment_method != PaymentMethod.QRIS:
            raise ValidationError("Invalid payment method")
        if order.status != OrderStatus.PENDING:
            raise ValidationError(f"Order is {order.status.value}, payment can no longer be started")
        payment = order.payment
        if payment is not None and payment.status != PaymentStatus.PENDING:
            raise ValidationError(f"Payment is already {payment.status.value}")

        reference = build_reference(order.id)
        requested_at = utcnow()
        params = self.build_request(order, reference, requested_at)
        # end the read transaction before the network call
        self.db.commit()

        logger.info("Creating QRIS transaction %s for order %s (gross=%s)", reference, order.order_number, order.total)
        result = self.gateway.create_transaction(params)

        try:
            payment = self._record(order, reference, result, requested_at)
        except IntegrityError:
            # a concurrent initiation inserted the row first
            self.db.rollback()
            payment = self.db.get(Order, order_id).payment
            logger.info("Concurrent QRIS initiation for order %s; keeping reference %s", order_id, payment.external_reference)
        return {"token": payment.token, "redirect_url": payment.redirect_url}

    def _record(self, order: Order, reference: str, result: dict, requested_at: datetime) -> Payment:
        now = utcnow()
        payment = order.payment
        if payment is None:
            payment = Payment(
                order_id=order.id,
                method=PaymentMethod.QRIS,
                amount=order.total,
                status=PaymentStatus.PENDING,
                created_at=now,
            )
            self.db.add(payment)
        elif payment.status != PaymentStatus.PENDING:
            # settled by a webhook while the gateway call was in flight
            return payment
        payment.external_reference = reference
        payment.gateway_status = "pending"
        payment.token = result.get("token")
        payment.redirect_url = result.get("redirect_url")
        # the gateway counts the expiry window from the order_time we sent
        payment.expired_at = requested_at + timedelta(minutes=self.settings.QRIS_EXPIRY_MINUTES)
        payment.updated_at = now
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(payment)
        return payment
