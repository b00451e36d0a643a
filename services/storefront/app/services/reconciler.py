"""Payment reconciliation.

Gateway webhooks (authoritative, at-least-once, unordered) and client polls
(stale-read tolerant) both land in ``PaymentReconciler.reconcile``. Side
effects hang off the Pending -> terminal compare-and-set on the payment row, so
they fire once per state transition no matter how many events arrive.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional
from sqlalchemy import select, update
from sqlalchemy.orm import Session
from app.core.config import Settings
from app.core.errors import GatewayUnavailable, InvalidTransition, NotFound, ValidationError
from app.db.models import Order, OrderStatus, Payment, PaymentStatus, utcnow
from app.services.gateway import MidtransGateway, parse_reference, verify_signature
from app.services.notifier import Notifier, OrderSnapshot
from app.services.order_status import OrderStatusMachine

logger = logging.getLogger(__name__)

SUCCESS_STATUSES = frozenset({"settlement"})
FAILED_STATUSES = frozenset({"cancel", "expire", "deny"})
FINAL_PAYMENT_STATUSES = (PaymentStatus.SUCCESS, PaymentStatus.FAILED, PaymentStatus.REFUNDED)

def map_gateway_status(gateway_status: Optional[str]) -> PaymentStatus:
    s = (gateway_status or "").strip().lower()
    if s in SUCCESS_STATUSES:
        return PaymentStatus.SUCCESS
    if s in FAILED_STATUSES:
        return PaymentStatus.FAILED
    return PaymentStatus.PENDING

def amount_matches(gross_amount: Any, amount: int) -> bool:
    try:
        return Decimal(str(gross_amount)) == Decimal(amount)
    except (InvalidOperation, ValueError):
        return False

@dataclass
class ReconcileResult:
    order_id: int
    payment_status: PaymentStatus
    order_status: OrderStatus
    applied: bool
    reason: str

class PaymentReconciler:
    def __init__(self, db: Session, settings: Settings, notifier: Optional[Notifier] = None,
                 gateway: Optional[MidtransGateway] = None):
        self.db = db
        self.settings = settings
        self.notifier = notifier
        self.gateway = gateway
        self.machine = OrderStatusMachine(db)

    def _result(self, payment: Payment, applied: bool, reason: str) -> ReconcileResult:
        return ReconcileResult(payment.order_id, payment.status, payment.order.status, applied, reason)

    def reconcile(self, order_id: int, gateway_status: Optional[str], gross_amount: Any = None) -> ReconcileResult:
        payment = self.db.execute(select(Payment).where(Payment.order_id == order_id)).scalars().first()
        if payment is None:
            raise NotFound(f"No payment for order {order_id}")

        target = map_gateway_status(gateway_status)
        if target == PaymentStatus.PENDING:
            return self._result(payment, False, "pending")
        if payment.status == target or (target == PaymentStatus.SUCCESS and payment.status == PaymentStatus.REFUNDED):
            logger.info("Replayed %s for order %s ignored (payment already %s)", gateway_status, order_id, target.value)
            return self._result(payment, False, "replay")
        if payment.status in FINAL_PAYMENT_STATUSES:
            # late contradicting event: the first terminal status stands
            logger.warning("Ignoring %s for order %s: payment is already %s (needs manual review)",
                           gateway_status, order_id, payment.status.value)
            return self._result(payment, False, "conflict")
        if gross_amount is not None and not amount_matches(gross_amount, payment.amount):
            logger.warning("Ignoring %s for order %s: gross_amount %s does not match payment amount %s",
                           gateway_status, order_id, gross_amount, payment.amount)
            return self._result(payment, False, "amount_mismatch")

        order = payment.order
        cancelled = False
        refund_due = False
        try:
            now = utcnow()
            res = self.db.execute(
                update(Payment)
                .where(Payment.id == payment.id, Payment.status == payment.status)
                .values(status=target, transaction_time=now, gateway_status=(gateway_status or "").strip().lower(), updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if res.rowcount != 1:
                self.db.rollback()
                self.db.refresh(payment)
                logger.info("Concurrent reconciliation won for order %s; payment is %s", order_id, payment.status.value)
                return self._result(payment, False, "concurrent")

            if target == PaymentStatus.SUCCESS:
                if not self.machine.advance_to_packaging(order):
                    current = self.machine.current_status(order)
                    if current == OrderStatus.CANCEL:
                        # money owed back is not revenue
                        self.db.execute(
                            update(Payment)
                            .where(Payment.id == payment.id, Payment.status == PaymentStatus.SUCCESS)
                            .values(status=PaymentStatus.REFUNDED)
                            .execution_options(synchronize_session=False)
                        )
                        refund_due = True
                        logger.warning("Payment settled for cancelled order %s; refund required", order.order_number)
            else:
                try:
                    cancelled, _ = self.machine.cancel(order)
                except InvalidTransition as e:
                    logger.error("Payment failed for order %s but it cannot be cancelled: %s", order.order_number, e.message)
            snapshot = OrderSnapshot.of(order)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info("Payment for order %s -> %s (gateway status %s)", snapshot.order_number, target.value, gateway_status)
        if self.notifier is not None:
            if target == PaymentStatus.SUCCESS:
                if refund_due:
                    self.notifier.refund_due(snapshot)
                else:
                    self.notifier.payment_received(snapshot)
            elif cancelled:
                self.notifier.payment_failed(snapshot)

        self.db.refresh(payment)
        return self._result(payment, True, "applied")

    # --- entry points ---

    def _signature_required(self) -> bool:
        return bool(self.settings.MIDTRANS_SERVER_KEY) or self.settings.WEBHOOK_REQUIRE_SIGNATURE

    def handle_notification(self, payload: Dict[str, Any]) -> ReconcileResult:
        """Webhook entry point. Raises NotFound / ValidationError; the route answers 200 regardless.

        Once a server key is configured only signed payloads are applied.
        """
        if payload.get("signature_key") or self._signature_required():
            if not verify_signature(payload, self.settings.MIDTRANS_SERVER_KEY):
                logger.warning("Rejected webhook for %r: missing or invalid signature", payload.get("order_id"))
                raise ValidationError("Invalid signature")
        reference = str(payload.get("order_id") or "")
        order_id = parse_reference(reference)
        if order_id is None:
            raise NotFound(f"Unknown payment reference {reference!r}")
        return self.reconcile(order_id, payload.get("transaction_status"), payload.get("gross_amount"))

    def _is_stale(self, payment: Payment) -> bool:
        return utcnow() - payment.updated_at > timedelta(seconds=self.settings.PAYMENT_STALE_SECONDS)

    @staticmethod
    def _is_overdue(payment: Payment, now: Optional[datetime] = None) -> bool:
        return payment.expired_at is not None and payment.expired_at <= (now or utcnow())

    def _refresh_from_gateway(self, payment: Payment):
        reference = payment.external_reference
        order_id = payment.order_id
        payment_id = payment.id
        # no transaction stays open across the network call
        self.db.commit()
        try:
            data = self.gateway.get_status(reference)
        except GatewayUnavailable as e:
            logger.warning("Status fallback for %s failed: %s", reference, e.message)
        else:
            status = data.get("transaction_status")
            logger.info("Status fallback for %s: gateway reports %s", reference, status)
            if status:
                self.reconcile(order_id, status, data.get("gross_amount"))
        # throttle the fallback while the payment stays pending
        self.db.execute(
            update(Payment)
            .where(Payment.id == payment_id, Payment.status == PaymentStatus.PENDING)
            .values(updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        self.db.commit()

    def poll(self, order_id: int, user_id: Optional[int] = None) -> Dict[str, Any]:
        """Client polling entry point: a read of local state, with a gateway
        fallback only once a pending payment has gone quiet for too long.
        A pending payment past its QRIS expiry is expired here too."""
        order = self.db.get(Order, order_id)
        if order is None or (user_id is not None and order.user_id != user_id):
            raise NotFound("Order not found")
        payment = order.payment
        if payment is not None and payment.status == PaymentStatus.PENDING:
            if self.gateway is not None and (self._is_overdue(payment) or self._is_stale(payment)):
                self._refresh_from_gateway(payment)
                self.db.refresh(order)
                payment = order.payment
            if payment.status == PaymentStatus.PENDING and self._is_overdue(payment):
                logger.info("QRIS payment for order %s expired at %s", order.order_number, payment.expired_at)
                self.reconcile(order.id, "expire")
                self.db.refresh(order)
                payment = order.payment
        return {
            "order_id": order.id,
            "payment_status": payment.status.value if payment else None,
            "qris_status": payment.gateway_status if payment else None,
            "order_status": order.status.value,
        }

    def expire_overdue(self, now: Optional[datetime] = None) -> List[ReconcileResult]:
        """Sweep: expire every Pending payment whose QRIS window has closed."""
        now = now or utcnow()
        order_ids = self.db.execute(
            select(Payment.order_id)
            .where(Payment.status == PaymentStatus.PENDING,
                   Payment.expired_at.is_not(None),
                   Payment.expired_at <= now)
            .order_by(Payment.expired_at)
        ).scalars().all()
        self.db.commit()
        results = []
        for order_id in order_ids:
            result = self.reconcile(order_id, "expire")
            if result.applied:
                results.append(result)
        logger.info("QRIS expiry sweep: %d due, %d expired", len(order_ids), len(results))
        return results
