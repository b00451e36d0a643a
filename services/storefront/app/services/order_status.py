"""Order fulfilment status machine.

    Pending -> Packaging -> Shipping -> Delivered
    Pending | Packaging -> Cancel      (credits stock back, exactly once)

Every write is a compare-and-set against the status the caller read, so a
concurrent writer makes the loser's UPDATE match zero rows instead of
silently overwriting.
"""
import logging
from dataclasses import dataclass
from typing import Iterable, Optional
from sqlalchemy import select, update
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value
from app.core.errors import InvalidTransition, NotFound
from app.db.models import Order, OrderStatus, Payment, PaymentMethod, PaymentStatus, utcnow
from app.services.notifier import Notifier, OrderSnapshot
from app.services.stock_ledger import StockLedger

logger = logging.getLogger(__name__)

FORWARD = {
    OrderStatus.PENDING: OrderStatus.PACKAGING,
    OrderStatus.PACKAGING: OrderStatus.SHIPPING,
    OrderStatus.SHIPPING: OrderStatus.DELIVERED,
}
CANCELLABLE = (OrderStatus.PENDING, OrderStatus.PACKAGING)
TERMINAL = (OrderStatus.DELIVERED, OrderStatus.CANCEL)

@dataclass
class TransitionResult:
    order: Order
    changed: bool
    refunded: bool = False

class OrderStatusMachine:
    def __init__(self, db: Session, notifier: Optional[Notifier] = None):
        self.db = db
        self.ledger = StockLedger(db)
        self.notifier = notifier

    # --- building blocks, no commit ---

    def _compare_and_set(self, order: Order, expected: Iterable[OrderStatus], **values) -> bool:
        now = utcnow()
        res = self.db.execute(
            update(Order)
            .where(Order.id == order.id, Order.status.in_(list(expected)))
            .values(updated_at=now, **values)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            return False
        for key, value in values.items():
            set_committed_value(order, key, value)
        set_committed_value(order, "updated_at", now)
        return True

    def current_status(self, order: Order) -> OrderStatus:
        return self.db.scalar(select(Order.status).where(Order.id == order.id))

    def advance_to_packaging(self, order: Order) -> bool:
        """Payment-driven Pending -> Packaging. False when the order has moved on."""
        return self._compare_and_set(order, [OrderStatus.PENDING], status=OrderStatus.PACKAGING)

    def cancel(self, order: Order) -> tuple[bool, bool]:
        """Cancel and credit stock back.

        Returns (changed, refunded). Cancelling an already cancelled order is a
        no-op and credits nothing.
        """
        if not self._compare_and_set(order, CANCELLABLE, status=OrderStatus.CANCEL):
            current = self.current_status(order)
            if current == OrderStatus.CANCEL:
                return False, False
            raise InvalidTransition(f"Order {order.order_number} is {current.value} and can no longer be cancelled")

        for line in order.lines:
            self.ledger.credit(line.variant_id, line.quantity)

        res = self.db.execute(
            update(Payment)
            .where(Payment.order_id == order.id, Payment.status == PaymentStatus.SUCCESS)
            .values(status=PaymentStatus.REFUNDED, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        refunded = res.rowcount == 1
        logger.info("Order %s cancelled; stock credited for %d line(s)%s",
                    order.order_number, len(order.lines), "; payment marked refunded" if refunded else "")
        return True, refunded

    def validate(self, order: Order, target: OrderStatus, tracking_number: Optional[str]):
        current = order.status
        if target == OrderStatus.CANCEL:
            if current not in CANCELLABLE:
                raise InvalidTransition(f"Order is {current.value} and can no longer be cancelled")
            return
        if FORWARD.get(current) != target:
            raise InvalidTransition(f"Cannot move order from {current.value} to {target.value}")
        if target == OrderStatus.SHIPPING and not (tracking_number and tracking_number.strip()):
            raise InvalidTransition("A tracking number is required to ship an order")
        if target == OrderStatus.PACKAGING and order.payment_method == PaymentMethod.QRIS:
            payment = order.payment
            if payment is None or payment.status != PaymentStatus.SUCCESS:
                raise InvalidTransition("Order is still awaiting payment")

    # --- unit of work ---

    def transition(self, order_id: int, target: OrderStatus, tracking_number: Optional[str] = None) -> TransitionResult:
        order = self.db.get(Order, order_id)
        if order is None:
            raise NotFound("Order not found")
        target = OrderStatus(target)

        if order.status == target:
            return TransitionResult(order, changed=False)

        try:
            self.validate(order, target, tracking_number)
            refunded = False
            if target == OrderStatus.CANCEL:
                changed, refunded = self.cancel(order)
            else:
                values = {"status": target}
                if target == OrderStatus.SHIPPING:
                    values["tracking_number"] = tracking_number.strip()
                changed = self._compare_and_set(order, [order.status], **values)
                if not changed:
                    raise InvalidTransition("Order status changed concurrently, reload and retry")
            snapshot = OrderSnapshot.of(order)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        if changed:
            logger.info("Order %s -> %s", snapshot.order_number, snapshot.status)
            if self.notifier is not None:
                self.notifier.status_changed(snapshot)
                if refunded:
                    self.notifier.refund_due(snapshot)
        self.db.refresh(order)
        return TransitionResult(order, changed=changed, refunded=refunded)
