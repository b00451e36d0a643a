"""Notification emitter.

Runs after the state change it reports has committed, in its own session.
Nothing raised here reaches the caller; failures are logged and dropped.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Optional
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from app.core.errors import NotificationFailure
from app.db.models import Notification, NotificationType, Order, OrderStatus

logger = logging.getLogger(__name__)

Publisher = Callable[[str, str, dict], None]

PROFILE_REMINDER_MESSAGE = "Complete your profile (phone number and address) so we can deliver your orders without delay."

@dataclass(frozen=True)
class OrderSnapshot:
    """Plain copy of the order fields a notification needs, taken before commit."""
    order_id: int
    order_number: str
    user_id: int
    status: str
    tracking_number: Optional[str] = None

    @classmethod
    def of(cls, order: Order) -> "OrderSnapshot":
        status = order.status.value if isinstance(order.status, OrderStatus) else str(order.status)
        return cls(order.id, order.order_number, order.user_id, status, order.tracking_number)

class Notifier:
    def __init__(self, session_factory: sessionmaker, publisher: Optional[Publisher] = None, topic: str = "order.events"):
        self.session_factory = session_factory
        self.publisher = publisher
        self.topic = topic

    # --- primitives ---

    def notify(self, user_id: int, type: NotificationType, message: str, order_id: Optional[int] = None) -> Optional[int]:
        """Unconditional insert. Returns the notification id, or None on failure."""
        try:
            nid = self._insert(user_id, type, message, order_id)
        except NotificationFailure as e:
            logger.warning("Notification dropped (user=%s type=%s order=%s): %s", user_id, type.value, order_id, e.message)
            return None
        self._publish(nid, user_id, type, message, order_id)
        return nid

    def remind_profile(self, user_id: int, message: str = PROFILE_REMINDER_MESSAGE) -> Optional[int]:
        """Find-or-create: at most one ProfileReminder per user, ever."""
        try:
            with self.session_factory() as db:
                existing = self._find_profile_reminder(db, user_id)
                if existing is not None:
                    return existing
        except Exception as e:
            logger.warning("Profile reminder lookup failed for user %s: %s", user_id, e)
            return None
        try:
            return self._insert(user_id, NotificationType.PROFILE_REMINDER, message, None)
        except NotificationFailure as e:
            if isinstance(e.__cause__, IntegrityError):
                # lost the race to a concurrent reminder; that one stands
                return None
            logger.warning("Profile reminder dropped for user %s: %s", user_id, e.message)
            return None

    def _find_profile_reminder(self, db: Session, user_id: int) -> Optional[int]:
        stmt = select(Notification.id).where(
            Notification.user_id == user_id,
            Notification.type == NotificationType.PROFILE_REMINDER,
        )
        return db.execute(stmt).scalars().first()

    def _insert(self, user_id: int, type: NotificationType, message: str, order_id: Optional[int]) -> int:
        try:
            with self.session_factory() as db:
                n = Notification(user_id=user_id, order_id=order_id, type=type, message=message)
                db.add(n)
                db.commit()
                return n.id
        except Exception as e:
            raise NotificationFailure(f"{type.value} insert failed: {e}") from e

    def _publish(self, nid: int, user_id: int, type: NotificationType, message: str, order_id: Optional[int]):
        if self.publisher is None:
            return
        try:
            self.publisher(self.topic, str(order_id or user_id), {
                "type": "notification.created",
                "notification_id": nid,
                "notification_type": type.value,
                "user_id": user_id,
                "order_id": order_id,
                "message": message,
            })
        except Exception as e:
            logger.warning("Publishing notification %s failed: %s", nid, e)

    # --- transition events ---

    def payment_received(self, order: OrderSnapshot) -> Optional[int]:
        return self.notify(order.user_id, NotificationType.PAYMENT,
                           f"Payment for order {order.order_number} received. We are packing your order.",
                           order.order_id)

    def payment_failed(self, order: OrderSnapshot) -> Optional[int]:
        return self.notify(order.user_id, NotificationType.ORDER_UPDATE,
                           f"Payment for order {order.order_number} did not complete. The order has been cancelled.",
                           order.order_id)

    def refund_due(self, order: OrderSnapshot) -> Optional[int]:
        return self.notify(order.user_id, NotificationType.REFUND,
                           f"Order {order.order_number} was cancelled after payment. Your payment will be refunded.",
                           order.order_id)

    def status_changed(self, order: OrderSnapshot) -> Optional[int]:
        if order.status == OrderStatus.SHIPPING.value:
            tracking = order.tracking_number or "TBA"
            return self.notify(order.user_id, NotificationType.DELIVERY,
                               f"Order {order.order_number} has been shipped. Tracking number: {tracking}.",
                               order.order_id)
        if order.status == OrderStatus.DELIVERED.value:
            return self.notify(order.user_id, NotificationType.DELIVERY,
                               f"Order {order.order_number} has been delivered.",
                               order.order_id)
        if order.status == OrderStatus.CANCEL.value:
            return self.notify(order.user_id, NotificationType.ORDER_UPDATE,
                               f"Order {order.order_number} has been cancelled.",
                               order.order_id)
        return self.notify(order.user_id, NotificationType.ORDER_UPDATE,
                           f"Order {order.order_number} is now {order.status}.",
                           order.order_id)
