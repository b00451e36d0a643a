import logging
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List
from sqlalchemy.orm import Session
from app.core.config import Settings
from app.core.errors import EmptyCart, ValidationError
from app.db.models import Order, OrderLine, OrderStatus, PaymentMethod, utcnow
from app.services.stock_ledger import StockLedger
from app.store import cart_store

logger = logging.getLogger(__name__)

def format_order_code(order_id: int, created_at: datetime) -> str:
    """Customer-facing order code, e.g. ``#ORD-10-12-2025-025`` for order 25 placed on 10 Dec 2025."""
    return f"#ORD-{created_at:%d-%m-%Y}-{order_id:03d}"

def compute_totals(subtotal: int, tax_rate: Decimal) -> tuple[int, int]:
    """Return (tax, total) in whole currency units."""
    tax = int((Decimal(subtotal) * tax_rate).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return tax, subtotal + tax

class OrderAssembly:
    """Turns cart lines into an order, reserving stock in the same transaction."""

    def __init__(self, db: Session, settings: Settings):
        self.db = db
        self.settings = settings
        self.ledger = StockLedger(db)

    def assemble(self, user_id: int, cart_ids: Iterable[int], shipping_address: str, payment_method: PaymentMethod) -> Order:
        cart_ids = list(cart_ids)
        if not shipping_address or not shipping_address.strip():
            raise ValidationError("Shipping address is required")

        try:
            lines = cart_store.get_lines(self.db, user_id, cart_ids)
            if not lines:
                raise EmptyCart()

            snapshots: List[OrderLine] = []
            subtotal = 0
            # fixed lock order across concurrent checkouts
            for line in sorted(lines, key=lambda l: (l.variant_id, l.id)):
                variant = line.variant
                if not variant.active:
                    raise ValidationError(f"{variant.label} is no longer available")
                self.ledger.debit(variant.id, line.quantity)
                snapshots.append(OrderLine(
                    product_id=variant.product_id,
                    variant_id=variant.id,
                    quantity=line.quantity,
                    unit_price=variant.price,
                    title_snapshot=variant.label,
                ))
                subtotal += variant.price * line.quantity

            tax, total = compute_totals(subtotal, self.settings.TAX_RATE)
            order = Order(
                created_at=utcnow(),
                user_id=user_id,
                shipping_address=shipping_address.strip(),
                payment_method=payment_method,
                subtotal=subtotal,
                tax_rate=self.settings.TAX_RATE,
                tax=tax,
                total=total,
                status=OrderStatus.PENDING,
                lines=snapshots,
            )
            self.db.add(order)
            self.db.flush()
            order.order_number = format_order_code(order.id, order.created_at)
            cart_store.delete_lines(self.db, lines)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(order)
        logger.info("Order %s assembled for user %s: subtotal=%s total=%s lines=%d",
                    order.order_number, user_id, subtotal, total, len(order.lines))
        return order
