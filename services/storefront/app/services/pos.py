import logging
from typing import Iterable, List, Optional, Tuple
from sqlalchemy import select
from sqlalchemy.orm import Session
from app.core.errors import NotFound, ValidationError
from app.db.models import PosItem, PosPaymentMethod, PosTransaction, ProductVariant
from app.services.stock_ledger import StockLedger

logger = logging.getLogger(__name__)

class PosService:
    """Point-of-sale sales. Debits the same ledger as online checkout."""

    def __init__(self, db: Session):
        self.db = db
        self.ledger = StockLedger(db)

    def create_transaction(self, admin_id: int, customer_name: str, items: Iterable[Tuple[int, int]],
                           payment_method: PosPaymentMethod = PosPaymentMethod.QRIS,
                           cash_received: Optional[int] = None) -> PosTransaction:
        """Record a counter sale.

        Cash sales need ``cash_received`` covering the total; the change is
        stored with the sale. Other methods ignore any cash amount given.
        """
        try:
            payment_method = PosPaymentMethod(payment_method)
        except ValueError:
            raise ValidationError(f"Unsupported payment method {payment_method!r}") from None
        items = list(items)
        if not items:
            raise ValidationError("At least one item is required")
        if payment_method == PosPaymentMethod.CASH:
            if cash_received is None:
                raise ValidationError("Cash received is required for Cash payments")
            if cash_received < 0:
                raise ValidationError("Cash received must not be negative")
        else:
            cash_received = None
        try:
            pos_items: List[PosItem] = []
            total = 0
            for variant_id, qty in sorted(items):
                if qty <= 0:
                    raise ValidationError("Quantity must be at least 1")
                variant = self.db.get(ProductVariant, variant_id)
                if variant is None:
                    raise NotFound(f"Variant {variant_id} not found")
                self.ledger.debit(variant_id, qty)
                subtotal = variant.price * qty
                total += subtotal
                pos_items.append(PosItem(variant_id=variant_id, quantity=qty, unit_price=variant.price, subtotal=subtotal))
            cash_change = 0
            if cash_received is not None:
                if cash_received < total:
                    raise ValidationError(f"Cash received {cash_received} is less than the total {total}")
                cash_change = cash_received - total
            tx = PosTransaction(admin_id=admin_id, customer_name=customer_name, total=total,
                                payment_method=payment_method, cash_received=cash_received,
                                cash_change=cash_change, items=pos_items)
            self.db.add(tx)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(tx)
        logger.info("POS transaction %s by admin %s: total=%s method=%s items=%d",
                    tx.id, admin_id, total, payment_method.value, len(pos_items))
        return tx

    def get_transaction(self, tx_id: int) -> PosTransaction:
        tx = self.db.get(PosTransaction, tx_id)
        if tx is None:
            raise NotFound("Transaction not found")
        return tx

    def list_transactions(self, limit: int = 20, offset: int = 0) -> List[PosTransaction]:
        stmt = select(PosTransaction).order_by(PosTransaction.date.desc(), PosTransaction.id.desc()).offset(offset).limit(limit)
        return list(self.db.execute(stmt).scalars().all())
