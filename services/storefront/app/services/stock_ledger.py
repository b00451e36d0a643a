"""Per-variant available-quantity counters.

The ledger never commits; it runs inside the caller's unit of work so a failed
debit rolls back together with everything else the caller did.
"""
import logging
from sqlalchemy import select, update
from sqlalchemy.orm import Session
from app.core.errors import InsufficientStock, NotFound
from app.db.models import StockCounter, ProductVariant

logger = logging.getLogger(__name__)

class StockLedger:
    def __init__(self, db: Session):
        self.db = db

    def available(self, variant_id: int) -> int:
        qty = self.db.scalar(select(StockCounter.quantity).where(StockCounter.variant_id == variant_id))
        if qty is None:
            raise NotFound(f"No stock counter for variant {variant_id}")
        return qty

    def debit(self, variant_id: int, qty: int) -> None:
        """Atomically take ``qty`` units, or raise InsufficientStock.

        The guard lives in the UPDATE's WHERE clause, so two concurrent
        debits against the same counter can never both pass it.
        """
        if qty <= 0:
            raise ValueError("debit quantity must be positive")
        res = self.db.execute(
            update(StockCounter)
            .where(StockCounter.variant_id == variant_id, StockCounter.quantity >= qty)
            .values(quantity=StockCounter.quantity - qty)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            logger.info("Stock debit refused: variant=%s qty=%s", variant_id, qty)
            raise InsufficientStock(variant_id, self._shortage_message(variant_id))

    def credit(self, variant_id: int, qty: int) -> None:
        if qty <= 0:
            raise ValueError("credit quantity must be positive")
        res = self.db.execute(
            update(StockCounter)
            .where(StockCounter.variant_id == variant_id)
            .values(quantity=StockCounter.quantity + qty)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            # restock of a variant that never had a counter
            self.db.add(StockCounter(variant_id=variant_id, quantity=qty))
            self.db.flush()

    def _shortage_message(self, variant_id: int) -> str:
        variant = self.db.get(ProductVariant, variant_id)
        if variant is None:
            return f"Insufficient stock for variant {variant_id}"
        return f"Insufficient stock for {variant.label}"
