from typing import List, Sequence
from sqlalchemy import select
from sqlalchemy.orm import Session
from app.db.models import CartLine

def get_cart(db: Session, user_id: int) -> List[CartLine]:
    stmt = select(CartLine).where(CartLine.user_id == user_id).order_by(CartLine.id)
    return list(db.execute(stmt).scalars().all())

def get_lines(db: Session, user_id: int, cart_ids: Sequence[int]) -> List[CartLine]:
    # lines owned by someone else are simply not matched
    if not cart_ids:
        return []
    stmt = select(CartLine).where(CartLine.user_id == user_id, CartLine.id.in_(list(cart_ids)))
    return list(db.execute(stmt).scalars().all())

def put_item(db: Session, user_id: int, variant_id: int, quantity: int) -> CartLine:
    stmt = select(CartLine).where(CartLine.user_id == user_id, CartLine.variant_id == variant_id)
    line = db.execute(stmt).scalars().first()
    if line:
        line.quantity += quantity
    else:
        line = CartLine(user_id=user_id, variant_id=variant_id, quantity=quantity)
        db.add(line)
    return line

def delete_item(db: Session, user_id: int, line_id: int) -> bool:
    line = db.get(CartLine, line_id)
    if not line or line.user_id != user_id:
        return False
    db.delete(line)
    return True

def delete_lines(db: Session, lines: Sequence[CartLine]):
    for line in lines:
        db.delete(line)
