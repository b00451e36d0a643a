from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from app.api.deps import get_db
from app.core.auth import get_current_user
from app.db.models import ProductVariant, User
from app.schemas import CartItemAdd, CartRead
from app.store.cart_store import get_cart, put_item, delete_item

router = APIRouter()

@router.get("", response_model=CartRead)
def get_my_cart(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return {"items": get_cart(db, user.id)}

@router.post("/items", response_model=CartRead, status_code=201)
def add_item(payload: CartItemAdd, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    variant = db.get(ProductVariant, payload.variant_id)
    if not variant or not variant.active:
        raise HTTPException(status_code=404, detail="Product not found")
    put_item(db, user.id, payload.variant_id, payload.quantity)
    db.commit()
    return {"items": get_cart(db, user.id)}

@router.delete("/items/{line_id}", response_model=CartRead)
def remove_item(line_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    if not delete_item(db, user.id, line_id):
        raise HTTPException(status_code=404, detail="Item not in cart")
    db.commit()
    return {"items": get_cart(db, user.id)}
