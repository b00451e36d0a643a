from fastapi import APIRouter, Depends
from typing import List
from sqlalchemy.orm import Session
from app.api.deps import get_db
from app.core.auth import require_admin
from app.db.models import User
from app.schemas import PosCreate, PosTransactionRead
from app.services.pos import PosService

router = APIRouter()

@router.post("/transactions", response_model=PosTransactionRead, status_code=201)
def create_transaction(payload: PosCreate, db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    items = [(it.variant_id, it.qty) for it in payload.items]
    return PosService(db).create_transaction(admin.id, payload.customer_name, items,
                                             payload.payment_method, payload.cash_received)

@router.get("/transactions", response_model=List[PosTransactionRead])
def list_transactions(limit: int = 20, offset: int = 0, db: Session = Depends(get_db), _: User = Depends(require_admin)):
    return PosService(db).list_transactions(limit=min(limit, 100), offset=offset)

@router.get("/transactions/{tx_id}", response_model=PosTransactionRead)
def get_transaction(tx_id: int, db: Session = Depends(get_db), _: User = Depends(require_admin)):
    return PosService(db).get_transaction(tx_id)
