from fastapi import APIRouter, Depends, HTTPException
from typing import List
from sqlalchemy import select
from sqlalchemy.orm import Session
from app.api.deps import get_db
from app.core.auth import get_current_user
from app.db.models import Notification, User
from app.schemas import NotificationRead

router = APIRouter()

@router.get("", response_model=List[NotificationRead])
def list_notifications(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    stmt = select(Notification).where(Notification.user_id == user.id).order_by(Notification.created_at.desc(), Notification.id.desc())
    return db.execute(stmt).scalars().all()

@router.post("/{notification_id}/read", response_model=NotificationRead)
def mark_read(notification_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    n = db.get(Notification, notification_id)
    if not n or n.user_id != user.id:
        raise HTTPException(status_code=404, detail="Notification not found")
    n.is_read = True
    db.commit(); db.refresh(n)
    return n
