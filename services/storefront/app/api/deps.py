from typing import Optional
from fastapi import Depends
from sqlalchemy.orm import sessionmaker
from app.core.config import Settings, get_settings
from app.db.session import SessionLocal
from app.kafka import producer
from app.services.gateway import MidtransGateway
from app.services.notifier import Notifier, Publisher

def get_session_factory() -> sessionmaker:
    return SessionLocal

def get_db(factory: sessionmaker = Depends(get_session_factory)):
    db = factory()
    try:
        yield db
    finally:
        db.close()

def get_publisher(settings: Settings = Depends(get_settings)) -> Optional[Publisher]:
    if not settings.KAFKA_BOOTSTRAP:
        return None
    return producer.send

def get_notifier(factory: sessionmaker = Depends(get_session_factory),
                 publisher: Optional[Publisher] = Depends(get_publisher),
                 settings: Settings = Depends(get_settings)) -> Notifier:
    return Notifier(factory, publisher=publisher, topic=settings.TOPIC_ORDER_EVENTS)

def get_gateway(settings: Settings = Depends(get_settings)) -> MidtransGateway:
    return MidtransGateway(settings)

