from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy import create_engine
from app.core.config import settings

class Base(DeclarativeBase): pass

def _engine_options(dsn: str) -> dict:
    if dsn.startswith("sqlite"):
        # local dev only; request handlers run on a threadpool
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True, "pool_size": 10, "max_overflow": 20}

engine = create_engine(settings.POSTGRES_DSN, **_engine_options(settings.POSTGRES_DSN))
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
