import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from app.version import VERSION
from app.api import admin, cart, notifications, orders, payments, pos
from app.core.config import settings
from app.core.errors import ShopError
from app.kafka import producer
from prometheus_fastapi_instrumentator import Instrumentator

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

instrumentator = Instrumentator()

app = FastAPI(title="Storefront Service", version=VERSION)

instrumentator.instrument(app).expose(
    app,
    include_in_schema=False,
    endpoint="/storefront/metrics",
    should_gzip=True,
)

@app.exception_handler(ShopError)
async def shop_error_handler(request: Request, exc: ShopError):
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})

@app.get("/health")
def health():
    return {"status": "ok"}

@app.get("/storefront/health")
def storefront_health():
    return {"status": "ok"}

@app.get("/v1/_info")
def info():
    return {"service": "storefront", "version": VERSION}

@app.on_event("startup")
async def startup_event():
    for route in app.routes:
        if hasattr(route, "methods") and hasattr(route, "path"):
            logger.debug("%s %s", sorted(route.methods), route.path)

@app.on_event("shutdown")
async def shutdown_event():
    producer.close()

app.include_router(orders.router, prefix="/orders", tags=["orders"])
app.include_router(payments.router, prefix="/payments", tags=["payments"])
app.include_router(admin.router, prefix="/admin", tags=["admin"])
app.include_router(pos.router, prefix="/pos", tags=["pos"])
app.include_router(cart.router, prefix="/cart", tags=["cart"])
app.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
