"""Pytest configuration and fixtures."""

import os
from collections.abc import Generator
from decimal import Decimal
from typing import Any, Callable

# Set test environment variables before importing application modules
os.environ.setdefault("POSTGRES_DSN", "sqlite://")
os.environ.setdefault("KAFKA_BOOTSTRAP", "")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

import httpx
import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import Settings
from app.db.models import (
    CartLine,
    Order,
    PaymentMethod,
    Product,
    ProductVariant,
    StockCounter,
    User,
)
from app.db.session import Base
from app.services.gateway import MidtransGateway
from app.services.notifier import Notifier
from app.services.order_assembly import OrderAssembly

SERVER_KEY = "SB-Mid-server-test"
JWT_SECRET = "test-jwt-secret"


@pytest.fixture
def settings() -> Settings:
    return Settings(
        JWT_SECRET=JWT_SECRET,
        TAX_RATE=Decimal("0.05"),
        MIDTRANS_SERVER_KEY=SERVER_KEY,
        MIDTRANS_IS_PRODUCTION=False,
        GATEWAY_TIMEOUT_SECONDS=1,
        GATEWAY_MAX_ATTEMPTS=2,
        PAYMENT_STALE_SECONDS=120,
        WEBHOOK_REQUIRE_SIGNATURE=False,
        KAFKA_BOOTSTRAP="",
    )


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def db(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def catalog(session_factory) -> dict[str, int]:
    """Two variants of one product plus an inactive one.

    Yields ids rather than instances so tests never share a session with
    the fixture.
    """
    with session_factory() as s:
        product = Product(name="Amber Dusk", category="Night")
        a = ProductVariant(size="30ml", price=100000, stock=StockCounter(quantity=5))
        b = ProductVariant(size="50ml", price=150000, stock=StockCounter(quantity=2))
        retired = ProductVariant(size="100ml", price=300000, active=False, stock=StockCounter(quantity=9))
        product.variants.extend([a, b, retired])
        s.add(product)
        s.commit()
        return {"product": product.id, "a": a.id, "b": b.id, "retired": retired.id}


@pytest.fixture
def users(session_factory) -> dict[str, int]:
    with session_factory() as s:
        complete = User(email="rina@example.com", name="Rina", phone="08123456789", address_line="Jl. Melati 1")
        bare = User(email="budi@example.com", name="Budi")
        admin = User(email="admin@example.com", name="Admin", role="admin")
        s.add_all([complete, bare, admin])
        s.commit()
        return {"customer": complete.id, "bare": bare.id, "admin": admin.id}


@pytest.fixture
def add_to_cart(session_factory) -> Callable[..., int]:
    def _add(user_id: int, variant_id: int, quantity: int) -> int:
        with session_factory() as s:
            line = CartLine(user_id=user_id, variant_id=variant_id, quantity=quantity)
            s.add(line)
            s.commit()
            return line.id
    return _add


@pytest.fixture
def place_order(session_factory, settings, add_to_cart) -> Callable[..., int]:
    """Assemble an order straight through the service and return its id."""
    def _place(user_id: int, items: list[tuple[int, int]], method: PaymentMethod = PaymentMethod.QRIS) -> int:
        cart_ids = [add_to_cart(user_id, variant_id, qty) for variant_id, qty in items]
        with session_factory() as s:
            order = OrderAssembly(s, settings).assemble(user_id, cart_ids, "Jl. Mawar 2, Bandung", method)
            return order.id
    return _place


class RecordingPublisher:
    def __init__(self):
        self.events: list[tuple[str, str, dict]] = []

    def __call__(self, topic: str, key: str, value: dict):
        self.events.append((topic, key, value))


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def notifier(session_factory, publisher) -> Notifier:
    return Notifier(session_factory, publisher=publisher)


class FakeMidtrans:
    """Stands in for the Snap and Core APIs behind an httpx.MockTransport."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.transaction_status = "pending"
        self.gross_amount: str | None = None
        self.fail_next = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_next:
            self.fail_next -= 1
            return httpx.Response(503, json={"status_message": "unavailable"})
        if request.method == "POST" and request.url.path == "/snap/v1/transactions":
            return httpx.Response(201, json={
                "token": f"tok-{len(self.requests)}",
                "redirect_url": f"https://app.sandbox.midtrans.com/snap/v4/redirection/tok-{len(self.requests)}",
            })
        if request.method == "GET" and request.url.path.endswith("/status"):
            reference = request.url.path.split("/")[2]
            body: dict[str, Any] = {"order_id": reference, "transaction_status": self.transaction_status}
            if self.gross_amount is not None:
                body["gross_amount"] = self.gross_amount
            return httpx.Response(200, json=body)
        return httpx.Response(404, json={"status_message": "not found"})


@pytest.fixture
def midtrans() -> FakeMidtrans:
    return FakeMidtrans()


@pytest.fixture
def gateway(settings, midtrans) -> MidtransGateway:
    return MidtransGateway(settings, transport=httpx.MockTransport(midtrans.handler))


def make_token(email: str, secret: str = JWT_SECRET, type: str = "access") -> str:
    return jwt.encode({"sub": email, "type": type}, secret, algorithm="HS256")


def auth_header(email: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(email)}"}


@pytest.fixture
def client(settings, session_factory, gateway, publisher) -> Generator[TestClient, None, None]:
    from app.api.deps import get_gateway, get_publisher, get_session_factory, get_settings
    from app.main import app

    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_publisher] = lambda: publisher
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def load_order(session_factory, order_id: int) -> Order:
    """Fresh read of an order with its lines and payment loaded."""
    with session_factory() as s:
        order = s.get(Order, order_id)
        _ = order.lines, order.payment
        s.expunge_all()
        return order
