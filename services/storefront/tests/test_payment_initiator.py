import json
from datetime import datetime, timedelta

import pytest

from app.core.errors import GatewayUnavailable, NotFound, ValidationError
from app.db.models import Order, OrderStatus, PaymentMethod, PaymentStatus
from app.services.gateway import parse_reference
from app.services.payment_initiator import PaymentInitiator
from app.services.stock_ledger import StockLedger

from conftest import load_order


def test_initiate_records_pending_payment(db, settings, gateway, midtrans, session_factory, catalog, users, place_order):
    order_id = place_order(users["customer"], [(catalog["a"], 2)])

    result = PaymentInitiator(db, settings, gateway).initiate(order_id, user_id=users["customer"])

    assert result["token"] == "tok-1"
    assert result["redirect_url"].endswith("/tok-1")
    order = load_order(session_factory, order_id)
    assert order.payment.status == PaymentStatus.PENDING
    assert order.payment.amount == order.total == 210000
    assert order.payment.gateway_status == "pending"
    assert parse_reference(order.payment.external_reference) == order_id
    assert order.status == OrderStatus.PENDING


def test_request_carries_items_and_tax(db, settings, gateway, midtrans, catalog, users, place_order):
    order_id = place_order(users["customer"], [(catalog["a"], 2), (catalog["b"], 1)])
    PaymentInitiator(db, settings, gateway).initiate(order_id)

    body = json.loads(midtrans.requests[0].content)
    assert body["transaction_details"]["gross_amount"] == 367500
    assert body["enabled_payments"] == ["other_qris"]
    items = body["item_details"]
    assert sum(i["price"] * i["quantity"] for i in items) == 367500
    assert items[-1] == {"id": "TAX", "price": 17500, "quantity": 1, "name": "Tax 5%"}
    assert body["customer_details"]["email"] == "rina@example.com"


def test_retry_replaces_reference_without_touching_stock(db, settings, gateway, session_factory, catalog, users, place_order):
    order_id = place_order(users["customer"], [(catalog["a"], 1)])
    initiator = PaymentInitiator(db, settings, gateway)

    first = initiator.initiate(order_id)
    ref_first = load_order(session_factory, order_id).payment.external_reference
    second = initiator.initiate(order_id)

    assert first["token"] != second["token"]
    order = load_order(session_factory, order_id)
    assert order.payment.token == second["token"]
    assert parse_reference(order.payment.external_reference) == order_id
    assert ref_first.startswith("MID-")
    assert StockLedger(db).available(catalog["a"]) == 4


def test_cod_order_cannot_start_qris(db, settings, gateway, midtrans, catalog, users, place_order):
    order_id = place_order(users["customer"], [(catalog["a"], 1)], method=PaymentMethod.COD)
    with pytest.raises(ValidationError):
        PaymentInitiator(db, settings, gateway).initiate(order_id)
    assert midtrans.requests == []


def test_foreign_order_is_not_found(db, settings, gateway, catalog, users, place_order):
    order_id = place_order(users["customer"], [(catalog["a"], 1)])
    with pytest.raises(NotFound):
        PaymentInitiator(db, settings, gateway).initiate(order_id, user_id=users["bare"])
    with pytest.raises(NotFound):
        PaymentInitiator(db, settings, gateway).initiate(424242)


def test_cancelled_order_cannot_start_payment(db, settings, gateway, catalog, users, place_order):
    order_id = place_order(users["customer"], [(catalog["a"], 1)])
    db.get(Order, order_id).status = OrderStatus.CANCEL
    db.commit()
    with pytest.raises(ValidationError):
        PaymentInitiator(db, settings, gateway).initiate(order_id)


def test_settled_payment_is_not_restarted(db, settings, gateway, catalog, users, place_order):
    order_id = place_order(users["customer"], [(catalog["a"], 1)])
    initiator = PaymentInitiator(db, settings, gateway)
    initiator.initiate(order_id)
    db.get(Order, order_id).payment.status = PaymentStatus.SUCCESS
    db.commit()
    with pytest.raises(ValidationError):
        initiator.initiate(order_id)


def test_gateway_outage_leaves_no_payment(db, settings, gateway, midtrans, session_factory, catalog, users, place_order):
    order_id = place_order(users["customer"], [(catalog["a"], 1)])
    midtrans.fail_next = 2
    with pytest.raises(GatewayUnavailable):
        PaymentInitiator(db, settings, gateway).initiate(order_id)

    order = load_order(session_factory, order_id)
    assert order.payment is None
    assert order.status == OrderStatus.PENDING
    assert StockLedger(db).available(catalog["a"]) == 4


def test_request_and_payment_share_expiry_window(db, settings, gateway, midtrans, session_factory, catalog, users, place_order):
    order_id = place_order(users["customer"], [(catalog["a"], 1)])
    PaymentInitiator(db, settings, gateway).initiate(order_id)

    expiry = json.loads(midtrans.requests[0].content)["custom_expiry"]
    assert expiry["expiry_duration"] == 5 and expiry["unit"] == "minute"
    order_time = datetime.strptime(expiry["order_time"], "%Y-%m-%d %H:%M:%S +0000")
    payment = load_order(session_factory, order_id).payment
    assert payment.expired_at.replace(microsecond=0) == order_time + timedelta(minutes=5)
