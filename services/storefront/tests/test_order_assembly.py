import threading
from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from app.core.errors import EmptyCart, InsufficientStock, ValidationError
from app.db.models import CartLine, Order, OrderStatus, PaymentMethod, Product, ProductVariant, StockCounter, User
from app.db.session import Base
from app.services.order_assembly import OrderAssembly, compute_totals, format_order_code
from app.services.stock_ledger import StockLedger


def test_compute_totals_rounds_half_up():
    assert compute_totals(100000, Decimal("0.05")) == (5000, 105000)
    assert compute_totals(10, Decimal("0.05")) == (1, 11)  # 0.5 rounds up
    assert compute_totals(9, Decimal("0.05")) == (0, 9)
    assert compute_totals(0, Decimal("0.11")) == (0, 0)


def test_order_code_format():
    assert format_order_code(25, datetime(2025, 12, 10, 14, 5)) == "#ORD-10-12-2025-025"
    assert format_order_code(1234, datetime(2026, 1, 2)) == "#ORD-02-01-2026-1234"


def test_assemble_creates_pending_order_and_debits(db, settings, catalog, users, add_to_cart):
    line_a = add_to_cart(users["customer"], catalog["a"], 2)
    line_b = add_to_cart(users["customer"], catalog["b"], 1)

    order = OrderAssembly(db, settings).assemble(users["customer"], [line_a, line_b], "Jl. Mawar 2", PaymentMethod.QRIS)

    assert order.status == OrderStatus.PENDING
    assert order.subtotal == 2 * 100000 + 150000
    assert order.tax == 17500
    assert order.total == 367500
    assert order.tax_rate == Decimal("0.05")
    assert [(l.variant_id, l.quantity, l.unit_price) for l in order.lines] == [
        (catalog["a"], 2, 100000),
        (catalog["b"], 1, 150000),
    ]
    assert order.lines[0].title_snapshot == "Amber Dusk (30ml)"
    assert order.order_number == format_order_code(order.id, order.created_at)
    ledger = StockLedger(db)
    assert ledger.available(catalog["a"]) == 3
    assert ledger.available(catalog["b"]) == 1
    assert db.execute(select(CartLine)).scalars().all() == []


def test_price_snapshot_survives_catalog_change(db, settings, catalog, users, add_to_cart):
    line = add_to_cart(users["customer"], catalog["a"], 1)
    order = OrderAssembly(db, settings).assemble(users["customer"], [line], "Jl. Mawar 2", PaymentMethod.COD)

    db.get(ProductVariant, catalog["a"]).price = 999000
    db.commit()
    db.refresh(order)
    assert order.lines[0].unit_price == 100000
    assert order.total == 105000


def test_shortage_fails_whole_checkout(db, settings, catalog, users, add_to_cart):
    line_a = add_to_cart(users["customer"], catalog["a"], 1)
    line_b = add_to_cart(users["customer"], catalog["b"], 3)

    with pytest.raises(InsufficientStock) as exc:
        OrderAssembly(db, settings).assemble(users["customer"], [line_a, line_b], "Jl. Mawar 2", PaymentMethod.QRIS)

    assert exc.value.variant_id == catalog["b"]
    ledger = StockLedger(db)
    assert ledger.available(catalog["a"]) == 5
    assert ledger.available(catalog["b"]) == 2
    assert db.execute(select(Order)).scalars().all() == []
    assert len(db.execute(select(CartLine)).scalars().all()) == 2


def test_other_users_lines_are_not_matched(db, settings, catalog, users, add_to_cart):
    foreign = add_to_cart(users["bare"], catalog["a"], 1)
    with pytest.raises(EmptyCart):
        OrderAssembly(db, settings).assemble(users["customer"], [foreign], "Jl. Mawar 2", PaymentMethod.QRIS)
    assert StockLedger(db).available(catalog["a"]) == 5


def test_empty_selection(db, settings, users):
    with pytest.raises(EmptyCart):
        OrderAssembly(db, settings).assemble(users["customer"], [], "Jl. Mawar 2", PaymentMethod.QRIS)


def test_blank_address_rejected(db, settings, catalog, users, add_to_cart):
    line = add_to_cart(users["customer"], catalog["a"], 1)
    with pytest.raises(ValidationError):
        OrderAssembly(db, settings).assemble(users["customer"], [line], "   ", PaymentMethod.QRIS)
    assert StockLedger(db).available(catalog["a"]) == 5


def test_inactive_variant_rejected(db, settings, catalog, users, add_to_cart):
    line = add_to_cart(users["customer"], catalog["retired"], 1)
    with pytest.raises(ValidationError):
        OrderAssembly(db, settings).assemble(users["customer"], [line], "Jl. Mawar 2", PaymentMethod.QRIS)
    assert StockLedger(db).available(catalog["retired"]) == 9


def test_tax_rate_is_frozen_on_order(db, settings, catalog, users, add_to_cart):
    line = add_to_cart(users["customer"], catalog["a"], 1)
    order = OrderAssembly(db, settings).assemble(users["customer"], [line], "Jl. Mawar 2", PaymentMethod.QRIS)

    later = settings.model_copy(update={"TAX_RATE": Decimal("0.11")})
    line = add_to_cart(users["customer"], catalog["a"], 1)
    second = OrderAssembly(db, later).assemble(users["customer"], [line], "Jl. Mawar 2", PaymentMethod.QRIS)

    db.refresh(order)
    assert order.tax_rate == Decimal("0.05") and order.tax == 5000
    assert second.tax_rate == Decimal("0.11") and second.tax == 11000


def test_two_checkouts_racing_for_last_unit(tmp_path, settings):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'checkout_race.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    with factory() as s:
        product = Product(name="Citrus Morning")
        variant = ProductVariant(size="50ml", price=220000, stock=StockCounter(quantity=1))
        product.variants.append(variant)
        buyers = [User(email=f"buyer{i}@example.com", name=f"Buyer {i}") for i in range(2)]
        s.add_all([product, *buyers])
        s.flush()
        lines = [CartLine(user_id=u.id, variant_id=variant.id, quantity=1) for u in buyers]
        s.add_all(lines)
        s.commit()
        variant_id = variant.id
        carts = [(u.id, line.id) for u, line in zip(buyers, lines)]

    placed, refused, errors = [], [], []
    start = threading.Barrier(2)

    def checkout(user_id, line_id):
        start.wait()
        with factory() as s:
            try:
                order = OrderAssembly(s, settings).assemble(user_id, [line_id], "Jl. Kenanga 7", PaymentMethod.QRIS)
                placed.append((user_id, order.id))
            except InsufficientStock:
                refused.append((user_id, line_id))
            except Exception as e:  # surfaced below
                errors.append(e)

    threads = [threading.Thread(target=checkout, args=cart) for cart in carts]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert len(placed) == 1
    assert len(refused) == 1
    with factory() as s:
        assert StockLedger(s).available(variant_id) == 0
        orders = s.execute(select(Order)).scalars().all()
        assert [(o.user_id, o.id) for o in orders] == placed
        remaining = s.execute(select(CartLine)).scalars().all()
        assert [(l.user_id, l.id) for l in remaining] == refused
    engine.dispose()
