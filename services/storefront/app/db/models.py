from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Text, Boolean, DateTime, ForeignKey, BigInteger, Numeric, CheckConstraint, UniqueConstraint, Index, text, Enum as SAEnum
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from app.db.session import Base

def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)

def _enum(cls, length: int = 32):
    return SAEnum(cls, native_enum=False, length=length, values_callable=lambda e: [m.value for m in e])

class OrderStatus(str, Enum):
    PENDING = "Pending"
    PACKAGING = "Packaging"
    SHIPPING = "Shipping"
    DELIVERED = "Delivered"
    CANCEL = "Cancel"

class PaymentStatus(str, Enum):
    PENDING = "Pending"
    SUCCESS = "Success"
    FAILED = "Failed"
    REFUNDED = "Refunded"

class PaymentMethod(str, Enum):
    QRIS = "QRIS"
    COD = "COD"

class PosPaymentMethod(str, Enum):
    CASH = "Cash"
    QRIS = "QRIS"
    VIRTUAL_ACCOUNT = "Virtual_Account"

class NotificationType(str, Enum):
    PROFILE_REMINDER = "ProfileReminder"
    DELIVERY = "Delivery"
    PAYMENT = "Payment"
    ORDER_UPDATE = "OrderUpdate"
    REFUND = "Refund"

class User(Base):
    __tablename__ = "users"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), default="")
    phone: Mapped[str | None] = mapped_column(String(20), nullable=True)
    address_line: Mapped[str | None] = mapped_column(String(255), nullable=True)
    role: Mapped[str] = mapped_column(String(32), default="customer")
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow)

# --- catalog (read-only collaborator for the pipeline) ---

class Product(Base):
    __tablename__ = "products"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    category: Mapped[str] = mapped_column(String(16), default="Day")
    variants = relationship("ProductVariant", back_populates="product", cascade="all, delete-orphan")

class ProductVariant(Base):
    __tablename__ = "product_variants"
    __table_args__ = (UniqueConstraint("product_id", "size"),)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="CASCADE"))
    size: Mapped[str] = mapped_column(String(8), nullable=False)  # 30ml / 50ml
    price: Mapped[int] = mapped_column(BigInteger, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    product = relationship("Product", back_populates="variants")
    stock = relationship("StockCounter", back_populates="variant", uselist=False, cascade="all, delete-orphan")

    @property
    def label(self) -> str:
        return f"{self.product.name} ({self.size})"

class StockCounter(Base):
    __tablename__ = "stock_counters"
    __table_args__ = (CheckConstraint("quantity >= 0", name="ck_stock_counters_non_negative"),)
    variant_id: Mapped[int] = mapped_column(ForeignKey("product_variants.id", ondelete="CASCADE"), primary_key=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    variant = relationship("ProductVariant", back_populates="stock")

# --- cart ---

class CartLine(Base):
    __tablename__ = "cart_lines"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    variant_id: Mapped[int] = mapped_column(ForeignKey("product_variants.id"))
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    variant = relationship("ProductVariant")

# --- orders / payments ---

class Order(Base):
    __tablename__ = "orders"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # derived from id and created_at, assigned right after the insert flush
    order_number: Mapped[str | None] = mapped_column(String(32), unique=True, nullable=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    shipping_address: Mapped[str] = mapped_column(Text, nullable=False)
    payment_method: Mapped[PaymentMethod] = mapped_column(_enum(PaymentMethod, 16), nullable=False)
    subtotal: Mapped[int] = mapped_column(BigInteger, nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(5, 4), nullable=False)
    tax: Mapped[int] = mapped_column(BigInteger, nullable=False)
    total: Mapped[int] = mapped_column(BigInteger, nullable=False)
    status: Mapped[OrderStatus] = mapped_column(_enum(OrderStatus, 16), default=OrderStatus.PENDING, index=True)
    tracking_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow)

    user = relationship("User")
    lines = relationship("OrderLine", back_populates="order", cascade="all, delete-orphan", order_by="OrderLine.id")
    payment = relationship("Payment", back_populates="order", uselist=False)

    @property
    def order_id(self) -> int:
        return self.id

class OrderLine(Base):
    __tablename__ = "order_lines"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), index=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"))
    variant_id: Mapped[int] = mapped_column(ForeignKey("product_variants.id"))
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[int] = mapped_column(BigInteger, nullable=False)
    title_snapshot: Mapped[str] = mapped_column(String(255), nullable=False)

    order = relationship("Order", back_populates="lines")

    @property
    def line_total(self) -> int:
        return self.unit_price * self.quantity

class Payment(Base):
    __tablename__ = "payments"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), unique=True)
    method: Mapped[PaymentMethod] = mapped_column(_enum(PaymentMethod, 16), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    external_reference: Mapped[str] = mapped_column(String(64), index=True)
    status: Mapped[PaymentStatus] = mapped_column(_enum(PaymentStatus, 16), default=PaymentStatus.PENDING)
    gateway_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    token: Mapped[str | None] = mapped_column(String(255), nullable=True)
    redirect_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    transaction_time: Mapped[datetime | None] = mapped_column(DateTime(), nullable=True)
    expired_at: Mapped[datetime | None] = mapped_column(DateTime(), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow)

    order = relationship("Order", back_populates="payment")

class Notification(Base):
    __tablename__ = "notifications"
    # ProfileReminder is a per-user singleton
    __table_args__ = (
        Index("uq_notifications_profile_reminder", "user_id", unique=True,
              postgresql_where=text("type = 'ProfileReminder'"),
              sqlite_where=text("type = 'ProfileReminder'")),
    )
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    order_id: Mapped[int | None] = mapped_column(ForeignKey("orders.id", ondelete="SET NULL"), nullable=True)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[NotificationType] = mapped_column(_enum(NotificationType, 32), nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow)

# --- point of sale ---

class PosTransaction(Base):
    __tablename__ = "pos_transactions"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    admin_id: Mapped[int] = mapped_column(ForeignKey("users.id"))
    customer_name: Mapped[str] = mapped_column(String(100), nullable=False)
    total: Mapped[int] = mapped_column(BigInteger, nullable=False)
    payment_method: Mapped[PosPaymentMethod] = mapped_column(_enum(PosPaymentMethod, 32), default=PosPaymentMethod.QRIS)
    cash_received: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    cash_change: Mapped[int] = mapped_column(BigInteger, default=0)
    date: Mapped[datetime] = mapped_column(DateTime(), default=utcnow, index=True)
    items = relationship("PosItem", back_populates="transaction", cascade="all, delete-orphan", order_by="PosItem.id")

class PosItem(Base):
    __tablename__ = "pos_items"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    transaction_id: Mapped[int] = mapped_column(ForeignKey("pos_transactions.id", ondelete="CASCADE"))
    variant_id: Mapped[int] = mapped_column(ForeignKey("product_variants.id"))
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[int] = mapped_column(BigInteger, nullable=False)
    subtotal: Mapped[int] = mapped_column(BigInteger, nullable=False)
    transaction = relationship("PosTransaction", back_populates="items")
