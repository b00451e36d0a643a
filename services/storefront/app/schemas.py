from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List
from datetime import datetime
from decimal import Decimal
from app.db.models import OrderStatus, PaymentMethod, PaymentStatus, PosPaymentMethod, NotificationType

# --- orders ---

class OrderCreate(BaseModel):
    cart_ids: List[int] = Field(min_length=1)
    shipping_address: str = Field(min_length=1, max_length=1000)
    payment_method: PaymentMethod = PaymentMethod.QRIS

class OrderLineRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: int
    variant_id: int
    quantity: int
    unit_price: int
    title_snapshot: str

class PaymentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    method: PaymentMethod
    amount: int
    external_reference: str
    status: PaymentStatus
    transaction_time: Optional[datetime] = None
    expired_at: Optional[datetime] = None

class OrderRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_id: int
    order_number: str
    user_id: int
    shipping_address: str
    payment_method: PaymentMethod
    subtotal: int
    tax_rate: Decimal
    tax: int
    total: int
    status: OrderStatus
    tracking_number: Optional[str] = None
    created_at: datetime
    lines: List[OrderLineRead] = []
    payment: Optional[PaymentRead] = None

class PaymentStatusRead(BaseModel):
    order_id: int
    payment_status: Optional[PaymentStatus] = None
    qris_status: Optional[str] = None
    order_status: OrderStatus

class StatusUpdate(BaseModel):
    status: OrderStatus
    tracking_number: Optional[str] = Field(default=None, max_length=100)

# --- payments ---

class QrisCreate(BaseModel):
    order_id: int

class QrisResponse(BaseModel):
    token: str
    redirect_url: Optional[str] = None

# --- cart ---

class CartItemAdd(BaseModel):
    variant_id: int
    quantity: int = Field(ge=1)

class CartLineRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    variant_id: int
    quantity: int

class CartRead(BaseModel):
    items: List[CartLineRead] = []

# --- inventory / pos ---

class StockItem(BaseModel):
    variant_id: int
    qty: int = Field(ge=1)

class RestockReq(BaseModel):
    items: List[StockItem] = Field(min_length=1)

class StockRead(BaseModel):
    variant_id: int
    quantity: int

class PosCreate(BaseModel):
    customer_name: str = Field(min_length=1, max_length=100)
    items: List[StockItem] = Field(min_length=1)
    payment_method: PosPaymentMethod = PosPaymentMethod.QRIS
    cash_received: Optional[int] = Field(default=None, ge=0)

class PosItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    variant_id: int
    quantity: int
    unit_price: int
    subtotal: int

class PosTransactionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    admin_id: int
    customer_name: str
    total: int
    payment_method: PosPaymentMethod
    cash_received: Optional[int] = None
    cash_change: int = 0
    date: datetime
    items: List[PosItemRead] = []

# --- notifications ---

class NotificationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_id: Optional[int] = None
    message: str
    type: NotificationType
    is_read: bool
    created_at: datetime
