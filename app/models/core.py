from sqlalchemy import (
    String, Numeric, Enum, Text, DateTime, Integer, UniqueConstraint, CheckConstraint, Index
)
from sqlalchemy.orm import Mapped, mapped_column
from enum import Enum as PyEnum
from datetime import datetime
from decimal import Decimal
from app.db import Base
from app.models.common import IdMixin, TSMMixin, utcnow

# ── Enums ───────────────────────────────────────────────────────────────────
class PaymentStatus(str, PyEnum):
    UNPAID = "unpaid"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"

class DeliveryStatus(str, PyEnum):
    PENDING = "pending"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    RETURNED = "returned"

class Priority(str, PyEnum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"

class ReturnType(str, PyEnum):
    FULL = "full"
    PARTIAL = "partial"

class StockAction(str, PyEnum):
    ADDED = "added"
    EDITED = "edited"
    DELETED = "deleted"

# statuses whose units are still held against inventory
OPEN_STATUSES = (DeliveryStatus.PENDING, DeliveryStatus.IN_TRANSIT)
TERMINAL_STATUSES = (DeliveryStatus.CANCELLED, DeliveryStatus.RETURNED)

def _enum(e):
    return Enum(e, values_callable=lambda members: [m.value for m in members], native_enum=False, length=20)

# ── Stock ───────────────────────────────────────────────────────────────────
class StockEntry(Base, IdMixin, TSMMixin):
    __tablename__ = "stock"
    __table_args__ = (
        UniqueConstraint("product_type", "product_subtype", name="uq_stock_key"),
        CheckConstraint("quantity >= 0", name="ck_stock_non_negative"),
    )
    product_type: Mapped[str] = mapped_column(String(120))
    product_subtype: Mapped[str] = mapped_column(String(120))
    quantity: Mapped[int] = mapped_column(Integer, default=0)

class StockHistory(Base, IdMixin):
    __tablename__ = "stock_history"
    __table_args__ = (Index("ix_stock_history_timestamp", "timestamp"),)
    product_type: Mapped[str] = mapped_column(String(120))
    product_subtype: Mapped[str] = mapped_column(String(120))
    action: Mapped[StockAction] = mapped_column(_enum(StockAction))
    quantity: Mapped[int | None] = mapped_column(Integer)
    old_quantity: Mapped[int | None] = mapped_column(Integer)
    new_quantity: Mapped[int | None] = mapped_column(Integer)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

# ── Orders ──────────────────────────────────────────────────────────────────
class Order(Base, IdMixin, TSMMixin):
    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_quantity_positive"),
        CheckConstraint("returned_quantity >= 0 AND returned_quantity <= quantity", name="ck_order_returned_range"),
        Index("ix_orders_created_at", "created_at"),
    )
    order_id: Mapped[str] = mapped_column(String(64), unique=True)
    customer_name: Mapped[str] = mapped_column(String(160))
    customer_phone: Mapped[str] = mapped_column(String(40))
    product_type: Mapped[str] = mapped_column(String(120))
    product_subtype: Mapped[str] = mapped_column(String(120))
    quantity: Mapped[int] = mapped_column(Integer)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    amount_paid: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    payment_status: Mapped[PaymentStatus] = mapped_column(_enum(PaymentStatus), default=PaymentStatus.UNPAID)
    delivery_location: Mapped[str] = mapped_column(Text)
    delivery_status: Mapped[DeliveryStatus] = mapped_column(_enum(DeliveryStatus), default=DeliveryStatus.PENDING)
    priority: Mapped[Priority] = mapped_column(_enum(Priority), default=Priority.NORMAL)
    notes: Mapped[str] = mapped_column(Text, default="")
    worker_notes: Mapped[str | None] = mapped_column(Text)
    worker_name: Mapped[str | None] = mapped_column(String(160))
    delivered_by: Mapped[str | None] = mapped_column(String(160))
    returned_quantity: Mapped[int] = mapped_column(Integer, default=0)
    return_type: Mapped[ReturnType | None] = mapped_column(_enum(ReturnType))
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    returned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    notes_updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    @property
    def remaining_quantity(self) -> int:
        return self.quantity - (self.returned_quantity or 0)

# ── Push subscriptions ──────────────────────────────────────────────────────
class PushSubscription(Base, IdMixin, TSMMixin):
    __tablename__ = "subscriptions"
    endpoint: Mapped[str] = mapped_column(String(500), unique=True)
    expiration_time: Mapped[int | None] = mapped_column(Integer)
    p256dh: Mapped[str] = mapped_column(String(200))
    auth: Mapped[str] = mapped_column(String(100))
