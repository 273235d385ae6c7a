"""Order lifecycle and its coupling to the stock ledger.

Every transition that changes how many units an order holds against
inventory adjusts the ledger inside the same transaction as the order
row. Events are emitted only after that transaction has committed.

    pending | in_transit --deliver--> delivered --return--> returned
    pending | in_transit --cancel---> cancelled
    any ----------------------delete--> (row removed)
"""
import logging
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import settings
from app.db import atomic
from app.errors import (
    ValidationError, InvalidTransitionError, DuplicateOrderIdError, NotFoundError, TransactionError,
)
from app.models.core import (
    Order, DeliveryStatus, PaymentStatus, Priority, ReturnType, OPEN_STATUSES, TERMINAL_STATUSES,
)
from app.realtime.events import EventBuffer, EventType
from app.schemas.orders import OrderIn, OrderOut
from app.services.stock_ledger import reserve_stock, restore_stock, stock_payload
from app.util.ids import generate_order_id

logger = logging.getLogger(__name__)

DELIVERY_UPDATE_STATUSES = (DeliveryStatus.PENDING, DeliveryStatus.IN_TRANSIT, DeliveryStatus.DELIVERED)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _money(x) -> Decimal:
    return Decimal(str(x)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def order_payload(o: Order) -> dict:
    return OrderOut.model_validate(o).model_dump(mode="json", by_alias=True)


def derive_payment_status(amount_paid: Decimal, total_amount: Decimal) -> PaymentStatus:
    if amount_paid <= 0:
        return PaymentStatus.UNPAID
    if amount_paid >= total_amount:
        return PaymentStatus.PAID
    return PaymentStatus.PARTIALLY_PAID


def resolve_payment(
    total: Decimal, status: PaymentStatus | None, paid: Decimal | None,
) -> tuple[PaymentStatus, Decimal]:
    """Status and amount to store. A known amount always decides the status."""
    if paid is not None:
        if paid < 0 or paid > total:
            raise ValidationError("amountPaid must be between 0 and totalAmount", totalAmount=float(total))
        return derive_payment_status(paid, total), paid
    if status == PaymentStatus.PAID:
        return status, total
    if status == PaymentStatus.UNPAID:
        return status, Decimal("0")
    raise ValidationError("amountPaid is required for a partial payment")


def _parse_enum(enum_cls, value, label: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"Invalid {label} '{value}' (allowed: {allowed})")


def _lock_order(db: Session, order_id: int) -> Order:
    order = db.get(Order, order_id, with_for_update=True, populate_existing=True)
    if order is None:
        raise NotFoundError("Order not found", id=order_id)
    return order


def _insert_order(db: Session, body: OrderIn, **fields) -> Order:
    """Insert under a savepoint so an orderId collision does not lose the stock reservation."""
    attempts = 1 if body.order_id else max(1, settings.ORDER_ID_ATTEMPTS)
    for _ in range(attempts):
        order_id = body.order_id or generate_order_id()
        order = Order(order_id=order_id, **fields)
        try:
            with db.begin_nested():
                db.add(order)
            return order
        except IntegrityError:
            if body.order_id:
                raise DuplicateOrderIdError("orderId already exists", orderId=order_id)
            logger.warning("generated orderId %s collided, retrying", order_id)
    raise TransactionError("Could not allocate a unique orderId")


# ── queries ────────────────────────────────────────────────────────────────

def list_orders(db: Session) -> list[Order]:
    stmt = select(Order).order_by(Order.created_at.desc(), Order.id.desc())
    return list(db.scalars(stmt).all())


def get_order(db: Session, order_id: int) -> Order:
    order = db.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found", id=order_id)
    return order


# ── transitions ────────────────────────────────────────────────────────────

def create_order(db: Session, events: EventBuffer, body: OrderIn) -> Order:
    if isinstance(body.quantity, bool) or not isinstance(body.quantity, int) or body.quantity <= 0:
        raise ValidationError("Invalid quantity")
    total_amount = _money(body.total_amount)
    amount_paid = _money(body.amount_paid or 0)
    # a bare status only applies when nothing was paid up front
    payment_status, amount_paid = resolve_payment(
        total_amount,
        PaymentStatus(body.payment_status) if body.payment_status else None,
        amount_paid if amount_paid != 0 or not body.payment_status else None,
    )

    with atomic(db):
        new_stock = reserve_stock(db, body.product_type, body.product_subtype, body.quantity)
        order = _insert_order(
            db, body,
            customer_name=body.customer_name,
            customer_phone=body.customer_phone,
            product_type=body.product_type,
            product_subtype=body.product_subtype,
            quantity=body.quantity,
            returned_quantity=0,
            total_amount=total_amount,
            amount_paid=amount_paid,
            payment_status=payment_status,
            delivery_location=body.delivery_location,
            delivery_status=DeliveryStatus.PENDING,
            priority=Priority(body.priority) if body.priority else Priority.NORMAL,
            notes=body.notes or "",
        )

    logger.info("order %s created: %d x %s/%s, stock now %d",
                order.order_id, order.quantity, order.product_type, order.product_subtype, new_stock)
    events.emit(EventType.ORDER_CREATED, order_payload(order))
    events.emit(EventType.STOCK_UPDATED, stock_payload(order.product_type, order.product_subtype, new_stock))
    return order


def update_delivery_status(
    db: Session, events: EventBuffer, order_id: int, new_status: str, delivered_by: str | None = None,
) -> Order:
    status = _parse_enum(DeliveryStatus, new_status, "deliveryStatus")
    if status not in DELIVERY_UPDATE_STATUSES:
        raise ValidationError(f"Use the {'cancel' if status == DeliveryStatus.CANCELLED else 'return'} endpoint "
                              f"to mark an order {status.value}")

    with atomic(db):
        order = _lock_order(db, order_id)
        if order.delivery_status in TERMINAL_STATUSES:
            raise InvalidTransitionError(f"Order is {order.delivery_status.value}")
        if order.delivery_status == DeliveryStatus.DELIVERED and status != DeliveryStatus.DELIVERED:
            raise InvalidTransitionError(f"A delivered order cannot move back to {status.value}")
        # stock was taken at creation; delivery only confirms it left
        order.delivery_status = status
        if status == DeliveryStatus.DELIVERED:
            order.delivered_at = _now()
            order.delivered_by = delivered_by
        else:
            order.delivered_at = None
            order.delivered_by = None

    logger.info("order %s delivery status -> %s", order.order_id, status.value)
    events.emit(EventType.ORDER_UPDATED, order_payload(order))
    return order


def update_payment_status(
    db: Session, events: EventBuffer, order_id: int,
    payment_status: str | None = None, amount_paid: float | None = None,
) -> Order:
    if payment_status is None and amount_paid is None:
        raise ValidationError("paymentStatus or amountPaid is required")
    status = _parse_enum(PaymentStatus, payment_status, "paymentStatus") if payment_status is not None else None
    paid = _money(amount_paid) if amount_paid is not None else None
    if paid is not None and paid < 0:
        raise ValidationError("amountPaid must not be negative")
    if paid is None and status == PaymentStatus.PARTIALLY_PAID:
        raise ValidationError("amountPaid is required for a partial payment")

    with atomic(db):
        order = _lock_order(db, order_id)
        order.payment_status, order.amount_paid = resolve_payment(_money(order.total_amount), status, paid)

    logger.info("order %s payment -> %s (%s paid)", order.order_id, order.payment_status.value, order.amount_paid)
    events.emit(EventType.ORDER_UPDATED, order_payload(order))
    return order


def update_priority(db: Session, events: EventBuffer, order_id: int, priority: str) -> Order:
    value = _parse_enum(Priority, priority, "priority")
    with atomic(db):
        order = _lock_order(db, order_id)
        order.priority = value
    events.emit(EventType.ORDER_UPDATED, order_payload(order))
    return order


def add_worker_notes(
    db: Session, events: EventBuffer, order_id: int, worker_notes: str, worker_name: str | None = None,
) -> Order:
    notes = (worker_notes or "").strip()
    if not notes:
        raise ValidationError("workerNotes is required")
    with atomic(db):
        order = _lock_order(db, order_id)
        order.worker_notes = notes
        order.worker_name = worker_name
        order.notes_updated_at = _now()
    events.emit(EventType.ORDER_UPDATED, order_payload(order))
    return order


def return_order(db: Session, events: EventBuffer, order_id: int, quantity: int, return_type: str) -> Order:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("Return quantity must be a positive integer")
    kind = _parse_enum(ReturnType, return_type, "returnType")

    with atomic(db):
        order = _lock_order(db, order_id)
        if order.delivery_status != DeliveryStatus.DELIVERED:
            raise InvalidTransitionError(
                f"Only delivered orders can be returned (order is {order.delivery_status.value})"
            )
        remaining = order.remaining_quantity
        if quantity > remaining:
            raise ValidationError("Return quantity exceeds remaining quantity",
                                  remaining=remaining, requested=quantity)
        if kind == ReturnType.FULL and quantity != remaining:
            raise ValidationError("A full return must cover the remaining quantity",
                                  remaining=remaining, requested=quantity)

        new_stock = restore_stock(db, order.product_type, order.product_subtype, quantity)
        order.returned_quantity = order.returned_quantity + quantity
        order.return_type = kind
        order.returned_at = _now()
        if order.returned_quantity == order.quantity:
            order.delivery_status = DeliveryStatus.RETURNED

    logger.info("order %s returned %d (%d of %d), stock now %d",
                order.order_id, quantity, order.returned_quantity, order.quantity, new_stock)
    events.emit(EventType.ORDER_UPDATED, order_payload(order))
    events.emit(EventType.STOCK_UPDATED, stock_payload(order.product_type, order.product_subtype, new_stock))
    return order


def cancel_order(db: Session, events: EventBuffer, order_id: int) -> Order:
    new_stock = None
    with atomic(db):
        order = _lock_order(db, order_id)
        if order.delivery_status not in OPEN_STATUSES:
            raise InvalidTransitionError(f"Order cannot be cancelled once {order.delivery_status.value}")
        outstanding = order.remaining_quantity
        if outstanding > 0:
            new_stock = restore_stock(db, order.product_type, order.product_subtype, outstanding)
        order.delivery_status = DeliveryStatus.CANCELLED
        order.cancelled_at = _now()

    logger.info("order %s cancelled, restored %s", order.order_id, outstanding if new_stock is not None else 0)
    events.emit(EventType.ORDER_UPDATED, order_payload(order))
    if new_stock is not None:
        events.emit(EventType.STOCK_UPDATED, stock_payload(order.product_type, order.product_subtype, new_stock))
    return order


def delete_order(db: Session, events: EventBuffer, order_id: int) -> int:
    new_stock = None
    with atomic(db):
        order = _lock_order(db, order_id)
        product_type, product_subtype = order.product_type, order.product_subtype
        # cancelled orders were credited at cancel time; delivered/returned units left the business
        if order.delivery_status in OPEN_STATUSES and order.remaining_quantity > 0:
            new_stock = restore_stock(db, product_type, product_subtype, order.remaining_quantity)
        db.delete(order)

    logger.info("order %d deleted", order_id)
    events.emit(EventType.ORDER_DELETED, {"id": order_id})
    if new_stock is not None:
        events.emit(EventType.STOCK_UPDATED, stock_payload(product_type, product_subtype, new_stock))
    return order_id
