"""Stock ledger: on-hand quantity per (productType, productSubtype) key.

Public operations (add/set/delete/query) each run in their own transaction
and append a history record per mutation. ``reserve_stock`` and
``restore_stock`` are the building blocks the order engine calls inside
its own transaction; they never commit.
"""
import logging
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import settings
from app.db import atomic
from app.errors import ValidationError, NotFoundError, InsufficientStockError
from app.models.core import StockEntry, StockHistory, StockAction
from app.realtime.events import EventBuffer, EventType
from app.util.timeutil import start_of_day

logger = logging.getLogger(__name__)


def stock_payload(product_type: str, product_subtype: str, new_stock: int | None) -> dict:
    return {"productType": product_type, "productSubtype": product_subtype, "newStock": new_stock}


def _clean_key(product_type, product_subtype) -> tuple[str, str]:
    t = product_type.strip() if isinstance(product_type, str) else ""
    s = product_subtype.strip() if isinstance(product_subtype, str) else ""
    if not t or not s:
        raise ValidationError("productType and productSubtype are required")
    return t, s


def _check_quantity(quantity, *, allow_zero: bool) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("quantity must be an integer")
    if quantity < 0 or (quantity == 0 and not allow_zero):
        raise ValidationError("quantity must be positive" if not allow_zero else "quantity must not be negative")
    return quantity


def _key(product_type: str, product_subtype: str):
    return (StockEntry.product_type == product_type, StockEntry.product_subtype == product_subtype)


def lock_entry(db: Session, product_type: str, product_subtype: str) -> StockEntry | None:
    stmt = (
        select(StockEntry)
        .where(*_key(product_type, product_subtype))
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return db.scalars(stmt).first()


def current_quantity(db: Session, product_type: str, product_subtype: str) -> int | None:
    stmt = select(StockEntry.quantity).where(*_key(product_type, product_subtype))
    return db.scalar(stmt)


# ── building blocks for the order engine (caller owns the transaction) ─────

def reserve_stock(db: Session, product_type: str, product_subtype: str, quantity: int) -> int:
    """Take ``quantity`` units out of a key; returns the new on-hand amount."""
    entry = lock_entry(db, product_type, product_subtype)
    available = entry.quantity if entry else 0
    if entry is None or available < quantity:
        raise InsufficientStockError(available=available, requested=quantity)

    # conditional decrement: a concurrent writer that slipped past the lock
    # (engines without FOR UPDATE) still cannot drive the row negative
    result = db.execute(
        update(StockEntry)
        .where(*_key(product_type, product_subtype), StockEntry.quantity >= quantity)
        .values(quantity=StockEntry.quantity - quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InsufficientStockError(
            available=current_quantity(db, product_type, product_subtype) or 0, requested=quantity
        )
    db.refresh(entry)
    return entry.quantity


def restore_stock(db: Session, product_type: str, product_subtype: str, quantity: int) -> int:
    """Credit ``quantity`` units back to a key, recreating it if it was deleted."""
    entry = lock_entry(db, product_type, product_subtype)
    if entry is None:
        entry = StockEntry(product_type=product_type, product_subtype=product_subtype, quantity=quantity)
        db.add(entry)
    else:
        entry.quantity = entry.quantity + quantity
    db.flush()
    return entry.quantity


# ── public ledger operations ───────────────────────────────────────────────

def add_stock(db: Session, events: EventBuffer, product_type: str, product_subtype: str, quantity: int) -> int:
    product_type, product_subtype = _clean_key(product_type, product_subtype)
    quantity = _check_quantity(quantity, allow_zero=False)

    with atomic(db):
        entry = lock_entry(db, product_type, product_subtype)
        if entry is None:
            try:
                with db.begin_nested():
                    entry = StockEntry(product_type=product_type, product_subtype=product_subtype, quantity=quantity)
                    db.add(entry)
            except IntegrityError:
                # another request created the key first; fall through to increment
                entry = lock_entry(db, product_type, product_subtype)
                entry.quantity = entry.quantity + quantity
        else:
            entry.quantity = entry.quantity + quantity
        db.flush()
        new_stock = entry.quantity
        db.add(StockHistory(
            product_type=product_type, product_subtype=product_subtype,
            action=StockAction.ADDED, quantity=quantity,
        ))

    logger.info("stock added %s/%s +%d -> %d", product_type, product_subtype, quantity, new_stock)
    events.emit(EventType.STOCK_UPDATED, stock_payload(product_type, product_subtype, new_stock))
    return new_stock


def set_stock(db: Session, events: EventBuffer, product_type: str, product_subtype: str, quantity: int) -> int:
    product_type, product_subtype = _clean_key(product_type, product_subtype)
    quantity = _check_quantity(quantity, allow_zero=True)

    with atomic(db):
        entry = lock_entry(db, product_type, product_subtype)
        if entry is None:
            raise NotFoundError("Stock not found", productType=product_type, productSubtype=product_subtype)
        old_quantity = entry.quantity
        entry.quantity = quantity
        db.add(StockHistory(
            product_type=product_type, product_subtype=product_subtype,
            action=StockAction.EDITED, old_quantity=old_quantity, new_quantity=quantity,
        ))

    logger.info("stock set %s/%s %d -> %d", product_type, product_subtype, old_quantity, quantity)
    events.emit(EventType.STOCK_UPDATED, stock_payload(product_type, product_subtype, quantity))
    return quantity


def delete_subtype(db: Session, events: EventBuffer, product_type: str, product_subtype: str) -> None:
    product_type, product_subtype = _clean_key(product_type, product_subtype)

    with atomic(db):
        entry = lock_entry(db, product_type, product_subtype)
        if entry is None:
            raise NotFoundError("Stock not found", productType=product_type, productSubtype=product_subtype)
        db.add(StockHistory(
            product_type=product_type, product_subtype=product_subtype,
            action=StockAction.DELETED, old_quantity=entry.quantity,
        ))
        db.delete(entry)

    logger.info("stock subtype deleted %s/%s", product_type, product_subtype)
    events.emit(EventType.STOCK_UPDATED, stock_payload(product_type, product_subtype, None))


def delete_product_type(db: Session, events: EventBuffer, product_type: str) -> int:
    product_type = product_type.strip() if isinstance(product_type, str) else ""
    if not product_type:
        raise ValidationError("productType is required")

    with atomic(db):
        entries = db.scalars(
            select(StockEntry).where(StockEntry.product_type == product_type).with_for_update()
        ).all()
        if not entries:
            raise NotFoundError("Stock type not found", productType=product_type)
        for entry in entries:
            db.add(StockHistory(
                product_type=product_type, product_subtype=entry.product_subtype,
                action=StockAction.DELETED, old_quantity=entry.quantity,
            ))
            db.delete(entry)

    logger.info("stock type deleted %s (%d subtypes)", product_type, len(entries))
    events.emit(EventType.STOCK_DELETED, {"productType": product_type})
    return len(entries)


def get_all(db: Session) -> dict[str, dict[str, int]]:
    rows = db.execute(
        select(StockEntry.product_type, StockEntry.product_subtype, StockEntry.quantity)
        .order_by(StockEntry.product_type, StockEntry.product_subtype)
    ).all()
    stock: dict[str, dict[str, int]] = {}
    for product_type, product_subtype, quantity in rows:
        stock.setdefault(product_type, {})[product_subtype] = quantity
    return stock


def get_history(db: Session, since: datetime | None = None) -> list[StockHistory]:
    """History records since ``since`` (default: start of today in settings.TZ), newest first."""
    if since is None:
        since = start_of_day(settings.TZ)
    stmt = (
        select(StockHistory)
        .where(StockHistory.timestamp >= since)
        .order_by(StockHistory.timestamp.desc(), StockHistory.id.desc())
    )
    return list(db.scalars(stmt).all())
