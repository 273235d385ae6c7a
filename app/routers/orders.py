from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.orm import Session

from app.config import settings
from app.db import get_db
from app.deps import get_events, get_hub, get_notifier, publish
from app.realtime.events import EventBuffer
from app.realtime.hub import BroadcastHub
from app.schemas.orders import (
    OrderIn, OrderOut, DeliveryIn, PaymentIn, PriorityIn, WorkerNotesIn, ReturnIn, OrderDeleted,
)
from app.services import order_engine
from app.services.notifications import PushNotifier

router = APIRouter(prefix=f"{settings.API_PREFIX}/orders", tags=["orders"])


@router.post("", response_model=OrderOut, status_code=201)
def create_order(
    body: OrderIn,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    events: EventBuffer = Depends(get_events),
    hub: BroadcastHub = Depends(get_hub),
    notifier: PushNotifier = Depends(get_notifier),
):
    order = order_engine.create_order(db, events, body)
    payload = order_engine.order_payload(order)
    publish(background_tasks, hub, events)
    background_tasks.add_task(notifier.notify_order_created, payload)
    return payload


@router.get("", response_model=list[OrderOut])
def list_orders(db: Session = Depends(get_db)):
    """All orders, newest first. Unpaginated: one small business' worth of rows."""
    return order_engine.list_orders(db)


@router.get("/{order_id}", response_model=OrderOut)
def get_order(order_id: int, db: Session = Depends(get_db)):
    return order_engine.get_order(db, order_id)


@router.delete("/{order_id}", response_model=OrderDeleted)
def delete_order(
    order_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    events: EventBuffer = Depends(get_events),
    hub: BroadcastHub = Depends(get_hub),
):
    order_engine.delete_order(db, events, order_id)
    publish(background_tasks, hub, events)
    return OrderDeleted(message="Order deleted successfully", id=order_id)


@router.patch("/{order_id}/delivery", response_model=OrderOut)
def update_delivery(
    order_id: int,
    body: DeliveryIn,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    events: EventBuffer = Depends(get_events),
    hub: BroadcastHub = Depends(get_hub),
):
    order = order_engine.update_delivery_status(db, events, order_id, body.delivery_status, body.delivered_by)
    publish(background_tasks, hub, events)
    return order


@router.patch("/{order_id}/payment", response_model=OrderOut)
def update_payment(
    order_id: int,
    body: PaymentIn,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    events: EventBuffer = Depends(get_events),
    hub: BroadcastHub = Depends(get_hub),
):
    order = order_engine.update_payment_status(db, events, order_id, body.payment_status, body.amount_paid)
    publish(background_tasks, hub, events)
    return order


@router.patch("/{order_id}/priority", response_model=OrderOut)
def update_priority(
    order_id: int,
    body: PriorityIn,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    events: EventBuffer = Depends(get_events),
    hub: BroadcastHub = Depends(get_hub),
):
    order = order_engine.update_priority(db, events, order_id, body.priority)
    publish(background_tasks, hub, events)
    return order


@router.patch("/{order_id}/worker-notes", response_model=OrderOut)
def add_worker_notes(
    order_id: int,
    body: WorkerNotesIn,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    events: EventBuffer = Depends(get_events),
    hub: BroadcastHub = Depends(get_hub),
):
    order = order_engine.add_worker_notes(db, events, order_id, body.worker_notes, body.worker_name)
    publish(background_tasks, hub, events)
    return order


@router.patch("/{order_id}/return", response_model=OrderOut)
def return_order(
    order_id: int,
    body: ReturnIn,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    events: EventBuffer = Depends(get_events),
    hub: BroadcastHub = Depends(get_hub),
):
    order = order_engine.return_order(db, events, order_id, body.quantity, body.return_type)
    publish(background_tasks, hub, events)
    return order


@router.patch("/{order_id}/cancel", response_model=OrderOut)
def cancel_order(
    order_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    events: EventBuffer = Depends(get_events),
    hub: BroadcastHub = Depends(get_hub),
):
    order = order_engine.cancel_order(db, events, order_id)
    publish(background_tasks, hub, events)
    return order
