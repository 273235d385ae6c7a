from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.orm import Session

from app.config import settings
from app.db import get_db
from app.deps import get_events, get_hub, publish
from app.realtime.events import EventBuffer
from app.realtime.hub import BroadcastHub
from app.schemas.stock import StockIn, StockKeyIn, StockChangeOut, StockHistoryOut
from app.services import stock_ledger

router = APIRouter(prefix=f"{settings.API_PREFIX}/stock", tags=["stock"])


@router.post("", response_model=StockChangeOut, status_code=201)
def add_stock(
    body: StockIn,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    events: EventBuffer = Depends(get_events),
    hub: BroadcastHub = Depends(get_hub),
):
    new_stock = stock_ledger.add_stock(db, events, body.product_type, body.product_subtype, body.quantity)
    publish(background_tasks, hub, events)
    return StockChangeOut(
        message="Stock updated successfully", product_type=body.product_type,
        product_subtype=body.product_subtype, quantity=body.quantity, new_stock=new_stock,
    )


@router.put("", response_model=StockChangeOut)
def set_stock(
    body: StockIn,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    events: EventBuffer = Depends(get_events),
    hub: BroadcastHub = Depends(get_hub),
):
    new_stock = stock_ledger.set_stock(db, events, body.product_type, body.product_subtype, body.quantity)
    publish(background_tasks, hub, events)
    return StockChangeOut(
        message="Stock updated successfully", product_type=body.product_type,
        product_subtype=body.product_subtype, quantity=new_stock, new_stock=new_stock,
    )


@router.delete("", response_model=StockChangeOut)
def delete_subtype(
    body: StockKeyIn,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    events: EventBuffer = Depends(get_events),
    hub: BroadcastHub = Depends(get_hub),
):
    stock_ledger.delete_subtype(db, events, body.product_type, body.product_subtype)
    publish(background_tasks, hub, events)
    return StockChangeOut(
        message="Stock subtype deleted successfully",
        product_type=body.product_type, product_subtype=body.product_subtype,
    )


@router.get("", response_model=dict[str, dict[str, int]])
def get_stock(db: Session = Depends(get_db)):
    return stock_ledger.get_all(db)


@router.get("/history", response_model=list[StockHistoryOut])
def get_history(db: Session = Depends(get_db)):
    """Today's ledger history (day boundary in settings.TZ), newest first."""
    return stock_ledger.get_history(db)


@router.delete("/{product_type}", response_model=StockChangeOut)
def delete_product_type(
    product_type: str,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    events: EventBuffer = Depends(get_events),
    hub: BroadcastHub = Depends(get_hub),
):
    stock_ledger.delete_product_type(db, events, product_type)
    publish(background_tasks, hub, events)
    return StockChangeOut(message="Product type deleted successfully", product_type=product_type)
