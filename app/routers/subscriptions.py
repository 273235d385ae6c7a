from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.config import settings
from app.db import get_db
from app.errors import NotFoundError
from app.schemas.common import Msg
from app.schemas.stock import SubscriptionIn, SubscriptionKeyIn, VapidKeyOut
from app.services.subscriptions import upsert_subscription, delete_subscription

router = APIRouter(prefix=f"{settings.API_PREFIX}/subscriptions", tags=["subscriptions"])

@router.get("/public-key", response_model=VapidKeyOut)
def public_key():
    """VAPID application server key browsers need before calling pushManager.subscribe()."""
    if not settings.VAPID_PUBLIC_KEY:
        raise NotFoundError("Push notifications are not configured")
    return VapidKeyOut(public_key=settings.VAPID_PUBLIC_KEY)

@router.post("", response_model=Msg, status_code=201)
def subscribe(body: SubscriptionIn, db: Session = Depends(get_db)):
    upsert_subscription(db, body)
    return Msg(message="Subscription saved")

@router.delete("", response_model=Msg)
def unsubscribe(body: SubscriptionKeyIn, db: Session = Depends(get_db)):
    delete_subscription(db, body.endpoint)
    return Msg(message="Subscription removed")
