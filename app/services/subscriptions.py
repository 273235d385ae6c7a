from sqlalchemy import select, delete
from sqlalchemy.orm import Session

from app.db import atomic
from app.errors import NotFoundError
from app.models.core import PushSubscription
from app.schemas.stock import SubscriptionIn

def subscription_dict(s: PushSubscription) -> dict:
    return {
        "endpoint": s.endpoint,
        "expirationTime": s.expiration_time,
        "keys": {"p256dh": s.p256dh, "auth": s.auth},
    }

def upsert_subscription(db: Session, body: SubscriptionIn) -> PushSubscription:
    with atomic(db):
        sub = db.scalars(select(PushSubscription).where(PushSubscription.endpoint == body.endpoint)).first()
        if sub is None:
            sub = PushSubscription(endpoint=body.endpoint)
            db.add(sub)
        sub.expiration_time = body.expiration_time
        sub.p256dh = body.keys.p256dh
        sub.auth = body.keys.auth
    return sub

def delete_subscription(db: Session, endpoint: str) -> None:
    with atomic(db):
        result = db.execute(delete(PushSubscription).where(PushSubscription.endpoint == endpoint))
        if result.rowcount == 0:
            raise NotFoundError("Subscription not found")

def list_subscriptions(db: Session) -> list[dict]:
    return [subscription_dict(s) for s in db.scalars(select(PushSubscription)).all()]

def prune_subscriptions(db: Session, endpoints: list[str]) -> int:
    if not endpoints:
        return 0
    with atomic(db):
        result = db.execute(delete(PushSubscription).where(PushSubscription.endpoint.in_(endpoints)))
    return result.rowcount
