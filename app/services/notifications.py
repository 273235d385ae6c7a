"""Best-effort Web Push fan-out for new orders.

Each stored subscription gets the payload signed with the server's VAPID
key through pywebpush. pywebpush and the ORM session are blocking, so
every call is pushed onto the threadpool; nothing here ever raises into
the request that triggered it.
"""
import asyncio
import json
import logging
from typing import Callable

from pywebpush import WebPushException, webpush
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.errors import NotificationDeliveryError
from app.services.subscriptions import list_subscriptions, prune_subscriptions

logger = logging.getLogger(__name__)

GONE_STATUSES = (404, 410)


def new_order_notification(order: dict) -> dict:
    return {
        "title": "New Order Created",
        "body": f"Order {order['orderId']} - {order['quantity']} units of {order['productSubtype']}",
        "icon": "/icon.png",
        "actions": [{"action": "view", "title": "View Order"}],
    }


class PushNotifier:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        vapid_private_key: str | None,
        vapid_subject: str,
        timeout: float = 3.0,
        sender: Callable = webpush,
    ):
        self.session_factory = session_factory
        self.vapid_private_key = vapid_private_key
        self.vapid_subject = vapid_subject
        self.timeout = timeout
        self.sender = sender

    @property
    def enabled(self) -> bool:
        return bool(self.vapid_private_key)

    def _deliver(self, subscription: dict, payload: dict) -> None:
        try:
            self.sender(
                subscription_info=subscription,
                data=json.dumps(payload),
                vapid_private_key=self.vapid_private_key,
                vapid_claims={"sub": self.vapid_subject},
                timeout=self.timeout,
            )
        except WebPushException as exc:
            status = exc.response.status_code if exc.response is not None else None
            raise NotificationDeliveryError(
                f"push service refused: {exc}", endpoint=subscription["endpoint"], status=status
            )

    async def send(self, subscriptions: list[dict], payload: dict) -> list[str]:
        """Deliver ``payload`` to every subscription; returns endpoints the push service reported gone."""
        if not self.enabled or not subscriptions:
            return []
        results = await asyncio.gather(
            *(run_in_threadpool(self._deliver, s, payload) for s in subscriptions), return_exceptions=True
        )
        gone: list[str] = []
        for sub, res in zip(subscriptions, results):
            if isinstance(res, NotificationDeliveryError):
                logger.warning("push delivery failed for %s: %s", sub["endpoint"], res.message)
                if res.extra.get("status") in GONE_STATUSES:
                    gone.append(sub["endpoint"])
            elif isinstance(res, Exception):
                logger.warning("push delivery error for %s: %r", sub["endpoint"], res)
        return gone

    def _load_subscriptions(self) -> list[dict]:
        with self.session_factory() as db:
            return list_subscriptions(db)

    def _prune(self, endpoints: list[str]) -> int:
        with self.session_factory() as db:
            return prune_subscriptions(db, endpoints)

    async def notify_order_created(self, order: dict) -> None:
        if not self.enabled:
            logger.debug("VAPID key not configured, skipping notification for %s", order.get("orderId"))
            return
        try:
            subscriptions = await run_in_threadpool(self._load_subscriptions)
            gone = await self.send(subscriptions, new_order_notification(order))
            if gone:
                pruned = await run_in_threadpool(self._prune, gone)
                logger.info("pruned %d expired push subscriptions", pruned)
        except Exception:
            logger.exception("notification fan-out failed for order %s", order.get("orderId"))
