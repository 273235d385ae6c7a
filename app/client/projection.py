"""Local mirrors of server state, kept current by realtime events.

Both projections are plain in-memory structures; ``apply`` returns True
when the mirror changed so the caller knows to persist a new snapshot.
"""
from typing import Any

ORDER_CREATED = "order-created"
ORDER_UPDATED = "order-updated"
ORDER_DELETED = "order-deleted"
STOCK_UPDATED = "stock-updated"
STOCK_DELETED = "stock-deleted"

ORDER_EVENTS = (ORDER_CREATED, ORDER_UPDATED, ORDER_DELETED)
STOCK_EVENTS = (STOCK_UPDATED, STOCK_DELETED)


class OrdersProjection:
    """Orders newest-first, keyed by the numeric ``id``."""

    def __init__(self, orders: list[dict] | None = None):
        self.orders: list[dict] = list(orders or [])

    def replace(self, orders: list[dict]) -> None:
        self.orders = list(orders)

    def _index(self, order_id) -> int:
        for i, o in enumerate(self.orders):
            if o.get("id") == order_id:
                return i
        return -1

    def find(self, order_id) -> dict | None:
        i = self._index(order_id)
        return self.orders[i] if i >= 0 else None

    def apply(self, event: str, data: dict[str, Any]) -> bool:
        if not isinstance(data, dict) or "id" not in data:
            return False
        i = self._index(data["id"])
        if event == ORDER_CREATED:
            if i >= 0:
                return False
            self.orders.insert(0, data)
            return True
        if event == ORDER_UPDATED:
            if i >= 0:
                self.orders[i] = data
            else:
                self.orders.insert(0, data)
            return True
        if event == ORDER_DELETED:
            if i < 0:
                return False
            del self.orders[i]
            return True
        return False

    # derived views
    @property
    def pending(self) -> list[dict]:
        return [o for o in self.orders if o.get("deliveryStatus") != "delivered"]

    @property
    def delivered(self) -> list[dict]:
        return [o for o in self.orders if o.get("deliveryStatus") == "delivered"]

    @property
    def unpaid(self) -> list[dict]:
        return [o for o in self.orders if o.get("paymentStatus") == "unpaid"]

    @property
    def partially_paid(self) -> list[dict]:
        return [o for o in self.orders if o.get("paymentStatus") == "partially_paid"]

    def __len__(self) -> int:
        return len(self.orders)


def is_valid_stock_update(data) -> bool:
    return isinstance(data, dict) and bool(data.get("productType")) and bool(data.get("productSubtype"))


class StockProjection:
    """Nested ``{productType: {productSubtype: quantity}}`` mirror."""

    def __init__(self, stock: dict[str, dict[str, int]] | None = None):
        self.stock: dict[str, dict[str, int]] = {t: dict(s) for t, s in (stock or {}).items()}

    def replace(self, stock: dict[str, dict[str, int]]) -> None:
        self.stock = {t: dict(s) for t, s in stock.items()}

    def quantity(self, product_type: str, product_subtype: str) -> int | None:
        return self.stock.get(product_type, {}).get(product_subtype)

    def apply(self, event: str, data: dict[str, Any]) -> bool:
        if event == STOCK_DELETED:
            if not isinstance(data, dict):
                return False
            return self.stock.pop(data.get("productType"), None) is not None
        if event != STOCK_UPDATED or not is_valid_stock_update(data):
            return False

        product_type, product_subtype = data["productType"], data["productSubtype"]
        new_stock = data.get("newStock")
        if new_stock is None:
            subtypes = self.stock.get(product_type)
            if subtypes is None or product_subtype not in subtypes:
                return False
            del subtypes[product_subtype]
            if not subtypes:
                del self.stock[product_type]
            return True
        self.stock.setdefault(product_type, {})[product_subtype] = new_stock
        return True
