# test_client_projection.py
import asyncio
import json

import httpx
import pytest

from app.client import OrdersProjection, StockProjection, SnapshotStore, ProjectionClient


ORDERS = [{"id": 2, "orderId": "ORD-2", "deliveryStatus": "pending", "paymentStatus": "unpaid"},
          {"id": 1, "orderId": "ORD-1", "deliveryStatus": "delivered", "paymentStatus": "paid"}]
STOCK = {"Wig": {"Straight": 7, "Curly": 2}}


def test_orders_projection_apply():
    p = OrdersProjection(ORDERS)
    assert p.apply("order-created", {"id": 3, "deliveryStatus": "pending", "paymentStatus": "partially_paid"})
    assert [o["id"] for o in p.orders] == [3, 2, 1]
    assert not p.apply("order-created", {"id": 3})
    assert p.apply("order-updated", {"id": 2, "deliveryStatus": "delivered", "paymentStatus": "paid"})
    assert p.find(2)["deliveryStatus"] == "delivered"
    assert p.apply("order-deleted", {"id": 1})
    assert not p.apply("order-deleted", {"id": 1})
    assert not p.apply("order-updated", {"orderId": "no numeric id"})
    assert len(p) == 2
    assert [o["id"] for o in p.pending] == [3]
    assert [o["id"] for o in p.partially_paid] == [3]
    assert [o["id"] for o in p.delivered] == [2]
    assert p.unpaid == []


def test_stock_projection_apply():
    p = StockProjection(STOCK)
    assert p.apply("stock-updated", {"productType": "Wig", "productSubtype": "Straight", "newStock": 5})
    assert p.quantity("Wig", "Straight") == 5
    assert p.apply("stock-updated", {"productType": "Bundle", "productSubtype": "Deep", "newStock": 1})
    assert p.apply("stock-updated", {"productType": "Bundle", "productSubtype": "Deep", "newStock": None})
    assert "Bundle" not in p.stock
    assert not p.apply("stock-updated", {"productType": "Wig", "newStock": 1})
    assert p.apply("stock-deleted", {"productType": "Wig"})
    assert p.stock == {}
    # constructor copies, the fixture stays untouched
    assert STOCK == {"Wig": {"Straight": 7, "Curly": 2}}


def test_snapshot_store_roundtrip():
    store = SnapshotStore("sqlite://")
    assert store.load("/orders") is None
    assert store.save("/orders", ORDERS)
    assert store.load("/orders") == ORDERS
    assert store.saved_at("/orders") is not None
    assert not store.save("/stock", {"bad": object()})
    store.clear("/orders")
    assert store.load("/orders") is None


class Server:
    """Tiny fake of the HTTP surface; counts calls per path."""

    def __init__(self):
        self.orders = list(ORDERS)
        self.stock = json.loads(json.dumps(STOCK))
        self.calls: dict[str, int] = {}
        self.down = False

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.calls[path] = self.calls.get(path, 0) + 1
        if self.down:
            raise httpx.ConnectError("offline", request=request)
        if path == "/api/orders":
            return httpx.Response(200, json=self.orders)
        if path == "/api/stock":
            return httpx.Response(200, json=self.stock)
        if path == "/api/stock/history":
            return httpx.Response(200, json=[{"id": 1, "action": "added"}])
        return httpx.Response(404, json={"error": "not_found"})


class Clock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


@pytest.fixture()
def server():
    return Server()


@pytest.fixture()
def clock():
    return Clock()


@pytest.fixture()
def make_client(server, clock):
    made = []

    def _make(store=None, **kw):
        http = httpx.AsyncClient(base_url="http://test", transport=httpx.MockTransport(server.handler))
        kw.setdefault("debounce_s", 0.01)
        c = ProjectionClient("http://test", store or SnapshotStore("sqlite://"), http=http, clock=clock, **kw)
        made.append(c)
        return c
    return _make


@pytest.mark.asyncio
async def test_fetch_debounce_and_freshness(make_client, server, clock):
    c = make_client()
    results = await asyncio.gather(c.fetch_orders(), c.fetch_orders(), c.fetch_orders())
    assert results == [True, True, True]
    assert server.calls["/api/orders"] == 1
    assert [o["id"] for o in c.orders.orders] == [2, 1]

    assert await c.fetch_orders() is False
    assert server.calls["/api/orders"] == 1

    clock.now += 31
    assert await c.fetch_orders() is True
    assert await c.fetch_orders(force=True) is True
    assert server.calls["/api/orders"] == 3
    await c.aclose()


@pytest.mark.asyncio
async def test_fetch_history(make_client):
    c = make_client()
    assert await c.fetch_history() == [{"id": 1, "action": "added"}]
    await c.aclose()


@pytest.mark.asyncio
async def test_bootstrap_falls_back_to_snapshot(make_client, server):
    store = SnapshotStore("sqlite://")
    store.save("/orders", [{"id": 9, "orderId": "ORD-9"}])
    store.save("/stock", {"Wig": {"Straight": 1}})
    server.down = True

    c = make_client(store)
    assert await c.bootstrap() is False
    assert c.orders.find(9) is not None
    assert c.stock.quantity("Wig", "Straight") == 1

    server.down = False
    assert await c.bootstrap() is True
    assert c.orders.find(9) is None
    assert store.load("/stock") == STOCK
    await c.aclose()


@pytest.mark.asyncio
async def test_handle_message_persists_changes(make_client):
    c = make_client()
    c.stock.replace(STOCK)
    assert c.handle_message({"event": "stock-updated",
                             "data": {"productType": "Wig", "productSubtype": "Curly", "newStock": 0}})
    assert c.store.load("/stock") == {"Wig": {"Straight": 7, "Curly": 0}}
    assert c.handle_message({"event": "order-created", "data": {"id": 5}})
    assert c.store.load("/orders") == [{"id": 5}]
    assert not c.handle_message({"event": "connected", "data": {"clientId": "x"}})
    await c.aclose()


@pytest.mark.asyncio
async def test_invalid_stock_update_triggers_refetch(make_client, server):
    c = make_client()
    assert not c.handle_message({"event": "stock-updated", "data": {"productType": "Wig"}})
    pending = list(c._background)
    assert len(pending) == 1
    assert await pending[0] is True
    assert server.calls["/api/stock"] == 1
    assert c.stock.stock == STOCK
    assert not c._background
    await c.aclose()


class FakeConnection:
    def __init__(self, frames, stop):
        self.frames = frames
        self.stop = stop

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def __aiter__(self):
        return self._iter()

    async def _iter(self):
        for f in self.frames:
            yield f
        self.stop.set()


@pytest.mark.asyncio
async def test_listen_refetches_on_connect_then_applies_events(make_client, server):
    stop = asyncio.Event()
    frames = [
        json.dumps({"event": "connected", "data": {"clientId": "abc"}}),
        "pong",
        "not json",
        json.dumps({"event": "stock-updated",
                    "data": {"productType": "Wig", "productSubtype": "Straight", "newStock": 6}}),
        json.dumps({"event": "order-deleted", "data": {"id": 1}}),
    ]
    urls = []

    def connect(url):
        urls.append(url)
        return FakeConnection(frames, stop)

    c = make_client(connect=connect)
    await asyncio.wait_for(c.listen(stop), timeout=5)

    assert urls == ["ws://test/ws"]
    assert server.calls["/api/orders"] == 1 and server.calls["/api/stock"] == 1
    assert c.stock.quantity("Wig", "Straight") == 6
    assert [o["id"] for o in c.orders.orders] == [2]
    assert c.is_connected is False
    await c.aclose()


@pytest.mark.asyncio
async def test_listen_gives_up_after_attempts(make_client):
    attempts = []

    def connect(url):
        attempts.append(url)
        raise OSError("connection refused")

    c = make_client(connect=connect, reconnect_attempts=2, reconnect_delay_s=0, reconnect_delay_max_s=0)
    await asyncio.wait_for(c.listen(), timeout=5)
    assert len(attempts) == 3
    await c.aclose()
