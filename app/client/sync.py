"""Keeps projections in step with the server.

Seeding is an HTTP fetch (debounced, skipped while the last fetch is
fresh); afterwards the websocket feed is applied event by event. Events
sent while the client was disconnected are lost, so every (re)connect
forces a full refetch.
"""
import asyncio
import json
import logging
import time
from typing import Any, Callable

import httpx
import websockets
from websockets.exceptions import WebSocketException

from app.client.projection import (
    OrdersProjection, StockProjection, ORDER_EVENTS, STOCK_EVENTS, STOCK_UPDATED, is_valid_stock_update,
)
from app.client.snapshot_store import SnapshotStore

logger = logging.getLogger(__name__)

ORDERS_PATH = "/orders"
STOCK_PATH = "/stock"
HISTORY_PATH = "/stock/history"


class ProjectionClient:
    def __init__(
        self,
        base_url: str,
        store: SnapshotStore,
        *,
        api_prefix: str = "/api",
        ws_path: str = "/ws",
        http: httpx.AsyncClient | None = None,
        connect: Callable[..., Any] = websockets.connect,
        debounce_s: float = 0.5,
        freshness_s: float = 30.0,
        reconnect_attempts: int = 10,
        reconnect_delay_s: float = 1.0,
        reconnect_delay_max_s: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_prefix = api_prefix
        self.ws_url = self.base_url.replace("https://", "wss://", 1).replace("http://", "ws://", 1) + ws_path
        self.store = store
        self.http = http or httpx.AsyncClient(base_url=self.base_url, timeout=10)
        self.connect = connect
        self.debounce_s = debounce_s
        self.freshness_s = freshness_s
        self.reconnect_attempts = reconnect_attempts
        self.reconnect_delay_s = reconnect_delay_s
        self.reconnect_delay_max_s = reconnect_delay_max_s
        self.clock = clock

        self.orders = OrdersProjection()
        self.stock = StockProjection()
        self.stock_history: list[dict] = []
        self.is_connected = False
        self.last_fetched: dict[str, float] = {}
        self._inflight: dict[str, asyncio.Task] = {}
        self._force: dict[str, bool] = {}
        self._background: set[asyncio.Task] = set()

    async def aclose(self) -> None:
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        await self.http.aclose()

    # ── seeding ────────────────────────────────────────────────────────────
    def _replace(self, path: str, data: Any) -> None:
        if path == ORDERS_PATH:
            self.orders.replace(data)
        else:
            self.stock.replace(data)

    def _persist(self, path: str) -> None:
        self.store.save(path, self.orders.orders if path == ORDERS_PATH else self.stock.stock)

    async def _run_fetch(self, path: str) -> bool:
        await asyncio.sleep(self.debounce_s)
        force = self._force.pop(path, False)
        last = self.last_fetched.get(path)
        if not force and last is not None and self.clock() - last < self.freshness_s:
            logger.debug("using recent %s data, skipping fetch", path)
            return False
        try:
            r = await self.http.get(f"{self.api_prefix}{path}")
            r.raise_for_status()
            data = r.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("fetching %s failed: %s", path, e)
            return False
        self._replace(path, data)
        self.last_fetched[path] = self.clock()
        self.store.save(path, data)
        return True

    async def _fetch(self, path: str, force: bool) -> bool:
        # calls arriving inside the debounce window share one request
        task = self._inflight.get(path)
        if task is not None and not task.done():
            self._force[path] = self._force.get(path, False) or force
            return await asyncio.shield(task)
        self._force[path] = force
        task = asyncio.create_task(self._run_fetch(path))
        self._inflight[path] = task
        return await asyncio.shield(task)

    async def fetch_orders(self, force: bool = False) -> bool:
        return await self._fetch(ORDERS_PATH, force)

    async def fetch_stock(self, force: bool = False) -> bool:
        return await self._fetch(STOCK_PATH, force)

    async def fetch_history(self) -> list[dict]:
        try:
            r = await self.http.get(f"{self.api_prefix}{HISTORY_PATH}")
            r.raise_for_status()
            self.stock_history = r.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("fetching stock history failed: %s", e)
        return self.stock_history

    async def refetch_all(self) -> None:
        await asyncio.gather(self.fetch_orders(force=True), self.fetch_stock(force=True))

    async def bootstrap(self) -> bool:
        """Seed from the local snapshot, then refresh from the server if it is reachable.

        Returns True when both resources were refreshed over the network.
        """
        for path in (ORDERS_PATH, STOCK_PATH):
            cached = self.store.load(path)
            if cached is not None:
                logger.info("seeding %s from local snapshot", path)
                self._replace(path, cached)
        results = await asyncio.gather(self.fetch_orders(force=True), self.fetch_stock(force=True))
        return all(results)

    # ── realtime feed ──────────────────────────────────────────────────────
    def handle_message(self, frame: dict) -> bool:
        event, data = frame.get("event"), frame.get("data")
        if event in ORDER_EVENTS:
            changed = self.orders.apply(event, data)
            if changed:
                self._persist(ORDERS_PATH)
            return changed
        if event in STOCK_EVENTS:
            if event == STOCK_UPDATED and not is_valid_stock_update(data):
                logger.error("invalid stock-updated payload: %r", data)
                task = asyncio.get_running_loop().create_task(self.fetch_stock(force=True))
                self._background.add(task)
                task.add_done_callback(self._background.discard)
                return False
            changed = self.stock.apply(event, data)
            if changed:
                self._persist(STOCK_PATH)
            return changed
        return False

    async def _consume(self, ws) -> None:
        async for raw in ws:
            if raw == "pong":
                continue
            try:
                frame = json.loads(raw)
            except ValueError:
                logger.warning("dropping non-JSON frame: %r", raw)
                continue
            self.handle_message(frame)

    async def listen(self, stop: asyncio.Event | None = None) -> None:
        """Stay connected until ``stop`` is set or reconnect attempts run out."""
        attempts = 0
        delay = self.reconnect_delay_s
        while stop is None or not stop.is_set():
            try:
                async with self.connect(self.ws_url) as ws:
                    logger.info("connected to %s", self.ws_url)
                    self.is_connected = True
                    attempts = 0
                    delay = self.reconnect_delay_s
                    await self.refetch_all()
                    await self._consume(ws)
            except (OSError, asyncio.TimeoutError, WebSocketException) as e:
                logger.warning("realtime connection error: %s", e)
            finally:
                if self.is_connected:
                    logger.info("disconnected from %s", self.ws_url)
                self.is_connected = False

            if stop is not None and stop.is_set():
                break
            attempts += 1
            if attempts > self.reconnect_attempts:
                logger.error("giving up on %s after %d attempts", self.ws_url, self.reconnect_attempts)
                break
            await asyncio.sleep(delay)
            delay = min(delay * 2, self.reconnect_delay_max_s)
