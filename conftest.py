# conftest.py
import os

os.environ.setdefault("DB_URL", "sqlite://")
os.environ.setdefault("VAPID_PRIVATE_KEY", "")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db import Base, get_db, make_engine
from app.main import app
from app.realtime.events import EventBuffer


class FakeNotifier:
    def __init__(self):
        self.sent: list[dict] = []

    async def notify_order_created(self, order: dict) -> None:
        self.sent.append(order)


@pytest.fixture()
def engine():
    eng = make_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture()
def db(session_factory):
    s = session_factory()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture()
def events():
    return EventBuffer()


@pytest.fixture()
def notifier():
    return FakeNotifier()


@pytest.fixture()
def client(session_factory, notifier):
    def override_get_db():
        s = session_factory()
        try:
            yield s
        finally:
            s.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        app.state.notifier = notifier
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def api():
    return "/api"


@pytest.fixture()
def order_body():
    def _make(**overrides):
        body = {
            "customerName": "Ama Mensah",
            "customerPhone": "0244000000",
            "productType": "Wig",
            "productSubtype": "Straight",
            "quantity": 3,
            "totalAmount": 300.0,
            "deliveryLocation": "Osu, Accra",
        }
        body.update(overrides)
        return body
    return _make
