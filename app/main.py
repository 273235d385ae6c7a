from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.db import Base, engine, SessionLocal
from app.errors import install_error_handlers
from app.logging_setup import configure_logging
from app.middleware import RequestIdMiddleware
from app.realtime.hub import BroadcastHub
from app.schemas.common import Health
from app.services.notifications import PushNotifier
from app import models  # noqa: F401  (registers tables)

from app.routers import orders, stock, subscriptions, realtime

configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    app.state.hub = BroadcastHub()
    app.state.notifier = PushNotifier(
        SessionLocal, settings.VAPID_PRIVATE_KEY, settings.VAPID_SUBJECT, timeout=settings.PUSH_TIMEOUT_S,
    )
    await app.state.hub.start()
    try:
        yield
    finally:
        await app.state.hub.stop()


app = FastAPI(title="Supply Chain API", version="1.0.0", lifespan=lifespan)

# Middlewares
app.add_middleware(RequestIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH"],
    allow_headers=["*"],
)
install_error_handlers(app)

app.include_router(orders.router)
app.include_router(stock.router)
app.include_router(subscriptions.router)
app.include_router(realtime.router)


@app.get("/health", response_model=Health)
def health():
    return Health(status="OK", timestamp=datetime.now(timezone.utc).isoformat())
