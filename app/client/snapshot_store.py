import json
import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import String, Text, DateTime, create_engine, select, delete
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)


class ClientBase(DeclarativeBase):
    pass


class Snapshot(ClientBase):
    __tablename__ = "snapshot"
    path: Mapped[str] = mapped_column(String(200), primary_key=True)
    payload: Mapped[str] = mapped_column(Text)
    saved_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class SnapshotStore:
    """Durable last-known payload per resource path (``/orders``, ``/stock``).

    Writes are best-effort: a failing cache is logged and never interrupts
    the projection it backs.
    """

    def __init__(self, url: str = "sqlite:///./.supply_chain_cache.db", engine: Engine | None = None):
        if engine is None:
            kw = {"connect_args": {"check_same_thread": False}} if url.startswith("sqlite") else {}
            if url in ("sqlite://", "sqlite:///:memory:"):
                kw["poolclass"] = StaticPool
            engine = create_engine(url, **kw)
        self.engine = engine
        ClientBase.metadata.create_all(bind=engine)
        self._session = sessionmaker(bind=engine, expire_on_commit=False)

    def save(self, path: str, data: Any) -> bool:
        try:
            with self._session.begin() as s:
                s.merge(Snapshot(path=path, payload=json.dumps(data), saved_at=datetime.now(timezone.utc)))
            return True
        except (SQLAlchemyError, TypeError, ValueError) as e:
            logger.error("caching %s failed: %s", path, e)
            return False

    def load(self, path: str) -> Any | None:
        with self._session() as s:
            row = s.get(Snapshot, path)
            return json.loads(row.payload) if row else None

    def saved_at(self, path: str) -> datetime | None:
        with self._session() as s:
            return s.scalar(select(Snapshot.saved_at).where(Snapshot.path == path))

    def clear(self, path: str | None = None) -> None:
        with self._session.begin() as s:
            stmt = delete(Snapshot)
            if path is not None:
                stmt = stmt.where(Snapshot.path == path)
            s.execute(stmt)
