from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from app.config import settings
from app.errors import AppError, TransactionError


class Base(DeclarativeBase):
    pass


def _serialize_sqlite_writers(engine: Engine) -> None:
    # pysqlite defers BEGIN until the first write; take the write lock up front
    # so a read-check-then-write cannot interleave with another writer.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def make_engine(url: str, **kw) -> Engine:
    if url.startswith("sqlite"):
        connect_args = kw.pop("connect_args", {})
        connect_args.setdefault("check_same_thread", False)
        connect_args.setdefault("timeout", 30)
        engine = create_engine(url, connect_args=connect_args, **kw)
        _serialize_sqlite_writers(engine)
        return engine
    kw.setdefault("pool_size", settings.DB_POOL_SIZE)
    kw.setdefault("max_overflow", settings.DB_MAX_OVERFLOW)
    kw.setdefault("pool_pre_ping", True)
    return create_engine(url, **kw)


engine = make_engine(settings.DB_URL)
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """Run a block as one transaction.

    Commits when the block exits normally. Any exception rolls back every
    statement issued since the transaction began; storage failures are
    re-raised as TransactionError, domain errors propagate unchanged.
    """
    try:
        yield db
        db.commit()
    except AppError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        raise TransactionError(str(exc.__class__.__name__)) from exc
    except Exception:
        db.rollback()
        raise
