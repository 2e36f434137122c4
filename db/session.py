from sqlalchemy.orm import declarative_base
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool
from sqlalchemy import event
from core.config import settings
import logging

Base = declarative_base()
logger = logging.getLogger("fanlist")

def _to_async_database_url(url: str) -> str:
    if not url:
        return url
    if url.startswith("mysql+pymysql://"):
        return url.replace("mysql+pymysql://", "mysql+aiomysql://", 1)
    if url.startswith("mysql://"):
        return url.replace("mysql://", "mysql+aiomysql://", 1)
    if url.startswith("sqlite:///"):
        return url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    return url

def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url:
            # One shared connection, otherwise every checkout sees an empty database
            kwargs["poolclass"] = StaticPool
        return kwargs
    # pool_recycle < DB wait_timeout (often 600s); short pool_timeout; modest pool size
    return {
        "pool_pre_ping": settings.DB_PRE_PING,
        "pool_recycle": settings.DB_POOL_RECYCLE,
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
        "pool_timeout": settings.DB_POOL_TIMEOUT,
        "connect_args": {"connect_timeout": settings.DB_CONNECT_TIMEOUT},
    }

def _use_explicit_sqlite_transactions(async_engine) -> None:
    # The sqlite3 driver defers BEGIN, which breaks SAVEPOINT; emit BEGIN ourselves
    @event.listens_for(async_engine.sync_engine, "connect")
    def _on_sqlite_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(async_engine.sync_engine, "begin")
    def _on_sqlite_begin(conn):
        conn.exec_driver_sql("BEGIN")

def build_engine(url: str):
    async_url = _to_async_database_url(url)
    async_engine = create_async_engine(async_url, future=True, echo=False, **_engine_kwargs(async_url))
    if async_url.startswith("sqlite"):
        _use_explicit_sqlite_transactions(async_engine)
    return async_engine

def build_session_factory(bind) -> async_sessionmaker:
    return async_sessionmaker(bind=bind, class_=AsyncSession, expire_on_commit=False)

engine = build_engine(settings.DATABASE_URL)
SessionLocal = build_session_factory(engine)

# Lightweight pool logging
@event.listens_for(engine.sync_engine, "connect")
def _on_connect(dbapi_connection, connection_record):
    logger.debug("DB connect: id=%s", id(connection_record))

@event.listens_for(engine.sync_engine, "checkout")
def _on_checkout(dbapi_connection, connection_record, connection_proxy):
    logger.debug("DB checkout: id=%s", id(connection_record))

@event.listens_for(engine.sync_engine, "checkin")
def _on_checkin(dbapi_connection, connection_record):
    logger.debug("DB checkin: id=%s", id(connection_record))
