import logging

from sqlalchemy import create_engine, event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import NullPool

from cxdesk.config import settings

logger = logging.getLogger("cxdesk.database")

DATABASE_URL = str(settings.database_url)
IS_POSTGRES = DATABASE_URL.startswith("postgresql")
IS_SQLITE = DATABASE_URL.startswith("sqlite")


def _engine_options() -> tuple[dict, dict]:
    """Build ``create_engine`` kwargs plus the pool summary logged at startup."""

    pool = {
        "pool_size": None,
        "max_overflow": None,
        "pool_timeout": None,
        "pool_recycle": None,
        "use_null_pool": None,
    }
    if IS_SQLITE:
        # Sync routes run in the threadpool.
        return {"future": True, "connect_args": {"check_same_thread": False}}, pool
    if not IS_POSTGRES:
        return {"future": True}, pool

    options: dict = {
        "future": True,
        "pool_pre_ping": True,
        "connect_args": {"connect_timeout": settings.db_connect_timeout_seconds},
    }
    if settings.db_use_null_pool:
        options["poolclass"] = NullPool
        pool["use_null_pool"] = "true"
        return options, pool

    pool.update(
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=settings.db_pool_timeout_seconds,
        pool_recycle=settings.db_pool_recycle_seconds,
        use_null_pool="false",
    )
    options.update({k: v for k, v in pool.items() if k != "use_null_pool"})
    return options, pool


def enable_sqlite_savepoints(target_engine) -> None:
    """Let SQLAlchemy emit BEGIN on pysqlite so SAVEPOINT nests inside the transaction.

    Float provisioning and guarded inserts rely on ``Session.begin_nested()``.
    """

    @event.listens_for(target_engine, "connect")
    def _autocommit_driver(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(target_engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")


_ENGINE_OPTIONS, POOL_CONFIG = _engine_options()

engine = create_engine(DATABASE_URL, **_ENGINE_OPTIONS)
if IS_SQLITE:
    enable_sqlite_savepoints(engine)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
Base = declarative_base()


def _apply_statement_timeout(db) -> None:
    timeout_ms = settings.db_statement_timeout_ms
    if not IS_POSTGRES or timeout_ms <= 0:
        return
    try:
        db.execute(text(f"SET statement_timeout = {int(timeout_ms)}"))
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning("statement_timeout_not_applied", extra={"error": str(exc)})


def get_db():
    """Request-scoped session; services commit through ``atomic_unit``."""

    db = SessionLocal()
    try:
        _apply_statement_timeout(db)
        yield db
    finally:
        db.close()
