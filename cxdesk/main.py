import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cxdesk.api.router import api_router
from cxdesk.config import PROJECT_ROOT, settings
from cxdesk.core.errors import CxDeskError, cxdesk_error_handler
from cxdesk.core.observability import (
    global_exception_handler,
    request_logging_middleware,
    uptime_seconds,
    utc_now_iso,
)
from cxdesk.database import POOL_CONFIG, engine

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
logger = logging.getLogger("cxdesk")

# Shared by every worker process so concurrent boots migrate once.
_MIGRATION_LOCK_KEY = 60417733


def upgrade_schema() -> None:
    """Apply alembic migrations up to head when RUN_MIGRATIONS_ON_START is set.

    Failures are logged and the API keeps serving; database-backed
    endpoints report the problem on first use.
    """

    if not settings.run_migrations_on_start or settings.is_test:
        return

    from alembic import command
    from alembic.config import Config
    from sqlalchemy import text

    cfg = Config(str(PROJECT_ROOT / "alembic.ini"))
    logger.info(
        "schema_upgrade_target",
        extra={"driver": engine.url.drivername, "host": engine.url.host, "db": engine.url.database},
    )

    try:
        with engine.connect() as connection:
            locking = connection.dialect.name == "postgresql"
            if locking:
                acquired = connection.execute(
                    text("select pg_try_advisory_lock(:key)"), {"key": _MIGRATION_LOCK_KEY}
                ).scalar()
                if not acquired:
                    logger.info("schema_upgrade_skipped", extra={"reason": "lock_held"})
                    return
            cfg.attributes["connection"] = connection
            try:
                command.upgrade(cfg, "head")
                logger.info("schema_upgraded")
            finally:
                if locking:
                    connection.execute(
                        text("select pg_advisory_unlock(:key)"), {"key": _MIGRATION_LOCK_KEY}
                    )
                    connection.commit()
    except Exception as exc:
        logger.error("schema_upgrade_failed", extra={"error": str(exc)})


def create_app() -> FastAPI:
    prefix = settings.api_prefix.rstrip("/")
    docs = settings.enable_docs

    application = FastAPI(
        title=settings.app_name,
        version=settings.build_version or "dev",
        docs_url="/docs" if docs else None,
        redoc_url="/redoc" if docs else None,
        openapi_url=f"{prefix}/openapi.json" if docs else None,
    )
    application.state.logger = logger

    application.add_exception_handler(CxDeskError, cxdesk_error_handler)
    application.add_exception_handler(Exception, global_exception_handler)
    application.middleware("http")(request_logging_middleware)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(api_router, prefix=prefix)
    return application


app = create_app()


@app.on_event("startup")
def _on_startup():
    logger.info(
        "cxdesk_starting",
        extra={
            "pid": os.getpid(),
            "environment": settings.environment,
            "web_concurrency": os.getenv("WEB_CONCURRENCY"),
            "db_pool": POOL_CONFIG,
        },
    )
    upgrade_schema()


@app.get("/health", tags=["meta"])
@app.get("/healthz", tags=["meta"])
def healthcheck():
    """Liveness check; the keys are relied on by monitoring."""

    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.environment,
        "time": utc_now_iso(),
        "uptime_seconds": round(uptime_seconds(), 2),
        "version": settings.build_version,
    }
