from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse

from sqlalchemy import text
from sqlalchemy.exc import OperationalError as SAOperationalError

from api.router import api_router
from core.config import settings
from core.database import DatabaseUnavailableError, ENGINE, SessionLocal, is_transient_db_connectivity_error
from core.logging import setup_logging
from solver.errors import SchedulerError
from workers.registry import WorkerHandle, WorkerRegistry, record_registry_failure


logger = logging.getLogger(__name__)


def _unavailable() -> JSONResponse:
    return JSONResponse(
        status_code=503,
        content={
            "code": "DATABASE_UNAVAILABLE",
            "message": "Database temporarily unavailable. Please retry.",
        },
    )


def _database_error() -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={
            "code": "DATABASE_ERROR",
            "message": "Database operation failed.",
        },
    )


def create_app(
    registry: WorkerRegistry | None = None,
    *,
    watchdog_interval_seconds: float | None = None,
) -> FastAPI:
    setup_logging(environment=settings.environment)
    is_production = settings.environment.lower() == "production"

    if registry is None:
        registry = WorkerRegistry(
            settings.database_url,
            max_runtime_seconds=settings.worker_max_runtime_seconds,
        )

    def _record_watchdog_failures(handles: list[WorkerHandle]) -> None:
        with SessionLocal() as db:
            for handle in handles:
                record_registry_failure(db, handle)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.worker_registry.start_watchdog(
            watchdog_interval_seconds or settings.worker_watchdog_interval_seconds,
            on_finished=_record_watchdog_failures,
        )
        yield
        running = len(app.state.worker_registry)
        if running:
            logger.info("Stopping %d schedule workers", running)
        app.state.worker_registry.shutdown()

    app = FastAPI(
        title="Timetable Scheduler API",
        version="0.1.0",
        docs_url=None if is_production else "/docs",
        redoc_url=None if is_production else "/redoc",
        openapi_url=None if is_production else "/openapi.json",
        lifespan=lifespan,
    )
    app.state.worker_registry = registry

    @app.exception_handler(DatabaseUnavailableError)
    def _db_unavailable(_request, _exc: DatabaseUnavailableError):
        logger.warning("Database unavailable (503)", exc_info=_exc)
        return _unavailable()

    @app.exception_handler(SAOperationalError)
    def _sqlalchemy_operational_error(_request, exc: SAOperationalError):
        if is_transient_db_connectivity_error(exc):
            logger.warning("Database transient connectivity error (503)", exc_info=exc)
            return _unavailable()
        return _database_error()

    @app.exception_handler(SchedulerError)
    def _scheduler_error(_request, exc: SchedulerError):
        status_code = 400 if exc.code == "VALIDATION_FAILED" else 500
        return JSONResponse(
            status_code=status_code,
            content={"code": exc.code, "message": str(exc), "details": exc.details},
        )

    try:
        import psycopg2  # type: ignore
    except ImportError:
        psycopg2 = None

    if psycopg2 is not None:

        @app.exception_handler(psycopg2.OperationalError)  # type: ignore[attr-defined]
        def _psycopg2_operational_error(_request, exc: Exception):
            if is_transient_db_connectivity_error(exc):
                return _unavailable()
            return _database_error()

    allow_origins = [settings.frontend_origin]
    allow_origin_regex = None
    if not is_production:
        # Dev-friendly: allow the configured origin and any localhost port.
        allow_origins.extend(["http://localhost:5173", "http://127.0.0.1:5173"])
        allow_origin_regex = r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$"

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_origin_regex=allow_origin_regex,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health() -> dict:
        # Always respond; reflect DB availability without crashing.
        db_status = "ok"
        try:
            with ENGINE.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SAOperationalError:
            db_status = "down"

        return {"app": "ok", "database": db_status, "workers": len(app.state.worker_registry)}

    app.include_router(api_router, prefix="/api")
    return app


app = create_app()
