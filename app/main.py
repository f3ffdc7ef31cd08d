from __future__ import annotations

import logging
import os
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from sqlalchemy import text as sql_text
from sqlalchemy.exc import SQLAlchemyError

from app.config import AppConfig, load_config
from app.db.base import get_engine
from app.db.migrations_runner import apply_migrations
from app.http.problem import (
    handle_flow_engine_error,
    handle_http_exception,
    handle_request_validation_error,
    handle_unexpected_error,
)
from app.http.request_id import RequestIdMiddleware
from app.logging_setup import configure_logging
from app.logic import events
from app.logic.errors import FlowEngineError
from app.logic.flow_data import FlowDataSource, QuestionReferenceData
from app.logic.services import build_services
from app.routes import api_router

logger = logging.getLogger(__name__)


def _auto_migrate_enabled() -> bool:
    return os.getenv("AUTO_APPLY_MIGRATIONS", "").strip().lower() in {"1", "true", "yes", "on"}


def create_app(
    data_source: Optional[FlowDataSource] = None,
    reference_data: Optional[QuestionReferenceData] = None,
    config: Optional[AppConfig] = None,
    job_dispatcher: Optional[events.JobDispatcher] = None,
) -> FastAPI:
    """Build the FastAPI application.

    `data_source` replaces the SQL-backed collaborators (tests pass an
    in-memory fake); when omitted the shared SQLAlchemy engine is used and
    migrations run on startup if AUTO_APPLY_MIGRATIONS is set.
    `job_dispatcher` forwards background jobs to the worker queue; without
    one an already installed dispatcher is kept, falling back to
    `events.log_dispatcher`.
    """
    configure_logging()
    cfg = config or load_config()

    app = FastAPI(title="Survey Flow Service")
    app.state.config = cfg
    app.state.services = build_services(cfg, data_source, reference_data)
    if job_dispatcher is not None:
        events.set_dispatcher(job_dispatcher)
    elif events.get_dispatcher() is None:
        events.set_dispatcher(events.log_dispatcher)

    app.add_exception_handler(HTTPException, handle_http_exception)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)
    app.add_exception_handler(FlowEngineError, handle_flow_engine_error)
    app.add_exception_handler(Exception, handle_unexpected_error)
    app.add_middleware(RequestIdMiddleware)

    uses_sql = data_source is None
    if uses_sql:
        get_engine(cfg.database.dsn)

    @app.on_event("startup")
    def _apply_migrations() -> None:
        if not uses_sql:
            return
        if not _auto_migrate_enabled():
            logger.info("AUTO_APPLY_MIGRATIONS disabled; skipping migrations at startup")
            return
        try:
            applied = apply_migrations(get_engine())
        except Exception:
            logger.error("Failed to apply migrations at startup", exc_info=True)
            raise
        logger.info("startup_migrations_applied count=%s", len(applied))

    app.include_router(api_router, prefix="/api/v1")
    from app.routes.test_support import router as test_support_router
    app.include_router(test_support_router)

    @app.get("/health")
    def health() -> dict:
        if not uses_sql:
            return {"status": "ok", "db": False}
        try:
            with get_engine().connect() as conn:
                conn.execute(sql_text("SELECT 1"))
            return {"status": "ok", "db": True}
        except SQLAlchemyError as e:
            logger.error("Health DB check failed", exc_info=True)
            return {"status": "degraded", "db": False, "reason": str(e)}

    return app


# Intentionally do not instantiate the app at import time to prevent side effects.
