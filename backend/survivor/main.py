"""
backend/survivor/main.py

Purpose:
    FastAPI application bootstrap, middleware/router wiring, scheduler
    lifecycle and startup loading of the persisted results cache.

Dependencies:
    - survivor.database
    - survivor.services.survivor_service
    - survivor.workers
"""

import logging
from contextlib import asynccontextmanager

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import ConnectionFailure, ServerSelectionTimeoutError

import survivor.database as _db
from survivor.config import settings
from survivor.database import close_db, connect_db
from survivor.errors import (
    DataAmbiguousError,
    DataMissingError,
    IntegrityViolationError,
    ProviderUnavailableError,
)
from survivor.middleware.logging import StructuredLoggingMiddleware, setup_logging

logger = logging.getLogger("survivor")
scheduler = AsyncIOScheduler()
_AUTOMATED_JOB_IDS = {"results_sync", "survivor_resolver", "integrity_audit"}
_automation_enabled = False


def _build_automated_job_specs() -> list[dict]:
    from survivor.workers.integrity_audit import run_integrity_audit
    from survivor.workers.results_sync import sync_results
    from survivor.workers.survivor_resolver import resolve_survivor_statuses

    return [
        {"id": "results_sync", "func": sync_results, "trigger_kwargs": {"minutes": settings.RESULTS_SYNC_INTERVAL_MINUTES}},
        {"id": "survivor_resolver", "func": resolve_survivor_statuses, "trigger_kwargs": {"minutes": settings.RESULTS_SYNC_INTERVAL_MINUTES}},
        {"id": "integrity_audit", "func": run_integrity_audit, "trigger_kwargs": {"minutes": settings.AUDIT_INTERVAL_MINUTES}},
    ]


def set_automation_enabled(enabled: bool) -> dict:
    global _automation_enabled

    changed = enabled != _automation_enabled
    added = removed = 0
    if enabled:
        for spec in _build_automated_job_specs():
            if scheduler.get_job(spec["id"]):
                continue
            # max_instances=1: a slow run is skipped, never stacked
            scheduler.add_job(
                spec["func"], "interval", id=spec["id"], replace_existing=True,
                max_instances=1, coalesce=True, **spec["trigger_kwargs"],
            )
            added += 1
    else:
        for job_id in _AUTOMATED_JOB_IDS:
            if scheduler.get_job(job_id):
                scheduler.remove_job(job_id)
                removed += 1
    _automation_enabled = enabled

    return {
        "enabled": _automation_enabled,
        "changed": changed,
        "added_jobs": added,
        "removed_jobs": removed,
        "scheduled_jobs": sum(1 for job in scheduler.get_jobs() if job.id in _AUTOMATED_JOB_IDS),
    }


def automation_enabled() -> bool:
    return _automation_enabled


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    await connect_db()

    from survivor.providers.espn import espn_provider
    from survivor.services.results_cache import load_cache_from_db
    from survivor.services.survivor_service import results_cache
    from survivor.workers.integrity_audit import cancel_event

    await load_cache_from_db(results_cache)

    scheduler.start()
    set_automation_enabled(settings.AUTOMATION_ENABLED)
    if settings.AUTOMATION_ENABLED:
        logger.info("Automated workers enabled: %s", sorted(_AUTOMATED_JOB_IDS))
    else:
        logger.info("Automated workers disabled on startup. Use Admin to activate.")

    yield

    cancel_event.set()
    if scheduler.running:
        scheduler.shutdown(wait=False)
    await espn_provider.aclose()
    await close_db()


app = FastAPI(
    title="NerdUniverse Survivor",
    description="NFL survivor pool elimination engine",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "X-Admin-Key", "X-Admin-Actor"],
)
app.add_middleware(StructuredLoggingMiddleware)

from survivor.routers.admin import router as admin_router
from survivor.routers.survivor import router as survivor_router

app.include_router(survivor_router)
app.include_router(admin_router)


@app.exception_handler(DataAmbiguousError)
async def ambiguous_data_handler(request: Request, exc: DataAmbiguousError):
    logger.warning("Ambiguous data on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(DataMissingError)
async def missing_data_handler(request: Request, exc: DataMissingError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(IntegrityViolationError)
async def integrity_violation_handler(request: Request, exc: IntegrityViolationError):
    logger.warning("Integrity violation on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=409, content={"detail": str(exc), "needs_review": True})


@app.exception_handler(ProviderUnavailableError)
async def provider_unavailable_handler(request: Request, exc: ProviderUnavailableError):
    return JSONResponse(status_code=503, content={"detail": str(exc), "provider": exc.provider})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Return clean validation errors without leaking internal field paths."""
    errors = []
    for err in exc.errors():
        loc = err.get("loc", ())
        field = ".".join(str(part) for part in loc[1:]) if len(loc) > 1 else str(loc[-1]) if loc else "unknown"
        errors.append({"field": field, "message": err.get("msg", "Invalid value.")})
    return JSONResponse(status_code=422, content={"detail": "Validation error.", "errors": errors})


@app.exception_handler(ServerSelectionTimeoutError)
async def db_timeout_handler(request: Request, exc: ServerSelectionTimeoutError):
    logger.error("Database timeout: %s %s", request.method, request.url.path)
    return JSONResponse(status_code=503, content={"detail": "Service temporarily unavailable."})


@app.exception_handler(ConnectionFailure)
async def db_connection_handler(request: Request, exc: ConnectionFailure):
    logger.error("Database connection failure: %s %s", request.method, request.url.path)
    return JSONResponse(status_code=503, content={"detail": "Service temporarily unavailable."})


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    logger.warning("ValueError on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=400, content={"detail": str(exc) or "Invalid input."})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "An internal error occurred."})


@app.get("/health")
async def health():
    """Health check: DB ping and provider circuit state."""
    from survivor.providers.espn import espn_provider

    try:
        result = await _db.db.command("ping")
        db_ok = result.get("ok") == 1.0
    except Exception:
        db_ok = False

    return {
        "status": "healthy" if db_ok else "degraded",
        "db": "connected" if db_ok else "disconnected",
        "results_provider": {
            "name": espn_provider.name,
            "circuit_open": espn_provider.circuit_open,
        },
    }
