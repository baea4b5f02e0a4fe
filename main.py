from __future__ import annotations

import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from apscheduler.triggers.interval import IntervalTrigger
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from core.catalog.manager import CatalogManager
from core.catalog.refresh import AUDIT_JOB_ID, refresh_sessions, run_catalog_audit
from core.catalog.types import BucketState
from core.database import client as mongo_client
from core.delivery.manager import DeliveryManager
from core.logging_config import configure_logging, get_logger
from core.redis_cache import cache_db
from core.response_envelope import (
    apply_response_documentation,
    document_response,
    error_response,
    format_validation_error_details,
    http_exception_response,
    request_id_of,
)
from core.scheduler import scheduler
from core.settings import get_settings
from core.storage.manager import ObjectStoreManager
from repositories.document_repo import ensure_document_indexes

settings = get_settings()
configure_logging(settings.log_level)
logger = get_logger(__name__)

HEARTBEAT_KEY = "apscheduler:heartbeat"


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class RequestTimingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.perf_counter()
        response = await call_next(request)
        response.headers["X-Process-Time"] = str(time.perf_counter() - start_time)
        return response


def apscheduler_heartbeat() -> None:
    cache_db.set(HEARTBEAT_KEY, str(time.time()), ex=60)


async def catalog_audit_job() -> None:
    await run_catalog_audit(CatalogManager.get_instance().catalog)


@asynccontextmanager
async def lifespan(app: FastAPI):
    ObjectStoreManager.configure_from_settings()
    catalog_manager = CatalogManager.configure_from_settings()
    DeliveryManager.configure_from_settings()
    await ensure_document_indexes()

    provision = await catalog_manager.provisioner.ensure_ready(catalog_manager.bucket)
    if not provision.ready:
        # Requests that need the bucket retry provisioning and report 503 until it works.
        logger.error("startup_bucket_not_ready", bucket=provision.bucket, reason=provision.reason)

    scheduler.add_job(
        apscheduler_heartbeat,
        trigger=IntervalTrigger(seconds=15),
        id="apscheduler_heartbeat",
        name="APScheduler Heartbeat",
        replace_existing=True,
    )
    scheduler.add_job(
        catalog_audit_job,
        trigger=IntervalTrigger(seconds=settings.catalog_audit_interval_seconds),
        id=AUDIT_JOB_ID,
        name="Catalog audit",
        replace_existing=True,
    )
    scheduler.start()

    try:
        yield
    finally:
        refresh_sessions.close_all()
        scheduler.shutdown(wait=False)


app = FastAPI(lifespan=lifespan, title="Document Relay API")
app.add_middleware(RequestIdMiddleware)
app.add_middleware(RequestTimingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins) if settings.cors_origins else ["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(HTTPException)
async def custom_http_exception_handler(request: Request, exc: HTTPException):
    return http_exception_response(exc=exc, request=request)


@app.exception_handler(RequestValidationError)
async def custom_validation_exception_handler(request: Request, exc: RequestValidationError):
    return error_response(
        status_code=422,
        message="Validation error",
        data={"code": "VALIDATION_FAILED", "details": format_validation_error_details(list(exc.errors()))},
        request_id=request_id_of(request),
    )


@app.exception_handler(Exception)
async def custom_exception_handler(request: Request, exc: Exception):
    logger.exception("unhandled_exception", path=request.url.path)
    details = str(exc) if (settings.debug_include_error_details and not settings.is_production) else None
    return error_response(
        status_code=500,
        message="Internal Server Error",
        data={"code": "INTERNAL_ERROR", "details": details},
        request_id=request_id_of(request),
    )


def _timed(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


@app.get("/health", tags=["Health"])
@document_response(
    message="Health check completed",
    success_example={"status": "healthy", "services": {"mongo": {"status": "healthy"}}},
)
async def health_check():
    services: dict[str, dict[str, str | float]] = {}
    overall_status = "healthy"

    start = time.perf_counter()
    try:
        await mongo_client.admin.command("ping")
        services["mongo"] = {"status": "healthy", "latency_ms": _timed(start), "message": "MongoDB ping successful"}
    except Exception as exc:
        overall_status = "degraded"
        services["mongo"] = {"status": "unhealthy", "latency_ms": _timed(start), "message": str(exc)}

    start = time.perf_counter()
    heartbeat = None
    try:
        cache_db.ping()
        heartbeat = cache_db.get(HEARTBEAT_KEY)
        services["redis"] = {"status": "healthy", "latency_ms": _timed(start), "message": "Redis ping successful"}
    except Exception as exc:
        overall_status = "degraded"
        services["redis"] = {"status": "unhealthy", "latency_ms": _timed(start), "message": str(exc)}

    if heartbeat:
        age = time.time() - float(heartbeat)
        services["apscheduler"] = {
            "status": "healthy" if age <= 30 else "degraded",
            "latency_ms": 0,
            "message": f"Last heartbeat {int(age)}s ago",
        }
        if age > 30:
            overall_status = "degraded"
    else:
        overall_status = "degraded"
        services["apscheduler"] = {"status": "unhealthy", "latency_ms": 0, "message": "No heartbeat found"}

    catalog_manager = CatalogManager.get_instance()
    bucket_state = catalog_manager.provisioner.state(catalog_manager.bucket)
    services["bucket"] = {
        "status": "healthy" if bucket_state == BucketState.READY else "degraded",
        "latency_ms": 0,
        "message": f"{catalog_manager.bucket} is {bucket_state.value}",
    }
    if bucket_state != BucketState.READY:
        overall_status = "degraded"

    return {
        "status": overall_status,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "services": services,
    }


# --- auto-routes-start ---
from api.v1.clients_route import router as v1_clients_route_router
from api.v1.deliveries_route import router as v1_deliveries_route_router
from api.v1.documents_route import router as v1_documents_route_router

app.include_router(v1_clients_route_router, prefix='/v1')
app.include_router(v1_deliveries_route_router, prefix='/v1')
app.include_router(v1_documents_route_router, prefix='/v1')
# --- auto-routes-end ---

apply_response_documentation(app)
