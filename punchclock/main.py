import asyncio
from contextlib import suppress
from datetime import datetime, timezone
import logging
import time
from typing import Any
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from punchclock.db import engine
from punchclock.errors import ApiError, PunchclockError, classify_domain_error, error_response
from punchclock.logging_utils import setup_json_logging
from punchclock.routers import admin, attendance
from punchclock.services.schema_guard import SchemaGuardResult, verify_runtime_schema
from punchclock.settings import get_cors_origins, get_disqualify_run_at, get_settings
from punchclock.timeutil import attendance_timezone
from punchclock.worker import MIN_INTERVAL_SECONDS, disqualify_worker_loop

settings = get_settings()
setup_json_logging(level=settings.log_level, service=settings.app_name)
logger = logging.getLogger("punchclock.request")
worker_logger = logging.getLogger("punchclock.disqualify_worker")


app = FastAPI(title=settings.app_name, version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-Id") or str(uuid4())
    request.state.request_id = request_id
    request.state.actor = getattr(request.state, "actor", "system")
    request.state.actor_id = getattr(request.state, "actor_id", "system")

    start = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        response.headers["X-Request-Id"] = request_id
        return response
    finally:
        latency_ms = round((time.perf_counter() - start) * 1000, 2)
        logger.info(
            "request_complete",
            extra={
                "request_id": request_id,
                "path": request.url.path,
                "method": request.method,
                "status_code": status_code,
                "latency_ms": latency_ms,
                "actor": getattr(request.state, "actor", "system"),
                "actor_id": getattr(request.state, "actor_id", "system"),
                "uid": getattr(request.state, "uid", None),
            },
        )


@app.exception_handler(ApiError)
async def handle_api_error(request: Request, exc: ApiError) -> JSONResponse:
    return error_response(
        request,
        status_code=exc.status_code,
        code=exc.code,
        message=exc.message,
    )


@app.exception_handler(PunchclockError)
async def handle_domain_error(request: Request, exc: PunchclockError) -> JSONResponse:
    status_code, code = classify_domain_error(exc)
    log = logger.warning if status_code < 500 else logger.error
    log(
        "domain_error",
        extra={
            "request_id": getattr(request.state, "request_id", "unknown"),
            "path": request.url.path,
            "code": code,
            **exc.log_context(),
        },
    )
    return error_response(request, status_code=status_code, code=code, message=exc.message)


@app.exception_handler(HTTPException)
async def handle_http_exception(request: Request, exc: HTTPException) -> JSONResponse:
    status_code = exc.status_code
    code_map = {
        401: "INVALID_TOKEN",
        403: "FORBIDDEN",
        404: "NOT_FOUND",
    }
    code = code_map.get(status_code, "HTTP_ERROR")
    message = str(exc.detail) if exc.detail else "Request failed."
    return error_response(
        request,
        status_code=status_code,
        code=code,
        message=message,
    )


@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return error_response(
        request,
        status_code=422,
        code="VALIDATION_ERROR",
        message=str(exc.errors()),
    )


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "unhandled_error",
        extra={
            "request_id": getattr(request.state, "request_id", "unknown"),
            "path": request.url.path,
            "method": request.method,
        },
    )
    return error_response(
        request,
        status_code=500,
        code="INTERNAL_ERROR",
        message="Unexpected server error.",
    )


app.include_router(attendance.router)
app.include_router(admin.router)


def _default_schema_guard_result() -> SchemaGuardResult:
    return SchemaGuardResult(
        ok=False,
        checked_at_utc=datetime.now(timezone.utc),
        issues=["SCHEMA_GUARD_NOT_RUN"],
        warnings=[],
    )


@app.on_event("startup")
async def run_schema_guard() -> None:
    result = await asyncio.to_thread(verify_runtime_schema, engine)
    app.state.schema_guard_result = result
    if result.ok:
        worker_logger.info("schema_guard_ok", extra=result.to_dict())
        return

    worker_logger.error("schema_guard_failed", extra=result.to_dict())
    if settings.schema_guard_strict:
        joined_issues = "; ".join(result.issues)
        raise RuntimeError(f"Runtime schema guard failed: {joined_issues}")


@app.on_event("startup")
async def start_disqualify_worker() -> None:
    if not settings.disqualify_worker_enabled:
        return
    if getattr(app.state, "disqualify_worker_task", None) is not None:
        return

    stop_event = asyncio.Event()
    task = asyncio.create_task(
        disqualify_worker_loop(stop_event, interval_seconds=settings.disqualify_worker_interval_seconds)
    )
    app.state.disqualify_worker_stop_event = stop_event
    app.state.disqualify_worker_task = task
    worker_logger.info(
        "disqualify_worker_started",
        extra={
            "interval_seconds": max(MIN_INTERVAL_SECONDS, int(settings.disqualify_worker_interval_seconds)),
            "run_at_local": get_disqualify_run_at().isoformat(timespec="minutes"),
            "timezone": str(attendance_timezone()),
        },
    )


@app.on_event("shutdown")
async def stop_disqualify_worker() -> None:
    stop_event: asyncio.Event | None = getattr(app.state, "disqualify_worker_stop_event", None)
    task: asyncio.Task[None] | None = getattr(app.state, "disqualify_worker_task", None)
    if stop_event is not None:
        stop_event.set()
    if task is not None:
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
    app.state.disqualify_worker_stop_event = None
    app.state.disqualify_worker_task = None


@app.get("/health")
def health() -> dict[str, Any]:
    schema_guard_result: SchemaGuardResult = getattr(app.state, "schema_guard_result", _default_schema_guard_result())
    task = getattr(app.state, "disqualify_worker_task", None)
    return {
        "status": "ok",
        "schema_guard": schema_guard_result.to_dict(),
        "disqualify_worker_running": task is not None and not task.done(),
    }
