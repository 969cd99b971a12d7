"""
backend/app/main.py

Purpose:
    FastAPI bootstrap for the pick & elimination engine: lifespan (logging,
    MongoDB, round resolver schedule), middleware, routers and the mapping
    of infrastructure failures to opaque 5xx responses.

Dependencies:
    - app.database
    - app.workers.round_resolver
"""

import logging
from contextlib import asynccontextmanager

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from bson.errors import InvalidId
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import (
    ConnectionFailure,
    DuplicateKeyError,
    OperationFailure,
    ServerSelectionTimeoutError,
)

from app.config import settings
import app.database as _db
from app.database import connect_db, close_db
from app.errors import ErrorCode
from app.middleware.logging import StructuredLoggingMiddleware, setup_logging
from app.routers.picks import router as picks_router
from app.routers.results import router as results_router
from app.workers.round_resolver import resolve_locked_rounds

logger = logging.getLogger("lastpick")
scheduler = AsyncIOScheduler()


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    await connect_db()

    if settings.ROUND_RESOLVER_ENABLED:
        scheduler.add_job(
            resolve_locked_rounds,
            "interval",
            id="round_resolver",
            minutes=settings.ROUND_RESOLVER_INTERVAL_MINUTES,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        scheduler.start()
        logger.info("Round resolver every %d min", settings.ROUND_RESOLVER_INTERVAL_MINUTES)
    else:
        logger.info("Round resolver disabled (ROUND_RESOLVER_ENABLED=false)")

    yield

    if scheduler.running:
        scheduler.shutdown(wait=False)
    await close_db()


app = FastAPI(
    title="LastPick",
    description="Last-man-standing pick & elimination engine",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.BACKEND_CORS_ORIGINS.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "X-Request-ID"],
)
app.add_middleware(StructuredLoggingMiddleware)

app.include_router(picks_router)
app.include_router(results_router)


# ---------- error mapping ----------

def _error(status_code: int, code: ErrorCode | None, message: str, **extra) -> JSONResponse:
    detail = {"code": code.value, "message": message} if code else message
    return JSONResponse(status_code=status_code, content={"detail": detail, **extra})


def _context(request: Request) -> str:
    """method, path and the competition/round/fixture/player ids in the route."""
    params = request.path_params or {}
    ids = " ".join(f"{k}={v}" for k, v in params.items() if k.endswith("_id"))
    return f"{request.method} {request.url.path} {ids}".rstrip()


@app.exception_handler(InvalidId)
async def invalid_id_handler(request: Request, exc: InvalidId):
    return _error(400, ErrorCode.VALIDATION_ERROR, "Invalid ID.")


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Field-level messages without the body/query/path prefix."""
    errors = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ())[1:]) or "unknown",
            "message": err.get("msg", "Invalid value."),
        }
        for err in exc.errors()
    ]
    return _error(422, ErrorCode.VALIDATION_ERROR, "Validation error.", errors=errors)


@app.exception_handler(DuplicateKeyError)
async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
    # Only reachable when a concurrent write beat this request to a unique slot.
    logger.warning("Duplicate key: %s", _context(request))
    return _error(409, None, "Duplicate entry.")


@app.exception_handler(ServerSelectionTimeoutError)
@app.exception_handler(ConnectionFailure)
async def db_unavailable_handler(request: Request, exc: ConnectionFailure):
    logger.error("Database unavailable (%s): %s", type(exc).__name__, _context(request))
    return _error(503, None, "Service temporarily unavailable.")


@app.exception_handler(OperationFailure)
async def db_operation_handler(request: Request, exc: OperationFailure):
    logger.error("Database operation failed: %s: %s", _context(request), exc)
    return _error(500, None, "An internal error occurred.")


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception: %s", _context(request))
    return _error(500, None, "An internal error occurred.")


@app.get("/health")
async def health():
    """DB ping and scheduler state."""
    try:
        db_ok = (await _db.db.command("ping")).get("ok") == 1.0
    except Exception:
        logger.warning("Health check ping failed", exc_info=True)
        db_ok = False
    return {
        "status": "healthy" if db_ok else "degraded",
        "db": "connected" if db_ok else "disconnected",
        "round_resolver": scheduler.running,
    }
