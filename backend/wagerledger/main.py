"""
backend/wagerledger/main.py

Purpose:
    FastAPI application bootstrap: database lifecycle, ledger service graph,
    weekly rollover scheduling, middleware/router wiring and the mapping of
    ledger and database errors to HTTP responses.

Dependencies:
    - wagerledger.database
    - wagerledger.services.ledger
    - apscheduler
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

import wagerledger.database as _db
from wagerledger.config import settings
from wagerledger.database import close_db, connect_db
from wagerledger.errors import LedgerError, LedgerValidationError
from wagerledger.middleware.logging import StructuredLoggingMiddleware, setup_logging
from wagerledger.services.ledger import build_ledger
from wagerledger.workers.bankroll_rollover import run_rollover

logger = logging.getLogger("wagerledger")
scheduler = AsyncIOScheduler()


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.LOG_LEVEL)
    await connect_db()
    app.state.ledger = build_ledger(_db.client, _db.db, settings)

    if settings.ROLLOVER_ENABLED:
        scheduler.add_job(
            run_rollover,
            "cron",
            args=[app.state.ledger],
            id="bankroll_rollover",
            day_of_week="tue",
            hour=3,
            minute=0,
            timezone="UTC",
            replace_existing=True,
        )
        scheduler.start()
        logger.info("Weekly bankroll rollover scheduled (Tue 03:00 UTC)")
    else:
        logger.info("Weekly bankroll rollover disabled via config")

    yield

    if scheduler.running:
        scheduler.shutdown(wait=False)
    await close_db()


# Driver errors that can escape outside a ledger transaction
_DB_ERRORS = (
    (DuplicateKeyError, 409, "Duplicate entry."),
    (ServerSelectionTimeoutError, 503, "Ledger database unavailable."),
    (ConnectionFailure, 503, "Ledger database unavailable."),
    (OperationFailure, 500, "An internal error occurred."),
)


def _field_errors(exc: RequestValidationError) -> list[dict]:
    errors = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        errors.append({"field": ".".join(loc) or "body", "message": err.get("msg", "Invalid value.")})
    return errors


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(LedgerValidationError)
    async def rejected_bet_handler(request: Request, exc: LedgerValidationError):
        logger.info("Rejected %s %s: %s", request.method, request.url.path, exc.code)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError):
        if exc.status_code >= 500:
            logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(InvalidId)
    async def invalid_id_handler(request: Request, exc: InvalidId):
        return JSONResponse(status_code=404, content={"code": "NOT_FOUND", "detail": "Unknown id."})

    @app.exception_handler(RequestValidationError)
    async def malformed_request_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content={"code": "MALFORMED_REQUEST", "detail": "Validation error.", "errors": _field_errors(exc)},
        )

    for error_cls, status_code, detail in _DB_ERRORS:
        async def db_error_handler(request: Request, exc: Exception, status_code=status_code, detail=detail):
            logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
            return JSONResponse(status_code=status_code, content={"detail": detail})

        app.add_exception_handler(error_cls, db_error_handler)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"detail": "An internal error occurred."})


app = FastAPI(
    title="Wager Ledger",
    description="Paper-money wagering ledger with weekly bankrolls",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

# Structured logging
app.add_middleware(StructuredLoggingMiddleware)

# Routers
from wagerledger.routers.admin import router as admin_router
from wagerledger.routers.bankroll import router as bankroll_router
from wagerledger.routers.bets import router as bets_router
from wagerledger.routers.slip import router as slip_router

app.include_router(bets_router)
app.include_router(slip_router)
app.include_router(bankroll_router)
app.include_router(admin_router)

register_exception_handlers(app)


@app.get("/health")
async def health():
    """Health check -- verifies DB connection."""
    try:
        result = await _db.db.command("ping")
        db_ok = result.get("ok") == 1.0
    except Exception:
        db_ok = False

    return {
        "status": "healthy" if db_ok else "degraded",
        "db": "connected" if db_ok else "disconnected",
        "rollover_scheduled": scheduler.running and bool(scheduler.get_job("bankroll_rollover")),
    }
