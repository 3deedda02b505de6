# backend/escrow/main.py

import asyncio
import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from sqlalchemy.exc import OperationalError

from .api import api_booking, api_ops, api_wallet
from .core.config import settings
from .core.observability import setup_logging
from .database import Base, SessionLocal, engine, is_sqlite
from .services.auto_release import run_auto_release
from .utils import background_worker
from .utils.status_logger import register_status_listeners

# Configure logging before creating any loggers
setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Booking Escrow API", default_response_class=ORJSONResponse)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Total-Count"],
)
logger.info("CORS origins set to: %s", settings.CORS_ORIGINS)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Return validation errors with details and log them for debugging."""
    errors = jsonable_encoder(exc.errors())
    logger.warning("Validation error at %s: %s", request.url.path, errors)
    return ORJSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": errors},
    )


api_prefix = settings.API_V1_STR

# ─── BOOKING ROUTES (under /api/v1/bookings) ───────────────────────────────────
app.include_router(
    api_booking.router,
    prefix=f"{api_prefix}/bookings",
    tags=["bookings"],
)

# ─── PROVIDER WALLET ROUTES (under /api/v1/provider) ───────────────────────────
app.include_router(
    api_wallet.router,
    prefix=f"{api_prefix}/provider",
    tags=["provider-wallet"],
)

# ─── OPS ROUTES (under /api/v1/ops): cron hooks ────────────────────────────────
app.include_router(
    api_ops.router,
    prefix=f"{api_prefix}",
    tags=["ops"],
)


@app.on_event("startup")
def prepare_database() -> None:
    """Attach status listeners and create tables for local SQLite runs.

    Other databases are migrated with Alembic.
    """
    register_status_listeners()
    if is_sqlite:
        Base.metadata.create_all(bind=engine)


async def auto_release_loop() -> None:
    """Periodically release escrow for bookings past their confirmation deadline."""
    while True:
        await asyncio.sleep(settings.AUTO_RELEASE_INTERVAL_SECONDS)
        # Retry with backoff on transient DB failures
        delay = 5
        max_retries = 5
        for attempt in range(max_retries):
            try:
                summary = await asyncio.to_thread(run_auto_release, session_factory=SessionLocal)
                logger.info("Auto-release summary: %s", summary.model_dump(mode="json"))
                break
            except OperationalError as exc:  # pragma: no cover - transient DB outage
                logger.warning("Auto-release attempt %s/%s failed: %s", attempt + 1, max_retries, exc)
                if attempt < max_retries - 1:
                    await asyncio.sleep(delay)
                    delay = min(delay * 2, 60)
                    continue
                # Give up for this cycle; try again next tick
                break
            except Exception:  # pragma: no cover - continue running
                logger.exception("Auto-release run failed")
                break


@app.on_event("startup")
async def start_background_tasks() -> None:
    """Launch the auto-release loop when enabled."""
    if settings.AUTO_RELEASE_LOOP_ENABLED:
        logger.info(
            "Starting auto-release loop every %ss", settings.AUTO_RELEASE_INTERVAL_SECONDS
        )
        asyncio.create_task(auto_release_loop())


@app.on_event("shutdown")
def shutdown_background_worker() -> None:
    """Let queued webhook deliveries finish before exit."""
    logger.info("Shutting down background worker")
    background_worker.shutdown(wait=True)


# ─── A simple root check ───────────────────────────────────────────────────────
@app.get("/")
async def root():
    return {"message": "Welcome to the Booking Escrow API"}
