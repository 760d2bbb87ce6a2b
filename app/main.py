import asyncio
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.routes import booking, manage
from app.core.clock import system_clock
from app.core.config import settings, _ENV_FILE
from app.core.db import async_session_maker
from app.core.errors import BookingError
from app.services.appointment_service import mark_completed_appointments
from app.services.calendar_utils import detect_local_zone

if os.getenv("ENV") != "production":
    logging.basicConfig(level=logging.DEBUG)
else:
    logging.basicConfig(
        level=logging.INFO,
        format='{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s"}',
    )
logger = logging.getLogger(__name__)


async def _run_completion_sweep() -> None:
    """Mark appointments that have ended as COMPLETED."""
    try:
        async with async_session_maker() as session:
            try:
                n = await mark_completed_appointments(session, system_clock.now())
                await session.commit()
                if n:
                    logger.info("Completion sweep: marked %d appointment(s) completed", n)
            except Exception:
                await session.rollback()
                raise
    except Exception as e:
        logger.exception("Completion sweep failed: %s", e)


async def _sweep_loop(interval_seconds: int) -> None:
    while True:
        await asyncio.sleep(interval_seconds)
        await _run_completion_sweep()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Loading .env from: %s (exists: %s)", _ENV_FILE, _ENV_FILE.exists())
    logger.info("Server timezone (display default): %s", detect_local_zone())
    if not settings.email_enabled:
        logger.warning("Email: NOT configured. Booking notifications will be skipped.")
    # Startup: run sweep once
    await _run_completion_sweep()
    task = None
    if settings.completion_sweep_interval_seconds > 0:
        task = asyncio.create_task(_sweep_loop(settings.completion_sweep_interval_seconds))
    yield
    if task is not None:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


app = FastAPI(
    title="Agency Booking API",
    description="Public appointment booking: availability, slots, booking and guest self-service",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type"],
)

# manage/{id} must be matched before the {host_slug}/{slug} booking routes
app.include_router(manage.router, prefix="/api/v1")
app.include_router(booking.router, prefix="/api/v1")


def _cors_headers(origin: str | None) -> dict[str, str]:
    """Add CORS headers to error responses so the browser doesn't block them."""
    headers = {
        "Access-Control-Allow-Credentials": "true",
        "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type",
    }
    if origin and origin in settings.cors_origins_list:
        headers["Access-Control-Allow-Origin"] = origin
    elif settings.cors_origins_list:
        headers["Access-Control-Allow-Origin"] = settings.cors_origins_list[0]
    return headers


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    """Typed booking failures become user-facing messages with their status code."""
    if exc.status_code >= 500:
        logger.warning("Booking request failed: %s %s -> %s", request.method, request.url.path, exc.code)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "detail": exc.message},
        headers=_cors_headers(request.headers.get("origin")),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Generic error JSON with CORS so 500 responses are not blocked by browser."""
    origin = request.headers.get("origin")
    headers = _cors_headers(origin)
    if isinstance(exc, HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=headers,
        )
    logger.exception("Unhandled exception: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"error": "InternalError", "detail": "Something went wrong. Please try again."},
        headers=headers,
    )


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}
