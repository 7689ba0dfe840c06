from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from contextlib import asynccontextmanager
from slowapi.errors import RateLimitExceeded
import logging
import uuid

from .config import settings
from .database import create_tables
from .exceptions import BrokerError, Indeterminate, PersistenceFailure
from .services.scheduler import start_scheduler, stop_scheduler, get_scheduler_status
from .utils.logging_config import setup_logging, set_request_context, clear_request_context
from .utils.rate_limiter import limiter

from .routers import rooms, bookings, reservations, hotels, content, audit, admin_pricing

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    setup_logging(level=settings.log_level, json_format=settings.log_json)

    logger.info(f"Starting hotel broker ({settings.environment})")
    logger.info(f"CORS origins: {settings.cors_origins}")

    create_tables()

    if settings.scheduler_enabled:
        start_scheduler()
    else:
        logger.warning("Scheduler disabled, sync and reconciliation must be triggered manually")

    yield

    logger.info("Shutting down hotel broker")
    stop_scheduler()


app = FastAPI(
    title="Hotel Booking Broker API",
    description="Merchant layer over the Royal hotel supplier API",
    version="1.0.0",
    lifespan=lifespan
)

# Rate limiter state
app.state.limiter = limiter


# ================================
# CORS MIDDLEWARE - MUST BE FIRST!
# ================================
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        if settings.is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4())[:8])
        request.state.request_id = request_id
        set_request_context(request_id)
        try:
            response = await call_next(request)
        finally:
            clear_request_context()
        response.headers["X-Request-ID"] = request_id
        return response


app.add_middleware(RequestIdMiddleware)
app.add_middleware(SecurityHeadersMiddleware)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(
        status_code=429,
        content={"detail": "Too many requests, try again later", "code": "rate_limited"}
    )


@app.exception_handler(BrokerError)
async def broker_error_handler(request: Request, exc: BrokerError):
    content = {"detail": exc.message, "code": exc.code}
    if isinstance(exc, Indeterminate):
        content["reservation_id"] = exc.reservation_id
        content["status"] = "PENDING"
    elif isinstance(exc, PersistenceFailure) and exc.booking_number:
        content["booking_number"] = exc.booking_number

    if exc.status_code >= 500:
        request_id = getattr(request.state, "request_id", "no-request-id")
        logger.error(f"[{request_id}] {exc.code}: {exc.message}")

    return JSONResponse(status_code=exc.status_code, content=content)


app.include_router(rooms.router)
app.include_router(bookings.router)
app.include_router(reservations.router)
app.include_router(hotels.router)
app.include_router(content.router)
app.include_router(audit.router)
app.include_router(admin_pricing.router)


@app.get("/")
async def root():
    return {
        "message": "Hotel Booking Broker API",
        "version": "1.0.0",
        "docs": "/docs",
        "status": "running"
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy", "scheduler": get_scheduler_status()}
