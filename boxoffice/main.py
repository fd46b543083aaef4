"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from boxoffice.api.v1.dependencies import ERROR_STATUS
from boxoffice.api.v1.router import router as v1_router
from boxoffice.config import get_settings
from boxoffice.errors import ReservationError, database_unavailable
from boxoffice.redis_client import close_redis, ping_redis
from boxoffice.tasks import background_tasks

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    logger.info("Starting Box Office Reservation API...")

    if await ping_redis():
        logger.info("Redis connection established")
    else:
        logger.warning("Redis unreachable at startup, seat leases unavailable until it answers")

    # Start background tasks
    await background_tasks.start()

    yield

    # Shutdown
    logger.info("Shutting down Box Office Reservation API...")

    # Stop background tasks
    await background_tasks.stop()

    # Close Redis connection
    await close_redis()
    logger.info("Redis connection closed")


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="""
## Box Office Reservation API

Seat reservation for cinema showings.

- **Seat Locks**: short Redis leases so two customers never pick the same seat
- **Bookings**: a Pending booking per checkout, guarded by a database claim on each seat
- **Payments**: VNPay redirect payments; return and IPN callbacks are idempotent
- **Live Seat Map**: WebSocket stream of lock/unlock events per showing

### Identity
Send `X-User-ID` when signed in, otherwise `X-Session-ID` for an anonymous checkout.

### Workflow
1. Get the seat map of a showing
2. Lock seats
3. Create a booking (prices the seats and holds them)
4. Start a payment and redirect to the returned URL
5. The booking is confirmed and tickets issued when VNPay reports success
        """,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include API routers
    app.include_router(v1_router, prefix="/api")

    # Health check endpoint
    @app.get("/health", tags=["Health"])
    async def health_check():
        """Health check endpoint; degraded while the lease store is unreachable."""
        redis_ok = await ping_redis()
        return {
            "status": "healthy" if redis_ok else "degraded",
            "redis": "ok" if redis_ok else "unavailable",
            "version": settings.APP_VERSION,
        }

    @app.exception_handler(ReservationError)
    async def reservation_exception_handler(request: Request, exc: ReservationError):
        """Map reservation errors raised outside a Result to HTTP errors."""
        return JSONResponse(
            status_code=ERROR_STATUS[exc.kind],
            content={"detail": exc.message, "kind": exc.kind.value},
        )

    @app.exception_handler(OperationalError)
    async def database_exception_handler(request: Request, exc: OperationalError):
        """Database outages outside a Result are TRANSIENT too."""
        logger.warning(f"Database unavailable on {request.url.path}: {exc.orig}")
        return await reservation_exception_handler(request, database_unavailable(exc))

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle uncaught exceptions."""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal Server Error",
                "detail": str(exc) if settings.DEBUG else None,
            },
        )

    return app


# Create application instance
app = create_app()


def run():
    """Run the application with uvicorn."""
    uvicorn.run(
        "boxoffice.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
    )


if __name__ == "__main__":
    run()
