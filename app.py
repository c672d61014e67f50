import logging

from dotenv import load_dotenv
load_dotenv()  # Load .env file before importing settings

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from adapters.http.api.itinerary.schemas import ScheduleChangeConflictResponse
from core.config import settings
from core.rate_limiter import limiter, rate_limit_exceeded_handler, RateLimits
from src.itinerary_bc.route.domain.exceptions import (
    ItineraryError,
    InvalidOrderError,
    InvalidScheduleError,
    NotFoundError,
    ScheduleConflictError,
    StaleRouteError,
)
from src.itinerary_bc.routing.domain.exceptions import RoutingProviderError, RoutingProviderTimeoutError

logger = logging.getLogger(__name__)


def _error(status_code: int, error: str, exc: Exception, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "message": str(exc), **extra},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Map itinerary errors to HTTP responses."""

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return _error(404, "not_found", exc)

    @app.exception_handler(InvalidOrderError)
    async def invalid_order_handler(request: Request, exc: InvalidOrderError):
        return _error(
            422, "invalid_order", exc,
            missing=exc.missing, duplicated=exc.duplicated, unknown=exc.unknown,
        )

    @app.exception_handler(InvalidScheduleError)
    async def invalid_schedule_handler(request: Request, exc: InvalidScheduleError):
        return _error(422, "invalid_schedule", exc)

    @app.exception_handler(ScheduleConflictError)
    async def schedule_conflict_handler(request: Request, exc: ScheduleConflictError):
        report = ScheduleChangeConflictResponse.model_validate(exc.report)
        return _error(409, "schedule_conflict", exc, change_report=report.model_dump(mode="json"))

    @app.exception_handler(StaleRouteError)
    async def stale_route_handler(request: Request, exc: StaleRouteError):
        return _error(409, "stale_route", exc)

    @app.exception_handler(RoutingProviderTimeoutError)
    async def routing_timeout_handler(request: Request, exc: RoutingProviderTimeoutError):
        return _error(504, "routing_provider_timeout", exc)

    @app.exception_handler(RoutingProviderError)
    async def routing_provider_handler(request: Request, exc: RoutingProviderError):
        return _error(502, "routing_provider_error", exc)

    @app.exception_handler(ItineraryError)
    async def itinerary_error_handler(request: Request, exc: ItineraryError):
        logger.error(f"Unhandled itinerary error on {request.url.path}: {exc}")
        return _error(400, "itinerary_error", exc)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    # Settings validation is done automatically in core/config.py on import

    app = FastAPI(
        title="Itinerary API",
        description="Road trip itinerary scheduling and order conflict resolution",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.FRONTEND_URL] if settings.is_production else ["*"],
        allow_credentials=False,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    # Rate limiting
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

    register_exception_handlers(app)

    # Register routers
    from adapters.http.api.itinerary.routers import itinerary_router
    app.include_router(itinerary_router, prefix="/api/v1")

    @app.get("/health")
    @limiter.limit(RateLimits.HEALTH)
    async def health_check(request: Request):
        """Health check endpoint."""
        return {"status": "healthy", "environment": settings.ENVIRONMENT}

    return app


app = create_app()
