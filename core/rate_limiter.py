"""Rate limiting for the itinerary API (SlowAPI).

Storage is in-memory unless RATE_LIMIT_STORAGE_URI points at Redis, which is
required as soon as more than one API instance runs.

Whole-route computations (recalculation, reorder, conflict resolution, leg
refresh) are limited per client and route, so one busy trip cannot starve
the client's other routes. Everything else is limited per client.
"""

import os

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address


def get_client_identifier(request: Request) -> str:
    """Original client address, honouring proxy headers."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.headers.get("CF-Connecting-IP") or get_remote_address(request)


def get_route_identifier(request: Request) -> str:
    """Client plus the route in the path, e.g. "10.0.0.1:route/<id>"."""
    client = get_client_identifier(request)
    route_id = request.path_params.get("route_id")
    return f"{client}:route/{route_id}" if route_id else client


limiter = Limiter(
    key_func=get_client_identifier,
    default_limits=["200/minute"],
    storage_uri=os.getenv("RATE_LIMIT_STORAGE_URI", "memory://"),
    strategy="fixed-window",
)


class RateLimits:
    """Limits per endpoint category."""

    # Per route (use with key_func=get_route_identifier)
    RECALCULATE = "30/minute"
    REORDER = "60/minute"
    RESOLVE_CONFLICTS = "30/minute"
    LEG_REFRESH = "10/minute"  # Each call fans out to OSRM

    # Per client
    ROUTES = "200/minute"
    STOPS = "120/minute"
    CONFLICTS = "200/minute"
    HEALTH = "1000/minute"


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    retry_after = getattr(exc, "retry_after", 60)
    return JSONResponse(
        status_code=429,
        content={
            "error": "rate_limit_exceeded",
            "message": f"Rate limit exceeded: {exc.detail}",
            "retry_after": retry_after,
        },
        headers={"Retry-After": str(retry_after)},
    )
