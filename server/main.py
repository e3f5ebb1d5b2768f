"""FastAPI application entry point."""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

from blackjack.errors import (
    BlackjackError,
    InputError,
    NotFoundError,
    PersistenceError,
    ShoeError,
)
from server.routes import accounts, cpus, rounds
from config import config

logging.basicConfig(
    level=config.log_level,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

# Initialize rate limiter
limiter = Limiter(
    key_func=get_remote_address,
    enabled=config.rate_limit.enabled,
    default_limits=[f"{config.rate_limit.requests_per_minute}/minute"],
)


def _rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Handle rate limit exceeded errors."""
    return JSONResponse(
        status_code=429,
        content={"detail": f"Rate limit exceeded: {exc.detail}"},
    )


def _blackjack_error_handler(request: Request, exc: BlackjackError) -> JSONResponse:
    """
    Map engine errors to HTTP responses.

    Gameplay input errors are the client's to fix, shoe failures are an
    upstream problem, and persistence failures may be retried.
    """
    if isinstance(exc, NotFoundError):
        status_code, kind = 404, "not_found"
    elif isinstance(exc, InputError):
        status_code, kind = 400, "input"
    elif isinstance(exc, ShoeError):
        status_code, kind = 502, "shoe"
    elif isinstance(exc, PersistenceError):
        status_code, kind = 503, "persistence"
    else:
        status_code, kind = 500, "internal"

    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)

    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error": kind},
    )


app = FastAPI(
    title="CPU Table Blackjack",
    description="Blackjack against the dealer with scripted CPU opponents",
    version="0.1.0",
    debug=config.debug,
)

# Add rate limiter to app state and exception handlers
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_exception_handler(BlackjackError, _blackjack_error_handler)

# CORS middleware with configurable origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors.allowed_origins,
    allow_credentials=config.cors.allow_credentials,
    allow_methods=config.cors.allow_methods,
    allow_headers=config.cors.allow_headers,
)


@app.get("/api/health")
@limiter.limit(f"{config.rate_limit.requests_per_minute}/minute")
async def health_check(request: Request) -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}


# Include routers
app.include_router(accounts.router, prefix="/api/accounts", tags=["accounts"])
app.include_router(cpus.router, prefix="/api/cpus", tags=["cpus"])
app.include_router(rounds.router, prefix="/api/rounds", tags=["rounds"])
