"""Rate limiting for the upload route using SlowAPI."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from deliverytracker.core.middleware import OWNER_HEADER


def owner_or_address(request: Request) -> str:
    """Limit per owner when the header is present, per client address otherwise."""

    return request.headers.get(OWNER_HEADER) or get_remote_address(request)


limiter = Limiter(key_func=owner_or_address)


def init_rate_limiter(app: FastAPI) -> None:
    """Attach the rate limiter and exception handler to the FastAPI app."""

    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)

    async def rate_limit_exceeded_handler(request, exc):  # type: ignore[unused-arg]
        return JSONResponse(status_code=429, content={"detail": "Too many requests"})

    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
