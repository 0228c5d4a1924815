"""Application entry point for the delivery tracker API service."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from deliverytracker.api.routes.customers import router as customers_router
from deliverytracker.api.routes.deliveries import router as deliveries_router
from deliverytracker.api.routes.sync import router as sync_router
from deliverytracker.core.config import settings
from deliverytracker.core.db import engine
from deliverytracker.core.deps import registry
from deliverytracker.core.http_errors import init_error_handlers
from deliverytracker.core.logging import setup_logging
from deliverytracker.core.middleware import (
    OWNER_HEADER,
    BodySizeLimitMiddleware,
    RequestContextLogMiddleware,
)
from deliverytracker.core.rate_limit import init_rate_limiter

setup_logging()

app = FastAPI(title=settings.APP_NAME, debug=settings.DEBUG)

init_rate_limiter(app)
init_error_handlers(app)

app.add_middleware(RequestContextLogMiddleware)


def _cors_origins() -> list[str]:
    if settings.ENV == "prod":
        if not settings.CORS_ALLOWED_ORIGINS:
            raise RuntimeError("CORS_ALLOWED_ORIGINS must be configured for prod")
        return settings.CORS_ALLOWED_ORIGINS
    return settings.CORS_ALLOWED_ORIGINS or ["http://localhost:5173"]


app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "X-Request-ID", OWNER_HEADER],
)

app.add_middleware(BodySizeLimitMiddleware)
app.add_middleware(GZipMiddleware, minimum_size=1000)


@app.on_event("shutdown")
async def shutdown_event():
    """Close the cache connection and the database pool."""

    await registry.close()
    await engine.dispose()


@app.get("/api/healthz", tags=["system"], summary="Liveness probe")
def healthz() -> dict[str, str]:
    """Simple liveness probe that load balancers and monitors can call."""

    return {"status": "ok"}


app.include_router(deliveries_router, prefix="/api")
app.include_router(customers_router, prefix="/api")
app.include_router(sync_router, prefix="/api")
