from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from chirpauth.api.error_handling import register_exception_handlers
from chirpauth.api.routes import admin_router, router
from chirpauth.logging import get_logger, set_correlation_id

logger = get_logger(__name__)

__version__ = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the runtime on startup and release the store pool on shutdown."""
    from chirpauth.service.runtime import get_runtime

    runtime = get_runtime()
    logger.info("runtime_ready", platform=runtime.settings.platform)

    yield

    try:
        get_runtime().close()
        logger.info("runtime_cleanup_complete")
    except Exception as exc:
        logger.error("shutdown_failed", error=str(exc))


app = FastAPI(title="Chirpy Auth", version=__version__, lifespan=lifespan)


@app.middleware("http")
async def add_correlation_id(request: Request, call_next):
    """Tag each request with a correlation ID.

    The ID comes from the client's X-Request-ID header when present, otherwise
    a new UUID. It is bound for structured logging and echoed back in the
    X-Request-ID response header.
    """
    client_request_id = request.headers.get("X-Request-ID")
    correlation_id = set_correlation_id(client_request_id)
    response = await call_next(request)
    response.headers["X-Request-ID"] = correlation_id
    return response


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    # token-bearing responses must not be cached by proxies
    if request.url.path.startswith(("/api/", "/admin/")):
        response.headers.setdefault("Cache-Control", "no-store")
    response.headers.setdefault("API-Version", __version__)
    return response


register_exception_handlers(app)
app.include_router(router)
app.include_router(admin_router)


def create_app() -> FastAPI:
    return app
