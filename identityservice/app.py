from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, Dict, List

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from identityservice.api.error_handling import register_exception_handlers
from identityservice.api.routes import router
from identityservice.config import get_settings
from identityservice.logging import get_logger, set_correlation_id

logger = get_logger(__name__)

_settings = get_settings()

__version__ = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the runtime on startup so the admin bootstrap runs before traffic."""
    from identityservice.service.runtime import get_runtime

    get_runtime()
    logger.info("app_started", version=__version__)

    yield

    try:
        await get_runtime().close()
        logger.info("runtime_cleanup_complete")
    except Exception as exc:
        logger.error("shutdown_failed", error=str(exc))


app = FastAPI(title="Identity Service", version=__version__, lifespan=lifespan)


def _allowed_origins() -> List[str]:
    if _settings.cors_allow_origins:
        return _settings.cors_allow_origins
    # Local dev hosts; no wildcard while credentials are allowed
    return [
        "http://localhost",
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:5173",
    ]


app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins(),
    allow_credentials=_settings.cors_allow_credentials,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
    max_age=3600,
)


@app.middleware("http")
async def add_correlation_id(request, call_next):
    """Tag the request with a correlation ID for log tracing.

    The client's ``X-Request-ID`` is reused when present, otherwise a new
    UUID is generated; either way it is echoed back in the response.
    """
    client_request_id = request.headers.get("X-Request-ID")
    correlation_id = set_correlation_id(client_request_id)
    response = await call_next(request)
    response.headers["X-Request-ID"] = correlation_id
    return response


@app.middleware("http")
async def add_security_headers(request, call_next):
    response = await call_next(request)
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    # Token responses must never be cached
    response.headers.setdefault("Cache-Control", "no-store, no-cache, must-revalidate, private")
    return response


app.include_router(router)
register_exception_handlers(app)


@app.get("/healthz")
async def health() -> Dict[str, Any]:
    """Liveness plus a Redis ping when the refresh registry is Redis-backed."""
    from identityservice.service.runtime import get_runtime

    runtime = get_runtime()
    checks: Dict[str, str] = {}
    healthy = True
    if runtime.cache is not None:
        try:
            result = runtime.cache.client.ping()
            if hasattr(result, "__await__"):
                await result
            checks["redis"] = "ok"
        except Exception as exc:
            logger.warning("health_redis_failed", error=str(exc))
            checks["redis"] = "error"
            healthy = False
    else:
        checks["redis"] = "disabled"
    return {"status": "ok" if healthy else "degraded", "version": __version__, "checks": checks}


def create_app() -> FastAPI:
    return app
