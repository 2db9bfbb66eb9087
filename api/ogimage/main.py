from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .core.config import settings
from .core.structured_logging import LoggerFactory, setup_logging
from .middleware.request_response import RequestResponseMiddleware
from .models.exceptions import EXCEPTION_HANDLERS, OGBaseException, to_http_exception
from .routers import admin, health, og
from .services.kv import get_store

setup_logging(settings.log_level)
logger = LoggerFactory.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown hooks."""
    logger.info(
        "Service starting",
        service_env=settings.service_env,
        require_auth=settings.require_auth,
        raster_enabled=settings.raster_enabled,
    )
    if settings.require_auth and not settings.jwt_secret:
        logger.error("JWT_SECRET is not set; every credential will be rejected")

    yield

    await get_store().close()
    logger.info("Service stopped")


app = FastAPI(
    title=settings.service_name,
    description="On-demand social preview (Open Graph) images",
    version=settings.service_version,
    lifespan=lifespan,
)

app.add_middleware(RequestResponseMiddleware)

origins = [o.strip() for o in (settings.cors_allow_origins or "").split(",") if o.strip()]
if not origins:
    origins = [] if settings.is_production else ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=False,
    allow_methods=["GET"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    expose_headers=["ETag", "X-Request-ID", "X-Render-Time", "X-Cache-Status", "X-Fallback-To-SVG"],
)


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


@app.exception_handler(OGBaseException)
async def og_exception_handler(request: Request, exc: OGBaseException):
    """Render custom exceptions as ``{error, request_id}`` JSON."""
    handler = to_http_exception
    for exc_type, candidate in EXCEPTION_HANDLERS.items():
        if isinstance(exc, exc_type):
            handler = candidate
            break
    http_exc = handler(exc)

    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"Request failed: {exc.message}",
        error_type=type(exc).__name__,
        status_code=exc.status_code,
        details=exc.details,
        path=request.url.path,
    )
    body = {**http_exc.detail, "request_id": _request_id(request)}
    return JSONResponse(status_code=http_exc.status_code, content=body, headers=http_exc.headers)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Standardize framework errors (unknown route, wrong method) to the same shape."""
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": message, "request_id": _request_id(request)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions without exposing their detail."""
    logger.error(
        "Unhandled exception occurred",
        method=request.method,
        path=request.url.path,
        error_type=type(exc).__name__,
    )
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "request_id": _request_id(request)},
    )


app.include_router(og.router)
app.include_router(health.router)
app.include_router(admin.router)
