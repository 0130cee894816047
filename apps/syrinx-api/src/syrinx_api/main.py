"""FastAPI application for syrinx-api."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from syrinx_common.errors import error_response, request_validation_handler
from syrinx_common.health import create_health_router
from syrinx_common.logging import get_logger, setup_logging
from syrinx_common.middleware import add_common_middleware

from . import __version__
from .config import settings
from .errors import SyrinxError
from .registry import ModelRegistry
from .routes import limiter, router as syrinx_router
from .transcoder import Transcoder

log = get_logger(__name__)


async def syrinx_error_handler(request: Request, exc: SyrinxError) -> JSONResponse:
    log.warning("request_failed", path=request.url.path, status=exc.status_code, error=exc.message)
    return error_response(exc.message, status_code=exc.status_code)


async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    log.info("rate_limited", path=request.url.path, limit=exc.detail)
    response = error_response(f"Rate limit exceeded: {exc.detail}", status_code=429)
    return request.app.state.limiter._inject_headers(response, getattr(request.state, "view_rate_limit", None))


def _health_details(request: Request) -> dict:
    registry = request.app.state.registry
    names = registry.list_names() if registry is not None else []
    return {
        "voices": len(names),
        "engines": {name: registry.lookup(name).engine.is_loaded for name in names},
        "active_sessions": len(request.app.state.transcoder.active),
    }


def create_app(registry: ModelRegistry | None = None, transcoder: Transcoder | None = None) -> FastAPI:
    """Build the app. Without an injected registry the lifespan scans ``settings.models_dir``."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging("syrinx-api", settings.log_level, json_output=settings.log_format == "json")
        if app.state.registry is None:
            app.state.registry = ModelRegistry.initialize(settings.models_dir)
        log.info("syrinx_api_ready", voices=app.state.registry.list_names())
        yield
        await app.state.transcoder.aclose()

    app = FastAPI(
        title="Syrinx API",
        version=__version__,
        lifespan=lifespan,
        docs_url="/ui",
        openapi_url="/doc",
        redoc_url=None,
        servers=[{"url": settings.openapi_server}] if settings.openapi_server else None,
    )
    app.state.registry = registry
    app.state.transcoder = transcoder or Transcoder(
        settings.ffmpeg_path,
        read_size=settings.read_size,
        grace_period=settings.kill_grace_seconds,
    )
    app.state.limiter = limiter

    app.add_exception_handler(SyrinxError, syrinx_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)

    add_common_middleware(app)
    app.include_router(create_health_router("syrinx-api", __version__, details_fn=_health_details))
    app.include_router(syrinx_router)
    return app


app = create_app()
