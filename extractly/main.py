import logging
from contextlib import asynccontextmanager

import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from extractly.api.router import api_router
from extractly.config import settings
from extractly.core.cache import TTLCache
from extractly.core.exceptions import ExtractlyError, format_error
from extractly.core.logging_config import configure_logging
from extractly.middleware.request_context import BodySizeLimitMiddleware, RequestIDMiddleware
from extractly.services.extraction import ExtractionService

# Configure structured logging (must happen before any logger is created)
configure_logging(log_format=settings.LOG_FORMAT, log_level=settings.LOG_LEVEL)

if settings.SENTRY_DSN:
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
        environment=settings.SENTRY_ENVIRONMENT,
        release=f"extractly@{settings.APP_VERSION}",
    )

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    # Browsers are never pooled: each render task launches and closes its own
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    yield
    logger.info("Shutting down...")
    app.state.cache.clear()


async def _extractly_error_handler(request: Request, exc: ExtractlyError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse({"error": exc.message}, status_code=exc.status_code)


async def _request_validation_handler(request: Request, exc: RequestValidationError):
    fields = ", ".join(
        ".".join(str(p) for p in err.get("loc", ()) if p != "body") or "body"
        for err in exc.errors()
    )
    return JSONResponse({"error": f"Invalid request: {fields}"}, status_code=400)


async def _unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"{request.method} {request.url.path} crashed")
    return JSONResponse({"error": format_error(exc)}, status_code=500)


def create_app(service: ExtractionService | None = None) -> FastAPI:
    """Build the ASGI app; tests pass a service wired to fakes."""
    if service is None:
        cache = TTLCache(default_ttl=settings.CACHE_TTL_SECONDS, enabled=settings.CACHE_ENABLED)
        service = ExtractionService(cache)

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Extractly - pull text and attribute values out of web pages "
        "with CSS selectors, XPath or a real headless browser.",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.extraction_service = service
    app.state.cache = service.cache

    app.add_middleware(BodySizeLimitMiddleware, max_bytes=settings.MAX_JSON_BODY_BYTES)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.BACKEND_CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    # Request ID middleware (added last so it wraps everything else)
    app.add_middleware(RequestIDMiddleware)

    app.add_exception_handler(ExtractlyError, _extractly_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)

    app.include_router(api_router)
    return app


app = create_app()
