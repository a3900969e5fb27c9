import platform

from fastapi import APIRouter, Request
from fastapi.responses import Response

from extractly.config import settings
from extractly.core.metrics import get_metrics, get_metrics_content_type

router = APIRouter()


@router.get("/health", summary="Liveness check")
async def liveness():
    return {"ok": True}


@router.get(
    "/__diag",
    summary="Runtime diagnostics",
    description="Interpreter version, configured browser binary and current cache size.",
)
async def diagnostics(request: Request):
    return {
        "python": platform.python_version(),
        "browserExecutable": settings.BROWSER_EXECUTABLE_PATH or None,
        "maxConcurrentBrowsers": settings.MAX_CONCURRENT_BROWSERS,
        "cacheEntries": len(request.app.state.cache),
    }


@router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="Expose application metrics in Prometheus exposition format. Returns HTTP 404 if metrics collection is disabled in the application configuration.",
)
async def metrics():
    if not settings.METRICS_ENABLED:
        return Response(content="Metrics disabled", status_code=404)

    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type(),
    )
