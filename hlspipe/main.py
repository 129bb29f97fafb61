"""FastAPI application entry point."""

from fastapi import FastAPI, Response
from fastapi.responses import PlainTextResponse

from hlspipe.core.config import get_settings
from hlspipe.core.logging import setup_logging
from hlspipe.core.metrics import get_content_type, get_metrics
from hlspipe.core.middleware import CorrelationIdMiddleware, RequestLoggingMiddleware
from hlspipe.modules.playback.router import router as playback_router

settings = get_settings()
setup_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON)

app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    description="Signed HLS playback manifests for transcoded videos.",
    openapi_tags=[
        {"name": "health", "description": "Health check endpoints"},
        {"name": "playback", "description": "Signed playback manifest URLs"},
    ],
)

# Last added runs first: the correlation ID is bound before requests are logged.
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint.

    Returns:
        dict: Health status with "healthy" value.
    """
    return {"status": "healthy"}


@app.get("/metrics", response_class=PlainTextResponse, include_in_schema=False)
async def prometheus_metrics() -> Response:
    """Prometheus metrics in text exposition format."""
    return Response(content=get_metrics(), media_type=get_content_type())


app.include_router(playback_router, prefix=settings.API_PREFIX)
