"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Response

from app.core.config import settings
from app.core.logging import setup_logging
from app.core.metrics import get_content_type, get_metrics, record_queue_stats, set_app_info
from app.core.middleware import CorrelationIdMiddleware, RequestLoggingMiddleware
from app.modules.encoding import (
    EncodingRuntime,
    encoding_router,
    encoding_webhook_router,
    set_runtime,
)
from app.modules.encoding.runtime import get_runtime

setup_logging(
    level=settings.LOG_LEVEL if not settings.DEBUG else "DEBUG",
    json_format=settings.LOG_JSON,
    include_stack_trace=True,
)

set_app_info(
    version=settings.VERSION,
    environment="development" if settings.DEBUG else "production",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    runtime = EncodingRuntime.from_settings()
    set_runtime(runtime)
    await runtime.start()
    try:
        yield
    finally:
        await runtime.stop()
        set_runtime(None)


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    description="Video encoding queue, encoding watchdog and scheduled publishing.",
    openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
    lifespan=lifespan,
    openapi_tags=[
        {
            "name": "health",
            "description": "Health check and metrics endpoints",
        },
        {
            "name": "encoding",
            "description": "Encoding queue, provider callbacks and watchdog",
        },
    ],
)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint.

    Returns:
        dict: Health status with "healthy" or "unhealthy" value.
    """
    return {"status": "healthy"}


@app.get("/metrics", tags=["health"], include_in_schema=False)
async def metrics() -> Response:
    """Prometheus exposition of application metrics."""
    try:
        record_queue_stats(get_runtime().queue.get_stats())
    except RuntimeError:
        pass
    return Response(content=get_metrics(), media_type=get_content_type())


# The provider calls back on a fixed, unversioned path
app.include_router(encoding_webhook_router)
app.include_router(encoding_router, prefix=settings.API_V1_PREFIX)
