"""FastAPI application factory for the Service Guard status API."""

from __future__ import annotations

from fastapi import FastAPI, Request

from service_guard import __version__
from service_guard.config.schema import AppConfig
from service_guard.fallback.router import FallbackRouter
from service_guard.monitor.monitor import StatusMonitor


def create_app(
    config: AppConfig,
    monitor: StatusMonitor,
    router: FallbackRouter | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Service Guard",
        description="Service health monitoring and provider fallback",
        version=__version__,
    )

    @app.middleware("http")
    async def disable_browser_cache(request: Request, call_next):
        response = await call_next(request)
        if request.method in {"GET", "HEAD"}:
            response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, max-age=0"
        return response

    # Live references for the routes
    app.state.config = config
    app.state.monitor = monitor
    app.state.router = router

    from service_guard.dashboard.routes.api import router as api_router
    from service_guard.dashboard.routes.sse import router as sse_router

    app.include_router(api_router, prefix="/api")
    app.include_router(sse_router, prefix="/api")

    return app
