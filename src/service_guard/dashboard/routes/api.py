"""REST API endpoints returning JSON data."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

router = APIRouter()
logger = logging.getLogger(__name__)


def _not_registered(name: str) -> JSONResponse:
    return JSONResponse(
        {"status": "error", "message": f"Service '{name}' is not registered"}, 404,
    )


# ── Service status ───────────────────────────────────

@router.get("/status")
async def all_statuses(request: Request) -> dict:
    """Last known status of every monitored service."""
    monitor = request.app.state.monitor
    statuses = await monitor.get_all_statuses()
    return {
        "services": [s.to_dict() for s in statuses],
        "monitored": monitor.monitored_services,
        "registered": monitor.probe.registered_services(),
    }


@router.get("/status/{name}")
async def service_status(name: str, request: Request):
    monitor = request.app.state.monitor
    status = await monitor.get_status(name)
    if status is None:
        return JSONResponse(
            {"status": "error", "message": f"No status for service '{name}'"}, 404,
        )
    return status.to_dict()


# ── Monitoring control ───────────────────────────────

@router.post("/services/{name}/monitor")
async def start_monitoring(name: str, request: Request):
    monitor = request.app.state.monitor
    if not monitor.probe.is_registered(name):
        return _not_registered(name)
    if monitor.is_monitoring(name):
        return JSONResponse(
            {"status": "error", "message": f"Service '{name}' is already monitored"}, 409,
        )
    started = await monitor.start_monitoring(name)
    return {"status": "ok" if started else "error", "monitoring": monitor.is_monitoring(name)}


@router.delete("/services/{name}/monitor")
async def stop_monitoring(name: str, request: Request):
    monitor = request.app.state.monitor
    if not await monitor.stop_monitoring(name):
        return JSONResponse(
            {"status": "error", "message": f"Service '{name}' is not monitored"}, 404,
        )
    return {"status": "ok", "monitoring": False}


@router.post("/services/{name}/reset")
async def reset_failures(name: str, request: Request):
    """Clear a service's backoff and probe it immediately."""
    monitor = request.app.state.monitor
    status = await monitor.reset_failures(name)
    if status is None:
        return _not_registered(name)
    logger.info("Manual failure reset for %s via API", name)
    return {"status": "ok", "service": status.to_dict()}


# ── Providers ────────────────────────────────────────

@router.get("/providers")
async def provider_status(request: Request):
    fallback_router = request.app.state.router
    if fallback_router is None:
        return JSONResponse(
            {"status": "error", "message": "Fallback router not available"}, 503,
        )
    return {"providers": fallback_router.get_provider_status()}


@router.get("/providers/health")
async def provider_health(request: Request):
    fallback_router = request.app.state.router
    if fallback_router is None:
        return JSONResponse(
            {"status": "error", "message": "Fallback router not available"}, 503,
        )
    return {"providers": await fallback_router.check_providers()}
