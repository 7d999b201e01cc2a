"""Server-Sent Events for live status updates."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import AsyncIterator, Awaitable, Callable

from fastapi import APIRouter, Request
from starlette.responses import StreamingResponse

from service_guard.health.models import ServiceStatus
from service_guard.monitor.bus import StatusSubscription

router = APIRouter()
logger = logging.getLogger(__name__)


def format_event(status: ServiceStatus) -> str:
    return f"event: status\ndata: {json.dumps(status.to_dict())}\n\n"


async def status_events(
    subscription: StatusSubscription,
    snapshot: list[ServiceStatus],
    is_disconnected: Callable[[], Awaitable[bool]],
    keepalive_seconds: float = 15.0,
) -> AsyncIterator[str]:
    """Current snapshot first, then every published change until disconnect.

    A queued status equal to the last one sent for its service is skipped;
    the subscription opens before the snapshot is read, so the two overlap.
    """
    sent = {status.service_name: status for status in snapshot}
    try:
        for status in snapshot:
            yield format_event(status)
        while not await is_disconnected():
            try:
                status = await asyncio.wait_for(subscription.get(), timeout=keepalive_seconds)
            except asyncio.TimeoutError:
                yield ": keepalive\n\n"
                continue
            if status is None:
                break
            if sent.get(status.service_name) == status:
                continue
            sent[status.service_name] = status
            yield format_event(status)
    finally:
        subscription.close()


@router.get("/events")
async def event_stream(request: Request) -> StreamingResponse:
    """SSE endpoint streaming service status changes."""
    monitor = request.app.state.monitor
    config = request.app.state.config
    service = request.query_params.get("service") or None

    subscription = monitor.bus.subscribe(service)
    snapshot = [
        s for s in await monitor.get_all_statuses()
        if service is None or s.service_name == service
    ]
    logger.debug("SSE client connected (service=%s)", service or "*")

    return StreamingResponse(
        status_events(
            subscription, snapshot, request.is_disconnected,
            keepalive_seconds=config.dashboard.sse_keepalive_seconds,
        ),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        },
    )
