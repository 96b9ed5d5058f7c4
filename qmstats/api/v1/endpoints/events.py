"""Server-Sent Events stream that tells admin grids to refresh."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncGenerator

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from qmstats.api.v1.deps import (Principal, get_live_updates,
                                 require_stream_admin)
from qmstats.core.config import settings
from qmstats.services.live_updates import LiveUpdateRegistry

logger = logging.getLogger(__name__)

router = APIRouter(tags=["events"])


async def event_generator(
    request: Request,
    registry: LiveUpdateRegistry,
    queue: asyncio.Queue,
) -> AsyncGenerator[str, None]:
    """Yield SSE frames from *queue* until the client disconnects."""
    try:
        yield f"retry: {settings.SSE_RETRY_MS}\n\n"
        while True:
            if await request.is_disconnected():
                break
            try:
                event = await asyncio.wait_for(queue.get(), timeout=settings.SSE_KEEPALIVE_SECONDS)
                yield f"data: {json.dumps(event)}\n\n"
            except asyncio.TimeoutError:
                yield ": keepalive\n\n"
    finally:
        registry.unregister(queue)


@router.get("/aggregation/stream")
@router.get("/admin/hive/stream", include_in_schema=False)
async def live_stream(
    request: Request,
    admin: Principal = Depends(require_stream_admin),
    registry: LiveUpdateRegistry = Depends(get_live_updates),
) -> StreamingResponse:
    queue = registry.open_stream()
    logger.debug("Live stream opened by %s", admin.email)
    return StreamingResponse(
        event_generator(request, registry, queue),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
            "Connection": "keep-alive",
        },
    )
