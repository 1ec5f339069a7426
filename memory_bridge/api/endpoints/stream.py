"""
Change stream endpoint.

Serves the per-client server-sent event feed of recent memories.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse

from memory_bridge.api.dependencies import get_app_settings, get_change_stream, require_token
from memory_bridge.core.config import Settings
from memory_bridge.services.change_stream import ChangeStream

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/mcp", tags=["stream"], dependencies=[Depends(require_token)])


@router.get("/sse")
async def subscribe(
    request: Request,
    limit: Optional[int] = Query(default=None, ge=1, le=500, description="Memories per snapshot"),
    stream: ChangeStream = Depends(get_change_stream),
    settings: Settings = Depends(get_app_settings)
):
    """
    Subscribe to the memory change stream.

    Returns a stream of events:
    - event: mcp_welcome -> {"type", "ts", "msg"}
    - event: memory_item -> {"type", "item"}
    - event: synth_summary -> {"type", "text"}
    - ": ping" keepalive comment when nothing changed

    Closing the connection ends the subscription.
    """
    snapshot_limit = limit or settings.stream_default_limit
    logger.info(f"Change stream subscriber connected (limit={snapshot_limit})")

    return StreamingResponse(
        stream.subscribe(snapshot_limit, is_disconnected=request.is_disconnected),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no"  # Disable nginx buffering
        }
    )
