"""
Liveness and diagnostics endpoints.

These routes carry no memory logic and do not require the bridge token.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from memory_bridge.models.schemas import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/ping")
async def ping():
    return {"ok": True, "pong": True, "ts": datetime.now(timezone.utc).isoformat()}


@router.get("/version")
async def version(request: Request):
    settings = request.app.state.settings
    return {"ok": True, "name": settings.api_title, "version": settings.api_version}


@router.get("/healthz", response_model=HealthResponse)
async def health_check(request: Request):
    """
    Health check endpoint.

    Checks the database and reports which optional collaborators are
    configured.

    Example:
        GET /healthz

        Response:
        {
            "status": "healthy",
            "components": {
                "database": true,
                "embedding_provider": false,
                "summarizer": false
            },
            "timestamp": "2024-01-01T12:00:00Z",
            "version": "1.0.0"
        }
    """
    state = request.app.state

    components = {
        "database": await state.store.ping(),
        "embedding_provider": state.embedding_service.available,
        "summarizer": state.summarizer is not None,
    }

    # Optional collaborators do not affect overall status
    overall_status = "healthy" if components["database"] else "unhealthy"
    if overall_status != "healthy":
        logger.warning(f"Health check failed: {components}")

    body = HealthResponse(
        status=overall_status,
        components=components,
        version=state.settings.api_version
    )
    return JSONResponse(
        status_code=200 if components["database"] else 503,
        content=body.model_dump(mode="json")
    )
