"""
FastAPI dependencies for dependency injection.

Components are built once by the application factory and stored on
app.state; these dependencies hand them to request handlers.
"""

import logging
from typing import Optional

from fastapi import Header, Query, Request

from memory_bridge.core.config import Settings
from memory_bridge.core.exceptions import AuthError
from memory_bridge.memory.retriever import MemoryRetriever
from memory_bridge.services.change_stream import ChangeStream
from memory_bridge.services.memory_service import MemoryService
from memory_bridge.utils.security import check_token

logger = logging.getLogger(__name__)


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_memory_service(request: Request) -> MemoryService:
    """
    Get memory service instance.

    Returns:
        MemoryService: Service built at application startup

    Example:
        >>> @router.get("/test")
        >>> async def test(service: MemoryService = Depends(get_memory_service)):
        ...     return await service.get_memory("...")
    """
    return request.app.state.memory_service


def get_retriever(request: Request) -> MemoryRetriever:
    return request.app.state.retriever


def get_change_stream(request: Request) -> ChangeStream:
    return request.app.state.change_stream


async def require_token(
    request: Request,
    x_mcp_token: Optional[str] = Header(default=None),
    token: Optional[str] = Query(default=None, include_in_schema=False)
) -> None:
    """
    Reject requests without the bridge token.

    The token may be sent in the x-mcp-token header or the token query
    parameter.

    Raises:
        AuthError: If the token is missing or wrong
    """
    settings: Settings = request.app.state.settings
    if not check_token(x_mcp_token or token, settings.bridge_token):
        logger.warning(f"Rejected unauthenticated request to {request.url.path}")
        raise AuthError()
