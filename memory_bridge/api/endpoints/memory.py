"""
Memory API endpoints.

Provides REST API endpoints for memory ingestion, recall, listing and
deletion with proper error handling and response formatting.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from memory_bridge.api.dependencies import (
    get_app_settings, get_memory_service, get_retriever, require_token
)
from memory_bridge.core.config import Settings
from memory_bridge.core.exceptions import MemoryNotFound, MemoryValidationError
from memory_bridge.memory.retriever import MemoryRetriever
from memory_bridge.models.memory import Memory
from memory_bridge.models.schemas import (
    DeleteResponse, ErrorResponse, IngestResponse, MemoryCreate, MemoryDetailResponse,
    MemoryListResponse, MemoryResponse, RecallResponse
)
from memory_bridge.services.memory_service import MemoryService
from memory_bridge.utils.security import validate_search_query

logger = logging.getLogger(__name__)

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Missing or invalid input"},
    401: {"model": ErrorResponse, "description": "Invalid or missing token"},
    500: {"model": ErrorResponse, "description": "Storage error"},
}

router = APIRouter(
    prefix="/memories",
    tags=["memories"],
    dependencies=[Depends(require_token)],
    responses=ERROR_RESPONSES
)


def create_list_response(memories: List[Memory]) -> MemoryListResponse:
    """
    Create standardized list response.

    Args:
        memories: Memories, already ranked

    Returns:
        MemoryListResponse: Count plus serialized memories
    """
    return MemoryListResponse(
        count=len(memories),
        memories=[MemoryResponse.model_validate(memory) for memory in memories]
    )


def require_param(value: Optional[str], name: str) -> str:
    if value is None or not value.strip():
        raise MemoryValidationError(f"{name} required")
    return value.strip()


@router.post("", response_model=IngestResponse, response_model_exclude_none=True)
async def create_memory(
    request: MemoryCreate,
    service: MemoryService = Depends(get_memory_service)
):
    """
    Ingest a memory.

    Normalizes the text, rejects exact and semantic duplicates (or refreshes
    the existing memory under the upsert policy) and stores the rest.

    Example:
        POST /memories
        {
            "text": "Meeting with Adam tomorrow at 4pm",
            "type": "event",
            "tags": ["work"]
        }

        Response:
        {"ok": true, "id": "...", "last_updated": "2024-01-01T12:00:00Z"}

        Repeated:
        {"ok": false, "error": "duplicate", "existing": {"id": "...", "text": "..."}}
    """
    logger.info(f"Processing ingest from source '{request.source}'")

    result = await service.ingest(request)
    return IngestResponse(**result.to_response())


@router.get("/all", response_model=MemoryListResponse)
async def list_all_memories(
    limit: Optional[int] = Query(default=None, ge=1, le=5000, description="Maximum number of memories"),
    retriever: MemoryRetriever = Depends(get_retriever),
    settings: Settings = Depends(get_app_settings)
):
    """List memories, most recently updated first."""
    memories = await retriever.list_all(limit or settings.list_default_limit)
    return create_list_response(memories)


async def _recall(q: Optional[str], limit: Optional[int], retriever: MemoryRetriever, settings: Settings):
    try:
        query = validate_search_query(q, settings.max_query_length)
    except ValueError as e:
        raise MemoryValidationError(str(e))

    result = await retriever.recall(query, limit or settings.recall_default_limit)
    return RecallResponse(
        found=result.found,
        query=query,
        count=len(result.memories),
        memories=[MemoryResponse.model_validate(memory) for memory in result.memories]
    )


@router.get("/recall", response_model=RecallResponse)
async def recall_memories(
    q: Optional[str] = Query(default=None, description="Text to look for"),
    limit: Optional[int] = Query(default=None, ge=1, le=100, description="Maximum number of memories"),
    retriever: MemoryRetriever = Depends(get_retriever),
    settings: Settings = Depends(get_app_settings)
):
    """
    Recall memories whose text contains the query.

    Matching is case-insensitive. Nothing matching returns found=false
    with an empty list, not an error.

    Example:
        GET /memories/recall?q=adam&limit=5

        Response:
        {"ok": true, "found": true, "query": "adam", "count": 1, "memories": [...]}
    """
    return await _recall(q, limit, retriever, settings)


@router.get("/search", response_model=RecallResponse)
async def search_memories(
    q: Optional[str] = Query(default=None, description="Text to look for"),
    limit: Optional[int] = Query(default=None, ge=1, le=100, description="Maximum number of memories"),
    retriever: MemoryRetriever = Depends(get_retriever),
    settings: Settings = Depends(get_app_settings)
):
    """Alias of /memories/recall."""
    return await _recall(q, limit, retriever, settings)


@router.get("/by-tag", response_model=MemoryListResponse)
async def list_memories_by_tag(
    tag: Optional[str] = Query(default=None, description="Tag to filter by"),
    retriever: MemoryRetriever = Depends(get_retriever),
    settings: Settings = Depends(get_app_settings)
):
    """List memories carrying the given tag."""
    memories = await retriever.by_tag(require_param(tag, "tag"), settings.filter_list_limit)
    return create_list_response(memories)


@router.get("/by-type", response_model=MemoryListResponse)
async def list_memories_by_type(
    memory_type: Optional[str] = Query(default=None, alias="type", description="Memory type to filter by"),
    retriever: MemoryRetriever = Depends(get_retriever),
    settings: Settings = Depends(get_app_settings)
):
    """List memories of exactly the given type."""
    memories = await retriever.by_type(require_param(memory_type, "type"), settings.filter_list_limit)
    return create_list_response(memories)


@router.get("/today", response_model=MemoryListResponse)
async def list_memories_today(retriever: MemoryRetriever = Depends(get_retriever)):
    """List memories created today in the configured time zone."""
    return create_list_response(await retriever.today())


@router.get("/{memory_id}", response_model=MemoryDetailResponse)
async def get_memory(
    memory_id: str,
    service: MemoryService = Depends(get_memory_service)
):
    """Fetch one memory; 404 if absent."""
    memory = await service.get_memory(memory_id)
    return MemoryDetailResponse(memory=MemoryResponse.model_validate(memory))


@router.delete("/{memory_id}", response_model=DeleteResponse, response_model_exclude_none=True)
async def delete_memory(
    memory_id: str,
    service: MemoryService = Depends(get_memory_service)
):
    """Delete one memory; 404 if absent."""
    try:
        await service.delete_memory(memory_id)
    except MemoryNotFound:
        logger.info(f"Delete of unknown memory {memory_id}")
        body = DeleteResponse(ok=False, deleted=False, id=memory_id, error="not found")
        return JSONResponse(status_code=404, content=body.model_dump(exclude_none=True))

    return DeleteResponse(ok=True, deleted=True, id=memory_id)
