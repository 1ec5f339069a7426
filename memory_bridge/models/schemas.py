"""
Pydantic schemas for API request/response validation.

Defines data models for API endpoints with proper validation,
documentation, and examples.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, validator

from memory_bridge.utils.security import coerce_tags

DEFAULT_TYPE = "note"
DEFAULT_SOURCE = "manual"


class MemoryCreate(BaseModel):
    """
    Schema for ingesting a memory.

    Tags may arrive as a list, a comma-separated string, or a JSON-encoded
    list; they are coerced to a sorted list of distinct strings here so the
    rest of the pipeline sees one shape.
    """
    text: str = Field(..., description="Memory text")
    type: str = Field(default=DEFAULT_TYPE, description="Classification tag")
    tags: List[str] = Field(default_factory=list, description="Tags for filtered recall")
    source: str = Field(default=DEFAULT_SOURCE, description="Origin label")
    ts: Optional[datetime] = Field(None, description="Event time, if known")

    @validator('text')
    def validate_text(cls, v):
        """Validate text is not empty."""
        if not v.strip():
            raise ValueError('Text cannot be empty')
        return v.strip()

    @validator('tags', pre=True)
    def validate_tags(cls, v):
        return coerce_tags(v)

    @validator('type', pre=True)
    def validate_type(cls, v):
        if v is None or not str(v).strip():
            return DEFAULT_TYPE
        return str(v).strip()

    @validator('source', pre=True)
    def validate_source(cls, v):
        if v is None or not str(v).strip():
            return DEFAULT_SOURCE
        return str(v).strip()

    @validator('ts')
    def validate_ts(cls, v):
        """Store event times as naive UTC."""
        if v is not None and v.tzinfo is not None:
            return v.astimezone(timezone.utc).replace(tzinfo=None)
        return v

    class Config:
        """Pydantic configuration."""
        json_schema_extra = {
            "example": {
                "text": "Meeting with Adam tomorrow at 4pm",
                "type": "event",
                "tags": ["work"],
                "source": "manual"
            }
        }


class MemoryResponse(BaseModel):
    """
    Schema for memory response data.

    Used when returning memory information to clients and stream
    subscribers. Embedding vectors are reduced to a flag.
    """
    id: str = Field(..., description="Unique memory identifier")
    text: str = Field(..., description="Memory text")
    text_norm: str = Field(..., description="Normalized dedup key")
    type: str = Field(..., description="Classification tag")
    tags: List[str] = Field(default_factory=list, description="Tags")
    source: str = Field(..., description="Origin label")
    ts: Optional[datetime] = Field(None, description="Event time")
    created_at: datetime = Field(..., description="Creation timestamp")
    last_updated: datetime = Field(..., description="Last update timestamp")
    has_embedding: bool = Field(default=False, description="Whether an embedding is stored")

    @validator('tags', pre=True)
    def validate_tags(cls, v):
        return list(v or [])

    @validator('ts', 'created_at', 'last_updated')
    def mark_utc(cls, v):
        """Stored timestamps are naive UTC; label them for clients."""
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    class Config:
        """Pydantic configuration."""
        from_attributes = True


class ExistingMemory(BaseModel):
    """Reference to the memory that blocked an ingest."""
    id: str
    text: str


class IngestResponse(BaseModel):
    """
    Outcome of POST /memories.

    ok=true carries the stored id; ok=false carries the duplicate that
    prevented a new row. Neither is an error.
    """
    ok: bool = Field(..., description="Whether a row was created or updated")
    id: Optional[str] = Field(None, description="Stored memory id")
    last_updated: Optional[datetime] = Field(None, description="Stored last_updated")
    updated: Optional[bool] = Field(None, description="True when an existing row was refreshed")
    error: Optional[str] = Field(None, description="'duplicate' or 'semantic duplicate'")
    existing: Optional[ExistingMemory] = Field(None, description="Blocking memory")
    similarity: Optional[float] = Field(None, description="Cosine similarity for semantic duplicates")

    @validator('last_updated')
    def mark_utc(cls, v):
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    class Config:
        """Pydantic configuration."""
        json_schema_extra = {
            "example": {
                "ok": False,
                "error": "duplicate",
                "existing": {"id": "123e4567-e89b-12d3-a456-426614174000",
                             "text": "Meeting with Adam tomorrow at 4pm"}
            }
        }


class MemoryListResponse(BaseModel):
    """Schema for list endpoints (all, by-tag, by-type, today)."""
    ok: bool = True
    count: int = Field(..., ge=0, description="Number of memories returned")
    memories: List[MemoryResponse] = Field(..., description="Memories, most recent first")


class RecallResponse(BaseModel):
    """
    Schema for recall/search results.

    An empty result is a normal outcome: found=false, memories=[].
    """
    ok: bool = True
    found: bool = Field(..., description="Whether anything matched")
    query: str = Field(..., description="Original query")
    count: int = Field(..., ge=0, description="Number of memories returned")
    memories: List[MemoryResponse] = Field(..., description="Matches, most recent first")


class MemoryDetailResponse(BaseModel):
    ok: bool = True
    memory: MemoryResponse


class DeleteResponse(BaseModel):
    ok: bool = Field(..., description="Whether the memory was deleted")
    deleted: bool = Field(..., description="Whether a row was removed")
    id: str = Field(..., description="Requested memory id")
    error: Optional[str] = None


class ErrorResponse(BaseModel):
    """Error body shared by every failing route."""
    ok: bool = False
    error: str
    details: Optional[List[Dict[str, Any]]] = None


class HealthResponse(BaseModel):
    """
    Schema for health check response.

    Provides status of all system components.
    """
    status: str = Field(..., description="Overall system status")
    components: Dict[str, bool] = Field(..., description="Component health status")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Health check timestamp"
    )
    version: str = Field(..., description="API version")

    class Config:
        """Pydantic configuration."""
        json_schema_extra = {
            "example": {
                "status": "healthy",
                "components": {
                    "database": True,
                    "embedding_provider": False,
                    "summarizer": False
                },
                "timestamp": "2024-01-01T12:00:00Z",
                "version": "1.0.0"
            }
        }
