"""Database model and API schemas for the memory bridge."""

from .memory import Memory, utcnow
from .schemas import (
    MemoryCreate,
    MemoryResponse,
    IngestResponse,
    MemoryListResponse,
    RecallResponse,
    MemoryDetailResponse,
    DeleteResponse,
    ErrorResponse,
    HealthResponse,
)

__all__ = [
    # SQLAlchemy models
    "Memory",
    "utcnow",
    # Pydantic schemas
    "MemoryCreate",
    "MemoryResponse",
    "IngestResponse",
    "MemoryListResponse",
    "RecallResponse",
    "MemoryDetailResponse",
    "DeleteResponse",
    "ErrorResponse",
    "HealthResponse",
]
