"""
SQLAlchemy model for memory storage.

Defines the memories table with the unique text_norm constraint that
backs atomic upserts and duplicate detection.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Index, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB

from memory_bridge.core.database import Base

# JSONB on PostgreSQL so tag containment can use @>
JSONType = JSON(none_as_null=True).with_variant(JSONB(none_as_null=True), "postgresql")

TEXT_NORM_CONSTRAINT = "memories_text_norm_key"


def utcnow() -> datetime:
    """Naive UTC now, the storage convention for every timestamp column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_memory_id() -> str:
    return str(uuid.uuid4())


class Memory(Base):
    """
    A stored memory.

    Attributes:
        id: Opaque UUID assigned at creation
        text: Original text as submitted (trimmed)
        text_norm: Canonical dedup key, unique across the table
        type: Free-form classification ("note", "event", ...)
        tags: Sorted list of distinct tag strings
        source: Origin label ("manual", "voice", agent name)
        ts: Optional event time distinct from creation time
        created_at: Insert timestamp, never changed
        last_updated: Bumped whenever an ingest resolves to this row
        embedding: Optional vector computed from text at insert time
    """

    __tablename__ = "memories"

    id = Column(String(36), primary_key=True, default=new_memory_id)
    text = Column(Text, nullable=False)
    text_norm = Column(Text, nullable=False)
    type = Column(String(100), nullable=False, default="note")
    tags = Column(JSONType, nullable=False, default=list)
    source = Column(String(255), nullable=False, default="manual")
    ts = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    last_updated = Column(DateTime, nullable=False, default=utcnow)
    embedding = Column(JSONType, nullable=True)

    __table_args__ = (
        UniqueConstraint("text_norm", name=TEXT_NORM_CONSTRAINT),
        Index("idx_memory_type", "type"),
        Index("idx_memory_last_updated", "last_updated"),
        Index("idx_memory_created_at", "created_at"),
    )

    @property
    def has_embedding(self) -> bool:
        return bool(self.embedding)

    def __repr__(self) -> str:
        return f"<Memory(id='{self.id}', type='{self.type}')>"

