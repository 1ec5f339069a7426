"""Core application components."""

from .config import Settings, DuplicatePolicy, get_settings
from .exceptions import (
    MemoryBridgeError,
    MemoryValidationError,
    AuthError,
    MemoryNotFound,
    StorageError,
    EmbeddingUnavailable,
)

__all__ = [
    "Settings",
    "DuplicatePolicy",
    "get_settings",
    "MemoryBridgeError",
    "MemoryValidationError",
    "AuthError",
    "MemoryNotFound",
    "StorageError",
    "EmbeddingUnavailable",
]
