"""
Error taxonomy for the memory bridge.

Each exception maps to one HTTP outcome in the application's exception
handlers. Duplicate outcomes are not errors and have no exception here.
"""

from typing import Optional


class MemoryBridgeError(Exception):
    """Base class for all memory bridge errors."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class MemoryValidationError(MemoryBridgeError):
    """Missing or malformed input (empty text, bad tags, blank query)."""

    status_code = 400


class AuthError(MemoryBridgeError):
    """Bad or missing bridge token."""

    status_code = 401

    def __init__(self, message: str = "Invalid or missing token"):
        super().__init__(message)


class MemoryNotFound(MemoryBridgeError):
    """No memory with the requested id."""

    status_code = 404

    def __init__(self, memory_id: str):
        super().__init__("not found")
        self.memory_id = memory_id


class StorageError(MemoryBridgeError):
    """Connection or constraint failure other than the expected text_norm conflict."""

    status_code = 500

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(message)
        self.operation = operation


class EmbeddingUnavailable(MemoryBridgeError):
    """The embedding provider is unset or its call failed. Never surfaced to callers."""

    status_code = 503
