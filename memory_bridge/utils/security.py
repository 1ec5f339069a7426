"""
Security utilities for request authentication and input validation.

Provides the bridge token check and the boundary coercions that give
tags and queries a single canonical shape before they reach the core.
"""

import json
import re
import secrets
from typing import Any, List, Optional


def check_token(provided: Optional[str], expected: str) -> bool:
    """
    Compare a caller-supplied token with the configured one.

    Args:
        provided: Token from the x-mcp-token header or token query parameter
        expected: Configured bridge token

    Returns:
        True if the token matches, False otherwise
    """
    if not provided or not expected:
        return False
    return secrets.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def coerce_tags(value: Any) -> List[str]:
    """
    Coerce the accepted tag shapes into a sorted list of distinct strings.

    Accepted shapes: None, a list/tuple/set of strings, a comma-separated
    string, or a string holding a JSON-encoded list of strings.

    Args:
        value: Raw tags value from the request body

    Returns:
        Sorted list of stripped, non-empty, distinct tags

    Raises:
        ValueError: If the value has any other shape
    """
    if value is None:
        return []

    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            return []
        if raw.startswith("["):
            try:
                decoded = json.loads(raw)
            except json.JSONDecodeError:
                raise ValueError("tags string looks like JSON but could not be decoded")
            return coerce_tags(decoded) if isinstance(decoded, list) else _reject(decoded)
        return _canonical(raw.split(","))

    if isinstance(value, (list, tuple, set)):
        items = list(value)
        for item in items:
            if not isinstance(item, str):
                raise ValueError("tags must contain only strings")
        return _canonical(items)

    return _reject(value)


def _canonical(items: List[str]) -> List[str]:
    return sorted({item.strip() for item in items if item.strip()})


def _reject(value: Any) -> List[str]:
    raise ValueError(
        f"tags must be a list of strings or a comma-separated string, got {type(value).__name__}"
    )


def validate_search_query(query: Optional[str], max_length: int = 500) -> str:
    """
    Validate a recall/search query.

    Args:
        query: Search query string

    Returns:
        Query with control characters removed and whitespace trimmed

    Raises:
        ValueError: If query is missing, blank, or too long
    """
    if not query or not isinstance(query, str):
        raise ValueError("Search query is required")

    # Remove control characters
    query = re.sub(r'[\x00-\x1f\x7f-\x9f]', '', query).strip()

    if not query:
        raise ValueError("Search query is required")

    if len(query) > max_length:
        raise ValueError(f"Search query too long. Maximum {max_length} characters allowed.")

    return query
