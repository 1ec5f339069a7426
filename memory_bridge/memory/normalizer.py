"""
Text normalization for dedup keys and recall queries.

The same function is applied when a memory is written and when it is
searched, so matching is case-insensitive by construction.
"""


def normalize(text: str) -> str:
    """
    Canonicalize text into its dedup key.

    Trims leading/trailing whitespace and folds case.

    Args:
        text: Raw memory text or query

    Returns:
        str: Normalized text

    Example:
        >>> normalize("  Meeting with Adam ")
        'meeting with adam'
    """
    return text.strip().casefold()
