"""
Utility functions for list slicing and safe access to query results.
"""

from typing import Any, Iterable, Iterator, List, Optional, Sequence, TypeVar

T = TypeVar("T")


def chunked(items: Sequence[T], size: int) -> Iterator[List[T]]:
    """
    Splits a sequence into consecutive slices of at most `size` items.

    Args:
        items: Sequence to split
        size: Slice size (must be >= 1)

    Yields:
        Lists of at most `size` items, in order

    Example:
        list(chunked([1, 2, 3], 2))  # [[1, 2], [3]]
    """
    if size < 1:
        raise ValueError(f"chunk size must be >= 1, got {size}")
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


def dedupe(items: Iterable[Optional[str]]) -> List[str]:
    """
    Removes duplicates and empty values, preserving first-seen order.

    Args:
        items: Iterable of strings (None and "" are dropped)

    Returns:
        List of unique, non-empty strings
    """
    seen = set()
    result = []
    for item in items:
        if not item or item in seen:
            continue
        seen.add(item)
        result.append(item)
    return result


def safe_first(result: Any) -> Optional[dict]:
    """
    Safely gets the first row of a Supabase query result.

    Args:
        result: Supabase query result with .data attribute

    Returns:
        First row dict or None if empty/invalid
    """
    if result is None:
        return None

    data = getattr(result, "data", result)
    if isinstance(data, list) and data:
        return data[0]
    return None


def safe_first_field(result: Any, field: str, default: T = None) -> T:
    """
    Safely gets a field from the first row of a query result.

    Args:
        result: Supabase query result
        field: Field name to retrieve
        default: Default value if not found

    Returns:
        Field value or default
    """
    item = safe_first(result)
    if item is None:
        return default
    return item.get(field, default)
