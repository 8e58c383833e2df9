"""
Page arithmetic for catalog reads.

Pages are 1-indexed. ``page_range`` produces the inclusive row range a
backend expects; ``slice_page`` applies the same window to a list that
was already filtered in memory.
"""

from typing import List, Sequence, Tuple, TypeVar

T = TypeVar("T")


def _check(page: int, page_size: int) -> None:
    if page < 1:
        raise ValueError(f"page must be >= 1, got {page}")
    if page_size < 1:
        raise ValueError(f"page_size must be >= 1, got {page_size}")


def page_range(page: int, page_size: int) -> Tuple[int, int]:
    """Return ``(start, end)`` row offsets for a page, ``end`` inclusive."""
    _check(page, page_size)
    start = (page - 1) * page_size
    return start, start + page_size - 1


def total_pages(total_count: int, page_size: int) -> int:
    if page_size < 1:
        raise ValueError(f"page_size must be >= 1, got {page_size}")
    if total_count <= 0:
        return 0
    return (total_count + page_size - 1) // page_size


def slice_page(items: Sequence[T], page: int, page_size: int) -> List[T]:
    start, end = page_range(page, page_size)
    return list(items[start:end + 1])
