"""
In-memory cache of fetched catalog pages.

Entries are keyed by page number plus a canonical serialization of the
structured filters, so identical filters always produce the same key
regardless of the order they were given in. Free-text searches are
never cached. There is no size bound and no expiry: the cache lives as
long as the data context that owns it and is only ever cleared as a
whole, after a mutation.
"""

import json
from typing import Dict, Optional

from .schemas import FossilPage, SearchFilters


def serialize_filters(filters: Optional[SearchFilters]) -> str:
    """Canonical JSON for a filter set (``""`` when there is none)."""
    if filters is None:
        return ""
    data = {
        name: value
        for name, value in filters.model_dump(mode="json").items()
        if value not in (None, "", [])
    }
    if "tags" in data:
        data["tags"] = sorted(data["tags"])
    return json.dumps(data, sort_keys=True, separators=(",", ":"))


def is_cacheable(filters: Optional[SearchFilters]) -> bool:
    return filters is None or not filters.has_search()


def build_cache_key(page: int, filters: Optional[SearchFilters] = None) -> str:
    if filters is None or filters.without_search().is_empty():
        return f"page-{page}"
    return f"page-{page}-{serialize_filters(filters.without_search())}"


class ResultCache:
    """Mapping from cache key to a previously fetched ``FossilPage``."""

    def __init__(self) -> None:
        self._entries: Dict[str, FossilPage] = {}

    def get(self, key: str) -> Optional[FossilPage]:
        return self._entries.get(key)

    def put(self, key: str, value: FossilPage) -> None:
        self._entries[key] = value

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries
