"""
Data context for fossil lists.

A ``FossilDataContext`` owns the lists a session is looking at (the
paginated public catalog and the current user's own fossils), the
loading and error state around fetching them, and the caches that
avoid refetching pages the session has already seen.

Reads without a free-text query use the backend's row range directly.
With a free-text query the context fetches every row matching the
structured filters, refines them in memory and paginates the refined
list, so that the reported total counts only real matches.

Concurrent fetches are not cancelled. Each one is tagged with a
sequence number and only the most recently dispatched fetch of a list
may write that list's shared state; an older completion still returns
its page to its own caller.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

from .cache import ResultCache, build_cache_key, is_cacheable, serialize_filters
from .events import Invalidate, InvalidationBus
from .filters import apply_filters, filter_fossils, order_newest_first
from .pagination import page_range, slice_page
from .schemas import Fossil, FossilPage, SearchFilters

logger = logging.getLogger(__name__)

FOSSILS_TABLE = "fossils"
LOGIN_REQUIRED_MESSAGE = "You must be logged in to view your fossils"
DEFAULT_ERROR_MESSAGE = "Failed to load fossils"

StateListener = Callable[["FossilDataContext"], None]


def _error_message(exc: Exception) -> str:
    return str(exc) or DEFAULT_ERROR_MESSAGE


def _to_fossils(rows) -> List[Fossil]:
    return [Fossil.model_validate(row) for row in rows or []]


class FossilDataContext:
    """Fetches, caches and exposes fossil lists for one session.

    Parameters
    ----------
    client
        Backend client providing ``table()`` and ``auth``.
    bus : Optional[InvalidationBus]
        When given, the context clears its caches on every ``Invalidate``
        published there.
    """

    def __init__(self, client, bus: Optional[InvalidationBus] = None):
        self.client = client

        self.all_fossils: List[Fossil] = []
        self.all_fossils_count = 0
        self.user_fossils: List[Fossil] = []
        self.loading_all = False
        self.loading_user = False
        self.error_all = ""
        self.error_user = ""

        self._page_cache = ResultCache()
        self._user_fossils_cached = False
        self._user_fossils_key: Optional[str] = None

        self._all_seq = 0
        self._user_seq = 0
        # Bumped by clear_cache so fetches issued earlier never repopulate it
        self._generation = 0

        self._listeners: List[StateListener] = []
        self._unsubscribe_bus = (
            bus.subscribe(self._on_invalidate) if bus is not None else None
        )

    # =========================================================================
    # OBSERVABLE STATE
    # =========================================================================

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Call ``listener(context)`` after every state change."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set(self, **changes) -> None:
        for name, value in changes.items():
            setattr(self, name, value)
        for listener in list(self._listeners):
            listener(self)

    def _on_invalidate(self, message: Invalidate) -> None:
        logger.debug("Clearing fossil cache: %s", message.reason)
        self.clear_cache()

    def close(self) -> None:
        if self._unsubscribe_bus is not None:
            self._unsubscribe_bus()
            self._unsubscribe_bus = None

    @property
    def cached_pages(self) -> int:
        return len(self._page_cache)

    # =========================================================================
    # READ OPERATIONS
    # =========================================================================

    async def fetch_all_fossils(
        self, page: int, page_size: int, filters: Optional[SearchFilters] = None
    ) -> FossilPage:
        """
        Fetch one page of the public catalog.

        Args:
            page: 1-indexed page number
            page_size: Fossils per page
            filters: Optional structured filters and free-text query

        Returns:
            The page and the total number of matching fossils

        Raises:
            Whatever the backend raised, after recording it in ``error_all``
        """
        start, end = page_range(page, page_size)
        cache_key = build_cache_key(page, filters)

        if is_cacheable(filters):
            cached = self._page_cache.get(cache_key)
            if cached is not None:
                # A cache hit is the latest request too; older fetches must not overwrite it
                self._all_seq += 1
                self._set(
                    all_fossils=cached.fossils,
                    all_fossils_count=cached.total_count,
                    loading_all=False,
                )
                return cached

        self._all_seq += 1
        seq = self._all_seq
        generation = self._generation
        self._set(loading_all=True, error_all="")

        try:
            server_filters = filters.without_search() if filters else None

            if filters is not None and filters.has_search():
                # Refine the whole matching set, then paginate the survivors
                query = apply_filters(self.client.table(FOSSILS_TABLE).select("*"), server_filters)
                result = await order_newest_first(query).execute()
                matched = filter_fossils(_to_fossils(result.data), filters)
                fossil_page = FossilPage(
                    fossils=slice_page(matched, page, page_size),
                    total_count=len(matched),
                )
            else:
                count_query = apply_filters(
                    self.client.table(FOSSILS_TABLE).select("*", count="exact", head=True),
                    server_filters,
                )
                count_result = await count_query.execute()

                query = apply_filters(self.client.table(FOSSILS_TABLE).select("*"), server_filters)
                result = await order_newest_first(query).range(start, end).execute()
                fossil_page = FossilPage(
                    fossils=_to_fossils(result.data),
                    total_count=count_result.count or 0,
                )
                if generation == self._generation:
                    self._page_cache.put(cache_key, fossil_page)

            if seq == self._all_seq:
                self._set(
                    all_fossils=fossil_page.fossils,
                    all_fossils_count=fossil_page.total_count,
                )
            else:
                logger.debug("Discarding stale catalog fetch #%s (latest #%s)", seq, self._all_seq)
            return fossil_page
        except Exception as exc:
            logger.error("Failed to fetch fossils page %s: %s", page, exc)
            if seq == self._all_seq:
                self._set(error_all=_error_message(exc))
            raise
        finally:
            if seq == self._all_seq:
                self._set(loading_all=False)

    async def fetch_user_fossils(self, filters: Optional[SearchFilters] = None) -> None:
        """
        Load every fossil owned by the current user into ``user_fossils``.

        A repeat call with the same filters as the last successful load is a
        no-op. Failures are recorded in ``error_user`` rather than raised.
        """
        filters_key = serialize_filters(filters)
        if self._user_fossils_cached and filters_key == self._user_fossils_key:
            return

        self._user_seq += 1
        seq = self._user_seq
        generation = self._generation
        self._set(loading_user=True, error_user="")

        try:
            user = await self.client.auth.get_user()
            if user is None:
                if seq == self._user_seq:
                    self._set(error_user=LOGIN_REQUIRED_MESSAGE)
                return

            server_filters = filters.without_search() if filters else None
            query = self.client.table(FOSSILS_TABLE).select("*").eq("user_id", user.id)
            query = apply_filters(query, server_filters)
            result = await order_newest_first(query).execute()

            fossils = filter_fossils(_to_fossils(result.data), filters)

            if seq == self._user_seq:
                # Rows read before a clear_cache() are shown but never marked as loaded
                if generation == self._generation:
                    self._user_fossils_cached = True
                    self._user_fossils_key = filters_key
                self._set(user_fossils=fossils)
            else:
                logger.debug("Discarding stale user fetch #%s (latest #%s)", seq, self._user_seq)
        except Exception as exc:
            logger.error("Failed to fetch user fossils: %s", exc)
            if seq == self._user_seq:
                self._set(error_user=_error_message(exc))
        finally:
            if seq == self._user_seq:
                self._set(loading_user=False)

    def clear_cache(self) -> None:
        """Forget every fetched list and cached page; the next read goes to the backend."""
        self._page_cache.clear()
        self._user_fossils_cached = False
        self._user_fossils_key = None
        self._generation += 1
        self._set(all_fossils=[], user_fossils=[], error_all="", error_user="")
