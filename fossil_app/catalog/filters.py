"""
Filtering helpers for catalog reads.

Structured filters are pushed down to the backend as query predicates
by ``apply_filters``. Free-text search spans species, location, the
long description and every tag at once, which the backend cannot
combine cheaply in one round trip, so ``filter_fossils`` applies it to
rows that were already fetched.
"""

from __future__ import annotations

from typing import List, Optional

from .schemas import Fossil, SearchFilters


def _norm(s: Optional[str]) -> str:
    """Normalize a string for case-insensitive comparison.

    Parameters
    ----------
    s : Optional[str]
        The string to normalize.

    Returns
    -------
    str
        The normalized string (lowercased and stripped). An empty string is
        returned when the input is ``None`` or empty.
    """
    return (s or "").strip().lower()


def apply_filters(query, filters: Optional[SearchFilters] = None):
    """Conjoin backend predicates for every structured filter that is set.

    Parameters
    ----------
    query
        A chainable table query (``select``/``update``/``delete`` already
        chosen). It is returned with the predicates appended.
    filters : Optional[SearchFilters]
        Filters to apply. ``search_query`` is ignored here; an absent or
        empty field adds nothing.

    Returns
    -------
    The same query, for chaining.
    """
    if filters is None:
        return query

    if filters.species:
        query = query.ilike("species", f"%{filters.species}%")

    if filters.location:
        query = query.ilike("location", f"%{filters.location}%")

    # Row tags must contain every requested tag
    if filters.tags:
        query = query.contains("tags", list(filters.tags))

    if filters.date_from:
        query = query.gte("discovery_date", filters.date_from.isoformat())
    if filters.date_to:
        query = query.lte("discovery_date", filters.date_to.isoformat())

    return query


def order_newest_first(query):
    """Most recent discoveries first; undated fossils last, newest entry first."""
    return query.order("discovery_date", desc=True).order("created_at", desc=True)


def filter_fossils(
    fossils: List[Fossil], filters: Optional[SearchFilters] = None
) -> List[Fossil]:
    """Keep the fossils matching the free-text query.

    A fossil matches when the query appears, case-insensitively, in its
    species, location, description or any of its tags. Relative order
    is preserved. Without a (non-blank) query the input is returned
    unchanged.
    """
    if filters is None:
        return fossils
    term = _norm(filters.search_query)
    if not term:
        return fossils

    def _matches(fossil: Fossil) -> bool:
        if term in _norm(fossil.species):
            return True
        if term in _norm(fossil.location):
            return True
        if term in fossil.description.lower():
            return True
        return any(term in tag.lower() for tag in (fossil.tags or []))

    return [f for f in fossils if _matches(f)]
