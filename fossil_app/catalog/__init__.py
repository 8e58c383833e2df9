"""
Catalog package for the fossil catalog API.

This package holds the fossil schemas, the data context that fetches,
filters, paginates and caches fossil lists for a session, the service
that records, edits and deletes fossils together with their images,
and the route definitions exposing all of it under ``/api/catalog``.
"""

from .router import router as catalog_router  # noqa: F401
