"""
Pydantic schema definitions for the catalog module.

``Fossil`` mirrors a row of the ``fossils`` table. ``SearchFilters``
is the query-shaping value passed to the data context; it is never
persisted. ``FossilPage`` is what a single fetch produces and what the
result cache stores, while ``PaginatedFossils`` is the envelope the
``/fossils`` endpoint returns so that clients know how many pages of
results exist.
"""

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


def parse_tags(raw: Optional[str]) -> Optional[List[str]]:
    """Split a comma-separated tag string into a list.

    Parameters
    ----------
    raw : Optional[str]
        Tags as typed in a form, e.g. ``"paleozoic, marine,"``.

    Returns
    -------
    Optional[List[str]]
        Trimmed, non-empty tags in input order, or ``None`` when no tag
        survives trimming.
    """
    if not raw:
        return None
    tags = [tag.strip() for tag in raw.split(",")]
    tags = [tag for tag in tags if tag]
    return tags or None


class Fossil(BaseModel):
    """A single fossil entry.

    ``description`` and ``image_url`` are always present. Every other
    descriptive field may be ``None``. ``user_id`` identifies the owner,
    the only user allowed to modify or delete the entry.
    """

    id: str
    user_id: str
    species: Optional[str] = None
    description: str
    location: Optional[str] = None
    discovery_date: Optional[date] = None
    tags: Optional[List[str]] = None
    image_url: str
    created_at: datetime
    updated_at: datetime


class SearchFilters(BaseModel):
    """Structured filters for a catalog read.

    ``search_query`` is free text matched client-side against several
    fields; every other field becomes a backend predicate.
    """

    search_query: Optional[str] = None
    species: Optional[str] = None
    location: Optional[str] = None
    tags: Optional[List[str]] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None

    def has_search(self) -> bool:
        return bool((self.search_query or "").strip())

    def without_search(self) -> "SearchFilters":
        return self.model_copy(update={"search_query": None})

    def is_empty(self) -> bool:
        return not (
            self.has_search()
            or self.species
            or self.location
            or self.tags
            or self.date_from
            or self.date_to
        )


class FossilPage(BaseModel):
    """One page of fossils and the total number of matches."""

    fossils: List[Fossil] = Field(default_factory=list)
    total_count: int = 0


class PaginatedFossils(BaseModel):
    """A wrapper for paginated results returned from ``/fossils`` endpoint."""

    page: int
    page_size: int
    total: int
    total_pages: int
    items: List[Fossil]


class FossilCreate(BaseModel):
    """Fields a user supplies when recording a fossil.

    Blank optional strings are stored as ``None`` so that the row keeps
    a null rather than an empty string.
    """

    species: Optional[str] = None
    description: str
    location: Optional[str] = None
    discovery_date: Optional[date] = None
    tags: Optional[List[str]] = None

    @field_validator("description")
    @classmethod
    def description_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Description is required")
        return v

    @field_validator("species", "location", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("discovery_date", mode="before")
    @classmethod
    def blank_date_to_none(cls, v):
        if v == "":
            return None
        return v

    @field_validator("tags", mode="before")
    @classmethod
    def split_tags(cls, v):
        if isinstance(v, str):
            return parse_tags(v)
        if v is not None:
            v = [tag.strip() for tag in v if tag and tag.strip()]
            return v or None
        return v

    def to_row(self) -> dict:
        row = self.model_dump()
        if self.discovery_date is not None:
            row["discovery_date"] = self.discovery_date.isoformat()
        return row


class FossilUpdate(FossilCreate):
    """Editable fields of an existing fossil; the same rules as creation."""


class AuthCredentials(BaseModel):
    email: str
    password: str


class SignUpRequest(AuthCredentials):
    name: Optional[str] = None
    location: Optional[str] = None


class SessionResponse(BaseModel):
    user_id: str
    email: Optional[str] = None
    access_token: Optional[str] = None
    message: str = ""
