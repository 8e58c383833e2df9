"""
Route definitions for the catalogue API.

Endpoints under /api/catalog:
- GET    /fossils              : paginated catalogue with filters and free-text search
- GET    /fossils/mine         : every fossil owned by the caller
- GET    /fossils/{fossil_id}  : one fossil
- POST   /fossils              : record a fossil (multipart, image required)
- PATCH  /fossils/{fossil_id}  : edit an owned fossil (multipart, image optional)
- DELETE /fossils/{fossil_id}  : delete an owned fossil
"""

from __future__ import annotations

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile

from ..dependencies import (
    get_access_token,
    get_current_user,
    get_default_page_size,
    get_registry,
    get_session,
    to_http_error,
)
from ..errors import FossilAppError
from ..models import AuthUser, ImageUpload
from ..sessions import SessionRegistry, UserSession
from .context import LOGIN_REQUIRED_MESSAGE
from .pagination import total_pages
from .schemas import Fossil, FossilCreate, FossilUpdate, PaginatedFossils, SearchFilters

router = APIRouter(prefix="/api/catalog", tags=["catalog"])


def _filters(
    q: Optional[str],
    species: Optional[str],
    location: Optional[str],
    tags: Optional[List[str]],
    date_from: Optional[date],
    date_to: Optional[date],
) -> Optional[SearchFilters]:
    filters = SearchFilters(
        search_query=q or None,
        species=species or None,
        location=location or None,
        tags=[t for t in (tags or []) if t.strip()] or None,
        date_from=date_from,
        date_to=date_to,
    )
    return None if filters.is_empty() else filters


async def _image(upload: Optional[UploadFile]) -> Optional[ImageUpload]:
    if upload is None or not upload.filename:
        return None
    return ImageUpload(
        filename=upload.filename,
        content=await upload.read(),
        content_type=upload.content_type or "application/octet-stream",
    )


@router.get("/fossils", response_model=PaginatedFossils)
async def list_fossils(
    q: Optional[str] = Query(default=None, description="Free-text search (species, location, description, tags)"),
    species: Optional[str] = Query(default=None, description="Species contains"),
    location: Optional[str] = Query(default=None, description="Location contains"),
    tags: Optional[List[str]] = Query(default=None, description="Required tags (all must match)"),
    date_from: Optional[date] = Query(default=None, description="Discovered on or after"),
    date_to: Optional[date] = Query(default=None, description="Discovered on or before"),
    page: int = Query(default=1, ge=1, description="Current page (1-indexed)"),
    page_size: Optional[int] = Query(default=None, ge=1, le=100, description="Page size"),
    default_page_size: int = Depends(get_default_page_size),
    session: UserSession = Depends(get_session),
) -> PaginatedFossils:
    page_size = page_size or default_page_size
    filters = _filters(q, species, location, tags, date_from, date_to)
    try:
        result = await session.context.fetch_all_fossils(page, page_size, filters)
    except (FossilAppError, ValueError) as exc:
        raise to_http_error(exc)

    return PaginatedFossils(
        page=page,
        page_size=page_size,
        total=result.total_count,
        total_pages=total_pages(result.total_count, page_size),
        items=result.fossils,
    )


@router.get("/fossils/mine", response_model=List[Fossil])
async def list_my_fossils(
    q: Optional[str] = Query(default=None),
    species: Optional[str] = Query(default=None),
    location: Optional[str] = Query(default=None),
    tags: Optional[List[str]] = Query(default=None),
    date_from: Optional[date] = Query(default=None),
    date_to: Optional[date] = Query(default=None),
    session: UserSession = Depends(get_session),
    registry: SessionRegistry = Depends(get_registry),
    access_token: Optional[str] = Depends(get_access_token),
) -> List[Fossil]:
    context = session.context
    await context.fetch_user_fossils(_filters(q, species, location, tags, date_from, date_to))
    if context.error_user == LOGIN_REQUIRED_MESSAGE:
        if access_token:
            registry.forget(access_token)
        raise HTTPException(status_code=401, detail=context.error_user)
    if context.error_user:
        raise HTTPException(status_code=502, detail=context.error_user)
    return context.user_fossils


@router.get("/fossils/{fossil_id}", response_model=Fossil)
async def get_fossil(fossil_id: str, session: UserSession = Depends(get_session)) -> Fossil:
    try:
        return await session.service.get_fossil(fossil_id)
    except FossilAppError as exc:
        raise to_http_error(exc)


@router.post("/fossils", response_model=Fossil, status_code=201)
async def create_fossil(
    description: str = Form(...),
    species: Optional[str] = Form(default=None),
    location: Optional[str] = Form(default=None),
    discovery_date: Optional[str] = Form(default=None),
    tags: Optional[str] = Form(default=None, description="Comma-separated tags"),
    image: UploadFile = File(...),
    user: AuthUser = Depends(get_current_user),
    session: UserSession = Depends(get_session),
) -> Fossil:
    try:
        payload = FossilCreate(
            species=species,
            description=description,
            location=location,
            discovery_date=discovery_date,
            tags=tags,
        )
        upload = await _image(image)
        if upload is None:
            raise ValueError("Please select an image")
        return await session.service.create_fossil(user, payload, upload)
    except (FossilAppError, ValueError) as exc:
        raise to_http_error(exc)


@router.patch("/fossils/{fossil_id}", response_model=Fossil)
async def update_fossil(
    fossil_id: str,
    description: str = Form(...),
    species: Optional[str] = Form(default=None),
    location: Optional[str] = Form(default=None),
    discovery_date: Optional[str] = Form(default=None),
    tags: Optional[str] = Form(default=None, description="Comma-separated tags"),
    image: Optional[UploadFile] = File(default=None),
    user: AuthUser = Depends(get_current_user),
    session: UserSession = Depends(get_session),
) -> Fossil:
    try:
        payload = FossilUpdate(
            species=species,
            description=description,
            location=location,
            discovery_date=discovery_date,
            tags=tags,
        )
        return await session.service.update_fossil(user, fossil_id, payload, await _image(image))
    except (FossilAppError, ValueError) as exc:
        raise to_http_error(exc)


@router.delete("/fossils/{fossil_id}")
async def delete_fossil(
    fossil_id: str,
    user: AuthUser = Depends(get_current_user),
    session: UserSession = Depends(get_session),
):
    try:
        await session.service.delete_fossil(user, fossil_id)
    except FossilAppError as exc:
        raise to_http_error(exc)
    return {"status": "ok"}
