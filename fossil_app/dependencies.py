"""
FastAPI dependencies shared by the routers.

The bearer token in ``Authorization`` selects the caller's session;
without one the anonymous session is used.
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException, Request

from .errors import (
    AuthError,
    AuthRequiredError,
    BackendError,
    FossilAppError,
    FossilNotFoundError,
    FossilPermissionError,
)
from .models import AuthUser
from .sessions import SessionRegistry, UserSession


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


def get_access_token(authorization: Optional[str] = Header(default=None)) -> Optional[str]:
    if authorization and authorization.lower().startswith("bearer "):
        return authorization[7:].strip() or None
    return None


def get_session(
    registry: SessionRegistry = Depends(get_registry),
    access_token: Optional[str] = Depends(get_access_token),
) -> UserSession:
    return registry.session_for(access_token)


def get_default_page_size(request: Request) -> int:
    return request.app.state.default_page_size


async def get_current_user(
    registry: SessionRegistry = Depends(get_registry),
    access_token: Optional[str] = Depends(get_access_token),
) -> AuthUser:
    try:
        user = await registry.current_user(access_token)
    except BackendError as exc:
        raise to_http_error(exc)
    if user is None:
        raise to_http_error(AuthRequiredError("You must be logged in"))
    return user


def to_http_error(exc: Exception) -> HTTPException:
    """Translate a catalog exception into the matching HTTP error."""
    if isinstance(exc, AuthRequiredError):
        return HTTPException(status_code=401, detail=str(exc))
    if isinstance(exc, FossilPermissionError):
        return HTTPException(status_code=403, detail=str(exc))
    if isinstance(exc, FossilNotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, AuthError) and exc.status_code and 400 <= exc.status_code < 500:
        return HTTPException(status_code=exc.status_code, detail=exc.message)
    if isinstance(exc, FossilAppError):
        return HTTPException(status_code=502, detail=str(exc))
    if isinstance(exc, ValueError):
        return HTTPException(status_code=400, detail=str(exc))
    return HTTPException(status_code=500, detail="Internal error")
