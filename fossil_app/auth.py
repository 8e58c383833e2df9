"""
Route definitions for account management.

Endpoints under /api/auth:
- POST /signup   : create an account (name and location kept as user metadata)
- POST /signin   : exchange email + password for an access token
- POST /signout  : end the caller's session
- GET  /me       : the user behind the bearer token
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from .catalog.schemas import AuthCredentials, SessionResponse, SignUpRequest
from .dependencies import get_access_token, get_current_user, get_registry, to_http_error
from .errors import BackendError
from .models import AuthUser
from .sessions import SessionRegistry

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/signup", response_model=SessionResponse)
async def sign_up(req: SignUpRequest, registry: SessionRegistry = Depends(get_registry)):
    auth = registry.session_for(None).client.auth
    metadata = {k: v for k, v in (("name", req.name), ("location", req.location)) if v}
    try:
        session = await auth.sign_up(req.email, req.password, data=metadata)
    except BackendError as exc:
        raise to_http_error(exc)

    if session.access_token is None:
        message = "Please check your email to confirm your account."
    else:
        message = "Account created successfully!"
    return SessionResponse(
        user_id=session.user.id,
        email=session.user.email,
        access_token=session.access_token,
        message=message,
    )


@router.post("/signin", response_model=SessionResponse)
async def sign_in(req: AuthCredentials, registry: SessionRegistry = Depends(get_registry)):
    auth = registry.session_for(None).client.auth
    try:
        session = await auth.sign_in_with_password(req.email, req.password)
    except BackendError as exc:
        raise to_http_error(exc)
    return SessionResponse(
        user_id=session.user.id,
        email=session.user.email,
        access_token=session.access_token,
    )


@router.post("/signout")
async def sign_out(
    registry: SessionRegistry = Depends(get_registry),
    access_token: Optional[str] = Depends(get_access_token),
):
    if not access_token:
        raise HTTPException(status_code=401, detail="You must be logged in")
    try:
        await registry.session_for(access_token).client.auth.sign_out()
    except BackendError as exc:
        raise to_http_error(exc)
    return {"status": "ok"}


@router.get("/me", response_model=AuthUser)
async def me(user: AuthUser = Depends(get_current_user)):
    return user
