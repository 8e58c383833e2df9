# fossil_app/models.py
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class QueryResult(BaseModel):
    """Rows returned by a table query, plus the exact count when requested."""

    data: List[Dict[str, Any]] = Field(default_factory=list)
    count: Optional[int] = None


class AuthUser(BaseModel):
    id: str
    email: Optional[str] = None
    user_metadata: Dict[str, Any] = Field(default_factory=dict)


class AuthSession(BaseModel):
    user: AuthUser
    # None when the backend still waits for an email confirmation
    access_token: Optional[str] = None


class ImageUpload(BaseModel):
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


# Auth state change events, as emitted by both backends
SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"
