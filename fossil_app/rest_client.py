"""
Client for the hosted backend's REST surface.

The hosted service exposes three APIs under one base URL:

* ``/rest/v1/<table>`` — PostgREST. Filters travel as query parameters
  (``species=ilike.%ammon%``, ``tags=cs.{"a","b"}``), ordering as
  ``order=``, pagination as ``offset``/``limit``. An exact row count is
  requested with ``Prefer: count=exact`` and read back from the
  ``Content-Range`` header; a head-only count uses ``HEAD``.
* ``/auth/v1/...`` — sign-up, password sign-in, sign-out and the
  current user behind an access token.
* ``/storage/v1/object/...`` — image upload, public URLs and removal.

Every request carries the public API key. Requests made on behalf of a
user carry their access token as the bearer instead of the key. Any
non-2xx response raises (``BackendError``, ``AuthError`` or
``StorageError``); nothing is retried.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple, Type

import httpx

from .errors import AuthError, BackendError, StorageError
from .models import SIGNED_IN, SIGNED_OUT, AuthSession, AuthUser, QueryResult


logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


def _error_message(response: httpx.Response) -> str:
    """Pull a human-readable message out of an error response."""
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        for key in ("message", "msg", "error_description", "error"):
            if data.get(key):
                return str(data[key])
    return response.text or f"HTTP {response.status_code}"


def _parse_count(content_range: Optional[str]) -> Optional[int]:
    """Total from a ``Content-Range`` header such as ``0-11/25`` or ``*/0``."""
    if not content_range or "/" not in content_range:
        return None
    total = content_range.rsplit("/", 1)[1]
    return int(total) if total.isdigit() else None


def _quote(value: Any) -> str:
    text = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{text}"'


def _pg_array(values: List[Any]) -> str:
    return "{" + ",".join(_quote(v) for v in values) + "}"


class RestQuery:
    """Chainable table query, sent when awaited through ``execute()``."""

    def __init__(self, client: "RestClient", table: str):
        self._client = client
        self._table = table
        self._method = "GET"
        self._columns = "*"
        self._count: Optional[str] = None
        self._head = False
        self._body: Optional[Dict[str, Any]] = None
        self._filters: List[Tuple[str, str]] = []
        self._order: List[str] = []
        self._range: Optional[Tuple[int, int]] = None

    def select(self, columns: str = "*", count: Optional[str] = None, head: bool = False):
        self._method = "HEAD" if head else "GET"
        self._columns, self._count, self._head = columns, count, head
        return self

    def insert(self, values: Dict[str, Any]):
        self._method, self._body = "POST", values
        return self

    def update(self, values: Dict[str, Any]):
        self._method, self._body = "PATCH", values
        return self

    def delete(self):
        self._method = "DELETE"
        return self

    def eq(self, column: str, value: Any):
        self._filters.append((column, f"eq.{value}"))
        return self

    def ilike(self, column: str, pattern: str):
        self._filters.append((column, f"ilike.{pattern}"))
        return self

    def contains(self, column: str, values: List[Any]):
        self._filters.append((column, f"cs.{_pg_array(values)}"))
        return self

    def gte(self, column: str, value: Any):
        self._filters.append((column, f"gte.{value}"))
        return self

    def lte(self, column: str, value: Any):
        self._filters.append((column, f"lte.{value}"))
        return self

    def order(self, column: str, desc: bool = False, nullsfirst: bool = False):
        direction = "desc" if desc else "asc"
        nulls = "nullsfirst" if nullsfirst else "nullslast"
        self._order.append(f"{column}.{direction}.{nulls}")
        return self

    def range(self, start: int, end: int):
        self._range = (start, end)
        return self

    def build_request(self) -> Tuple[str, List[Tuple[str, Any]], Dict[str, str]]:
        """Return the HTTP method, query parameters and headers for this query."""
        params: List[Tuple[str, Any]] = []
        prefer: List[str] = []

        if self._method in ("GET", "HEAD"):
            params.append(("select", self._columns))
        else:
            prefer.append("return=representation")
        params.extend(self._filters)
        if self._order:
            params.append(("order", ",".join(self._order)))
        if self._range is not None:
            start, end = self._range
            params.append(("offset", start))
            params.append(("limit", end - start + 1))
        if self._count:
            prefer.append(f"count={self._count}")

        headers = {"Prefer": ",".join(prefer)} if prefer else {}
        return self._method, params, headers

    async def execute(self) -> QueryResult:
        method, params, headers = self.build_request()
        response = await self._client.request(
            method,
            f"/rest/v1/{self._table}",
            params=params,
            json=self._body,
            headers=headers,
        )
        count = _parse_count(response.headers.get("content-range"))
        if self._head or not response.content:
            return QueryResult(data=[], count=count)
        data = response.json()
        if isinstance(data, dict):
            data = [data]
        return QueryResult(data=data, count=count)


class RestAuth:
    def __init__(self, client: "RestClient"):
        self._client = client
        self._listeners: List[Callable[[str, Optional[AuthSession]], None]] = []

    def _notify(self, event: str, session: Optional[AuthSession]) -> None:
        for callback in list(self._listeners):
            callback(event, session)

    def on_auth_state_change(self, callback: Callable[[str, Optional[AuthSession]], None]):
        """Register ``callback(event, session)``; returns an unsubscribe callable."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    @staticmethod
    def _user(data: Dict[str, Any]) -> AuthUser:
        return AuthUser(
            id=str(data["id"]),
            email=data.get("email"),
            user_metadata=data.get("user_metadata") or {},
        )

    async def get_user(self) -> Optional[AuthUser]:
        """The user behind the client's access token, or ``None``."""
        if not self._client.access_token:
            return None
        try:
            response = await self._client.request("GET", "/auth/v1/user", error_cls=AuthError)
        except AuthError as exc:
            if exc.status_code in (401, 403):
                return None
            raise
        return self._user(response.json())

    async def sign_up(self, email: str, password: str, data: Optional[Dict[str, Any]] = None) -> AuthSession:
        response = await self._client.request(
            "POST",
            "/auth/v1/signup",
            json={"email": email, "password": password, "data": data or {}},
            error_cls=AuthError,
        )
        payload = response.json()
        if payload.get("access_token"):
            session = AuthSession(user=self._user(payload["user"]), access_token=payload["access_token"])
            self._notify(SIGNED_IN, session)
            return session
        # Email confirmation pending: a user but no session yet
        return AuthSession(user=self._user(payload.get("user") or payload))

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        response = await self._client.request(
            "POST",
            "/auth/v1/token",
            params=[("grant_type", "password")],
            json={"email": email, "password": password},
            error_cls=AuthError,
        )
        payload = response.json()
        session = AuthSession(user=self._user(payload["user"]), access_token=payload["access_token"])
        self._notify(SIGNED_IN, session)
        return session

    async def sign_out(self) -> None:
        if self._client.access_token:
            await self._client.request("POST", "/auth/v1/logout", error_cls=AuthError)
        self._client.access_token = None
        self._notify(SIGNED_OUT, None)


class RestBucket:
    def __init__(self, client: "RestClient", bucket: str):
        self._client = client
        self.bucket = bucket

    async def upload(
        self,
        path: str,
        content: bytes,
        content_type: str = "application/octet-stream",
        cache_control: str = "3600",
        upsert: bool = False,
    ) -> str:
        await self._client.request(
            "POST",
            f"/storage/v1/object/{self.bucket}/{path}",
            content=content,
            headers={
                "Content-Type": content_type,
                "Cache-Control": f"max-age={cache_control}",
                "x-upsert": "true" if upsert else "false",
            },
            error_cls=StorageError,
        )
        return path

    def get_public_url(self, path: str) -> str:
        return f"{self._client.url}/storage/v1/object/public/{self.bucket}/{path}"

    async def remove(self, paths: List[str]) -> List[str]:
        response = await self._client.request(
            "DELETE",
            f"/storage/v1/object/{self.bucket}",
            json={"prefixes": list(paths)},
            error_cls=StorageError,
        )
        removed = response.json() if response.content else []
        return [item.get("name", "") for item in removed if isinstance(item, dict)]


class RestStorage:
    def __init__(self, client: "RestClient"):
        self._client = client

    def from_(self, bucket: str) -> RestBucket:
        return RestBucket(self._client, bucket)


class RestClient:
    """Backend client bound to one API key and, optionally, one user session.

    Parameters
    ----------
    url : str
        Base URL of the hosted backend.
    key : str
        Public (anonymous) API key.
    access_token : Optional[str]
        A user's access token. Without one, requests run as the
        anonymous role.
    timeout : float
        Per-request timeout in seconds.
    http : Optional[httpx.AsyncClient]
        Connection pool to share. Clients created through
        ``with_token()`` share their parent's pool and never close it.
    """

    def __init__(
        self,
        url: str,
        key: str,
        access_token: Optional[str] = None,
        timeout: float = 10.0,
        http: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url.rstrip("/")
        self.key = key
        self.access_token = access_token
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=timeout)
        self.auth = RestAuth(self)
        self.storage = RestStorage(self)

    def table(self, name: str) -> RestQuery:
        return RestQuery(self, name)

    def with_token(self, access_token: Optional[str]) -> "RestClient":
        return RestClient(self.url, self.key, access_token=access_token, http=self._http)

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {
            "apikey": self.key,
            "Authorization": f"Bearer {self.access_token or self.key}",
            "Accept": "application/json",
        }
        if extra:
            headers.update(extra)
        return headers

    async def request(
        self,
        method: str,
        path: str,
        params: Optional[List[Tuple[str, Any]]] = None,
        json: Optional[Any] = None,
        content: Optional[bytes] = None,
        headers: Optional[Dict[str, str]] = None,
        error_cls: Type[BackendError] = BackendError,
    ) -> httpx.Response:
        """Send one request and return the response, raising on failure."""
        url = f"{self.url}{path}"
        try:
            response = await self._http.request(
                method,
                url,
                params=params,
                json=json,
                content=content,
                headers=self._headers(headers),
            )
        except httpx.HTTPError as exc:
            logger.error("Error requesting %s %s: %s", method, url, exc)
            raise error_cls(f"Could not reach backend: {exc}") from exc

        if response.status_code >= 400:
            message = _error_message(response)
            logger.error(
                "%s %s returned status %s: %s", method, url, response.status_code, message
            )
            raise error_cls(message, status_code=response.status_code)
        return response

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()
