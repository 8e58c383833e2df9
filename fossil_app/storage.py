# fossil_app/storage.py
"""
In-process backend with the same surface as ``RestClient``.

Tables are lists of JSON-like dicts, objects are bytes keyed by bucket
and path, and users live in a dict. It backs ``FOSSIL_BACKEND=memory``
for local runs and the test suite, where ``call_count`` counts every query
that reached the "backend".
"""

import hashlib
import re
import secrets
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from .errors import AuthError, BackendError, StorageError
from .models import SIGNED_IN, SIGNED_OUT, AuthSession, AuthUser, QueryResult


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _hash(password: str) -> str:
    return hashlib.sha256(password.encode("utf-8")).hexdigest()


def _like_to_regex(pattern: str) -> "re.Pattern":
    parts = []
    for ch in pattern:
        if ch == "%":
            parts.append(".*")
        elif ch == "_":
            parts.append(".")
        else:
            parts.append(re.escape(ch))
    return re.compile("".join(parts), re.IGNORECASE | re.DOTALL)


def _matches(row: Dict[str, Any], op: str, column: str, value: Any) -> bool:
    current = row.get(column)
    if op == "eq":
        return current is not None and str(current) == str(value)
    if op == "ilike":
        return current is not None and _like_to_regex(value).fullmatch(str(current)) is not None
    if op == "contains":
        return current is not None and all(v in current for v in value)
    if op == "gte":
        return current is not None and str(current) >= str(value)
    if op == "lte":
        return current is not None and str(current) <= str(value)
    raise BackendError(f"Unsupported filter operator: {op}", status_code=400)


def _sort(rows: List[Dict[str, Any]], column: str, desc: bool, nullsfirst: bool):
    present = [r for r in rows if r.get(column) is not None]
    absent = [r for r in rows if r.get(column) is None]
    present.sort(key=lambda r: r[column], reverse=desc)
    return absent + present if nullsfirst else present + absent


@dataclass
class MemoryStore:
    tables: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)
    objects: Dict[Tuple[str, str], bytes] = field(default_factory=dict)
    users: Dict[str, Dict[str, Any]] = field(default_factory=dict)  # email -> user record
    sessions: Dict[str, str] = field(default_factory=dict)  # access token -> user id
    call_count: int = 0


class InMemoryQuery:
    """Chainable table query evaluated against a ``MemoryStore``."""

    def __init__(self, backend: "InMemoryBackend", table: str):
        self.backend = backend
        self.table = table
        self.method = "select"
        self.columns = "*"
        self.count: Optional[str] = None
        self.head = False
        self.values: Optional[Dict[str, Any]] = None
        self.filters: List[Tuple[str, str, Any]] = []
        self.ordering: List[Tuple[str, bool, bool]] = []
        self.row_range: Optional[Tuple[int, int]] = None

    def select(self, columns: str = "*", count: Optional[str] = None, head: bool = False):
        self.method, self.columns, self.count, self.head = "select", columns, count, head
        return self

    def insert(self, values: Dict[str, Any]):
        self.method, self.values = "insert", dict(values)
        return self

    def update(self, values: Dict[str, Any]):
        self.method, self.values = "update", dict(values)
        return self

    def delete(self):
        self.method = "delete"
        return self

    def eq(self, column: str, value: Any):
        self.filters.append(("eq", column, value))
        return self

    def ilike(self, column: str, pattern: str):
        self.filters.append(("ilike", column, pattern))
        return self

    def contains(self, column: str, values: List[Any]):
        self.filters.append(("contains", column, list(values)))
        return self

    def gte(self, column: str, value: Any):
        self.filters.append(("gte", column, value))
        return self

    def lte(self, column: str, value: Any):
        self.filters.append(("lte", column, value))
        return self

    def order(self, column: str, desc: bool = False, nullsfirst: bool = False):
        self.ordering.append((column, desc, nullsfirst))
        return self

    def range(self, start: int, end: int):
        self.row_range = (start, end)
        return self

    def filter_value(self, op: str, column: str) -> Any:
        for f_op, f_column, value in self.filters:
            if (f_op, f_column) == (op, column):
                return value
        return None

    async def execute(self) -> QueryResult:
        return await self.backend.run(self)


class InMemoryAuth:
    def __init__(self, backend: "InMemoryBackend"):
        self.backend = backend
        self._listeners: List[Callable[[str, Optional[AuthSession]], None]] = []

    def _user(self, record: Dict[str, Any]) -> AuthUser:
        return AuthUser(id=record["id"], email=record["email"], user_metadata=record["metadata"])

    def _notify(self, event: str, session: Optional[AuthSession]) -> None:
        for callback in list(self._listeners):
            callback(event, session)

    def _open_session(self, record: Dict[str, Any]) -> AuthSession:
        token = secrets.token_urlsafe(24)
        self.backend.store.sessions[token] = record["id"]
        session = AuthSession(user=self._user(record), access_token=token)
        self._notify(SIGNED_IN, session)
        return session

    def on_auth_state_change(self, callback: Callable[[str, Optional[AuthSession]], None]):
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    async def get_user(self) -> Optional[AuthUser]:
        user_id = self.backend.store.sessions.get(self.backend.access_token or "")
        if user_id is None:
            return None
        for record in self.backend.store.users.values():
            if record["id"] == user_id:
                return self._user(record)
        return None

    async def sign_up(self, email: str, password: str, data: Optional[Dict[str, Any]] = None) -> AuthSession:
        key = email.strip().lower()
        if key in self.backend.store.users:
            raise AuthError("User already registered", status_code=422)
        if len(password) < 6:
            raise AuthError("Password should be at least 6 characters", status_code=422)
        record = {
            "id": str(uuid.uuid4()),
            "email": key,
            "password": _hash(password),
            "metadata": dict(data or {}),
        }
        self.backend.store.users[key] = record
        return self._open_session(record)

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        record = self.backend.store.users.get(email.strip().lower())
        if record is None or record["password"] != _hash(password):
            raise AuthError("Invalid login credentials", status_code=400)
        return self._open_session(record)

    async def sign_out(self) -> None:
        self.backend.store.sessions.pop(self.backend.access_token or "", None)
        self.backend.access_token = None
        self._notify(SIGNED_OUT, None)


class InMemoryBucket:
    def __init__(self, backend: "InMemoryBackend", bucket: str):
        self.backend = backend
        self.bucket = bucket

    async def upload(
        self,
        path: str,
        content: bytes,
        content_type: str = "application/octet-stream",
        cache_control: str = "3600",
        upsert: bool = False,
    ) -> str:
        key = (self.bucket, path)
        if key in self.backend.store.objects and not upsert:
            raise StorageError("The resource already exists", status_code=409)
        self.backend.store.objects[key] = bytes(content)
        return path

    def get_public_url(self, path: str) -> str:
        return f"{self.backend.base_url}/storage/v1/object/public/{self.bucket}/{path}"

    async def remove(self, paths: List[str]) -> List[str]:
        removed = []
        for path in paths:
            if self.backend.store.objects.pop((self.bucket, path), None) is not None:
                removed.append(path)
        return removed


class InMemoryStorage:
    def __init__(self, backend: "InMemoryBackend"):
        self.backend = backend

    def from_(self, bucket: str) -> InMemoryBucket:
        return InMemoryBucket(self.backend, bucket)


class InMemoryBackend:
    def __init__(
        self,
        store: Optional[MemoryStore] = None,
        access_token: Optional[str] = None,
        base_url: str = "http://localhost:54321",
    ):
        self.store = store if store is not None else MemoryStore()
        self.access_token = access_token
        self.base_url = base_url
        self.auth = InMemoryAuth(self)
        self.storage = InMemoryStorage(self)

    @property
    def call_count(self) -> int:
        return self.store.call_count

    def table(self, name: str) -> InMemoryQuery:
        return InMemoryQuery(self, name)

    def with_token(self, access_token: Optional[str]) -> "InMemoryBackend":
        clone = type(self).__new__(type(self))
        clone.__dict__.update(self.__dict__)
        clone.access_token = access_token
        clone.auth = InMemoryAuth(clone)
        clone.storage = InMemoryStorage(clone)
        return clone

    def seed(self, table: str, rows: List[Dict[str, Any]]) -> None:
        """Put rows in a table directly, without counting as backend calls."""
        target = self.store.tables.setdefault(table, [])
        for row in rows:
            record = {"id": str(uuid.uuid4()), "created_at": _now(), "updated_at": _now()}
            record.update(row)
            target.append(record)

    async def run(self, query: InMemoryQuery) -> QueryResult:
        self.store.call_count += 1
        rows = self.store.tables.setdefault(query.table, [])
        matched = [
            row for row in rows
            if all(_matches(row, op, column, value) for op, column, value in query.filters)
        ]

        if query.method == "insert":
            record = {"id": str(uuid.uuid4()), "created_at": _now(), "updated_at": _now()}
            record.update(query.values)
            rows.append(record)
            return QueryResult(data=[dict(record)])

        if query.method == "update":
            for row in matched:
                row.update(query.values)
                row["updated_at"] = _now()
            return QueryResult(data=[dict(row) for row in matched])

        if query.method == "delete":
            doomed = {id(row) for row in matched}
            self.store.tables[query.table] = [row for row in rows if id(row) not in doomed]
            return QueryResult(data=[dict(row) for row in matched])

        for column, desc, nullsfirst in reversed(query.ordering):
            matched = _sort(matched, column, desc, nullsfirst)
        count = len(matched) if query.count == "exact" else None
        if query.row_range is not None:
            start, end = query.row_range
            matched = matched[start:end + 1]
        if query.head:
            return QueryResult(data=[], count=count)
        if query.columns != "*":
            wanted = [c.strip() for c in query.columns.split(",")]
            matched = [{c: row.get(c) for c in wanted} for row in matched]
        return QueryResult(data=[dict(row) for row in matched], count=count)

    async def aclose(self) -> None:
        return None
