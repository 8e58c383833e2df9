"""
Per-session state for the HTTP layer.

Each access token gets its own backend client, data context and fossil
service, created on first use. Requests without a token share one
anonymous session. All contexts listen on the same invalidation bus,
so a mutation made through any session clears every session's caches.

A session is dropped when its auth client reports a sign-out, when the
backend no longer recognises its token, or when the registry is full
and it is the least recently used one.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Optional

from .catalog.context import FossilDataContext
from .catalog.events import InvalidationBus
from .catalog.service import DEFAULT_BUCKET, FossilService
from .models import SIGNED_OUT, AuthUser

logger = logging.getLogger(__name__)

ANONYMOUS = ""
DEFAULT_MAX_SESSIONS = 1000


@dataclass
class UserSession:
    client: object
    context: FossilDataContext
    service: FossilService


class SessionRegistry:
    def __init__(
        self,
        backend,
        bucket: str = DEFAULT_BUCKET,
        bus: Optional[InvalidationBus] = None,
        max_sessions: int = DEFAULT_MAX_SESSIONS,
    ):
        self.backend = backend
        self.bucket = bucket
        self.bus = bus if bus is not None else InvalidationBus()
        self.max_sessions = max_sessions
        self._sessions: "OrderedDict[str, UserSession]" = OrderedDict()

    def session_for(self, access_token: Optional[str] = None) -> UserSession:
        key = access_token or ANONYMOUS
        session = self._sessions.get(key)
        if session is not None:
            self._sessions.move_to_end(key)
            return session

        client = self.backend.with_token(access_token) if access_token else self.backend
        session = UserSession(
            client=client,
            context=FossilDataContext(client, bus=self.bus),
            service=FossilService(client, bus=self.bus, bucket=self.bucket),
        )
        if access_token:
            client.auth.on_auth_state_change(self._forget_on_sign_out(key))
        self._sessions[key] = session
        logger.debug("Opened session %s", "anonymous" if key == ANONYMOUS else key[:8])
        self._evict()
        return session

    def _evict(self) -> None:
        # The anonymous session is shared by every visitor and is never evicted
        for key in list(self._sessions):
            if len(self._sessions) <= self.max_sessions:
                break
            if key != ANONYMOUS:
                logger.debug("Evicting least recently used session %s", key[:8])
                self.forget(key)

    async def current_user(self, access_token: Optional[str]) -> Optional[AuthUser]:
        """The user behind ``access_token``; an unrecognised token's session is dropped."""
        user = await self.session_for(access_token).client.auth.get_user()
        if user is None and access_token:
            self.forget(access_token)
        return user

    def _forget_on_sign_out(self, key: str):
        def callback(event: str, _session) -> None:
            if event == SIGNED_OUT:
                self.forget(key)

        return callback

    def forget(self, access_token: str) -> None:
        session = self._sessions.pop(access_token, None)
        if session is not None:
            session.context.close()

    def __contains__(self, access_token: str) -> bool:
        return access_token in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    async def aclose(self) -> None:
        for key in list(self._sessions):
            self.forget(key)
        await self.backend.aclose()
