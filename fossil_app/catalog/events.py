"""
Broadcast of "fossil data changed" notifications.

A mutation performed through one session must make every other
session's cached lists stale. Listeners register explicitly and
receive a typed ``Invalidate`` message that carries no row data.
Delivery is best effort: a listener that raises is logged and the
remaining listeners still run.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Invalidate:
    reason: str = "fossils-changed"


Listener = Callable[[Invalidate], None]


class InvalidationBus:
    def __init__(self) -> None:
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` and return a callable that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, message: Invalidate = Invalidate()) -> None:
        # Iterate over a copy: listeners may unsubscribe while being notified
        for listener in list(self._listeners):
            try:
                listener(message)
            except Exception as exc:
                logger.warning("Invalidation listener %r failed: %s", listener, exc)

    def __len__(self) -> int:
        return len(self._listeners)
