"""In-process fan-out of per-session care events.

Listeners (e.g. a browser tab on the care WebSocket) subscribe to a session
and receive every event published for it, in publish order.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any

from src.logging_config import get_logger

logger: Any = get_logger(__name__)

# Per-listener backlog; a listener that falls this far behind loses events
DEFAULT_LISTENER_BACKLOG = 256


@dataclass(frozen=True, slots=True)
class BroadcastEvent:
    """One event delivered to session listeners."""

    session_id: str
    event: str
    payload: dict


@dataclass(eq=False)
class Subscription:
    """A listener's view of one session's events.

    Use as an async context manager so the listener is always detached:

        async with broadcaster.subscribe(session_id) as events:
            async for event in events:
                ...
    """

    session_id: str
    _broadcaster: InMemorySessionBroadcaster = field(repr=False)
    _queue: asyncio.Queue[BroadcastEvent | None] = field(repr=False)
    dropped: int = 0

    async def __aenter__(self) -> Subscription:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> BroadcastEvent:
        event = await self._queue.get()
        if event is None:
            raise StopAsyncIteration
        return event

    async def get(self, timeout: float | None = None) -> BroadcastEvent | None:
        """Next event, or None on timeout / after close."""
        try:
            return await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except TimeoutError:
            return None

    def close(self) -> None:
        """Detach from the broadcaster and end iteration."""
        self._broadcaster._detach(self)
        if self._queue.full():
            # The end marker must always fit
            self._queue.get_nowait()
            self.dropped += 1
        self._queue.put_nowait(None)

    def _offer(self, event: BroadcastEvent) -> None:
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                f"Listener for session {self.session_id} is behind, "
                f"dropped {event.event} ({self.dropped} total)"
            )


class InMemorySessionBroadcaster:
    """Session-keyed pub/sub for a single process."""

    def __init__(self, listener_backlog: int = DEFAULT_LISTENER_BACKLOG) -> None:
        self._listeners: dict[str, list[Subscription]] = defaultdict(list)
        self._backlog = listener_backlog
        self.published = 0

    def subscribe(self, session_id: str) -> Subscription:
        subscription = Subscription(
            session_id=session_id,
            _broadcaster=self,
            _queue=asyncio.Queue(maxsize=self._backlog),
        )
        self._listeners[session_id].append(subscription)
        logger.debug(
            f"Listener attached to session {session_id} "
            f"({len(self._listeners[session_id])} total)"
        )
        return subscription

    async def publish(self, session_id: str, event: str, payload: dict) -> None:
        """Deliver an event to every listener of the session.

        Never blocks and never raises; with no listeners this is a no-op.
        """
        listeners = self._listeners.get(session_id)
        if not listeners:
            return
        message = BroadcastEvent(session_id=session_id, event=event, payload=payload)
        for subscription in list(listeners):
            subscription._offer(message)
        self.published += 1

    def listener_count(self, session_id: str) -> int:
        return len(self._listeners.get(session_id, ()))

    def close_session(self, session_id: str) -> None:
        """End iteration for every listener of a session."""
        for subscription in list(self._listeners.get(session_id, ())):
            subscription.close()

    def _detach(self, subscription: Subscription) -> None:
        listeners = self._listeners.get(subscription.session_id)
        if not listeners:
            return
        if subscription in listeners:
            listeners.remove(subscription)
        if not listeners:
            del self._listeners[subscription.session_id]
