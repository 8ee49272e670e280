"""Bounded pool of upstream voice links shared by all care sessions.

The pool caps the number of simultaneous upstream TTS connections, reuses a
session's existing link, and queues demand beyond the cap in strict FIFO
order. Each queued request has its own deadline; link establishment has its
own, independent, timeout and retry budget.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol

from src.config import Settings, get_settings
from src.logging_config import get_logger
from src.observability.metrics import (
    VOICE_LINK_CONNECT_LATENCY,
    VOICE_LINK_ESTABLISH_TOTAL,
    VOICE_QUEUE_TIMEOUTS,
    VOICE_QUEUE_WAIT,
    record_pool_state,
)
from src.services.tts.exceptions import (
    TTSConfigurationError,
    TTSConnectionError,
    TTSNotOpenError,
    TTSQueueCancelledError,
    TTSQueueTimeoutError,
    VoicePoolInvariantError,
)
from src.services.tts.murf_stream import LinkClosedCallback, VoiceLink
from src.services.tts.protocol import VoiceSelection
from src.services.tts.voices import default_voice_id

logger: Any = get_logger(__name__)


class LinkOpener(Protocol):
    """Opens one configured link; MurfStreamConnector implements this."""

    async def open(
        self,
        session_id: str,
        language: str,
        voice: VoiceSelection,
        on_closed: LinkClosedCallback | None = None,
    ) -> VoiceLink: ...


@dataclass
class VoicePoolConfig:
    """Capacity, queueing and retry limits for the voice pool."""

    max_links: int = 10
    queue_timeout_seconds: float = 30.0
    retry_attempts: int = 3
    retry_delay_seconds: float = 2.0
    link_idle_timeout_seconds: float = 1800.0
    voice_style: str = "Conversational"

    def __post_init__(self) -> None:
        if self.max_links < 1:
            raise ValueError("max_links must be at least 1")
        if self.retry_attempts < 1:
            raise ValueError("retry_attempts must be at least 1")

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> VoicePoolConfig:
        """Create config from application settings."""
        s = settings or get_settings()
        return cls(
            max_links=s.tts_max_connections,
            queue_timeout_seconds=s.tts_queue_timeout_seconds,
            retry_attempts=s.tts_connect_retry_attempts,
            retry_delay_seconds=s.tts_connect_retry_delay_seconds,
            link_idle_timeout_seconds=s.tts_link_idle_timeout_seconds,
            voice_style=s.murf_voice_style,
        )


@dataclass
class ConnectAttemptResult:
    """Outcome of the bounded establishment loop for one session."""

    link: VoiceLink | None = None
    error: TTSConnectionError | None = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.link is not None


@dataclass(eq=False)
class PendingRequest:
    """Demand for a link that arrived while the pool was full."""

    session_id: str
    language: str
    voice: VoiceSelection
    future: asyncio.Future[VoiceLink]
    enqueued_at: float = field(default_factory=time.monotonic)
    timer: asyncio.TimerHandle | None = None

    def cancel_timer(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None


@dataclass(frozen=True)
class PoolStats:
    """Point-in-time view of pool occupancy and lifetime counters."""

    active_links: int
    opening_links: int
    pending_requests: int
    max_links: int
    total_established: int
    total_failed: int
    total_queue_timeouts: int

    def to_dict(self) -> dict[str, int]:
        return {
            "activeLinks": self.active_links,
            "openingLinks": self.opening_links,
            "pendingRequests": self.pending_requests,
            "maxLinks": self.max_links,
            "totalEstablished": self.total_established,
            "totalFailed": self.total_failed,
            "totalQueueTimeouts": self.total_queue_timeouts,
        }


def _consume_exception(future: asyncio.Future) -> None:
    # Waiters may have gone away; keep asyncio from logging the result as lost
    if not future.cancelled():
        future.exception()


class VoiceConnectionPool:
    """Admits, queues and releases upstream voice links.

    All mutation of the link map, the in-progress set and the pending queue
    happens either under `_lock` or in a synchronous callback. Locked
    sections never await, so a synchronous callback cannot observe one
    half-done.
    """

    def __init__(
        self,
        connector: LinkOpener,
        config: VoicePoolConfig | None = None,
    ) -> None:
        self._connector = connector
        self.config = config or VoicePoolConfig.from_settings()

        self._links: dict[str, VoiceLink] = {}
        self._opening: dict[str, asyncio.Future[VoiceLink]] = {}
        self._discard: set[str] = set()
        self._queue: deque[PendingRequest] = deque()
        self._lock = asyncio.Lock()
        self._tasks: set[asyncio.Task] = set()
        self._closed = False

        self.total_established = 0
        self.total_failed = 0
        self.total_queue_timeouts = 0

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def default_voice(self, language: str) -> VoiceSelection:
        return VoiceSelection(voice_id=default_voice_id(language), style=self.config.voice_style)

    async def acquire(
        self,
        session_id: str,
        language: str = "en",
        voice: VoiceSelection | None = None,
    ) -> VoiceLink:
        """Get the session's link, opening one now or waiting in the queue.

        Raises:
            TTSConnectionError: If establishment fails after all attempts
            TTSQueueTimeoutError: If the request waited longer than the queue timeout
            TTSQueueCancelledError: If the request was withdrawn while queued
        """
        voice = voice or self.default_voice(language)
        reserved: asyncio.Future[VoiceLink] | None = None

        async with self._lock:
            if self._closed:
                raise TTSConnectionError("Voice pool is shut down")

            link = self._links.get(session_id)
            if link is not None:
                if link.is_open:
                    logger.debug(f"Reusing existing voice link for session {session_id}")
                    return link
                del self._links[session_id]

            shared = self._opening.get(session_id) or self._pending_future(session_id)
            if shared is None:
                if self._occupied < self.config.max_links:
                    reserved = self._new_future()
                    self._opening[session_id] = reserved
                else:
                    shared = self._enqueue(session_id, language, voice)
            self._publish_state()

        if reserved is None:
            return await self._wait_for(shared)
        return await self._run_establishment(session_id, language, voice, reserved)

    async def send_text(self, session_id: str, text: str) -> None:
        """Submit text on the session's link.

        Raises:
            TTSNotOpenError: If the session holds no open link
            TTSSendError: If the send fails (the link is torn down)
        """
        link = self._links.get(session_id)
        if link is None or not link.is_open:
            raise TTSNotOpenError(f"No active voice link for session: {session_id}")
        await link.send_text(text)

    async def release(self, session_id: str) -> bool:
        """Close the session's link and withdraw its queued demand.

        Freed capacity goes to the head of the queue.

        Returns:
            True if a link or queued request was removed
        """
        async with self._lock:
            link = self._links.pop(session_id, None)
            withdrawn = self._withdraw_pending(session_id, "session released")
            if session_id in self._opening:
                self._discard.add(session_id)
            self._publish_state()

        if link is not None:
            await link.close()
            logger.info(f"Released voice link for session {session_id}")

        await self._drain_queue()
        return link is not None or withdrawn > 0

    async def close_all(self) -> None:
        """Close every link and fail every queued request (shutdown)."""
        async with self._lock:
            self._closed = True
            links = list(self._links.values())
            self._links.clear()
            pending = list(self._queue)
            self._queue.clear()
            self._publish_state()

        for request in pending:
            request.cancel_timer()
            if not request.future.done():
                request.future.set_exception(TTSQueueCancelledError("Voice pool is shutting down"))

        for link in links:
            await link.close()

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        logger.info(f"Voice pool closed ({len(links)} links, {len(pending)} queued requests)")

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def active_count(self) -> int:
        return len(self._links)

    @property
    def pending_count(self) -> int:
        return len(self._queue)

    def has_link(self, session_id: str) -> bool:
        link = self._links.get(session_id)
        return link is not None and link.is_open

    def is_queued(self, session_id: str) -> bool:
        return any(r.session_id == session_id for r in self._queue)

    def idle_session_ids(self, now: datetime | None = None) -> list[str]:
        """Sessions whose link has not been used within the idle timeout."""
        now = now or datetime.now(UTC)
        cutoff = now - timedelta(seconds=self.config.link_idle_timeout_seconds)
        return [sid for sid, link in self._links.items() if link.last_used < cutoff]

    def connection_info(self, session_id: str) -> dict | None:
        link = self._links.get(session_id)
        if link is None:
            return None
        return {
            "sessionId": session_id,
            "language": link.language,
            "voiceId": link.voice.voice_id,
            "status": "connected" if link.is_open else "disconnected",
            "createdAt": link.created_at.isoformat(),
            "lastUsed": link.last_used.isoformat(),
        }

    def stats(self) -> PoolStats:
        return PoolStats(
            active_links=len(self._links),
            opening_links=len(self._opening),
            pending_requests=len(self._queue),
            max_links=self.config.max_links,
            total_established=self.total_established,
            total_failed=self.total_failed,
            total_queue_timeouts=self.total_queue_timeouts,
        )

    # ------------------------------------------------------------------
    # Establishment
    # ------------------------------------------------------------------

    @property
    def _occupied(self) -> int:
        return len(self._links) + len(self._opening)

    async def _establish_with_retry(
        self,
        session_id: str,
        language: str,
        voice: VoiceSelection,
    ) -> ConnectAttemptResult:
        """Bounded attempt loop with a fixed delay; never raises connect errors."""
        attempts = self.config.retry_attempts
        last_error: TTSConnectionError | None = None

        for attempt in range(1, attempts + 1):
            logger.info(
                f"Opening voice link for session {session_id} (attempt {attempt}/{attempts})"
            )
            try:
                link = await self._connector.open(
                    session_id, language, voice, on_closed=self._on_link_closed
                )
                return ConnectAttemptResult(link=link, attempts=attempt)
            except TTSConfigurationError as e:
                logger.warning(f"Voice upstream unavailable for session {session_id}: {e}")
                return ConnectAttemptResult(error=e, attempts=attempt)
            except TTSConnectionError as e:
                last_error = e
                logger.warning(
                    f"Connection attempt {attempt} failed for session {session_id}: {e}"
                )
            except Exception as e:
                last_error = TTSConnectionError(f"Unexpected {type(e).__name__}: {e}")
                logger.exception(
                    f"Connection attempt {attempt} failed unexpectedly for session {session_id}"
                )

            if attempt < attempts:
                logger.debug(f"Retrying in {self.config.retry_delay_seconds:.1f}s")
                await asyncio.sleep(self.config.retry_delay_seconds)

        error = TTSConnectionError(
            f"Failed to establish voice link after {attempts} attempts: {last_error}",
            attempts=attempts,
        )
        return ConnectAttemptResult(error=error, attempts=attempts)

    async def _run_establishment(
        self,
        session_id: str,
        language: str,
        voice: VoiceSelection,
        future: asyncio.Future[VoiceLink],
    ) -> VoiceLink:
        """Establish a reserved slot, register the link and resolve waiters."""
        start_time = time.perf_counter()
        try:
            result = await self._establish_with_retry(session_id, language, voice)
        except BaseException as e:
            # Cancelled or failed mid-establishment: the slot must not leak
            self._abandon_reservation(session_id, future, e)
            raise
        VOICE_LINK_CONNECT_LATENCY.observe(time.perf_counter() - start_time)

        stale: VoiceLink | None = None
        async with self._lock:
            if self._opening.get(session_id) is future:
                del self._opening[session_id]
            discarded = session_id in self._discard
            self._discard.discard(session_id)

            link = result.link
            if link is not None:
                if self._closed or discarded or not link.is_open:
                    stale = link
                else:
                    self._links[session_id] = link
                    self.total_established += 1
            else:
                self.total_failed += 1
            self._check_capacity()
            self._publish_state()

        if stale is not None:
            await stale.close()
            error: Exception = TTSQueueCancelledError(
                f"Voice link for session {session_id} was released while opening"
            )
            VOICE_LINK_ESTABLISH_TOTAL.labels(outcome="discarded").inc()
            self._resolve(future, error=error)
            await self._drain_queue()
            raise error

        if result.link is None:
            VOICE_LINK_ESTABLISH_TOTAL.labels(outcome="failed").inc()
            logger.error(f"Voice link for session {session_id} failed: {result.error}")
            error = result.error or TTSConnectionError("Voice link establishment failed")
            self._resolve(future, error=error)
            await self._drain_queue()
            raise error

        VOICE_LINK_ESTABLISH_TOTAL.labels(outcome="established").inc()
        logger.info(
            f"Voice link ready for session {session_id} "
            f"(active: {len(self._links)}/{self.config.max_links})"
        )
        self._resolve(future, link=result.link)
        return result.link

    async def _serve_request(self, request: PendingRequest) -> None:
        """Background establishment for a dequeued request."""
        VOICE_QUEUE_WAIT.observe(time.monotonic() - request.enqueued_at)
        try:
            await self._run_establishment(
                request.session_id, request.language, request.voice, request.future
            )
        except (TTSConnectionError, TTSQueueCancelledError):
            # Delivered to the waiter through the request future
            pass

    async def _drain_queue(self) -> None:
        """Admit queued requests, oldest first, while capacity allows."""
        while True:
            async with self._lock:
                if self._closed or not self._queue:
                    return
                if self._occupied >= self.config.max_links:
                    return
                request = self._queue.popleft()
                request.cancel_timer()
                if request.future.done():
                    continue
                self._opening[request.session_id] = request.future
                self._publish_state()

            logger.info(
                f"Serving queued voice link request for session {request.session_id} "
                f"(waited {time.monotonic() - request.enqueued_at:.1f}s)"
            )
            self._spawn(self._serve_request(request))

    async def _on_link_closed(self, link: VoiceLink) -> None:
        """Link callback: drop it from the map and hand its slot to the queue."""
        async with self._lock:
            if self._links.get(link.session_id) is link:
                del self._links[link.session_id]
                logger.info(f"Voice link for session {link.session_id} left the pool")
            self._publish_state()
        await self._drain_queue()

    # ------------------------------------------------------------------
    # Queue bookkeeping
    # ------------------------------------------------------------------

    def _new_future(self) -> asyncio.Future[VoiceLink]:
        future: asyncio.Future[VoiceLink] = asyncio.get_running_loop().create_future()
        future.add_done_callback(_consume_exception)
        return future

    def _enqueue(self, session_id: str, language: str, voice: VoiceSelection) -> asyncio.Future:
        request = PendingRequest(
            session_id=session_id,
            language=language,
            voice=voice,
            future=self._new_future(),
        )
        request.timer = asyncio.get_running_loop().call_later(
            self.config.queue_timeout_seconds, self._expire_request, request
        )
        self._queue.append(request)
        logger.warning(
            f"Voice link limit reached ({self.config.max_links}), queued session "
            f"{session_id} (position {len(self._queue)})"
        )
        return request.future

    def _pending_future(self, session_id: str) -> asyncio.Future[VoiceLink] | None:
        for request in self._queue:
            if request.session_id == session_id:
                return request.future
        return None

    def _expire_request(self, request: PendingRequest) -> None:
        """Timer callback: remove and fail a request that waited too long."""
        request.timer = None
        try:
            self._queue.remove(request)
        except ValueError:
            return  # Already served or withdrawn

        self.total_queue_timeouts += 1
        VOICE_QUEUE_TIMEOUTS.inc()
        self._publish_state()
        logger.warning(f"Queued voice link request for session {request.session_id} timed out")
        if not request.future.done():
            request.future.set_exception(
                TTSQueueTimeoutError(request.session_id, self.config.queue_timeout_seconds)
            )

    def _withdraw_pending(self, session_id: str, reason: str) -> int:
        withdrawn = [r for r in self._queue if r.session_id == session_id]
        for request in withdrawn:
            self._queue.remove(request)
            request.cancel_timer()
            if not request.future.done():
                request.future.set_exception(
                    TTSQueueCancelledError(f"Queued request for {session_id} withdrawn: {reason}")
                )
        return len(withdrawn)

    def _withdraw_future(self, future: asyncio.Future) -> None:
        for request in list(self._queue):
            if request.future is future:
                self._queue.remove(request)
                request.cancel_timer()
                if not future.done():
                    future.set_exception(TTSQueueCancelledError("Waiter cancelled"))
                self._publish_state()

    def _abandon_reservation(
        self,
        session_id: str,
        future: asyncio.Future,
        cause: BaseException | None = None,
    ) -> None:
        """Establishment stopped early: give the slot back and fail its waiters."""
        if self._opening.get(session_id) is future:
            del self._opening[session_id]
            self._discard.discard(session_id)
        if isinstance(cause, Exception):
            error: Exception = TTSConnectionError(f"Voice link establishment failed: {cause}")
        else:
            error = TTSQueueCancelledError("Establishment cancelled")
        self._resolve(future, error=error)
        self._publish_state()
        self._spawn(self._drain_queue())

    async def _wait_for(self, future: asyncio.Future[VoiceLink]) -> VoiceLink:
        try:
            return await asyncio.shield(future)
        except asyncio.CancelledError:
            self._withdraw_future(future)
            raise

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _resolve(
        self,
        future: asyncio.Future[VoiceLink],
        *,
        link: VoiceLink | None = None,
        error: Exception | None = None,
    ) -> None:
        if future.done():
            return
        if link is not None:
            future.set_result(link)
        else:
            future.set_exception(error or TTSConnectionError("Voice link unavailable"))

    def _check_capacity(self) -> None:
        if len(self._links) > self.config.max_links or self._occupied > self.config.max_links:
            raise VoicePoolInvariantError(
                f"Voice pool over capacity: {len(self._links)} open, "
                f"{len(self._opening)} opening, max {self.config.max_links}"
            )

    def _publish_state(self) -> None:
        record_pool_state(len(self._links), len(self._queue))

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
