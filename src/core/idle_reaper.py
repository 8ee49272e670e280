"""Periodic reclamation of idle voice links and care sessions."""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from src.core.care_orchestrator import CareOrchestrator
from src.core.exceptions import CareSessionNotFoundError
from src.core.voice_pool import VoiceConnectionPool
from src.logging_config import get_logger
from src.observability.metrics import IDLE_REAPED_TOTAL

logger: Any = get_logger(__name__)

IDLE_FEEDBACK = "Session ended due to inactivity"


@dataclass
class SweepResult:
    """What one sweep reclaimed."""

    released_links: list[str] = field(default_factory=list)
    ended_sessions: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.released_links) + len(self.ended_sessions)


class IdleReaper:
    """Releases idle links and ends idle sessions on a fixed period.

    Reclamation goes through `VoiceConnectionPool.release` and
    `CareOrchestrator.end_session`, the same entry points as explicit
    teardown.
    """

    def __init__(
        self,
        pool: VoiceConnectionPool,
        orchestrator: CareOrchestrator,
        interval_seconds: float = 300.0,
    ) -> None:
        self._pool = pool
        self._orchestrator = orchestrator
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="idle-reaper")
        logger.info(f"Idle reaper started (every {self.interval_seconds:.0f}s)")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("Idle reaper stopped")

    async def sweep(self, now: datetime | None = None) -> SweepResult:
        """Run one reclamation pass."""
        now = now or datetime.now(UTC)
        result = SweepResult()

        for session_id in self._pool.idle_session_ids(now):
            if await self._pool.release(session_id):
                result.released_links.append(session_id)
                IDLE_REAPED_TOTAL.labels(kind="link").inc()
                logger.info(f"Released idle voice link for session {session_id}")

        for session_id in self._orchestrator.idle_session_ids(now):
            try:
                await self._orchestrator.end_session(
                    session_id, feedback=IDLE_FEEDBACK, reason="timeout"
                )
            except CareSessionNotFoundError:
                continue
            result.ended_sessions.append(session_id)
            IDLE_REAPED_TOTAL.labels(kind="session").inc()

        if result.total:
            logger.info(
                f"Idle sweep reclaimed {len(result.released_links)} links, "
                f"ended {len(result.ended_sessions)} sessions"
            )
        return result

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.sweep()
            except Exception as e:
                logger.exception(f"Idle sweep failed: {e}")
