"""Assembly of the care service components."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from src.config import Settings, get_settings
from src.core.broadcaster import InMemorySessionBroadcaster
from src.core.care_orchestrator import CareConfig, CareOrchestrator
from src.core.idle_reaper import IdleReaper
from src.core.voice_pool import VoiceConnectionPool, VoicePoolConfig
from src.logging_config import get_logger
from src.services.emotion import EmotionClassifier, KeywordEmotionClassifier
from src.services.llm import GroqReplyService, ReplyService
from src.services.stt import DeepgramTranscriber, Transcriber
from src.services.tts.murf_stream import MurfStreamConnector, TransportConnect

logger: Any = get_logger(__name__)


@dataclass
class CareRuntime:
    """Everything one process needs to serve care sessions."""

    settings: Settings
    broadcaster: InMemorySessionBroadcaster
    connector: MurfStreamConnector
    pool: VoiceConnectionPool
    orchestrator: CareOrchestrator
    reaper: IdleReaper
    reply_service: ReplyService
    transcriber: Transcriber | None = None

    def start(self) -> None:
        self.reaper.start()
        logger.info(
            f"Care runtime started (voice: "
            f"{'configured' if self.connector.is_configured else 'text-only'}, "
            f"max links: {self.pool.config.max_links})"
        )

    async def shutdown(self) -> None:
        """Stop the reaper, end every session and close every link."""
        await self.reaper.stop()
        await self.orchestrator.shutdown()
        await self.pool.close_all()
        await self.reply_service.close()
        if self.transcriber is not None and hasattr(self.transcriber, "close"):
            await self.transcriber.close()
        logger.info("Care runtime shut down")


def build_runtime(
    settings: Settings | None = None,
    *,
    reply_service: ReplyService | None = None,
    emotion_classifier: EmotionClassifier | None = None,
    transcriber: Transcriber | None = None,
    connect: TransportConnect | None = None,
    broadcaster: InMemorySessionBroadcaster | None = None,
) -> CareRuntime:
    """Wire the care components; collaborators can be swapped for tests."""
    settings = settings or get_settings()
    broadcaster = broadcaster or InMemorySessionBroadcaster()

    connector = MurfStreamConnector(broadcaster, settings=settings, connect=connect)
    pool = VoiceConnectionPool(connector, VoicePoolConfig.from_settings(settings))

    reply_service = reply_service or GroqReplyService(settings)
    if transcriber is None and settings.deepgram_api_key:
        transcriber = DeepgramTranscriber(settings)

    orchestrator = CareOrchestrator(
        pool=pool,
        broadcaster=broadcaster,
        reply_service=reply_service,
        emotion_classifier=emotion_classifier or KeywordEmotionClassifier(),
        transcriber=transcriber,
        config=CareConfig.from_settings(settings),
    )
    reaper = IdleReaper(pool, orchestrator, interval_seconds=settings.idle_sweep_interval_seconds)

    return CareRuntime(
        settings=settings,
        broadcaster=broadcaster,
        connector=connector,
        pool=pool,
        orchestrator=orchestrator,
        reaper=reaper,
        reply_service=reply_service,
        transcriber=transcriber,
    )
