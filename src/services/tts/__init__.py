"""Streaming text-to-speech services.

Provides the upstream voice link used by the care voice pool:
- MurfStreamConnector: opens configured links to the streaming endpoint
- VoiceLink: one session's connection, frame demultiplexing, teardown
"""

from src.services.tts.exceptions import (
    TTSConfigurationError,
    TTSConnectionError,
    TTSNotOpenError,
    TTSQueueCancelledError,
    TTSQueueTimeoutError,
    TTSSendError,
    TTSServiceError,
    VoicePoolInvariantError,
)
from src.services.tts.frames import decode_frame
from src.services.tts.murf_stream import MurfStreamConnector, VoiceLink
from src.services.tts.protocol import (
    AudioChunk,
    LinkClosed,
    LinkState,
    SessionBroadcaster,
    VoiceError,
    VoiceSelection,
    VoiceTransport,
)
from src.services.tts.voices import default_voice_id

__all__ = [
    # Links
    "MurfStreamConnector",
    "VoiceLink",
    # Protocol
    "SessionBroadcaster",
    "VoiceTransport",
    # Data types
    "AudioChunk",
    "VoiceError",
    "LinkClosed",
    "LinkState",
    "VoiceSelection",
    # Utilities
    "decode_frame",
    "default_voice_id",
    # Exceptions
    "TTSServiceError",
    "TTSConnectionError",
    "TTSConfigurationError",
    "TTSQueueTimeoutError",
    "TTSQueueCancelledError",
    "TTSSendError",
    "TTSNotOpenError",
    "VoicePoolInvariantError",
]
