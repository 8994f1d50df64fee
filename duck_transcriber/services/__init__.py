"""Convenience imports for transcriber services."""

from .audio_service import AudioAcquisition, FFmpegTranscoder
from .cache_service import TranscriptionCache
from .cache_store import CacheStore, RedisCacheStore, SqliteCacheStore, create_cache_store
from .groq_client import GroqClient
from .limits import SizeDurationGate
from .orchestrator import ProcessingOrchestrator
from .summarization_service import SummarizationService
from .telegram_service import ReplySender, TypingIndicator
from .transcription_service import TranscriptionService

__all__ = [
    "AudioAcquisition",
    "FFmpegTranscoder",
    "TranscriptionCache",
    "CacheStore",
    "RedisCacheStore",
    "SqliteCacheStore",
    "create_cache_store",
    "GroqClient",
    "SizeDurationGate",
    "ProcessingOrchestrator",
    "SummarizationService",
    "ReplySender",
    "TypingIndicator",
    "TranscriptionService",
]
