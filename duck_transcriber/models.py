"""Data types shared between the services."""

from dataclasses import dataclass
from enum import Enum


class SourceKind(str, Enum):
    """Kind of Telegram attachment the audio came from."""

    VOICE = "voice"
    VIDEO_NOTE = "video_note"
    VIDEO = "video"
    AUDIO = "audio"


class TaskType(str, Enum):
    """Derived text kinds. The value doubles as the cache column name."""

    TRANSCRIBE = "transcribe"
    TRANSLATE = "translate"
    SUMMARIZE_DEFAULT = "summarize_default"
    SUMMARIZE_CAVEMAN = "summarize_caveman"

    @property
    def is_summary(self) -> bool:
        return self in (TaskType.SUMMARIZE_DEFAULT, TaskType.SUMMARIZE_CAVEMAN)

    @property
    def endpoint(self) -> str:
        """Speech endpoint path segment; only defined for speech tasks."""
        if self is TaskType.TRANSCRIBE:
            return "transcriptions"
        if self is TaskType.TRANSLATE:
            return "translations"
        raise ValueError(f"{self.value} has no speech endpoint")

    @property
    def label(self) -> str:
        """Name used for document fallbacks and log lines."""
        if self is TaskType.TRANSCRIBE:
            return "transcript"
        if self is TaskType.TRANSLATE:
            return "translation"
        return "summarization"


class LookupStatus(str, Enum):
    FOUND = "found"
    EXISTS_FOR_OTHER_TASK = "exists_for_other_task"
    ABSENT = "absent"


@dataclass(frozen=True)
class CacheLookupResult:
    """Outcome of a point lookup for one (content id, task type) pair."""

    status: LookupStatus
    text: str | None = None

    @classmethod
    def found(cls, text: str) -> "CacheLookupResult":
        return cls(LookupStatus.FOUND, text)

    @classmethod
    def exists_for_other_task(cls) -> "CacheLookupResult":
        return cls(LookupStatus.EXISTS_FOR_OTHER_TASK)

    @classmethod
    def absent(cls) -> "CacheLookupResult":
        return cls(LookupStatus.ABSENT)

    @property
    def is_found(self) -> bool:
        return self.status is LookupStatus.FOUND

    @property
    def row_exists(self) -> bool:
        return self.status is not LookupStatus.ABSENT


@dataclass(frozen=True)
class MediaReference:
    """Audio-bearing attachment extracted from a message."""

    content_id: str
    transient_handle: str
    duration_seconds: int
    size_bytes: int
    mime_hint: str | None
    source_kind: SourceKind


@dataclass(frozen=True)
class AudioPayload:
    """Audio bytes ready for upload to the speech API."""

    data: bytes
    mime_type: str
    filename: str


@dataclass(frozen=True)
class TranscriptSegment:
    text: str
    start: float
    end: float
    no_speech_prob: float
    avg_logprob: float


class ProcessingOutcome(str, Enum):
    """How a webhook request ended. Only DEFERRED_RETRY maps to a non-200."""

    REPLIED = "replied"
    REJECTED = "rejected"
    FAILED = "failed"
    DEFERRED_RETRY = "deferred_retry"
    IGNORED = "ignored"
