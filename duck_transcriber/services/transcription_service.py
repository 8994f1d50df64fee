"""Transcription service for handling Whisper transcription and translation."""

import time
from typing import Any, Iterable, List

from loguru import logger

from duck_transcriber.exceptions import ParseError
from duck_transcriber.models import AudioPayload, TaskType, TranscriptSegment
from duck_transcriber.services.groq_client import GroqClient

NO_SPEECH_TEXT = "<no text>"

# Empirically tuned: a segment is silence only when both hold
NO_SPEECH_PROB_THRESHOLD = 0.6
AVG_LOGPROB_THRESHOLD = -0.4


def is_silent(segment: TranscriptSegment) -> bool:
    return (
        segment.no_speech_prob > NO_SPEECH_PROB_THRESHOLD
        and segment.avg_logprob < AVG_LOGPROB_THRESHOLD
    )


def filter_segments(segments: Iterable[TranscriptSegment]) -> str:
    """
    Join the text of non-silent segments in their original order.

    Args:
        segments: Segments from a verbose transcription response

    Returns:
        The stripped text, or NO_SPEECH_TEXT if nothing survived
    """
    kept = [segment.text for segment in segments if not is_silent(segment)]
    text = "".join(kept).strip()
    return text or NO_SPEECH_TEXT


def parse_segments(response: dict) -> List[TranscriptSegment]:
    raw_segments: Any = response.get("segments")
    if not isinstance(raw_segments, list):
        raise ParseError("Transcription response has no segments")

    segments = []
    try:
        for raw in raw_segments:
            segments.append(
                TranscriptSegment(
                    text=raw.get("text", ""),
                    start=float(raw.get("start", 0.0)),
                    end=float(raw.get("end", 0.0)),
                    no_speech_prob=float(raw["no_speech_prob"]),
                    avg_logprob=float(raw["avg_logprob"]),
                )
            )
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise ParseError(f"Malformed transcription segment: {e}") from e
    return segments


class TranscriptionService:
    """Service for turning audio into filtered transcript or translation text."""

    def __init__(self, client: GroqClient) -> None:
        self.client = client

    async def transcribe(self, payload: AudioPayload, task_type: TaskType) -> str:
        """
        Transcribe or translate audio, dropping silent or hallucinated segments.

        Args:
            payload: Audio to upload
            task_type: TRANSCRIBE or TRANSLATE

        Returns:
            Transcribed text or NO_SPEECH_TEXT

        Raises:
            TranscriptionError: If the API call fails or the response is unusable
        """
        started = time.monotonic()
        logger.info(
            f"Starting {task_type.value} for {payload.filename} "
            f"({len(payload.data)} bytes, {payload.mime_type})"
        )

        response = await self.client.transcribe_audio(payload, task_type)
        segments = parse_segments(response)
        text = filter_segments(segments)

        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            f"Finished {task_type.value} in {elapsed_ms}ms: "
            f"{len(segments)} segments, {len(text)} characters"
        )
        return text
