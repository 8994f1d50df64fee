"""Per-request pipeline: cache lookup, gating, acquisition, transcription, reply."""

from loguru import logger
from telegram import Bot, Message
from telegram.constants import ParseMode
from telegram.helpers import escape_markdown

from duck_transcriber.exceptions import (
    AcquisitionError,
    CacheError,
    DuplicateKeyError,
    GateError,
    RateLimitReached,
    TranscriptionError,
)
from duck_transcriber.models import (
    CacheLookupResult,
    MediaReference,
    ProcessingOutcome,
    TaskType,
)
from duck_transcriber.services.audio_service import AudioAcquisition
from duck_transcriber.services.cache_service import TranscriptionCache
from duck_transcriber.services.limits import SizeDurationGate
from duck_transcriber.services.media_source import resolve_media
from duck_transcriber.services.summarization_service import SummarizationService
from duck_transcriber.services.telegram_service import ReplySender, TypingIndicator
from duck_transcriber.services.transcription_service import (
    NO_SPEECH_TEXT,
    TranscriptionService,
)

FAILURE_TEMPLATE = "Failed to {action} audio. Please try again later. ({error})"
NO_TEXT_REPLY = "No text found in audio"


def format_summary(summary: str) -> str:
    """Render a summary in MarkdownV2 italics."""
    return f"_{escape_markdown(summary, version=2)}_"


class ProcessingOrchestrator:
    """
    Drives one media message from cache lookup to reply.

    Replies go to ``reply_to`` (the command message) while the audio comes from
    ``source`` (the command message itself or the message it replies to).
    """

    def __init__(
        self,
        cache: TranscriptionCache,
        gate: SizeDurationGate,
        acquisition: AudioAcquisition,
        transcription: TranscriptionService,
        summarization: SummarizationService,
        sender: ReplySender,
        bot: Bot,
        typing_interval_seconds: float = 4.0,
    ) -> None:
        self.cache = cache
        self.gate = gate
        self.acquisition = acquisition
        self.transcription = transcription
        self.summarization = summarization
        self.sender = sender
        self.bot = bot
        self.typing_interval_seconds = typing_interval_seconds

    def _typing(self, message: Message) -> TypingIndicator:
        return TypingIndicator(self.bot, message.chat_id, self.typing_interval_seconds)

    async def _lookup(self, content_id: str, task_type: TaskType) -> CacheLookupResult:
        try:
            return await self.cache.get(content_id, task_type)
        except CacheError as e:
            logger.error(f"Cache lookup failed for '{content_id}', treating as miss: {e}")
            return CacheLookupResult.absent()

    async def _populate(self, content_id: str, task_type: TaskType, text: str) -> None:
        try:
            await self.cache.smart_put(content_id, task_type, text)
        except DuplicateKeyError:
            logger.warning(
                f"Row for '{content_id}' was created concurrently, skipping {task_type.value} write"
            )
        except CacheError as e:
            logger.error(f"Failed to cache {task_type.value} for '{content_id}': {e}")

    async def _reply_failure(self, reply_to: Message, action: str, error: Exception) -> ProcessingOutcome:
        await self.sender.send(reply_to, FAILURE_TEMPLATE.format(action=action, error=error))
        return ProcessingOutcome.FAILED

    async def _check_gate(self, media: MediaReference, reply_to: Message) -> bool:
        try:
            self.gate.check(media)
        except GateError as e:
            logger.warning(f"Rejected {media.content_id}: {e}")
            await self.sender.send(reply_to, str(e))
            return False
        return True

    async def _acquire_and_transcribe(self, media: MediaReference, task_type: TaskType) -> str:
        payload = await self.acquisition.fetch(media)
        return await self.transcription.transcribe(payload, task_type)

    async def process_transcription(
        self, source: Message, reply_to: Message, task_type: TaskType
    ) -> ProcessingOutcome:
        """
        Transcribe or translate the audio in ``source``.

        Args:
            source: Message carrying the media
            reply_to: Message the result is sent in reply to
            task_type: TRANSCRIBE or TRANSLATE

        Returns:
            How the request ended; DEFERRED_RETRY means nothing was replied
            and the webhook should ask Telegram to redeliver
        """
        media = resolve_media(source)
        if media is None:
            logger.error("No audio content found in message")
            return ProcessingOutcome.IGNORED

        logger.info(
            f"Received {media.source_kind.value} for {task_type.value} "
            f"with duration: {media.duration_seconds}s"
        )

        lookup = await self._lookup(media.content_id, task_type)
        if lookup.is_found:
            await self.sender.send(reply_to, lookup.text, label=task_type.label)
            return ProcessingOutcome.REPLIED

        if not await self._check_gate(media, reply_to):
            return ProcessingOutcome.REJECTED

        try:
            async with self._typing(reply_to):
                text = await self._acquire_and_transcribe(media, task_type)
        except GateError as e:
            await self.sender.send(reply_to, str(e))
            return ProcessingOutcome.REJECTED
        except RateLimitReached as e:
            logger.warning(f"All API keys rate limited for {media.content_id}: {e}")
            return ProcessingOutcome.DEFERRED_RETRY
        except (AcquisitionError, TranscriptionError) as e:
            logger.error(f"Failed to {task_type.value} {media.content_id}: {e}")
            return await self._reply_failure(reply_to, task_type.value, e)

        await self._populate(media.content_id, task_type, text)
        await self.sender.send(reply_to, text, label=task_type.label)
        return ProcessingOutcome.REPLIED

    async def process_summarization(
        self, source: Message, reply_to: Message, task_type: TaskType
    ) -> ProcessingOutcome:
        """
        Summarize the audio in ``source``, reusing a cached translation when present.

        A rate limit while translating defers the request. A rate limit from the
        chat API is reported to the user like any other summarization failure.
        """
        media = resolve_media(source)
        if media is None:
            logger.error("No audio content found in message")
            return ProcessingOutcome.IGNORED

        logger.info(
            f"Received audio message for {task_type.value} with duration: {media.duration_seconds}s"
        )

        cached_summary = await self._lookup(media.content_id, task_type)
        if cached_summary.is_found:
            await self._reply_summary(reply_to, cached_summary.text)
            return ProcessingOutcome.REPLIED

        translation = None
        cached_translation = await self._lookup(media.content_id, TaskType.TRANSLATE)
        if cached_translation.is_found:
            translation = cached_translation.text
        elif not await self._check_gate(media, reply_to):
            return ProcessingOutcome.REJECTED

        summary = None
        try:
            async with self._typing(reply_to):
                if translation is None:
                    try:
                        translation = await self._acquire_and_transcribe(media, TaskType.TRANSLATE)
                    except RateLimitReached as e:
                        logger.warning(f"All API keys rate limited for {media.content_id}: {e}")
                        return ProcessingOutcome.DEFERRED_RETRY
                    await self._populate(media.content_id, TaskType.TRANSLATE, translation)

                if translation != NO_SPEECH_TEXT:
                    summary = await self.summarization.summarize(translation, task_type)
        except GateError as e:
            await self.sender.send(reply_to, str(e))
            return ProcessingOutcome.REJECTED
        except (AcquisitionError, TranscriptionError) as e:
            logger.error(f"Failed to summarize {media.content_id}: {e}")
            return await self._reply_failure(reply_to, "summarize", e)

        if summary is None:
            await self.sender.send(reply_to, NO_TEXT_REPLY)
            return ProcessingOutcome.REPLIED

        await self._populate(media.content_id, task_type, summary)
        await self._reply_summary(reply_to, summary)
        return ProcessingOutcome.REPLIED

    async def _reply_summary(self, reply_to: Message, summary: str) -> None:
        await self.sender.send(
            reply_to,
            format_summary(summary),
            parse_mode=ParseMode.MARKDOWN_V2,
            label=TaskType.SUMMARIZE_DEFAULT.label,
        )
