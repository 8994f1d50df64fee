"""Extract audio-bearing attachments from Telegram messages."""

from datetime import timedelta

from telegram import Message

from duck_transcriber.models import MediaReference, SourceKind

VIDEO_NOTE_MIME = "video/mp4"


def _seconds(duration: int | timedelta | None) -> int:
    # Newer python-telegram-bot releases expose durations as timedelta
    if duration is None:
        return 0
    if isinstance(duration, timedelta):
        return int(duration.total_seconds())
    return int(duration)


def resolve_media(message: Message | None) -> MediaReference | None:
    """
    Build a MediaReference from the first audio-bearing attachment.

    Priority is voice > video note > video > audio. The content id is the
    platform's unique file id, which is stable across re-sends of the same
    bytes, unlike the regular file id.

    Args:
        message: Telegram message, may be None

    Returns:
        MediaReference or None if the message carries no audio
    """
    if message is None:
        return None

    if message.voice:
        voice = message.voice
        return MediaReference(
            content_id=voice.file_unique_id,
            transient_handle=voice.file_id,
            duration_seconds=_seconds(voice.duration),
            size_bytes=voice.file_size or 0,
            mime_hint=voice.mime_type,
            source_kind=SourceKind.VOICE,
        )

    if message.video_note:
        video_note = message.video_note
        return MediaReference(
            content_id=video_note.file_unique_id,
            transient_handle=video_note.file_id,
            duration_seconds=_seconds(video_note.duration),
            size_bytes=video_note.file_size or 0,
            mime_hint=VIDEO_NOTE_MIME,
            source_kind=SourceKind.VIDEO_NOTE,
        )

    if message.video:
        video = message.video
        return MediaReference(
            content_id=video.file_unique_id,
            transient_handle=video.file_id,
            duration_seconds=_seconds(video.duration),
            size_bytes=video.file_size or 0,
            mime_hint=video.mime_type,
            source_kind=SourceKind.VIDEO,
        )

    if message.audio:
        audio = message.audio
        return MediaReference(
            content_id=audio.file_unique_id,
            transient_handle=audio.file_id,
            duration_seconds=_seconds(audio.duration),
            size_bytes=audio.file_size or 0,
            mime_hint=audio.mime_type,
            source_kind=SourceKind.AUDIO,
        )

    return None


def has_audio_content(message: Message | None) -> bool:
    if message is None:
        return False
    return bool(message.voice or message.video_note or message.video or message.audio)


def find_target_message(message: Message) -> Message | None:
    """Pick the message a command should act on: itself, then the replied-to message."""
    if has_audio_content(message):
        return message
    reply = message.reply_to_message
    if has_audio_content(reply):
        return reply
    return None
