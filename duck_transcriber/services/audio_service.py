"""Download media from Telegram and optionally normalize it with ffmpeg."""

import asyncio
import mimetypes
from typing import Optional

from loguru import logger
from telegram import Bot
from telegram.error import TelegramError

from duck_transcriber.exceptions import DownloadError, TranscodeError
from duck_transcriber.models import AudioPayload, MediaReference
from duck_transcriber.services.limits import SizeDurationGate

DEFAULT_MIME = "application/octet-stream"


def _filename_for(mime_type: str) -> str:
    subtype = mime_type.split("/", 1)[-1].split(";", 1)[0].strip() or "bin"
    return f"audio.{subtype}"


class FFmpegTranscoder:
    """Converts arbitrary audio/video to 16 kHz mono PCM WAV through ffmpeg pipes."""

    def __init__(self, ffmpeg_path: str = "ffmpeg", timeout_seconds: float = 30.0) -> None:
        self.ffmpeg_path = ffmpeg_path
        self.timeout_seconds = timeout_seconds

    async def transcode(self, data: bytes) -> bytes:
        """
        Transcode audio bytes to WAV.

        Args:
            data: Raw media bytes

        Returns:
            WAV bytes

        Raises:
            TranscodeError: If ffmpeg cannot be started, fails or times out
        """
        cmd = [
            self.ffmpeg_path,
            "-i", "pipe:0",
            "-ar", "16000",
            "-ac", "1",
            "-c:a", "pcm_s16le",
            "-f", "wav",
            "pipe:1",
        ]

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise TranscodeError(f"Failed to spawn ffmpeg: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(input=data), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError as e:
            process.kill()
            await process.wait()
            raise TranscodeError(f"ffmpeg timed out after {self.timeout_seconds}s") from e

        if process.returncode != 0:
            logger.warning(f"ffmpeg failed with return code {process.returncode}")
            if stderr:
                logger.debug(f"ffmpeg stderr: {stderr.decode(errors='replace')[-500:]}")
            raise TranscodeError(f"ffmpeg failed with status: {process.returncode}")

        logger.info(f"Transcoded {len(data)} bytes to {len(stdout)} bytes of WAV")
        return stdout


class AudioAcquisition:
    """Fetches the bytes behind a MediaReference."""

    def __init__(
        self,
        bot: Bot,
        gate: SizeDurationGate,
        transcoder: Optional[FFmpegTranscoder] = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        self.bot = bot
        self.gate = gate
        self.transcoder = transcoder
        self.timeout_seconds = timeout_seconds

    async def fetch(self, media: MediaReference) -> AudioPayload:
        """
        Download the media and return uploadable audio.

        The size is re-checked against Telegram's file metadata because the size
        carried by the message may be missing or stale.

        Raises:
            GateError: If the authoritative size exceeds the limit
            DownloadError: If Telegram metadata or bytes cannot be fetched
            TranscodeError: If transcoding is enabled and fails
        """
        try:
            tg_file = await self.bot.get_file(
                media.transient_handle, read_timeout=self.timeout_seconds
            )
        except TelegramError as e:
            logger.error(f"Failed to get file metadata for {media.content_id}: {e}")
            raise DownloadError(f"Failed to get file: {e}") from e

        size = tg_file.file_size or media.size_bytes
        logger.info(f"Checking file size: {size} bytes ({size // 1024 // 1024}MB)")
        self.gate.check_size(size)

        try:
            data = bytes(await tg_file.download_as_bytearray(read_timeout=self.timeout_seconds))
        except TelegramError as e:
            logger.error(f"Failed to download {media.content_id}: {e}")
            raise DownloadError(f"Failed to download file: {e}") from e

        mime_type = media.mime_hint
        if not mime_type and tg_file.file_path:
            mime_type, _ = mimetypes.guess_type(tg_file.file_path)
        if not mime_type:
            logger.warning(f"Could not determine MIME type for {media.content_id}, using {DEFAULT_MIME}")
            mime_type = DEFAULT_MIME

        logger.info(f"Downloaded {len(data)} bytes ({mime_type}) for {media.content_id}")

        if self.transcoder is None:
            return AudioPayload(data=data, mime_type=mime_type, filename=_filename_for(mime_type))

        wav = await self.transcoder.transcode(data)
        return AudioPayload(data=wav, mime_type="audio/wav", filename="audio.wav")
