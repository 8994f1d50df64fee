"""Size and duration limits enforced before any download or paid API call."""

from loguru import logger

from duck_transcriber.exceptions import GateError
from duck_transcriber.models import MediaReference

BYTES_PER_MB = 1024 * 1024


class SizeDurationGate:
    """Rejects media that is too large or too long to process."""

    def __init__(self, max_file_size_mb: int, max_duration_minutes: int) -> None:
        self.max_file_size_mb = max_file_size_mb
        self.max_duration_minutes = max_duration_minutes

    @property
    def max_size_bytes(self) -> int:
        return self.max_file_size_mb * BYTES_PER_MB

    @property
    def max_duration_seconds(self) -> int:
        return self.max_duration_minutes * 60

    def check_size(self, size_bytes: int) -> None:
        if size_bytes > self.max_size_bytes:
            logger.warning(f"File is larger than {self.max_file_size_mb}MB ({size_bytes} bytes)")
            raise GateError(
                f"File can't be larger than {self.max_file_size_mb}MB "
                f"(is {size_bytes // BYTES_PER_MB}MB)"
            )

    def check_duration(self, duration_seconds: int) -> None:
        if duration_seconds > self.max_duration_seconds:
            logger.warning(f"Audio is above {self.max_duration_minutes} minutes ({duration_seconds}s)")
            raise GateError(f"Duration is above {self.max_duration_minutes} minutes")

    def check(self, media: MediaReference) -> None:
        """
        Raise GateError when the media breaks a size or duration limit.

        Args:
            media: Reference extracted from the inbound message
        """
        self.check_size(media.size_bytes)
        self.check_duration(media.duration_seconds)
