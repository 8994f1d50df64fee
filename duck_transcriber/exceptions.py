"""Exception hierarchy shared by the transcription pipeline."""


class TranscriberError(Exception):
    """Base class for all pipeline errors."""


class GateError(TranscriberError):
    """Media exceeds the configured size or duration limits.

    The message is user-facing and is sent back as the reply.
    """


class AcquisitionError(TranscriberError):
    """Media could not be turned into uploadable audio."""


class DownloadError(AcquisitionError):
    """Fetching file metadata or bytes from Telegram failed."""


class TranscodeError(AcquisitionError):
    """The external transcoder failed or timed out."""


class TranscriptionError(TranscriberError):
    """Base class for speech-to-text and chat-completion API failures."""


class RateLimitReached(TranscriptionError):
    """The provider signalled a rate or quota limit for the key in use."""

    def __init__(self, retry_after: float | None = None, detail: str = "") -> None:
        self.retry_after = retry_after
        self.detail = detail
        message = "Rate limit reached."
        if retry_after is not None:
            message += f" Retry after {retry_after:g}s"
        super().__init__(message)


class NetworkError(TranscriptionError):
    """The request never produced an HTTP response (connect error, timeout)."""


class ApiError(TranscriptionError):
    """The provider answered with a non rate-limit error."""


class ParseError(TranscriptionError):
    """The provider response could not be understood."""


class CacheError(TranscriberError):
    """The cache store could not be read or written."""


class DuplicateKeyError(CacheError):
    """An insert found a row that already exists for the content id."""
