"""HTTP client for the Groq (OpenAI-compatible) speech and chat APIs with key failover."""

import re
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

import httpx
from loguru import logger

from duck_transcriber.exceptions import (
    ApiError,
    NetworkError,
    ParseError,
    RateLimitReached,
    TranscriptionError,
)
from duck_transcriber.models import AudioPayload, TaskType

RATE_LIMIT_CODE = "rate_limit_exceeded"

_RETRY_AFTER_RE = re.compile(r"try again in\s+([0-9.hms]+)", re.IGNORECASE)
_DURATION_PART_RE = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_UNIT_SECONDS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}


def parse_retry_after(message: Optional[str]) -> Optional[float]:
    """
    Extract the wait time from messages like "Please try again in 1m51.5s.".

    Args:
        message: Free-text error message from the provider

    Returns:
        Seconds to wait, or None when the message has no recognisable duration
    """
    if not message:
        return None
    match = _RETRY_AFTER_RE.search(message)
    if not match:
        return None
    parts = _DURATION_PART_RE.findall(match.group(1))
    if not parts:
        return None
    return sum(float(value) * _UNIT_SECONDS[unit] for value, unit in parts)


SendRequest = Callable[[httpx.AsyncClient, str], Awaitable[httpx.Response]]


class GroqClient:
    """
    Calls the speech and chat endpoints, walking the API key pool in order.

    Only a rate-limit answer moves on to the next key. Any other failure is
    assumed to be about the payload and stops the walk.
    """

    def __init__(
        self,
        api_keys: Sequence[str],
        base_url: str,
        timeout_seconds: float,
        transcription_model: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_keys = tuple(api_keys)
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.transcription_model = transcription_model
        self._transport = transport
        logger.info(f"Initialized Groq client with {len(self.api_keys)} API key(s)")

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout_seconds),
            transport=self._transport,
        )

    @staticmethod
    def _headers(api_key: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {api_key}"}

    @staticmethod
    def _classify_error(response: httpx.Response) -> TranscriptionError:
        try:
            body = response.json()
        except ValueError:
            body = None

        error = body.get("error") if isinstance(body, dict) else None
        if not isinstance(error, dict):
            error = {}
        code = error.get("code")
        message = error.get("message") or ""

        if code == RATE_LIMIT_CODE or response.status_code == 429:
            return RateLimitReached(parse_retry_after(message), detail=message)
        if body is None:
            return ParseError(f"Failed to parse API error response (HTTP {response.status_code})")
        return ApiError(f"HTTP {response.status_code}: {message or 'unknown error'}")

    async def _call_with_failover(self, operation: str, send: SendRequest) -> httpx.Response:
        last_error: Optional[TranscriptionError] = None
        total = len(self.api_keys)
        if not total:
            logger.error("No API keys configured")

        async with self._client() as client:
            for attempt, api_key in enumerate(self.api_keys, start=1):
                logger.info(f"Attempting {operation} with API key {attempt} of {total}")
                try:
                    response = await send(client, api_key)
                except httpx.TimeoutException as e:
                    logger.error(f"{operation} request timed out with key {attempt}: {e}")
                    last_error = NetworkError(f"Request timed out: {e}")
                    break
                except httpx.HTTPError as e:
                    logger.error(f"{operation} request failed with key {attempt}: {e}")
                    last_error = NetworkError(f"Failed to send request: {e}")
                    break

                if response.is_success:
                    return response

                error = self._classify_error(response)
                last_error = error
                if isinstance(error, RateLimitReached):
                    logger.warning(
                        f"Rate limit reached with key {attempt} "
                        f"(retry after: {error.retry_after}), trying next key"
                    )
                    continue

                logger.error(f"Error with key {attempt}: {error}")
                break

        raise last_error or ApiError("All API keys failed")

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise ParseError(f"Failed to parse API response: {e}") from e

    async def transcribe_audio(self, payload: AudioPayload, task_type: TaskType) -> Dict[str, Any]:
        """
        Upload audio to the transcription or translation endpoint.

        Args:
            payload: Audio bytes with MIME type and file name
            task_type: TRANSCRIBE or TRANSLATE

        Returns:
            The verbose JSON response (with segments)
        """
        url = f"{self.base_url}/audio/{task_type.endpoint}"

        async def send(client: httpx.AsyncClient, api_key: str) -> httpx.Response:
            return await client.post(
                url,
                headers=self._headers(api_key),
                data={"model": self.transcription_model, "response_format": "verbose_json"},
                files={"file": (payload.filename, payload.data, payload.mime_type)},
            )

        response = await self._call_with_failover(task_type.value, send)
        body = self._json(response)
        if not isinstance(body, dict):
            raise ParseError("Unexpected transcription response shape")
        return body

    async def chat_completion(
        self,
        messages: List[Dict[str, str]],
        model: str,
        temperature: float,
        max_tokens: int,
    ) -> str:
        """Run a chat completion and return the first choice's content."""
        url = f"{self.base_url}/chat/completions"
        request = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

        async def send(client: httpx.AsyncClient, api_key: str) -> httpx.Response:
            return await client.post(url, headers=self._headers(api_key), json=request)

        response = await self._call_with_failover("chat completion", send)
        body = self._json(response)
        try:
            return body["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ParseError(f"Unexpected chat completion response shape: {e}") from e
