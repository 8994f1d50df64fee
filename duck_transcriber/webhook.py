"""FastAPI application receiving Telegram webhook deliveries."""

import json
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse
from loguru import logger
from telegram import Bot, Update
from telegram.error import TelegramError
from telegram.request import HTTPXRequest

from duck_transcriber.bot import BOT_COMMANDS, UpdateHandler
from duck_transcriber.config import Settings, get_settings
from duck_transcriber.exceptions import CacheError
from duck_transcriber.models import ProcessingOutcome
from duck_transcriber.services.audio_service import AudioAcquisition, FFmpegTranscoder
from duck_transcriber.services.cache_service import TranscriptionCache
from duck_transcriber.services.cache_store import SqliteCacheStore, create_cache_store
from duck_transcriber.services.groq_client import GroqClient
from duck_transcriber.services.limits import SizeDurationGate
from duck_transcriber.services.orchestrator import ProcessingOrchestrator
from duck_transcriber.services.summarization_service import SummarizationService
from duck_transcriber.services.telegram_service import ReplySender
from duck_transcriber.services.transcription_service import TranscriptionService


def build_bot(settings: Settings) -> Bot:
    request = HTTPXRequest(
        connect_timeout=10.0,
        read_timeout=settings.http_timeout_seconds,
        write_timeout=settings.http_timeout_seconds,
        pool_timeout=10.0,
    )
    return Bot(token=settings.telegram_bot_token, request=request)


def build_handler(settings: Settings, bot: Bot, cache: TranscriptionCache) -> UpdateHandler:
    """Wire the services for one process."""
    gate = SizeDurationGate(settings.max_file_size_mb, settings.max_duration_minutes)
    transcoder = None
    if settings.transcode_audio:
        transcoder = FFmpegTranscoder(settings.ffmpeg_path, settings.http_timeout_seconds)

    groq = GroqClient(
        api_keys=settings.api_keys,
        base_url=settings.groq_base_url,
        timeout_seconds=settings.http_timeout_seconds,
        transcription_model=settings.whisper_model,
    )
    sender = ReplySender(bot)
    orchestrator = ProcessingOrchestrator(
        cache=cache,
        gate=gate,
        acquisition=AudioAcquisition(bot, gate, transcoder, settings.http_timeout_seconds),
        transcription=TranscriptionService(groq),
        summarization=SummarizationService(groq, settings.summary_model),
        sender=sender,
        bot=bot,
        typing_interval_seconds=settings.typing_interval_seconds,
    )
    return UpdateHandler(
        bot=bot,
        orchestrator=orchestrator,
        sender=sender,
        bot_username=bot.username,
        dev_telegram_id=settings.dev_telegram_id,
        webhook_url=settings.webhook_url,
        cache_ttl_days=settings.cache_ttl_days,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    if app.state.handler is not None:
        yield
        return

    settings = app.state.settings or get_settings()
    bot = build_bot(settings)
    await bot.initialize()
    logger.info(f"Bot initialized as @{bot.username}")

    try:
        await bot.set_my_commands(BOT_COMMANDS)
    except TelegramError as e:
        logger.warning(f"Failed to register bot commands: {e}")

    store = create_cache_store(settings)
    if isinstance(store, SqliteCacheStore):
        try:
            await store.purge_expired()
        except CacheError as e:
            logger.warning(f"Failed to purge expired cache rows: {e}")

    cache = TranscriptionCache(store, ttl_days=settings.cache_ttl_days)
    app.state.handler = build_handler(settings, bot, cache)
    logger.info(
        f"Webhook ready: cache={settings.cache_backend}, "
        f"max file size={settings.max_file_size_mb}MB, "
        f"max duration={settings.max_duration_minutes}min"
    )

    try:
        yield
    finally:
        await store.close()
        await bot.shutdown()
        logger.info("Webhook services shut down")


async def handle_webhook(request: Request) -> PlainTextResponse:
    handler: UpdateHandler = request.app.state.handler
    raw = await request.body()

    try:
        data = json.loads(raw)
    except ValueError as e:
        logger.error(f"Failed to parse webhook: {e}")
        return PlainTextResponse("Failed to parse webhook", status_code=400)
    if not isinstance(data, dict):
        logger.error("Failed to parse webhook: body is not a JSON object")
        return PlainTextResponse("Failed to parse webhook", status_code=400)

    try:
        update = Update.de_json(data, handler.bot)
    except Exception as e:
        # Any shape python-telegram-bot cannot build an Update from is a bad request
        logger.error(f"Failed to parse webhook update: {e}")
        return PlainTextResponse("Failed to parse webhook", status_code=400)
    if update is None:
        return PlainTextResponse("Failed to parse webhook", status_code=400)

    try:
        outcome = await handler.handle_update(update)
    except Exception as e:
        # Redelivery would not help, so the update is acknowledged anyway
        logger.exception(f"Unhandled error while processing update {update.update_id}: {e}")
        return PlainTextResponse("Internal error")

    if outcome is ProcessingOutcome.DEFERRED_RETRY:
        return PlainTextResponse("Rate limit reached", status_code=429)

    logger.debug(f"Update {update.update_id} finished: {outcome.value}")
    return PlainTextResponse(outcome.value)


def create_app(
    handler: Optional[UpdateHandler] = None, settings: Optional[Settings] = None
) -> FastAPI:
    """
    Create the webhook application.

    Args:
        handler: Pre-built update handler; when given, the lifespan builds nothing
        settings: Settings used to build the services, read from the environment if omitted

    Returns:
        FastAPI application
    """
    app = FastAPI(title="Duck Transcriber Webhook", lifespan=lifespan)
    app.state.handler = handler
    app.state.settings = settings

    app.add_api_route("/webhook", handle_webhook, methods=["POST"])
    app.add_api_route("/", handle_webhook, methods=["POST"])

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    return app
