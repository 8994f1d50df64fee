"""Main entry point for the transcriber webhook server."""

import sys

import uvicorn
from loguru import logger

from duck_transcriber.config import get_settings
from duck_transcriber.webhook import create_app


def setup_logging() -> None:
    """Configure logging with loguru."""
    settings = get_settings()
    # Remove default handler
    logger.remove()

    # The hosting platform collects stdout, so there are no file sinks
    logger.add(
        sys.stdout,
        level=settings.log_level,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        colorize=True,
    )


def main() -> None:
    """Run the webhook server."""
    setup_logging()
    settings = get_settings()

    logger.info("Duck Transcriber starting...")
    logger.info(f"Max file size: {settings.max_file_size_mb}MB")
    logger.info(f"Max duration: {settings.max_duration_minutes} minutes")
    logger.info(f"API keys configured: {len(settings.api_keys)}")
    logger.info(f"Log level: {settings.log_level}")

    uvicorn.run(create_app(settings=settings), host="0.0.0.0", port=settings.port, log_level="info")


if __name__ == "__main__":
    main()
