"""File service for handling temporary reply files."""

import os

import aiofiles
from loguru import logger

from duck_transcriber.config import get_settings


class FileService:
    """Service for handling file operations."""

    @staticmethod
    async def create_text_file(content: str, filename: str) -> str:
        """
        Create a text file with the given content.

        Args:
            content: Text content to write
            filename: Name of the file

        Returns:
            Path to the created file
        """
        settings = get_settings()
        os.makedirs(settings.temp_dir, exist_ok=True)

        file_path = os.path.join(settings.temp_dir, filename)

        async with aiofiles.open(file_path, "w", encoding="utf-8") as f:
            await f.write(content)

        logger.info(f"Created text file: {file_path}")
        return file_path

    @staticmethod
    def cleanup_file(file_path: str) -> None:
        """
        Remove a temporary file.

        Args:
            file_path: Path to the file to remove
        """
        try:
            if os.path.exists(file_path):
                os.remove(file_path)
                logger.info(f"Cleaned up file: {file_path}")
        except OSError as e:
            logger.warning(f"Failed to cleanup file {file_path}: {e}")
