"""Reply delivery and chat action helpers on top of python-telegram-bot."""

import asyncio
import uuid
from typing import Optional

from loguru import logger
from telegram import Bot, LinkPreviewOptions, Message, ReplyParameters
from telegram.constants import ChatAction, MessageLimit
from telegram.error import BadRequest, TelegramError

from duck_transcriber.file_service import FileService

MAX_MESSAGE_LENGTH = MessageLimit.MAX_TEXT_LENGTH


class ReplySender:
    """Sends replies that never raise into the request pipeline."""

    def __init__(self, bot: Bot, file_service: Optional[FileService] = None) -> None:
        self.bot = bot
        self.file_service = file_service or FileService()

    @staticmethod
    def _reply_parameters(message: Message) -> ReplyParameters:
        return ReplyParameters(
            message_id=message.message_id, allow_sending_without_reply=True
        )

    async def send(
        self,
        message: Message,
        text: str,
        parse_mode: Optional[str] = None,
        label: Optional[str] = None,
    ) -> bool:
        """
        Reply to a message with text, or with a .txt document if it is too long.

        Args:
            message: Message to reply to
            text: Reply text
            parse_mode: Telegram parse mode, retried as plain text on failure
            label: Base name for the document fallback

        Returns:
            True if something was delivered
        """
        if len(text) > MAX_MESSAGE_LENGTH:
            return await self._send_document(message, text, label or "message")

        try:
            await self._send_text(message, text, parse_mode)
            return True
        except BadRequest as e:
            if parse_mode is None:
                logger.error(f"Failed to send message: {e}")
                return False
            logger.warning(f"Failed to send message with {parse_mode}, trying without formatting: {e}")
        except TelegramError as e:
            logger.error(f"Failed to send message: {e}")
            return False

        try:
            await self._send_text(message, text, None)
            return True
        except TelegramError as e:
            logger.error(f"Failed to send plain text message: {e}")
            return False

    async def _send_text(self, message: Message, text: str, parse_mode: Optional[str]) -> None:
        await self.bot.send_message(
            chat_id=message.chat_id,
            text=text,
            parse_mode=parse_mode,
            reply_parameters=self._reply_parameters(message),
            disable_notification=True,
            link_preview_options=LinkPreviewOptions(is_disabled=True),
        )

    async def _send_document(self, message: Message, text: str, label: str) -> bool:
        logger.info(f"Reply is {len(text)} characters, sending as {label}.txt")
        file_path = None
        try:
            file_path = await self.file_service.create_text_file(
                text, f"{label}_{uuid.uuid4().hex}.txt"
            )
            with open(file_path, "rb") as document:
                await self.bot.send_document(
                    chat_id=message.chat_id,
                    document=document,
                    filename=f"{label}.txt",
                    reply_parameters=self._reply_parameters(message),
                    disable_notification=True,
                )
            return True
        except OSError as e:
            logger.error(f"Failed to write {label}.txt for document reply: {e}")
            return False
        except TelegramError as e:
            logger.error(f"Failed to send document: {e}")
            return False
        finally:
            if file_path is not None:
                self.file_service.cleanup_file(file_path)


class TypingIndicator:
    """Repeats the typing chat action in the background until the block exits."""

    def __init__(self, bot: Bot, chat_id: int, interval_seconds: float = 4.0) -> None:
        self.bot = bot
        self.chat_id = chat_id
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    async def __aenter__(self) -> "TypingIndicator":
        self._task = asyncio.create_task(self._run())
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def stop(self) -> None:
        if self._task is None:
            return
        task, self._task = self._task, None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.warning(f"Typing indicator stopped with error: {e}")

    async def _run(self) -> None:
        while True:
            try:
                await self.bot.send_chat_action(chat_id=self.chat_id, action=ChatAction.TYPING)
            except Exception as e:
                logger.debug(f"Failed to send typing action: {e}")
            await asyncio.sleep(self.interval_seconds)
