"""Routes Telegram updates to commands and the processing pipeline."""

from typing import Dict, Optional, Tuple

from loguru import logger
from telegram import Bot, BotCommand, Message, Update
from telegram.error import TelegramError

from duck_transcriber.models import ProcessingOutcome, TaskType
from duck_transcriber.services.media_source import find_target_message
from duck_transcriber.services.orchestrator import ProcessingOrchestrator
from duck_transcriber.services.telegram_service import ReplySender

BOT_COMMANDS = [
    BotCommand("help", "display this text"),
    BotCommand("start", "welcome message"),
    BotCommand("transcribe", "transcribe the replied audio"),
    BotCommand("translate", "transcribe & translate the replied audio file in English."),
    BotCommand("summarize", "summarize the replied audio message"),
    BotCommand("caveman", "summarize the replied audio message like a caveman"),
    BotCommand("privacy", "show privacy policy"),
]

WELCOME_TEXT = (
    "Welcome! Send a voice message or video note to transcribe it. "
    "You can also use /help to see all available commands."
)

PRIVACY_TEXT = """Privacy Policy:
- Bot caches: unique file id → transcription/translation/summary
- Nothing else is stored, not even in logs
- Cache is cleared after {ttl_days} days
- No guarantees about model accuracy or reliability
- Uses Whisper v3 (GroqCloud) for transcription/translation"""

# command -> (task, usage hint when there is no audio to act on)
AUDIO_COMMANDS: Dict[str, Tuple[TaskType, str]] = {
    "transcribe": (
        TaskType.TRANSCRIBE,
        "Reply to an audio message or video note to transcribe it.",
    ),
    "translate": (
        TaskType.TRANSLATE,
        "Reply to an audio message or video note to translate it.",
    ),
    "summarize": (
        TaskType.SUMMARIZE_DEFAULT,
        "Reply to an audio message or video note to summarize it.",
    ),
    "caveman": (
        TaskType.SUMMARIZE_CAVEMAN,
        "Reply to an audio message or video note to summarize it like a caveman.",
    ),
}
AUDIO_COMMANDS["english"] = AUDIO_COMMANDS["translate"]
AUDIO_COMMANDS["en"] = AUDIO_COMMANDS["translate"]

DEV_COMMANDS = ("check", "reset")


def parse_command(text: Optional[str], bot_username: Optional[str]) -> Optional[str]:
    """
    Extract the command name from the first token of a message.

    ``/cmd@otherbot`` yields None so commands meant for other bots in a group
    are left alone.

    Args:
        text: Message text or caption
        bot_username: This bot's username, without the leading @

    Returns:
        Lowercase command name without the slash, or None
    """
    if not text or not text.startswith("/"):
        return None
    token = text.split(maxsplit=1)[0][1:]
    name, _, mention = token.partition("@")
    if mention and mention.lower() != (bot_username or "").lower():
        return None
    return name.lower() or None


def build_help_text() -> str:
    lines = ["These commands are supported:"]
    for command in BOT_COMMANDS:
        if command.command == "translate":
            lines.append(f"/translate, /english, /en - {command.description}")
        else:
            lines.append(f"/{command.command} - {command.description}")
    return "\n".join(lines)


class UpdateHandler:
    """Dispatches one webhook update and reports how it ended."""

    def __init__(
        self,
        bot: Bot,
        orchestrator: ProcessingOrchestrator,
        sender: ReplySender,
        bot_username: Optional[str] = None,
        dev_telegram_id: Optional[int] = None,
        webhook_url: str = "",
        cache_ttl_days: int = 7,
    ) -> None:
        self.bot = bot
        self.orchestrator = orchestrator
        self.sender = sender
        self.bot_username = bot_username
        self.dev_telegram_id = dev_telegram_id
        self.webhook_url = webhook_url
        self.cache_ttl_days = cache_ttl_days

    async def handle_update(self, update: Update) -> ProcessingOutcome:
        message = update.message
        if message is None:
            logger.debug("Received non-message update")
            return ProcessingOutcome.IGNORED

        command = parse_command(message.text or message.caption, self.bot_username)

        if command in DEV_COMMANDS and self._is_developer(message):
            await self._handle_dev_command(command, message)
            return ProcessingOutcome.REPLIED

        if command == "help":
            await self.sender.send(message, build_help_text())
            return ProcessingOutcome.REPLIED
        if command == "start":
            await self.sender.send(message, WELCOME_TEXT)
            return ProcessingOutcome.REPLIED
        if command == "privacy":
            await self.sender.send(message, PRIVACY_TEXT.format(ttl_days=self.cache_ttl_days))
            return ProcessingOutcome.REPLIED
        if command in AUDIO_COMMANDS:
            task_type, usage = AUDIO_COMMANDS[command]
            return await self._handle_audio_command(message, task_type, usage)

        if message.voice or message.video_note:
            return await self.orchestrator.process_transcription(
                message, message, TaskType.TRANSCRIBE
            )

        return ProcessingOutcome.IGNORED

    async def _handle_audio_command(
        self, message: Message, task_type: TaskType, usage: str
    ) -> ProcessingOutcome:
        target = find_target_message(message)
        if target is None:
            await self.sender.send(message, usage)
            return ProcessingOutcome.REPLIED

        if task_type.is_summary:
            return await self.orchestrator.process_summarization(target, message, task_type)
        return await self.orchestrator.process_transcription(target, message, task_type)

    def _is_developer(self, message: Message) -> bool:
        if self.dev_telegram_id is None or message.from_user is None:
            return False
        return message.from_user.id == self.dev_telegram_id

    async def _handle_dev_command(self, command: str, message: Message) -> None:
        try:
            if command == "check":
                await self._check_webhook(message)
            else:
                await self._reset_webhook(message)
        except TelegramError as e:
            logger.warning(f"/{command} failed: {e}")

    async def _check_webhook(self, message: Message) -> None:
        info = await self.bot.get_webhook_info()
        lines = [f"Pending updates: {info.pending_update_count}"]
        if info.last_error_message:
            lines.append(f"Last error: {info.last_error_message}")
        await self.sender.send(message, "\n".join(lines))

    async def _reset_webhook(self, message: Message) -> None:
        if not self.webhook_url:
            logger.warning("/reset failed: WEBHOOK_URL not set")
            return
        await self.bot.set_webhook(
            url=self.webhook_url,
            allowed_updates=["message"],
            drop_pending_updates=True,
        )
        logger.info("Webhook re-registered with pending updates dropped")
        await self.sender.send(message, "Webhook reset: drop_pending_updates=true")
