"""Summarization service for explaining voice message translations."""

from dataclasses import dataclass

from loguru import logger

from duck_transcriber.exceptions import ParseError
from duck_transcriber.models import TaskType
from duck_transcriber.services.groq_client import GroqClient


@dataclass(frozen=True)
class SummaryPersona:
    system_prompt: str
    temperature: float
    max_tokens: int = 512


PERSONAS = {
    TaskType.SUMMARIZE_DEFAULT: SummaryPersona(
        system_prompt=(
            "You are an AI that explains transcriptions of voice messages. Don't speak as the "
            "user, instead describe what the user is saying. Always provide the summary in "
            "English, ensuring it is concise yet comprehensive. If the content is unclear, "
            "nonsensical, or you're unsure about the message's meaning, respond **only** with "
            "three question marks (`???`). Do not include any additional text, explanations, "
            "or formatting—output **strictly** the summary or `???`."
        ),
        temperature=0.4,
    ),
    TaskType.SUMMARIZE_CAVEMAN: SummaryPersona(
        system_prompt=(
            "You are an AI that explains transcriptions of voice messages like a caveman. "
            "Don't speak as the user, instead describe what the user is saying in caveman "
            "language. Use all caps, no verbs. If the content is unclear, nonsensical, or "
            "you're unsure about the message's meaning, respond **only** with three question "
            "marks (`???`). Do not include any additional text, explanations, or "
            "formatting—output **strictly** the summary or `???`."
        ),
        temperature=0.7,
    ),
}


class SummarizationService:
    """Service for summarizing translations with one of the fixed personas."""

    def __init__(self, client: GroqClient, model: str) -> None:
        self.client = client
        self.model = model

    async def summarize(self, text: str, task_type: TaskType) -> str:
        """
        Summarize a translation.

        Args:
            text: English translation of the voice message
            task_type: SUMMARIZE_DEFAULT or SUMMARIZE_CAVEMAN

        Returns:
            The summary text

        Raises:
            TranscriptionError: If the chat API fails or returns nothing usable
        """
        persona = PERSONAS.get(task_type)
        if persona is None:
            raise ValueError(f"{task_type.value} is not a summary task")

        logger.info(f"Summarizing {len(text)} characters with {task_type.value}")
        content = await self.client.chat_completion(
            messages=[
                {"role": "system", "content": persona.system_prompt},
                {"role": "user", "content": text},
            ],
            model=self.model,
            temperature=persona.temperature,
            max_tokens=persona.max_tokens,
        )

        if not content or not content.strip():
            raise ParseError("Chat completion returned an empty summary")

        summary = content.strip()
        logger.info(f"Successfully created summary: {len(summary)} characters")
        return summary
