"""Tests for the summarization service."""

from unittest.mock import AsyncMock

import pytest

from duck_transcriber.exceptions import ParseError, RateLimitReached
from duck_transcriber.models import TaskType
from duck_transcriber.services.summarization_service import PERSONAS, SummarizationService


class TestSummarizationService:
    """Test the SummarizationService class."""

    @pytest.mark.asyncio
    async def test_default_persona(self):
        """Test the default summary request and result."""
        client = AsyncMock()
        client.chat_completion.return_value = "  The user asks about dinner plans.\n"
        service = SummarizationService(client, model="summary-model")

        result = await service.summarize("What are we eating tonight?", TaskType.SUMMARIZE_DEFAULT)

        assert result == "The user asks about dinner plans."
        kwargs = client.chat_completion.call_args.kwargs
        assert kwargs["model"] == "summary-model"
        assert kwargs["temperature"] == 0.4
        assert kwargs["max_tokens"] == 512
        assert kwargs["messages"][0] == {
            "role": "system",
            "content": PERSONAS[TaskType.SUMMARIZE_DEFAULT].system_prompt,
        }
        assert kwargs["messages"][1] == {"role": "user", "content": "What are we eating tonight?"}

    @pytest.mark.asyncio
    async def test_caveman_persona(self):
        """Test that the caveman persona uses its own prompt and temperature."""
        client = AsyncMock()
        client.chat_completion.return_value = "MAN WANT FOOD"
        service = SummarizationService(client, model="summary-model")

        result = await service.summarize("I am hungry", TaskType.SUMMARIZE_CAVEMAN)

        assert result == "MAN WANT FOOD"
        kwargs = client.chat_completion.call_args.kwargs
        assert kwargs["temperature"] == 0.7
        assert "caveman" in kwargs["messages"][0]["content"]

    @pytest.mark.asyncio
    async def test_empty_summary(self):
        """Test that an empty reply is a parse error."""
        client = AsyncMock()
        client.chat_completion.return_value = "   "
        service = SummarizationService(client, model="summary-model")

        with pytest.raises(ParseError):
            await service.summarize("text", TaskType.SUMMARIZE_DEFAULT)

    @pytest.mark.asyncio
    async def test_non_summary_task(self):
        """Test that speech tasks are rejected."""
        service = SummarizationService(AsyncMock(), model="summary-model")

        with pytest.raises(ValueError):
            await service.summarize("text", TaskType.TRANSLATE)

    @pytest.mark.asyncio
    async def test_client_errors_propagate(self):
        """Test that API errors are left for the caller."""
        client = AsyncMock()
        client.chat_completion.side_effect = RateLimitReached(30.0)
        service = SummarizationService(client, model="summary-model")

        with pytest.raises(RateLimitReached):
            await service.summarize("text", TaskType.SUMMARIZE_DEFAULT)
