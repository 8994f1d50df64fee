"""Tests for the webhook HTTP surface."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient
from telegram import Bot

from duck_transcriber.models import ProcessingOutcome
from duck_transcriber.webhook import create_app

UPDATE = {
    "update_id": 10000,
    "message": {
        "message_id": 7,
        "date": 1700000000,
        "chat": {"id": 1001, "type": "private"},
        "from": {"id": 42, "is_bot": False, "first_name": "Ada"},
        "voice": {
            "file_id": "fid",
            "file_unique_id": "abc123",
            "duration": 42,
            "mime_type": "audio/ogg",
            "file_size": 50000,
        },
    },
}


@pytest.fixture
def handler():
    handler = MagicMock()
    handler.bot = Bot("123456:TEST-TOKEN")
    handler.handle_update = AsyncMock(return_value=ProcessingOutcome.REPLIED)
    return handler


@pytest.fixture
def client(handler):
    with TestClient(create_app(handler=handler)) as client:
        yield client


def test_voice_update_is_acknowledged(client, handler):
    response = client.post("/webhook", json=UPDATE)

    assert response.status_code == 200
    update = handler.handle_update.call_args.args[0]
    assert update.update_id == 10000
    assert update.message.voice.file_unique_id == "abc123"


def test_root_path_accepts_updates(client, handler):
    response = client.post("/", json=UPDATE)

    assert response.status_code == 200
    handler.handle_update.assert_awaited_once()


def test_rate_limit_returns_429(client, handler):
    handler.handle_update.return_value = ProcessingOutcome.DEFERRED_RETRY

    response = client.post("/webhook", json=UPDATE)

    assert response.status_code == 429
    assert response.text == "Rate limit reached"


@pytest.mark.parametrize(
    "outcome",
    [ProcessingOutcome.FAILED, ProcessingOutcome.REJECTED, ProcessingOutcome.IGNORED],
)
def test_other_outcomes_return_200(client, handler, outcome):
    handler.handle_update.return_value = outcome

    response = client.post("/webhook", json=UPDATE)

    assert response.status_code == 200


def test_invalid_json_returns_400(client, handler):
    response = client.post(
        "/webhook", content=b"{not json", headers={"Content-Type": "application/json"}
    )

    assert response.status_code == 400
    handler.handle_update.assert_not_called()


def test_non_object_body_returns_400(client, handler):
    response = client.post("/webhook", json=[1, 2, 3])

    assert response.status_code == 400


def test_update_without_id_returns_400(client, handler):
    response = client.post("/webhook", json={"message": UPDATE["message"]})

    assert response.status_code == 400
    handler.handle_update.assert_not_called()


@pytest.mark.parametrize(
    "body",
    [
        {"update_id": 1, "message": "not-an-object"},
        {"update_id": 1, "message": {"message_id": 7, "chat": "x", "date": 1700000000}},
    ],
)
def test_update_with_wrong_field_types_returns_400(client, handler, body):
    response = client.post("/webhook", json=body)

    assert response.status_code == 400
    handler.handle_update.assert_not_called()


def test_unexpected_error_is_acknowledged(client, handler):
    handler.handle_update.side_effect = RuntimeError("boom")

    response = client.post("/webhook", json=UPDATE)

    assert response.status_code == 200


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
