import asyncio
import time
from types import SimpleNamespace as NS
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from aniverse.core import completion
from aniverse.core.completion import CompletionClient, build_messages
from aniverse.storage.base import MessageRecord, MessageRole
from tests.conftest import completion_response, fake_openai

API_URL = "https://api.perplexity.ai/chat/completions"


def _history(*pairs):
    return [
        MessageRecord(id=str(i), session_id="s-1", role=MessageRole(role), content=content)
        for i, (role, content) in enumerate(pairs)
    ]


def _status_error(status_code):
    request = httpx.Request("POST", API_URL)
    response = httpx.Response(status_code, request=request, json={"error": {"message": "nope"}})
    return openai.APIStatusError("upstream said no", response=response, body=None)


def _client_raising(exc):
    client = MagicMock()
    client.chat.completions.create = AsyncMock(side_effect=exc)
    return client


def _complete(client, history=None, **kwargs):
    cc = CompletionClient(api_key="pplx-test-key", client=client, **kwargs)
    return asyncio.run(cc.complete(history or _history(("user", "hi"))))


# ---------- Request shape ----------

def test_build_messages_puts_system_prompt_first():
    messages = build_messages(_history(("user", "hi"), ("assistant", "hello!")))

    assert messages[0] == {"role": "system", "content": completion.SYSTEM_PROMPT}
    assert messages[1:] == [
        {"role": "user", "content": "hi"},
        {"role": "assistant", "content": "hello!"},
    ]


def test_request_carries_sampling_parameters():
    client = fake_openai("Try Frieren.")

    assert _complete(client) == "Try Frieren."

    kwargs = client.chat.completions.create.await_args.kwargs
    assert kwargs["model"] == "sonar"
    assert kwargs["temperature"] == 0.3
    assert kwargs["top_p"] == 0.9
    assert kwargs["presence_penalty"] == 0
    assert kwargs["frequency_penalty"] == 0.1
    assert kwargs["stream"] is False
    assert kwargs["extra_body"] == {"return_images": False, "return_related_questions": False}
    assert len(kwargs["messages"]) == 2


def test_custom_model_is_used():
    client = fake_openai()
    _complete(client, model="sonar-pro")
    assert client.chat.completions.create.await_args.kwargs["model"] == "sonar-pro"


# ---------- Missing credential ----------

@pytest.mark.parametrize("api_key", [None, "", "   "])
def test_missing_key_short_circuits(api_key):
    client = fake_openai()
    cc = CompletionClient(api_key=api_key, client=client)

    assert not cc.configured
    assert asyncio.run(cc.complete(_history(("user", "hi")))) == completion.NOT_CONFIGURED_MESSAGE
    client.chat.completions.create.assert_not_called()


def test_missing_key_builds_no_sdk_client():
    cc = CompletionClient(api_key=None)
    assert cc._client is None


# ---------- Failure mapping ----------

@pytest.mark.parametrize(
    "status_code, expected",
    [
        (401, completion.AUTH_ERROR_MESSAGE),
        (429, completion.RATE_LIMIT_MESSAGE),
        (400, completion.BAD_REQUEST_MESSAGE),
        (500, completion.UNAVAILABLE_MESSAGE),
        (503, completion.UNAVAILABLE_MESSAGE),
        (404, completion.UNAVAILABLE_MESSAGE),
    ],
)
def test_http_errors_map_to_messages(status_code, expected):
    assert _complete(_client_raising(_status_error(status_code))) == expected


def test_auth_error_subclass_maps_to_auth_message():
    request = httpx.Request("POST", API_URL)
    exc = openai.AuthenticationError(
        "bad key", response=httpx.Response(401, request=request), body=None
    )
    assert _complete(_client_raising(exc)) == completion.AUTH_ERROR_MESSAGE


def test_connection_error_maps_to_connectivity_message():
    exc = openai.APIConnectionError(request=httpx.Request("POST", API_URL))
    assert _complete(_client_raising(exc)) == completion.CONNECTION_ERROR_MESSAGE


def test_sdk_timeout_maps_to_timeout_message():
    exc = openai.APITimeoutError(request=httpx.Request("POST", API_URL))
    assert _complete(_client_raising(exc)) == completion.TIMEOUT_MESSAGE


def test_unexpected_error_maps_to_generic_message():
    assert _complete(_client_raising(RuntimeError("boom"))) == completion.UNEXPECTED_ERROR_MESSAGE


@pytest.mark.parametrize(
    "response",
    [
        NS(choices=[]),
        NS(choices=None),
        completion_response(None),
        completion_response(""),
        completion_response("   "),
        NS(choices=[NS(message=None)]),
    ],
)
def test_empty_completion_maps_to_invalid_response(response):
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=response)
    assert _complete(client) == completion.EMPTY_RESPONSE_MESSAGE


# ---------- Deadline ----------

def test_slow_upstream_is_cancelled_at_deadline():
    cancelled = []

    async def slow_create(**kwargs):
        try:
            await asyncio.sleep(5)
        except asyncio.CancelledError:
            cancelled.append(True)
            raise
        return completion_response("too late")

    client = MagicMock()
    client.chat.completions.create = slow_create

    started = time.monotonic()
    result = _complete(client, timeout_s=0.1)
    elapsed = time.monotonic() - started

    assert result == completion.TIMEOUT_MESSAGE
    assert elapsed < 2
    assert cancelled == [True]


def test_no_retry_on_failure():
    client = _client_raising(_status_error(500))
    _complete(client)
    assert client.chat.completions.create.await_count == 1
