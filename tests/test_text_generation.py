"""Text-generation client: SDK error mapping and reply extraction."""

import asyncio
import json
from types import SimpleNamespace

import anthropic
import httpx
import pytest

from newsroom.core.errors import UpstreamFailure
from newsroom.services.text_generation import TextGenerationClient, reply_text

MESSAGES_URL = "https://api.anthropic.com/v1/messages"


class FakeMessages:
    def __init__(self, reply=None, error=None):
        self.reply = reply
        self.error = error
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        return self.reply


def client_with(settings, reply=None, error=None):
    messages = FakeMessages(reply=reply, error=error)
    return TextGenerationClient(settings, client=SimpleNamespace(messages=messages)), messages


def text_reply(*texts):
    return SimpleNamespace(content=[SimpleNamespace(type="text", text=t) for t in texts])


@pytest.mark.unit
def test_generate_sends_prompt_and_parses_reply(settings):
    article = json.dumps({"title": "Nová tramvajová linka", "content": "Text článku.", "confidence": 0.7})
    client, messages = client_with(settings, reply=text_reply(article[:20], article[20:]))

    result = asyncio.run(client.generate("Napiš článek"))

    assert result.title == "Nová tramvajová linka"
    assert result.confidence == 0.7
    assert messages.calls[0]["model"] == settings.generation_model
    assert messages.calls[0]["max_tokens"] == settings.generation_max_tokens
    assert messages.calls[0]["messages"] == [{"role": "user", "content": "Napiš článek"}]


@pytest.mark.unit
def test_non_text_blocks_are_ignored():
    reply = SimpleNamespace(content=[
        SimpleNamespace(type="tool_use", input={}),
        SimpleNamespace(type="text", text="{}"),
    ])

    assert reply_text(reply) == "{}"


@pytest.mark.unit
@pytest.mark.parametrize("reply", [
    SimpleNamespace(content=None),
    SimpleNamespace(content=[SimpleNamespace(type="text", text=None)]),
    ["not", "a", "message"],
])
def test_unexpected_reply_shapes_are_upstream_failures(settings, reply):
    client, _ = client_with(settings, reply=reply)

    with pytest.raises(UpstreamFailure):
        asyncio.run(client.generate("prompt"))


@pytest.mark.unit
def test_status_errors_are_upstream_failures(settings):
    request = httpx.Request("POST", MESSAGES_URL)
    error = anthropic.APIStatusError(
        "overloaded", response=httpx.Response(529, request=request), body=None
    )
    client, _ = client_with(settings, error=error)

    with pytest.raises(UpstreamFailure, match="529"):
        asyncio.run(client.generate("prompt"))


@pytest.mark.unit
def test_connection_errors_are_upstream_failures(settings):
    error = anthropic.APIConnectionError(request=httpx.Request("POST", MESSAGES_URL))
    client, _ = client_with(settings, error=error)

    with pytest.raises(UpstreamFailure, match="APIConnectionError"):
        asyncio.run(client.generate("prompt"))
