"""Tests for the completion gateway fallback policy."""

import threading

import pytest

from server.errors import CompletionFailure
from server.llm.gateway import CompletionGateway, DEFAULT_FALLBACK_TEXT

FALLBACK = "Sorry, please say that again."


class FakeClient:
    def __init__(self, text="ok", error=None):
        self._text = text
        self._error = error
        self.calls = []

    def complete(self, system_instruction, prompt_text):
        self.calls.append((system_instruction, prompt_text))
        if self._error:
            raise self._error
        return {"text": self._text, "model": "fake", "elapsed_s": 0.0}


class BlockingClient:
    def __init__(self):
        self.release = threading.Event()

    def complete(self, system_instruction, prompt_text):
        self.release.wait(timeout=2.0)
        return {"text": "too late"}


@pytest.mark.asyncio
async def test_success_returns_text_unmodified():
    client = FakeClient(text="  Sure, here you go!\n")
    gateway = CompletionGateway(client, fallback_text=FALLBACK)

    text = await gateway.invoke("Human: hi", "be nice")

    assert text == "  Sure, here you go!\n"
    assert client.calls == [("be nice", "Human: hi")]


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [
    CompletionFailure("HTTP 429"),
    ConnectionError("network down"),
    KeyError("choices"),
])
async def test_failure_returns_fallback_after_single_attempt(error):
    client = FakeClient(error=error)
    gateway = CompletionGateway(client, fallback_text=FALLBACK)

    result = await gateway.complete("Human: hi", "sys")

    assert result.text == FALLBACK
    assert result.fallback is True
    assert result.error == type(error).__name__
    assert len(client.calls) == 1


@pytest.mark.asyncio
async def test_non_string_reply_returns_fallback():
    gateway = CompletionGateway(FakeClient(text=None), fallback_text=FALLBACK)
    assert await gateway.invoke("Human: hi", "sys") == FALLBACK


@pytest.mark.asyncio
async def test_timeout_returns_fallback():
    client = BlockingClient()
    gateway = CompletionGateway(client, timeout_s=0.05, fallback_text=FALLBACK)

    try:
        result = await gateway.complete("Human: hi", "sys")
    finally:
        client.release.set()

    assert result.text == FALLBACK
    assert result.error == "timeout"


def test_blank_fallback_uses_default():
    gateway = CompletionGateway(FakeClient(), fallback_text="   ")
    assert gateway.fallback_text == DEFAULT_FALLBACK_TEXT
    assert DEFAULT_FALLBACK_TEXT.strip()
