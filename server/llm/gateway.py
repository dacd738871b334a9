"""Completion gateway: one attempt per user turn, fallback instead of errors."""

import asyncio
import logging
import time
from dataclasses import dataclass

log = logging.getLogger(__name__)

DEFAULT_FALLBACK_TEXT = (
    "I'm sorry, I'm having trouble processing your request right now. "
    "Could you please try again?"
)


@dataclass(frozen=True)
class CompletionResult:
    text: str
    fallback: bool
    elapsed_s: float
    error: str = ""


class CompletionGateway:
    """Wraps a blocking completion client for use from the event loop.

    The client must expose ``complete(system_instruction, prompt_text)``
    returning a dict with a ``text`` key. The call runs in a worker thread
    under a deadline. Any failure turns into the fallback text.
    """

    def __init__(self, client, timeout_s: float = 30.0, fallback_text: str | None = None):
        self._client = client
        try:
            timeout_s = float(timeout_s)
        except (TypeError, ValueError):
            timeout_s = 30.0
        self._timeout_s = max(0.01, timeout_s)
        self._fallback_text = (fallback_text or "").strip() or DEFAULT_FALLBACK_TEXT

    @property
    def fallback_text(self) -> str:
        return self._fallback_text

    async def invoke(self, prompt: str, system_instruction: str) -> str:
        result = await self.complete(prompt, system_instruction)
        return result.text

    async def complete(self, prompt: str, system_instruction: str) -> CompletionResult:
        t0 = time.monotonic()
        try:
            # The worker thread keeps running past the deadline; its result is discarded.
            reply = await asyncio.wait_for(
                asyncio.to_thread(self._client.complete, system_instruction, prompt),
                timeout=self._timeout_s,
            )
            text = reply["text"]
            if not isinstance(text, str):
                raise TypeError(f"completion text is {type(text).__name__}, not str")
        except asyncio.TimeoutError:
            elapsed = time.monotonic() - t0
            log.warning("Completion timed out after %.1fs, using fallback", elapsed)
            return CompletionResult(self._fallback_text, True, elapsed, "timeout")
        except Exception as e:
            elapsed = time.monotonic() - t0
            log.warning("Completion failed (%s: %s), using fallback", type(e).__name__, e)
            return CompletionResult(self._fallback_text, True, elapsed, type(e).__name__)

        return CompletionResult(text, False, time.monotonic() - t0)
