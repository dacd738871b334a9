"""OpenRouter chat-completions client (any OpenAI-compatible endpoint works)."""

import os
import time

import requests

from server.errors import CompletionFailure
from server.llm.prompt import build_messages


class OpenRouterClient:
    """Blocking HTTP client returning one complete reply per request."""

    def __init__(self, llm_config: dict):
        self._model = llm_config["model"]
        self._api_base = llm_config["api_base"].rstrip("/")
        self._max_tokens = _coerce(llm_config.get("max_tokens"), int, 500, low=1)
        self._temperature = _coerce(llm_config.get("temperature"), float, 0.7, low=0.0, high=2.0)
        self._top_p = _coerce(llm_config.get("top_p"), float, 0.9, low=0.0, high=1.0)
        self._timeout = _coerce(llm_config.get("timeout_s"), float, 30.0, low=1.0)

        self._api_key = os.environ.get("OPENROUTER_API_KEY", "")
        if not self._api_key:
            print("\033[31mWARNING: OPENROUTER_API_KEY not set\033[0m")

    @property
    def model(self) -> str:
        return self._model

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
            "X-Title": "Voice Relay",
        }

    def complete(self, system_instruction: str, prompt_text: str) -> dict:
        """Send one chat completion request.

        Returns dict with keys: text, model, elapsed_s.
        Raises CompletionFailure on any transport, HTTP or payload problem.
        """
        payload = {
            "model": self._model,
            "messages": build_messages(system_instruction, prompt_text),
            "max_tokens": self._max_tokens,
            "temperature": self._temperature,
            "top_p": self._top_p,
            "stream": False,
        }

        t0 = time.monotonic()
        resp = None
        try:
            resp = requests.post(
                f"{self._api_base}/chat/completions",
                headers=self._headers(),
                json=payload,
                timeout=self._timeout,
            )
            if resp.status_code >= 400:
                raise CompletionFailure(f"HTTP {resp.status_code} from completion endpoint")
            data = resp.json()
        except requests.RequestException as exc:
            raise CompletionFailure(f"Completion request failed: {exc}") from exc
        except ValueError as exc:
            raise CompletionFailure("Completion response is not valid JSON") from exc
        finally:
            if resp is not None:
                resp.close()

        text = _extract_text(data)
        return {
            "text": text,
            "model": data.get("model", self._model),
            "elapsed_s": time.monotonic() - t0,
        }


def _extract_text(data) -> str:
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as exc:
        raise CompletionFailure("Completion response has no message content") from exc
    if not isinstance(content, str) or not content.strip():
        raise CompletionFailure("Completion response content is empty")
    return content


def _coerce(value, cast, default, low=None, high=None):
    """Cast a numeric config value, falling back to *default* and clamping to [low, high]."""
    if value is None or isinstance(value, bool):
        return default
    try:
        value = cast(value)
    except (TypeError, ValueError):
        return default
    if low is not None:
        value = max(low, value)
    if high is not None:
        value = min(high, value)
    return value
