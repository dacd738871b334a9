"""System instruction and message formatting for the completion model."""

DEFAULT_SYSTEM_PROMPT = (
    "You are DrVibe, a helpful and engaging AI assistant. "
    "Keep your responses conversational, natural, and concise "
    "as this is a voice conversation. "
    "Respond as if you're having a friendly chat."
)


def get_system_prompt(llm_config: dict | None = None) -> str:
    """Return the configured system instruction, or the default persona."""
    configured = (llm_config or {}).get("system_prompt")
    if isinstance(configured, str) and configured.strip():
        return configured.strip()
    return DEFAULT_SYSTEM_PROMPT


def build_messages(system_instruction: str, prompt_text: str) -> list[dict]:
    """Build the messages list for the completion API call.

    The rendered history travels as a single user message.
    """
    return [
        {"role": "system", "content": system_instruction},
        {"role": "user", "content": prompt_text},
    ]
