"""Bounded conversation history and prompt construction."""

import enum
from dataclasses import dataclass

from server.errors import InvalidInputError

DEFAULT_MAX_TURNS = 20


class Role(enum.Enum):
    USER = "user"
    ASSISTANT = "assistant"


class ConversationState(enum.Enum):
    EMPTY = "EMPTY"
    ACCUMULATING = "ACCUMULATING"


_ROLE_LABELS: dict[Role, str] = {
    Role.USER: "Human",
    Role.ASSISTANT: "Assistant",
}


@dataclass(frozen=True)
class Turn:
    role: Role
    content: str


def normalize_user_text(text: str) -> str:
    """Return *text* unchanged, or raise InvalidInputError if it is blank."""
    if not isinstance(text, str) or not text.strip():
        raise InvalidInputError("User text is empty")
    return text


class ConversationHistory:
    """Sliding window of the most recent turns for one session.

    Appends past ``max_turns`` evict from the oldest end. User and
    assistant turns are trimmed together as one sequence, not in pairs.
    """

    def __init__(self, max_turns: int = DEFAULT_MAX_TURNS):
        try:
            max_turns = int(max_turns)
        except (TypeError, ValueError):
            max_turns = DEFAULT_MAX_TURNS
        self._max_turns = max(1, max_turns)
        self._turns: list[Turn] = []

    @property
    def max_turns(self) -> int:
        return self._max_turns

    @property
    def turns(self) -> list[Turn]:
        return list(self._turns)

    @property
    def state(self) -> ConversationState:
        return ConversationState.ACCUMULATING if self._turns else ConversationState.EMPTY

    def __len__(self) -> int:
        return len(self._turns)

    def append_user(self, text: str) -> Turn:
        turn = Turn(Role.USER, normalize_user_text(text))
        self._append(turn)
        return turn

    def append_assistant(self, text: str) -> Turn:
        turn = Turn(Role.ASSISTANT, text)
        self._append(turn)
        return turn

    def build_prompt(self) -> str:
        """Render the retained history as labelled paragraphs, oldest first."""
        prompt = ""
        for turn in self._turns:
            prompt += f"{_ROLE_LABELS[turn.role]}: {turn.content}\n\n"
        return prompt.strip()

    def reset(self) -> None:
        self._turns.clear()

    def _append(self, turn: Turn) -> None:
        self._turns.append(turn)
        overflow = len(self._turns) - self._max_turns
        if overflow > 0:
            del self._turns[:overflow]
