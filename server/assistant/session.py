"""Per-connection session record."""

import asyncio
import uuid
from collections import deque

from server.assistant.conversation import ConversationHistory

DEFAULT_MAX_PENDING = 8


class Session:
    """Conversation state owned by exactly one channel connection.

    Holds the history, the in-flight flag for the completion gateway and
    the queue of finalized transcripts still waiting for their turn.
    """

    def __init__(self, conversation_config: dict, session_id: str | None = None):
        self.session_id = session_id or uuid.uuid4().hex
        self.history = ConversationHistory(
            conversation_config.get("max_turns", 20)
        )
        self.in_flight = False
        self.closed = False
        # Bumped on every reset so replies started earlier are not recorded.
        self.epoch = 0
        self.pending: deque[str] = deque()
        self.max_pending = _max_pending(conversation_config.get("max_pending", DEFAULT_MAX_PENDING))
        self.worker: asyncio.Task | None = None

    @property
    def busy(self) -> bool:
        return self.worker is not None and not self.worker.done()

    @property
    def queue_full(self) -> bool:
        return len(self.pending) >= self.max_pending


    def reset(self) -> int:
        """Clear history and queued turns. Returns the number of dropped turns."""
        dropped = len(self.pending)
        self.pending.clear()
        self.history.reset()
        self.epoch += 1
        return dropped

    def close(self) -> None:
        self.closed = True
        self.pending.clear()

    def __repr__(self) -> str:
        return (
            f"Session(id={self.session_id[:8]}, turns={len(self.history)}, "
            f"in_flight={self.in_flight}, pending={len(self.pending)})"
        )


def _max_pending(value) -> int:
    try:
        value = int(value)
    except (TypeError, ValueError):
        return DEFAULT_MAX_PENDING
    return max(1, value)
