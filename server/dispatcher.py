"""Delivery of assistant replies to the originating session."""

import logging
from datetime import datetime, timezone

from shared import protocol

log = logging.getLogger(__name__)


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision, e.g. 2024-05-01T12:00:00.000Z."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ResponseDispatcher:
    """Emits one ai-response event per completed turn."""

    def __init__(self, channel, clock=utc_timestamp):
        self._channel = channel
        self._clock = clock

    async def dispatch(self, session_id: str, text: str) -> protocol.ResponseEvent:
        # Stamped at emission, not when the model was invoked.
        event = protocol.ResponseEvent(text=text, timestamp=self._clock())
        delivered = await self._channel.send(
            session_id,
            protocol.AI_RESPONSE,
            {"text": event.text, "timestamp": event.timestamp},
        )
        if not delivered:
            log.info("Reply for session %s was not delivered", session_id[:8])
        return event
