from datetime import datetime

import pytest

from shared import protocol
from server.dispatcher import ResponseDispatcher, utc_timestamp


class FakeChannel:
    def __init__(self, delivered=True):
        self.sent = []
        self._delivered = delivered

    async def send(self, session_id, event_type, payload=None):
        self.sent.append((session_id, event_type, payload))
        return self._delivered


@pytest.mark.asyncio
async def test_dispatch_emits_one_ai_response():
    channel = FakeChannel()
    dispatcher = ResponseDispatcher(channel, clock=lambda: "2024-05-01T12:00:00.000Z")

    event = await dispatcher.dispatch("session-1", "Hi there!")

    assert channel.sent == [
        ("session-1", protocol.AI_RESPONSE, {"text": "Hi there!", "timestamp": "2024-05-01T12:00:00.000Z"}),
    ]
    assert event == protocol.ResponseEvent(text="Hi there!", timestamp="2024-05-01T12:00:00.000Z")


@pytest.mark.asyncio
async def test_timestamp_is_taken_at_emission():
    ticks = iter(["2024-05-01T12:00:00.000Z", "2024-05-01T12:00:05.000Z"])
    channel = FakeChannel()
    dispatcher = ResponseDispatcher(channel, clock=lambda: next(ticks))

    await dispatcher.dispatch("s", "one")
    await dispatcher.dispatch("s", "two")

    assert [p["timestamp"] for _, _, p in channel.sent] == [
        "2024-05-01T12:00:00.000Z",
        "2024-05-01T12:00:05.000Z",
    ]


@pytest.mark.asyncio
async def test_undelivered_reply_does_not_raise():
    dispatcher = ResponseDispatcher(FakeChannel(delivered=False))
    event = await dispatcher.dispatch("gone", "hello")
    assert event.text == "hello"


def test_utc_timestamp_is_iso8601_with_milliseconds():
    stamp = utc_timestamp()
    assert stamp.endswith("Z")
    parsed = datetime.fromisoformat(stamp.replace("Z", "+00:00"))
    assert parsed.utcoffset().total_seconds() == 0
    assert len(stamp.split(".")[1]) == 4  # three digits plus "Z"
