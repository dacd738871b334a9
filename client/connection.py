"""WebSocket client with auto-reconnect and exponential backoff.

Finals and resets sent while offline are buffered and flushed in order on
reconnect. Partial transcripts are live captions only and are not
buffered. Every reconnect opens a fresh server session with empty history.
"""

import asyncio
from collections import deque
import logging
from typing import Callable

import websockets
import websockets.exceptions

from shared import protocol

log = logging.getLogger(__name__)


class ServerConnection:
    """Asyncio client for the relay's session channel."""

    def __init__(
        self,
        server_url: str,
        on_event: Callable[[dict], None],
        reconnect_min_s: float = 1.0,
        reconnect_max_s: float = 30.0,
        offline_send_buffer_size: int = 50,
    ):
        self._server_url = server_url
        self._on_event = on_event
        self._reconnect_min_s = reconnect_min_s
        self._reconnect_max_s = reconnect_max_s

        try:
            buffer_size = int(offline_send_buffer_size)
        except (TypeError, ValueError):
            buffer_size = 50
        self._offline_send_buffer: deque[str] = deque(maxlen=max(1, buffer_size))

        self._ws = None
        self._running = False
        self._connected = asyncio.Event()
        self.connect_count = 0

    @property
    def is_connected(self) -> bool:
        return self._connected.is_set()

    async def wait_connected(self, timeout: float = 30.0) -> bool:
        try:
            await asyncio.wait_for(self._connected.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    # ── Outgoing messages ───────────────────────────────────────

    async def send_transcript(self, event: protocol.TranscriptEvent) -> None:
        frame = protocol.make_speech_text(event.text, event.is_final)
        await self._send(frame, buffer_offline=event.is_final)

    async def send_reset(self) -> None:
        await self._send(protocol.make_reset_conversation())

    async def _send(self, frame: str, buffer_offline: bool = True) -> None:
        ws = self._ws
        if ws is not None and self._connected.is_set():
            try:
                await ws.send(frame)
                return
            except websockets.exceptions.ConnectionClosed:
                self._connected.clear()

        if buffer_offline:
            self._buffer_offline_send(frame)

    def _buffer_offline_send(self, frame: str) -> None:
        if len(self._offline_send_buffer) == self._offline_send_buffer.maxlen:
            log.warning("Offline send buffer full, dropping oldest outbound message")
        self._offline_send_buffer.append(frame)

    async def _drain_offline_send_buffer(self, ws) -> int:
        flushed = 0
        while self._offline_send_buffer:
            await ws.send(self._offline_send_buffer[0])
            self._offline_send_buffer.popleft()
            flushed += 1
        if flushed:
            log.info("Flushed %d buffered outbound messages after reconnect", flushed)
        return flushed

    # ── Connection loop ─────────────────────────────────────────

    def stop(self) -> None:
        self._running = False
        self._connected.clear()
        ws = self._ws
        if ws is not None:
            asyncio.ensure_future(ws.close())

    async def run(self) -> None:
        """Connect with exponential backoff, reconnect on failure."""
        self._running = True
        backoff = self._reconnect_min_s

        while self._running:
            try:
                log.info("Connecting to %s ...", self._server_url)
                async with websockets.connect(self._server_url) as ws:
                    self._ws = ws
                    self.connect_count += 1
                    backoff = self._reconnect_min_s
                    await self._drain_offline_send_buffer(ws)
                    self._connected.set()
                    log.info("Connected to server")
                    await self._recv_loop(ws)

            except (
                websockets.exceptions.ConnectionClosed,
                websockets.exceptions.InvalidURI,
                OSError,
            ) as e:
                if not self._running:
                    break
                log.warning("Connection lost (%s), reconnecting in %.1fs...", e, backoff)
            finally:
                self._connected.clear()
                self._ws = None

            if not self._running:
                break
            await asyncio.sleep(backoff)
            backoff = min(backoff * 2, self._reconnect_max_s)

    async def _recv_loop(self, ws) -> None:
        async for message in ws:
            if not isinstance(message, str):
                log.warning("Ignoring unexpected binary frame")
                continue
            try:
                parsed = protocol.decode_server_message(message)
            except ValueError as e:
                log.warning("Ignoring malformed server frame: %s", e)
                continue
            self._on_event(parsed)
