"""Session channel: one Session per WebSocket connection.

Decodes inbound frames into typed messages, routes them to the handler
registered for their event type and serializes outbound events per
connection so they leave in the order they were sent.
"""

import asyncio
import logging
import traceback
from typing import Awaitable, Callable

from fastapi import WebSocket

from shared import protocol
from server.assistant.session import Session
from server.errors import TransportError, UnexpectedServerError

log = logging.getLogger(__name__)

ReceiveHandler = Callable[[Session, object], Awaitable[str | None]]
DisconnectHandler = Callable[[Session], None]

_GENERIC_ERROR_MESSAGE = "Sorry, something went wrong."


class _Connection:
    def __init__(self, ws: WebSocket, session: Session):
        self.ws = ws
        self.session = session
        self.send_lock = asyncio.Lock()


class SessionChannel:
    """Owns every live Session and the socket it is bound to."""

    def __init__(self, conversation_config: dict | None = None):
        self._conversation_config = conversation_config or {}
        self._connections: dict[str, _Connection] = {}
        self._handlers: dict[str, ReceiveHandler] = {}
        self._disconnect_handlers: list[DisconnectHandler] = []

    @property
    def session_count(self) -> int:
        return len(self._connections)

    def get(self, session_id: str) -> Session | None:
        conn = self._connections.get(session_id)
        return conn.session if conn else None

    def on_receive(self, event_type: str, handler: ReceiveHandler) -> None:
        self._handlers[event_type] = handler

    def on_disconnect(self, handler: DisconnectHandler) -> None:
        self._disconnect_handlers.append(handler)

    async def send(self, session_id: str, event_type: str, payload: dict | None = None) -> bool:
        """Send one event to a session. Returns False if it could not be delivered."""
        conn = self._connections.get(session_id)
        if conn is None:
            log.debug("Dropping %s for released session %s", event_type, session_id[:8])
            return False

        frame = protocol.encode_server_event(event_type, payload)
        try:
            async with conn.send_lock:
                await conn.ws.send_text(frame)
        except Exception as e:
            err = TransportError(f"{type(e).__name__}: {e}")
            log.warning("Send of %s to session %s failed: %s", event_type, session_id[:8], err)
            return False
        return True

    async def report_unexpected(self, session_id: str, exc: BaseException) -> None:
        """Log an unexpected failure and surface a generic error to that client only."""
        err = UnexpectedServerError(exc)
        log.error(
            "Unexpected error in session %s: %s\n%s",
            session_id[:8], err,
            "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
        )
        await self.send(
            session_id,
            protocol.ERROR,
            {"message": _GENERIC_ERROR_MESSAGE, "code": protocol.CODE_INTERNAL_ERROR},
        )

    async def serve(self, ws: WebSocket) -> Session:
        """Run the receive loop for an accepted socket until it disconnects."""
        session = Session(self._conversation_config)
        self._connections[session.session_id] = _Connection(ws, session)
        log.info("Session %s opened", session.session_id[:8])

        try:
            while True:
                msg = await ws.receive()

                if msg["type"] == "websocket.disconnect":
                    break

                if msg["type"] == "websocket.receive":
                    if msg.get("text") is not None:
                        await self.dispatch(session, msg["text"])
                    else:
                        await self.send(
                            session.session_id,
                            protocol.ERROR,
                            {"message": "Binary frames are not supported.",
                             "code": protocol.CODE_INVALID_MESSAGE},
                        )
        except Exception as e:
            log.warning("WebSocket connection error: %s", e)
        finally:
            self._release(session)

        return session

    async def dispatch(self, session: Session, text: str) -> str | None:
        """Decode one frame and run its handler. Returns the handler's outcome."""
        try:
            message = protocol.decode_client_message(text)
        except protocol.ProtocolError as e:
            log.warning("Rejected frame from session %s: %s", session.session_id[:8], e)
            await self.send(
                session.session_id,
                protocol.ERROR,
                {"message": "Invalid message.", "code": e.code},
            )
            return None

        handler = self._handlers.get(message.type)
        if handler is None:
            log.warning("No handler registered for %s", message.type)
            await self.send(
                session.session_id,
                protocol.ERROR,
                {"message": "Unsupported event.", "code": protocol.CODE_UNKNOWN_EVENT},
            )
            return None

        try:
            return await handler(session, message)
        except Exception as e:
            await self.report_unexpected(session.session_id, e)
            return None

    def _release(self, session: Session) -> None:
        self._connections.pop(session.session_id, None)
        session.close()
        for handler in self._disconnect_handlers:
            try:
                handler(session)
            except Exception as e:
                log.error("Disconnect handler failed for session %s: %s", session.session_id[:8], e)
        log.info("Session %s released", session.session_id[:8])
