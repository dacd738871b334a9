"""Session channel protocol constants and helpers for client-server communication.

Every frame is a JSON text message of the form ``{"type": <event>, ...}``.
Inbound frames are decoded into typed messages before they reach a handler.
"""

import json
from dataclasses import dataclass

# ── Client → Server event types ─────────────────────────────────────

SPEECH_TEXT = "speech-text"
RESET_CONVERSATION = "reset-conversation"

# ── Server → Client event types ─────────────────────────────────────

AI_RESPONSE = "ai-response"
PARTIAL_TRANSCRIPT = "partial-transcript"
CONVERSATION_RESET = "conversation-reset"
ERROR = "error"

# ── Error codes ─────────────────────────────────────────────────────

CODE_INVALID_MESSAGE = "protocol_invalid_message"
CODE_UNKNOWN_EVENT = "protocol_unknown_event"
CODE_INTERNAL_ERROR = "internal_error"
CODE_RELAY_BUSY = "relay_busy"


class ProtocolError(ValueError):
    """Raised when a frame cannot be decoded into a known message."""

    def __init__(self, message: str, code: str = CODE_INVALID_MESSAGE):
        super().__init__(message)
        self.code = code


# ── Typed messages ──────────────────────────────────────────────────

@dataclass(frozen=True)
class TranscriptEvent:
    text: str
    is_final: bool

    type = SPEECH_TEXT


@dataclass(frozen=True)
class ResetRequest:
    type = RESET_CONVERSATION


@dataclass(frozen=True)
class ResponseEvent:
    text: str
    timestamp: str

    type = AI_RESPONSE


# ── Encoding helpers ────────────────────────────────────────────────

def encode_json(msg: dict) -> str:
    """Encode a message as a JSON text frame."""
    return json.dumps(msg, separators=(",", ":"))


def decode_json(text: str) -> dict:
    """Decode a JSON text frame into a dict."""
    msg = json.loads(text)
    if not isinstance(msg, dict):
        raise ValueError("frame is not a JSON object")
    return msg


def decode_client_message(text: str) -> TranscriptEvent | ResetRequest:
    """Decode a client → server frame into a typed message.

    Raises ProtocolError for malformed frames and unknown event types.
    """
    try:
        msg = decode_json(text)
    except ValueError as exc:
        raise ProtocolError(f"Malformed frame: {exc}") from exc

    msg_type = msg.get("type")
    if msg_type == SPEECH_TEXT:
        text_value = msg.get("text", "")
        if not isinstance(text_value, str):
            raise ProtocolError("Transcript text must be a string.")
        is_final = msg.get("isFinal", False)
        if not isinstance(is_final, bool):
            raise ProtocolError("Transcript isFinal must be a boolean.")
        return TranscriptEvent(text=text_value, is_final=is_final)
    if msg_type == RESET_CONVERSATION:
        return ResetRequest()
    raise ProtocolError(f"Unknown event type: {msg_type!r}", code=CODE_UNKNOWN_EVENT)


def decode_server_message(text: str) -> dict:
    """Decode a server → client frame, keeping it as a plain dict."""
    msg = decode_json(text)
    if "type" not in msg:
        raise ProtocolError("Frame has no event type.")
    return msg


# ── Message constructors (client → server) ──────────────────────────

def make_speech_text(text: str, is_final: bool) -> str:
    return encode_json({"type": SPEECH_TEXT, "text": text, "isFinal": is_final})


def make_reset_conversation() -> str:
    return encode_json({"type": RESET_CONVERSATION})


# ── Message constructors (server → client) ──────────────────────────

def make_ai_response(text: str, timestamp: str) -> str:
    return encode_json({"type": AI_RESPONSE, "text": text, "timestamp": timestamp})


def make_partial_transcript(text: str) -> str:
    return encode_json({"type": PARTIAL_TRANSCRIPT, "text": text})


def make_conversation_reset() -> str:
    return encode_json({"type": CONVERSATION_RESET})


def make_error(message: str, code: str = "") -> str:
    msg = {"type": ERROR, "message": message}
    if code:
        msg["code"] = code
    return encode_json(msg)


def encode_server_event(event_type: str, payload: dict | None = None) -> str:
    """Encode a server → client event through its typed constructor.

    Raises ProtocolError for event types the server does not emit and
    KeyError when a required payload field is missing.
    """
    payload = payload or {}
    if event_type == AI_RESPONSE:
        return make_ai_response(payload["text"], payload["timestamp"])
    if event_type == PARTIAL_TRANSCRIPT:
        return make_partial_transcript(payload["text"])
    if event_type == CONVERSATION_RESET:
        return make_conversation_reset()
    if event_type == ERROR:
        return make_error(payload["message"], code=payload.get("code", ""))
    raise ProtocolError(f"Not a server event: {event_type!r}", code=CODE_UNKNOWN_EVENT)
