"""Integration tests: real FastAPI app over a test WebSocket client."""

from fastapi.testclient import TestClient

from shared import protocol
from server.app import create_app
from server.assistant.metrics import MetricsLogger


class FakeCompletionClient:
    def __init__(self):
        self.prompts: list[str] = []

    def complete(self, system_instruction, prompt_text):
        self.prompts.append(prompt_text)
        return {"text": "The weather is sunny today.", "model": "test-model", "elapsed_s": 0.1}


def _app(client):
    config = {
        "llm": {"model": "test-model", "timeout_s": 5},
        "conversation": {"max_turns": 20, "fallback_text": "Sorry."},
        "metrics": {"enabled": False},
    }
    return create_app(config, client=client, metrics=MetricsLogger({"enabled": False}))


def test_health_reports_ok():
    with TestClient(_app(FakeCompletionClient())) as tc:
        resp = tc.get("/health")

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    assert body["timestamp"].endswith("Z")
    assert body["sessions"] == 0


def test_partial_then_final_round_trip():
    client = FakeCompletionClient()
    with TestClient(_app(client)) as tc:
        with tc.websocket_connect("/ws") as ws:
            ws.send_text(protocol.make_speech_text("what is the", False))
            partial = ws.receive_json()

            ws.send_text(protocol.make_speech_text("what is the weather", True))
            reply = ws.receive_json()

    assert partial == {"type": "partial-transcript", "text": "what is the"}
    assert reply["type"] == "ai-response"
    assert reply["text"] == "The weather is sunny today."
    assert client.prompts == ["Human: what is the weather"]


def test_reset_is_acknowledged():
    with TestClient(_app(FakeCompletionClient())) as tc:
        with tc.websocket_connect("/ws") as ws:
            ws.send_text(protocol.make_reset_conversation())
            assert ws.receive_json() == {"type": "conversation-reset"}


def test_reconnect_starts_with_empty_history():
    client = FakeCompletionClient()
    with TestClient(_app(client)) as tc:
        with tc.websocket_connect("/ws") as ws:
            ws.send_text(protocol.make_speech_text("hello", True))
            ws.receive_json()

        with tc.websocket_connect("/ws") as ws:
            ws.send_text(protocol.make_speech_text("are you there", True))
            ws.receive_json()

    assert client.prompts[-1] == "Human: are you there"


def test_invalid_frame_gets_error_event():
    with TestClient(_app(FakeCompletionClient())) as tc:
        with tc.websocket_connect("/ws") as ws:
            ws.send_text("not json")
            err = ws.receive_json()

    assert err["type"] == "error"
    assert err["code"] == protocol.CODE_INVALID_MESSAGE


def test_string_is_final_is_rejected():
    client = FakeCompletionClient()
    with TestClient(_app(client)) as tc:
        with tc.websocket_connect("/ws") as ws:
            ws.send_text('{"type":"speech-text","text":"hello","isFinal":"false"}')
            err = ws.receive_json()

    assert err["type"] == "error"
    assert err["code"] == protocol.CODE_INVALID_MESSAGE
    assert client.prompts == []


class CountingMetrics(MetricsLogger):
    def __init__(self):
        super().__init__({"enabled": False})
        self.flushes = 0

    def flush(self):
        self.flushes += 1
        super().flush()


def test_app_shutdown_flushes_metrics():
    metrics = CountingMetrics()
    config = {"llm": {"model": "test-model"}, "conversation": {}, "metrics": {"enabled": False}}
    app = create_app(config, client=FakeCompletionClient(), metrics=metrics)

    with TestClient(app) as tc:
        tc.get("/health")
        assert metrics.flushes == 0

    assert metrics.flushes == 1
