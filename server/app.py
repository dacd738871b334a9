"""FastAPI application with the session channel WebSocket endpoint."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket

from server.assistant.metrics import MetricsLogger
from server.channel import SessionChannel
from server.dispatcher import ResponseDispatcher, utc_timestamp
from server.llm.gateway import CompletionGateway
from server.llm.openrouter_client import OpenRouterClient
from server.relay import ConversationRelay

log = logging.getLogger(__name__)


def create_app(config: dict, client=None, metrics: MetricsLogger | None = None) -> FastAPI:
    """Initialize relay components and return the configured FastAPI app.

    *client* replaces the OpenRouter completion client, e.g. in tests.
    """
    llm_cfg = config.get("llm", {})
    conversation_cfg = config.get("conversation", {})

    if client is None:
        log.info("Initializing completion client (model=%s)...", llm_cfg["model"])
        client = OpenRouterClient(llm_cfg)
    if metrics is None:
        metrics = MetricsLogger(config.get("metrics", {}))

    channel = SessionChannel(conversation_cfg)
    gateway = CompletionGateway(
        client,
        timeout_s=llm_cfg.get("timeout_s", 30),
        fallback_text=conversation_cfg.get("fallback_text"),
    )
    relay = ConversationRelay(
        channel=channel,
        gateway=gateway,
        dispatcher=ResponseDispatcher(channel),
        metrics=metrics,
        config=config,
    )

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        yield
        log.info("Shutting down (%d open sessions)", channel.session_count)
        await relay.shutdown()

    app = FastAPI(title="Voice Relay Server", lifespan=lifespan)
    app.state.channel = channel
    app.state.relay = relay
    app.state.metrics = metrics

    @app.get("/health")
    async def health() -> dict:
        return {
            "status": "ok",
            "timestamp": utc_timestamp(),
            "sessions": channel.session_count,
        }

    @app.websocket("/ws")
    async def websocket_endpoint(ws: WebSocket):
        """One Session per connection; history starts empty on every connect."""
        await ws.accept()
        log.info("Client connected: %s", ws.client)
        try:
            await channel.serve(ws)
        finally:
            log.info("Connection closed: %s", ws.client)

    return app
