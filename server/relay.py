"""Conversation relay: transcripts in, completions out.

Final transcripts are queued per session and processed one at a time, so
at most one completion is in flight per session and replies come back in
the order the user spoke.
"""

import asyncio
import logging

from shared import protocol
from server.assistant.conversation import normalize_user_text
from server.assistant.metrics import MetricsLogger
from server.assistant.session import Session
from server.assistant.telemetry import transcript_metrics_payload, completion_metrics_payload
from server.channel import SessionChannel
from server.dispatcher import ResponseDispatcher
from server.errors import InvalidInputError
from server.llm.gateway import CompletionGateway
from server.llm.prompt import get_system_prompt

log = logging.getLogger(__name__)

# Handler outcomes
PARTIAL = "partial"
QUEUED = "queued"
DROPPED_EMPTY = "dropped_empty"
DROPPED_BUSY = "dropped_busy"
RESET = "reset"


class ConversationRelay:
    """Registers the conversation handlers on a SessionChannel."""

    def __init__(
        self,
        channel: SessionChannel,
        gateway: CompletionGateway,
        dispatcher: ResponseDispatcher,
        metrics: MetricsLogger,
        config: dict,
    ):
        self._channel = channel
        self._gateway = gateway
        self._dispatcher = dispatcher
        self._metrics = metrics
        self._system_prompt = get_system_prompt(config.get("llm"))
        self._workers: set[asyncio.Task] = set()

        metrics_cfg = config.get("metrics", {})
        self._log_transcripts = metrics_cfg.get("log_transcripts", False)
        self._log_llm_text = metrics_cfg.get("log_llm_text", False)

        channel.on_receive(protocol.SPEECH_TEXT, self.on_transcript)
        channel.on_receive(protocol.RESET_CONVERSATION, self.on_reset)
        channel.on_disconnect(self.on_disconnect)

    async def on_transcript(self, session: Session, event: protocol.TranscriptEvent) -> str:
        metrics = self._metrics.bind(session.session_id)

        if not event.is_final:
            await self._channel.send(
                session.session_id, protocol.PARTIAL_TRANSCRIPT, {"text": event.text}
            )
            return PARTIAL

        try:
            text = normalize_user_text(event.text)
        except InvalidInputError:
            log.info("Empty final transcript, dropping")
            metrics.log("transcript_dropped", reason="empty")
            return DROPPED_EMPTY

        if session.queue_full:
            log.warning("Session %s has %d turns queued, rejecting new turn",
                        session.session_id[:8], len(session.pending))
            metrics.log("transcript_dropped", reason="queue_full", queue_depth=len(session.pending))
            await self._channel.send(
                session.session_id,
                protocol.ERROR,
                {"message": "Still working on earlier requests, please wait.",
                 "code": protocol.CODE_RELAY_BUSY},
            )
            return DROPPED_BUSY

        session.pending.append(text)
        metrics.log(
            "transcript_final",
            queue_depth=len(session.pending),
            **transcript_metrics_payload(text, True, include_text=self._log_transcripts),
        )
        if session.busy:
            log.info("Completion in flight, queued turn (%d pending)", len(session.pending))
        else:
            self._start_worker(session)
        return QUEUED

    async def on_reset(self, session: Session, _request: protocol.ResetRequest) -> str:
        dropped = session.reset()
        log.info("Conversation reset (dropped %d queued turns)", dropped)
        self._metrics.bind(session.session_id).log("conversation_reset", dropped_pending=dropped)
        await self._channel.send(session.session_id, protocol.CONVERSATION_RESET)
        return RESET

    def on_disconnect(self, session: Session) -> None:
        if session.in_flight:
            log.info("Session %s closed with a completion in flight; its reply will be discarded",
                     session.session_id[:8])
        self._metrics.bind(session.session_id).log(
            "session_closed", turns=len(session.history), in_flight=session.in_flight,
        )
        self._metrics.flush()

    async def shutdown(self) -> None:
        """Cancel outstanding completion workers and flush metrics."""
        workers = list(self._workers)
        for task in workers:
            task.cancel()
        if workers:
            await asyncio.gather(*workers, return_exceptions=True)
            log.info("Cancelled %d completion worker(s)", len(workers))
        self._metrics.flush()

    def _start_worker(self, session: Session) -> None:
        task = asyncio.create_task(self._drain(session))
        session.worker = task
        self._workers.add(task)
        task.add_done_callback(self._workers.discard)

    async def _drain(self, session: Session) -> None:
        while session.pending and not session.closed:
            text = session.pending.popleft()
            try:
                await self.process_turn(session, text)
            except Exception as e:
                await self._channel.report_unexpected(session.session_id, e)

    async def process_turn(self, session: Session, text: str) -> str:
        """Run one user turn through the gateway and deliver the reply."""
        metrics = self._metrics.bind(session.session_id)
        epoch = session.epoch

        session.in_flight = True
        try:
            session.history.append_user(text)
            prompt = session.history.build_prompt()

            result = await self._gateway.complete(prompt, self._system_prompt)
            log.info("Reply: '%s' (%.2fs, fallback=%s)", result.text[:80], result.elapsed_s, result.fallback)
            metrics.log(
                "completion_complete",
                error=result.error,
                **completion_metrics_payload(
                    result.text,
                    result.elapsed_s,
                    result.fallback,
                    len(prompt),
                    include_text=self._log_llm_text,
                ),
            )

            if session.epoch == epoch:
                session.history.append_assistant(result.text)
            else:
                log.info("Conversation was reset during completion; reply not recorded")

            await self._dispatcher.dispatch(session.session_id, result.text)
            return result.text
        finally:
            session.in_flight = False
