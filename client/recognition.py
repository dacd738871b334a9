"""Recognition session loop with bounded, backed-off restarts.

Speech recognizers end on their own after silence or transient faults.
The loop restarts them with exponential backoff and gives up after too
many consecutive restarts that produced no final transcript.
"""

import asyncio
import logging
from typing import AsyncIterable, AsyncIterator, Callable

from client.segmenter import RecognitionBatch, TranscriptSegmenter
from shared.protocol import TranscriptEvent

log = logging.getLogger(__name__)

TRANSIENT_ERRORS = frozenset({"no-speech", "aborted", "network"})
FATAL_ERRORS = frozenset({"not-allowed", "audio-capture", "service-not-allowed"})


class RecognitionError(Exception):
    """A recognizer fault, identified by a speech-API style error code."""

    def __init__(self, code: str):
        super().__init__(code)
        self.code = code

    @property
    def transient(self) -> bool:
        return self.code in TRANSIENT_ERRORS


class RecognitionStopped(Exception):
    """The recognizer has no more input; the loop ends without restarting."""


class RestartPolicy:
    """Exponential backoff with a ceiling on consecutive restarts."""

    def __init__(
        self,
        base_delay_s: float = 0.1,
        max_delay_s: float = 5.0,
        max_consecutive: int = 5,
    ):
        self._base_delay_s = max(0.0, float(base_delay_s))
        self._max_delay_s = max(self._base_delay_s, float(max_delay_s))
        self._max_consecutive = max(0, int(max_consecutive))
        self._consecutive = 0

    @property
    def consecutive(self) -> int:
        return self._consecutive

    def next_delay(self) -> float | None:
        """Delay before the next restart, or None once the ceiling is reached."""
        if self._consecutive >= self._max_consecutive:
            return None
        delay = min(self._base_delay_s * (2 ** self._consecutive), self._max_delay_s)
        self._consecutive += 1
        return delay

    def record_success(self) -> None:
        self._consecutive = 0


class RecognitionLoop:
    """Drives a recognizer factory and yields transcript events across restarts."""

    def __init__(
        self,
        start_recognizer: Callable[[], AsyncIterable[RecognitionBatch]],
        policy: RestartPolicy | None = None,
        sleep=asyncio.sleep,
    ):
        self._start_recognizer = start_recognizer
        self._policy = policy or RestartPolicy()
        self._sleep = sleep
        self._listening = False
        self.stop_reason = ""

    @property
    def listening(self) -> bool:
        return self._listening

    def stop(self) -> None:
        self._listening = False
        self.stop_reason = self.stop_reason or "stopped"

    async def events(self) -> AsyncIterator[TranscriptEvent]:
        self._listening = True
        self.stop_reason = ""
        segmenter = TranscriptSegmenter()

        while self._listening:
            try:
                async for batch in self._start_recognizer():
                    for event in segmenter.feed(batch):
                        if event.is_final:
                            self._policy.record_success()
                        yield event
                    if not self._listening:
                        return
                reason = "ended"
            except RecognitionStopped:
                self._listening = False
                self.stop_reason = "input_closed"
                return
            except RecognitionError as e:
                if not e.transient:
                    log.error("Recognition failed: %s", e.code)
                    self._listening = False
                    self.stop_reason = e.code
                    return
                reason = e.code

            if not self._listening:
                return

            delay = self._policy.next_delay()
            if delay is None:
                log.warning("Recognition gave up after %d consecutive restarts", self._policy.consecutive)
                self._listening = False
                self.stop_reason = "retry_ceiling"
                return

            log.info("Recognition %s, restarting in %.2fs", reason, delay)
            await self._sleep(delay)
