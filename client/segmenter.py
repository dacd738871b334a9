"""Turns recognition result batches into ordered transcript events.

A recognizer reports batches shaped like the browser speech API: a list of
results, each a transcript fragment flagged final or interim, plus the
index of the first result that changed.
"""

from dataclasses import dataclass, field

from shared.protocol import TranscriptEvent


@dataclass(frozen=True)
class RecognitionResult:
    transcript: str
    is_final: bool


@dataclass(frozen=True)
class RecognitionBatch:
    results: list[RecognitionResult] = field(default_factory=list)
    result_index: int = 0


class TranscriptSegmenter:
    """Emits running partials for the open utterance and one final to close it."""

    def __init__(self):
        self._last_partial = ""

    def feed(self, batch: RecognitionBatch) -> list[TranscriptEvent]:
        final_text = ""
        interim_text = ""
        for result in batch.results[batch.result_index:]:
            if result.is_final:
                final_text += result.transcript
            else:
                interim_text += result.transcript

        events: list[TranscriptEvent] = []
        if final_text.strip():
            events.append(TranscriptEvent(text=final_text, is_final=True))
            self._last_partial = ""

        # Interim text after a final belongs to the next utterance.
        if interim_text.strip() and interim_text != self._last_partial:
            events.append(TranscriptEvent(text=interim_text, is_final=False))
            self._last_partial = interim_text
        return events
