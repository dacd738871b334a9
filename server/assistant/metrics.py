"""JSONL event logger for relay interaction metrics."""

import json
import logging
import threading
import time
from pathlib import Path

log = logging.getLogger(__name__)


class MetricsLogger:
    """Buffered JSONL writer that never raises into the relay."""

    def __init__(self, metrics_config: dict):
        self._enabled = bool(metrics_config.get("enabled", True))
        self._file_path = Path(metrics_config.get("file", "metrics.jsonl"))
        try:
            flush_interval = int(metrics_config.get("flush_interval", 10))
        except (TypeError, ValueError):
            flush_interval = 10
        self._flush_interval = max(1, flush_interval)

        self._buffer: list[str] = []
        self._lock = threading.Lock()
        self._pending_since_flush = 0
        self._last_warn_s = float("-inf")
        self._warn_interval_s = 30.0
        self.dropped_events = 0

        if self._enabled:
            try:
                self._file_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError:
                self._enabled = False
                self._warn("metrics path %s is not writable; disabling metrics", self._file_path)

    @property
    def enabled(self) -> bool:
        return self._enabled

    def log(self, event_type: str, **data) -> None:
        """Record one event, stamped with wall-clock time."""
        if not self._enabled:
            return

        try:
            line = json.dumps({"timestamp": time.time(), "event": event_type, **data})
        except (TypeError, ValueError):
            self.dropped_events += 1
            self._warn("metrics event %r is not serializable; dropping it", event_type)
            return

        with self._lock:
            self._buffer.append(line)
            self._pending_since_flush += 1
            if self._pending_since_flush >= self._flush_interval:
                self._write_buffer()

    def bind(self, session_id: str) -> "SessionMetrics":
        return SessionMetrics(self, session_id)

    def flush(self) -> None:
        with self._lock:
            self._write_buffer()

    def _write_buffer(self) -> None:
        # Caller holds the lock.
        self._pending_since_flush = 0
        if not self._buffer:
            return
        lines, self._buffer = self._buffer, []
        try:
            with open(self._file_path, "a", encoding="utf-8") as f:
                f.write("\n".join(lines) + "\n")
        except (OSError, ValueError) as exc:
            self.dropped_events += len(lines)
            self._warn("metrics flush failed (%s); dropped %d events", exc, len(lines))

    def _warn(self, msg: str, *args) -> None:
        now = time.monotonic()
        if now - self._last_warn_s < self._warn_interval_s:
            return
        self._last_warn_s = now
        log.warning(msg, *args)


class SessionMetrics:
    """MetricsLogger view that tags every event with a session id."""

    def __init__(self, metrics: MetricsLogger, session_id: str):
        self._metrics = metrics
        self._session_id = session_id

    def log(self, event_type: str, **data) -> None:
        self._metrics.log(event_type, session=self._session_id, **data)

    def flush(self) -> None:
        self._metrics.flush()
