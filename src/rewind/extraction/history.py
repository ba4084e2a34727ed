"""Bounded attempt history used for rolling health metrics."""

from __future__ import annotations

import threading
from collections import deque

from .models import ExtractionAttempt

DEFAULT_CAPACITY = 100
HEALTH_WINDOW = 20


class AttemptHistory:
    """Ring buffer of recent attempts; the oldest entry is evicted first."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("AttemptHistory capacity must be at least 1")
        self.capacity = capacity
        self._lock = threading.Lock()
        self._attempts: deque[ExtractionAttempt] = deque(maxlen=capacity)
        self._request_times_ms: deque[int] = deque(maxlen=capacity)

    def record(self, attempt: ExtractionAttempt) -> None:
        with self._lock:
            self._attempts.append(attempt)

    def record_request(self, processing_time_ms: int) -> None:
        """Record the end-to-end time of one request, fallbacks included."""
        with self._lock:
            self._request_times_ms.append(processing_time_ms)

    def recent(self, limit: int | None = None) -> list[ExtractionAttempt]:
        """Return up to *limit* of the newest attempts, oldest first."""
        with self._lock:
            attempts = list(self._attempts)
        if limit is None:
            return attempts
        return attempts[-limit:] if limit > 0 else []

    def __len__(self) -> int:
        with self._lock:
            return len(self._attempts)

    def health(self, window: int = HEALTH_WINDOW) -> float:
        """Success rate over the last *window* attempts; 1.0 when nothing has run yet."""
        recent = self.recent(window)
        if not recent:
            return 1.0
        return sum(1 for attempt in recent if attempt.success) / len(recent)

    def average_processing_time_ms(self, window: int = HEALTH_WINDOW) -> float:
        """Mean request time over the last *window* requests; 0.0 before any request."""
        with self._lock:
            recent = list(self._request_times_ms)[-window:] if window > 0 else []
        if not recent:
            return 0.0
        return sum(recent) / len(recent)
