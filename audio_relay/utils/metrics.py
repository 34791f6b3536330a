# © Copyright 2025 Stuart Parmenter
# SPDX-License-Identifier: MIT

import time
from collections.abc import Callable


class TransferTracker:
    """Tracks byte counts and timing for a single relayed transfer."""

    def __init__(self, clock: Callable[[], float] = time.perf_counter):
        self._clock = clock
        self.started_at = clock()
        self.first_byte_at: float | None = None
        self.finished_at: float | None = None

        # Counters
        self.bytes_sent = 0
        self.chunks_sent = 0

    def record_chunk(self, byte_count: int) -> None:
        """Record a chunk written downstream."""
        if self.first_byte_at is None:
            self.first_byte_at = self._clock()
        self.bytes_sent += byte_count
        self.chunks_sent += 1

    def finish(self) -> None:
        """Mark the transfer as finished (idempotent)."""
        if self.finished_at is None:
            self.finished_at = self._clock()

    @property
    def duration_s(self) -> float:
        end = self.finished_at if self.finished_at is not None else self._clock()
        return max(0.0, end - self.started_at)

    def throughput_bps(self) -> float:
        """Average bytes per second over the whole transfer."""
        duration = self.duration_s
        return self.bytes_sent / duration if duration > 0 else 0.0

    def get_metrics(self) -> dict:
        """Get transfer metrics as a dict (for logging)."""
        ttfb_ms = None
        if self.first_byte_at is not None:
            ttfb_ms = (self.first_byte_at - self.started_at) * 1000.0

        return {
            "bytes_sent": self.bytes_sent,
            "chunks_sent": self.chunks_sent,
            "duration_s": self.duration_s,
            "throughput_bps": self.throughput_bps(),
            "ttfb_ms": ttfb_ms,
        }
