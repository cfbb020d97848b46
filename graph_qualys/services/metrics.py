"""Thread-safe in-memory request metrics, fed by the request executor."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field

from graph_qualys.provider.models import RateLimitState


@dataclass
class ExecutorMetrics:
    """Counts requests, throttling and admission delays.

    Implements the :class:`graph_qualys.provider.RequestObserver` hooks so it
    can be passed straight to the client. The latency list is bounded at
    ``_MAX_LATENCY_SAMPLES``; when exceeded it is halved by keeping only the
    most-recent entries.
    """

    _MAX_LATENCY_SAMPLES: int = field(default=10_000, repr=False)

    # Counters
    total_requests: int = field(default=0, init=False)
    status_codes: dict[int, int] = field(default_factory=dict, init=False)
    throttle_retries: int = field(default=0, init=False)
    admission_waits: int = field(default=0, init=False)
    admission_wait_seconds: float = field(default=0.0, init=False)
    last_limit_remaining: int | None = field(default=None, init=False)

    # Latency samples (milliseconds)
    _latencies: list[float] = field(default_factory=list, init=False, repr=False)

    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _start_time: float = field(default_factory=time.monotonic, init=False, repr=False)

    # -- Observer hooks ----------------------------------------------------

    def on_admission(self, url: str, wait_seconds: float, state: RateLimitState) -> None:
        with self._lock:
            self.admission_waits += 1
            self.admission_wait_seconds += wait_seconds

    def on_response(
        self, url: str, status: int, elapsed_ms: float, state: RateLimitState,
    ) -> None:
        with self._lock:
            self.total_requests += 1
            self.status_codes[status] = self.status_codes.get(status, 0) + 1
            self.last_limit_remaining = state.limit_remaining
            self._record_latency_unlocked(elapsed_ms)

    def on_retry(self, url: str, retry: int, status: int) -> None:
        with self._lock:
            self.throttle_retries += 1

    # -- Latency -----------------------------------------------------------

    def _record_latency_unlocked(self, ms: float) -> None:
        self._latencies.append(ms)
        if len(self._latencies) > self._MAX_LATENCY_SAMPLES:
            half = self._MAX_LATENCY_SAMPLES // 2
            self._latencies = self._latencies[-half:]

    def get_latency_percentiles(self) -> dict[str, float]:
        with self._lock:
            return self._percentiles_unlocked()

    def _percentiles_unlocked(self) -> dict[str, float]:
        """Compute p50/p90/p99; caller must hold ``_lock``."""
        if not self._latencies:
            return {"p50": 0.0, "p90": 0.0, "p99": 0.0}
        s = sorted(self._latencies)
        n = len(s)
        return {
            "p50": round(s[int(n * 0.50)], 2),
            "p90": round(s[int(min(n * 0.90, n - 1))], 2),
            "p99": round(s[int(min(n * 0.99, n - 1))], 2),
        }

    # -- Snapshot / reset --------------------------------------------------

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "elapsed_seconds": round(time.monotonic() - self._start_time, 2),
                "total_requests": self.total_requests,
                "status_codes": dict(self.status_codes),
                "throttle_retries": self.throttle_retries,
                "admission": {
                    "waits": self.admission_waits,
                    "wait_seconds": round(self.admission_wait_seconds, 2),
                },
                "last_limit_remaining": self.last_limit_remaining,
                "latency_ms": self._percentiles_unlocked(),
            }

    def reset(self) -> None:
        with self._lock:
            self.total_requests = 0
            self.status_codes.clear()
            self.throttle_retries = 0
            self.admission_waits = 0
            self.admission_wait_seconds = 0.0
            self.last_limit_remaining = None
            self._latencies.clear()
            self._start_time = time.monotonic()
