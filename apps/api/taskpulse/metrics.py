from __future__ import annotations

from collections import deque
from threading import Lock
from time import monotonic
from typing import NamedTuple

WINDOW_SECONDS = 24 * 3600


class _Request(NamedTuple):
  at: float
  status_code: int
  latency_ms: float


class RuntimeMetrics:
  """
  In-process counters reported by GET /health.

  HTTP requests are kept for a rolling 24h window (monotonic clock). Real-time
  counters are plain totals since the process started.
  """

  def __init__(self) -> None:
    self._started = monotonic()
    self._requests: deque[_Request] = deque()
    self._lock = Lock()
    self.events_sent = 0
    self.connections_dropped = 0

  def observe_request(self, status_code: int, latency_ms: float) -> None:
    now = monotonic()
    with self._lock:
      self._requests.append(_Request(now, status_code, latency_ms))
      self._prune_locked(now)

  def observe_event(self, delivered: int) -> None:
    with self._lock:
      self.events_sent += delivered

  def observe_dropped_connection(self) -> None:
    with self._lock:
      self.connections_dropped += 1

  def _prune_locked(self, now: float) -> None:
    while self._requests and now - self._requests[0].at > WINDOW_SECONDS:
      self._requests.popleft()

  def snapshot(self) -> dict:
    now = monotonic()
    with self._lock:
      self._prune_locked(now)
      requests = list(self._requests)
      sent, dropped = self.events_sent, self.connections_dropped

    latencies = sorted(r.latency_ms for r in requests)
    p95 = latencies[max(0, int(len(latencies) * 0.95) - 1)] if latencies else 0.0
    return {
      "uptimeSeconds": int(now - self._started),
      "requestCount24h": len(requests),
      "errorCount24h": sum(1 for r in requests if r.status_code >= 500),
      "p95LatencyMs24h": round(p95, 2),
      "realtimeEventsSent": sent,
      "realtimeConnectionsDropped": dropped,
    }


runtime_metrics = RuntimeMetrics()
