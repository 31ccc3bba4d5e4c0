from __future__ import annotations

from collections import Counter, defaultdict
from dataclasses import dataclass
from threading import Lock
from typing import Any


@dataclass
class RunningMetric:
    count: int = 0
    failures: int = 0
    total_duration_ms: float = 0.0

    def record(self, duration_ms: float, failed: bool) -> None:
        self.count += 1
        self.total_duration_ms += duration_ms
        if failed:
            self.failures += 1

    @property
    def avg_duration_ms(self) -> float:
        return round(self.total_duration_ms / self.count, 2) if self.count else 0.0


class InMemoryRequestMetrics:
    """Request timings keyed by route and by dining table."""

    def __init__(self) -> None:
        self._by_route: dict[tuple[str, str], RunningMetric] = defaultdict(RunningMetric)
        self._by_table: dict[str, RunningMetric] = defaultdict(RunningMetric)
        self._lock = Lock()

    def observe(
        self,
        endpoint: str,
        method: str,
        status_code: int,
        duration_ms: float,
        table_id: str | None = None,
    ) -> None:
        failed = status_code >= 400
        with self._lock:
            self._by_route[(endpoint, method)].record(duration_ms, failed)
            if table_id:
                self._by_table[table_id].record(duration_ms, failed)

    def snapshot(self) -> dict[str, dict[str, float | int]]:
        with self._lock:
            return {
                f"{method} {endpoint}": {
                    "total_requests": metric.count,
                    "total_duration_ms": round(metric.total_duration_ms, 2),
                    "avg_duration_ms": metric.avg_duration_ms,
                    "error_count": metric.failures,
                }
                for (endpoint, method), metric in self._by_route.items()
            }

    def snapshot_per_table(self) -> dict[str, dict[str, float | int]]:
        with self._lock:
            return {
                table_id: {
                    "requests": metric.count,
                    "errors": metric.failures,
                    "avg_duration_ms": metric.avg_duration_ms,
                }
                for table_id, metric in self._by_table.items()
            }


class OrderFlowMetrics:
    """Order lifecycle counters fed from the event bus.

    ``record_event`` matches the event bus handler signature so the instance
    can subscribe to every event. Consolidation failures are counted by kind.
    """

    def __init__(self) -> None:
        self._events: Counter[str] = Counter()
        self._tables: dict[str, Counter[str]] = defaultdict(Counter)
        self._failures: Counter[str] = Counter()
        self._lock = Lock()

    def record_event(self, event_name: str, payload: dict[str, Any]) -> None:
        table_id = payload.get("table_id")
        with self._lock:
            self._events[event_name] += 1
            if table_id:
                self._tables[str(table_id)][event_name] += 1

    def record_failure(self, kind: str) -> None:
        with self._lock:
            self._failures[kind] += 1

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "events": dict(self._events),
                "tables": {table_id: dict(counts) for table_id, counts in self._tables.items()},
                "failures": dict(self._failures),
            }

    def reset(self) -> None:
        with self._lock:
            self._events.clear()
            self._tables.clear()
            self._failures.clear()


request_metrics = InMemoryRequestMetrics()
order_metrics = OrderFlowMetrics()
