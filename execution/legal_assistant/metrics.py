"""
Metrics Collection for the Legal Assistant

Every answered question is recorded with its status (complete, partial,
error), the pipeline path that produced it (general reply, retrieval, no
information), latency, source count and confidence. Ingestion runs are
totalled separately. One process-wide collector backs GET /api/v1/metrics.
"""

import math
import time
import logging
import threading
from collections import Counter, deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

logger = logging.getLogger(__name__)

HISTORY_SIZE = 1000


@dataclass
class AnswerRecord:
    """Outcome of one answer() call."""
    question: str
    started_at: float
    latency_ms: float = 0.0
    status: str = "complete"
    path: str = "unknown"
    sources_count: int = 0
    confidence: float = 0.0
    error: Optional[str] = None


@dataclass
class IngestionTotals:
    runs: int = 0
    failed: int = 0
    pages: int = 0
    chunks: int = 0
    time_ms: float = 0.0

    def add(self, result) -> None:
        self.runs += 1
        if not result.success:
            self.failed += 1
        self.pages += result.total_pages
        self.chunks += result.total_chunks
        self.time_ms += result.processing_time_ms

    def to_dict(self) -> dict:
        return {
            "runs": self.runs,
            "failed": self.failed,
            "pages": self.pages,
            "chunks": self.chunks,
            "avg_time_ms": round(self.time_ms / self.runs, 2) if self.runs else 0.0,
        }


@dataclass
class SystemMetrics:
    """Aggregates over every recorded answer and ingestion run."""
    queries_by_status: Counter = field(default_factory=Counter)
    queries_by_path: Counter = field(default_factory=Counter)
    errors_by_type: Counter = field(default_factory=Counter)
    latencies: deque = field(default_factory=lambda: deque(maxlen=HISTORY_SIZE))
    latency_sum_ms: float = 0.0
    ingestion: IngestionTotals = field(default_factory=IngestionTotals)

    def record(self, answer: AnswerRecord) -> None:
        self.queries_by_status[answer.status] += 1
        self.queries_by_path[answer.path] += 1
        self.latencies.append(answer.latency_ms)
        self.latency_sum_ms += answer.latency_ms

    @property
    def total_queries(self) -> int:
        return sum(self.queries_by_status.values())

    @property
    def successful_queries(self) -> int:
        return self.queries_by_status["complete"]

    @property
    def partial_queries(self) -> int:
        return self.queries_by_status["partial"]

    @property
    def failed_queries(self) -> int:
        return self.queries_by_status["error"]

    @property
    def ingestion_runs(self) -> int:
        return self.ingestion.runs

    @property
    def failed_ingestions(self) -> int:
        return self.ingestion.failed

    @property
    def error_rate(self) -> float:
        total = self.total_queries
        return self.failed_queries / total if total else 0.0

    @property
    def avg_latency_ms(self) -> float:
        total = self.total_queries
        return self.latency_sum_ms / total if total else 0.0

    def latency_percentile(self, pct: float) -> float:
        """Nearest-rank percentile over the recent latency window."""
        if not self.latencies:
            return 0.0
        ordered = sorted(self.latencies)
        rank = max(1, math.ceil(pct / 100 * len(ordered)))
        return ordered[rank - 1]

    @property
    def p95_latency_ms(self) -> float:
        return self.latency_percentile(95)

    def to_dict(self) -> dict:
        window = list(self.latencies)
        return {
            "queries": {
                "total": self.total_queries,
                "successful": self.successful_queries,
                "partial": self.partial_queries,
                "failed": self.failed_queries,
                "error_rate": f"{self.error_rate:.2%}",
                "by_path": dict(self.queries_by_path),
            },
            "latency_ms": {
                "avg": round(self.avg_latency_ms, 2),
                "min": round(min(window), 2) if window else 0,
                "max": round(max(window), 2) if window else 0,
                "p95": round(self.p95_latency_ms, 2),
            },
            "ingestion": self.ingestion.to_dict(),
            "errors": dict(self.errors_by_type),
        }


def response_path(response) -> str:
    """Which branch of the pipeline produced a response."""
    if response.status == "error":
        return "error"
    if response.in_domain is False:
        return "general"
    if not response.sources and response.metrics.confidence == 0:
        return "no_information"
    return "retrieval"


class AnswerTracker:
    """Times one answer and records it on exit, including when it raises."""

    def __init__(self, collector: "MetricsCollector", question: str):
        self.collector = collector
        self.record = AnswerRecord(question=question[:200], started_at=time.time())

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.record.latency_ms = (time.time() - self.record.started_at) * 1000
        if exc_type:
            self.record.status = "error"
            self.record.path = "error"
            self.record.error = str(exc_val)
            logger.warning(f"Answer raised {exc_type.__name__}: {exc_val}")
        self.collector.record_answer(self.record, exc_type.__name__ if exc_type else None)
        return False

    def set_response(self, response) -> None:
        self.record.status = response.status
        self.record.path = response_path(response)
        self.record.sources_count = len(response.sources)
        self.record.confidence = response.metrics.confidence


class MetricsCollector:
    """
    Process-wide metrics store.

    Usage:
        collector = get_metrics_collector()

        with collector.track_query(question) as tracker:
            tracker.set_response(composer.answer(question))

        collector.get_metrics_dict()
    """

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._ready = False
        return cls._instance

    def __init__(self):
        if self._ready:
            return
        self._lock = threading.Lock()
        self.reset()
        self._ready = True

    def reset(self):
        """Drop everything recorded so far (used by tests)."""
        with self._lock:
            self.metrics = SystemMetrics()
            self._history: deque = deque(maxlen=HISTORY_SIZE)
            self._started = datetime.now()

    def track_query(self, question: str) -> AnswerTracker:
        return AnswerTracker(self, question)

    def record_answer(self, record: AnswerRecord, error_type: Optional[str] = None):
        with self._lock:
            self.metrics.record(record)
            if error_type:
                self.metrics.errors_by_type[error_type] += 1
            self._history.append(record)

    def record_ingestion(self, result):
        """Record an IngestResult."""
        with self._lock:
            self.metrics.ingestion.add(result)

    def get_metrics(self) -> SystemMetrics:
        return self.metrics

    def get_metrics_dict(self) -> dict:
        with self._lock:
            return self.metrics.to_dict()

    def get_recent_queries(self, limit: int = 10) -> list[AnswerRecord]:
        with self._lock:
            return list(self._history)[-limit:]

    def get_uptime(self) -> timedelta:
        return datetime.now() - self._started


_collector = None


def get_metrics_collector() -> MetricsCollector:
    global _collector
    if _collector is None:
        _collector = MetricsCollector()
    return _collector
