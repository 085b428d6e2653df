"""Run-scoped processing metrics: throughput, processing time and chain lag."""

import logging
import threading

from services.indexer.src.indexer.db.repository import MetricsRepository
from services.indexer.src.indexer.domain.models import MetricsSnapshot

logger = logging.getLogger(__name__)


class _Stat:
    def __init__(self):
        self.min = 0.0
        self.max = 0.0
        self.total = 0.0
        self.count = 0

    def add(self, value: float) -> None:
        self.min = value if self.count == 0 else min(self.min, value)
        self.max = max(self.max, value)
        self.total += value
        self.count += 1

    @property
    def avg(self) -> float:
        return self.total / self.count if self.count else 0.0


class MetricsRecorder:
    """Created per pipeline run; nothing here is process-global."""

    def __init__(self):
        self._lock = threading.Lock()
        self.latest_seq_number = -1
        self.total_checkpoints = 0
        self.total_processed_checkpoints = 0
        self.decode_failures = 0
        self.invariant_violations = 0
        self._processing = _Stat()
        self._lag = _Stat()

    def record_fetched(self, sequence_number: int) -> None:
        with self._lock:
            self.total_checkpoints += 1

    def record_processed(
        self,
        sequence_number: int,
        processing_seconds: float,
        lag_seconds: float,
        decode_failures: int = 0,
        invariant_violations: int = 0,
    ) -> None:
        with self._lock:
            self.latest_seq_number = max(self.latest_seq_number, sequence_number)
            self.total_processed_checkpoints += 1
            self.decode_failures += decode_failures
            self.invariant_violations += invariant_violations
            self._processing.add(processing_seconds)
            self._lag.add(lag_seconds)

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            return MetricsSnapshot(
                latest_seq_number=self.latest_seq_number,
                total_checkpoints=self.total_checkpoints,
                total_processed_checkpoints=self.total_processed_checkpoints,
                min_processing_time=self._processing.min,
                avg_processing_time=self._processing.avg,
                max_processing_time=self._processing.max,
                min_lagging=self._lag.min,
                avg_lagging=self._lag.avg,
                max_lagging=self._lag.max,
                decode_failures=self.decode_failures,
                invariant_violations=self.invariant_violations,
            )

    def restore(self, snapshot: MetricsSnapshot) -> None:
        """Continue counting from the last persisted snapshot."""
        with self._lock:
            self.latest_seq_number = snapshot.latest_seq_number
            self.total_checkpoints = snapshot.total_checkpoints
            self.total_processed_checkpoints = snapshot.total_processed_checkpoints
            self.decode_failures = snapshot.decode_failures
            self.invariant_violations = snapshot.invariant_violations
            count = snapshot.total_processed_checkpoints
            for stat, lo, avg, hi in (
                (self._processing, snapshot.min_processing_time, snapshot.avg_processing_time, snapshot.max_processing_time),
                (self._lag, snapshot.min_lagging, snapshot.avg_lagging, snapshot.max_lagging),
            ):
                stat.min, stat.max, stat.count = lo, hi, count
                stat.total = avg * count
        logger.info(f"Restored metrics at sequence {snapshot.latest_seq_number}")

    def flush(self, repository: MetricsRepository) -> MetricsSnapshot | None:
        """Persist the current snapshot; nothing is written before the first commit."""
        snapshot = self.snapshot()
        if snapshot.total_processed_checkpoints == 0:
            return None
        repository.upsert(snapshot)
        logger.info(
            f"Metrics: seq={snapshot.latest_seq_number} "
            f"processed={snapshot.total_processed_checkpoints}/{snapshot.total_checkpoints} "
            f"avg_processing={snapshot.avg_processing_time:.3f}s avg_lag={snapshot.avg_lagging:.3f}s "
            f"decode_failures={snapshot.decode_failures}"
        )
        return snapshot
