"""Checkpoint pipeline: fetch -> decode -> persist -> publish -> metrics.

Checkpoints are fetched sequentially and decoded on a bounded thread pool.
Decoded results wait in a reorder buffer and are committed strictly in
sequence order by the run thread. When the buffer is full, fetching waits
for the head to commit.
"""

import dataclasses
import logging
import queue
import random
import threading
import time
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Optional

from services.indexer.src.indexer.db.models import PRICE_SOURCES
from services.indexer.src.indexer.db.store import ApplyResult, StateStore
from services.indexer.src.indexer.decoders.registry import DecoderRegistry
from services.indexer.src.indexer.domain.models import (
    Checkpoint,
    DecodedEvent,
    EventOrigin,
    Unrecognized,
)
from services.indexer.src.indexer.pipeline.metrics import MetricsRecorder
from services.indexer.src.indexer.pipeline.source import (
    NOT_YET_AVAILABLE,
    CheckpointSource,
    TransientSourceError,
)
from services.indexer.src.indexer.utils.timestamps import lag_seconds

logger = logging.getLogger(__name__)


class CheckpointState(str, Enum):
    FETCHED = "fetched"
    DECODING = "decoding"
    PERSISTING = "persisting"
    COMMITTED = "committed"
    FAILED = "failed"


class RunStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    STOPPED = "stopped"
    HALTED = "halted"  # sequence gap
    STALLED = "stalled"  # fetch retries exhausted or commit failed; resumable


class SequenceGapError(Exception):
    def __init__(self, expected: int, actual: int | None = None, latest: int | None = None):
        self.expected = expected
        self.actual = actual
        self.latest = latest
        if actual is not None:
            message = f"Sequence gap: expected checkpoint {expected}, got {actual}"
        else:
            message = f"Sequence gap: checkpoint {expected} missing while source is at {latest}"
        super().__init__(message)


class FetchRetriesExhausted(Exception):
    def __init__(self, sequence_number: int, attempts: int):
        self.sequence_number = sequence_number
        self.attempts = attempts
        super().__init__(f"Gave up fetching checkpoint {sequence_number} after {attempts} attempts")


class CommitError(Exception):
    def __init__(self, sequence_number: int, cause: Exception):
        self.sequence_number = sequence_number
        super().__init__(f"Failed to persist checkpoint {sequence_number}: {cause}")


@dataclass
class RunResult:
    status: RunStatus
    last_committed: int | None
    next_sequence: int  # where to resume
    committed: int = 0
    error: str | None = None


@dataclass
class _Pending:
    checkpoint: Checkpoint
    started: float
    future: Future


class CheckpointPipeline:
    def __init__(
        self,
        source: CheckpointSource,
        registry: DecoderRegistry,
        store: StateStore,
        metrics: MetricsRecorder | None = None,
        decode_workers: int = 4,
        buffer_size: int = 16,
        max_attempts: int = 5,
        backoff_base: float = 0.5,
        backoff_max: float = 30.0,
        poll_interval: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.source = source
        self.registry = registry
        self.store = store
        self.metrics = metrics or MetricsRecorder()
        self.decode_workers = decode_workers
        self.buffer_size = buffer_size
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.poll_interval = poll_interval
        self._sleep = sleep

        self.status = RunStatus.IDLE
        self.last_committed: int | None = None
        self._stop = threading.Event()
        self._subscribers: list[queue.Queue] = []
        self._states: dict[int, CheckpointState] = {}
        self._external: list[DecodedEvent] = []
        self._external_lock = threading.Lock()

    def subscribe(self, subscriber: queue.Queue) -> None:
        """Committed events are put on every subscriber queue, in chain order."""
        self._subscribers.append(subscriber)

    def submit_external(self, events: Iterable[DecodedEvent]) -> None:
        """Queue off-chain events (price attestations) for the next commit."""
        accepted = []
        for e in events:
            source = getattr(e, "source", None)
            if source is not None and source not in PRICE_SOURCES:
                logger.warning(f"Rejecting external event from unknown price source {source!r}")
                continue
            accepted.append(e)
        with self._external_lock:
            self._external.extend(accepted)

    def stop(self) -> None:
        """Stop at the next checkpoint boundary. A stopped pipeline does not run again."""
        self._stop.set()

    def state(self, sequence_number: int) -> CheckpointState | None:
        if sequence_number in self._states:
            return self._states[sequence_number]
        if self.last_committed is not None and sequence_number <= self.last_committed:
            return CheckpointState.COMMITTED
        return None

    def decode_checkpoint(self, checkpoint: Checkpoint) -> list[DecodedEvent]:
        return self.registry.decode_all(checkpoint.raw_events())

    def run(self, start: int, end: int | None = None) -> RunResult:
        """Process checkpoints from `start` through `end` (inclusive), or until stopped."""
        self.status = RunStatus.RUNNING
        self.last_committed = start - 1

        next_fetch = start
        committed = 0
        pending: deque[_Pending] = deque()
        error = None
        logger.info(f"Pipeline run starting at checkpoint {start} (end={end})")

        executor = ThreadPoolExecutor(max_workers=self.decode_workers, thread_name_prefix="decode")
        try:
            while not self._stop.is_set():
                # Fill the reorder buffer; a full buffer blocks fetching
                while (
                    len(pending) < self.buffer_size
                    and (end is None or next_fetch <= end)
                    and not self._stop.is_set()
                ):
                    checkpoint = self._fetch_with_retry(next_fetch)
                    if checkpoint is None:
                        break
                    self.metrics.record_fetched(next_fetch)
                    self._states[next_fetch] = CheckpointState.DECODING
                    pending.append(
                        _Pending(
                            checkpoint=checkpoint,
                            started=time.monotonic(),
                            future=executor.submit(self.decode_checkpoint, checkpoint),
                        )
                    )
                    next_fetch += 1
                    committed += self._commit_ready(pending, block=False)

                if pending:
                    committed += self._commit_ready(pending, block=True)
                    continue

                if end is not None and next_fetch > end:
                    self.status = RunStatus.COMPLETED
                    break
                # Caught up with the source
                if self._stop.wait(self.poll_interval):
                    break
            else:
                self.status = RunStatus.STOPPED

            if self.status == RunStatus.RUNNING:
                self.status = RunStatus.STOPPED
        except SequenceGapError as e:
            logger.error(f"Pipeline halted: {e}")
            self.status = RunStatus.HALTED
            error = str(e)
        except (FetchRetriesExhausted, CommitError) as e:
            logger.error(f"Pipeline stalled: {e}")
            self.status = RunStatus.STALLED
            error = str(e)
        except Exception as e:
            logger.exception(f"Pipeline stalled at checkpoint {self.last_committed + 1}")
            self._states[self.last_committed + 1] = CheckpointState.FAILED
            self.status = RunStatus.STALLED
            error = f"{type(e).__name__}: {e}"
        finally:
            for item in pending:
                item.future.cancel()
                self._states.pop(item.checkpoint.sequence_number, None)
            executor.shutdown(wait=True, cancel_futures=True)

        resume = (self.last_committed + 1) if self.last_committed is not None else start
        logger.info(
            f"Pipeline run {self.status.value}: committed {committed}, resume at {resume}"
        )
        return RunResult(
            status=self.status,
            last_committed=self.last_committed if self.last_committed >= start else None,
            next_sequence=resume,
            committed=committed,
            error=error,
        )

    def process_checkpoint(self, checkpoint: Checkpoint) -> ApplyResult:
        """Decode and commit one checkpoint synchronously.

        Re-processing an already committed checkpoint is allowed and leaves
        state unchanged; skipping ahead is not.

        Raises:
            SequenceGapError: If the checkpoint is beyond last committed + 1.
            CommitError: If the store rejected the transaction.
        """
        started = time.monotonic()
        try:
            return self._commit(checkpoint, self.decode_checkpoint(checkpoint), started)
        except SequenceGapError:
            self.status = RunStatus.HALTED
            raise

    def replay_transaction(self, checkpoint: Checkpoint, tx_digest: str) -> ApplyResult:
        """Re-apply the events of a single transaction of a checkpoint."""
        raws = [r for r in checkpoint.raw_events() if r.tx_digest == tx_digest]
        if not raws:
            raise ValueError(f"Transaction {tx_digest} not in checkpoint {checkpoint.sequence_number}")
        decoded = self.registry.decode_all(raws)
        result = self.store.apply_checkpoint(checkpoint.sequence_number, decoded, track_cursor=False)
        self._publish(result.effective)
        return result

    def _backoff(self, attempt: int) -> float:
        delay = min(self.backoff_max, self.backoff_base * (2 ** (attempt - 1)))
        return delay * random.uniform(0.5, 1.0)

    def _fetch_with_retry(self, sequence_number: int) -> Optional[Checkpoint]:
        """Fetch one checkpoint; None when the source has not produced it yet."""
        attempt = 0
        while True:
            try:
                result = self.source.fetch(sequence_number)
                if result is NOT_YET_AVAILABLE:
                    latest = self.source.fetch_latest_sequence()
                    if latest > sequence_number:
                        raise SequenceGapError(sequence_number, latest=latest)
                    return None
                break
            except TransientSourceError as e:
                attempt += 1
                if attempt >= self.max_attempts:
                    raise FetchRetriesExhausted(sequence_number, attempt) from e
                delay = self._backoff(attempt)
                logger.warning(
                    f"Fetching checkpoint {sequence_number} failed (attempt {attempt}): {e}; "
                    f"retrying in {delay:.2f}s"
                )
                self._sleep(delay)

        if result.sequence_number != sequence_number:
            raise SequenceGapError(sequence_number, actual=result.sequence_number)
        self._states[sequence_number] = CheckpointState.FETCHED
        return result

    def _commit_ready(self, pending: deque, block: bool) -> int:
        """Commit decoded checkpoints from the head of the buffer, in order."""
        count = 0
        while pending and (block or pending[0].future.done()):
            item = pending.popleft()
            decoded = item.future.result()
            self._commit(item.checkpoint, decoded, item.started)
            count += 1
            block = False
            if self._stop.is_set():
                break
        return count

    def _peek_external(self, sequence_number: int, first_index: int) -> list[DecodedEvent]:
        """Queued external events stamped for this commit. They stay queued until consumed."""
        with self._external_lock:
            events = list(self._external)
        return [
            dataclasses.replace(
                e,
                origin=EventOrigin(
                    checkpoint=sequence_number,
                    tx_digest=f"external:{getattr(e, 'source', 'unknown')}",
                    event_index=first_index + i,
                ),
            )
            for i, e in enumerate(events)
        ]

    def _consume_external(self, count: int) -> None:
        with self._external_lock:
            del self._external[:count]

    def _commit(self, checkpoint: Checkpoint, decoded: list[DecodedEvent], started: float) -> ApplyResult:
        sequence = checkpoint.sequence_number
        if self.last_committed is not None and sequence > self.last_committed + 1:
            raise SequenceGapError(self.last_committed + 1, actual=sequence)

        unrecognized = [e for e in decoded if isinstance(e, Unrecognized)]
        for e in unrecognized:
            logger.debug(f"Unrecognized event {e.type_tag} in tx {e.origin.tx_digest}: {e.reason}")

        external = self._peek_external(sequence, len(decoded))
        self._states[sequence] = CheckpointState.PERSISTING
        try:
            result = self.store.apply_checkpoint(sequence, decoded + external)
        except Exception as e:
            self._states[sequence] = CheckpointState.FAILED
            logger.exception(f"Failed to persist checkpoint {sequence}")
            raise CommitError(sequence, e) from e

        if self.last_committed is None or sequence > self.last_committed:
            self.last_committed = sequence
        self._states.pop(sequence, None)
        if result.replayed:
            # Already committed and published before a restart
            logger.debug(f"Checkpoint {sequence} was committed earlier, not publishing")
        else:
            self._consume_external(len(external))
            self._publish(result.effective)

        self.metrics.record_processed(
            sequence,
            processing_seconds=time.monotonic() - started,
            lag_seconds=lag_seconds(checkpoint.timestamp_ms, checkpoint.received_at),
            decode_failures=result.unrecognized,
            invariant_violations=result.invariant_violations,
        )
        if unrecognized:
            logger.warning(f"Checkpoint {sequence}: {len(unrecognized)} unrecognized events")
        logger.debug(f"Committed checkpoint {sequence}: {len(result.effective)} effective events")
        return result

    def _publish(self, events: list[DecodedEvent]) -> None:
        for subscriber in self._subscribers:
            for event in events:
                subscriber.put(event)
