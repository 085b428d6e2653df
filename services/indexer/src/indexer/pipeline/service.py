"""Wires the checkpoint pipeline to the risk and arbitrage engines.

Each engine consumes committed events from its own queue on a dedicated
worker thread, so events reach an engine in chain order and one slow engine
does not hold up the other.
"""

import logging
import queue
import threading
from decimal import Decimal
from typing import Callable

from sqlalchemy.engine import Engine

from services.indexer.src.indexer.config import Settings, settings as default_settings
from services.indexer.src.indexer.db.store import StateStore
from services.indexer.src.indexer.decoders import build_default_registry
from services.indexer.src.indexer.decoders.registry import DecoderRegistry
from services.indexer.src.indexer.domain.arbitrage import ArbitrageEngine
from services.indexer.src.indexer.domain.models import (
    POOL_EVENTS,
    DecodedEvent,
    MetricsSnapshot,
)
from services.indexer.src.indexer.domain.risk_engine import RiskEngine
from services.indexer.src.indexer.pipeline.metrics import MetricsRecorder
from services.indexer.src.indexer.pipeline.prices import HermesPriceFeed, PriceFeedSource
from services.indexer.src.indexer.pipeline.runner import CheckpointPipeline, RunResult
from services.indexer.src.indexer.pipeline.source import CheckpointSource, HttpCheckpointSource

logger = logging.getLogger(__name__)

_STOP = object()


class EngineWorker(threading.Thread):
    """Feeds events from a queue to one engine handler, in order."""

    def __init__(self, name: str, handler: Callable[[DecodedEvent], object]):
        super().__init__(name=name, daemon=True)
        self.handler = handler
        self.queue: queue.Queue = queue.Queue()

    def run(self) -> None:
        while True:
            event = self.queue.get()
            try:
                if event is _STOP:
                    return
                self.handler(event)
            except Exception as e:
                logger.exception(f"{self.name} failed handling {type(event).__name__}: {e}")
            finally:
                self.queue.task_done()

    def shutdown(self, timeout: float | None = None) -> None:
        self.queue.put(_STOP)
        self.join(timeout)


class IndexerService:
    def __init__(
        self,
        store: StateStore,
        source: CheckpointSource,
        registry: DecoderRegistry | None = None,
        config: Settings | None = None,
        price_feed: PriceFeedSource | None = None,
    ):
        self.config = config or default_settings
        self.store = store
        self.price_feed = price_feed
        self.metrics = MetricsRecorder()
        self.pipeline = CheckpointPipeline(
            source=source,
            registry=registry or build_default_registry(),
            store=store,
            metrics=self.metrics,
            decode_workers=self.config.decode_workers,
            buffer_size=self.config.reorder_buffer_size,
            max_attempts=self.config.fetch_max_attempts,
            backoff_base=self.config.fetch_backoff_base_seconds,
            backoff_max=self.config.fetch_backoff_max_seconds,
            poll_interval=self.config.poll_interval_seconds,
        )
        self.risk_engine = RiskEngine(store, self.config.price_source_priority)
        self.arbitrage = ArbitrageEngine(
            max_hops=self.config.arbitrage_max_hops,
            min_profit=Decimal(self.config.arbitrage_min_profit),
        )
        self._workers = [
            EngineWorker("risk-engine", self.risk_engine.handle),
            EngineWorker("arbitrage-engine", self._handle_pool_event),
        ]
        for worker in self._workers:
            self.pipeline.subscribe(worker.queue)

        self._thread: threading.Thread | None = None
        self.result: RunResult | None = None

    def _handle_pool_event(self, event: DecodedEvent) -> None:
        if isinstance(event, POOL_EVENTS):
            self.arbitrage.handle(event)

    def bootstrap(self) -> MetricsSnapshot | None:
        """Load engine state from the store and continue metrics from the last snapshot."""
        self.risk_engine.bootstrap()
        self.arbitrage.bootstrap(self.store.pools.list_pools(), self.store.pools.list_ticks())
        self.arbitrage.scan()
        latest = self.store.metrics.get_latest()
        if latest is not None:
            self.metrics.restore(latest)
        return latest

    def resume_point(self) -> int:
        """First checkpoint to process: after the last committed one, else the configured start.

        The commit cursor is written with the checkpoint's events, so it is
        never behind the store even when metrics were not flushed.
        """
        last = self.store.cursor.get_last_committed()
        if last is not None:
            return max(last + 1, self.config.start_checkpoint)
        return self.config.start_checkpoint

    def run(self, start: int | None = None, end: int | None = None) -> RunResult:
        """Run the pipeline in the calling thread until it completes, halts or stalls."""
        self.bootstrap()
        for worker in self._workers:
            if not worker.is_alive():
                worker.start()
        start = self.resume_point() if start is None else start
        try:
            self.result = self.pipeline.run(start, end)
        finally:
            self.drain()
            self.flush_metrics()
        return self.result

    def start(self, start: int | None = None, end: int | None = None) -> None:
        """Run the pipeline on a background thread."""
        self._thread = threading.Thread(
            target=self.run, args=(start, end), name="checkpoint-pipeline", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: float | None = None) -> RunResult | None:
        self.pipeline.stop()
        if self._thread is not None:
            self._thread.join(timeout)
        for worker in self._workers:
            if worker.is_alive():
                worker.shutdown(timeout)
        return self.result

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def drain(self) -> None:
        """Block until the engines have handled every published event."""
        for worker in self._workers:
            if worker.is_alive():
                worker.queue.join()

    def poll_prices(self) -> int:
        """Queue the latest off-chain prices for the next commit."""
        if self.price_feed is None:
            return 0
        updates = self.price_feed.poll()
        if updates:
            self.pipeline.submit_external(updates)
        return len(updates)

    def flush_metrics(self) -> MetricsSnapshot | None:
        return self.metrics.flush(self.store.metrics)


def build_service(engine: Engine, config: Settings | None = None) -> IndexerService:
    """Service against the configured checkpoint gateway and Hermes."""
    config = config or default_settings
    store = StateStore(engine)
    return IndexerService(
        store=store,
        source=HttpCheckpointSource(config.checkpoint_source_url),
        config=config,
        price_feed=HermesPriceFeed(config.hermes_url, store.coins.price_feeds),
    )
