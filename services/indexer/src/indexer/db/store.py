"""State store: applies a checkpoint's decoded events in one transaction."""

import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Sequence

from sqlalchemy.engine import Connection, Engine

from services.indexer.src.indexer.db.lending_repository import (
    BorrowerRepository,
    InvariantViolation,
    LiquidationEventRepository,
    LiquidationOrderRepository,
    PositionRepository,
)
from services.indexer.src.indexer.db.models import PRICE_SOURCES
from services.indexer.src.indexer.db.pool_repository import PoolRepository
from services.indexer.src.indexer.db.repository import (
    CoinRepository,
    CursorRepository,
    LendingMarketRepository,
    MetricsRepository,
)
from services.indexer.src.indexer.domain.models import (
    DecodedEvent,
    LendingMarketParamsChanged,
    LiquidationOccurred,
    PoolCreated,
    PoolStateChanged,
    PositionChange,
    PriceUpdated,
    TickUpdated,
    Unrecognized,
)

logger = logging.getLogger(__name__)


@dataclass
class ApplyResult:
    sequence: int
    # Events that changed state, in chain order, with resolved fields filled in
    effective: list[DecodedEvent] = field(default_factory=list)
    unrecognized: int = 0
    invariant_violations: int = 0
    skipped: int = 0
    # The checkpoint was already committed; nothing was applied
    replayed: bool = False


class StateStore:
    def __init__(self, engine: Engine):
        self.engine = engine
        self.pools = PoolRepository(engine)
        self.coins = CoinRepository(engine)
        self.markets = LendingMarketRepository(engine)
        self.borrowers = BorrowerRepository(engine)
        self.positions = PositionRepository(engine)
        self.liquidation_events = LiquidationEventRepository(engine)
        self.liquidation_orders = LiquidationOrderRepository(engine)
        self.metrics = MetricsRepository(engine)
        self.cursor = CursorRepository(engine)

    def apply_checkpoint(
        self, sequence: int, events: Sequence[DecodedEvent], track_cursor: bool = True
    ) -> ApplyResult:
        """Persist all events of one checkpoint atomically.

        The commit cursor advances in the same transaction. A checkpoint at
        or below the cursor was committed before and is not applied again:
        the result is marked `replayed` and has no effective events.

        With `track_cursor` off the cursor is neither checked nor advanced;
        per-position cursors still make re-applied deltas no-ops.
        """
        result = ApplyResult(sequence=sequence)
        with self.engine.begin() as conn:
            if track_cursor:
                last = self.cursor.read(conn)
                if last is not None and sequence <= last:
                    logger.info(f"Checkpoint {sequence} already committed (cursor at {last})")
                    result.replayed = True
                    result.skipped = len(events)
                    return result
                self.cursor.advance(conn, sequence)
            for event in events:
                if isinstance(event, Unrecognized):
                    result.unrecognized += 1
                    continue
                try:
                    applied = self._apply(conn, event)
                except InvariantViolation as e:
                    logger.error(f"Rejected update at checkpoint {sequence}: {e}")
                    result.invariant_violations += 1
                    continue
                if applied is None:
                    result.skipped += 1
                else:
                    result.effective.append(applied)
        return result

    def _apply(self, conn: Connection, event: DecodedEvent) -> DecodedEvent | None:
        if isinstance(event, PoolCreated):
            self.pools.create_pool(conn, event)
            for coin_type, decimals in ((event.coin_a, event.decimals_a), (event.coin_b, event.decimals_b)):
                self.coins.upsert_coin(conn, coin_type, decimals=decimals)
            return event

        if isinstance(event, PoolStateChanged):
            self.pools.apply_state(conn, event)
            for coin_type in (event.coin_a, event.coin_b):
                if coin_type:
                    self.coins.upsert_coin(conn, coin_type)
            return event

        if isinstance(event, TickUpdated):
            self.pools.upsert_tick(conn, event)
            return event

        if isinstance(event, LendingMarketParamsChanged):
            self.markets.upsert_params(conn, event)
            self.coins.upsert_coin(conn, event.coin_type, decimals=event.decimals)
            return event

        if isinstance(event, PositionChange):
            if not self.positions.apply(conn, event):
                logger.debug(
                    f"Skipping already applied {type(event).__name__} "
                    f"at {event.origin.cursor} for {event.borrower}"
                )
                return None
            self.borrowers.register(conn, event.platform, event.borrower, event.obligation_id)
            return event

        if isinstance(event, LiquidationOccurred):
            borrower = event.borrower
            if event.obligation_id:
                borrower = (
                    self.borrowers.find_by_obligation(conn, event.platform, event.obligation_id)
                    or borrower
                )
            self.liquidation_events.insert_event(conn, event, borrower)
            return dataclasses.replace(event, borrower=borrower)

        if isinstance(event, PriceUpdated):
            if event.source not in PRICE_SOURCES:
                logger.warning(f"Unknown price source {event.source!r}, dropping update")
                return None
            coin_type = event.coin_type
            if coin_type is None and event.feed_id:
                coin_type = self.coins.resolve_feed(conn, event.feed_id)
            if coin_type is None:
                logger.debug(f"No coin for price feed {event.feed_id}, dropping update")
                return None
            self.coins.set_price(conn, coin_type, event.source, event.price)
            return dataclasses.replace(event, coin_type=coin_type)

        raise TypeError(f"Unhandled event type: {type(event).__name__}")
