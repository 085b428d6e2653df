"""End-to-end tests: checkpoints through the pipeline into the risk and arbitrage engines."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import create_engine

from services.indexer.src.indexer.config import Settings
from services.indexer.src.indexer.db.engine import init_db
from services.indexer.src.indexer.db.store import StateStore
from services.indexer.src.indexer.decoders import build_default_registry
from services.indexer.src.indexer.domain.models import BorrowerStatus, Pool, PriceUpdated
from services.indexer.src.indexer.pipeline.prices import EXTERNAL_ORIGIN, MockPriceFeed
from services.indexer.src.indexer.pipeline.runner import CheckpointPipeline, RunStatus
from services.indexer.src.indexer.pipeline.service import IndexerService, build_service
from services.indexer.src.indexer.pipeline.source import InMemoryCheckpointSource
from services.indexer.tests.payloads import (
    SUI,
    TEST_CONFIG,
    USDC,
    WETH,
    addr,
    bluefin_pool_created,
    bluefin_swap,
    bluemove_create_pool,
    make_checkpoint,
    make_tx,
    navi_position,
    navi_reserve_config,
    pyth_price,
)

BORROWER = addr(0xB0B)
SUI_FEED = b"\x01" * 32
USDC_FEED = b"\x02" * 32


def market_checkpoint(sequence: int = 1):
    return make_checkpoint(
        sequence,
        make_tx(
            "markets",
            navi_reserve_config(0, threshold="0.8", ratio="0.35", decimals=9, feed=SUI_FEED),
            navi_reserve_config(10, threshold="0.8", ratio="0.35", decimals=6, feed=USDC_FEED),
        ),
        make_tx("prices", pyth_price(SUI_FEED, 150, -2), pyth_price(USDC_FEED, 100, -2)),
        make_tx(
            "pools",
            bluemove_create_pool(addr(0xA1), SUI, USDC, 1000, 2000),
            bluemove_create_pool(addr(0xA2), USDC, WETH, 1000, 2000),
            bluemove_create_pool(addr(0xA3), WETH, SUI, 1000, 300),
        ),
    )


def position_checkpoint(sequence: int = 2, debt_usdc: int = 130):
    return make_checkpoint(
        sequence,
        make_tx(
            "positions",
            navi_position("DepositEvent", 0, BORROWER, 100 * 10**9),
            navi_position("BorrowEvent", 10, BORROWER, debt_usdc * 10**6),
            sender=BORROWER,
        ),
    )


@pytest.fixture
def store(tmp_path):
    # File database: engine workers write from their own threads
    engine = create_engine(
        f"sqlite:///{tmp_path / 'indexer.db'}", connect_args={"check_same_thread": False}
    )
    init_db(engine)
    return StateStore(engine)


@pytest.fixture
def config():
    return Settings(
        start_checkpoint=1,
        decode_workers=2,
        reorder_buffer_size=4,
        poll_interval_seconds=0.01,
        arbitrage_max_hops=3,
        arbitrage_min_profit="0",
    )


def make_service(store, config, *checkpoints) -> IndexerService:
    return IndexerService(
        store=store,
        source=InMemoryCheckpointSource(checkpoints),
        registry=build_default_registry(TEST_CONFIG),
        config=config,
    )


class TestIndexerService:
    def test_run_feeds_both_engines(self, store, config):
        service = make_service(store, config, market_checkpoint(), position_checkpoint())

        result = service.run(end=2)
        service.stop(timeout=5)

        assert result.status == RunStatus.COMPLETED
        assert result.last_committed == 2

        orders = store.liquidation_orders.list_orders()
        assert len(orders) == 1
        assert orders[0].borrower == BORROWER
        assert orders[0].amount_repay == 45_500_000
        assert store.borrowers.get_borrower("navi", BORROWER).status == BorrowerStatus.LIQUIDATABLE

        opportunities = service.arbitrage.opportunities()
        assert len(opportunities) == 1
        assert set(opportunities[0].pools) == {addr(0xA1), addr(0xA2), addr(0xA3)}
        assert opportunities[0].profit > Decimal("0.18")

    def test_metrics_flushed_and_resume_point(self, store, config):
        service = make_service(store, config, market_checkpoint(), position_checkpoint())
        service.run(end=2)
        service.stop(timeout=5)

        latest = store.metrics.get_latest()
        assert latest.latest_seq_number == 2
        assert latest.total_processed_checkpoints == 2

        restarted = make_service(store, config)
        assert restarted.resume_point() == 3
        assert restarted.bootstrap().latest_seq_number == 2
        assert restarted.metrics.snapshot().total_processed_checkpoints == 2

    def test_restart_rebuilds_engine_state(self, store, config):
        first = make_service(store, config, market_checkpoint())
        first.run(end=1)
        first.stop(timeout=5)

        second = make_service(store, config, position_checkpoint())
        result = second.run(end=2)
        second.stop(timeout=5)

        assert result.next_sequence == 3
        assert len(store.liquidation_orders.list_orders()) == 1
        assert len(second.arbitrage.opportunities()) == 1

    def test_poll_prices_feeds_next_commit(self, store, config):
        feed = MockPriceFeed([[
            PriceUpdated(
                origin=EXTERNAL_ORIGIN,
                source="hermes",
                price=Decimal(2),
                observed_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
                coin_type=SUI,
            )
        ]])
        service = IndexerService(
            store=store,
            source=InMemoryCheckpointSource([market_checkpoint()]),
            registry=build_default_registry(TEST_CONFIG),
            config=config,
            price_feed=feed,
        )

        assert service.poll_prices() == 1
        service.run(end=1)
        service.stop(timeout=5)

        assert store.coins.get_coin(SUI).prices["hermes"] == Decimal(2)
        assert service.risk_engine.price(SUI) == Decimal("1.5")
        assert service.poll_prices() == 0

    def test_background_start_and_stop(self, store, config):
        service = make_service(store, config, market_checkpoint())

        service.start()
        service.stop(timeout=5)

        assert not service.is_running()
        assert service.result.status == RunStatus.STOPPED


def price_checkpoint(sequence: int, sui_cents: int, *extra):
    return make_checkpoint(
        sequence,
        make_tx(f"prices{sequence}", pyth_price(SUI_FEED, sui_cents, -2), *extra),
    )


def crash_scenario():
    """SUI at 0.10, then 1.50, then a borrower opens at HF 1.2."""
    markets = make_checkpoint(
        1,
        make_tx(
            "markets",
            navi_reserve_config(0, threshold="0.8", decimals=9, feed=SUI_FEED),
            navi_reserve_config(10, threshold="0.8", decimals=6, feed=USDC_FEED),
        ),
        make_tx("prices1", pyth_price(SUI_FEED, 10, -2), pyth_price(USDC_FEED, 100, -2)),
    )
    return [markets, price_checkpoint(2, 150), position_checkpoint(3, debt_usdc=100)]


class TestCrashRecovery:
    def test_restart_without_metrics_flush_does_not_replay_stale_prices(self, store, config):
        checkpoints = crash_scenario()
        # Committed, but the process dies before metrics are flushed
        CheckpointPipeline(
            source=InMemoryCheckpointSource(checkpoints),
            registry=build_default_registry(TEST_CONFIG),
            store=store,
        ).run(1, 3)
        assert store.metrics.get_latest() is None

        restarted = make_service(store, config, *checkpoints)
        assert restarted.resume_point() == 4
        result = restarted.run(end=3)
        restarted.stop(timeout=5)

        assert result.status == RunStatus.COMPLETED
        assert store.liquidation_orders.list_orders() == []
        assert store.borrowers.get_borrower("navi", BORROWER).status == BorrowerStatus.ACTIVE

    def test_explicit_replay_through_live_engines_publishes_nothing(self, store, config):
        checkpoints = crash_scenario()
        first = make_service(store, config, *checkpoints)
        first.run(end=3)
        first.stop(timeout=5)
        health = first.risk_engine.health("navi", BORROWER)

        replay = make_service(store, config, *checkpoints)
        result = replay.run(start=1, end=3)
        replay.stop(timeout=5)

        assert result.status == RunStatus.COMPLETED
        assert result.last_committed == 3
        assert store.liquidation_orders.list_orders() == []
        # Bootstrapped from the store; SQLite Numeric round-trips through float
        assert abs(replay.risk_engine.price(SUI) - Decimal("1.5")) < Decimal("1e-9")
        replayed_hf = replay.risk_engine.health("navi", BORROWER).health_factor
        assert abs(replayed_hf - health.health_factor) < Decimal("1e-9")
        assert store.positions.get_positions("navi", BORROWER)[0].amount == 100 * 10**9

    def test_resume_continues_after_cursor(self, store, config):
        checkpoints = crash_scenario()
        CheckpointPipeline(
            source=InMemoryCheckpointSource(checkpoints[:2]),
            registry=build_default_registry(TEST_CONFIG),
            store=store,
        ).run(1, 2)

        service = make_service(store, config, *checkpoints)
        result = service.run(end=3)
        service.stop(timeout=5)

        assert result.committed == 1
        assert store.cursor.get_last_committed() == 3
        assert store.liquidation_orders.list_orders() == []


class TestBluefinPools:
    def test_created_pool_gets_edges_from_swaps(self, store, config):
        pool = addr(0xBF1)
        service = make_service(
            store,
            config,
            make_checkpoint(1, make_tx("create", bluefin_pool_created(pool, SUI, USDC, 2**64))),
            make_checkpoint(2, make_tx("swap", bluefin_swap(pool, 1_000, 1_500, 3 * 2**63))),
        )

        result = service.run(end=2)
        service.stop(timeout=5)

        assert result.status == RunStatus.COMPLETED
        assert len(service.arbitrage.graph) == 1
        graph_pool = service.arbitrage.graph.get_pool(pool)
        assert (graph_pool.coin_a, graph_pool.coin_b) == (SUI, USDC)
        assert graph_pool.sqrt_price == 3 * 2**63

        stored = store.pools.get_pool(pool)
        assert (stored.coin_a, stored.coin_b) == (SUI, USDC)
        assert stored.sqrt_price == 3 * 2**63
        assert store.coins.get_coin(USDC).decimals == 6

    def test_imported_pool_gets_edges_from_swaps(self, store, config):
        pool = addr(0xBF2)
        store.pools.import_pools([
            Pool(exchange="bluefin", address=pool, coin_a=SUI, coin_b=USDC, fee_rate=500)
        ])
        service = make_service(
            store, config, make_checkpoint(1, make_tx("swap", bluefin_swap(pool, 1_000, 1_500, 2**64)))
        )

        service.run(end=1)
        service.stop(timeout=5)

        assert len(service.arbitrage.graph) == 1
        assert service.arbitrage.graph.get_pool(pool).fee_rate == 500

    def test_swap_on_unknown_pool_has_no_edges(self, store, config):
        service = make_service(
            store, config, make_checkpoint(1, make_tx("swap", bluefin_swap(addr(0xBF3), 1, 2, 2**64)))
        )

        service.run(end=1)
        service.stop(timeout=5)

        assert len(service.arbitrage.graph) == 0


class TestBuildService:
    def test_hermes_feeds_include_market_oracles(self, store, config):
        CheckpointPipeline(
            source=InMemoryCheckpointSource([market_checkpoint()]),
            registry=build_default_registry(TEST_CONFIG),
            store=store,
        ).run(1, 1)

        service = build_service(store.engine, config)

        feeds = service.price_feed.current_feeds()
        assert feeds["0x" + SUI_FEED.hex()] == SUI
        assert feeds["0x" + USDC_FEED.hex()] == USDC

    def test_hermes_feeds_follow_new_markets(self, store, config):
        service = build_service(store.engine, config)
        assert service.price_feed.current_feeds() == {}

        service.store.apply_checkpoint(1, build_default_registry(TEST_CONFIG).decode_all(
            market_checkpoint().raw_events()
        ))

        assert service.price_feed.current_feeds()["0x" + SUI_FEED.hex()] == SUI
