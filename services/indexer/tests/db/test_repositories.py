"""Tests for the borrower, order, coin and metrics repositories."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import create_engine

from services.indexer.src.indexer.db.engine import init_db
from services.indexer.src.indexer.db.lending_repository import (
    BorrowerRepository,
    LiquidationOrderRepository,
)
from services.indexer.src.indexer.db.repository import (
    CoinRepository,
    LendingMarketRepository,
    MetricsRepository,
)
from services.indexer.src.indexer.domain.models import (
    Borrower,
    BorrowerStatus,
    EventOrigin,
    LendingMarketParamsChanged,
    LiquidationOrder,
    MetricsSnapshot,
)

SUI = "0x2::sui::SUI"
USDC = "0xa1::usdc::USDC"


@pytest.fixture
def sqlite_engine():
    engine = create_engine("sqlite:///:memory:")
    init_db(engine)
    return engine


def make_order(borrower: str = "0xb0b", hf: str = "0.9") -> LiquidationOrder:
    return LiquidationOrder(
        platform="navi",
        borrower=borrower,
        health_factor=Decimal(hf),
        debt_coin=USDC,
        collateral_coin=SUI,
        amount_repay=45_500_000,
    )


def make_snapshot(seq: int, processed: int = 10) -> MetricsSnapshot:
    return MetricsSnapshot(
        latest_seq_number=seq,
        total_checkpoints=processed + 1,
        total_processed_checkpoints=processed,
        min_processing_time=0.01,
        avg_processing_time=0.02,
        max_processing_time=0.05,
        min_lagging=0.5,
        avg_lagging=1.0,
        max_lagging=2.5,
        decode_failures=3,
    )


class TestLiquidationOrderRepository:
    def test_create_assigns_id(self, sqlite_engine):
        repo = LiquidationOrderRepository(sqlite_engine)
        order = make_order()

        order_id = repo.create_if_none_open(order)

        assert order_id is not None
        assert order.id == order_id
        stored = repo.get_order(order_id)
        assert stored.amount_repay == 45_500_000
        assert stored.source == "risk-engine"
        assert stored.finalized_at is None
        assert stored.created_at.tzinfo is not None

    def test_second_open_order_is_refused(self, sqlite_engine):
        repo = LiquidationOrderRepository(sqlite_engine)
        assert repo.create_if_none_open(make_order()) is not None

        assert repo.create_if_none_open(make_order(hf="0.8")) is None
        assert len(repo.list_orders()) == 1

    def test_other_borrower_is_independent(self, sqlite_engine):
        repo = LiquidationOrderRepository(sqlite_engine)
        repo.create_if_none_open(make_order("0xb0b"))

        assert repo.create_if_none_open(make_order("0xa11ce")) is not None

    def test_execution_finalizes_and_allows_new_order(self, sqlite_engine):
        repo = LiquidationOrderRepository(sqlite_engine)
        order_id = repo.create_if_none_open(make_order())
        finalized = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

        assert repo.record_execution(order_id, "0xdigest", 1234, "0xbot", finalized)

        stored = repo.get_order(order_id)
        assert stored.tx_digest == "0xdigest"
        assert stored.checkpoint == 1234
        assert stored.bot_address == "0xbot"
        assert stored.finalized_at == finalized
        assert repo.list_orders(open_only=True) == []
        assert repo.create_if_none_open(make_order()) is not None

    def test_execution_for_missing_order(self, sqlite_engine):
        repo = LiquidationOrderRepository(sqlite_engine)
        assert repo.record_execution(99, "0xdigest", None, None, None) is False

    def test_list_filters(self, sqlite_engine):
        repo = LiquidationOrderRepository(sqlite_engine)
        repo.create_if_none_open(make_order("0xb0b"))
        repo.create_if_none_open(make_order("0xa11ce"))

        assert [o.borrower for o in repo.list_orders(borrower="0xa11ce")] == ["0xa11ce"]
        assert repo.list_orders(platform="scallop") == []


class TestBorrowerRepository:
    def test_register_keeps_status(self, sqlite_engine):
        repo = BorrowerRepository(sqlite_engine)
        with sqlite_engine.begin() as conn:
            repo.register(conn, "navi", "0xb0b")
        repo.set_status("navi", "0xb0b", BorrowerStatus.LIQUIDATABLE, Decimal("0.5"))
        with sqlite_engine.begin() as conn:
            repo.register(conn, "navi", "0xb0b")

        borrower = repo.get_borrower("navi", "0xb0b")
        assert borrower.status == BorrowerStatus.LIQUIDATABLE
        assert borrower.health_factor == Decimal("0.5")

    def test_find_by_obligation(self, sqlite_engine):
        repo = BorrowerRepository(sqlite_engine)
        with sqlite_engine.begin() as conn:
            repo.register(conn, "suilend", "0xowner", obligation_id="0xobl")
            # A later event without the obligation keeps it
            repo.register(conn, "suilend", "0xowner")
            assert repo.find_by_obligation(conn, "suilend", "0xobl") == "0xowner"
            assert repo.find_by_obligation(conn, "scallop", "0xobl") is None

    def test_list_by_status(self, sqlite_engine):
        repo = BorrowerRepository(sqlite_engine)
        with sqlite_engine.begin() as conn:
            repo.register(conn, "navi", "0x1")
            repo.register(conn, "navi", "0x2")
        repo.set_status("navi", "0x2", BorrowerStatus.CLOSED, None)

        closed = repo.list_borrowers(status=BorrowerStatus.CLOSED)
        assert [b.address for b in closed] == ["0x2"]
        assert len(repo.list_borrowers(platform="navi")) == 2
        assert len(repo.list_borrowers(limit=1)) == 1

    def test_import_borrowers(self, sqlite_engine):
        repo = BorrowerRepository(sqlite_engine)
        count = repo.import_borrowers([
            Borrower(platform="navi", address="0x1", status=BorrowerStatus.LIQUIDATABLE),
            Borrower(platform="scallop", address="0x2", obligation_id="0xobl"),
        ])

        assert count == 2
        assert repo.get_borrower("navi", "0x1").status == BorrowerStatus.LIQUIDATABLE
        assert repo.get_borrower("scallop", "0x2").obligation_id == "0xobl"


class TestCoinRepository:
    def test_unknown_price_source_raises(self, sqlite_engine):
        repo = CoinRepository(sqlite_engine)
        with sqlite_engine.begin() as conn:
            with pytest.raises(ValueError, match="Unknown price source"):
                repo.set_price(conn, SUI, "coingecko", Decimal(1))

    def test_feed_resolution_prefers_coin_feed(self, sqlite_engine):
        repo = CoinRepository(sqlite_engine)
        with sqlite_engine.begin() as conn:
            repo.upsert_coin(conn, SUI, decimals=9, pyth_feed_id="0xfeed", symbol="SUI")
            assert repo.resolve_feed(conn, "0xfeed") == SUI
            assert repo.resolve_feed(conn, "0xother") is None

        coin = repo.get_coin(SUI)
        assert coin.symbol == "SUI"
        assert coin.prices == {}

    def test_partial_upsert_keeps_decimals(self, sqlite_engine):
        repo = CoinRepository(sqlite_engine)
        with sqlite_engine.begin() as conn:
            repo.upsert_coin(conn, USDC, decimals=6)
            repo.upsert_coin(conn, USDC, symbol="USDC")

        assert repo.get_coin(USDC).decimals == 6

    def test_price_feeds_merge_coin_and_market_feeds(self, sqlite_engine):
        repo = CoinRepository(sqlite_engine)
        markets = LendingMarketRepository(sqlite_engine)
        with sqlite_engine.begin() as conn:
            repo.upsert_coin(conn, SUI, pyth_feed_id="0xsui")
            for coin_type, feed in ((SUI, "0xmarket-sui"), (USDC, "0xusdc")):
                markets.upsert_params(conn, LendingMarketParamsChanged(
                    origin=EventOrigin(1, "tx1", 0), platform="navi", coin_type=coin_type, oracle_feed_id=feed,
                ))

        assert repo.price_feeds() == {"0xsui": SUI, "0xmarket-sui": SUI, "0xusdc": USDC}


class TestMetricsRepository:
    def test_get_latest_empty(self, sqlite_engine):
        assert MetricsRepository(sqlite_engine).get_latest() is None

    def test_upsert_same_sequence_updates_row(self, sqlite_engine):
        repo = MetricsRepository(sqlite_engine)
        repo.upsert(make_snapshot(100, processed=10))
        repo.upsert(make_snapshot(100, processed=12))

        rows = repo.list_recent()
        assert len(rows) == 1
        assert rows[0].total_processed_checkpoints == 12

    def test_latest_is_highest_sequence(self, sqlite_engine):
        repo = MetricsRepository(sqlite_engine)
        repo.upsert(make_snapshot(100))
        repo.upsert(make_snapshot(150))

        latest = repo.get_latest()
        assert latest.latest_seq_number == 150
        assert latest.decode_failures == 3
        assert latest.max_lagging == 2.5
        assert [s.latest_seq_number for s in repo.list_recent(limit=5)] == [150, 100]
