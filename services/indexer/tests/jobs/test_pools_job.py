"""Tests for the pool snapshot export/import commands."""

import json

from sqlalchemy import create_engine

from services.indexer.src.indexer.db.engine import init_db
from services.indexer.src.indexer.db.store import StateStore
from services.indexer.src.indexer.domain.models import Pool
from services.indexer.src.indexer.jobs.borrowers import (
    export_pools,
    import_pools,
    pool_from_dict,
    pool_to_dict,
)

SUI = "0x2::sui::SUI"
USDC = "0xdba3::usdc::USDC"


def make_store() -> StateStore:
    engine = create_engine("sqlite:///:memory:")
    init_db(engine)
    return StateStore(engine)


class TestPoolDict:
    def test_large_amounts_are_strings(self):
        pool = Pool(
            exchange="bluefin", address="0xp1", coin_a=SUI, coin_b=USDC, sqrt_price=2**100, fee_rate=500
        )

        data = pool_to_dict(pool)

        assert data["sqrt_price"] == str(2**100)
        assert data["fee_rate"] == "500"
        assert data["reserve_a"] is None
        assert pool_from_dict(data) == pool

    def test_from_dict_needs_only_exchange_and_address(self):
        pool = pool_from_dict({"exchange": "aftermath", "address": "0xp2"})

        assert pool.coin_a is None
        assert pool.sqrt_price is None
        assert not pool.is_paused


class TestPoolImport:
    def test_import_fills_coins_of_known_pool(self, tmp_path):
        store = make_store()
        store.pools.import_pools([Pool(exchange="bluefin", address="0xp1", coin_a=None, coin_b=None, reserve_a=7)])
        path = tmp_path / "pools.json"
        path.write_text(json.dumps([
            {"exchange": "bluefin", "address": "0xp1", "coin_a": SUI, "coin_b": USDC, "fee_rate": 500},
        ]))

        assert import_pools(store, path) == 1

        pool = store.pools.get_pool("0xp1")
        assert (pool.coin_a, pool.coin_b) == (SUI, USDC)
        assert pool.fee_rate == 500
        assert pool.reserve_a == 7

    def test_round_trip_by_exchange(self, tmp_path):
        store = make_store()
        store.pools.import_pools([
            Pool(exchange="bluefin", address="0xp1", coin_a=SUI, coin_b=USDC, sqrt_price=2**64),
            Pool(exchange="cetus", address="0xp2", coin_a=USDC, coin_b=SUI, reserve_a=1, reserve_b=2),
        ])
        path = tmp_path / "bluefin.json"

        assert export_pools(store, path, exchange="bluefin") == 1
        target = make_store()
        assert import_pools(target, path) == 1

        assert target.pools.get_pool("0xp1").sqrt_price == 2**64
        assert target.pools.get_pool("0xp2") is None
