"""Repository for pools, pool ticks and shared pool objects."""

from typing import Iterable

from sqlalchemy import select
from sqlalchemy.engine import Connection, Engine

from services.indexer.src.indexer.db.models import pool_ticks, pools, shared_objects
from services.indexer.src.indexer.db.upsert import upsert
from services.indexer.src.indexer.domain.models import (
    Pool,
    PoolCreated,
    PoolStateChanged,
    TickUpdated,
)
from services.indexer.src.indexer.utils.timestamps import utc_now


def _to_int(value: str | None) -> int | None:
    return int(value) if value is not None else None


def _to_str(value: int | None) -> str | None:
    return str(value) if value is not None else None


class PoolRepository:
    def __init__(self, engine: Engine):
        self.engine = engine
        self._is_sqlite = "sqlite" in str(engine.url)

    def create_pool(self, conn: Connection, event: PoolCreated) -> None:
        values = {
            "exchange": event.exchange,
            "address": event.pool_address,
            "coin_a": event.coin_a,
            "coin_b": event.coin_b,
            "tick_spacing": event.tick_spacing,
            "fee_rate": event.fee_rate,
            "reserve_a": _to_str(event.reserve_a),
            "reserve_b": _to_str(event.reserve_b),
            "current_sqrt_price": _to_str(event.sqrt_price),
            "current_tick_index": event.tick_index,
            "updated_at": utc_now(),
        }
        values = {k: v for k, v in values.items() if v is not None}
        upsert(conn, pools, values, ["address"], self._is_sqlite)

        if event.initial_shared_version is not None:
            upsert(
                conn,
                shared_objects,
                {
                    "object_id": event.pool_address,
                    "initial_shared_version": event.initial_shared_version,
                    "updated_at": utc_now(),
                },
                ["object_id"],
                self._is_sqlite,
            )

    def apply_state(self, conn: Connection, event: PoolStateChanged) -> None:
        """Upsert only the fields the event carries."""
        values = {
            "exchange": event.exchange,
            "address": event.pool_address,
            "updated_at": utc_now(),
        }
        optional = {
            "coin_a": event.coin_a,
            "coin_b": event.coin_b,
            "reserve_a": _to_str(event.reserve_a),
            "reserve_b": _to_str(event.reserve_b),
            "liquidity": _to_str(event.liquidity),
            "current_sqrt_price": _to_str(event.sqrt_price),
            "current_tick_index": event.tick_index,
            "fee_rate": event.fee_rate,
            "is_pause": event.is_paused,
        }
        values.update({k: v for k, v in optional.items() if v is not None})
        upsert(conn, pools, values, ["address"], self._is_sqlite)

    def upsert_tick(self, conn: Connection, event: TickUpdated) -> None:
        upsert(
            conn,
            pool_ticks,
            {
                "address": event.pool_address,
                "tick_index": event.tick_index,
                "liquidity_net": str(event.liquidity_net),
                "liquidity_gross": str(event.liquidity_gross),
                "updated_at": utc_now(),
            },
            ["address", "tick_index"],
            self._is_sqlite,
        )

    def import_pools(self, items: Iterable[Pool]) -> int:
        """Upsert pools from a snapshot, e.g. pools created before the start checkpoint.

        Fields the snapshot leaves empty keep their stored value.
        """
        count = 0
        with self.engine.begin() as conn:
            for pool in items:
                values = {
                    "exchange": pool.exchange,
                    "address": pool.address,
                    "coin_a": pool.coin_a,
                    "coin_b": pool.coin_b,
                    "reserve_a": _to_str(pool.reserve_a),
                    "reserve_b": _to_str(pool.reserve_b),
                    "liquidity": _to_str(pool.liquidity),
                    "current_sqrt_price": _to_str(pool.sqrt_price),
                    "current_tick_index": pool.tick_index,
                    "tick_spacing": pool.tick_spacing,
                    "fee_rate": pool.fee_rate,
                    "is_pause": pool.is_paused,
                    "updated_at": utc_now(),
                }
                values = {k: v for k, v in values.items() if v is not None}
                upsert(conn, pools, values, ["address"], self._is_sqlite)
                count += 1
        return count

    def get_pool(self, address: str) -> Pool | None:
        stmt = select(pools).where(pools.c.address == address)
        with self.engine.connect() as conn:
            row = conn.execute(stmt).fetchone()
        return self._row_to_pool(row) if row else None

    def list_pools(self, exchange: str | None = None) -> list[Pool]:
        stmt = select(pools).order_by(pools.c.id)
        if exchange:
            stmt = stmt.where(pools.c.exchange == exchange)
        with self.engine.connect() as conn:
            return [self._row_to_pool(row) for row in conn.execute(stmt)]

    def get_ticks(self, address: str) -> dict[int, tuple[int, int]]:
        """Tick index -> (liquidity_net, liquidity_gross)."""
        stmt = (
            select(pool_ticks)
            .where(pool_ticks.c.address == address)
            .order_by(pool_ticks.c.tick_index)
        )
        with self.engine.connect() as conn:
            return {
                row.tick_index: (int(row.liquidity_net), int(row.liquidity_gross))
                for row in conn.execute(stmt)
            }

    def list_ticks(self) -> dict[str, dict[int, tuple[int, int]]]:
        """Pool address -> tick index -> (liquidity_net, liquidity_gross)."""
        ticks: dict[str, dict[int, tuple[int, int]]] = {}
        with self.engine.connect() as conn:
            for row in conn.execute(select(pool_ticks)):
                ticks.setdefault(row.address, {})[row.tick_index] = (
                    int(row.liquidity_net),
                    int(row.liquidity_gross),
                )
        return ticks

    def get_shared_version(self, object_id: str) -> int | None:
        stmt = select(shared_objects.c.initial_shared_version).where(
            shared_objects.c.object_id == object_id
        )
        with self.engine.connect() as conn:
            return conn.execute(stmt).scalar()

    def _row_to_pool(self, row) -> Pool:
        return Pool(
            exchange=row.exchange,
            address=row.address,
            coin_a=row.coin_a,
            coin_b=row.coin_b,
            reserve_a=_to_int(row.reserve_a),
            reserve_b=_to_int(row.reserve_b),
            liquidity=_to_int(row.liquidity),
            sqrt_price=_to_int(row.current_sqrt_price),
            tick_index=row.current_tick_index,
            tick_spacing=row.tick_spacing,
            fee_rate=row.fee_rate,
            is_paused=bool(row.is_pause),
        )
