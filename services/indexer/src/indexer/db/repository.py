from dataclasses import asdict
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.engine import Connection, Engine

from services.indexer.src.indexer.db.models import (
    PRICE_SOURCES,
    coins,
    indexer_cursor,
    lending_markets,
    metrics,
)
from services.indexer.src.indexer.db.upsert import upsert
from services.indexer.src.indexer.domain.models import (
    Coin,
    LendingMarket,
    LendingMarketParamsChanged,
    MetricsSnapshot,
)
from services.indexer.src.indexer.utils.timestamps import utc_now


def _to_int(value: str | None) -> int | None:
    return int(value) if value is not None else None


def _to_decimal(value) -> Decimal | None:
    return Decimal(str(value)) if value is not None else None


class CoinRepository:
    def __init__(self, engine: Engine):
        self.engine = engine
        self._is_sqlite = "sqlite" in str(engine.url)

    def upsert_coin(
        self,
        conn: Connection,
        coin_type: str,
        decimals: int | None = None,
        pyth_feed_id: str | None = None,
        symbol: str | None = None,
    ) -> None:
        values = {
            "coin_type": coin_type,
            "decimals": decimals,
            "pyth_feed_id": pyth_feed_id,
            "symbol": symbol,
            "updated_at": utc_now(),
        }
        values = {k: v for k, v in values.items() if v is not None}
        upsert(conn, coins, values, ["coin_type"], self._is_sqlite)

    def set_price(self, conn: Connection, coin_type: str, source: str, price: Decimal) -> None:
        """Write one oracle source's price column; other sources are untouched."""
        if source not in PRICE_SOURCES:
            raise ValueError(f"Unknown price source: {source}")
        upsert(
            conn,
            coins,
            {"coin_type": coin_type, f"price_{source}": price, "updated_at": utc_now()},
            ["coin_type"],
            self._is_sqlite,
        )

    def resolve_feed(self, conn: Connection, feed_id: str) -> str | None:
        """Map an oracle feed id to a coin type via coins, then lending markets."""
        coin_type = conn.execute(
            select(coins.c.coin_type).where(coins.c.pyth_feed_id == feed_id).limit(1)
        ).scalar()
        if coin_type:
            return coin_type
        return conn.execute(
            select(lending_markets.c.coin_type)
            .where(lending_markets.c.oracle_feed_id == feed_id)
            .limit(1)
        ).scalar()

    def price_feeds(self) -> dict[str, str]:
        """Feed id -> coin type, from coin metadata and lending market oracles.

        A coin's own `pyth_feed_id` wins over a market's `oracle_feed_id`.
        """
        with self.engine.connect() as conn:
            feeds = {
                row.oracle_feed_id: row.coin_type
                for row in conn.execute(
                    select(lending_markets.c.oracle_feed_id, lending_markets.c.coin_type)
                    .where(lending_markets.c.oracle_feed_id.is_not(None))
                    .order_by(lending_markets.c.platform)
                )
            }
            feeds.update(
                (row.pyth_feed_id, row.coin_type)
                for row in conn.execute(
                    select(coins.c.pyth_feed_id, coins.c.coin_type).where(
                        coins.c.pyth_feed_id.is_not(None)
                    )
                )
            )
        return feeds

    def get_coin(self, coin_type: str) -> Coin | None:
        with self.engine.connect() as conn:
            row = conn.execute(select(coins).where(coins.c.coin_type == coin_type)).fetchone()
        return self._row_to_coin(row) if row else None

    def list_coins(self) -> list[Coin]:
        with self.engine.connect() as conn:
            return [
                self._row_to_coin(row)
                for row in conn.execute(select(coins).order_by(coins.c.coin_type))
            ]

    def _row_to_coin(self, row) -> Coin:
        prices = {}
        for source in PRICE_SOURCES:
            value = getattr(row, f"price_{source}")
            if value is not None:
                prices[source] = _to_decimal(value)
        return Coin(
            coin_type=row.coin_type,
            decimals=row.decimals,
            symbol=row.symbol,
            pyth_feed_id=row.pyth_feed_id,
            prices=prices,
        )


class LendingMarketRepository:
    def __init__(self, engine: Engine):
        self.engine = engine
        self._is_sqlite = "sqlite" in str(engine.url)

    def upsert_params(self, conn: Connection, event: LendingMarketParamsChanged) -> None:
        """Upsert the parameters the event carries; absent ones keep their value."""
        values = {
            "platform": event.platform,
            "coin_type": event.coin_type,
            "ltv": event.ltv,
            "liquidation_threshold": event.liquidation_threshold,
            "borrow_weight": event.borrow_weight,
            "liquidation_ratio": event.liquidation_ratio,
            "liquidation_penalty": event.liquidation_penalty,
            "liquidation_fee": event.liquidation_fee,
            "supply_amount": str(event.supply_amount) if event.supply_amount is not None else None,
            "borrow_amount": str(event.borrow_amount) if event.borrow_amount is not None else None,
            "ctoken_supply": str(event.ctoken_supply) if event.ctoken_supply is not None else None,
            "oracle_feed_id": event.oracle_feed_id,
            "updated_at": utc_now(),
        }
        values = {k: v for k, v in values.items() if v is not None}
        upsert(conn, lending_markets, values, ["platform", "coin_type"], self._is_sqlite)

    def get_market(self, platform: str, coin_type: str) -> LendingMarket | None:
        stmt = (
            select(lending_markets)
            .where(lending_markets.c.platform == platform)
            .where(lending_markets.c.coin_type == coin_type)
        )
        with self.engine.connect() as conn:
            row = conn.execute(stmt).fetchone()
        return self._row_to_market(row) if row else None

    def list_markets(self, platform: str | None = None) -> list[LendingMarket]:
        stmt = select(lending_markets).order_by(
            lending_markets.c.platform, lending_markets.c.coin_type
        )
        if platform:
            stmt = stmt.where(lending_markets.c.platform == platform)
        with self.engine.connect() as conn:
            return [self._row_to_market(row) for row in conn.execute(stmt)]

    def _row_to_market(self, row) -> LendingMarket:
        return LendingMarket(
            platform=row.platform,
            coin_type=row.coin_type,
            ltv=_to_decimal(row.ltv),
            liquidation_threshold=_to_decimal(row.liquidation_threshold),
            borrow_weight=_to_decimal(row.borrow_weight),
            liquidation_ratio=_to_decimal(row.liquidation_ratio),
            liquidation_penalty=_to_decimal(row.liquidation_penalty),
            liquidation_fee=_to_decimal(row.liquidation_fee),
            supply_amount=_to_int(row.supply_amount),
            borrow_amount=_to_int(row.borrow_amount),
            ctoken_supply=_to_int(row.ctoken_supply),
            oracle_feed_id=row.oracle_feed_id,
        )


class CursorRepository:
    """Highest committed checkpoint, written in the same transaction as its events."""

    NAME = "checkpoints"

    def __init__(self, engine: Engine):
        self.engine = engine
        self._is_sqlite = "sqlite" in str(engine.url)

    def read(self, conn: Connection) -> int | None:
        return conn.execute(
            select(indexer_cursor.c.last_checkpoint).where(indexer_cursor.c.name == self.NAME)
        ).scalar()

    def advance(self, conn: Connection, sequence: int) -> None:
        upsert(
            conn,
            indexer_cursor,
            {"name": self.NAME, "last_checkpoint": sequence, "updated_at": utc_now()},
            ["name"],
            self._is_sqlite,
        )

    def get_last_committed(self) -> int | None:
        with self.engine.connect() as conn:
            return self.read(conn)


class MetricsRepository:
    def __init__(self, engine: Engine):
        self.engine = engine
        self._is_sqlite = "sqlite" in str(engine.url)

    def upsert(self, snapshot: MetricsSnapshot) -> None:
        """One row per latest sequence number; re-flushing the same sequence updates it."""
        now = utc_now()
        values = asdict(snapshot)
        values["created_at"] = now
        values["updated_at"] = now

        def set_(excluded):
            return {
                name: excluded[name] for name in values
                if name not in ("latest_seq_number", "created_at")
            }

        with self.engine.begin() as conn:
            upsert(conn, metrics, values, ["latest_seq_number"], self._is_sqlite, set_=set_)

    def get_latest(self) -> MetricsSnapshot | None:
        stmt = select(metrics).order_by(metrics.c.latest_seq_number.desc()).limit(1)
        with self.engine.connect() as conn:
            row = conn.execute(stmt).fetchone()
        return self._row_to_snapshot(row) if row else None

    def list_recent(self, limit: int = 100) -> list[MetricsSnapshot]:
        stmt = select(metrics).order_by(metrics.c.latest_seq_number.desc()).limit(limit)
        with self.engine.connect() as conn:
            return [self._row_to_snapshot(row) for row in conn.execute(stmt)]

    def _row_to_snapshot(self, row) -> MetricsSnapshot:
        return MetricsSnapshot(
            latest_seq_number=row.latest_seq_number,
            total_checkpoints=row.total_checkpoints,
            total_processed_checkpoints=row.total_processed_checkpoints,
            min_processing_time=row.min_processing_time,
            avg_processing_time=row.avg_processing_time,
            max_processing_time=row.max_processing_time,
            min_lagging=row.min_lagging,
            avg_lagging=row.avg_lagging,
            max_lagging=row.max_lagging,
            decode_failures=row.decode_failures,
            invariant_violations=row.invariant_violations,
        )
