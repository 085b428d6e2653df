"""Repositories for borrowers, positions, liquidation events and liquidation orders."""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Iterable

from sqlalchemy import and_, func, insert, select, update
from sqlalchemy.engine import Connection, Engine

from services.indexer.src.indexer.db.models import (
    borrowers,
    liquidation_events,
    liquidation_orders,
    user_borrows,
    user_deposits,
)
from services.indexer.src.indexer.db.upsert import upsert
from services.indexer.src.indexer.domain.models import (
    Borrower,
    BorrowerStatus,
    LiquidationOccurred,
    LiquidationOrder,
    PositionChange,
    UserPosition,
)
from services.indexer.src.indexer.utils.timestamps import ensure_utc, utc_now

logger = logging.getLogger(__name__)


class InvariantViolation(Exception):
    """Raised when applying a delta would drive a position amount below zero."""

    def __init__(self, event: PositionChange, current: int):
        self.event = event
        self.current = current
        super().__init__(
            f"{event.side} position would go negative: platform={event.platform} "
            f"borrower={event.borrower} coin={event.coin_type} current={current} "
            f"delta={event.delta} tx={event.origin.tx_digest}"
        )


class BorrowerRepository:
    def __init__(self, engine: Engine):
        self.engine = engine
        self._is_sqlite = "sqlite" in str(engine.url)

    def register(
        self, conn: Connection, platform: str, address: str, obligation_id: str | None = None
    ) -> None:
        """Create the borrower on first sight; status is never touched here."""
        values = {
            "platform": platform,
            "address": address,
            "obligation_id": obligation_id,
            "status": int(BorrowerStatus.ACTIVE),
            "updated_at": utc_now(),
        }

        def set_(excluded):
            if obligation_id is None:
                return {}
            return {
                "obligation_id": excluded.obligation_id,
                "updated_at": excluded.updated_at,
            }

        upsert(conn, borrowers, values, ["platform", "address"], self._is_sqlite, set_=set_)

    def find_by_obligation(self, conn: Connection, platform: str, obligation_id: str) -> str | None:
        stmt = (
            select(borrowers.c.address)
            .where(borrowers.c.platform == platform)
            .where(borrowers.c.obligation_id == obligation_id)
            .limit(1)
        )
        return conn.execute(stmt).scalar()

    def set_status(
        self,
        platform: str,
        address: str,
        status: BorrowerStatus,
        health_factor: Decimal | None,
    ) -> None:
        stmt = (
            update(borrowers)
            .where(borrowers.c.platform == platform)
            .where(borrowers.c.address == address)
            .values(status=int(status), health_factor=health_factor, updated_at=utc_now())
        )
        with self.engine.begin() as conn:
            conn.execute(stmt)

    def get_borrower(self, platform: str, address: str) -> Borrower | None:
        stmt = (
            select(borrowers)
            .where(borrowers.c.platform == platform)
            .where(borrowers.c.address == address)
        )
        with self.engine.connect() as conn:
            row = conn.execute(stmt).fetchone()
        return self._row_to_borrower(row) if row else None

    def list_borrowers(
        self,
        platform: str | None = None,
        status: BorrowerStatus | None = None,
        limit: int | None = None,
    ) -> list[Borrower]:
        stmt = select(borrowers).order_by(borrowers.c.platform, borrowers.c.address)
        if platform:
            stmt = stmt.where(borrowers.c.platform == platform)
        if status is not None:
            stmt = stmt.where(borrowers.c.status == int(status))
        if limit:
            stmt = stmt.limit(limit)
        with self.engine.connect() as conn:
            return [self._row_to_borrower(row) for row in conn.execute(stmt)]

    def import_borrowers(self, items: Iterable[Borrower]) -> int:
        """Upsert borrowers from an export, including their status."""
        count = 0
        with self.engine.begin() as conn:
            for b in items:
                upsert(
                    conn,
                    borrowers,
                    {
                        "platform": b.platform,
                        "address": b.address,
                        "obligation_id": b.obligation_id,
                        "status": int(b.status),
                        "health_factor": b.health_factor,
                        "updated_at": utc_now(),
                    },
                    ["platform", "address"],
                    self._is_sqlite,
                )
                count += 1
        return count

    def _row_to_borrower(self, row) -> Borrower:
        return Borrower(
            platform=row.platform,
            address=row.address,
            obligation_id=row.obligation_id,
            status=BorrowerStatus(row.status),
            health_factor=Decimal(str(row.health_factor)) if row.health_factor is not None else None,
            updated_at=ensure_utc(row.updated_at) if row.updated_at else None,
        )


class PositionRepository:
    """Deposits and borrows; amounts change by additive deltas.

    Each row remembers the (checkpoint, event_index) of the last delta it
    absorbed, so re-applying an already committed event is a no-op.
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self._is_sqlite = "sqlite" in str(engine.url)

    @staticmethod
    def _table(side: str):
        return user_deposits if side == "deposit" else user_borrows

    def apply(self, conn: Connection, event: PositionChange) -> bool:
        """Apply one delta inside the caller's transaction.

        Returns False when the event was already applied.

        Raises:
            InvariantViolation: If the resulting amount would be negative.
                Nothing is written in that case.
        """
        table = self._table(event.side)
        key = and_(
            table.c.platform == event.platform,
            table.c.address == event.borrower,
            table.c.coin_type == event.coin_type,
        )
        # Row lock serializes concurrent writers to the same key (no-op on SQLite)
        row = conn.execute(select(table).where(key).with_for_update()).fetchone()

        current = 0
        if row is not None:
            if (row.last_checkpoint, row.last_event_index) >= event.origin.cursor:
                return False
            current = int(row.amount)

        amount = current + event.delta
        if amount < 0:
            raise InvariantViolation(event, current)

        values = {
            "amount": str(amount),
            "last_checkpoint": event.origin.checkpoint,
            "last_event_index": event.origin.event_index,
            "updated_at": utc_now(),
        }
        if event.obligation_id is not None:
            values["obligation_id"] = event.obligation_id

        if row is None:
            conn.execute(
                insert(table).values(
                    platform=event.platform,
                    address=event.borrower,
                    coin_type=event.coin_type,
                    **values,
                )
            )
        else:
            conn.execute(update(table).where(key).values(**values))
        return True

    def get_positions(self, platform: str, address: str) -> list[UserPosition]:
        positions = []
        with self.engine.connect() as conn:
            for side in ("deposit", "borrow"):
                table = self._table(side)
                stmt = (
                    select(table)
                    .where(table.c.platform == platform)
                    .where(table.c.address == address)
                    .order_by(table.c.coin_type)
                )
                positions.extend(self._row_to_position(row, side) for row in conn.execute(stmt))
        return positions

    def list_positions(self, platform: str | None = None) -> list[UserPosition]:
        positions = []
        with self.engine.connect() as conn:
            for side in ("deposit", "borrow"):
                table = self._table(side)
                stmt = select(table).order_by(table.c.id)
                if platform:
                    stmt = stmt.where(table.c.platform == platform)
                positions.extend(self._row_to_position(row, side) for row in conn.execute(stmt))
        return positions

    def _row_to_position(self, row, side: str) -> UserPosition:
        return UserPosition(
            platform=row.platform,
            address=row.address,
            coin_type=row.coin_type,
            side=side,
            amount=int(row.amount),
            obligation_id=row.obligation_id,
        )


class LiquidationEventRepository:
    """Append-only audit of on-chain liquidations, unique per tx digest."""

    def __init__(self, engine: Engine):
        self.engine = engine
        self._is_sqlite = "sqlite" in str(engine.url)

    def insert_event(self, conn: Connection, event: LiquidationOccurred, borrower: str) -> bool:
        result = upsert(
            conn,
            liquidation_events,
            {
                "tx_digest": event.origin.tx_digest,
                "checkpoint": event.origin.checkpoint,
                "platform": event.platform,
                "borrower": borrower,
                "liquidator": event.liquidator,
                "obligation_id": event.obligation_id,
                "debt_coin": event.debt_coin,
                "collateral_coin": event.collateral_coin,
                "repay_amount": str(event.repay_amount) if event.repay_amount is not None else None,
                "seize_amount": str(event.seize_amount) if event.seize_amount is not None else None,
                "updated_at": utc_now(),
            },
            ["tx_digest"],
            self._is_sqlite,
            set_=lambda excluded: {},
        )
        return result.rowcount > 0

    def list_events(self, platform: str | None = None, limit: int = 100) -> list[dict]:
        stmt = (
            select(liquidation_events)
            .order_by(liquidation_events.c.checkpoint.desc())
            .limit(limit)
        )
        if platform:
            stmt = stmt.where(liquidation_events.c.platform == platform)
        with self.engine.connect() as conn:
            return [dict(row._mapping) for row in conn.execute(stmt)]


class LiquidationOrderRepository:
    def __init__(self, engine: Engine):
        self.engine = engine

    def create_if_none_open(self, order: LiquidationOrder) -> int | None:
        """Insert the order unless the borrower already has an unfinalized one.

        Returns the new order id, or None when an open order exists.
        """
        open_stmt = (
            select(func.count())
            .select_from(liquidation_orders)
            .where(liquidation_orders.c.platform == order.platform)
            .where(liquidation_orders.c.borrower == order.borrower)
            .where(liquidation_orders.c.finalized_at.is_(None))
        )
        now = utc_now()
        with self.engine.begin() as conn:
            if conn.execute(open_stmt).scalar():
                return None
            result = conn.execute(
                insert(liquidation_orders).values(
                    platform=order.platform,
                    borrower=order.borrower,
                    hf=order.health_factor,
                    debt_coin=order.debt_coin,
                    collateral_coin=order.collateral_coin,
                    amount_repay=str(order.amount_repay),
                    source=order.source,
                    created_at=now,
                    updated_at=now,
                )
            )
            order_id = result.inserted_primary_key[0]
        order.id = order_id
        order.created_at = now
        return order_id

    def record_execution(
        self,
        order_id: int,
        tx_digest: str | None,
        checkpoint: int | None,
        bot_address: str | None,
        finalized_at: datetime | None,
    ) -> bool:
        """Executor write-back. Returns False if the order does not exist."""
        stmt = (
            update(liquidation_orders)
            .where(liquidation_orders.c.id == order_id)
            .values(
                tx_digest=tx_digest,
                checkpoint=checkpoint,
                bot_address=bot_address,
                finalized_at=finalized_at,
                updated_at=utc_now(),
            )
        )
        with self.engine.begin() as conn:
            return conn.execute(stmt).rowcount > 0

    def get_order(self, order_id: int) -> LiquidationOrder | None:
        stmt = select(liquidation_orders).where(liquidation_orders.c.id == order_id)
        with self.engine.connect() as conn:
            row = conn.execute(stmt).fetchone()
        return self._row_to_order(row) if row else None

    def list_orders(
        self,
        platform: str | None = None,
        borrower: str | None = None,
        open_only: bool = False,
        limit: int = 100,
    ) -> list[LiquidationOrder]:
        stmt = select(liquidation_orders).order_by(liquidation_orders.c.id.desc()).limit(limit)
        if platform:
            stmt = stmt.where(liquidation_orders.c.platform == platform)
        if borrower:
            stmt = stmt.where(liquidation_orders.c.borrower == borrower)
        if open_only:
            stmt = stmt.where(liquidation_orders.c.finalized_at.is_(None))
        with self.engine.connect() as conn:
            return [self._row_to_order(row) for row in conn.execute(stmt)]

    def _row_to_order(self, row) -> LiquidationOrder:
        return LiquidationOrder(
            id=row.id,
            platform=row.platform,
            borrower=row.borrower,
            health_factor=Decimal(str(row.hf)),
            debt_coin=row.debt_coin,
            collateral_coin=row.collateral_coin,
            amount_repay=int(row.amount_repay),
            source=row.source,
            tx_digest=row.tx_digest,
            checkpoint=row.checkpoint,
            bot_address=row.bot_address,
            finalized_at=ensure_utc(row.finalized_at) if row.finalized_at else None,
            created_at=ensure_utc(row.created_at) if row.created_at else None,
        )
