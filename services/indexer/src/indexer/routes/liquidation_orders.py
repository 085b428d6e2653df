"""Liquidation order API routes, including the executor write-back."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.engine import Engine

from services.indexer.src.indexer.db.engine import get_engine
from services.indexer.src.indexer.db.lending_repository import LiquidationOrderRepository
from services.indexer.src.indexer.domain.models import LiquidationOrder
from services.indexer.src.indexer.schemas.responses import (
    ExecutionReport,
    LiquidationOrderResponse,
)
from services.indexer.src.indexer.utils.timestamps import utc_now

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/liquidation-orders", tags=["liquidation-orders"])


def get_db_engine() -> Engine:
    return get_engine()


def order_to_response(order: LiquidationOrder) -> LiquidationOrderResponse:
    return LiquidationOrderResponse(
        id=order.id,
        platform=order.platform,
        borrower=order.borrower,
        health_factor=order.health_factor,
        debt_coin=order.debt_coin,
        collateral_coin=order.collateral_coin,
        amount_repay=str(order.amount_repay),
        source=order.source,
        tx_digest=order.tx_digest,
        checkpoint=order.checkpoint,
        bot_address=order.bot_address,
        finalized_at=order.finalized_at,
        created_at=order.created_at,
    )


@router.get("", response_model=list[LiquidationOrderResponse])
def list_orders(
    platform: str | None = None,
    borrower: str | None = None,
    open_only: bool = False,
    limit: int = Query(default=100, ge=1, le=1000),
    engine: Engine = Depends(get_db_engine),
) -> list[LiquidationOrderResponse]:
    repo = LiquidationOrderRepository(engine)
    return [order_to_response(o) for o in repo.list_orders(platform, borrower, open_only, limit)]


@router.get("/{order_id}", response_model=LiquidationOrderResponse)
def get_order(order_id: int, engine: Engine = Depends(get_db_engine)) -> LiquidationOrderResponse:
    order = LiquidationOrderRepository(engine).get_order(order_id)
    if order is None:
        raise HTTPException(status_code=404, detail=f"Order {order_id} not found")
    return order_to_response(order)


@router.post("/{order_id}/execution", response_model=LiquidationOrderResponse)
def record_execution(
    order_id: int,
    report: ExecutionReport,
    engine: Engine = Depends(get_db_engine),
) -> LiquidationOrderResponse:
    """
    Record the executor's outcome for an order.

    Finalizing the order allows the risk engine to open a new one for the
    same borrower.
    """
    repo = LiquidationOrderRepository(engine)
    finalized_at = report.finalized_at or utc_now()
    if not repo.record_execution(
        order_id, report.tx_digest, report.checkpoint, report.bot_address, finalized_at
    ):
        raise HTTPException(status_code=404, detail=f"Order {order_id} not found")
    logger.info(f"Order {order_id} executed in {report.tx_digest}")
    return order_to_response(repo.get_order(order_id))
