"""Borrower and health factor API routes."""

from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.engine import Engine

from services.indexer.src.indexer.config import settings
from services.indexer.src.indexer.db.engine import get_engine
from services.indexer.src.indexer.db.store import StateStore
from services.indexer.src.indexer.domain.health_factor import BorrowerHealth
from services.indexer.src.indexer.domain.models import Borrower, BorrowerStatus
from services.indexer.src.indexer.domain.risk_engine import compute_health
from services.indexer.src.indexer.schemas.responses import (
    BorrowerHealthResponse,
    BorrowerResponse,
    PositionResponse,
    PriceDropSimulationResponse,
)

router = APIRouter(prefix="/borrowers", tags=["borrowers"])


def get_db_engine() -> Engine:
    return get_engine()


def borrower_to_response(borrower: Borrower) -> BorrowerResponse:
    return BorrowerResponse(
        platform=borrower.platform,
        address=borrower.address,
        obligation_id=borrower.obligation_id,
        status=borrower.status.name.lower(),
        health_factor=borrower.health_factor,
        updated_at=borrower.updated_at,
    )


def health_to_response(health: BorrowerHealth, borrower: Borrower | None) -> BorrowerHealthResponse:
    return BorrowerHealthResponse(
        platform=health.platform,
        address=health.borrower,
        status=borrower.status.name.lower() if borrower else None,
        health_factor=health.health_factor,
        total_collateral_value=health.total_collateral_value,
        total_debt_value=health.total_debt_value,
        is_liquidatable=health.is_liquidatable,
        positions=[
            PositionResponse(
                coin_type=p.coin_type,
                decimals=p.decimals,
                collateral=str(p.collateral),
                debt=str(p.debt),
                price=p.price,
                collateral_value=p.collateral_value,
                debt_value=p.debt_value,
                liquidation_threshold=p.liquidation_threshold,
                borrow_weight=p.borrow_weight,
            )
            for p in health.positions
        ],
    )


def _parse_status(status: str | None) -> BorrowerStatus | None:
    if status is None:
        return None
    try:
        return BorrowerStatus[status.upper()]
    except KeyError:
        raise HTTPException(status_code=400, detail=f"Unknown status: {status}")


@router.get("", response_model=list[BorrowerResponse])
def list_borrowers(
    platform: str | None = None,
    status: str | None = Query(default=None, description="active, liquidatable or closed"),
    limit: int = Query(default=100, ge=1, le=1000),
    engine: Engine = Depends(get_db_engine),
) -> list[BorrowerResponse]:
    store = StateStore(engine)
    borrowers = store.borrowers.list_borrowers(platform, _parse_status(status), limit)
    return [borrower_to_response(b) for b in borrowers]


def _load_health(store: StateStore, platform: str, address: str) -> BorrowerHealth:
    if not store.positions.get_positions(platform, address):
        raise HTTPException(status_code=404, detail=f"No positions for {platform}:{address}")
    health = compute_health(store, platform, address, settings.price_source_priority)
    if health is None:
        # Market params, decimals or a price are not indexed yet
        raise HTTPException(status_code=409, detail="Incomplete market or price data")
    return health


@router.get("/{platform}/{address}", response_model=BorrowerHealthResponse)
def get_borrower_health(
    platform: str,
    address: str,
    engine: Engine = Depends(get_db_engine),
) -> BorrowerHealthResponse:
    """Health factor computed from the committed positions, market params and prices."""
    store = StateStore(engine)
    health = _load_health(store, platform, address)
    return health_to_response(health, store.borrowers.get_borrower(platform, address))


@router.get("/{platform}/{address}/simulate", response_model=PriceDropSimulationResponse)
def simulate_price_drop(
    platform: str,
    address: str,
    coin_type: str,
    drop_percent: Decimal = Query(default=Decimal(10), gt=0, le=100),
    engine: Engine = Depends(get_db_engine),
) -> PriceDropSimulationResponse:
    store = StateStore(engine)
    health = _load_health(store, platform, address)
    simulated = health.simulate_price_drop(coin_type, drop_percent)
    return PriceDropSimulationResponse(
        platform=platform,
        address=address,
        coin_type=coin_type,
        drop_percent=drop_percent,
        health_factor=health.health_factor,
        simulated_health_factor=simulated.health_factor,
        is_liquidatable=simulated.is_liquidatable,
    )
