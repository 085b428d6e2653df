"""Arbitrage opportunity API routes."""

from decimal import Decimal

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.engine import Engine

from services.indexer.src.indexer.config import settings
from services.indexer.src.indexer.db.engine import get_engine
from services.indexer.src.indexer.db.pool_repository import PoolRepository
from services.indexer.src.indexer.domain.arbitrage import ArbitrageEngine
from services.indexer.src.indexer.domain.models import ArbitrageOpportunity
from services.indexer.src.indexer.schemas.responses import ArbitrageOpportunityResponse

router = APIRouter(prefix="/arbitrage", tags=["arbitrage"])


def get_db_engine() -> Engine:
    return get_engine()


def get_arbitrage_engine(request: Request, engine: Engine = Depends(get_db_engine)) -> ArbitrageEngine:
    """The live engine when the indexer runs in-process, else one built from stored pools."""
    service = getattr(request.app.state, "indexer", None)
    if service is not None:
        return service.arbitrage

    arbitrage = ArbitrageEngine(
        max_hops=settings.arbitrage_max_hops,
        min_profit=Decimal(settings.arbitrage_min_profit),
    )
    arbitrage.bootstrap(PoolRepository(engine).list_pools())
    arbitrage.scan()
    return arbitrage


def opportunity_to_response(opportunity: ArbitrageOpportunity) -> ArbitrageOpportunityResponse:
    return ArbitrageOpportunityResponse(
        coins=list(opportunity.coins),
        pools=list(opportunity.pools),
        hops=opportunity.hops,
        rate=opportunity.rate,
        profit=opportunity.profit,
        log_return=opportunity.log_return,
    )


@router.get("/opportunities", response_model=list[ArbitrageOpportunityResponse])
def list_opportunities(
    limit: int = Query(default=50, ge=1, le=500),
    arbitrage: ArbitrageEngine = Depends(get_arbitrage_engine),
) -> list[ArbitrageOpportunityResponse]:
    """Currently open cycles, most profitable first."""
    return [opportunity_to_response(o) for o in arbitrage.opportunities()[:limit]]


@router.get("/search", response_model=list[ArbitrageOpportunityResponse])
def search_from_coin(
    coin: str,
    max_hops: int | None = Query(default=None, ge=2, le=5),
    arbitrage: ArbitrageEngine = Depends(get_arbitrage_engine),
) -> list[ArbitrageOpportunityResponse]:
    found = arbitrage.graph.find_cycles(coin, max_hops or arbitrage.max_hops, arbitrage.min_profit)
    return [opportunity_to_response(o) for o in found]
