from services.indexer.src.indexer.schemas.responses import (
    ArbitrageOpportunityResponse,
    BorrowerHealthResponse,
    BorrowerResponse,
    ExecutionReport,
    LiquidationOrderResponse,
    MetricsResponse,
    PositionResponse,
    PriceDropSimulationResponse,
)

__all__ = [
    "ArbitrageOpportunityResponse",
    "BorrowerHealthResponse",
    "BorrowerResponse",
    "ExecutionReport",
    "LiquidationOrderResponse",
    "MetricsResponse",
    "PositionResponse",
    "PriceDropSimulationResponse",
]
