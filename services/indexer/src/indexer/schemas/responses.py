from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict


class BorrowerResponse(BaseModel):
    """Tracked borrower with its last computed status."""

    model_config = ConfigDict(from_attributes=True)

    platform: str
    address: str
    obligation_id: str | None = None
    status: str
    health_factor: Decimal | None = None
    updated_at: datetime | None = None


class PositionResponse(BaseModel):
    coin_type: str
    decimals: int
    collateral: str  # raw on-chain units
    debt: str
    price: Decimal
    collateral_value: Decimal
    debt_value: Decimal
    liquidation_threshold: Decimal
    borrow_weight: Decimal


class BorrowerHealthResponse(BaseModel):
    platform: str
    address: str
    status: str | None = None
    health_factor: Decimal | None = None
    total_collateral_value: Decimal
    total_debt_value: Decimal
    is_liquidatable: bool
    positions: list[PositionResponse]


class PriceDropSimulationResponse(BaseModel):
    platform: str
    address: str
    coin_type: str
    drop_percent: Decimal
    health_factor: Decimal | None = None
    simulated_health_factor: Decimal | None = None
    is_liquidatable: bool


class LiquidationOrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    platform: str
    borrower: str
    health_factor: Decimal
    debt_coin: str
    collateral_coin: str
    amount_repay: str  # raw units of the debt coin
    source: str
    tx_digest: str | None = None
    checkpoint: int | None = None
    bot_address: str | None = None
    finalized_at: datetime | None = None
    created_at: datetime | None = None


class ExecutionReport(BaseModel):
    """Executor write-back for a liquidation order."""

    tx_digest: str
    checkpoint: int | None = None
    bot_address: str | None = None
    finalized_at: datetime | None = None


class ArbitrageOpportunityResponse(BaseModel):
    coins: list[str]
    pools: list[str]
    hops: int
    rate: Decimal
    profit: Decimal
    log_return: Decimal


class MetricsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    latest_seq_number: int
    total_checkpoints: int
    total_processed_checkpoints: int
    min_processing_time: float
    avg_processing_time: float
    max_processing_time: float
    min_lagging: float
    avg_lagging: float
    max_lagging: float
    decode_failures: int = 0
    invariant_violations: int = 0
