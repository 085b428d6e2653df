from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import IntEnum
from typing import Optional, Union


@dataclass(frozen=True)
class TransactionEvent:
    """An event as emitted by a transaction, before flattening."""

    package_id: str
    module: str
    event_type: str
    payload: bytes


@dataclass(frozen=True)
class Transaction:
    digest: str
    sender: str
    events: tuple[TransactionEvent, ...] = ()


@dataclass(frozen=True)
class RawEvent:
    checkpoint: int
    tx_digest: str
    event_index: int  # position within the checkpoint, in chain order
    sender: str
    package_id: str
    module: str
    event_type: str
    payload: bytes

    @property
    def dispatch_key(self) -> tuple[str, str, str]:
        return (self.package_id, self.module, self.event_type)

    @property
    def type_tag(self) -> str:
        return f"{self.package_id}::{self.module}::{self.event_type}"


@dataclass(frozen=True)
class Checkpoint:
    sequence_number: int
    timestamp_ms: int  # chain timestamp
    transactions: tuple[Transaction, ...] = ()
    received_at: Optional[datetime] = None

    def raw_events(self) -> list[RawEvent]:
        """Flatten transactions into raw events, preserving chain order."""
        events = []
        index = 0
        for tx in self.transactions:
            for e in tx.events:
                events.append(
                    RawEvent(
                        checkpoint=self.sequence_number,
                        tx_digest=tx.digest,
                        event_index=index,
                        sender=tx.sender,
                        package_id=e.package_id,
                        module=e.module,
                        event_type=e.event_type,
                        payload=e.payload,
                    )
                )
                index += 1
        return events


# Decoded events. Amounts are raw integer units (arbitrary precision);
# ratios and prices are Decimal. Never floats.


@dataclass(frozen=True)
class EventOrigin:
    checkpoint: int
    tx_digest: str
    event_index: int

    @property
    def cursor(self) -> tuple[int, int]:
        return (self.checkpoint, self.event_index)


@dataclass(frozen=True)
class PoolCreated:
    origin: EventOrigin
    exchange: str
    pool_address: str
    coin_a: str
    coin_b: str
    decimals_a: Optional[int] = None
    decimals_b: Optional[int] = None
    tick_spacing: Optional[int] = None
    fee_rate: Optional[int] = None  # parts per million
    initial_shared_version: Optional[int] = None
    # Constant-product pools are created with their first reserves
    reserve_a: Optional[int] = None
    reserve_b: Optional[int] = None
    # Concentrated-liquidity pools that announce their starting price
    sqrt_price: Optional[int] = None  # Q64.64
    tick_index: Optional[int] = None


@dataclass(frozen=True)
class PoolStateChanged:
    """Partial pool update; None fields are left unchanged."""

    origin: EventOrigin
    exchange: str
    pool_address: str
    reserve_a: Optional[int] = None
    reserve_b: Optional[int] = None
    liquidity: Optional[int] = None
    sqrt_price: Optional[int] = None  # Q64.64
    tick_index: Optional[int] = None
    fee_rate: Optional[int] = None
    is_paused: Optional[bool] = None
    # Only from events that name the pool's coins in pool order
    coin_a: Optional[str] = None
    coin_b: Optional[str] = None


@dataclass(frozen=True)
class TickUpdated:
    origin: EventOrigin
    exchange: str
    pool_address: str
    tick_index: int
    liquidity_net: int
    liquidity_gross: int


@dataclass(frozen=True)
class LendingMarketParamsChanged:
    origin: EventOrigin
    platform: str
    coin_type: str
    ltv: Optional[Decimal] = None
    liquidation_threshold: Optional[Decimal] = None
    borrow_weight: Optional[Decimal] = None
    liquidation_ratio: Optional[Decimal] = None
    liquidation_penalty: Optional[Decimal] = None
    liquidation_fee: Optional[Decimal] = None
    supply_amount: Optional[int] = None
    borrow_amount: Optional[int] = None
    ctoken_supply: Optional[int] = None
    oracle_feed_id: Optional[str] = None
    decimals: Optional[int] = None


@dataclass(frozen=True)
class PositionChange:
    origin: EventOrigin
    platform: str
    borrower: str
    coin_type: str
    amount: int
    obligation_id: Optional[str] = None

    # Overridden per variant
    side = "deposit"
    sign = 1

    @property
    def delta(self) -> int:
        return self.sign * self.amount


@dataclass(frozen=True)
class PositionDeposit(PositionChange):
    side = "deposit"
    sign = 1


@dataclass(frozen=True)
class PositionWithdraw(PositionChange):
    side = "deposit"
    sign = -1


@dataclass(frozen=True)
class PositionBorrow(PositionChange):
    side = "borrow"
    sign = 1


@dataclass(frozen=True)
class PositionRepay(PositionChange):
    side = "borrow"
    sign = -1


@dataclass(frozen=True)
class LiquidationOccurred:
    origin: EventOrigin
    platform: str
    borrower: str
    liquidator: str
    obligation_id: Optional[str] = None
    debt_coin: Optional[str] = None
    collateral_coin: Optional[str] = None
    repay_amount: Optional[int] = None
    seize_amount: Optional[int] = None


@dataclass(frozen=True)
class PriceUpdated:
    origin: EventOrigin
    source: str  # 'pyth', 'hermes', 'supra', 'switchboard'
    price: Decimal
    observed_at: datetime
    coin_type: Optional[str] = None  # resolved from feed_id when absent
    feed_id: Optional[str] = None


@dataclass(frozen=True)
class Unrecognized:
    origin: EventOrigin
    type_tag: str
    reason: str


DecodedEvent = Union[
    PoolCreated,
    PoolStateChanged,
    TickUpdated,
    LendingMarketParamsChanged,
    PositionDeposit,
    PositionBorrow,
    PositionRepay,
    PositionWithdraw,
    LiquidationOccurred,
    PriceUpdated,
    Unrecognized,
]

POOL_EVENTS = (PoolCreated, PoolStateChanged, TickUpdated)
LENDING_EVENTS = (
    LendingMarketParamsChanged,
    PositionChange,
    LiquidationOccurred,
    PriceUpdated,
)


class BorrowerStatus(IntEnum):
    ACTIVE = 0
    LIQUIDATABLE = 1
    CLOSED = 2


@dataclass
class LiquidationOrder:
    """Decision record handed to the executor."""

    platform: str
    borrower: str
    health_factor: Decimal
    debt_coin: str
    collateral_coin: str
    amount_repay: int
    source: str = "risk-engine"
    id: Optional[int] = None
    tx_digest: Optional[str] = None
    checkpoint: Optional[int] = None
    bot_address: Optional[str] = None
    finalized_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class ArbitrageOpportunity:
    coins: tuple[str, ...]  # start coin repeated at the end
    pools: tuple[str, ...]
    rate: Decimal  # cumulative net rate along the cycle
    profit: Decimal  # rate - 1
    log_return: Decimal

    @property
    def hops(self) -> int:
        return len(self.pools)


@dataclass
class MetricsSnapshot:
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


# Persisted entity views, as read back from the state store


@dataclass
class Pool:
    exchange: str
    address: str
    coin_a: Optional[str]
    coin_b: Optional[str]
    reserve_a: Optional[int] = None
    reserve_b: Optional[int] = None
    liquidity: Optional[int] = None
    sqrt_price: Optional[int] = None
    tick_index: Optional[int] = None
    tick_spacing: Optional[int] = None
    fee_rate: Optional[int] = None
    is_paused: bool = False


@dataclass
class LendingMarket:
    platform: str
    coin_type: str
    ltv: Optional[Decimal] = None
    liquidation_threshold: Optional[Decimal] = None
    borrow_weight: Optional[Decimal] = None
    liquidation_ratio: Optional[Decimal] = None
    liquidation_penalty: Optional[Decimal] = None
    liquidation_fee: Optional[Decimal] = None
    supply_amount: Optional[int] = None
    borrow_amount: Optional[int] = None
    ctoken_supply: Optional[int] = None
    oracle_feed_id: Optional[str] = None


@dataclass
class Coin:
    coin_type: str
    decimals: Optional[int] = None
    symbol: Optional[str] = None
    pyth_feed_id: Optional[str] = None
    prices: dict[str, Decimal] = field(default_factory=dict)  # source -> price


@dataclass
class Borrower:
    platform: str
    address: str
    obligation_id: Optional[str] = None
    status: BorrowerStatus = BorrowerStatus.ACTIVE
    health_factor: Optional[Decimal] = None
    updated_at: Optional[datetime] = None


@dataclass
class UserPosition:
    platform: str
    address: str
    coin_type: str
    side: str  # 'deposit' or 'borrow'
    amount: int
    obligation_id: Optional[str] = None
