from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    UniqueConstraint,
)

metadata = MetaData()

# On-chain integer amounts (u64/u128/u256) are stored as decimal strings;
# ratios and prices as Numeric.
AMOUNT = String(80)
ADDRESS = String(66)
COIN_TYPE = String(256)

pools = Table(
    "pools",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("exchange", String(32), nullable=False),
    Column("address", ADDRESS, nullable=False),
    # Null until the creation event has been seen
    Column("coin_a", COIN_TYPE, nullable=True),
    Column("coin_b", COIN_TYPE, nullable=True),
    Column("reserve_a", AMOUNT, nullable=True),
    Column("reserve_b", AMOUNT, nullable=True),
    Column("liquidity", AMOUNT, nullable=True),
    Column("current_sqrt_price", AMOUNT, nullable=True),
    Column("current_tick_index", Integer, nullable=True),
    Column("tick_spacing", Integer, nullable=True),
    Column("fee_rate", BigInteger, nullable=True),
    Column("is_pause", Boolean, nullable=False, default=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    UniqueConstraint("address", name="uq_pools_address"),
    Index("ix_pools_exchange", "exchange"),
)

pool_ticks = Table(
    "pool_ticks",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("address", ADDRESS, nullable=False),
    Column("tick_index", Integer, nullable=False),
    Column("liquidity_net", AMOUNT, nullable=False),
    Column("liquidity_gross", AMOUNT, nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    UniqueConstraint("address", "tick_index", name="uq_pool_ticks_key"),
)

shared_objects = Table(
    "shared_objects",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("object_id", ADDRESS, nullable=False),
    Column("initial_shared_version", BigInteger, nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    UniqueConstraint("object_id", name="uq_shared_objects_object_id"),
)

coins = Table(
    "coins",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("coin_type", COIN_TYPE, nullable=False),
    Column("decimals", Integer, nullable=True),
    Column("symbol", String(32), nullable=True),
    Column("name", String(128), nullable=True),
    Column("pyth_feed_id", ADDRESS, nullable=True),
    # One column per oracle source; a source never overwrites another
    Column("price_pyth", Numeric(38, 18), nullable=True),
    Column("price_hermes", Numeric(38, 18), nullable=True),
    Column("price_supra", Numeric(38, 18), nullable=True),
    Column("price_switchboard", Numeric(38, 18), nullable=True),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    UniqueConstraint("coin_type", name="uq_coins_coin_type"),
    Index("ix_coins_pyth_feed_id", "pyth_feed_id"),
)

PRICE_SOURCES = ("pyth", "hermes", "supra", "switchboard")

lending_markets = Table(
    "lending_markets",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("platform", String(32), nullable=False),
    Column("coin_type", COIN_TYPE, nullable=False),
    Column("ltv", Numeric(38, 18), nullable=True),
    Column("liquidation_threshold", Numeric(38, 18), nullable=True),
    Column("borrow_weight", Numeric(38, 18), nullable=True),
    Column("liquidation_ratio", Numeric(38, 18), nullable=True),
    Column("liquidation_penalty", Numeric(38, 18), nullable=True),
    Column("liquidation_fee", Numeric(38, 18), nullable=True),
    Column("supply_amount", AMOUNT, nullable=True),
    Column("borrow_amount", AMOUNT, nullable=True),
    Column("ctoken_supply", AMOUNT, nullable=True),
    Column("oracle_feed_id", ADDRESS, nullable=True),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    UniqueConstraint("platform", "coin_type", name="uq_lending_markets_key"),
)

borrowers = Table(
    "borrowers",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("platform", String(32), nullable=False),
    Column("address", ADDRESS, nullable=False),
    Column("obligation_id", ADDRESS, nullable=True),
    # BorrowerStatus: 0 active, 1 liquidatable, 2 closed
    Column("status", Integer, nullable=False, default=0),
    Column("health_factor", Numeric(38, 18), nullable=True),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    UniqueConstraint("platform", "address", name="uq_borrowers_key"),
    Index("ix_borrowers_obligation", "platform", "obligation_id"),
    Index("ix_borrowers_status", "status"),
)


def _position_table(name: str) -> Table:
    return Table(
        name,
        metadata,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("platform", String(32), nullable=False),
        Column("address", ADDRESS, nullable=False),
        Column("coin_type", COIN_TYPE, nullable=False),
        Column("amount", AMOUNT, nullable=False),
        Column("obligation_id", ADDRESS, nullable=True),
        # Cursor of the last applied delta; older events are skipped on replay
        Column("last_checkpoint", BigInteger, nullable=False),
        Column("last_event_index", Integer, nullable=False),
        Column("updated_at", DateTime(timezone=True), nullable=False),
        UniqueConstraint("platform", "address", "coin_type", name=f"uq_{name}_key"),
        Index(f"ix_{name}_wallet", "platform", "address"),
    )


user_deposits = _position_table("user_deposits")
user_borrows = _position_table("user_borrows")

liquidation_events = Table(
    "liquidation_events",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("tx_digest", String(64), nullable=False),
    Column("checkpoint", BigInteger, nullable=False),
    Column("platform", String(32), nullable=False),
    Column("borrower", ADDRESS, nullable=False),
    Column("liquidator", ADDRESS, nullable=False),
    Column("obligation_id", ADDRESS, nullable=True),
    Column("debt_coin", COIN_TYPE, nullable=True),
    Column("collateral_coin", COIN_TYPE, nullable=True),
    Column("repay_amount", AMOUNT, nullable=True),
    Column("seize_amount", AMOUNT, nullable=True),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    UniqueConstraint("tx_digest", name="uq_liquidation_events_tx_digest"),
    Index("ix_liquidation_events_borrower", "platform", "borrower"),
)

liquidation_orders = Table(
    "liquidation_orders",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("platform", String(32), nullable=False),
    Column("borrower", ADDRESS, nullable=False),
    Column("hf", Numeric(38, 18), nullable=False),
    Column("debt_coin", COIN_TYPE, nullable=False),
    Column("collateral_coin", COIN_TYPE, nullable=False),
    Column("amount_repay", AMOUNT, nullable=False),
    # 'risk-engine' or 'manual'
    Column("source", String(32), nullable=False),
    # Written back by the executor
    Column("tx_digest", String(64), nullable=True),
    Column("checkpoint", BigInteger, nullable=True),
    Column("bot_address", ADDRESS, nullable=True),
    Column("finalized_at", DateTime(timezone=True), nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    Index("ix_liquidation_orders_borrower", "platform", "borrower"),
)

metrics = Table(
    "metrics",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("latest_seq_number", BigInteger, nullable=False),
    Column("total_checkpoints", BigInteger, nullable=False),
    Column("total_processed_checkpoints", BigInteger, nullable=False),
    # Seconds
    Column("min_processing_time", Float, nullable=False),
    Column("avg_processing_time", Float, nullable=False),
    Column("max_processing_time", Float, nullable=False),
    Column("min_lagging", Float, nullable=False),
    Column("avg_lagging", Float, nullable=False),
    Column("max_lagging", Float, nullable=False),
    Column("decode_failures", BigInteger, nullable=False, default=0),
    Column("invariant_violations", BigInteger, nullable=False, default=0),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    UniqueConstraint("latest_seq_number", name="uq_metrics_latest_seq_number"),
)

# Last checkpoint whose events were committed to this database
indexer_cursor = Table(
    "indexer_cursor",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(32), nullable=False),
    Column("last_checkpoint", BigInteger, nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    UniqueConstraint("name", name="uq_indexer_cursor_name"),
)
