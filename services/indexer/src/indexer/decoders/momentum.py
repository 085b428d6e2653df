"""Momentum CLMM pools. Swap and liquidity events report the pool's reserves."""

from services.indexer.src.indexer.decoders.codec import PayloadReader
from services.indexer.src.indexer.decoders.config import MOMENTUM_EXCHANGE, DecoderConfig
from services.indexer.src.indexer.decoders.registry import DecoderRegistry
from services.indexer.src.indexer.domain.models import (
    EventOrigin,
    PoolStateChanged,
    RawEvent,
)


def decode_swap(reader: PayloadReader, raw: RawEvent, origin: EventOrigin) -> PoolStateChanged:
    reader.address()  # sender
    pool_id = reader.address()
    reader.boolean()  # x_for_y
    reader.u64()  # amount_x
    reader.u64()  # amount_y
    reader.u128()  # sqrt_price_before
    sqrt_price_after = reader.u128()
    liquidity = reader.u128()
    tick_index = reader.i32_bits()
    reader.u64()  # fee_amount
    reader.u64()  # protocol_fee
    reserve_x = reader.u64()
    reserve_y = reader.u64()

    return PoolStateChanged(
        origin=origin,
        exchange=MOMENTUM_EXCHANGE,
        pool_address=pool_id,
        reserve_a=reserve_x,
        reserve_b=reserve_y,
        liquidity=liquidity,
        sqrt_price=sqrt_price_after,
        tick_index=tick_index,
    )


def decode_liquidity_change(
    reader: PayloadReader, raw: RawEvent, origin: EventOrigin
) -> PoolStateChanged:
    """AddLiquidityEvent and RemoveLiquidityEvent share one layout."""
    reader.address()  # sender
    pool_id = reader.address()
    reader.address()  # position_id
    reader.u128()  # liquidity delta
    reader.u64()  # amount_x
    reader.u64()  # amount_y
    reader.i32_bits()  # upper_tick_index
    reader.i32_bits()  # lower_tick_index
    reserve_x = reader.u64()
    reserve_y = reader.u64()

    return PoolStateChanged(
        origin=origin,
        exchange=MOMENTUM_EXCHANGE,
        pool_address=pool_id,
        reserve_a=reserve_x,
        reserve_b=reserve_y,
    )


def register_momentum(registry: DecoderRegistry, config: DecoderConfig) -> None:
    for package_id in config.package_ids(MOMENTUM_EXCHANGE):
        registry.register(package_id, "trade", "SwapEvent", decode_swap, MOMENTUM_EXCHANGE)
        for event_type in ("AddLiquidityEvent", "RemoveLiquidityEvent"):
            registry.register(
                package_id, "liquidity", event_type, decode_liquidity_change, MOMENTUM_EXCHANGE
            )
