"""Turbos concentrated-liquidity pools."""

from services.indexer.src.indexer.decoders.codec import PayloadReader
from services.indexer.src.indexer.decoders.config import TURBOS_EXCHANGE, DecoderConfig
from services.indexer.src.indexer.decoders.registry import DecoderRegistry
from services.indexer.src.indexer.domain.models import (
    EventOrigin,
    PoolStateChanged,
    RawEvent,
)


def decode_swap(reader: PayloadReader, raw: RawEvent, origin: EventOrigin) -> PoolStateChanged:
    pool_id = reader.address()
    reader.address()  # recipient
    reader.u64()  # amount_a
    reader.u64()  # amount_b
    liquidity = reader.u128()
    tick_current = reader.i32_bits()
    reader.i32_bits()  # tick_pre_index
    sqrt_price = reader.u128()
    reader.u64()  # protocol_fee
    reader.u64()  # fee_amount
    reader.boolean()  # a_to_b
    reader.boolean()  # is_exact_in

    return PoolStateChanged(
        origin=origin,
        exchange=TURBOS_EXCHANGE,
        pool_address=pool_id,
        liquidity=liquidity,
        sqrt_price=sqrt_price,
        tick_index=tick_current,
    )


def decode_position_change(
    reader: PayloadReader, raw: RawEvent, origin: EventOrigin
) -> PoolStateChanged:
    """MintEvent and BurnEvent share one layout and carry no pool totals."""
    pool_id = reader.address()
    reader.address()  # owner
    reader.i32_bits()  # tick_lower_index
    reader.i32_bits()  # tick_upper_index
    reader.u64()  # amount_a
    reader.u64()  # amount_b
    reader.u128()  # liquidity_delta

    return PoolStateChanged(origin=origin, exchange=TURBOS_EXCHANGE, pool_address=pool_id)


def register_turbos(registry: DecoderRegistry, config: DecoderConfig) -> None:
    for package_id in config.package_ids(TURBOS_EXCHANGE):
        registry.register(package_id, "pool", "SwapEvent", decode_swap, TURBOS_EXCHANGE)
        registry.register(package_id, "pool", "MintEvent", decode_position_change, TURBOS_EXCHANGE)
        registry.register(package_id, "pool", "BurnEvent", decode_position_change, TURBOS_EXCHANGE)
