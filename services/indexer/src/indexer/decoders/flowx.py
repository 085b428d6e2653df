"""FlowX CLMM pools."""

from services.indexer.src.indexer.decoders.codec import PayloadReader
from services.indexer.src.indexer.decoders.config import FLOWX_EXCHANGE, DecoderConfig
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

    return PoolStateChanged(
        origin=origin,
        exchange=FLOWX_EXCHANGE,
        pool_address=pool_id,
        liquidity=liquidity,
        sqrt_price=sqrt_price_after,
        tick_index=tick_index,
    )


def decode_modify_liquidity(
    reader: PayloadReader, raw: RawEvent, origin: EventOrigin
) -> PoolStateChanged:
    reader.address()  # sender
    pool_id = reader.address()
    reader.address()  # position_id
    reader.i32_bits()  # tick_lower_index
    reader.i32_bits()  # tick_upper_index
    reader.i128_bits()  # liquidity_delta
    reader.u64()  # amount_x
    reader.u64()  # amount_y

    return PoolStateChanged(origin=origin, exchange=FLOWX_EXCHANGE, pool_address=pool_id)


def register_flowx(registry: DecoderRegistry, config: DecoderConfig) -> None:
    for package_id in config.package_ids(FLOWX_EXCHANGE):
        registry.register(package_id, "pool", "Swap", decode_swap, FLOWX_EXCHANGE)
        registry.register(
            package_id, "pool", "ModifyLiquidity", decode_modify_liquidity, FLOWX_EXCHANGE
        )
