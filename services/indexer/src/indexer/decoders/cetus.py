"""Cetus concentrated-liquidity pools."""

from services.indexer.src.indexer.decoders.codec import PayloadReader
from services.indexer.src.indexer.decoders.config import CETUS_EXCHANGE, DecoderConfig
from services.indexer.src.indexer.decoders.registry import DecoderRegistry
from services.indexer.src.indexer.domain.models import (
    EventOrigin,
    PoolCreated,
    PoolStateChanged,
    RawEvent,
)


def decode_create_pool(reader: PayloadReader, raw: RawEvent, origin: EventOrigin) -> PoolCreated:
    pool_id = reader.address()
    coin_a = reader.type_name()
    coin_b = reader.type_name()
    tick_spacing = reader.u32()
    fee_rate = reader.u64()

    decimals_a = decimals_b = shared_version = None
    # Layout 2 adds coin decimals and the pool's initial shared version
    if reader.layout_version >= 2:
        decimals_a = reader.u8()
        decimals_b = reader.u8()
        shared_version = reader.u64()

    return PoolCreated(
        origin=origin,
        exchange=CETUS_EXCHANGE,
        pool_address=pool_id,
        coin_a=coin_a,
        coin_b=coin_b,
        decimals_a=decimals_a,
        decimals_b=decimals_b,
        tick_spacing=tick_spacing,
        fee_rate=fee_rate,
        initial_shared_version=shared_version,
    )


def decode_swap(reader: PayloadReader, raw: RawEvent, origin: EventOrigin) -> PoolStateChanged:
    reader.boolean()  # atob
    pool_id = reader.address()
    reader.address()  # partner
    reader.u64()  # amount_in
    reader.u64()  # amount_out
    reader.u64()  # ref_amount
    reader.u64()  # fee_amount
    vault_a_amount = reader.u64()
    vault_b_amount = reader.u64()
    reader.u128()  # before_sqrt_price
    after_sqrt_price = reader.u128()
    reader.u64()  # steps

    return PoolStateChanged(
        origin=origin,
        exchange=CETUS_EXCHANGE,
        pool_address=pool_id,
        reserve_a=vault_a_amount,
        reserve_b=vault_b_amount,
        sqrt_price=after_sqrt_price,
    )


def decode_liquidity_change(
    reader: PayloadReader, raw: RawEvent, origin: EventOrigin
) -> PoolStateChanged:
    """AddLiquidityEvent and RemoveLiquidityEvent share one layout."""
    pool_id = reader.address()
    reader.address()  # position
    reader.i32_bits()  # tick_lower
    reader.i32_bits()  # tick_upper
    reader.u128()  # liquidity delta
    after_liquidity = reader.u128()
    reader.u64()  # amount_a
    reader.u64()  # amount_b

    return PoolStateChanged(
        origin=origin,
        exchange=CETUS_EXCHANGE,
        pool_address=pool_id,
        liquidity=after_liquidity,
    )


def register_cetus(registry: DecoderRegistry, config: DecoderConfig) -> None:
    for package_id in config.package_ids(CETUS_EXCHANGE):
        registry.register(
            package_id, "factory", "CreatePoolEvent", decode_create_pool, CETUS_EXCHANGE,
            versions=(1, 2),
        )
        registry.register(package_id, "pool", "SwapEvent", decode_swap, CETUS_EXCHANGE)
        registry.register(
            package_id, "pool", "AddLiquidityEvent", decode_liquidity_change, CETUS_EXCHANGE
        )
        registry.register(
            package_id, "pool", "RemoveLiquidityEvent", decode_liquidity_change, CETUS_EXCHANGE
        )
