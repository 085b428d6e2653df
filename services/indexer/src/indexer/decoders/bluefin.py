"""Bluefin spot CLMM pools."""

from services.indexer.src.indexer.decoders.codec import PayloadReader
from services.indexer.src.indexer.decoders.config import BLUEFIN_EXCHANGE, DecoderConfig
from services.indexer.src.indexer.decoders.registry import DecoderRegistry
from services.indexer.src.indexer.domain.models import (
    EventOrigin,
    PoolCreated,
    PoolStateChanged,
    RawEvent,
    TickUpdated,
)


def decode_pool_created(reader: PayloadReader, raw: RawEvent, origin: EventOrigin) -> PoolCreated:
    pool_id = reader.address()
    coin_a = reader.type_name()
    reader.string()  # coin_a_symbol
    decimals_a = reader.u8()
    reader.string()  # coin_a_url
    coin_b = reader.type_name()
    reader.string()  # coin_b_symbol
    decimals_b = reader.u8()
    reader.string()  # coin_b_url
    current_sqrt_price = reader.u128()
    current_tick = reader.i32_bits()
    tick_spacing = reader.u32()
    fee_rate = reader.u64()
    reader.u64()  # protocol_fee_share

    return PoolCreated(
        origin=origin,
        exchange=BLUEFIN_EXCHANGE,
        pool_address=pool_id,
        coin_a=coin_a,
        coin_b=coin_b,
        decimals_a=decimals_a,
        decimals_b=decimals_b,
        tick_spacing=tick_spacing,
        fee_rate=fee_rate,
        sqrt_price=current_sqrt_price,
        tick_index=current_tick,
    )


def decode_asset_swap(reader: PayloadReader, raw: RawEvent, origin: EventOrigin) -> PoolStateChanged:
    pool_id = reader.address()
    reader.boolean()  # a2b
    reader.u64()  # amount_in
    reader.u64()  # amount_out
    pool_coin_a_amount = reader.u64()
    pool_coin_b_amount = reader.u64()
    reader.u64()  # fee
    reader.u128()  # before_liquidity
    after_liquidity = reader.u128()
    reader.u128()  # before_sqrt_price
    after_sqrt_price = reader.u128()
    current_tick = reader.i32_bits()
    reader.boolean()  # exceeded
    reader.u128()  # sequence_number

    return PoolStateChanged(
        origin=origin,
        exchange=BLUEFIN_EXCHANGE,
        pool_address=pool_id,
        reserve_a=pool_coin_a_amount,
        reserve_b=pool_coin_b_amount,
        liquidity=after_liquidity,
        sqrt_price=after_sqrt_price,
        tick_index=current_tick,
    )


def decode_tick_update(reader: PayloadReader, raw: RawEvent, origin: EventOrigin) -> TickUpdated:
    pool_id = reader.address()
    index = reader.i32_bits()
    liquidity_gross = reader.u128()
    liquidity_net = reader.i128_bits()

    return TickUpdated(
        origin=origin,
        exchange=BLUEFIN_EXCHANGE,
        pool_address=pool_id,
        tick_index=index,
        liquidity_net=liquidity_net,
        liquidity_gross=liquidity_gross,
    )


def register_bluefin(registry: DecoderRegistry, config: DecoderConfig) -> None:
    for package_id in config.package_ids(BLUEFIN_EXCHANGE):
        registry.register(package_id, "events", "PoolCreated", decode_pool_created, BLUEFIN_EXCHANGE)
        registry.register(package_id, "events", "AssetSwap", decode_asset_swap, BLUEFIN_EXCHANGE)
        registry.register(
            package_id, "events", "PoolTickUpdate", decode_tick_update, BLUEFIN_EXCHANGE
        )
