"""Bluemove constant-product pools."""

from services.indexer.src.indexer.decoders.codec import PayloadReader
from services.indexer.src.indexer.decoders.config import BLUEMOVE_EXCHANGE, DecoderConfig
from services.indexer.src.indexer.decoders.registry import DecoderRegistry
from services.indexer.src.indexer.domain.models import (
    EventOrigin,
    PoolCreated,
    PoolStateChanged,
    RawEvent,
)

# 0.3% swap fee, parts per million
BLUEMOVE_FEE_RATE = 3_000


def decode_created_pool(reader: PayloadReader, raw: RawEvent, origin: EventOrigin) -> PoolCreated:
    pool_id = reader.address()
    reader.address()  # creator
    token_x = reader.type_name()
    token_y = reader.type_name()
    amount_x = reader.u64()
    amount_y = reader.u64()
    reader.u64()  # lsp_balance
    shared_version = reader.u64()

    return PoolCreated(
        origin=origin,
        exchange=BLUEMOVE_EXCHANGE,
        pool_address=pool_id,
        coin_a=token_x,
        coin_b=token_y,
        fee_rate=BLUEMOVE_FEE_RATE,
        initial_shared_version=shared_version,
        reserve_a=amount_x,
        reserve_b=amount_y,
    )


def decode_swap(reader: PayloadReader, raw: RawEvent, origin: EventOrigin) -> PoolStateChanged:
    pool_id = reader.address()
    reader.address()  # user
    for _ in range(4):
        reader.string()  # token name
        reader.u64()  # amount
    reserve_x = reader.u64()
    reserve_y = reader.u64()

    return PoolStateChanged(
        origin=origin,
        exchange=BLUEMOVE_EXCHANGE,
        pool_address=pool_id,
        reserve_a=reserve_x,
        reserve_b=reserve_y,
    )


def register_bluemove(registry: DecoderRegistry, config: DecoderConfig) -> None:
    for package_id in config.package_ids(BLUEMOVE_EXCHANGE):
        registry.register(
            package_id, "swap", "Created_Pool_Event", decode_created_pool, BLUEMOVE_EXCHANGE
        )
        registry.register(package_id, "swap", "Swap_Event", decode_swap, BLUEMOVE_EXCHANGE)
