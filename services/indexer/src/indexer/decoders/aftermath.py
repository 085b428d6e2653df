"""Aftermath weighted pools.

Swap events list the pool's reserves in the pool's coin order but do not name
that order, so reserves are taken for two-coin pools only. Coin types come
from a pool import. Pools are priced as constant product.
"""

from services.indexer.src.indexer.decoders.codec import PayloadReader
from services.indexer.src.indexer.decoders.config import AFTERMATH_EXCHANGE, DecoderConfig
from services.indexer.src.indexer.decoders.registry import DecoderRegistry
from services.indexer.src.indexer.domain.models import (
    EventOrigin,
    PoolStateChanged,
    RawEvent,
)


def decode_swap(reader: PayloadReader, raw: RawEvent, origin: EventOrigin) -> PoolStateChanged:
    pool_id = reader.address()
    reader.address()  # issuer
    reader.option(reader.address)  # referrer
    reader.vector(reader.string)  # types_in
    reader.vector(reader.u64)  # amounts_in
    reader.vector(reader.string)  # types_out
    reader.vector(reader.u64)  # amounts_out
    reserves = reader.vector(reader.u64)

    reserve_a = reserve_b = None
    if len(reserves) == 2:
        reserve_a, reserve_b = reserves

    return PoolStateChanged(
        origin=origin,
        exchange=AFTERMATH_EXCHANGE,
        pool_address=pool_id,
        reserve_a=reserve_a,
        reserve_b=reserve_b,
    )


def register_aftermath(registry: DecoderRegistry, config: DecoderConfig) -> None:
    for package_id in config.package_ids(AFTERMATH_EXCHANGE):
        registry.register(package_id, "events", "SwapEventV2", decode_swap, AFTERMATH_EXCHANGE)
