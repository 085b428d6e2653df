"""Obric oracle-priced pools.

Swaps name the pool's coins but carry no reserves or price, so they register
the pool and its coins without giving it graph edges.
"""

from services.indexer.src.indexer.decoders.codec import PayloadReader
from services.indexer.src.indexer.decoders.config import OBRIC_EXCHANGE, DecoderConfig
from services.indexer.src.indexer.decoders.registry import DecoderRegistry
from services.indexer.src.indexer.domain.models import (
    EventOrigin,
    PoolStateChanged,
    RawEvent,
)


def decode_swap(reader: PayloadReader, raw: RawEvent, origin: EventOrigin) -> PoolStateChanged:
    pool_id = reader.address()
    reader.u64()  # amount_in
    reader.u64()  # amount_out
    reader.boolean()  # a2b
    reader.boolean()  # by_amount_in
    coin_a = reader.type_name()
    coin_b = reader.type_name()

    return PoolStateChanged(
        origin=origin,
        exchange=OBRIC_EXCHANGE,
        pool_address=pool_id,
        coin_a=coin_a,
        coin_b=coin_b,
    )


def register_obric(registry: DecoderRegistry, config: DecoderConfig) -> None:
    for package_id in config.package_ids(OBRIC_EXCHANGE):
        registry.register(package_id, "obric", "ObricSwapEvent", decode_swap, OBRIC_EXCHANGE)
