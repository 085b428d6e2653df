"""Pyth price feed updates.

The event carries the feed id, not a coin type; the state store resolves the
coin through `coins.pyth_feed_id` / `lending_markets.oracle_feed_id`.
"""

from datetime import datetime, timezone
from decimal import Decimal

from services.indexer.src.indexer.decoders.codec import PayloadReader
from services.indexer.src.indexer.decoders.config import PYTH_ORACLE, DecoderConfig
from services.indexer.src.indexer.decoders.registry import DecoderRegistry
from services.indexer.src.indexer.domain.models import EventOrigin, PriceUpdated, RawEvent


def _read_price(reader: PayloadReader) -> tuple[int, int, int]:
    price = reader.i64_signed()
    reader.u64()  # conf
    expo = reader.i64_signed()
    timestamp = reader.u64()
    return price, expo, timestamp


def to_price(mantissa: int, expo: int) -> Decimal:
    return Decimal(mantissa).scaleb(expo)


def decode_price_feed_update(
    reader: PayloadReader, raw: RawEvent, origin: EventOrigin
) -> PriceUpdated:
    feed_id = reader.byte_vector()
    if len(feed_id) != 32:
        raise ValueError(f"Invalid price identifier length {len(feed_id)}")
    price, expo, timestamp = _read_price(reader)
    _read_price(reader)  # ema_price
    reader.u64()  # event timestamp

    if price <= 0:
        raise ValueError(f"Non-positive price {price}")

    return PriceUpdated(
        origin=origin,
        source=PYTH_ORACLE,
        price=to_price(price, expo),
        observed_at=datetime.fromtimestamp(timestamp, tz=timezone.utc),
        feed_id="0x" + feed_id.hex(),
    )


def register_pyth(registry: DecoderRegistry, config: DecoderConfig) -> None:
    for package_id in config.package_ids(PYTH_ORACLE):
        registry.register(
            package_id, "event", "PriceFeedUpdateEvent", decode_price_feed_update, PYTH_ORACLE
        )
