"""Off-chain price attestations (Pyth Hermes) fed into the pipeline as PriceUpdated events."""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Protocol

import httpx

from services.indexer.src.indexer.decoders.pyth import to_price
from services.indexer.src.indexer.domain.models import EventOrigin, PriceUpdated

logger = logging.getLogger(__name__)

HERMES_SOURCE = "hermes"

# Replaced with the commit position when the pipeline stamps external events
EXTERNAL_ORIGIN = EventOrigin(checkpoint=0, tx_digest="external", event_index=0)


class PriceFeedSource(Protocol):
    def poll(self) -> list[PriceUpdated]:
        ...


def _normalize_feed_id(feed_id: str) -> str:
    feed_id = feed_id.lower()
    return feed_id if feed_id.startswith("0x") else f"0x{feed_id}"


class HermesPriceFeed:
    """Pulls the latest prices for a set of Pyth feeds from Hermes.

    `feeds` maps feed id to coin type. A callable is re-read on every poll,
    so feeds registered by later checkpoints are picked up.
    """

    def __init__(
        self,
        base_url: str,
        feeds: dict[str, str] | Callable[[], dict[str, str]],
        timeout: float = 10.0,
        client: httpx.Client | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._feeds = feeds
        self._client = client or httpx.Client(timeout=timeout)

    def current_feeds(self) -> dict[str, str]:
        feeds = self._feeds() if callable(self._feeds) else self._feeds
        return {_normalize_feed_id(k): v for k, v in feeds.items()}

    def fetch_latest(self, feed_ids: Iterable[str]) -> dict[str, Any]:
        params = [("ids[]", feed_id) for feed_id in feed_ids]
        response = self._client.get(f"{self.base_url}/v2/updates/price/latest", params=params)
        response.raise_for_status()
        return response.json()

    def poll(self) -> list[PriceUpdated]:
        feeds = self.current_feeds()
        if not feeds:
            return []
        try:
            data = self.fetch_latest(feeds)
        except httpx.HTTPError as e:
            logger.warning(f"Hermes request failed: {e}")
            return []

        updates = []
        for item in data.get("parsed", []):
            feed_id = _normalize_feed_id(item["id"])
            coin_type = feeds.get(feed_id)
            price = item.get("price") or {}
            mantissa = int(price.get("price", 0))
            if coin_type is None or mantissa <= 0:
                continue
            updates.append(
                PriceUpdated(
                    origin=EXTERNAL_ORIGIN,
                    source=HERMES_SOURCE,
                    price=to_price(mantissa, int(price["expo"])),
                    observed_at=datetime.fromtimestamp(int(price["publish_time"]), tz=timezone.utc),
                    coin_type=coin_type,
                    feed_id=feed_id,
                )
            )
        return updates


class MockPriceFeed:
    """Price feed for tests: returns queued batches in order."""

    def __init__(self, batches: list[list[PriceUpdated]] | None = None):
        self.batches = list(batches or [])

    def poll(self) -> list[PriceUpdated]:
        return self.batches.pop(0) if self.batches else []
