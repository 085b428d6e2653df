"""Borrower risk engine.

Keeps per-borrower collateral/debt, market parameters, coin decimals and
per-source prices in memory. State is bootstrapped from the store and then
advanced only by committed events, so a recomputation never sees data from
beyond the current commit boundary.
"""

import logging
import threading
from collections import defaultdict
from decimal import Decimal
from typing import Callable, Iterable

from services.indexer.src.indexer.db.store import StateStore
from services.indexer.src.indexer.domain.health_factor import (
    AssetPosition,
    BorrowerHealth,
    get_policy,
)
from services.indexer.src.indexer.domain.models import (
    BorrowerStatus,
    DecodedEvent,
    LendingMarket,
    LendingMarketParamsChanged,
    LiquidationOrder,
    PositionChange,
    PriceUpdated,
)

logger = logging.getLogger(__name__)

BorrowerKey = tuple[str, str]  # (platform, borrower)

MARKET_FIELDS = (
    "ltv",
    "liquidation_threshold",
    "borrow_weight",
    "liquidation_ratio",
    "liquidation_penalty",
    "liquidation_fee",
    "supply_amount",
    "borrow_amount",
    "ctoken_supply",
    "oracle_feed_id",
)


class RiskEngine:
    def __init__(
        self,
        store: StateStore,
        price_source_priority: list[str],
        order_sink: Callable[[LiquidationOrder], None] | None = None,
    ):
        self.store = store
        self.price_source_priority = price_source_priority
        self.order_sink = order_sink
        self._lock = threading.Lock()

        # (platform, borrower) -> coin_type -> [collateral, debt]
        self._positions: dict[BorrowerKey, dict[str, list[int]]] = {}
        self._markets: dict[tuple[str, str], LendingMarket] = {}
        self._decimals: dict[str, int] = {}
        self._prices: dict[str, dict[str, Decimal]] = defaultdict(dict)
        self._status: dict[BorrowerKey, BorrowerStatus] = {}
        self._health_factors: dict[BorrowerKey, Decimal | None] = {}
        # coin_type -> borrowers holding it, for price-triggered recomputation
        self._holders: dict[str, set[BorrowerKey]] = defaultdict(set)

    def bootstrap(self) -> None:
        """Load the latest committed state from the store."""
        with self._lock:
            for p in self.store.positions.list_positions():
                self._set_amount((p.platform, p.address), p.coin_type, p.side, p.amount)
            for m in self.store.markets.list_markets():
                self._markets[(m.platform, m.coin_type)] = m
            for c in self.store.coins.list_coins():
                if c.decimals is not None:
                    self._decimals[c.coin_type] = c.decimals
                self._prices[c.coin_type].update(c.prices)
            for b in self.store.borrowers.list_borrowers():
                self._status[(b.platform, b.address)] = b.status
                self._health_factors[(b.platform, b.address)] = b.health_factor
        logger.info(
            f"Risk engine bootstrapped: {len(self._positions)} borrowers, "
            f"{len(self._markets)} markets"
        )

    def load_borrower(self, platform: str, borrower: str) -> None:
        """Load only what one borrower's health needs from the store."""
        with self._lock:
            for p in self.store.positions.get_positions(platform, borrower):
                self._set_amount((platform, borrower), p.coin_type, p.side, p.amount)
                market = self.store.markets.get_market(platform, p.coin_type)
                if market is not None:
                    self._markets[(platform, p.coin_type)] = market
                coin = self.store.coins.get_coin(p.coin_type)
                if coin is not None:
                    if coin.decimals is not None:
                        self._decimals[coin.coin_type] = coin.decimals
                    self._prices[coin.coin_type].update(coin.prices)

    def handle(self, event: DecodedEvent) -> list[LiquidationOrder]:
        """Apply one committed event and recompute the borrowers it affects."""
        with self._lock:
            affected = self._apply(event)
            orders = []
            for key in sorted(affected):
                order = self._recompute(key)
                if order is not None:
                    orders.append(order)
        for order in orders:
            if self.order_sink:
                self.order_sink(order)
        return orders

    def handle_all(self, events: Iterable[DecodedEvent]) -> list[LiquidationOrder]:
        orders = []
        for event in events:
            orders.extend(self.handle(event))
        return orders

    def health(self, platform: str, borrower: str) -> BorrowerHealth | None:
        """Current health for one borrower, or None if data is missing."""
        with self._lock:
            return self._build_health((platform, borrower))

    def status(self, platform: str, borrower: str) -> BorrowerStatus | None:
        with self._lock:
            return self._status.get((platform, borrower))

    def price(self, coin_type: str) -> Decimal | None:
        """First available price by source priority."""
        prices = self._prices.get(coin_type, {})
        for source in self.price_source_priority:
            if source in prices:
                return prices[source]
        return None

    def _set_amount(self, key: BorrowerKey, coin_type: str, side: str, amount: int) -> None:
        amounts = self._positions.setdefault(key, {}).setdefault(coin_type, [0, 0])
        amounts[0 if side == "deposit" else 1] = amount
        self._holders[coin_type].add(key)

    def _apply(self, event: DecodedEvent) -> set[BorrowerKey]:
        if isinstance(event, PositionChange):
            key = (event.platform, event.borrower)
            amounts = self._positions.get(key, {}).get(event.coin_type, [0, 0])
            index = 0 if event.side == "deposit" else 1
            self._set_amount(key, event.coin_type, event.side, amounts[index] + event.delta)
            return {key}

        if isinstance(event, LendingMarketParamsChanged):
            market_key = (event.platform, event.coin_type)
            market = self._markets.get(market_key) or LendingMarket(
                platform=event.platform, coin_type=event.coin_type
            )
            for name in MARKET_FIELDS:
                value = getattr(event, name)
                if value is not None:
                    setattr(market, name, value)
            self._markets[market_key] = market
            if event.decimals is not None:
                self._decimals[event.coin_type] = event.decimals
            return {k for k in self._holders.get(event.coin_type, ()) if k[0] == event.platform}

        if isinstance(event, PriceUpdated) and event.coin_type:
            self._prices[event.coin_type][event.source] = event.price
            return set(self._holders.get(event.coin_type, ()))

        return set()

    def _build_health(self, key: BorrowerKey) -> BorrowerHealth | None:
        platform, borrower = key
        positions = []
        for coin_type, (collateral, debt) in self._positions.get(key, {}).items():
            if collateral == 0 and debt == 0:
                continue
            market = self._markets.get((platform, coin_type))
            if market is None or market.liquidation_threshold is None:
                logger.debug(f"Missing market params for {platform} {coin_type}")
                return None
            decimals = self._decimals.get(coin_type)
            price = self.price(coin_type)
            if decimals is None or price is None:
                logger.debug(f"Missing decimals or price for {coin_type}")
                return None
            positions.append(
                AssetPosition(
                    coin_type=coin_type,
                    decimals=decimals,
                    collateral=collateral,
                    debt=debt,
                    price=price,
                    liquidation_threshold=market.liquidation_threshold,
                    borrow_weight=market.borrow_weight or Decimal(1),
                    liquidation_penalty=market.liquidation_penalty or Decimal(0),
                    liquidation_ratio=market.liquidation_ratio,
                )
            )
        return BorrowerHealth(platform=platform, borrower=borrower, positions=positions)

    def _recompute(self, key: BorrowerKey) -> LiquidationOrder | None:
        platform, borrower = key
        health = self._build_health(key)
        if health is None:
            return None

        hf = health.health_factor
        if not health.positions:
            status = BorrowerStatus.CLOSED
        elif hf is not None and hf < 1:
            status = BorrowerStatus.LIQUIDATABLE
        else:
            status = BorrowerStatus.ACTIVE

        previous = self._status.get(key)
        if status != previous or hf != self._health_factors.get(key):
            self.store.borrowers.set_status(platform, borrower, status, hf)
            if status != previous:
                logger.info(f"Borrower {platform}:{borrower} {previous!r} -> {status!r} (hf={hf})")
            self._status[key] = status
            self._health_factors[key] = hf

        if status != BorrowerStatus.LIQUIDATABLE:
            return None
        return self._create_order(health, hf)

    def _create_order(self, health: BorrowerHealth, hf: Decimal) -> LiquidationOrder | None:
        plan = get_policy(health.platform).plan(health)
        if plan is None:
            logger.warning(f"No liquidation plan for {health.platform}:{health.borrower}")
            return None
        order = LiquidationOrder(
            platform=health.platform,
            borrower=health.borrower,
            health_factor=hf,
            debt_coin=plan.debt_coin,
            collateral_coin=plan.collateral_coin,
            amount_repay=plan.amount_repay,
        )
        if self.store.liquidation_orders.create_if_none_open(order) is None:
            return None
        logger.info(
            f"Liquidation order {order.id} for {health.platform}:{health.borrower} "
            f"hf={hf} repay {plan.amount_repay} {plan.debt_coin}"
        )
        return order


def compute_health(
    store: StateStore, platform: str, borrower: str, price_source_priority: list[str]
) -> BorrowerHealth | None:
    """Health of one borrower from persisted state, outside the running pipeline."""
    engine = RiskEngine(store, price_source_priority)
    engine.load_borrower(platform, borrower)
    return engine.health(platform, borrower)
