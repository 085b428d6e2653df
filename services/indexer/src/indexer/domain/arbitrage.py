"""Arbitrage graph engine.

Coins are nodes and every pool contributes two directed edges (a->b and
b->a). Edges live in a flat list; each node keeps the indices of its
outgoing edges and each pool the indices of its two edges, so a pool update
rewrites exactly those two entries. Searches run on a snapshot copied under
the lock and never observe a half-applied update.

Rates are in raw on-chain units; decimal scaling cancels around a cycle.
They are spot rates from the sqrt price or reserves only: tick liquidity
is recorded per pool but price impact across ticks is not modelled.
"""

import logging
import threading
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Callable, Iterable, Optional

from services.indexer.src.indexer.domain.models import (
    ArbitrageOpportunity,
    DecodedEvent,
    Pool,
    PoolCreated,
    PoolStateChanged,
    TickUpdated,
)

logger = logging.getLogger(__name__)

Q64 = Decimal(2) ** 64
FEE_DENOMINATOR = Decimal(1_000_000)
ONE = Decimal(1)


def pool_rates(pool: Pool) -> tuple[Decimal, Decimal] | None:
    """Net (a->b, b->a) rates for a pool, or None if it cannot be priced.

    Concentrated-liquidity pools are priced from their Q64.64 sqrt price,
    constant-product pools from reserves.
    """
    if pool.is_paused or not pool.coin_a or not pool.coin_b:
        return None

    if pool.sqrt_price:
        price = (Decimal(pool.sqrt_price) / Q64) ** 2
    elif pool.reserve_a and pool.reserve_b:
        price = Decimal(pool.reserve_b) / Decimal(pool.reserve_a)
    else:
        return None

    fee_factor = ONE - Decimal(pool.fee_rate or 0) / FEE_DENOMINATOR
    if price <= 0 or fee_factor <= 0:
        return None
    return price * fee_factor, fee_factor / price


@dataclass(frozen=True)
class Edge:
    pool: str
    source: int
    target: int
    rate: Optional[Decimal]  # None while the pool cannot be priced


@dataclass(frozen=True)
class GraphSnapshot:
    coins: tuple[str, ...]
    nodes: dict[str, int]
    edges: tuple[Edge, ...]
    adjacency: tuple[tuple[int, ...], ...]

    def find_cycles(
        self, start: str, max_hops: int = 3, min_profit: Decimal = Decimal(0)
    ) -> list[ArbitrageOpportunity]:
        """Bounded DFS for cycles through `start` whose net rate exceeds 1 + min_profit.

        A pool is used at most once per cycle. Results are ordered by profit
        descending, then by fewer hops.
        """
        start_node = self.nodes.get(start)
        if start_node is None:
            return []

        found: list[ArbitrageOpportunity] = []

        def visit(node: int, rate: Decimal, path: list[int], edge_path: list[Edge]) -> None:
            for index in self.adjacency[node]:
                edge = self.edges[index]
                if edge.rate is None or any(e.pool == edge.pool for e in edge_path):
                    continue
                cycle_rate = rate * edge.rate
                hops = len(edge_path) + 1
                if edge.target == start_node:
                    profit = cycle_rate - ONE
                    if profit > min_profit:
                        found.append(self._opportunity(path, edge_path + [edge], cycle_rate))
                    continue
                if hops >= max_hops or edge.target in path:
                    continue
                visit(edge.target, cycle_rate, path + [edge.target], edge_path + [edge])

        visit(start_node, ONE, [start_node], [])
        found.sort(key=lambda o: (-o.profit, o.hops))
        return found

    def _opportunity(self, path: list[int], edge_path: list[Edge], rate: Decimal) -> ArbitrageOpportunity:
        coins = tuple(self.coins[n] for n in path) + (self.coins[path[0]],)
        return ArbitrageOpportunity(
            coins=coins,
            pools=tuple(e.pool for e in edge_path),
            rate=rate,
            profit=rate - ONE,
            log_return=rate.ln(),
        )


class PoolGraph:
    def __init__(self):
        self._lock = threading.Lock()
        self._nodes: dict[str, int] = {}
        self._coins: list[str] = []
        self._edges: list[Edge] = []
        self._adjacency: list[list[int]] = []
        self._pool_edges: dict[str, tuple[int, int]] = {}
        self._pools: dict[str, Pool] = {}
        # pool -> tick index -> liquidity_net
        self._ticks: dict[str, dict[int, int]] = {}

    def _node(self, coin: str) -> int:
        node = self._nodes.get(coin)
        if node is None:
            node = len(self._coins)
            self._nodes[coin] = node
            self._coins.append(coin)
            self._adjacency.append([])
        return node

    def get_pool(self, address: str) -> Pool | None:
        with self._lock:
            return self._pools.get(address)

    def ticks(self, address: str) -> dict[int, int]:
        """Initialized ticks of a pool: tick index -> liquidity_net."""
        with self._lock:
            return dict(self._ticks.get(address, {}))

    def load_ticks(self, address: str, ticks: dict[int, tuple[int, int]]) -> None:
        """Replace a pool's ticks from stored (liquidity_net, liquidity_gross) pairs."""
        with self._lock:
            self._ticks[address] = {
                index: net for index, (net, gross) in ticks.items() if gross != 0
            }

    def _set_tick(self, event: TickUpdated) -> None:
        with self._lock:
            ticks = self._ticks.setdefault(event.pool_address, {})
            if event.liquidity_gross == 0:
                ticks.pop(event.tick_index, None)
            else:
                ticks[event.tick_index] = event.liquidity_net

    def update_pool(self, pool: Pool) -> None:
        """Set a pool's state and rewrite its two edges."""
        with self._lock:
            self._pools[pool.address] = pool
            rates = pool_rates(pool)
            indices = self._pool_edges.get(pool.address)

            if indices is None:
                if rates is None:
                    return
                a, b = self._node(pool.coin_a), self._node(pool.coin_b)
                forward, backward = len(self._edges), len(self._edges) + 1
                self._edges.append(Edge(pool.address, a, b, rates[0]))
                self._edges.append(Edge(pool.address, b, a, rates[1]))
                self._adjacency[a].append(forward)
                self._adjacency[b].append(backward)
                self._pool_edges[pool.address] = (forward, backward)
                return

            forward, backward = indices
            self._edges[forward] = replace(self._edges[forward], rate=rates[0] if rates else None)
            self._edges[backward] = replace(self._edges[backward], rate=rates[1] if rates else None)

    def apply(self, event: DecodedEvent) -> Pool | None:
        """Merge a pool event into the known pool state; returns the updated pool.

        Tick updates are recorded but leave the edges unchanged, so they
        return None.
        """
        if isinstance(event, TickUpdated):
            self._set_tick(event)
            return None
        if isinstance(event, PoolCreated):
            existing = self.get_pool(event.pool_address)
            pool = existing or Pool(
                exchange=event.exchange,
                address=event.pool_address,
                coin_a=event.coin_a,
                coin_b=event.coin_b,
            )
            pool = replace(
                pool,
                coin_a=event.coin_a,
                coin_b=event.coin_b,
                tick_spacing=event.tick_spacing if event.tick_spacing is not None else pool.tick_spacing,
                fee_rate=event.fee_rate if event.fee_rate is not None else pool.fee_rate,
                reserve_a=event.reserve_a if event.reserve_a is not None else pool.reserve_a,
                reserve_b=event.reserve_b if event.reserve_b is not None else pool.reserve_b,
                sqrt_price=event.sqrt_price if event.sqrt_price is not None else pool.sqrt_price,
                tick_index=event.tick_index if event.tick_index is not None else pool.tick_index,
            )
        elif isinstance(event, PoolStateChanged):
            pool = self.get_pool(event.pool_address) or Pool(
                exchange=event.exchange, address=event.pool_address, coin_a=None, coin_b=None
            )
            changes = {
                "coin_a": event.coin_a,
                "coin_b": event.coin_b,
                "reserve_a": event.reserve_a,
                "reserve_b": event.reserve_b,
                "liquidity": event.liquidity,
                "sqrt_price": event.sqrt_price,
                "tick_index": event.tick_index,
                "fee_rate": event.fee_rate,
                "is_paused": event.is_paused,
            }
            pool = replace(pool, **{k: v for k, v in changes.items() if v is not None})
        else:
            return None

        self.update_pool(pool)
        return pool

    def snapshot(self) -> GraphSnapshot:
        with self._lock:
            return GraphSnapshot(
                coins=tuple(self._coins),
                nodes=dict(self._nodes),
                edges=tuple(self._edges),
                adjacency=tuple(tuple(a) for a in self._adjacency),
            )

    def find_cycles(
        self, start: str, max_hops: int = 3, min_profit: Decimal = Decimal(0)
    ) -> list[ArbitrageOpportunity]:
        return self.snapshot().find_cycles(start, max_hops, min_profit)

    def __len__(self) -> int:
        with self._lock:
            return len(self._pool_edges)


def cycle_key(opportunity: ArbitrageOpportunity) -> tuple[tuple[str, str], ...]:
    """Identity of a cycle regardless of which coin it is read from."""
    steps = tuple(zip(opportunity.coins[:-1], opportunity.pools))
    return min(steps[i:] + steps[:i] for i in range(len(steps)))


class ArbitrageEngine:
    """Updates the graph from committed pool events and searches from the touched pool."""

    def __init__(
        self,
        graph: PoolGraph | None = None,
        max_hops: int = 3,
        min_profit: Decimal = Decimal(0),
        sink: Callable[[ArbitrageOpportunity], None] | None = None,
    ):
        self.graph = graph or PoolGraph()
        self.max_hops = max_hops
        self.min_profit = min_profit
        self.sink = sink
        self._lock = threading.Lock()
        self._current: dict[tuple, ArbitrageOpportunity] = {}

    def bootstrap(
        self,
        pools: Iterable[Pool],
        ticks: dict[str, dict[int, tuple[int, int]]] | None = None,
    ) -> None:
        count = 0
        for pool in pools:
            self.graph.update_pool(pool)
            count += 1
        for address, pool_ticks in (ticks or {}).items():
            self.graph.load_ticks(address, pool_ticks)
        logger.info(f"Arbitrage graph bootstrapped with {count} pools")

    def handle(self, event: DecodedEvent) -> list[ArbitrageOpportunity]:
        pool = self.graph.apply(event)
        if pool is None or not pool.coin_a or not pool.coin_b:
            return []

        snapshot = self.graph.snapshot()
        found: dict[tuple, ArbitrageOpportunity] = {}
        for coin in (pool.coin_a, pool.coin_b):
            for opportunity in snapshot.find_cycles(coin, self.max_hops, self.min_profit):
                found.setdefault(cycle_key(opportunity), opportunity)

        with self._lock:
            # Cycles through this pool are re-derived from scratch
            self._current = {
                k: o for k, o in self._current.items() if pool.address not in o.pools
            }
            self._current.update(found)

        opportunities = sorted(found.values(), key=lambda o: (-o.profit, o.hops))
        for opportunity in opportunities:
            logger.info(
                f"Arbitrage {' -> '.join(opportunity.coins)} via {len(opportunity.pools)} pools, "
                f"profit {opportunity.profit:.6f}"
            )
            if self.sink:
                self.sink(opportunity)
        return opportunities

    def scan(self) -> list[ArbitrageOpportunity]:
        """Search from every coin in the graph and replace the current set."""
        snapshot = self.graph.snapshot()
        found: dict[tuple, ArbitrageOpportunity] = {}
        for coin in snapshot.coins:
            for opportunity in snapshot.find_cycles(coin, self.max_hops, self.min_profit):
                found.setdefault(cycle_key(opportunity), opportunity)
        with self._lock:
            self._current = found
        logger.info(f"Arbitrage scan over {len(snapshot.coins)} coins found {len(found)} cycles")
        return sorted(found.values(), key=lambda o: (-o.profit, o.hops))

    def opportunities(self) -> list[ArbitrageOpportunity]:
        """Currently open opportunities, best first."""
        with self._lock:
            return sorted(self._current.values(), key=lambda o: (-o.profit, o.hops))

    def search(self, coin: str) -> list[ArbitrageOpportunity]:
        return self.graph.find_cycles(coin, self.max_hops, self.min_profit)
