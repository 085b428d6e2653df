"""Health factor calculation and per-platform liquidation policies."""

from dataclasses import dataclass, field, replace
from decimal import ROUND_DOWN, Decimal
from typing import Optional

from services.indexer.src.indexer.decoders.config import (
    NAVI_LENDING,
    SCALLOP_LENDING,
    SUILEND_LENDING,
)

ONE = Decimal(1)


@dataclass
class AssetPosition:
    """A borrower's collateral and debt in one coin, with its market parameters."""

    coin_type: str
    decimals: int

    # Raw on-chain units
    collateral: int
    debt: int

    # Price of one whole coin
    price: Decimal

    liquidation_threshold: Decimal  # 0.80 = 80%
    borrow_weight: Decimal = ONE
    liquidation_penalty: Decimal = Decimal(0)  # liquidator bonus, 0.05 = 5%
    liquidation_ratio: Optional[Decimal] = None  # platform close factor, if any

    @property
    def scale(self) -> Decimal:
        return Decimal(10) ** self.decimals

    @property
    def collateral_value(self) -> Decimal:
        return Decimal(self.collateral) / self.scale * self.price

    @property
    def debt_value(self) -> Decimal:
        return Decimal(self.debt) / self.scale * self.price

    @property
    def weighted_collateral_value(self) -> Decimal:
        return self.collateral_value * self.liquidation_threshold

    @property
    def weighted_debt_value(self) -> Decimal:
        return self.debt_value * self.borrow_weight

    def to_units(self, value: Decimal) -> int:
        """Convert a value back to raw units of this coin, rounding down."""
        return int((value / self.price * self.scale).to_integral_value(rounding=ROUND_DOWN))


@dataclass
class BorrowerHealth:
    """Aggregated health factor for one borrower on one platform."""

    platform: str
    borrower: str
    positions: list[AssetPosition] = field(default_factory=list)

    @property
    def total_collateral_value(self) -> Decimal:
        return sum((p.collateral_value for p in self.positions), Decimal(0))

    @property
    def weighted_collateral_value(self) -> Decimal:
        return sum((p.weighted_collateral_value for p in self.positions), Decimal(0))

    @property
    def total_debt_value(self) -> Decimal:
        return sum((p.debt_value for p in self.positions), Decimal(0))

    @property
    def weighted_debt_value(self) -> Decimal:
        return sum((p.weighted_debt_value for p in self.positions), Decimal(0))

    @property
    def health_factor(self) -> Decimal | None:
        """
        Calculate health factor.

        HF = Σ(collateral_i × price_i × liquidationThreshold_i) / Σ(debt_j × price_j × borrowWeight_j)

        Returns None if no debt (infinite HF).
        """
        weighted_debt = self.weighted_debt_value
        if weighted_debt == 0:
            return None
        return self.weighted_collateral_value / weighted_debt

    @property
    def is_liquidatable(self) -> bool:
        """True if HF < 1."""
        hf = self.health_factor
        return hf is not None and hf < 1

    def largest_debt(self) -> AssetPosition | None:
        debts = [p for p in self.positions if p.debt > 0]
        return max(debts, key=lambda p: p.debt_value) if debts else None

    def largest_collateral(self) -> AssetPosition | None:
        collaterals = [p for p in self.positions if p.collateral > 0]
        return max(collaterals, key=lambda p: p.collateral_value) if collaterals else None

    def simulate_price_drop(self, coin_type: str, drop_percent: Decimal) -> "BorrowerHealth":
        """
        Simulate health factor after a price drop for a specific coin.

        Args:
            coin_type: Coin whose price drops
            drop_percent: Percentage drop (e.g., 5 = 5% drop)
        """
        multiplier = (Decimal(100) - drop_percent) / Decimal(100)
        positions = [
            replace(p, price=p.price * multiplier) if p.coin_type == coin_type else p
            for p in self.positions
        ]
        return BorrowerHealth(platform=self.platform, borrower=self.borrower, positions=positions)


@dataclass(frozen=True)
class LiquidationPlan:
    debt_coin: str
    collateral_coin: str
    amount_repay: int  # raw units of the debt coin
    repay_value: Decimal


class LiquidationPolicy:
    """Chooses the repay/seize pair and the repay amount for a liquidatable borrower.

    The default repays `close_factor` of the largest debt against the largest
    collateral. Every policy is capped by the collateral that can be seized
    for the repayment (collateral / (1 + penalty)).
    """

    close_factor = Decimal("0.5")

    def select_pair(self, health: BorrowerHealth) -> tuple[AssetPosition, AssetPosition] | None:
        debt = health.largest_debt()
        collateral = health.largest_collateral()
        if debt is None or collateral is None:
            return None
        return debt, collateral

    def repay_value(
        self, health: BorrowerHealth, debt: AssetPosition, collateral: AssetPosition
    ) -> Decimal:
        return debt.debt_value * self.close_factor

    def plan(self, health: BorrowerHealth) -> LiquidationPlan | None:
        pair = self.select_pair(health)
        if pair is None:
            return None
        debt, collateral = pair

        value = self.repay_value(health, debt, collateral)
        seizable = collateral.collateral_value / (ONE + collateral.liquidation_penalty)
        value = min(value, debt.debt_value, seizable)
        if value <= 0:
            return None

        return LiquidationPlan(
            debt_coin=debt.coin_type,
            collateral_coin=collateral.coin_type,
            amount_repay=debt.to_units(value),
            repay_value=value,
        )


class NaviPolicy(LiquidationPolicy):
    """Navi repays the reserve's liquidation ratio of the debt."""

    close_factor = Decimal("0.35")

    def repay_value(self, health, debt, collateral):
        ratio = collateral.liquidation_ratio or self.close_factor
        return debt.debt_value * ratio


class SuilendPolicy(LiquidationPolicy):
    close_factor = Decimal("0.2")


class ScallopPolicy(LiquidationPolicy):
    """Scallop repays just enough to bring the health factor back to 1."""

    def repay_value(self, health, debt, collateral):
        shortfall = health.weighted_debt_value - health.weighted_collateral_value
        # Repaying x removes x*BW of weighted debt and x*(1+penalty)*LT of weighted collateral
        per_unit = debt.borrow_weight - (ONE + collateral.liquidation_penalty) * collateral.liquidation_threshold
        if per_unit <= 0:
            return debt.debt_value
        return shortfall / per_unit


POLICIES: dict[str, LiquidationPolicy] = {
    NAVI_LENDING: NaviPolicy(),
    SUILEND_LENDING: SuilendPolicy(),
    SCALLOP_LENDING: ScallopPolicy(),
}

DEFAULT_POLICY = LiquidationPolicy()


def get_policy(platform: str) -> LiquidationPolicy:
    return POLICIES.get(platform, DEFAULT_POLICY)
