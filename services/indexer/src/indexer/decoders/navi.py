"""Navi lending.

Navi keys reserves by a u8 asset id rather than a coin type; ids are mapped
through `DecoderConfig.navi_assets`. Positions are keyed by the user address.
"""

from functools import partial

from services.indexer.src.indexer.decoders.codec import RAY, PayloadReader, scaled
from services.indexer.src.indexer.decoders.config import NAVI_LENDING, DecoderConfig
from services.indexer.src.indexer.decoders.registry import DecoderRegistry
from services.indexer.src.indexer.domain.models import (
    EventOrigin,
    LendingMarketParamsChanged,
    LiquidationOccurred,
    PositionBorrow,
    PositionChange,
    PositionDeposit,
    PositionRepay,
    PositionWithdraw,
    RawEvent,
)


def _coin_type(config: DecoderConfig, asset_id: int) -> str:
    coin_type = config.navi_assets.get(asset_id)
    if coin_type is None:
        raise ValueError(f"Unknown Navi asset id {asset_id}")
    return coin_type


def decode_position(
    config: DecoderConfig,
    event_cls: type[PositionChange],
    reader: PayloadReader,
    raw: RawEvent,
    origin: EventOrigin,
) -> PositionChange:
    """Deposit, borrow and repay events share `{reserve, sender, amount}`."""
    reserve = reader.u8()
    sender = reader.address()
    amount = reader.u64()

    return event_cls(
        origin=origin,
        platform=NAVI_LENDING,
        borrower=sender,
        coin_type=_coin_type(config, reserve),
        amount=amount,
    )


def decode_withdraw(
    config: DecoderConfig, reader: PayloadReader, raw: RawEvent, origin: EventOrigin
) -> PositionWithdraw:
    reserve = reader.u8()
    sender = reader.address()
    reader.address()  # to
    amount = reader.u64()

    return PositionWithdraw(
        origin=origin,
        platform=NAVI_LENDING,
        borrower=sender,
        coin_type=_coin_type(config, reserve),
        amount=amount,
    )


def decode_liquidation(
    config: DecoderConfig, reader: PayloadReader, raw: RawEvent, origin: EventOrigin
) -> LiquidationOccurred:
    liquidator = reader.address()
    user = reader.address()
    collateral_asset = reader.u8()
    reader.u256()  # collateral_price
    collateral_amount = reader.u64()
    reader.u64()  # treasury
    debt_asset = reader.u8()
    reader.u256()  # debt_price
    debt_amount = reader.u64()

    return LiquidationOccurred(
        origin=origin,
        platform=NAVI_LENDING,
        borrower=user,
        liquidator=liquidator,
        debt_coin=_coin_type(config, debt_asset),
        collateral_coin=_coin_type(config, collateral_asset),
        repay_amount=debt_amount,
        seize_amount=collateral_amount,
    )


def decode_reserve_config(
    config: DecoderConfig, reader: PayloadReader, raw: RawEvent, origin: EventOrigin
) -> LendingMarketParamsChanged:
    asset = reader.u8()
    ltv = reader.u256()
    liquidation_threshold = reader.u256()
    liquidation_ratio = reader.u256()
    liquidation_bonus = reader.u256()
    supply_balance = reader.u64()
    borrow_balance = reader.u64()
    decimals = reader.u8()
    feed_id = reader.byte_vector()

    return LendingMarketParamsChanged(
        origin=origin,
        platform=NAVI_LENDING,
        coin_type=_coin_type(config, asset),
        ltv=scaled(ltv, RAY),
        liquidation_threshold=scaled(liquidation_threshold, RAY),
        liquidation_ratio=scaled(liquidation_ratio, RAY),
        liquidation_penalty=scaled(liquidation_bonus, RAY),
        supply_amount=supply_balance,
        borrow_amount=borrow_balance,
        oracle_feed_id="0x" + feed_id.hex() if feed_id else None,
        decimals=decimals,
    )


def register_navi(registry: DecoderRegistry, config: DecoderConfig) -> None:
    position_events = {
        "DepositEvent": PositionDeposit,
        "BorrowEvent": PositionBorrow,
        "RepayEvent": PositionRepay,
    }
    for package_id in config.package_ids(NAVI_LENDING):
        for event_type, event_cls in position_events.items():
            registry.register(
                package_id, "lending", event_type,
                partial(decode_position, config, event_cls), NAVI_LENDING,
            )
        registry.register(
            package_id, "lending", "WithdrawEvent", partial(decode_withdraw, config), NAVI_LENDING
        )
        registry.register(
            package_id, "lending", "LiquidationEvent",
            partial(decode_liquidation, config), NAVI_LENDING,
        )
        registry.register(
            package_id, "storage", "ReserveConfigUpdated",
            partial(decode_reserve_config, config), NAVI_LENDING,
        )
