"""Scallop lending.

Positions are keyed by the transaction sender with the obligation id kept
alongside. Borrow events exist in three layouts (V1 to V3), differing only
in the fee fields that follow the amount.
"""

from services.indexer.src.indexer.decoders.codec import FIXED_POINT_32, PayloadReader, scaled
from services.indexer.src.indexer.decoders.config import SCALLOP_LENDING, DecoderConfig
from services.indexer.src.indexer.decoders.registry import DecoderRegistry
from services.indexer.src.indexer.domain.models import (
    EventOrigin,
    LendingMarketParamsChanged,
    LiquidationOccurred,
    PositionBorrow,
    PositionDeposit,
    PositionRepay,
    PositionWithdraw,
    RawEvent,
)


def decode_collateral_deposit(
    reader: PayloadReader, raw: RawEvent, origin: EventOrigin
) -> PositionDeposit:
    reader.address()  # provider
    obligation = reader.address()
    deposit_asset = reader.type_name()
    deposit_amount = reader.u64()

    return PositionDeposit(
        origin=origin,
        platform=SCALLOP_LENDING,
        borrower=raw.sender,
        coin_type=deposit_asset,
        amount=deposit_amount,
        obligation_id=obligation,
    )


def decode_collateral_withdraw(
    reader: PayloadReader, raw: RawEvent, origin: EventOrigin
) -> PositionWithdraw:
    reader.address()  # taker
    obligation = reader.address()
    withdraw_asset = reader.type_name()
    withdraw_amount = reader.u64()

    return PositionWithdraw(
        origin=origin,
        platform=SCALLOP_LENDING,
        borrower=raw.sender,
        coin_type=withdraw_asset,
        amount=withdraw_amount,
        obligation_id=obligation,
    )


def _decode_borrow(
    reader: PayloadReader, raw: RawEvent, origin: EventOrigin, fee_fields: int
) -> PositionBorrow:
    reader.address()  # borrower
    obligation = reader.address()
    asset = reader.type_name()
    amount = reader.u64()
    borrow_fee = 0
    if fee_fields:
        borrow_fee = reader.u64()
        # V3 adds borrow_fee_discount and borrow_referral_fee
        for _ in range(fee_fields - 1):
            reader.u64()
    reader.u64()  # time

    return PositionBorrow(
        origin=origin,
        platform=SCALLOP_LENDING,
        borrower=raw.sender,
        coin_type=asset,
        amount=amount + borrow_fee,
        obligation_id=obligation,
    )


def decode_borrow_v1(reader: PayloadReader, raw: RawEvent, origin: EventOrigin) -> PositionBorrow:
    return _decode_borrow(reader, raw, origin, fee_fields=0)


def decode_borrow_v2(reader: PayloadReader, raw: RawEvent, origin: EventOrigin) -> PositionBorrow:
    return _decode_borrow(reader, raw, origin, fee_fields=1)


def decode_borrow_v3(reader: PayloadReader, raw: RawEvent, origin: EventOrigin) -> PositionBorrow:
    return _decode_borrow(reader, raw, origin, fee_fields=3)


def decode_repay(reader: PayloadReader, raw: RawEvent, origin: EventOrigin) -> PositionRepay:
    reader.address()  # repayer
    obligation = reader.address()
    asset = reader.type_name()
    amount = reader.u64()
    reader.u64()  # time

    return PositionRepay(
        origin=origin,
        platform=SCALLOP_LENDING,
        borrower=raw.sender,
        coin_type=asset,
        amount=amount,
        obligation_id=obligation,
    )


def decode_liquidate_v2(
    reader: PayloadReader, raw: RawEvent, origin: EventOrigin
) -> LiquidationOccurred:
    liquidator = reader.address()
    obligation = reader.address()
    debt_type = reader.type_name()
    collateral_type = reader.type_name()
    repay_on_behalf = reader.u64()
    reader.u64()  # repay_revenue
    liq_amount = reader.u64()
    reader.u64()  # collateral_price
    reader.u64()  # debt_price
    reader.u64()  # timestamp

    return LiquidationOccurred(
        origin=origin,
        platform=SCALLOP_LENDING,
        borrower=obligation,
        liquidator=liquidator,
        obligation_id=obligation,
        debt_coin=debt_type,
        collateral_coin=collateral_type,
        repay_amount=repay_on_behalf,
        seize_amount=liq_amount,
    )


def decode_risk_model(
    reader: PayloadReader, raw: RawEvent, origin: EventOrigin
) -> LendingMarketParamsChanged:
    """Risk model factors are Move FixedPoint32 values."""
    asset = reader.type_name()
    collateral_factor = reader.u64()
    liquidation_factor = reader.u64()
    liquidation_penalty = reader.u64()
    liquidation_discount = reader.u64()
    borrow_weight = reader.u64()
    decimals = reader.u8()
    oracle_feed_id = reader.byte_vector()

    return LendingMarketParamsChanged(
        origin=origin,
        platform=SCALLOP_LENDING,
        coin_type=asset,
        ltv=scaled(collateral_factor, FIXED_POINT_32),
        liquidation_threshold=scaled(liquidation_factor, FIXED_POINT_32),
        borrow_weight=scaled(borrow_weight, FIXED_POINT_32),
        liquidation_penalty=scaled(liquidation_penalty, FIXED_POINT_32),
        liquidation_ratio=scaled(liquidation_discount, FIXED_POINT_32),
        oracle_feed_id="0x" + oracle_feed_id.hex() if oracle_feed_id else None,
        decimals=decimals,
    )


def register_scallop(registry: DecoderRegistry, config: DecoderConfig) -> None:
    decoders = {
        ("deposit_collateral", "CollateralDepositEvent"): decode_collateral_deposit,
        ("withdraw_collateral", "CollateralWithdrawEvent"): decode_collateral_withdraw,
        ("borrow", "BorrowEvent"): decode_borrow_v1,
        ("borrow", "BorrowEventV2"): decode_borrow_v2,
        ("borrow", "BorrowEventV3"): decode_borrow_v3,
        ("repay", "RepayEvent"): decode_repay,
        ("liquidate", "LiquidateEventV2"): decode_liquidate_v2,
        ("risk_model", "RiskModelUpdatedEvent"): decode_risk_model,
    }
    for package_id in config.package_ids(SCALLOP_LENDING):
        for (module, event_type), decoder in decoders.items():
            registry.register(package_id, module, event_type, decoder, SCALLOP_LENDING)
