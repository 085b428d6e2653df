"""Suilend lending.

Suilend events are keyed by obligation; the borrower is the transaction
sender that owns the obligation cap.
"""

from services.indexer.src.indexer.decoders.codec import BPS, PERCENT, PayloadReader, scaled
from services.indexer.src.indexer.decoders.config import SUILEND_LENDING, DecoderConfig
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


def _read_header(reader: PayloadReader) -> tuple[str, str]:
    """Common prefix: lending_market_id, coin_type, reserve_id, obligation_id."""
    reader.address()  # lending_market_id
    coin_type = reader.type_name()
    reader.address()  # reserve_id
    obligation_id = reader.address()
    return coin_type, obligation_id


def decode_deposit(reader: PayloadReader, raw: RawEvent, origin: EventOrigin) -> PositionDeposit:
    coin_type, obligation_id = _read_header(reader)
    ctoken_amount = reader.u64()
    return PositionDeposit(
        origin=origin,
        platform=SUILEND_LENDING,
        borrower=raw.sender,
        coin_type=coin_type,
        amount=ctoken_amount,
        obligation_id=obligation_id,
    )


def decode_withdraw(reader: PayloadReader, raw: RawEvent, origin: EventOrigin) -> PositionWithdraw:
    coin_type, obligation_id = _read_header(reader)
    ctoken_amount = reader.u64()
    return PositionWithdraw(
        origin=origin,
        platform=SUILEND_LENDING,
        borrower=raw.sender,
        coin_type=coin_type,
        amount=ctoken_amount,
        obligation_id=obligation_id,
    )


def decode_borrow(reader: PayloadReader, raw: RawEvent, origin: EventOrigin) -> PositionBorrow:
    coin_type, obligation_id = _read_header(reader)
    liquidity_amount = reader.u64()
    origination_fee_amount = reader.u64()
    # The origination fee is added to the obligation's debt
    return PositionBorrow(
        origin=origin,
        platform=SUILEND_LENDING,
        borrower=raw.sender,
        coin_type=coin_type,
        amount=liquidity_amount + origination_fee_amount,
        obligation_id=obligation_id,
    )


def decode_repay(reader: PayloadReader, raw: RawEvent, origin: EventOrigin) -> PositionRepay:
    coin_type, obligation_id = _read_header(reader)
    liquidity_amount = reader.u64()
    return PositionRepay(
        origin=origin,
        platform=SUILEND_LENDING,
        borrower=raw.sender,
        coin_type=coin_type,
        amount=liquidity_amount,
        obligation_id=obligation_id,
    )


def decode_liquidate(
    reader: PayloadReader, raw: RawEvent, origin: EventOrigin
) -> LiquidationOccurred:
    reader.address()  # lending_market_id
    reader.address()  # repay_reserve_id
    reader.address()  # withdraw_reserve_id
    obligation_id = reader.address()
    repay_coin_type = reader.type_name()
    repay_amount = reader.u64()
    withdraw_coin_type = reader.type_name()
    withdraw_amount = reader.u64()
    reader.u64()  # protocol_fee_amount
    reader.u64()  # liquidator_bonus_amount

    # The obligation owner is resolved against the borrowers table on persist
    return LiquidationOccurred(
        origin=origin,
        platform=SUILEND_LENDING,
        borrower=obligation_id,
        liquidator=raw.sender,
        obligation_id=obligation_id,
        debt_coin=repay_coin_type,
        collateral_coin=withdraw_coin_type,
        repay_amount=repay_amount,
        seize_amount=withdraw_amount,
    )


def decode_reserve_asset_data(
    reader: PayloadReader, raw: RawEvent, origin: EventOrigin
) -> LendingMarketParamsChanged:
    reader.address()  # lending_market_id
    coin_type = reader.type_name()
    reader.address()  # reserve_id
    open_ltv_pct = reader.u8()
    close_ltv_pct = reader.u8()
    borrow_weight_bps = reader.u64()
    liquidation_bonus_bps = reader.u64()
    protocol_liquidation_fee_bps = reader.u64()
    decimals = reader.u8()
    available_amount = reader.u64()
    borrowed_amount = reader.u64()
    ctoken_supply = reader.u64()
    price_identifier = reader.byte_vector()

    return LendingMarketParamsChanged(
        origin=origin,
        platform=SUILEND_LENDING,
        coin_type=coin_type,
        ltv=scaled(open_ltv_pct, PERCENT),
        liquidation_threshold=scaled(close_ltv_pct, PERCENT),
        borrow_weight=scaled(borrow_weight_bps, BPS),
        liquidation_penalty=scaled(liquidation_bonus_bps, BPS),
        liquidation_fee=scaled(protocol_liquidation_fee_bps, BPS),
        supply_amount=available_amount + borrowed_amount,
        borrow_amount=borrowed_amount,
        ctoken_supply=ctoken_supply,
        oracle_feed_id="0x" + price_identifier.hex() if price_identifier else None,
        decimals=decimals,
    )


def register_suilend(registry: DecoderRegistry, config: DecoderConfig) -> None:
    decoders = {
        ("lending_market", "DepositEvent"): decode_deposit,
        ("lending_market", "WithdrawEvent"): decode_withdraw,
        ("lending_market", "BorrowEvent"): decode_borrow,
        ("lending_market", "RepayEvent"): decode_repay,
        ("lending_market", "LiquidateEvent"): decode_liquidate,
        ("reserve", "ReserveAssetDataEvent"): decode_reserve_asset_data,
    }
    for package_id in config.package_ids(SUILEND_LENDING):
        for (module, event_type), decoder in decoders.items():
            registry.register(package_id, module, event_type, decoder, SUILEND_LENDING)
