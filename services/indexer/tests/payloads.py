"""Builders for event payloads and checkpoints used across the test suite."""

import struct

from services.indexer.src.indexer.decoders.config import (
    AFTERMATH_EXCHANGE,
    BLUEFIN_EXCHANGE,
    BLUEMOVE_EXCHANGE,
    CETUS_EXCHANGE,
    FLOWX_EXCHANGE,
    MOMENTUM_EXCHANGE,
    NAVI_LENDING,
    OBRIC_EXCHANGE,
    PYTH_ORACLE,
    SCALLOP_LENDING,
    SUILEND_LENDING,
    TURBOS_EXCHANGE,
    DecoderConfig,
    ProtocolConfig,
)
from services.indexer.src.indexer.domain.models import Checkpoint, Transaction, TransactionEvent

SUI = "0x2::sui::SUI"
USDC = "0xa1::usdc::USDC"
WETH = "0xa2::weth::WETH"

PACKAGES = {
    CETUS_EXCHANGE: "0xcetus",
    BLUEFIN_EXCHANGE: "0xbluefin",
    BLUEMOVE_EXCHANGE: "0xbluemove",
    TURBOS_EXCHANGE: "0xturbos",
    FLOWX_EXCHANGE: "0xflowx",
    MOMENTUM_EXCHANGE: "0xmomentum",
    AFTERMATH_EXCHANGE: "0xaftermath",
    OBRIC_EXCHANGE: "0xobric",
    NAVI_LENDING: "0xnavi",
    SUILEND_LENDING: "0xsuilend",
    SCALLOP_LENDING: "0xscallop",
    PYTH_ORACLE: "0xpyth",
}

TEST_CONFIG = DecoderConfig(
    protocols=[
        ProtocolConfig(name=name, kind="test", package_ids=[package_id])
        for name, package_id in PACKAGES.items()
    ],
    navi_assets={0: SUI, 3: WETH, 10: USDC},
)


def addr(n: int) -> str:
    """A full-width Sui address."""
    return "0x" + f"{n:064x}"


class PayloadWriter:
    def __init__(self, version: int = 1):
        self.buf = bytearray([version])

    def u8(self, v):
        self.buf += bytes([v])
        return self

    def boolean(self, v):
        return self.u8(1 if v else 0)

    def u32(self, v):
        self.buf += struct.pack("<I", v)
        return self

    def u64(self, v):
        self.buf += struct.pack("<Q", v)
        return self

    def u128(self, v):
        self.buf += v.to_bytes(16, "little")
        return self

    def u256(self, v):
        self.buf += v.to_bytes(32, "little")
        return self

    def i32_bits(self, v):
        return self.u32(v & 0xFFFFFFFF)

    def i128_bits(self, v):
        return self.u128(v & ((1 << 128) - 1))

    def i64_signed(self, v):
        return self.boolean(v < 0).u64(abs(v))

    def uleb128(self, v):
        while True:
            byte = v & 0x7F
            v >>= 7
            if v:
                self.buf.append(byte | 0x80)
            else:
                self.buf.append(byte)
                return self

    def byte_vector(self, data: bytes):
        self.uleb128(len(data))
        self.buf += data
        return self

    def string(self, s: str):
        return self.byte_vector(s.encode("utf-8"))

    def address(self, a: str):
        self.buf += bytes.fromhex(a[2:].rjust(64, "0"))
        return self

    def build(self) -> bytes:
        return bytes(self.buf)


def event(protocol: str, module: str, event_type: str, payload: bytes) -> TransactionEvent:
    return TransactionEvent(
        package_id=PACKAGES[protocol], module=module, event_type=event_type, payload=payload
    )


def make_tx(digest: str, *events: TransactionEvent, sender: str = addr(0xA11CE)) -> Transaction:
    return Transaction(digest=digest, sender=sender, events=tuple(events))


def make_checkpoint(sequence_number: int, *transactions: Transaction, timestamp_ms: int = 1_700_000_000_000) -> Checkpoint:
    return Checkpoint(
        sequence_number=sequence_number,
        timestamp_ms=timestamp_ms,
        transactions=tuple(transactions),
    )


# Protocol payloads


def cetus_create_pool(pool: str, coin_a: str, coin_b: str, fee_rate: int = 2500, version: int = 1) -> TransactionEvent:
    w = PayloadWriter(version).address(pool).string(coin_a).string(coin_b).u32(60).u64(fee_rate)
    if version >= 2:
        w.u8(9).u8(6).u64(77)
    return event(CETUS_EXCHANGE, "factory", "CreatePoolEvent", w.build())


def cetus_swap(pool: str, vault_a: int, vault_b: int, sqrt_price: int) -> TransactionEvent:
    w = (
        PayloadWriter()
        .boolean(True)
        .address(pool)
        .address(addr(0))
        .u64(100)
        .u64(99)
        .u64(0)
        .u64(1)
        .u64(vault_a)
        .u64(vault_b)
        .u128(sqrt_price)
        .u128(sqrt_price)
        .u64(1)
    )
    return event(CETUS_EXCHANGE, "pool", "SwapEvent", w.build())


def bluemove_create_pool(pool: str, coin_x: str, coin_y: str, amount_x: int, amount_y: int) -> TransactionEvent:
    w = (
        PayloadWriter()
        .address(pool)
        .address(addr(0xC0FFEE))
        .string(coin_x)
        .string(coin_y)
        .u64(amount_x)
        .u64(amount_y)
        .u64(1000)
        .u64(5)
    )
    return event(BLUEMOVE_EXCHANGE, "swap", "Created_Pool_Event", w.build())


def bluemove_swap(pool: str, reserve_x: int, reserve_y: int) -> TransactionEvent:
    w = PayloadWriter().address(pool).address(addr(0xBEEF))
    for name in ("x_in", "y_in", "x_out", "y_out"):
        w.string(name).u64(0)
    w.u64(reserve_x).u64(reserve_y)
    return event(BLUEMOVE_EXCHANGE, "swap", "Swap_Event", w.build())


def bluefin_pool_created(
    pool: str, coin_a: str, coin_b: str, sqrt_price: int, tick: int = 0, fee_rate: int = 500
) -> TransactionEvent:
    w = PayloadWriter().address(pool)
    for coin, symbol, decimals in ((coin_a, "A", 9), (coin_b, "B", 6)):
        w.string(coin).string(symbol).u8(decimals).string("https://example.com/coin.png")
    w.u128(sqrt_price).i32_bits(tick).u32(60).u64(fee_rate).u64(200_000)
    return event(BLUEFIN_EXCHANGE, "events", "PoolCreated", w.build())


def bluefin_swap(pool: str, reserve_a: int, reserve_b: int, sqrt_price: int, tick: int = 0) -> TransactionEvent:
    w = (
        PayloadWriter()
        .address(pool)
        .boolean(True)
        .u64(100)
        .u64(99)
        .u64(reserve_a)
        .u64(reserve_b)
        .u64(1)
        .u128(10**9)
        .u128(10**9)
        .u128(sqrt_price)
        .u128(sqrt_price)
        .i32_bits(tick)
        .boolean(False)
        .u128(1)
    )
    return event(BLUEFIN_EXCHANGE, "events", "AssetSwap", w.build())


def turbos_swap(pool: str, sqrt_price: int, tick: int, liquidity: int = 10**9) -> TransactionEvent:
    w = (
        PayloadWriter()
        .address(pool)
        .address(addr(0xBEEF))
        .u64(100)
        .u64(99)
        .u128(liquidity)
        .i32_bits(tick)
        .i32_bits(tick - 1)
        .u128(sqrt_price)
        .u64(0)
        .u64(1)
        .boolean(True)
        .boolean(True)
    )
    return event(TURBOS_EXCHANGE, "pool", "SwapEvent", w.build())


def turbos_mint(pool: str, lower: int, upper: int, event_type: str = "MintEvent") -> TransactionEvent:
    w = (
        PayloadWriter()
        .address(pool)
        .address(addr(0xBEEF))
        .i32_bits(lower)
        .i32_bits(upper)
        .u64(10)
        .u64(20)
        .u128(1_000)
    )
    return event(TURBOS_EXCHANGE, "pool", event_type, w.build())


def flowx_swap(pool: str, sqrt_price: int, tick: int, liquidity: int = 10**9) -> TransactionEvent:
    w = (
        PayloadWriter()
        .address(addr(0xBEEF))
        .address(pool)
        .boolean(False)
        .u64(100)
        .u64(99)
        .u128(sqrt_price)
        .u128(sqrt_price)
        .u128(liquidity)
        .i32_bits(tick)
        .u64(1)
    )
    return event(FLOWX_EXCHANGE, "pool", "Swap", w.build())


def flowx_modify_liquidity(pool: str, delta: int) -> TransactionEvent:
    w = (
        PayloadWriter()
        .address(addr(0xBEEF))
        .address(pool)
        .address(addr(0x9051))
        .i32_bits(-60)
        .i32_bits(60)
        .i128_bits(delta)
        .u64(10)
        .u64(20)
    )
    return event(FLOWX_EXCHANGE, "pool", "ModifyLiquidity", w.build())


def momentum_swap(pool: str, reserve_x: int, reserve_y: int, sqrt_price: int, tick: int = 0) -> TransactionEvent:
    w = (
        PayloadWriter()
        .address(addr(0xBEEF))
        .address(pool)
        .boolean(True)
        .u64(100)
        .u64(99)
        .u128(sqrt_price)
        .u128(sqrt_price)
        .u128(10**9)
        .i32_bits(tick)
        .u64(1)
        .u64(0)
        .u64(reserve_x)
        .u64(reserve_y)
    )
    return event(MOMENTUM_EXCHANGE, "trade", "SwapEvent", w.build())


def momentum_liquidity(pool: str, reserve_x: int, reserve_y: int, event_type: str = "AddLiquidityEvent") -> TransactionEvent:
    w = (
        PayloadWriter()
        .address(addr(0xBEEF))
        .address(pool)
        .address(addr(0x9051))
        .u128(1_000)
        .u64(10)
        .u64(20)
        .i32_bits(60)
        .i32_bits(-60)
        .u64(reserve_x)
        .u64(reserve_y)
    )
    return event(MOMENTUM_EXCHANGE, "liquidity", event_type, w.build())


def aftermath_swap(pool: str, reserves: list[int], referrer: str | None = None) -> TransactionEvent:
    w = PayloadWriter().address(pool).address(addr(0xBEEF))
    if referrer is None:
        w.uleb128(0)
    else:
        w.uleb128(1).address(referrer)
    w.uleb128(1).string(SUI)  # types_in
    w.uleb128(1).u64(100)  # amounts_in
    w.uleb128(1).string(USDC)  # types_out
    w.uleb128(1).u64(99)  # amounts_out
    w.uleb128(len(reserves))
    for reserve in reserves:
        w.u64(reserve)
    return event(AFTERMATH_EXCHANGE, "events", "SwapEventV2", w.build())


def obric_swap(pool: str, coin_a: str, coin_b: str) -> TransactionEvent:
    w = (
        PayloadWriter()
        .address(pool)
        .u64(100)
        .u64(99)
        .boolean(True)
        .boolean(True)
        .string(coin_a)
        .string(coin_b)
    )
    return event(OBRIC_EXCHANGE, "obric", "ObricSwapEvent", w.build())


def navi_position(event_type: str, asset: int, user: str, amount: int) -> TransactionEvent:
    w = PayloadWriter().u8(asset).address(user)
    if event_type == "WithdrawEvent":
        w.address(user)
    w.u64(amount)
    return event(NAVI_LENDING, "lending", event_type, w.build())


RAY = 10**27


def navi_reserve_config(
    asset: int,
    ltv: str = "0.7",
    threshold: str = "0.8",
    ratio: str = "0.35",
    bonus: str = "0.05",
    decimals: int = 9,
    feed: bytes = b"",
) -> TransactionEvent:
    def ray(value: str) -> int:
        whole, _, frac = value.partition(".")
        return int(whole) * RAY + int(frac.ljust(27, "0")) if frac else int(whole) * RAY

    w = (
        PayloadWriter()
        .u8(asset)
        .u256(ray(ltv))
        .u256(ray(threshold))
        .u256(ray(ratio))
        .u256(ray(bonus))
        .u64(0)
        .u64(0)
        .u8(decimals)
        .byte_vector(feed)
    )
    return event(NAVI_LENDING, "storage", "ReserveConfigUpdated", w.build())


def pyth_price(feed: bytes, price: int, expo: int, timestamp: int = 1_700_000_000) -> TransactionEvent:
    w = PayloadWriter().byte_vector(feed)
    for _ in range(2):  # price, ema price
        w.i64_signed(price).u64(1).i64_signed(expo).u64(timestamp)
    w.u64(timestamp)
    return event(PYTH_ORACLE, "event", "PriceFeedUpdateEvent", w.build())
