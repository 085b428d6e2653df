"""Reader for BCS-style event payloads.

Every payload starts with a one-byte layout version tag, followed by the
event's fields in declaration order, little-endian, with no padding.
"""

import struct
from decimal import Decimal
from typing import Callable, Optional, TypeVar

T = TypeVar("T")

ADDRESS_LENGTH = 32

# Move fixed-point encodings
WAD = Decimal(10) ** 18
RAY = Decimal(10) ** 27
BPS = Decimal(10_000)
PERCENT = Decimal(100)
FIXED_POINT_32 = Decimal(2**32)


class DecodeError(Exception):
    """Raised when a payload does not match the expected layout."""


class PayloadReader:
    def __init__(self, data: bytes):
        self.data = data
        self.offset = 0
        self.layout_version: int | None = None

    def _take(self, size: int) -> bytes:
        end = self.offset + size
        if end > len(self.data):
            raise DecodeError(
                f"Payload truncated: need {size} bytes at offset {self.offset}, "
                f"have {len(self.data) - self.offset}"
            )
        chunk = self.data[self.offset:end]
        self.offset = end
        return chunk

    def version(self, supported: frozenset[int] | set[int]) -> int:
        tag = self.u8()
        if tag not in supported:
            raise DecodeError(f"Unsupported layout version {tag}")
        self.layout_version = tag
        return tag

    def u8(self) -> int:
        return self._take(1)[0]

    def boolean(self) -> bool:
        value = self.u8()
        if value > 1:
            raise DecodeError(f"Invalid bool byte {value}")
        return value == 1

    def u16(self) -> int:
        return struct.unpack("<H", self._take(2))[0]

    def u32(self) -> int:
        return struct.unpack("<I", self._take(4))[0]

    def u64(self) -> int:
        return struct.unpack("<Q", self._take(8))[0]

    def u128(self) -> int:
        return int.from_bytes(self._take(16), "little")

    def u256(self) -> int:
        return int.from_bytes(self._take(32), "little")

    def i32_bits(self) -> int:
        """Move `I32 { bits: u32 }`, two's complement."""
        bits = self.u32()
        return bits - (1 << 32) if bits & (1 << 31) else bits

    def i128_bits(self) -> int:
        bits = self.u128()
        return bits - (1 << 128) if bits & (1 << 127) else bits

    def i64_signed(self) -> int:
        """Pyth `I64 { negative: bool, magnitude: u64 }`."""
        negative = self.boolean()
        magnitude = self.u64()
        return -magnitude if negative else magnitude

    def uleb128(self) -> int:
        result = 0
        shift = 0
        while True:
            byte = self.u8()
            result |= (byte & 0x7F) << shift
            if not byte & 0x80:
                return result
            shift += 7
            if shift > 63:
                raise DecodeError("ULEB128 length overflow")

    def byte_vector(self) -> bytes:
        return self._take(self.uleb128())

    def vector(self, read: Callable[[], T]) -> list[T]:
        """`vector<T>` of any element type, given the element reader."""
        return [read() for _ in range(self.uleb128())]

    def option(self, read: Callable[[], T]) -> Optional[T]:
        """`Option<T>`, encoded as a vector of zero or one element."""
        length = self.uleb128()
        if length > 1:
            raise DecodeError(f"Invalid option length {length}")
        return read() if length else None

    def string(self) -> str:
        try:
            return self.byte_vector().decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError(f"Invalid utf-8 string: {e}") from e

    def type_name(self) -> str:
        """Move `TypeName`; normalized to a 0x-prefixed coin type."""
        name = self.string()
        return name if name.startswith("0x") else f"0x{name}"

    def address(self) -> str:
        return "0x" + self._take(ADDRESS_LENGTH).hex()

    def expect_end(self) -> None:
        remaining = len(self.data) - self.offset
        if remaining:
            raise DecodeError(f"{remaining} trailing bytes after payload")


def scaled(value: int, scale: Decimal) -> Decimal:
    """Convert an on-chain fixed-point integer to a Decimal ratio."""
    return Decimal(value) / scale
