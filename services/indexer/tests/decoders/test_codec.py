"""Tests for the payload reader."""

from decimal import Decimal

import pytest

from services.indexer.src.indexer.decoders.codec import (
    FIXED_POINT_32,
    DecodeError,
    PayloadReader,
    scaled,
)
from services.indexer.tests.payloads import PayloadWriter, addr


class TestPayloadReader:
    def test_reads_version_tag(self):
        reader = PayloadReader(PayloadWriter(2).build())
        assert reader.version({1, 2}) == 2
        assert reader.layout_version == 2

    def test_unsupported_version_raises(self):
        reader = PayloadReader(PayloadWriter(7).build())
        with pytest.raises(DecodeError, match="Unsupported layout version 7"):
            reader.version({1})

    def test_reads_little_endian_integers(self):
        data = PayloadWriter().u32(0x01020304).u64(2**40 + 5).u128(2**100).build()
        reader = PayloadReader(data)
        reader.version({1})
        assert reader.u32() == 0x01020304
        assert reader.u64() == 2**40 + 5
        assert reader.u128() == 2**100
        reader.expect_end()

    def test_u256_keeps_full_precision(self):
        value = 2**255 + 12345
        reader = PayloadReader(PayloadWriter().u256(value).build())
        reader.version({1})
        assert reader.u256() == value

    def test_i32_bits_is_twos_complement(self):
        reader = PayloadReader(PayloadWriter().i32_bits(-443636).i32_bits(10).build())
        reader.version({1})
        assert reader.i32_bits() == -443636
        assert reader.i32_bits() == 10

    def test_i128_bits_negative(self):
        reader = PayloadReader(PayloadWriter().i128_bits(-5).build())
        reader.version({1})
        assert reader.i128_bits() == -5

    def test_i64_signed(self):
        reader = PayloadReader(PayloadWriter().i64_signed(-8).i64_signed(42).build())
        reader.version({1})
        assert reader.i64_signed() == -8
        assert reader.i64_signed() == 42

    def test_invalid_bool_byte_raises(self):
        reader = PayloadReader(PayloadWriter().u8(2).build())
        reader.version({1})
        with pytest.raises(DecodeError):
            reader.boolean()

    def test_multi_byte_uleb128_length(self):
        payload = b"x" * 300
        reader = PayloadReader(PayloadWriter().byte_vector(payload).build())
        reader.version({1})
        assert reader.byte_vector() == payload

    def test_type_name_gets_0x_prefix(self):
        reader = PayloadReader(PayloadWriter().string("2::sui::SUI").string("0x2::sui::SUI").build())
        reader.version({1})
        assert reader.type_name() == "0x2::sui::SUI"
        assert reader.type_name() == "0x2::sui::SUI"

    def test_address_is_hex(self):
        reader = PayloadReader(PayloadWriter().address(addr(0xABC)).build())
        reader.version({1})
        assert reader.address() == addr(0xABC)

    def test_truncated_payload_raises(self):
        reader = PayloadReader(PayloadWriter().u32(1).build())
        reader.version({1})
        with pytest.raises(DecodeError, match="truncated"):
            reader.u64()

    def test_trailing_bytes_raise(self):
        reader = PayloadReader(PayloadWriter().u8(1).u8(2).build())
        reader.version({1})
        reader.u8()
        with pytest.raises(DecodeError, match="trailing"):
            reader.expect_end()

    def test_invalid_utf8_raises_decode_error(self):
        reader = PayloadReader(PayloadWriter().byte_vector(b"\xff\xfe").build())
        reader.version({1})
        with pytest.raises(DecodeError):
            reader.string()


class TestScaled:
    def test_fixed_point_32(self):
        assert scaled(2**31, FIXED_POINT_32) == Decimal("0.5")

    def test_percent_like_scale(self):
        assert scaled(80, Decimal(100)) == Decimal("0.8")
