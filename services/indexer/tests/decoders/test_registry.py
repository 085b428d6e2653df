"""Tests for decoder dispatch."""

import pytest

from services.indexer.src.indexer.decoders import build_default_registry, get_default_config
from services.indexer.src.indexer.decoders.config import CETUS_EXCHANGE, PYTH_ORACLE
from services.indexer.src.indexer.decoders.registry import DecoderRegistry
from services.indexer.src.indexer.domain.models import PoolCreated, RawEvent, Unrecognized
from services.indexer.tests.payloads import (
    PACKAGES,
    SUI,
    TEST_CONFIG,
    USDC,
    PayloadWriter,
    addr,
    cetus_create_pool,
)


def make_raw(package_id: str, module: str, event_type: str, payload: bytes, index: int = 0) -> RawEvent:
    return RawEvent(
        checkpoint=10,
        tx_digest="tx1",
        event_index=index,
        sender=addr(1),
        package_id=package_id,
        module=module,
        event_type=event_type,
        payload=payload,
    )


def raw_from(tx_event, index: int = 0) -> RawEvent:
    return make_raw(tx_event.package_id, tx_event.module, tx_event.event_type, tx_event.payload, index)


@pytest.fixture
def registry():
    return build_default_registry(TEST_CONFIG)


class TestDecoderRegistry:
    def test_duplicate_registration_raises(self):
        registry = DecoderRegistry()
        registry.register("0x1", "m", "E", lambda r, raw, o: None, "test")
        with pytest.raises(ValueError, match="already registered"):
            registry.register("0x1", "m", "E", lambda r, raw, o: None, "test")

    def test_unknown_event_type_is_unrecognized(self, registry):
        decoded = registry.decode(make_raw("0xunknown", "m", "Thing", b"\x01"))

        assert isinstance(decoded, Unrecognized)
        assert decoded.reason == "unknown event type"
        assert decoded.type_tag == "0xunknown::m::Thing"
        assert decoded.origin.event_index == 0

    def test_truncated_payload_is_unrecognized(self, registry):
        good = cetus_create_pool(addr(5), SUI, USDC)
        decoded = registry.decode(
            make_raw(good.package_id, good.module, good.event_type, good.payload[:-3])
        )

        assert isinstance(decoded, Unrecognized)
        assert "truncated" in decoded.reason

    def test_trailing_bytes_are_unrecognized(self, registry):
        good = cetus_create_pool(addr(5), SUI, USDC)
        decoded = registry.decode(
            make_raw(good.package_id, good.module, good.event_type, good.payload + b"\x00")
        )

        assert isinstance(decoded, Unrecognized)

    def test_unsupported_layout_version_is_unrecognized(self, registry):
        payload = PayloadWriter(9).build()
        decoded = registry.decode(make_raw(PACKAGES[CETUS_EXCHANGE], "factory", "CreatePoolEvent", payload))

        assert isinstance(decoded, Unrecognized)
        assert "version" in decoded.reason

    def test_decodes_registered_event(self, registry):
        decoded = registry.decode(raw_from(cetus_create_pool(addr(5), SUI, USDC)))

        assert isinstance(decoded, PoolCreated)
        assert decoded.pool_address == addr(5)

    def test_decode_all_preserves_order(self, registry):
        raws = [
            raw_from(cetus_create_pool(addr(5), SUI, USDC), 0),
            make_raw("0xunknown", "m", "Thing", b"\x01", 1),
            raw_from(cetus_create_pool(addr(6), SUI, USDC), 2),
        ]
        decoded = registry.decode_all(raws)

        assert [d.origin.event_index for d in decoded] == [0, 1, 2]
        assert isinstance(decoded[1], Unrecognized)


class TestDefaultRegistry:
    def test_registers_all_protocols(self):
        registry = build_default_registry()
        assert registry.protocols() == {
            "cetus", "bluefin", "bluemove", "turbos", "flowx", "momentum", "aftermath", "obric",
            "navi", "suilend", "scallop", PYTH_ORACLE,
        }

    def test_every_package_version_is_registered(self):
        config = get_default_config()
        registry = build_default_registry(config)
        for package_id in config.package_ids("scallop"):
            assert (package_id, "borrow", "BorrowEventV3") in registry
        for package_id in config.package_ids("bluefin"):
            assert (package_id, "events", "PoolCreated") in registry
