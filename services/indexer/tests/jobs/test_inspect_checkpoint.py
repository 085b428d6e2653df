import json

from services.indexer.src.indexer.decoders import build_default_registry
from services.indexer.src.indexer.jobs.inspect_checkpoint import event_to_dict
from services.indexer.tests.payloads import (
    TEST_CONFIG,
    addr,
    event,
    make_checkpoint,
    make_tx,
    navi_position,
)


class TestEventToDict:
    def test_decoded_event_serializes_with_kind(self):
        checkpoint = make_checkpoint(
            7, make_tx("tx7", navi_position("DepositEvent", 0, addr(0xB0B), 5_000))
        )
        [decoded] = build_default_registry(TEST_CONFIG).decode_all(checkpoint.raw_events())

        data = json.loads(json.dumps(event_to_dict(decoded), default=str))

        assert data["kind"] == "PositionDeposit"
        assert data["origin"] == {"checkpoint": 7, "tx_digest": "tx7", "event_index": 0}
        assert data["amount"] == 5_000
        assert data["borrower"] == addr(0xB0B)

    def test_unrecognized_event_keeps_reason(self):
        checkpoint = make_checkpoint(1, make_tx("tx1", event("cetus", "pool", "SomethingNew", b"\x01")))
        [decoded] = build_default_registry(TEST_CONFIG).decode_all(checkpoint.raw_events())

        data = event_to_dict(decoded)

        assert data["kind"] == "Unrecognized"
        assert data["reason"] == "unknown event type"
