import logging
from dataclasses import dataclass
from typing import Callable, Iterable

from services.indexer.src.indexer.decoders.codec import DecodeError, PayloadReader
from services.indexer.src.indexer.domain.models import (
    DecodedEvent,
    EventOrigin,
    RawEvent,
    Unrecognized,
)

logger = logging.getLogger(__name__)

Decoder = Callable[[PayloadReader, RawEvent, EventOrigin], DecodedEvent]


@dataclass(frozen=True)
class RegisteredDecoder:
    protocol: str
    decoder: Decoder
    versions: frozenset[int]


class DecoderRegistry:
    """Dispatches raw events to protocol decoders by (package_id, module, event_type).

    `decode` never raises: unknown keys, unsupported layout versions and
    malformed payloads all come back as `Unrecognized`.
    """

    def __init__(self):
        self._decoders: dict[tuple[str, str, str], RegisteredDecoder] = {}

    def register(
        self,
        package_id: str,
        module: str,
        event_type: str,
        decoder: Decoder,
        protocol: str,
        versions: Iterable[int] = (1,),
    ) -> None:
        key = (package_id, module, event_type)
        if key in self._decoders:
            raise ValueError(f"Decoder already registered for {'::'.join(key)}")
        self._decoders[key] = RegisteredDecoder(
            protocol=protocol, decoder=decoder, versions=frozenset(versions)
        )

    def __contains__(self, key: tuple[str, str, str]) -> bool:
        return key in self._decoders

    def __len__(self) -> int:
        return len(self._decoders)

    def protocols(self) -> set[str]:
        return {entry.protocol for entry in self._decoders.values()}

    def decode(self, raw: RawEvent) -> DecodedEvent:
        origin = EventOrigin(
            checkpoint=raw.checkpoint,
            tx_digest=raw.tx_digest,
            event_index=raw.event_index,
        )
        entry = self._decoders.get(raw.dispatch_key)
        if entry is None:
            return Unrecognized(origin=origin, type_tag=raw.type_tag, reason="unknown event type")

        reader = PayloadReader(raw.payload)
        try:
            reader.version(entry.versions)
            event = entry.decoder(reader, raw, origin)
            reader.expect_end()
        except (DecodeError, ValueError, ArithmeticError) as e:
            logger.debug(f"Failed to decode {raw.type_tag} in tx {raw.tx_digest}: {e}")
            return Unrecognized(origin=origin, type_tag=raw.type_tag, reason=str(e))
        return event

    def decode_all(self, raws: Iterable[RawEvent]) -> list[DecodedEvent]:
        return [self.decode(raw) for raw in raws]
