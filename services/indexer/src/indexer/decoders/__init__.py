from services.indexer.src.indexer.decoders.aftermath import register_aftermath
from services.indexer.src.indexer.decoders.bluefin import register_bluefin
from services.indexer.src.indexer.decoders.bluemove import register_bluemove
from services.indexer.src.indexer.decoders.cetus import register_cetus
from services.indexer.src.indexer.decoders.codec import DecodeError, PayloadReader
from services.indexer.src.indexer.decoders.config import DecoderConfig, get_default_config
from services.indexer.src.indexer.decoders.flowx import register_flowx
from services.indexer.src.indexer.decoders.momentum import register_momentum
from services.indexer.src.indexer.decoders.navi import register_navi
from services.indexer.src.indexer.decoders.obric import register_obric
from services.indexer.src.indexer.decoders.pyth import register_pyth
from services.indexer.src.indexer.decoders.registry import DecoderRegistry
from services.indexer.src.indexer.decoders.scallop import register_scallop
from services.indexer.src.indexer.decoders.suilend import register_suilend
from services.indexer.src.indexer.decoders.turbos import register_turbos

PROTOCOL_REGISTRATIONS = [
    register_cetus,
    register_bluefin,
    register_bluemove,
    register_turbos,
    register_flowx,
    register_momentum,
    register_aftermath,
    register_obric,
    register_navi,
    register_suilend,
    register_scallop,
    register_pyth,
]


def build_default_registry(config: DecoderConfig | None = None) -> DecoderRegistry:
    """Registry with every supported protocol registered."""
    config = config or get_default_config()
    registry = DecoderRegistry()
    for register in PROTOCOL_REGISTRATIONS:
        register(registry, config)
    return registry


__all__ = [
    "DecodeError",
    "DecoderConfig",
    "DecoderRegistry",
    "PayloadReader",
    "build_default_registry",
    "get_default_config",
]
