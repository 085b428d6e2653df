"""
Decode a single checkpoint, or replay one of its transactions.

Decoding prints every event as JSON without touching the database. Replaying
re-applies one transaction's events; events already reflected in stored
positions are skipped.

Usage:
    python -m services.indexer.src.indexer.jobs.inspect_checkpoint --checkpoint 120000000
    python -m services.indexer.src.indexer.jobs.inspect_checkpoint --checkpoint 120000000 --tx <digest>
"""
import argparse
import dataclasses
import json
import logging
import sys
from typing import Any

from services.indexer.src.indexer.config import settings
from services.indexer.src.indexer.db.engine import get_engine, init_db
from services.indexer.src.indexer.db.store import StateStore
from services.indexer.src.indexer.decoders import build_default_registry
from services.indexer.src.indexer.domain.models import DecodedEvent
from services.indexer.src.indexer.pipeline.runner import CheckpointPipeline
from services.indexer.src.indexer.pipeline.source import (
    NOT_YET_AVAILABLE,
    HttpCheckpointSource,
    TransientSourceError,
)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def event_to_dict(event: DecodedEvent) -> dict[str, Any]:
    data = dataclasses.asdict(event)
    data["kind"] = type(event).__name__
    return data


def main() -> int:
    parser = argparse.ArgumentParser(description="Decode a checkpoint or replay one transaction")
    parser.add_argument("--checkpoint", type=int, required=True, help="Checkpoint sequence number")
    parser.add_argument("--tx", type=str, default=None, help="Transaction digest to replay")
    parser.add_argument(
        "--source-url",
        type=str,
        default=None,
        help="Checkpoint gateway URL (default: from settings)",
    )
    parser.add_argument(
        "--database-url",
        type=str,
        default=None,
        help="Database URL (default: from settings)",
    )

    args = parser.parse_args()

    source = HttpCheckpointSource(args.source_url or settings.checkpoint_source_url)
    try:
        checkpoint = source.fetch(args.checkpoint)
    except TransientSourceError as e:
        logger.error(f"Could not fetch checkpoint {args.checkpoint}: {e}")
        return 1
    finally:
        source.close()
    if checkpoint is NOT_YET_AVAILABLE:
        logger.error(f"Checkpoint {args.checkpoint} is not available yet")
        return 1

    registry = build_default_registry()

    if args.tx is None:
        for event in registry.decode_all(checkpoint.raw_events()):
            print(json.dumps(event_to_dict(event), default=str))
        return 0

    engine = get_engine(args.database_url)
    init_db(engine)
    pipeline = CheckpointPipeline(source=source, registry=registry, store=StateStore(engine))
    try:
        result = pipeline.replay_transaction(checkpoint, args.tx)
    except ValueError as e:
        logger.error(str(e))
        return 1

    for event in result.effective:
        print(json.dumps(event_to_dict(event), default=str))
    logger.info(
        f"Replayed {args.tx}: {len(result.effective)} applied, {result.skipped} already applied, "
        f"{result.unrecognized} unrecognized, {result.invariant_violations} rejected"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
