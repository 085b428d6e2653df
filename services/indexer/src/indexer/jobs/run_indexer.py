"""
Run the checkpoint indexer.

Fetches checkpoints from the checkpoint gateway, decodes protocol events,
commits them in order and feeds the risk and arbitrage engines. Without
--start, resumes after the last reported checkpoint.

Usage:
    python -m services.indexer.src.indexer.jobs.run_indexer
    python -m services.indexer.src.indexer.jobs.run_indexer --start 120000000 --end 120001000
"""
import argparse
import logging
import sys
import time

from services.indexer.src.indexer.config import settings
from services.indexer.src.indexer.db.engine import get_engine, init_db
from services.indexer.src.indexer.pipeline.runner import RunResult, RunStatus
from services.indexer.src.indexer.pipeline.service import build_service

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def run_indexer(
    start: int | None = None,
    end: int | None = None,
    database_url: str | None = None,
) -> RunResult | None:
    """Run until the range is done, the pipeline halts or stalls, or Ctrl-C."""
    engine = get_engine(database_url)
    init_db(engine)
    service = build_service(engine)
    service.start(start, end)

    next_flush = time.monotonic() + settings.metrics_report_interval_seconds
    next_poll = time.monotonic()
    try:
        while service.is_running():
            now = time.monotonic()
            if now >= next_poll:
                service.poll_prices()
                next_poll = now + settings.price_poll_interval_seconds
            if now >= next_flush:
                service.flush_metrics()
                next_flush = now + settings.metrics_report_interval_seconds
            time.sleep(0.5)
    except KeyboardInterrupt:
        logger.info("Interrupted, stopping at the next checkpoint boundary...")
    return service.stop()


def main() -> int:
    parser = argparse.ArgumentParser(description="Index Sui checkpoints")
    parser.add_argument(
        "--start",
        type=int,
        default=None,
        help="First checkpoint (default: resume after the last reported one)",
    )
    parser.add_argument(
        "--end",
        type=int,
        default=None,
        help="Last checkpoint, inclusive (default: follow the chain)",
    )
    parser.add_argument(
        "--database-url",
        type=str,
        default=None,
        help="Database URL (default: from settings)",
    )

    args = parser.parse_args()

    try:
        result = run_indexer(args.start, args.end, args.database_url)
    except Exception as e:
        logger.error(f"Indexer failed: {e}", exc_info=True)
        return 1

    if result is None:
        return 1
    logger.info(
        f"Indexer {result.status.value}: committed {result.committed}, "
        f"resume at {result.next_sequence}"
    )
    if result.error:
        logger.error(result.error)
    return 0 if result.status in (RunStatus.COMPLETED, RunStatus.STOPPED) else 1


if __name__ == "__main__":
    sys.exit(main())
