"""
Operational commands for borrowers and pools.

Usage:
    python -m services.indexer.src.indexer.jobs.borrowers list --platform navi --status liquidatable
    python -m services.indexer.src.indexer.jobs.borrowers export borrowers.json
    python -m services.indexer.src.indexer.jobs.borrowers import borrowers.json
    python -m services.indexer.src.indexer.jobs.borrowers import-pools pools.json
    python -m services.indexer.src.indexer.jobs.borrowers export-pools pools.json --exchange cetus
    python -m services.indexer.src.indexer.jobs.borrowers hf --platform navi --address 0x...
    python -m services.indexer.src.indexer.jobs.borrowers arbitrage --coin 0x2::sui::SUI
"""
import argparse
import json
import logging
import sys
from decimal import Decimal
from pathlib import Path

from services.indexer.src.indexer.config import settings
from services.indexer.src.indexer.db.engine import get_engine, init_db
from services.indexer.src.indexer.db.store import StateStore
from services.indexer.src.indexer.domain.arbitrage import ArbitrageEngine
from services.indexer.src.indexer.domain.models import Borrower, BorrowerStatus, Pool
from services.indexer.src.indexer.domain.risk_engine import compute_health

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def borrower_to_dict(borrower: Borrower) -> dict:
    return {
        "platform": borrower.platform,
        "address": borrower.address,
        "obligation_id": borrower.obligation_id,
        "status": borrower.status.name.lower(),
        "health_factor": str(borrower.health_factor) if borrower.health_factor is not None else None,
    }


def borrower_from_dict(data: dict) -> Borrower:
    hf = data.get("health_factor")
    return Borrower(
        platform=data["platform"],
        address=data["address"],
        obligation_id=data.get("obligation_id"),
        status=BorrowerStatus[data.get("status", "active").upper()],
        health_factor=Decimal(hf) if hf is not None else None,
    )


def export_borrowers(store: StateStore, path: Path, platform: str | None = None) -> int:
    borrowers = store.borrowers.list_borrowers(platform)
    path.write_text(json.dumps([borrower_to_dict(b) for b in borrowers], indent=2))
    return len(borrowers)


def import_borrowers(store: StateStore, path: Path) -> int:
    items = json.loads(path.read_text())
    return store.borrowers.import_borrowers(borrower_from_dict(item) for item in items)


POOL_FIELDS = (
    "reserve_a",
    "reserve_b",
    "liquidity",
    "sqrt_price",
    "tick_index",
    "tick_spacing",
    "fee_rate",
)


def pool_to_dict(pool: Pool) -> dict:
    data = {
        "exchange": pool.exchange,
        "address": pool.address,
        "coin_a": pool.coin_a,
        "coin_b": pool.coin_b,
        "is_paused": pool.is_paused,
    }
    # u128 amounts go out as strings
    for name in POOL_FIELDS:
        value = getattr(pool, name)
        data[name] = str(value) if value is not None else None
    return data


def pool_from_dict(data: dict) -> Pool:
    """Build a pool from a snapshot entry; only exchange and address are required."""
    numbers = {
        name: int(data[name]) for name in POOL_FIELDS if data.get(name) is not None
    }
    return Pool(
        exchange=data["exchange"],
        address=data["address"],
        coin_a=data.get("coin_a"),
        coin_b=data.get("coin_b"),
        is_paused=bool(data.get("is_paused", False)),
        **numbers,
    )


def export_pools(store: StateStore, path: Path, exchange: str | None = None) -> int:
    items = store.pools.list_pools(exchange)
    path.write_text(json.dumps([pool_to_dict(p) for p in items], indent=2))
    return len(items)


def import_pools(store: StateStore, path: Path) -> int:
    items = json.loads(path.read_text())
    return store.pools.import_pools(pool_from_dict(item) for item in items)


def main() -> int:
    parser = argparse.ArgumentParser(description="Borrower and arbitrage utilities")
    parser.add_argument(
        "--database-url",
        type=str,
        default=None,
        help="Database URL (default: from settings)",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    list_cmd = commands.add_parser("list", help="List tracked borrowers")
    list_cmd.add_argument("--platform", type=str, default=None)
    list_cmd.add_argument(
        "--status", type=str, choices=[s.name.lower() for s in BorrowerStatus], default=None
    )
    list_cmd.add_argument("--limit", type=int, default=100)

    export_cmd = commands.add_parser("export", help="Write borrowers to a JSON file")
    export_cmd.add_argument("path", type=Path)
    export_cmd.add_argument("--platform", type=str, default=None)

    import_cmd = commands.add_parser("import", help="Load borrowers from a JSON file")
    import_cmd.add_argument("path", type=Path)

    export_pools_cmd = commands.add_parser("export-pools", help="Write pools to a JSON file")
    export_pools_cmd.add_argument("path", type=Path)
    export_pools_cmd.add_argument("--exchange", type=str, default=None)

    import_pools_cmd = commands.add_parser(
        "import-pools", help="Load pools (coins, fee, start price) from a JSON file"
    )
    import_pools_cmd.add_argument("path", type=Path)

    hf_cmd = commands.add_parser("hf", help="Health factor for one borrower")
    hf_cmd.add_argument("--platform", type=str, required=True)
    hf_cmd.add_argument("--address", type=str, required=True)
    hf_cmd.add_argument("--drop-coin", type=str, default=None, help="Simulate a price drop for this coin")
    hf_cmd.add_argument("--drop-percent", type=Decimal, default=Decimal(10))

    arb_cmd = commands.add_parser("arbitrage", help="Search arbitrage cycles from one coin")
    arb_cmd.add_argument("--coin", type=str, required=True)
    arb_cmd.add_argument("--max-hops", type=int, default=settings.arbitrage_max_hops)

    args = parser.parse_args()

    engine = get_engine(args.database_url)
    init_db(engine)
    store = StateStore(engine)

    if args.command == "list":
        status = BorrowerStatus[args.status.upper()] if args.status else None
        for borrower in store.borrowers.list_borrowers(args.platform, status, args.limit):
            print(json.dumps(borrower_to_dict(borrower)))
        return 0

    if args.command == "export":
        count = export_borrowers(store, args.path, args.platform)
        logger.info(f"Exported {count} borrowers to {args.path}")
        return 0

    if args.command == "import":
        count = import_borrowers(store, args.path)
        logger.info(f"Imported {count} borrowers from {args.path}")
        return 0

    if args.command == "export-pools":
        count = export_pools(store, args.path, args.exchange)
        logger.info(f"Exported {count} pools to {args.path}")
        return 0

    if args.command == "import-pools":
        count = import_pools(store, args.path)
        logger.info(f"Imported {count} pools from {args.path}")
        return 0

    if args.command == "hf":
        health = compute_health(store, args.platform, args.address, settings.price_source_priority)
        if health is None:
            logger.error("Incomplete position, market or price data")
            return 1
        logger.info(
            f"{args.platform}:{args.address} hf={health.health_factor} "
            f"collateral={health.total_collateral_value:.2f} debt={health.total_debt_value:.2f}"
        )
        if args.drop_coin:
            simulated = health.simulate_price_drop(args.drop_coin, args.drop_percent)
            logger.info(
                f"After {args.drop_percent}% drop of {args.drop_coin}: hf={simulated.health_factor} "
                f"liquidatable={simulated.is_liquidatable}"
            )
        return 0

    if args.command == "arbitrage":
        arbitrage = ArbitrageEngine(
            max_hops=args.max_hops, min_profit=Decimal(settings.arbitrage_min_profit)
        )
        arbitrage.bootstrap(store.pools.list_pools(), store.pools.list_ticks())
        found = arbitrage.search(args.coin)
        for opportunity in found:
            logger.info(
                f"{' -> '.join(opportunity.coins)} via {', '.join(opportunity.pools)}: "
                f"rate={opportunity.rate:.6f} profit={opportunity.profit:.6f}"
            )
        logger.info(f"{len(found)} cycles from {args.coin}")
        return 0

    return 1


if __name__ == "__main__":
    sys.exit(main())
