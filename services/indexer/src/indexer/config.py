import os
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


def _find_env_file() -> str | None:
    """Find .env file, preferring .env.local for local development."""
    # Check for .env.local first (local overrides)
    for env_file in [".env.local", ".env"]:
        # Check in current directory and project root
        for base in [".", os.environ.get("REPO_ROOT", "")]:
            if base:
                path = Path(base) / env_file
                if path.exists():
                    return str(path)
    return None


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=_find_env_file(),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # DATABASE_URL from environment (production/CI)
    # Falls back to SQLite for local development if not set
    database_url: str = "sqlite:///./local.db"

    # Checkpoint source (full node / checkpoint store HTTP gateway)
    checkpoint_source_url: str = "http://127.0.0.1:9000"
    start_checkpoint: int = 0
    poll_interval_seconds: float = 1.0

    # Price attestations (Pyth Hermes)
    hermes_url: str = "https://hermes.pyth.network"
    price_poll_interval_seconds: int = 10

    # Pipeline sizing
    decode_workers: int = 4
    reorder_buffer_size: int = 16

    # Transient fetch failures: exponential backoff with jitter
    fetch_max_attempts: int = 5
    fetch_backoff_base_seconds: float = 0.5
    fetch_backoff_max_seconds: float = 30.0

    # Arbitrage search
    arbitrage_max_hops: int = 3
    arbitrage_min_profit: str = "0"

    # Metrics are flushed to the metrics table once per interval
    metrics_report_interval_seconds: int = 60

    # First source with a price wins when valuing positions
    price_source_priority: list[str] = ["pyth", "hermes", "supra", "switchboard"]


settings = Settings()
