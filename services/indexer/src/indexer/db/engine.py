from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from services.indexer.src.indexer.config import settings


def get_engine(database_url: str | None = None) -> Engine:
    """Engine for the indexer database. SQLite connections may be used from the engine worker threads."""
    url = database_url or settings.database_url
    if url.startswith("sqlite"):
        return create_engine(
            url, echo=False, connect_args={"check_same_thread": False, "timeout": 30}
        )
    return create_engine(url, echo=False, pool_pre_ping=True)


def init_db(engine: Engine) -> None:
    from services.indexer.src.indexer.db.models import metadata

    metadata.create_all(engine)
