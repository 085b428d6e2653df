import logging
import os
from contextlib import asynccontextmanager

from apscheduler.schedulers.background import BackgroundScheduler
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from services.indexer.src.indexer.config import settings
from services.indexer.src.indexer.routes import api_router

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler: BackgroundScheduler | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables, start the indexer in the background and schedule metrics reporting."""
    global scheduler

    from services.indexer.src.indexer.db.engine import get_engine, init_db

    engine = get_engine()
    if os.getenv("INIT_DB", "true").lower() == "true":
        init_db(engine)

    service = None
    if os.getenv("ENABLE_INDEXER", "true").lower() == "true":
        from services.indexer.src.indexer.pipeline.service import build_service

        service = build_service(engine)
        app.state.indexer = service
        service.start()
        logger.info("Indexer started")

        scheduler = BackgroundScheduler()
        scheduler.add_job(
            service.flush_metrics,
            "interval",
            seconds=settings.metrics_report_interval_seconds,
            id="metrics",
            name="Metrics report",
        )
        scheduler.add_job(
            service.poll_prices,
            "interval",
            seconds=settings.price_poll_interval_seconds,
            id="prices",
            name="Hermes price poll",
        )
        scheduler.start()

    yield

    # Shutdown scheduler first so no flush races the final one
    if scheduler is not None:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler shutdown complete")
    if service is not None:
        result = service.stop(timeout=30)
        app.state.indexer = None
        logger.info(f"Indexer stopped: {result.status.value if result else 'not started'}")


app = FastAPI(title="Sui Checkpoint Indexer API", lifespan=lifespan)

cors_origins = [
    "http://localhost:3000",
    "https://localhost:3000",
]

# Add custom origin from environment (e.g., a dashboard domain)
if os.getenv("CORS_ORIGIN"):
    cors_origins.append(os.getenv("CORS_ORIGIN"))

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(api_router)


@app.get("/")
def root() -> dict[str, str]:
    return {"service": "sui-checkpoint-indexer", "docs": "/docs"}


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
