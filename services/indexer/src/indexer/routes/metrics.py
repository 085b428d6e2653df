"""Processing metrics API routes."""

from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.engine import Engine

from services.indexer.src.indexer.db.engine import get_engine
from services.indexer.src.indexer.db.repository import MetricsRepository
from services.indexer.src.indexer.schemas.responses import MetricsResponse

router = APIRouter(prefix="/metrics", tags=["metrics"])


def get_db_engine() -> Engine:
    return get_engine()


@router.get("/latest", response_model=MetricsResponse)
def get_latest(engine: Engine = Depends(get_db_engine)) -> MetricsResponse:
    snapshot = MetricsRepository(engine).get_latest()
    if snapshot is None:
        raise HTTPException(status_code=404, detail="No metrics reported yet")
    return MetricsResponse(**asdict(snapshot))


@router.get("", response_model=list[MetricsResponse])
def list_recent(
    limit: int = Query(default=100, ge=1, le=1000),
    engine: Engine = Depends(get_db_engine),
) -> list[MetricsResponse]:
    return [MetricsResponse(**asdict(s)) for s in MetricsRepository(engine).list_recent(limit)]
