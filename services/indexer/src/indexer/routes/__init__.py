from fastapi import APIRouter

from services.indexer.src.indexer.routes.arbitrage import router as arbitrage_router
from services.indexer.src.indexer.routes.borrowers import router as borrowers_router
from services.indexer.src.indexer.routes.liquidation_orders import router as liquidation_orders_router
from services.indexer.src.indexer.routes.metrics import router as metrics_router

api_router = APIRouter(prefix="/api")
api_router.include_router(borrowers_router)
api_router.include_router(liquidation_orders_router)
api_router.include_router(arbitrage_router)
api_router.include_router(metrics_router)

__all__ = ["api_router"]
