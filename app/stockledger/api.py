from fastapi import APIRouter

from app.stockledger.core.config import settings
from app.stockledger.routers.catalog import router as catalog_router
from app.stockledger.routers.health import router as health_router
from app.stockledger.routers.metrics import router as metrics_router
from app.stockledger.routers.stock import router as stock_router
from app.stockledger.routers.vouchers import router as vouchers_router

api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(vouchers_router, tags=["vouchers"])
api_router.include_router(stock_router, tags=["stock"])
api_router.include_router(catalog_router, tags=["catalog"])
if settings.METRICS_ENABLED:
    api_router.include_router(metrics_router, tags=["ops"])
