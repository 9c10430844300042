from fastapi import APIRouter

from fulfillment.api.v1.endpoints import (
    allocation,
    stock,
)

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(allocation.router, prefix="/allocation")
api_router.include_router(stock.router, prefix="/stock")
