from typing import Annotated
import logging

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from fulfillment.config import settings
from fulfillment.database import get_db
from fulfillment.services.allocation_service import GlobalAllocationService
from fulfillment.services.routing_service import RoutingProvider, OpenRouteServiceClient
from fulfillment.services.stock_service import StockService


logger = logging.getLogger(__name__)


def get_routing_provider() -> RoutingProvider:
    """Dependency providing the routing/geocoding backend."""
    if not settings.ORS_API_KEY:
        logger.warning("ORS_API_KEY is not set; routing requests will be rejected by the provider")
    return OpenRouteServiceClient()


# Type aliases for dependency injection
DB = Annotated[AsyncSession, Depends(get_db)]
Routing = Annotated[RoutingProvider, Depends(get_routing_provider)]


def get_allocation_service(db: DB, routing: Routing) -> GlobalAllocationService:
    return GlobalAllocationService(db, routing)


def get_stock_service(db: DB) -> StockService:
    return StockService(db)


AllocationSvc = Annotated[GlobalAllocationService, Depends(get_allocation_service)]
StockSvc = Annotated[StockService, Depends(get_stock_service)]
