"""Stock API endpoints."""
import uuid
from typing import List, Optional

from fastapi import APIRouter, status

from fulfillment.api.deps import StockSvc
from fulfillment.schemas.stock import (
    FillLevelResponse,
    InventoryOrderResponse,
    ProductStockResponse,
    StockLoadRequest,
    StockRowResponse,
    StockUnloadRequest,
)


router = APIRouter(tags=["Stock"])


@router.post(
    "/load",
    response_model=List[StockRowResponse],
    status_code=status.HTTP_201_CREATED,
)
async def load_stock(
    data: StockLoadRequest,
    service: StockSvc,
):
    """Add available units to an inventory."""
    rows = await service.load_stock(
        data.inventory_id,
        [(item.product_id, item.amount) for item in data.items],
    )
    return [StockRowResponse.model_validate(r) for r in rows]


@router.post("/unload", response_model=List[StockRowResponse])
async def unload_stock(
    data: StockUnloadRequest,
    service: StockSvc,
):
    """Move units to another inventory, or deliver reserved units to the client."""
    rows = await service.unload_stock(
        data.source_inventory_id,
        [(item.product_id, item.amount) for item in data.items],
        destination_inventory_id=data.destination_inventory_id,
        order_id=data.order_id,
    )
    return [StockRowResponse.model_validate(r) for r in rows]


@router.get(
    "/inventories/{inventory_id}/fill-level",
    response_model=FillLevelResponse,
)
async def get_fill_level(
    inventory_id: uuid.UUID,
    service: StockSvc,
):
    inventory = await service.get_inventory(inventory_id)
    level = await service.fill_level(inventory)
    return FillLevelResponse(
        inventory_id=inventory.id,
        code=inventory.code,
        capacity_cc=inventory.capacity_cc,
        fill_level=level,
    )


@router.get(
    "/orders/{order_id}/reservations",
    response_model=List[StockRowResponse],
)
async def get_order_reservations(
    order_id: uuid.UUID,
    service: StockSvc,
):
    """Stock rows reserved for the order's items."""
    rows = await service.reservations_for_order(order_id)
    return [StockRowResponse.model_validate(r) for r in rows]


@router.get(
    "/inventories/{inventory_id}/orders",
    response_model=List[InventoryOrderResponse],
)
async def get_inventory_orders(
    inventory_id: uuid.UUID,
    service: StockSvc,
):
    """Orders with reserved units in the inventory."""
    orders = await service.orders_for_inventory(inventory_id)
    return [InventoryOrderResponse.model_validate(o) for o in orders]


@router.get(
    "/inventories/{inventory_id}/products",
    response_model=List[ProductStockResponse],
)
async def get_inventory_products(
    inventory_id: uuid.UUID,
    service: StockSvc,
    order_id: Optional[uuid.UUID] = None,
):
    """Available products of the inventory, or those reserved for ``order_id``."""
    products = await service.products_for_inventory(inventory_id, order_id)
    return [
        ProductStockResponse(product_id=p.id, sku=p.sku, name=p.name, amount=amount)
        for p, amount in products
    ]
