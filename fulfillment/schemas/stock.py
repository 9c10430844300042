"""Stock request/response schemas."""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import Field

from fulfillment.schemas.base import BaseResponseSchema, BaseCreateSchema


class StockItemAmount(BaseCreateSchema):
    product_id: UUID
    amount: int = Field(..., gt=0)


class StockLoadRequest(BaseCreateSchema):
    """Available units to add to one inventory."""
    inventory_id: UUID
    items: List[StockItemAmount] = Field(..., min_length=1)


class StockUnloadRequest(BaseCreateSchema):
    """Units to move out of one inventory; no destination means the client."""
    source_inventory_id: UUID
    destination_inventory_id: Optional[UUID] = None
    order_id: Optional[UUID] = None
    items: List[StockItemAmount] = Field(..., min_length=1)


class StockRowResponse(BaseResponseSchema):
    id: UUID
    inventory_id: UUID
    product_id: UUID
    order_item_id: Optional[UUID] = None
    amount: int
    updated_at: Optional[datetime] = None


class FillLevelResponse(BaseResponseSchema):
    inventory_id: UUID
    code: str
    capacity_cc: Decimal
    fill_level: float = Field(..., ge=0, le=1)


class InventoryOrderResponse(BaseResponseSchema):
    id: UUID
    order_number: str
    status: str
    delivery_location: str


class ProductStockResponse(BaseResponseSchema):
    product_id: UUID
    sku: str
    name: str
    amount: int
