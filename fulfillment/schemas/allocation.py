"""Allocation request/response schemas."""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import Field

from fulfillment.models.movement import MovementType
from fulfillment.schemas.base import BaseResponseSchema, BaseCreateSchema


# ==================== REQUESTS ====================

class AllocationRequest(BaseCreateSchema):
    """Orders to plan or allocate together."""
    order_ids: List[UUID] = Field(..., min_length=1, description="Orders to allocate in one batch")


# ==================== CANDIDATES ====================

class MovementTemplateResponse(BaseResponseSchema):
    movement_type: MovementType
    from_inventory_id: Optional[UUID] = Field(None, description="NULL means the client")
    to_inventory_id: Optional[UUID] = Field(None, description="NULL means the client")
    move_at: datetime
    estimated_volume_cc: Decimal
    assigned_user_id: Optional[UUID] = None


class StockRowSnapshotResponse(BaseResponseSchema):
    id: UUID
    inventory_id: UUID
    product_id: UUID
    inventory_type: str
    amount: int


class CandidateMetricsResponse(BaseResponseSchema):
    distance_km: float
    travel_time_sec: float
    handling_time_sec: float
    pressure: float


class PathCandidateResponse(BaseResponseSchema):
    primary_stock: StockRowSnapshotResponse
    product_id: UUID
    delivering_van_id: Optional[UUID] = None
    max_feasible_amount: int
    movements: List[MovementTemplateResponse]
    metrics: CandidateMetricsResponse
    pattern: str
    provisional_score: float


class CandidateGenerationResponse(BaseResponseSchema):
    order_id: UUID
    order_item_id: UUID
    product_id: UUID
    requested_quantity: int
    candidates: List[PathCandidateResponse] = []


# ==================== PLANS ====================

class AllocationChunkResponse(BaseResponseSchema):
    order_id: UUID
    order_item_id: UUID
    quantity: int
    candidate: PathCandidateResponse


class OrderItemAllocationPlanResponse(BaseResponseSchema):
    order_id: UUID
    order_item_id: UUID
    product_id: UUID
    requested_quantity: int
    allocated_quantity: int
    is_fully_allocated: bool
    chunks: List[AllocationChunkResponse] = []


class GlobalAllocationPlanResponse(BaseResponseSchema):
    fully_allocated: bool
    order_ids: List[UUID] = []
    item_plans: List[OrderItemAllocationPlanResponse] = []


class VanRouteLinkResponse(BaseResponseSchema):
    """Google Maps directions for a van's upcoming stops; url is None when nothing is planned."""
    van_id: UUID
    url: Optional[str] = None
