"""Allocation API endpoints."""
import uuid

from fastapi import APIRouter, HTTPException, status

from fulfillment.api.deps import AllocationSvc
from fulfillment.models.inventory import Inventory
from fulfillment.schemas.allocation import (
    AllocationRequest,
    CandidateGenerationResponse,
    GlobalAllocationPlanResponse,
    VanRouteLinkResponse,
)


router = APIRouter(tags=["Allocation"])


@router.get(
    "/orders/{order_id}/items/{item_id}/candidates",
    response_model=CandidateGenerationResponse,
)
async def get_item_candidates(
    order_id: uuid.UUID,
    item_id: uuid.UUID,
    service: AllocationSvc,
):
    """
    Ranked fulfillment candidates for one order item.
    Read-only; an empty list means no deliverable stock.
    """
    order, item = await service.get_order_item(order_id, item_id)
    result = await service.generate_candidates_for_order_item(order, item)
    return CandidateGenerationResponse.model_validate(result)


@router.post("/plan", response_model=GlobalAllocationPlanResponse)
async def plan_allocation(
    data: AllocationRequest,
    service: AllocationSvc,
):
    """
    Dry-run global plan for a batch of orders.
    Nothing is reserved; partial plans are returned with fully_allocated=false.
    """
    orders = await service.get_orders(data.order_ids)
    plan = await service.plan_global(orders)
    return GlobalAllocationPlanResponse.model_validate(plan)


@router.post("/allocate", response_model=GlobalAllocationPlanResponse)
async def allocate_orders(
    data: AllocationRequest,
    service: AllocationSvc,
):
    """
    Plan and commit a batch of orders atomically.

    Returns 422 when the batch cannot be fully covered and 409 when stock
    changed between planning and commit; nothing is persisted in either case.
    """
    orders = await service.get_orders(data.order_ids)
    plan = await service.plan_and_allocate(orders)
    return GlobalAllocationPlanResponse.model_validate(plan)


@router.get("/vans/{van_id}/route-link", response_model=VanRouteLinkResponse)
async def get_van_route_link(
    van_id: uuid.UUID,
    service: AllocationSvc,
):
    """Google Maps directions for the van's upcoming planned stops."""
    van = await service.db.get(Inventory, van_id)
    if not van or not van.is_van:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Van not found"
        )

    url = await service.resolver.van_route_link(van)
    return VanRouteLinkResponse(van_id=van.id, url=url)
