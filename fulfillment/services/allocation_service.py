"""
Global Allocation Service.

Allocation engine for batches of orders:
1. Phase A - candidate paths per order item (CandidateGenerator)
2. Phase B step 1 - greedy global plan sharing stock across all items
3. Phase B step 2 - atomic commit of a fully allocated plan (PlanCommitter)

Planning never writes; only the commit mutates stock rows, movements and
order statuses.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, List, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fulfillment.core.exceptions import InfeasiblePlanError, ReferenceNotFoundError
from fulfillment.models.order import Order, OrderItem
from fulfillment.services.allocation_types import (
    AllocationChunk,
    CandidateGenerationResult,
    GlobalAllocationPlan,
    OrderItemAllocationPlan,
)
from fulfillment.services.candidate_generator import CandidateGenerator
from fulfillment.services.plan_committer import PlanCommitter
from fulfillment.services.route_overhead import RouteOverheadResolver
from fulfillment.services.routing_service import RoutingProvider
from fulfillment.services.stock_service import StockService

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GlobalAllocationService:
    """Plans and commits stock allocation for batches of orders."""

    def __init__(
        self,
        db: AsyncSession,
        routing: RoutingProvider,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.db = db
        self.routing = routing
        self.clock = clock
        self.resolver = RouteOverheadResolver(db, routing, clock=clock)
        self.generator = CandidateGenerator(db, self.resolver, StockService(db), clock=clock)
        self.committer = PlanCommitter(db)

    # ========================================================================
    # LOOKUPS
    # ========================================================================

    async def get_orders(self, order_ids: Sequence[uuid.UUID]) -> List[Order]:
        """Orders in the requested sequence; any unknown id raises ReferenceNotFoundError."""
        if not order_ids:
            return []
        result = await self.db.execute(select(Order).where(Order.id.in_(list(order_ids))))
        by_id = {order.id: order for order in result.scalars().all()}

        missing = [str(oid) for oid in order_ids if oid not in by_id]
        if missing:
            raise ReferenceNotFoundError(f"Order(s) not found: {', '.join(missing)}")

        ordered: List[Order] = []
        for oid in order_ids:
            if by_id[oid] not in ordered:
                ordered.append(by_id[oid])
        return ordered

    async def get_order_item(self, order_id: uuid.UUID, item_id: uuid.UUID):
        order = await self.db.get(Order, order_id)
        if order is None:
            raise ReferenceNotFoundError(f"Order not found: {order_id}")
        item = next((i for i in order.items if i.id == item_id), None)
        if item is None:
            raise ReferenceNotFoundError(f"Order item {item_id} not found on order {order.order_number}")
        return order, item

    # ========================================================================
    # PHASE A
    # ========================================================================

    async def generate_candidates_for_order_item(
        self,
        order: Order,
        order_item: OrderItem,
    ) -> CandidateGenerationResult:
        return await self.generator.generate(order, order_item)

    # ========================================================================
    # PHASE B
    # ========================================================================

    async def plan_global(self, orders: Sequence[Order]) -> GlobalAllocationPlan:
        """
        Greedy plan over every item of ``orders``.

        Items with the fewest candidates are planned first so scarce items get
        first pick. Remaining units per stock row are tracked for this call
        only, starting from the amount seen during candidate generation. An
        item that cannot be covered clears ``fully_allocated`` but is still
        returned with whatever was allocated.
        """
        results: List[CandidateGenerationResult] = []
        for order in orders:
            for item in order.items:
                results.append(await self.generate_candidates_for_order_item(order, item))

        # sort() is stable: ties keep the input order
        results.sort(key=lambda r: len(r.candidates))

        remaining_units: Dict[uuid.UUID, int] = {}
        plan = GlobalAllocationPlan()

        for result in results:
            item_plan = OrderItemAllocationPlan(
                order_id=result.order_id,
                order_item_id=result.order_item_id,
                product_id=result.product_id,
                requested_quantity=result.requested_quantity,
            )
            remaining_demand = result.requested_quantity

            for candidate in result.candidates:
                if remaining_demand <= 0:
                    break
                stock = candidate.primary_stock
                available = remaining_units.setdefault(stock.id, stock.amount)
                take = min(remaining_demand, candidate.max_feasible_amount, available)
                if take <= 0:
                    continue

                item_plan.chunks.append(AllocationChunk(
                    order_id=result.order_id,
                    order_item_id=result.order_item_id,
                    candidate=candidate,
                    quantity=take,
                ))
                item_plan.allocated_quantity += take
                remaining_units[stock.id] = available - take
                remaining_demand -= take

            if remaining_demand > 0:
                plan.fully_allocated = False
                logger.warning(
                    f"Order item {result.order_item_id}: allocated "
                    f"{item_plan.allocated_quantity}/{result.requested_quantity}"
                )
            plan.item_plans.append(item_plan)

        logger.info(
            f"Planned {len(plan.item_plans)} item(s) across {len(orders)} order(s), "
            f"fully_allocated={plan.fully_allocated}"
        )
        return plan

    async def plan_and_allocate(self, orders: Sequence[Order]) -> GlobalAllocationPlan:
        """Plan and commit; raises InfeasiblePlanError without writing when coverage is partial."""
        plan = await self.plan_global(orders)
        if not plan.fully_allocated:
            short = [
                str(ip.order_item_id) for ip in plan.item_plans if not ip.is_fully_allocated
            ]
            raise InfeasiblePlanError(
                f"Not enough deliverable stock for order item(s): {', '.join(short)}"
            )
        await self.committer.commit_global_plan(plan)
        return plan
