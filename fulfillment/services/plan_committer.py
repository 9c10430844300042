"""
Plan Committer (Phase B, step 2).

Turns a fully allocated GlobalAllocationPlan into durable state in one
transaction: available rows are decremented, reserved rows are created or
incremented, PLANNED movements are written against the reserved rows and the
orders move to ALLOCATED. Any drift since planning aborts the whole commit.
"""
import logging
import uuid
from typing import Dict, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fulfillment.core.exceptions import (
    ConcurrentReservationConflict,
    InfeasiblePlanError,
    ReferenceNotFoundError,
)
from fulfillment.models.inventory import StockRow
from fulfillment.models.movement import Movement, MovementStatus
from fulfillment.models.order import Order, OrderItem, OrderStatus
from fulfillment.services.allocation_types import AllocationChunk, GlobalAllocationPlan

logger = logging.getLogger(__name__)

ReservedKey = Tuple[uuid.UUID, uuid.UUID, uuid.UUID]


class PlanCommitter:
    """Persists allocation plans atomically."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def commit_global_plan(self, plan: GlobalAllocationPlan) -> None:
        """
        Commit ``plan`` or raise without persisting anything.

        Raises:
            InfeasiblePlanError: the plan is not fully allocated (checked before any write)
            ReferenceNotFoundError: a stock row, order item or order no longer exists
            ConcurrentReservationConflict: a primary row was reserved or drained since planning
        """
        if not plan.fully_allocated:
            raise InfeasiblePlanError("Cannot commit a plan that is not fully allocated")

        chunk_count = sum(len(ip.chunks) for ip in plan.item_plans)
        try:
            reserved: Dict[ReservedKey, StockRow] = {}
            movement_count = 0

            for item_plan in plan.item_plans:
                for chunk in item_plan.chunks:
                    movement_count += await self._apply_chunk(chunk, reserved)

            for order_id in plan.order_ids:
                order = await self.db.get(Order, order_id)
                if order is None:
                    raise ReferenceNotFoundError(f"Order not found: {order_id}")
                order.status = OrderStatus.ALLOCATED.value

            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Allocation commit aborted, transaction rolled back: {e}")
            raise

        logger.info(
            f"Committed plan: {len(plan.order_ids)} order(s), {chunk_count} chunk(s), "
            f"{movement_count} movement(s)"
        )

    async def _apply_chunk(self, chunk: AllocationChunk, reserved: Dict[ReservedKey, StockRow]) -> int:
        primary = chunk.candidate.primary_stock

        # Re-read under a row lock; populate_existing discards the planning-time state
        result = await self.db.execute(
            select(StockRow)
            .where(StockRow.id == primary.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise ReferenceNotFoundError(f"Stock row not found: {primary.id}")
        if row.order_item_id is not None:
            raise ConcurrentReservationConflict(
                f"Stock row {row.id} was reserved since planning",
                stock_row_id=row.id,
            )
        if row.amount < chunk.quantity:
            raise ConcurrentReservationConflict(
                f"Stock row {row.id} holds {row.amount}, chunk needs {chunk.quantity}",
                stock_row_id=row.id,
            )

        order_item = await self.db.get(OrderItem, chunk.order_item_id)
        if order_item is None:
            raise ReferenceNotFoundError(f"Order item not found: {chunk.order_item_id}")

        row.amount -= chunk.quantity

        target = await self._reserved_row(row, order_item.id, reserved)
        target.amount += chunk.quantity

        for template in chunk.candidate.movements:
            self.db.add(Movement(
                stock_row_id=target.id,
                from_inventory_id=template.from_inventory_id,
                to_inventory_id=template.to_inventory_id,
                movement_type=template.movement_type.value,
                movement_status=MovementStatus.PLANNED.value,
                move_at=template.move_at,
                estimated_volume_cc=template.estimated_volume_cc,
                assigned_user_id=template.assigned_user_id,
            ))

        # Later chunks may re-read the same available row
        await self.db.flush()
        return len(chunk.candidate.movements)

    async def _reserved_row(
        self,
        source: StockRow,
        order_item_id: uuid.UUID,
        reserved: Dict[ReservedKey, StockRow],
    ) -> StockRow:
        key = (source.inventory_id, source.product_id, order_item_id)
        if key in reserved:
            return reserved[key]

        result = await self.db.execute(
            select(StockRow)
            .where(
                StockRow.inventory_id == source.inventory_id,
                StockRow.product_id == source.product_id,
                StockRow.order_item_id == order_item_id,
            )
            .with_for_update()
        )
        row = result.scalar_one_or_none()
        if row is None:
            row = StockRow(
                id=uuid.uuid4(),
                inventory_id=source.inventory_id,
                product_id=source.product_id,
                order_item_id=order_item_id,
                amount=0,
            )
            self.db.add(row)

        reserved[key] = row
        return row
