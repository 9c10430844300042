"""
Allocation Jobs

Periodically allocates CONFIRMED orders, oldest first, one order per
transaction. Orders that cannot be covered or that lose a race with another
allocation stay CONFIRMED and are retried on the next run.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import select

from fulfillment.config import settings
from fulfillment.core.exceptions import AllocationError, RoutingProviderError
from fulfillment.database import get_db_session
from fulfillment.models.order import Order, OrderStatus
from fulfillment.services.allocation_service import GlobalAllocationService
from fulfillment.services.routing_service import RoutingProvider, OpenRouteServiceClient

logger = logging.getLogger(__name__)


async def auto_allocate_confirmed_orders(
    routing: Optional[RoutingProvider] = None,
    batch_size: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Allocate up to ``batch_size`` CONFIRMED orders.

    Returns counts of allocated, skipped (infeasible or conflicting) and
    failed orders. A failure on one order never stops the run.
    """
    logger.info("Starting auto-allocation run...")
    start_time = datetime.now(timezone.utc)
    routing = routing or OpenRouteServiceClient()
    limit = batch_size or settings.AUTO_ALLOCATE_BATCH_SIZE

    async with get_db_session() as session:
        result = await session.execute(
            select(Order.id)
            .where(Order.status == OrderStatus.CONFIRMED.value)
            .order_by(Order.created_at.asc())
            .limit(limit)
        )
        order_ids = list(result.scalars().all())

    stats = {"processed": len(order_ids), "allocated": 0, "skipped": 0, "failed": 0}

    for order_id in order_ids:
        try:
            async with get_db_session() as session:
                service = GlobalAllocationService(session, routing)
                orders = await service.get_orders([order_id])
                await service.plan_and_allocate(orders)
            stats["allocated"] += 1
        except AllocationError as e:
            stats["skipped"] += 1
            logger.info(f"Order {order_id} left CONFIRMED: {type(e).__name__}: {e}")
        except RoutingProviderError as e:
            stats["failed"] += 1
            logger.error(f"Order {order_id} not allocated, routing provider failed: {e}")
        except Exception as e:
            stats["failed"] += 1
            logger.error(f"Order {order_id} not allocated: {type(e).__name__}: {e}")

    duration = (datetime.now(timezone.utc) - start_time).total_seconds()
    logger.info(
        f"Auto-allocation completed in {duration:.2f}s: "
        f"{stats['allocated']} allocated, {stats['skipped']} skipped, {stats['failed']} failed"
    )
    return stats
