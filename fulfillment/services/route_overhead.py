"""
Route Overhead Resolver.

Thin layer over a RoutingProvider that answers the routing questions asked
during candidate generation:
1. Where is a van right now?
2. What does adding one more stop to its tour cost?
3. Are two points in different localities?
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from fulfillment.config import settings
from fulfillment.models.inventory import Inventory, StockRow
from fulfillment.models.movement import Movement, MovementStatus
from fulfillment.models.order import Order, OrderItem
from fulfillment.services.allocation_types import Coordinates, RouteDetails
from fulfillment.services.routing_service import (
    RoutingProvider,
    interpolate_position,
    google_maps_link,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RouteOverheadResolver:
    """Van positioning and marginal tour costs for one planning call."""

    def __init__(
        self,
        db: AsyncSession,
        routing: RoutingProvider,
        clock: Callable[[], datetime] = _utcnow,
        safety_margin_minutes: Optional[int] = None,
    ):
        self.db = db
        self.routing = routing
        self.clock = clock
        self.safety_margin = timedelta(
            minutes=safety_margin_minutes
            if safety_margin_minutes is not None
            else settings.ALLOCATION_SAFETY_MARGIN_MINUTES
        )
        self._locality_cache: Dict[Tuple[float, float], Optional[str]] = {}
        self._van_position_cache: Dict = {}

    # ========================================================================
    # VAN POSITION
    # ========================================================================

    async def resolve_van_coordinates(self, van: Inventory) -> Coordinates:
        """
        Best estimate of a van's current coordinates.

        Uses the van's last DONE movement as the last known point and, when a
        PLANNED movement is coming up, interpolates along the route towards
        that movement's other endpoint.
        """
        if van.id in self._van_position_cache:
            return self._van_position_cache[van.id]

        position = await self._resolve_van_coordinates(van)
        self._van_position_cache[van.id] = position
        return position

    async def _resolve_van_coordinates(self, van: Inventory) -> Coordinates:
        home = Coordinates.of(van)
        involves_van = or_(Movement.from_inventory_id == van.id, Movement.to_inventory_id == van.id)

        result = await self.db.execute(
            select(Movement)
            .where(involves_van, Movement.movement_status == MovementStatus.DONE.value)
            .order_by(Movement.move_at.desc())
            .limit(1)
        )
        last_movement = result.scalar_one_or_none()
        if last_movement is None:
            return home

        last_point = self._last_known_point(last_movement)

        now = self.clock()
        result = await self.db.execute(
            select(Movement)
            .where(
                involves_van,
                Movement.movement_status == MovementStatus.PLANNED.value,
                Movement.move_at > now,
            )
            .order_by(Movement.move_at.asc())
            .limit(1)
        )
        next_movement = result.scalar_one_or_none()
        if next_movement is None:
            return last_point

        next_point = self._other_endpoint(next_movement, van)
        route = await self.routing.route_geometry(last_point, next_point)
        elapsed = (now - last_movement.move_at + self.safety_margin).total_seconds()
        return interpolate_position(route, elapsed)

    @staticmethod
    def _last_known_point(movement: Movement) -> Coordinates:
        if movement.to_inventory is not None:
            return Coordinates.of(movement.to_inventory)
        # Delivered to a client: fall back to where the stock row lives
        return Coordinates.of(movement.stock_row.inventory)

    @staticmethod
    def _other_endpoint(movement: Movement, van: Inventory) -> Coordinates:
        if movement.from_inventory_id == van.id:
            other = movement.to_inventory
        else:
            other = movement.from_inventory
        return Coordinates.of(other if other is not None else van)

    async def base_stops_for_van(self, van: Inventory) -> List[Coordinates]:
        """Stops the van's current tour is built from (its current position)."""
        return [await self.resolve_van_coordinates(van)]

    # ========================================================================
    # TOUR OVERHEAD
    # ========================================================================

    async def overhead_of_inserting(
        self,
        base_stops: List[Coordinates],
        new_stop: Coordinates,
    ) -> RouteDetails:
        """Marginal distance/duration of adding ``new_stop`` to the optimal tour over ``base_stops``."""
        base = await self.routing.optimized_tour(list(base_stops))
        combined = await self.routing.optimized_tour(list(base_stops) + [new_stop])
        return combined.summary - base.summary

    # ========================================================================
    # LOCALITY
    # ========================================================================

    async def in_different_localities(self, a: Coordinates, b: Coordinates) -> bool:
        """
        True only when both points resolve to localities and the names differ.

        An unknown locality on either side counts as "same area".
        """
        locality_a = await self._locality(a)
        locality_b = await self._locality(b)
        if not locality_a or not locality_b:
            return False
        return locality_a.casefold() != locality_b.casefold()

    async def _locality(self, point: Coordinates) -> Optional[str]:
        key = (round(point.latitude, 6), round(point.longitude, 6))
        if key not in self._locality_cache:
            self._locality_cache[key] = await self.routing.reverse_locality(point)
        return self._locality_cache[key]

    # ========================================================================
    # DISPATCH LINK
    # ========================================================================

    async def van_route_link(self, van: Inventory) -> Optional[str]:
        """
        Google Maps link for the van's upcoming planned stops in optimized order.

        Returns None when the van has nothing planned.
        """
        now = self.clock()
        result = await self.db.execute(
            select(Movement, Order.latitude, Order.longitude)
            .join(StockRow, StockRow.id == Movement.stock_row_id)
            .outerjoin(OrderItem, OrderItem.id == StockRow.order_item_id)
            .outerjoin(Order, Order.id == OrderItem.order_id)
            .where(
                Movement.from_inventory_id == van.id,
                Movement.movement_status == MovementStatus.PLANNED.value,
                Movement.move_at > now,
            )
            .order_by(Movement.move_at.asc())
        )

        stops: List[Coordinates] = []
        for movement, client_lat, client_lon in result.all():
            if movement.to_inventory is not None:
                stop = Coordinates.of(movement.to_inventory)
            elif client_lat is not None and client_lon is not None:
                stop = Coordinates(float(client_lat), float(client_lon))
            else:
                continue
            if stop not in stops:
                stops.append(stop)

        # Loads into this van start at the source inventory
        result = await self.db.execute(
            select(Movement)
            .where(
                Movement.to_inventory_id == van.id,
                Movement.movement_status == MovementStatus.PLANNED.value,
                Movement.move_at > now,
            )
            .order_by(Movement.move_at.asc())
        )
        for movement in result.scalars().all():
            if movement.from_inventory is not None:
                stop = Coordinates.of(movement.from_inventory)
                if stop not in stops:
                    stops.append(stop)

        if not stops:
            return None

        start = await self.resolve_van_coordinates(van)
        tour = await self.routing.optimized_tour([start] + stops)
        ordered = tour.ordered_stops or [start] + stops
        logger.info(f"Built route link for van {van.code} with {len(stops)} planned stop(s)")
        return google_maps_link(ordered)
