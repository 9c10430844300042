"""
Candidate Generator (Phase A).

For a single order item, enumerates the feasible ways to get the product to
the client:
1. VAN -> CLIENT: a van already carrying the product drives to the client
2. WH -> VAN -> CLIENT: a van picks the product up at a same-city warehouse

Each candidate gets routing, handling and capacity-pressure metrics and a
weighted provisional score (lower is better). The top candidates, at most
one per source stock row, are returned.

This phase is read-only: it never writes stock rows or movements.
"""
import logging
import math
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fulfillment.config import settings
from fulfillment.models.inventory import Inventory, InventoryType, StockRow
from fulfillment.models.movement import MovementType
from fulfillment.models.order import Order, OrderItem
from fulfillment.services.allocation_types import (
    CLIENT,
    PATTERN_VAN_TO_CLIENT,
    PATTERN_WAREHOUSE_VAN_CLIENT,
    CandidateGenerationResult,
    CandidateMetrics,
    Coordinates,
    InventoryEndpoint,
    MovementTemplate,
    PathCandidate,
    RouteDetails,
    StockRowSnapshot,
)
from fulfillment.services.route_overhead import RouteOverheadResolver
from fulfillment.services.stock_service import StockService
from fulfillment.services.working_hours import next_working_instant

logger = logging.getLogger(__name__)

# Score weights
W_TIME = 1.0
W_DISTANCE = 0.5
W_HANDLING = 0.7
W_PRESSURE = 0.8
W_SPLIT = 1.5


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def split_penalty(feasible: int, requested: int) -> float:
    """1.0 for a small fragment of the requested quantity, else 0.0."""
    if feasible <= 0:
        return 0.0
    ratio = feasible / requested if requested > 0 else 1.0
    tiny = (
        feasible < settings.ALLOCATION_MIN_SPLIT_ABSOLUTE
        or ratio < settings.ALLOCATION_MIN_SPLIT_RATIO
    )
    return 1.0 if tiny else 0.0


def provisional_score(
    metrics: CandidateMetrics,
    feasible: int,
    requested: int,
    max_distance_km: float,
    max_time_sec: float,
) -> float:
    """Weighted sum of normalized metrics plus the split penalty."""
    norm_dist = min(metrics.distance_km / max_distance_km, 1.0) if max_distance_km > 0 else 0.0
    norm_time = min(metrics.travel_time_sec / max_time_sec, 1.0) if max_time_sec > 0 else 0.0
    norm_handling = min(metrics.handling_time_sec / settings.HANDLING_NORMALIZATION_SECONDS, 1.0)
    norm_pressure = min(metrics.pressure, 1.0)

    return (
        W_TIME * norm_time
        + W_DISTANCE * norm_dist
        + W_HANDLING * norm_handling
        + W_PRESSURE * norm_pressure
        + W_SPLIT * split_penalty(feasible, requested)
    )


def rank_candidates(
    candidates: List[PathCandidate],
    requested: int,
    limit: Optional[int] = None,
) -> List[PathCandidate]:
    """Score against the batch maxima, sort ascending and keep one candidate per stock row."""
    if not candidates:
        return []
    limit = limit or settings.ALLOCATION_MAX_CANDIDATES

    max_dist = max(c.metrics.distance_km for c in candidates)
    max_time = max(c.metrics.travel_time_sec for c in candidates)

    scored = [
        replace(
            c,
            provisional_score=provisional_score(
                c.metrics, c.max_feasible_amount, requested, max_dist, max_time
            ),
        )
        for c in candidates
    ]
    scored.sort(key=lambda c: c.provisional_score)

    top: List[PathCandidate] = []
    used_rows = set()
    for candidate in scored:
        if candidate.primary_stock.id in used_rows:
            continue
        top.append(candidate)
        used_rows.add(candidate.primary_stock.id)
        if len(top) >= limit:
            break
    return top


class CandidateGenerator:
    """Phase A: candidate fulfillment paths for one order item."""

    def __init__(
        self,
        db: AsyncSession,
        resolver: RouteOverheadResolver,
        stock_service: Optional[StockService] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.db = db
        self.resolver = resolver
        self.stock_service = stock_service or StockService(db)
        self.clock = clock
        self._fill_levels: Dict = {}
        self._active_vans: Optional[List[Inventory]] = None

    async def generate(self, order: Order, order_item: OrderItem) -> CandidateGenerationResult:
        """Ranked candidates for ``order_item``; empty when nothing can serve it."""
        requested = order_item.quantity
        empty = CandidateGenerationResult(
            order_id=order.id,
            order_item_id=order_item.id,
            product_id=order_item.product_id,
            requested_quantity=requested,
        )
        if requested <= 0:
            return empty

        stocks = await self._available_stocks(order_item.product_id)
        if not stocks:
            logger.debug(f"No available stock for product {order_item.product_id}")
            return empty

        unit_volume = self._unit_volume(order_item)
        client = Coordinates.of(order)
        van_stock = {
            row.inventory_id: row.amount
            for row in stocks
            if row.inventory.inventory_type == InventoryType.VAN.value
        }

        candidates: List[PathCandidate] = []
        for row in stocks:
            inventory = row.inventory
            if inventory.inventory_type == InventoryType.VAN.value:
                candidate = await self._van_direct_candidate(row, requested, client, unit_volume)
                if candidate is not None:
                    candidates.append(candidate)

            elif inventory.inventory_type == InventoryType.WAREHOUSE.value:
                # No multi-hop: far warehouses cannot serve this client
                if await self.resolver.in_different_localities(Coordinates.of(inventory), client):
                    continue
                candidates.extend(
                    await self._warehouse_via_van_candidates(row, requested, client, unit_volume, van_stock)
                )

        ranked = rank_candidates(candidates, requested)
        logger.info(
            f"Order item {order_item.id}: {len(candidates)} candidate(s) built, {len(ranked)} kept"
        )
        return replace(empty, candidates=tuple(ranked))

    # ========================================================================
    # PATTERN 1: VAN -> CLIENT
    # ========================================================================

    async def _van_direct_candidate(
        self,
        van_row: StockRow,
        requested: int,
        client: Coordinates,
        unit_volume: float,
    ) -> Optional[PathCandidate]:
        van = van_row.inventory

        van_coords = await self.resolver.resolve_van_coordinates(van)
        if await self.resolver.in_different_localities(van_coords, client):
            return None

        feasible = await self._max_units_for_van(van, unit_volume, min(requested, van_row.amount))
        if feasible <= 0:
            return None

        base_stops = await self.resolver.base_stops_for_van(van)
        overhead = _non_negative(await self.resolver.overhead_of_inserting(base_stops, client))

        # Unloading only lowers the van's fill level
        metrics = CandidateMetrics(
            distance_km=overhead.distance_m / 1000.0,
            travel_time_sec=overhead.duration_s,
            handling_time_sec=settings.VAN_UNLOAD_HANDLING_SECONDS,
            pressure=0.0,
        )

        unload = MovementTemplate(
            movement_type=MovementType.UNLOAD,
            source=InventoryEndpoint(van.id),
            destination=CLIENT,
            move_at=self._schedule(overhead.duration_s),
            estimated_volume_cc=_volume(feasible, unit_volume),
        )

        return PathCandidate(
            primary_stock=_snapshot(van_row),
            product_id=van_row.product_id,
            delivering_van_id=van.id,
            max_feasible_amount=feasible,
            movements=(unload,),
            metrics=metrics,
            pattern=PATTERN_VAN_TO_CLIENT,
        )

    # ========================================================================
    # PATTERN 2: WAREHOUSE (same city) -> VAN -> CLIENT
    # ========================================================================

    async def _warehouse_via_van_candidates(
        self,
        warehouse_row: StockRow,
        requested: int,
        client: Coordinates,
        unit_volume: float,
        van_stock: Dict,
    ) -> List[PathCandidate]:
        warehouse = warehouse_row.inventory
        warehouse_coords = Coordinates.of(warehouse)
        result: List[PathCandidate] = []

        for van in await self._get_active_vans():
            van_coords = await self.resolver.resolve_van_coordinates(van)
            if await self.resolver.in_different_localities(van_coords, client):
                continue

            # A van already holding the full quantity is better served by VAN -> CLIENT
            van_available = van_stock.get(van.id, 0)
            if van_available >= requested:
                continue

            desired = min(requested, van_available + warehouse_row.amount)
            feasible = await self._max_units_for_van(van, unit_volume, desired)
            feasible = min(feasible, warehouse_row.amount)
            if feasible <= 0:
                continue

            base_stops = await self.resolver.base_stops_for_van(van)
            to_warehouse = await self.resolver.overhead_of_inserting(base_stops, warehouse_coords)
            to_client = await self.resolver.overhead_of_inserting(base_stops + [warehouse_coords], client)
            overhead = _non_negative(to_warehouse + to_client)

            metrics = CandidateMetrics(
                distance_km=overhead.distance_m / 1000.0,
                travel_time_sec=overhead.duration_s,
                handling_time_sec=settings.WAREHOUSE_PICKUP_HANDLING_SECONDS,
                pressure=await self._pressure_after_loading(van, feasible, unit_volume),
            )

            half_leg = overhead.duration_s / 2
            load_at = self._schedule(half_leg)
            unload_at = next_working_instant(load_at + timedelta(seconds=half_leg))
            volume = _volume(feasible, unit_volume)

            movements = (
                MovementTemplate(
                    movement_type=MovementType.LOAD,
                    source=InventoryEndpoint(warehouse.id),
                    destination=InventoryEndpoint(van.id),
                    move_at=load_at,
                    estimated_volume_cc=volume,
                ),
                MovementTemplate(
                    movement_type=MovementType.UNLOAD,
                    source=InventoryEndpoint(van.id),
                    destination=CLIENT,
                    move_at=unload_at,
                    estimated_volume_cc=volume,
                ),
            )

            result.append(PathCandidate(
                primary_stock=_snapshot(warehouse_row),
                product_id=warehouse_row.product_id,
                delivering_van_id=van.id,
                max_feasible_amount=feasible,
                movements=movements,
                metrics=metrics,
                pattern=PATTERN_WAREHOUSE_VAN_CLIENT,
            ))

        return result

    # ========================================================================
    # HELPERS
    # ========================================================================

    async def _available_stocks(self, product_id) -> List[StockRow]:
        result = await self.db.execute(
            select(StockRow)
            .join(Inventory, Inventory.id == StockRow.inventory_id)
            .where(
                StockRow.product_id == product_id,
                StockRow.order_item_id.is_(None),
                StockRow.amount > 0,
                Inventory.is_active.is_(True),
                Inventory.inventory_type.in_([
                    InventoryType.WAREHOUSE.value,
                    InventoryType.VAN.value,
                ]),
            )
            .order_by(Inventory.code)
        )
        return list(result.scalars().all())

    async def _get_active_vans(self) -> List[Inventory]:
        if self._active_vans is None:
            result = await self.db.execute(
                select(Inventory)
                .where(
                    Inventory.inventory_type == InventoryType.VAN.value,
                    Inventory.is_active.is_(True),
                )
                .order_by(Inventory.code)
            )
            self._active_vans = list(result.scalars().all())
        return self._active_vans

    async def _fill_level(self, van: Inventory) -> float:
        if van.id not in self._fill_levels:
            self._fill_levels[van.id] = await self.stock_service.fill_level(van)
        return self._fill_levels[van.id]

    async def _max_units_for_van(self, van: Inventory, unit_volume: float, desired: int) -> int:
        """Units of ``unit_volume`` that still fit in the van, capped at ``desired``."""
        if unit_volume <= 0 or desired <= 0:
            return 0
        capacity = float(van.capacity_cc)
        used = await self._fill_level(van) * capacity
        free = max(0.0, capacity - used)
        # Tolerate float noise so an exact fit is not lost
        by_volume = math.floor(free / unit_volume + 1e-9)
        return max(0, min(desired, by_volume))

    async def _pressure_after_loading(self, van: Inventory, added_units: int, unit_volume: float) -> float:
        base = await self._fill_level(van)
        capacity = float(van.capacity_cc)
        if added_units <= 0 or unit_volume <= 0 or capacity <= 0:
            return base
        return min(1.0, base + added_units * unit_volume / capacity)

    def _unit_volume(self, order_item: OrderItem) -> float:
        volume = order_item.product.volume_cc if order_item.product is not None else None
        if volume is None or volume <= 0:
            return settings.ALLOCATION_DEFAULT_UNIT_VOLUME_CC
        return float(volume)

    def _schedule(self, travel_seconds: float) -> datetime:
        """Now plus the safety margin and the travel time, clamped into working hours."""
        planned = (
            self.clock()
            + timedelta(minutes=settings.ALLOCATION_SAFETY_MARGIN_MINUTES)
            + timedelta(seconds=travel_seconds)
        )
        return next_working_instant(planned)


def _snapshot(row: StockRow) -> StockRowSnapshot:
    return StockRowSnapshot(
        id=row.id,
        inventory_id=row.inventory_id,
        product_id=row.product_id,
        inventory_type=row.inventory.inventory_type,
        amount=row.amount,
    )


def _volume(units: int, unit_volume: float) -> Decimal:
    return Decimal(str(units * unit_volume)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _non_negative(route: RouteDetails) -> RouteDetails:
    return RouteDetails(max(0.0, route.distance_m), max(0.0, route.duration_s))
