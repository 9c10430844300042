"""
Shared fixtures: in-memory SQLite database, a deterministic routing provider
and a small seeding helper for inventories, stock and orders.
"""
import itertools
import math
import os
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, List, Optional

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("AUTO_ALLOCATE_ENABLED", "false")

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from fulfillment.core.exceptions import RoutingProviderError
from fulfillment.database import Base
from fulfillment import models  # noqa: F401
from fulfillment.models.inventory import Inventory, InventoryType, StockRow
from fulfillment.models.order import Order, OrderItem, OrderStatus
from fulfillment.models.product import Product
from fulfillment.services.allocation_types import Coordinates, RouteDetails
from fulfillment.services.routing_service import OptimizedTour, RouteGeometry, RoutingProvider

# Monday 2026-10-19 09:00 in Riyadh, inside the working window
MONDAY_MORNING = datetime(2026, 10, 19, 6, 0, tzinfo=timezone.utc)

CLIENT = Coordinates(24.7136, 46.6753)
NEAR_CLIENT = Coordinates(24.7200, 46.6800)
RIYADH_WAREHOUSE = Coordinates(24.8000, 46.7500)
JEDDAH = Coordinates(21.4858, 39.1925)

METRES_PER_DEGREE = 111_000.0
SPEED_M_PER_S = 10.0


def default_locality(point: Coordinates) -> Optional[str]:
    return "Riyadh" if point.longitude > 42 else "Jeddah"


class FakeRoutingProvider(RoutingProvider):
    """Planar distances, brute-force optimal tours and a locality function."""

    def __init__(
        self,
        locality: Callable[[Coordinates], Optional[str]] = default_locality,
        leg_seconds: Optional[float] = None,
        fail_tours: bool = False,
    ):
        self.locality = locality
        self.leg_seconds = leg_seconds
        self.fail_tours = fail_tours
        self.tour_calls: List[List[Coordinates]] = []
        self.geometry_calls: List[tuple] = []

    @staticmethod
    def distance(a: Coordinates, b: Coordinates) -> float:
        return math.hypot(a.latitude - b.latitude, a.longitude - b.longitude) * METRES_PER_DEGREE

    async def optimized_tour(self, stops: List[Coordinates]) -> OptimizedTour:
        if self.fail_tours:
            raise RoutingProviderError("optimizer unavailable")
        self.tour_calls.append(list(stops))
        start, rest = stops[0], stops[1:]
        if not rest:
            return OptimizedTour(summary=RouteDetails(0.0, 0.0), ordered_stops=[start])

        best = None
        for order in itertools.permutations(rest):
            path = [start, *order, start]
            length = sum(self.distance(a, b) for a, b in zip(path, path[1:]))
            if best is None or length < best[0]:
                best = (length, [start, *order])
        length, ordered = best
        return OptimizedTour(
            summary=RouteDetails(length, length / SPEED_M_PER_S),
            ordered_stops=ordered,
        )

    async def route_geometry(self, start: Coordinates, end: Coordinates) -> RouteGeometry:
        self.geometry_calls.append((start, end))
        duration = self.leg_seconds
        if duration is None:
            duration = self.distance(start, end) / SPEED_M_PER_S
        return RouteGeometry(points=[start, end], cumulative_times=[0.0, duration])

    async def reverse_locality(self, point: Coordinates) -> Optional[str]:
        return self.locality(point)


class Seeder:
    """Creates and flushes fulfillment rows in the test session."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self._counter = itertools.count(1)

    async def product(self, volume_cc: Optional[float] = 2000) -> Product:
        n = next(self._counter)
        product = Product(
            sku=f"SKU-{n:04d}",
            name=f"Product {n}",
            volume_cc=Decimal(str(volume_cc)) if volume_cc is not None else None,
        )
        self.db.add(product)
        await self.db.flush()
        return product

    async def inventory(
        self,
        inventory_type: InventoryType,
        at: Coordinates,
        capacity_cc: float = 100_000,
        is_active: bool = True,
    ) -> Inventory:
        n = next(self._counter)
        inventory = Inventory(
            code=f"{inventory_type.value}-{n:03d}",
            inventory_type=inventory_type.value,
            location=f"{inventory_type.value.title()} {n}",
            latitude=Decimal(str(at.latitude)),
            longitude=Decimal(str(at.longitude)),
            capacity_cc=Decimal(str(capacity_cc)),
            is_active=is_active,
        )
        self.db.add(inventory)
        await self.db.flush()
        return inventory

    async def van(self, at: Coordinates = NEAR_CLIENT, **kwargs) -> Inventory:
        return await self.inventory(InventoryType.VAN, at, **kwargs)

    async def warehouse(self, at: Coordinates = RIYADH_WAREHOUSE, **kwargs) -> Inventory:
        return await self.inventory(InventoryType.WAREHOUSE, at, capacity_cc=10_000_000, **kwargs)

    async def stock(
        self,
        inventory: Inventory,
        product: Product,
        amount: int,
        order_item: Optional[OrderItem] = None,
    ) -> StockRow:
        row = StockRow(
            inventory_id=inventory.id,
            product_id=product.id,
            order_item_id=order_item.id if order_item else None,
            amount=amount,
            inventory=inventory,
            product=product,
        )
        self.db.add(row)
        await self.db.flush()
        return row

    async def order(self, *lines, at: Coordinates = CLIENT) -> Order:
        """``lines`` are (product, quantity) pairs."""
        n = next(self._counter)
        order = Order(
            order_number=f"ORD-{n:05d}",
            status=OrderStatus.CONFIRMED.value,
            delivery_location="Client address",
            latitude=Decimal(str(at.latitude)),
            longitude=Decimal(str(at.longitude)),
        )
        order.items = [
            OrderItem(line_number=i, product_id=product.id, quantity=quantity, product=product)
            for i, (product, quantity) in enumerate(lines, start=1)
        ]
        self.db.add(order)
        await self.db.flush()
        return order


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def seed(db) -> Seeder:
    return Seeder(db)


@pytest.fixture
def routing() -> FakeRoutingProvider:
    return FakeRoutingProvider()


@pytest.fixture
def clock():
    return lambda: MONDAY_MORNING
