"""
In-memory allocation records.

Phase A builds candidates and movement templates as frozen value objects;
Phase B consumes them. None of these are ever persisted directly: the plan
committer copies movement templates into ``Movement`` rows.
"""
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple, Union

from fulfillment.models.movement import MovementType

PATTERN_VAN_TO_CLIENT = "VAN->CLIENT"
PATTERN_WAREHOUSE_VAN_CLIENT = "WH->VAN->CLIENT"


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float

    def lon_lat(self) -> List[float]:
        """Routing APIs take [lon, lat] pairs."""
        return [self.longitude, self.latitude]

    @classmethod
    def of(cls, obj) -> "Coordinates":
        """Build from any object carrying latitude/longitude columns."""
        return cls(float(obj.latitude), float(obj.longitude))


@dataclass(frozen=True)
class RouteDetails:
    """Distance (metres) and duration (seconds) of a tour or an overhead."""
    distance_m: float
    duration_s: float

    def __sub__(self, other: "RouteDetails") -> "RouteDetails":
        return RouteDetails(self.distance_m - other.distance_m, self.duration_s - other.duration_s)

    def __add__(self, other: "RouteDetails") -> "RouteDetails":
        return RouteDetails(self.distance_m + other.distance_m, self.duration_s + other.duration_s)


# ============================================================================
# MOVEMENT ENDPOINTS
# ============================================================================

@dataclass(frozen=True)
class InventoryEndpoint:
    inventory_id: uuid.UUID


@dataclass(frozen=True)
class ClientEndpoint:
    pass


Endpoint = Union[InventoryEndpoint, ClientEndpoint]
CLIENT = ClientEndpoint()


def endpoint_inventory_id(endpoint: Endpoint) -> Optional[uuid.UUID]:
    """Inventory behind an endpoint; None means the client."""
    if isinstance(endpoint, InventoryEndpoint):
        return endpoint.inventory_id
    return None


@dataclass(frozen=True)
class MovementTemplate:
    """A movement Phase A would schedule if the candidate is committed."""
    movement_type: MovementType
    source: Endpoint
    destination: Endpoint
    move_at: datetime
    estimated_volume_cc: Decimal
    assigned_user_id: Optional[uuid.UUID] = None

    @property
    def from_inventory_id(self) -> Optional[uuid.UUID]:
        return endpoint_inventory_id(self.source)

    @property
    def to_inventory_id(self) -> Optional[uuid.UUID]:
        return endpoint_inventory_id(self.destination)


# ============================================================================
# CANDIDATES
# ============================================================================

@dataclass(frozen=True)
class StockRowSnapshot:
    """Available stock row as read during candidate generation."""
    id: uuid.UUID
    inventory_id: uuid.UUID
    product_id: uuid.UUID
    inventory_type: str
    amount: int


@dataclass(frozen=True)
class CandidateMetrics:
    distance_km: float
    travel_time_sec: float
    handling_time_sec: float
    pressure: float  # projected van fill fraction, 0..1


@dataclass(frozen=True)
class PathCandidate:
    """One way of fulfilling (part of) an order item from one primary stock row."""
    primary_stock: StockRowSnapshot
    product_id: uuid.UUID
    delivering_van_id: Optional[uuid.UUID]
    max_feasible_amount: int
    movements: Tuple[MovementTemplate, ...]
    metrics: CandidateMetrics
    pattern: str
    provisional_score: float = 0.0  # lower is better


@dataclass(frozen=True)
class CandidateGenerationResult:
    order_id: uuid.UUID
    order_item_id: uuid.UUID
    product_id: uuid.UUID
    requested_quantity: int
    candidates: Tuple[PathCandidate, ...] = ()


# ============================================================================
# PLANS
# ============================================================================

@dataclass(frozen=True)
class AllocationChunk:
    order_id: uuid.UUID
    order_item_id: uuid.UUID
    candidate: PathCandidate
    quantity: int


@dataclass
class OrderItemAllocationPlan:
    order_id: uuid.UUID
    order_item_id: uuid.UUID
    product_id: uuid.UUID
    requested_quantity: int
    allocated_quantity: int = 0
    chunks: List[AllocationChunk] = field(default_factory=list)

    @property
    def is_fully_allocated(self) -> bool:
        return self.allocated_quantity >= self.requested_quantity


@dataclass
class GlobalAllocationPlan:
    item_plans: List[OrderItemAllocationPlan] = field(default_factory=list)
    fully_allocated: bool = True

    @property
    def order_ids(self) -> List[uuid.UUID]:
        seen = []
        for item_plan in self.item_plans:
            if item_plan.order_id not in seen:
                seen.append(item_plan.order_id)
        return seen
