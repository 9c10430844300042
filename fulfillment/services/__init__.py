# Services module
from fulfillment.services.stock_service import StockService
from fulfillment.services.routing_service import RoutingProvider, OpenRouteServiceClient
from fulfillment.services.route_overhead import RouteOverheadResolver
from fulfillment.services.candidate_generator import CandidateGenerator
from fulfillment.services.plan_committer import PlanCommitter
from fulfillment.services.allocation_service import GlobalAllocationService

__all__ = [
    "StockService",
    "RoutingProvider",
    "OpenRouteServiceClient",
    "RouteOverheadResolver",
    "CandidateGenerator",
    "PlanCommitter",
    "GlobalAllocationService",
]
