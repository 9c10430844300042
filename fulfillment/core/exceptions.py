"""Allocation engine errors.

Endpoints map these onto HTTP responses in ``fulfillment.main``; services
raise them and never build HTTP errors themselves.
"""


class AllocationError(Exception):
    """Base class for allocation failures."""
    pass


class InfeasiblePlanError(AllocationError):
    """The global plan could not allocate every requested unit."""
    pass


class ConcurrentReservationConflict(AllocationError):
    """A stock row was reserved or depleted between planning and commit."""

    def __init__(self, message: str, stock_row_id=None):
        super().__init__(message)
        self.stock_row_id = stock_row_id


class ReferenceNotFoundError(AllocationError):
    """A stock row, order or order item referenced by a plan no longer exists."""
    pass


class RoutingProviderError(Exception):
    """The routing provider failed in a way the caller cannot degrade around."""
    pass
