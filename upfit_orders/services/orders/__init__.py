"""
Order lifecycle: statuses, ETA policy, identifiers, store and service.

Only dependency-free modules are re-exported here; the ORM models import the
enums from this package, so the store and service are imported from their
own modules.
"""

from upfit_orders.services.orders.enums import (
    ORDER_FLOW,
    DealerWebsiteStatus,
    InventoryStatus,
    OrderStatus,
)
from upfit_orders.services.orders.errors import (
    InvalidArgumentError,
    InvalidTransitionError,
    OrderNotFoundError,
    OrderServiceError,
    OrderValidationError,
)

__all__ = [
    "ORDER_FLOW",
    "DealerWebsiteStatus",
    "InventoryStatus",
    "OrderStatus",
    "InvalidArgumentError",
    "InvalidTransitionError",
    "OrderNotFoundError",
    "OrderServiceError",
    "OrderValidationError",
]
