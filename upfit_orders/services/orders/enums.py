"""Order status enums and fulfillment pipeline transition rules.

This module defines the fulfillment stages an upfit order moves through,
the inventory and dealer-website statuses attached to an order, and the
transition validation rules for the order lifecycle.
"""

from enum import Enum
from typing import Dict, Optional, Set, Tuple


class OrderStatus(str, Enum):
    """Order lifecycle status.

    Valid transitions:
    - each flow stage -> its immediate successor, CANCELED
    - DELIVERED -> CANCELED
    - CANCELED -> (terminal state)
    """

    CONFIG_RECEIVED = "CONFIG_RECEIVED"
    OEM_ALLOCATED = "OEM_ALLOCATED"
    OEM_PRODUCTION = "OEM_PRODUCTION"
    OEM_IN_TRANSIT = "OEM_IN_TRANSIT"
    AT_UPFITTER = "AT_UPFITTER"
    UPFIT_IN_PROGRESS = "UPFIT_IN_PROGRESS"
    READY_FOR_DELIVERY = "READY_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    CANCELED = "CANCELED"

    @classmethod
    def from_string(cls, value: str) -> "OrderStatus":
        """Convert string to OrderStatus enum.

        Args:
            value: String representation of status, any case

        Returns:
            OrderStatus enum value

        Raises:
            ValueError: If value is not a valid status
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            valid_values = ", ".join([s.value for s in cls])
            raise ValueError(
                f"Invalid order status: {value}. "
                f"Valid values are: {valid_values}"
            )

    def is_terminal(self) -> bool:
        """Check if status is terminal (no further transitions)."""
        return self == OrderStatus.CANCELED

    @property
    def flow_index(self) -> int:
        """Position in the fulfillment flow, -1 for CANCELED."""
        try:
            return ORDER_FLOW.index(self)
        except ValueError:
            return -1

    @property
    def label(self) -> str:
        """Human-readable label shown in order management views."""
        return STATUS_LABELS[self]


class InventoryStatus(str, Enum):
    """Sales status of a unit: unsold stock or sold to a named buyer."""

    STOCK = "STOCK"
    SOLD = "SOLD"

    @classmethod
    def from_string(cls, value: str) -> "InventoryStatus":
        """Convert string to InventoryStatus, case-insensitively.

        Raises:
            ValueError: If value is not STOCK or SOLD
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or "").strip().upper())
        except ValueError:
            raise ValueError(
                f"Invalid inventory status: {value}. Valid values are: STOCK, SOLD"
            )


class DealerWebsiteStatus(str, Enum):
    """Listing state of a unit on the dealer website."""

    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    UNPUBLISHED = "UNPUBLISHED"

    @classmethod
    def from_string(cls, value: str) -> "DealerWebsiteStatus":
        """Convert string to DealerWebsiteStatus.

        Matching is exact: dealer website statuses are only accepted in
        their canonical upper-case spelling.

        Raises:
            ValueError: If value is not a valid dealer website status
        """
        try:
            return cls(value)
        except ValueError:
            valid_values = ", ".join([s.value for s in cls])
            raise ValueError(
                f"Invalid dealer website status: {value}. "
                f"Valid values are: {valid_values}"
            )


# Fulfillment pipeline in fixed forward order
ORDER_FLOW: Tuple[OrderStatus, ...] = (
    OrderStatus.CONFIG_RECEIVED,
    OrderStatus.OEM_ALLOCATED,
    OrderStatus.OEM_PRODUCTION,
    OrderStatus.OEM_IN_TRANSIT,
    OrderStatus.AT_UPFITTER,
    OrderStatus.UPFIT_IN_PROGRESS,
    OrderStatus.READY_FOR_DELIVERY,
    OrderStatus.DELIVERED,
)

STATUS_LABELS: Dict[OrderStatus, str] = {
    OrderStatus.CONFIG_RECEIVED: "Order Received",
    OrderStatus.OEM_ALLOCATED: "OEM Allocated",
    OrderStatus.OEM_PRODUCTION: "OEM Production",
    OrderStatus.OEM_IN_TRANSIT: "OEM In Transit",
    OrderStatus.AT_UPFITTER: "At Upfitter",
    OrderStatus.UPFIT_IN_PROGRESS: "Upfit In Progress",
    OrderStatus.READY_FOR_DELIVERY: "Ready For Delivery",
    OrderStatus.DELIVERED: "Delivered",
    OrderStatus.CANCELED: "Canceled",
}

# Last stage for which a past-due OEM ETA is rolled forward
EARLY_STAGE_LIMIT = OrderStatus.OEM_IN_TRANSIT

# First stage at which a unit carries a VIN
VIN_ASSIGNMENT_STAGE = OrderStatus.OEM_ALLOCATED


def _build_transitions() -> Dict[OrderStatus, Set[OrderStatus]]:
    transitions: Dict[OrderStatus, Set[OrderStatus]] = {}
    for index, stage in enumerate(ORDER_FLOW):
        allowed = {OrderStatus.CANCELED}
        if index + 1 < len(ORDER_FLOW):
            allowed.add(ORDER_FLOW[index + 1])
        transitions[stage] = allowed
    transitions[OrderStatus.CANCELED] = set()  # Terminal
    return transitions


ORDER_STATUS_TRANSITIONS: Dict[OrderStatus, Set[OrderStatus]] = _build_transitions()


def validate_order_status_transition(
    current: OrderStatus,
    new: OrderStatus
) -> bool:
    """Validate if order status transition is allowed.

    Args:
        current: Current order status
        new: Desired new status

    Returns:
        True if transition is valid
    """
    return new in ORDER_STATUS_TRANSITIONS.get(current, set())


def get_allowed_order_transitions(
    current: OrderStatus
) -> Set[OrderStatus]:
    """Get all allowed transitions from current order status.

    Args:
        current: Current order status

    Returns:
        Set of allowed next statuses
    """
    return ORDER_STATUS_TRANSITIONS.get(current, set()).copy()


def next_stage(current: OrderStatus) -> Optional[OrderStatus]:
    """Return the stage following ``current`` in the flow, if any."""
    index = current.flow_index
    if index < 0 or index + 1 >= len(ORDER_FLOW):
        return None
    return ORDER_FLOW[index + 1]


def has_reached(status: OrderStatus, stage: OrderStatus) -> bool:
    """Check whether ``status`` is at or past ``stage`` in the flow.

    CANCELED is outside the flow and never counts as having reached a stage.
    """
    index = status.flow_index
    return index >= 0 and index >= stage.flow_index
