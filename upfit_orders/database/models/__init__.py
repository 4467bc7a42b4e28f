"""Database models for the upfit order tracker."""

from upfit_orders.database.models.order import (
    Order,
    OrderEvent,
    OrderNote,
    SequenceCounter,
)

__all__ = [
    "Order",
    "OrderEvent",
    "OrderNote",
    "SequenceCounter",
]
