"""Exceptions raised by the order store and the order lifecycle service."""

from typing import Any, Iterable, Optional

from upfit_orders.services.orders.enums import OrderStatus


class OrderServiceError(Exception):
    """Base exception for order service errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context


class OrderNotFoundError(OrderServiceError):
    """Raised when no order matches the requested identifier."""

    def __init__(self, order_id: str, **context: Any):
        super().__init__(f"Order not found: {order_id}", order_id=order_id, **context)
        self.order_id = order_id


class InvalidTransitionError(OrderServiceError):
    """Raised when an illegal status change is attempted."""

    def __init__(
        self,
        message: str,
        current_status: OrderStatus,
        target_status: OrderStatus,
        **context: Any
    ):
        super().__init__(message, **context)
        self.current_status = current_status
        self.target_status = target_status


class InvalidArgumentError(OrderServiceError):
    """Raised for malformed enum values and rejected field values."""

    pass


class OrderValidationError(OrderServiceError):
    """Raised when required fields are missing on order creation."""

    def __init__(self, missing_fields: Iterable[str], message: Optional[str] = None):
        fields = list(missing_fields)
        super().__init__(
            message or f"Missing required fields: {', '.join(fields)}",
            missing_fields=fields,
        )
        self.missing_fields = fields
