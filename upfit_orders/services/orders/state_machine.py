"""Order state machine implementation with transition validation.

This module implements the OrderStateMachine class for moving orders along
the fulfillment flow. Transitions are validated against the flow rules, the
status change is applied to a copy of the order, an audit event is produced
and post-transition hooks run against the new state. VIN assignment on
reaching allocation is one such hook.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Awaitable, Callable, List, Optional, Set, Tuple
from uuid import uuid4

from upfit_orders.core.logging import get_logger
from upfit_orders.services.orders.enums import (
    VIN_ASSIGNMENT_STAGE,
    OrderStatus,
    get_allowed_order_transitions,
    has_reached,
    validate_order_status_transition,
)
from upfit_orders.services.orders.errors import InvalidTransitionError
from upfit_orders.services.orders.eta_policy import Clock, utcnow
from upfit_orders.services.orders.identifiers import IdentifierGenerator
from upfit_orders.services.orders.models import OrderEventRecord, OrderRecord

logger = get_logger(__name__)

HookPredicate = Callable[[OrderRecord], bool]
TransitionHook = Callable[[OrderRecord], Awaitable[OrderRecord]]


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of an applied transition: the new order and its audit event."""

    order: OrderRecord
    event: OrderEventRecord


def new_event_id(order_id: str) -> str:
    return f"evt_{order_id}_{uuid4().hex[:12]}"


def creation_event(order: OrderRecord) -> OrderEventRecord:
    """Synthetic event recording an order's entry into the flow."""
    return OrderEventRecord(
        id=new_event_id(order.id),
        order_id=order.id,
        from_status="",
        to_status=order.status.value,
        at=order.created_at,
    )


class OrderStateMachine:
    """State machine for managing order lifecycle transitions.

    Validates transitions against the fulfillment flow, records an event
    per transition and runs post-transition hooks. Hooks are registered as
    ``(predicate, hook)`` pairs; a hook runs when its predicate holds for
    the freshly transitioned order and returns the (possibly updated) order.
    """

    def __init__(
        self,
        identifiers: IdentifierGenerator,
        clock: Clock = utcnow,
    ):
        """Initialize state machine.

        Args:
            identifiers: Generator used by the VIN assignment hook
            clock: Source of the transition timestamp
        """
        self.identifiers = identifiers
        self.clock = clock
        self._post_transition_hooks: List[Tuple[HookPredicate, TransitionHook]] = (
            self._initialize_hooks()
        )

        logger.debug(
            "OrderStateMachine initialized",
            hooks_count=len(self._post_transition_hooks),
        )

    def _initialize_hooks(self) -> List[Tuple[HookPredicate, TransitionHook]]:
        """Initialize post-transition hooks.

        Returns:
            List of (predicate, hook) pairs, run in order
        """
        return [
            (self._needs_vin, self._hook_assign_vin),
        ]

    def register_hook(self, predicate: HookPredicate, hook: TransitionHook) -> None:
        """Append a post-transition hook."""
        self._post_transition_hooks.append((predicate, hook))

    def can_transition(self, current: OrderStatus, target: OrderStatus) -> bool:
        return validate_order_status_transition(current, target)

    def get_allowed_transitions(self, order: OrderRecord) -> Set[OrderStatus]:
        """Get allowed transitions from current order status."""
        return get_allowed_order_transitions(order.status)

    def validate_transition(
        self,
        order: OrderRecord,
        target_status: OrderStatus,
    ) -> bool:
        """Validate if transition to target status is allowed.

        Args:
            order: Order to validate
            target_status: Desired target status

        Returns:
            True if transition is valid

        Raises:
            InvalidTransitionError: If transition is invalid
        """
        current_status = order.status

        if not self.can_transition(current_status, target_status):
            allowed = self.get_allowed_transitions(order)
            raise InvalidTransitionError(
                f"Invalid transition from {current_status.value} to "
                f"{target_status.value}",
                current_status=current_status,
                target_status=target_status,
                order_id=order.id,
                allowed_transitions=sorted(s.value for s in allowed),
            )

        return True

    async def apply_transition(
        self,
        order: OrderRecord,
        target_status: OrderStatus,
        now: Optional[datetime] = None,
    ) -> TransitionResult:
        """Apply state transition and run post-transition hooks.

        The given order is left untouched; a transitioned copy is returned.

        Args:
            order: Order to transition
            target_status: Target status
            now: Transition timestamp, defaults to the clock

        Returns:
            TransitionResult with the updated order and its event

        Raises:
            InvalidTransitionError: If transition is not allowed
        """
        self.validate_transition(order, target_status)

        at = now or self.clock()
        previous = order.status
        updated = replace(order, status=target_status, updated_at=at)

        for predicate, hook in self._post_transition_hooks:
            if predicate(updated):
                updated = await hook(updated)

        event = OrderEventRecord(
            id=new_event_id(order.id),
            order_id=order.id,
            from_status=previous.value,
            to_status=target_status.value,
            at=at,
        )

        logger.info(
            "State transition applied",
            order_id=order.id,
            transition=f"{previous.value}->{target_status.value}",
        )

        return TransitionResult(order=updated, event=event)

    # Post-transition hooks

    @staticmethod
    def _needs_vin(order: OrderRecord) -> bool:
        return not order.vin and has_reached(order.status, VIN_ASSIGNMENT_STAGE)

    async def _hook_assign_vin(self, order: OrderRecord) -> OrderRecord:
        """Assign a VIN once the order has been allocated by the OEM."""
        vin = await self.identifiers.next_vin(
            order.dealer_code, order.build, order.created_at
        )

        logger.info("VIN assigned", order_id=order.id, vin=vin)

        return replace(order, vin=vin)
