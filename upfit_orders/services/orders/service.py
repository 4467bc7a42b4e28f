"""
Order lifecycle service: the facade HTTP handlers and other callers use.

This module implements the OrderService class on top of the order store. It
validates creation payloads, parses loosely typed status values, enforces the
stock-only publish rule and shapes results into the dictionaries callers
consume.
"""

import asyncio
from typing import Any, Iterable, List, Mapping, Optional

from upfit_orders.core.config import Settings, get_settings
from upfit_orders.core.logging import get_logger
from upfit_orders.services.orders.enums import DealerWebsiteStatus, OrderStatus
from upfit_orders.services.orders.errors import (
    InvalidArgumentError,
    OrderNotFoundError,
    OrderValidationError,
)
from upfit_orders.services.orders.eta_policy import Clock, EtaGaps, utcnow
from upfit_orders.services.orders.identifiers import IdentifierGenerator
from upfit_orders.services.orders.models import NoteRecord, OrderFilter, OrderRecord
from upfit_orders.services.orders.repository import OrderRepository
from upfit_orders.services.orders.state_machine import OrderStateMachine
from upfit_orders.services.orders.store import OrderStore

logger = get_logger(__name__)

LISTING_CHANNEL = "DEALER_WEBSITE"


def _missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def find_missing_fields(payload: Mapping[str, Any]) -> List[str]:
    """
    List every required creation field absent from ``payload``.

    Args:
        payload: Order creation payload

    Returns:
        Dotted names of the missing fields, in a stable order
    """
    missing: List[str] = []
    if _missing(payload.get("dealer_code")):
        missing.append("dealer_code")

    build = payload.get("build")
    if not isinstance(build, Mapping):
        missing.append("build")
        build = {}

    chassis = build.get("chassis")
    if not isinstance(chassis, Mapping) or _missing(chassis.get("series")):
        missing.append("build.chassis.series")
    if _missing(build.get("body_type")):
        missing.append("build.body_type")
    if _missing(build.get("manufacturer")):
        missing.append("build.manufacturer")

    if payload.get("pricing") is None:
        missing.append("pricing")
    return missing


class OrderService:
    """
    Order lifecycle facade.

    Attributes:
        store: Order store owning all state
    """

    def __init__(self, store: OrderStore):
        """
        Initialize order service.

        Args:
            store: Order store
        """
        self.store = store

    @staticmethod
    def _parse_status(value: Any) -> OrderStatus:
        if isinstance(value, OrderStatus):
            return value
        try:
            return OrderStatus.from_string(value)
        except ValueError as e:
            raise InvalidArgumentError(str(e), status=value) from e

    async def list_orders(self, order_filter: Optional[OrderFilter] = None) -> List[OrderRecord]:
        return await self.store.list(order_filter)

    async def get_order(self, order_id: str) -> dict[str, Any]:
        """
        Get an order with its status history.

        Raises:
            OrderNotFoundError: If no order matches
        """
        order = await self.store.get_strict(order_id)
        events = await self.store.list_events(order.id)
        return {"order": order, "events": events}

    async def create_order(self, payload: Mapping[str, Any]) -> dict[str, str]:
        """
        Create an order from a configurator payload.

        Args:
            payload: dealer_code, build and pricing, optionally upfitter_id,
                inventory_status or is_stock, buyer_name and ETAs

        Returns:
            {"id": new order id}

        Raises:
            OrderValidationError: Listing every missing required field
        """
        missing = find_missing_fields(payload)
        if missing:
            logger.warning("Order creation rejected", missing_fields=missing)
            raise OrderValidationError(missing)

        order = await self.store.create(payload)
        return {"id": order.id}

    async def transition_order(self, order_id: str, target: Any) -> dict[str, OrderStatus]:
        """
        Move an order to the target stage.

        Raises:
            InvalidArgumentError: If target is not a known status
            OrderNotFoundError: If no order matches
            InvalidTransitionError: If the flow does not allow the move
        """
        target_status = self._parse_status(target)
        order = await self.store.transition(order_id, target_status)
        return {"status": order.status}

    async def cancel_order(self, order_id: str) -> dict[str, OrderStatus]:
        return await self.transition_order(order_id, OrderStatus.CANCELED)

    async def update_etas(self, order_id: str, partial: Mapping[str, Any]) -> dict[str, OrderRecord]:
        order = await self.store.update_etas(order_id, partial)
        return {"order": order}

    async def set_inventory_status(
        self,
        order_id: str,
        status: Any,
        buyer_name: Optional[str] = None,
    ) -> dict[str, Any]:
        order = await self.store.set_inventory_status(order_id, status, buyer_name)
        return {
            "inventory_status": order.inventory_status,
            "is_stock": order.is_stock,
            "buyer_name": order.buyer_name,
        }

    async def set_dealer_website_status(self, order_id: str, status: Any) -> dict[str, OrderRecord]:
        """
        Set the dealer website listing state.

        Only stock units may be published.

        Raises:
            InvalidArgumentError: For unknown statuses or publishing a sold unit
            OrderNotFoundError: If no order matches
        """
        order = await self.store.set_dealer_website_status(
            order_id, status, require_stock=True
        )
        return {"order": order}

    async def publish_listing(self, order_id: str) -> dict[str, Any]:
        result = await self.set_dealer_website_status(
            order_id, DealerWebsiteStatus.PUBLISHED
        )
        return {"order": result["order"], "channel": LISTING_CHANNEL}

    async def add_note(
        self, order_id: str, text: str, user: Optional[str] = None
    ) -> dict[str, NoteRecord]:
        """
        Attach a note to an existing order.

        Raises:
            OrderNotFoundError: If no order matches
            InvalidArgumentError: If the note text is empty
        """
        if _missing(text):
            raise InvalidArgumentError("Note text must not be empty", order_id=order_id)
        order = await self.store.get_strict(order_id)
        note = await self.store.add_note(order.id, text, user)
        return {"note": note}

    async def list_notes(self, order_id: str) -> List[NoteRecord]:
        order = await self.store.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return await self.store.list_notes(order.id)

    async def delete_orders(self, order_ids: Iterable[str]) -> dict[str, int]:
        if isinstance(order_ids, str):
            order_ids = [order_ids]
        deleted = await self.store.delete(order_ids)
        return {"deleted_count": deleted}


def build_order_service(
    repository: OrderRepository,
    settings: Optional[Settings] = None,
    lock: Optional[asyncio.Lock] = None,
    clock: Clock = utcnow,
) -> OrderService:
    """
    Wire an order service over a repository using application settings.

    Args:
        repository: Backing storage
        settings: Settings supplying gaps and counter starts
        lock: Lock shared with other stores over the same data
        clock: Source of mutation timestamps

    Returns:
        Ready-to-use order service
    """
    settings = settings or get_settings()
    identifiers = IdentifierGenerator(
        repository,
        stock_start=settings.stock_sequence_start,
        vin_start=settings.vin_sequence_start,
    )
    store = OrderStore(
        repository,
        identifiers=identifiers,
        state_machine=OrderStateMachine(identifiers, clock=clock),
        gaps=EtaGaps(
            oem_to_upfit_days=settings.eta_oem_to_upfit_days,
            upfit_to_delivery_days=settings.eta_upfit_to_delivery_days,
        ),
        clock=clock,
        lock=lock,
    )
    return OrderService(store)
