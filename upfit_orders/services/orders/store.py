"""
Order store: the single owner of order state.

The store applies every mutation to orders, their status events, notes and
identifier counters through an injected repository. Each read-modify-write
unit runs under one asyncio lock, so counter draws, transitions and ETA edits
never interleave within a process.
"""

import asyncio
from dataclasses import replace
from datetime import datetime
from typing import Any, Iterable, List, Mapping, Optional
from uuid import uuid4

from upfit_orders.core.logging import get_logger
from upfit_orders.services.orders.enums import (
    DealerWebsiteStatus,
    InventoryStatus,
    OrderStatus,
)
from upfit_orders.services.orders.errors import (
    InvalidArgumentError,
    OrderNotFoundError,
)
from upfit_orders.services.orders.eta_policy import (
    DEFAULT_GAPS,
    Clock,
    EtaGaps,
    EtaSchedule,
    enforce_eta_policy,
    to_utc,
    utcnow,
)
from upfit_orders.services.orders.identifiers import (
    IdentifierGenerator,
    generate_fleet_buyer_name,
)
from upfit_orders.services.orders.models import (
    NoteRecord,
    OrderEventRecord,
    OrderFilter,
    OrderRecord,
)
from upfit_orders.services.orders.repository import OrderRepository
from upfit_orders.services.orders.state_machine import (
    OrderStateMachine,
    creation_event,
)

logger = get_logger(__name__)

ETA_FIELDS = ("oem_eta", "upfitter_eta", "delivery_eta")
DEFAULT_NOTE_USER = "system"
ORDER_SEQUENCE = "order_sequence"

_BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


class OrderStore:
    """
    Owns orders, events, notes and counters.

    Attributes:
        repository: Backing storage
        identifiers: Stock number and VIN generator
        state_machine: Transition rules and post-transition hooks
        gaps: Milestone spacing used by the ETA policy
        clock: Source of mutation timestamps
    """

    def __init__(
        self,
        repository: OrderRepository,
        identifiers: Optional[IdentifierGenerator] = None,
        state_machine: Optional[OrderStateMachine] = None,
        gaps: EtaGaps = DEFAULT_GAPS,
        clock: Clock = utcnow,
        lock: Optional[asyncio.Lock] = None,
    ):
        """
        Initialize order store.

        Args:
            repository: Backing storage, also the counter source
            identifiers: Identifier generator, built on the repository if omitted
            state_machine: State machine, built on the identifiers if omitted
            gaps: Milestone spacing for the ETA policy
            clock: Source of mutation timestamps
            lock: Lock shared by every store over the same data
        """
        self.repository = repository
        self.identifiers = identifiers or IdentifierGenerator(repository)
        self.state_machine = state_machine or OrderStateMachine(
            self.identifiers, clock=clock
        )
        self.gaps = gaps
        self.clock = clock
        self._lock = lock or asyncio.Lock()

    def _apply_eta_policy(
        self, order: OrderRecord, schedule: EtaSchedule
    ) -> EtaSchedule:
        return enforce_eta_policy(
            schedule,
            created_at=order.created_at,
            status=order.status,
            now=self.clock(),
            gaps=self.gaps,
        )

    async def _new_order_id(self, now: datetime) -> str:
        # Seeded from the clock on first draw, then strictly increasing
        sequence = await self.repository.next_counter(
            ORDER_SEQUENCE, int(now.timestamp() * 1000)
        )
        return f"ORD-{to_base36(sequence)}"

    async def create(self, payload: Mapping[str, Any]) -> OrderRecord:
        """
        Create an order at CONFIG_RECEIVED.

        ETAs in the payload pass through the ETA policy; otherwise all three
        stay empty. The VIN stays empty until OEM allocation.

        Args:
            payload: Order fields; build and pricing are stored as given

        Returns:
            The stored order
        """
        async with self._lock:
            now = self.clock()
            build = dict(payload.get("build") or {})
            dealer_code = str(payload.get("dealer_code") or "")

            upfitter_id = payload.get("upfitter_id")
            if upfitter_id is None:
                upfitter_id = ((build.get("upfitter") or {}).get("id"))

            inventory_status = InventoryStatus.STOCK
            if payload.get("inventory_status"):
                inventory_status = self._parse_inventory_status(
                    payload["inventory_status"]
                )
            elif payload.get("is_stock") is False:
                inventory_status = InventoryStatus.SOLD

            buyer_name = ""
            if inventory_status == InventoryStatus.SOLD:
                buyer_name = payload.get("buyer_name") or generate_fleet_buyer_name(
                    len(await self.repository.list_orders()) + 7
                )

            order = OrderRecord(
                id=await self._new_order_id(now),
                dealer_code=dealer_code,
                upfitter_id=str(upfitter_id) if upfitter_id is not None else None,
                status=OrderStatus.CONFIG_RECEIVED,
                created_at=now,
                updated_at=now,
                build=build,
                pricing=payload.get("pricing"),
                inventory_status=inventory_status,
                buyer_name=buyer_name,
                stock_number=await self.identifiers.next_stock_number(
                    dealer_code, build
                ),
            )

            requested = self._parse_schedule(payload)
            if any(getattr(requested, f) is not None for f in ETA_FIELDS):
                order = self._with_schedule(
                    order, self._apply_eta_policy(order, requested)
                )

            await self.repository.add(order)
            await self.repository.add_event(creation_event(order))

            logger.info(
                "Order created",
                order_id=order.id,
                dealer_code=order.dealer_code,
                stock_number=order.stock_number,
                inventory_status=order.inventory_status.value,
            )

            return order

    async def get(
        self, order_id: str, for_update: bool = False
    ) -> Optional[OrderRecord]:
        """
        Look up an order by id, falling back to a case-insensitive match on
        id, stock number or VIN.

        With ``for_update`` the matched row stays locked until the caller's
        transaction ends.
        """
        if not order_id:
            return None
        order = await self.repository.get(order_id, for_update=for_update)
        if order is None:
            order = await self.repository.find_by_reference(
                order_id, for_update=for_update
            )
        return order

    async def get_strict(self, order_id: str, for_update: bool = False) -> OrderRecord:
        """
        Look up an order like ``get``.

        Raises:
            OrderNotFoundError: If nothing matches
        """
        order = await self.get(order_id, for_update=for_update)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    async def list(self, order_filter: Optional[OrderFilter] = None) -> List[OrderRecord]:
        """Orders matching every given criterion, newest created first."""
        return await self.repository.list_orders(order_filter)

    async def list_events(self, order_id: str) -> List[OrderEventRecord]:
        return await self.repository.list_events(order_id)

    async def transition(self, order_id: str, target: OrderStatus) -> OrderRecord:
        """
        Move an order to ``target`` and record the event.

        Raises:
            OrderNotFoundError: If the order does not exist
            InvalidTransitionError: If the flow does not allow the move
        """
        async with self._lock:
            order = await self.get_strict(order_id, for_update=True)
            result = await self.state_machine.apply_transition(
                order, target, now=self.clock()
            )
            await self.repository.save(result.order)
            await self.repository.add_event(result.event)
            return result.order

    async def update_etas(
        self, order_id: str, partial: Mapping[str, Any]
    ) -> OrderRecord:
        """
        Merge supplied milestone dates over the current ones and re-run the
        ETA policy. Missing or None values keep the current date.

        The first time a later delivery date replaces an earlier one, the
        earlier date is kept as ``original_delivery_eta``.

        Raises:
            OrderNotFoundError: If the order does not exist
            InvalidArgumentError: If a date cannot be parsed
        """
        async with self._lock:
            order = await self.get_strict(order_id, for_update=True)
            requested = self._parse_schedule(partial)
            merged = EtaSchedule(
                *(
                    getattr(requested, f)
                    if getattr(requested, f) is not None
                    else getattr(order, f)
                    for f in ETA_FIELDS
                )
            )
            schedule = self._apply_eta_policy(order, merged)

            original = order.original_delivery_eta
            if (
                original is None
                and order.delivery_eta is not None
                and schedule.delivery_eta is not None
                and schedule.delivery_eta > order.delivery_eta
            ):
                original = order.delivery_eta

            updated = replace(
                self._with_schedule(order, schedule),
                original_delivery_eta=original,
                updated_at=self.clock(),
            )
            await self.repository.save(updated)

            logger.info(
                "Order ETAs updated",
                order_id=updated.id,
                oem_eta=_iso(updated.oem_eta),
                upfitter_eta=_iso(updated.upfitter_eta),
                delivery_eta=_iso(updated.delivery_eta),
            )
            return updated

    async def set_inventory_status(
        self,
        order_id: str,
        status: Any,
        buyer_name: Optional[str] = None,
    ) -> OrderRecord:
        """
        Mark a unit as STOCK or SOLD.

        STOCK clears the buyer. SOLD keeps the given buyer name, else the
        existing one, else a generated fleet buyer name.

        Raises:
            InvalidArgumentError: If status is not STOCK or SOLD
            OrderNotFoundError: If the order does not exist
        """
        inventory_status = self._parse_inventory_status(status)

        async with self._lock:
            order = await self.get_strict(order_id, for_update=True)
            if inventory_status == InventoryStatus.STOCK:
                resolved_buyer = ""
            else:
                resolved_buyer = (
                    buyer_name
                    or order.buyer_name
                    or generate_fleet_buyer_name(await self._order_position(order) + 11)
                )

            updated = replace(
                order,
                inventory_status=inventory_status,
                buyer_name=resolved_buyer,
                updated_at=self.clock(),
            )
            await self.repository.save(updated)

            logger.info(
                "Inventory status set",
                order_id=updated.id,
                inventory_status=inventory_status.value,
                buyer_name=resolved_buyer,
            )
            return updated

    async def set_dealer_website_status(
        self, order_id: str, status: Any, require_stock: bool = False
    ) -> OrderRecord:
        """
        Set the dealer website listing state and its legacy mirror.

        With ``require_stock`` only stock units may be published; the check
        reads the same locked order that is written.

        Raises:
            InvalidArgumentError: If status is not DRAFT, PUBLISHED or
                UNPUBLISHED, or a sold unit is published under ``require_stock``
            OrderNotFoundError: If the order does not exist
        """
        try:
            website_status = DealerWebsiteStatus.from_string(status)
        except ValueError as e:
            raise InvalidArgumentError(str(e), dealer_website_status=status) from e

        async with self._lock:
            order = await self.get_strict(order_id, for_update=True)
            if (
                require_stock
                and website_status == DealerWebsiteStatus.PUBLISHED
                and not order.is_stock
            ):
                logger.warning(
                    "Publish rejected for sold unit",
                    order_id=order.id,
                    inventory_status=order.inventory_status.value,
                )
                raise InvalidArgumentError(
                    "Only stock units can be published to the dealer website",
                    order_id=order.id,
                    inventory_status=order.inventory_status.value,
                )
            updated = replace(
                order,
                dealer_website_status=website_status,
                listing_status=(
                    DealerWebsiteStatus.PUBLISHED.value
                    if website_status == DealerWebsiteStatus.PUBLISHED
                    else None
                ),
                updated_at=self.clock(),
            )
            await self.repository.save(updated)

            logger.info(
                "Dealer website status set",
                order_id=updated.id,
                dealer_website_status=website_status.value,
            )
            return updated

    async def delete(self, order_ids: Iterable[str]) -> int:
        """Remove orders with their events and notes; unknown ids are ignored."""
        ids = [order_id for order_id in order_ids if order_id]
        async with self._lock:
            deleted = await self.repository.delete(ids)
        logger.info("Orders deleted", requested=len(ids), deleted=deleted)
        return deleted

    async def add_note(
        self, order_id: str, text: str, user: Optional[str] = None
    ) -> NoteRecord:
        async with self._lock:
            at = self.clock()
            note = NoteRecord(
                id=f"note_{order_id}_{uuid4().hex[:12]}",
                order_id=order_id,
                text=text,
                user=user or DEFAULT_NOTE_USER,
                at=at,
            )
            await self.repository.add_note(note)
        logger.info("Note added", order_id=order_id, note_id=note.id)
        return note

    async def list_notes(self, order_id: str) -> List[NoteRecord]:
        return await self.repository.list_notes(order_id)

    # Helpers

    async def _order_position(self, order: OrderRecord) -> int:
        orders = await self.repository.list_orders()
        for index, candidate in enumerate(orders):
            if candidate.id == order.id:
                return index
        return len(orders)

    @staticmethod
    def _parse_inventory_status(value: Any) -> InventoryStatus:
        try:
            return InventoryStatus.from_string(value)
        except ValueError as e:
            raise InvalidArgumentError(str(e), inventory_status=value) from e

    @staticmethod
    def _parse_schedule(values: Mapping[str, Any]) -> EtaSchedule:
        try:
            return EtaSchedule.of(*(values.get(f) for f in ETA_FIELDS))
        except (AttributeError, TypeError, ValueError) as e:
            raise InvalidArgumentError(f"Invalid ETA value: {e}") from e

    @staticmethod
    def _with_schedule(order: OrderRecord, schedule: EtaSchedule) -> OrderRecord:
        return replace(
            order,
            oem_eta=schedule.oem_eta,
            upfitter_eta=schedule.upfitter_eta,
            delivery_eta=schedule.delivery_eta,
        )


def _iso(value) -> Optional[str]:
    value = to_utc(value)
    return value.isoformat() if value is not None else None
