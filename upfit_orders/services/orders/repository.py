"""
Order data access repositories.

This module defines the OrderRepository interface used by the order store and
its two implementations: InMemoryOrderRepository, keeping records in process
memory, and SqlAlchemyOrderRepository, mapping records to the upfit order
tables through an async session. Both hand out monotonic counters for
identifier generation.
"""

import copy
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import noload

from upfit_orders.core.logging import get_logger
from upfit_orders.database.models.order import (
    Order,
    OrderEvent,
    OrderNote,
    SequenceCounter,
)
from upfit_orders.services.orders.errors import OrderServiceError
from upfit_orders.services.orders.eta_policy import to_utc
from upfit_orders.services.orders.models import (
    NoteRecord,
    OrderEventRecord,
    OrderFilter,
    OrderRecord,
)

logger = get_logger(__name__)


class OrderRepositoryError(OrderServiceError):
    """Raised when the backing store fails."""

    pass


class OrderRepository(ABC):
    """Storage interface for orders, their events, notes and counters."""

    @abstractmethod
    async def list_orders(
        self, order_filter: Optional[OrderFilter] = None
    ) -> List[OrderRecord]:
        """Orders matching the filter, newest first."""

    @abstractmethod
    async def get(
        self, order_id: str, for_update: bool = False
    ) -> Optional[OrderRecord]:
        """Order with exactly this id, or None.

        ``for_update`` locks the row until the surrounding transaction ends.
        """

    @abstractmethod
    async def find_by_reference(
        self, reference: str, for_update: bool = False
    ) -> Optional[OrderRecord]:
        """Case-insensitive match on id, stock number or VIN."""

    @abstractmethod
    async def add(self, order: OrderRecord) -> None:
        """Store a new order."""

    @abstractmethod
    async def save(self, order: OrderRecord) -> None:
        """Persist changes to an existing order."""

    @abstractmethod
    async def delete(self, order_ids: Iterable[str]) -> int:
        """Delete orders with their events and notes; returns the count removed."""

    @abstractmethod
    async def add_event(self, event: OrderEventRecord) -> None:
        """Append a status event."""

    @abstractmethod
    async def list_events(self, order_id: str) -> List[OrderEventRecord]:
        """Events of one order, oldest first."""

    @abstractmethod
    async def add_note(self, note: NoteRecord) -> None:
        """Append a note."""

    @abstractmethod
    async def list_notes(self, order_id: str) -> List[NoteRecord]:
        """Notes of one order, oldest first."""

    @abstractmethod
    async def next_counter(self, name: str, start: int) -> int:
        """Return the counter's current value and store value + 1.

        A counter that does not exist yet starts at ``start``.
        """


class InMemoryOrderRepository(OrderRepository):
    """
    Process-local repository.

    Records are copied on the way in and out so callers never share mutable
    state with the store.
    """

    def __init__(self):
        self._orders: List[OrderRecord] = []
        self._events: List[OrderEventRecord] = []
        self._notes: List[NoteRecord] = []
        self._counters: Dict[str, int] = {}

    async def list_orders(
        self, order_filter: Optional[OrderFilter] = None
    ) -> List[OrderRecord]:
        return [
            copy.deepcopy(order)
            for order in self._orders
            if order_filter is None or order_filter.matches(order)
        ]

    async def get(
        self, order_id: str, for_update: bool = False
    ) -> Optional[OrderRecord]:
        # Callers already serialize on the store lock
        for order in self._orders:
            if order.id == order_id:
                return copy.deepcopy(order)
        return None

    async def find_by_reference(
        self, reference: str, for_update: bool = False
    ) -> Optional[OrderRecord]:
        needle = reference.lower()
        for order in self._orders:
            candidates = (order.id, order.stock_number, order.vin)
            if any(value and value.lower() == needle for value in candidates):
                return copy.deepcopy(order)
        return None

    async def add(self, order: OrderRecord) -> None:
        # Newest first
        self._orders.insert(0, copy.deepcopy(order))

    async def save(self, order: OrderRecord) -> None:
        for index, existing in enumerate(self._orders):
            if existing.id == order.id:
                self._orders[index] = copy.deepcopy(order)
                return
        raise OrderRepositoryError("Cannot save unknown order", order_id=order.id)

    async def delete(self, order_ids: Iterable[str]) -> int:
        targets = set(order_ids)
        before = len(self._orders)
        self._orders = [o for o in self._orders if o.id not in targets]
        self._events = [e for e in self._events if e.order_id not in targets]
        self._notes = [n for n in self._notes if n.order_id not in targets]
        return before - len(self._orders)

    async def add_event(self, event: OrderEventRecord) -> None:
        self._events.append(event)

    async def list_events(self, order_id: str) -> List[OrderEventRecord]:
        return [e for e in self._events if e.order_id == order_id]

    async def add_note(self, note: NoteRecord) -> None:
        self._notes.append(note)

    async def list_notes(self, order_id: str) -> List[NoteRecord]:
        return [n for n in self._notes if n.order_id == order_id]

    async def next_counter(self, name: str, start: int) -> int:
        value = self._counters.get(name, start)
        self._counters[name] = value + 1
        return value


def _order_to_record(row: Order) -> OrderRecord:
    return OrderRecord(
        id=row.id,
        dealer_code=row.dealer_code,
        upfitter_id=row.upfitter_id,
        status=row.status,
        created_at=to_utc(row.created_at),
        updated_at=to_utc(row.updated_at),
        oem_eta=to_utc(row.oem_eta),
        upfitter_eta=to_utc(row.upfitter_eta),
        delivery_eta=to_utc(row.delivery_eta),
        build=copy.deepcopy(row.build or {}),
        pricing=copy.deepcopy(row.pricing),
        inventory_status=row.inventory_status,
        buyer_name=row.buyer_name or "",
        dealer_website_status=row.dealer_website_status,
        listing_status=row.listing_status,
        stock_number=row.stock_number,
        vin=row.vin or "",
        original_delivery_eta=to_utc(row.original_delivery_eta),
    )


_ORDER_COLUMNS = (
    "dealer_code",
    "upfitter_id",
    "status",
    "created_at",
    "updated_at",
    "oem_eta",
    "upfitter_eta",
    "delivery_eta",
    "build",
    "pricing",
    "inventory_status",
    "buyer_name",
    "dealer_website_status",
    "listing_status",
    "stock_number",
    "vin",
    "original_delivery_eta",
)


def _apply_record(row: Order, record: OrderRecord) -> Order:
    for column in _ORDER_COLUMNS:
        setattr(row, column, copy.deepcopy(getattr(record, column)))
    return row


class SqlAlchemyOrderRepository(OrderRepository):
    """
    Repository backed by the upfit order tables.

    Works inside the caller's session and only flushes; committing is left to
    the session owner (``get_session`` in the request dependency).
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize repository.

        Args:
            session: Async database session
        """
        self.session = session

    def _select_orders(self, for_update: bool = False):
        stmt = select(Order).options(noload(Order.events), noload(Order.notes))
        if for_update:
            # Refresh rows already in the identity map with the locked version
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return stmt

    async def list_orders(
        self, order_filter: Optional[OrderFilter] = None
    ) -> List[OrderRecord]:
        stmt = self._select_orders()

        # Push down the simple criteria; the rest is matched on the records
        if order_filter is not None:
            if order_filter.status is not None:
                stmt = stmt.where(Order.status == order_filter.status)
            if order_filter.dealer_code:
                stmt = stmt.where(Order.dealer_code == order_filter.dealer_code)
            if order_filter.created_from is not None:
                stmt = stmt.where(Order.created_at >= to_utc(order_filter.created_from))
            if order_filter.created_to is not None:
                stmt = stmt.where(Order.created_at <= to_utc(order_filter.created_to))

        stmt = stmt.order_by(Order.created_at.desc(), Order.id.desc())

        try:
            result = await self.session.execute(stmt)
            rows = result.scalars().all()
        except SQLAlchemyError as e:
            logger.error("Failed to list orders", error=str(e))
            raise OrderRepositoryError("Failed to list orders", error=str(e)) from e

        records = [_order_to_record(row) for row in rows]
        if order_filter is None:
            return records
        return [r for r in records if order_filter.matches(r)]

    async def _get_row(self, order_id: str, for_update: bool = False) -> Optional[Order]:
        result = await self.session.execute(
            self._select_orders(for_update).where(Order.id == order_id)
        )
        return result.scalar_one_or_none()

    async def get(
        self, order_id: str, for_update: bool = False
    ) -> Optional[OrderRecord]:
        try:
            row = await self._get_row(order_id, for_update)
        except SQLAlchemyError as e:
            logger.error("Failed to fetch order", order_id=order_id, error=str(e))
            raise OrderRepositoryError(
                "Failed to fetch order", order_id=order_id, error=str(e)
            ) from e
        return _order_to_record(row) if row is not None else None

    async def find_by_reference(
        self, reference: str, for_update: bool = False
    ) -> Optional[OrderRecord]:
        needle = reference.lower()
        stmt = (
            self._select_orders(for_update)
            .where(
                or_(
                    func.lower(Order.id) == needle,
                    func.lower(Order.stock_number) == needle,
                    func.lower(Order.vin) == needle,
                )
            )
            .order_by(Order.created_at.desc())
            .limit(1)
        )
        try:
            result = await self.session.execute(stmt)
            row = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Failed to look up order", reference=reference, error=str(e))
            raise OrderRepositoryError(
                "Failed to look up order", reference=reference, error=str(e)
            ) from e
        return _order_to_record(row) if row is not None else None

    async def add(self, order: OrderRecord) -> None:
        row = _apply_record(Order(id=order.id), order)
        self.session.add(row)
        try:
            await self.session.flush()
        except SQLAlchemyError as e:
            logger.error("Failed to insert order", order_id=order.id, error=str(e))
            raise OrderRepositoryError(
                "Failed to insert order", order_id=order.id, error=str(e)
            ) from e

    async def save(self, order: OrderRecord) -> None:
        try:
            row = await self._get_row(order.id)
            if row is None:
                raise OrderRepositoryError(
                    "Cannot save unknown order", order_id=order.id
                )
            _apply_record(row, order)
            await self.session.flush()
        except SQLAlchemyError as e:
            logger.error("Failed to update order", order_id=order.id, error=str(e))
            raise OrderRepositoryError(
                "Failed to update order", order_id=order.id, error=str(e)
            ) from e

    async def delete(self, order_ids: Iterable[str]) -> int:
        ids = list(set(order_ids))
        if not ids:
            return 0
        try:
            await self.session.execute(
                delete(OrderEvent).where(OrderEvent.order_id.in_(ids))
            )
            await self.session.execute(
                delete(OrderNote).where(OrderNote.order_id.in_(ids))
            )
            result = await self.session.execute(delete(Order).where(Order.id.in_(ids)))
        except SQLAlchemyError as e:
            logger.error("Failed to delete orders", order_ids=ids, error=str(e))
            raise OrderRepositoryError(
                "Failed to delete orders", order_ids=ids, error=str(e)
            ) from e
        return result.rowcount or 0

    async def add_event(self, event: OrderEventRecord) -> None:
        self.session.add(
            OrderEvent(
                id=event.id,
                order_id=event.order_id,
                from_status=event.from_status,
                to_status=event.to_status,
                at=event.at,
            )
        )
        try:
            await self.session.flush()
        except SQLAlchemyError as e:
            logger.error("Failed to record event", order_id=event.order_id, error=str(e))
            raise OrderRepositoryError(
                "Failed to record event", order_id=event.order_id, error=str(e)
            ) from e

    async def list_events(self, order_id: str) -> List[OrderEventRecord]:
        stmt = (
            select(OrderEvent)
            .where(OrderEvent.order_id == order_id)
            .order_by(OrderEvent.at, OrderEvent.id)
        )
        try:
            result = await self.session.execute(stmt)
            rows = result.scalars().all()
        except SQLAlchemyError as e:
            logger.error("Failed to list events", order_id=order_id, error=str(e))
            raise OrderRepositoryError(
                "Failed to list events", order_id=order_id, error=str(e)
            ) from e
        return [
            OrderEventRecord(
                id=row.id,
                order_id=row.order_id,
                from_status=row.from_status,
                to_status=row.to_status,
                at=to_utc(row.at),
            )
            for row in rows
        ]

    async def add_note(self, note: NoteRecord) -> None:
        self.session.add(
            OrderNote(
                id=note.id,
                order_id=note.order_id,
                text=note.text,
                user=note.user,
                at=note.at,
            )
        )
        try:
            await self.session.flush()
        except SQLAlchemyError as e:
            logger.error("Failed to add note", order_id=note.order_id, error=str(e))
            raise OrderRepositoryError(
                "Failed to add note", order_id=note.order_id, error=str(e)
            ) from e

    async def list_notes(self, order_id: str) -> List[NoteRecord]:
        stmt = (
            select(OrderNote)
            .where(OrderNote.order_id == order_id)
            .order_by(OrderNote.at, OrderNote.id)
        )
        try:
            result = await self.session.execute(stmt)
            rows = result.scalars().all()
        except SQLAlchemyError as e:
            logger.error("Failed to list notes", order_id=order_id, error=str(e))
            raise OrderRepositoryError(
                "Failed to list notes", order_id=order_id, error=str(e)
            ) from e
        return [
            NoteRecord(
                id=row.id,
                order_id=row.order_id,
                text=row.text,
                user=row.user,
                at=to_utc(row.at),
            )
            for row in rows
        ]

    async def next_counter(self, name: str, start: int) -> int:
        try:
            result = await self.session.execute(
                select(SequenceCounter)
                .where(SequenceCounter.name == name)
                .with_for_update()
            )
            counter = result.scalar_one_or_none()

            if counter is None:
                value = start
                self.session.add(SequenceCounter(name=name, value=start + 1))
            else:
                value = counter.value
                counter.value = value + 1

            await self.session.flush()
        except SQLAlchemyError as e:
            logger.error("Failed to draw counter", counter=name, error=str(e))
            raise OrderRepositoryError(
                "Failed to draw counter", counter=name, error=str(e)
            ) from e
        logger.debug("Counter drawn", counter=name, value=value)
        return value
