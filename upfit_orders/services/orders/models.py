"""Domain records for orders, status events and notes.

These are the storage-agnostic shapes the order store works with. The
SQLAlchemy repository maps them to and from ORM rows; the in-memory
repository keeps them as they are.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from upfit_orders.services.orders.enums import (
    DealerWebsiteStatus,
    InventoryStatus,
    OrderStatus,
)
from upfit_orders.services.orders.eta_policy import EtaSchedule, to_utc


@dataclass
class OrderRecord:
    """An upfit order and everything derived from it.

    Attributes:
        id: Unique, never reused order identifier
        dealer_code: Ordering dealer reference
        upfitter_id: Upfitter reference, may also live in build["upfitter"]
        status: Current fulfillment stage or CANCELED
        created_at: Creation timestamp
        updated_at: Advances on every mutation
        oem_eta: Expected chassis arrival
        upfitter_eta: Expected arrival at the upfitter
        delivery_eta: Expected final delivery
        build: Configuration snapshot (chassis, body, upfitter)
        pricing: Pricing snapshot, stored opaquely
        inventory_status: STOCK or SOLD
        buyer_name: Buyer for SOLD units, empty for STOCK
        dealer_website_status: Listing state on the dealer website
        listing_status: Legacy listing mirror, "PUBLISHED" or None
        stock_number: 9-digit stock code assigned at creation
        vin: 17-character VIN-like code, empty until allocation
        original_delivery_eta: Delivery date before it first slipped
    """

    id: str
    dealer_code: str
    status: OrderStatus
    created_at: datetime
    updated_at: datetime
    upfitter_id: Optional[str] = None
    oem_eta: Optional[datetime] = None
    upfitter_eta: Optional[datetime] = None
    delivery_eta: Optional[datetime] = None
    build: dict[str, Any] = field(default_factory=dict)
    pricing: Optional[dict[str, Any]] = None
    inventory_status: InventoryStatus = InventoryStatus.STOCK
    buyer_name: str = ""
    dealer_website_status: DealerWebsiteStatus = DealerWebsiteStatus.DRAFT
    listing_status: Optional[str] = None
    stock_number: str = ""
    vin: str = ""
    original_delivery_eta: Optional[datetime] = None

    @property
    def is_stock(self) -> bool:
        """Mirror of inventory_status == STOCK."""
        return self.inventory_status == InventoryStatus.STOCK

    @property
    def chassis(self) -> dict[str, Any]:
        return (self.build or {}).get("chassis") or {}

    @property
    def build_upfitter_id(self) -> Optional[str]:
        upfitter = (self.build or {}).get("upfitter") or {}
        value = upfitter.get("id")
        return str(value) if value is not None else None

    @property
    def etas(self) -> EtaSchedule:
        return EtaSchedule(self.oem_eta, self.upfitter_eta, self.delivery_eta)


@dataclass(frozen=True)
class OrderEventRecord:
    """Immutable audit entry written on every status transition.

    ``from_status`` is empty for the synthetic creation event.
    """

    id: str
    order_id: str
    from_status: str
    to_status: str
    at: datetime


@dataclass(frozen=True)
class NoteRecord:
    """Free-text annotation on an order."""

    id: str
    order_id: str
    text: str
    user: str
    at: datetime


@dataclass
class OrderFilter:
    """Criteria for listing orders; all given criteria must match."""

    status: Optional[OrderStatus] = None
    dealer_code: Optional[str] = None
    upfitter_id: Optional[str] = None
    is_stock: Optional[bool] = None
    q: Optional[str] = None
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None

    def matches(self, order: OrderRecord) -> bool:
        """Check a single order against every populated criterion."""
        if self.status is not None and order.status != self.status:
            return False
        if self.dealer_code and order.dealer_code != self.dealer_code:
            return False
        if self.upfitter_id:
            target = str(self.upfitter_id)
            from_root = str(order.upfitter_id) if order.upfitter_id is not None else None
            if target not in (from_root, order.build_upfitter_id):
                return False
        if self.is_stock is not None and order.is_stock != self.is_stock:
            return False
        created_from = to_utc(self.created_from)
        if created_from is not None and to_utc(order.created_at) < created_from:
            return False
        created_to = to_utc(self.created_to)
        if created_to is not None and to_utc(order.created_at) > created_to:
            return False
        if self.q:
            return self._matches_text(order, self.q.lower())
        return True

    @staticmethod
    def _matches_text(order: OrderRecord, needle: str) -> bool:
        build = order.build or {}
        chassis = order.chassis
        values = [
            order.id,
            order.dealer_code,
            build.get("manufacturer"),
            build.get("body_type"),
            chassis.get("series"),
            chassis.get("powertrain"),
        ]
        return any(needle in str(v).lower() for v in values if v)
