"""
Upfit order models for the fulfillment pipeline.

This module defines the Order table holding one row per upfit order, the
append-only OrderEvent audit trail written on every status transition, the
OrderNote annotations, and the SequenceCounter rows backing stock-number and
VIN serial generation.
"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from upfit_orders.database.base import Base, TimestampMixin
from upfit_orders.services.orders.enums import (
    DealerWebsiteStatus,
    InventoryStatus,
    OrderStatus,
)

# JSONB on PostgreSQL, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Order(Base, TimestampMixin):
    """
    Upfit order model.

    Attributes:
        id: Order identifier, ORD-<base36>
        dealer_code: Ordering dealer reference
        upfitter_id: Upfitter reference
        status: Current fulfillment stage or CANCELED
        oem_eta: Expected chassis arrival
        upfitter_eta: Expected arrival at the upfitter
        delivery_eta: Expected final delivery
        original_delivery_eta: First delivery ETA before any slip
        build: Configuration snapshot stored as JSON
        pricing: Pricing snapshot stored as JSON
        inventory_status: STOCK or SOLD
        buyer_name: Buyer for SOLD units
        dealer_website_status: Listing state on the dealer website
        listing_status: Legacy listing mirror
        stock_number: 9-digit stock code, not unique across the counter wrap
        vin: VIN-like code, empty until OEM allocation
        created_at: Record creation timestamp (from TimestampMixin)
        updated_at: Last modification timestamp (from TimestampMixin)
    """

    __tablename__ = "upfit_orders"

    id: Mapped[str] = mapped_column(
        String(32),
        primary_key=True,
        comment="Order identifier",
    )

    dealer_code: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        index=True,
        comment="Ordering dealer code",
    )

    upfitter_id: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        index=True,
        comment="Upfitter identifier",
    )

    status: Mapped[OrderStatus] = mapped_column(
        SQLEnum(OrderStatus, name="upfit_order_status", create_constraint=True),
        nullable=False,
        default=OrderStatus.CONFIG_RECEIVED,
        index=True,
        comment="Current fulfillment status",
    )

    # Milestone dates
    oem_eta: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Expected chassis arrival from the OEM",
    )

    upfitter_eta: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Expected arrival at the upfitter",
    )

    delivery_eta: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        index=True,
        comment="Expected final delivery",
    )

    original_delivery_eta: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Delivery ETA before it first slipped",
    )

    # Configuration snapshots
    build: Mapped[dict[str, Any]] = mapped_column(
        JSONType,
        nullable=False,
        default=dict,
        comment="Build configuration snapshot",
    )

    pricing: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSONType,
        nullable=True,
        comment="Pricing snapshot",
    )

    # Sales and listing
    inventory_status: Mapped[InventoryStatus] = mapped_column(
        SQLEnum(InventoryStatus, name="upfit_inventory_status", create_constraint=True),
        nullable=False,
        default=InventoryStatus.STOCK,
        comment="STOCK or SOLD",
    )

    buyer_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        default="",
        comment="Buyer of a sold unit",
    )

    dealer_website_status: Mapped[DealerWebsiteStatus] = mapped_column(
        SQLEnum(
            DealerWebsiteStatus,
            name="upfit_dealer_website_status",
            create_constraint=True,
        ),
        nullable=False,
        default=DealerWebsiteStatus.DRAFT,
        comment="Listing state on the dealer website",
    )

    listing_status: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
        comment="Legacy listing mirror",
    )

    # Identifiers
    stock_number: Mapped[str] = mapped_column(
        String(9),
        nullable=False,
        index=True,
        comment="9-digit stock number, repeats after 1000 orders per prefix",
    )

    vin: Mapped[str] = mapped_column(
        String(17),
        nullable=False,
        default="",
        index=True,
        comment="VIN-like code, empty before OEM allocation",
    )

    # Relationships
    events: Mapped[list["OrderEvent"]] = relationship(
        "OrderEvent",
        back_populates="order",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="OrderEvent.at",
    )

    notes: Mapped[list["OrderNote"]] = relationship(
        "OrderNote",
        back_populates="order",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="OrderNote.at",
    )

    __table_args__ = (
        # Listing is newest first
        Index("ix_upfit_orders_created_at_id", "created_at", "id"),
        Index("ix_upfit_orders_dealer_status", "dealer_code", "status"),
        CheckConstraint(
            "buyer_name = '' OR inventory_status = 'SOLD'",
            name="ck_upfit_orders_buyer_requires_sold",
        ),
        {"comment": "Upfit orders moving through the fulfillment pipeline"},
    )

    def __repr__(self) -> str:
        return (
            f"<Order(id={self.id!r}, dealer_code={self.dealer_code!r}, "
            f"status={self.status.value if self.status else None})>"
        )


class OrderEvent(Base):
    """
    Status transition audit entry.

    Attributes:
        id: Event identifier
        order_id: Parent order
        from_status: Status before the transition, empty for creation
        to_status: Status after the transition
        at: Transition time
    """

    __tablename__ = "upfit_order_events"

    id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        comment="Event identifier",
    )

    order_id: Mapped[str] = mapped_column(
        String(32),
        ForeignKey("upfit_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Parent order identifier",
    )

    from_status: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default="",
        comment="Previous status, empty for the creation event",
    )

    to_status: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        comment="New status",
    )

    at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="Transition time",
    )

    order: Mapped["Order"] = relationship("Order", back_populates="events")

    __table_args__ = (
        Index("ix_upfit_order_events_order_at", "order_id", "at"),
    )


class OrderNote(Base):
    """
    Free-text annotation on an order.

    Attributes:
        id: Note identifier
        order_id: Parent order
        text: Note body
        user: Author, "system" when unattributed
        at: Creation time
    """

    __tablename__ = "upfit_order_notes"

    id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        comment="Note identifier",
    )

    order_id: Mapped[str] = mapped_column(
        String(32),
        ForeignKey("upfit_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Parent order identifier",
    )

    text: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Note body",
    )

    user: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        default="system",
        comment="Note author",
    )

    at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="Creation time",
    )

    order: Mapped["Order"] = relationship("Order", back_populates="notes")


class SequenceCounter(Base):
    """
    Named monotonic counter.

    Attributes:
        name: Counter name, e.g. stock_sequence or vin_sequence
        value: Next value to hand out
    """

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(
        String(50),
        primary_key=True,
        comment="Counter name",
    )

    value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        comment="Next value to hand out",
    )
