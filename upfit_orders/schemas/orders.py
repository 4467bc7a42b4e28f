"""
Order lifecycle Pydantic schemas for API request/response validation.

This module defines the request bodies accepted by the order endpoints and the
response shapes built from order, event and note records.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)

from upfit_orders.services.orders.enums import (
    DealerWebsiteStatus,
    InventoryStatus,
    OrderStatus,
)


class OrderCreateRequest(BaseModel):
    """
    Request schema for creating an order from a configurator build.

    Required fields are checked by the order service so that every missing
    field is reported at once; the schema only checks types.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    dealer_code: Optional[str] = Field(
        None,
        max_length=50,
        description="Ordering dealer code",
    )
    upfitter_id: Optional[str] = Field(
        None,
        max_length=50,
        description="Upfitter identifier, defaults to build.upfitter.id",
    )
    build: Optional[dict[str, Any]] = Field(
        None,
        description="Configuration snapshot: chassis, body_type, manufacturer, upfitter",
    )
    pricing: Optional[dict[str, Any]] = Field(
        None,
        description="Pricing snapshot",
    )
    inventory_status: Optional[str] = Field(
        None,
        description="STOCK or SOLD, defaults to STOCK",
    )
    is_stock: Optional[bool] = Field(
        None,
        description="Shorthand for inventory_status",
    )
    buyer_name: Optional[str] = Field(
        None,
        max_length=255,
        description="Buyer of a sold unit",
    )
    oem_eta: Optional[datetime] = None
    upfitter_eta: Optional[datetime] = None
    delivery_eta: Optional[datetime] = None


class OrderCreatedResponse(BaseModel):
    """Response for a created order."""

    id: str


class OrderResponse(BaseModel):
    """Complete order response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    dealer_code: str
    upfitter_id: Optional[str] = None
    status: OrderStatus
    oem_eta: Optional[datetime] = None
    upfitter_eta: Optional[datetime] = None
    delivery_eta: Optional[datetime] = None
    original_delivery_eta: Optional[datetime] = None
    build: dict[str, Any] = Field(default_factory=dict)
    pricing: Optional[dict[str, Any]] = None
    inventory_status: InventoryStatus
    is_stock: bool
    buyer_name: str = ""
    dealer_website_status: DealerWebsiteStatus
    listing_status: Optional[str] = None
    stock_number: str
    vin: str = ""
    created_at: datetime
    updated_at: datetime

    @computed_field
    @property
    def status_label(self) -> str:
        """Human-readable status."""
        return self.status.label


class OrderEventResponse(BaseModel):
    """Status transition audit entry."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    order_id: str
    from_status: str
    to_status: str
    at: datetime


class OrderDetailResponse(BaseModel):
    """Order with its status history."""

    order: OrderResponse
    events: list[OrderEventResponse]


class OrderEnvelopeResponse(BaseModel):
    """Single updated order."""

    order: OrderResponse


class TransitionRequest(BaseModel):
    """Request schema for moving an order along the flow."""

    target_status: str = Field(
        ...,
        min_length=1,
        description="Target status, case-insensitive",
    )


class StatusResponse(BaseModel):
    """Status after a transition."""

    status: OrderStatus


class EtaUpdateRequest(BaseModel):
    """Request schema for editing milestone dates; omitted dates are kept."""

    oem_eta: Optional[datetime] = None
    upfitter_eta: Optional[datetime] = None
    delivery_eta: Optional[datetime] = None

    @model_validator(mode="after")
    def validate_eta_update(self) -> "EtaUpdateRequest":
        """Ensure at least one date is provided."""
        if not any([self.oem_eta, self.upfitter_eta, self.delivery_eta]):
            raise ValueError("At least one ETA must be provided for update")
        return self


class InventoryStatusRequest(BaseModel):
    """Request schema for marking a unit STOCK or SOLD."""

    model_config = ConfigDict(str_strip_whitespace=True)

    status: str = Field(..., description="STOCK or SOLD, case-insensitive")
    buyer_name: Optional[str] = Field(
        None,
        max_length=255,
        description="Buyer name for SOLD units",
    )


class InventoryStatusResponse(BaseModel):
    """Inventory state after an update."""

    inventory_status: InventoryStatus
    is_stock: bool
    buyer_name: str


class DealerWebsiteStatusRequest(BaseModel):
    """Request schema for the dealer website listing state."""

    status: str = Field(..., description="DRAFT, PUBLISHED or UNPUBLISHED")


class PublishResponse(BaseModel):
    """Published order and the channel it was listed on."""

    order: OrderResponse
    channel: str


class NoteCreateRequest(BaseModel):
    """Request schema for annotating an order."""

    model_config = ConfigDict(str_strip_whitespace=True)

    text: str = Field(..., min_length=1, max_length=2000, description="Note body")
    user: Optional[str] = Field(None, max_length=255, description="Note author")


class NoteResponse(BaseModel):
    """Order note."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    order_id: str
    text: str
    user: str
    at: datetime


class NoteEnvelopeResponse(BaseModel):
    """Single created note."""

    note: NoteResponse


class DeleteOrdersRequest(BaseModel):
    """Request schema for deleting orders."""

    ids: list[str] = Field(..., description="Order ids; unknown ids are ignored")

    @field_validator("ids", mode="before")
    @classmethod
    def wrap_single_id(cls, v):
        """Accept a single id as well as a list."""
        if isinstance(v, str):
            return [v]
        return v


class DeleteOrdersResponse(BaseModel):
    """Number of orders removed."""

    deleted_count: int


class ErrorResponse(BaseModel):
    """Error body returned by the order endpoints."""

    error: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)
