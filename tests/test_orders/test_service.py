"""
Test suite for OrderService.

Tests cover creation payload validation, status parsing, the stock-only
publish rule, note handling and the shape of returned results.
"""

from datetime import timedelta
from typing import Any

import pytest

from upfit_orders.core.config import Settings
from upfit_orders.services.orders.enums import (
    DealerWebsiteStatus,
    InventoryStatus,
    OrderStatus,
)
from upfit_orders.services.orders.errors import (
    InvalidArgumentError,
    InvalidTransitionError,
    OrderNotFoundError,
    OrderValidationError,
)
from upfit_orders.services.orders.repository import InMemoryOrderRepository
from upfit_orders.services.orders.service import (
    LISTING_CHANNEL,
    OrderService,
    build_order_service,
    find_missing_fields,
)


# ============================================================================
# Validation Tests
# ============================================================================


class TestFindMissingFields:
    """Test creation payload validation."""

    def test_complete_payload_has_no_missing_fields(
        self, order_payload: dict[str, Any]
    ) -> None:
        assert find_missing_fields(order_payload) == []

    def test_empty_payload_lists_everything(self) -> None:
        assert find_missing_fields({}) == [
            "dealer_code",
            "build",
            "build.chassis.series",
            "build.body_type",
            "build.manufacturer",
            "pricing",
        ]

    def test_blank_strings_count_as_missing(self, order_payload: dict[str, Any]) -> None:
        payload = {
            **order_payload,
            "dealer_code": "  ",
            "build": {**order_payload["build"], "manufacturer": ""},
        }

        assert find_missing_fields(payload) == ["dealer_code", "build.manufacturer"]

    def test_missing_chassis_series(self, order_payload: dict[str, Any]) -> None:
        payload = {**order_payload, "build": {**order_payload["build"], "chassis": {}}}

        assert find_missing_fields(payload) == ["build.chassis.series"]


class TestCreateOrder:
    """Test order creation through the service."""

    @pytest.mark.asyncio
    async def test_returns_new_id(
        self, service: OrderService, order_payload: dict[str, Any]
    ) -> None:
        result = await service.create_order(order_payload)

        assert set(result) == {"id"}
        assert result["id"].startswith("ORD-")

    @pytest.mark.asyncio
    async def test_missing_fields_are_all_reported(self, service: OrderService) -> None:
        with pytest.raises(OrderValidationError) as exc_info:
            await service.create_order({"dealer_code": "CVC101"})

        error = exc_info.value
        assert error.missing_fields == [
            "build",
            "build.chassis.series",
            "build.body_type",
            "build.manufacturer",
            "pricing",
        ]
        assert error.context["missing_fields"] == error.missing_fields
        assert await service.list_orders() == []


# ============================================================================
# Lookup Tests
# ============================================================================


class TestGetOrder:
    """Test order detail lookup."""

    @pytest.mark.asyncio
    async def test_returns_order_with_events(
        self, service: OrderService, order_payload: dict[str, Any]
    ) -> None:
        order_id = (await service.create_order(order_payload))["id"]
        await service.transition_order(order_id, "oem_allocated")

        result = await service.get_order(order_id)

        assert result["order"].id == order_id
        assert [e.to_status for e in result["events"]] == [
            "CONFIG_RECEIVED",
            "OEM_ALLOCATED",
        ]

    @pytest.mark.asyncio
    async def test_lookup_by_stock_number_returns_events_of_order(
        self, service: OrderService, order_payload: dict[str, Any]
    ) -> None:
        order_id = (await service.create_order(order_payload))["id"]

        result = await service.get_order("550101100")

        assert result["order"].id == order_id
        assert len(result["events"]) == 1

    @pytest.mark.asyncio
    async def test_unknown_order_raises(self, service: OrderService) -> None:
        with pytest.raises(OrderNotFoundError):
            await service.get_order("ORD-MISSING")


# ============================================================================
# Transition Tests
# ============================================================================


class TestTransitionOrder:
    """Test status transitions through the service."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("target", ["OEM_ALLOCATED", "oem_allocated", OrderStatus.OEM_ALLOCATED])
    async def test_accepts_any_case(
        self, service: OrderService, order_payload: dict[str, Any], target
    ) -> None:
        order_id = (await service.create_order(order_payload))["id"]

        result = await service.transition_order(order_id, target)

        assert result == {"status": OrderStatus.OEM_ALLOCATED}

    @pytest.mark.asyncio
    async def test_unknown_status_is_invalid_argument(
        self, service: OrderService, order_payload: dict[str, Any]
    ) -> None:
        order_id = (await service.create_order(order_payload))["id"]

        with pytest.raises(InvalidArgumentError) as exc_info:
            await service.transition_order(order_id, "SHIPPED")

        assert exc_info.value.context["status"] == "SHIPPED"

    @pytest.mark.asyncio
    async def test_skip_is_invalid_transition(
        self, service: OrderService, order_payload: dict[str, Any]
    ) -> None:
        order_id = (await service.create_order(order_payload))["id"]

        with pytest.raises(InvalidTransitionError):
            await service.transition_order(order_id, "DELIVERED")

    @pytest.mark.asyncio
    async def test_cancel_then_nothing_else(
        self, service: OrderService, order_payload: dict[str, Any]
    ) -> None:
        order_id = (await service.create_order(order_payload))["id"]

        assert await service.cancel_order(order_id) == {"status": OrderStatus.CANCELED}
        with pytest.raises(InvalidTransitionError):
            await service.cancel_order(order_id)


# ============================================================================
# ETA and Inventory Tests
# ============================================================================


class TestEtasAndInventory:
    """Test ETA edits and inventory status through the service."""

    @pytest.mark.asyncio
    async def test_update_etas_returns_order(
        self, service: OrderService, order_payload: dict[str, Any], clock
    ) -> None:
        order_id = (await service.create_order(order_payload))["id"]

        result = await service.update_etas(
            order_id, {"oem_eta": (clock.now + timedelta(days=5)).isoformat()}
        )

        order = result["order"]
        assert order.oem_eta == clock.now + timedelta(days=5)
        assert order.upfitter_eta == clock.now + timedelta(days=15)
        assert order.delivery_eta == clock.now + timedelta(days=30)

    @pytest.mark.asyncio
    async def test_set_inventory_status_result(
        self, service: OrderService, order_payload: dict[str, Any]
    ) -> None:
        order_id = (await service.create_order(order_payload))["id"]

        result = await service.set_inventory_status(order_id, "sold", "Harbor Freightways")

        assert result == {
            "inventory_status": InventoryStatus.SOLD,
            "is_stock": False,
            "buyer_name": "Harbor Freightways",
        }

    @pytest.mark.asyncio
    async def test_invalid_inventory_status(
        self, service: OrderService, order_payload: dict[str, Any]
    ) -> None:
        order_id = (await service.create_order(order_payload))["id"]

        with pytest.raises(InvalidArgumentError):
            await service.set_inventory_status(order_id, "ON_HOLD")


# ============================================================================
# Dealer Website Tests
# ============================================================================


class TestDealerWebsite:
    """Test the stock-only publish rule."""

    @pytest.mark.asyncio
    async def test_publish_stock_unit(
        self, service: OrderService, order_payload: dict[str, Any]
    ) -> None:
        order_id = (await service.create_order(order_payload))["id"]

        result = await service.publish_listing(order_id)

        assert result["channel"] == LISTING_CHANNEL
        assert result["order"].dealer_website_status == DealerWebsiteStatus.PUBLISHED
        assert result["order"].listing_status == "PUBLISHED"

    @pytest.mark.asyncio
    async def test_publishing_sold_unit_is_rejected(
        self, service: OrderService, order_payload: dict[str, Any]
    ) -> None:
        order_id = (await service.create_order({**order_payload, "is_stock": False}))["id"]

        with pytest.raises(InvalidArgumentError):
            await service.set_dealer_website_status(order_id, "PUBLISHED")
        with pytest.raises(InvalidArgumentError):
            await service.publish_listing(order_id)

        order = (await service.get_order(order_id))["order"]
        assert order.dealer_website_status == DealerWebsiteStatus.DRAFT

    @pytest.mark.asyncio
    async def test_sold_unit_can_be_unpublished(
        self, service: OrderService, order_payload: dict[str, Any]
    ) -> None:
        order_id = (await service.create_order({**order_payload, "is_stock": False}))["id"]

        result = await service.set_dealer_website_status(order_id, "UNPUBLISHED")

        assert result["order"].dealer_website_status == DealerWebsiteStatus.UNPUBLISHED

    @pytest.mark.asyncio
    async def test_publish_unknown_order(self, service: OrderService) -> None:
        with pytest.raises(OrderNotFoundError):
            await service.publish_listing("ORD-MISSING")


# ============================================================================
# Notes and Delete Tests
# ============================================================================


class TestNotesAndDelete:
    """Test notes and bulk deletion through the service."""

    @pytest.mark.asyncio
    async def test_add_and_list_notes(
        self, service: OrderService, order_payload: dict[str, Any], clock
    ) -> None:
        order_id = (await service.create_order(order_payload))["id"]

        result = await service.add_note(order_id, "Customer wants ladder rack", "Sam")
        notes = await service.list_notes(order_id)

        assert result["note"].id.startswith(f"note_{order_id}_")
        assert result["note"].at == clock.now
        assert [n.text for n in notes] == ["Customer wants ladder rack"]

    @pytest.mark.asyncio
    async def test_note_on_unknown_order(self, service: OrderService) -> None:
        with pytest.raises(OrderNotFoundError):
            await service.add_note("ORD-MISSING", "Hello")
        with pytest.raises(OrderNotFoundError):
            await service.list_notes("ORD-MISSING")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["", "   "])
    async def test_empty_note_is_rejected(
        self, service: OrderService, order_payload: dict[str, Any], text: str
    ) -> None:
        order_id = (await service.create_order(order_payload))["id"]

        with pytest.raises(InvalidArgumentError):
            await service.add_note(order_id, text)

    @pytest.mark.asyncio
    async def test_delete_accepts_single_id(
        self, service: OrderService, order_payload: dict[str, Any]
    ) -> None:
        order_id = (await service.create_order(order_payload))["id"]

        assert await service.delete_orders(order_id) == {"deleted_count": 1}
        assert await service.delete_orders([order_id, "ORD-MISSING"]) == {"deleted_count": 0}


# ============================================================================
# Wiring Tests
# ============================================================================


@pytest.mark.asyncio
async def test_build_order_service_uses_settings(order_payload: dict[str, Any], clock) -> None:
    settings = Settings(
        environment="test",
        eta_oem_to_upfit_days=3,
        eta_upfit_to_delivery_days=4,
        stock_sequence_start=500,
        vin_sequence_start=7,
    )
    service = build_order_service(InMemoryOrderRepository(), settings=settings, clock=clock)

    order_id = (await service.create_order(order_payload))["id"]
    await service.transition_order(order_id, "OEM_ALLOCATED")
    result = await service.update_etas(order_id, {"oem_eta": clock.now + timedelta(days=5)})

    order = result["order"]
    assert order.stock_number == "550101500"
    assert order.vin == "1FT5504CXSC000007"
    assert order.upfitter_eta == order.oem_eta + timedelta(days=3)
    assert order.delivery_eta == order.upfitter_eta + timedelta(days=4)
