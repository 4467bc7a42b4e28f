"""
Tests for order status enums and flow transition rules.
"""

import pytest

from upfit_orders.services.orders.enums import (
    ORDER_FLOW,
    ORDER_STATUS_TRANSITIONS,
    DealerWebsiteStatus,
    InventoryStatus,
    OrderStatus,
    get_allowed_order_transitions,
    has_reached,
    next_stage,
    validate_order_status_transition,
)


# ============================================================================
# OrderStatus Tests
# ============================================================================


class TestOrderStatus:
    """Test OrderStatus parsing and properties."""

    @pytest.mark.parametrize(
        "raw",
        ["oem_allocated", "OEM_ALLOCATED", " Oem_Allocated "],
    )
    def test_from_string_is_case_insensitive(self, raw: str) -> None:
        assert OrderStatus.from_string(raw) == OrderStatus.OEM_ALLOCATED

    def test_from_string_rejects_unknown(self) -> None:
        with pytest.raises(ValueError, match="Invalid order status"):
            OrderStatus.from_string("SHIPPED")

    def test_flow_has_eight_stages_in_order(self) -> None:
        assert len(ORDER_FLOW) == 8
        assert ORDER_FLOW[0] == OrderStatus.CONFIG_RECEIVED
        assert ORDER_FLOW[-1] == OrderStatus.DELIVERED
        assert OrderStatus.CANCELED not in ORDER_FLOW

    def test_flow_index(self) -> None:
        assert OrderStatus.CONFIG_RECEIVED.flow_index == 0
        assert OrderStatus.OEM_IN_TRANSIT.flow_index == 3
        assert OrderStatus.CANCELED.flow_index == -1

    def test_labels(self) -> None:
        assert OrderStatus.CONFIG_RECEIVED.label == "Order Received"
        assert OrderStatus.UPFIT_IN_PROGRESS.label == "Upfit In Progress"
        assert OrderStatus.CANCELED.label == "Canceled"

    def test_only_canceled_is_terminal(self) -> None:
        assert OrderStatus.CANCELED.is_terminal()
        assert not OrderStatus.DELIVERED.is_terminal()


class TestSecondaryStatuses:
    """Test inventory and dealer website status parsing."""

    def test_inventory_status_is_case_insensitive(self) -> None:
        assert InventoryStatus.from_string("sold") == InventoryStatus.SOLD
        assert InventoryStatus.from_string("Stock") == InventoryStatus.STOCK

    @pytest.mark.parametrize("raw", ["", None, "RESERVED"])
    def test_inventory_status_rejects_unknown(self, raw) -> None:
        with pytest.raises(ValueError):
            InventoryStatus.from_string(raw)

    def test_dealer_website_status_is_exact(self) -> None:
        assert DealerWebsiteStatus.from_string("PUBLISHED") == DealerWebsiteStatus.PUBLISHED
        with pytest.raises(ValueError):
            DealerWebsiteStatus.from_string("published")


# ============================================================================
# Transition Rule Tests
# ============================================================================


class TestTransitionRules:
    """Test the flow transition table."""

    @pytest.mark.parametrize("index", range(len(ORDER_FLOW) - 1))
    def test_each_stage_allows_its_successor(self, index: int) -> None:
        assert validate_order_status_transition(ORDER_FLOW[index], ORDER_FLOW[index + 1])

    @pytest.mark.parametrize("stage", ORDER_FLOW)
    def test_every_stage_can_be_canceled(self, stage: OrderStatus) -> None:
        assert validate_order_status_transition(stage, OrderStatus.CANCELED)

    def test_skipping_a_stage_is_rejected(self) -> None:
        assert not validate_order_status_transition(
            OrderStatus.CONFIG_RECEIVED, OrderStatus.OEM_PRODUCTION
        )

    def test_moving_backwards_is_rejected(self) -> None:
        assert not validate_order_status_transition(
            OrderStatus.AT_UPFITTER, OrderStatus.OEM_IN_TRANSIT
        )

    def test_same_status_is_rejected(self) -> None:
        assert not validate_order_status_transition(
            OrderStatus.AT_UPFITTER, OrderStatus.AT_UPFITTER
        )

    @pytest.mark.parametrize("target", list(OrderStatus))
    def test_canceled_is_absorbing(self, target: OrderStatus) -> None:
        assert not validate_order_status_transition(OrderStatus.CANCELED, target)

    def test_delivered_only_allows_cancel(self) -> None:
        assert get_allowed_order_transitions(OrderStatus.DELIVERED) == {OrderStatus.CANCELED}

    def test_allowed_transitions_returns_copy(self) -> None:
        allowed = get_allowed_order_transitions(OrderStatus.CONFIG_RECEIVED)
        allowed.add(OrderStatus.DELIVERED)
        assert OrderStatus.DELIVERED not in ORDER_STATUS_TRANSITIONS[OrderStatus.CONFIG_RECEIVED]

    def test_next_stage(self) -> None:
        assert next_stage(OrderStatus.CONFIG_RECEIVED) == OrderStatus.OEM_ALLOCATED
        assert next_stage(OrderStatus.DELIVERED) is None
        assert next_stage(OrderStatus.CANCELED) is None

    def test_has_reached(self) -> None:
        assert has_reached(OrderStatus.OEM_ALLOCATED, OrderStatus.OEM_ALLOCATED)
        assert has_reached(OrderStatus.DELIVERED, OrderStatus.OEM_ALLOCATED)
        assert not has_reached(OrderStatus.CONFIG_RECEIVED, OrderStatus.OEM_ALLOCATED)
        assert not has_reached(OrderStatus.CANCELED, OrderStatus.CONFIG_RECEIVED)
