"""
Tests for ETA sequencing and the business-date policy.
"""

import itertools
from datetime import datetime, timedelta, timezone

import pytest

from upfit_orders.services.orders.enums import OrderStatus
from upfit_orders.services.orders.eta_policy import (
    EtaGaps,
    EtaSchedule,
    enforce_eta_policy,
    ensure_sequential_etas,
    resequence_from_oem,
    to_utc,
)


def utc(year: int, month: int, day: int) -> datetime:
    return datetime(year, month, day, tzinfo=timezone.utc)


CREATED = utc(2025, 1, 1)
NOW = utc(2025, 1, 1)


# ============================================================================
# Date Coercion Tests
# ============================================================================


class TestToUtc:
    """Test datetime coercion."""

    def test_naive_datetime_is_taken_as_utc(self) -> None:
        assert to_utc(datetime(2025, 1, 1, 12)) == utc(2025, 1, 1) + timedelta(hours=12)
        assert to_utc(datetime(2025, 1, 1)).tzinfo is not None

    def test_iso_string_with_z_suffix(self) -> None:
        assert to_utc("2025-01-01T00:00:00Z") == utc(2025, 1, 1)

    def test_offset_is_normalized(self) -> None:
        parsed = to_utc("2025-01-01T02:00:00+02:00")
        assert parsed == utc(2025, 1, 1)
        assert parsed.utcoffset() == timedelta(0)

    @pytest.mark.parametrize("value", [None, ""])
    def test_empty_values_become_none(self, value) -> None:
        assert to_utc(value) is None


# ============================================================================
# Sequencing Tests
# ============================================================================


class TestEnsureSequentialEtas:
    """Test anchor-and-fill sequencing."""

    def test_nothing_known_stays_empty(self) -> None:
        assert ensure_sequential_etas(EtaSchedule()) == EtaSchedule()

    def test_oem_only_fills_forward(self) -> None:
        result = ensure_sequential_etas(EtaSchedule(oem_eta=utc(2025, 2, 1)))

        assert result == EtaSchedule(utc(2025, 2, 1), utc(2025, 2, 11), utc(2025, 2, 26))

    def test_delivery_only_fills_backward(self) -> None:
        result = ensure_sequential_etas(EtaSchedule(delivery_eta=utc(2025, 3, 1)))

        assert result == EtaSchedule(utc(2025, 2, 4), utc(2025, 2, 14), utc(2025, 3, 1))

    def test_upfit_only_fills_both_ways(self) -> None:
        result = ensure_sequential_etas(EtaSchedule(upfitter_eta=utc(2025, 2, 10)))

        assert result == EtaSchedule(utc(2025, 1, 31), utc(2025, 2, 10), utc(2025, 2, 25))

    def test_delivery_anchor_clamps_later_upfit(self) -> None:
        result = ensure_sequential_etas(
            EtaSchedule(upfitter_eta=utc(2025, 3, 10), delivery_eta=utc(2025, 3, 1))
        )

        assert result.upfitter_eta == utc(2025, 2, 14)
        assert result.oem_eta == utc(2025, 2, 4)

    def test_upfit_anchor_clamps_later_oem(self) -> None:
        result = ensure_sequential_etas(
            EtaSchedule(oem_eta=utc(2025, 3, 1), upfitter_eta=utc(2025, 2, 10))
        )

        assert result.oem_eta == utc(2025, 1, 31)
        assert result.delivery_eta == utc(2025, 2, 25)

    def test_ordered_triple_is_untouched(self) -> None:
        schedule = EtaSchedule(utc(2025, 2, 1), utc(2025, 2, 5), utc(2025, 2, 6))

        assert ensure_sequential_etas(schedule) == schedule

    def test_custom_gaps(self) -> None:
        result = ensure_sequential_etas(
            EtaSchedule(oem_eta=utc(2025, 2, 1)),
            EtaGaps(oem_to_upfit_days=5, upfit_to_delivery_days=7),
        )

        assert result.upfitter_eta == utc(2025, 2, 6)
        assert result.delivery_eta == utc(2025, 2, 13)


class TestResequenceFromOem:
    """Test forward propagation from a fixed OEM date."""

    def test_pushes_earlier_dates_forward(self) -> None:
        result = resequence_from_oem(
            EtaSchedule(utc(2025, 3, 1), utc(2025, 2, 1), utc(2025, 2, 15))
        )

        assert result == EtaSchedule(utc(2025, 3, 1), utc(2025, 3, 11), utc(2025, 3, 26))

    def test_keeps_dates_still_in_order(self) -> None:
        schedule = EtaSchedule(utc(2025, 3, 1), utc(2025, 3, 2), utc(2025, 3, 3))

        assert resequence_from_oem(schedule) == schedule


# ============================================================================
# Policy Tests
# ============================================================================


class TestEnforceEtaPolicy:
    """Test business-date corrections on top of sequencing."""

    def test_oem_before_creation_is_moved_after_it(self) -> None:
        result = enforce_eta_policy(
            EtaSchedule(oem_eta=utc(2024, 12, 1)),
            created_at=CREATED,
            status=OrderStatus.CONFIG_RECEIVED,
            now=NOW,
        )

        assert result.oem_eta >= utc(2025, 1, 2)
        assert result.upfitter_eta == result.oem_eta + timedelta(days=10)
        assert result.delivery_eta == result.upfitter_eta + timedelta(days=15)

    def test_past_due_oem_rolls_forward_for_early_stages(self) -> None:
        now = utc(2025, 3, 1)
        result = enforce_eta_policy(
            EtaSchedule(utc(2025, 2, 1), utc(2025, 4, 1), utc(2025, 5, 1)),
            created_at=CREATED,
            status=OrderStatus.OEM_IN_TRANSIT,
            now=now,
        )

        assert result.oem_eta == utc(2025, 3, 3)
        assert result.upfitter_eta == utc(2025, 4, 1)
        assert result.delivery_eta == utc(2025, 5, 1)

    def test_roll_forward_repairs_ordering(self) -> None:
        now = utc(2025, 3, 1)
        result = enforce_eta_policy(
            EtaSchedule(utc(2025, 2, 1), utc(2025, 2, 10), utc(2025, 2, 20)),
            created_at=CREATED,
            status=OrderStatus.CONFIG_RECEIVED,
            now=now,
        )

        assert result == EtaSchedule(utc(2025, 3, 3), utc(2025, 3, 13), utc(2025, 3, 28))

    @pytest.mark.parametrize(
        "status",
        [OrderStatus.AT_UPFITTER, OrderStatus.DELIVERED, OrderStatus.CANCELED],
    )
    def test_past_due_oem_is_kept_for_later_stages(self, status: OrderStatus) -> None:
        schedule = EtaSchedule(utc(2024, 12, 1), utc(2024, 12, 15), utc(2025, 1, 10))

        result = enforce_eta_policy(
            schedule,
            created_at=utc(2024, 10, 1),
            status=status,
            now=NOW,
        )

        assert result == schedule

    def test_missing_status_counts_as_config_received(self) -> None:
        now = utc(2025, 3, 1)
        result = enforce_eta_policy(
            EtaSchedule(oem_eta=utc(2025, 2, 1)),
            created_at=CREATED,
            status=None,
            now=now,
        )

        assert result.oem_eta == utc(2025, 3, 3)

    def test_empty_schedule_stays_empty(self) -> None:
        result = enforce_eta_policy(
            EtaSchedule(), created_at=CREATED, status=OrderStatus.CONFIG_RECEIVED, now=NOW
        )

        assert result == EtaSchedule()

    def test_output_is_always_ordered(self) -> None:
        """Every partial input comes out ordered and after creation."""
        now = utc(2025, 2, 1)
        offsets = [None, -60, -5, 0, 7, 30]
        statuses = [
            None,
            OrderStatus.CONFIG_RECEIVED,
            OrderStatus.OEM_IN_TRANSIT,
            OrderStatus.AT_UPFITTER,
            OrderStatus.DELIVERED,
            OrderStatus.CANCELED,
        ]

        for oem, upfit, delivery in itertools.product(offsets, repeat=3):
            schedule = EtaSchedule(
                *(now + timedelta(days=d) if d is not None else None for d in (oem, upfit, delivery))
            )
            for status in statuses:
                result = enforce_eta_policy(schedule, CREATED, status, now=now)

                if schedule == EtaSchedule():
                    assert result == EtaSchedule()
                    continue
                assert None not in (result.oem_eta, result.upfitter_eta, result.delivery_eta)
                assert result.is_ordered()
                assert result.oem_eta >= CREATED
                if status is None or 0 <= status.flow_index <= 3:
                    assert result.oem_eta >= now
