"""ETA sequencing and business-date policy for order milestones.

Three milestone dates are tracked per order: OEM (chassis) arrival, arrival
at the upfitter and final delivery. This module keeps them ordered
(``oem_eta <= upfitter_eta <= delivery_eta``) and applies the business
rules on top of that ordering:

- the OEM ETA may not precede the order creation date;
- while the order is at or before ``OEM_IN_TRANSIT`` the OEM ETA may not be
  in the past.

Missing dates are filled from the nearest known neighbour using fixed gap
constants. The policy never raises for date values; it normalizes them.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Union

from upfit_orders.services.orders.enums import (
    EARLY_STAGE_LIMIT,
    OrderStatus,
)

Clock = Callable[[], datetime]
DateInput = Union[datetime, str, None]

OEM_AFTER_CREATION = timedelta(days=1)
PAST_DUE_ROLL_FORWARD = timedelta(days=2)


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def to_utc(value: DateInput) -> Optional[datetime]:
    """Coerce an ISO string or datetime to an aware UTC datetime.

    Naive datetimes are taken to be UTC. Empty values become None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class EtaGaps:
    """Default spacing between consecutive milestones."""

    oem_to_upfit_days: int = 10
    upfit_to_delivery_days: int = 15

    @property
    def oem_to_upfit(self) -> timedelta:
        return timedelta(days=self.oem_to_upfit_days)

    @property
    def upfit_to_delivery(self) -> timedelta:
        return timedelta(days=self.upfit_to_delivery_days)


DEFAULT_GAPS = EtaGaps()


@dataclass(frozen=True)
class EtaSchedule:
    """The three milestone dates of an order; any of them may be unknown."""

    oem_eta: Optional[datetime] = None
    upfitter_eta: Optional[datetime] = None
    delivery_eta: Optional[datetime] = None

    @classmethod
    def of(
        cls,
        oem_eta: DateInput = None,
        upfitter_eta: DateInput = None,
        delivery_eta: DateInput = None,
    ) -> "EtaSchedule":
        """Build a schedule from loosely typed inputs."""
        return cls(to_utc(oem_eta), to_utc(upfitter_eta), to_utc(delivery_eta))

    def is_ordered(self) -> bool:
        """True when the known dates respect oem <= upfitter <= delivery."""
        known = [
            d for d in (self.oem_eta, self.upfitter_eta, self.delivery_eta)
            if d is not None
        ]
        return all(a <= b for a, b in zip(known, known[1:]))


def ensure_sequential_etas(
    schedule: EtaSchedule,
    gaps: EtaGaps = DEFAULT_GAPS,
) -> EtaSchedule:
    """Fill and clamp milestone dates into non-decreasing order.

    Anchor priority is delivery, then upfitter, then OEM. Earlier milestones
    are pulled backward to fit the anchor; later ones are never pushed
    forward by this step.

    Args:
        schedule: Possibly partial milestone dates
        gaps: Gap constants used to fill and clamp

    Returns:
        Ordered schedule, all None when no date was known
    """
    oem, upfit, delivery = schedule.oem_eta, schedule.upfitter_eta, schedule.delivery_eta

    if delivery is not None:
        if upfit is None or upfit > delivery:
            upfit = delivery - gaps.upfit_to_delivery
        if oem is None or oem > upfit:
            oem = upfit - gaps.oem_to_upfit
    elif upfit is not None:
        if oem is None or oem > upfit:
            oem = upfit - gaps.oem_to_upfit
        delivery = upfit + gaps.upfit_to_delivery
    elif oem is not None:
        upfit = oem + gaps.oem_to_upfit
        delivery = upfit + gaps.upfit_to_delivery

    return EtaSchedule(oem, upfit, delivery)


def resequence_from_oem(
    schedule: EtaSchedule,
    gaps: EtaGaps = DEFAULT_GAPS,
) -> EtaSchedule:
    """Propagate a fixed OEM date forward through the later milestones.

    Later dates that already sit on or after their predecessor are kept.
    """
    oem, upfit, delivery = schedule.oem_eta, schedule.upfitter_eta, schedule.delivery_eta
    if oem is None:
        return schedule
    if upfit is None or upfit < oem:
        upfit = oem + gaps.oem_to_upfit
    if delivery is None or delivery < upfit:
        delivery = upfit + gaps.upfit_to_delivery
    return EtaSchedule(oem, upfit, delivery)


def _is_early_stage(status: Optional[OrderStatus]) -> bool:
    status = status or OrderStatus.CONFIG_RECEIVED
    index = status.flow_index
    return 0 <= index <= EARLY_STAGE_LIMIT.flow_index


def enforce_eta_policy(
    schedule: EtaSchedule,
    created_at: Optional[datetime],
    status: Optional[OrderStatus],
    now: Optional[datetime] = None,
    gaps: EtaGaps = DEFAULT_GAPS,
) -> EtaSchedule:
    """Sequence milestone dates and apply the business-date rules.

    Runs in two passes: sequencing first, then the OEM corrections, then a
    second sequencing anchored on the corrected OEM date. The corrections
    can break ordering the first pass established, so the second pass is
    what guarantees a consistent result.

    Args:
        schedule: Possibly partial milestone dates
        created_at: Order creation time
        status: Current order status
        now: Reference time, defaults to the current UTC time
        gaps: Gap constants used to fill and clamp

    Returns:
        Schedule satisfying ordering, OEM-after-creation and, for early
        stages, OEM-not-past-due
    """
    now = to_utc(now) or utcnow()
    created = to_utc(created_at)

    sequenced = ensure_sequential_etas(schedule, gaps)
    oem = sequenced.oem_eta
    if oem is None:
        return sequenced

    if created is not None and oem < created:
        oem = created + OEM_AFTER_CREATION
    if _is_early_stage(status) and oem < now:
        oem = now + PAST_DUE_ROLL_FORWARD

    return resequence_from_oem(replace(sequenced, oem_eta=oem), gaps)
