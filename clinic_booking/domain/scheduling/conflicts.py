"""Conflict checker - removes candidate slots that collide with live bookings"""

from datetime import datetime
from typing import Iterable, Optional

from ...models import AppointmentStatus
from ...shared.validators import time_to_minutes
from .availability import Slot

# Statuses that still occupy their time range
BLOCKING_STATUSES = (
    AppointmentStatus.PENDING.value,
    AppointmentStatus.CONFIRMED.value,
    AppointmentStatus.COMPLETED.value,
)


def hold_expired(appointment, now: Optional[datetime]) -> bool:
    """A PENDING hold lapses once its expiry instant has passed"""
    if appointment.status != AppointmentStatus.PENDING.value:
        return False
    if appointment.hold_expires_at is None or now is None:
        return False
    return appointment.hold_expires_at <= now


def is_blocking(appointment, now: Optional[datetime] = None) -> bool:
    if appointment.status not in BLOCKING_STATUSES:
        return False
    return not hold_expired(appointment, now)


def blocked_ranges(blocked_slots: Iterable) -> tuple[bool, list[tuple[int, int]]]:
    """
    Split a day's blocked slots into (whole_day_blocked, [(start, end), ...]).

    A block without both start and end time closes the whole day.
    """
    ranges = []
    for block in blocked_slots:
        if not block.start_time or not block.end_time:
            return True, []
        ranges.append((time_to_minutes(block.start_time), time_to_minutes(block.end_time)))
    return False, ranges


def busy_ranges(existing: Iterable, now: Optional[datetime] = None) -> list[tuple[int, int]]:
    return [
        (time_to_minutes(a.start_time), time_to_minutes(a.end_time))
        for a in existing
        if is_blocking(a, now)
    ]


def filter_available(
    candidates: Iterable[Slot],
    existing: Iterable,
    now: Optional[datetime] = None,
    blocked_slots: Iterable = (),
) -> list[Slot]:
    """
    Keep the candidates that overlap no blocking appointment or blocked range.

    ``existing`` must already be scoped to one clinic, date and practitioner.
    Overlap is half-open: a booking ending at 10:00 does not collide with a
    slot starting at 10:00. Cancelled bookings and lapsed PENDING holds do
    not block.
    """
    whole_day, ranges = blocked_ranges(blocked_slots)
    if whole_day:
        return []

    busy = busy_ranges(existing, now) + ranges
    return [slot for slot in candidates if not any(slot.overlaps(s, e) for s, e in busy)]
