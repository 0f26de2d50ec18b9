"""Rule enforcer - clinic policy checks for bookings, cancellations and status changes"""

from datetime import date, datetime, time
from typing import Optional

from ...models import AppointmentStatus
from .availability import Slot
from .errors import Rejection, RejectionKind
from .policy import BookingPolicy

TERMINAL_STATUSES = (AppointmentStatus.COMPLETED.value, AppointmentStatus.CANCELLED.value)

ALLOWED_TRANSITIONS = {
    AppointmentStatus.PENDING.value: {
        AppointmentStatus.CONFIRMED.value,
        AppointmentStatus.CANCELLED.value,
    },
    AppointmentStatus.CONFIRMED.value: {
        AppointmentStatus.COMPLETED.value,
        AppointmentStatus.CANCELLED.value,
    },
    AppointmentStatus.COMPLETED.value: set(),
    AppointmentStatus.CANCELLED.value: set(),
}


def within_booking_window(policy: BookingPolicy, now: datetime, starts_at: datetime) -> bool:
    return now + policy.min_advance <= starts_at <= now + policy.max_advance


def validate_booking_request(
    policy: BookingPolicy,
    now: datetime,
    day: date,
    slot: Slot,
    day_count: int,
    patient_day_count: Optional[int] = None,
) -> Optional[Rejection]:
    """
    Check a requested slot against the clinic's booking policy.

    Args:
        policy: Resolved clinic policy
        now: Current wall-clock time
        day: Requested appointment date
        slot: Requested slot
        day_count: Non-cancelled bookings already on ``day`` for the clinic
        patient_day_count: Non-cancelled bookings the patient already has on ``day``

    Returns:
        None when the request is acceptable, otherwise the Rejection
    """
    starts_at = slot.starts_on(day)

    if starts_at < now:
        return Rejection.of(RejectionKind.OUTSIDE_BOOKING_WINDOW, "Cannot book appointments in the past")

    if starts_at < now + policy.min_advance:
        return Rejection.of(
            RejectionKind.OUTSIDE_BOOKING_WINDOW,
            f"Appointments must be booked at least {policy.min_advance_minutes} minutes in advance",
        )

    if starts_at > now + policy.max_advance:
        return Rejection.of(
            RejectionKind.OUTSIDE_BOOKING_WINDOW,
            f"Appointments can be booked at most {policy.max_advance_minutes // 1440} days in advance",
        )

    if policy.daily_cap is not None and day_count >= policy.daily_cap:
        return Rejection.of(RejectionKind.DAILY_CAP_EXCEEDED)

    if (
        policy.patient_daily_cap is not None
        and patient_day_count is not None
        and patient_day_count >= policy.patient_daily_cap
    ):
        return Rejection.of(RejectionKind.PATIENT_DAILY_CAP_EXCEEDED)

    return None


def appointment_starts_at(appointment) -> datetime:
    hours, minutes = (int(part) for part in appointment.start_time.split(":"))
    return datetime.combine(appointment.date, time(hours, minutes))


def validate_cancellation(
    policy: BookingPolicy, appointment, now: datetime, enforce_window: bool = True
) -> Optional[Rejection]:
    """
    Patient cancellations honour the clinic's cancellation policy; staff
    cancellations pass ``enforce_window=False`` and only need a live booking.
    """
    if appointment.status in TERMINAL_STATUSES:
        return Rejection.of(RejectionKind.ALREADY_TERMINAL)

    if not enforce_window:
        return None

    if not policy.allow_cancellation:
        return Rejection.of(RejectionKind.CANCELLATION_NOT_ALLOWED)

    if appointment_starts_at(appointment) - now < policy.cancellation_window:
        return Rejection.of(
            RejectionKind.CANCELLATION_WINDOW_PASSED,
            f"Cancellations must be made at least {policy.cancellation_window_hours} hours before the appointment",
        )

    return None


def validate_reschedule(policy: BookingPolicy, appointment, now: datetime) -> Optional[Rejection]:
    if appointment.status in TERMINAL_STATUSES:
        return Rejection.of(RejectionKind.ALREADY_TERMINAL)

    if not policy.allow_rescheduling:
        return Rejection.of(RejectionKind.RESCHEDULING_NOT_ALLOWED)

    if (appointment.reschedule_count or 0) >= policy.max_reschedules:
        return Rejection.of(
            RejectionKind.RESCHEDULE_LIMIT_REACHED,
            f"Maximum reschedule limit ({policy.max_reschedules}) reached",
        )

    if appointment_starts_at(appointment) - now < policy.rescheduling_window:
        return Rejection.of(
            RejectionKind.RESCHEDULING_WINDOW_PASSED,
            f"Rescheduling must be done at least {policy.rescheduling_window_hours} hours before the appointment",
        )

    return None


def validate_transition(current: str, new: str) -> Optional[Rejection]:
    """Same-status updates are accepted (the caller treats them as no-ops)"""
    if current == new:
        return None

    if current in TERMINAL_STATUSES:
        return Rejection.of(RejectionKind.ALREADY_TERMINAL)

    if new not in ALLOWED_TRANSITIONS.get(current, set()):
        return Rejection.of(
            RejectionKind.ILLEGAL_TRANSITION, f"Cannot change status from {current} to {new}"
        )

    return None
