"""
Tests for domain/scheduling/rules.py and policy.py

Booking window, caps, cancellation and rescheduling policy, status transitions.
"""

import unittest
from datetime import date, datetime, timedelta
from types import SimpleNamespace

from clinic_booking.domain.scheduling.availability import Slot
from clinic_booking.domain.scheduling.errors import RejectionKind
from clinic_booking.domain.scheduling.policy import BookingPolicy
from clinic_booking.domain.scheduling.rules import (
    validate_booking_request,
    validate_cancellation,
    validate_reschedule,
    validate_transition,
    within_booking_window,
)

NOW = datetime(2026, 3, 2, 8, 0)
TOMORROW = date(2026, 3, 3)
SLOT = Slot.from_times("09:00", "09:30")


def appointment(day=TOMORROW, start="09:00", status="PENDING", reschedule_count=0):
    return SimpleNamespace(
        date=day, start_time=start, status=status, reschedule_count=reschedule_count
    )


class TestBookingPolicy(unittest.TestCase):
    def test_defaults_without_rules(self):
        policy = BookingPolicy.from_rules(None)

        self.assertEqual(policy.min_advance_minutes, 60)
        self.assertEqual(policy.max_advance_minutes, 43200)
        self.assertTrue(policy.allow_cancellation)
        self.assertEqual(policy.cancellation_window_hours, 4)
        self.assertEqual(policy.max_reschedules, 2)
        self.assertIsNone(policy.hold_duration)

    def test_null_columns_keep_defaults(self):
        rules = SimpleNamespace(min_advance_minutes=None, max_bookings_per_day=20, allow_cancellation=False)

        policy = BookingPolicy.from_rules(rules)

        self.assertEqual(policy.min_advance_minutes, 60)
        self.assertEqual(policy.daily_cap, 20)
        self.assertFalse(policy.allow_cancellation)

    def test_zero_caps_mean_unlimited(self):
        policy = BookingPolicy(max_bookings_per_day=0, max_bookings_per_patient=0)

        self.assertIsNone(policy.daily_cap)
        self.assertIsNone(policy.patient_daily_cap)

    def test_hold_duration(self):
        self.assertEqual(BookingPolicy(pending_hold_minutes=15).hold_duration, timedelta(minutes=15))


class TestValidateBookingRequest(unittest.TestCase):
    def test_accepts_slot_inside_window(self):
        self.assertIsNone(validate_booking_request(BookingPolicy(), NOW, TOMORROW, SLOT, 0, 0))

    def test_past_slot(self):
        rejection = validate_booking_request(
            BookingPolicy(min_advance_minutes=0), NOW, date(2026, 3, 1), SLOT, 0
        )

        self.assertEqual(rejection.kind, RejectionKind.OUTSIDE_BOOKING_WINDOW)
        self.assertIn("past", rejection.message)

    def test_min_advance(self):
        now = datetime(2026, 3, 3, 8, 30)

        rejection = validate_booking_request(BookingPolicy(), now, TOMORROW, SLOT, 0)

        self.assertEqual(rejection.kind, RejectionKind.OUTSIDE_BOOKING_WINDOW)
        self.assertIn("60 minutes", rejection.message)

    def test_min_advance_boundary_is_inclusive(self):
        now = datetime(2026, 3, 3, 8, 0)

        self.assertIsNone(validate_booking_request(BookingPolicy(), now, TOMORROW, SLOT, 0))

    def test_max_advance(self):
        far = TOMORROW + timedelta(days=31)

        rejection = validate_booking_request(BookingPolicy(), NOW, far, SLOT, 0)

        self.assertEqual(rejection.kind, RejectionKind.OUTSIDE_BOOKING_WINDOW)
        self.assertIn("30 days", rejection.message)

    def test_daily_cap(self):
        policy = BookingPolicy(max_bookings_per_day=3)

        self.assertIsNone(validate_booking_request(policy, NOW, TOMORROW, SLOT, 2))
        self.assertEqual(
            validate_booking_request(policy, NOW, TOMORROW, SLOT, 3).kind,
            RejectionKind.DAILY_CAP_EXCEEDED,
        )

    def test_patient_cap(self):
        policy = BookingPolicy(max_bookings_per_patient=1)

        rejection = validate_booking_request(policy, NOW, TOMORROW, SLOT, 5, 1)

        self.assertEqual(rejection.kind, RejectionKind.PATIENT_DAILY_CAP_EXCEEDED)

    def test_window_checked_before_caps(self):
        policy = BookingPolicy(max_bookings_per_day=1)

        rejection = validate_booking_request(policy, NOW, date(2026, 3, 1), SLOT, 1)

        self.assertEqual(rejection.kind, RejectionKind.OUTSIDE_BOOKING_WINDOW)

    def test_within_booking_window(self):
        policy = BookingPolicy()

        self.assertTrue(within_booking_window(policy, NOW, NOW + timedelta(hours=1)))
        self.assertFalse(within_booking_window(policy, NOW, NOW + timedelta(minutes=59)))
        self.assertFalse(within_booking_window(policy, NOW, NOW + timedelta(days=31)))


class TestValidateCancellation(unittest.TestCase):
    def test_allowed_outside_window(self):
        self.assertIsNone(validate_cancellation(BookingPolicy(), appointment(), NOW))

    def test_window_passed(self):
        now = datetime(2026, 3, 3, 6, 0)  # three hours before

        rejection = validate_cancellation(BookingPolicy(), appointment(), now)

        self.assertEqual(rejection.kind, RejectionKind.CANCELLATION_WINDOW_PASSED)

    def test_window_boundary(self):
        now = datetime(2026, 3, 3, 5, 0)  # exactly four hours before

        self.assertIsNone(validate_cancellation(BookingPolicy(), appointment(), now))

    def test_not_allowed(self):
        rejection = validate_cancellation(BookingPolicy(allow_cancellation=False), appointment(), NOW)

        self.assertEqual(rejection.kind, RejectionKind.CANCELLATION_NOT_ALLOWED)

    def test_terminal(self):
        for status in ("CANCELLED", "COMPLETED"):
            rejection = validate_cancellation(BookingPolicy(), appointment(status=status), NOW)
            self.assertEqual(rejection.kind, RejectionKind.ALREADY_TERMINAL)

    def test_staff_skips_window(self):
        now = datetime(2026, 3, 3, 8, 45)
        policy = BookingPolicy(allow_cancellation=False)

        self.assertIsNone(validate_cancellation(policy, appointment(), now, enforce_window=False))


class TestValidateReschedule(unittest.TestCase):
    def test_allowed(self):
        self.assertIsNone(validate_reschedule(BookingPolicy(), appointment(), NOW))

    def test_limit_reached(self):
        rejection = validate_reschedule(BookingPolicy(), appointment(reschedule_count=2), NOW)

        self.assertEqual(rejection.kind, RejectionKind.RESCHEDULE_LIMIT_REACHED)

    def test_not_allowed(self):
        rejection = validate_reschedule(BookingPolicy(allow_rescheduling=False), appointment(), NOW)

        self.assertEqual(rejection.kind, RejectionKind.RESCHEDULING_NOT_ALLOWED)

    def test_window_passed(self):
        now = datetime(2026, 3, 3, 7, 0)

        rejection = validate_reschedule(BookingPolicy(), appointment(), now)

        self.assertEqual(rejection.kind, RejectionKind.RESCHEDULING_WINDOW_PASSED)


class TestValidateTransition(unittest.TestCase):
    def test_allowed_transitions(self):
        for current, new in (
            ("PENDING", "CONFIRMED"),
            ("PENDING", "CANCELLED"),
            ("CONFIRMED", "COMPLETED"),
            ("CONFIRMED", "CANCELLED"),
        ):
            self.assertIsNone(validate_transition(current, new), f"{current} -> {new}")

    def test_same_status(self):
        self.assertIsNone(validate_transition("CONFIRMED", "CONFIRMED"))

    def test_illegal(self):
        self.assertEqual(
            validate_transition("PENDING", "COMPLETED").kind, RejectionKind.ILLEGAL_TRANSITION
        )
        self.assertEqual(
            validate_transition("CONFIRMED", "PENDING").kind, RejectionKind.ILLEGAL_TRANSITION
        )

    def test_from_terminal(self):
        self.assertEqual(
            validate_transition("COMPLETED", "CANCELLED").kind, RejectionKind.ALREADY_TERMINAL
        )
        self.assertEqual(
            validate_transition("CANCELLED", "CONFIRMED").kind, RejectionKind.ALREADY_TERMINAL
        )
