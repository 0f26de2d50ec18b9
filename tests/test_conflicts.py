"""
Tests for domain/scheduling/conflicts.py

Overlap filtering against live bookings, lapsed holds and blocked ranges.
"""

import unittest
from datetime import datetime, timedelta
from types import SimpleNamespace

from clinic_booking.domain.scheduling.availability import Slot
from clinic_booking.domain.scheduling.conflicts import (
    blocked_ranges,
    filter_available,
    hold_expired,
    is_blocking,
)

NOW = datetime(2026, 3, 2, 8, 0)

GRID = [
    Slot.from_times("09:00", "09:30"),
    Slot.from_times("09:30", "10:00"),
    Slot.from_times("10:00", "10:30"),
]


def appointment(start, end, status="CONFIRMED", hold_expires_at=None):
    return SimpleNamespace(
        start_time=start, end_time=end, status=status, hold_expires_at=hold_expires_at
    )


def block(start=None, end=None):
    return SimpleNamespace(start_time=start, end_time=end)


def starts(slots):
    return [s.start_time for s in slots]


class TestFilterAvailable(unittest.TestCase):
    def test_no_bookings(self):
        self.assertEqual(filter_available(GRID, []), GRID)

    def test_exact_booking_removes_slot(self):
        free = filter_available(GRID, [appointment("09:30", "10:00")])

        self.assertEqual(starts(free), ["09:00", "10:00"])

    def test_adjacent_booking_does_not_conflict(self):
        free = filter_available(GRID, [appointment("08:30", "09:00"), appointment("10:30", "11:00")])

        self.assertEqual(free, GRID)

    def test_partial_overlap_blocks_both_neighbours(self):
        free = filter_available(GRID, [appointment("09:15", "09:45")])

        self.assertEqual(starts(free), ["10:00"])

    def test_cancelled_booking_frees_slot(self):
        free = filter_available(GRID, [appointment("09:00", "09:30", status="CANCELLED")])

        self.assertEqual(free, GRID)

    def test_pending_and_completed_block(self):
        existing = [
            appointment("09:00", "09:30", status="PENDING"),
            appointment("10:00", "10:30", status="COMPLETED"),
        ]

        self.assertEqual(starts(filter_available(GRID, existing)), ["09:30"])

    def test_lapsed_hold_does_not_block(self):
        lapsed = appointment("09:00", "09:30", status="PENDING", hold_expires_at=NOW - timedelta(minutes=1))

        self.assertEqual(filter_available(GRID, [lapsed], NOW), GRID)

    def test_live_hold_blocks(self):
        held = appointment("09:00", "09:30", status="PENDING", hold_expires_at=NOW + timedelta(minutes=10))

        self.assertEqual(starts(filter_available(GRID, [held], NOW)), ["09:30", "10:00"])

    def test_blocked_range(self):
        free = filter_available(GRID, [], blocked_slots=[block("09:45", "10:15")])

        self.assertEqual(starts(free), ["09:00"])

    def test_whole_day_block(self):
        self.assertEqual(filter_available(GRID, [], blocked_slots=[block()]), [])


class TestHelpers(unittest.TestCase):
    def test_blocked_ranges(self):
        self.assertEqual(
            blocked_ranges([block("09:00", "10:00"), block("13:00", "14:00")]),
            (False, [(540, 600), (780, 840)]),
        )
        self.assertEqual(blocked_ranges([block("09:00", "10:00"), block()]), (True, []))

    def test_hold_expired_only_for_pending(self):
        past = NOW - timedelta(minutes=5)

        self.assertTrue(hold_expired(appointment("09:00", "09:30", "PENDING", past), NOW))
        self.assertFalse(hold_expired(appointment("09:00", "09:30", "CONFIRMED", past), NOW))
        self.assertFalse(hold_expired(appointment("09:00", "09:30", "PENDING", None), NOW))
        self.assertFalse(hold_expired(appointment("09:00", "09:30", "PENDING", past), None))

    def test_is_blocking(self):
        self.assertTrue(is_blocking(appointment("09:00", "09:30", "CONFIRMED")))
        self.assertFalse(is_blocking(appointment("09:00", "09:30", "CANCELLED")))
