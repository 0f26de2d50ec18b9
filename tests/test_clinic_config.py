"""
Tests for ClinicConfigService - weekly schedule, consultation types, rules, blocked slots
"""

from decimal import Decimal

from fastapi import HTTPException
from pydantic import ValidationError

from clinic_booking.domain.clinics.schemas import (
    AvailabilityWindowInput,
    BlockedSlotCreate,
    ConsultationTypeCreate,
    ConsultationTypeUpdate,
    RulesUpdate,
)
from clinic_booking.domain.clinics.service import ClinicConfigService, find_overlap
from clinic_booking.domain.scheduling.errors import RejectionKind

from .support import TOMORROW, DatabaseTestCase


def window(day=1, start="09:00", end="12:00", active=True):
    return AvailabilityWindowInput(dayOfWeek=day, startTime=start, endTime=end, isActive=active)


class TestAvailabilityWindows(DatabaseTestCase):
    def setUp(self):
        super().setUp()
        self.clinic = self.make_clinic()
        self.config = ClinicConfigService(self.db)

    def test_replace_windows(self):
        self.config.add_window(self.clinic.id, window(day=0))

        rows = self.config.replace_windows(
            self.clinic.id, [window(day=2, start="14:00", end="17:00"), window(day=2)]
        )

        self.assertEqual(
            [(w.day_of_week, w.start_time, w.end_time) for w in rows],
            [(2, "09:00", "12:00"), (2, "14:00", "17:00")],
        )

    def test_overlapping_windows_rejected(self):
        with self.assertRaises(HTTPException) as ctx:
            self.config.replace_windows(
                self.clinic.id, [window(start="09:00", end="12:00"), window(start="11:00", end="13:00")]
            )

        self.assertEqual(ctx.exception.status_code, 422)
        self.assertEqual(self.config.get_windows(self.clinic.id), [])

    def test_add_window_checks_existing(self):
        self.config.add_window(self.clinic.id, window())

        with self.assertRaises(HTTPException):
            self.config.add_window(self.clinic.id, window(start="11:30", end="13:00"))

    def test_back_to_back_windows_allowed(self):
        self.config.add_window(self.clinic.id, window(start="09:00", end="12:00"))
        self.config.add_window(self.clinic.id, window(start="12:00", end="14:00"))

        self.assertEqual(len(self.config.get_windows(self.clinic.id)), 2)

    def test_inactive_windows_may_overlap(self):
        self.assertIsNone(
            find_overlap(
                [
                    {"day_of_week": 1, "start_time": "09:00", "end_time": "12:00", "is_active": True},
                    {"day_of_week": 1, "start_time": "10:00", "end_time": "11:00", "is_active": False},
                ]
            )
        )

    def test_delete_window(self):
        row = self.config.add_window(self.clinic.id, window())

        self.config.delete_window(self.clinic.id, row.id)

        self.assertEqual(self.config.get_windows(self.clinic.id), [])

    def test_delete_other_clinics_window(self):
        other = self.make_clinic(slug="elsewhere")
        row = self.config.add_window(other.id, window())

        with self.assertRaises(HTTPException) as ctx:
            self.config.delete_window(self.clinic.id, row.id)

        self.assertEqual(ctx.exception.status_code, 404)

    def test_window_input_validation(self):
        with self.assertRaises(ValidationError):
            window(start="12:00", end="09:00")
        with self.assertRaises(ValidationError):
            window(day=7)
        with self.assertRaises(ValidationError):
            window(start="9:00")


class TestConsultationTypes(DatabaseTestCase):
    def setUp(self):
        super().setUp()
        self.standard_clinic()
        self.config = ClinicConfigService(self.db)

    def test_create_and_update(self):
        created = self.config.create_consultation_type(
            self.clinic.id, ConsultationTypeCreate(name="Follow-up", duration=15, fee=Decimal("250"))
        )

        updated = self.config.update_consultation_type(
            self.clinic.id, created.id, ConsultationTypeUpdate(fee=Decimal("300.00"))
        )

        self.assertEqual((updated.name, updated.duration, updated.fee), ("Follow-up", 15, Decimal("300.00")))

    def test_deactivated_type_cannot_be_booked(self):
        self.config.deactivate_consultation_type(self.clinic.id, self.ct.id)

        self.assertEqual(self.book().kind, RejectionKind.CONSULTATION_TYPE_NOT_FOUND)
        self.assertEqual(len(self.config.get_consultation_types(self.clinic.id)), 1)

    def test_unknown_type(self):
        with self.assertRaises(HTTPException) as ctx:
            self.config.update_consultation_type(self.clinic.id, 999, ConsultationTypeUpdate(name="X"))

        self.assertEqual(ctx.exception.status_code, 404)

    def test_duration_must_be_positive(self):
        with self.assertRaises(ValidationError):
            ConsultationTypeCreate(name="Zero", duration=0)


class TestRules(DatabaseTestCase):
    def setUp(self):
        super().setUp()
        self.standard_clinic()
        self.config = ClinicConfigService(self.db)

    def test_defaults_without_row(self):
        policy = self.config.get_policy(self.clinic.id)

        self.assertEqual((policy.min_advance_minutes, policy.max_advance_minutes), (60, 43200))

    def test_partial_update_keeps_other_fields(self):
        self.config.update_rules(self.clinic.id, RulesUpdate(maxBookingsPerDay=10))

        policy = self.config.update_rules(self.clinic.id, RulesUpdate(cancellationWindowHours=24))

        self.assertEqual(policy.max_bookings_per_day, 10)
        self.assertEqual(policy.cancellation_window_hours, 24)

    def test_explicit_null_restores_default(self):
        self.config.update_rules(self.clinic.id, RulesUpdate(minAdvanceMinutes=120))

        policy = self.config.update_rules(
            self.clinic.id, RulesUpdate.model_validate({"minAdvanceMinutes": None})
        )

        self.assertEqual(policy.min_advance_minutes, 60)

    def test_min_must_stay_below_max(self):
        self.config.update_rules(self.clinic.id, RulesUpdate(maxAdvanceMinutes=1440))

        with self.assertRaises(HTTPException) as ctx:
            self.config.update_rules(self.clinic.id, RulesUpdate(minAdvanceMinutes=1440))

        self.assertEqual(ctx.exception.status_code, 422)

    def test_rules_apply_to_booking(self):
        self.config.update_rules(self.clinic.id, RulesUpdate(minAdvanceMinutes=2880))

        self.assertEqual(self.book().kind, RejectionKind.OUTSIDE_BOOKING_WINDOW)


class TestBlockedSlots(DatabaseTestCase):
    def setUp(self):
        super().setUp()
        self.standard_clinic()
        self.config = ClinicConfigService(self.db)

    def test_whole_day_block(self):
        self.config.add_blocked_slot(
            self.clinic.id, BlockedSlotCreate(date=TOMORROW.isoformat(), reason="Conference")
        )

        self.assertEqual(self.book().kind, RejectionKind.DAY_CLOSED)

    def test_remove_block_reopens_day(self):
        row = self.config.add_blocked_slot(self.clinic.id, BlockedSlotCreate(date=TOMORROW.isoformat()))

        self.config.delete_blocked_slot(self.clinic.id, row.id)

        self.assertEqual(self.book().status, "PENDING")

    def test_list_by_range(self):
        self.config.add_blocked_slot(
            self.clinic.id,
            BlockedSlotCreate(date=TOMORROW.isoformat(), startTime="09:00", endTime="10:00"),
        )

        self.assertEqual(len(self.config.get_blocked_slots(self.clinic.id, TOMORROW, TOMORROW)), 1)
        self.assertEqual(self.config.get_blocked_slots(self.clinic.id, end=TOMORROW.replace(day=1)), [])

    def test_half_open_range_rejected(self):
        with self.assertRaises(ValidationError):
            BlockedSlotCreate(date=TOMORROW.isoformat(), startTime="09:00")
