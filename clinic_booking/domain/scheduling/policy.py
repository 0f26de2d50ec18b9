"""Clinic booking policy with defaults resolved once at load time"""

from dataclasses import dataclass, fields
from datetime import timedelta
from typing import Optional

from ...models import AppointmentRules


@dataclass(frozen=True)
class BookingPolicy:
    min_advance_minutes: int = 60
    max_advance_minutes: int = 43200  # 30 days
    max_bookings_per_day: Optional[int] = None  # None or 0: unlimited
    max_bookings_per_patient: Optional[int] = None
    allow_cancellation: bool = True
    cancellation_window_hours: int = 4
    allow_rescheduling: bool = True
    rescheduling_window_hours: int = 4
    max_reschedules: int = 2
    require_payment: bool = False
    send_confirmation: bool = True
    send_reminder: bool = True
    pending_hold_minutes: Optional[int] = None  # None: PENDING holds never expire

    @classmethod
    def from_rules(cls, rules: Optional[AppointmentRules]) -> "BookingPolicy":
        """Build a policy from a stored rules row; null columns keep the defaults"""
        if rules is None:
            return cls()

        values = {}
        for f in fields(cls):
            value = getattr(rules, f.name, None)
            if value is not None:
                values[f.name] = value
        return cls(**values)

    @property
    def min_advance(self) -> timedelta:
        return timedelta(minutes=self.min_advance_minutes)

    @property
    def max_advance(self) -> timedelta:
        return timedelta(minutes=self.max_advance_minutes)

    @property
    def cancellation_window(self) -> timedelta:
        return timedelta(hours=self.cancellation_window_hours)

    @property
    def rescheduling_window(self) -> timedelta:
        return timedelta(hours=self.rescheduling_window_hours)

    @property
    def hold_duration(self) -> Optional[timedelta]:
        if not self.pending_hold_minutes:
            return None
        return timedelta(minutes=self.pending_hold_minutes)

    @property
    def daily_cap(self) -> Optional[int]:
        return self.max_bookings_per_day or None

    @property
    def patient_daily_cap(self) -> Optional[int]:
        return self.max_bookings_per_patient or None
