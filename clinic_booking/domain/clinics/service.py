"""Clinic configuration service - business rules for availability, types, rules and blocks"""

import logging
from collections import defaultdict
from dataclasses import asdict
from datetime import date
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import Availability, BlockedSlot, ConsultationType
from ...shared.validators import time_to_minutes
from ..scheduling.policy import BookingPolicy
from .repository import ClinicConfigRepository
from .schemas import (
    AvailabilityWindowInput,
    BlockedSlotCreate,
    ConsultationTypeCreate,
    ConsultationTypeUpdate,
    RulesUpdate,
)

logger = logging.getLogger(__name__)

# RulesUpdate field -> AppointmentRules column
RULE_FIELDS = {
    "minAdvanceMinutes": "min_advance_minutes",
    "maxAdvanceMinutes": "max_advance_minutes",
    "maxBookingsPerDay": "max_bookings_per_day",
    "maxBookingsPerPatient": "max_bookings_per_patient",
    "allowCancellation": "allow_cancellation",
    "cancellationWindowHours": "cancellation_window_hours",
    "allowRescheduling": "allow_rescheduling",
    "reschedulingWindowHours": "rescheduling_window_hours",
    "maxReschedules": "max_reschedules",
    "requirePayment": "require_payment",
    "sendConfirmation": "send_confirmation",
    "sendReminder": "send_reminder",
    "pendingHoldMinutes": "pending_hold_minutes",
}


def find_overlap(windows) -> Optional[tuple]:
    """First pair of active windows on the same weekday whose ranges intersect"""
    by_day = defaultdict(list)
    for w in windows:
        if w["is_active"]:
            by_day[w["day_of_week"]].append(
                (time_to_minutes(w["start_time"]), time_to_minutes(w["end_time"]), w)
            )

    for ranges in by_day.values():
        ranges.sort(key=lambda r: r[0])
        for (_, prev_end, prev), (start, _, current) in zip(ranges, ranges[1:]):
            if start < prev_end:
                return prev, current
    return None


def _window_values(data: AvailabilityWindowInput) -> dict:
    return {
        "day_of_week": data.dayOfWeek,
        "start_time": data.startTime,
        "end_time": data.endTime,
        "is_active": data.isActive,
    }


class ClinicConfigService:
    """Service layer for clinic configuration managed by staff"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ClinicConfigRepository()

    # ------------------------------------------------------------------
    # Availability windows
    # ------------------------------------------------------------------

    def get_windows(self, clinic_id: int) -> list[Availability]:
        return self.repo.get_windows(self.db, clinic_id)

    def replace_windows(
        self, clinic_id: int, windows: list[AvailabilityWindowInput]
    ) -> list[Availability]:
        values = [_window_values(w) for w in windows]
        self._reject_overlap(values)
        logger.info(f"🗓️ Replacing availability for clinic {clinic_id}: {len(values)} windows")
        return self.repo.replace_windows(self.db, clinic_id, values)

    def add_window(self, clinic_id: int, window: AvailabilityWindowInput) -> Availability:
        existing = [
            {
                "day_of_week": w.day_of_week,
                "start_time": w.start_time,
                "end_time": w.end_time,
                "is_active": w.is_active,
            }
            for w in self.repo.get_windows(self.db, clinic_id)
        ]
        values = _window_values(window)
        self._reject_overlap(existing + [values])
        return self.repo.add_window(self.db, clinic_id, **values)

    def delete_window(self, clinic_id: int, window_id: int) -> dict:
        window = self.repo.get_window(self.db, clinic_id, window_id)
        if not window:
            raise HTTPException(status_code=404, detail="Availability window not found")
        self.repo.delete(self.db, window)
        return {"message": "Availability window deleted"}

    @staticmethod
    def _reject_overlap(windows: list[dict]) -> None:
        overlap = find_overlap(windows)
        if overlap:
            first, second = overlap
            raise HTTPException(
                status_code=422,
                detail=(
                    f"Availability windows overlap on day {first['day_of_week']}: "
                    f"{first['start_time']}-{first['end_time']} and "
                    f"{second['start_time']}-{second['end_time']}"
                ),
            )

    # ------------------------------------------------------------------
    # Consultation types
    # ------------------------------------------------------------------

    def get_consultation_types(self, clinic_id: int) -> list[ConsultationType]:
        return self.repo.get_consultation_types(self.db, clinic_id)

    def create_consultation_type(
        self, clinic_id: int, data: ConsultationTypeCreate
    ) -> ConsultationType:
        logger.info(f"📥 Creating consultation type '{data.name}' for clinic {clinic_id}")
        return self.repo.create_consultation_type(
            self.db,
            clinic_id,
            name=data.name,
            description=data.description,
            duration=data.duration,
            fee=data.fee,
        )

    def _get_consultation_type(self, clinic_id: int, consultation_type_id: int) -> ConsultationType:
        row = self.repo.get_consultation_type(self.db, clinic_id, consultation_type_id)
        if not row:
            raise HTTPException(status_code=404, detail="Consultation type not found")
        return row

    def update_consultation_type(
        self, clinic_id: int, consultation_type_id: int, data: ConsultationTypeUpdate
    ) -> ConsultationType:
        row = self._get_consultation_type(clinic_id, consultation_type_id)
        return self.repo.update(
            self.db,
            row,
            name=data.name,
            description=data.description,
            duration=data.duration,
            fee=data.fee,
            is_active=data.isActive,
        )

    def deactivate_consultation_type(self, clinic_id: int, consultation_type_id: int) -> dict:
        """Existing appointments keep referencing the type, so it is never deleted"""
        row = self._get_consultation_type(clinic_id, consultation_type_id)
        self.repo.update(self.db, row, is_active=False)
        return {"message": "Consultation type deactivated"}

    # ------------------------------------------------------------------
    # Booking rules
    # ------------------------------------------------------------------

    def get_policy(self, clinic_id: int) -> BookingPolicy:
        return BookingPolicy.from_rules(self.repo.get_rules(self.db, clinic_id))

    def update_rules(self, clinic_id: int, data: RulesUpdate) -> BookingPolicy:
        updates = {
            column: getattr(data, field)
            for field, column in RULE_FIELDS.items()
            if field in data.model_fields_set
        }

        current = self.get_policy(clinic_id)
        merged = {**asdict(current), **{k: v for k, v in updates.items() if v is not None}}
        if merged["min_advance_minutes"] >= merged["max_advance_minutes"]:
            raise HTTPException(
                status_code=422,
                detail="Minimum advance booking must be less than maximum advance booking",
            )

        logger.info(f"⚙️ Updating booking rules for clinic {clinic_id}: {sorted(updates)}")
        return BookingPolicy.from_rules(self.repo.upsert_rules(self.db, clinic_id, **updates))

    # ------------------------------------------------------------------
    # Blocked slots
    # ------------------------------------------------------------------

    def get_blocked_slots(
        self, clinic_id: int, start: Optional[date] = None, end: Optional[date] = None
    ) -> list[BlockedSlot]:
        return self.repo.get_blocked_slots(self.db, clinic_id, start, end)

    def add_blocked_slot(self, clinic_id: int, data: BlockedSlotCreate) -> BlockedSlot:
        logger.info(
            f"⛔ Blocking {data.date} {data.startTime or 'all day'}-{data.endTime or ''} for clinic {clinic_id}"
        )
        return self.repo.add_blocked_slot(
            self.db,
            clinic_id,
            date=data.day,
            start_time=data.startTime,
            end_time=data.endTime,
            reason=data.reason,
        )

    def delete_blocked_slot(self, clinic_id: int, blocked_id: int) -> dict:
        row = self.repo.get_blocked_slot(self.db, clinic_id, blocked_id)
        if not row:
            raise HTTPException(status_code=404, detail="Blocked slot not found")
        self.repo.delete(self.db, row)
        return {"message": "Blocked slot removed"}
