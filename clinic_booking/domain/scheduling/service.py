"""Booking service - availability, booking transaction and appointment lifecycle"""

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional, Union

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ...config import BOOKING_REF_MAX_ATTEMPTS
from ...models import (
    Appointment,
    AppointmentStatus,
    Clinic,
    ConsultationType,
    DoctorProfile,
    Payment,
    PaymentStatus,
)
from ...shared.clock import Clock, SystemClock
from .availability import Slot, find_slot, resolve_slots
from .conflicts import blocked_ranges, filter_available, hold_expired
from .errors import Rejection, RejectionKind, StorageFailure
from .events import AppointmentEvent, Notifier, NullNotifier
from .policy import BookingPolicy
from .refs import generate_booking_ref
from .repository import SchedulingRepository
from .rules import (
    TERMINAL_STATUSES,
    validate_booking_request,
    validate_cancellation,
    validate_reschedule,
    validate_transition,
    within_booking_window,
)

logger = logging.getLogger(__name__)

STATUS_EVENTS = {
    AppointmentStatus.CONFIRMED.value: AppointmentEvent.CONFIRMED,
    AppointmentStatus.COMPLETED.value: AppointmentEvent.COMPLETED,
    AppointmentStatus.CANCELLED.value: AppointmentEvent.CANCELLED,
}


@dataclass(frozen=True)
class PatientDetails:
    name: str
    phone: str  # E.164
    email: Optional[str] = None


@dataclass(frozen=True)
class BookingContext:
    clinic: Clinic
    consultation_type: Optional[ConsultationType]
    doctor: DoctorProfile
    policy: BookingPolicy

    @property
    def duration(self) -> int:
        if self.consultation_type is not None:
            return self.consultation_type.duration
        return self.clinic.default_duration


@dataclass(frozen=True)
class DaySlots:
    day: date
    slots: list[Slot]  # free, bookable slots
    total: int  # size of the day's slot grid
    closed: bool


def _violates(error: IntegrityError, *markers: str) -> bool:
    message = str(error.orig)
    return any(marker in message for marker in markers)


class BookingService:
    """Service layer for appointment booking"""

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.db = db
        self.repo = SchedulingRepository()
        self.clock = clock or SystemClock()
        self.notifier = notifier or NullNotifier()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_public_clinic(self, slug: str) -> Union[Clinic, Rejection]:
        clinic = self.repo.get_clinic_by_slug(self.db, slug)
        if not clinic:
            return Rejection.of(RejectionKind.CLINIC_NOT_FOUND)
        return clinic

    def get_policy(self, clinic_id: int) -> BookingPolicy:
        return BookingPolicy.from_rules(self.repo.get_rules(self.db, clinic_id))

    def get_by_booking_ref(self, booking_ref: str) -> Union[Appointment, Rejection]:
        appointment = self.repo.get_by_booking_ref(self.db, booking_ref)
        if not appointment:
            return Rejection.of(RejectionKind.APPOINTMENT_NOT_FOUND)
        return appointment

    def get_appointment(
        self, appointment_id: int, clinic_id: Optional[int] = None
    ) -> Union[Appointment, Rejection]:
        appointment = self.repo.get_appointment(self.db, appointment_id, clinic_id)
        if not appointment:
            return Rejection.of(RejectionKind.APPOINTMENT_NOT_FOUND)
        return appointment

    def _load_context(
        self,
        clinic_id: int,
        consultation_type_id: Optional[int],
        doctor_profile_id: Optional[int] = None,
    ) -> Union[BookingContext, Rejection]:
        clinic = self.repo.get_clinic(self.db, clinic_id)
        if not clinic:
            return Rejection.of(RejectionKind.CLINIC_NOT_FOUND)

        consultation_type = None
        if consultation_type_id is not None:
            consultation_type = self.repo.get_consultation_type(
                self.db, clinic.id, consultation_type_id
            )
            if not consultation_type:
                return Rejection.of(RejectionKind.CONSULTATION_TYPE_NOT_FOUND)

        if doctor_profile_id is not None:
            doctor = self.repo.get_doctor(self.db, clinic.id, doctor_profile_id)
        else:
            doctor = self.repo.get_primary_doctor(self.db, clinic.id)
        if not doctor:
            return Rejection.of(RejectionKind.PRACTITIONER_NOT_FOUND)

        return BookingContext(
            clinic=clinic,
            consultation_type=consultation_type,
            doctor=doctor,
            policy=self.get_policy(clinic.id),
        )

    # ------------------------------------------------------------------
    # Availability
    # ------------------------------------------------------------------

    def resolve_slots(
        self, clinic_id: int, day: date, consultation_type_id: int
    ) -> Union[list[Slot], Rejection]:
        """The day's slot grid, before conflicts and booking-window rules"""
        context = self._load_context(clinic_id, consultation_type_id)
        if isinstance(context, Rejection):
            return context
        windows = self.repo.get_windows(self.db, clinic_id)
        return resolve_slots(windows, day, context.duration, context.clinic.buffer_time)

    def available_slots(
        self,
        clinic_id: int,
        day: date,
        consultation_type_id: int,
        doctor_profile_id: Optional[int] = None,
    ) -> Union[DaySlots, Rejection]:
        """Free slots a patient may book right now"""
        context = self._load_context(clinic_id, consultation_type_id, doctor_profile_id)
        if isinstance(context, Rejection):
            return context
        return self._day_slots(context, day)

    def _day_slots(self, context: BookingContext, day: date) -> DaySlots:
        now = self.clock.now()
        clinic = context.clinic

        grid = resolve_slots(
            self.repo.get_windows(self.db, clinic.id), day, context.duration, clinic.buffer_time
        )
        blocked = self.repo.get_blocked_slots(self.db, clinic.id, day)
        whole_day, _ = blocked_ranges(blocked)
        if not grid or whole_day:
            return DaySlots(day=day, slots=[], total=len(grid), closed=True)

        cap = context.policy.daily_cap
        if cap is not None and (
            self.repo.count_day_appointments(self.db, clinic.id, day, now=now) >= cap
        ):
            return DaySlots(day=day, slots=[], total=len(grid), closed=False)

        existing = self.repo.get_day_appointments(self.db, clinic.id, day, context.doctor.id)
        free = [
            slot
            for slot in filter_available(grid, existing, now, blocked)
            if within_booking_window(context.policy, now, slot.starts_on(day))
        ]
        return DaySlots(day=day, slots=free, total=len(grid), closed=False)

    def available_dates(self, clinic_id: int, days: int = 30) -> Union[list[date], Rejection]:
        """Dates within the booking horizon on which the clinic opens"""
        clinic = self.repo.get_clinic(self.db, clinic_id)
        if not clinic:
            return Rejection.of(RejectionKind.CLINIC_NOT_FOUND)

        now = self.clock.now()
        policy = self.get_policy(clinic.id)
        open_weekdays = {w.day_of_week for w in self.repo.get_windows(self.db, clinic.id)}

        today = now.date()
        first = max(today, (now + policy.min_advance).date())
        last = min(today + timedelta(days=max(days, 1) - 1), (now + policy.max_advance).date())
        closed_days = {
            block.date
            for block in self.repo.get_blocked_slots_between(self.db, clinic.id, first, last)
            if not block.start_time or not block.end_time
        }

        dates = []
        current = first
        while current <= last:
            if current.weekday() in open_weekdays and current not in closed_days:
                dates.append(current)
            current += timedelta(days=1)
        return dates

    def next_available_slot(
        self,
        clinic_id: int,
        consultation_type_id: int,
        doctor_profile_id: Optional[int] = None,
    ) -> Union[Optional[tuple[date, Slot]], Rejection]:
        context = self._load_context(clinic_id, consultation_type_id, doctor_profile_id)
        if isinstance(context, Rejection):
            return context

        horizon = context.policy.max_advance_minutes // 1440 + 1
        dates = self.available_dates(clinic_id, days=horizon)
        if isinstance(dates, Rejection):
            return dates

        for day in dates:
            day_slots = self._day_slots(context, day)
            if day_slots.slots:
                return day, day_slots.slots[0]
        return None

    def slot_stats(
        self, clinic_id: int, day: date, consultation_type_id: Optional[int] = None
    ) -> Union[dict, Rejection]:
        """Grid size and free-slot count for a date (clinic default duration if no type given)"""
        context = self._load_context(clinic_id, consultation_type_id)
        if isinstance(context, Rejection):
            return context

        day_slots = self._day_slots(context, day)
        booked = len(
            self.repo.get_day_appointments(self.db, clinic_id, day, context.doctor.id)
        )
        return {
            "date": day,
            "total": day_slots.total,
            "available": len(day_slots.slots),
            "booked": booked,
            "closed": day_slots.closed,
        }

    # ------------------------------------------------------------------
    # Booking transaction
    # ------------------------------------------------------------------

    def book(
        self,
        clinic_id: int,
        consultation_type_id: int,
        day: date,
        start_time: str,
        patient: PatientDetails,
        doctor_profile_id: Optional[int] = None,
        reason_for_visit: Optional[str] = None,
    ) -> Union[Appointment, Rejection]:
        """
        Book a slot atomically.

        The clinic row is locked, the slot is re-validated against the rules
        and live bookings, and the appointment is inserted before commit.
        Concurrent requests for the same slot yield exactly one appointment;
        the rest get SlotNoLongerAvailable.

        Raises:
            StorageFailure: If the database fails for reasons other than a lost race
        """
        for attempt in range(1, BOOKING_REF_MAX_ATTEMPTS + 1):
            try:
                outcome = self._book_once(
                    clinic_id,
                    consultation_type_id,
                    day,
                    start_time,
                    patient,
                    doctor_profile_id,
                    reason_for_visit,
                )
            except IntegrityError as e:
                self.db.rollback()
                if _violates(e, "booking_ref"):
                    logger.warning(f"⚠️ Booking reference collision (attempt {attempt}), retrying")
                    continue
                if _violates(e, "uq_appointments_active_slot", "appointments.start_time"):
                    logger.info(f"🔒 Slot {day} {start_time} taken concurrently for clinic {clinic_id}")
                    return Rejection.of(RejectionKind.SLOT_NO_LONGER_AVAILABLE)
                logger.error(f"❌ Integrity error booking clinic {clinic_id} {day} {start_time}: {e}")
                raise StorageFailure(
                    "Failed to save the booking",
                    {"clinic_id": clinic_id, "date": str(day), "time": start_time},
                ) from e
            except StorageFailure:
                self.db.rollback()
                raise
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"❌ Database error booking clinic {clinic_id} {day} {start_time}: {e}")
                raise StorageFailure(
                    "Failed to save the booking",
                    {"clinic_id": clinic_id, "date": str(day), "time": start_time},
                ) from e

            if isinstance(outcome, Rejection):
                self.db.rollback()
                logger.info(
                    f"🚫 Booking rejected for clinic {clinic_id} {day} {start_time}: {outcome.kind.value}"
                )
                return outcome

            logger.info(
                f"✅ Appointment {outcome.booking_ref} booked for clinic {clinic_id} on {day} at {start_time}"
            )
            self._emit(outcome.id, AppointmentEvent.BOOKED)
            return outcome

        raise StorageFailure(
            "Could not generate a unique booking reference",
            {"clinic_id": clinic_id, "attempts": BOOKING_REF_MAX_ATTEMPTS},
        )

    def _book_once(
        self,
        clinic_id: int,
        consultation_type_id: int,
        day: date,
        start_time: str,
        patient: PatientDetails,
        doctor_profile_id: Optional[int],
        reason_for_visit: Optional[str],
    ) -> Union[Appointment, Rejection]:
        now = self.clock.now()
        context = self._load_context(clinic_id, consultation_type_id, doctor_profile_id)
        if isinstance(context, Rejection):
            return context

        if context.consultation_type is None:
            return Rejection.of(RejectionKind.CONSULTATION_TYPE_NOT_FOUND)

        self.repo.lock_clinic(self.db, context.clinic.id)
        self.repo.expire_stale_holds(self.db, context.clinic.id, day, now)

        existing_patient = self.repo.get_patient_by_phone(self.db, context.clinic.id, patient.phone)
        patient_day_count = 0
        if existing_patient:
            patient_day_count = self.repo.count_patient_day_appointments(
                self.db, context.clinic.id, existing_patient.id, day
            )

        slot = self._check_slot(context, day, start_time, patient_day_count)
        if isinstance(slot, Rejection):
            return slot

        record = self.repo.get_or_create_patient(
            self.db, context.clinic.id, patient.name, patient.phone, patient.email
        )
        hold = context.policy.hold_duration
        appointment = self.repo.add_appointment(
            self.db,
            clinic_id=context.clinic.id,
            patient_id=record.id,
            doctor_profile_id=context.doctor.id,
            consultation_type_id=context.consultation_type.id,
            booking_ref=self._new_booking_ref(),
            date=day,
            start_time=slot.start_time,
            end_time=slot.end_time,
            duration=slot.duration,
            status=AppointmentStatus.PENDING.value,
            fee=context.consultation_type.fee or Decimal("0"),
            reason_for_visit=reason_for_visit,
            hold_expires_at=now + hold if hold is not None else None,
        )
        self.db.commit()
        self.db.refresh(appointment)
        return appointment

    def _check_slot(
        self,
        context: BookingContext,
        day: date,
        start_time: str,
        patient_day_count: Optional[int] = None,
        exclude_id: Optional[int] = None,
    ) -> Union[Slot, Rejection]:
        """Re-validate one slot inside the locked transaction"""
        now = self.clock.now()
        clinic = context.clinic

        grid = resolve_slots(
            self.repo.get_windows(self.db, clinic.id), day, context.duration, clinic.buffer_time
        )
        blocked = self.repo.get_blocked_slots(self.db, clinic.id, day)
        whole_day, _ = blocked_ranges(blocked)
        if not grid or whole_day:
            return Rejection.of(RejectionKind.DAY_CLOSED)

        slot = find_slot(grid, start_time)
        if slot is None:
            return Rejection.of(RejectionKind.SLOT_NOT_OFFERED)

        day_count = self.repo.count_day_appointments(self.db, clinic.id, day, exclude_id, now=now)
        rejection = validate_booking_request(
            context.policy, now, day, slot, day_count, patient_day_count
        )
        if rejection:
            return rejection

        existing = self.repo.get_day_appointments(
            self.db, clinic.id, day, context.doctor.id, exclude_id
        )
        if not filter_available([slot], existing, now, blocked):
            return Rejection.of(RejectionKind.SLOT_NO_LONGER_AVAILABLE)

        return slot

    def _new_booking_ref(self) -> str:
        created_on = self.clock.now().date()
        for _ in range(BOOKING_REF_MAX_ATTEMPTS):
            booking_ref = generate_booking_ref(created_on)
            if not self.repo.booking_ref_exists(self.db, booking_ref):
                return booking_ref
        raise StorageFailure(
            "Could not generate a unique booking reference",
            {"attempts": BOOKING_REF_MAX_ATTEMPTS},
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def cancel(
        self,
        appointment_id: int,
        reason: Optional[str] = None,
        clinic_id: Optional[int] = None,
    ) -> Union[Appointment, Rejection]:
        """Patient cancellation; subject to the clinic's cancellation policy"""
        appointment = self.repo.get_appointment(self.db, appointment_id, clinic_id)
        if not appointment:
            return Rejection.of(RejectionKind.APPOINTMENT_NOT_FOUND)

        now = self.clock.now()
        rejection = validate_cancellation(self.get_policy(appointment.clinic_id), appointment, now)
        if rejection:
            return rejection

        return self._transition(
            appointment,
            AppointmentStatus.CANCELLED.value,
            cancelled_at=now,
            cancellation_reason=reason or "Cancelled by patient",
        )

    def update_status(
        self,
        appointment_id: int,
        new_status: str,
        clinic_id: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> Union[Appointment, Rejection]:
        """
        Staff status change.

        Allowed: PENDING -> CONFIRMED/CANCELLED, CONFIRMED -> COMPLETED/CANCELLED.
        Setting the current status again is a no-op. Staff cancellations skip
        the patient cancellation window.
        """
        appointment = self.repo.get_appointment(self.db, appointment_id, clinic_id)
        if not appointment:
            return Rejection.of(RejectionKind.APPOINTMENT_NOT_FOUND)

        new_status = AppointmentStatus(new_status).value
        if appointment.status == new_status:
            return appointment

        rejection = validate_transition(appointment.status, new_status)
        if rejection:
            return rejection

        now = self.clock.now()
        values = {}
        if new_status == AppointmentStatus.CONFIRMED.value:
            values = {"confirmed_at": now, "hold_expires_at": None}
        elif new_status == AppointmentStatus.COMPLETED.value:
            values = {"completed_at": now}
        elif new_status == AppointmentStatus.CANCELLED.value:
            values = {"cancelled_at": now, "cancellation_reason": reason or "Cancelled by clinic"}

        return self._transition(appointment, new_status, **values)

    def _transition(
        self, appointment: Appointment, new_status: str, **values
    ) -> Union[Appointment, Rejection]:
        expected = appointment.status
        try:
            updated = self.repo.set_status_if(
                self.db, appointment.id, expected, status=new_status, **values
            )
            if not updated:
                # Lost a race with another writer; judge against the fresh state
                self.db.rollback()
                self.db.refresh(appointment)
                if appointment.status == new_status:
                    return appointment
                return validate_transition(appointment.status, new_status) or Rejection.of(
                    RejectionKind.ILLEGAL_TRANSITION
                )
            self.db.commit()
            self.db.refresh(appointment)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Failed to update appointment {appointment.id} to {new_status}: {e}")
            raise StorageFailure(
                "Failed to update the appointment",
                {"appointment_id": appointment.id, "status": new_status},
            ) from e

        logger.info(f"✅ Appointment {appointment.booking_ref}: {expected} -> {new_status}")
        self._emit(appointment.id, STATUS_EVENTS[new_status])
        return appointment

    def reschedule(
        self,
        appointment_id: int,
        new_day: date,
        new_start_time: str,
        clinic_id: Optional[int] = None,
    ) -> Union[Appointment, Rejection]:
        """Move a live appointment to another slot; the first original date/time is kept"""
        appointment = self.repo.get_appointment(self.db, appointment_id, clinic_id)
        if not appointment:
            return Rejection.of(RejectionKind.APPOINTMENT_NOT_FOUND)

        try:
            outcome = self._reschedule_once(appointment, new_day, new_start_time)
        except IntegrityError as e:
            self.db.rollback()
            if _violates(e, "uq_appointments_active_slot", "appointments.start_time"):
                return Rejection.of(RejectionKind.SLOT_NO_LONGER_AVAILABLE)
            logger.error(f"❌ Integrity error rescheduling appointment {appointment_id}: {e}")
            raise StorageFailure(
                "Failed to reschedule the appointment", {"appointment_id": appointment_id}
            ) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Database error rescheduling appointment {appointment_id}: {e}")
            raise StorageFailure(
                "Failed to reschedule the appointment", {"appointment_id": appointment_id}
            ) from e

        if isinstance(outcome, Rejection):
            self.db.rollback()
            return outcome

        logger.info(
            f"✅ Appointment {outcome.booking_ref} rescheduled to {new_day} {new_start_time}"
        )
        self._emit(outcome.id, AppointmentEvent.RESCHEDULED)
        return outcome

    def _reschedule_once(
        self, appointment: Appointment, new_day: date, new_start_time: str
    ) -> Union[Appointment, Rejection]:
        now = self.clock.now()
        context = self._load_context(
            appointment.clinic_id,
            appointment.consultation_type_id,
            appointment.doctor_profile_id,
        )
        if isinstance(context, Rejection):
            return context

        self.repo.lock_clinic(self.db, context.clinic.id)
        self.db.refresh(appointment)
        if hold_expired(appointment, now):
            self.repo.expire_stale_holds(self.db, context.clinic.id, appointment.date, now)
            self.db.commit()
            logger.info(f"⏳ Hold on appointment {appointment.booking_ref} lapsed before reschedule")
            return Rejection.of(RejectionKind.ALREADY_TERMINAL)

        rejection = validate_reschedule(context.policy, appointment, now)
        if rejection:
            return rejection

        self.repo.expire_stale_holds(self.db, context.clinic.id, new_day, now)

        patient_day_count = self.repo.count_patient_day_appointments(
            self.db, context.clinic.id, appointment.patient_id, new_day, exclude_id=appointment.id
        )
        slot = self._check_slot(
            context, new_day, new_start_time, patient_day_count, exclude_id=appointment.id
        )
        if isinstance(slot, Rejection):
            return slot

        if appointment.original_date is None:
            appointment.original_date = appointment.date
            appointment.original_time = appointment.start_time
        appointment.date = new_day
        appointment.start_time = slot.start_time
        appointment.end_time = slot.end_time
        appointment.reschedule_count = (appointment.reschedule_count or 0) + 1
        appointment.status = AppointmentStatus.CONFIRMED.value
        appointment.confirmed_at = appointment.confirmed_at or now
        appointment.hold_expires_at = None

        self.db.flush()
        self.db.commit()
        self.db.refresh(appointment)
        return appointment

    def record_payment(
        self,
        appointment_id: int,
        status: str,
        external_payment_id: Optional[str] = None,
        amount: Optional[Decimal] = None,
        clinic_id: Optional[int] = None,
    ) -> Union[Appointment, Rejection]:
        """Record a payment outcome; a PAID payment confirms a PENDING appointment"""
        appointment = self.repo.get_appointment(self.db, appointment_id, clinic_id)
        if not appointment:
            return Rejection.of(RejectionKind.APPOINTMENT_NOT_FOUND)

        now = self.clock.now()
        status = PaymentStatus(status).value
        if status == PaymentStatus.PAID.value and appointment.status in TERMINAL_STATUSES:
            logger.warning(
                f"⚠️ Paid payment for {appointment.status} appointment {appointment.booking_ref} not recorded"
            )
            return Rejection.of(RejectionKind.ALREADY_TERMINAL)

        confirmed = False
        try:
            payment = self.repo.get_payment(self.db, appointment.id)
            if not payment:
                payment = Payment(
                    clinic_id=appointment.clinic_id,
                    appointment_id=appointment.id,
                    patient_id=appointment.patient_id,
                    amount=amount if amount is not None else appointment.fee,
                )
                self.db.add(payment)
            elif amount is not None:
                payment.amount = amount

            payment.status = status
            if external_payment_id:
                payment.external_payment_id = external_payment_id
            if status == PaymentStatus.PAID.value:
                payment.paid_at = now
                confirmed = bool(
                    self.repo.set_status_if(
                        self.db,
                        appointment.id,
                        AppointmentStatus.PENDING.value,
                        status=AppointmentStatus.CONFIRMED.value,
                        confirmed_at=now,
                        hold_expires_at=None,
                    )
                )

            self.db.commit()
            self.db.refresh(appointment)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Failed to record payment for appointment {appointment_id}: {e}")
            raise StorageFailure(
                "Failed to record the payment", {"appointment_id": appointment_id}
            ) from e

        logger.info(f"💳 Payment {status} recorded for appointment {appointment.booking_ref}")
        if confirmed:
            self._emit(appointment.id, AppointmentEvent.CONFIRMED)
        return appointment

    # ------------------------------------------------------------------
    # Staff dashboard
    # ------------------------------------------------------------------

    def list_appointments(
        self,
        clinic_id: int,
        start: Optional[date] = None,
        end: Optional[date] = None,
        status: Optional[str] = None,
        doctor_profile_id: Optional[int] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Appointment], int]:
        return self.repo.list_appointments(
            self.db, clinic_id, start, end, status, doctor_profile_id, limit, offset
        )

    def upcoming_for_patient(self, clinic_id: int, phone: str) -> list[Appointment]:
        """Live appointments from today on for the patient with this E.164 phone"""
        patient = self.repo.get_patient_by_phone(self.db, clinic_id, phone)
        if not patient:
            return []
        now = self.clock.now()
        return [
            appointment
            for appointment in self.repo.get_upcoming_patient_appointments(
                self.db, clinic_id, patient.id, now.date()
            )
            if not hold_expired(appointment, now)
        ]

    def add_notes(
        self, appointment_id: int, notes: str, clinic_id: Optional[int] = None
    ) -> Union[Appointment, Rejection]:
        """Replace the staff notes on an appointment"""
        appointment = self.repo.get_appointment(self.db, appointment_id, clinic_id)
        if not appointment:
            return Rejection.of(RejectionKind.APPOINTMENT_NOT_FOUND)

        try:
            appointment.notes = notes.strip() or None
            self.db.commit()
            self.db.refresh(appointment)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Failed to save notes for appointment {appointment_id}: {e}")
            raise StorageFailure(
                "Failed to save the appointment notes", {"appointment_id": appointment_id}
            ) from e

        logger.info(f"📝 Notes updated for appointment {appointment.booking_ref}")
        return appointment

    def appointment_stats(self, clinic_id: int) -> dict:
        today = self.clock.now().date()
        overall = self.repo.status_counts(self.db, clinic_id)
        todays = self.repo.status_counts(self.db, clinic_id, today)
        return {
            "total": sum(overall.values()),
            "today": sum(
                count
                for status, count in todays.items()
                if status != AppointmentStatus.CANCELLED.value
            ),
            "completedToday": todays.get(AppointmentStatus.COMPLETED.value, 0),
            "pending": overall.get(AppointmentStatus.PENDING.value, 0),
            "confirmed": overall.get(AppointmentStatus.CONFIRMED.value, 0),
            "cancelled": overall.get(AppointmentStatus.CANCELLED.value, 0),
            "revenue": self.repo.paid_revenue(self.db, clinic_id),
        }

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def _emit(self, appointment_id: int, event: AppointmentEvent) -> None:
        """Notify after commit; failures are logged and never undo the write"""
        try:
            self.notifier.notify(appointment_id, event)
        except Exception as e:
            logger.error(f"❌ Failed to dispatch {event.value} for appointment {appointment_id}: {e}")
