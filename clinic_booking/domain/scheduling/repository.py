"""Scheduling repository - Database operations for bookings"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session, joinedload

from ...models import (
    Appointment,
    AppointmentRules,
    AppointmentStatus,
    Availability,
    BlockedSlot,
    Clinic,
    ConsultationType,
    DoctorProfile,
    Patient,
    Payment,
    PaymentStatus,
)

LIVE = Appointment.status != AppointmentStatus.CANCELLED.value


class SchedulingRepository:
    """Repository for booking database operations"""

    # ------------------------------------------------------------------
    # Clinic configuration
    # ------------------------------------------------------------------

    @staticmethod
    def get_clinic(db: Session, clinic_id: int) -> Optional[Clinic]:
        return db.query(Clinic).filter(Clinic.id == clinic_id, Clinic.is_active.is_(True)).first()

    @staticmethod
    def get_clinic_by_slug(db: Session, slug: str) -> Optional[Clinic]:
        return db.query(Clinic).filter(Clinic.slug == slug, Clinic.is_active.is_(True)).first()

    @staticmethod
    def get_consultation_type(
        db: Session, clinic_id: int, consultation_type_id: int
    ) -> Optional[ConsultationType]:
        return (
            db.query(ConsultationType)
            .filter(
                ConsultationType.id == consultation_type_id,
                ConsultationType.clinic_id == clinic_id,
                ConsultationType.is_active.is_(True),
            )
            .first()
        )

    @staticmethod
    def get_consultation_types(db: Session, clinic_id: int) -> list[ConsultationType]:
        return (
            db.query(ConsultationType)
            .filter(ConsultationType.clinic_id == clinic_id, ConsultationType.is_active.is_(True))
            .order_by(ConsultationType.duration, ConsultationType.id)
            .all()
        )

    @staticmethod
    def get_doctor(db: Session, clinic_id: int, doctor_profile_id: int) -> Optional[DoctorProfile]:
        return (
            db.query(DoctorProfile)
            .filter(
                DoctorProfile.id == doctor_profile_id,
                DoctorProfile.clinic_id == clinic_id,
                DoctorProfile.is_active.is_(True),
            )
            .first()
        )

    @staticmethod
    def get_primary_doctor(db: Session, clinic_id: int) -> Optional[DoctorProfile]:
        """Primary practitioner, falling back to the oldest active one"""
        return (
            db.query(DoctorProfile)
            .filter(DoctorProfile.clinic_id == clinic_id, DoctorProfile.is_active.is_(True))
            .order_by(DoctorProfile.is_primary.desc(), DoctorProfile.id)
            .first()
        )

    @staticmethod
    def get_doctors(db: Session, clinic_id: int) -> list[DoctorProfile]:
        return (
            db.query(DoctorProfile)
            .filter(DoctorProfile.clinic_id == clinic_id, DoctorProfile.is_active.is_(True))
            .order_by(DoctorProfile.is_primary.desc(), DoctorProfile.id)
            .all()
        )

    @staticmethod
    def get_rules(db: Session, clinic_id: int) -> Optional[AppointmentRules]:
        return db.query(AppointmentRules).filter(AppointmentRules.clinic_id == clinic_id).first()

    @staticmethod
    def get_windows(db: Session, clinic_id: int) -> list[Availability]:
        return (
            db.query(Availability)
            .filter(Availability.clinic_id == clinic_id, Availability.is_active.is_(True))
            .order_by(Availability.day_of_week, Availability.start_time)
            .all()
        )

    @staticmethod
    def get_blocked_slots(db: Session, clinic_id: int, day: date) -> list[BlockedSlot]:
        return (
            db.query(BlockedSlot)
            .filter(BlockedSlot.clinic_id == clinic_id, BlockedSlot.date == day)
            .all()
        )

    @staticmethod
    def get_blocked_slots_between(
        db: Session, clinic_id: int, start: date, end: date
    ) -> list[BlockedSlot]:
        return (
            db.query(BlockedSlot)
            .filter(
                BlockedSlot.clinic_id == clinic_id,
                BlockedSlot.date >= start,
                BlockedSlot.date <= end,
            )
            .all()
        )

    # ------------------------------------------------------------------
    # Booking transaction helpers
    # ------------------------------------------------------------------

    @staticmethod
    def lock_clinic(db: Session, clinic_id: int) -> int:
        """
        Serialize booking transactions for a clinic.

        The UPDATE takes a row lock (a write lock on SQLite) held until the
        surrounding transaction commits or rolls back.
        """
        return (
            db.query(Clinic)
            .filter(Clinic.id == clinic_id)
            .update({Clinic.booking_seq: Clinic.booking_seq + 1}, synchronize_session=False)
        )

    @staticmethod
    def expire_stale_holds(db: Session, clinic_id: int, day: date, now: datetime) -> int:
        """Cancel PENDING holds on ``day`` whose expiry has passed"""
        return (
            db.query(Appointment)
            .filter(
                Appointment.clinic_id == clinic_id,
                Appointment.date == day,
                Appointment.status == AppointmentStatus.PENDING.value,
                Appointment.hold_expires_at.isnot(None),
                Appointment.hold_expires_at <= now,
            )
            .update(
                {
                    Appointment.status: AppointmentStatus.CANCELLED.value,
                    Appointment.cancelled_at: now,
                    Appointment.cancellation_reason: "Hold expired",
                },
                synchronize_session="fetch",
            )
        )

    @staticmethod
    def get_day_appointments(
        db: Session,
        clinic_id: int,
        day: date,
        doctor_profile_id: Optional[int] = None,
        exclude_id: Optional[int] = None,
    ) -> list[Appointment]:
        """Non-cancelled appointments for one clinic and date"""
        query = db.query(Appointment).filter(
            Appointment.clinic_id == clinic_id, Appointment.date == day, LIVE
        )
        if doctor_profile_id is not None:
            query = query.filter(Appointment.doctor_profile_id == doctor_profile_id)
        if exclude_id is not None:
            query = query.filter(Appointment.id != exclude_id)
        return query.order_by(Appointment.start_time).all()

    @staticmethod
    def count_day_appointments(
        db: Session,
        clinic_id: int,
        day: date,
        exclude_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> int:
        """Live appointments on ``day``; holds lapsed by ``now`` are not counted"""
        query = db.query(func.count(Appointment.id)).filter(
            Appointment.clinic_id == clinic_id, Appointment.date == day, LIVE
        )
        if exclude_id is not None:
            query = query.filter(Appointment.id != exclude_id)
        if now is not None:
            query = query.filter(
                or_(
                    Appointment.status != AppointmentStatus.PENDING.value,
                    Appointment.hold_expires_at.is_(None),
                    Appointment.hold_expires_at > now,
                )
            )
        return query.scalar() or 0

    @staticmethod
    def count_patient_day_appointments(
        db: Session, clinic_id: int, patient_id: int, day: date, exclude_id: Optional[int] = None
    ) -> int:
        query = db.query(func.count(Appointment.id)).filter(
            Appointment.clinic_id == clinic_id,
            Appointment.patient_id == patient_id,
            Appointment.date == day,
            LIVE,
        )
        if exclude_id is not None:
            query = query.filter(Appointment.id != exclude_id)
        return query.scalar() or 0

    @staticmethod
    def get_patient_by_phone(db: Session, clinic_id: int, phone: str) -> Optional[Patient]:
        return (
            db.query(Patient).filter(Patient.clinic_id == clinic_id, Patient.phone == phone).first()
        )

    @staticmethod
    def get_or_create_patient(
        db: Session, clinic_id: int, name: str, phone: str, email: Optional[str] = None
    ) -> Patient:
        """Patients are keyed by (clinic, phone); name and email are refreshed on each booking"""
        patient = SchedulingRepository.get_patient_by_phone(db, clinic_id, phone)
        if patient:
            patient.name = name
            if email:
                patient.email = email
        else:
            patient = Patient(clinic_id=clinic_id, name=name, phone=phone, email=email)
            db.add(patient)
        db.flush()
        return patient

    @staticmethod
    def booking_ref_exists(db: Session, booking_ref: str) -> bool:
        return (
            db.query(Appointment.id).filter(Appointment.booking_ref == booking_ref).first()
            is not None
        )

    @staticmethod
    def set_status_if(db: Session, appointment_id: int, expected_status: str, **values) -> int:
        """
        Compare-and-set a status change.

        Returns the number of rows updated; 0 means another writer changed the
        appointment since it was read.
        """
        return (
            db.query(Appointment)
            .filter(Appointment.id == appointment_id, Appointment.status == expected_status)
            .update({getattr(Appointment, k): v for k, v in values.items()}, synchronize_session="fetch")
        )

    @staticmethod
    def add_appointment(db: Session, **appointment_data) -> Appointment:
        appointment = Appointment(**appointment_data)
        db.add(appointment)
        db.flush()
        return appointment

    # ------------------------------------------------------------------
    # Appointment lookups
    # ------------------------------------------------------------------

    @staticmethod
    def get_appointment(
        db: Session, appointment_id: int, clinic_id: Optional[int] = None
    ) -> Optional[Appointment]:
        query = db.query(Appointment).filter(Appointment.id == appointment_id)
        if clinic_id is not None:
            query = query.filter(Appointment.clinic_id == clinic_id)
        return query.first()

    @staticmethod
    def get_by_booking_ref(db: Session, booking_ref: str) -> Optional[Appointment]:
        return (
            db.query(Appointment)
            .options(
                joinedload(Appointment.clinic),
                joinedload(Appointment.patient),
                joinedload(Appointment.consultation_type),
                joinedload(Appointment.doctor_profile),
            )
            .filter(Appointment.booking_ref == booking_ref.upper())
            .first()
        )

    @staticmethod
    def list_appointments(
        db: Session,
        clinic_id: int,
        start: Optional[date] = None,
        end: Optional[date] = None,
        status: Optional[str] = None,
        doctor_profile_id: Optional[int] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Appointment], int]:
        """Appointments for the staff dashboard, ordered by date and time"""
        query = db.query(Appointment).filter(Appointment.clinic_id == clinic_id)
        if start is not None:
            query = query.filter(Appointment.date >= start)
        if end is not None:
            query = query.filter(Appointment.date <= end)
        if status:
            query = query.filter(Appointment.status == status)
        if doctor_profile_id is not None:
            query = query.filter(Appointment.doctor_profile_id == doctor_profile_id)

        total = query.count()
        items = (
            query.options(
                joinedload(Appointment.patient),
                joinedload(Appointment.consultation_type),
                joinedload(Appointment.doctor_profile),
            )
            .order_by(Appointment.date, Appointment.start_time)
            .offset(offset)
            .limit(limit)
            .all()
        )
        return items, total

    @staticmethod
    def get_upcoming_patient_appointments(
        db: Session, clinic_id: int, patient_id: int, today: date
    ) -> list[Appointment]:
        return (
            db.query(Appointment)
            .options(
                joinedload(Appointment.consultation_type),
                joinedload(Appointment.doctor_profile),
            )
            .filter(
                Appointment.clinic_id == clinic_id,
                Appointment.patient_id == patient_id,
                Appointment.date >= today,
                Appointment.status.in_(
                    [AppointmentStatus.PENDING.value, AppointmentStatus.CONFIRMED.value]
                ),
            )
            .order_by(Appointment.date, Appointment.start_time)
            .all()
        )

    @staticmethod
    def status_counts(db: Session, clinic_id: int, day: Optional[date] = None) -> dict[str, int]:
        query = db.query(Appointment.status, func.count(Appointment.id)).filter(
            Appointment.clinic_id == clinic_id
        )
        if day is not None:
            query = query.filter(Appointment.date == day)
        return {status: count for status, count in query.group_by(Appointment.status).all()}

    @staticmethod
    def paid_revenue(db: Session, clinic_id: int) -> Decimal:
        total = (
            db.query(func.coalesce(func.sum(Payment.amount), 0))
            .filter(Payment.clinic_id == clinic_id, Payment.status == PaymentStatus.PAID.value)
            .scalar()
        )
        return Decimal(str(total or 0))

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    @staticmethod
    def get_payment(db: Session, appointment_id: int) -> Optional[Payment]:
        return db.query(Payment).filter(Payment.appointment_id == appointment_id).first()
