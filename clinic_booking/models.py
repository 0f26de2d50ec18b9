import enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class AppointmentStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class StaffRole(str, enum.Enum):
    ADMIN = "ADMIN"
    DOCTOR = "DOCTOR"
    RECEPTIONIST = "RECEPTIONIST"


class Clinic(Base):
    __tablename__ = "clinics"

    id = Column(Integer, primary_key=True, index=True)
    slug = Column(String(100), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=False)
    phone = Column(String(20), nullable=True)
    address = Column(String(500), nullable=True)
    city = Column(String(100), nullable=True)
    default_duration = Column(Integer, default=15, nullable=False)  # minutes
    buffer_time = Column(Integer, default=5, nullable=False)  # minutes between slots
    is_active = Column(Boolean, default=True, nullable=False)
    # Bumped by every booking transaction; the UPDATE doubles as the per-clinic row lock
    booking_seq = Column(Integer, default=0, server_default="0", nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    doctors = relationship("DoctorProfile", back_populates="clinic", cascade="all, delete-orphan")
    availability = relationship(
        "Availability", back_populates="clinic", cascade="all, delete-orphan"
    )
    consultation_types = relationship(
        "ConsultationType", back_populates="clinic", cascade="all, delete-orphan"
    )
    rules = relationship(
        "AppointmentRules", back_populates="clinic", uselist=False, cascade="all, delete-orphan"
    )
    staff = relationship("ClinicStaff", back_populates="clinic", cascade="all, delete-orphan")


class ClinicStaff(Base):
    """Dashboard user (doctor, receptionist, admin) of a clinic"""

    __tablename__ = "clinic_staff"

    id = Column(Integer, primary_key=True, index=True)
    clinic_id = Column(Integer, ForeignKey("clinics.id"), nullable=False, index=True)
    firebase_uid = Column(String(255), unique=True, index=True, nullable=False)
    email = Column(String(255), nullable=False)
    full_name = Column(String(255), nullable=True)
    role = Column(String(20), default=StaffRole.ADMIN.value, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    clinic = relationship("Clinic", back_populates="staff")


class DoctorProfile(Base):
    """Practitioner whose time is the bookable resource"""

    __tablename__ = "doctor_profiles"

    id = Column(Integer, primary_key=True, index=True)
    clinic_id = Column(Integer, ForeignKey("clinics.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    specialization = Column(String(255), nullable=True)
    is_primary = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    clinic = relationship("Clinic", back_populates="doctors")


class Availability(Base):
    """Recurring weekly availability window (day_of_week: 0=Monday ... 6=Sunday)"""

    __tablename__ = "availability"

    id = Column(Integer, primary_key=True, index=True)
    clinic_id = Column(Integer, ForeignKey("clinics.id"), nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(String(5), nullable=False)  # "HH:MM"
    end_time = Column(String(5), nullable=False)  # "HH:MM"
    is_active = Column(Boolean, default=True, nullable=False)

    clinic = relationship("Clinic", back_populates="availability")

    __table_args__ = (
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_availability_day_of_week"),
        CheckConstraint("start_time < end_time", name="ck_availability_time_order"),
        Index("ix_availability_clinic_day", "clinic_id", "day_of_week"),
    )


class ConsultationType(Base):
    __tablename__ = "consultation_types"

    id = Column(Integer, primary_key=True, index=True)
    clinic_id = Column(Integer, ForeignKey("clinics.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    duration = Column(Integer, nullable=False)  # minutes
    fee = Column(Numeric(10, 2), nullable=False, default=0)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    clinic = relationship("Clinic", back_populates="consultation_types")

    __table_args__ = (CheckConstraint("duration > 0", name="ck_consultation_duration"),)


class AppointmentRules(Base):
    """Per-clinic booking policy; missing rows fall back to BookingPolicy defaults"""

    __tablename__ = "appointment_rules"

    id = Column(Integer, primary_key=True, index=True)
    clinic_id = Column(Integer, ForeignKey("clinics.id"), unique=True, nullable=False)
    min_advance_minutes = Column(Integer, nullable=True)
    max_advance_minutes = Column(Integer, nullable=True)
    max_bookings_per_day = Column(Integer, nullable=True)
    max_bookings_per_patient = Column(Integer, nullable=True)
    allow_cancellation = Column(Boolean, nullable=True)
    cancellation_window_hours = Column(Integer, nullable=True)
    allow_rescheduling = Column(Boolean, nullable=True)
    rescheduling_window_hours = Column(Integer, nullable=True)
    max_reschedules = Column(Integer, nullable=True)
    require_payment = Column(Boolean, nullable=True)
    send_confirmation = Column(Boolean, nullable=True)
    send_reminder = Column(Boolean, nullable=True)
    pending_hold_minutes = Column(Integer, nullable=True)  # None: holds never expire
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    clinic = relationship("Clinic", back_populates="rules")


class BlockedSlot(Base):
    """Vacation day or blocked time range; null start/end blocks the whole day"""

    __tablename__ = "blocked_slots"

    id = Column(Integer, primary_key=True, index=True)
    clinic_id = Column(Integer, ForeignKey("clinics.id"), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    start_time = Column(String(5), nullable=True)
    end_time = Column(String(5), nullable=True)
    reason = Column(String(200), nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class Patient(Base):
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True, index=True)
    clinic_id = Column(Integer, ForeignKey("clinics.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    phone = Column(String(20), nullable=False)  # E.164
    email = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (UniqueConstraint("clinic_id", "phone", name="uq_patients_clinic_phone"),)


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, index=True)
    clinic_id = Column(Integer, ForeignKey("clinics.id"), nullable=False, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    doctor_profile_id = Column(Integer, ForeignKey("doctor_profiles.id"), nullable=False)
    consultation_type_id = Column(Integer, ForeignKey("consultation_types.id"), nullable=False)
    booking_ref = Column(String(20), unique=True, index=True, nullable=False)

    date = Column(Date, nullable=False)
    start_time = Column(String(5), nullable=False)  # "HH:MM"
    end_time = Column(String(5), nullable=False)  # "HH:MM"
    duration = Column(Integer, nullable=False)  # minutes
    status = Column(String(20), default=AppointmentStatus.PENDING.value, nullable=False)
    fee = Column(Numeric(10, 2), nullable=False, default=0)

    reason_for_visit = Column(String(500), nullable=True)
    notes = Column(Text, nullable=True)

    # Lifecycle timestamps
    hold_expires_at = Column(DateTime, nullable=True)  # PENDING hold expiry, if policy sets one
    confirmed_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancellation_reason = Column(String(500), nullable=True)
    reminder_sent_at = Column(DateTime, nullable=True)

    # Rescheduling history
    reschedule_count = Column(Integer, default=0, nullable=False)
    original_date = Column(Date, nullable=True)
    original_time = Column(String(5), nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    clinic = relationship("Clinic")
    patient = relationship("Patient")
    doctor_profile = relationship("DoctorProfile")
    consultation_type = relationship("ConsultationType")
    payment = relationship("Payment", back_populates="appointment", uselist=False)

    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_appointment_time_order"),
        # At most one live booking per practitioner and start time
        Index(
            "uq_appointments_active_slot",
            "clinic_id",
            "doctor_profile_id",
            "date",
            "start_time",
            unique=True,
            postgresql_where=text("status <> 'CANCELLED'"),
            sqlite_where=text("status <> 'CANCELLED'"),
        ),
        Index("ix_appointments_clinic_date_status", "clinic_id", "date", "status"),
    )


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    clinic_id = Column(Integer, ForeignKey("clinics.id"), nullable=False, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), unique=True, nullable=False)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    status = Column(String(20), default=PaymentStatus.PENDING.value, nullable=False)
    external_payment_id = Column(String(255), nullable=True)
    paid_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    appointment = relationship("Appointment", back_populates="payment")
