"""Booking rejection kinds and the storage failure exception"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from fastapi import HTTPException


class RejectionKind(str, Enum):
    CLINIC_NOT_FOUND = "ClinicNotFound"
    CONSULTATION_TYPE_NOT_FOUND = "ConsultationTypeNotFound"
    PRACTITIONER_NOT_FOUND = "PractitionerNotFound"
    APPOINTMENT_NOT_FOUND = "AppointmentNotFound"
    DAY_CLOSED = "DayClosed"
    SLOT_NOT_OFFERED = "SlotNotOffered"
    SLOT_NO_LONGER_AVAILABLE = "SlotNoLongerAvailable"
    OUTSIDE_BOOKING_WINDOW = "OutsideBookingWindow"
    DAILY_CAP_EXCEEDED = "DailyCapExceeded"
    PATIENT_DAILY_CAP_EXCEEDED = "PatientDailyCapExceeded"
    CANCELLATION_NOT_ALLOWED = "CancellationNotAllowed"
    CANCELLATION_WINDOW_PASSED = "CancellationWindowPassed"
    ALREADY_TERMINAL = "AlreadyTerminal"
    ILLEGAL_TRANSITION = "IllegalTransition"
    RESCHEDULING_NOT_ALLOWED = "ReschedulingNotAllowed"
    RESCHEDULING_WINDOW_PASSED = "ReschedulingWindowPassed"
    RESCHEDULE_LIMIT_REACHED = "RescheduleLimitReached"
    PHONE_MISMATCH = "PhoneMismatch"


DEFAULT_MESSAGES = {
    RejectionKind.CLINIC_NOT_FOUND: "Clinic not found or unavailable",
    RejectionKind.CONSULTATION_TYPE_NOT_FOUND: "Consultation type not available",
    RejectionKind.PRACTITIONER_NOT_FOUND: "Doctor not found or unavailable",
    RejectionKind.APPOINTMENT_NOT_FOUND: "Appointment not found",
    RejectionKind.DAY_CLOSED: "The clinic is closed on this date",
    RejectionKind.SLOT_NOT_OFFERED: "The requested time is not a bookable slot",
    RejectionKind.SLOT_NO_LONGER_AVAILABLE: "This time slot is no longer available",
    RejectionKind.OUTSIDE_BOOKING_WINDOW: "This date is outside the booking window",
    RejectionKind.DAILY_CAP_EXCEEDED: "The clinic is fully booked for this day",
    RejectionKind.PATIENT_DAILY_CAP_EXCEEDED: "Maximum bookings per day reached for this patient",
    RejectionKind.CANCELLATION_NOT_ALLOWED: "Cancellation is not allowed",
    RejectionKind.CANCELLATION_WINDOW_PASSED: "It is too late to cancel this appointment",
    RejectionKind.ALREADY_TERMINAL: "This appointment is already completed or cancelled",
    RejectionKind.ILLEGAL_TRANSITION: "This status change is not allowed",
    RejectionKind.RESCHEDULING_NOT_ALLOWED: "Rescheduling is not allowed",
    RejectionKind.RESCHEDULING_WINDOW_PASSED: "It is too late to reschedule this appointment",
    RejectionKind.RESCHEDULE_LIMIT_REACHED: "Maximum reschedule limit reached",
    RejectionKind.PHONE_MISMATCH: "Phone number does not match",
}

REJECTION_STATUS_CODES = {
    RejectionKind.CLINIC_NOT_FOUND: 404,
    RejectionKind.CONSULTATION_TYPE_NOT_FOUND: 404,
    RejectionKind.PRACTITIONER_NOT_FOUND: 404,
    RejectionKind.APPOINTMENT_NOT_FOUND: 404,
    RejectionKind.DAY_CLOSED: 422,
    RejectionKind.SLOT_NOT_OFFERED: 422,
    RejectionKind.OUTSIDE_BOOKING_WINDOW: 422,
    RejectionKind.DAILY_CAP_EXCEEDED: 422,
    RejectionKind.PATIENT_DAILY_CAP_EXCEEDED: 422,
    RejectionKind.SLOT_NO_LONGER_AVAILABLE: 409,
    RejectionKind.CANCELLATION_NOT_ALLOWED: 409,
    RejectionKind.CANCELLATION_WINDOW_PASSED: 409,
    RejectionKind.ALREADY_TERMINAL: 409,
    RejectionKind.ILLEGAL_TRANSITION: 409,
    RejectionKind.RESCHEDULING_NOT_ALLOWED: 409,
    RejectionKind.RESCHEDULING_WINDOW_PASSED: 409,
    RejectionKind.RESCHEDULE_LIMIT_REACHED: 409,
    RejectionKind.PHONE_MISMATCH: 403,
}


@dataclass(frozen=True)
class Rejection:
    """A business-rule refusal; returned to callers, never raised"""

    kind: RejectionKind
    message: str = ""

    @classmethod
    def of(cls, kind: RejectionKind, message: Optional[str] = None) -> "Rejection":
        return cls(kind=kind, message=message or DEFAULT_MESSAGES[kind])

    @property
    def status_code(self) -> int:
        return REJECTION_STATUS_CODES[self.kind]

    def to_detail(self) -> dict:
        return {"kind": self.kind.value, "message": self.message}

    def to_http(self) -> HTTPException:
        return HTTPException(status_code=self.status_code, detail=self.to_detail())


@dataclass(eq=False)
class StorageFailure(Exception):
    """Unexpected persistence error; surfaced to callers as a generic failure"""

    message: str
    context: dict = field(default_factory=dict)

    def __str__(self) -> str:
        return f"{self.message} ({self.context})" if self.context else self.message
