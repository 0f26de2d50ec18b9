"""Scheduling schemas - Pydantic models for booking endpoints"""

import re
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ...models import AppointmentStatus, PaymentStatus
from ...shared.validators import parse_date, validate_phone, validate_time_string

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def required_phone(v: str) -> str:
    if not v or not v.strip():
        raise ValueError("Phone number is required")
    return validate_phone(v)


class PatientInput(BaseModel):
    name: str = Field(..., min_length=2, max_length=255)
    phone: str
    email: Optional[str] = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Name must be at least 2 characters")
        return v

    @field_validator("phone")
    @classmethod
    def validate_phone_number(cls, v: str) -> str:
        return required_phone(v)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: Optional[str]) -> Optional[str]:
        if not v:
            return None
        v = v.strip().lower()
        if not EMAIL_PATTERN.match(v):
            raise ValueError("Invalid email address")
        return v


class _DateTimeRequest(BaseModel):
    date: str
    time: str

    @field_validator("date")
    @classmethod
    def validate_date(cls, v: str) -> str:
        parse_date(v)
        return v

    @field_validator("time")
    @classmethod
    def validate_time(cls, v: str) -> str:
        return validate_time_string(v)

    @property
    def day(self) -> date:
        return parse_date(self.date)


class BookingRequest(_DateTimeRequest):
    consultationTypeId: int
    doctorProfileId: Optional[int] = None
    patient: PatientInput
    reasonForVisit: Optional[str] = Field(None, max_length=500)


class CancelRequest(BaseModel):
    phone: str
    reason: Optional[str] = Field(None, max_length=500)

    @field_validator("phone")
    @classmethod
    def validate_phone_number(cls, v: str) -> str:
        return required_phone(v)


class RescheduleRequest(_DateTimeRequest):
    phone: str

    @field_validator("phone")
    @classmethod
    def validate_phone_number(cls, v: str) -> str:
        return required_phone(v)


class StaffRescheduleRequest(_DateTimeRequest):
    pass


class StatusUpdateRequest(BaseModel):
    status: AppointmentStatus
    reason: Optional[str] = Field(None, max_length=500)


class NotesUpdateRequest(BaseModel):
    notes: str = Field(..., max_length=2000)


class PaymentRequest(BaseModel):
    status: PaymentStatus
    externalPaymentId: Optional[str] = Field(None, max_length=255)
    amount: Optional[Decimal] = Field(None, ge=0)


class SlotResponse(BaseModel):
    time: str
    endTime: str
    displayTime: str
    displayEndTime: str
    duration: int
    period: str


class SlotsResponse(BaseModel):
    date: str
    dayClosed: bool
    slots: list[SlotResponse]
    totalSlots: int
    availableSlots: int


class NextSlotResponse(BaseModel):
    found: bool
    date: Optional[str] = None
    slot: Optional[SlotResponse] = None


class AvailableDatesResponse(BaseModel):
    dates: list[str]


class SlotStatsResponse(BaseModel):
    date: str
    total: int
    available: int
    booked: int
    closed: bool


class ConsultationTypeSummary(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    duration: int
    fee: Decimal

    class Config:
        from_attributes = True


class DoctorSummary(BaseModel):
    id: int
    name: str
    specialization: Optional[str] = None
    isPrimary: bool


class PublicClinicResponse(BaseModel):
    slug: str
    name: str
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    doctors: list[DoctorSummary]
    consultationTypes: list[ConsultationTypeSummary]
    requirePayment: bool = False


class AppointmentResponse(BaseModel):
    id: int
    bookingRef: str
    clinicId: int
    date: str
    startTime: str
    endTime: str
    duration: int
    status: str
    fee: Decimal
    consultationTypeId: int
    consultationTypeName: Optional[str] = None
    doctorProfileId: int
    doctorName: Optional[str] = None
    patientName: Optional[str] = None
    patientPhone: Optional[str] = None
    reasonForVisit: Optional[str] = None
    notes: Optional[str] = None
    holdExpiresAt: Optional[datetime] = None
    cancellationReason: Optional[str] = None
    rescheduleCount: int = 0
    originalDate: Optional[str] = None
    originalTime: Optional[str] = None
    reminderSentAt: Optional[datetime] = None
    createdAt: Optional[datetime] = None


class PublicAppointmentResponse(BaseModel):
    """Patient-facing view; omits internal ids and notes"""

    bookingRef: str
    clinicName: str
    date: str
    startTime: str
    endTime: str
    status: str
    fee: Decimal
    consultationTypeName: Optional[str] = None
    doctorName: Optional[str] = None
    patientName: Optional[str] = None
    rescheduleCount: int = 0


class AppointmentListResponse(BaseModel):
    items: list[AppointmentResponse]
    total: int
    limit: int
    offset: int


class AppointmentStatsResponse(BaseModel):
    total: int
    today: int
    completedToday: int
    pending: int
    confirmed: int
    cancelled: int
    revenue: Decimal
