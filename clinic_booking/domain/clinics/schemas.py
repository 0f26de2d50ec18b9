"""Clinic configuration schemas - availability, consultation types, rules, blocked slots"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ...shared.validators import parse_date, validate_time_string


class AvailabilityWindowInput(BaseModel):
    dayOfWeek: int = Field(..., ge=0, le=6, description="0=Monday ... 6=Sunday")
    startTime: str
    endTime: str
    isActive: bool = True

    @field_validator("startTime", "endTime")
    @classmethod
    def validate_time(cls, v: str) -> str:
        return validate_time_string(v)

    @model_validator(mode="after")
    def check_order(self):
        if self.startTime >= self.endTime:
            raise ValueError("startTime must be before endTime")
        return self


class AvailabilityReplaceRequest(BaseModel):
    windows: list[AvailabilityWindowInput]


class AvailabilityWindowResponse(BaseModel):
    id: int
    dayOfWeek: int
    startTime: str
    endTime: str
    isActive: bool


class ConsultationTypeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    duration: int = Field(..., gt=0, le=480)
    fee: Decimal = Field(Decimal("0"), ge=0, max_digits=10, decimal_places=2)


class ConsultationTypeUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    duration: Optional[int] = Field(None, gt=0, le=480)
    fee: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    isActive: Optional[bool] = None


class ConsultationTypeResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    duration: int
    fee: Decimal
    isActive: bool


class RulesUpdate(BaseModel):
    """Partial update; omitted fields keep their stored value"""

    minAdvanceMinutes: Optional[int] = Field(None, ge=0)
    maxAdvanceMinutes: Optional[int] = Field(None, gt=0)
    maxBookingsPerDay: Optional[int] = Field(None, ge=0)
    maxBookingsPerPatient: Optional[int] = Field(None, ge=0)
    allowCancellation: Optional[bool] = None
    cancellationWindowHours: Optional[int] = Field(None, ge=0)
    allowRescheduling: Optional[bool] = None
    reschedulingWindowHours: Optional[int] = Field(None, ge=0)
    maxReschedules: Optional[int] = Field(None, ge=0)
    requirePayment: Optional[bool] = None
    sendConfirmation: Optional[bool] = None
    sendReminder: Optional[bool] = None
    pendingHoldMinutes: Optional[int] = Field(None, ge=0)

    @model_validator(mode="after")
    def check_advance_window(self):
        if (
            self.minAdvanceMinutes is not None
            and self.maxAdvanceMinutes is not None
            and self.minAdvanceMinutes >= self.maxAdvanceMinutes
        ):
            raise ValueError("minAdvanceMinutes must be less than maxAdvanceMinutes")
        return self


class RulesResponse(BaseModel):
    """Effective policy (stored values with defaults applied)"""

    minAdvanceMinutes: int
    maxAdvanceMinutes: int
    maxBookingsPerDay: Optional[int] = None
    maxBookingsPerPatient: Optional[int] = None
    allowCancellation: bool
    cancellationWindowHours: int
    allowRescheduling: bool
    reschedulingWindowHours: int
    maxReschedules: int
    requirePayment: bool
    sendConfirmation: bool
    sendReminder: bool
    pendingHoldMinutes: Optional[int] = None


class BlockedSlotCreate(BaseModel):
    date: str
    startTime: Optional[str] = None
    endTime: Optional[str] = None
    reason: Optional[str] = Field(None, max_length=200)

    @field_validator("date")
    @classmethod
    def validate_date(cls, v: str) -> str:
        parse_date(v)
        return v

    @field_validator("startTime", "endTime")
    @classmethod
    def validate_time(cls, v: Optional[str]) -> Optional[str]:
        return validate_time_string(v)

    @model_validator(mode="after")
    def check_range(self):
        if (self.startTime is None) != (self.endTime is None):
            raise ValueError("Provide both startTime and endTime, or neither to block the whole day")
        if self.startTime and self.startTime >= self.endTime:
            raise ValueError("startTime must be before endTime")
        return self

    @property
    def day(self) -> date:
        return parse_date(self.date)


class BlockedSlotResponse(BaseModel):
    id: int
    date: str
    startTime: Optional[str] = None
    endTime: Optional[str] = None
    reason: Optional[str] = None
    wholeDay: bool
    createdAt: Optional[datetime] = None
