"""Clinic configuration router - staff endpoints for the booking setup"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ...auth import get_current_admin, get_current_staff
from ...database import get_db
from ...models import Availability, BlockedSlot, ClinicStaff, ConsultationType
from ...shared.validators import parse_date
from ..scheduling.policy import BookingPolicy
from .schemas import (
    AvailabilityReplaceRequest,
    AvailabilityWindowInput,
    AvailabilityWindowResponse,
    BlockedSlotCreate,
    BlockedSlotResponse,
    ConsultationTypeCreate,
    ConsultationTypeResponse,
    ConsultationTypeUpdate,
    RulesResponse,
    RulesUpdate,
)
from .service import ClinicConfigService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/clinic", tags=["Clinic Configuration"])


def get_clinic_config_service(db: Session = Depends(get_db)) -> ClinicConfigService:
    """Dependency injection for ClinicConfigService"""
    return ClinicConfigService(db)


def window_response(w: Availability) -> AvailabilityWindowResponse:
    return AvailabilityWindowResponse(
        id=w.id,
        dayOfWeek=w.day_of_week,
        startTime=w.start_time,
        endTime=w.end_time,
        isActive=w.is_active,
    )


def consultation_type_response(ct: ConsultationType) -> ConsultationTypeResponse:
    return ConsultationTypeResponse(
        id=ct.id,
        name=ct.name,
        description=ct.description,
        duration=ct.duration,
        fee=ct.fee,
        isActive=ct.is_active,
    )


def rules_response(policy: BookingPolicy) -> RulesResponse:
    return RulesResponse(
        minAdvanceMinutes=policy.min_advance_minutes,
        maxAdvanceMinutes=policy.max_advance_minutes,
        maxBookingsPerDay=policy.max_bookings_per_day,
        maxBookingsPerPatient=policy.max_bookings_per_patient,
        allowCancellation=policy.allow_cancellation,
        cancellationWindowHours=policy.cancellation_window_hours,
        allowRescheduling=policy.allow_rescheduling,
        reschedulingWindowHours=policy.rescheduling_window_hours,
        maxReschedules=policy.max_reschedules,
        requirePayment=policy.require_payment,
        sendConfirmation=policy.send_confirmation,
        sendReminder=policy.send_reminder,
        pendingHoldMinutes=policy.pending_hold_minutes,
    )


def blocked_slot_response(b: BlockedSlot) -> BlockedSlotResponse:
    return BlockedSlotResponse(
        id=b.id,
        date=b.date.isoformat(),
        startTime=b.start_time,
        endTime=b.end_time,
        reason=b.reason,
        wholeDay=not (b.start_time and b.end_time),
        createdAt=b.created_at,
    )


# ============================================================================
# AVAILABILITY
# ============================================================================


@router.get("/availability", response_model=list[AvailabilityWindowResponse])
async def get_availability(
    staff: ClinicStaff = Depends(get_current_staff),
    service: ClinicConfigService = Depends(get_clinic_config_service),
):
    return [window_response(w) for w in service.get_windows(staff.clinic_id)]


@router.put("/availability", response_model=list[AvailabilityWindowResponse])
async def replace_availability(
    data: AvailabilityReplaceRequest,
    staff: ClinicStaff = Depends(get_current_admin),
    service: ClinicConfigService = Depends(get_clinic_config_service),
):
    """Replace the whole weekly schedule"""
    return [window_response(w) for w in service.replace_windows(staff.clinic_id, data.windows)]


@router.post("/availability", response_model=AvailabilityWindowResponse, status_code=201)
async def add_availability_window(
    data: AvailabilityWindowInput,
    staff: ClinicStaff = Depends(get_current_admin),
    service: ClinicConfigService = Depends(get_clinic_config_service),
):
    return window_response(service.add_window(staff.clinic_id, data))


@router.delete("/availability/{window_id}")
async def delete_availability_window(
    window_id: int,
    staff: ClinicStaff = Depends(get_current_admin),
    service: ClinicConfigService = Depends(get_clinic_config_service),
):
    return service.delete_window(staff.clinic_id, window_id)


# ============================================================================
# CONSULTATION TYPES
# ============================================================================


@router.get("/consultation-types", response_model=list[ConsultationTypeResponse])
async def get_consultation_types(
    staff: ClinicStaff = Depends(get_current_staff),
    service: ClinicConfigService = Depends(get_clinic_config_service),
):
    return [consultation_type_response(ct) for ct in service.get_consultation_types(staff.clinic_id)]


@router.post("/consultation-types", response_model=ConsultationTypeResponse, status_code=201)
async def create_consultation_type(
    data: ConsultationTypeCreate,
    staff: ClinicStaff = Depends(get_current_admin),
    service: ClinicConfigService = Depends(get_clinic_config_service),
):
    return consultation_type_response(service.create_consultation_type(staff.clinic_id, data))


@router.patch("/consultation-types/{consultation_type_id}", response_model=ConsultationTypeResponse)
async def update_consultation_type(
    consultation_type_id: int,
    data: ConsultationTypeUpdate,
    staff: ClinicStaff = Depends(get_current_admin),
    service: ClinicConfigService = Depends(get_clinic_config_service),
):
    return consultation_type_response(
        service.update_consultation_type(staff.clinic_id, consultation_type_id, data)
    )


@router.delete("/consultation-types/{consultation_type_id}")
async def deactivate_consultation_type(
    consultation_type_id: int,
    staff: ClinicStaff = Depends(get_current_admin),
    service: ClinicConfigService = Depends(get_clinic_config_service),
):
    return service.deactivate_consultation_type(staff.clinic_id, consultation_type_id)


# ============================================================================
# RULES
# ============================================================================


@router.get("/rules", response_model=RulesResponse)
async def get_rules(
    staff: ClinicStaff = Depends(get_current_staff),
    service: ClinicConfigService = Depends(get_clinic_config_service),
):
    return rules_response(service.get_policy(staff.clinic_id))


@router.put("/rules", response_model=RulesResponse)
async def update_rules(
    data: RulesUpdate,
    staff: ClinicStaff = Depends(get_current_admin),
    service: ClinicConfigService = Depends(get_clinic_config_service),
):
    return rules_response(service.update_rules(staff.clinic_id, data))


# ============================================================================
# BLOCKED SLOTS
# ============================================================================


@router.get("/blocked-slots", response_model=list[BlockedSlotResponse])
async def get_blocked_slots(
    start_date: Optional[str] = Query(None),
    end_date: Optional[str] = Query(None),
    staff: ClinicStaff = Depends(get_current_staff),
    service: ClinicConfigService = Depends(get_clinic_config_service),
):
    try:
        start = parse_date(start_date) if start_date else None
        end = parse_date(end_date) if end_date else None
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return [blocked_slot_response(b) for b in service.get_blocked_slots(staff.clinic_id, start, end)]


@router.post("/blocked-slots", response_model=BlockedSlotResponse, status_code=201)
async def add_blocked_slot(
    data: BlockedSlotCreate,
    staff: ClinicStaff = Depends(get_current_staff),
    service: ClinicConfigService = Depends(get_clinic_config_service),
):
    return blocked_slot_response(service.add_blocked_slot(staff.clinic_id, data))


@router.delete("/blocked-slots/{blocked_id}")
async def delete_blocked_slot(
    blocked_id: int,
    staff: ClinicStaff = Depends(get_current_staff),
    service: ClinicConfigService = Depends(get_clinic_config_service),
):
    return service.delete_blocked_slot(staff.clinic_id, blocked_id)
